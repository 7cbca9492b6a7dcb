from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class InputType(str, Enum):
    URL = "url"
    URL_PDF = "url:pdf"
    URL_IMAGE = "url:image"
    URL_YOUTUBE = "url:youtube"
    URL_SLACK = "url:slack"
    URL_NOTION = "url:notion"
    URL_ARXIV = "url:arxiv"
    URL_GITHUB = "url:github"
    FILE = "file"
    FILE_PDF = "file:pdf"
    FILE_IMAGE = "file:image"
    TEXT = "text"


ImageMediaType = Literal["image/jpeg", "image/png", "image/gif", "image/webp"]


def count_words(text: str) -> int:
    return len(text.split())


class ExtractRequest(BaseModel):
    input: str


class ClassifiedInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: InputType
    value: str


class ImageData(BaseModel):
    base64: str
    media_type: ImageMediaType
    file_path: Optional[str] = Field(
        default=None,
        description="Path the image can be read from. Temp files are owned by the caller.",
    )


class ExtractionResult(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    date: Optional[str] = None
    content: str
    word_count: int
    source: str
    partial: Optional[bool] = Field(
        default=None,
        description="True when the extraction looks truncated or paywalled.",
    )
    image: Optional[ImageData] = None


class FetchResult(BaseModel):
    body: str
    content_type: str
    url: str = Field(description="Final URL after following redirects.")
    status: int
    content: bytes = b""
