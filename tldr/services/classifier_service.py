import os
import re

from ..models.extract import ClassifiedInput, InputType


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)

# Ordered: the first platform that matches wins.
PLATFORM_PATTERNS = [
    (re.compile(r"^https?://([^/]*\.)?slack\.com/", re.IGNORECASE), InputType.URL_SLACK),
    (re.compile(r"^https?://([^/]*\.)?(youtube\.com|youtu\.be)/", re.IGNORECASE), InputType.URL_YOUTUBE),
    (re.compile(r"^https?://([^/]*\.)?notion\.so/", re.IGNORECASE), InputType.URL_NOTION),
    (re.compile(r"^https?://([^/]*\.)?arxiv\.org/", re.IGNORECASE), InputType.URL_ARXIV),
    (re.compile(r"^https?://(www\.)?github\.com/", re.IGNORECASE), InputType.URL_GITHUB),
]

PDF_URL_PATTERN = re.compile(r"\.pdf(\?.*)?$", re.IGNORECASE)
IMAGE_URL_PATTERN = re.compile(r"\.(jpe?g|png|gif|webp)(\?.*)?$", re.IGNORECASE)

PDF_PATH_PATTERN = re.compile(r"\.pdf$", re.IGNORECASE)
IMAGE_PATH_PATTERN = re.compile(r"\.(jpe?g|png|gif|webp)$", re.IGNORECASE)

FILE_PATH_PATTERN = re.compile(r"^(/|~/|\./|\.\./)")
_ESCAPED_CHAR = re.compile(r"\\([^a-zA-Z0-9])")


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

def expand_home(path: str) -> str:
    if path.startswith("~"):
        return path.replace("~", os.environ.get("HOME", ""), 1)
    return path


def normalize_dragged_path(value: str) -> str:
    """Undo the quoting terminals add when a file is dragged onto them."""
    s = value.strip()

    if len(s) >= 2 and s[0] == s[-1] and s[0] in ("'", '"'):
        s = s[1:-1]

    # Only non-alphanumerics: "\n" or "\t" in a real path must survive.
    return _ESCAPED_CHAR.sub(r"\1", s)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def _classify_url(url: str) -> InputType:
    for pattern, input_type in PLATFORM_PATTERNS:
        if pattern.match(url):
            if input_type is InputType.URL_ARXIV and PDF_URL_PATTERN.search(url):
                return InputType.URL_PDF
            return input_type

    if PDF_URL_PATTERN.search(url):
        return InputType.URL_PDF
    if IMAGE_URL_PATTERN.search(url):
        return InputType.URL_IMAGE
    return InputType.URL


def _classify_path(path: str) -> InputType:
    if PDF_PATH_PATTERN.search(path):
        return InputType.FILE_PDF
    if IMAGE_PATH_PATTERN.search(path):
        return InputType.FILE_IMAGE
    return InputType.FILE


def classify(raw: str) -> ClassifiedInput:
    trimmed = raw.strip()

    if not trimmed:
        return ClassifiedInput(type=InputType.TEXT, value="")

    if URL_PATTERN.match(trimmed):
        return ClassifiedInput(type=_classify_url(trimmed), value=trimmed)

    normalized = normalize_dragged_path(trimmed)
    if FILE_PATH_PATTERN.match(normalized):
        return ClassifiedInput(type=_classify_path(normalized), value=normalized)

    return ClassifiedInput(type=InputType.TEXT, value=trimmed)
