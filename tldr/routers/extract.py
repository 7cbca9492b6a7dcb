from fastapi import APIRouter, Query

from ..models.extract import ExtractRequest, ExtractionResult
from ..services.extractor_service import extract

router = APIRouter(prefix="/extract", tags=["Extract"])


@router.get("", response_model=ExtractionResult)
async def extract_get(input: str = Query(...)) -> ExtractionResult:
    return await extract(input)


@router.post("", response_model=ExtractionResult)
async def extract_post(request: ExtractRequest) -> ExtractionResult:
    return await extract(request.input)
