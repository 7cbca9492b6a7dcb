import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .cancellation import AbortedError
from .config import settings
from .errors import ErrorCode, TldrError
from .routers.extract import router as extract_router
from .routers.summarizer import router as summarizer_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

# Client went away before the answer was ready (nginx convention).
CLIENT_CLOSED_REQUEST = 499

_STATUS_BY_CODE = {
    ErrorCode.INVALID_URL: 422,
    ErrorCode.NO_TOKEN: 401,
    ErrorCode.AUTH: 401,
    ErrorCode.SCHEME: 400,
    ErrorCode.SSRF: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.NO_TRANSCRIPT: 404,
    ErrorCode.RATE_LIMIT: 429,
    ErrorCode.TIMEOUT: 504,
    ErrorCode.NETWORK: 502,
    ErrorCode.REDIRECT_LIMIT: 502,
    ErrorCode.UNKNOWN: 500,
}


def status_for(error: TldrError) -> int:
    return _STATUS_BY_CODE.get(error.code, 500)


app = FastAPI(title="tldr API")

app.include_router(extract_router)
app.include_router(summarizer_router)


@app.exception_handler(TldrError)
async def tldr_error_handler(request: Request, exc: TldrError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.warning("%s failed: %s (%s)", request.url.path, exc.message, exc.code.value)
    return JSONResponse(status_code=status, content={"detail": exc.message, "code": exc.code.value})


@app.exception_handler(AbortedError)
async def aborted_handler(request: Request, exc: AbortedError) -> JSONResponse:
    return JSONResponse(status_code=CLIENT_CLOSED_REQUEST, content={"detail": str(exc)})


@app.get("/")
def root():
    return {"message": "API is running!"}
