from enum import Enum


class ErrorCode(str, Enum):
    INVALID_URL = "INVALID_URL"
    NO_TOKEN = "NO_TOKEN"
    NOT_FOUND = "NOT_FOUND"
    AUTH = "AUTH"
    NETWORK = "NETWORK"
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    REDIRECT_LIMIT = "REDIRECT_LIMIT"
    SSRF = "SSRF"
    SCHEME = "SCHEME"
    NO_TRANSCRIPT = "NO_TRANSCRIPT"
    UNKNOWN = "UNKNOWN"


CONFIGURATION_CODES = {ErrorCode.NO_TOKEN, ErrorCode.AUTH, ErrorCode.SCHEME}
TRANSIENT_CODES = {ErrorCode.NETWORK, ErrorCode.RATE_LIMIT, ErrorCode.TIMEOUT}
INPUT_CODES = {ErrorCode.INVALID_URL}


class TldrError(Exception):
    """Base for every typed failure. Callers branch on `code`, never on the message."""

    allowed_codes: frozenset[ErrorCode] = frozenset(ErrorCode)

    def __init__(self, message: str, code: ErrorCode | str):
        code = ErrorCode(code)
        if code not in self.allowed_codes:
            raise ValueError(f"{type(self).__name__} does not use code {code.value}")
        super().__init__(message)
        self.message = message
        self.code = code

    @property
    def is_configuration(self) -> bool:
        return self.code in CONFIGURATION_CODES

    @property
    def is_transient(self) -> bool:
        return self.code in TRANSIENT_CODES

    @property
    def is_input(self) -> bool:
        return self.code in INPUT_CODES


def code_set(*names: str) -> frozenset[ErrorCode]:
    return frozenset(ErrorCode(name) for name in names)


class ExtractionError(TldrError):
    """Local file reads performed by the extraction pipeline."""

    allowed_codes = code_set("NOT_FOUND", "AUTH", "UNKNOWN")
