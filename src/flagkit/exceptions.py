"""flagkit exception types."""

from __future__ import annotations


class FlagKitError(Exception):
    """Base error for the flagkit library."""

    def __init__(
        self,
        code: str,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class FlagKitErrorCodes:
    """Error code constants."""

    NOT_INITIALIZED: str = "NOT_INITIALIZED"
    CLOSED: str = "CLOSED"
    HTTP_ERROR: str = "HTTP_ERROR"
    INVALID_PAYLOAD: str = "INVALID_PAYLOAD"
    INVALID_SDK_KEY: str = "INVALID_SDK_KEY"
    CONFIG_ERROR: str = "CONFIG_ERROR"
    READ_FILE: str = "READ_FILE_ERROR"
    PARSE_YAML: str = "PARSE_YAML_ERROR"
    INVALID_VARIATION: str = "INVALID_VARIATION"
    NO_VARIATIONS: str = "NO_VARIATIONS"
