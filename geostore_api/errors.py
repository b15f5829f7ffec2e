import sys
import traceback

from fastapi import HTTPException
from fastapi.responses import ORJSONResponse

from geostore_api.settings.globals import ENV


class RecordNotFoundError(Exception):
    pass


class BadRequestError(Exception):
    pass


class UnknownGeometryError(BadRequestError):
    pass


class ProviderNotFoundError(BadRequestError):
    pass


class ImmutableRecordError(Exception):
    """Raised when a write would replace a locked geostore."""

    def __init__(self, geostore_hash: str):
        self.hash = geostore_hash
        super().__init__(f"Geostore {geostore_hash} is locked and cannot be modified")


class GeometryTooLargeError(Exception):
    pass


class UpstreamUnavailableError(Exception):
    """The geometry data source failed or timed out on every attempt."""


class UpstreamQueryError(Exception):
    """The geometry data source rejected a query."""

    def __init__(self, message: str, status_code: int):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def show_traceback() -> bool:
    return ENV == "test" or ENV == "dev"


def http_error_handler(exc: HTTPException) -> ORJSONResponse:

    message = exc.detail
    if exc.status_code < 500:
        status = "failed"
    else:
        status = "error"
        # In dev and test print full traceback of internal server errors
        if show_traceback():
            exc_type, exc_value, exc_traceback = sys.exc_info()
            message = traceback.format_exception(exc_type, exc_value, exc_traceback)
    return ORJSONResponse(
        status_code=exc.status_code, content={"status": status, "message": message}
    )


def unexpected_error_handler(exc: Exception) -> ORJSONResponse:
    if show_traceback():
        message = traceback.format_exception(type(exc), exc, exc.__traceback__)
    else:
        message = "Internal Server Error. Could not process request."
    return ORJSONResponse(
        status_code=500, content={"status": "error", "message": message}
    )
