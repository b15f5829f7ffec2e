"""Uptime and readiness checks."""

from fastapi import APIRouter
from fastapi.responses import ORJSONResponse

from .. import application
from ..application import DatabaseStatus
from ..models.pydantic.responses import Response

router = APIRouter()


@router.get(
    "/ping",
    response_class=ORJSONResponse,
    tags=["Health"],
    response_model=Response,
)
async def ping():
    """Simple uptime check."""

    return Response(data="pong")


@router.get(
    "/health",
    response_class=ORJSONResponse,
    tags=["Health"],
    response_model=Response,
)
async def health():
    """Ready once the database connection pools are up."""

    status = application.DB_STATUS
    if status != DatabaseStatus.ready:
        return ORJSONResponse(
            status_code=503,
            content={"status": "error", "message": f"Database is {status.value}"},
        )
    return Response(data={"database": status.value})
