from fastapi import Request

from ..utils.coverage import CoverageIntersector
from ..utils.geostore import GeostoreService

GEOSTORE_ID_REGEX = r"^[A-Za-z0-9_-]{1,64}$"


async def geostore_service_dependency(request: Request) -> GeostoreService:
    return request.app.state.geostore_service


async def coverage_dependency(request: Request) -> CoverageIntersector:
    return request.app.state.coverage
