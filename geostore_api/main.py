import json
import logging
import sys
from asyncio.exceptions import TimeoutError as AsyncTimeoutError

from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.logger import logger
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.requests import Request
from fastapi.responses import ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .application import app
from .crud.aliases import AliasTable
from .crud.geostore import GeometryStore
from .errors import (
    ImmutableRecordError,
    UpstreamQueryError,
    UpstreamUnavailableError,
    http_error_handler,
    unexpected_error_handler,
)
from .middleware import no_cache_response_header, set_db_mode
from .routes import health
from .routes.coverage import coverage
from .routes.geostore import geostore
from .utils.carto import CartoClient
from .utils.coverage import CoverageIntersector
from .utils.geostore import GeostoreService
from .utils.upstream import UpstreamFetcher

################
# LOGGING
################

gunicorn_logger = logging.getLogger("gunicorn.error")
logger.handlers = gunicorn_logger.handlers
sys.path.extend(["./"])


################
# ERRORS
################


@app.exception_handler(AsyncTimeoutError)
async def timeout_error_handler(
    request: Request, exc: AsyncTimeoutError
) -> ORJSONResponse:
    """Use JSEND protocol for timeouts."""
    return ORJSONResponse(
        status_code=524,
        content={
            "status": "error",
            "message": "A timeout occurred while processing the request. Request canceled.",
        },
    )


@app.exception_handler(HTTPException)
async def httpexception_error_handler(
    request: Request, exc: HTTPException
) -> ORJSONResponse:
    """Use JSEND protocol for HTTP exceptions."""
    return http_error_handler(exc)


@app.exception_handler(RequestValidationError)
async def rve_error_handler(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    """Use JSEND protocol for validation errors."""
    return ORJSONResponse(
        status_code=422, content={"status": "failed", "message": json.loads(exc.json())}
    )


@app.exception_handler(ImmutableRecordError)
async def immutable_record_handler(
    request: Request, exc: ImmutableRecordError
) -> ORJSONResponse:
    """Locked geostores are never replaced, whichever route hit them."""
    return ORJSONResponse(
        status_code=409, content={"status": "failed", "message": str(exc)}
    )


@app.exception_handler(UpstreamUnavailableError)
async def upstream_unavailable_handler(
    request: Request, exc: UpstreamUnavailableError
) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=503, content={"status": "error", "message": str(exc)}
    )


@app.exception_handler(UpstreamQueryError)
async def upstream_query_error_handler(
    request: Request, exc: UpstreamQueryError
) -> ORJSONResponse:
    logger.error(f"Geometry data source rejected a query: {exc.message}")
    return ORJSONResponse(
        status_code=502,
        content={
            "status": "error",
            "message": "Geometry data source rejected the request.",
        },
    )


@app.exception_handler(Exception)
async def catch_all_handler(request: Request, exc: Exception) -> ORJSONResponse:
    logger.exception(str(exc))
    return unexpected_error_handler(exc)


#################
# SERVICES
#################


@app.on_event("startup")
async def build_services():
    """Wire the geostore services and keep them on the app state."""
    carto_client = CartoClient()
    geostore_service = GeostoreService(
        GeometryStore(), AliasTable(), UpstreamFetcher(carto_client)
    )

    app.state.carto_client = carto_client
    app.state.geostore_service = geostore_service
    app.state.coverage = CoverageIntersector(carto_client, geostore_service)


@app.on_event("shutdown")
async def close_services():
    carto_client = getattr(app.state, "carto_client", None)
    if carto_client is not None:
        await carto_client.close()


#################
# MIDDLEWARE
#################

MIDDLEWARE = (set_db_mode, no_cache_response_header)

for m in MIDDLEWARE:
    app.add_middleware(BaseHTTPMiddleware, dispatch=m)

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

###############
# GEOSTORE API
###############

app.include_router(geostore.router, prefix="/geostore")

###############
# COVERAGE API
###############

app.include_router(coverage.router, prefix="/coverage")

###############
# HEALTH API
###############

app.include_router(health.router, prefix="")


#######################
# OPENAPI Documentation
#######################


tags_metadata = [
    {"name": "Geostore", "description": geostore.__doc__},
    {"name": "Coverage", "description": coverage.__doc__},
    {"name": "Health", "description": health.__doc__},
]


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title="GFW Geostore API",
        version="0.1.0",
        description="Content addressed storage of administrative, land use, protected area and user geometries.",
        routes=app.routes,
    )

    openapi_schema["tags"] = tags_metadata
    openapi_schema["x-tagGroups"] = [
        {"name": "Geostore API", "tags": ["Geostore"]},
        {"name": "Coverage API", "tags": ["Coverage"]},
        {"name": "Health API", "tags": ["Health"]},
    ]

    app.openapi_schema = openapi_schema

    return app.openapi_schema


app.openapi = custom_openapi

if __name__ == "__main__":
    import uvicorn

    logger.setLevel(logging.DEBUG)
    uvicorn.run(app, host="0.0.0.0", port=8888, log_level="info")
else:
    logger.setLevel(gunicorn_logger.level)
