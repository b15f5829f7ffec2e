from fastapi import Request

from .application import ContextEngine


async def set_db_mode(request: Request, call_next):
    """This middleware replaces the db engine depending on the request type.

    Read requests use the read only pool. Write requests use the write
    pool. Cache misses write through the write pool regardless.
    """
    if request.method in ["PUT", "PATCH", "POST", "DELETE"]:
        method = "WRITE"
    else:
        method = "READ"
    async with ContextEngine(method):
        response = await call_next(request)
    return response


async def no_cache_response_header(request: Request, call_next):
    """Add a Cache-Control header to GET responses.

    Documentation and health checks are never cached, endpoints may set
    their own max-age.
    """
    no_cache_paths = ["/", "/openapi.json", "/docs", "/ping", "/health"]
    response = await call_next(request)

    if request.method == "GET" and request.url.path in no_cache_paths:
        response.headers["Cache-Control"] = "no-cache"
    elif request.method == "GET" and response.status_code < 300:
        max_age = response.headers.get("Cache-Control", "max-age=0")
        response.headers["Cache-Control"] = max_age

    return response
