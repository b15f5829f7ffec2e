import asyncio
from asyncio import Future
from contextvars import ContextVar
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from asyncpg.exceptions import PostgresError
from fastapi import FastAPI
from fastapi.logger import logger
from gino import Gino, create_engine
from gino.engine import GinoEngine

from .settings.globals import (
    DATABASE_URL,
    DB_CONNECT_BUDGET,
    DB_CONNECT_INITIAL_BACKOFF,
    DB_CONNECT_MAX_BACKOFF,
    SQL_REQUEST_TIMEOUT,
    WRITE_DATABASE_URL,
)

# Set the current engine using a ContextVar to assure
# that the correct connection is used during concurrent requests
CURRENT_ENGINE: ContextVar = ContextVar("engine")

WRITE_ENGINE: Optional[GinoEngine] = None
READ_ENGINE: Optional[GinoEngine] = None


class DatabaseStatus(str, Enum):
    connecting = "connecting"
    ready = "ready"
    failed = "failed"


DB_STATUS: DatabaseStatus = DatabaseStatus.connecting


class ContextualGino(Gino):
    """Override the Gino Metadata object to allow to dynamically change the
    binds."""

    @property
    def bind(self):
        try:
            e = CURRENT_ENGINE.get()
            bind = e.result()
            logger.debug(f"Set bind to {bind.repr(color=True)}")
            return bind
        except LookupError:
            # not in a request
            logger.debug("Not in a request, using default bind")
            return self._bind

    @bind.setter
    def bind(self, val):
        self._bind = val


app = FastAPI(title="GFW Geostore API", redoc_url="/")

# No default bind. Read and write pools are created on startup and selected
# per request by middleware.
db = ContextualGino()


class ContextEngine(object):
    def __init__(self, method):
        self.method = method

    async def __aenter__(self):
        """initialize objects."""
        try:
            e = CURRENT_ENGINE.get()
        except LookupError:
            e = Future()
            engine = await self.get_engine(self.method)
            e.set_result(engine)
            await e
        finally:
            self.token = CURRENT_ENGINE.set(e)

    async def __aexit__(self, _type, value, tb):
        """Uninitialize objects."""
        CURRENT_ENGINE.reset(self.token)

    @staticmethod
    async def get_engine(method: str) -> GinoEngine:
        """Select the database connection depending on request method."""
        if method.upper() == "WRITE":
            logger.debug("Use write engine")
            engine: GinoEngine = WRITE_ENGINE
        else:
            logger.debug("Use read engine")
            engine = READ_ENGINE
        return engine


async def _create_engines(engine_factory: Callable[..., Awaitable[Any]]) -> None:
    global WRITE_ENGINE
    global READ_ENGINE

    write_engine = await engine_factory(WRITE_DATABASE_URL, max_size=5, min_size=1)
    try:
        read_engine = await engine_factory(
            DATABASE_URL,
            max_size=10,
            min_size=5,
            command_timeout=SQL_REQUEST_TIMEOUT,
        )
    except BaseException:
        await write_engine.close()
        raise

    WRITE_ENGINE = write_engine
    READ_ENGINE = read_engine
    logger.info(
        f"Database connection pool for write operation created: {WRITE_ENGINE.repr(color=True)}"
    )
    logger.info(
        f"Database connection pool for read operation created: {READ_ENGINE.repr(color=True)}"
    )


async def connect_engines(
    engine_factory: Callable[..., Awaitable[Any]] = create_engine,
    budget: float = DB_CONNECT_BUDGET,
    initial_backoff: float = DB_CONNECT_INITIAL_BACKOFF,
    max_backoff: float = DB_CONNECT_MAX_BACKOFF,
) -> DatabaseStatus:
    """Connect the read and write pools, retrying with exponential backoff.

    Gives up once the next attempt would start after `budget` seconds.
    The outcome is reported through DB_STATUS, the process keeps
    running either way.
    """
    global DB_STATUS

    loop = asyncio.get_running_loop()
    started = loop.time()
    delay = initial_backoff
    attempt = 0

    DB_STATUS = DatabaseStatus.connecting
    while True:
        attempt += 1
        try:
            await _create_engines(engine_factory)
        except (OSError, PostgresError, asyncio.TimeoutError) as e:
            elapsed = loop.time() - started
            if elapsed + delay > budget:
                logger.error(
                    f"Could not connect to database after {attempt} attempts "
                    f"({elapsed:.1f}s): {e}"
                )
                DB_STATUS = DatabaseStatus.failed
                return DB_STATUS
            logger.warning(
                f"Failed to connect to database (attempt {attempt}), "
                f"retrying in {delay:.1f}s: {e}"
            )
            await asyncio.sleep(delay)
            delay = min(delay * 2, max_backoff)
        else:
            DB_STATUS = DatabaseStatus.ready
            return DB_STATUS


@app.on_event("startup")
async def startup_event():
    """Start connecting to the database without blocking startup."""
    app.state.db_supervisor = asyncio.create_task(connect_engines())


@app.on_event("shutdown")
async def shutdown_event():
    """Closing the database connections on shutdown."""
    global WRITE_ENGINE
    global READ_ENGINE

    supervisor = getattr(app.state, "db_supervisor", None)
    if supervisor is not None and not supervisor.done():
        supervisor.cancel()

    if WRITE_ENGINE:
        logger.info(
            f"Closing database connection for write operations {WRITE_ENGINE.repr(color=True)}"
        )
        await WRITE_ENGINE.close()
        logger.info(
            f"Closed database connection for write operations {WRITE_ENGINE.repr(color=True)}"
        )
    if READ_ENGINE:
        logger.info(
            f"Closing database connection for read operations {READ_ENGINE.repr(color=True)}"
        )
        await READ_ENGINE.close()
        logger.info(
            f"Closed database connection for read operations {READ_ENGINE.repr(color=True)}"
        )
