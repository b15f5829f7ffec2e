import json
from pathlib import Path
from typing import Optional

from sqlalchemy.engine.url import URL
from starlette.config import Config
from starlette.datastructures import Secret

# Read .env file, if exists
p: Path = Path(__file__).parents[2] / ".env"
config: Config = Config(p if p.exists() else None)

empty_db_secret = {
    "dbInstanceIdentifier": None,
    "dbname": "geostore",
    "engine": None,
    "host": "localhost",
    "password": None,  # pragma: allowlist secret
    "port": 5432,
    "username": None,
}

# Fargate can only hand over entire secret objects, not single keys.
DB_WRITER_SECRET = json.loads(
    config("DB_WRITER_SECRET", cast=str, default=json.dumps(empty_db_secret))
)
DB_READER_SECRET = json.loads(
    config("DB_READER_SECRET", cast=str, default=json.dumps(empty_db_secret))
)

ENV = config("ENV", cast=str, default="dev")

READER_USERNAME: Optional[str] = config(
    "DB_USER_RO", cast=str, default=DB_READER_SECRET["username"]
)
READER_PASSWORD: Optional[Secret] = config(
    "DB_PASSWORD_RO", cast=Secret, default=DB_READER_SECRET["password"]
)
READER_HOST: str = config("DB_HOST_RO", cast=str, default=DB_READER_SECRET["host"])
READER_PORT: int = config("DB_PORT_RO", cast=int, default=DB_READER_SECRET["port"])
READER_DBNAME = config("DATABASE_RO", cast=str, default=DB_READER_SECRET["dbname"])

WRITER_USERNAME: Optional[str] = config(
    "DB_USER", cast=str, default=DB_WRITER_SECRET["username"]
)
WRITER_PASSWORD: Optional[Secret] = config(
    "DB_PASSWORD", cast=Secret, default=DB_WRITER_SECRET["password"]
)
WRITER_HOST: str = config("DB_HOST", cast=str, default=DB_WRITER_SECRET["host"])
WRITER_PORT: int = config("DB_PORT", cast=int, default=DB_WRITER_SECRET["port"])
WRITER_DBNAME = config("DATABASE", cast=str, default=DB_WRITER_SECRET["dbname"])


def _database_url(
    drivername: str,
    username: Optional[str],
    password: Optional[Secret],
    host: str,
    port: int,
    database: str,
) -> URL:
    return URL(
        drivername=drivername,
        username=username,
        password=str(password) if password is not None else None,
        host=host,
        port=port,
        database=database,
    )


DATABASE_URL: URL = _database_url(
    "asyncpg",
    READER_USERNAME,
    READER_PASSWORD,
    READER_HOST,
    READER_PORT,
    READER_DBNAME,
)

WRITE_DATABASE_URL: URL = _database_url(
    "asyncpg",
    WRITER_USERNAME,
    WRITER_PASSWORD,
    WRITER_HOST,
    WRITER_PORT,
    WRITER_DBNAME,
)

ALEMBIC_DATABASE_URL: URL = _database_url(
    "postgresql+psycopg2",
    WRITER_USERNAME,
    WRITER_PASSWORD,
    WRITER_HOST,
    WRITER_PORT,
    WRITER_DBNAME,
)

SQL_REQUEST_TIMEOUT = 58

# Startup reconnect loop, all values in seconds
DB_CONNECT_BUDGET = config("DB_CONNECT_BUDGET", cast=float, default=300.0)
DB_CONNECT_INITIAL_BACKOFF = config(
    "DB_CONNECT_INITIAL_BACKOFF", cast=float, default=1.0
)
DB_CONNECT_MAX_BACKOFF = config("DB_CONNECT_MAX_BACKOFF", cast=float, default=30.0)

CARTO_USER = config("CARTO_USER", cast=str, default="wri-01")
CARTO_API_KEY: Optional[Secret] = config("CARTO_API_KEY", cast=Secret, default=None)
CARTO_SQL_URL = config(
    "CARTO_SQL_URL", cast=str, default="https://{user}.carto.com/api/v2/sql"
)

UPSTREAM_TIMEOUT = config("UPSTREAM_TIMEOUT", cast=float, default=30.0)
UPSTREAM_MAX_RETRIES = config("UPSTREAM_MAX_RETRIES", cast=int, default=3)
UPSTREAM_BACKOFF = config("UPSTREAM_BACKOFF", cast=float, default=0.5)

GADM_VERSION = config("GADM_VERSION", cast=str, default="3.6")
MAX_GEOSTORES_FOUND_BY_ID = config("MAX_GEOSTORES_FOUND_BY_ID", cast=int, default=250)
GEOJSONIO_MAX_URL_LEN = config("GEOJSONIO_MAX_URL_LEN", cast=int, default=150000)

# Large geometries make for very long SQL strings, don't flood the logs with them
SQL_LOG_MAX_LEN = config("SQL_LOG_MAX_LEN", cast=int, default=2000)
