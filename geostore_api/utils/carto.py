import asyncio
from typing import Any, Dict, List, Optional

from fastapi.logger import logger
from httpx import AsyncClient, Response, TimeoutException, TransportError
from sqlalchemy.dialects import postgresql
from sqlalchemy.sql.elements import ClauseElement

from ..errors import UpstreamQueryError, UpstreamUnavailableError
from ..settings.globals import (
    CARTO_API_KEY,
    CARTO_SQL_URL,
    CARTO_USER,
    SQL_LOG_MAX_LEN,
    UPSTREAM_BACKOFF,
    UPSTREAM_MAX_RETRIES,
    UPSTREAM_TIMEOUT,
)

# Named paramstyle, so that literal "%" in bound strings is not doubled
SQL_DIALECT = postgresql.dialect(paramstyle="named")

RETRY_STATUS_CODES = (429, 500, 502, 503, 504)


def render_sql(sql: ClauseElement) -> str:
    """Render a statement with its bound parameters as SQL literals.

    The SQL API has no parameter binding of its own, values are
    escaped by the dialect's literal renderer instead.
    """
    return str(sql.compile(dialect=SQL_DIALECT, compile_kwargs={"literal_binds": True}))


def truncate(sql: str, max_len: int = SQL_LOG_MAX_LEN) -> str:
    if len(sql) <= max_len:
        return sql
    return f"{sql[:max_len]}... ({len(sql)} characters)"


class CartoClient:
    """Asynchronous client for the CARTO SQL API."""

    def __init__(
        self,
        user: str = CARTO_USER,
        api_key: Optional[str] = None,
        url: str = CARTO_SQL_URL,
        timeout: float = UPSTREAM_TIMEOUT,
        max_retries: int = UPSTREAM_MAX_RETRIES,
        backoff: float = UPSTREAM_BACKOFF,
        client: Optional[AsyncClient] = None,
    ):
        self.user = user
        self.api_key = api_key if api_key is not None else _default_api_key()
        self.url = url
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff
        self.client = client if client is not None else AsyncClient(timeout=timeout)

    def sql_url(self, user: Optional[str] = None) -> str:
        return self.url.format(user=user or self.user)

    async def execute(
        self, sql: ClauseElement, user: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Run a query and return its rows.

        Timeouts, transport errors and 429/5xx responses are retried
        with exponential backoff.
        """
        query: str = render_sql(sql)
        logger.debug(f"SQL sent to CARTO: {truncate(query)}")

        payload: Dict[str, Any] = {"q": query}
        # Only the service account key works for the service account
        if self.api_key and (user is None or user == self.user):
            payload["api_key"] = self.api_key

        url = self.sql_url(user)
        attempt = 0
        while True:
            try:
                response: Response = await self.client.post(
                    url, json=payload, timeout=self.timeout
                )
            except (TimeoutException, TransportError) as e:
                reason = f"{type(e).__name__}: {e}"
            else:
                if response.status_code == 200:
                    return response.json().get("rows") or []
                if response.status_code not in RETRY_STATUS_CODES:
                    message = _error_message(response)
                    logger.warning(
                        f"CARTO rejected query with status {response.status_code}: {message}"
                    )
                    raise UpstreamQueryError(message, response.status_code)
                reason = f"status code {response.status_code}"

            if attempt >= self.max_retries:
                logger.error(
                    f"CARTO request failed after {attempt + 1} attempts: {reason}"
                )
                raise UpstreamUnavailableError(
                    "Geometry data source is unavailable. Please try again later."
                )

            delay = self.backoff * 2**attempt
            logger.warning(
                f"CARTO request failed ({reason}), retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)
            attempt += 1

    async def close(self) -> None:
        await self.client.aclose()


def _default_api_key() -> Optional[str]:
    return str(CARTO_API_KEY) if CARTO_API_KEY is not None else None


def _error_message(response: Response) -> str:
    try:
        errors = response.json().get("error")
    except ValueError:
        return response.text
    if isinstance(errors, list):
        return "; ".join(str(error) for error in errors)
    return str(errors or response.text)
