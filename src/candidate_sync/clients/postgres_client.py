"""
Postgres connection management for the candidate sync engine.

Wraps a SQLAlchemy 2.0 async engine over asyncpg. Queries themselves live in
CandidateRepository; this module only owns the engine lifecycle and URL
normalisation.
"""

from __future__ import annotations

from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = structlog.get_logger(__name__)


def _sanitize_url(url: str) -> tuple[str, bool]:
    """Remove URL query params that asyncpg does not understand.

    Hosted Postgres URLs often include ``channel_binding=require`` and
    ``sslmode=require`` which are libpq parameters. asyncpg rejects unknown
    connection params, so SSL is passed through ``connect_args`` instead.

    Returns:
        (sanitized_url, ssl_required)
    """
    _STRIP_PARAMS = {'channel_binding', 'sslmode'}
    parsed = urlparse(url)
    if not parsed.query:
        return url, False
    params = parse_qs(parsed.query)
    ssl_required = params.get('sslmode', [''])[0] in ('require', 'verify-ca', 'verify-full')
    filtered = {k: v for k, v in params.items() if k not in _STRIP_PARAMS}
    new_query = urlencode(filtered, doseq=True)
    return urlunparse(parsed._replace(query=new_query)), ssl_required


def _normalize_driver(url: str) -> str:
    """Force the asyncpg driver prefix."""
    if url.startswith('postgres://'):
        return url.replace('postgres://', 'postgresql+asyncpg://', 1)
    if url.startswith('postgresql://') and '+asyncpg' not in url:
        return url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    return url


class PostgresClient:
    """
    Async Postgres client holding the engine and connection pool.

    Methods on CandidateRepository run their statements through
    ``engine.begin()`` so each logical write is one transaction.
    """

    def __init__(self, database_url: str | None = None, pool_size: int = 5):
        """
        Initialize with a Postgres connection URL.

        Args:
            database_url: Postgres connection URL. 'postgres://' and
                          'postgresql://' prefixes are converted to use asyncpg.
            pool_size: Connection pool size
        """
        self._engine: AsyncEngine | None = None
        self._database_url = database_url
        self._pool_size = pool_size

    async def connect(self, database_url: str | None = None) -> None:
        """
        Create the async engine. Idempotent, no-op if already connected.

        Args:
            database_url: Override the URL from __init__.
        """
        if self._engine is not None:
            return

        url = database_url or self._database_url
        if not url:
            raise ValueError('database_url is required')

        url, ssl_required = _sanitize_url(url)
        url = _normalize_driver(url)

        connect_args: dict[str, object] = {}
        if ssl_required:
            connect_args['ssl'] = 'require'

        self._engine = create_async_engine(
            url,
            pool_size=self._pool_size,
            max_overflow=self._pool_size,
            pool_pre_ping=True,
            pool_timeout=30,
            connect_args=connect_args,
        )
        logger.info('postgres_client.connected', ssl=ssl_required)

    async def close(self) -> None:
        """Dispose of the engine and connection pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info('postgres_client.closed')

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError('PostgresClient not connected, call connect() first')
        return self._engine

    async def verify_connectivity(self) -> bool:
        """Return True if we can execute a simple query."""
        try:
            async with self.engine.begin() as conn:
                await conn.execute(text('SELECT 1'))
            return True
        except Exception:
            logger.exception('postgres_client.connectivity_check_failed')
            return False
