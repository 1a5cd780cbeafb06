"""
Postgres benchmark sink.

Inserts benchmark records into ``provider_benchmarks`` using the SQLAlchemy
2.0 async engine with asyncpg. Only INSERTs are issued; the table is owned
by whoever runs the reporting side.
"""

from __future__ import annotations

from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..errors import BenchmarkWriteError
from ..logging import get_logger
from .scorer import BenchmarkRecord

logger = get_logger(__name__)

_INSERT_COLUMNS = (
    'analysis_id', 'stage', 'provider_id', 'success',
    'provider_price', 'provider_decision', 'provider_confidence',
    'provider_item_name', 'provider_category', 'response_time_ms', 'error',
    'ground_truth_price', 'ground_truth_source', 'authority_source', 'authority_price',
    'market_median_price', 'market_listing_count', 'market_confidence',
    'price_error_dollars', 'price_error_percent', 'price_direction', 'decision_correct',
    'item_name', 'detected_category', 'had_image',
    'consensus_price', 'consensus_decision', 'final_price', 'price_method',
    'total_votes', 'analysis_quality',
)

INSERT_BENCHMARK_SQL = text(
    f"INSERT INTO provider_benchmarks ({', '.join(_INSERT_COLUMNS)}) "
    f"VALUES ({', '.join(':' + c for c in _INSERT_COLUMNS)})"
)


def _sanitize_url(url: str) -> str:
    """Remove URL query params that asyncpg does not understand.

    Hosted Postgres pooler URLs often carry ``channel_binding`` and
    ``sslmode``, which are libpq parameters that asyncpg rejects.
    """
    _STRIP_PARAMS = {'channel_binding', 'sslmode'}
    parsed = urlparse(url)
    if not parsed.query:
        return url
    params = parse_qs(parsed.query)
    filtered = {k: v for k, v in params.items() if k not in _STRIP_PARAMS}
    new_query = urlencode(filtered, doseq=True)
    return urlunparse(parsed._replace(query=new_query))


def _asyncpg_url(url: str) -> str:
    url = _sanitize_url(url)
    if url.startswith('postgres://'):
        return url.replace('postgres://', 'postgresql+asyncpg://', 1)
    if url.startswith('postgresql://') and '+asyncpg' not in url:
        return url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    return url


def _requires_ssl(url: str) -> bool:
    params = parse_qs(urlparse(url).query)
    return params.get('sslmode', [''])[0] in ('require', 'verify-ca', 'verify-full')


def record_params(record: BenchmarkRecord) -> dict:
    """Bind parameters for one INSERT row."""
    data = record.model_dump(mode='json')
    return {column: data.get(column) for column in _INSERT_COLUMNS}


class PostgresBenchmarkSink:
    """
    Usage:
        sink = PostgresBenchmarkSink(settings.BENCHMARK_DATABASE_URL)
        await sink.write(records)
        await sink.close()

    The engine is created on first write.
    """

    def __init__(self, database_url: str, engine: AsyncEngine | None = None):
        if not database_url and engine is None:
            raise ValueError('database_url is required')
        self._database_url = database_url
        self._engine = engine

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            connect_args: dict = {'prepared_statement_cache_size': 0}
            if _requires_ssl(self._database_url):
                connect_args['ssl'] = 'require'
            self._engine = create_async_engine(
                _asyncpg_url(self._database_url),
                pool_size=2,
                max_overflow=2,
                pool_pre_ping=True,
                connect_args=connect_args,
            )
            logger.info('benchmark_sink.connected')
        return self._engine

    async def write(self, records: list[BenchmarkRecord]) -> None:
        if not records:
            return
        try:
            async with self.engine.begin() as conn:
                await conn.execute(INSERT_BENCHMARK_SQL, [record_params(r) for r in records])
        except Exception as e:
            raise BenchmarkWriteError(
                'Failed to insert benchmark records',
                {'records': len(records), 'error': str(e)},
            ) from e
        logger.debug('benchmark_sink.inserted', records=len(records))

    async def close(self) -> None:
        """Dispose of the engine and connection pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info('benchmark_sink.closed')
