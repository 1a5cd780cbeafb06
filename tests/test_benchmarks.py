"""
Tests for benchmark scoring, the recorder and the Postgres sink.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from price_consensus.benchmarks import (
    BenchmarkContext,
    BenchmarkRecorder,
    LoggingBenchmarkSink,
    PostgresBenchmarkSink,
    accuracy_summary,
    score_vote,
    score_votes,
)
from price_consensus.benchmarks.postgres_sink import (
    _INSERT_COLUMNS,
    _asyncpg_url,
    _requires_ssl,
    _sanitize_url,
    record_params,
)
from price_consensus.errors import BenchmarkWriteError
from price_consensus.models.vote import Decision, ModelVote


def _vote(name='anthropic', value=45.0, decision=Decision.BUY) -> ModelVote:
    return ModelVote(
        provider_name=name,
        decision=decision,
        estimated_value=value,
        confidence=0.8,
        weight=0.8,
        success=True,
        raw_response={'category': 'household'},
        item_name='Pyrex bowl',
    )


def _context(**overrides) -> BenchmarkContext:
    data = dict(
        analysis_id='an_1',
        item_name='Pyrex bowl',
        category='household',
        final_price=47.0,
        price_method='evidence_blend_70pct_market',
        market_median=50.0,
        market_listing_count=12,
        market_confidence=0.5,
    )
    data.update(overrides)
    return BenchmarkContext(**data)


class FailingSink:
    async def write(self, records):
        raise BenchmarkWriteError('connection refused')

    async def close(self):
        return None


class SlowSink:
    def __init__(self):
        self.cancelled = False

    async def write(self, records):
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise

    async def close(self):
        return None


class CollectingSink:
    def __init__(self):
        self.records = []

    async def write(self, records):
        self.records.extend(records)

    async def close(self):
        return None


class TestScoring:
    """Test per-vote scoring against ground truth."""

    def test_marketplace_ground_truth(self):
        record = score_vote(_vote(value=45.0), 'reason', _context())

        assert record.ground_truth_price == 50.0
        assert record.ground_truth_source == 'marketplace_median'
        assert record.price_error_dollars == 5.0
        assert record.price_error_percent == 10.0
        assert record.price_direction == 'accurate'
        assert record.decision_correct is True
        assert record.provider_category == 'household'

    def test_authority_preferred(self):
        context = _context(authority_price=80.0, authority_source='google_books')

        record = score_vote(_vote(value=100.0), 'reason', context)

        assert record.ground_truth_source == 'google_books'
        assert record.price_direction == 'over'
        assert record.price_error_percent == 25.0

    def test_under(self):
        record = score_vote(_vote(value=30.0), 'reason', _context())

        assert record.price_direction == 'under'

    def test_decision_against_threshold(self):
        context = _context(market_median=1.5)

        record = score_vote(_vote(value=1.5, decision=Decision.BUY), 'reason', context)

        assert record.decision_correct is False

    def test_failed_vote_recorded_without_accuracy(self):
        record = score_vote(ModelVote.failed('groq', 'timeout', 3000), 'identify', _context())

        assert record.success is False
        assert record.error == 'timeout'
        assert record.price_error_percent is None
        assert record.decision_correct is None

    def test_no_ground_truth(self):
        record = score_vote(_vote(), 'reason', _context(market_median=0.0))

        assert record.ground_truth_price is None
        assert record.price_error_percent is None

    def test_score_votes_every_stage(self):
        records = score_votes(
            {
                'identify': [_vote('openai')],
                'market_search': [ModelVote.failed('perplexity', 'timeout')],
                'reason': [_vote('anthropic'), _vote('groq', 60.0)],
                'validate': [],
            },
            _context(),
        )

        assert [r.stage for r in records] == ['identify', 'market_search', 'reason', 'reason']
        summary = accuracy_summary(records)
        assert summary['records'] == 4
        assert summary['scored'] == 3


class TestBenchmarkRecorder:
    """Test best-effort recording."""

    @pytest.mark.asyncio
    async def test_records_written(self):
        sink = CollectingSink()
        recorder = BenchmarkRecorder(sink)

        ok = await recorder.record({'reason': [_vote()]}, _context())

        assert ok is True
        assert len(sink.records) == 1

    @pytest.mark.asyncio
    async def test_failing_sink_returns_false(self):
        recorder = BenchmarkRecorder(FailingSink())

        ok = await recorder.record({'reason': [_vote()]}, _context())

        assert ok is False

    @pytest.mark.asyncio
    async def test_slow_sink_bounded_by_deadline(self):
        sink = SlowSink()
        recorder = BenchmarkRecorder(sink, timeout=0.05)

        ok = await recorder.record({'reason': [_vote()]}, _context())

        assert ok is False
        assert sink.cancelled is True

    @pytest.mark.asyncio
    async def test_nothing_to_record(self):
        recorder = BenchmarkRecorder(FailingSink())

        assert await recorder.record({'reason': []}, _context()) is True

    @pytest.mark.asyncio
    async def test_logging_sink(self):
        ok = await BenchmarkRecorder(LoggingBenchmarkSink()).record({'reason': [_vote()]}, _context())

        assert ok is True


class TestPostgresSink:
    """Test the Postgres sink without a database."""

    def test_sanitize_url(self):
        url = 'postgresql://u:p@host/db?sslmode=require&channel_binding=require&application_name=x'

        assert _sanitize_url(url) == 'postgresql://u:p@host/db?application_name=x'

    def test_asyncpg_url(self):
        assert _asyncpg_url('postgres://u@h/db') == 'postgresql+asyncpg://u@h/db'
        assert _asyncpg_url('postgresql://u@h/db?sslmode=require') == 'postgresql+asyncpg://u@h/db'

    def test_requires_ssl(self):
        assert _requires_ssl('postgresql://u@h/db?sslmode=require') is True
        assert _requires_ssl('postgresql://u@h/db') is False

    def test_record_params_cover_every_column(self):
        record = score_vote(_vote(), 'reason', _context())

        params = record_params(record)

        assert tuple(params) == _INSERT_COLUMNS
        assert params['provider_decision'] == 'BUY'
        assert params['stage'] == 'reason'

    def test_requires_url(self):
        with pytest.raises(ValueError):
            PostgresBenchmarkSink('')

    @pytest.mark.asyncio
    async def test_write_executes_one_batch(self):
        conn = AsyncMock()
        engine = MagicMock()
        engine.begin.return_value.__aenter__.return_value = conn
        sink = PostgresBenchmarkSink('', engine=engine)
        records = score_votes({'reason': [_vote(), _vote('groq')]}, _context())

        await sink.write(records)

        conn.execute.assert_awaited_once()
        params = conn.execute.await_args.args[1]
        assert [p['provider_id'] for p in params] == ['anthropic', 'groq']

    @pytest.mark.asyncio
    async def test_write_failure_wrapped(self):
        conn = AsyncMock()
        conn.execute.side_effect = OSError('connection reset')
        engine = MagicMock()
        engine.begin.return_value.__aenter__.return_value = conn
        sink = PostgresBenchmarkSink('', engine=engine)

        with pytest.raises(BenchmarkWriteError):
            await sink.write(score_votes({'reason': [_vote()]}, _context()))

    @pytest.mark.asyncio
    async def test_close_disposes_engine(self):
        engine = MagicMock()
        engine.dispose = AsyncMock()
        sink = PostgresBenchmarkSink('', engine=engine)

        await sink.close()

        engine.dispose.assert_awaited_once()
