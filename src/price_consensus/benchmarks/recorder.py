"""
Benchmark recording.

The recorder scores a finished run's votes and hands the records to a sink.
Recording is best-effort: it is bounded by its own deadline and a failing
sink is logged and swallowed, so benchmarks can never alter a result.
"""

import asyncio
from typing import Protocol, runtime_checkable

from ..logging import get_logger
from ..models.vote import ModelVote
from .scorer import BenchmarkContext, BenchmarkRecord, accuracy_summary, score_votes

logger = get_logger(__name__)


@runtime_checkable
class BenchmarkSink(Protocol):
    async def write(self, records: list[BenchmarkRecord]) -> None: ...

    async def close(self) -> None: ...


class LoggingBenchmarkSink:
    """Emits one structured log event per record."""

    def __init__(self, event: str = 'benchmark.record'):
        self.event = event

    async def write(self, records: list[BenchmarkRecord]) -> None:
        for record in records:
            logger.info(
                self.event,
                analysis_id=record.analysis_id,
                stage=record.stage,
                provider=record.provider_id,
                success=record.success,
                price=record.provider_price,
                ground_truth=record.ground_truth_price,
                error_percent=record.price_error_percent,
                direction=record.price_direction,
                decision_correct=record.decision_correct,
            )

    async def close(self) -> None:
        return None


class BenchmarkRecorder:
    """
    Usage:
        recorder = BenchmarkRecorder(LoggingBenchmarkSink(), timeout=2.0)
        ok = await recorder.record({'reason': votes}, context)
    """

    def __init__(self, sink: BenchmarkSink, timeout: float = 2.0):
        self.sink = sink
        self.timeout = timeout

    async def record(
        self,
        stage_votes: dict[str, list[ModelVote]],
        context: BenchmarkContext,
        timeout: float | None = None,
    ) -> bool:
        """
        Score and write every vote.

        Returns:
            True if the sink accepted the records, False on any failure.
            Never raises.
        """
        deadline = self.timeout if timeout is None else timeout
        try:
            records = score_votes(
                {stage: list(votes) for stage, votes in stage_votes.items()}, context
            )
            if not records:
                return True
            await asyncio.wait_for(self.sink.write(records), timeout=deadline)
        except asyncio.TimeoutError:
            logger.warning(
                'benchmark.write_failed',
                analysis_id=context.analysis_id,
                error='timeout',
                timeout_s=deadline,
            )
            return False
        except Exception as e:
            logger.warning(
                'benchmark.write_failed',
                analysis_id=context.analysis_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        logger.info(
            'benchmark.recorded',
            analysis_id=context.analysis_id,
            **accuracy_summary(records),
        )
        return True

    async def close(self) -> None:
        await self.sink.close()
