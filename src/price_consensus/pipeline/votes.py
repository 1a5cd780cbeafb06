"""
Append-only vote collection for a single stage.

Each completing provider call writes exactly one vote. Calls still in
flight can be tracked so that, when the stage deadline passes (or the
pipeline finishes first), they are cancelled, recorded as abandoned, and
anything they would have reported afterwards is discarded.
"""

import asyncio
import time

from ..logging import get_logger
from ..models.vote import ModelVote

logger = get_logger(__name__)


class VoteCollector:
    """
    Usage:
        collector = VoteCollector('identify')
        collector.track(task, provider.name)
        collector.add(vote)          # from inside the task
        collector.expire_at(deadline)
        ...
        await collector.close()
        votes = collector.votes
    """

    def __init__(self, stage: str):
        self.stage = stage
        self._votes: list[ModelVote] = []
        self._closed = False
        self._pending: dict[asyncio.Task, tuple[str, float]] = {}
        self._expiry: asyncio.Task | None = None

    @property
    def votes(self) -> list[ModelVote]:
        """Snapshot of the votes collected so far."""
        return list(self._votes)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return sum(1 for task in self._pending if not task.done())

    def add(self, vote: ModelVote) -> bool:
        """Append a vote; returns False (and drops it) once the collector is closed."""
        if self._closed:
            logger.debug(
                'votes.discarded_after_close',
                stage=self.stage,
                provider=vote.provider_name,
            )
            return False
        self._votes.append(vote)
        return True

    def track(self, task: asyncio.Task, provider_name: str) -> None:
        """Register an in-flight call so close() can abandon it."""
        self._pending[task] = (provider_name, time.perf_counter())
        task.add_done_callback(lambda t: self._pending.pop(t, None))

    def expire_at(self, deadline: float) -> None:
        """Close automatically at ``deadline`` (event loop time)."""
        loop = asyncio.get_running_loop()
        delay = max(deadline - loop.time(), 0.0)
        self._expiry = asyncio.create_task(self._expire_after(delay))

    async def _expire_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.close(reason='stage deadline')

    async def close(self, reason: str = 'stage closed') -> None:
        """
        Abandon in-flight calls and freeze the collection.

        Each abandoned call is recorded as a failed vote with the elapsed
        time it was given.
        """
        if self._closed:
            return

        abandoned: list[asyncio.Task] = []
        for task, (provider_name, started) in list(self._pending.items()):
            if task.done():
                continue
            task.cancel()
            abandoned.append(task)
            elapsed = int((time.perf_counter() - started) * 1000)
            self._votes.append(ModelVote.failed(provider_name, f'abandoned: {reason}', elapsed))
        self._closed = True

        expiry, self._expiry = self._expiry, None
        if expiry is not None and expiry is not asyncio.current_task():
            expiry.cancel()

        if abandoned:
            logger.info('votes.abandoned', stage=self.stage, count=len(abandoned), reason=reason)
            await asyncio.gather(*abandoned, return_exceptions=True)
