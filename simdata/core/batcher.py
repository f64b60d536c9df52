from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from simdata.core.engine import EventOrigin
from simdata.schemas.events import MetricEvent, iso_ms
from simdata.utils.exceptions import SimDataException, SubmissionError

logger = logging.getLogger(__name__)

_STOP = object()


@dataclass
class SubmissionStats:
    by_owner: Counter = field(default_factory=Counter)
    by_kind: Counter = field(default_factory=Counter)

    @property
    def total(self) -> int:
        return sum(self.by_owner.values())


class SubmissionBatcher:
    """Relays events to the collection service.

    One queue and one worker per owner: an owner's events are sent one at a
    time in submission order, while different owners are sent concurrently
    under a shared ``max_in_flight`` window. The first failure stops all
    further sends and is re-raised from the next ``submit`` or ``flush``.
    """

    def __init__(
        self,
        *,
        send: Callable[[MetricEvent], Awaitable[None]],
        max_in_flight: int = 8,
        queue_size: int = 1000,
    ) -> None:
        if max_in_flight < 1:
            raise ValueError(f"max_in_flight must be >= 1, got {max_in_flight}")
        self._send = send
        self._window = asyncio.Semaphore(max_in_flight)
        self._queue_size = int(queue_size)
        self._queues: dict[str, asyncio.Queue] = {}
        self._workers: dict[str, asyncio.Task] = {}
        self._failure: Optional[SubmissionError] = None
        self.stats = SubmissionStats()

    @property
    def failure(self) -> Optional[SubmissionError]:
        return self._failure

    def _raise_if_failed(self) -> None:
        if self._failure is not None:
            raise self._failure

    def _queue_for(self, owner_id: str) -> asyncio.Queue:
        queue = self._queues.get(owner_id)
        if queue is None:
            queue = asyncio.Queue(maxsize=self._queue_size)
            self._queues[owner_id] = queue
            self._workers[owner_id] = asyncio.create_task(
                self._worker(owner_id, queue), name=f"simdata-submit-{owner_id}"
            )
        return queue

    async def submit(self, event: MetricEvent, origin: Optional[EventOrigin] = None) -> None:
        self._raise_if_failed()
        await self._queue_for(event.owner_id).put((event, origin))

    async def flush(self) -> None:
        """Wait until every queued event has been acknowledged (or the run failed)."""
        await asyncio.gather(*(q.join() for q in list(self._queues.values())))
        self._raise_if_failed()

    async def aclose(self) -> None:
        for queue in self._queues.values():
            await queue.put(_STOP)
        if self._workers:
            await asyncio.gather(*self._workers.values(), return_exceptions=True)
        self._queues.clear()
        self._workers.clear()

    async def _worker(self, owner_id: str, queue: asyncio.Queue) -> None:
        while True:
            item = await queue.get()
            try:
                if item is _STOP:
                    return
                if self._failure is not None:
                    # Drain without sending; the run is already lost.
                    continue
                event, origin = item
                try:
                    async with self._window:
                        if self._failure is not None:
                            continue
                        await self._send(event)
                except Exception as exc:
                    self._record_failure(exc, event, origin)
                    continue
                self.stats.by_owner[owner_id] += 1
                self.stats.by_kind[event.kind.value] += 1
            finally:
                queue.task_done()

    def _record_failure(self, exc: Exception, event: MetricEvent, origin: Optional[EventOrigin]) -> None:
        if self._failure is not None:
            return

        details: dict = {
            "owner_id": event.owner_id,
            "kind": event.kind.value,
            "timestamp": iso_ms(event.timestamp),
        }
        if origin is not None:
            details.update(origin.as_dict())
        if isinstance(exc, SimDataException):
            details["cause"] = {"code": exc.code, "message": exc.message, **exc.details}
        else:
            details["cause"] = {"message": str(exc)}

        where = (
            f" (scenario={origin.scenario} day={origin.day} date={origin.date} metric={origin.metric})"
            if origin is not None
            else ""
        )
        failure = SubmissionError(f"Submission failed{where}: {exc}", details=details)
        failure.__cause__ = exc
        self._failure = failure
        logger.error(
            "simdata.batcher.submission_failed owner=%s kind=%s origin=%s error=%s",
            event.owner_id,
            event.kind.value,
            origin.as_dict() if origin is not None else None,
            exc,
        )
