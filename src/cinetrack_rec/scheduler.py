"""
Batch pacing and cooperative cancellation for catalog calls.

TMDB tolerates short bursts but throttles sustained traffic, so metadata
fetches go out in small concurrent batches separated by a fixed pause.
Pacing carries no correctness meaning; it only keeps us under the limit.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

from .config import HYDRATION_BATCH_SIZE, HYDRATION_BATCH_DELAY
from .utils import chunked

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')


class OperationCancelled(Exception):
    """Raised inside the pipeline once its cancellation token fires."""


class CancellationToken:
    """
    Lets a caller abandon an in-flight recommendation request.

    The token is checked before every catalog call and between batches;
    pacing sleeps wake up early when it fires.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self.reason or "operation cancelled")

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancelled first."""
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()


def ensure_active(token: CancellationToken | None) -> None:
    """Raise OperationCancelled if ``token`` has fired; None means never."""
    if token is not None:
        token.raise_if_cancelled()


class BatchScheduler:
    """Runs async work over items in fixed-size batches with a pause between them."""

    def __init__(self, batch_size: int = HYDRATION_BATCH_SIZE, delay: float = HYDRATION_BATCH_DELAY):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        if delay < 0:
            raise ValueError("delay must be non-negative")
        self.batch_size = batch_size
        self.delay = delay

    async def run(
        self,
        items: Sequence[T],
        worker: Callable[[T], Awaitable[R]],
        token: CancellationToken | None = None,
        on_batch_done: Callable[[int, int], None] | None = None,
    ) -> list[R | BaseException]:
        """
        Apply ``worker`` to every item and return results in item order.

        Items within a batch run concurrently. A failing worker does not stop
        its batch: its exception object takes the result slot, so callers
        decide how to log and skip it. Cancellation is not captured.
        """
        results: list[R | BaseException] = []
        total = len(items)
        batches = list(chunked(list(items), self.batch_size))

        for index, batch in enumerate(batches):
            ensure_active(token)
            batch_results = await asyncio.gather(
                *(worker(item) for item in batch), return_exceptions=True
            )
            for result in batch_results:
                if isinstance(result, (OperationCancelled, asyncio.CancelledError)):
                    raise result
            results.extend(batch_results)

            if on_batch_done:
                on_batch_done(len(results), total)

            if index < len(batches) - 1 and self.delay > 0:
                logger.debug(f"Batch {index + 1}/{len(batches)} done, pausing {self.delay:.2f}s")
                if token is not None:
                    await token.sleep(self.delay)
                else:
                    await asyncio.sleep(self.delay)

        return results
