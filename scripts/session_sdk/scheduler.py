"""
Upload scheduler.

Owns the periodic upload timer. Every uploadInterval the buffer is drained
into a Batch that is handed to the DeliveryClient as its own task, so new
events keep accumulating while earlier batches are still being retried.
"""

import asyncio
import sys
from typing import Callable, Optional, Set, Tuple

from .buffer import EventBuffer
from .delivery import DeliveryClient, DeliveryResult
from .schema import Batch, Event


class UploadScheduler:
    """Periodic drain-and-send loop with an on-demand flush."""

    def __init__(
        self,
        buffer: EventBuffer,
        delivery: DeliveryClient,
        batch_factory: Callable[[Tuple[Event, ...]], Batch],
        interval: float = 30000,
        debug: bool = False
    ):
        """
        Initialize scheduler.

        Args:
            buffer: Buffer to drain
            delivery: Client that sends each batch
            batch_factory: Builds a Batch from drained events, attaching
                the current session state
            interval: Milliseconds between ticks
            debug: Print tick diagnostics to stderr
        """
        self.buffer = buffer
        self.delivery = delivery
        self.batch_factory = batch_factory
        self.interval = interval
        self.debug = debug
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def in_flight(self) -> int:
        """Number of batches whose delivery has not finished."""
        return len(self._in_flight)

    def start(self):
        """Start the timer. Must be called from a running event loop."""
        if self.running:
            return
        self._timer = asyncio.get_running_loop().create_task(self._run())

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval / 1000)
            try:
                self.tick()
            except Exception as e:
                print(f"Warning: Upload tick failed: {e}", file=sys.stderr)

    def tick(self) -> Optional[asyncio.Task]:
        """
        Drain the buffer and start delivering the batch.

        Returns:
            Delivery task, or None if the buffer was empty
        """
        batch = self.buffer.drain_with(self.batch_factory)
        if batch is None:
            return None

        if self.debug:
            print(f"[session-sdk] Flushing batch of {len(batch)} event(s)", file=sys.stderr)

        task = asyncio.get_running_loop().create_task(self.delivery.send(batch))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def force_flush(self) -> Optional[DeliveryResult]:
        """
        Drain and send immediately, waiting for the delivery outcome.

        Returns:
            DeliveryResult, or None if there was nothing to send
        """
        task = self.tick()
        if task is None:
            return None
        return await task

    async def stop(self) -> Optional[DeliveryResult]:
        """
        Cancel the timer, flush what is buffered and wait for deliveries.

        Waits at most for the retry budget of the batches in flight.

        Returns:
            Result of the final flush, or None if the buffer was empty
        """
        await self._cancel_timer()
        result = await self.force_flush()
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
        return result

    def cancel(self):
        """Cancel the timer and abandon every delivery in flight."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for task in list(self._in_flight):
            task.cancel()
        self._in_flight.clear()

    async def _cancel_timer(self):
        timer, self._timer = self._timer, None
        if timer is None:
            return
        timer.cancel()
        try:
            await timer
        except asyncio.CancelledError:
            pass
