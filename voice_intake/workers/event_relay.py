"""
Session Event Relay.

Voice SDKs deliver tool-call events through callbacks. The relay queues
them and a single consumer task feeds them to ``ExtractionSession.ingest``
one at a time, pushing each resulting snapshot to the UI callback. Each
event gets a ``trace_id`` that is bound to the log context while it is
handled.

``submit`` must be called on the event loop thread. Callbacks that fire
on an SDK thread use ``submit_threadsafe``, which hands the event over
to the loop captured by ``start()``.

Usage:
    relay = SessionEventRelay(session, on_snapshot=render)
    await relay.start()
    relay.submit("first_name", "john")              # on the loop
    relay.submit_threadsafe("last_name", "smith")   # from an SDK thread
    await relay.stop()                              # drains, then stops
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, NamedTuple, Optional, Union

from voice_intake.config import get_settings
from voice_intake.logging_config import event_trace, generate_trace_id, get_logger
from voice_intake.schemas.session import SessionSnapshot
from voice_intake.services.extraction_session import ExtractionSession

logger = get_logger(__name__)

SnapshotCallback = Callable[[SessionSnapshot], Union[None, Awaitable[None]]]


class ToolCallEvent(NamedTuple):
    raw_key: str
    raw_value: Any
    confidence: Optional[float] = None
    trace_id: str = ""


class SessionEventRelay:
    """
    Serializes tool-call events into one session.

    ``submit`` never blocks the producer; when the queue is full the
    event is dropped and logged. It is not thread-safe: producers on
    other threads go through ``submit_threadsafe``.
    """

    def __init__(
        self,
        session: ExtractionSession,
        on_snapshot: SnapshotCallback | None = None,
        maxsize: int | None = None,
    ) -> None:
        self._session = session
        self._on_snapshot = on_snapshot
        self._queue: asyncio.Queue[ToolCallEvent] = asyncio.Queue(
            maxsize=get_settings().event_queue_maxsize if maxsize is None else maxsize
        )
        self._task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._running = False
        self.processed = 0
        self.dropped = 0

    @property
    def is_running(self) -> bool:
        return self._running

    def submit(self, raw_key: str, raw_value: Any, confidence: float | None = None) -> bool:
        """Queue one event. Returns False when it had to be dropped."""
        try:
            self._queue.put_nowait(ToolCallEvent(raw_key, raw_value, confidence, generate_trace_id()))
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("relay_queue_full", raw_key=raw_key, maxsize=self._queue.maxsize)
            return False
        return True

    def submit_threadsafe(self, raw_key: str, raw_value: Any, confidence: float | None = None) -> bool:
        """
        Queue one event from a thread other than the loop's.

        The event is handed to the loop and queued there, so a full queue
        is only counted in ``dropped``. Returns False when the relay is
        not running or its loop is closed.
        """
        loop = self._loop
        if loop is None or not self._running or loop.is_closed():
            logger.warning("relay_not_started", raw_key=raw_key)
            return False
        loop.call_soon_threadsafe(self.submit, raw_key, raw_value, confidence)
        return True

    async def start(self) -> None:
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self._running = True
        self._task = asyncio.create_task(self._consume())
        logger.info("event_relay_started", session_id=self._session.session_id)

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        """Drain what is queued, then stop the consumer."""
        if not self._running:
            return
        await self._queue.join()
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("event_relay_stopped", processed=self.processed, dropped=self.dropped)

    async def _consume(self) -> None:
        while self._running:
            event = await self._queue.get()
            with event_trace(event.trace_id):
                try:
                    snapshot = self._session.ingest(event.raw_key, event.raw_value, confidence=event.confidence)
                    self.processed += 1
                    if snapshot is not None and self._on_snapshot is not None:
                        result = self._on_snapshot(snapshot)
                        if asyncio.iscoroutine(result):
                            await result
                except Exception as e:
                    logger.error("event_relay_error", raw_key=event.raw_key, error=str(e))
                finally:
                    self._queue.task_done()
