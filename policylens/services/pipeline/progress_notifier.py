"""Progress notification for document pipeline runs.

Only the event contract lives here; delivery to clients is up to whoever
consumes the notifier.
"""

import asyncio
from typing import Optional, Protocol

from policylens.models.events import DocumentProcessedEvent, DocumentProgressEvent, PipelineEvent
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ProgressNotifier(Protocol):
    async def notify(self, event: PipelineEvent) -> None:
        ...


class LoggingProgressNotifier:
    """Default notifier: writes every event to the log."""

    async def notify(self, event: PipelineEvent) -> None:
        if isinstance(event, DocumentProgressEvent):
            LOGGER.info(
                f"Document {event.document_id}: {event.stage.value} ({event.progress_percent}%)"
                + (f" - {event.message}" if event.message else ""),
                extra={"tenant_id": str(event.tenant_id)}
            )
        elif isinstance(event, DocumentProcessedEvent):
            LOGGER.info(
                f"Document {event.document_id} processed: success={event.success}",
                extra={
                    "tenant_id": str(event.tenant_id),
                    "error": event.error,
                    "coverage_count": event.coverage_count,
                    "confidence": event.confidence,
                    "needs_human_review": event.needs_human_review,
                }
            )


class QueueProgressNotifier:
    """In-process notifier backed by an asyncio.Queue.

    A consumer (e.g. an SSE endpoint) reads events with `get()` until it sees
    the terminal DocumentProcessedEvent.
    """

    def __init__(self, maxsize: int = 0, also_log: bool = True):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._logger: Optional[LoggingProgressNotifier] = LoggingProgressNotifier() if also_log else None

    async def notify(self, event: PipelineEvent) -> None:
        if self._logger:
            await self._logger.notify(event)
        await self.queue.put(event)

    async def get(self) -> PipelineEvent:
        return await self.queue.get()

    def drain(self) -> list:
        """Return every queued event without waiting."""
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events
