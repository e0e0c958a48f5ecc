"""Fire-and-forget event dispatch to notification sinks."""

from __future__ import annotations

import asyncio
import logging

from conveyor.models.events import PipelineEvent, PipelineFinished
from conveyor.notify.sinks import NotificationSink

logger = logging.getLogger(__name__)


class NotifierDispatcher:
    """Delivers pipeline events to every registered sink.

    Each delivery runs as a background task. A failing sink is logged and
    never affects the pipeline. PipelineFinished is delivered at most once
    per run, so one dispatcher can serve many runs.
    """

    def __init__(self, sinks: list[NotificationSink] | None = None) -> None:
        self._sinks: list[NotificationSink] = list(sinks or [])
        self._pending: set[asyncio.Task] = set()
        self._finished_runs: set[tuple[str, str]] = set()

    def add_sink(self, sink: NotificationSink) -> None:
        self._sinks.append(sink)

    @property
    def sinks(self) -> list[NotificationSink]:
        return list(self._sinks)

    def notify(self, event: PipelineEvent) -> None:
        """Schedule delivery of an event to all sinks without waiting."""
        if isinstance(event, PipelineFinished):
            run = (event.pipeline, event.run_id)
            if run in self._finished_runs:
                logger.warning(f"PipelineFinished already delivered for {event.pipeline}; ignoring")
                return
            self._finished_runs.add(run)

        for sink in self._sinks:
            task = asyncio.create_task(self._deliver(sink, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, sink: NotificationSink, event: PipelineEvent) -> None:
        try:
            await sink.send(event)
        except Exception:
            logger.exception(f"Notification to {sink.name} failed ({event.type})")

    async def drain(self) -> None:
        """Wait for every in-flight delivery to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
