"""Notification sinks."""

import logging
from typing import Any, Protocol

import httpx

from conveyor.models.events import PipelineEvent

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    """Destination for pipeline events."""

    @property
    def name(self) -> str:
        ...

    async def send(self, event: PipelineEvent) -> None:
        """Deliver one event. Exceptions are handled by the dispatcher."""
        ...


async def post_webhook(
    url: str,
    payload: dict[str, Any],
    timeout: float = 10.0,
    client: httpx.AsyncClient | None = None,
) -> None:
    """POST a JSON payload to a webhook URL.

    Raises:
        httpx.HTTPError: On connection failure or a non-2xx response
    """
    if client is not None:
        response = await client.post(url, json=payload, timeout=timeout)
        response.raise_for_status()
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        response = await owned.post(url, json=payload)
        response.raise_for_status()


class WebhookSink:
    """Posts ``{stage, status, message, timestamp}`` to a webhook URL."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._client = client

    @property
    def name(self) -> str:
        return f"webhook:{httpx.URL(self._url).host}"

    async def send(self, event: PipelineEvent) -> None:
        await post_webhook(self._url, event.payload(), timeout=self._timeout, client=self._client)


class LogSink:
    """Writes events to the log."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    @property
    def name(self) -> str:
        return "log"

    async def send(self, event: PipelineEvent) -> None:
        payload = event.payload()
        logger.log(self._level, f"[{payload['status']}] {payload['message']}")
