"""Webhook notification step."""

import logging

import httpx

from conveyor.errors import StepExecutionError
from conveyor.models.pipeline import StepKind
from conveyor.models.results import StepResult, utcnow
from conveyor.notify.sinks import post_webhook
from conveyor.pipeline.base import StepExecutor
from conveyor.pipeline.context import ExecutionContext
from conveyor.pipeline.resolver import ResolvedConfig
from conveyor.tools.adapter import CancelToken

logger = logging.getLogger(__name__)


class NotifyStep(StepExecutor):
    """Posts a message to a chat webhook as part of the pipeline.

    Unlike the notifier dispatcher, a failed delivery here fails the step.
    """

    def __init__(
        self,
        default_webhook_url: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._default_webhook_url = default_webhook_url
        self._timeout = timeout
        self._client = client

    @property
    def kind(self) -> StepKind:
        return StepKind.NOTIFY

    @property
    def description(self) -> str:
        return "Post a message to a webhook"

    async def execute(
        self,
        config: ResolvedConfig,
        context: ExecutionContext,
        cancel_token: CancelToken,
    ) -> StepResult:
        url = config["webhookUrl"] or self._default_webhook_url
        if not url:
            raise StepExecutionError("no webhookUrl configured and CONVEYOR_WEBHOOK_URL is unset")
        if cancel_token.cancelled:
            return StepResult.failure(f"not sent: {cancel_token.reason}")

        payload = {
            "stage": context.current_stage,
            "status": config["status"],
            "message": config["message"],
            "timestamp": utcnow().isoformat(),
        }
        try:
            await post_webhook(url, payload, timeout=self._timeout, client=self._client)
        except httpx.HTTPError as e:
            raise StepExecutionError(f"webhook delivery failed: {e}") from e

        logger.info(f"Notification sent to {httpx.URL(url).host}")
        return StepResult.success(outputs={"delivered": True})
