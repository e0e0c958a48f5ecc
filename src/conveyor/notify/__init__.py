"""Pipeline event notification."""

from conveyor.notify.dispatcher import NotifierDispatcher
from conveyor.notify.sinks import LogSink, NotificationSink, WebhookSink, post_webhook

__all__ = ["NotifierDispatcher", "NotificationSink", "LogSink", "WebhookSink", "post_webhook"]
