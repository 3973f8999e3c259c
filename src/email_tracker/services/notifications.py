"""First-open notifications.

The Event Recorder hands sessions to a ``NotificationTrigger`` which fans
them out to registered ``NotificationSink`` observers. Dispatch is fire and
forget: it is scheduled on the running event loop when there is one and sink
failures are logged, never raised back into the recorder.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional

from ..domain.models import TrackingSession
from ..utils.logging_config import get_logger, log_exception

logger = get_logger("notifications")


@dataclass(frozen=True)
class Notification:
    """A user-visible notification."""

    notification_id: str
    title: str
    message: str
    session_id: str


def build_open_notification(session: TrackingSession) -> Notification:
    """Build the "email opened" notification for ``session``."""
    subject = session.email_subject or "(no subject)"
    return Notification(
        notification_id=f"open-{session.id}",
        title="Email Opened!",
        message=f'Your email "{subject}" was just opened by one of the recipients.',
        session_id=session.id,
    )


class NotificationSink(ABC):
    """Observer receiving first-open notifications."""

    @abstractmethod
    def notify(self, notification: Notification) -> None:
        """Deliver a notification."""
        pass


class LoggingNotificationSink(NotificationSink):
    """Writes notifications to the notifications log."""

    def notify(self, notification: Notification) -> None:
        logger.info(f"{notification.title} {notification.message}")


class CallbackNotificationSink(NotificationSink):
    """Adapts a plain callable to the sink interface."""

    def __init__(self, callback: Callable[[Notification], None]):
        self._callback = callback

    def notify(self, notification: Notification) -> None:
        self._callback(notification)


class NotificationTrigger:
    """Fans first-open notifications out to sinks; can be globally disabled."""

    def __init__(
        self,
        sinks: Optional[List[NotificationSink]] = None,
        enabled: bool = True,
    ):
        self._sinks: List[NotificationSink] = list(sinks or [])
        self.enabled = enabled

    def add_sink(self, sink: NotificationSink) -> None:
        self._sinks.append(sink)

    def remove_sink(self, sink: NotificationSink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    def notify_first_open(self, session: TrackingSession) -> None:
        """Schedule delivery of the first-open notification for ``session``."""
        if not self.enabled:
            logger.debug(f"Notifications disabled, suppressing first open of {session.id}")
            return

        notification = build_open_notification(session)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._dispatch(notification)
            return
        loop.call_soon(self._dispatch, notification)

    def _dispatch(self, notification: Notification) -> None:
        for sink in list(self._sinks):
            try:
                sink.notify(notification)
            except Exception as e:
                log_exception(
                    "notifications",
                    e,
                    {"session_id": notification.session_id, "sink": type(sink).__name__},
                )
