"""Alert Publisher: hand a summary (or a single alert) to the notification channel."""

from __future__ import annotations

import logging

from src.contracts.alert import SUMMARY_SUBJECT, Alert, AlertSummary
from src.contracts.errors import PublishError
from src.stores.base import NotificationChannel

log = logging.getLogger(__name__)


class AlertPublisher:
    def __init__(self, channel: NotificationChannel, sample_size: int = 5) -> None:
        self.channel = channel
        self.sample_size = sample_size

    def publish(self, item: AlertSummary | Alert) -> str:
        """Deliver *item*; return the channel acknowledgment id.

        Raises:
            PublishError: The channel failed, timed out or did not acknowledge.
        """
        if isinstance(item, AlertSummary):
            if not item.alerts:
                raise ValueError("refusing to publish an empty summary")
            subject, message, count = item.subject, item.message, item.count
        else:
            subject, message, count = SUMMARY_SUBJECT, item.message, 1

        ack = self.channel.publish(subject, message)
        if not ack:
            raise PublishError(f"{type(self.channel).__name__} returned no acknowledgment")
        log.info("Published '%s' covering %d alerts (ack=%s)", subject, count, ack)
        return ack
