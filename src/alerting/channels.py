"""Notification channels.

Each channel applies a bounded timeout and raises ``PublishError`` on any
delivery failure, so the correlation run reports an alert-delivery gap
instead of a detection gap.
"""

from __future__ import annotations

import logging
from typing import Any

import boto3
import httpx
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from src.contracts.errors import PublishError
from src.stores.base import NotificationChannel

log = logging.getLogger(__name__)

# SNS rejects subjects longer than 100 characters
_SNS_SUBJECT_MAX = 100


class SnsChannel(NotificationChannel):
    def __init__(
        self,
        topic_arn: str,
        client: Any = None,
        region: str | None = None,
        timeout_sec: float = 10.0,
    ) -> None:
        self.topic_arn = topic_arn
        self._sns = client or boto3.client(
            "sns",
            region_name=region,
            config=Config(
                connect_timeout=timeout_sec,
                read_timeout=timeout_sec,
                retries={"max_attempts": 2},
            ),
        )

    def publish(self, subject: str, message: str) -> str:
        try:
            resp = self._sns.publish(
                TopicArn=self.topic_arn,
                Subject=subject[:_SNS_SUBJECT_MAX],
                Message=message,
            )
        except (ClientError, BotoCoreError) as exc:
            raise PublishError(f"SNS publish to {self.topic_arn} failed: {exc}") from exc
        return resp.get("MessageId", "")


class WebhookChannel(NotificationChannel):
    """POST ``{"subject", "message"}`` as JSON to a webhook URL."""

    def __init__(
        self,
        url: str,
        timeout_sec: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.url = url
        self._http = httpx.Client(timeout=httpx.Timeout(timeout_sec), transport=transport)

    def publish(self, subject: str, message: str) -> str:
        try:
            resp = self._http.post(self.url, json={"subject": subject, "message": message})
        except httpx.TimeoutException as exc:
            raise PublishError(f"webhook timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise PublishError(f"webhook request failed: {exc}") from exc
        if resp.status_code >= 300:
            raise PublishError(f"webhook returned HTTP {resp.status_code}")
        return resp.headers.get("x-request-id") or f"http-{resp.status_code}"


class LogChannel(NotificationChannel):
    """Writes notifications to the log; the local-run default."""

    def __init__(self) -> None:
        self._sent = 0

    def publish(self, subject: str, message: str) -> str:
        self._sent += 1
        log.warning("%s\n%s", subject, message)
        return f"log-{self._sent}"
