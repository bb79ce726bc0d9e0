"""Environment-style configuration with an optional YAML overlay.

Precedence: defaults < YAML file < environment variables.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from datetime import timedelta
from pathlib import Path
from typing import Any

from src.shared.config_loader import dig, load_yaml

log = logging.getLogger(__name__)


@dataclass(slots=True)
class Settings:
    # ── searchable / indicator store ──
    opensearch_endpoint: str = ""
    opensearch_username: str = ""
    opensearch_password: str = ""
    log_index: str = "logs"
    ioc_index: str = "ioc"

    # ── threat feed ──
    intel_api_key: str = ""
    intel_feed_url: str = "https://otx.alienvault.com"
    intel_page_size: int = 100
    intel_max_pages: int = 10

    # ── schedule ──
    intel_period_sec: float = 3600.0
    correlation_period_sec: float = 300.0

    # ── correlation ──
    window_size_sec: float = 300.0
    overlap_sec: float = 300.0
    match_policy: str = "flag"
    field_types: dict[str, Any] = field(default_factory=dict)

    # ── dedup ──
    dedup_db_path: str = ""
    dedup_retention_sec: float = 86400.0
    dedup_lease_sec: float = 300.0

    # ── alerting ──
    sns_topic_arn: str = ""
    alert_webhook_url: str = ""
    alert_sample_size: int = 5
    aws_region: str = ""

    # ── ingest ──
    ingest_max_records: int = 500

    # ── timeouts / logging ──
    request_timeout_sec: float = 10.0
    run_deadline_sec: float = 240.0
    log_level: str = "INFO"

    @property
    def window_size(self) -> timedelta:
        return timedelta(seconds=self.window_size_sec)

    @property
    def overlap(self) -> timedelta:
        return timedelta(seconds=self.overlap_sec)

    @property
    def dedup_retention(self) -> timedelta:
        return timedelta(seconds=self.dedup_retention_sec)

    def validate(self) -> None:
        """Reject settings that would break window continuity or dedup.

        Raises:
            ValueError: On the first violated constraint.
        """
        if self.window_size_sec <= 0 or self.overlap_sec < 0:
            raise ValueError("window_size_sec must be > 0 and overlap_sec >= 0")
        if self.window_size_sec + self.overlap_sec < self.correlation_period_sec:
            raise ValueError(
                "window_size_sec + overlap_sec must cover correlation_period_sec, "
                "otherwise consecutive windows skip time"
            )
        if self.dedup_retention_sec < self.window_size_sec + self.overlap_sec:
            raise ValueError("dedup_retention_sec must be >= window_size_sec + overlap_sec")
        if self.run_deadline_sec <= 0 or self.request_timeout_sec <= 0:
            raise ValueError("timeouts must be positive")
        if self.dedup_lease_sec < self.run_deadline_sec:
            # a claim must not lapse while its run may still publish
            raise ValueError("dedup_lease_sec must be >= run_deadline_sec")
        if self.overlap_sec < self.correlation_period_sec:
            log.warning(
                "overlap_sec (%.0f) is shorter than one correlation period (%.0f); "
                "late-indexed records may be missed",
                self.overlap_sec, self.correlation_period_sec,
            )

    @property
    def opensearch_auth(self) -> tuple[str, str] | None:
        if self.opensearch_username:
            return (self.opensearch_username, self.opensearch_password)
        return None


# attr → (env var, yaml path)
_SOURCES: dict[str, tuple[str, str]] = {
    "opensearch_endpoint": ("OPENSEARCH_ENDPOINT", "opensearch.endpoint"),
    "opensearch_username": ("OPENSEARCH_USERNAME", "opensearch.username"),
    "opensearch_password": ("OPENSEARCH_PASSWORD", "opensearch.password"),
    "log_index": ("LOG_INDEX", "opensearch.log_index"),
    "ioc_index": ("IOC_INDEX", "opensearch.ioc_index"),
    "intel_api_key": ("ALIENVAULT_API_KEY", "intel.api_key"),
    "intel_feed_url": ("INTEL_FEED_URL", "intel.feed_url"),
    "intel_page_size": ("INTEL_PAGE_SIZE", "intel.page_size"),
    "intel_max_pages": ("INTEL_MAX_PAGES", "intel.max_pages"),
    "intel_period_sec": ("INTEL_PERIOD_SEC", "schedule.intel_period_sec"),
    "correlation_period_sec": ("CORRELATION_PERIOD_SEC", "schedule.correlation_period_sec"),
    "window_size_sec": ("WINDOW_SIZE_SEC", "correlation.window_size_sec"),
    "overlap_sec": ("OVERLAP_SEC", "correlation.overlap_sec"),
    "match_policy": ("MATCH_POLICY", "correlation.policy"),
    "dedup_db_path": ("DEDUP_DB_PATH", "dedup.path"),
    "dedup_retention_sec": ("DEDUP_RETENTION_SEC", "dedup.retention_sec"),
    "dedup_lease_sec": ("DEDUP_LEASE_SEC", "dedup.lease_sec"),
    "sns_topic_arn": ("SNS_TOPIC_ARN", "alerting.sns_topic_arn"),
    "alert_webhook_url": ("ALERT_WEBHOOK_URL", "alerting.webhook_url"),
    "alert_sample_size": ("ALERT_SAMPLE_SIZE", "alerting.sample_size"),
    "aws_region": ("AWS_REGION", "aws.region"),
    "ingest_max_records": ("INGEST_MAX_RECORDS", "ingest.max_records"),
    "request_timeout_sec": ("REQUEST_TIMEOUT_SEC", "timeouts.request_sec"),
    "run_deadline_sec": ("RUN_DEADLINE_SEC", "timeouts.run_deadline_sec"),
    "log_level": ("LOG_LEVEL", "logging.level"),
}


def _caster(default: Any) -> Callable[[Any], Any]:
    if isinstance(default, bool):
        return lambda v: str(v).strip().lower() in ("1", "true", "yes")
    if isinstance(default, int):
        return int
    if isinstance(default, float):
        return float
    return str


def load_settings(
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Build and validate Settings from defaults, a YAML file and the environment.

    Raises:
        ValueError: If a value cannot be converted or the result is invalid.
    """
    env = os.environ if environ is None else environ
    cfg: dict[str, Any] = load_yaml(config_path) if config_path else {}

    settings = Settings()
    for f in fields(Settings):
        if f.name not in _SOURCES:
            continue
        env_name, yaml_path = _SOURCES[f.name]
        raw = env.get(env_name)
        if raw is None or raw == "":
            raw = dig(cfg, yaml_path)
        if raw is None:
            continue
        cast = _caster(getattr(settings, f.name))
        try:
            setattr(settings, f.name, cast(raw))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"invalid value for {env_name} / {yaml_path}: {raw!r}") from exc

    field_types = dig(cfg, "correlation.field_types", {}) or {}
    if not isinstance(field_types, Mapping):
        raise ValueError("correlation.field_types must be a mapping of field to type(s)")
    settings.field_types = dict(field_types)
    settings.validate()
    log.debug("Settings loaded (config=%s)", config_path or "-")
    return settings
