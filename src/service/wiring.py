"""Build components from Settings.

Every collaborator is created here and passed in through constructors;
no module holds a shared client.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from src.alerting.channels import LogChannel, SnsChannel, WebhookChannel
from src.alerting.publisher import AlertPublisher
from src.correlation.engine import CorrelationEngine
from src.correlation.predicates import build_policy, parse_field_types
from src.ingest.buffer import IngestBuffer
from src.ingest.indexer import LogIndexer
from src.intel.feed import OtxFeedClient
from src.intel.fetcher import ThreatIntelFetcher
from src.service.settings import Settings
from src.shared.timeutil import utcnow
from src.stores.base import DedupStore, IndicatorStore, NotificationChannel, SearchStore
from src.stores.memory import InMemoryDedupStore, InMemoryIndicatorStore, InMemorySearchStore
from src.stores.opensearch import OpenSearchClient, OpenSearchIndicatorStore, OpenSearchLogStore
from src.stores.sqlite_dedup import SqliteDedupStore

log = logging.getLogger(__name__)


@dataclass(slots=True)
class Components:
    search_store: SearchStore
    indicator_store: IndicatorStore
    dedup_store: DedupStore
    channel: NotificationChannel
    opensearch: OpenSearchClient | None = None


def build_components(settings: Settings) -> Components:
    client: OpenSearchClient | None = None
    if settings.opensearch_endpoint:
        client = OpenSearchClient(
            settings.opensearch_endpoint,
            timeout_sec=settings.request_timeout_sec,
            auth=settings.opensearch_auth,
        )
        search: SearchStore = OpenSearchLogStore(client, index=settings.log_index)
        indicators: IndicatorStore = OpenSearchIndicatorStore(client, index=settings.ioc_index)
    else:
        log.warning("OPENSEARCH_ENDPOINT not set; using in-memory stores")
        search = InMemorySearchStore()
        indicators = InMemoryIndicatorStore()

    if settings.dedup_db_path:
        dedup: DedupStore = SqliteDedupStore(
            settings.dedup_db_path, timeout_sec=settings.request_timeout_sec
        )
    else:
        log.warning("DEDUP_DB_PATH not set; dedup state lives only in this process")
        dedup = InMemoryDedupStore()

    return Components(
        search_store=search,
        indicator_store=indicators,
        dedup_store=dedup,
        channel=build_channel(settings),
        opensearch=client,
    )


def build_channel(settings: Settings) -> NotificationChannel:
    if settings.sns_topic_arn:
        return SnsChannel(
            settings.sns_topic_arn,
            region=settings.aws_region or None,
            timeout_sec=settings.request_timeout_sec,
        )
    if settings.alert_webhook_url:
        return WebhookChannel(settings.alert_webhook_url, timeout_sec=settings.request_timeout_sec)
    return LogChannel()


def build_buffer(
    settings: Settings,
    comps: Components,
    clock: Callable[[], datetime] = utcnow,
) -> IngestBuffer:
    indexer = LogIndexer(comps.search_store, clock=clock)
    return IngestBuffer(indexer, max_records=settings.ingest_max_records)


def build_fetcher(
    settings: Settings,
    comps: Components,
    clock: Callable[[], datetime] = utcnow,
) -> ThreatIntelFetcher:
    feed = OtxFeedClient(
        api_key=settings.intel_api_key,
        base_url=settings.intel_feed_url,
        page_size=settings.intel_page_size,
        max_pages=settings.intel_max_pages,
        timeout_sec=settings.request_timeout_sec,
    )
    return ThreatIntelFetcher(feed, comps.indicator_store, clock=clock)


def build_engine(
    settings: Settings,
    comps: Components,
    clock: Callable[[], datetime] = utcnow,
) -> CorrelationEngine:
    policy = build_policy(
        settings.match_policy,
        indicator_store=comps.indicator_store,
        field_types=parse_field_types(settings.field_types),
    )
    return CorrelationEngine(
        store=comps.search_store,
        policy=policy,
        dedup=comps.dedup_store,
        publisher=AlertPublisher(comps.channel, sample_size=settings.alert_sample_size),
        clock=clock,
        lease_sec=settings.dedup_lease_sec,
        retention=settings.dedup_retention,
        deadline_sec=settings.run_deadline_sec,
    )
