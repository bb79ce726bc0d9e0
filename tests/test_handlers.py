"""Tests for src.service.handlers, wiring and the CLI."""

from __future__ import annotations

import io
import json

import httpx
import pytest

from src.alerting.channels import LogChannel, SnsChannel, WebhookChannel
from src.contracts.errors import StoreError, StoreTimeoutError
from src.ingest.s3_source import S3ObjectSource
from src.intel.feed import OtxFeedClient
from src.intel.fetcher import ThreatIntelFetcher
from src.service import cli, wiring
from src.service.handlers import Handlers, entries_from_event
from src.service.settings import Settings
from src.stores.memory import InMemoryDedupStore, InMemorySearchStore
from src.stores.opensearch import OpenSearchClient
from src.stores.sqlite_dedup import SqliteDedupStore
from tests.conftest import make_raw, ts_offset


class FakeS3:
    def __init__(self, objects):
        self.objects = objects

    def get_object(self, Bucket, Key):
        return {"Body": io.BytesIO(self.objects[Key].encode())}


@pytest.fixture
def components(search_store, indicator_store, dedup_store, channel):
    return wiring.Components(
        search_store=search_store,
        indicator_store=indicator_store,
        dedup_store=dedup_store,
        channel=channel,
    )


@pytest.fixture
def handlers(components, clock):
    return Handlers(Settings(), components, clock=clock)


class TestEntriesFromEvent:
    def test_kinds_by_item_type(self):
        entries = entries_from_event(
            {"source": "stream-1", "records": [{"a": 1}, [{"a": 2}], '{"a": 3}']}
        )
        assert [e.kind.value for e in entries] == ["object", "array", "text"]
        assert [e.offset for e in entries] == [0, 1, 2]
        assert {e.source for e in entries} == {"stream-1"}

    def test_base_offset(self):
        entries = entries_from_event({"source": "s", "offset": 10, "records": [{}]})
        assert entries[0].offset == 10


class TestIndexHandler:
    def test_direct_delivery(self, handlers, search_store):
        report = handlers.index(
            {"source": "s", "records": [make_raw(), make_raw(seconds=-5), "garbage"]}
        )
        assert report == {"status": "success", "indexed": 2, "skipped": 1}
        assert len(search_store) == 2

    def test_no_records_is_success(self, handlers):
        assert handlers.index({"source": "s", "records": []})["status"] == "success"

    def test_s3_notification(self, components, clock):
        body = "\n".join(json.dumps(make_raw(seconds=-i)) for i in range(1, 4))
        h = Handlers(Settings(), components, clock=clock, s3_source=_s3({"k.ndjson": body}))
        report = h.index(
            {"Records": [{"s3": {"bucket": {"name": "b"}, "object": {"key": "k.ndjson"}}}]}
        )
        assert report["indexed"] == 3

    def test_store_failure_reported(self, dedup_store, indicator_store, channel, clock):
        class Down(InMemorySearchStore):
            def write_batch(self, docs):
                raise StoreError("red cluster")

        comps = wiring.Components(Down(), indicator_store, dedup_store, channel)
        report = Handlers(Settings(), comps, clock=clock).index(
            {"source": "s", "records": [make_raw()]}
        )
        assert report["status"] == "error"
        assert report["error"] == "index_error"
        assert "s" in report["failed_sources"]


def _s3(objects):
    return S3ObjectSource(client=FakeS3(objects))


class TestCorrelateHandler:
    def test_reports_counts(self, handlers, channel):
        handlers.index({"source": "s", "records": [make_raw(ioc_match=True)]})
        report = handlers.correlate()
        assert report["status"] == "success"
        assert report["alerts_emitted"] == 1
        assert len(channel.messages) == 1

    def test_explicit_window(self, handlers):
        handlers.index({"source": "s", "records": [make_raw(seconds=-3600, ioc_match=True)]})
        assert handlers.correlate()["candidates"] == 0
        report = handlers.correlate(
            {"window_start": ts_offset(-4000), "window_end": ts_offset(-3000)}
        )
        assert report["alerts_emitted"] == 1

    def test_bad_window(self, handlers):
        report = handlers.correlate({"window_start": ts_offset(0), "window_end": ts_offset(-60)})
        assert report["error"] == "bad_window"

    def test_error_kind_reported(self, components, clock):
        class Slow(InMemorySearchStore):
            def query(self, window, filter=None):
                raise StoreTimeoutError("timed out")

        components.search_store = Slow()
        report = Handlers(Settings(), components, clock=clock).correlate()
        assert report["status"] == "error"
        assert report["error"] == "correlation_error"


class TestFetchIntelHandler:
    def test_no_api_key_is_fetch_error(self, handlers):
        report = handlers.fetch_intel()
        assert report["status"] == "error"
        assert report["error"] == "fetch_error"

    def test_malformed_feed_page_is_reported(self, components, clock):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=[]))
        feed = OtxFeedClient("k3y", transport=transport)
        fetcher = ThreatIntelFetcher(feed, components.indicator_store, clock=clock)
        report = Handlers(Settings(), components, clock=clock, fetcher=fetcher).fetch_intel()
        assert report["status"] == "error"
        assert report["error"] == "fetch_error"


class TestWiring:
    def test_in_memory_fallbacks(self):
        comps = wiring.build_components(Settings())
        assert isinstance(comps.search_store, InMemorySearchStore)
        assert isinstance(comps.dedup_store, InMemoryDedupStore)
        assert isinstance(comps.channel, LogChannel)
        assert comps.opensearch is None

    def test_sqlite_dedup_when_path_set(self, tmp_path):
        comps = wiring.build_components(Settings(dedup_db_path=str(tmp_path / "d.sqlite3")))
        assert isinstance(comps.dedup_store, SqliteDedupStore)
        comps.dedup_store.close()

    def test_channel_precedence(self):
        assert isinstance(
            wiring.build_channel(Settings(alert_webhook_url="https://hooks.test")), WebhookChannel
        )
        sns = wiring.build_channel(
            Settings(sns_topic_arn="arn:aws:sns:eu-west-1:1:t", aws_region="eu-west-1",
                     alert_webhook_url="https://hooks.test")
        )
        assert isinstance(sns, SnsChannel)

    def test_engine_uses_configured_policy(self, components):
        engine = wiring.build_engine(Settings(match_policy="any"), components)
        assert engine.policy.name == "any"


class TestCli:
    def test_parser_requires_command(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_index_file(self, tmp_path, capsys, monkeypatch):
        for var in ("OPENSEARCH_ENDPOINT", "DEDUP_DB_PATH", "SNS_TOPIC_ARN", "ALERT_WEBHOOK_URL"):
            monkeypatch.delenv(var, raising=False)
        log_file = tmp_path / "logs.ndjson"
        log_file.write_text(json.dumps(make_raw()) + "\n{broken\n", encoding="utf-8")

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["index", "--input", str(log_file)])
        assert exc_info.value.code == 0
        report = json.loads(capsys.readouterr().out)
        assert report == {"status": "success", "indexed": 1, "skipped": 1}

    def test_init_indices_needs_endpoint(self, capsys, monkeypatch):
        monkeypatch.delenv("OPENSEARCH_ENDPOINT", raising=False)
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["init-indices"])
        assert exc_info.value.code == 1
        assert json.loads(capsys.readouterr().out)["error"] == "no_endpoint"

    def test_init_indices_creates_both(self):
        created: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "HEAD":
                return httpx.Response(404)
            created.append(request.url.path)
            return httpx.Response(200, json={"acknowledged": True})

        client = OpenSearchClient("search.test", transport=httpx.MockTransport(handler))
        comps = wiring.Components(
            InMemorySearchStore(), None, InMemoryDedupStore(), LogChannel(), opensearch=client
        )
        report = cli._init_indices(comps, "logs", "ioc")
        assert report == {"status": "success", "created": {"logs": True, "ioc": True}}
        assert created == ["/logs", "/ioc"]

    @pytest.mark.parametrize(
        "yaml_text",
        [
            "correlation:\n  policy: fuzzy\n",
            "correlation:\n  field_types:\n    source_ip: ipv9\n",
        ],
    )
    def test_bad_wiring_config_exits_2(self, tmp_path, monkeypatch, yaml_text):
        for var in ("OPENSEARCH_ENDPOINT", "DEDUP_DB_PATH", "MATCH_POLICY"):
            monkeypatch.delenv(var, raising=False)
        config = tmp_path / "siem.yaml"
        config.write_text(yaml_text, encoding="utf-8")

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--config", str(config), "correlate"])
        assert exc_info.value.code == 2
