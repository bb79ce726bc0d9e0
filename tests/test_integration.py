"""End-to-end: raw logs → index → threat intel → correlate → one alert."""

from __future__ import annotations

import httpx
import pytest

from src.contracts.window import CorrelationWindow
from src.intel.feed import OtxFeedClient
from src.intel.fetcher import ThreatIntelFetcher
from src.service import wiring
from src.service.handlers import Handlers
from src.service.settings import Settings
from src.stores.sqlite_dedup import SqliteDedupStore
from tests.conftest import feed_page, make_raw


class TestPipeline:
    """Collector batch with one malicious source IP, OTX feed naming that IP."""

    @pytest.fixture
    def feed_transport(self):
        page = feed_page(
            [
                {"type": "IPv4", "indicator": "1.2.3.4"},
                {"type": "domain", "indicator": "evil.example"},
            ]
        )
        return httpx.MockTransport(lambda request: httpx.Response(200, json=page))

    @pytest.fixture
    def settings(self, tmp_path):
        return Settings(
            intel_api_key="k3y",
            match_policy="lookup",
            dedup_db_path=str(tmp_path / "dedup.sqlite3"),
        )

    def _handlers(self, settings, comps, clock, feed_transport) -> Handlers:
        feed = OtxFeedClient(settings.intel_api_key, transport=feed_transport)
        fetcher = ThreatIntelFetcher(feed, comps.indicator_store, clock=clock)
        return Handlers(settings, comps, clock=clock, fetcher=fetcher)

    def _batch(self):
        return {
            "source": "firehose://winlogbeat",
            "records": [
                make_raw(seconds=-90, source_ip="10.0.0.5"),
                make_raw(seconds=-60, source_ip="1.2.3.4"),
                make_raw(seconds=-45, source_ip="10.0.0.7"),
                "not json at all",
                make_raw(seconds=-30, dns={"question": {"name": "Evil.Example"}}),
            ],
        }

    def test_full_run(self, settings, clock, feed_transport, channel):
        comps = wiring.build_components(settings)
        comps.channel = channel
        h = self._handlers(settings, comps, clock, feed_transport)

        assert h.index(self._batch()) == {"status": "success", "indexed": 4, "skipped": 1}
        assert h.fetch_intel()["ingested"] == 2

        report = h.correlate()
        assert report["status"] == "success"
        assert report["candidates"] == 4
        assert report["alerts_emitted"] == 2
        (subject, message), = channel.messages
        assert subject == "SIEM Alert"
        assert "source_ip=1.2.3.4" in message
        assert "dns.question.name=evil.example" in message

        # next scheduled run 5 minutes later still overlaps those records
        clock.advance(300)
        assert h.correlate()["alerts_emitted"] == 0
        assert len(channel.messages) == 1

    def test_dedup_survives_restart(self, settings, clock, feed_transport, channel):
        comps = wiring.build_components(settings)
        comps.channel = channel
        h = self._handlers(settings, comps, clock, feed_transport)
        h.index(self._batch())
        h.fetch_intel()
        assert h.correlate()["alerts_emitted"] == 2
        comps.dedup_store.close()

        # fresh process: same search and indicator stores, dedup reopened from disk
        restarted = wiring.Components(
            comps.search_store,
            comps.indicator_store,
            SqliteDedupStore(settings.dedup_db_path),
            channel,
        )
        again = Handlers(settings, restarted, clock=clock)
        clock.advance(120)
        assert again.correlate()["alerts_emitted"] == 0
        assert len(channel.messages) == 1
        restarted.dedup_store.close()

    def test_reindexing_same_batch_is_idempotent(self, settings, clock, feed_transport, channel):
        comps = wiring.build_components(settings)
        comps.channel = channel
        h = self._handlers(settings, comps, clock, feed_transport)
        h.index(self._batch())
        h.index(self._batch())
        window = CorrelationWindow.trailing(clock(), settings.window_size, settings.overlap)
        assert len(comps.search_store.query(window)) == 4
        comps.dedup_store.close()
