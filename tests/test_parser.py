"""Tests for src.ingest.entries and src.ingest.parser — raw units → LogRecords."""

from __future__ import annotations

import pytest

from src.contracts.enums import EntryKind
from src.contracts.errors import ParseError
from src.ingest.entries import ARRAY_STRIDE, RawEntry, decode_text, normalize_entry
from src.ingest.parser import flatten, parse_record
from tests.conftest import make_raw, ts

# ═══════════════════════════════════════════════════════════════════════════
#  RawEntry normalisation
# ═══════════════════════════════════════════════════════════════════════════


class TestNormalizeEntry:
    def test_object_is_one_element_array(self):
        units = normalize_entry(RawEntry.object("s", 3, {"a": 1}))
        assert units == [(3 * ARRAY_STRIDE, {"a": 1})]

    def test_array_elements_get_distinct_offsets(self):
        units = normalize_entry(RawEntry.array("s", 2, [{"a": 1}, {"a": 2}]))
        assert [o for o, _ in units] == [2 * ARRAY_STRIDE, 2 * ARRAY_STRIDE + 1]

    def test_text_object(self):
        units = normalize_entry(RawEntry.text("s", 0, '{"a": 1}'))
        assert units == [(0, {"a": 1})]

    def test_text_array(self):
        units = normalize_entry(RawEntry.text("s", 0, b'[{"a": 1}, {"a": 2}]'))
        assert len(units) == 2

    def test_object_and_array_offsets_never_collide(self):
        obj = {o for o, _ in normalize_entry(RawEntry.object("s", 1, {}))}
        arr = {o for o, _ in normalize_entry(RawEntry.array("s", 0, [{}, {}]))}
        assert not obj & arr

    def test_invalid_json(self):
        with pytest.raises(ParseError, match="invalid_json"):
            decode_text(RawEntry.text("s", 4, "{not json"))

    def test_scalar_json_unsupported(self):
        with pytest.raises(ParseError, match="unsupported_json_type") as exc_info:
            decode_text(RawEntry.text("s", 4, "42"))
        assert exc_info.value.offset == 4

    def test_decode_leaves_objects_alone(self):
        entry = RawEntry.object("s", 0, {"a": 1})
        assert decode_text(entry) is entry
        assert entry.kind is EntryKind.OBJECT


# ═══════════════════════════════════════════════════════════════════════════
#  parse_record()
# ═══════════════════════════════════════════════════════════════════════════


class TestFlatten:
    def test_nested_keys_dotted(self):
        flat = flatten({"source": {"ip": "1.2.3.4"}, "dns": {"question": {"name": "x"}}})
        assert flat == {"source.ip": "1.2.3.4", "dns.question.name": "x"}

    def test_lists_and_empty_dicts_kept(self):
        assert flatten({"tags": ["a"], "meta": {}}) == {"tags": ["a"], "meta": {}}


class TestParseRecord:
    def test_valid_record(self):
        rec = parse_record(make_raw(source_ip="1.2.3.4"), "s", 5)
        assert rec.timestamp == ts(-60)
        assert rec.source == "s"
        assert rec.offset == 5
        assert rec.fields["source_ip"] == "1.2.3.4"
        assert rec.fields["host.name"] == "dc-01"
        assert "@timestamp" not in rec.fields

    def test_ioc_flag_coerced(self):
        assert parse_record(make_raw(ioc_match=True), "s", 0).ioc_match is True
        assert parse_record(make_raw(ioc_match="true"), "s", 0).ioc_match is True
        assert parse_record(make_raw(), "s", 0).ioc_match is False

    def test_alternate_timestamp_key(self):
        rec = parse_record({"event": {"created": "2026-10-19T09:59:00Z"}}, "s", 0)
        assert rec.timestamp == ts(-60)

    def test_epoch_timestamp(self):
        rec = parse_record({"timestamp": ts(0).timestamp()}, "s", 0)
        assert rec.timestamp == ts(0)

    def test_not_an_object(self):
        with pytest.raises(ParseError, match="not_an_object"):
            parse_record(["x"], "s", 0)

    def test_missing_timestamp(self):
        with pytest.raises(ParseError, match="no_timestamp"):
            parse_record({"message": "hello"}, "s", 0)

    def test_bad_timestamp(self):
        with pytest.raises(ParseError, match="bad_timestamp"):
            parse_record({"@timestamp": "yesterday"}, "s", 0)

    def test_source_is_transport_source(self):
        rec = parse_record(make_raw(source="payload-source"), "transport", 0)
        assert rec.source == "transport"
        assert rec.fields["source"] == "payload-source"
