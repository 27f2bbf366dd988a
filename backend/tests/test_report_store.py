"""Unit tests for the DuckDB report store."""
import asyncio
import json
import re
from concurrent.futures import ThreadPoolExecutor

import pytest

from nulm.reports.schemas import ReportRecord
from nulm.reports.store import ReportStore, ReportStoreError, incident_key


def _raw_insert(store, address, count, history):
    store._get_connection().execute(
        "INSERT INTO report_records (address, report_count, user_ip, history) VALUES (?, ?, ?, ?)",
        [address, count, address, history],
    )


class TestRecordReport:
    def test_first_report_creates_record(self, report_store):
        outcome = report_store.record_report("10.0.0.9", "User_1", ["spam"])

        assert outcome.recorded is True
        assert outcome.record.reportCount == 1
        assert outcome.record.userIP == "10.0.0.9"
        assert outcome.record.history[0].nickname == "User_1"
        assert outcome.record.history[0].reason == "spam"

    def test_count_matches_history_after_n_reports(self, report_store):
        for i in range(5):
            report_store.record_report("10.0.0.9", f"User_{i}", ["etc"])

        record = report_store.get_record("10.0.0.9")
        assert record.reportCount == 5
        assert len(record.history) == 5
        assert [e.nickname for e in record.history] == [f"User_{i}" for i in range(5)]

    def test_latest_report_is_denormalized(self, report_store):
        report_store.record_report("10.0.0.9", "Old", ["spam"])
        report_store.record_report("10.0.0.9", "New", ["spam", "bankFraud"])

        record = report_store.get_record("10.0.0.9")
        assert record.nickname == "New"
        assert record.reason == "spam, bankFraud"

    def test_missing_nickname_defaults_to_unknown(self, report_store):
        outcome = report_store.record_report("10.0.0.9", None, [])
        assert outcome.record.history[0].nickname == "Unknown"

    def test_timestamp_format(self, report_store):
        outcome = report_store.record_report("10.0.0.9", "User_1", ["spam"])
        assert re.fullmatch(r"\d{2}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}", outcome.record.history[0].timestamp)

    def test_stored_count_is_text(self, report_store):
        report_store.record_report("10.0.0.9", "User_1", ["spam"])
        raw = report_store._get_connection().execute(
            "SELECT report_count, history FROM report_records WHERE address = ?", ["10.0.0.9"]
        ).fetchone()
        assert raw[0] == "1"
        assert isinstance(json.loads(raw[1]), list)


class TestConcurrency:
    def test_threaded_reports_lose_no_updates(self, report_store):
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(
                lambda i: report_store.record_report("10.0.0.7", f"User_{i}", ["spam"]),
                range(40),
            ))

        record = report_store.get_record("10.0.0.7")
        assert record.reportCount == 40
        assert len(record.history) == 40

    @pytest.mark.asyncio
    async def test_overlapping_async_reports_lose_no_updates(self, report_store):
        await asyncio.gather(*[
            asyncio.to_thread(report_store.record_report, "10.0.0.8", "User_x", ["spam"])
            for _ in range(25)
        ])

        record = report_store.get_record("10.0.0.8")
        assert record.reportCount == 25
        assert len(record.history) == 25


class TestIncidents:
    def test_same_incident_counted_once(self, report_store):
        key = incident_key("a#b", "10.0.0.1", "10.0.0.2")
        first = report_store.record_report("10.0.0.2", "User_2", ["spam"], incident=key)
        second = report_store.record_report("10.0.0.2", "User_2", ["spam"], incident=key)

        assert first.recorded is True
        assert second.recorded is False
        assert second.record.reportCount == 1
        assert report_store.get_record("10.0.0.2").reportCount == 1

    def test_distinct_incidents_both_count(self, report_store):
        report_store.record_report("10.0.0.2", "U", [], incident=incident_key("r1", "10.0.0.1", "10.0.0.2"))
        report_store.record_report("10.0.0.2", "U", [], incident=incident_key("r2", "10.0.0.1", "10.0.0.2"))
        assert report_store.get_record("10.0.0.2").reportCount == 2


class TestBanPredicate:
    def test_99_is_not_banned_100_is(self, report_store):
        for _ in range(99):
            report_store.record_report("10.0.0.5", "User_5", ["spam"])
        assert report_store.is_banned("10.0.0.5", 100) is False

        report_store.record_report("10.0.0.5", "User_5", ["spam"])
        assert report_store.is_banned("10.0.0.5", 100) is True

    def test_predicate_recomputed_from_stored_count(self, report_store):
        report_store.record_report("10.0.0.5", "User_5", ["spam"])
        assert report_store.is_banned("10.0.0.5", 100) is False

        report_store._get_connection().execute(
            "UPDATE report_records SET report_count = '100' WHERE address = ?", ["10.0.0.5"]
        )
        assert report_store.is_banned("10.0.0.5", 100) is True

    def test_unknown_address_is_not_banned(self, report_store):
        assert report_store.get_record("10.9.9.9") is None
        assert report_store.is_banned("10.9.9.9", 100) is False

    def test_record_model_threshold(self):
        assert ReportRecord(address="x", reportCount=99).is_banned(100) is False
        assert ReportRecord(address="x", reportCount=100).is_banned(100) is True


class TestCorruptRecords:
    def test_non_integer_count_is_reset(self, report_store):
        _raw_insert(report_store, "10.0.0.4", "abc", "[]")

        assert report_store.get_record("10.0.0.4") is None
        outcome = report_store.record_report("10.0.0.4", "User_4", ["spam"])
        assert outcome.record.reportCount == 1

    def test_non_list_history_is_reset(self, report_store):
        _raw_insert(report_store, "10.0.0.4", "3", '{"not": "a list"}')

        outcome = report_store.record_report("10.0.0.4", "User_4", ["spam"])
        assert outcome.record.reportCount == 1
        assert len(outcome.record.history) == 1

    def test_count_behind_history_is_reconciled(self, report_store):
        history = json.dumps([{"nickname": "a", "reason": "spam", "timestamp": "t"}] * 3)
        _raw_insert(report_store, "10.0.0.4", "1", history)

        record = report_store.get_record("10.0.0.4")
        assert record.reportCount == 3

    def test_list_records_skips_corrupt_rows(self, report_store):
        report_store.record_report("10.0.0.1", "A", ["spam"])
        _raw_insert(report_store, "10.0.0.2", "oops", "[]")
        report_store.record_report("10.0.0.3", "C", ["etc"])

        records = report_store.list_records()
        assert [r.address for r in records] == ["10.0.0.1", "10.0.0.3"]


def test_closed_store_raises_store_error(report_store, monkeypatch):
    import duckdb

    def broken():
        raise duckdb.IOException("disk unavailable")

    monkeypatch.setattr(report_store, "_get_connection", broken)
    with pytest.raises(ReportStoreError):
        report_store.record_report("10.0.0.1", "A", ["spam"])
    with pytest.raises(ReportStoreError):
        report_store.get_record("10.0.0.1")


def test_singleton_instance():
    ReportStore.reset_instance()
    try:
        first = ReportStore.get_instance(db_path=":memory:")
        assert ReportStore.get_instance() is first
    finally:
        ReportStore.reset_instance()
