"""DuckDB-based report record storage.

This module persists one ReportRecord per network address. Two independent
code paths (the direct report endpoint and the in-room report handler) write
to the same record, so every increment is a single read-modify-write inside
one DuckDB transaction, serialized by a process-wide lock. Callers on the
event loop run these methods through ``asyncio.to_thread``.

Database Schema:
    report_records table:
        - address: Normalized network address (primary key)
        - report_count: Cumulative count, stored as text
        - user_ip: Last known address
        - history: JSON list of {nickname, reason, timestamp}
        - nickname / reason / timestamp: Denormalized latest report

    report_incidents table:
        - incident_key: (room, reporter, reported) composite (primary key)
        - address: Address the incident was counted against
        - recorded_at: When it was recorded (UTC)

A row whose count is not integer text or whose history is not a JSON list is
treated as corrupt: it is logged, deleted and reinitialized.

Usage:
    store = ReportStore.get_instance()
    outcome = store.record_report("10.0.0.1", "User_42", ["spam"])
    banned = store.get_record("10.0.0.1").is_banned(100)
"""
import json
import logging
import threading
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import duckdb

from .schemas import ReportEntry, ReportOutcome, ReportRecord

logger = logging.getLogger(__name__)


class ReportStoreError(Exception):
    """Raised when the report store cannot be read or written."""


def incident_key(room_id: str, reporter_address: str, reported_address: str) -> str:
    return f"{room_id}|{reporter_address}|{reported_address}"


class ReportStore:
    """Singleton service for report records in DuckDB.

    Attributes:
        _instance: Singleton instance of the service.
        _db_path: Path to the DuckDB database file.
    """

    _instance: Optional["ReportStore"] = None
    _db_path: str = "reports.duckdb"

    def __init__(self, db_path: Optional[str] = None, tz_name: str = "Asia/Seoul") -> None:
        if db_path:
            self._db_path = db_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.Lock()
        self._tz = self._resolve_tz(tz_name)
        self._initialize_db()

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None, tz_name: str = "Asia/Seoul") -> "ReportStore":
        """Get or create the singleton instance.

        Args:
            db_path: Optional database path (only used on first call).
            tz_name: Timezone for history timestamps (only used on first call).
        """
        if cls._instance is None:
            cls._instance = cls(db_path, tz_name)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close and forget the singleton. Primarily used for testing."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    @staticmethod
    def _resolve_tz(tz_name: str):
        try:
            return ZoneInfo(tz_name)
        except ZoneInfoNotFoundError:
            logger.warning(f"[Reports] Unknown timezone {tz_name!r}, using UTC")
            return timezone.utc

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS report_records (
                address VARCHAR PRIMARY KEY,
                report_count VARCHAR NOT NULL,
                user_ip VARCHAR NOT NULL,
                history VARCHAR NOT NULL,
                nickname VARCHAR,
                reason VARCHAR,
                timestamp VARCHAR
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS report_incidents (
                incident_key VARCHAR PRIMARY KEY,
                address VARCHAR NOT NULL,
                recorded_at TIMESTAMP NOT NULL
            )
        """)

    def now(self) -> str:
        return datetime.now(self._tz).strftime("%y-%m-%d %H:%M:%S")

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def _parse_row(self, address: str, row: Tuple) -> Optional[ReportRecord]:
        raw_count, user_ip, raw_history, nickname, reason, ts = row
        try:
            count = int(raw_count)
            history = json.loads(raw_history)
            if count < 0 or not isinstance(history, list):
                raise ValueError("unexpected record shape")
            entries = [ReportEntry(**entry) for entry in history]
        except (TypeError, ValueError) as exc:
            logger.error(f"[Reports] Record for {address} is corrupt ({exc}). Resetting it.")
            return None

        if count < len(entries):
            logger.warning(
                f"[Reports] Count {count} behind history ({len(entries)}) for {address}; reconciling"
            )
            count = len(entries)

        return ReportRecord(
            address=address,
            reportCount=count,
            userIP=user_ip,
            history=entries,
            nickname=nickname,
            reason=reason,
            timestamp=ts,
        )

    def _read(self, conn: duckdb.DuckDBPyConnection, address: str) -> Optional[ReportRecord]:
        row = conn.execute(
            """
            SELECT report_count, user_ip, history, nickname, reason, timestamp
            FROM report_records
            WHERE address = ?
            """,
            [address],
        ).fetchone()
        if row is None:
            return None
        record = self._parse_row(address, row)
        if record is None:
            conn.execute("DELETE FROM report_records WHERE address = ?", [address])
        return record

    def get_record(self, address: str) -> Optional[ReportRecord]:
        """Return the stored record for *address*, or None."""
        with self._lock:
            try:
                return self._read(self._get_connection(), address)
            except duckdb.Error as exc:
                raise ReportStoreError(f"Failed to read report record for {address}: {exc}") from exc

    def is_banned(self, address: str, threshold: int) -> bool:
        """Recompute the ban predicate from the stored count."""
        record = self.get_record(address)
        return record is not None and record.is_banned(threshold)

    def list_records(self) -> List[ReportRecord]:
        """Return every readable record, ordered by address."""
        with self._lock:
            try:
                conn = self._get_connection()
                rows = conn.execute(
                    """
                    SELECT address, report_count, user_ip, history, nickname, reason, timestamp
                    FROM report_records
                    ORDER BY address
                    """
                ).fetchall()
                records = []
                for row in rows:
                    record = self._parse_row(row[0], row[1:])
                    if record is None:
                        conn.execute("DELETE FROM report_records WHERE address = ?", [row[0]])
                        continue
                    records.append(record)
                return records
            except duckdb.Error as exc:
                raise ReportStoreError(f"Failed to list report records: {exc}") from exc

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def record_report(
        self,
        address: str,
        nickname: Optional[str],
        reasons: List[str],
        incident: Optional[str] = None,
    ) -> ReportOutcome:
        """Append one report to *address*'s record and bump its count.

        The read, the increment and the write happen in one transaction under
        the store lock, so overlapping submissions never lose an update. When
        *incident* was already recorded the stored record is returned as is.

        Args:
            address: Normalized address of the reported participant.
            nickname: Nickname of the reported participant.
            reasons: Canonical reason codes.
            incident: Optional idempotency key (see :func:`incident_key`).

        Raises:
            ReportStoreError: If DuckDB fails; the transaction is rolled back.
        """
        with self._lock:
            try:
                conn = self._get_connection()
                conn.execute("BEGIN TRANSACTION")

                if incident is not None:
                    seen = conn.execute(
                        "SELECT address FROM report_incidents WHERE incident_key = ?",
                        [incident],
                    ).fetchone()
                    if seen is not None:
                        record = self._read(conn, address) or ReportRecord(address=address, userIP=address)
                        conn.execute("COMMIT")
                        logger.info(f"[Reports] Incident {incident} already recorded; not counting again")
                        return ReportOutcome(record=record, recorded=False)

                current = self._read(conn, address)
                history = list(current.history) if current else []
                previous = current.reportCount if current else 0

                entry = ReportEntry(
                    nickname=nickname or "Unknown",
                    reason=", ".join(reasons),
                    timestamp=self.now(),
                )
                history.append(entry)
                count = previous + 1

                conn.execute(
                    """
                    INSERT OR REPLACE INTO report_records
                        (address, report_count, user_ip, history, nickname, reason, timestamp)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        address,
                        str(count),
                        address,
                        json.dumps([e.model_dump() for e in history], ensure_ascii=False),
                        entry.nickname,
                        entry.reason,
                        entry.timestamp,
                    ],
                )
                if incident is not None:
                    conn.execute(
                        "INSERT INTO report_incidents (incident_key, address, recorded_at) VALUES (?, ?, ?)",
                        [incident, address, datetime.now(timezone.utc).replace(tzinfo=None)],
                    )
                conn.execute("COMMIT")
            except duckdb.Error as exc:
                self._rollback()
                raise ReportStoreError(f"Failed to record report for {address}: {exc}") from exc

        record = ReportRecord(
            address=address,
            reportCount=count,
            userIP=address,
            history=history,
            nickname=entry.nickname,
            reason=entry.reason,
            timestamp=entry.timestamp,
        )
        logger.info(f"[Reports] Report recorded - nickname: {entry.nickname}, IP: {address}, count: {count}")
        return ReportOutcome(record=record)

    def _rollback(self) -> None:
        if self._connection is None:
            return
        try:
            self._connection.execute("ROLLBACK")
        except duckdb.Error as exc:
            logger.debug(f"[Reports] Rollback failed: {exc}")

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
