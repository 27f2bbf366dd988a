"""DuckDB-based chat log sink.

Every chat message delivered inside a room is appended here. The sink is
write-mostly; callers treat failures as non-fatal and only log them.

Database Schema:
    chat_logs table:
        - id: Auto-incrementing primary key
        - room_id: Room key the message was sent in
        - nickname: Sender nickname
        - user_ip: Sender address
        - message: Message body
        - timestamp: When the message was sent (UTC)
"""
import logging
from typing import List, Optional

import duckdb

from .schemas import ChatLogEntry, utc_now

logger = logging.getLogger(__name__)


class ChatLogService:
    """Singleton service for persisting chat messages in DuckDB."""

    _instance: Optional["ChatLogService"] = None
    _db_path: str = "chat_logs.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        if db_path:
            self._db_path = db_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._initialize_db()

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "ChatLogService":
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        conn = self._get_connection()
        conn.execute("CREATE SEQUENCE IF NOT EXISTS chat_logs_seq START 1;")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS chat_logs (
                id INTEGER DEFAULT nextval('chat_logs_seq') PRIMARY KEY,
                room_id VARCHAR NOT NULL,
                nickname VARCHAR NOT NULL,
                user_ip VARCHAR NOT NULL,
                message VARCHAR NOT NULL,
                timestamp TIMESTAMP NOT NULL
            )
        """)

    def save(self, room_id: str, nickname: str, user_ip: str, message: str) -> ChatLogEntry:
        """Append one message to the log."""
        entry = ChatLogEntry(
            room_id=room_id,
            nickname=nickname,
            user_ip=user_ip,
            message=message,
            timestamp=utc_now(),
        )
        self._get_connection().execute(
            """
            INSERT INTO chat_logs (room_id, nickname, user_ip, message, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            [entry.room_id, entry.nickname, entry.user_ip, entry.message, entry.timestamp],
        )
        return entry

    def get_logs(self, room_id: str, limit: int = 100) -> List[ChatLogEntry]:
        """Return a room's messages, oldest first."""
        rows = self._get_connection().execute(
            """
            SELECT room_id, nickname, user_ip, message, timestamp
            FROM chat_logs
            WHERE room_id = ?
            ORDER BY id ASC
            LIMIT ?
            """,
            [room_id, limit],
        ).fetchall()
        return [
            ChatLogEntry(room_id=r[0], nickname=r[1], user_ip=r[2], message=r[3], timestamp=r[4])
            for r in rows
        ]

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
