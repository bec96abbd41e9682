"""SQLite-backed browser session audit trail and profile lookup."""

from __future__ import annotations

import json
import sqlite3
import threading
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .models import (
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_RUNNING,
    TERMINAL_STATUSES,
    BrowserAction,
    BrowserResult,
    BrowserSessionRecord,
    ExecutionContext,
    SessionHandle,
)

_SESSION_COLUMNS = (
    "id, user_id, organization_id, action, url, status, result_type, result_size_bytes, "
    "timing_ms, error_message, metadata_json, created_at, completed_at"
)


class SessionStoreError(RuntimeError):
    """Raised when the backing data store cannot serve a request."""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _epoch(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


class BrowserSessionStore:
    """Persist browser sessions and read subscription tiers from SQLite."""

    def __init__(self, db_path: Path, clock: Optional[Callable[[], datetime]] = None):
        self.db_path = Path(db_path)
        self._clock = clock or _utc_now
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def start(self) -> None:
        with self._lock:
            if self._conn is not None:
                return
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self.db_path), check_same_thread=False, timeout=10)
                conn.execute("PRAGMA journal_mode=WAL;")
                conn.execute("PRAGMA synchronous=NORMAL;")
                conn.execute("PRAGMA busy_timeout=5000;")
            except (OSError, sqlite3.Error) as e:
                raise SessionStoreError(f"Cannot open session store at {self.db_path}: {e}") from e
            self._conn = conn
            self._init_schema()

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.close()
            finally:
                self._conn = None

    def begin_session(self, context: ExecutionContext, action: BrowserAction) -> SessionHandle:
        """Insert a ``running`` row and return the handle needed to finish it."""
        session_id = str(uuid.uuid4())
        created_at = _epoch(self._clock())
        metadata = {
            "selector": action.selector,
            "wait_for": action.wait_for,
            "has_javascript": bool(action.javascript),
            "conversation_id": context.conversation_id,
        }
        self._execute(
            """
            INSERT INTO browser_sessions (
                id, user_id, organization_id, action, url, status, metadata_json, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                session_id,
                context.user_id,
                context.organization_id,
                action.action,
                action.url,
                STATUS_RUNNING,
                _dump_json(metadata),
                created_at,
            ),
        )
        return SessionHandle(
            session_id=session_id,
            user_id=context.user_id,
            action=action.action,
            created_at=created_at,
        )

    def finish_session(
        self,
        handle: SessionHandle,
        *,
        status: str,
        result_type: Optional[str],
        result_size_bytes: int,
        timing_ms: int,
        error_message: Optional[str] = None,
    ) -> bool:
        """Apply the single terminal update. Returns False if the row was already terminal."""
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Not a terminal session status: {status}")
        cursor = self._execute(
            """
            UPDATE browser_sessions
               SET status = ?, result_type = ?, result_size_bytes = ?, timing_ms = ?,
                   error_message = ?, completed_at = ?
             WHERE id = ? AND status IN (?, ?)
            """,
            (
                status,
                result_type,
                int(result_size_bytes),
                int(timing_ms),
                error_message,
                _epoch(self._clock()),
                handle.session_id,
                STATUS_PENDING,
                STATUS_RUNNING,
            ),
        )
        return bool(cursor.rowcount)

    def log_rejection(
        self,
        context: ExecutionContext,
        action: BrowserAction,
        result: BrowserResult,
    ) -> str:
        """Record a request refused before any browser session was opened."""
        session_id = str(uuid.uuid4())
        now = _epoch(self._clock())
        metadata = {
            "conversation_id": context.conversation_id,
            "pre_execution_failure": True,
        }
        self._execute(
            """
            INSERT INTO browser_sessions (
                id, user_id, organization_id, action, url, status, result_type,
                result_size_bytes, timing_ms, error_message, metadata_json, created_at, completed_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                session_id,
                context.user_id,
                context.organization_id,
                action.action,
                action.url,
                STATUS_FAILED,
                None,
                0,
                int(result.timing),
                result.error_message,
                _dump_json(metadata),
                now,
                now,
            ),
        )
        return session_id

    def count_sessions(self, user_id: str, start: datetime, end: datetime) -> int:
        """Count sessions created in ``[start, end)``."""
        row = self._fetchone(
            """
            SELECT COUNT(*) FROM browser_sessions
             WHERE user_id = ? AND created_at >= ? AND created_at < ?
            """,
            (str(user_id), _epoch(start), _epoch(end)),
        )
        return int(row[0]) if row else 0

    def get_subscription_tier(self, user_id: str) -> Optional[str]:
        row = self._fetchone("SELECT subscription_tier FROM profiles WHERE id = ?", (str(user_id),))
        if row is None or row[0] is None:
            return None
        return str(row[0])

    def set_subscription_tier(self, user_id: str, tier: Optional[str]) -> None:
        self._execute(
            """
            INSERT INTO profiles (id, subscription_tier, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                subscription_tier = excluded.subscription_tier,
                updated_at = excluded.updated_at
            """,
            (str(user_id), tier, float(time.time())),
        )

    def get_session(self, session_id: str) -> Optional[BrowserSessionRecord]:
        row = self._fetchone(
            f"SELECT {_SESSION_COLUMNS} FROM browser_sessions WHERE id = ?",
            (str(session_id),),
        )
        return _to_record(row) if row else None

    def list_sessions(self, user_id: str, limit: int = 50) -> List[BrowserSessionRecord]:
        rows = self._fetchall(
            f"""
            SELECT {_SESSION_COLUMNS} FROM browser_sessions
             WHERE user_id = ?
             ORDER BY created_at DESC
             LIMIT ?
            """,
            (str(user_id), max(1, int(limit))),
        )
        return [_to_record(row) for row in rows]

    def usage_summary(self, user_id: str, start: datetime, end: datetime) -> Dict[str, Any]:
        """Aggregate a user's sessions in ``[start, end)`` for usage auditing."""
        rows = self._fetchall(
            """
            SELECT action, status, COUNT(*), COALESCE(SUM(result_size_bytes), 0)
              FROM browser_sessions
             WHERE user_id = ? AND created_at >= ? AND created_at < ?
             GROUP BY action, status
            """,
            (str(user_id), _epoch(start), _epoch(end)),
        )
        by_status: Dict[str, int] = {}
        by_action: Dict[str, int] = {}
        total = 0
        total_bytes = 0
        for action, status, count, size in rows:
            by_status[str(status)] = by_status.get(str(status), 0) + int(count)
            by_action[str(action)] = by_action.get(str(action), 0) + int(count)
            total += int(count)
            total_bytes += int(size or 0)
        return {
            "user_id": str(user_id),
            "start": start.isoformat(),
            "end": end.isoformat(),
            "total": total,
            "by_status": by_status,
            "by_action": by_action,
            "result_bytes": total_bytes,
        }

    def _init_schema(self) -> None:
        self._execute(
            """
            CREATE TABLE IF NOT EXISTS browser_sessions (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                organization_id TEXT,
                action TEXT,
                url TEXT,
                status TEXT NOT NULL,
                result_type TEXT,
                result_size_bytes INTEGER,
                timing_ms INTEGER,
                error_message TEXT,
                metadata_json TEXT,
                created_at REAL NOT NULL,
                completed_at REAL
            )
            """
        )
        self._execute(
            "CREATE INDEX IF NOT EXISTS idx_browser_sessions_user_created "
            "ON browser_sessions(user_id, created_at)"
        )
        self._execute(
            """
            CREATE TABLE IF NOT EXISTS profiles (
                id TEXT PRIMARY KEY,
                subscription_tier TEXT,
                updated_at REAL
            )
            """
        )

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self.start()
        if self._conn is None:
            raise SessionStoreError("Session store is not connected")
        return self._conn

    def _execute(self, sql: str, params: Tuple[Any, ...] = ()) -> sqlite3.Cursor:
        with self._lock:
            conn = self._connection()
            try:
                cursor = conn.execute(sql, params)
                conn.commit()
                return cursor
            except sqlite3.Error as e:
                raise SessionStoreError(str(e)) from e

    def _fetchone(self, sql: str, params: Tuple[Any, ...] = ()) -> Optional[Tuple[Any, ...]]:
        with self._lock:
            conn = self._connection()
            try:
                return conn.execute(sql, params).fetchone()
            except sqlite3.Error as e:
                raise SessionStoreError(str(e)) from e

    def _fetchall(self, sql: str, params: Tuple[Any, ...] = ()) -> List[Tuple[Any, ...]]:
        with self._lock:
            conn = self._connection()
            try:
                return list(conn.execute(sql, params).fetchall())
            except sqlite3.Error as e:
                raise SessionStoreError(str(e)) from e


def _dump_json(payload: Dict[str, Any]) -> str:
    try:
        return json.dumps(payload, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return json.dumps({"_error": "payload_not_serializable"}, ensure_ascii=False)


def _to_record(row: Tuple[Any, ...]) -> BrowserSessionRecord:
    try:
        metadata = json.loads(row[10]) if row[10] else {}
    except ValueError:
        metadata = {}
    return BrowserSessionRecord(
        id=str(row[0]),
        user_id=str(row[1]),
        organization_id=row[2],
        action=str(row[3] or ""),
        url=str(row[4] or ""),
        status=str(row[5]),
        result_type=row[6],
        result_size_bytes=None if row[7] is None else int(row[7]),
        timing_ms=None if row[8] is None else int(row[8]),
        error_message=row[9],
        metadata=metadata if isinstance(metadata, dict) else {},
        created_at=float(row[11]),
        completed_at=None if row[12] is None else float(row[12]),
    )
