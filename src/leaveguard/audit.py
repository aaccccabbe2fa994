"""
Audit log.

Handlers record authentication and authorization outcomes after a decision
has been made. Writes run on a background thread pool so an audit failure
or a slow disk never delays or changes a response.
"""

import json
import sqlite3
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from .errors import StoreError


class AuditStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    DENIED = "DENIED"


@dataclass
class AuditEntry:
    """
    One audit record.

    Attributes:
        id: Entry UUID
        user: Acting user id (None for anonymous attempts)
        action: Action name, e.g. "LOGIN", "APPROVE_LEAVE"
        status: SUCCESS, FAILED or DENIED
        ip: Client address
        details: Free-form context
        created_at: Timestamp (UTC)
    """
    id: str
    user: Optional[str]
    action: str
    status: AuditStatus
    ip: Optional[str]
    details: Dict[str, Any]
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user": self.user,
            "action": self.action,
            "status": self.status.value,
            "ip": self.ip,
            "details": self.details,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class AuditPage:
    total: int
    page: int
    pages: int
    logs: List[AuditEntry]

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "page": self.page,
            "pages": self.pages,
            "logs": [entry.to_dict() for entry in self.logs],
        }


class AuditLog:
    """
    SQLite-backed audit sink with fire-and-forget writes.
    """

    def __init__(self, db_path: Union[Path, str], max_workers: int = 1):
        """
        Initialize audit log.

        Args:
            db_path: Path to SQLite database file
            max_workers: Background writer threads
        """
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="audit")
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def _init_db(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            conn = self._connect()
            try:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS audit_logs (
                        id TEXT PRIMARY KEY,
                        user_id TEXT,
                        action TEXT NOT NULL,
                        status TEXT NOT NULL,
                        ip TEXT,
                        details TEXT NOT NULL DEFAULT '{}',
                        created_at TEXT NOT NULL
                    )
                """)
                conn.execute("CREATE INDEX IF NOT EXISTS idx_audit_created ON audit_logs(created_at)")
                conn.commit()
            finally:
                conn.close()

    # ========================================================================
    # Writing
    # ========================================================================

    def record(
        self,
        actor_id: Optional[str],
        action: str,
        outcome: Union[AuditStatus, str],
        context: Optional[Dict[str, Any]] = None,
        ip: Optional[str] = None,
    ) -> Future:
        """
        Queue an audit entry; returns immediately.

        Args:
            actor_id: Acting user (None if unauthenticated)
            action: Action name
            outcome: SUCCESS, FAILED or DENIED
            context: Extra details (must be JSON serialisable)
            ip: Client address

        Returns:
            Future resolving to the written AuditEntry, or None if the write failed
        """
        entry = AuditEntry(
            id=str(uuid.uuid4()),
            user=actor_id,
            action=action,
            status=AuditStatus(outcome),
            ip=ip,
            details=dict(context or {}),
            created_at=datetime.now(timezone.utc),
        )
        return self._executor.submit(self._write, entry)

    def _write(self, entry: AuditEntry) -> Optional[AuditEntry]:
        try:
            with self._lock:
                conn = self._connect()
                try:
                    conn.execute(
                        "INSERT INTO audit_logs (id, user_id, action, status, ip, details, created_at) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?)",
                        (
                            entry.id,
                            entry.user,
                            entry.action,
                            entry.status.value,
                            entry.ip,
                            json.dumps(entry.details, default=str),
                            entry.created_at.isoformat(),
                        ),
                    )
                    conn.commit()
                finally:
                    conn.close()
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error(f"[AUDIT] Failed to save log {entry.action}: {e}")
            return None

        logger.debug(f"[AUDIT] {entry.action} for user {entry.user} - {entry.status.value}")
        return entry

    # ========================================================================
    # Reading
    # ========================================================================

    def query(
        self,
        user: Optional[str] = None,
        action: Optional[str] = None,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> AuditPage:
        """
        Filtered, paginated entries, newest first.

        Args:
            user: Acting user id
            action: Action name
            status: SUCCESS, FAILED or DENIED
            start: Inclusive lower bound on created_at (both bounds required)
            end: Inclusive upper bound on created_at
            page: 1-based page number
            limit: Page size

        Raises:
            StoreError: On database failure
        """
        page = max(1, int(page))
        limit = max(1, int(limit))

        clauses, params = [], []
        if user:
            clauses.append("user_id = ?")
            params.append(user)
        if action:
            clauses.append("action = ?")
            params.append(action)
        if status:
            clauses.append("status = ?")
            params.append(AuditStatus(status).value)
        if start and end:
            clauses.append("created_at >= ? AND created_at <= ?")
            params.extend([start.isoformat(), end.isoformat()])
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        try:
            with self._lock:
                conn = self._connect()
                try:
                    total = conn.execute(f"SELECT COUNT(*) FROM audit_logs {where}", params).fetchone()[0]
                    rows = conn.execute(
                        f"SELECT id, user_id, action, status, ip, details, created_at FROM audit_logs {where} "
                        "ORDER BY created_at DESC LIMIT ? OFFSET ?",
                        params + [limit, (page - 1) * limit],
                    ).fetchall()
                finally:
                    conn.close()
        except sqlite3.Error as e:
            raise StoreError("query audit log", e) from e

        logs = [
            AuditEntry(
                id=row[0],
                user=row[1],
                action=row[2],
                status=AuditStatus(row[3]),
                ip=row[4],
                details=json.loads(row[5] or "{}"),
                created_at=datetime.fromisoformat(row[6]),
            )
            for row in rows
        ]
        return AuditPage(total=total, page=page, pages=-(-total // limit), logs=logs)

    def clear(self) -> int:
        """Delete every entry; returns how many were removed."""
        try:
            with self._lock:
                conn = self._connect()
                try:
                    deleted = conn.execute("DELETE FROM audit_logs").rowcount
                    conn.commit()
                finally:
                    conn.close()
        except sqlite3.Error as e:
            raise StoreError("clear audit log", e) from e

        logger.info(f"[AUDIT] Cleared {deleted} log entries")
        return deleted

    def flush(self) -> None:
        """Wait for queued writes (used at shutdown and in tests)."""
        self._executor.submit(lambda: None).result()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
