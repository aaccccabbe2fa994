"""
Leave request store.

SQLite persistence for leave requests. Also serves the minimal resource
snapshot the access checks read (classification, owner, delegated access).
"""

import json
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from loguru import logger

from .access.policies import Classification
from .errors import MalformedIdentifier, ResourceNotFound, StoreError


class LeaveType(str, Enum):
    ANNUAL = "Annual"
    SICK = "Sick"
    EMERGENCY = "Emergency"
    MATERNITY = "Maternity"
    UNPAID = "Unpaid"


class LeaveStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


@dataclass(frozen=True)
class ResourceSnapshot:
    """
    Fields of a protected resource that access checks read.

    Attributes:
        id: Resource id
        classification: Sensitivity label
        owner: Owning actor id
        delegated_access: Actor ids the owner granted access to
        department: Owner's department, when known
    """
    id: str
    classification: Classification
    owner: Optional[str]
    delegated_access: Tuple[str, ...] = ()
    department: Optional[str] = None


@dataclass
class LeaveRequest:
    """
    A leave request.

    Attributes:
        id: Request UUID
        employee: Requesting user id (owner)
        start_date: First day of leave
        end_date: Last day of leave
        type: Leave type
        reason: Free-text reason
        status: Pending, Approved or Rejected
        sensitivity: Classification used by MAC
        allowed_users: User ids granted access by the owner (DAC)
        approved_by: Approver id
        approved_at: Approval/rejection timestamp
        created_at: Creation timestamp
    """
    id: str
    employee: str
    start_date: date
    end_date: date
    type: LeaveType
    reason: str
    status: LeaveStatus = LeaveStatus.PENDING
    sensitivity: Classification = Classification.INTERNAL
    allowed_users: List[str] = field(default_factory=list)
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def days(self) -> int:
        """Length of the leave in calendar days, both ends inclusive."""
        return (self.end_date - self.start_date).days + 1

    @property
    def span_days(self) -> int:
        """Days from start_date to end_date (0 for a single-day leave)."""
        return (self.end_date - self.start_date).days

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee": self.employee,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "type": self.type.value,
            "reason": self.reason,
            "status": self.status.value,
            "sensitivity": self.sensitivity.value,
            "allowed_users": list(self.allowed_users),
            "approved_by": self.approved_by,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


_LEAVE_COLUMNS = (
    "id, employee, start_date, end_date, type, reason, status, sensitivity, "
    "allowed_users, approved_by, approved_at, created_at"
)


def _check_id(leave_id: str) -> str:
    try:
        return str(uuid.UUID(str(leave_id)))
    except ValueError:
        raise MalformedIdentifier(leave_id) from None


class LeaveStore:
    """
    Thread-safe leave request store.

    Shares the SQLite file with UserDatabase; all operations are protected by
    threading.RLock and open their own connection.
    """

    def __init__(self, db_path: Union[Path, str]):
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self._init_db()

    @contextmanager
    def _cursor(self, operation: str) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            try:
                conn = sqlite3.connect(str(self.db_path))
            except sqlite3.Error as e:
                raise StoreError(operation, e) from e
            try:
                cursor = conn.cursor()
                yield cursor
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                logger.error(f"[STORE] {operation} failed: {e}")
                raise StoreError(operation, e) from e
            finally:
                conn.close()

    def _init_db(self):
        """Create tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._cursor("init leave_requests") as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS leave_requests (
                    id TEXT PRIMARY KEY,
                    employee TEXT NOT NULL,
                    start_date TEXT NOT NULL,
                    end_date TEXT NOT NULL,
                    type TEXT NOT NULL,
                    reason TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'Pending',
                    sensitivity TEXT NOT NULL DEFAULT 'Internal',
                    allowed_users TEXT NOT NULL DEFAULT '[]',
                    approved_by TEXT,
                    approved_at TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_leave_employee ON leave_requests(employee)"
            )

        logger.info(f"Leave store initialized: {self.db_path}")

    @staticmethod
    def _from_row(row) -> LeaveRequest:
        return LeaveRequest(
            id=row[0],
            employee=row[1],
            start_date=date.fromisoformat(row[2]),
            end_date=date.fromisoformat(row[3]),
            type=LeaveType(row[4]),
            reason=row[5],
            status=LeaveStatus(row[6]),
            sensitivity=Classification(row[7]),
            allowed_users=json.loads(row[8] or "[]"),
            approved_by=row[9],
            approved_at=datetime.fromisoformat(row[10]) if row[10] else None,
            created_at=datetime.fromisoformat(row[11]) if row[11] else None,
        )

    # ========================================================================
    # Queries
    # ========================================================================

    def get(self, leave_id: str) -> LeaveRequest:
        """
        Load a leave request.

        Raises:
            MalformedIdentifier: If the id is not a UUID
            ResourceNotFound: If no such request exists
        """
        leave_id = _check_id(leave_id)
        with self._cursor("get leave") as cursor:
            cursor.execute(f"SELECT {_LEAVE_COLUMNS} FROM leave_requests WHERE id = ?", (leave_id,))
            row = cursor.fetchone()
        if not row:
            raise ResourceNotFound("leave", leave_id)
        return self._from_row(row)

    def get_resource_snapshot(self, leave_id: str, department: Optional[str] = None) -> ResourceSnapshot:
        """
        Snapshot of the access-relevant fields of a leave request.

        Args:
            leave_id: Leave request id
            department: Owner's department, if the caller already knows it

        Raises:
            MalformedIdentifier: If the id is not a UUID
            ResourceNotFound: If no such request exists
        """
        leave = self.get(leave_id)
        return ResourceSnapshot(
            id=leave.id,
            classification=leave.sensitivity,
            owner=leave.employee,
            delegated_access=tuple(dict.fromkeys(leave.allowed_users)),
            department=department,
        )

    def list_for(self, employee: str) -> List[LeaveRequest]:
        """Requests owned by an employee, newest first."""
        with self._cursor("list leaves") as cursor:
            cursor.execute(
                f"SELECT {_LEAVE_COLUMNS} FROM leave_requests WHERE employee = ? ORDER BY created_at DESC",
                (employee,),
            )
            rows = cursor.fetchall()
        return [self._from_row(row) for row in rows]

    # ========================================================================
    # Mutations
    # ========================================================================

    def create(
        self,
        employee: str,
        start_date: date,
        end_date: date,
        leave_type: LeaveType,
        reason: str,
        sensitivity: Classification = Classification.INTERNAL,
    ) -> LeaveRequest:
        """
        Create a pending leave request.

        Raises:
            ValueError: If end_date is before start_date
        """
        if end_date < start_date:
            raise ValueError("end_date must not be before start_date")

        leave = LeaveRequest(
            id=str(uuid.uuid4()),
            employee=employee,
            start_date=start_date,
            end_date=end_date,
            type=LeaveType(leave_type),
            reason=reason,
            sensitivity=Classification(sensitivity),
            created_at=datetime.now(timezone.utc),
        )
        self._write(leave, insert=True)
        logger.info(f"Leave {leave.id} created by {employee} ({leave.days} days)")
        return leave

    def update(self, leave: LeaveRequest) -> LeaveRequest:
        self._write(leave, insert=False)
        return leave

    def set_status(self, leave_id: str, status: LeaveStatus, decided_by: str) -> LeaveRequest:
        leave = self.get(leave_id)
        leave.status = LeaveStatus(status)
        leave.approved_by = decided_by
        leave.approved_at = datetime.now(timezone.utc)
        self._write(leave, insert=False)
        logger.info(f"Leave {leave.id} {leave.status.value.lower()} by {decided_by}")
        return leave

    def share(self, leave_id: str, user_id: str) -> LeaveRequest:
        """Grant a user access to a request (idempotent)."""
        leave = self.get(leave_id)
        if user_id not in leave.allowed_users:
            leave.allowed_users.append(user_id)
            self._write(leave, insert=False)
        return leave

    def _write(self, leave: LeaveRequest, insert: bool) -> None:
        values = (
            leave.employee,
            leave.start_date.isoformat(),
            leave.end_date.isoformat(),
            leave.type.value,
            leave.reason,
            leave.status.value,
            leave.sensitivity.value,
            json.dumps(leave.allowed_users),
            leave.approved_by,
            leave.approved_at.isoformat() if leave.approved_at else None,
            leave.created_at.isoformat() if leave.created_at else datetime.now(timezone.utc).isoformat(),
        )
        with self._cursor("write leave") as cursor:
            if insert:
                cursor.execute(
                    f"INSERT INTO leave_requests ({_LEAVE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (leave.id,) + values,
                )
            else:
                cursor.execute("""
                    UPDATE leave_requests
                    SET employee = ?, start_date = ?, end_date = ?, type = ?, reason = ?, status = ?,
                        sensitivity = ?, allowed_users = ?, approved_by = ?, approved_at = ?, created_at = ?
                    WHERE id = ?
                """, values + (leave.id,))
                if cursor.rowcount == 0:
                    raise ResourceNotFound("leave", leave.id)
