"""
SQLite credential and user store.

Thread-safe store for user profiles and their credential records
(password hash, lockout state, pending one-time code).
"""

import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Union

import bcrypt
from loguru import logger

from ..access.policies import Role
from ..errors import IdentifierTaken, StoreError, UserNotFound
from .models import Actor, CredentialRecord, UserAccount


_USER_COLUMNS = (
    "user_id, name, email, password_hash, role, department, location, "
    "employment_status, is_active, failed_attempts, is_locked, otp_code, "
    "otp_expires_at, created_at"
)


def hash_password(password: str) -> str:
    """Bcrypt hash; bcrypt only reads the first 72 bytes."""
    password_bytes = password.encode("utf-8")[:72]
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt()).decode("utf-8")


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class UserDatabase:
    """
    Thread-safe user database.

    Manages users and their credential state using SQLite.
    All operations are protected by threading.RLock; each opens its own
    connection.
    """

    def __init__(self, db_path: Union[Path, str]):
        """
        Initialize database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self._init_db()

    @contextmanager
    def _cursor(self, operation: str) -> Iterator[sqlite3.Cursor]:
        """Connection-per-operation cursor; sqlite errors become StoreError."""
        with self._lock:
            try:
                conn = sqlite3.connect(str(self.db_path))
            except sqlite3.Error as e:
                raise StoreError(operation, e) from e
            try:
                cursor = conn.cursor()
                yield cursor
                conn.commit()
            except sqlite3.IntegrityError:
                conn.rollback()
                raise
            except sqlite3.Error as e:
                conn.rollback()
                logger.error(f"[STORE] {operation} failed: {e}")
                raise StoreError(operation, e) from e
            finally:
                conn.close()

    def _init_db(self):
        """Create tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._cursor("init users") as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT UNIQUE NOT NULL,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'Employee',
                    department TEXT,
                    location TEXT,
                    employment_status TEXT NOT NULL DEFAULT 'Full-Time',
                    is_active INTEGER NOT NULL DEFAULT 1,
                    failed_attempts INTEGER NOT NULL DEFAULT 0,
                    is_locked INTEGER NOT NULL DEFAULT 0,
                    otp_code TEXT,
                    otp_expires_at TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_users_email ON users(email)")

        logger.info(f"User database initialized: {self.db_path}")

    # ========================================================================
    # Row mapping
    # ========================================================================

    @staticmethod
    def _credential_from_row(row) -> CredentialRecord:
        return CredentialRecord(
            actor_id=row[0],
            identifier=row[2],
            password_hash=row[3],
            role=Role(row[4]),
            is_active=bool(row[8]),
            failed_attempt_count=row[9],
            lockout_flag=bool(row[10]),
            otp_code=row[11],
            otp_expiry=_parse_ts(row[12]),
        )

    @staticmethod
    def _account_from_row(row) -> UserAccount:
        return UserAccount(
            user_id=row[0],
            name=row[1],
            email=row[2],
            role=Role(row[4]),
            department=row[5],
            location=row[6],
            employment_status=row[7],
            is_active=bool(row[8]),
            is_locked=bool(row[10]),
            created_at=_parse_ts(row[13]),
        )

    def _fetch_one(self, where: str, value: str, operation: str):
        with self._cursor(operation) as cursor:
            cursor.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE {where} = ?", (value,))
            return cursor.fetchone()

    # ========================================================================
    # User Operations
    # ========================================================================

    def create_user(
        self,
        name: str,
        email: str,
        password: str,
        role: Role = Role.EMPLOYEE,
        department: Optional[str] = None,
        location: Optional[str] = None,
        employment_status: str = "Full-Time",
    ) -> UserAccount:
        """
        Create new user with hashed password.

        Args:
            name: Display name
            email: Unique login identifier
            password: Plain text password (will be hashed)
            role: RBAC role
            department: Department
            location: Office location
            employment_status: Employment status

        Returns:
            Created UserAccount

        Raises:
            IdentifierTaken: If the email is already registered
        """
        account = UserAccount(
            user_id=str(uuid.uuid4()),
            name=name,
            email=email,
            role=Role(role),
            department=department,
            location=location,
            employment_status=employment_status,
            is_active=True,
            is_locked=False,
            created_at=datetime.now(timezone.utc),
        )

        try:
            with self._cursor("create user") as cursor:
                cursor.execute("""
                    INSERT INTO users (user_id, name, email, password_hash, role, department,
                                       location, employment_status, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    account.user_id,
                    account.name,
                    account.email,
                    hash_password(password),
                    account.role.value,
                    account.department,
                    account.location,
                    account.employment_status,
                    account.created_at.isoformat(),
                ))
        except sqlite3.IntegrityError:
            raise IdentifierTaken(f"User already exists: {email}") from None

        logger.info(f"User created: {email} ({account.user_id}) with role: {account.role.value}")
        return account

    def get_user(self, user_id: str) -> Optional[UserAccount]:
        row = self._fetch_one("user_id", user_id, "get user")
        return self._account_from_row(row) if row else None

    def get_actor(self, user_id: str) -> Optional[Actor]:
        """
        Load the attributes access checks need.

        Args:
            user_id: User ID

        Returns:
            Actor if found, None otherwise
        """
        row = self._fetch_one("user_id", user_id, "get actor")
        if not row:
            return None
        return Actor(
            id=row[0],
            role=Role(row[4]),
            department=row[5],
            location=row[6],
            employment_status=row[7] or "Full-Time",
        )

    def list_users(self) -> List[UserAccount]:
        """
        Get all users.

        Returns:
            List of all UserAccount objects, ordered by email
        """
        with self._cursor("list users") as cursor:
            cursor.execute(f"SELECT {_USER_COLUMNS} FROM users ORDER BY email")
            rows = cursor.fetchall()
        return [self._account_from_row(row) for row in rows]

    def _update_field(self, user_id: str, column: str, value) -> UserAccount:
        with self._cursor(f"update {column}") as cursor:
            cursor.execute(f"UPDATE users SET {column} = ? WHERE user_id = ?", (value, user_id))
            updated = cursor.rowcount > 0
        if not updated:
            raise UserNotFound(user_id)
        logger.info(f"User {user_id}: {column} updated")
        return self.get_user(user_id)

    def update_role(self, user_id: str, role: Role) -> UserAccount:
        return self._update_field(user_id, "role", Role(role).value)

    def update_department(self, user_id: str, department: str) -> UserAccount:
        return self._update_field(user_id, "department", department)

    def update_employment_status(self, user_id: str, employment_status: str) -> UserAccount:
        return self._update_field(user_id, "employment_status", employment_status)

    def set_active(self, user_id: str, active: bool) -> UserAccount:
        return self._update_field(user_id, "is_active", 1 if active else 0)

    def delete_user(self, user_id: str) -> bool:
        """
        Delete user.

        Args:
            user_id: User ID to delete

        Returns:
            True if a user was deleted
        """
        with self._cursor("delete user") as cursor:
            cursor.execute("DELETE FROM users WHERE user_id = ?", (user_id,))
            success = cursor.rowcount > 0

        if success:
            logger.info(f"User deleted: {user_id}")
        return success

    # ========================================================================
    # Credential Operations
    # ========================================================================

    def get_credential_by_identifier(self, identifier: str) -> Optional[CredentialRecord]:
        """
        Get credential record by login identifier.

        Returns:
            CredentialRecord if found, None otherwise
        """
        row = self._fetch_one("email", identifier, "get credential")
        return self._credential_from_row(row) if row else None

    def get_credential_by_id(self, actor_id: str) -> Optional[CredentialRecord]:
        row = self._fetch_one("user_id", actor_id, "get credential")
        return self._credential_from_row(row) if row else None

    def save_credential(self, record: CredentialRecord) -> None:
        """
        Persist the mutable credential fields.

        Args:
            record: Record to write back

        Raises:
            UserNotFound: If the user no longer exists
            StoreError: On database failure
        """
        with self._cursor("save credential") as cursor:
            cursor.execute("""
                UPDATE users
                SET failed_attempts = ?, is_locked = ?, otp_code = ?, otp_expires_at = ?
                WHERE user_id = ?
            """, (
                record.failed_attempt_count,
                1 if record.lockout_flag else 0,
                record.otp_code,
                record.otp_expiry.isoformat() if record.otp_expiry else None,
                record.actor_id,
            ))
            updated = cursor.rowcount > 0

        if not updated:
            raise UserNotFound(record.actor_id)

    def verify_password(self, record: CredentialRecord, password: str) -> bool:
        """
        Verify password against the record's hash.

        Args:
            record: Credential record
            password: Plain text password to verify

        Returns:
            True if password matches, False otherwise
        """
        if not record.password_hash:
            return False
        try:
            return bcrypt.checkpw(
                password.encode("utf-8")[:72],
                record.password_hash.encode("utf-8"),
            )
        except ValueError as e:
            logger.error(f"Stored hash for {record.actor_id} is unusable: {e}")
            return False
