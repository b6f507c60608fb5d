from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from domain.errors import RepositoryError
from domain.models import ResetRequest, ResetState, Role
from domain.repositories import ResetRequestRepository


logger = logging.getLogger(__name__)

_COLUMNS = (
    "token_hash, subject_email, subject_phone, role, target_account_id, "
    "issued_at, expires_at, consumed, state"
)


def _to_epoch(value: Optional[datetime]) -> Optional[float]:
    return value.timestamp() if value is not None else None


def _from_epoch(value: Optional[float]) -> Optional[datetime]:
    return datetime.fromtimestamp(value, tz=timezone.utc) if value is not None else None


class SqliteResetRequestRepository(ResetRequestRepository):
    """
    SQLite-backed implementation of `ResetRequestRepository`.

    Rows live in a `reset_requests` table keyed by token hash. Timestamps
    are stored as UTC epoch seconds so expiry checks can run inside SQL.
    """

    def __init__(self, db_path: str, timeout: float = 5.0) -> None:
        self._db_path = db_path
        self._timeout = timeout
        self._ensure_table()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        try:
            # Take the write lock at BEGIN so writers queue on the busy timeout.
            conn = sqlite3.connect(
                self._db_path, timeout=self._timeout, isolation_level="IMMEDIATE"
            )
        except sqlite3.Error as exc:
            raise RepositoryError(f"Could not open {self._db_path}: {exc}") from exc
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            logger.error("SQLite reset-request query failed: %s", exc)
            raise RepositoryError(str(exc)) from exc
        finally:
            conn.close()

    def _ensure_table(self) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS reset_requests (
                    token_hash TEXT PRIMARY KEY,
                    subject_email TEXT NOT NULL,
                    subject_phone TEXT NOT NULL,
                    role TEXT NOT NULL,
                    target_account_id INTEGER NOT NULL,
                    issued_at REAL NOT NULL,
                    expires_at REAL NOT NULL,
                    consumed INTEGER NOT NULL DEFAULT 0,
                    state TEXT NOT NULL
                )
                """
            )

    @staticmethod
    def _to_domain(row) -> ResetRequest:
        return ResetRequest(
            token_hash=row[0],
            subject_email=row[1],
            subject_phone=row[2],
            role=Role(row[3]),
            target_account_id=int(row[4]),
            issued_at=_from_epoch(row[5]),
            expires_at=_from_epoch(row[6]),
            consumed=bool(row[7]),
            state=ResetState(row[8]),
        )

    @staticmethod
    def _fetch(cur: sqlite3.Cursor, token_hash: str) -> Optional[ResetRequest]:
        cur.execute(
            f"SELECT {_COLUMNS} FROM reset_requests WHERE token_hash = ?",
            (token_hash,),
        )
        row = cur.fetchone()
        if not row:
            return None
        return SqliteResetRequestRepository._to_domain(row)

    def add(self, request: ResetRequest) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                f"""
                INSERT INTO reset_requests ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    request.token_hash,
                    request.subject_email,
                    request.subject_phone,
                    request.role.value,
                    request.target_account_id,
                    _to_epoch(request.issued_at),
                    _to_epoch(request.expires_at),
                    int(request.consumed),
                    request.state.value,
                ),
            )

    def get(self, token_hash: str) -> Optional[ResetRequest]:
        with self._get_connection() as conn:
            return self._fetch(conn.cursor(), token_hash)

    def claim(self, token_hash: str, now: datetime) -> Optional[ResetRequest]:
        # A single conditional UPDATE: SQLite serializes writers, so only
        # one caller can flip `consumed` from 0 to 1.
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                UPDATE reset_requests
                SET consumed = 1, state = ?
                WHERE token_hash = ?
                  AND consumed = 0
                  AND state = ?
                  AND expires_at > ?
                """,
                (
                    ResetState.CONSUMED.value,
                    token_hash,
                    ResetState.TOKEN_ISSUED.value,
                    now.timestamp(),
                ),
            )
            if cur.rowcount != 1:
                return None
            return self._fetch(cur, token_hash)

    def release(self, token_hash: str) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                UPDATE reset_requests
                SET consumed = 0, state = ?
                WHERE token_hash = ? AND state = ?
                """,
                (ResetState.TOKEN_ISSUED.value, token_hash, ResetState.CONSUMED.value),
            )

    def delete(self, token_hash: str) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute("DELETE FROM reset_requests WHERE token_hash = ?", (token_hash,))

    def purge_expired(self, now: datetime) -> int:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                "DELETE FROM reset_requests WHERE consumed = 1 OR expires_at <= ?",
                (now.timestamp(),),
            )
            return cur.rowcount
