from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, List, Optional

from domain.errors import AmbiguousAccountError, RepositoryError
from domain.models import Account, Role
from domain.repositories import AccountRepository


logger = logging.getLogger(__name__)

_TABLES = {Role.USER: "users", Role.ADMIN: "admins"}
_COLUMNS = "id, name, phone, email, password_hash, balance"


class SqliteAccountRepository(AccountRepository):
    """
    SQLite-backed implementation of `AccountRepository`.

    Users and administrators are kept in separate `users` and `admins`
    tables with the same shape. Balances are stored as TEXT so the exact
    Decimal value survives the round trip. The tables are created if needed.
    """

    def __init__(self, db_path: str, timeout: float = 5.0) -> None:
        self._db_path = db_path
        self._timeout = timeout
        self._ensure_tables()

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
            logger.error("SQLite account query failed: %s", exc)
            raise RepositoryError(str(exc)) from exc
        finally:
            conn.close()

    def _ensure_tables(self) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            for table in _TABLES.values():
                cur.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id INTEGER PRIMARY KEY,
                        name TEXT NOT NULL,
                        phone TEXT NOT NULL UNIQUE,
                        email TEXT NOT NULL UNIQUE,
                        password_hash TEXT NOT NULL,
                        balance TEXT NOT NULL DEFAULT '0.00'
                    )
                    """
                )

    @staticmethod
    def _to_domain(row) -> Account:
        return Account(
            id=int(row[0]),
            name=row[1],
            phone=row[2],
            email=row[3],
            password_hash=row[4],
            balance=row[5],
        )

    def _select(self, role: Role, where: str, params: tuple) -> List[Account]:
        table = _TABLES[Role.parse(role)]
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(f"SELECT {_COLUMNS} FROM {table} WHERE {where}", params)
            return [self._to_domain(row) for row in cur.fetchall()]

    def _select_one(self, role: Role, where: str, params: tuple) -> Optional[Account]:
        rows = self._select(role, where, params)
        if len(rows) > 1:
            raise AmbiguousAccountError()
        return rows[0] if rows else None

    def find_by_email_and_phone(
        self,
        email: str,
        phone: str,
        role: Role,
    ) -> Optional[Account]:
        return self._select_one(role, "email = ? AND phone = ?", (email, phone))

    def find_by_email(self, email: str, role: Role) -> Optional[Account]:
        return self._select_one(role, "email = ?", (email,))

    def find_by_phone(self, phone: str, role: Role) -> Optional[Account]:
        return self._select_one(role, "phone = ?", (phone,))

    def get_by_id(self, account_id: int, role: Role) -> Optional[Account]:
        return self._select_one(role, "id = ?", (account_id,))

    def next_id(self, role: Role) -> int:
        table = _TABLES[Role.parse(role)]
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(f"SELECT COALESCE(MAX(id), 0) + 1 FROM {table}")
            return int(cur.fetchone()[0])

    def save(self, account: Account, role: Role) -> None:
        table = _TABLES[Role.parse(role)]
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                f"""
                INSERT INTO {table} ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    name = excluded.name,
                    phone = excluded.phone,
                    email = excluded.email,
                    password_hash = excluded.password_hash,
                    balance = excluded.balance
                """,
                (
                    account.id,
                    account.name,
                    account.phone,
                    account.email,
                    account.password_hash,
                    str(account.balance),
                ),
            )
