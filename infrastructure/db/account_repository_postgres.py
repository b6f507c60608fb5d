from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import List, Optional

import psycopg2

from domain.errors import AmbiguousAccountError, RepositoryError
from domain.models import Account, Role
from domain.repositories import AccountRepository


logger = logging.getLogger(__name__)

_TABLES = {Role.USER: "users", Role.ADMIN: "admins"}
_COLUMNS = "id, name, phone, email, password_hash, balance"


class PostgresAccountRepository(AccountRepository):
    """
    Postgres-backed implementation of `AccountRepository`.

    Same contract and table layout as `SqliteAccountRepository`, except that
    balances use a NUMERIC(15, 2) column, which psycopg2 maps to Decimal.
    """

    def __init__(self, db_params: dict, connect_timeout: int = 5) -> None:
        self._db_params = dict(db_params)
        self._db_params.setdefault("connect_timeout", connect_timeout)
        self._ensure_tables()

    @contextmanager
    def _get_connection(self):
        try:
            conn = psycopg2.connect(**self._db_params)
        except psycopg2.Error as exc:
            raise RepositoryError(f"Could not connect to Postgres: {exc}") from exc
        try:
            with conn:
                yield conn
        except psycopg2.Error as exc:
            logger.error("Postgres account query failed: %s", exc)
            raise RepositoryError(str(exc)) from exc
        finally:
            conn.close()

    def _ensure_tables(self) -> None:
        """
        Ensure that the `users` and `admins` tables exist.

        Schema (per table):
          - id INTEGER PRIMARY KEY
          - name, phone (UNIQUE), email (UNIQUE), password_hash TEXT
          - balance NUMERIC(15, 2)
        """

        with self._get_connection() as conn:
            with conn.cursor() as cur:
                for table in _TABLES.values():
                    cur.execute(
                        f"""
                        CREATE TABLE IF NOT EXISTS {table} (
                            id INTEGER PRIMARY KEY,
                            name TEXT NOT NULL,
                            phone TEXT NOT NULL UNIQUE,
                            email TEXT NOT NULL UNIQUE,
                            password_hash TEXT NOT NULL,
                            balance NUMERIC(15, 2) NOT NULL DEFAULT 0
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
            with conn.cursor() as cur:
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
        return self._select_one(role, "email = %s AND phone = %s", (email, phone))

    def find_by_email(self, email: str, role: Role) -> Optional[Account]:
        return self._select_one(role, "email = %s", (email,))

    def find_by_phone(self, phone: str, role: Role) -> Optional[Account]:
        return self._select_one(role, "phone = %s", (phone,))

    def get_by_id(self, account_id: int, role: Role) -> Optional[Account]:
        return self._select_one(role, "id = %s", (account_id,))

    def next_id(self, role: Role) -> int:
        table = _TABLES[Role.parse(role)]
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT COALESCE(MAX(id), 0) + 1 FROM {table}")
                return int(cur.fetchone()[0])

    def save(self, account: Account, role: Role) -> None:
        table = _TABLES[Role.parse(role)]
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO {table} ({_COLUMNS})
                    VALUES (%s, %s, %s, %s, %s, %s)
                    ON CONFLICT (id) DO UPDATE SET
                        name = EXCLUDED.name,
                        phone = EXCLUDED.phone,
                        email = EXCLUDED.email,
                        password_hash = EXCLUDED.password_hash,
                        balance = EXCLUDED.balance
                    """,
                    (
                        account.id,
                        account.name,
                        account.phone,
                        account.email,
                        account.password_hash,
                        account.balance,
                    ),
                )
