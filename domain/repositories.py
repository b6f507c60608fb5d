from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from .models import Account, ResetRequest, Role


class AccountRepository(Protocol):
    """
    Abstraction over account persistence.

    Implementations are responsible for:
    - Mapping between database rows and the `Account` domain model.
    - Keeping the user and admin pools apart: every call names its `role`.
    - Wrapping driver failures (and timeouts) in `RepositoryError`.
    """

    def find_by_email_and_phone(
        self,
        email: str,
        phone: str,
        role: Role,
    ) -> Optional[Account]:
        """
        Return the single account whose email and phone both match, or None.

        Raises `AmbiguousAccountError` if more than one row matches.
        """

        ...

    def find_by_email(self, email: str, role: Role) -> Optional[Account]:
        ...

    def find_by_phone(self, phone: str, role: Role) -> Optional[Account]:
        ...

    def get_by_id(self, account_id: int, role: Role) -> Optional[Account]:
        ...

    def next_id(self, role: Role) -> int:
        """Return an id not yet used in the pool for `role`."""

        ...

    def save(self, account: Account, role: Role) -> None:
        """
        Insert or update `account`.

        Implementations should write all fields in one atomic statement.
        """

        ...


class ResetRequestRepository(Protocol):
    """
    Storage for issued password-reset tokens, keyed by token hash.
    """

    def add(self, request: ResetRequest) -> None:
        ...

    def get(self, token_hash: str) -> Optional[ResetRequest]:
        ...

    def claim(self, token_hash: str, now: datetime) -> Optional[ResetRequest]:
        """
        Atomically mark the request consumed and return it.

        Returns None if the token is unknown, expired or already consumed.
        Of several concurrent callers for the same token at most one gets
        a request back.
        """

        ...

    def release(self, token_hash: str) -> None:
        """Return a claimed request to the issued state."""

        ...

    def delete(self, token_hash: str) -> None:
        ...

    def purge_expired(self, now: datetime) -> int:
        """Drop expired or consumed requests; return how many were removed."""

        ...


class NotificationChannel(Protocol):
    """Delivers a reset token to the account holder."""

    def send(self, email: str, token: str) -> None:
        """Raise `DeliveryError` if the message could not be handed off."""

        ...


class PasswordHasher(Protocol):
    def hash(self, password: str) -> str:
        ...

    def verify(self, password: str, password_hash: str) -> bool:
        """Compare in constant time; return False for malformed hashes."""

        ...
