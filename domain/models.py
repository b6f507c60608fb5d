from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from .errors import InsufficientFundsError, InvalidTokenError, ValidationError
from .validation import (
    MAX_MONEY,
    Money,
    parse_amount,
    parse_money,
    validate_account_id,
    validate_email,
    validate_name,
    validate_password,
    validate_phone,
)

if TYPE_CHECKING:
    from .repositories import PasswordHasher


class Role(str, enum.Enum):
    """
    Which account pool an operation targets.

    Users and administrators live in disjoint namespaces; an email/phone
    pair registered as a user never matches an administrator and vice versa.
    """

    USER = "user"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value) -> "Role":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValidationError("role", f"Unknown role: {value!r}")


class Account:
    """
    Domain representation of a ParkEasy user or administrator.

    Every field is validated on construction and on assignment, so an
    `Account` instance is never observed in an invalid state. The password
    is only ever held as a salted hash produced by a `PasswordHasher`.

    Two accounts compare equal when their id, email and phone match; the
    remaining fields are ignored so that a freshly loaded copy of an account
    still matches the one held by a caller.
    """

    def __init__(
        self,
        id: int,
        name: str,
        phone: str,
        email: str,
        password_hash: str,
        balance: Money = Decimal("0"),
    ) -> None:
        self._id = validate_account_id(id)
        self._name = validate_name(name)
        self._phone = validate_phone(phone)
        self._email = validate_email(email)
        if not isinstance(password_hash, str) or not password_hash:
            raise ValidationError("password", "Password hash is required.")
        self._password_hash = password_hash
        balance = parse_money(balance)
        if balance < 0:
            raise ValidationError("balance", "Balance cannot be negative.")
        self._balance = balance

    @classmethod
    def create(
        cls,
        id: int,
        name: str,
        phone: str,
        email: str,
        password: str,
        hasher: "PasswordHasher",
        balance: Money = Decimal("0"),
    ) -> "Account":
        """Build a new account from a plaintext password."""

        validate_password(password)
        return cls(
            id=id,
            name=name,
            phone=phone,
            email=email,
            password_hash=hasher.hash(password),
            balance=balance,
        )

    # -- identity -------------------------------------------------------

    @property
    def id(self) -> int:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        self._name = validate_name(value)

    @property
    def phone(self) -> str:
        return self._phone

    @phone.setter
    def phone(self, value: str) -> None:
        self._phone = validate_phone(value)

    @property
    def email(self) -> str:
        return self._email

    @email.setter
    def email(self, value: str) -> None:
        self._email = validate_email(value)

    # -- credential -----------------------------------------------------

    @property
    def password_hash(self) -> str:
        return self._password_hash

    def set_password(self, password: str, hasher: "PasswordHasher") -> None:
        validate_password(password)
        self._password_hash = hasher.hash(password)

    def verify_password(self, password: str, hasher: "PasswordHasher") -> bool:
        if not isinstance(password, str):
            return False
        return hasher.verify(password, self._password_hash)

    # -- balance --------------------------------------------------------

    @property
    def balance(self) -> Decimal:
        return self._balance

    def credit(self, amount: Money) -> Decimal:
        balance = self._balance + parse_amount(amount)
        if balance > MAX_MONEY:
            raise ValidationError("amount", f"Balance cannot exceed {MAX_MONEY}.")
        self._balance = balance
        return self._balance

    def debit(self, amount: Money) -> Decimal:
        delta = parse_amount(amount)
        if delta > self._balance:
            raise InsufficientFundsError(self._balance, delta)
        self._balance = self._balance - delta
        return self._balance

    def has_sufficient_funds(self, amount: Money) -> bool:
        return parse_amount(amount) <= self._balance

    # -- comparison -----------------------------------------------------

    def _key(self):
        return (self._id, self._email, self._phone)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Account):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __repr__(self) -> str:
        return (
            f"<Account(id={self._id}, name={self._name!r}, email={self._email!r}, "
            f"balance={self._balance})>"
        )


class ResetState(str, enum.Enum):
    INITIATED = "initiated"
    TOKEN_ISSUED = "token_issued"
    CONSUMED = "consumed"
    FAILED = "failed"


@dataclass
class ResetRequest:
    """
    One password-reset handshake.

    Only the SHA-256 hash of the token is kept; the raw token is handed to
    the caller once, at issue time, and never stored.
    """

    subject_email: str
    subject_phone: str
    role: Role
    state: ResetState = ResetState.INITIATED
    target_account_id: Optional[int] = None
    token_hash: Optional[str] = None
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    consumed: bool = field(default=False)

    def issue(
        self,
        account_id: int,
        token_hash: str,
        issued_at: datetime,
        ttl: timedelta,
    ) -> None:
        if self.state is not ResetState.INITIATED:
            raise ValueError(f"Cannot issue a token from state {self.state.value}")
        self.target_account_id = account_id
        self.token_hash = token_hash
        self.issued_at = issued_at
        self.expires_at = issued_at + ttl
        self.state = ResetState.TOKEN_ISSUED

    def fail(self) -> None:
        if self.state is not ResetState.INITIATED:
            raise ValueError(f"Cannot fail a request in state {self.state.value}")
        self.state = ResetState.FAILED

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def is_usable(self, now: datetime) -> bool:
        return (
            self.state is ResetState.TOKEN_ISSUED
            and not self.consumed
            and not self.is_expired(now)
        )

    def consume(self, now: datetime) -> None:
        if not self.is_usable(now):
            raise InvalidTokenError()
        self.consumed = True
        self.state = ResetState.CONSUMED

    def release(self) -> None:
        """Undo `consume` after the password write could not be persisted."""

        if self.state is not ResetState.CONSUMED:
            raise ValueError(f"Cannot release a request in state {self.state.value}")
        self.consumed = False
        self.state = ResetState.TOKEN_ISSUED
