from __future__ import annotations

from typing import Optional


class AccountCoreError(Exception):
    """Base class for every error the account core reports to its callers."""


class ValidationError(AccountCoreError):
    """
    Malformed or missing input.

    `field` names the offending input so the presentation layer can point
    the user at it.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class InvalidAmountError(ValidationError):
    """A credit or debit was requested with a negative amount."""

    def __init__(self, message: str = "Amount must not be negative.") -> None:
        super().__init__("amount", message)


class InsufficientFundsError(ValidationError):
    """A debit would take the balance below zero."""

    def __init__(self, balance, amount) -> None:
        super().__init__(
            "amount",
            f"Insufficient funds. Balance: {balance}, Required: {amount}",
        )
        self.balance = balance
        self.amount = amount


class AccountLookupError(AccountCoreError, LookupError):
    """
    No account (or more than one) matched the supplied identity.

    Deliberately carries no field information: callers must not be able to
    tell whether the email or the phone was wrong.
    """

    def __init__(self, message: str = "No matching account.") -> None:
        super().__init__(message)


class AmbiguousAccountError(AccountLookupError):
    pass


class AccountNotFoundError(AccountLookupError):
    def __init__(self, account_id: Optional[int] = None) -> None:
        super().__init__("Account not found.")
        self.account_id = account_id


class InvalidTokenError(AccountCoreError):
    def __init__(self, message: str = "Invalid or expired token.") -> None:
        super().__init__(message)


class AuthenticationError(AccountCoreError):
    def __init__(self, message: str = "Invalid email or password.") -> None:
        super().__init__(message)


class RepositoryError(AccountCoreError):
    """Storage failed or timed out."""


class DeliveryError(AccountCoreError):
    """The notification channel could not deliver a message."""
