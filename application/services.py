from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from domain.errors import (
    AccountCoreError,
    AccountLookupError,
    AuthenticationError,
    DeliveryError,
    InsufficientFundsError,
    InvalidTokenError,
    ValidationError,
)
from domain.models import Role
from domain.repositories import NotificationChannel
from domain.validation import Money

from .accounts import AccountService
from .reset_flow import PasswordResetFlow


logger = logging.getLogger(__name__)


class OutcomeKind(str, enum.Enum):
    OK = "ok"
    VALIDATION_ERROR = "validation_error"
    LOOKUP_FAILED = "lookup_failed"
    INVALID_TOKEN = "invalid_token"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    AUTHENTICATION_FAILED = "authentication_failed"
    DELIVERY_FAILED = "delivery_failed"
    STORAGE_ERROR = "storage_error"


@dataclass
class OperationResult:
    """Generic result type handed to a presentation layer."""

    success: bool
    kind: OutcomeKind = OutcomeKind.OK
    error_message: Optional[str] = None
    field: Optional[str] = None


@dataclass
class LoginResult(OperationResult):
    account_id: Optional[int] = None
    name: Optional[str] = None
    role: Optional[Role] = None


@dataclass
class BalanceResult(OperationResult):
    balance: Optional[Decimal] = None


# Shown for any failed identity check so the message cannot be used to
# discover which accounts exist.
LOOKUP_FAILED_MESSAGE = "We could not verify those details."


def _describe(exc: AccountCoreError) -> Tuple[OutcomeKind, str, Optional[str]]:
    if isinstance(exc, InsufficientFundsError):
        return OutcomeKind.INSUFFICIENT_FUNDS, "Insufficient balance.", exc.field
    if isinstance(exc, ValidationError):
        return OutcomeKind.VALIDATION_ERROR, exc.message, exc.field
    if isinstance(exc, AccountLookupError):
        return OutcomeKind.LOOKUP_FAILED, LOOKUP_FAILED_MESSAGE, None
    if isinstance(exc, InvalidTokenError):
        return OutcomeKind.INVALID_TOKEN, "This reset link is invalid or has expired.", None
    if isinstance(exc, AuthenticationError):
        return OutcomeKind.AUTHENTICATION_FAILED, str(exc), None
    if isinstance(exc, DeliveryError):
        return (
            OutcomeKind.DELIVERY_FAILED,
            "We could not send the reset message. Please try again later.",
            None,
        )
    return OutcomeKind.STORAGE_ERROR, "Something went wrong. Please try again later.", None


def _failure(exc: AccountCoreError, result_type=OperationResult):
    kind, message, field = _describe(exc)
    if kind is OutcomeKind.STORAGE_ERROR:
        logger.error("Operation failed: %s", exc)
    return result_type(success=False, kind=kind, error_message=message, field=field)


def request_password_reset(
    email: str,
    phone: str,
    role,
    flow: PasswordResetFlow,
    notifier: NotificationChannel,
) -> OperationResult:
    """
    Start a password reset and send the token to the account's email.

    A token that cannot be delivered is revoked straight away so that no
    usable token outlives a failed request.
    """

    try:
        token = flow.initiate(email, phone, role)
    except AccountCoreError as exc:
        return _failure(exc)

    try:
        notifier.send(email, token)
    except DeliveryError as exc:
        logger.warning("Reset token delivery failed: %s", exc)
        try:
            flow.revoke(token)
        except AccountCoreError as revoke_exc:
            logger.error("Could not revoke undelivered reset token: %s", revoke_exc)
        return _failure(exc)

    return OperationResult(success=True)


def complete_password_reset(
    token: str,
    new_password: str,
    flow: PasswordResetFlow,
) -> OperationResult:
    try:
        flow.consume(token, new_password)
    except AccountCoreError as exc:
        return _failure(exc)
    return OperationResult(success=True)


def log_in(
    email: str,
    password: str,
    role,
    account_service: AccountService,
) -> LoginResult:
    try:
        role = Role.parse(role)
        account = account_service.authenticate(email, password, role)
    except ValidationError as exc:
        if exc.field == "role":
            return _failure(exc, LoginResult)
        # Don't tell the caller which half of the credentials was malformed.
        return _failure(AuthenticationError(), LoginResult)
    except AccountCoreError as exc:
        return _failure(exc, LoginResult)

    return LoginResult(
        success=True,
        account_id=account.id,
        name=account.name,
        role=role,
    )


def show_balance(
    account_id: int,
    account_service: AccountService,
    role=Role.USER,
) -> BalanceResult:
    try:
        balance = account_service.get_balance(account_id, role)
    except AccountCoreError as exc:
        return _failure(exc, BalanceResult)
    return BalanceResult(success=True, balance=balance)


def top_up(
    account_id: int,
    amount: Money,
    account_service: AccountService,
    role=Role.USER,
) -> BalanceResult:
    try:
        balance = account_service.add_funds(account_id, amount, role)
    except AccountCoreError as exc:
        return _failure(exc, BalanceResult)
    return BalanceResult(success=True, balance=balance)


def pay(
    account_id: int,
    amount: Money,
    account_service: AccountService,
    role=Role.USER,
) -> BalanceResult:
    try:
        balance = account_service.deduct_funds(account_id, amount, role)
    except AccountCoreError as exc:
        return _failure(exc, BalanceResult)
    return BalanceResult(success=True, balance=balance)


def update_profile(
    account_id: int,
    account_service: AccountService,
    role=Role.USER,
    name: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
) -> OperationResult:
    try:
        account_service.update_profile(account_id, role, name=name, email=email, phone=phone)
    except AccountCoreError as exc:
        return _failure(exc)
    return OperationResult(success=True)
