from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Union

from .errors import InvalidAmountError, ValidationError


EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@(.+)$")
PHONE_PATTERN = re.compile(r"^\d{10,15}$", re.ASCII)
MIN_PASSWORD_LENGTH = 8
MONEY_PLACES = 2
# Largest value a NUMERIC(15, 2) balance column holds.
MAX_MONEY = Decimal("9999999999999.99")
_CENT = Decimal(1).scaleb(-MONEY_PLACES)

Money = Union[Decimal, int, str]


def validate_account_id(account_id) -> int:
    # bool is an int subclass; True is not an id.
    if isinstance(account_id, bool) or not isinstance(account_id, int):
        raise ValidationError("id", "Account id must be an integer.")
    if account_id <= 0:
        raise ValidationError("id", "Account id must be positive.")
    return account_id


def validate_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name", "Name is required.")
    return name


def validate_email(email) -> str:
    if not isinstance(email, str) or not email:
        raise ValidationError("email", "Email is required.")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("email", "Email address is not valid.")
    return email


def validate_phone(phone) -> str:
    if not isinstance(phone, str) or not phone:
        raise ValidationError("phone", "Phone number is required.")
    if not PHONE_PATTERN.match(phone):
        raise ValidationError("phone", "Phone number must be 10 to 15 digits.")
    return phone


def validate_password(password) -> str:
    if not isinstance(password, str) or not password:
        raise ValidationError("password", "Password is required.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            "password",
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.",
        )
    return password


def parse_money(value: Money, field: str = "balance") -> Decimal:
    """
    Convert `value` to an exact Decimal with at most two fractional digits.

    Floats are refused outright: by the time a float reaches us the binary
    rounding has already happened.
    """

    if isinstance(value, (bool, float)) or value is None:
        raise ValidationError(field, "Money values must be Decimal, int or str.")
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(field, f"{value!r} is not a valid amount.") from None
    if not amount.is_finite():
        raise ValidationError(field, "Amount must be a finite number.")
    if amount.as_tuple().exponent < -MONEY_PLACES:
        raise ValidationError(
            field, f"Amount cannot have more than {MONEY_PLACES} decimal places."
        )
    if abs(amount) > MAX_MONEY:
        raise ValidationError(field, f"Amount cannot exceed {MAX_MONEY}.")
    return amount.quantize(_CENT)


def parse_amount(value: Money) -> Decimal:
    """Parse a credit/debit delta, which must be non-negative."""

    amount = parse_money(value, field="amount")
    if amount < 0:
        raise InvalidAmountError()
    return amount
