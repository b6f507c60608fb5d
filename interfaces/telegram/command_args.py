from __future__ import annotations

from typing import List, Tuple


def _arguments(text: str) -> List[str]:
    # Drop the leading "/command" (and any "@botname" suffix telegram adds).
    return (text or "").split()[1:]


def parse_reset_command(text: str) -> Tuple[str, str, str]:
    """
    Parse a reset request.

    Format: /reset <email> <phone> [user|admin]
    """

    args = _arguments(text)
    if len(args) not in (2, 3):
        raise ValueError("Usage: /reset <email> <phone> [user|admin]")

    email, phone = args[0], args[1]
    role = args[2] if len(args) == 3 else "user"
    return email, phone, role


def parse_new_password_command(text: str) -> Tuple[str, str]:
    """
    Parse a reset confirmation.

    Format: /newpassword <token> <password>
    """

    args = _arguments(text)
    if len(args) != 2:
        raise ValueError("Usage: /newpassword <token> <new password>")
    return args[0], args[1]


def parse_login_command(text: str) -> Tuple[str, str, str]:
    """
    Format: /login <email> <password> [user|admin]
    """

    args = _arguments(text)
    if len(args) not in (2, 3):
        raise ValueError("Usage: /login <email> <password> [user|admin]")

    role = args[2] if len(args) == 3 else "user"
    return args[0], args[1], role


def parse_amount_command(text: str) -> str:
    """
    Format: /topup <amount> or /pay <amount>

    The amount is returned as text; the application layer turns it into an
    exact Decimal and rejects anything malformed.
    """

    args = _arguments(text)
    if len(args) != 1:
        raise ValueError("Please enter an amount, e.g. /topup 25.50")
    return args[0]


PROFILE_FIELDS = ("name", "email", "phone")


def parse_profile_command(text: str) -> Tuple[str, str]:
    """
    Format: /profile <name|email|phone> <value>

    A name may contain spaces; everything after the field is the value.
    """

    args = _arguments(text)
    if len(args) < 2 or args[0].lower() not in PROFILE_FIELDS:
        raise ValueError("Usage: /profile <name|email|phone> <value>")

    field = args[0].lower()
    if field != "name" and len(args) != 2:
        raise ValueError(f"Usage: /profile {field} <value>")
    return field, " ".join(args[1:])
