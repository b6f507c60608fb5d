from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from domain.errors import (
    AccountLookupError,
    AmbiguousAccountError,
    InvalidTokenError,
    RepositoryError,
)
from domain.models import Account, ResetRequest, Role
from domain.repositories import AccountRepository, PasswordHasher, ResetRequestRepository
from domain.validation import validate_email, validate_password, validate_phone

from .locking import KeyedLock
from .passwords import generate_reset_token, hash_reset_token


logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL = timedelta(minutes=30)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PasswordResetFlow:
    """
    Two-phase password reset: prove identity, then exchange a token.

    `initiate` checks that an email/phone pair belongs to exactly one account
    in the requested pool and issues a single-use token bound to that
    account. `consume` trades the token for a new password. Delivering the
    token to the account holder is the caller's job.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        requests: ResetRequestRepository,
        hasher: PasswordHasher,
        locks: KeyedLock,
        token_ttl: timedelta = DEFAULT_TOKEN_TTL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._accounts = accounts
        self._requests = requests
        self._hasher = hasher
        self._locks = locks
        self._token_ttl = token_ttl
        self._clock = clock

    def initiate(self, email: str, phone: str, role: Role = Role.USER) -> str:
        """
        Issue a reset token for the account matching `email` and `phone`.

        Input is validated before the repository is touched. Raises
        `AccountLookupError` when nothing (or more than one account) matches;
        the error never says which of the two fields was wrong.
        """

        role = Role.parse(role)
        validate_email(email)
        validate_phone(phone)

        request = ResetRequest(subject_email=email, subject_phone=phone, role=role)
        try:
            account = self._accounts.find_by_email_and_phone(email, phone, role)
        except AmbiguousAccountError:
            logger.error("Several %s accounts share one email/phone pair", role.value)
            account = None

        if account is None:
            request.fail()
            logger.warning("Password reset lookup failed for a %s account", role.value)
            raise AccountLookupError()

        token = generate_reset_token()
        request.issue(
            account_id=account.id,
            token_hash=hash_reset_token(token),
            issued_at=self._clock(),
            ttl=self._token_ttl,
        )
        self._requests.add(request)

        logger.info(
            "Password reset token issued for %s account %s, expires %s",
            role.value,
            account.id,
            request.expires_at.isoformat(),
        )
        return token

    def consume(self, token: str, new_password: str) -> Account:
        """
        Set a new password for the account the token was issued to.

        Raises `InvalidTokenError` if the token is unknown, expired or
        already used. Each token succeeds at most once, even under
        concurrent calls.
        """

        validate_password(new_password)
        if not isinstance(token, str) or not token:
            raise InvalidTokenError()

        token_hash = hash_reset_token(token)
        request = self._requests.claim(token_hash, self._clock())
        if request is None:
            logger.warning("Rejected unknown, expired or used reset token")
            raise InvalidTokenError()

        key = (request.role, request.target_account_id)
        try:
            with self._locks.hold(key):
                account = self._accounts.get_by_id(request.target_account_id, request.role)
                if account is None:
                    raise InvalidTokenError("The account for this token no longer exists.")
                account.set_password(new_password, self._hasher)
                self._accounts.save(account, request.role)
        except RepositoryError:
            logger.exception(
                "Could not store new password for account %s", request.target_account_id
            )
            self._requests.release(token_hash)
            raise

        logger.info(
            "Password reset completed for %s account %s",
            request.role.value,
            account.id,
        )
        return account

    def revoke(self, token: str) -> None:
        """Invalidate an issued token, e.g. because it could not be delivered."""

        self._requests.delete(hash_reset_token(token))

    def purge_expired(self) -> int:
        removed = self._requests.purge_expired(self._clock())
        if removed:
            logger.info("Purged %d stale reset requests", removed)
        return removed
