import dataclasses
import threading
from datetime import datetime, timedelta, timezone

from passlib.context import CryptContext

from application.passwords import Argon2PasswordHasher
from domain.errors import AmbiguousAccountError, DeliveryError, RepositoryError
from domain.models import Account, Role
from domain.repositories import (
    AccountRepository,
    NotificationChannel,
    ResetRequestRepository,
)


def fast_hasher() -> Argon2PasswordHasher:
    # Cheap Argon2 parameters so the suite does not spend seconds hashing.
    return Argon2PasswordHasher(
        CryptContext(
            schemes=["argon2"],
            argon2__rounds=1,
            argon2__memory_cost=1024,
            argon2__parallelism=1,
        )
    )


class FakeClock:
    def __init__(self, now=None):
        self.now = now or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class InMemoryAccountRepository(AccountRepository):
    """
    Stores account field tuples rather than live objects, so a change to a
    loaded `Account` only becomes visible after `save`, as with a database.
    """

    def __init__(self):
        self.rows = {Role.USER: {}, Role.ADMIN: {}}
        self.lookups = 0
        self.fail_saves = False
        self._lock = threading.Lock()

    @staticmethod
    def _row(account):
        return (
            account.id,
            account.name,
            account.phone,
            account.email,
            account.password_hash,
            account.balance,
        )

    @staticmethod
    def _to_domain(row):
        return Account(*row)

    def _matching(self, role, predicate):
        with self._lock:
            self.lookups += 1
            rows = [row for row in self.rows[Role.parse(role)].values() if predicate(row)]
        if len(rows) > 1:
            raise AmbiguousAccountError()
        return self._to_domain(rows[0]) if rows else None

    def find_by_email_and_phone(self, email, phone, role):
        return self._matching(role, lambda row: row[3] == email and row[2] == phone)

    def find_by_email(self, email, role):
        return self._matching(role, lambda row: row[3] == email)

    def find_by_phone(self, phone, role):
        return self._matching(role, lambda row: row[2] == phone)

    def get_by_id(self, account_id, role):
        return self._matching(role, lambda row: row[0] == account_id)

    def next_id(self, role):
        with self._lock:
            return max(self.rows[Role.parse(role)], default=0) + 1

    def save(self, account, role):
        if self.fail_saves:
            raise RepositoryError("database is locked")
        with self._lock:
            self.rows[Role.parse(role)][account.id] = self._row(account)

    def add(self, account, role=Role.USER):
        self.save(account, role)
        return account


class InMemoryResetRequestRepository(ResetRequestRepository):
    def __init__(self):
        self.requests = {}
        self.fail_deletes = False
        self._lock = threading.Lock()

    def add(self, request):
        with self._lock:
            self.requests[request.token_hash] = dataclasses.replace(request)

    def get(self, token_hash):
        with self._lock:
            request = self.requests.get(token_hash)
            return dataclasses.replace(request) if request else None

    def claim(self, token_hash, now):
        with self._lock:
            request = self.requests.get(token_hash)
            if request is None or not request.is_usable(now):
                return None
            request.consume(now)
            return dataclasses.replace(request)

    def release(self, token_hash):
        with self._lock:
            self.requests[token_hash].release()

    def delete(self, token_hash):
        if self.fail_deletes:
            raise RepositoryError("database is locked")
        with self._lock:
            self.requests.pop(token_hash, None)

    def purge_expired(self, now):
        with self._lock:
            stale = [
                key
                for key, request in self.requests.items()
                if request.consumed or request.is_expired(now)
            ]
            for key in stale:
                del self.requests[key]
            return len(stale)


class RecordingNotificationChannel(NotificationChannel):
    def __init__(self):
        self.sent = []

    def send(self, email, token):
        self.sent.append((email, token))


class FailingNotificationChannel(NotificationChannel):
    def send(self, email, token):
        raise DeliveryError("SMTP relay refused connection")
