import threading
import unittest
from datetime import timedelta

from application.locking import KeyedLock
from application.passwords import hash_reset_token
from application.reset_flow import PasswordResetFlow
from domain.errors import (
    AccountLookupError,
    InvalidTokenError,
    RepositoryError,
    ValidationError,
)
from domain.models import Account, ResetState, Role
from fakes import (
    FakeClock,
    InMemoryAccountRepository,
    InMemoryResetRequestRepository,
    fast_hasher,
)


class PasswordResetFlowTests(unittest.TestCase):
    def setUp(self) -> None:
        self.hasher = fast_hasher()
        self.clock = FakeClock()
        self.accounts = InMemoryAccountRepository()
        self.requests = InMemoryResetRequestRepository()
        self.flow = PasswordResetFlow(
            self.accounts,
            self.requests,
            self.hasher,
            KeyedLock(timeout=2),
            token_ttl=timedelta(minutes=30),
            clock=self.clock,
        )
        self.accounts.add(
            Account.create(1, "Alice", "1234567890", "a@b.com", "original1", self.hasher)
        )

    def _stored(self, account_id=1, role=Role.USER):
        return self.accounts.get_by_id(account_id, role)

    def test_reset_scenario(self):
        token = self.flow.initiate("a@b.com", "1234567890", "user")
        self.assertTrue(token)

        self.flow.consume(token, "newpass123")
        account = self._stored()
        self.assertTrue(account.verify_password("newpass123", self.hasher))
        self.assertFalse(account.verify_password("original1", self.hasher))

        with self.assertRaises(InvalidTokenError):
            self.flow.consume(token, "other123")
        self.assertTrue(self._stored().verify_password("newpass123", self.hasher))

    def test_token_is_stored_hashed_with_expiry(self):
        token = self.flow.initiate("a@b.com", "1234567890", Role.USER)
        self.assertNotIn(token, self.requests.requests)

        request = self.requests.get(hash_reset_token(token))
        self.assertIs(request.state, ResetState.TOKEN_ISSUED)
        self.assertEqual(request.target_account_id, 1)
        self.assertEqual(request.issued_at, self.clock.now)
        self.assertEqual(request.expires_at, self.clock.now + timedelta(minutes=30))

    def test_wrong_email_raises_lookup_error_and_issues_nothing(self):
        with self.assertRaises(AccountLookupError) as ctx:
            self.flow.initiate("wrong@b.com", "1234567890", "user")
        self.assertEqual(self.requests.requests, {})
        self.assertNotIn("email", str(ctx.exception).lower())

    def test_wrong_phone_gives_the_same_error_as_wrong_email(self):
        with self.assertRaises(AccountLookupError) as by_email:
            self.flow.initiate("wrong@b.com", "1234567890")
        with self.assertRaises(AccountLookupError) as by_phone:
            self.flow.initiate("a@b.com", "0987654321")
        self.assertEqual(str(by_email.exception), str(by_phone.exception))
        self.assertIs(type(by_email.exception), type(by_phone.exception))

    def test_malformed_input_is_rejected_before_lookup(self):
        for email, phone, field in [
            ("not-an-email", "1234567890", "email"),
            ("a@b.com", "12345", "phone"),
            ("a@b.com", "abcdefghij", "phone"),
        ]:
            with self.subTest(email=email, phone=phone):
                with self.assertRaises(ValidationError) as ctx:
                    self.flow.initiate(email, phone, "user")
                self.assertEqual(ctx.exception.field, field)
        self.assertEqual(self.accounts.lookups, 0)

    def test_unknown_role_is_rejected_before_lookup(self):
        with self.assertRaises(ValidationError):
            self.flow.initiate("a@b.com", "1234567890", "superuser")
        self.assertEqual(self.accounts.lookups, 0)

    def test_user_and_admin_pools_are_not_cross_matched(self):
        with self.assertRaises(AccountLookupError):
            self.flow.initiate("a@b.com", "1234567890", "admin")

        self.accounts.add(
            Account.create(1, "Root", "5550001111", "root@b.com", "rootpass1", self.hasher),
            Role.ADMIN,
        )
        with self.assertRaises(AccountLookupError):
            self.flow.initiate("root@b.com", "5550001111", "user")

        token = self.flow.initiate("root@b.com", "5550001111", "admin")
        self.flow.consume(token, "adminpass2")
        self.assertTrue(self._stored(1, Role.ADMIN).verify_password("adminpass2", self.hasher))
        # The user with the same id is untouched.
        self.assertTrue(self._stored(1, Role.USER).verify_password("original1", self.hasher))

    def test_second_initiate_issues_distinct_token_and_keeps_first(self):
        first = self.flow.initiate("a@b.com", "1234567890")
        second = self.flow.initiate("a@b.com", "1234567890")
        self.assertNotEqual(first, second)

        self.flow.consume(first, "firstpass1")
        self.flow.consume(second, "secondpass2")
        self.assertTrue(self._stored().verify_password("secondpass2", self.hasher))

    def test_expired_token_is_rejected(self):
        token = self.flow.initiate("a@b.com", "1234567890")
        self.clock.advance(minutes=30)
        with self.assertRaises(InvalidTokenError):
            self.flow.consume(token, "newpass123")
        self.assertTrue(self._stored().verify_password("original1", self.hasher))

    def test_token_is_valid_just_before_expiry(self):
        token = self.flow.initiate("a@b.com", "1234567890")
        self.clock.advance(minutes=29, seconds=59)
        self.flow.consume(token, "newpass123")

    def test_unknown_or_empty_token_is_rejected(self):
        for token in ["made-up-token", ""]:
            with self.subTest(token=token):
                with self.assertRaises(InvalidTokenError):
                    self.flow.consume(token, "newpass123")

    def test_short_new_password_does_not_burn_the_token(self):
        token = self.flow.initiate("a@b.com", "1234567890")
        with self.assertRaises(ValidationError):
            self.flow.consume(token, "short")
        self.flow.consume(token, "longenough1")

    def test_storage_failure_releases_the_token(self):
        token = self.flow.initiate("a@b.com", "1234567890")
        self.accounts.fail_saves = True
        with self.assertRaises(RepositoryError):
            self.flow.consume(token, "newpass123")
        self.assertTrue(self._stored().verify_password("original1", self.hasher))

        self.accounts.fail_saves = False
        self.flow.consume(token, "newpass123")
        self.assertTrue(self._stored().verify_password("newpass123", self.hasher))

    def test_revoked_token_cannot_be_used(self):
        token = self.flow.initiate("a@b.com", "1234567890")
        self.flow.revoke(token)
        with self.assertRaises(InvalidTokenError):
            self.flow.consume(token, "newpass123")

    def test_purge_expired(self):
        used = self.flow.initiate("a@b.com", "1234567890")
        self.flow.consume(used, "newpass123")
        self.flow.initiate("a@b.com", "1234567890")
        self.clock.advance(minutes=10)
        live = self.flow.initiate("a@b.com", "1234567890")

        self.clock.advance(minutes=25)
        self.assertEqual(self.flow.purge_expired(), 2)
        self.flow.consume(live, "finalpass9")

    def test_concurrent_consume_succeeds_exactly_once(self):
        token = self.flow.initiate("a@b.com", "1234567890")
        outcomes = []
        outcomes_lock = threading.Lock()
        start = threading.Barrier(8)

        def attempt(n):
            start.wait()
            try:
                self.flow.consume(token, f"racepass{n}")
                result = "ok"
            except InvalidTokenError:
                result = "invalid"
            with outcomes_lock:
                outcomes.append(result)

        threads = [threading.Thread(target=attempt, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        self.assertEqual(outcomes.count("ok"), 1)
        self.assertEqual(outcomes.count("invalid"), 7)


if __name__ == "__main__":
    unittest.main()
