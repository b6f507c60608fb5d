import unittest
from types import SimpleNamespace
from unittest import mock

from application.accounts import AccountService
from application.locking import KeyedLock
from application.reset_flow import PasswordResetFlow
from domain.models import Role
from fakes import (
    FakeClock,
    InMemoryAccountRepository,
    InMemoryResetRequestRepository,
    RecordingNotificationChannel,
    fast_hasher,
)
from interfaces.telegram.handlers import create_telegram_bot


CHAT_ID = 42


class RecordingBot:
    """Stands in for `telebot.TeleBot`, keeping handlers and outgoing calls."""

    def __init__(self, token):
        self.token = token
        self.handlers = {}
        self.sent = []
        self.deleted = []

    def message_handler(self, commands):
        def register(func):
            for command in commands:
                self.handlers[command] = func
            return func

        return register

    def send_message(self, chat_id, text):
        self.sent.append((chat_id, text))

    def delete_message(self, chat_id, message_id):
        self.deleted.append((chat_id, message_id))

    def dispatch(self, text, message_id=1):
        command = text.split()[0][1:]
        message = SimpleNamespace(
            text=text, message_id=message_id, chat=SimpleNamespace(id=CHAT_ID)
        )
        self.handlers[command](message)
        return self.sent[-1][1]


class TelegramHandlerTests(unittest.TestCase):
    def setUp(self) -> None:
        hasher = fast_hasher()
        locks = KeyedLock(timeout=2)
        self.accounts = InMemoryAccountRepository()
        self.account_service = AccountService(self.accounts, hasher, locks)
        flow = PasswordResetFlow(
            self.accounts, InMemoryResetRequestRepository(), hasher, locks, clock=FakeClock()
        )
        self.account_service.register("John Doe", "1234567890", "john@doe.com", "secret123")

        with mock.patch("interfaces.telegram.handlers.telebot.TeleBot", RecordingBot):
            self.bot = create_telegram_bot(
                "token", self.account_service, flow, RecordingNotificationChannel()
            )

    def test_login_message_is_deleted(self):
        reply = self.bot.dispatch("/login john@doe.com secret123", message_id=7)
        self.assertEqual(reply, "Welcome back, John Doe!")
        self.assertEqual(self.bot.deleted, [(CHAT_ID, 7)])

    def test_malformed_login_message_is_deleted_too(self):
        self.bot.dispatch("/login john@doe.com secret123 user extra", message_id=8)
        self.assertEqual(self.bot.deleted, [(CHAT_ID, 8)])

    def test_new_password_message_is_deleted(self):
        self.bot.dispatch("/newpassword bogus-token newpass123", message_id=9)
        self.assertEqual(self.bot.deleted, [(CHAT_ID, 9)])

    def test_profile_requires_login(self):
        self.assertEqual(self.bot.dispatch("/profile name Johnny"), "Please /login first.")

    def test_profile_update(self):
        self.bot.dispatch("/login john@doe.com secret123")
        reply = self.bot.dispatch("/profile name Johnny D.")
        self.assertEqual(reply, "Your name has been updated.")
        self.assertEqual(self.accounts.get_by_id(1, Role.USER).name, "Johnny D.")

        reply = self.bot.dispatch("/profile phone 12")
        self.assertNotIn("updated", reply)
        self.assertEqual(self.accounts.get_by_id(1, Role.USER).phone, "1234567890")


if __name__ == "__main__":
    unittest.main()
