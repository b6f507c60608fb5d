from __future__ import annotations

import logging
from typing import Dict, Tuple

import telebot
from telebot.apihelper import ApiException

from application.accounts import AccountService
from application.reset_flow import PasswordResetFlow
from application.services import (
    complete_password_reset,
    log_in,
    pay,
    request_password_reset,
    show_balance,
    top_up,
    update_profile,
)
from domain.models import Role
from domain.repositories import NotificationChannel
from interfaces.telegram.command_args import (
    parse_amount_command,
    parse_login_command,
    parse_new_password_command,
    parse_profile_command,
    parse_reset_command,
)


logger = logging.getLogger(__name__)

HELP_TEXT = (
    "/reset <email> <phone> [admin]       - request a password reset code\n"
    "/newpassword <code> <password>       - set a new password with a code\n"
    "/login <email> <password> [admin]    - log in to your account\n"
    "/balance                             - show your balance\n"
    "/topup <amount>                      - add funds to your balance\n"
    "/pay <amount>                        - pay from your balance\n"
    "/profile <name|email|phone> <value>  - update your details\n"
    "/logout                              - log out\n"
)


def create_telegram_bot(
    bot_token: str,
    account_service: AccountService,
    reset_flow: PasswordResetFlow,
    notifier: NotificationChannel,
) -> telebot.TeleBot:
    """
    Configure and return a TeleBot instance wired to the application layer.

    This module contains only Telegram-specific concerns: parsing commands
    and showing the typed outcomes returned by the application services.
    """

    bot = telebot.TeleBot(bot_token)

    # Logged-in chats: chat id -> (account id, role).
    sessions: Dict[int, Tuple[int, Role]] = {}

    def _reply(message, text: str) -> None:
        bot.send_message(message.chat.id, text)

    def _forget(message) -> None:
        # The message holds a password; remove it from the chat history.
        try:
            bot.delete_message(message.chat.id, message.message_id)
        except ApiException:
            logger.warning("Could not delete password message in chat %s", message.chat.id)

    def _session(message):
        session = sessions.get(message.chat.id)
        if session is None:
            _reply(message, "Please /login first.")
        return session

    @bot.message_handler(commands=["start"])
    def handle_start(message):
        _reply(
            message,
            "Welcome to ParkEasy!\n"
            "Use /login to access your account or /reset if you forgot your password.\n"
            "Type /help to see available commands.",
        )

    @bot.message_handler(commands=["help"])
    def handle_help(message):
        _reply(message, HELP_TEXT)

    @bot.message_handler(commands=["reset"])
    def handle_reset(message):
        try:
            email, phone, role = parse_reset_command(message.text)
        except ValueError as exc:
            _reply(message, str(exc))
            return

        result = request_password_reset(email, phone, role, reset_flow, notifier)
        if not result.success:
            _reply(message, result.error_message)
            return
        _reply(message, f"A reset code has been sent to {email}.")

    @bot.message_handler(commands=["newpassword"])
    def handle_new_password(message):
        _forget(message)
        try:
            token, password = parse_new_password_command(message.text)
        except ValueError as exc:
            _reply(message, str(exc))
            return

        result = complete_password_reset(token, password, reset_flow)
        if not result.success:
            _reply(message, result.error_message)
            return
        _reply(message, "Your password has been updated. You can /login now.")

    @bot.message_handler(commands=["login"])
    def handle_login(message):
        _forget(message)
        try:
            email, password, role = parse_login_command(message.text)
        except ValueError as exc:
            _reply(message, str(exc))
            return

        result = log_in(email, password, role, account_service)
        if not result.success:
            _reply(message, result.error_message)
            return

        sessions[message.chat.id] = (result.account_id, result.role)
        _reply(message, f"Welcome back, {result.name}!")

    @bot.message_handler(commands=["logout"])
    def handle_logout(message):
        sessions.pop(message.chat.id, None)
        _reply(message, "You have been logged out.")

    @bot.message_handler(commands=["balance"])
    def handle_balance(message):
        session = _session(message)
        if session is None:
            return

        account_id, role = session
        result = show_balance(account_id, account_service, role)
        if not result.success:
            _reply(message, result.error_message)
            return
        _reply(message, f"Your balance: {result.balance}")

    @bot.message_handler(commands=["profile"])
    def handle_profile(message):
        session = _session(message)
        if session is None:
            return

        try:
            field, value = parse_profile_command(message.text)
        except ValueError as exc:
            _reply(message, str(exc))
            return

        account_id, role = session
        result = update_profile(account_id, account_service, role, **{field: value})
        if not result.success:
            _reply(message, result.error_message)
            return
        _reply(message, f"Your {field} has been updated.")

    @bot.message_handler(commands=["topup", "pay"])
    def handle_transaction(message):
        session = _session(message)
        if session is None:
            return

        try:
            amount = parse_amount_command(message.text)
        except ValueError as exc:
            _reply(message, str(exc))
            return

        account_id, role = session
        op = message.text.split()[0][1:].split("@")[0]  # strip leading '/'
        if op == "topup":
            result = top_up(account_id, amount, account_service, role)
        else:
            result = pay(account_id, amount, account_service, role)

        if not result.success:
            _reply(message, result.error_message)
            return
        _reply(message, f"Done. New balance: {result.balance}")

    return bot
