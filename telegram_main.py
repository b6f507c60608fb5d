import logging

from application.accounts import AccountService
from application.locking import KeyedLock
from application.passwords import Argon2PasswordHasher
from application.reset_flow import PasswordResetFlow
from config import Settings, load_settings
from infrastructure.db.reset_request_repository_sqlite import SqliteResetRequestRepository
from infrastructure.notifications.email_channel import (
    LoggingNotificationChannel,
    SendGridNotificationChannel,
)
from interfaces.telegram.handlers import create_telegram_bot


logger = logging.getLogger(__name__)


def build_account_repository(settings: Settings):
    if settings.db_backend == "postgres":
        # Imported lazily so psycopg2 is only needed when Postgres is used.
        from infrastructure.db.account_repository_postgres import PostgresAccountRepository

        return PostgresAccountRepository(settings.postgres_params)

    from infrastructure.db.account_repository_sqlite import SqliteAccountRepository

    return SqliteAccountRepository(settings.db_path, timeout=settings.lock_timeout_seconds)


def build_notifier(settings: Settings):
    if settings.email_configured:
        return SendGridNotificationChannel(
            settings.sendgrid_api_key,
            settings.mail_from_email,
            ttl_minutes=int(settings.reset_token_ttl.total_seconds() // 60),
        )
    logger.warning("SENDGRID_API_KEY or MAIL_FROM_EMAIL not set; reset codes go to the log.")
    return LoggingNotificationChannel()


def main() -> None:
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if not settings.telegram_token:
        raise RuntimeError("TELEGRAM_TOKEN environment variable is not set.")

    hasher = Argon2PasswordHasher()
    locks = KeyedLock(timeout=settings.lock_timeout_seconds)
    accounts = build_account_repository(settings)
    requests = SqliteResetRequestRepository(settings.db_path, timeout=settings.lock_timeout_seconds)

    account_service = AccountService(accounts, hasher, locks)
    reset_flow = PasswordResetFlow(
        accounts,
        requests,
        hasher,
        locks,
        token_ttl=settings.reset_token_ttl,
    )
    purged = reset_flow.purge_expired()
    logger.info("Starting ParkEasy bot (%s backend, %d stale reset requests purged)",
                settings.db_backend, purged)

    bot = create_telegram_bot(
        settings.telegram_token,
        account_service,
        reset_flow,
        build_notifier(settings),
    )
    bot.infinity_polling()


if __name__ == "__main__":
    main()
