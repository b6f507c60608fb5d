from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable, Optional

from domain.errors import (
    AccountNotFoundError,
    AuthenticationError,
    ValidationError,
)
from domain.models import Account, Role
from domain.repositories import AccountRepository, PasswordHasher
from domain.validation import (
    Money,
    validate_email,
    validate_name,
    validate_password,
    validate_phone,
)

from .locking import KeyedLock


logger = logging.getLogger(__name__)

# Lock key that serializes email/phone uniqueness checks within a pool.
_CONTACTS = "contacts"


class AccountService:
    """
    Account operations that read, mutate and persist an `Account`.

    Every mutation follows the same cycle under the account's lock:
    reload from the repository, apply the change on the entity (which
    validates it), then save. A failed validation therefore never reaches
    storage, and two concurrent mutations of one account cannot interleave.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        hasher: PasswordHasher,
        locks: KeyedLock,
    ) -> None:
        self._accounts = accounts
        self._hasher = hasher
        self._locks = locks

    def _load(self, account_id: int, role: Role) -> Account:
        account = self._accounts.get_by_id(account_id, role)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def _mutate(self, account_id: int, role: Role, change: Callable[[Account], object]):
        role = Role.parse(role)
        with self._locks.hold((role, account_id)):
            account = self._load(account_id, role)
            result = change(account)
            self._accounts.save(account, role)
            return result

    def _check_contacts_free(
        self,
        role: Role,
        email: Optional[str],
        phone: Optional[str],
        account_id: Optional[int] = None,
    ) -> None:
        if email is not None:
            owner = self._accounts.find_by_email(email, role)
            if owner is not None and owner.id != account_id:
                raise ValidationError("email", "Email is already registered.")
        if phone is not None:
            owner = self._accounts.find_by_phone(phone, role)
            if owner is not None and owner.id != account_id:
                raise ValidationError("phone", "Phone number is already registered.")

    def register(
        self,
        name: str,
        phone: str,
        email: str,
        password: str,
        role: Role = Role.USER,
        balance: Money = Decimal("0"),
    ) -> Account:
        role = Role.parse(role)
        validate_email(email)
        validate_phone(phone)
        validate_password(password)

        with self._locks.hold((role, _CONTACTS)):
            self._check_contacts_free(role, email, phone)

            account = Account.create(
                id=self._accounts.next_id(role),
                name=name,
                phone=phone,
                email=email,
                password=password,
                hasher=self._hasher,
                balance=balance,
            )
            self._accounts.save(account, role)

        logger.info("Registered %s account %s", role.value, account.id)
        return account

    def authenticate(self, email: str, password: str, role: Role = Role.USER) -> Account:
        role = Role.parse(role)
        validate_email(email)
        account = self._accounts.find_by_email(email, role)
        if account is None or not account.verify_password(password, self._hasher):
            logger.info("Authentication failed for %s account", role.value)
            raise AuthenticationError()
        logger.info("%s account %s authenticated", role.value.capitalize(), account.id)
        return account

    def change_password(
        self,
        account_id: int,
        current_password: str,
        new_password: str,
        role: Role = Role.USER,
    ) -> None:
        validate_password(new_password)

        def change(account: Account) -> None:
            if not account.verify_password(current_password, self._hasher):
                raise AuthenticationError("Current password is incorrect.")
            account.set_password(new_password, self._hasher)

        self._mutate(account_id, role, change)
        logger.info("Password changed for account %s", account_id)

    def update_profile(
        self,
        account_id: int,
        role: Role = Role.USER,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Account:
        """
        Change any of the account's name, email and phone.

        Fields left as None are kept. All given values are validated, and
        checked against the rest of the pool, before any of them is applied.
        """

        role = Role.parse(role)
        if name is not None:
            validate_name(name)
        if email is not None:
            validate_email(email)
        if phone is not None:
            validate_phone(phone)

        def change(account: Account) -> Account:
            self._check_contacts_free(role, email, phone, account_id=account.id)
            if name is not None:
                account.name = name
            if email is not None:
                account.email = email
            if phone is not None:
                account.phone = phone
            return account

        with self._locks.hold((role, _CONTACTS)):
            account = self._mutate(account_id, role, change)
        logger.info("Profile updated for %s account %s", role.value, account_id)
        return account

    def add_funds(self, account_id: int, amount: Money, role: Role = Role.USER) -> Decimal:
        balance = self._mutate(account_id, role, lambda account: account.credit(amount))
        logger.info("Credited %s to account %s", amount, account_id)
        return balance

    def deduct_funds(self, account_id: int, amount: Money, role: Role = Role.USER) -> Decimal:
        balance = self._mutate(account_id, role, lambda account: account.debit(amount))
        logger.info("Debited %s from account %s", amount, account_id)
        return balance

    def get_balance(self, account_id: int, role: Role = Role.USER) -> Decimal:
        return self._load(account_id, Role.parse(role)).balance

    def has_sufficient_balance(
        self,
        account_id: int,
        amount: Money,
        role: Role = Role.USER,
    ) -> bool:
        return self._load(account_id, Role.parse(role)).has_sufficient_funds(amount)
