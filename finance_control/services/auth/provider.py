"""
Password Authentication

DESIGN DECISION: One provider serves both backends. Accounts are looked up
through AccountStorageInterface (the registered-users record locally, the
profiles worksheet remotely) and the signed-in user is kept through the
store's session record.

Passwords are only ever stored as bcrypt hashes.
"""

from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import quote

import bcrypt
import structlog

from finance_control.models.ledger import Account, User
from finance_control.services.storage.interface import (
    AccountStorageInterface,
    LedgerStorageInterface,
)
from finance_control.validation import LedgerInputValidator


logger = structlog.get_logger(__name__)

AVATAR_URL = "https://api.dicebear.com/7.x/avataaars/svg?seed={seed}"


class AuthError(Exception):
    """Sign-in or sign-up was refused."""
    pass


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash
        return False


def default_avatar(email: str) -> str:
    return AVATAR_URL.format(seed=quote(email))


class AuthProvider(ABC):
    """Who is using the app."""

    @abstractmethod
    async def sign_up(
        self,
        email: str,
        password: str,
        confirm_password: str,
        name: str,
        nickname: Optional[str] = None,
    ) -> User:
        pass

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> User:
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        pass

    @abstractmethod
    async def get_active_session(self) -> Optional[User]:
        pass

    @abstractmethod
    async def update_profile(
        self,
        name: Optional[str] = None,
        nickname: Optional[str] = None,
        avatar: Optional[str] = None,
    ) -> User:
        pass


class PasswordAuthProvider(AuthProvider):
    """
    E-mail and password accounts with bcrypt hashes.

    Args:
        accounts: Where accounts are stored
        sessions: Where the signed-in user is kept
    """

    def __init__(
        self,
        accounts: AccountStorageInterface,
        sessions: LedgerStorageInterface,
        validator: Optional[LedgerInputValidator] = None,
    ):
        self._accounts = accounts
        self._sessions = sessions
        self._validator = validator or LedgerInputValidator()

    async def sign_up(
        self,
        email: str,
        password: str,
        confirm_password: str,
        name: str,
        nickname: Optional[str] = None,
    ) -> User:
        """
        Register an account and start its session.

        Raises:
            LedgerValidationError: If the form is incomplete or the passwords differ
            AuthError: If the e-mail is already registered
        """
        form = self._validator.validate_sign_up(
            email=email,
            password=password,
            confirm_password=confirm_password,
            name=name,
            nickname=nickname,
        )
        if await self._accounts.find_account(form["email"]) is not None:
            raise AuthError(f"E-mail already registered: {form['email']}")

        user = User(
            email=form["email"],
            name=form["name"],
            nickname=form["nickname"],
            avatar=default_avatar(form["email"]),
        )
        await self._accounts.save_account(
            Account(user=user, password_hash=hash_password(form["password"]))
        )
        await self._sessions.get_or_create_session(user)
        logger.info("user_signed_up", user_id=str(user.id))
        return user

    async def sign_in(self, email: str, password: str) -> User:
        account = await self._accounts.find_account(email or "")
        if account is None or not verify_password(password or "", account.password_hash):
            # One message for unknown e-mail and wrong password
            raise AuthError("Invalid e-mail or password")

        await self._sessions.get_or_create_session(account.user)
        logger.info("user_signed_in", user_id=str(account.user.id))
        return account.user

    async def sign_out(self) -> None:
        await self._sessions.clear_session()

    async def get_active_session(self) -> Optional[User]:
        return await self._sessions.get_or_create_session()

    async def update_profile(
        self,
        name: Optional[str] = None,
        nickname: Optional[str] = None,
        avatar: Optional[str] = None,
    ) -> User:
        """
        Change the signed-in user's profile.

        Fields left as None keep their value. An empty nickname clears it.

        Raises:
            LedgerValidationError: If a field is too long
            AuthError: If nobody is signed in
        """
        form = self._validator.validate_profile(name=name, nickname=nickname, avatar=avatar)
        current = await self.get_active_session()
        if current is None:
            raise AuthError("No active session")

        account = await self._accounts.find_account(current.email)
        if account is None:
            raise AuthError(f"Account no longer exists: {current.email}")

        changes: dict = {}
        if form["name"] is not None:
            changes["name"] = form["name"] or account.user.name
        if form["nickname"] is not None:
            changes["nickname"] = form["nickname"] or None
        if form["avatar"] is not None:
            changes["avatar"] = form["avatar"] or default_avatar(account.user.email)

        user = User.model_validate({**account.user.model_dump(), **changes})
        await self._accounts.save_account(account.model_copy(update={"user": user}))
        await self._sessions.get_or_create_session(user)
        return user
