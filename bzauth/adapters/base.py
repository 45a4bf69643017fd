"""Persistence adapter contract.

An adapter stores users, accounts, sessions and verification tokens for
one storage technology. Every operation is a coroutine; the flows await
them one at a time and never run two concurrently for a single request.

Contract shared by all implementations:

- ``get_*`` misses return ``None``, never raise.
- Writes that would violate a uniqueness constraint raise
  :class:`~bzauth.exceptions.AdapterConflictError` and leave other rows
  untouched. Unique keys are the user id, the user email, the account
  ``(provider_id, provider_account_id)`` pair, the session token and the
  verification ``(email, token)`` pair.
- ``link_account`` for an existing account key upserts when the
  ``user_id`` matches and raises a conflict otherwise.
- Writes referencing a missing row raise
  :class:`~bzauth.exceptions.NotFoundError`.
- Expired sessions and verification tokens are treated as absent.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from ..types import (
        Account,
        ProviderAccountId,
        Session,
        SessionAndUser,
        User,
        VerificationToken,
    )


class Adapter(ABC):
    """Abstract persistence adapter."""

    # ── Users ────────────────────────────────────────────────────────

    @abstractmethod
    async def create_user(self, user: User) -> User:
        """Create a user.

        Parameters
        ----------
        user : User
            The user to store. Adapters assign an id when it is missing.

        Returns
        -------
        User
            The stored user.

        Raises
        ------
        AdapterConflictError
            If the id or email is already taken.
        """
        ...

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None:
        """Get a user by id."""
        ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> User | None:
        """Get a user by email address."""
        ...

    @abstractmethod
    async def get_user_by_account(self, key: ProviderAccountId) -> User | None:
        """Get the user linked to a provider account.

        Parameters
        ----------
        key : ProviderAccountId
            Provider id and the provider's subject id.

        Returns
        -------
        User or None
            The linked user, or None when no account matches.
        """
        ...

    @abstractmethod
    async def update_user(self, user: User) -> User:
        """Update a user's fields.

        Fields set to ``None`` are left unchanged.

        Parameters
        ----------
        user : User
            The changes; ``id`` is required.

        Returns
        -------
        User
            The updated user.

        Raises
        ------
        NotFoundError
            If ``id`` is missing or unknown.
        AdapterConflictError
            If the new email belongs to another user.
        """
        ...

    @abstractmethod
    async def delete_user(self, user_id: str) -> User | None:
        """Delete a user with its accounts and sessions.

        Returns
        -------
        User or None
            The deleted user, or None if it did not exist.
        """
        ...

    # ── Accounts ─────────────────────────────────────────────────────

    @abstractmethod
    async def get_account(self, key: ProviderAccountId) -> Account | None:
        """Get an account by provider id and provider account id."""
        ...

    @abstractmethod
    async def link_account(self, account: Account) -> Account:
        """Link a provider account to a user.

        Parameters
        ----------
        account : Account
            The account; ``user_id`` must reference an existing user.

        Returns
        -------
        Account
            The stored account.

        Raises
        ------
        NotFoundError
            If the user does not exist.
        AdapterConflictError
            If the account key is linked to a different user.
        """
        ...

    @abstractmethod
    async def unlink_account(self, key: ProviderAccountId) -> Account | None:
        """Remove an account link.

        Returns
        -------
        Account or None
            The removed account, or None if it did not exist.
        """
        ...

    # ── Sessions ─────────────────────────────────────────────────────

    @abstractmethod
    async def create_session(self, token: str, user_id: str, ttl: int) -> Session:
        """Create a session.

        Parameters
        ----------
        token : str
            The bearer value; must be unique.
        user_id : str
            The authenticated user.
        ttl : int
            Lifetime in seconds.

        Returns
        -------
        Session
            The created session.

        Raises
        ------
        NotFoundError
            If the user does not exist.
        AdapterConflictError
            If the token is already in use.
        """
        ...

    @abstractmethod
    async def get_session_and_user(self, token: str) -> SessionAndUser | None:
        """Get a live session with its user.

        Returns
        -------
        SessionAndUser or None
            None when the token is unknown or the session has expired.
        """
        ...

    @abstractmethod
    async def update_session(self, session: Session) -> Session:
        """Update a session's expiry.

        Parameters
        ----------
        session : Session
            The session; ``token`` is required.

        Returns
        -------
        Session
            The updated session.

        Raises
        ------
        NotFoundError
            If the session does not exist.
        """
        ...

    @abstractmethod
    async def delete_session(self, token: str) -> Session | None:
        """Delete a session.

        Returns
        -------
        Session or None
            The deleted session, or None if it did not exist.
        """
        ...

    # ── Verification tokens ──────────────────────────────────────────

    @abstractmethod
    async def create_verification_token(self, token: VerificationToken) -> VerificationToken:
        """Store a verification token.

        Raises
        ------
        AdapterConflictError
            If the ``(email, token)`` pair already exists.
        """
        ...

    @abstractmethod
    async def use_verification_token(self, email: str, token: str) -> VerificationToken | None:
        """Consume a verification token.

        Consumption deletes the token: a second call with the same pair
        returns None.

        Returns
        -------
        VerificationToken or None
            The consumed token, or None if unknown, used or expired.
        """
        ...

    async def close(self) -> None:
        """Release connections. Call from app shutdown lifecycle."""
        return None
