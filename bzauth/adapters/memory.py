"""In-memory adapter.

For single-process deployments, development and tests. Objects are
copied on the way in and out so callers never alias stored rows.
"""

from __future__ import annotations

import asyncio
import copy
import time

from dataclasses import replace

from ..exceptions import AdapterConflictError, NotFoundError
from ..generators import generate_id
from ..types import (
    Account,
    ProviderAccountId,
    Session,
    SessionAndUser,
    User,
    VerificationToken,
)
from .base import Adapter


class MemoryAdapter(Adapter):
    """Dictionary-backed adapter guarded by an asyncio lock."""

    def __init__(self) -> None:
        """Initialize empty tables."""
        self._users: dict[str, User] = {}
        self._accounts: dict[ProviderAccountId, Account] = {}
        self._sessions: dict[str, Session] = {}
        self._verification_tokens: dict[tuple[str, str], VerificationToken] = {}
        self._lock = asyncio.Lock()

    # ── Users ────────────────────────────────────────────────────────

    def _find_by_email(self, email: str) -> User | None:
        return next((u for u in self._users.values() if u.email == email), None)

    async def create_user(self, user: User) -> User:
        """Create a user, assigning an id if missing."""
        async with self._lock:
            stored = replace(user, id=user.id or generate_id())
            if stored.id in self._users:
                msg = "User id already exists"
                raise AdapterConflictError(msg, user_id=stored.id)
            if stored.email and self._find_by_email(stored.email) is not None:
                msg = "Email already belongs to another user"
                raise AdapterConflictError(msg)
            self._users[stored.id] = stored  # type: ignore[index]
            return copy.copy(stored)

    async def get_user(self, user_id: str) -> User | None:
        """Get a user by id."""
        async with self._lock:
            user = self._users.get(user_id)
            return copy.copy(user) if user else None

    async def get_user_by_email(self, email: str) -> User | None:
        """Get a user by email address."""
        async with self._lock:
            user = self._find_by_email(email)
            return copy.copy(user) if user else None

    async def get_user_by_account(self, key: ProviderAccountId) -> User | None:
        """Get the user linked to a provider account."""
        async with self._lock:
            account = self._accounts.get(key)
            if account is None:
                return None
            user = self._users.get(account.user_id)
            return copy.copy(user) if user else None

    async def update_user(self, user: User) -> User:
        """Update the non-None fields of a user."""
        async with self._lock:
            stored = self._users.get(user.id) if user.id else None
            if stored is None:
                msg = "User not found"
                raise NotFoundError(msg, user_id=user.id)
            if user.email and user.email != stored.email:
                owner = self._find_by_email(user.email)
                if owner is not None and owner.id != stored.id:
                    msg = "Email already belongs to another user"
                    raise AdapterConflictError(msg)
            updated = replace(
                stored,
                username=user.username if user.username is not None else stored.username,
                email=user.email if user.email is not None else stored.email,
                image=user.image if user.image is not None else stored.image,
            )
            self._users[stored.id] = updated  # type: ignore[index]
            return copy.copy(updated)

    async def delete_user(self, user_id: str) -> User | None:
        """Delete a user with its accounts and sessions."""
        async with self._lock:
            user = self._users.pop(user_id, None)
            if user is None:
                return None
            self._accounts = {k: a for k, a in self._accounts.items() if a.user_id != user_id}
            self._sessions = {t: s for t, s in self._sessions.items() if s.user_id != user_id}
            return user

    # ── Accounts ─────────────────────────────────────────────────────

    async def get_account(self, key: ProviderAccountId) -> Account | None:
        """Get an account by its provider key."""
        async with self._lock:
            account = self._accounts.get(key)
            return copy.deepcopy(account) if account else None

    async def link_account(self, account: Account) -> Account:
        """Link an account, updating it in place for the same user."""
        async with self._lock:
            if account.user_id not in self._users:
                msg = "Cannot link account to a missing user"
                raise NotFoundError(msg, user_id=account.user_id)
            existing = self._accounts.get(account.key)
            if existing is not None and existing.user_id != account.user_id:
                msg = "Provider account is linked to another user"
                raise AdapterConflictError(msg, provider=account.provider_id)
            stored = copy.deepcopy(account)
            if existing is not None:
                # Keep the original link id on upsert
                stored.id = existing.id
            self._accounts[account.key] = stored
            return copy.deepcopy(stored)

    async def unlink_account(self, key: ProviderAccountId) -> Account | None:
        """Remove an account link."""
        async with self._lock:
            return self._accounts.pop(key, None)

    # ── Sessions ─────────────────────────────────────────────────────

    async def create_session(self, token: str, user_id: str, ttl: int) -> Session:
        """Create a session expiring ``ttl`` seconds from now."""
        async with self._lock:
            if user_id not in self._users:
                msg = "Cannot create a session for a missing user"
                raise NotFoundError(msg, user_id=user_id)
            if token in self._sessions:
                msg = "Session token already exists"
                raise AdapterConflictError(msg)
            now = time.time()
            session = Session(token=token, user_id=user_id, expires_at=now + ttl, updated_at=now)
            self._sessions[token] = session
            return copy.copy(session)

    async def get_session_and_user(self, token: str) -> SessionAndUser | None:
        """Get a live session with its user, dropping it if expired."""
        async with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if session.is_expired:
                self._sessions.pop(token, None)
                return None
            user = self._users.get(session.user_id)
            if user is None:
                return None
            return SessionAndUser(session=copy.copy(session), user=copy.copy(user))

    async def update_session(self, session: Session) -> Session:
        """Replace a session's expiry."""
        async with self._lock:
            stored = self._sessions.get(session.token)
            if stored is None:
                msg = "Session not found"
                raise NotFoundError(msg)
            updated = replace(stored, expires_at=session.expires_at, updated_at=time.time())
            self._sessions[session.token] = updated
            return copy.copy(updated)

    async def delete_session(self, token: str) -> Session | None:
        """Delete a session."""
        async with self._lock:
            return self._sessions.pop(token, None)

    # ── Verification tokens ──────────────────────────────────────────

    async def create_verification_token(self, token: VerificationToken) -> VerificationToken:
        """Store a verification token."""
        async with self._lock:
            key = (token.email, token.token)
            if key in self._verification_tokens:
                msg = "Verification token already exists"
                raise AdapterConflictError(msg)
            self._verification_tokens[key] = copy.copy(token)
            return copy.copy(token)

    async def use_verification_token(self, email: str, token: str) -> VerificationToken | None:
        """Consume a verification token exactly once."""
        async with self._lock:
            stored = self._verification_tokens.pop((email, token), None)
            if stored is None or stored.is_expired:
                return None
            return stored
