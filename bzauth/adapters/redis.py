"""Redis adapter.

Production backend for multi-worker deployments.
Requires the `redis` package: pip install bzauth[redis]

Key layout (``{p}`` is the configured prefix):

- ``{p}:user:{id}`` user JSON
- ``{p}:email:{email}`` user id, claimed with SET NX for uniqueness
- ``{p}:account:{provider_id}:{provider_account_id}`` account JSON
- ``{p}:user:{id}:accounts`` / ``{p}:user:{id}:sessions`` index sets
- ``{p}:session:{token}`` session JSON with a TTL
- ``{p}:verification:{email}:{token}`` verification token JSON with a TTL,
  consumed with GETDEL
"""

from __future__ import annotations

import json
import time

from dataclasses import asdict, replace
from typing import TYPE_CHECKING, Any

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


if TYPE_CHECKING:
    from redis.asyncio import Redis


# Check for redis package
try:
    from redis.asyncio import Redis as RedisClient

    HAS_REDIS = True
except ImportError:
    HAS_REDIS = False
    RedisClient = None  # type: ignore[assignment,misc]


def _check_redis() -> None:
    """Check if redis package is available."""
    if not HAS_REDIS:
        msg = "Redis adapter requires the 'redis' package. Install with: pip install redis"
        raise ImportError(msg)


class RedisAdapter(Adapter):
    """Redis-backed adapter.

    Uniqueness relies on atomic ``SET NX``; sessions and verification
    tokens expire through Redis TTLs, with the stored expiry checked as
    well since Redis expires keys lazily.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "bzauth",
        *,
        redis_client: Redis | None = None,
    ) -> None:
        """Initialize the Redis adapter.

        Parameters
        ----------
        redis_url : str
            Redis connection URL.
        prefix : str
            Key prefix for Redis keys.
        redis_client : Redis, optional
            Pre-configured client with ``decode_responses=True``.
        """
        _check_redis()
        self._redis_url = redis_url
        self._prefix = prefix.rstrip(":")
        self._client = redis_client
        self._owns_client = redis_client is None

    # ── Keys ─────────────────────────────────────────────────────────

    def _user_key(self, user_id: str) -> str:
        return f"{self._prefix}:user:{user_id}"

    def _email_key(self, email: str) -> str:
        return f"{self._prefix}:email:{email}"

    def _account_key(self, key: ProviderAccountId) -> str:
        return f"{self._prefix}:account:{key.provider_id}:{key.provider_account_id}"

    def _user_accounts_key(self, user_id: str) -> str:
        return f"{self._prefix}:user:{user_id}:accounts"

    def _session_key(self, token: str) -> str:
        return f"{self._prefix}:session:{token}"

    def _user_sessions_key(self, user_id: str) -> str:
        return f"{self._prefix}:user:{user_id}:sessions"

    def _verification_key(self, email: str, token: str) -> str:
        return f"{self._prefix}:verification:{email}:{token}"

    async def _redis(self) -> Any:
        """Get the Redis client, connecting on first use."""
        if self._client is None:
            self._client = RedisClient.from_url(self._redis_url, decode_responses=True)
        return self._client

    async def close(self) -> None:
        """Close the client if this adapter created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _load(self, key: str) -> dict[str, Any] | None:
        r = await self._redis()
        raw = await r.get(key)
        return json.loads(raw) if raw else None

    # ── Users ────────────────────────────────────────────────────────

    async def create_user(self, user: User) -> User:
        """Create a user, claiming its id and email keys."""
        r = await self._redis()
        stored = replace(user, id=user.id or generate_id())
        if not await r.set(self._user_key(stored.id), json.dumps(stored.to_dict()), nx=True):  # type: ignore[arg-type]
            msg = "User id already exists"
            raise AdapterConflictError(msg, user_id=stored.id)
        if stored.email and not await r.set(self._email_key(stored.email), stored.id, nx=True):
            await r.delete(self._user_key(stored.id))  # type: ignore[arg-type]
            msg = "Email already belongs to another user"
            raise AdapterConflictError(msg)
        return stored

    async def get_user(self, user_id: str) -> User | None:
        """Get a user by id."""
        data = await self._load(self._user_key(user_id))
        return User(**data) if data else None

    async def get_user_by_email(self, email: str) -> User | None:
        """Get a user through the email index."""
        r = await self._redis()
        user_id = await r.get(self._email_key(email))
        return await self.get_user(user_id) if user_id else None

    async def get_user_by_account(self, key: ProviderAccountId) -> User | None:
        """Get the user linked to a provider account."""
        account = await self.get_account(key)
        return await self.get_user(account.user_id) if account else None

    async def update_user(self, user: User) -> User:
        """Update the non-None fields of a user."""
        r = await self._redis()
        stored = await self.get_user(user.id) if user.id else None
        if stored is None:
            msg = "User not found"
            raise NotFoundError(msg, user_id=user.id)

        if user.email and user.email != stored.email:
            if not await r.set(self._email_key(user.email), stored.id, nx=True):
                msg = "Email already belongs to another user"
                raise AdapterConflictError(msg)
            if stored.email:
                await r.delete(self._email_key(stored.email))

        updated = replace(
            stored,
            username=user.username if user.username is not None else stored.username,
            email=user.email if user.email is not None else stored.email,
            image=user.image if user.image is not None else stored.image,
        )
        await r.set(self._user_key(stored.id), json.dumps(updated.to_dict()))  # type: ignore[arg-type]
        return updated

    async def delete_user(self, user_id: str) -> User | None:
        """Delete a user with its accounts and sessions."""
        r = await self._redis()
        user = await self.get_user(user_id)
        if user is None:
            return None

        account_keys = await r.smembers(self._user_accounts_key(user_id))
        session_tokens = await r.smembers(self._user_sessions_key(user_id))
        keys = [
            self._user_key(user_id),
            self._user_accounts_key(user_id),
            self._user_sessions_key(user_id),
            *account_keys,
            *(self._session_key(t) for t in session_tokens),
        ]
        if user.email:
            keys.append(self._email_key(user.email))
        await r.delete(*keys)
        return user

    # ── Accounts ─────────────────────────────────────────────────────

    async def get_account(self, key: ProviderAccountId) -> Account | None:
        """Get an account by its provider key."""
        data = await self._load(self._account_key(key))
        return Account.from_dict(data) if data else None

    async def link_account(self, account: Account) -> Account:
        """Link an account, updating it in place for the same user."""
        r = await self._redis()
        if not await r.exists(self._user_key(account.user_id)):
            msg = "Cannot link account to a missing user"
            raise NotFoundError(msg, user_id=account.user_id)

        key = self._account_key(account.key)
        existing = await self.get_account(account.key)
        if existing is not None:
            if existing.user_id != account.user_id:
                msg = "Provider account is linked to another user"
                raise AdapterConflictError(msg, provider=account.provider_id)
            stored = replace(account, id=existing.id)
            await r.set(key, json.dumps(stored.to_dict()))
        else:
            stored = account
            if not await r.set(key, json.dumps(stored.to_dict()), nx=True):
                msg = "Provider account was linked concurrently"
                raise AdapterConflictError(msg, provider=account.provider_id)

        await r.sadd(self._user_accounts_key(account.user_id), key)
        return stored

    async def unlink_account(self, key: ProviderAccountId) -> Account | None:
        """Remove an account link."""
        r = await self._redis()
        raw = await r.getdel(self._account_key(key))
        if not raw:
            return None
        account = Account.from_dict(json.loads(raw))
        await r.srem(self._user_accounts_key(account.user_id), self._account_key(key))
        return account

    # ── Sessions ─────────────────────────────────────────────────────

    async def create_session(self, token: str, user_id: str, ttl: int) -> Session:
        """Create a session whose key expires after ``ttl`` seconds."""
        r = await self._redis()
        if not await r.exists(self._user_key(user_id)):
            msg = "Cannot create a session for a missing user"
            raise NotFoundError(msg, user_id=user_id)

        now = time.time()
        session = Session(token=token, user_id=user_id, expires_at=now + ttl, updated_at=now)
        if not await r.set(self._session_key(token), json.dumps(asdict(session)), ex=ttl, nx=True):
            msg = "Session token already exists"
            raise AdapterConflictError(msg)
        await r.sadd(self._user_sessions_key(user_id), token)
        return session

    async def get_session_and_user(self, token: str) -> SessionAndUser | None:
        """Get a live session with its user."""
        data = await self._load(self._session_key(token))
        if not data:
            return None
        session = Session(**data)
        if session.is_expired:
            await self.delete_session(token)
            return None
        user = await self.get_user(session.user_id)
        if user is None:
            return None
        return SessionAndUser(session=session, user=user)

    async def update_session(self, session: Session) -> Session:
        """Replace a session's expiry and reset its TTL."""
        r = await self._redis()
        data = await self._load(self._session_key(session.token))
        if not data:
            msg = "Session not found"
            raise NotFoundError(msg)
        updated = replace(Session(**data), expires_at=session.expires_at, updated_at=time.time())
        ttl = max(1, int(updated.expires_at - time.time()))
        await r.set(self._session_key(session.token), json.dumps(asdict(updated)), ex=ttl, xx=True)
        return updated

    async def delete_session(self, token: str) -> Session | None:
        """Delete a session."""
        r = await self._redis()
        raw = await r.getdel(self._session_key(token))
        if not raw:
            return None
        session = Session(**json.loads(raw))
        await r.srem(self._user_sessions_key(session.user_id), token)
        return session

    # ── Verification tokens ──────────────────────────────────────────

    async def create_verification_token(self, token: VerificationToken) -> VerificationToken:
        """Store a verification token until it expires."""
        r = await self._redis()
        key = self._verification_key(token.email, token.token)
        ttl = max(1, token.expires_in)
        if not await r.set(key, json.dumps(asdict(token)), ex=ttl, nx=True):
            msg = "Verification token already exists"
            raise AdapterConflictError(msg)
        return token

    async def use_verification_token(self, email: str, token: str) -> VerificationToken | None:
        """Consume a verification token atomically with GETDEL."""
        r = await self._redis()
        raw = await r.getdel(self._verification_key(email, token))
        if not raw:
            return None
        stored = VerificationToken(**json.loads(raw))
        return None if stored.is_expired else stored
