"""Behaviour every adapter must share.

Test modules subclass :class:`AdapterContract` and provide an ``adapter``
fixture for their backend.
"""

from __future__ import annotations

import time

import pytest

from bzauth.exceptions import AdapterConflictError, NotFoundError
from bzauth.types import (
    Account,
    ProviderAccountId,
    ProviderType,
    Token,
    User,
    VerificationToken,
)


def make_account(user_id: str, subject: str = "sub-1", account_id: str = "acc-1") -> Account:
    """An OAuth account for ``user_id``."""
    return Account(
        id=account_id,
        user_id=user_id,
        provider_id="mock",
        provider_type=ProviderType.OAUTH,
        provider_account_id=subject,
        token=Token(access_token="at-1", expires_at=time.time() + 3600),
    )


class AdapterContract:
    """Adapter contract tests; requires an ``adapter`` fixture."""

    # ── Users ────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_create_user_assigns_id(self, adapter) -> None:
        """A missing id is assigned on create."""
        user = await adapter.create_user(User(username="ada", email="ada@example.com"))
        assert user.id
        assert await adapter.get_user(user.id) == user
        assert await adapter.get_user_by_email("ada@example.com") == user

    @pytest.mark.asyncio
    async def test_create_user_keeps_given_id(self, adapter) -> None:
        """A given id is kept."""
        user = await adapter.create_user(User(id="u1", username="ada"))
        assert user.id == "u1"

    @pytest.mark.asyncio
    async def test_missing_rows_return_none(self, adapter) -> None:
        """Lookups of unknown rows return None."""
        assert await adapter.get_user("nope") is None
        assert await adapter.get_user_by_email("nope@example.com") is None
        assert await adapter.get_user_by_account(ProviderAccountId("mock", "nope")) is None
        assert await adapter.get_account(ProviderAccountId("mock", "nope")) is None
        assert await adapter.get_session_and_user("nope") is None
        assert await adapter.delete_user("nope") is None
        assert await adapter.delete_session("nope") is None
        assert await adapter.unlink_account(ProviderAccountId("mock", "nope")) is None

    @pytest.mark.asyncio
    async def test_duplicate_user_id_conflicts(self, adapter) -> None:
        """User ids are unique."""
        await adapter.create_user(User(id="u1"))
        with pytest.raises(AdapterConflictError):
            await adapter.create_user(User(id="u1", username="other"))

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts(self, adapter) -> None:
        """Emails are unique and the first owner is untouched."""
        first = await adapter.create_user(User(id="u1", email="ada@example.com"))
        with pytest.raises(AdapterConflictError):
            await adapter.create_user(User(id="u2", email="ada@example.com"))
        assert await adapter.get_user_by_email("ada@example.com") == first
        assert await adapter.get_user("u2") is None

    @pytest.mark.asyncio
    async def test_returned_users_are_copies(self, adapter) -> None:
        """Mutating a returned user does not change the stored row."""
        user = await adapter.create_user(User(id="u1", username="ada"))
        user.username = "changed"
        fetched = await adapter.get_user("u1")
        assert fetched.username == "ada"

    @pytest.mark.asyncio
    async def test_update_user_partial(self, adapter) -> None:
        """Fields left as None keep their stored values."""
        await adapter.create_user(User(id="u1", username="ada", email="ada@example.com"))
        updated = await adapter.update_user(User(id="u1", image="https://img/a.png"))
        assert updated == User(
            id="u1", username="ada", email="ada@example.com", image="https://img/a.png"
        )
        assert await adapter.get_user("u1") == updated

    @pytest.mark.asyncio
    async def test_update_user_email_moves_index(self, adapter) -> None:
        """Changing the email re-keys the email lookup."""
        await adapter.create_user(User(id="u1", email="old@example.com"))
        await adapter.update_user(User(id="u1", email="new@example.com"))
        assert await adapter.get_user_by_email("old@example.com") is None
        assert (await adapter.get_user_by_email("new@example.com")).id == "u1"

    @pytest.mark.asyncio
    async def test_update_user_email_conflict(self, adapter) -> None:
        """An email owned by another user cannot be taken."""
        await adapter.create_user(User(id="u1", email="a@example.com"))
        await adapter.create_user(User(id="u2", email="b@example.com"))
        with pytest.raises(AdapterConflictError):
            await adapter.update_user(User(id="u2", email="a@example.com"))

    @pytest.mark.asyncio
    async def test_update_missing_user(self, adapter) -> None:
        """Updating an unknown or id-less user is a not-found error."""
        with pytest.raises(NotFoundError):
            await adapter.update_user(User(id="ghost", username="x"))
        with pytest.raises(NotFoundError):
            await adapter.update_user(User(username="x"))

    @pytest.mark.asyncio
    async def test_delete_user_cascades(self, adapter) -> None:
        """Deleting a user removes its accounts and sessions."""
        await adapter.create_user(User(id="u1", email="ada@example.com"))
        account = await adapter.link_account(make_account("u1"))
        await adapter.create_session("tok-1", "u1", 60)

        deleted = await adapter.delete_user("u1")
        assert deleted.id == "u1"
        assert await adapter.get_user("u1") is None
        assert await adapter.get_user_by_email("ada@example.com") is None
        assert await adapter.get_account(account.key) is None
        assert await adapter.get_session_and_user("tok-1") is None

    # ── Accounts ─────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_link_and_lookup(self, adapter) -> None:
        """A linked account resolves to its user."""
        user = await adapter.create_user(User(id="u1"))
        account = await adapter.link_account(make_account("u1"))
        assert await adapter.get_user_by_account(ProviderAccountId("mock", "sub-1")) == user
        stored = await adapter.get_account(account.key)
        assert stored == account
        assert stored.token.access_token == "at-1"

    @pytest.mark.asyncio
    async def test_link_same_user_upserts(self, adapter) -> None:
        """Re-linking for the same user updates the token and keeps the link id."""
        await adapter.create_user(User(id="u1"))
        await adapter.link_account(make_account("u1"))

        refreshed = make_account("u1", account_id="acc-2")
        refreshed.token = Token(access_token="at-2")
        stored = await adapter.link_account(refreshed)

        assert stored.id == "acc-1"
        assert (await adapter.get_account(stored.key)).token.access_token == "at-2"

    @pytest.mark.asyncio
    async def test_link_other_user_conflicts(self, adapter) -> None:
        """An account key cannot move between users."""
        await adapter.create_user(User(id="u1"))
        await adapter.create_user(User(id="u2"))
        await adapter.link_account(make_account("u1"))
        with pytest.raises(AdapterConflictError):
            await adapter.link_account(make_account("u2", account_id="acc-2"))
        assert (await adapter.get_user_by_account(ProviderAccountId("mock", "sub-1"))).id == "u1"

    @pytest.mark.asyncio
    async def test_link_missing_user(self, adapter) -> None:
        """Accounts must reference an existing user."""
        with pytest.raises(NotFoundError):
            await adapter.link_account(make_account("ghost"))

    @pytest.mark.asyncio
    async def test_unlink(self, adapter) -> None:
        """Unlinking returns the account and removes it."""
        await adapter.create_user(User(id="u1"))
        account = await adapter.link_account(make_account("u1"))
        assert (await adapter.unlink_account(account.key)).id == "acc-1"
        assert await adapter.get_account(account.key) is None
        assert await adapter.get_user_by_account(account.key) is None

    # ── Sessions ─────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_session_lifecycle(self, adapter) -> None:
        """Sessions are created, read with their user and deleted."""
        user = await adapter.create_user(User(id="u1", username="ada"))
        before = time.time()
        session = await adapter.create_session("tok-1", "u1", 3600)
        assert session.user_id == "u1"
        assert before + 3600 <= session.expires_at <= time.time() + 3600

        found = await adapter.get_session_and_user("tok-1")
        assert found.user == user
        assert found.session.token == "tok-1"

        deleted = await adapter.delete_session("tok-1")
        assert deleted.token == "tok-1"
        assert await adapter.get_session_and_user("tok-1") is None

    @pytest.mark.asyncio
    async def test_duplicate_session_token(self, adapter) -> None:
        """Session tokens are unique."""
        await adapter.create_user(User(id="u1"))
        await adapter.create_session("tok-1", "u1", 60)
        with pytest.raises(AdapterConflictError):
            await adapter.create_session("tok-1", "u1", 60)

    @pytest.mark.asyncio
    async def test_session_for_missing_user(self, adapter) -> None:
        """Sessions must reference an existing user."""
        with pytest.raises(NotFoundError):
            await adapter.create_session("tok-1", "ghost", 60)

    @pytest.mark.asyncio
    async def test_update_session_extends(self, adapter) -> None:
        """update_session replaces the expiry."""
        await adapter.create_user(User(id="u1"))
        session = await adapter.create_session("tok-1", "u1", 60)
        session.expires_at = time.time() + 7200
        updated = await adapter.update_session(session)
        assert updated.expires_at == session.expires_at
        assert (await adapter.get_session_and_user("tok-1")).session.expires_at == session.expires_at

    @pytest.mark.asyncio
    async def test_update_missing_session(self, adapter) -> None:
        """Updating an unknown session is a not-found error."""
        await adapter.create_user(User(id="u1"))
        session = await adapter.create_session("tok-1", "u1", 60)
        await adapter.delete_session("tok-1")
        with pytest.raises(NotFoundError):
            await adapter.update_session(session)

    @pytest.mark.asyncio
    async def test_expired_session_is_absent(self, adapter) -> None:
        """A session past its expiry is not returned."""
        await adapter.create_user(User(id="u1"))
        session = await adapter.create_session("tok-1", "u1", 60)
        session.expires_at = time.time() - 1
        await adapter.update_session(session)
        assert await adapter.get_session_and_user("tok-1") is None

    # ── Verification tokens ──────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_verification_token_single_use(self, adapter) -> None:
        """A verification token can be used exactly once."""
        token = VerificationToken("ada@example.com", "vt-1", time.time() + 600)
        await adapter.create_verification_token(token)
        used = await adapter.use_verification_token("ada@example.com", "vt-1")
        assert used == token
        assert await adapter.use_verification_token("ada@example.com", "vt-1") is None

    @pytest.mark.asyncio
    async def test_verification_token_pair_must_match(self, adapter) -> None:
        """The email and token must both match."""
        await adapter.create_verification_token(
            VerificationToken("ada@example.com", "vt-1", time.time() + 600)
        )
        assert await adapter.use_verification_token("eve@example.com", "vt-1") is None
        assert await adapter.use_verification_token("ada@example.com", "vt-1") is not None

    @pytest.mark.asyncio
    async def test_duplicate_verification_token(self, adapter) -> None:
        """The (email, token) pair is unique."""
        token = VerificationToken("ada@example.com", "vt-1", time.time() + 600)
        await adapter.create_verification_token(token)
        with pytest.raises(AdapterConflictError):
            await adapter.create_verification_token(token)

    @pytest.mark.asyncio
    async def test_expired_verification_token(self, adapter) -> None:
        """Expired tokens cannot be used."""
        await adapter.create_verification_token(
            VerificationToken("ada@example.com", "vt-1", time.time() - 1)
        )
        assert await adapter.use_verification_token("ada@example.com", "vt-1") is None
