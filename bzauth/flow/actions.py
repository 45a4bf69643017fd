"""Persistence steps of the callback: sign in an existing user or register."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..exceptions import AccountNotLinkedError, AdapterError
from ..generators import generate_session_token
from ..types import User
from .common import logger


if TYPE_CHECKING:
    from ..adapters.base import Adapter
    from ..config import AuthSettings
    from ..types import Account, Session


async def issue_session(adapter: Adapter, user_id: str, settings: AuthSettings) -> Session:
    """Create a session for ``user_id`` using the session policy's max age.

    Raises
    ------
    AdapterError
        If the adapter returns no session.
    """
    session = await adapter.create_session(
        generate_session_token(), user_id, settings.session.max_age
    )
    if session is None:
        msg = "Adapter returned no session from create_session"
        raise AdapterError(msg, user_id=user_id)
    return session


async def sign_in(
    adapter: Adapter,
    user: User,
    account: Account,
    candidate: User,
    settings: AuthSettings,
) -> Session:
    """Issue a session for an already linked user.

    With ``update_profile_on_sign_in`` the user's username and image are
    re-synced from ``candidate`` and the account token is refreshed. No
    user or account rows are created.
    """
    if settings.session.update_profile_on_sign_in:
        changes = User(
            id=user.id,
            username=candidate.username if candidate.username != user.username else None,
            image=candidate.image if candidate.image != user.image else None,
        )
        if changes.username is not None or changes.image is not None:
            await adapter.update_user(changes)
        await adapter.link_account(account)

    session = await issue_session(adapter, user.id, settings)  # type: ignore[arg-type]
    logger.info("User %s signed in with %s", user.id, account.provider_id)
    return session


async def register(
    adapter: Adapter,
    candidate: User,
    account: Account,
    settings: AuthSettings,
) -> tuple[User, Session]:
    """Create the user, link the account and issue a session.

    Raises
    ------
    AccountNotLinkedError
        If the candidate's email belongs to an existing user.
    AdapterError
        If the adapter returns no row from a create.
    """
    if candidate.email:
        owner = await adapter.get_user_by_email(candidate.email)
        if owner is not None:
            msg = (
                "This email is already associated with another account; "
                "sign in with the provider originally used"
            )
            raise AccountNotLinkedError(msg, provider=account.provider_id)

    user = await adapter.create_user(candidate)
    if user is None or not user.id:
        msg = "Adapter returned no user from create_user"
        raise AdapterError(msg)

    account.user_id = user.id
    linked = await adapter.link_account(account)
    if linked is None:
        msg = "Adapter returned no account from link_account"
        raise AdapterError(msg, user_id=user.id)

    session = await issue_session(adapter, user.id, settings)
    logger.info("Registered user %s with %s", user.id, account.provider_id)
    return user, session
