"""
User service: registration and profile management for principals.

Credentials are not handled here; the identity provider owns them.  The
only fields the article engine consumes are ``id`` and ``role``.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.authz import can_assign_role, can_delete_user, can_list_users, can_update_user
from newsroom.cache import cache
from newsroom.errors import Conflict, NotFound
from newsroom.identity import Principal
from newsroom.models import User
from newsroom.schemas import UserCreate, UserUpdate

logger = logging.getLogger(__name__)


def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


async def _load_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound(f"user {user_id} not found")
    return user


async def _flush_unique_email(db: AsyncSession, user: User) -> None:
    try:
        async with db.begin_nested():
            db.add(user)
            await db.flush()
    except IntegrityError:
        raise Conflict(f"a user with email {user.email!r} already exists") from None


async def get_user(db: AsyncSession, user_id: int) -> dict:
    return _user_to_dict(await _load_user(db, user_id))


async def list_users(db: AsyncSession, principal: Principal | None) -> list[dict]:
    can_list_users(principal).enforce()
    result = await db.execute(select(User).order_by(User.id))
    return [_user_to_dict(u) for u in result.scalars().all()]


async def create_user(db: AsyncSession, data: UserCreate, principal: Principal | None = None) -> dict:
    """
    Register a user.  Anyone may self-register as a READER; creating a
    user with any other role requires an ADMIN caller.
    """
    can_assign_role(principal, data.role).enforce()

    now = datetime.now(timezone.utc)
    user = User(
        name=data.name.strip(),
        email=data.email.strip().lower(),
        role=data.role,
        created_at=now,
        updated_at=now,
    )
    await _flush_unique_email(db, user)
    logger.info("User %d registered with role %s", user.id, user.role.value)
    return _user_to_dict(user)


async def update_user(
    db: AsyncSession, user_id: int, data: UserUpdate, principal: Principal | None
) -> dict:
    user = await _load_user(db, user_id)
    changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    can_update_user(principal, user, changes).enforce()

    if "name" in changes:
        user.name = changes["name"].strip()
    if "email" in changes:
        user.email = changes["email"].strip().lower()
    if "role" in changes:
        user.role = changes["role"]
    user.updated_at = datetime.now(timezone.utc)

    await _flush_unique_email(db, user)
    if "name" in changes:
        await cache.invalidate_articles()
    return _user_to_dict(user)


async def delete_user(db: AsyncSession, user_id: int, principal: Principal | None) -> None:
    """
    Remove an account.  The user's articles are kept, with no author,
    and their images stay in the asset store.
    """
    user = await _load_user(db, user_id)
    can_delete_user(principal, user).enforce()

    await db.delete(user)
    await db.flush()
    # Cached article payloads embed the author.
    await cache.invalidate_articles()
    logger.info("User %d deleted by user %d", user_id, principal.id)

