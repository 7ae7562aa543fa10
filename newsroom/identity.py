"""
Identity provider contract: bearer token -> principal id -> role.

Tokens are HS256 JWTs whose ``sub`` claim is the user id.  Minting is
only used by the seed script and tests; verification is what requests
go through.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.config import settings
from newsroom.models import Role, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def create_access_token(user_id: int, expires_delta: timedelta | None = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    claims = {"sub": str(user_id), "exp": expire}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> int | None:
    """Return the principal id carried by *token*, or None if it does not verify."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        logger.debug("Rejected bearer token: %s", exc)
        return None
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None


async def lookup_principal(db: AsyncSession, principal_id: int) -> Principal | None:
    result = await db.execute(select(User.role).where(User.id == principal_id))
    role = result.scalar_one_or_none()
    if role is None:
        return None
    return Principal(id=principal_id, role=role)


async def resolve_principal(db: AsyncSession, token: str | None) -> Principal | None:
    if not token:
        return None
    principal_id = verify_token(token)
    if principal_id is None:
        return None
    return await lookup_principal(db, principal_id)
