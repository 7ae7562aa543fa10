"""
Authorization matrix for every mutation the engine performs.

All decisions are pure functions of the principal, the target record and
the requested change; none of them touch storage.  Each returns a
``Decision`` which callers turn into an exception with ``enforce()``.
Rules are evaluated in a fixed order:

1. no principal                      -> authentication required
2. article create                    -> JOURNALIST, EDITOR, ADMIN
3. article update / delete           -> the author, or an ADMIN
4. own profile, non-admin            -> may not change ``role``
5. account delete                    -> oneself, or an ADMIN
6. user listing                      -> ADMIN
"""
import enum
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from newsroom.errors import AuthenticationRequired, Forbidden
from newsroom.identity import Principal
from newsroom.models import Article, Role, User

ARTICLE_AUTHOR_ROLES: frozenset[Role] = frozenset({Role.JOURNALIST, Role.EDITOR, Role.ADMIN})


class Action(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str | None = None
    authenticated: bool = True

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> "Decision":
        return cls(False, reason)

    @classmethod
    def unauthenticated(cls) -> "Decision":
        return cls(False, "authentication required", authenticated=False)

    def enforce(self) -> None:
        if self.allowed:
            return
        if not self.authenticated:
            raise AuthenticationRequired(self.reason)
        raise Forbidden(self.reason)


def can_mutate_article(
    principal: Principal | None, article: Article | None, action: Action
) -> Decision:
    if principal is None:
        return Decision.unauthenticated()

    if action == Action.CREATE:
        if principal.role in ARTICLE_AUTHOR_ROLES:
            return Decision.allow()
        return Decision.deny("not authorized to create articles")

    if article is None:
        raise ValueError(f"{action.value} requires the target article")
    if principal.id == article.author_id or principal.is_admin:
        return Decision.allow()
    return Decision.deny(f"not authorized to {action.value} this article")


def can_update_user(principal: Principal | None, user: User, changes: Mapping[str, Any]) -> Decision:
    if principal is None:
        return Decision.unauthenticated()
    if principal.is_admin:
        return Decision.allow()
    if principal.id != user.id:
        return Decision.deny("not authorized to update this user")
    if "role" in changes and changes["role"] is not None and changes["role"] != user.role:
        return Decision.deny("not authorized to update role")
    return Decision.allow()


def can_delete_user(principal: Principal | None, user: User) -> Decision:
    if principal is None:
        return Decision.unauthenticated()
    if principal.id == user.id or principal.is_admin:
        return Decision.allow()
    return Decision.deny("not authorized to delete this user")


def can_assign_role(principal: Principal | None, role: Role) -> Decision:
    """Self-registration always yields a READER; any other role needs an ADMIN."""
    if role == Role.READER:
        return Decision.allow()
    if principal is None:
        return Decision.unauthenticated()
    if principal.is_admin:
        return Decision.allow()
    return Decision.deny("not authorized to assign role")


def can_manage_categories(principal: Principal | None) -> Decision:
    if principal is None:
        return Decision.unauthenticated()
    return Decision.allow()


def can_list_users(principal: Principal | None) -> Decision:
    if principal is None:
        return Decision.unauthenticated()
    if principal.is_admin:
        return Decision.allow()
    return Decision.deny("not authorized to list users")
