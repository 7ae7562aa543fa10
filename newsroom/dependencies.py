from collections.abc import Sequence
from datetime import datetime

from fastapi import BackgroundTasks, Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.assets import AssetStore
from newsroom.config import settings
from newsroom.database import get_db
from newsroom.identity import Principal, resolve_principal
from newsroom.models import ArticleStatus
from newsroom.services.article_query import ArticleFilter, SortField, SortOrder
from newsroom.services.article_service import ArticleLifecycle

_bearer = HTTPBearer(auto_error=False)


async def get_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    db: AsyncSession = Depends(get_db),
) -> Principal | None:
    """
    Resolve the bearer credential into a principal, or None.

    A missing, invalid or expired token and an unknown user id all yield
    None; the authorization matrix turns that into
    ``AuthenticationRequired`` for mutations, and reads ignore it.
    """
    token = credentials.credentials if credentials else None
    return await resolve_principal(db, token)


class BackgroundCleanup:
    """Runs asset deletion after the response has been sent."""

    def __init__(self, tasks: BackgroundTasks, store: AssetStore) -> None:
        self.tasks = tasks
        self.store = store

    def schedule(self, urls: Sequence[str]) -> None:
        if urls:
            self.tasks.add_task(self.store.delete_many, list(urls))


def get_article_lifecycle(background_tasks: BackgroundTasks) -> ArticleLifecycle:
    cleanup = BackgroundCleanup(background_tasks, AssetStore.from_settings(settings))
    return ArticleLifecycle.from_settings(settings, cleanup)


class PageParams:
    """
    Reusable dependency for ``limit`` / ``offset`` pagination.

    ``limit`` is clamped to ``settings.MAX_PAGE_SIZE`` regardless of the
    value supplied, so a settings change alone is enough to tighten it.
    """

    def __init__(
        self,
        limit: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            description="Number of items to return.",
        ),
        offset: int = Query(
            0,
            ge=0,
            description="Number of matching items to skip.",
        ),
    ) -> None:
        self.limit = min(limit, settings.MAX_PAGE_SIZE)
        self.offset = offset


class FilterParams:
    """Query-string filter dimensions shared by listing and search."""

    def __init__(
        self,
        status: ArticleStatus | None = Query(None, description="DRAFT, PUBLISHED or ARCHIVED."),
        category_id: int | None = Query(None),
        author_id: int | None = Query(None),
        tags: list[str] | None = Query(None, description="Match articles carrying any of these tags."),
        from_date: datetime | None = Query(None, description="Created at or after (ISO 8601)."),
        to_date: datetime | None = Query(None, description="Created at or before (ISO 8601)."),
    ) -> None:
        self.status = status
        self.category_id = category_id
        self.author_id = author_id
        self.tags = tags or []
        self.from_date = from_date
        self.to_date = to_date

    def to_filter(self) -> ArticleFilter:
        return ArticleFilter(
            status=self.status,
            category_id=self.category_id,
            author_id=self.author_id,
            tags=self.tags,
            from_date=self.from_date,
            to_date=self.to_date,
        )


class SortParams:
    def __init__(
        self,
        sort_by: SortField = Query(SortField.CREATED_AT, description="Field to sort by."),
        sort_order: SortOrder = Query(SortOrder.DESC, description="'asc' or 'desc'."),
    ) -> None:
        self.sort_by = sort_by
        self.sort_order = sort_order
