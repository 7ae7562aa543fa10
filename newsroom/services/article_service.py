"""
Article lifecycle: create, update and delete with every write-time rule
made explicit.

Design notes
------------
- Each mutation runs in a fixed order: load, authorize, validate, assign
  slug, persist.  Not-found and authorization checks precede any
  sanitization or validation.
- Everything that can reject a write is checked before the ORM instance
  is touched; a rejected update leaves no partial change behind.
- The INSERT/UPDATE that follows the slug probe runs inside a
  SAVEPOINT.  A unique violation on ``slug`` rolls back only that
  savepoint and the probe is re-entered past the collided counter, up
  to ``slug_max_attempts`` times before surfacing ``Conflict``.
- Removed images are handed to an ``AssetCleanup`` scheduler after the
  write succeeds.  Cleanup is best-effort: scheduling errors are logged
  and swallowed.
- Service methods flush but do not commit; the transaction boundary is
  owned by ``session_scope`` (the ``get_db`` dependency for requests).
"""
import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.assets import AssetValidator, diff_removed
from newsroom.authz import Action, can_mutate_article
from newsroom.cache import cache
from newsroom.config import Settings
from newsroom.content import ContentSanitizer, SanitizerConfig, plain_text
from newsroom.errors import Conflict, InvalidInput
from newsroom.identity import Principal
from newsroom.models import Article, ArticleImage, ArticleStatus, ArticleTag
from newsroom.schemas import ArticleCreate, ArticleUpdate, ImageIn
from newsroom.services.article_query import article_detail_to_dict, load_article, normalize_tags
from newsroom.services.category_service import require_category
from newsroom.slugs import assign_slug

logger = logging.getLogger(__name__)


class AssetCleanup(Protocol):
    def schedule(self, urls: Sequence[str]) -> None:
        ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _is_slug_violation(exc: IntegrityError) -> bool:
    return "slug" in str(exc.orig).lower()


def _build_images(images: Sequence[ImageIn]) -> list[ArticleImage]:
    return [
        ArticleImage(
            position=i,
            url=img.url.strip(),
            is_main=img.is_main,
            caption=img.caption,
            alt_text=img.alt_text,
            credit=img.credit,
        )
        for i, img in enumerate(images)
    ]


def _build_tags(names: Sequence[str]) -> list[ArticleTag]:
    return [ArticleTag(position=i, name=name) for i, name in enumerate(names)]


class ArticleLifecycle:
    def __init__(
        self,
        sanitizer: ContentSanitizer,
        validator: AssetValidator,
        cleanup: AssetCleanup,
        summary_max_length: int = 160,
        slug_max_attempts: int = 5,
    ) -> None:
        self.sanitizer = sanitizer
        self.validator = validator
        self.cleanup = cleanup
        self.summary_max_length = summary_max_length
        self.slug_max_attempts = slug_max_attempts

    @classmethod
    def from_settings(cls, settings: Settings, cleanup: AssetCleanup) -> "ArticleLifecycle":
        return cls(
            ContentSanitizer(SanitizerConfig.from_settings(settings)),
            AssetValidator(settings.TRUSTED_ASSET_HOSTS),
            cleanup,
            summary_max_length=settings.SUMMARY_MAX_LENGTH,
            slug_max_attempts=settings.SLUG_MAX_ATTEMPTS,
        )

    # ------------------------------------------------------------------
    # Validation steps
    # ------------------------------------------------------------------

    @staticmethod
    def _clean_title(title: str) -> str:
        title = title.strip()
        if not title:
            raise InvalidInput("title must not be empty")
        return title

    def _clean_content(self, raw: str) -> str:
        content = self.sanitizer.sanitize(raw).strip()
        if not content:
            raise InvalidInput("content must not be empty")
        self.validator.require_trusted(self.sanitizer.extract_image_refs(content), "inline image")
        return content

    def _check_images(self, images: Sequence[ImageIn]) -> None:
        if not images:
            raise InvalidInput("an article needs at least one image")
        mains = sum(1 for img in images if img.is_main)
        if mains != 1:
            raise InvalidInput(f"exactly one image must be marked as main (got {mains})")
        self.validator.require_trusted([img.url.strip() for img in images])

    def _summary(self, explicit: str | None, content: str) -> str:
        if explicit and explicit.strip():
            return explicit.strip()
        return self.sanitizer.summarize(content, self.summary_max_length)

    def _schedule_cleanup(self, urls: Sequence[str]) -> None:
        if not urls:
            return
        try:
            self.cleanup.schedule(list(urls))
        except Exception:
            logger.warning("Could not schedule cleanup of %d asset(s)", len(urls), exc_info=True)

    # ------------------------------------------------------------------
    # Persistence with slug retry
    # ------------------------------------------------------------------

    async def _write_with_slug(
        self,
        db: AsyncSession,
        article: Article,
        title: str,
        apply: Callable[[], None],
    ) -> None:
        """
        Assign a slug for *title*, run *apply* and flush, all inside one
        savepoint; re-enter the probe on a concurrent slug claim.
        """
        start = 0
        for attempt in range(1, self.slug_max_attempts + 1):
            slug, counter = await assign_slug(db, title, exclude_id=article.id, start=start)
            try:
                async with db.begin_nested():
                    apply()
                    article.slug = slug
                    await db.flush()
                return
            except IntegrityError as exc:
                if not _is_slug_violation(exc):
                    raise
                logger.warning(
                    "Slug %r was claimed concurrently (attempt %d/%d)",
                    slug, attempt, self.slug_max_attempts,
                )
                start = counter + 1
                if article.id is not None:
                    await db.refresh(article)
        raise Conflict(f"could not assign a unique slug after {self.slug_max_attempts} attempts")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create(self, db: AsyncSession, data: ArticleCreate, principal: Principal | None) -> dict:
        can_mutate_article(principal, None, Action.CREATE).enforce()
        category = await require_category(db, data.category_id)

        title = self._clean_title(data.title)
        content = self._clean_content(data.content)
        self._check_images(data.images)
        tags = normalize_tags(data.tags)

        now = _now()
        article = Article(
            title=title,
            content=content,
            content_text=plain_text(content),
            summary=self._summary(data.summary, content),
            status=data.status,
            author_id=principal.id,
            category=category,
            publish_date=now if data.status == ArticleStatus.PUBLISHED else None,
            created_at=now,
            updated_at=now,
        )

        def apply() -> None:
            # Children are rebuilt per attempt; a rolled-back savepoint expunges them.
            article.images = _build_images(data.images)
            article.tags = _build_tags(tags)
            db.add(article)

        await self._write_with_slug(db, article, title, apply)
        await db.refresh(article, ["author"])
        await cache.invalidate_articles()

        logger.info("Article %d %r created by user %d", article.id, article.slug, principal.id)
        return article_detail_to_dict(article)

    async def update(
        self, db: AsyncSession, article_id: int, data: ArticleUpdate, principal: Principal | None
    ) -> dict:
        """
        Apply a partial update.  Fields left out of the payload (or sent as
        null, except ``summary``) keep their stored value.
        """
        article = await load_article(db, article_id)
        can_mutate_article(principal, article, Action.UPDATE).enforce()

        patch = {
            k: v for k, v in data.model_dump(exclude_unset=True).items()
            if v is not None or k == "summary"
        }
        fields: dict = {}

        new_title = None
        if "title" in patch:
            title = self._clean_title(patch["title"])
            if title != article.title:
                new_title = title
                fields["title"] = title

        category = None
        if "category_id" in patch and patch["category_id"] != article.category_id:
            category = await require_category(db, patch["category_id"])

        content = article.content
        if "content" in patch:
            content = self._clean_content(patch["content"])
            fields["content"] = content
            fields["content_text"] = plain_text(content)

        if "summary" in patch:
            fields["summary"] = self._summary(patch["summary"], content)
        elif "content" in patch:
            fields["summary"] = self._summary(None, content)

        removed: list[str] = []
        if "images" in patch:
            self._check_images(data.images)
            removed = diff_removed(
                [img.url for img in article.images], [img.url.strip() for img in data.images]
            )

        tags = normalize_tags(data.tags) if "tags" in patch else None

        now = _now()
        if "status" in patch:
            fields["status"] = data.status
            if data.status == ArticleStatus.PUBLISHED and article.publish_date is None:
                fields["publish_date"] = now

        def apply() -> None:
            for name, value in fields.items():
                setattr(article, name, value)
            if category is not None:
                article.category = category
            if "images" in patch:
                article.images = _build_images(data.images)
            if tags is not None:
                article.tags = _build_tags(tags)
            article.updated_at = now

        if new_title is not None:
            await self._write_with_slug(db, article, new_title, apply)
        else:
            apply()
            await db.flush()

        await cache.invalidate_articles()
        self._schedule_cleanup(removed)

        logger.info("Article %d updated by user %d (%s)", article.id, principal.id, ", ".join(sorted(patch)))
        return article_detail_to_dict(article)

    async def delete(self, db: AsyncSession, article_id: int, principal: Principal | None) -> None:
        article = await load_article(db, article_id)
        can_mutate_article(principal, article, Action.DELETE).enforce()

        urls: list[str] = []
        for url in [img.url for img in article.images] + self.sanitizer.extract_image_refs(article.content):
            if url not in urls:
                urls.append(url)

        await db.delete(article)
        await db.flush()
        await cache.invalidate_articles()
        self._schedule_cleanup(urls)

        logger.info("Article %d deleted by user %d", article_id, principal.id)

