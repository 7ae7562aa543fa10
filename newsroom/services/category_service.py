"""
Category service: the read-mostly catalogue articles are filed under.

Articles reference categories but never own them; the article lifecycle
only needs ``require_category`` / ``category_exists``.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.authz import can_manage_categories
from newsroom.cache import cache
from newsroom.errors import Conflict, InvalidInput, NotFound
from newsroom.identity import Principal
from newsroom.models import Article, Category
from newsroom.schemas import CategoryCreate, CategoryUpdate
from newsroom.slugs import slugify

logger = logging.getLogger(__name__)

# Width of the categories.slug column.
MAX_SLUG_LENGTH = 120


def _category_to_dict(category: Category) -> dict:
    return {"id": category.id, "name": category.name, "slug": category.slug}


async def require_category(db: AsyncSession, category_id: int) -> Category:
    category = await db.get(Category, category_id)
    if category is None:
        raise NotFound(f"category {category_id} not found")
    return category


async def category_exists(db: AsyncSession, category_id: int) -> bool:
    result = await db.execute(select(Category.id).where(Category.id == category_id))
    return result.scalar_one_or_none() is not None


async def get_categories(db: AsyncSession) -> list[dict]:
    result = await db.execute(select(Category).order_by(Category.name))
    return [_category_to_dict(c) for c in result.scalars().all()]


async def get_category(db: AsyncSession, category_id: int) -> dict:
    return _category_to_dict(await require_category(db, category_id))


def _category_slug(name: str) -> str:
    slug = slugify(name)
    if not slug:
        raise InvalidInput("category name must contain at least one letter or digit")
    if len(slug) > MAX_SLUG_LENGTH:
        raise InvalidInput(f"category slug must be at most {MAX_SLUG_LENGTH} characters")
    return slug


async def _flush_unique_name(db: AsyncSession, category: Category) -> None:
    try:
        async with db.begin_nested():
            db.add(category)
            await db.flush()
    except IntegrityError:
        raise Conflict(f"category {category.name!r} already exists") from None


async def create_category(db: AsyncSession, data: CategoryCreate, principal: Principal | None) -> dict:
    """
    Create a category; its slug is derived from the name.

    Name and slug uniqueness are enforced by unique constraints, so a
    duplicate surfaces as ``Conflict`` rather than a storage error.
    """
    can_manage_categories(principal).enforce()

    name = data.name.strip()
    slug = _category_slug(name)

    category = Category(name=name, slug=slug, created_at=datetime.now(timezone.utc))
    await _flush_unique_name(db, category)

    logger.info("Category %d %r created by user %d", category.id, slug, principal.id)
    return _category_to_dict(category)


async def update_category(
    db: AsyncSession, category_id: int, data: CategoryUpdate, principal: Principal | None
) -> dict:
    """Rename a category and regenerate its slug."""
    can_manage_categories(principal).enforce()
    category = await require_category(db, category_id)

    name = data.name.strip()
    category.name = name
    category.slug = _category_slug(name)
    await _flush_unique_name(db, category)

    # Cached article payloads embed the category name.
    await cache.invalidate_articles()
    logger.info("Category %d renamed to %r by user %d", category.id, category.slug, principal.id)
    return _category_to_dict(category)


async def delete_category(db: AsyncSession, category_id: int, principal: Principal | None) -> None:
    """Delete a category no article is filed under."""
    can_manage_categories(principal).enforce()
    category = await require_category(db, category_id)

    in_use = await db.execute(select(Article.id).where(Article.category_id == category_id).limit(1))
    if in_use.scalar_one_or_none() is not None:
        raise Conflict(f"category {category.name!r} still has articles")

    try:
        async with db.begin_nested():
            await db.delete(category)
            await db.flush()
    except IntegrityError:
        # An article was filed under it after the check above.
        raise Conflict(f"category {category.name!r} still has articles") from None

    logger.info("Category %d deleted by user %d", category_id, principal.id)
