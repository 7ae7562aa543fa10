"""
Slug assignment for articles (and the shared slugifier used by categories).

``assign_slug`` probes candidates ``base``, ``base-1``, ``base-2``, ... in
order and returns the first one no other article holds.  The probe alone
cannot rule out a concurrent writer claiming the same candidate between
probe and INSERT; the unique index on ``articles.slug`` catches that case
and the lifecycle manager re-enters the probe loop past the collided
counter.
"""
import logging
import re

from slugify import slugify as _transliterate
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.errors import InvalidInput
from newsroom.models import Article

logger = logging.getLogger(__name__)

_AMPERSAND_RE = re.compile(r"\s*&\s*")

MAX_BASE_LENGTH = 300


def slugify(text: str) -> str:
    """Return a lowercase, hyphenated ASCII slug for *text* ("" when nothing survives)."""
    return _transliterate(
        _AMPERSAND_RE.sub(" and ", text),
        max_length=MAX_BASE_LENGTH,
        word_boundary=False,
    )


def candidate(base: str, counter: int) -> str:
    return base if counter == 0 else f"{base}-{counter}"


async def _slug_taken(db: AsyncSession, slug: str, exclude_id: int | None) -> bool:
    q = select(Article.id).where(Article.slug == slug)
    if exclude_id is not None:
        q = q.where(Article.id != exclude_id)
    result = await db.execute(q.limit(1))
    return result.scalar_one_or_none() is not None


async def assign_slug(
    db: AsyncSession,
    title: str,
    exclude_id: int | None = None,
    start: int = 0,
) -> tuple[str, int]:
    """
    Return ``(slug, counter)`` for the first free candidate derived from
    *title*, probing from *start* upwards.

    *exclude_id* is the article being updated, so an unchanged slug is
    not reported as a collision with itself.  Raises ``InvalidInput`` when
    the title reduces to an empty base slug.
    """
    base = slugify(title)
    if not base:
        raise InvalidInput("title must contain at least one letter or digit")

    counter = start
    while True:
        slug = candidate(base, counter)
        if not await _slug_taken(db, slug, exclude_id):
            return slug, counter
        logger.debug("Slug %r already taken, probing next candidate", slug)
        counter += 1
