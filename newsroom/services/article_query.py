"""
Article query engine: filtered listing, free-text search and detail reads.

Design notes
------------
- Filters are independent optional dimensions combined with AND; an
  unset dimension adds no predicate at all.
- Pages are fetched with ``LIMIT limit + 1``: the presence of the extra
  row is what sets ``has_more``, and it is dropped before returning.
  ``total`` comes from a separate COUNT over the same predicate, so under
  concurrent writes the two may briefly disagree.
- Every ordering ends with ``Article.id`` so that rows tying on the sort
  key keep a stable order and consecutive pages never overlap.
- Search relevance is a weighted sum of case-insensitive substring hits
  per query term (title > tags > summary > content), computed in SQL so
  it runs unchanged on PostgreSQL and SQLite.
- Pages and details go through the Redis cache-aside layer; every
  article mutation purges it.
"""
import enum
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.cache import cache
from newsroom.config import settings
from newsroom.content import count_words
from newsroom.errors import InvalidInput, NotFound
from newsroom.models import Article, ArticleImage, ArticleStatus, ArticleTag
from newsroom.schemas import ArticlePage

logger = logging.getLogger(__name__)

MAX_SEARCH_TERMS = 10

# Per-term weights for search relevance.
TITLE_WEIGHT = 8
TAG_WEIGHT = 4
SUMMARY_WEIGHT = 2
CONTENT_WEIGHT = 1


class SortField(str, enum.Enum):
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    PUBLISH_DATE = "publish_date"
    TITLE = "title"
    STATUS = "status"


class SortOrder(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


_SORT_COLUMNS = {
    SortField.CREATED_AT: Article.created_at,
    SortField.UPDATED_AT: Article.updated_at,
    SortField.PUBLISH_DATE: Article.publish_date,
    SortField.TITLE: Article.title,
    SortField.STATUS: Article.status,
}


def _coerce(enum_cls, value, name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise InvalidInput(f"invalid {name} {value!r}; expected one of: {allowed}") from None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_tags(tags: Sequence[str]) -> list[str]:
    """Trim, drop empties and de-duplicate *tags*, keeping first-seen order."""
    seen: list[str] = []
    for tag in tags:
        name = tag.strip()
        if name and name not in seen:
            seen.append(name)
    return seen


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

@dataclass
class ArticleFilter:
    status: ArticleStatus | None = None
    category_id: int | None = None
    author_id: int | None = None
    tags: Sequence[str] = ()
    from_date: datetime | None = None
    to_date: datetime | None = None

    def __post_init__(self) -> None:
        if self.status is not None:
            self.status = _coerce(ArticleStatus, self.status, "status")
        self.tags = normalize_tags(self.tags or ())
        if self.from_date is not None:
            self.from_date = _as_utc(self.from_date)
        if self.to_date is not None:
            self.to_date = _as_utc(self.to_date)
        if self.from_date and self.to_date and self.from_date > self.to_date:
            raise InvalidInput("from_date must not be later than to_date")

    def conditions(self) -> list:
        conds = []
        if self.status is not None:
            conds.append(Article.status == self.status)
        if self.category_id is not None:
            conds.append(Article.category_id == self.category_id)
        if self.author_id is not None:
            conds.append(Article.author_id == self.author_id)
        if self.tags:
            conds.append(Article.tags.any(ArticleTag.name.in_(self.tags)))
        if self.from_date is not None:
            conds.append(Article.created_at >= self.from_date)
        if self.to_date is not None:
            conds.append(Article.created_at <= self.to_date)
        return conds

    def cache_params(self) -> dict:
        return {
            "status": self.status.value if self.status else None,
            "category_id": self.category_id,
            "author_id": self.author_id,
            "tags": sorted(self.tags),
            "from_date": self.from_date.isoformat() if self.from_date else None,
            "to_date": self.to_date.isoformat() if self.to_date else None,
        }


def _check_window(limit: int | None, offset: int) -> int:
    if limit is None:
        limit = settings.DEFAULT_PAGE_SIZE
    if not 1 <= limit <= settings.MAX_PAGE_SIZE:
        raise InvalidInput(f"limit must be between 1 and {settings.MAX_PAGE_SIZE}")
    if offset < 0:
        raise InvalidInput("offset must not be negative")
    return limit


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _image_to_dict(image: ArticleImage) -> dict:
    return {
        "url": image.url,
        "is_main": image.is_main,
        "caption": image.caption,
        "alt_text": image.alt_text,
        "credit": image.credit,
    }


def article_to_dict(article: Article) -> dict:
    """Serialise an Article ORM instance to a plain dict (list view)."""
    author = article.author
    category = article.category
    return {
        "id": article.id,
        "title": article.title,
        "slug": article.slug,
        "summary": article.summary,
        "status": article.status.value,
        "tags": [t.name for t in article.tags],
        "images": [_image_to_dict(i) for i in article.images],
        "publish_date": _iso(article.publish_date),
        "created_at": _iso(article.created_at),
        "updated_at": _iso(article.updated_at),
        "author_id": article.author_id,
        "category_id": article.category_id,
        "author": {"id": author.id, "name": author.name, "role": author.role.value} if author else None,
        "category": {"id": category.id, "name": category.name, "slug": category.slug} if category else None,
    }


def article_detail_to_dict(article: Article) -> dict:
    """Serialise an Article ORM instance to a plain dict (detail view)."""
    data = article_to_dict(article)
    data["content"] = article.content
    data["word_count"] = count_words(article.content)
    return data


def _page(items: list[dict], total: int, limit: int, offset: int) -> ArticlePage:
    has_more = len(items) > limit
    return ArticlePage(items=items[:limit], total=total, has_more=has_more, limit=limit, offset=offset)


# ---------------------------------------------------------------------------
# Detail reads
# ---------------------------------------------------------------------------

async def load_article(db: AsyncSession, article_id: int) -> Article:
    """Return the Article ORM instance for *article_id* or raise ``NotFound``."""
    result = await db.execute(select(Article).where(Article.id == article_id))
    article = result.unique().scalar_one_or_none()
    if article is None:
        raise NotFound(f"article {article_id} not found")
    return article


async def get_article(db: AsyncSession, article_id: int) -> dict:
    cache_key = cache.detail_key(f"id:{article_id}")
    cached = await cache.get(cache_key)
    if cached:
        return cached

    data = article_detail_to_dict(await load_article(db, article_id))
    await cache.set(cache_key, data, ttl=settings.CACHE_TTL_DETAIL)
    return data


async def get_article_by_slug(db: AsyncSession, slug: str) -> dict:
    cache_key = cache.detail_key(f"slug:{slug}")
    cached = await cache.get(cache_key)
    if cached:
        return cached

    result = await db.execute(select(Article).where(Article.slug == slug))
    article = result.unique().scalar_one_or_none()
    if article is None:
        raise NotFound(f"article {slug!r} not found")

    data = article_detail_to_dict(article)
    await cache.set(cache_key, data, ttl=settings.CACHE_TTL_DETAIL)
    return data


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

def _ordering(sort_by: SortField, sort_order: SortOrder) -> list:
    column = _SORT_COLUMNS[sort_by]
    if sort_order == SortOrder.DESC:
        primary, tiebreak = column.desc(), Article.id.desc()
    else:
        primary, tiebreak = column.asc(), Article.id.asc()
    if sort_by == SortField.PUBLISH_DATE:
        primary = primary.nulls_last()
    return [primary, tiebreak]


async def _count(db: AsyncSession, conditions: list) -> int:
    q = select(func.count()).select_from(Article).where(*conditions)
    return (await db.execute(q)).scalar_one()


async def list_articles(
    db: AsyncSession,
    filters: ArticleFilter | None = None,
    sort_by: SortField | str = SortField.CREATED_AT,
    sort_order: SortOrder | str = SortOrder.DESC,
    limit: int | None = None,
    offset: int = 0,
) -> ArticlePage:
    """
    Return one page of articles matching *filters*, newest first by default.

    Two SQL statements are issued on a cache miss: the COUNT for
    ``total`` and the ``limit + 1`` probe for the page itself.
    """
    limit = _check_window(limit, offset)
    sort_by = _coerce(SortField, sort_by, "sort_by")
    sort_order = _coerce(SortOrder, sort_order, "sort_order")
    filters = filters or ArticleFilter()

    cache_key = cache.page_key("list", {
        **filters.cache_params(),
        "sort_by": sort_by.value,
        "sort_order": sort_order.value,
        "limit": limit,
        "offset": offset,
    })
    cached = await cache.get(cache_key)
    if cached:
        return ArticlePage(**cached)

    conditions = filters.conditions()
    total = await _count(db, conditions)

    q = (
        select(Article)
        .where(*conditions)
        .order_by(*_ordering(sort_by, sort_order))
        .offset(offset)
        .limit(limit + 1)
    )
    result = await db.execute(q)
    rows = result.unique().scalars().all()

    page = _page([article_to_dict(a) for a in rows], total, limit, offset)
    await cache.set(cache_key, page.model_dump(), ttl=settings.CACHE_TTL_LIST)
    return page


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

def _search_terms(query: str) -> list[str]:
    terms: list[str] = []
    for word in (query or "").lower().split():
        if word not in terms:
            terms.append(word)
    if not terms:
        raise InvalidInput("search query must not be empty")
    return terms[:MAX_SEARCH_TERMS]


def _relevance(terms: list[str]):
    score = None
    for term in terms:
        term_score = (
            case((Article.title.icontains(term, autoescape=True), TITLE_WEIGHT), else_=0)
            + case((Article.tags.any(func.lower(ArticleTag.name) == term), TAG_WEIGHT), else_=0)
            + case((Article.summary.icontains(term, autoescape=True), SUMMARY_WEIGHT), else_=0)
            + case((Article.content_text.icontains(term, autoescape=True), CONTENT_WEIGHT), else_=0)
        )
        score = term_score if score is None else score + term_score
    return score


async def search_articles(
    db: AsyncSession,
    query: str,
    filters: ArticleFilter | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> ArticlePage:
    """
    Rank articles matching any term of *query* by relevance, then apply
    the same filters and ``limit + 1`` pagination as ``list_articles``.

    Ties on relevance fall back to newest-created first.
    """
    limit = _check_window(limit, offset)
    terms = _search_terms(query)
    filters = filters or ArticleFilter()

    cache_key = cache.page_key("search", {
        **filters.cache_params(),
        "terms": terms,
        "limit": limit,
        "offset": offset,
    })
    cached = await cache.get(cache_key)
    if cached:
        return ArticlePage(**cached)

    score = _relevance(terms)
    conditions = [*filters.conditions(), score > 0]
    total = await _count(db, conditions)

    q = (
        select(Article, score.label("relevance"))
        .where(*conditions)
        .order_by(score.desc(), Article.created_at.desc(), Article.id.desc())
        .offset(offset)
        .limit(limit + 1)
    )
    result = await db.execute(q)

    items = []
    for article, relevance in result.unique().all():
        data = article_to_dict(article)
        data["relevance"] = int(relevance)
        items.append(data)

    page = _page(items, total, limit, offset)
    await cache.set(cache_key, page.model_dump(), ttl=settings.CACHE_TTL_LIST)
    return page
