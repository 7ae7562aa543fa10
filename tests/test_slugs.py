"""Tests for slug derivation and collision-free assignment."""
from datetime import datetime, timezone

import pytest
import pytest_asyncio

from newsroom.errors import InvalidInput
from newsroom.models import Article, ArticleStatus, Role
from newsroom.slugs import MAX_BASE_LENGTH, assign_slug, candidate, slugify


@pytest.mark.parametrize(
    "title, expected",
    [
        ("Science & Technology", "science-and-technology"),
        ("Daily Briefing", "daily-briefing"),
        ("  Crème brûlée: the return!  ", "creme-brulee-the-return"),
        ("Straße über Æsir", "strasse-uber-aesir"),
        ("2024 -- Year in Review", "2024-year-in-review"),
        ("Işık Haberleri", "isik-haberleri"),
        ("Новости спорта", "novosti-sporta"),
    ],
)
def test_slugify(title, expected):
    assert slugify(title) == expected


def test_slugify_transliterates_greek():
    slug = slugify("Ειδήσεις")
    assert slug and slug.isascii()


def test_slugify_caps_base_length():
    assert len(slugify("word " * 100)) <= MAX_BASE_LENGTH


def test_slugify_returns_empty_for_symbols_only():
    assert slugify("!!! ??? ***") == ""


def test_candidate_numbering():
    assert candidate("daily-briefing", 0) == "daily-briefing"
    assert candidate("daily-briefing", 2) == "daily-briefing-2"


@pytest_asyncio.fixture
async def owner(make_user, make_category):
    return await make_user(Role.JOURNALIST), await make_category("Briefings")


async def _insert(db, slug, owner):
    author, category = owner
    now = datetime.now(timezone.utc)
    article = Article(
        title=slug, slug=slug, content="<p>x</p>", content_text="x", summary="x",
        status=ArticleStatus.DRAFT, author_id=author.id, category_id=category.id,
        created_at=now, updated_at=now,
    )
    db.add(article)
    await db.flush()
    return article


@pytest.mark.asyncio
async def test_assign_slug_probes_past_taken_candidates(db_session, owner):
    assert await assign_slug(db_session, "Daily Briefing") == ("daily-briefing", 0)

    await _insert(db_session, "daily-briefing", owner)
    await _insert(db_session, "daily-briefing-1", owner)

    assert await assign_slug(db_session, "Daily Briefing") == ("daily-briefing-2", 2)


@pytest.mark.asyncio
async def test_assign_slug_ignores_the_article_being_updated(db_session, owner):
    article = await _insert(db_session, "daily-briefing", owner)
    slug, _ = await assign_slug(db_session, "Daily Briefing", exclude_id=article.id)
    assert slug == "daily-briefing"


@pytest.mark.asyncio
async def test_assign_slug_starts_from_given_counter(db_session):
    assert await assign_slug(db_session, "Daily Briefing", start=3) == ("daily-briefing-3", 3)


@pytest.mark.asyncio
async def test_assign_slug_rejects_title_without_letters(db_session):
    with pytest.raises(InvalidInput):
        await assign_slug(db_session, "???")
