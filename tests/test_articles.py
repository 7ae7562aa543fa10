"""HTTP-level tests for the article and category endpoints."""
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from newsroom.config import settings
from newsroom.database import get_db
from newsroom.identity import create_access_token
from newsroom.main import app
from newsroom.models import Role

IMAGES = "https://res.cloudinary.com/demo/image/upload"
MAIN = f"{IMAGES}/v1/main.jpg"


def _auth(principal) -> dict:
    return {"Authorization": f"Bearer {create_access_token(principal.id)}"}


def _payload(category_id: int, **overrides) -> dict:
    body = {
        "title": "Daily Briefing",
        "content": "<p>Markets rallied today.</p>",
        "category_id": category_id,
        "tags": ["markets"],
        "images": [{"url": MAIN, "is_main": True, "caption": "Trading floor"}],
    }
    body.update(overrides)
    return body


@pytest_asyncio.fixture
async def journalist(make_user):
    return await make_user(Role.JOURNALIST)


@pytest_asyncio.fixture
async def category(make_category):
    return await make_category("Science")


async def _create(client: AsyncClient, principal, category_id: int, **overrides) -> dict:
    resp = await client.post("/api/v1/articles", json=_payload(category_id, **overrides), headers=_auth(principal))
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health(async_client: AsyncClient):
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
    assert "x-request-id" in resp.headers
    assert "x-query-count" in resp.headers


@pytest.mark.asyncio
async def test_create_article(async_client: AsyncClient, journalist, category):
    data = await _create(async_client, journalist, category.id, title="Science & Technology")

    assert data["slug"] == "science-and-technology"
    assert data["status"] == "DRAFT"
    assert data["publish_date"] is None
    assert data["author"]["id"] == journalist.id
    assert data["summary"] == "Markets rallied today."


@pytest.mark.asyncio
async def test_duplicate_titles_get_distinct_slugs(async_client: AsyncClient, journalist, category):
    first = await _create(async_client, journalist, category.id)
    second = await _create(async_client, journalist, category.id)
    assert first["slug"] == "daily-briefing"
    assert second["slug"] == "daily-briefing-1"


@pytest.mark.asyncio
async def test_create_requires_token(async_client: AsyncClient, category):
    resp = await async_client.post("/api/v1/articles", json=_payload(category.id))
    assert resp.status_code == 401
    assert resp.json() == {
        "error": {"code": "AUTHENTICATION_REQUIRED", "message": "authentication required"}
    }


@pytest.mark.asyncio
async def test_create_with_bad_token(async_client: AsyncClient, category):
    resp = await async_client.post(
        "/api/v1/articles", json=_payload(category.id), headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_reader_cannot_create(async_client: AsyncClient, make_user, category):
    reader = await make_user(Role.READER)
    resp = await async_client.post("/api/v1/articles", json=_payload(category.id), headers=_auth(reader))
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_malformed_body_is_invalid_input(async_client: AsyncClient, journalist):
    resp = await async_client.post("/api/v1/articles", json={"title": "x"}, headers=_auth(journalist))
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_INPUT"


@pytest.mark.asyncio
async def test_overlong_tag_is_rejected(async_client: AsyncClient, journalist, category):
    resp = await async_client.post(
        "/api/v1/articles", json=_payload(category.id, tags=["x" * 150]), headers=_auth(journalist)
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_INPUT"


@pytest.mark.asyncio
async def test_untrusted_image_is_rejected(async_client: AsyncClient, journalist, category):
    resp = await async_client.post(
        "/api/v1/articles",
        json=_payload(category.id, images=[{"url": "https://evil.example/x.jpg", "is_main": True}]),
        headers=_auth(journalist),
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_INPUT"


# ---------------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_with_no_images_changes_nothing(async_client: AsyncClient, journalist, category):
    created = await _create(async_client, journalist, category.id)

    resp = await async_client.patch(
        f"/api/v1/articles/{created['id']}",
        json={"title": "Changed", "images": []},
        headers=_auth(journalist),
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_INPUT"

    stored = (await async_client.get(f"/api/v1/articles/{created['id']}")).json()
    assert stored["title"] == "Daily Briefing"
    assert [img["url"] for img in stored["images"]] == [MAIN]


@pytest.mark.asyncio
async def test_non_owner_cannot_update(async_client: AsyncClient, make_user, journalist, category):
    created = await _create(async_client, journalist, category.id)
    other = await make_user(Role.JOURNALIST)

    resp = await async_client.patch(
        f"/api/v1/articles/{created['id']}", json={"title": "Mine now"}, headers=_auth(other)
    )
    assert resp.status_code == 403
    assert resp.json()["error"] == {
        "code": "FORBIDDEN",
        "message": "not authorized to update this article",
    }


@pytest.mark.asyncio
async def test_publish_via_patch(async_client: AsyncClient, journalist, category):
    created = await _create(async_client, journalist, category.id)

    resp = await async_client.patch(
        f"/api/v1/articles/{created['id']}", json={"status": "PUBLISHED"}, headers=_auth(journalist)
    )
    assert resp.status_code == 200
    assert resp.json()["publish_date"] is not None


@pytest.mark.asyncio
async def test_admin_can_update_and_delete(async_client: AsyncClient, make_user, journalist, category):
    created = await _create(async_client, journalist, category.id)
    admin = await make_user(Role.ADMIN)

    resp = await async_client.patch(
        f"/api/v1/articles/{created['id']}", json={"title": "Corrected Briefing"}, headers=_auth(admin)
    )
    assert resp.status_code == 200
    assert resp.json()["slug"] == "corrected-briefing"

    resp = await async_client.delete(f"/api/v1/articles/{created['id']}", headers=_auth(admin))
    assert resp.status_code == 204

    resp = await async_client.get(f"/api/v1/articles/{created['id']}")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_editor_cannot_delete_others_article(async_client: AsyncClient, make_user, journalist, category):
    created = await _create(async_client, journalist, category.id)
    editor = await make_user(Role.EDITOR)

    resp = await async_client.delete(f"/api/v1/articles/{created['id']}", headers=_auth(editor))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_delete_missing_article(async_client: AsyncClient, journalist):
    resp = await async_client.delete("/api/v1/articles/9999", headers=_auth(journalist))
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_published_with_page_size_one(async_client: AsyncClient, journalist, category):
    for title in ("One", "Two", "Three"):
        await _create(async_client, journalist, category.id, title=title, status="PUBLISHED")
    await _create(async_client, journalist, category.id, title="Draft")

    resp = await async_client.get("/api/v1/articles", params={"status": "PUBLISHED", "limit": 1})
    assert resp.status_code == 200
    page = resp.json()
    assert page["total"] == 3
    assert page["has_more"] is True
    assert [item["title"] for item in page["items"]] == ["Three"]
    assert "content" not in page["items"][0]


@pytest.mark.asyncio
async def test_list_filters_by_repeated_tags(async_client: AsyncClient, journalist, category):
    await _create(async_client, journalist, category.id, title="A", tags=["alpha"])
    await _create(async_client, journalist, category.id, title="B", tags=["beta"])
    await _create(async_client, journalist, category.id, title="C", tags=["gamma"])

    resp = await async_client.get("/api/v1/articles", params=[("tags", "alpha"), ("tags", "gamma")])
    assert sorted(item["title"] for item in resp.json()["items"]) == ["A", "C"]


@pytest.mark.asyncio
async def test_page_size_is_clamped(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/articles", params={"limit": 500})
    assert resp.status_code == 200
    assert resp.json()["limit"] == 100


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "params",
    [
        {"status": "LIVE"},
        {"sort_by": "popularity"},
        {"from_date": "2026-02-01T00:00:00Z", "to_date": "2026-01-01T00:00:00Z"},
    ],
)
async def test_bad_query_parameters(async_client: AsyncClient, params):
    resp = await async_client.get("/api/v1/articles", params=params)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_INPUT"


@pytest.mark.asyncio
async def test_search_and_slug_lookup(async_client: AsyncClient, journalist, category):
    await _create(async_client, journalist, category.id, title="Quantum leap in computing")
    await _create(async_client, journalist, category.id, title="Weather", content="<p>Quantum rain.</p>")

    resp = await async_client.get("/api/v1/articles/search", params={"q": "quantum"})
    assert resp.status_code == 200
    titles = [item["title"] for item in resp.json()["items"]]
    assert titles == ["Quantum leap in computing", "Weather"]

    resp = await async_client.get("/api/v1/articles/slug/quantum-leap-in-computing")
    assert resp.status_code == 200
    assert resp.json()["word_count"] == 3


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_category_catalogue(async_client: AsyncClient, journalist, category):
    resp = await async_client.post(
        "/api/v1/categories", json={"name": "Health & Wellness"}, headers=_auth(journalist)
    )
    assert resp.status_code == 201
    assert resp.json()["slug"] == "health-and-wellness"

    resp = await async_client.post("/api/v1/categories", json={"name": "Science"}, headers=_auth(journalist))
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "CONFLICT"

    names = [c["name"] for c in (await async_client.get("/api/v1/categories")).json()]
    assert names == ["Health & Wellness", "Science"]

    assert (await async_client.get(f"/api/v1/categories/{category.id}")).json()["name"] == "Science"
    assert (await async_client.get("/api/v1/categories/999")).status_code == 404


@pytest.mark.asyncio
async def test_category_create_requires_token(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/categories", json={"name": "Sports"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_category_rename_and_delete(async_client: AsyncClient, journalist):
    created = (
        await async_client.post("/api/v1/categories", json={"name": "Sport"}, headers=_auth(journalist))
    ).json()

    resp = await async_client.patch(
        f"/api/v1/categories/{created['id']}", json={"name": "Sports & Games"}, headers=_auth(journalist)
    )
    assert resp.status_code == 200
    assert resp.json()["slug"] == "sports-and-games"

    resp = await async_client.delete(f"/api/v1/categories/{created['id']}")
    assert resp.status_code == 401

    resp = await async_client.delete(f"/api/v1/categories/{created['id']}", headers=_auth(journalist))
    assert resp.status_code == 204
    assert (await async_client.get(f"/api/v1/categories/{created['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_category_with_articles_cannot_be_deleted(async_client: AsyncClient, journalist, category):
    await _create(async_client, journalist, category.id)

    resp = await async_client.delete(f"/api/v1/categories/{category.id}", headers=_auth(journalist))
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "CONFLICT"


# ---------------------------------------------------------------------------
# Unexpected errors
# ---------------------------------------------------------------------------

async def _broken_db():
    raise RuntimeError("connection to db-primary:5432 refused")
    yield


@pytest.mark.asyncio
@pytest.mark.parametrize("debug, message", [(False, "internal error"), (True, "RuntimeError")])
async def test_unexpected_error_detail_follows_debug(monkeypatch, debug, message):
    monkeypatch.setattr(settings, "DEBUG", debug)
    monkeypatch.setitem(app.dependency_overrides, get_db, _broken_db)

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.get("/api/v1/categories")

    assert resp.status_code == 500
    error = resp.json()["error"]
    assert error["code"] == "INTERNAL"
    assert error["message"].startswith(message)
    assert ("db-primary" in error["message"]) is debug
