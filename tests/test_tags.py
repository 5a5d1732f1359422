"""
Tag endpoint tests — CRUD with normalization, article counts, popular and
search listings, and articles by tag.
"""
import pytest
from httpx import AsyncClient

from conftest import auth_headers, create_article, create_user


async def _create_tag(client: AsyncClient, user_id: int, name: str):
    return await client.post("/api/v1/tags", json={"name": name}, headers=auth_headers(user_id))


# ---------------------------------------------------------------------------
# Create / update / delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_tag_normalizes_name(async_client: AsyncClient):
    user = await create_user(async_client, "tagmaker")
    resp = await _create_tag(async_client, user["id"], "  Web-Dev!! ")
    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "Tag created successfully"
    assert body["tag"]["name"] == "web-dev"
    assert body["tag"]["article_count"] == 0


@pytest.mark.asyncio
async def test_create_tag_requires_authentication(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/tags", json={"name": "python"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_duplicate_tag_conflicts(async_client: AsyncClient):
    user = await create_user(async_client, "dupetagger")
    await _create_tag(async_client, user["id"], "python")
    resp = await _create_tag(async_client, user["id"], "PYTHON!")
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Tag already exists"


@pytest.mark.asyncio
async def test_tag_name_without_letters_rejected(async_client: AsyncClient):
    user = await create_user(async_client, "symbolic")
    resp = await _create_tag(async_client, user["id"], "!!!")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_update_tag(async_client: AsyncClient):
    user = await create_user(async_client, "renamer")
    tag = (await _create_tag(async_client, user["id"], "js")).json()["tag"]
    await _create_tag(async_client, user["id"], "typescript")

    resp = await async_client.patch(
        f"/api/v1/tags/{tag['id']}", json={"name": "JavaScript"}, headers=auth_headers(user["id"])
    )
    assert resp.status_code == 200
    assert resp.json()["tag"]["name"] == "javascript"

    clash = await async_client.patch(
        f"/api/v1/tags/{tag['id']}", json={"name": "TypeScript"}, headers=auth_headers(user["id"])
    )
    assert clash.status_code == 409
    assert clash.json()["detail"] == "Tag name already exists"


@pytest.mark.asyncio
async def test_delete_tag(async_client: AsyncClient):
    user = await create_user(async_client, "pruner")
    unused = (await _create_tag(async_client, user["id"], "unused")).json()["tag"]
    await create_article(async_client, user["id"], "Tagged post", tags=["busy"])
    busy = (await async_client.get("/api/v1/tags/name/busy")).json()

    resp = await async_client.delete(f"/api/v1/tags/{busy['id']}", headers=auth_headers(user["id"]))
    assert resp.status_code == 400
    assert resp.json()["detail"] == 'Cannot delete tag "busy" because it is used by 1 article(s)'

    resp = await async_client.delete(f"/api/v1/tags/{unused['id']}", headers=auth_headers(user["id"]))
    assert resp.status_code == 200
    assert resp.json()["message"] == "Tag deleted successfully"
    assert (await async_client.get(f"/api/v1/tags/{unused['id']}")).status_code == 404


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_tags_with_counts(async_client: AsyncClient):
    user = await create_user(async_client, "counter")
    await create_article(async_client, user["id"], "One", tags=["python", "web"])
    await create_article(async_client, user["id"], "Two", tags=["python"])

    resp = await async_client.get("/api/v1/tags")
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 2
    assert {t["name"]: t["article_count"] for t in data["items"]} == {"python": 2, "web": 1}

    by_count = await async_client.get(
        "/api/v1/tags", params={"sort_by": "article_count", "sort_order": "desc"}
    )
    assert by_count.json()["items"][0]["name"] == "python"

    searched = await async_client.get("/api/v1/tags", params={"search": "WE"})
    assert [t["name"] for t in searched.json()["items"]] == ["web"]


@pytest.mark.asyncio
async def test_popular_and_stats(async_client: AsyncClient):
    user = await create_user(async_client, "popper")
    await create_article(async_client, user["id"], "A", tags=["rust", "go"])
    await create_article(async_client, user["id"], "B", tags=["rust"])
    await _create_tag(async_client, user["id"], "lonely")

    popular = await async_client.get("/api/v1/tags/popular", params={"limit": 2})
    assert [t["name"] for t in popular.json()] == ["rust", "go"]

    stats = await async_client.get("/api/v1/tags/stats")
    body = stats.json()
    assert body["total_tags"] == 3
    assert body["most_used_tags"][0] == {
        "id": body["most_used_tags"][0]["id"],
        "name": "rust",
        "article_count": 2,
    }


@pytest.mark.asyncio
async def test_search_tags(async_client: AsyncClient):
    user = await create_user(async_client, "searcher")
    for name in ("python", "pytest", "rust"):
        await _create_tag(async_client, user["id"], name)

    resp = await async_client.get("/api/v1/tags/search", params={"q": "PY"})
    assert sorted(t["name"] for t in resp.json()) == ["pytest", "python"]

    missing_q = await async_client.get("/api/v1/tags/search")
    assert missing_q.status_code == 422


@pytest.mark.asyncio
async def test_tags_for_article(async_client: AsyncClient):
    user = await create_user(async_client, "articletags")
    article = await create_article(async_client, user["id"], "Tagged", tags=["zeta", "alpha"])

    resp = await async_client.get(f"/api/v1/tags/article/{article['id']}")
    assert [t["name"] for t in resp.json()] == ["alpha", "zeta"]

    assert (await async_client.get("/api/v1/tags/article/99999")).status_code == 404


@pytest.mark.asyncio
async def test_get_tag_by_id_and_name(async_client: AsyncClient):
    user = await create_user(async_client, "getter")
    tag = (await _create_tag(async_client, user["id"], "devops")).json()["tag"]

    by_id = await async_client.get(f"/api/v1/tags/{tag['id']}")
    assert by_id.json()["name"] == "devops"

    by_name = await async_client.get("/api/v1/tags/name/DevOps")
    assert by_name.json()["id"] == tag["id"]

    assert (await async_client.get("/api/v1/tags/name/nothing")).status_code == 404


@pytest.mark.asyncio
async def test_articles_by_tag_only_published(async_client: AsyncClient):
    user = await create_user(async_client, "bytag")
    await create_article(async_client, user["id"], "Live Python", tags=["python"])
    await create_article(async_client, user["id"], "Draft Python", tags=["python"], published=False)
    await create_article(async_client, user["id"], "Rusty", tags=["rust"])

    resp = await async_client.get("/api/v1/tags/articles/Python")
    assert resp.status_code == 200
    body = resp.json()
    assert body["tag"]["name"] == "python"
    assert body["tag"]["article_count"] == 2
    assert [a["title"] for a in body["articles"]["items"]] == ["Live Python"]

    assert (await async_client.get("/api/v1/tags/articles/unknown")).status_code == 404
