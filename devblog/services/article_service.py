"""
Article service — business logic for the Article aggregate.

Design notes
------------
- List/detail reads go through the cache-aside pattern (Redis → fallback
  to DB).  Cache keys encode every dimension that affects the result so
  stale data is never served.  ``is_liked`` depends on the viewer, so it
  is overlaid after the cache read and never stored.
- Eager loading via ``joinedload`` (many-to-one: author) and
  ``selectinload`` (many-to-many: tags) avoids N+1 queries; comment and
  like counters come from one grouped COUNT per list.
- Service functions flush but do not commit; the transaction boundary
  is owned by the ``get_db`` dependency in the router layer.
"""
import logging
import re
import secrets

from sqlalchemy import asc, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from devblog.cache import article_detail_key, article_list_key, cache
from devblog.config import settings
from devblog.exceptions import ForbiddenError, NotFoundError
from devblog.models import Article, Comment, Like, Tag, User
from devblog.schemas import ArticleCreate, ArticleUpdate, PaginatedResponse
from devblog.services.serializers import article_to_dict
from devblog.services.tag_service import normalize_tag_name, resolve_tags

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9 -]")
_SLUG_SPACE_RE = re.compile(r" +")
_SLUG_DASH_RE = re.compile(r"-+")

# Columns that are safe to sort by; guards against arbitrary attribute access.
_SORTABLE_COLUMNS: frozenset[str] = frozenset({"created_at", "updated_at", "title"})


def slugify(title: str) -> str:
    """
    Return a URL-safe, lowercase slug derived from *title*.

    >>> slugify("Hello, World!")
    'hello-world'
    """
    text = _SLUG_STRIP_RE.sub("", title.lower())
    text = _SLUG_SPACE_RE.sub("-", text.strip())
    text = _SLUG_DASH_RE.sub("-", text).strip("-")
    return text or "article"


async def ensure_unique_slug(
    db: AsyncSession, base_slug: str, exclude_id: int | None = None
) -> str:
    """
    Return *base_slug*, or the first free ``base-1``, ``base-2``, ...

    A slug held only by *exclude_id* counts as free, so an article keeps its
    own slug on update.  After ``settings.SLUG_MAX_ATTEMPTS`` taken
    candidates a random hex suffix is used instead.
    """
    candidate = base_slug
    for counter in range(1, settings.SLUG_MAX_ATTEMPTS + 1):
        result = await db.execute(select(Article.id).where(Article.slug == candidate))
        owner_id = result.scalar_one_or_none()
        if owner_id is None or owner_id == exclude_id:
            return candidate
        candidate = f"{base_slug}-{counter}"

    logger.warning(
        "Slug %r still taken after %d attempts, using a random suffix",
        base_slug,
        settings.SLUG_MAX_ATTEMPTS,
    )
    return f"{base_slug}-{secrets.token_hex(4)}"


def _resolve_sort_column(sort_by: str | None):
    """
    Return the SQLAlchemy column expression for *sort_by*.

    Falls back to ``Article.created_at`` for any unrecognised or
    potentially dangerous column name.
    """
    if sort_by in _SORTABLE_COLUMNS:
        return getattr(Article, sort_by)
    return Article.created_at


# ---------------------------------------------------------------------------
# Loading helpers
# ---------------------------------------------------------------------------

def _article_query():
    return select(Article).options(joinedload(Article.author), selectinload(Article.tags))


async def _load_article(db: AsyncSession, article_id: int) -> Article | None:
    # populate_existing so relationships and onupdate columns reflect the
    # latest flush even when the instance is already in the identity map.
    result = await db.execute(
        _article_query()
        .where(Article.id == article_id)
        .execution_options(populate_existing=True)
    )
    return result.unique().scalar_one_or_none()


async def _count_by_article(db: AsyncSession, column, article_ids: list[int]) -> dict[int, int]:
    if not article_ids:
        return {}
    result = await db.execute(
        select(column, func.count()).where(column.in_(article_ids)).group_by(column)
    )
    return {article_id: count for article_id, count in result.all()}


async def liked_article_ids(
    db: AsyncSession, user_id: int | None, article_ids: list[int]
) -> set[int]:
    """Subset of *article_ids* liked by *user_id* (empty for anonymous viewers)."""
    if user_id is None or not article_ids:
        return set()
    result = await db.execute(
        select(Like.article_id).where(Like.user_id == user_id, Like.article_id.in_(article_ids))
    )
    return set(result.scalars().all())


async def serialize_articles(db: AsyncSession, articles: list[Article]) -> list[dict]:
    """Serialise *articles* with their counters; ``is_liked`` is left False."""
    ids = [a.id for a in articles]
    comments = await _count_by_article(db, Comment.article_id, ids)
    likes = await _count_by_article(db, Like.article_id, ids)
    return [
        article_to_dict(a, comments.get(a.id, 0), likes.get(a.id, 0)) for a in articles
    ]


async def _overlay_liked(db: AsyncSession, items: list[dict], user_id: int | None) -> list[dict]:
    liked = await liked_article_ids(db, user_id, [item["id"] for item in items])
    for item in items:
        item["is_liked"] = item["id"] in liked
    return items


async def _get_owned_article(db: AsyncSession, article_id: int, user_id: int, action: str) -> Article:
    result = await db.execute(
        _article_query().where(Article.id == article_id)
    )
    article = result.unique().scalar_one_or_none()
    if article is None:
        raise NotFoundError("Article not found")
    if article.author_id != user_id:
        raise ForbiddenError(f"You can only {action} your own articles")
    return article


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_articles(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 10,
    search: str | None = None,
    author: str | None = None,
    tag: str | None = None,
    published: bool | None = None,
    author_id: int | None = None,
    tag_id: int | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    user_id: int | None = None,
) -> PaginatedResponse:
    """
    Return a paginated article list, using Redis as a cache layer.

    Filters combine with AND:

    - ``search``: case-insensitive match on title, description or body
    - ``author``: author username contains the value
    - ``tag``: some tag name contains the (normalized) value
    - ``published``: only applied when given
    - ``author_id`` / ``tag_id``: exact matches used by the author and tag
      endpoints

    *user_id* is the viewer; it only drives the ``is_liked`` overlay.
    """
    sort_by = sort_by if sort_by in _SORTABLE_COLUMNS else "created_at"
    sort_order = sort_order if sort_order in ("asc", "desc") else "desc"
    tag_needle = normalize_tag_name(tag) if tag else None

    cache_key = article_list_key(
        page=page,
        page_size=page_size,
        search=search,
        author=author,
        tag=tag_needle,
        published=published,
        author_id=author_id,
        tag_id=tag_id,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    cached = await cache.get(cache_key)
    if cached:
        response = PaginatedResponse(**cached)
        await _overlay_liked(db, response.items, user_id)
        return response

    filters = []
    if search:
        filters.append(
            Article.title.icontains(search, autoescape=True)
            | Article.description.icontains(search, autoescape=True)
            | Article.body.icontains(search, autoescape=True)
        )
    if author:
        filters.append(
            Article.author_id.in_(
                select(User.id).where(User.username.icontains(author, autoescape=True))
            )
        )
    if tag_needle:
        filters.append(Article.tags.any(Tag.name.icontains(tag_needle, autoescape=True)))
    if published is not None:
        filters.append(Article.published.is_(published))
    if author_id is not None:
        filters.append(Article.author_id == author_id)
    if tag_id is not None:
        filters.append(Article.tags.any(Tag.id == tag_id))

    # 1. Total count
    total: int = (
        await db.execute(select(func.count()).select_from(Article).where(*filters))
    ).scalar_one()

    # 2. Paginated rows with eager-loaded relationships
    sort_col = _resolve_sort_column(sort_by)
    order_expr = desc(sort_col) if sort_order == "desc" else asc(sort_col)
    result = await db.execute(
        _article_query()
        .where(*filters)
        .order_by(order_expr, Article.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    articles = list(result.unique().scalars().all())

    response = PaginatedResponse.build(
        await serialize_articles(db, articles), total, page, page_size
    )
    await cache.set(cache_key, response.model_dump(), ttl=settings.CACHE_TTL_LIST)
    await _overlay_liked(db, response.items, user_id)
    return response


async def get_popular_articles(
    db: AsyncSession, limit: int = 10, user_id: int | None = None
) -> list[dict]:
    """Published articles ordered by likes, then comments, then recency."""
    likes_count = (
        select(func.count(Like.id)).where(Like.article_id == Article.id).scalar_subquery()
    )
    comments_count = (
        select(func.count(Comment.id)).where(Comment.article_id == Article.id).scalar_subquery()
    )
    result = await db.execute(
        _article_query()
        .where(Article.published.is_(True))
        .order_by(desc(likes_count), desc(comments_count), desc(Article.created_at))
        .limit(limit)
    )
    items = await serialize_articles(db, list(result.unique().scalars().all()))
    return await _overlay_liked(db, items, user_id)


async def get_article(db: AsyncSession, article_id: int, user_id: int | None = None) -> dict:
    """
    Return the detail dict for *article_id*.

    Raises NotFoundError when the article does not exist.
    """
    cache_key = article_detail_key(article_id)
    data = await cache.get(cache_key)
    if data is None:
        article = await _load_article(db, article_id)
        if article is None:
            raise NotFoundError("Article not found")
        data = (await serialize_articles(db, [article]))[0]
        await cache.set(cache_key, data, ttl=settings.CACHE_TTL_DETAIL)

    data["is_liked"] = article_id in await liked_article_ids(db, user_id, [article_id])
    return data


async def get_article_by_slug(db: AsyncSession, slug: str, user_id: int | None = None) -> dict:
    result = await db.execute(select(Article.id).where(Article.slug == slug))
    article_id = result.scalar_one_or_none()
    if article_id is None:
        raise NotFoundError("Article not found")
    return await get_article(db, article_id, user_id)


async def get_article_stats(db: AsyncSession, author_id: int) -> dict:
    """Total / published / draft article counts for *author_id*."""
    result = await db.execute(
        select(Article.published, func.count())
        .where(Article.author_id == author_id)
        .group_by(Article.published)
    )
    counts = {bool(published): count for published, count in result.all()}
    published = counts.get(True, 0)
    drafts = counts.get(False, 0)
    return {
        "total_articles": published + drafts,
        "published_articles": published,
        "draft_articles": drafts,
    }


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def create_article(db: AsyncSession, author_id: int, data: ArticleCreate) -> dict:
    """
    Create a new article for *author_id* and return its detail dict.

    The slug is derived from the title and made unique; tag names are
    normalized and created on demand.
    """
    slug = await ensure_unique_slug(db, slugify(data.title))

    article = Article(
        title=data.title,
        slug=slug,
        description=data.description,
        body=data.body,
        published=data.published,
        author_id=author_id,
    )
    article.tags = await resolve_tags(db, data.tags)

    db.add(article)
    await db.flush()
    logger.info("Article created: id=%s slug=%s author=%s", article.id, slug, author_id)

    await cache.invalidate_article()
    article = await _load_article(db, article.id)
    return (await serialize_articles(db, [article]))[0]


async def update_article(
    db: AsyncSession, article_id: int, user_id: int, data: ArticleUpdate
) -> dict:
    """
    Partially update an article owned by *user_id*.

    Only fields explicitly set in the request payload are modified
    (``model_dump(exclude_unset=True)``).  The slug is regenerated only
    when the title actually changes; ``tags`` replaces the whole set.
    """
    article = await _get_owned_article(db, article_id, user_id, "edit")

    update_data = data.model_dump(exclude_unset=True)
    tags_data: list[str] | None = update_data.pop("tags", None)

    new_title = update_data.get("title")
    if new_title is not None and new_title != article.title:
        article.slug = await ensure_unique_slug(db, slugify(new_title), exclude_id=article.id)

    for field, value in update_data.items():
        if value is None and field != "description":
            continue
        setattr(article, field, value)

    if tags_data is not None:
        article.tags = await resolve_tags(db, tags_data)

    await db.flush()
    await cache.invalidate_article(article_id)

    article = await _load_article(db, article_id)
    data = (await serialize_articles(db, [article]))[0]
    data["is_liked"] = bool(await liked_article_ids(db, user_id, [article_id]))
    return data


async def delete_article(db: AsyncSession, article_id: int, user_id: int) -> None:
    """Delete an article owned by *user_id*; comments and likes cascade."""
    result = await db.execute(select(Article).where(Article.id == article_id))
    article = result.scalar_one_or_none()
    if article is None:
        raise NotFoundError("Article not found")
    if article.author_id != user_id:
        raise ForbiddenError("You can only delete your own articles")

    await db.delete(article)
    await db.flush()
    logger.info("Article deleted: id=%s", article_id)
    await cache.invalidate_article(article_id)
