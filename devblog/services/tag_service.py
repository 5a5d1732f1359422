"""
Tag service — tag CRUD plus the normalizer every tag path goes through.

Tag names are stored in normalized form only, so uniqueness and lookups
are always done on ``normalize_tag_name(name)``.
"""
import logging
import re

from sqlalchemy import asc, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from devblog.exceptions import BadRequestError, ConflictError, NotFoundError
from devblog.models import Article, Tag, article_tags
from devblog.schemas import PaginatedResponse, TagCreate, TagUpdate
from devblog.services.serializers import tag_to_dict

logger = logging.getLogger(__name__)

_TAG_SPACE_RE = re.compile(r"\s+")
_TAG_STRIP_RE = re.compile(r"[^a-z0-9\s-]")


def normalize_tag_name(name: str) -> str:
    """
    Canonical form of a tag name: lowercase, single spaces, only
    ``[a-z0-9 -]`` characters, no surrounding whitespace.

    >>> normalize_tag_name("  Web-Dev!! ")
    'web-dev'
    """
    text = _TAG_SPACE_RE.sub(" ", name.lower().strip())
    text = _TAG_STRIP_RE.sub("", text)
    # Stripping can leave doubled or edge spaces behind ("c ++ x" -> "c  x").
    return _TAG_SPACE_RE.sub(" ", text).strip()


def _require_name(name: str) -> str:
    normalized = normalize_tag_name(name)
    if not normalized:
        raise BadRequestError("Tag name must contain at least one letter or digit")
    return normalized


def _article_count_subquery():
    return (
        select(func.count(article_tags.c.article_id))
        .where(article_tags.c.tag_id == Tag.id)
        .correlate(Tag)
        .scalar_subquery()
    )


async def _count_articles(db: AsyncSession, tag_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(article_tags).where(article_tags.c.tag_id == tag_id)
    )
    return result.scalar_one()


async def _tags_with_counts(db: AsyncSession, stmt) -> list[dict]:
    result = await db.execute(stmt)
    return [tag_to_dict(tag, count) for tag, count in result.all()]


async def _get_tag_or_404(db: AsyncSession, tag_id: int) -> Tag:
    tag = await db.get(Tag, tag_id)
    if tag is None:
        raise NotFoundError("Tag not found")
    return tag


# ---------------------------------------------------------------------------
# Used by article_service
# ---------------------------------------------------------------------------

async def resolve_tags(db: AsyncSession, names: list[str]) -> list[Tag]:
    """
    Return Tag instances for *names*, creating the missing ones.

    Names are normalized and de-duplicated first; names that normalize to
    nothing are skipped.  Order of first appearance is preserved.
    """
    normalized: list[str] = []
    for name in names:
        value = normalize_tag_name(name)
        if value and value not in normalized:
            normalized.append(value)
    if not normalized:
        return []

    result = await db.execute(select(Tag).where(Tag.name.in_(normalized)))
    existing = {tag.name: tag for tag in result.scalars().all()}

    tags: list[Tag] = []
    for value in normalized:
        tag = existing.get(value)
        if tag is None:
            tag = Tag(name=value)
            db.add(tag)
            logger.info("Tag created on the fly: %s", value)
        tags.append(tag)
    await db.flush()
    return tags


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

async def create_tag(db: AsyncSession, data: TagCreate) -> dict:
    name = _require_name(data.name)
    existing = await db.execute(select(Tag.id).where(Tag.name == name))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("Tag already exists")

    tag = Tag(name=name)
    db.add(tag)
    await db.flush()
    logger.info("Tag created: id=%s name=%s", tag.id, tag.name)
    return tag_to_dict(tag, 0)


async def get_tags(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 10,
    search: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> PaginatedResponse:
    """
    Paginated tag list with per-tag article counts.

    ``sort_by`` accepts ``name`` (default), ``article_count`` or
    ``created_at``; unknown values fall back to ``name``.
    """
    article_count = _article_count_subquery().label("article_count")
    sortable = {"name": Tag.name, "article_count": article_count, "created_at": Tag.created_at}
    sort_col = sortable.get(sort_by or "name", Tag.name)
    order_expr = desc(sort_col) if sort_order == "desc" else asc(sort_col)

    filters = []
    if search:
        filters.append(Tag.name.icontains(normalize_tag_name(search), autoescape=True))

    total = (
        await db.execute(select(func.count()).select_from(Tag).where(*filters))
    ).scalar_one()

    stmt = (
        select(Tag, article_count)
        .where(*filters)
        .order_by(order_expr, Tag.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items = await _tags_with_counts(db, stmt)
    return PaginatedResponse.build(items, total, page, page_size)


async def get_popular_tags(db: AsyncSession, limit: int = 10) -> list[dict]:
    article_count = _article_count_subquery().label("article_count")
    stmt = (
        select(Tag, article_count)
        .order_by(desc(article_count), Tag.name)
        .limit(limit)
    )
    return await _tags_with_counts(db, stmt)


async def get_tag_stats(db: AsyncSession) -> dict:
    total = (await db.execute(select(func.count()).select_from(Tag))).scalar_one()
    return {"total_tags": total, "most_used_tags": await get_popular_tags(db, limit=5)}


async def search_tags(db: AsyncSession, query: str, limit: int = 10) -> list[dict]:
    """Tags whose normalized name contains *query*, most used first."""
    needle = normalize_tag_name(query)
    if not needle:
        return []
    article_count = _article_count_subquery().label("article_count")
    stmt = (
        select(Tag, article_count)
        .where(Tag.name.icontains(needle, autoescape=True))
        .order_by(desc(article_count), Tag.name)
        .limit(limit)
    )
    return await _tags_with_counts(db, stmt)


async def get_tags_for_article(db: AsyncSession, article_id: int) -> list[dict]:
    if await db.get(Article, article_id) is None:
        raise NotFoundError("Article not found")
    article_count = _article_count_subquery().label("article_count")
    stmt = (
        select(Tag, article_count)
        .join(article_tags, article_tags.c.tag_id == Tag.id)
        .where(article_tags.c.article_id == article_id)
        .order_by(Tag.name)
    )
    return await _tags_with_counts(db, stmt)


async def get_tag(db: AsyncSession, tag_id: int) -> dict:
    tag = await _get_tag_or_404(db, tag_id)
    return tag_to_dict(tag, await _count_articles(db, tag.id))


async def get_tag_by_name(db: AsyncSession, name: str) -> dict:
    result = await db.execute(select(Tag).where(Tag.name == normalize_tag_name(name)))
    tag = result.scalar_one_or_none()
    if tag is None:
        raise NotFoundError("Tag not found")
    return tag_to_dict(tag, await _count_articles(db, tag.id))


async def update_tag(db: AsyncSession, tag_id: int, data: TagUpdate) -> dict:
    tag = await _get_tag_or_404(db, tag_id)

    if data.name is not None:
        name = _require_name(data.name)
        if name != tag.name:
            clash = await db.execute(select(Tag.id).where(Tag.name == name, Tag.id != tag_id))
            if clash.scalar_one_or_none() is not None:
                raise ConflictError("Tag name already exists")
            tag.name = name
            await db.flush()

    return tag_to_dict(tag, await _count_articles(db, tag.id))


async def delete_tag(db: AsyncSession, tag_id: int) -> None:
    """Delete a tag; refused while any article still carries it."""
    tag = await _get_tag_or_404(db, tag_id)
    in_use = await _count_articles(db, tag.id)
    if in_use > 0:
        raise BadRequestError(
            f'Cannot delete tag "{tag.name}" because it is used by {in_use} article(s)'
        )
    await db.delete(tag)
    await db.flush()
    logger.info("Tag deleted: id=%s name=%s", tag_id, tag.name)
