"""
Like service — one row per (article, user) pair; presence means "liked".

Writes never read-then-write: the composite unique key on ``likes`` is the
arbiter, so two concurrent requests from the same user cannot produce a
duplicate row or a wrong toggle outcome.
"""
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from devblog.cache import cache
from devblog.exceptions import ConflictError, NotFoundError
from devblog.models import Article, Like, User
from devblog.schemas import PaginatedResponse
from devblog.services.serializers import article_summary, iso, user_summary

logger = logging.getLogger(__name__)


def _like_to_dict(like: Like) -> dict:
    return {
        "id": like.id,
        "article_id": like.article_id,
        "user_id": like.user_id,
        "created_at": iso(like.created_at),
        "user": user_summary(like.user),
        "article": article_summary(like.article),
    }


async def _ensure_article(db: AsyncSession, article_id: int) -> None:
    result = await db.execute(select(Article.id).where(Article.id == article_id))
    if result.scalar_one_or_none() is None:
        raise NotFoundError("Article not found")


async def _insert_like(db: AsyncSession, user_id: int, article_id: int) -> bool:
    """
    Insert the like inside a SAVEPOINT.

    Returns False when the unique key rejected it, i.e. the like already
    existed; the outer transaction stays usable either way.
    """
    try:
        async with db.begin_nested():
            db.add(Like(article_id=article_id, user_id=user_id))
    except IntegrityError:
        return False
    return True


async def _delete_like(db: AsyncSession, user_id: int, article_id: int) -> bool:
    result = await db.execute(
        delete(Like).where(Like.article_id == article_id, Like.user_id == user_id)
    )
    return result.rowcount > 0


async def _paginate(db: AsyncSession, where, page: int, page_size: int) -> PaginatedResponse:
    total = (
        await db.execute(select(func.count()).select_from(Like).where(where))
    ).scalar_one()
    result = await db.execute(
        select(Like)
        .where(where)
        .options(joinedload(Like.user), joinedload(Like.article))
        .order_by(Like.created_at.desc(), Like.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items = [_like_to_dict(like) for like in result.unique().scalars().all()]
    return PaginatedResponse.build(items, total, page, page_size)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def toggle_like(db: AsyncSession, user_id: int, article_id: int) -> dict:
    """
    Flip the like state of *article_id* for *user_id*.

    One DELETE decides the common case: if it removed a row the article is
    now unliked.  Otherwise the like is inserted; losing that insert to a
    concurrent request still leaves the article liked.
    """
    await _ensure_article(db, article_id)

    if await _delete_like(db, user_id, article_id):
        is_liked = False
    else:
        await _insert_like(db, user_id, article_id)
        is_liked = True

    await cache.invalidate_article(article_id)
    logger.info("Like toggled: article=%s user=%s liked=%s", article_id, user_id, is_liked)
    return {
        "message": "Article liked successfully" if is_liked else "Article unliked successfully",
        "is_liked": is_liked,
    }


async def like_article(db: AsyncSession, user_id: int, article_id: int) -> dict:
    await _ensure_article(db, article_id)
    if not await _insert_like(db, user_id, article_id):
        raise ConflictError("Article already liked")

    await cache.invalidate_article(article_id)
    result = await db.execute(
        select(Like)
        .where(Like.article_id == article_id, Like.user_id == user_id)
        .options(joinedload(Like.user), joinedload(Like.article))
        .execution_options(populate_existing=True)
    )
    return {"message": "Article liked successfully", "like": _like_to_dict(result.scalar_one())}


async def unlike_article(db: AsyncSession, user_id: int, article_id: int) -> dict:
    if not await _delete_like(db, user_id, article_id):
        raise NotFoundError("Like not found")
    await cache.invalidate_article(article_id)
    return {"message": "Article unliked successfully"}


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def is_liked(db: AsyncSession, user_id: int | None, article_id: int) -> bool:
    if user_id is None:
        return False
    result = await db.execute(
        select(Like.id).where(Like.article_id == article_id, Like.user_id == user_id)
    )
    return result.scalar_one_or_none() is not None


async def get_like_stats(db: AsyncSession, article_id: int, user_id: int | None = None) -> dict:
    await _ensure_article(db, article_id)
    likes_count = (
        await db.execute(select(func.count()).select_from(Like).where(Like.article_id == article_id))
    ).scalar_one()
    return {"likes_count": likes_count, "is_liked": await is_liked(db, user_id, article_id)}


async def get_article_likes(
    db: AsyncSession, article_id: int, page: int = 1, page_size: int = 10
) -> PaginatedResponse:
    await _ensure_article(db, article_id)
    return await _paginate(db, Like.article_id == article_id, page, page_size)


async def get_user_likes(
    db: AsyncSession, user_id: int, page: int = 1, page_size: int = 10
) -> PaginatedResponse:
    if await db.get(User, user_id) is None:
        raise NotFoundError("User not found")
    return await _paginate(db, Like.user_id == user_id, page, page_size)
