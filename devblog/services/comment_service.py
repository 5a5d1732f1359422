"""
Comment service — comments on articles, editable only by their author.

Every write invalidates the parent article's cache entries so the
``comments_count`` shown in lists and detail views stays consistent.
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from devblog.cache import cache
from devblog.exceptions import ForbiddenError, NotFoundError
from devblog.models import Article, Comment, User
from devblog.schemas import CommentCreate, CommentUpdate, PaginatedResponse
from devblog.services.serializers import comment_to_dict

logger = logging.getLogger(__name__)


def _comment_query():
    return select(Comment).options(joinedload(Comment.author), joinedload(Comment.article))


async def _load_comment(db: AsyncSession, comment_id: int) -> Comment | None:
    result = await db.execute(
        _comment_query()
        .where(Comment.id == comment_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _ensure_exists(db: AsyncSession, model, object_id: int, detail: str) -> None:
    result = await db.execute(select(model.id).where(model.id == object_id))
    if result.scalar_one_or_none() is None:
        raise NotFoundError(detail)


async def _get_owned_comment(db: AsyncSession, comment_id: int, user_id: int, action: str) -> Comment:
    comment = await db.get(Comment, comment_id)
    if comment is None:
        raise NotFoundError("Comment not found")
    if comment.author_id != user_id:
        raise ForbiddenError(f"You can only {action} your own comments")
    return comment


async def _paginate(db: AsyncSession, filters: list, page: int, page_size: int) -> PaginatedResponse:
    total = (
        await db.execute(select(func.count()).select_from(Comment).where(*filters))
    ).scalar_one()
    result = await db.execute(
        _comment_query()
        .where(*filters)
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items = [comment_to_dict(c) for c in result.scalars().all()]
    return PaginatedResponse.build(items, total, page, page_size)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def create_comment(db: AsyncSession, author_id: int, data: CommentCreate) -> dict:
    """
    Add a comment by *author_id* to ``data.article_id``.

    Raises NotFoundError when the article does not exist.
    """
    await _ensure_exists(db, Article, data.article_id, "Article not found")

    comment = Comment(body=data.body, article_id=data.article_id, author_id=author_id)
    db.add(comment)
    await db.flush()
    logger.info("Comment created: id=%s article=%s", comment.id, data.article_id)

    await cache.invalidate_article(data.article_id)
    return comment_to_dict(await _load_comment(db, comment.id))


async def update_comment(
    db: AsyncSession, comment_id: int, user_id: int, data: CommentUpdate
) -> dict:
    comment = await _get_owned_comment(db, comment_id, user_id, "edit")
    comment.body = data.body
    await db.flush()
    return comment_to_dict(await _load_comment(db, comment_id))


async def delete_comment(db: AsyncSession, comment_id: int, user_id: int) -> None:
    comment = await _get_owned_comment(db, comment_id, user_id, "delete")
    article_id = comment.article_id
    await db.delete(comment)
    await db.flush()
    logger.info("Comment deleted: id=%s article=%s", comment_id, article_id)
    await cache.invalidate_article(article_id)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_comments(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 10,
    article_id: int | None = None,
) -> PaginatedResponse:
    filters = [Comment.article_id == article_id] if article_id is not None else []
    return await _paginate(db, filters, page, page_size)


async def get_article_comments(
    db: AsyncSession, article_id: int, page: int = 1, page_size: int = 10
) -> PaginatedResponse:
    await _ensure_exists(db, Article, article_id, "Article not found")
    return await _paginate(db, [Comment.article_id == article_id], page, page_size)


async def get_user_comments(
    db: AsyncSession, author_id: int, page: int = 1, page_size: int = 10
) -> PaginatedResponse:
    await _ensure_exists(db, User, author_id, "User not found")
    return await _paginate(db, [Comment.author_id == author_id], page, page_size)


async def count_comments(db: AsyncSession, article_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(Comment).where(Comment.article_id == article_id)
    )
    return result.scalar_one()


async def get_comment(db: AsyncSession, comment_id: int) -> dict:
    comment = await _load_comment(db, comment_id)
    if comment is None:
        raise NotFoundError("Comment not found")
    return comment_to_dict(comment)
