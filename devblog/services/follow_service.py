"""
Follow service — directed follower -> following relationships.
"""
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from devblog.exceptions import BadRequestError, ConflictError, NotFoundError
from devblog.models import Follow, User
from devblog.schemas import PaginatedResponse
from devblog.services.serializers import iso, user_summary

logger = logging.getLogger(__name__)


async def _ensure_user(db: AsyncSession, user_id: int, detail: str = "User not found") -> None:
    result = await db.execute(select(User.id).where(User.id == user_id))
    if result.scalar_one_or_none() is None:
        raise NotFoundError(detail)


async def _followed_ids(db: AsyncSession, viewer_id: int | None, user_ids: list[int]) -> set[int]:
    """Subset of *user_ids* that *viewer_id* follows."""
    if viewer_id is None or not user_ids:
        return set()
    result = await db.execute(
        select(Follow.following_id).where(
            Follow.follower_id == viewer_id, Follow.following_id.in_(user_ids)
        )
    )
    return set(result.scalars().all())


async def _user_page(
    db: AsyncSession, users: list[User], total: int, page: int, page_size: int, viewer_id: int | None
) -> PaginatedResponse:
    followed = await _followed_ids(db, viewer_id, [u.id for u in users])
    items = [{**user_summary(u), "is_following": u.id in followed} for u in users]
    return PaginatedResponse.build(items, total, page, page_size)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def follow_user(db: AsyncSession, follower_id: int, following_id: int) -> dict:
    """
    Make *follower_id* follow *following_id*.

    The insert runs in a SAVEPOINT and the unique key decides whether the
    relationship already existed.
    """
    if follower_id == following_id:
        raise BadRequestError("Cannot follow yourself")
    await _ensure_user(db, following_id, "User to follow not found")

    try:
        async with db.begin_nested():
            db.add(Follow(follower_id=follower_id, following_id=following_id))
    except IntegrityError:
        raise ConflictError("Already following this user")

    result = await db.execute(
        select(Follow)
        .where(Follow.follower_id == follower_id, Follow.following_id == following_id)
        .options(joinedload(Follow.follower), joinedload(Follow.following))
        .execution_options(populate_existing=True)
    )
    follow = result.scalar_one()
    logger.info("User %s now follows %s", follower_id, following_id)
    return {
        "id": follow.id,
        "follower": user_summary(follow.follower),
        "following": user_summary(follow.following),
        "created_at": iso(follow.created_at),
    }


async def unfollow_user(db: AsyncSession, follower_id: int, following_id: int) -> dict:
    result = await db.execute(
        delete(Follow).where(
            Follow.follower_id == follower_id, Follow.following_id == following_id
        )
    )
    if result.rowcount == 0:
        raise NotFoundError("Follow relationship not found")
    logger.info("User %s unfollowed %s", follower_id, following_id)
    return {"message": "Unfollowed successfully"}


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_followers(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    page_size: int = 10,
    viewer_id: int | None = None,
) -> PaginatedResponse:
    """Users following *user_id*, newest first."""
    await _ensure_user(db, user_id)
    total = (
        await db.execute(
            select(func.count()).select_from(Follow).where(Follow.following_id == user_id)
        )
    ).scalar_one()
    result = await db.execute(
        select(User)
        .join(Follow, Follow.follower_id == User.id)
        .where(Follow.following_id == user_id)
        .order_by(Follow.created_at.desc(), Follow.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return await _user_page(db, list(result.scalars().all()), total, page, page_size, viewer_id)


async def get_following(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    page_size: int = 10,
    viewer_id: int | None = None,
) -> PaginatedResponse:
    """Users *user_id* follows, newest first."""
    await _ensure_user(db, user_id)
    total = (
        await db.execute(
            select(func.count()).select_from(Follow).where(Follow.follower_id == user_id)
        )
    ).scalar_one()
    result = await db.execute(
        select(User)
        .join(Follow, Follow.following_id == User.id)
        .where(Follow.follower_id == user_id)
        .order_by(Follow.created_at.desc(), Follow.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return await _user_page(db, list(result.scalars().all()), total, page, page_size, viewer_id)


async def get_follow_stats(db: AsyncSession, user_id: int) -> dict:
    await _ensure_user(db, user_id)
    followers = (
        await db.execute(
            select(func.count()).select_from(Follow).where(Follow.following_id == user_id)
        )
    ).scalar_one()
    following = (
        await db.execute(
            select(func.count()).select_from(Follow).where(Follow.follower_id == user_id)
        )
    ).scalar_one()
    return {"followers_count": followers, "following_count": following}


async def is_following(db: AsyncSession, follower_id: int, following_id: int) -> bool:
    result = await db.execute(
        select(Follow.id).where(
            Follow.follower_id == follower_id, Follow.following_id == following_id
        )
    )
    return result.scalar_one_or_none() is not None


async def get_mutual_followers(
    db: AsyncSession,
    user_id: int,
    other_user_id: int,
    page: int = 1,
    page_size: int = 10,
) -> PaginatedResponse:
    """Users who follow both *user_id* and *other_user_id*."""
    user_ids = sorted({user_id, other_user_id})
    found = await db.execute(
        select(func.count()).select_from(User).where(User.id.in_(user_ids))
    )
    if found.scalar_one() != len(user_ids):
        raise NotFoundError("One or both users not found")

    follows_first = select(Follow.follower_id).where(Follow.following_id == user_id)
    follows_second = select(Follow.follower_id).where(Follow.following_id == other_user_id)
    condition = User.id.in_(follows_first) & User.id.in_(follows_second)

    total = (
        await db.execute(select(func.count()).select_from(User).where(condition))
    ).scalar_one()
    result = await db.execute(
        select(User)
        .where(condition)
        .order_by(User.username)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return await _user_page(db, list(result.scalars().all()), total, page, page_size, user_id)
