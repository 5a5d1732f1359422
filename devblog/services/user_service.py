"""
User service — CRUD operations for the User aggregate.

Users are fetched without caching because profile reads are cheap and
account data must never be served stale after a password or email change.
Passwords are checked with ``devblog.passwords`` and stored as Argon2 hashes.
"""
import logging

from fastapi import UploadFile
from sqlalchemy import func, or_, select, union
from sqlalchemy.ext.asyncio import AsyncSession

from devblog.cache import cache
from devblog.config import settings
from devblog.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PasswordValidationError,
)
from devblog.models import Article, Comment, Like, User
from devblog.passwords import (
    COMMON_PASSWORDS,
    generate_password_suggestion,
    password_strength,
    validate_password,
)
from devblog.schemas import ChangePassword, PaginatedResponse, UserCreate, UserUpdate
from devblog.security import hash_password, verify_password
from devblog.services import upload_service
from devblog.services.serializers import user_to_dict

logger = logging.getLogger(__name__)


def ensure_strong_password(password: str, message: str = "Password validation failed") -> None:
    """
    Raise PasswordValidationError listing every rule *password* breaks.

    The built-in common-password list is extended with
    ``settings.EXTRA_COMMON_PASSWORDS``.
    """
    common = COMMON_PASSWORDS | {p.lower() for p in settings.EXTRA_COMMON_PASSWORDS}
    result = validate_password(password, common_passwords=common)
    if not result.is_valid:
        raise PasswordValidationError(
            errors=result.errors,
            strength=password_strength(result.score),
            suggestion=generate_password_suggestion(),
            message=message,
        )


async def load_user(db: AsyncSession, user_id: int) -> User | None:
    # populate_existing picks up onupdate columns expired by the last flush.
    result = await db.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _get_user_or_404(db: AsyncSession, user_id: int) -> User:
    user = await load_user(db, user_id)
    if user is None:
        raise NotFoundError(f"User with ID {user_id} not found")
    return user


def _ensure_self(user_id: int, actor_id: int, action: str) -> None:
    if user_id != actor_id:
        raise ForbiddenError(f"You can only {action} your own account")


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def create_user(db: AsyncSession, data: UserCreate) -> User:
    """
    Register a new user and return the ORM instance.

    The password is validated before anything touches the database; email
    and username must both be free.
    """
    ensure_strong_password(data.password)

    existing = await db.execute(
        select(User.id).where(or_(User.email == data.email, User.username == data.username))
    )
    if existing.first() is not None:
        raise ConflictError("User with this email or username already exists")

    user = User(
        email=data.email,
        username=data.username,
        password_hash=hash_password(data.password),
        bio=data.bio,
        image=data.image,
    )
    db.add(user)
    await db.flush()
    logger.info("User created: id=%s username=%s", user.id, user.username)
    return await load_user(db, user.id)


async def get_users(db: AsyncSession, page: int = 1, page_size: int = 10) -> PaginatedResponse:
    """Return users ordered by creation date (newest first)."""
    total = (await db.execute(select(func.count()).select_from(User))).scalar_one()
    result = await db.execute(
        select(User)
        .order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items = [user_to_dict(u) for u in result.scalars().all()]
    return PaginatedResponse.build(items, total, page, page_size)


async def get_user(db: AsyncSession, user_id: int) -> dict:
    return user_to_dict(await _get_user_or_404(db, user_id))


async def find_user(db: AsyncSession, email: str | None = None, username: str | None = None) -> dict:
    """Exact lookup by email or username (email wins when both are given)."""
    if email:
        condition = User.email == email
    elif username:
        condition = User.username == username
    else:
        raise NotFoundError("User not found")

    result = await db.execute(select(User).where(condition))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    return user_to_dict(user)


async def update_user(db: AsyncSession, user_id: int, actor_id: int, data: UserUpdate) -> dict:
    """
    Partially update the caller's own account.

    A new password goes through the same strength checks as registration
    and is re-hashed; email/username must not belong to another user.
    """
    _ensure_self(user_id, actor_id, "update")
    user = await _get_user_or_404(db, user_id)
    update_data = data.model_dump(exclude_unset=True)

    password = update_data.pop("password", None)
    if password is not None:
        ensure_strong_password(password)

    clashes = []
    if update_data.get("email"):
        clashes.append(User.email == update_data["email"])
    if update_data.get("username"):
        clashes.append(User.username == update_data["username"])
    if clashes:
        duplicate = await db.execute(select(User.id).where(or_(*clashes), User.id != user_id))
        if duplicate.first() is not None:
            raise ConflictError("Email or username already exists")

    for field, value in update_data.items():
        if value is None and field in ("email", "username"):
            continue
        setattr(user, field, value)
    if password is not None:
        user.password_hash = hash_password(password)

    await db.flush()
    return user_to_dict(await load_user(db, user_id))


async def delete_user(db: AsyncSession, user_id: int, actor_id: int) -> dict:
    """Delete the caller's own account; articles, comments, likes and follows cascade."""
    _ensure_self(user_id, actor_id, "delete")
    user = await _get_user_or_404(db, user_id)

    # Articles whose cached detail or counters the cascade changes.
    touched = await db.execute(
        union(
            select(Article.id).where(Article.author_id == user_id),
            select(Comment.article_id).where(Comment.author_id == user_id),
            select(Like.article_id).where(Like.user_id == user_id),
        )
    )
    article_ids = touched.scalars().all()

    await db.delete(user)
    await db.flush()
    logger.info("User deleted: id=%s (%d articles touched)", user_id, len(article_ids))

    await cache.invalidate_article()
    for article_id in article_ids:
        await cache.invalidate_article(article_id)
    return {"message": "User deleted successfully"}


async def change_password(
    db: AsyncSession, user_id: int, actor_id: int, data: ChangePassword
) -> dict:
    _ensure_self(user_id, actor_id, "change the password of")
    user = await _get_user_or_404(db, user_id)

    if not verify_password(data.current_password, user.password_hash):
        raise BadRequestError("Current password is incorrect")
    ensure_strong_password(data.new_password, message="New password validation failed")

    user.password_hash = hash_password(data.new_password)
    await db.flush()
    logger.info("Password changed: user=%s", user_id)
    return {"message": "Password changed successfully"}


async def check_password(db: AsyncSession, user_id: int, password: str) -> bool:
    """True when *password* matches the stored hash; unknown users never match."""
    result = await db.execute(select(User.password_hash).where(User.id == user_id))
    password_hash = result.scalar_one_or_none()
    if password_hash is None:
        return False
    return verify_password(password, password_hash)


async def upload_profile_image(
    db: AsyncSession, user_id: int, actor_id: int, file: UploadFile
) -> dict:
    """Store *file* under ``images/profile-pictures`` and point ``user.image`` at it."""
    _ensure_self(user_id, actor_id, "update")
    user = await _get_user_or_404(db, user_id)

    upload = await upload_service.store_upload(
        db,
        file,
        user_id=user_id,
        folder="profile-pictures",
        generate_thumbnail=True,
        allowed_categories=("images",),
    )
    user.image = upload["url"]
    await db.flush()
    return {
        "message": "Profile image uploaded successfully",
        "user": user_to_dict(await load_user(db, user_id)),
        "file": upload,
    }
