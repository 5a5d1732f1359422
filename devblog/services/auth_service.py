"""
Account flows that do not need a session: registration with email
verification and password reset by mailed token.

Tokens are random URL-safe strings stored on the user row; they are
single use and cleared once consumed.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from devblog.config import settings
from devblog.exceptions import BadRequestError
from devblog.mailer import send_password_reset_email, send_verification_email
from devblog.models import User
from devblog.schemas import ResetPassword, UserCreate
from devblog.security import hash_password
from devblog.services import user_service
from devblog.services.serializers import user_to_dict

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If the email exists, a reset link has been sent"


def _new_token() -> str:
    return secrets.token_urlsafe(32)


async def _find_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def _issue_verification(db: AsyncSession, user: User) -> None:
    user.verification_token = _new_token()
    await db.flush()
    await send_verification_email(user.email, user.verification_token)


async def register(db: AsyncSession, data: UserCreate) -> dict:
    """Create the account and mail a verification link."""
    user = await user_service.create_user(db, data)
    await _issue_verification(db, user)
    user = await user_service.load_user(db, user.id)
    return {"message": "User registered successfully", "user": user_to_dict(user)}


async def verify_email(db: AsyncSession, token: str) -> dict:
    result = await db.execute(
        select(User).where(User.verification_token == token, User.email_verified.is_(False))
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise BadRequestError("Invalid verification token")

    user.email_verified = True
    user.verification_token = None
    await db.flush()
    logger.info("Email verified: user=%s", user.id)
    return {"message": "Email verified successfully"}


async def resend_verification(db: AsyncSession, email: str) -> dict:
    user = await _find_by_email(db, email)
    if user is None:
        raise BadRequestError("User not found")
    if user.email_verified:
        raise BadRequestError("Email is already verified")

    await _issue_verification(db, user)
    return {"message": "Verification email sent"}


async def forgot_password(db: AsyncSession, email: str) -> dict:
    """
    Store and mail a reset token when *email* belongs to a user.

    The response is the same either way so the endpoint cannot be used to
    probe which addresses have accounts.
    """
    user = await _find_by_email(db, email)
    if user is None:
        logger.info("Password reset requested for unknown email")
        return {"message": FORGOT_PASSWORD_MESSAGE}

    user.reset_token = _new_token()
    user.reset_token_expires_at = datetime.now(timezone.utc) + timedelta(
        minutes=settings.RESET_TOKEN_TTL_MINUTES
    )
    await db.flush()
    await send_password_reset_email(user.email, user.reset_token)
    return {"message": FORGOT_PASSWORD_MESSAGE}


async def reset_password(db: AsyncSession, data: ResetPassword) -> dict:
    result = await db.execute(
        select(User).where(
            User.reset_token == data.token,
            User.reset_token_expires_at > datetime.now(timezone.utc),
        )
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise BadRequestError("Invalid or expired reset token")

    user_service.ensure_strong_password(data.new_password)

    user.password_hash = hash_password(data.new_password)
    user.reset_token = None
    user.reset_token_expires_at = None
    await db.flush()
    logger.info("Password reset: user=%s", user.id)
    return {"message": "Password reset successfully"}
