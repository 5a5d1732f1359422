from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from devblog.database import get_db
from devblog.schemas import EmailPayload, ResetPassword, TokenPayload, UserCreate
from devblog.services import auth_service

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/register", status_code=201)
async def register(data: UserCreate, db: AsyncSession = Depends(get_db)):
    return await auth_service.register(db, data)


@router.post("/verify-email")
async def verify_email(data: TokenPayload, db: AsyncSession = Depends(get_db)):
    return await auth_service.verify_email(db, data.token)


@router.post("/resend-verification")
async def resend_verification(data: EmailPayload, db: AsyncSession = Depends(get_db)):
    return await auth_service.resend_verification(db, data.email)


@router.post("/forgot-password")
async def forgot_password(data: EmailPayload, db: AsyncSession = Depends(get_db)):
    return await auth_service.forgot_password(db, data.email)


@router.post("/reset-password")
async def reset_password(data: ResetPassword, db: AsyncSession = Depends(get_db)):
    return await auth_service.reset_password(db, data)
