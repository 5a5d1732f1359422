from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from devblog.database import get_db
from devblog.dependencies import PaginationParams, get_current_user_id
from devblog.schemas import (
    ChangePassword,
    PaginatedResponse,
    PasswordCheck,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from devblog.services import user_service

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.post("", status_code=201, response_model=UserResponse)
async def create_user(data: UserCreate, db: AsyncSession = Depends(get_db)):
    return await user_service.create_user(db, data)


@router.get("", response_model=PaginatedResponse)
async def list_users(pagination: PaginationParams = Depends(), db: AsyncSession = Depends(get_db)):
    return await user_service.get_users(db, pagination.page, pagination.page_size)


@router.get("/search", response_model=UserResponse)
async def search_user(
    email: str | None = None,
    username: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    return await user_service.find_user(db, email=email, username=username)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    return await user_service.get_user(db, user_id)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    data: UserUpdate,
    actor_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.update_user(db, user_id, actor_id, data)


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    actor_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.delete_user(db, user_id, actor_id)


@router.post("/{user_id}/change-password")
async def change_password(
    user_id: int,
    data: ChangePassword,
    actor_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.change_password(db, user_id, actor_id, data)


@router.post("/{user_id}/verify-password")
async def verify_password(user_id: int, data: PasswordCheck, db: AsyncSession = Depends(get_db)):
    return {"is_valid": await user_service.check_password(db, user_id, data.password)}


@router.post("/{user_id}/profile-image")
async def upload_profile_image(
    user_id: int,
    file: UploadFile = File(...),
    actor_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.upload_profile_image(db, user_id, actor_id, file)
