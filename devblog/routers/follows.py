from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from devblog.database import get_db
from devblog.dependencies import PaginationParams, get_current_user_id, get_optional_user_id
from devblog.schemas import FollowCreate, PaginatedResponse
from devblog.services import follow_service

router = APIRouter(prefix="/api/v1/follows", tags=["follows"])


@router.post("", status_code=201)
async def follow_user(
    data: FollowCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await follow_service.follow_user(db, user_id, data.following_id)


@router.delete("/{following_id}")
async def unfollow_user(
    following_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await follow_service.unfollow_user(db, user_id, following_id)


@router.get("/followers/{user_id}", response_model=PaginatedResponse)
async def followers(
    user_id: int,
    pagination: PaginationParams = Depends(),
    viewer_id: int | None = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await follow_service.get_followers(
        db, user_id, pagination.page, pagination.page_size, viewer_id
    )


@router.get("/following/{user_id}", response_model=PaginatedResponse)
async def following(
    user_id: int,
    pagination: PaginationParams = Depends(),
    viewer_id: int | None = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await follow_service.get_following(
        db, user_id, pagination.page, pagination.page_size, viewer_id
    )


@router.get("/stats/{user_id}")
async def follow_stats(user_id: int, db: AsyncSession = Depends(get_db)):
    return await follow_service.get_follow_stats(db, user_id)


@router.get("/check/{following_id}")
async def check_following(
    following_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return {"is_following": await follow_service.is_following(db, user_id, following_id)}


@router.get("/mutual/{user_id}", response_model=PaginatedResponse)
async def mutual_followers(
    user_id: int,
    pagination: PaginationParams = Depends(),
    viewer_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await follow_service.get_mutual_followers(
        db, viewer_id, user_id, pagination.page, pagination.page_size
    )
