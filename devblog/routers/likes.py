from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from devblog.database import get_db
from devblog.dependencies import PaginationParams, get_current_user_id, get_optional_user_id
from devblog.schemas import LikeCreate, PaginatedResponse
from devblog.services import like_service

router = APIRouter(prefix="/api/v1/likes", tags=["likes"])


@router.post("", status_code=201)
async def like_article(
    data: LikeCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await like_service.like_article(db, user_id, data.article_id)


@router.post("/toggle/{article_id}")
async def toggle_like(
    article_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await like_service.toggle_like(db, user_id, article_id)


@router.delete("/{article_id}")
async def unlike_article(
    article_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await like_service.unlike_article(db, user_id, article_id)


@router.get("/me", response_model=PaginatedResponse)
async def my_likes(
    pagination: PaginationParams = Depends(),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await like_service.get_user_likes(db, user_id, pagination.page, pagination.page_size)


@router.get("/article/{article_id}", response_model=PaginatedResponse)
async def article_likes(
    article_id: int,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await like_service.get_article_likes(
        db, article_id, pagination.page, pagination.page_size
    )


@router.get("/user/{user_id}", response_model=PaginatedResponse)
async def user_likes(
    user_id: int,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await like_service.get_user_likes(db, user_id, pagination.page, pagination.page_size)


@router.get("/stats/{article_id}")
async def like_stats(
    article_id: int,
    user_id: int | None = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await like_service.get_like_stats(db, article_id, user_id)


@router.get("/check/{article_id}")
async def check_like(
    article_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return {"is_liked": await like_service.is_liked(db, user_id, article_id)}
