from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from devblog.database import get_db
from devblog.dependencies import PaginationParams, get_current_user_id
from devblog.schemas import CommentCreate, CommentUpdate, PaginatedResponse
from devblog.services import comment_service

router = APIRouter(prefix="/api/v1/comments", tags=["comments"])


@router.post("", status_code=201)
async def create_comment(
    data: CommentCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    comment = await comment_service.create_comment(db, user_id, data)
    return {"message": "Comment created successfully", "comment": comment}


@router.get("", response_model=PaginatedResponse)
async def list_comments(
    article_id: int | None = None,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.get_comments(
        db, pagination.page, pagination.page_size, article_id=article_id
    )


@router.get("/article/{article_id}", response_model=PaginatedResponse)
async def article_comments(
    article_id: int,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.get_article_comments(
        db, article_id, pagination.page, pagination.page_size
    )


@router.get("/user/{author_id}", response_model=PaginatedResponse)
async def user_comments(
    author_id: int,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.get_user_comments(
        db, author_id, pagination.page, pagination.page_size
    )


@router.get("/count/{article_id}")
async def count_comments(article_id: int, db: AsyncSession = Depends(get_db)):
    return {"count": await comment_service.count_comments(db, article_id)}


@router.get("/{comment_id}")
async def get_comment(comment_id: int, db: AsyncSession = Depends(get_db)):
    return await comment_service.get_comment(db, comment_id)


@router.patch("/{comment_id}")
async def update_comment(
    comment_id: int,
    data: CommentUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    comment = await comment_service.update_comment(db, comment_id, user_id, data)
    return {"message": "Comment updated successfully", "comment": comment}


@router.delete("/{comment_id}")
async def delete_comment(
    comment_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await comment_service.delete_comment(db, comment_id, user_id)
    return {"message": "Comment deleted successfully"}
