from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from devblog.database import get_db
from devblog.dependencies import PaginationParams, SortParams, get_current_user_id, get_optional_user_id
from devblog.schemas import ArticleCreate, ArticleUpdate, PaginatedResponse
from devblog.services import article_service

router = APIRouter(prefix="/api/v1/articles", tags=["articles"])


@router.get("", response_model=PaginatedResponse)
async def list_articles(
    search: str | None = Query(None, description="Matches title, description or body."),
    author: str | None = Query(None, description="Author username contains."),
    tag: str | None = Query(None, description="Tag name contains."),
    published: bool | None = None,
    pagination: PaginationParams = Depends(),
    sort: SortParams = Depends(),
    user_id: int | None = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_articles(
        db,
        pagination.page,
        pagination.page_size,
        search=search,
        author=author,
        tag=tag,
        published=published,
        sort_by=sort.sort_by,
        sort_order=sort.sort_order,
        user_id=user_id,
    )


@router.get("/popular")
async def popular_articles(
    limit: int = Query(10, ge=1, le=100),
    user_id: int | None = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_popular_articles(db, limit, user_id)


@router.get("/stats")
async def article_stats(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_article_stats(db, user_id)


@router.get("/mine", response_model=PaginatedResponse)
async def my_articles(
    pagination: PaginationParams = Depends(),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_articles(
        db, pagination.page, pagination.page_size, author_id=user_id, user_id=user_id
    )


@router.get("/author/{author_id}", response_model=PaginatedResponse)
async def author_articles(
    author_id: int,
    published: bool | None = None,
    pagination: PaginationParams = Depends(),
    user_id: int | None = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_articles(
        db,
        pagination.page,
        pagination.page_size,
        author_id=author_id,
        published=published,
        user_id=user_id,
    )


@router.get("/slug/{slug}")
async def get_article_by_slug(
    slug: str,
    user_id: int | None = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_article_by_slug(db, slug, user_id)


@router.get("/{article_id}")
async def get_article(
    article_id: int,
    user_id: int | None = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_article(db, article_id, user_id)


@router.post("", status_code=201)
async def create_article(
    data: ArticleCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.create_article(db, user_id, data)
    return {"message": "Article created successfully", "article": article}


@router.patch("/{article_id}")
async def update_article(
    article_id: int,
    data: ArticleUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.update_article(db, article_id, user_id, data)
    return {"message": "Article updated successfully", "article": article}


@router.delete("/{article_id}")
async def delete_article(
    article_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await article_service.delete_article(db, article_id, user_id)
    return {"message": "Article deleted successfully"}
