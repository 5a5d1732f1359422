from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from devblog.database import get_db
from devblog.dependencies import PaginationParams, SortParams, get_current_user_id, get_optional_user_id
from devblog.schemas import PaginatedResponse, TagCreate, TagUpdate
from devblog.services import article_service, tag_service

router = APIRouter(prefix="/api/v1/tags", tags=["tags"])


@router.post("", status_code=201, dependencies=[Depends(get_current_user_id)])
async def create_tag(data: TagCreate, db: AsyncSession = Depends(get_db)):
    tag = await tag_service.create_tag(db, data)
    return {"message": "Tag created successfully", "tag": tag}


@router.get("", response_model=PaginatedResponse)
async def list_tags(
    search: str | None = None,
    pagination: PaginationParams = Depends(),
    sort: SortParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await tag_service.get_tags(
        db,
        pagination.page,
        pagination.page_size,
        search=search,
        sort_by=sort.sort_by,
        sort_order=sort.sort_order,
    )


@router.get("/popular")
async def popular_tags(limit: int = Query(10, ge=1, le=100), db: AsyncSession = Depends(get_db)):
    return await tag_service.get_popular_tags(db, limit)


@router.get("/stats")
async def tag_stats(db: AsyncSession = Depends(get_db)):
    return await tag_service.get_tag_stats(db)


@router.get("/search")
async def search_tags(
    q: str = Query(..., min_length=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await tag_service.search_tags(db, q, limit)


@router.get("/article/{article_id}")
async def article_tags(article_id: int, db: AsyncSession = Depends(get_db)):
    return await tag_service.get_tags_for_article(db, article_id)


@router.get("/articles/{tag_name}")
async def tag_articles(
    tag_name: str,
    pagination: PaginationParams = Depends(),
    user_id: int | None = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    tag = await tag_service.get_tag_by_name(db, tag_name)
    articles = await article_service.get_articles(
        db,
        pagination.page,
        pagination.page_size,
        tag_id=tag["id"],
        published=True,
        user_id=user_id,
    )
    return {"tag": tag, "articles": articles}


@router.get("/name/{name}")
async def get_tag_by_name(name: str, db: AsyncSession = Depends(get_db)):
    return await tag_service.get_tag_by_name(db, name)


@router.get("/{tag_id}")
async def get_tag(tag_id: int, db: AsyncSession = Depends(get_db)):
    return await tag_service.get_tag(db, tag_id)


@router.patch("/{tag_id}", dependencies=[Depends(get_current_user_id)])
async def update_tag(tag_id: int, data: TagUpdate, db: AsyncSession = Depends(get_db)):
    tag = await tag_service.update_tag(db, tag_id, data)
    return {"message": "Tag updated successfully", "tag": tag}


@router.delete("/{tag_id}", dependencies=[Depends(get_current_user_id)])
async def delete_tag(tag_id: int, db: AsyncSession = Depends(get_db)):
    await tag_service.delete_tag(db, tag_id)
    return {"message": "Tag deleted successfully"}
