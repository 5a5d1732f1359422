from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from devblog.database import get_db
from devblog.dependencies import PaginationParams, get_current_user_id
from devblog.schemas import PaginatedResponse, UploadUpdate
from devblog.services import upload_service

router = APIRouter(prefix="/api/v1/uploads", tags=["uploads"])


@router.post("", status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    folder: str | None = Form(None),
    generate_thumbnail: bool = Form(False),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    stored = await upload_service.store_upload(
        db, file, user_id=user_id, folder=folder, generate_thumbnail=generate_thumbnail
    )
    return {"message": "File uploaded successfully", "file": stored}


@router.post("/multiple", status_code=201)
async def upload_files(
    files: list[UploadFile] = File(...),
    folder: str | None = Form(None),
    generate_thumbnail: bool = Form(False),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await upload_service.store_uploads(
        db, files, user_id=user_id, folder=folder, generate_thumbnail=generate_thumbnail
    )


@router.get("", response_model=PaginatedResponse)
async def list_uploads(
    category: str | None = Query(
        None, pattern="^(images|documents|videos|audio|archives|other)$"
    ),
    user_id: int | None = None,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await upload_service.get_uploads(
        db, pagination.page, pagination.page_size, category=category, user_id=user_id
    )


@router.get("/{upload_id}")
async def get_upload(upload_id: int, db: AsyncSession = Depends(get_db)):
    return await upload_service.get_upload(db, upload_id)


@router.patch("/{upload_id}")
async def update_upload(
    upload_id: int,
    data: UploadUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await upload_service.update_upload(db, upload_id, user_id, data)


@router.delete("/{upload_id}")
async def delete_upload(
    upload_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await upload_service.delete_upload(db, upload_id, user_id)
