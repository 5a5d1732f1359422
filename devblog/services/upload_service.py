"""
Upload service — files on disk under ``settings.UPLOAD_DIR``, metadata in
the ``uploads`` table.

Layout
------
``<category>/<folder>/<filename>`` when the caller names a folder,
otherwise ``<category>/YYYY/MM/DD/<filename>`` (or ``<category>/<filename>``
with ``UPLOAD_ORGANIZE_BY_DATE`` off).  Stored filenames are
``<uuid4>-<epoch ms><ext>`` so two uploads never collide.  Image
thumbnails are plain copies kept in ``thumbnails/thumb_<filename>``.

File contents are written with aiofiles; other blocking filesystem calls
run in Starlette's threadpool.
"""
import logging
import os
import re
import shutil
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

import aiofiles
from fastapi import UploadFile
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from devblog.config import settings
from devblog.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from devblog.models import Upload
from devblog.schemas import PaginatedResponse, UploadUpdate
from devblog.services.serializers import upload_to_dict

logger = logging.getLogger(__name__)

OTHER_CATEGORY = "other"
THUMBNAIL_DIR = "thumbnails"

# category -> MIME type -> accepted extensions
ALLOWED_FILE_TYPES: dict[str, dict[str, tuple[str, ...]]] = {
    "images": {
        "image/jpeg": (".jpg", ".jpeg"),
        "image/png": (".png",),
        "image/gif": (".gif",),
        "image/webp": (".webp",),
        "image/svg+xml": (".svg",),
    },
    "documents": {
        "application/pdf": (".pdf",),
        "application/msword": (".doc",),
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document": (".docx",),
        "application/vnd.ms-excel": (".xls",),
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": (".xlsx",),
        "text/plain": (".txt",),
    },
    "videos": {
        "video/mp4": (".mp4",),
        "video/webm": (".webm",),
        "video/ogg": (".ogv",),
        "video/avi": (".avi",),
        "video/quicktime": (".mov",),
    },
    "audio": {
        "audio/mpeg": (".mp3",),
        "audio/wav": (".wav",),
        "audio/ogg": (".ogg",),
        "audio/mp4": (".m4a",),
    },
    "archives": {
        "application/zip": (".zip",),
        "application/x-rar-compressed": (".rar",),
        "application/x-7z-compressed": (".7z",),
        "application/gzip": (".gz",),
    },
}

FILE_TOO_LARGE = "File size exceeds the maximum allowed size"
INVALID_FILE_TYPE = "File type is not allowed"
TOO_MANY_FILES = "Too many files uploaded at once"
NO_FILES = "No files provided"

_SEGMENT_RE = re.compile(r"[^A-Za-z0-9_-]")
_FILENAME_RE = re.compile(r"[^A-Za-z0-9._-]")


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def resolve_category(mimetype: str | None) -> str:
    """Category of *mimetype*, ``"other"`` for anything not on the allow-list."""
    for category, types in ALLOWED_FILE_TYPES.items():
        if mimetype in types:
            return category
    return OTHER_CATEGORY


def file_extension(filename: str | None) -> str:
    return os.path.splitext(filename or "")[1].lower()


def validate_file(mimetype: str | None, filename: str | None, size: int) -> str:
    """
    Check one file against the size limit and the allow-list.

    Returns the file's category; raises BadRequestError on the first
    failed check.
    """
    if size > settings.UPLOAD_MAX_FILE_SIZE:
        raise BadRequestError(FILE_TOO_LARGE)
    category = resolve_category(mimetype)
    if category == OTHER_CATEGORY:
        raise BadRequestError(INVALID_FILE_TYPE)
    if file_extension(filename) not in ALLOWED_FILE_TYPES[category][mimetype]:
        raise BadRequestError(INVALID_FILE_TYPE)
    return category


def validate_file_count(count: int) -> None:
    if count == 0:
        raise BadRequestError(NO_FILES)
    if count > settings.UPLOAD_MAX_FILES:
        raise BadRequestError(TOO_MANY_FILES)


def sanitize_folder(folder: str | None) -> str | None:
    """
    Reduce a caller-supplied folder to safe relative path segments.

    ``"../../etc"`` becomes ``"etc"``; a folder with nothing usable left
    becomes None.
    """
    if not folder:
        return None
    segments = [_SEGMENT_RE.sub("", part) for part in re.split(r"[\\/]+", folder)]
    segments = [s for s in segments if s]
    return "/".join(segments) or None


def sanitize_filename(filename: str, extension: str) -> str:
    """Safe basename for a rename; the stored extension is always kept."""
    name = _FILENAME_RE.sub("", PurePosixPath(filename.replace("\\", "/")).name).lstrip(".")
    if not name:
        raise BadRequestError("Invalid file name")
    if extension and not name.lower().endswith(extension):
        name += extension
    return name


def folder_path(category: str, folder: str | None = None, now: datetime | None = None) -> str:
    """Relative directory for a file of *category*."""
    folder = sanitize_folder(folder)
    if folder:
        return f"{category}/{folder}"
    if settings.UPLOAD_ORGANIZE_BY_DATE:
        now = now or datetime.now(timezone.utc)
        return f"{category}/{now:%Y/%m/%d}"
    return category


def generate_filename(extension: str) -> str:
    return f"{uuid.uuid4()}-{int(time.time() * 1000)}{extension}"


def file_url(relative_path: str) -> str:
    return f"{settings.APP_URL}/uploads/{relative_path}"


def thumbnail_path(filename: str) -> str:
    return f"{THUMBNAIL_DIR}/thumb_{filename}"


def _absolute(relative_path: str) -> Path:
    return Path(settings.UPLOAD_DIR) / relative_path


# ---------------------------------------------------------------------------
# Filesystem work
# ---------------------------------------------------------------------------

async def _write_file(relative_path: str, content: bytes) -> None:
    target = _absolute(relative_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(target, "wb") as f:
        await f.write(content)


def _copy_file(source: str, destination: str) -> None:
    target = _absolute(destination)
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(_absolute(source), target)


def _move_files(moves: list[tuple[str, str]]) -> None:
    """
    Apply every ``(source, destination)`` move or none of them.

    All destinations are checked before the first rename; a rename that
    fails part-way puts the earlier ones back.
    """
    for _, destination in moves:
        if _absolute(destination).exists():
            raise ConflictError("A file with this name already exists")

    done: list[tuple[str, str]] = []
    try:
        for source, destination in moves:
            target = _absolute(destination)
            target.parent.mkdir(parents=True, exist_ok=True)
            _absolute(source).rename(target)
            done.append((source, destination))
    except OSError:
        _undo_moves(done)
        raise


def _undo_moves(moves: list[tuple[str, str]]) -> None:
    for source, destination in reversed(moves):
        _absolute(destination).rename(_absolute(source))


def _remove_file(relative_path: str) -> bool:
    try:
        _absolute(relative_path).unlink()
    except FileNotFoundError:
        return False
    return True


def _remove_files(relative_paths: list[str]) -> None:
    for relative_path in relative_paths:
        if not _remove_file(relative_path):
            logger.warning("Cleanup skipped, file already gone: %s", relative_path)


# ---------------------------------------------------------------------------
# Service functions
# ---------------------------------------------------------------------------

async def _get_upload_or_404(db: AsyncSession, upload_id: int) -> Upload:
    result = await db.execute(
        select(Upload).where(Upload.id == upload_id).execution_options(populate_existing=True)
    )
    upload = result.scalar_one_or_none()
    if upload is None:
        raise NotFoundError("File not found")
    return upload


def _ensure_owner(upload: Upload, user_id: int) -> None:
    if upload.user_id != user_id:
        raise ForbiddenError("You can only modify your own uploads")


async def _read_validated(
    file: UploadFile, allowed_categories: tuple[str, ...] | None = None
) -> tuple[bytes, str]:
    """Read *file* once it passes the declared-size check; return content and category."""
    if file.size is not None and file.size > settings.UPLOAD_MAX_FILE_SIZE:
        raise BadRequestError(FILE_TOO_LARGE)
    content = await file.read()
    category = validate_file(file.content_type, file.filename, len(content))
    if allowed_categories is not None and category not in allowed_categories:
        raise BadRequestError(INVALID_FILE_TYPE)
    return content, category


async def _persist_upload(
    db: AsyncSession,
    file: UploadFile,
    content: bytes,
    category: str,
    written: list[str],
    user_id: int | None,
    folder: str | None,
    generate_thumbnail: bool,
) -> dict:
    """Write one validated file and its row; every path put on disk goes into *written*."""
    extension = file_extension(file.filename)
    filename = generate_filename(extension)
    relative_path = f"{folder_path(category, folder)}/{filename}"
    await _write_file(relative_path, content)
    written.append(relative_path)

    thumbnail_url = None
    if generate_thumbnail and category == "images":
        thumb = thumbnail_path(filename)
        await run_in_threadpool(_copy_file, relative_path, thumb)
        written.append(thumb)
        thumbnail_url = file_url(thumb)

    upload = Upload(
        original_name=file.filename,
        filename=filename,
        path=relative_path,
        url=file_url(relative_path),
        thumbnail_url=thumbnail_url,
        mimetype=file.content_type,
        size=len(content),
        category=category,
        extension=extension,
        user_id=user_id,
    )
    db.add(upload)
    await db.flush()
    logger.info("File uploaded: id=%s path=%s size=%d", upload.id, relative_path, upload.size)
    return upload_to_dict(await _get_upload_or_404(db, upload.id))


async def store_upload(
    db: AsyncSession,
    file: UploadFile,
    user_id: int | None = None,
    folder: str | None = None,
    generate_thumbnail: bool = False,
    allowed_categories: tuple[str, ...] | None = None,
) -> dict:
    """
    Validate *file*, write it to disk and record it.

    ``allowed_categories`` narrows the allow-list, e.g. to images only for
    profile pictures.  Files already written are removed again if recording
    the row fails.
    """
    content, category = await _read_validated(file, allowed_categories)
    written: list[str] = []
    try:
        return await _persist_upload(
            db, file, content, category, written, user_id, folder, generate_thumbnail
        )
    except Exception:
        await run_in_threadpool(_remove_files, written)
        raise


async def store_uploads(
    db: AsyncSession,
    files: list[UploadFile],
    user_id: int | None = None,
    folder: str | None = None,
    generate_thumbnail: bool = False,
) -> dict:
    """Store a batch: every file is validated before the first one is written."""
    validate_file_count(len(files))
    validated = [await _read_validated(f) for f in files]

    written: list[str] = []
    try:
        stored = [
            await _persist_upload(
                db, f, content, category, written, user_id, folder, generate_thumbnail
            )
            for f, (content, category) in zip(files, validated)
        ]
    except Exception:
        await run_in_threadpool(_remove_files, written)
        raise
    logger.info("%d files uploaded", len(stored))
    return {"message": "File uploaded successfully", "files": stored, "count": len(stored)}


async def get_uploads(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 10,
    category: str | None = None,
    user_id: int | None = None,
) -> PaginatedResponse:
    filters = []
    if category:
        filters.append(Upload.category == category)
    if user_id is not None:
        filters.append(Upload.user_id == user_id)

    total = (
        await db.execute(select(func.count()).select_from(Upload).where(*filters))
    ).scalar_one()
    result = await db.execute(
        select(Upload)
        .where(*filters)
        .order_by(Upload.created_at.desc(), Upload.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items = [upload_to_dict(u) for u in result.scalars().all()]
    return PaginatedResponse.build(items, total, page, page_size)


async def get_upload(db: AsyncSession, upload_id: int) -> dict:
    return upload_to_dict(await _get_upload_or_404(db, upload_id))


async def update_upload(db: AsyncSession, upload_id: int, user_id: int, data: UploadUpdate) -> dict:
    """
    Rename the stored file and/or move it to another folder or category.

    The URL and path are recomputed; an existing thumbnail follows a rename.
    A category change alone keeps the file's folder (or date) segment.
    Disk and row change together: if any move or the flush fails, the
    files are put back where they were.
    """
    upload = await _get_upload_or_404(db, upload_id)
    _ensure_owner(upload, user_id)

    filename = upload.filename
    if data.filename:
        filename = sanitize_filename(data.filename, upload.extension)

    current_dir = PurePosixPath(upload.path).parent
    if data.folder is not None:
        directory = folder_path(data.category or upload.category, data.folder)
    elif data.category is not None:
        subfolder = current_dir.relative_to(upload.category)
        directory = str(PurePosixPath(data.category) / subfolder)
    else:
        directory = str(current_dir)

    new_path = f"{directory}/{filename}"
    moves: list[tuple[str, str]] = []
    if new_path != upload.path:
        moves.append((upload.path, new_path))
        if upload.thumbnail_url and filename != upload.filename:
            moves.append((thumbnail_path(upload.filename), thumbnail_path(filename)))
    await run_in_threadpool(_move_files, moves)

    try:
        if len(moves) > 1:
            upload.thumbnail_url = file_url(thumbnail_path(filename))
        upload.filename = filename
        upload.path = new_path
        upload.url = file_url(new_path)
        if data.category:
            upload.category = data.category
        await db.flush()
    except Exception:
        await run_in_threadpool(_undo_moves, moves)
        raise
    if moves:
        logger.info("File moved: id=%s -> %s", upload.id, new_path)
    return {
        "message": "File updated successfully",
        "file": upload_to_dict(await _get_upload_or_404(db, upload_id)),
    }


async def delete_upload(db: AsyncSession, upload_id: int, user_id: int) -> dict:
    upload = await _get_upload_or_404(db, upload_id)
    _ensure_owner(upload, user_id)

    if not await run_in_threadpool(_remove_file, upload.path):
        logger.warning("File already missing on disk: %s", upload.path)
    if upload.thumbnail_url:
        if not await run_in_threadpool(_remove_file, thumbnail_path(upload.filename)):
            logger.warning("Thumbnail missing on disk for upload %s", upload.id)

    await db.delete(upload)
    await db.flush()
    logger.info("Upload deleted: id=%s", upload_id)
    return {"message": "File deleted successfully"}
