import math
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# --- User ---

class UserSummary(BaseModel):
    id: int
    username: str
    email: str
    bio: str | None = None
    image: str | None = None
    model_config = ConfigDict(from_attributes=True)


class UserResponse(UserSummary):
    email_verified: bool = False
    created_at: datetime
    updated_at: datetime | None = None


class UserCreate(BaseModel):
    email: EmailStr
    username: str = Field(min_length=3, max_length=30, pattern=r"^[a-zA-Z0-9_-]+$")
    password: str = Field(min_length=1, max_length=128)
    bio: str | None = Field(None, max_length=500)
    image: str | None = Field(None, max_length=500, pattern=r"^https?://.+")


class UserUpdate(BaseModel):
    email: EmailStr | None = None
    username: str | None = Field(None, min_length=3, max_length=30, pattern=r"^[a-zA-Z0-9_-]+$")
    password: str | None = Field(None, min_length=1, max_length=128)
    bio: str | None = Field(None, max_length=500)
    image: str | None = Field(None, max_length=500, pattern=r"^https?://.+")


class ChangePassword(BaseModel):
    current_password: str
    new_password: str = Field(max_length=128)


class PasswordCheck(BaseModel):
    password: str


# --- Auth flows ---

class TokenPayload(BaseModel):
    token: str = Field(min_length=1)


class EmailPayload(BaseModel):
    email: EmailStr


class ResetPassword(BaseModel):
    token: str = Field(min_length=1)
    new_password: str = Field(max_length=128)


# --- Tag ---

class TagCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)


class TagUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=50)


class TagResponse(BaseModel):
    id: int
    name: str
    article_count: int = 0


# --- Article ---

class ArticleCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    description: str | None = Field(None, max_length=500)
    body: str = Field(min_length=1)
    published: bool = False
    tags: list[str] = []  # tag names, normalized on write


class ArticleUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=300)
    description: str | None = Field(None, max_length=500)
    body: str | None = Field(None, min_length=1)
    published: bool | None = None
    tags: list[str] | None = None


# --- Comment ---

class CommentCreate(BaseModel):
    article_id: int
    body: str = Field(min_length=1)


class CommentUpdate(BaseModel):
    body: str = Field(min_length=1)


# --- Like / Follow ---

class LikeCreate(BaseModel):
    article_id: int


class FollowCreate(BaseModel):
    following_id: int


# --- Upload ---

class UploadUpdate(BaseModel):
    filename: str | None = Field(None, min_length=1, max_length=200)
    folder: str | None = Field(None, max_length=200)
    category: str | None = Field(
        None, pattern="^(images|documents|videos|audio|archives|other)$"
    )


# --- Pagination ---

class PaginatedResponse(BaseModel):
    items: list
    total: int
    page: int
    page_size: int
    pages: int

    @classmethod
    def build(cls, items: list, total: int, page: int, page_size: int) -> "PaginatedResponse":
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            pages=math.ceil(total / page_size) if total > 0 else 0,
        )
