"""
Plain-dict serialisers shared by the service modules.

Services return dicts rather than ORM instances so that the result can be
cached as JSON and so that routers never trigger lazy loads.  Nested
relationships must already be loaded; a relationship left unloaded
(``lazy="noload"``) serialises as None / [].
"""
from datetime import datetime

from devblog.models import Article, Comment, Tag, Upload, User


def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def user_summary(user: User | None) -> dict | None:
    if user is None:
        return None
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "bio": user.bio,
        "image": user.image,
    }


def user_to_dict(user: User) -> dict:
    data = user_summary(user)
    data.update(
        {
            "email_verified": user.email_verified,
            "created_at": iso(user.created_at),
            "updated_at": iso(user.updated_at),
        }
    )
    return data


def article_summary(article: Article | None) -> dict | None:
    if article is None:
        return None
    return {"id": article.id, "title": article.title, "slug": article.slug}


def tag_to_dict(tag: Tag, article_count: int = 0) -> dict:
    return {"id": tag.id, "name": tag.name, "article_count": article_count}


def article_to_dict(
    article: Article,
    comments_count: int = 0,
    likes_count: int = 0,
    is_liked: bool = False,
) -> dict:
    return {
        "id": article.id,
        "title": article.title,
        "slug": article.slug,
        "description": article.description,
        "body": article.body,
        "published": article.published,
        "created_at": iso(article.created_at),
        "updated_at": iso(article.updated_at),
        "author_id": article.author_id,
        "author": user_summary(article.author),
        "tags": [{"id": t.id, "name": t.name} for t in article.tags],
        "comments_count": comments_count,
        "likes_count": likes_count,
        "is_liked": is_liked,
    }


def comment_to_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "body": comment.body,
        "article_id": comment.article_id,
        "author_id": comment.author_id,
        "created_at": iso(comment.created_at),
        "updated_at": iso(comment.updated_at),
        "author": user_summary(comment.author),
        "article": article_summary(comment.article),
    }


def upload_to_dict(upload: Upload) -> dict:
    return {
        "id": upload.id,
        "original_name": upload.original_name,
        "filename": upload.filename,
        "path": upload.path,
        "url": upload.url,
        "thumbnail_url": upload.thumbnail_url,
        "mimetype": upload.mimetype,
        "size": upload.size,
        "category": upload.category,
        "extension": upload.extension,
        "user_id": upload.user_id,
        "created_at": iso(upload.created_at),
        "updated_at": iso(upload.updated_at),
    }
