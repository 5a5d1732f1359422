"""
Pure-function tests: slug generation, tag normalization, password scoring
and the upload path helpers.  None of these touch the database.
"""
from datetime import datetime, timezone

import pytest

from devblog.cache import article_detail_key, article_list_key
from devblog.config import settings
from devblog.exceptions import BadRequestError
from devblog.passwords import (
    SYMBOLS,
    generate_password_suggestion,
    password_strength,
    validate_password,
)
from devblog.services.article_service import slugify
from devblog.services.tag_service import normalize_tag_name
from devblog.services.upload_service import (
    folder_path,
    generate_filename,
    resolve_category,
    sanitize_filename,
    sanitize_folder,
    validate_file,
    validate_file_count,
)


# ---------------------------------------------------------------------------
# slugify
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "title, expected",
    [
        ("Hello, World!", "hello-world"),
        ("  Leading and trailing  ", "leading-and-trailing"),
        ("Multiple   spaces", "multiple-spaces"),
        ("Tabs\tand\nnewlines", "tabsandnewlines"),
        ("No\u00a0break space", "nobreak-space"),
        ("Already-hyphenated--title", "already-hyphenated-title"),
        ("- Dashes at the edges -", "dashes-at-the-edges"),
        ("Python 3.12 Released", "python-312-released"),
    ],
)
def test_slugify(title, expected):
    assert slugify(title) == expected


def test_slugify_output_alphabet():
    slug = slugify("Ünïcödé & «quotes» / slashes_underscores")
    assert all(c in "abcdefghijklmnopqrstuvwxyz0123456789-" for c in slug)
    assert not slug.startswith("-") and not slug.endswith("-")
    assert "--" not in slug


def test_slugify_is_idempotent():
    slug = slugify("Some Title: With Punctuation?!")
    assert slugify(slug) == slug


def test_slugify_empty_result_falls_back():
    assert slugify("!!!") == "article"


# ---------------------------------------------------------------------------
# normalize_tag_name
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "raw, expected",
    [
        ("  Web-Dev!! ", "web-dev"),
        ("Python", "python"),
        ("machine    learning", "machine learning"),
        ("C++ tips", "c tips"),
        ("c ++ x", "c x"),
    ],
)
def test_normalize_tag_name(raw, expected):
    assert normalize_tag_name(raw) == expected


def test_normalize_tag_name_is_idempotent():
    once = normalize_tag_name("  Data   Science & AI ")
    assert normalize_tag_name(once) == once


def test_normalize_tag_name_can_be_empty():
    assert normalize_tag_name("!!!") == ""


# ---------------------------------------------------------------------------
# validate_password
# ---------------------------------------------------------------------------

def test_strong_password_is_valid():
    result = validate_password("Tr0ub4dor&Zeta")
    assert result.is_valid
    assert result.errors == []
    assert result.score == 4


def test_every_violation_is_reported():
    result = validate_password("aaa")
    assert not result.is_valid
    assert "Password must be at least 8 characters long" in result.errors
    assert "Password must contain at least one uppercase letter" in result.errors
    assert "Password must contain at least one number" in result.errors
    assert "Password must contain at least one special character" in result.errors
    assert "Password should not contain repeated characters" in result.errors


def test_reference_strong_password_scores_four():
    result = validate_password("Str0ng!Pass")
    assert result.is_valid
    assert result.score == 4


def test_common_password_costs_two_points():
    result = validate_password("password")
    assert not result.is_valid
    assert "Password is too common, please choose a stronger password" in result.errors
    # length and lowercase pass (+2), the common-password penalty takes both back
    assert result.score == 0


def test_common_password_penalty():
    result = validate_password("Password123")
    assert not result.is_valid
    assert "Password is too common, please choose a stronger password" in result.errors


def test_common_password_check_is_case_insensitive():
    result = validate_password("LETMEIN", common_passwords={"letmein"})
    assert "Password is too common, please choose a stronger password" in result.errors


def test_sequential_characters_detected():
    result = validate_password("Xyz!9753Qp")
    assert "Password should not contain sequential characters" in result.errors


def test_numeric_sequence_detected():
    result = validate_password("Qp!x4567w")
    assert "Password should not contain sequential characters" in result.errors


@pytest.mark.parametrize(
    "password",
    ["", "a", "password", "Password1!", "aaaaaaaa", "ABCabc123!!!", "Zq7!" * 5],
)
def test_score_is_bounded_and_validity_matches_errors(password):
    result = validate_password(password)
    assert 0 <= result.score <= 4
    assert result.is_valid == (result.errors == [])


@pytest.mark.parametrize(
    "score, label",
    [(0, "Very Weak"), (1, "Very Weak"), (2, "Weak"), (3, "Medium"), (4, "Strong"), (9, "Unknown")],
)
def test_password_strength_labels(score, label):
    assert password_strength(score) == label


def test_password_suggestion_passes_validation():
    for _ in range(20):
        suggestion = generate_password_suggestion()
        assert len(suggestion) == 12
        assert any(c.isupper() for c in suggestion)
        assert any(c.islower() for c in suggestion)
        assert any(c.isdigit() for c in suggestion)
        assert any(c in SYMBOLS for c in suggestion)
        assert validate_password(suggestion).is_valid


# ---------------------------------------------------------------------------
# Upload helpers
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "mimetype, category",
    [
        ("image/png", "images"),
        ("application/pdf", "documents"),
        ("video/mp4", "videos"),
        ("audio/mpeg", "audio"),
        ("application/zip", "archives"),
        ("application/x-msdownload", "other"),
        (None, "other"),
    ],
)
def test_resolve_category(mimetype, category):
    assert resolve_category(mimetype) == category


def test_validate_file_accepts_allowed_type():
    assert validate_file("image/jpeg", "photo.JPG", 1024) == "images"


def test_validate_file_rejects_large_file():
    with pytest.raises(BadRequestError, match="maximum allowed size"):
        validate_file("image/png", "big.png", settings.UPLOAD_MAX_FILE_SIZE + 1)


def test_validate_file_rejects_unknown_type():
    with pytest.raises(BadRequestError, match="File type is not allowed"):
        validate_file("application/x-msdownload", "setup.exe", 10)


def test_validate_file_rejects_mismatched_extension():
    with pytest.raises(BadRequestError, match="File type is not allowed"):
        validate_file("image/png", "script.php", 10)


def test_validate_file_count():
    with pytest.raises(BadRequestError, match="No files provided"):
        validate_file_count(0)
    with pytest.raises(BadRequestError, match="Too many files"):
        validate_file_count(settings.UPLOAD_MAX_FILES + 1)
    validate_file_count(settings.UPLOAD_MAX_FILES)


def test_sanitize_folder_strips_traversal():
    assert sanitize_folder("../../etc/passwd") == "etc/passwd"
    assert sanitize_folder("profile pictures/2024") == "profilepictures/2024"
    assert sanitize_folder("../..") is None
    assert sanitize_folder(None) is None


def test_sanitize_filename_keeps_extension():
    assert sanitize_filename("../avatar", ".png") == "avatar.png"
    assert sanitize_filename("avatar.png", ".png") == "avatar.png"
    with pytest.raises(BadRequestError):
        sanitize_filename("../", ".png")


def test_folder_path_by_date_and_custom_folder():
    now = datetime(2024, 3, 7, tzinfo=timezone.utc)
    assert folder_path("images", None, now) == "images/2024/03/07"
    assert folder_path("images", "profile-pictures", now) == "images/profile-pictures"


def test_folder_path_without_date_organisation(monkeypatch):
    monkeypatch.setattr(settings, "UPLOAD_ORGANIZE_BY_DATE", False)
    assert folder_path("documents") == "documents"


def test_generate_filename_is_unique():
    first, second = generate_filename(".png"), generate_filename(".png")
    assert first != second
    assert first.endswith(".png")


# ---------------------------------------------------------------------------
# Cache keys
# ---------------------------------------------------------------------------

def test_article_list_key_ignores_keyword_order():
    first = article_list_key(page=1, page_size=10, search="py", tag=None)
    second = article_list_key(tag=None, search="py", page_size=10, page=1)
    assert first == second
    assert first.startswith("articles:list:")


def test_article_list_key_distinguishes_filters():
    assert article_list_key(page=1, published=True) != article_list_key(page=1, published=None)


def test_article_detail_key():
    assert article_detail_key(42) == "articles:detail:42"
