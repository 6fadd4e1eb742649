from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import or_

from tagshelf.errors import NotFound, ValidationError
from tagshelf.extensions import db
from tagshelf.models import Bookmark, Tag, utcnow
from tagshelf.services.common import (
    MAX_DESCRIPTION_LENGTH,
    MAX_TAG_LENGTH,
    MAX_TITLE_LENGTH,
    is_valid_url,
    normalize_tag,
    tag_names_from_input,
    to_bool,
)
from tagshelf.services.tags import clear_bookmark_tags, replace_bookmark_tags
from tagshelf.services.visibility import visible_bookmarks_clause


@dataclass
class BookmarkInput:
    url: str
    title: str = ""
    description: str = ""
    is_private: bool = False
    tags: list[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict) -> "BookmarkInput":
        return cls(
            url=str(payload.get("url") or "").strip(),
            title=str(payload.get("title") or "").strip(),
            description=str(payload.get("description") or "").strip(),
            is_private=to_bool(payload.get("is_private"), default=False),
            tags=tag_names_from_input(payload.get("tags")),
        )


@dataclass
class BookmarkFilter:
    viewer_is_owner: bool = False
    tag: str | None = None
    search: str | None = None
    private: bool | None = None


@dataclass
class BookmarkPage:
    items: list[Bookmark]
    page: int
    per_page: int | None
    total: int

    @property
    def pages(self) -> int:
        if self.per_page is None:
            return 1
        return math.ceil(self.total / self.per_page)

    def pagination(self):
        return {
            "page": self.page,
            "perPage": "unlimited" if self.per_page is None else self.per_page,
            "total": self.total,
            "pages": self.pages,
        }


def check_lengths(title: str | None, description: str | None, tags: Iterable[str]):
    if title and len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(
            f"Title exceeds maximum length of {MAX_TITLE_LENGTH} characters"
        )
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Description exceeds maximum length of {MAX_DESCRIPTION_LENGTH} characters"
        )
    for tag in tags:
        if len(normalize_tag(tag)) > MAX_TAG_LENGTH:
            raise ValidationError(
                f"Tag exceeds maximum length of {MAX_TAG_LENGTH} characters"
            )


def validate_bookmark_input(data: BookmarkInput) -> None:
    if not data.url:
        raise ValidationError("URL is required")
    if not is_valid_url(data.url):
        raise ValidationError("Invalid URL format")
    check_lengths(data.title, data.description, data.tags)


def find_by_url(url: str) -> Bookmark | None:
    return Bookmark.query.filter_by(url=url).first()


def get_bookmark(bookmark_id: int, viewer_is_owner: bool = True) -> Bookmark:
    bookmark = (
        Bookmark.query.filter_by(id=bookmark_id)
        .filter(visible_bookmarks_clause(viewer_is_owner))
        .first()
    )
    if not bookmark:
        raise NotFound("Bookmark not found")
    return bookmark


def _apply_fields(bookmark: Bookmark, data: BookmarkInput) -> None:
    bookmark.title = data.title or None
    bookmark.description = data.description or None
    bookmark.is_private = data.is_private
    bookmark.updated_at = utcnow()


def upsert_by_url(data: BookmarkInput) -> tuple[Bookmark, bool]:
    validate_bookmark_input(data)

    bookmark = find_by_url(data.url)
    created = bookmark is None
    if created:
        now = utcnow()
        bookmark = Bookmark(
            url=data.url,
            title=data.title or None,
            description=data.description or None,
            is_private=data.is_private,
            created_at=now,
            updated_at=now,
        )
        db.session.add(bookmark)
        db.session.flush()
    else:
        _apply_fields(bookmark, data)

    replace_bookmark_tags(bookmark, data.tags)
    return bookmark, created


def update_bookmark(bookmark_id: int, data: BookmarkInput) -> Bookmark:
    validate_bookmark_input(data)
    bookmark = get_bookmark(bookmark_id)

    if data.url != bookmark.url:
        other = find_by_url(data.url)
        if other is not None and other.id != bookmark.id:
            raise ValidationError("Another bookmark already uses this URL")
        bookmark.url = data.url

    _apply_fields(bookmark, data)
    replace_bookmark_tags(bookmark, data.tags)
    return bookmark


def _delete(bookmark: Bookmark) -> None:
    clear_bookmark_tags(bookmark)
    db.session.delete(bookmark)


def delete_bookmark(bookmark_id: int) -> None:
    _delete(get_bookmark(bookmark_id))
    db.session.flush()


def delete_bookmarks(bookmark_ids: Iterable[int]) -> int:
    ids = list(dict.fromkeys(bookmark_ids))
    if not ids:
        return 0
    bookmarks = Bookmark.query.filter(Bookmark.id.in_(ids)).all()
    for bookmark in bookmarks:
        _delete(bookmark)
    db.session.flush()
    return len(bookmarks)


def list_bookmarks(
    filters: BookmarkFilter, page: int = 1, per_page: int | None = 20
) -> BookmarkPage:
    page = max(1, int(page or 1))
    query = Bookmark.query.filter(visible_bookmarks_clause(filters.viewer_is_owner))

    tag = normalize_tag(filters.tag)
    if tag:
        query = query.filter(Bookmark.tags.any(Tag.name == tag))

    search = (filters.search or "").strip()
    if search:
        query = query.filter(
            or_(
                Bookmark.title.icontains(search, autoescape=True),
                Bookmark.description.icontains(search, autoescape=True),
                Bookmark.url.icontains(search, autoescape=True),
            )
        )

    if filters.viewer_is_owner and filters.private is not None:
        query = query.filter(Bookmark.is_private.is_(bool(filters.private)))

    total = query.order_by(None).count()
    ordered = query.order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
    if per_page is not None:
        # Pages past the end show the last page.
        page = min(page, max(1, math.ceil(total / per_page)))
        ordered = ordered.limit(per_page).offset((page - 1) * per_page)

    return BookmarkPage(items=ordered.all(), page=page, per_page=per_page, total=total)
