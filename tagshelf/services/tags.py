from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from tagshelf.errors import NotFound
from tagshelf.extensions import db
from tagshelf.models import Bookmark, Tag, bookmark_tags
from tagshelf.services.common import normalize_tag, normalize_tags
from tagshelf.services.visibility import visible_bookmarks_clause

AUTOCOMPLETE_LIMIT = 10


@dataclass
class TagCount:
    name: str
    count: int

    def as_dict(self):
        return {"name": self.name, "count": self.count}


def _find_tag(name: str) -> Tag | None:
    return Tag.query.filter_by(name=name).first()


def get_or_create_tag(name: str) -> Tag:
    """Get or create, re-reading the winning row on a unique-name clash."""
    normalized = normalize_tag(name)
    if not normalized:
        raise ValueError("tag name must not be empty")

    tag = _find_tag(normalized)
    if tag:
        return tag

    try:
        with db.session.begin_nested():
            tag = Tag(name=normalized)
            db.session.add(tag)
    except IntegrityError:
        tag = _find_tag(normalized)
        if tag is None:
            raise
    return tag


def replace_bookmark_tags(bookmark: Bookmark, names: Iterable[str]) -> None:
    bookmark.tags.clear()
    for name in normalize_tags(names):
        bookmark.tags.append(get_or_create_tag(name))
    db.session.flush()


def clear_bookmark_tags(bookmark: Bookmark) -> None:
    bookmark.tags.clear()
    db.session.flush()


def tags_with_counts(
    viewer_is_owner: bool,
    threshold: int = 0,
    query: str | None = None,
    include_all: bool = False,
) -> list[TagCount]:
    count = func.count(Bookmark.id).label("count")
    stmt = (
        select(Tag.name, count)
        .join(bookmark_tags, bookmark_tags.c.tag_id == Tag.id)
        .join(Bookmark, bookmark_tags.c.bookmark_id == Bookmark.id)
        .where(visible_bookmarks_clause(viewer_is_owner))
        .group_by(Tag.id, Tag.name)
        .order_by(count.desc(), Tag.name.asc())
    )

    query = (query or "").strip()
    if query:
        stmt = (
            stmt.where(Tag.name.icontains(query, autoescape=True))
            .having(count > 0)
            .limit(AUTOCOMPLETE_LIMIT)
        )
    elif include_all:
        stmt = stmt.having(count > 0)
    else:
        stmt = stmt.having(count >= max(int(threshold or 0), 1))

    return [TagCount(name=name, count=total) for name, total in db.session.execute(stmt)]


def delete_tag(name: str) -> None:
    tag = _find_tag(normalize_tag(name))
    if not tag:
        raise NotFound("Tag not found")
    tag.bookmarks.clear()
    db.session.flush()
    db.session.delete(tag)
    db.session.flush()
