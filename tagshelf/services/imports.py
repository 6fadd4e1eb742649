from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from tagshelf.errors import NotFound, StorageError, ValidationError
from tagshelf.extensions import db
from tagshelf.models import Bookmark, ImportRecord, utcnow
from tagshelf.services.bookmark_import import ImportedBookmark, parse_import_content
from tagshelf.services.bookmarks import check_lengths, delete_bookmarks, find_by_url
from tagshelf.services.common import normalize_tags
from tagshelf.services.tags import replace_bookmark_tags


@dataclass
class ImportResult:
    created: int = 0
    updated: int = 0
    bookmark_ids: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    import_id: int | None = None

    @property
    def message(self) -> str:
        return (
            f"Imported {self.created} new bookmarks, "
            f"updated {self.updated} existing bookmarks"
        )

    def as_dict(self):
        return {
            "success": True,
            "message": self.message,
            "created": self.created,
            "updated": self.updated,
            "total": len(self.bookmark_ids),
            "imported_ids": self.bookmark_ids,
            "import_id": self.import_id,
            "errors": self.errors,
        }


def _apply_candidate(entry: ImportedBookmark) -> tuple[Bookmark, bool]:
    now = utcnow()
    bookmark = find_by_url(entry.url)
    if bookmark is None:
        bookmark = Bookmark(
            url=entry.url,
            title=entry.title or None,
            description=entry.description or None,
            is_private=False,
            created_at=now,
            updated_at=now,
        )
        db.session.add(bookmark)
        db.session.flush()
        replace_bookmark_tags(bookmark, entry.tags)
        return bookmark, True

    if entry.title:
        bookmark.title = entry.title
    if entry.description:
        bookmark.description = entry.description
    bookmark.updated_at = now
    replace_bookmark_tags(bookmark, [*(tag.name for tag in bookmark.tags), *entry.tags])
    return bookmark, False


def run_import(
    content: str,
    fmt: str,
    additional_tags: Iterable[str] = (),
    filename: str | None = None,
) -> ImportResult:
    extra = normalize_tags(additional_tags)
    check_lengths(None, None, extra)
    candidates = parse_import_content(content, fmt, extra)
    if not candidates:
        raise ValidationError("No valid bookmarks found in file")

    result = ImportResult()
    try:
        for entry in candidates:
            try:
                check_lengths(entry.title, entry.description, entry.tags)
            except ValidationError as exc:
                result.errors.append(f"Skipped bookmark {entry.url}: {exc.message}")
                continue

            bookmark, created = _apply_candidate(entry)
            result.bookmark_ids.append(bookmark.id)
            if created:
                result.created += 1
            else:
                result.updated += 1

        record = ImportRecord(
            filename=filename or None,
            bookmark_ids=list(result.bookmark_ids),
            created_count=result.created,
            updated_count=result.updated,
            additional_tags=", ".join(extra) or None,
        )
        db.session.add(record)
        db.session.flush()
        result.import_id = record.id
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception(
            "Import of %s rolled back", filename or "uploaded bookmarks"
        )
        if isinstance(exc, SQLAlchemyError):
            raise StorageError() from exc
        raise

    current_app.logger.info(
        "Import %s (%s): %s created, %s updated, %s skipped",
        result.import_id,
        filename or "unnamed",
        result.created,
        result.updated,
        len(result.errors),
    )
    return result


def list_imports() -> list[ImportRecord]:
    return ImportRecord.query.order_by(
        ImportRecord.created_at.desc(), ImportRecord.id.desc()
    ).all()


def sanitize_ids(values) -> list[int]:
    if not isinstance(values, (list, tuple)):
        return []
    parsed: list[int] = []
    seen: set[int] = set()
    for value in values:
        if isinstance(value, bool):
            continue
        try:
            parsed_id = int(value)
        except (TypeError, ValueError):
            continue
        if parsed_id > 0 and parsed_id not in seen:
            seen.add(parsed_id)
            parsed.append(parsed_id)
    return parsed


def undo_import(import_id: int) -> int:
    record = db.session.get(ImportRecord, import_id)
    if not record:
        raise NotFound("Import not found")

    bookmark_ids = sanitize_ids(record.bookmark_ids or [])
    db.session.delete(record)
    db.session.flush()
    deleted = delete_bookmarks(bookmark_ids)
    db.session.commit()
    current_app.logger.info(
        "Undid import %s: deleted %s bookmarks", import_id, deleted
    )
    return deleted


def undo_bookmarks(values) -> int:
    bookmark_ids = sanitize_ids(values)
    if not bookmark_ids:
        raise ValidationError("Bookmark IDs are required")
    deleted = delete_bookmarks(bookmark_ids)
    db.session.commit()
    return deleted
