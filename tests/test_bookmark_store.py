from datetime import timedelta

import pytest

from tagshelf.errors import NotFound, ValidationError
from tagshelf.extensions import db
from tagshelf.models import Bookmark, Tag, bookmark_tags
from tagshelf.services.bookmarks import (
    BookmarkFilter,
    BookmarkInput,
    delete_bookmark,
    delete_bookmarks,
    get_bookmark,
    list_bookmarks,
    update_bookmark,
    upsert_by_url,
)


def _save(url, tags=(), is_private=False, **fields):
    bookmark, _ = upsert_by_url(
        BookmarkInput(url=url, tags=list(tags), is_private=is_private, **fields)
    )
    db.session.commit()
    return bookmark


def test_upsert_by_url_is_idempotent(app):
    with app.app_context():
        data = BookmarkInput(
            url="https://example.com/a", title="A", description="first", tags=["x"]
        )
        first, created = upsert_by_url(data)
        db.session.commit()
        assert created is True
        assert first.created_at == first.updated_at

        second, created = upsert_by_url(data)
        db.session.commit()
        assert created is False
        assert second.id == first.id
        assert Bookmark.query.count() == 1
        assert second.tag_names == ["x"]


def test_upsert_replaces_fields_and_tags(app):
    with app.app_context():
        _save("https://example.com/a", tags=["x", "y"], title="A", description="d")
        bookmark, created = upsert_by_url(
            BookmarkInput(url="https://example.com/a", tags=["z"])
        )
        db.session.commit()

        assert created is False
        assert bookmark.title is None
        assert bookmark.description is None
        assert bookmark.tag_names == ["z"]
        assert Tag.query.filter_by(name="x").first() is not None


def test_upsert_normalizes_tags(app):
    with app.app_context():
        bookmark = _save("https://example.com/a", tags=["Foo", " foo ", "Bar"])
        assert bookmark.tag_names == ["bar", "foo"]
        assert Tag.query.count() == 2


@pytest.mark.parametrize(
    "data, message",
    [
        (BookmarkInput(url=""), "URL is required"),
        (BookmarkInput(url="not a url"), "Invalid URL format"),
        (
            BookmarkInput(url="https://example.com", title="t" * 501),
            "Title exceeds maximum length of 500 characters",
        ),
        (
            BookmarkInput(url="https://example.com", description="d" * 5001),
            "Description exceeds maximum length of 5000 characters",
        ),
        (
            BookmarkInput(url="https://example.com", tags=["t" * 101]),
            "Tag exceeds maximum length of 100 characters",
        ),
    ],
)
def test_upsert_validates_before_writing(app, data, message):
    with app.app_context():
        with pytest.raises(ValidationError) as excinfo:
            upsert_by_url(data)
        assert excinfo.value.message == message
        assert Bookmark.query.count() == 0


def test_update_bookmark_by_id_can_change_url(app):
    with app.app_context():
        bookmark = _save("https://example.com/old", tags=["x"])
        updated = update_bookmark(
            bookmark.id,
            BookmarkInput(url="https://example.com/new", title="New", is_private=True),
        )
        db.session.commit()

        assert updated.url == "https://example.com/new"
        assert updated.title == "New"
        assert updated.is_private is True
        assert updated.tag_names == []


def test_update_bookmark_rejects_url_owned_by_another_bookmark(app):
    with app.app_context():
        _save("https://example.com/taken")
        bookmark = _save("https://example.com/mine")
        with pytest.raises(ValidationError):
            update_bookmark(bookmark.id, BookmarkInput(url="https://example.com/taken"))

        with pytest.raises(NotFound):
            update_bookmark(9999, BookmarkInput(url="https://example.com/x"))


def test_delete_bookmark_clears_associations(app):
    with app.app_context():
        bookmark_id = _save("https://example.com/a", tags=["x"]).id
        delete_bookmark(bookmark_id)
        db.session.commit()

        assert Bookmark.query.count() == 0
        assert db.session.execute(db.select(bookmark_tags)).all() == []
        assert Tag.query.filter_by(name="x").first() is not None

        with pytest.raises(NotFound):
            delete_bookmark(bookmark_id)


def test_delete_bookmarks_ignores_missing_ids(app):
    with app.app_context():
        first = _save("https://example.com/1")
        second = _save("https://example.com/2")
        assert delete_bookmarks([first.id, second.id, first.id, 9999]) == 2
        db.session.commit()
        assert Bookmark.query.count() == 0


def test_private_bookmarks_are_hidden_from_anonymous_viewers(app):
    with app.app_context():
        public = _save("https://example.com/public", tags=["x"])
        private = _save("https://example.com/private", tags=["x"], is_private=True)

        anonymous = list_bookmarks(BookmarkFilter(viewer_is_owner=False))
        assert [b.id for b in anonymous.items] == [public.id]
        assert anonymous.total == 1

        anonymous_private = list_bookmarks(
            BookmarkFilter(viewer_is_owner=False, private=True)
        )
        assert [b.id for b in anonymous_private.items] == [public.id]

        owner_private = list_bookmarks(BookmarkFilter(viewer_is_owner=True, private=True))
        assert [b.id for b in owner_private.items] == [private.id]

        with pytest.raises(NotFound):
            get_bookmark(private.id, viewer_is_owner=False)
        assert get_bookmark(private.id, viewer_is_owner=True).id == private.id


def test_list_bookmarks_filters_by_tag_and_paginates(app):
    with app.app_context():
        older = _save("https://example.com/older", tags=["foo"])
        newer = _save("https://example.com/newer", tags=["foo"])
        _save("https://example.com/other", tags=["bar"])
        older.created_at = newer.created_at - timedelta(days=1)
        db.session.commit()

        page = list_bookmarks(BookmarkFilter(tag="Foo"), page=2, per_page=1)
        assert [b.id for b in page.items] == [older.id]
        assert page.pagination() == {"page": 2, "perPage": 1, "total": 2, "pages": 2}

        unlimited = list_bookmarks(BookmarkFilter(), per_page=None)
        assert unlimited.total == 3
        assert unlimited.pagination()["perPage"] == "unlimited"
        assert unlimited.pagination()["pages"] == 1


def test_tag_and_search_filters_keep_private_rows_from_anonymous_viewers(app):
    with app.app_context():
        _save(
            "https://example.com/hidden", title="Hidden gem", tags=["gem"], is_private=True
        )

        for filters in (
            BookmarkFilter(search="gem"),
            BookmarkFilter(tag="gem"),
            BookmarkFilter(tag="gem", search="hidden", private=True),
        ):
            page = list_bookmarks(filters)
            assert page.items == []
            assert page.total == 0

        owner_view = list_bookmarks(
            BookmarkFilter(viewer_is_owner=True, tag="gem", search="hidden")
        )
        assert owner_view.total == 1


def test_list_bookmarks_clamps_page_to_last_page(app):
    with app.app_context():
        empty = list_bookmarks(BookmarkFilter(), page=5, per_page=10)
        assert empty.items == []
        assert empty.pagination() == {"page": 1, "perPage": 10, "total": 0, "pages": 0}

        first = _save("https://example.com/a")
        second = _save("https://example.com/b")
        first.created_at = second.created_at - timedelta(days=1)
        db.session.commit()

        late = list_bookmarks(BookmarkFilter(), page=10**20, per_page=1)
        assert [b.id for b in late.items] == [first.id]
        assert late.page == 2


def test_list_bookmarks_searches_title_description_and_url(app):
    with app.app_context():
        by_title = _save("https://example.com/1", title="Flask Patterns")
        by_description = _save("https://example.com/2", description="all about FLASK")
        by_url = _save("https://flask.example.com/3")
        _save("https://example.com/4", title="Django")
        _save("https://example.com/5", title="100% literal")

        found = list_bookmarks(BookmarkFilter(search="flask"), per_page=None)
        assert {b.id for b in found.items} == {by_title.id, by_description.id, by_url.id}

        wildcard = list_bookmarks(BookmarkFilter(search="%"), per_page=None)
        assert [b.title for b in wildcard.items] == ["100% literal"]
