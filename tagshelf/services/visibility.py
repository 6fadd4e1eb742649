from sqlalchemy import true

from tagshelf.models import Bookmark


def visible_bookmarks_clause(viewer_is_owner: bool):
    """Anonymous viewers only ever see public bookmarks, and count only those."""
    if viewer_is_owner:
        return true()
    return Bookmark.is_private.is_(False)
