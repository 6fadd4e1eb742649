from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import cast

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from tagshelf.errors import ValidationError
from tagshelf.services.common import (
    folder_tag,
    is_valid_url,
    normalize_tags,
    tag_names_from_input,
)

FORMAT_NETSCAPE = "netscape"
FORMAT_JSON = "json"

FORMAT_ALIASES = {
    "netscape": FORMAT_NETSCAPE,
    "html": FORMAT_NETSCAPE,
    "json": FORMAT_JSON,
    "pinboard": FORMAT_JSON,
}

ROOT_FOLDER_NAMES = {
    "bookmarks",
    "bookmarks bar",
    "bookmarks menu",
    "bookmarks toolbar",
    "other bookmarks",
    "mobile bookmarks",
}


@dataclass
class ImportedBookmark:
    url: str
    title: str = ""
    description: str = ""
    tags: list[str] = field(default_factory=list)
    folder_path: list[str] = field(default_factory=list)


def resolve_format(raw: str | None) -> str:
    fmt = FORMAT_ALIASES.get((raw or FORMAT_NETSCAPE).strip().lower())
    if not fmt:
        raise ValidationError(f"Unsupported import format: {raw}")
    return fmt


def _iter_dt_entries(dl: Tag) -> list[Tag]:
    entries: list[Tag] = []
    for dt in dl.find_all("dt"):
        if not isinstance(dt, Tag):
            continue
        parent_dl = dt.find_parent("dl")
        if parent_dl is dl:
            entries.append(cast(Tag, dt))
    return entries


def _find_nested_dl(dt: Tag) -> Tag | None:
    nested = dt.find("dl")
    if isinstance(nested, Tag):
        return nested

    sibling = dt.next_sibling
    while sibling is not None:
        if isinstance(sibling, Tag):
            name = (sibling.name or "").lower()
            if name == "dl":
                return sibling
            if name == "dt":
                return None
        sibling = sibling.next_sibling
    return None


def _find_anchor_in_dt(dt: Tag) -> Tag | None:
    for anchor in dt.find_all("a"):
        if isinstance(anchor, Tag) and anchor.find_parent("dt") is dt:
            return anchor
    return None


def _find_folder_in_dt(dt: Tag) -> Tag | None:
    for folder in dt.find_all(["h3", "h2", "h1"]):
        if isinstance(folder, Tag) and folder.find_parent("dt") is dt:
            return folder
    return None


def _own_text(element: Tag) -> str:
    # A <DD> is rarely closed, so the parser may nest the following entries in it.
    parts = [
        str(child)
        for child in element.children
        if isinstance(child, NavigableString) and not isinstance(child, Comment)
    ]
    return " ".join("".join(parts).split())


def _find_description(dt: Tag) -> str:
    for dd in dt.find_all("dd"):
        if isinstance(dd, Tag) and dd.find_parent("dt") is dt:
            return _own_text(dd)

    sibling = dt.next_sibling
    while sibling is not None:
        if isinstance(sibling, Tag):
            name = (sibling.name or "").lower()
            if name == "dd":
                return _own_text(sibling)
            if name in {"dt", "dl"}:
                return ""
        sibling = sibling.next_sibling
    return ""


def _folder_tags(folder_path: list[str]) -> list[str]:
    tags: list[str] = []
    for name in folder_path:
        if name.strip().lower() in ROOT_FOLDER_NAMES:
            continue
        tag = folder_tag(name)
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def _parse_dl(dl: Tag, folder_path: list[str], out: list[ImportedBookmark]) -> None:
    for dt in _iter_dt_entries(dl):
        anchor = _find_anchor_in_dt(dt)
        if isinstance(anchor, Tag):
            href_value = anchor.get("href")
            href = href_value.strip() if isinstance(href_value, str) else ""
        else:
            href = ""

        if href:
            text = anchor.get_text(strip=True) if isinstance(anchor, Tag) else ""
            out.append(
                ImportedBookmark(
                    url=href,
                    title=text.strip(),
                    description=_find_description(dt),
                    tags=_folder_tags(folder_path),
                    folder_path=folder_path.copy(),
                )
            )

        nested_dl = _find_nested_dl(dt)
        folder = _find_folder_in_dt(dt)
        if folder is None and nested_dl is not None:
            for heading in dt.find_all(["h3", "h2", "h1"]):
                if isinstance(heading, Tag):
                    folder = heading
                    break

        if folder and nested_dl:
            name = folder.get_text(strip=True)
            _parse_dl(nested_dl, folder_path + [name], out)


def parse_bookmark_html(html: str) -> list[ImportedBookmark]:
    soup = BeautifulSoup(html, "lxml")
    root = soup.find("dl")
    if not isinstance(root, Tag):
        return []

    bookmarks: list[ImportedBookmark] = []
    _parse_dl(root, [], bookmarks)
    return [bm for bm in bookmarks if bm.url]


def _json_entry(item: dict) -> ImportedBookmark:
    if "href" in item:
        # Pinboard export: "description" is the title, "extended" the notes.
        raw_tags = item.get("tags") or ""
        if isinstance(raw_tags, str):
            tags = raw_tags.split()
        else:
            tags = tag_names_from_input(raw_tags)
        return ImportedBookmark(
            url=str(item.get("href") or "").strip(),
            title=str(item.get("description") or "").strip(),
            description=str(item.get("extended") or "").strip(),
            tags=tags,
        )
    return ImportedBookmark(
        url=str(item.get("url") or "").strip(),
        title=str(item.get("title") or "").strip(),
        description=str(item.get("description") or "").strip(),
        tags=tag_names_from_input(item.get("tags")),
    )


def parse_bookmark_json(raw: str) -> list[ImportedBookmark]:
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise ValidationError("Invalid JSON bookmark file") from exc

    if isinstance(data, dict):
        data = data.get("bookmarks")
    if not isinstance(data, list):
        raise ValidationError("JSON bookmark file must contain a list of bookmarks")

    return [_json_entry(item) for item in data if isinstance(item, dict)]


def parse_import_content(
    content: str, fmt: str, additional_tags: Iterable[str] = ()
) -> list[ImportedBookmark]:
    """Parse an export into candidates with valid URLs and merged, normalized tags."""
    fmt = resolve_format(fmt)
    if fmt == FORMAT_JSON:
        entries = parse_bookmark_json(content)
    else:
        entries = parse_bookmark_html(content)

    extra = list(additional_tags)
    candidates: list[ImportedBookmark] = []
    for entry in entries:
        if not is_valid_url(entry.url):
            continue
        entry.tags = normalize_tags([*entry.tags, *extra])
        candidates.append(entry)
    return candidates
