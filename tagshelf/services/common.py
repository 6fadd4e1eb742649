from __future__ import annotations

import re
from collections.abc import Iterable
from urllib.parse import urlparse

MAX_URL_LENGTH = 2048
MAX_TITLE_LENGTH = 500
MAX_DESCRIPTION_LENGTH = 5000
MAX_TAG_LENGTH = 100

_FOLDER_TAG_SEPARATORS = re.compile(r"[^a-z0-9]+", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s")


def normalize_tag(raw: str | None) -> str:
    return (raw or "").strip().lower()


def normalize_tags(names: Iterable[str]) -> list[str]:
    return sorted({normalize_tag(name) for name in names} - {""})


def parse_tags(raw: str) -> list[str]:
    if not raw:
        return []
    return normalize_tags(raw.split(","))


def tag_names_from_input(value) -> list[str]:
    """Turn a request's tags field (list or comma string) into raw names."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    return str(value).split(",")


def folder_tag(name: str | None) -> str:
    """Tag form of a bookmark-export folder name: ``"C++ Tips!"`` -> ``c_tips``."""
    return _FOLDER_TAG_SEPARATORS.sub("_", name or "").strip("_").lower()


def is_valid_url(url: str | None) -> bool:
    if not url or len(url) > MAX_URL_LENGTH:
        return False
    if _WHITESPACE.search(url):
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def url_variants(url: str) -> list[str]:
    """Near-miss spellings tried when an exact URL lookup fails."""
    stripped = url.rstrip("/")
    candidates = [
        stripped,
        stripped + "/",
        url.replace("https://", "http://", 1),
        url.replace("http://", "https://", 1),
    ]
    variants: list[str] = []
    for candidate in candidates:
        if candidate and candidate != url and candidate not in variants:
            variants.append(candidate)
    return variants


def to_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}
