from __future__ import annotations

import html
import re
from dataclasses import dataclass

import httpx
from flask import current_app

from tagshelf.errors import ExternalServiceError, ValidationError
from tagshelf.extensions import db
from tagshelf.models import Bookmark
from tagshelf.services.bookmarks import BookmarkFilter, list_bookmarks
from tagshelf.services.settings import WordPressSettings, get_setting, set_setting

DEFAULT_HEADERS = {
    "User-Agent": "Tagshelf-WordPress/1.0",
    "Accept": "application/json",
}

TERM_KINDS = {"tags", "categories"}
SYNC_STATE_KEY = "wp_sync_last_id"

_SLUG_SEPARATORS = re.compile(r"[^a-z0-9]+")


@dataclass
class PublishOutcome:
    already_exists: bool
    post_id: int | None = None

    def as_dict(self):
        if self.already_exists:
            return {
                "success": False,
                "already_exists": True,
                "message": "This bookmark URL already exists in WordPress",
            }
        return {
            "success": True,
            "already_exists": False,
            "message": "Bookmark published to WordPress successfully",
            "post_id": self.post_id,
        }


def term_slug(name: str) -> str:
    return _SLUG_SEPARATORS.sub("-", name.strip().lower()).strip("-")


def split_terms(raw: str | None) -> list[str]:
    return [name.strip() for name in (raw or "").split(",") if name.strip()]


def _error_text(exc: Exception) -> str:
    message = str(exc).strip()
    return message or exc.__class__.__name__


class WordPressClient:
    """Thin wrapper over ``/wp-json/wp/v2``. Calls are never retried."""

    def __init__(
        self,
        settings: WordPressSettings,
        timeout: float = 10,
        publish_timeout: float = 15,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not settings.configured:
            raise ValidationError("WordPress settings are not configured")
        self.settings = settings
        self.publish_timeout = publish_timeout
        self._client = httpx.Client(
            base_url=f"{settings.base_url.rstrip('/')}/wp-json/wp/v2",
            auth=(settings.user, settings.app_password),
            headers=DEFAULT_HEADERS,
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    def __enter__(self) -> "WordPressClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def exists(self, url: str) -> bool:
        try:
            response = self._client.get("/posts", params={"search": url, "per_page": 100})
        except httpx.HTTPError as exc:
            raise ExternalServiceError(
                f"Could not reach WordPress: {_error_text(exc)}"
            ) from exc
        if response.status_code != 200:
            return False
        try:
            posts = response.json()
        except ValueError:
            return False
        if not isinstance(posts, list):
            return False
        for post in posts:
            rendered = ((post or {}).get("content") or {}).get("rendered") or ""
            if url in rendered:
                return True
        return False

    def _find_term(self, kind: str, slug: str) -> int | None:
        response = self._client.get(f"/{kind}", params={"slug": slug})
        if response.status_code != 200:
            return None
        found = response.json()
        if isinstance(found, list) and found and "id" in found[0]:
            return int(found[0]["id"])
        return None

    def _create_term(self, kind: str, name: str, slug: str) -> int | None:
        response = self._client.post(f"/{kind}", json={"name": name, "slug": slug})
        if response.status_code != 201:
            return None
        created = response.json()
        if isinstance(created, dict) and "id" in created:
            return int(created["id"])
        return None

    def ensure_terms(self, kind: str, names: list[str]) -> list[int]:
        # Terms that can be neither found nor created are left off the post.
        if kind not in TERM_KINDS:
            raise ValueError(f"unknown WordPress term kind: {kind}")
        ids: list[int] = []
        for name in names:
            slug = term_slug(name)
            if not slug:
                continue
            try:
                term_id = self._find_term(kind, slug)
                if term_id is None:
                    term_id = self._create_term(kind, name, slug)
            except (httpx.HTTPError, ValueError):
                continue
            if term_id is not None and term_id not in ids:
                ids.append(term_id)
        return ids

    def publish(self, post: dict) -> int:
        try:
            response = self._client.post(
                "/posts", json=post, timeout=self.publish_timeout
            )
        except httpx.HTTPError as exc:
            raise ExternalServiceError(
                f"Failed to publish to WordPress: {_error_text(exc)}"
            ) from exc

        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Failed to publish to WordPress (HTTP {response.status_code})",
                upstream_status=response.status_code,
            )
        try:
            created = response.json()
        except ValueError:
            created = None
        if not isinstance(created, dict) or "id" not in created:
            raise ExternalServiceError("Unexpected response from WordPress")
        return int(created["id"])

    def test_connection(self) -> dict:
        try:
            response = self._client.get("/users/me")
        except httpx.HTTPError as exc:
            raise ExternalServiceError(
                f"Connection failed: {_error_text(exc)}"
            ) from exc
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Connection failed (HTTP {response.status_code})",
                upstream_status=response.status_code,
            )
        try:
            user = response.json()
        except ValueError:
            user = None
        if not isinstance(user, dict) or "id" not in user or "name" not in user:
            raise ExternalServiceError("Unexpected response from WordPress")
        return {"id": user["id"], "name": user["name"]}


def build_post(bookmark: Bookmark) -> dict:
    description = (bookmark.description or "").strip()
    if description.lower() == "uncategorized":
        description = ""

    parts = []
    if description:
        parts.append(f"<p>{html.escape(description)}</p>")
    parts.append(f'<p><a href="{html.escape(bookmark.url)}">Link</a></p>')

    return {
        "title": bookmark.title or bookmark.url,
        "content": "\n".join(parts),
        "status": "publish",
        "date": bookmark.created_at.isoformat(),
    }


def publish_bookmark(bookmark: Bookmark, client: WordPressClient) -> PublishOutcome:
    if client.exists(bookmark.url):
        return PublishOutcome(already_exists=True)

    post = build_post(bookmark)
    tag_ids = client.ensure_terms("tags", split_terms(client.settings.post_tags))
    if tag_ids:
        post["tags"] = tag_ids
    category_ids = client.ensure_terms(
        "categories", split_terms(client.settings.post_categories)
    )
    if category_ids:
        post["categories"] = category_ids

    return PublishOutcome(already_exists=False, post_id=client.publish(post))


def client_from_config(settings: WordPressSettings) -> WordPressClient:
    config = current_app.config
    return WordPressClient(
        settings,
        timeout=config["WP_TIMEOUT"],
        publish_timeout=config["WP_PUBLISH_TIMEOUT"],
        transport=config.get("WP_TRANSPORT"),
    )


def sync_newest_tagged(
    tag: str, client: WordPressClient
) -> tuple[Bookmark | None, PublishOutcome | None]:
    """Publish the newest public bookmark tagged ``tag`` if it was not sent last."""
    newest = list_bookmarks(BookmarkFilter(tag=tag), page=1, per_page=1).items
    if not newest:
        return None, None

    bookmark = newest[0]
    if get_setting(SYNC_STATE_KEY) == str(bookmark.id):
        return bookmark, None

    outcome = publish_bookmark(bookmark, client)
    set_setting(SYNC_STATE_KEY, str(bookmark.id))
    db.session.commit()
    return bookmark, outcome
