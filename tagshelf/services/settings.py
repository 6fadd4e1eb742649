from __future__ import annotations

from dataclasses import dataclass

from tagshelf.extensions import db
from tagshelf.models import Setting
from tagshelf.services.common import to_bool

PAGINATION_CHOICES = (
    "1",
    "5",
    "10",
    "20",
    "50",
    "100",
    "250",
    "500",
    "1000",
    "unlimited",
)

BOOL_KEYS = {"tags_alphabetical", "show_url", "show_datetime", "wp_connection_tested"}

DISPLAY_DEFAULTS = {
    "tags_alphabetical": False,
    "show_url": True,
    "show_datetime": False,
    "pagination_per_page": "20",
    "tag_threshold": "2",
}

WORDPRESS_DEFAULTS = {
    "wp_base_url": "",
    "wp_user": "",
    "wp_app_password": "",
    "wp_post_tags": "",
    "wp_post_categories": "",
    "wp_connection_tested": False,
}

# Editing any of these invalidates a previous connection test.
WORDPRESS_CONNECTION_KEYS = {"wp_base_url", "wp_user", "wp_app_password"}


@dataclass
class DisplaySettings:
    per_page: int | None = 20
    tag_threshold: int = 2
    tags_alphabetical: bool = False
    show_url: bool = True
    show_datetime: bool = False


@dataclass
class WordPressSettings:
    base_url: str = ""
    user: str = ""
    app_password: str = ""
    post_tags: str = ""
    post_categories: str = ""
    connection_tested: bool = False

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.user and self.app_password)


def _stored_values(keys) -> dict[str, str]:
    rows = Setting.query.filter(Setting.key.in_(list(keys))).all()
    return {row.key: row.value for row in rows}


def _typed(defaults: dict) -> dict:
    stored = _stored_values(defaults)
    values = {}
    for key, default in defaults.items():
        raw = stored.get(key)
        if raw is None:
            values[key] = default
        elif key in BOOL_KEYS:
            values[key] = raw in {"1", "true"}
        else:
            values[key] = raw
    return values


def get_setting(key: str, default: str | None = None) -> str | None:
    row = db.session.get(Setting, key)
    return row.value if row else default


def set_setting(key: str, value: str) -> None:
    row = db.session.get(Setting, key)
    if row is None:
        db.session.add(Setting(key=key, value=value))
    else:
        row.value = value
    db.session.flush()


def public_settings() -> dict:
    return _typed(DISPLAY_DEFAULTS)


def owner_settings() -> dict:
    values = public_settings()
    wordpress = _typed(WORDPRESS_DEFAULTS)
    wordpress["wp_app_password_set"] = bool(wordpress.pop("wp_app_password"))
    values.update(wordpress)
    return values


def _coerce(key: str, value) -> str | None:
    if key in BOOL_KEYS:
        return "1" if to_bool(value, default=False) else "0"
    if key == "pagination_per_page":
        value = str(value).strip().lower()
        return value if value in PAGINATION_CHOICES else None
    if key == "tag_threshold":
        try:
            return str(max(0, int(value)))
        except (TypeError, ValueError):
            return None
    if key == "wp_app_password":
        # Reads never echo the password, so an empty value means "unchanged".
        return str(value) if value else None
    return str(value if value is not None else "").strip()


def update_settings(values: dict, include_wordpress: bool = True) -> list[str]:
    """Store the recognized keys of ``values`` and return the ones written."""
    allowed = set(DISPLAY_DEFAULTS)
    if include_wordpress:
        allowed |= set(WORDPRESS_DEFAULTS)

    written: list[str] = []
    for key, value in values.items():
        if key not in allowed:
            continue
        stored = _coerce(key, value)
        if stored is None:
            continue
        if key in WORDPRESS_CONNECTION_KEYS and stored != get_setting(key, ""):
            set_setting("wp_connection_tested", "0")
        set_setting(key, stored)
        written.append(key)
    return written


def load_display_settings() -> DisplaySettings:
    values = public_settings()
    per_page_raw = values["pagination_per_page"]
    if per_page_raw == "unlimited":
        per_page = None
    else:
        try:
            per_page = int(per_page_raw)
        except ValueError:
            per_page = int(DISPLAY_DEFAULTS["pagination_per_page"])

    try:
        threshold = max(0, int(values["tag_threshold"]))
    except ValueError:
        threshold = int(DISPLAY_DEFAULTS["tag_threshold"])

    return DisplaySettings(
        per_page=per_page,
        tag_threshold=threshold,
        tags_alphabetical=values["tags_alphabetical"],
        show_url=values["show_url"],
        show_datetime=values["show_datetime"],
    )


def load_wordpress_settings() -> WordPressSettings:
    values = _typed(WORDPRESS_DEFAULTS)
    return WordPressSettings(
        base_url=values["wp_base_url"].rstrip("/"),
        user=values["wp_user"],
        app_password=values["wp_app_password"],
        post_tags=values["wp_post_tags"],
        post_categories=values["wp_post_categories"],
        connection_tested=values["wp_connection_tested"],
    )
