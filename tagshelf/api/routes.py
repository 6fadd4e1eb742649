from __future__ import annotations

from flask import current_app, jsonify, request

from tagshelf.api import api_bp
from tagshelf.errors import ValidationError
from tagshelf.extensions import db
from tagshelf.services.bookmarks import (
    BookmarkFilter,
    BookmarkInput,
    delete_bookmark,
    find_by_url,
    get_bookmark,
    list_bookmarks,
    update_bookmark,
    upsert_by_url,
)
from tagshelf.services.common import tag_names_from_input, to_bool, url_variants
from tagshelf.services.imports import list_imports, run_import, undo_bookmarks, undo_import
from tagshelf.services.security import owner_required, viewer_is_owner
from tagshelf.services.settings import (
    load_display_settings,
    load_wordpress_settings,
    owner_settings,
    public_settings,
    set_setting,
    update_settings,
)
from tagshelf.services.tags import delete_tag, tags_with_counts
from tagshelf.services.wordpress import client_from_config, publish_bookmark


def _json_payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _private_filter(raw: str | None) -> bool | None:
    if raw is None or raw == "":
        return None
    return to_bool(raw)


def _payload_id(value) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Invalid bookmark ID") from None
    if parsed <= 0:
        raise ValidationError("Invalid bookmark ID")
    return parsed


@api_bp.route("/health")
def health():
    return jsonify({"status": "ok", "service": "Tagshelf"})


@api_bp.route("/bookmarks", methods=["GET"])
def bookmarks_list_api():
    display = load_display_settings()
    filters = BookmarkFilter(
        viewer_is_owner=viewer_is_owner(),
        tag=request.args.get("tag"),
        search=request.args.get("search"),
        private=_private_filter(request.args.get("private")),
    )
    page = list_bookmarks(
        filters,
        page=request.args.get("page", default=1, type=int),
        per_page=display.per_page,
    )
    return jsonify(
        {
            "bookmarks": [bookmark.as_dict() for bookmark in page.items],
            "pagination": page.pagination(),
        }
    )


@api_bp.route("/bookmarks", methods=["POST"])
@owner_required()
def bookmarks_save_api():
    payload = _json_payload()
    data = BookmarkInput.from_payload(payload)

    if payload.get("id") not in (None, ""):
        bookmark = update_bookmark(_payload_id(payload["id"]), data)
        db.session.commit()
        return jsonify({"bookmark": bookmark.as_dict(), "message": "Bookmark updated"})

    bookmark, created = upsert_by_url(data)
    db.session.commit()
    if created:
        return (
            jsonify({"bookmark": bookmark.as_dict(), "message": "Bookmark created"}),
            201,
        )
    return jsonify({"bookmark": bookmark.as_dict(), "message": "Bookmark updated"})


@api_bp.route("/bookmarks/lookup", methods=["GET"])
@owner_required(csrf=False)
def bookmarks_lookup_api():
    url = (request.args.get("url") or "").strip()
    if not url:
        raise ValidationError("URL is required")

    bookmark = find_by_url(url)
    if bookmark is None:
        for variant in url_variants(url):
            bookmark = find_by_url(variant)
            if bookmark is not None:
                break
    return jsonify({"bookmark": bookmark.as_dict() if bookmark else None})


@api_bp.route("/bookmarks/<int:bookmark_id>", methods=["GET"])
def bookmarks_get_api(bookmark_id: int):
    bookmark = get_bookmark(bookmark_id, viewer_is_owner=viewer_is_owner())
    return jsonify({"bookmark": bookmark.as_dict()})


@api_bp.route("/bookmarks/<int:bookmark_id>", methods=["PUT"])
@owner_required()
def bookmarks_update_api(bookmark_id: int):
    data = BookmarkInput.from_payload(_json_payload())
    bookmark = update_bookmark(bookmark_id, data)
    db.session.commit()
    return jsonify({"bookmark": bookmark.as_dict(), "message": "Bookmark updated"})


@api_bp.route("/bookmarks/<int:bookmark_id>", methods=["DELETE"])
@owner_required()
def bookmarks_delete_api(bookmark_id: int):
    delete_bookmark(bookmark_id)
    db.session.commit()
    return jsonify({"success": True, "message": "Bookmark deleted"})


@api_bp.route("/bookmarks/<int:bookmark_id>/publish", methods=["GET"])
@owner_required(csrf=False)
def bookmarks_publish_status_api(bookmark_id: int):
    bookmark = get_bookmark(bookmark_id)
    settings = load_wordpress_settings()
    if not settings.configured:
        return jsonify({"exists": False, "configured": False})

    with client_from_config(settings) as client:
        exists = client.exists(bookmark.url)
    return jsonify({"exists": exists, "configured": True})


@api_bp.route("/bookmarks/<int:bookmark_id>/publish", methods=["POST"])
@owner_required()
def bookmarks_publish_api(bookmark_id: int):
    bookmark = get_bookmark(bookmark_id)
    with client_from_config(load_wordpress_settings()) as client:
        outcome = publish_bookmark(bookmark, client)

    if outcome.already_exists:
        current_app.logger.info("Bookmark %s already on WordPress", bookmark.id)
    else:
        current_app.logger.info(
            "Published bookmark %s as WordPress post %s", bookmark.id, outcome.post_id
        )
    return jsonify(outcome.as_dict())


@api_bp.route("/wordpress/test", methods=["POST"])
@owner_required()
def wordpress_test_api():
    with client_from_config(load_wordpress_settings()) as client:
        user = client.test_connection()
    set_setting("wp_connection_tested", "1")
    db.session.commit()
    return jsonify(
        {
            "success": True,
            "message": f"Connected successfully as {user['name']} (ID: {user['id']})",
        }
    )


@api_bp.route("/tags", methods=["GET"])
def tags_list_api():
    query = (request.args.get("q") or "").strip()
    include_all = to_bool(request.args.get("all"), default=False)
    tags = tags_with_counts(
        viewer_is_owner(),
        threshold=load_display_settings().tag_threshold,
        query=query or None,
        include_all=include_all,
    )
    return jsonify({"tags": [tag.as_dict() for tag in tags]})


@api_bp.route("/tags/<path:name>", methods=["DELETE"])
@owner_required()
def tags_delete_api(name: str):
    delete_tag(name)
    db.session.commit()
    return jsonify({"success": True, "message": "Tag deleted"})


@api_bp.route("/settings", methods=["GET"])
def settings_get_api():
    values = owner_settings() if viewer_is_owner() else public_settings()
    return jsonify({"settings": values})


@api_bp.route("/settings", methods=["PUT"])
@owner_required()
def settings_update_api():
    values = _json_payload().get("settings")
    if not isinstance(values, dict):
        raise ValidationError("Invalid settings data")
    update_settings(values)
    db.session.commit()
    return jsonify({"settings": owner_settings(), "message": "Settings updated"})


@api_bp.route("/imports", methods=["GET"])
@owner_required(csrf=False)
def imports_list_api():
    return jsonify({"imports": [record.as_dict() for record in list_imports()]})


@api_bp.route("/imports", methods=["POST"])
@owner_required()
def imports_create_api():
    upload = request.files.get("file")
    if upload:
        raw = upload.read(current_app.config["MAX_IMPORT_BYTES"] + 1)
        content = raw.decode("utf-8", errors="ignore")
        fmt = request.form.get("format")
        additional_tags = request.form.get("additional_tags")
        filename = upload.filename
    else:
        payload = _json_payload()
        content = payload.get("content") or payload.get("html") or ""
        fmt = payload.get("format")
        additional_tags = payload.get("additional_tags")
        filename = payload.get("filename")
        raw = content.encode("utf-8") if isinstance(content, str) else b""

    if not isinstance(content, str) or not content.strip():
        raise ValidationError("No file content provided")
    if len(raw) > current_app.config["MAX_IMPORT_BYTES"]:
        raise ValidationError("Import file is too large")

    result = run_import(
        content,
        fmt or "netscape",
        additional_tags=tag_names_from_input(additional_tags),
        filename=filename,
    )
    return jsonify(result.as_dict())


@api_bp.route("/imports", methods=["DELETE"])
@owner_required()
def imports_undo_api():
    payload = _json_payload()
    if payload.get("import_id") not in (None, ""):
        try:
            import_id = int(payload["import_id"])
        except (TypeError, ValueError):
            raise ValidationError("Invalid import ID") from None
        deleted = undo_import(import_id)
    elif payload.get("bookmark_ids") is not None:
        deleted = undo_bookmarks(payload["bookmark_ids"])
    else:
        raise ValidationError("Import ID or bookmark IDs are required")
    return jsonify({"success": True, "deleted": deleted})
