from __future__ import annotations

from flask import Flask, jsonify
from sqlalchemy.exc import SQLAlchemyError

from tagshelf.extensions import db

STORAGE_ERROR_MESSAGE = "Database error occurred"


class TagshelfError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(TagshelfError):
    """Malformed or oversized input. Raised before anything is mutated."""

    status_code = 400


class Unauthorized(TagshelfError):
    status_code = 401


class Forbidden(TagshelfError):
    status_code = 403


class NotFound(TagshelfError):
    status_code = 404


class RateLimited(TagshelfError):
    status_code = 429


class StorageError(TagshelfError):
    def __init__(self, message: str = STORAGE_ERROR_MESSAGE) -> None:
        super().__init__(message)


class ExternalServiceError(TagshelfError):
    """The publish sink failed. The message is safe to show to the owner."""

    def __init__(self, message: str, upstream_status: int | None = None) -> None:
        self.upstream_status = upstream_status
        super().__init__(message)


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(TagshelfError)
    def handle_tagshelf_error(exc: TagshelfError):
        if exc.status_code >= 500:
            app.logger.warning("%s: %s", exc.__class__.__name__, exc.message)
        return jsonify({"error": exc.message}), exc.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_storage_error(exc: SQLAlchemyError):
        db.session.rollback()
        app.logger.exception("Storage error: %s", exc.__class__.__name__)
        return jsonify({"error": STORAGE_ERROR_MESSAGE}), 500
