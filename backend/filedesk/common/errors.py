from __future__ import annotations

from typing import Any

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException


class APIError(Exception):
    def __init__(self, status_code: int, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details or {}


class _KindError(APIError):
    """An APIError whose status and code are fixed by its kind."""

    status_code_default = 400
    code_default = "ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None, *, code: str | None = None) -> None:
        super().__init__(self.status_code_default, code or self.code_default, message, details)


class Unauthorized(_KindError):
    status_code_default = 403
    code_default = "FORBIDDEN"


class NotFound(_KindError):
    status_code_default = 404
    code_default = "NOT_FOUND"


class InvalidInput(_KindError):
    status_code_default = 400
    code_default = "INVALID_INPUT"


class Conflict(_KindError):
    status_code_default = 409
    code_default = "CONFLICT"


class PreconditionFailed(_KindError):
    status_code_default = 412
    code_default = "PRECONDITION_FAILED"


class TreeIntegrityError(_KindError):
    """Corrupted folder graph: a cycle or a chain deeper than the configured bound."""

    status_code_default = 500
    code_default = "TREE_INTEGRITY_ERROR"


class ShareLinkInactive(_KindError):
    status_code_default = 410
    code_default = "SHARE_INACTIVE"


class ShareLinkExpired(_KindError):
    status_code_default = 410
    code_default = "SHARE_EXPIRED"


class DownloadLimitReached(_KindError):
    status_code_default = 410
    code_default = "DOWNLOAD_LIMIT_REACHED"


class PasswordRequired(_KindError):
    status_code_default = 401
    code_default = "PASSWORD_REQUIRED"


class InvalidPassword(_KindError):
    status_code_default = 401
    code_default = "INVALID_PASSWORD"


def error_payload(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        }
    }


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(APIError)
    def handle_api_error(error: APIError):  # type: ignore[no-untyped-def]
        if isinstance(error, TreeIntegrityError):
            app.logger.error("Folder tree integrity failure: %s", error.message)
        return jsonify(error_payload(error.code, error.message, error.details)), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):  # type: ignore[no-untyped-def]
        return (
            jsonify(error_payload("HTTP_ERROR", error.description, {"status": error.code})),
            error.code or 500,
        )

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[no-untyped-def]
        app.logger.exception("Unhandled exception", exc_info=error)
        return jsonify(error_payload("INTERNAL_ERROR", "An unexpected error occurred.")), 500
