from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..common.errors import APIError
from ..common.identity import current_identity
from ..services import request_services
from .service import DEFAULT_PER_PAGE


activity_bp = Blueprint("activity", __name__, url_prefix="/activity")


def _parse_int(value: str | None, field_name: str, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        return int(value)
    except ValueError as error:
        raise APIError(400, "INVALID_PARAMETER", f"{field_name} must be an integer.") from error


@activity_bp.get("")
@jwt_required()
def list_activity():
    identity = current_identity()
    services = request_services()

    page = services.activity.list_entries(
        identity,
        user_id=(request.args.get("user_id") or "").strip() or None,
        action=(request.args.get("action") or "").strip() or None,
        resource_type=(request.args.get("resource_type") or "").strip() or None,
        page=_parse_int(request.args.get("page"), "page", 1),
        per_page=_parse_int(request.args.get("per_page"), "per_page", DEFAULT_PER_PAGE),
    )
    return jsonify(page.to_dict())
