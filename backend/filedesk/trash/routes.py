from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..common.errors import APIError, InvalidInput, Unauthorized
from ..common.identity import current_identity
from ..models import ResourceType
from ..services import request_services
from .service import parse_resource_type


trash_bp = Blueprint("trash", __name__, url_prefix="/trash")


def _parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


@trash_bp.get("")
@jwt_required()
def list_trash():
    identity = current_identity()
    services = request_services()

    items = services.lifecycle.list_trash(identity)
    return jsonify(
        {
            "items": items,
            "count": len(items),
            "retention_days": services.settings.trash_retention_days,
        }
    )


@trash_bp.post("/restore")
@jwt_required()
def restore():
    identity = current_identity()
    services = request_services()

    payload = request.get_json(silent=True) or {}
    resource_type = parse_resource_type(payload.get("type"))
    resource_id = str(payload.get("id") or "")
    if not resource_id:
        raise InvalidInput("id is required.")

    if resource_type == ResourceType.FOLDER:
        counts = services.lifecycle.restore_folder(identity, resource_id)
        return jsonify({"restored": counts})
    file = services.lifecycle.restore_file(identity, resource_id)
    return jsonify({"restored": {"folders": 0, "files": 1}, "item": file.to_dict()})


@trash_bp.delete("/<resource_type>/<resource_id>")
@jwt_required()
def delete_permanently(resource_type: str, resource_id: str):
    identity = current_identity()
    services = request_services()

    counts = services.lifecycle.permanently_delete(
        identity,
        resource_type,
        resource_id,
        force=_parse_bool(request.args.get("force")),
    )
    return jsonify({"deleted": counts})


@trash_bp.post("/empty")
@jwt_required()
def empty_trash():
    identity = current_identity()
    services = request_services()

    counts = services.lifecycle.empty_trash(identity)
    return jsonify({"deleted": counts})


@trash_bp.post("/purge")
@jwt_required()
def purge():
    identity = current_identity()
    services = request_services()
    if not services.policy.is_admin(identity):
        raise Unauthorized("Only administrators can purge the trash.")

    payload = request.get_json(silent=True) or {}
    days = payload.get("days")
    if days is not None:
        try:
            days = int(days)
        except (TypeError, ValueError) as error:
            raise APIError(400, "INVALID_PARAMETER", "days must be an integer.") from error

    report = services.lifecycle.purge_expired(days, dry_run=_parse_bool(payload.get("dry_run")))
    return jsonify({"report": report.to_dict()})
