from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..common.identity import current_identity
from ..services import request_services


permissions_bp = Blueprint("permissions", __name__, url_prefix="/permissions")


@permissions_bp.get("/folders/<folder_id>")
@jwt_required()
def list_grants(folder_id: str):
    identity = current_identity()
    services = request_services()

    grouped = services.resolver.list_grants(identity, folder_id)
    return jsonify(
        {
            "users": grouped["user"],
            "branches": grouped["branch"],
            "departments": grouped["department"],
        }
    )


@permissions_bp.get("/folders/<folder_id>/me")
@jwt_required()
def my_access(folder_id: str):
    identity = current_identity()
    services = request_services()

    level = services.resolver.resolve_access(identity, folder_id)
    return jsonify({"folder_id": folder_id, "level": level.value})


@permissions_bp.post("/folders/<folder_id>")
@jwt_required()
def grant(folder_id: str):
    identity = current_identity()
    services = request_services()

    payload = request.get_json(silent=True) or {}
    item = services.resolver.grant(
        identity,
        folder_id,
        payload.get("target_type"),
        payload.get("target_id"),
        payload.get("level"),
    )
    return jsonify({"item": item.to_dict()})


@permissions_bp.delete("/folders/<folder_id>/<target_type>/<target_id>")
@jwt_required()
def revoke(folder_id: str, target_type: str, target_id: str):
    identity = current_identity()
    services = request_services()

    services.resolver.revoke(identity, folder_id, target_type, target_id)
    return jsonify({"revoked": True})
