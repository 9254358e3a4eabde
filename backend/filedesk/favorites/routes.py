from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..common.identity import current_identity
from ..services import request_services
from .service import DEFAULT_RECENT_LIMIT


favorites_bp = Blueprint("favorites", __name__, url_prefix="/favorites")
recent_bp = Blueprint("recent", __name__, url_prefix="/recent")


@favorites_bp.get("")
@jwt_required()
def list_favorites():
    identity = current_identity()
    services = request_services()

    return jsonify({"items": services.favorites.list_favorites(identity)})


@favorites_bp.post("")
@jwt_required()
def add_favorite():
    identity = current_identity()
    services = request_services()

    payload = request.get_json(silent=True) or {}
    favorite = services.favorites.add_favorite(identity, payload.get("resource_type"), payload.get("resource_id"))
    return jsonify({"item": favorite.to_dict()}), 201


@favorites_bp.delete("/<favorite_id>")
@jwt_required()
def remove_favorite(favorite_id: str):
    identity = current_identity()
    services = request_services()

    services.favorites.remove_favorite(identity, favorite_id=favorite_id)
    return jsonify({"message": "Removed from favorites."})


@favorites_bp.delete("/<resource_type>/<resource_id>")
@jwt_required()
def remove_favorite_by_resource(resource_type: str, resource_id: str):
    identity = current_identity()
    services = request_services()

    services.favorites.remove_favorite(identity, resource_type=resource_type, resource_id=resource_id)
    return jsonify({"message": "Removed from favorites."})


@recent_bp.get("")
@jwt_required()
def list_recent():
    identity = current_identity()
    services = request_services()

    limit = request.args.get("limit", DEFAULT_RECENT_LIMIT)
    return jsonify({"items": services.favorites.list_recent(identity, limit)})


@recent_bp.post("")
@jwt_required()
def track_recent():
    identity = current_identity()
    services = request_services()

    payload = request.get_json(silent=True) or {}
    entry = services.favorites.track_recent(identity, payload.get("file_id"))
    return jsonify({"item": entry.to_dict()})
