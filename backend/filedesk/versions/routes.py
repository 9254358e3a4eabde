from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..common.errors import APIError
from ..common.identity import current_identity
from ..services import request_services


versions_bp = Blueprint("versions", __name__, url_prefix="/versions")


@versions_bp.get("/files/<file_id>")
@jwt_required()
def list_versions(file_id: str):
    identity = current_identity()
    services = request_services()

    versions = services.versions.list_versions(identity, file_id)
    return jsonify({"items": [version.to_dict() for version in versions]})


@versions_bp.post("/files/<file_id>")
@jwt_required()
def create_version(file_id: str):
    identity = current_identity()
    services = request_services()

    file_obj = request.files.get("file")
    if file_obj is None:
        raise APIError(400, "INVALID_FILE", "Multipart field 'file' is required.")

    version = services.versions.create_version(identity, file_id, file_obj.read(), request.form.get("comment"))
    return jsonify({"item": version.to_dict()}), 201


@versions_bp.post("/<version_id>/restore")
@jwt_required()
def restore_version(version_id: str):
    identity = current_identity()
    services = request_services()

    version = services.versions.restore_version(identity, version_id)
    return jsonify({"item": version.to_dict()})
