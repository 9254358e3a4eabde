from __future__ import annotations

from io import BytesIO
from pathlib import Path

from flask import Blueprint, jsonify, request, send_file
from flask_jwt_extended import jwt_required

from ..common.errors import APIError, InvalidInput, Unauthorized
from ..common.identity import current_identity
from ..services import request_services


folders_bp = Blueprint("folders", __name__, url_prefix="/folders")
files_bp = Blueprint("files", __name__, url_prefix="/files")


def _parse_nullable_id(value: object) -> str | None:
    if value in (None, "", "null"):
        return None
    if not isinstance(value, (str, int)):
        raise APIError(400, "INVALID_PARAMETER", "Identifiers must be strings.")
    return str(value)


def _parse_optional_int(value: object, field_name: str) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as error:
        raise APIError(400, "INVALID_PARAMETER", f"{field_name} must be an integer.") from error


@folders_bp.get("")
@jwt_required()
def list_folder():
    identity = current_identity()
    services = request_services()

    listing = services.tree.list_folder(identity, _parse_nullable_id(request.args.get("parent_id")))
    folder = listing["folder"]
    return jsonify(
        {
            "folder": folder.to_dict() if folder is not None else None,
            "folders": [item.to_dict() for item in listing["folders"]],
            "files": [item.to_dict() for item in listing["files"]],
        }
    )


@folders_bp.post("")
@jwt_required()
def create_folder():
    identity = current_identity()
    services = request_services()

    payload = request.get_json(silent=True) or {}
    folder = services.tree.create_folder(identity, payload.get("name"), _parse_nullable_id(payload.get("parent_id")))
    return jsonify({"item": folder.to_dict()}), 201


@folders_bp.get("/<folder_id>")
@jwt_required()
def get_folder(folder_id: str):
    identity = current_identity()
    services = request_services()

    folder = services.tree.get_folder(identity, folder_id)
    payload = folder.to_dict()
    payload["access"] = services.resolver.folder_access(identity, folder).value
    payload["version"] = folder.version_id
    return jsonify({"item": payload})


@folders_bp.get("/<folder_id>/path")
@jwt_required()
def folder_path(folder_id: str):
    identity = current_identity()
    services = request_services()

    chain = services.tree.folder_path(identity, folder_id)
    return jsonify({"items": [{"id": folder.id, "name": folder.name} for folder in chain]})


@folders_bp.patch("/<folder_id>")
@jwt_required()
def rename_folder(folder_id: str):
    identity = current_identity()
    services = request_services()

    payload = request.get_json(silent=True) or {}
    folder = services.tree.rename_folder(identity, folder_id, payload.get("name"))
    return jsonify({"item": folder.to_dict()})


@folders_bp.post("/<folder_id>/move")
@jwt_required()
def move_folder(folder_id: str):
    identity = current_identity()
    services = request_services()

    payload = request.get_json(silent=True) or {}
    if "parent_id" not in payload:
        raise InvalidInput("parent_id is required (null moves the folder to the root).")
    folder = services.tree.move_folder(
        identity,
        folder_id,
        _parse_nullable_id(payload.get("parent_id")),
        expected_version=_parse_optional_int(payload.get("version"), "version"),
    )
    return jsonify({"item": folder.to_dict()})


@folders_bp.delete("/<folder_id>")
@jwt_required()
def delete_folder(folder_id: str):
    identity = current_identity()
    services = request_services()

    counts = services.lifecycle.soft_delete_folder(identity, folder_id)
    return jsonify({"deleted": counts})


@files_bp.post("/upload")
@jwt_required()
def upload_file():
    identity = current_identity()
    services = request_services()

    file_obj = request.files.get("file")
    if file_obj is None:
        raise APIError(400, "INVALID_FILE", "Multipart field 'file' is required.")
    folder_id = _parse_nullable_id(request.form.get("folder_id"))
    if folder_id is None:
        raise InvalidInput("folder_id is required.")

    file = services.tree.upload_file(
        identity,
        folder_id,
        Path(file_obj.filename or "").name,
        file_obj.read(),
        file_obj.mimetype,
    )
    return jsonify({"item": file.to_dict()}), 201


@files_bp.get("/usage")
@jwt_required()
def storage_usage():
    identity = current_identity()
    services = request_services()

    user_id = request.args.get("user_id") or identity.user_id
    if user_id != identity.user_id and not services.policy.is_admin(identity):
        raise Unauthorized("Only administrators can view other users' storage usage.")
    return jsonify(services.tree.storage_usage(user_id))


@files_bp.get("/<file_id>")
@jwt_required()
def get_file(file_id: str):
    identity = current_identity()
    services = request_services()

    file = services.tree.get_file(identity, file_id)
    return jsonify({"item": file.to_dict()})


@files_bp.get("/<file_id>/download")
@jwt_required()
def download_file(file_id: str):
    identity = current_identity()
    services = request_services()

    file, data = services.tree.read_file(identity, file_id)
    return send_file(BytesIO(data), as_attachment=True, download_name=file.name, mimetype=file.mime)


@files_bp.patch("/<file_id>")
@jwt_required()
def rename_file(file_id: str):
    identity = current_identity()
    services = request_services()

    payload = request.get_json(silent=True) or {}
    file = services.tree.rename_file(identity, file_id, payload.get("name"))
    return jsonify({"item": file.to_dict()})


@files_bp.post("/<file_id>/move")
@jwt_required()
def move_file(file_id: str):
    identity = current_identity()
    services = request_services()

    payload = request.get_json(silent=True) or {}
    folder_id = _parse_nullable_id(payload.get("folder_id"))
    if folder_id is None:
        raise InvalidInput("folder_id is required.")
    file = services.tree.move_file(identity, file_id, folder_id)
    return jsonify({"item": file.to_dict()})


@files_bp.delete("/<file_id>")
@jwt_required()
def delete_file(file_id: str):
    identity = current_identity()
    services = request_services()

    file = services.lifecycle.soft_delete_file(identity, file_id)
    return jsonify({"item": file.to_dict()})
