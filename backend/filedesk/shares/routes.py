from __future__ import annotations

from datetime import datetime, timedelta
from io import BytesIO

from flask import Blueprint, jsonify, request, send_file
from flask_jwt_extended import jwt_required

from ..common.errors import APIError
from ..common.identity import current_identity
from ..models import ShareLink, as_utc, utc_now
from ..services import request_services


shares_bp = Blueprint("shares", __name__, url_prefix="/shares")
public_shares_bp = Blueprint("public_shares", __name__)


def _public_url_for_token(token: str) -> str:
    return f"{request.host_url.rstrip('/')}/public/shares/{token}"


def _share_link_payload(link: ShareLink) -> dict:
    payload = link.to_dict()
    payload["public_url"] = _public_url_for_token(link.token)
    return payload


def _parse_expiry(payload: dict) -> datetime | None:
    raw_expires_at = payload.get("expires_at")
    if raw_expires_at not in (None, ""):
        try:
            return as_utc(datetime.fromisoformat(str(raw_expires_at).replace("Z", "+00:00")))
        except ValueError as error:
            raise APIError(400, "INVALID_PARAMETER", "expires_at must be an ISO 8601 timestamp.") from error

    expires_in_days = payload.get("expires_in_days")
    if expires_in_days in (None, ""):
        return None
    try:
        days = int(expires_in_days)
    except (TypeError, ValueError) as error:
        raise APIError(400, "INVALID_PARAMETER", "expires_in_days must be an integer.") from error
    if days <= 0 or days > 3650:
        raise APIError(400, "INVALID_PARAMETER", "expires_in_days must be between 1 and 3650.")
    return utc_now() + timedelta(days=days)


def _supplied_password() -> str | None:
    payload = request.get_json(silent=True) or {}
    password = payload.get("password") or request.form.get("password") or request.headers.get("X-Share-Password")
    return str(password) if password else None


@shares_bp.post("")
@jwt_required()
def create_share_link():
    identity = current_identity()
    services = request_services()

    payload = request.get_json(silent=True) or {}
    link = services.shares.create_share_link(
        identity,
        payload.get("resource_type"),
        str(payload.get("resource_id") or ""),
        password=payload.get("password") or None,
        expires_at=_parse_expiry(payload),
        max_downloads=payload.get("max_downloads"),
    )
    return jsonify({"link": _share_link_payload(link)}), 201


@shares_bp.get("")
@jwt_required()
def list_share_links():
    identity = current_identity()
    services = request_services()

    links = services.shares.list_share_links(
        identity,
        request.args.get("resource_type"),
        request.args.get("resource_id") or "",
    )
    return jsonify({"items": [_share_link_payload(link) for link in links]})


@shares_bp.post("/<link_id>/deactivate")
@jwt_required()
def deactivate_share_link(link_id: str):
    identity = current_identity()
    services = request_services()

    link = services.shares.deactivate_share_link(identity, link_id)
    return jsonify({"link": _share_link_payload(link)})


@public_shares_bp.get("/public/shares/<string:token>")
def public_share_info(token: str):
    services = request_services()
    return jsonify(services.shares.share_link_info(token))


@public_shares_bp.post("/public/shares/<string:token>/resolve")
def public_share_resolve(token: str):
    services = request_services()

    shared = services.shares.resolve_share_link(token, _supplied_password())
    return jsonify(shared.to_dict())


@public_shares_bp.route("/public/shares/<string:token>/download", methods=["GET", "POST"])
def public_share_download(token: str):
    services = request_services()

    file, data = services.shares.open_download(token, _supplied_password())
    return send_file(BytesIO(data), as_attachment=True, download_name=file.name, mimetype=file.mime)
