from __future__ import annotations

from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_jwt_extended import JWTManager

from .activity.routes import activity_bp
from .common.errors import error_payload, register_error_handlers
from .common.storage import BlobStore
from .config import Config
from .extensions import cors, db, jwt, migrate
from .favorites.routes import favorites_bp, recent_bp
from .files.routes import files_bp, folders_bp
from .permissions.routes import permissions_bp
from .services import init_runtime
from .shares.routes import public_shares_bp, shares_bp
from .trash.cli import purge_trash_command
from .trash.routes import trash_bp
from .trash.scheduler import start_purge_scheduler
from .versions.routes import versions_bp


load_dotenv()

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"


def _register_jwt_handlers(jwt_manager: JWTManager) -> None:
    @jwt_manager.unauthorized_loader
    def unauthorized(reason: str):  # type: ignore[no-untyped-def]
        return jsonify(error_payload("UNAUTHENTICATED", "Missing or invalid authentication token.", {"reason": reason})), 401

    @jwt_manager.invalid_token_loader
    def invalid_token(reason: str):  # type: ignore[no-untyped-def]
        return jsonify(error_payload("INVALID_TOKEN", "Invalid token.", {"reason": reason})), 401

    @jwt_manager.expired_token_loader
    def expired_token(jwt_header, jwt_payload):  # type: ignore[no-untyped-def]
        return jsonify(error_payload("TOKEN_EXPIRED", "Token has expired.")), 401


def create_app(config_override: dict[str, Any] | None = None, blobs: BlobStore | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_override:
        app.config.update(config_override)

    Path(app.config["STORAGE_ROOT"]).mkdir(parents=True, exist_ok=True)

    db.init_app(app)
    migrate.init_app(app, db, directory=str(MIGRATIONS_DIR))
    jwt.init_app(app)
    _register_jwt_handlers(jwt)
    cors.init_app(app, resources={r"/*": {"origins": app.config["FRONTEND_ORIGINS"]}})

    init_runtime(app, blobs)

    app.register_blueprint(folders_bp)
    app.register_blueprint(files_bp)
    app.register_blueprint(permissions_bp)
    app.register_blueprint(trash_bp)
    app.register_blueprint(shares_bp)
    app.register_blueprint(public_shares_bp)
    app.register_blueprint(activity_bp)
    app.register_blueprint(versions_bp)
    app.register_blueprint(favorites_bp)
    app.register_blueprint(recent_bp)

    app.cli.add_command(purge_trash_command)

    @app.get("/health")
    def healthcheck():
        return {"status": "ok"}

    register_error_handlers(app)

    scheduler = start_purge_scheduler(app)
    app.extensions["trash_purge_scheduler"] = scheduler

    return app
