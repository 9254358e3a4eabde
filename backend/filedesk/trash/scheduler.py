from __future__ import annotations

import os
import threading

from flask import Flask

from ..extensions import db
from ..services import services_for_app
from .service import PurgeReport


class TrashPurgeScheduler:
    def __init__(self, app: Flask, interval_seconds: int, retention_days: int) -> None:
        self._app = app
        self._interval_seconds = max(60, int(interval_seconds))
        self._retention_days = max(0, int(retention_days))
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="trash-purge-scheduler", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            with self._app.app_context():
                try:
                    run_purge_cycle(self._app, self._retention_days)
                except Exception:  # pragma: no cover - runtime logging
                    self._app.logger.warning("trash purge failed", exc_info=True)
                    db.session.rollback()
                finally:
                    db.session.remove()
            self._stop_event.wait(self._interval_seconds)


def run_purge_cycle(app: Flask, retention_days: int | None = None, dry_run: bool = False) -> PurgeReport:
    services = services_for_app(app)
    return services.lifecycle.purge_expired(retention_days, dry_run=dry_run)


def should_start_purge_scheduler(app: Flask) -> bool:
    if app.config.get("TESTING"):
        return False
    if int(app.config.get("TRASH_PURGE_INTERVAL_SECONDS") or 0) <= 0:
        return False

    if app.debug:
        return os.environ.get("WERKZEUG_RUN_MAIN") == "true"
    return True


def start_purge_scheduler(app: Flask) -> TrashPurgeScheduler | None:
    if not should_start_purge_scheduler(app):
        return None
    scheduler = TrashPurgeScheduler(
        app=app,
        interval_seconds=int(app.config["TRASH_PURGE_INTERVAL_SECONDS"]),
        retention_days=int(app.config["TRASH_RETENTION_DAYS"]),
    )
    scheduler.start()
    return scheduler
