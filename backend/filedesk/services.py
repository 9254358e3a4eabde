from __future__ import annotations

from dataclasses import dataclass

from flask import Flask, current_app, g
from sqlalchemy.orm import Session

from .activity.service import ActivityRecorder
from .common.identity import AccessPolicy
from .common.storage import BlobStore, LocalBlobStore
from .common.transaction import ServiceSettings
from .extensions import db
from .favorites.service import FavoriteService
from .files.service import TreeStore
from .permissions.service import PermissionResolver
from .shares.service import ShareLinkEngine
from .trash.service import LifecycleEngine
from .versions.service import VersionService


EXTENSION_KEY = "filedesk"


@dataclass
class Runtime:
    """Process-wide collaborators shared by every request of one app."""

    blobs: BlobStore
    policy: AccessPolicy
    settings: ServiceSettings


@dataclass
class Services:
    policy: AccessPolicy
    settings: ServiceSettings
    activity: ActivityRecorder
    resolver: PermissionResolver
    tree: TreeStore
    lifecycle: LifecycleEngine
    shares: ShareLinkEngine
    versions: VersionService
    favorites: FavoriteService


def init_runtime(app: Flask, blobs: BlobStore | None = None) -> Runtime:
    runtime = Runtime(
        blobs=blobs or LocalBlobStore(app.config["STORAGE_ROOT"]),
        policy=AccessPolicy(app.config["ADMIN_ROLES"]),
        settings=ServiceSettings.from_config(app.config),
    )
    app.extensions[EXTENSION_KEY] = runtime
    return runtime


def build_services(session: Session, blobs: BlobStore, policy: AccessPolicy, settings: ServiceSettings) -> Services:
    activity = ActivityRecorder(session, policy, settings.activity_max_per_page)
    resolver = PermissionResolver(session, policy, activity)
    tree = TreeStore(session, blobs, policy, resolver, activity, settings)
    return Services(
        policy=policy,
        settings=settings,
        activity=activity,
        resolver=resolver,
        tree=tree,
        lifecycle=LifecycleEngine(session, blobs, policy, resolver, tree, activity, settings),
        shares=ShareLinkEngine(session, blobs, policy, resolver, tree, activity),
        versions=VersionService(session, blobs, resolver, tree, activity, settings),
        favorites=FavoriteService(session, resolver, tree, settings),
    )


def services_for_app(app: Flask, session: Session | None = None) -> Services:
    runtime: Runtime = app.extensions[EXTENSION_KEY]
    return build_services(session or db.session, runtime.blobs, runtime.policy, runtime.settings)


def request_services() -> Services:
    """Services bound to ``db.session``, built once per request."""
    if "filedesk_services" not in g:
        g.filedesk_services = services_for_app(current_app._get_current_object())
    return g.filedesk_services
