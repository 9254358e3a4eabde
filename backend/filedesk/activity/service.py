from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from flask import current_app, has_request_context, request
from sqlalchemy.exc import InvalidRequestError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..common.identity import AccessPolicy, Identity
from ..models import ActivityLog


DEFAULT_PER_PAGE = 20


def _request_actor_ip() -> str | None:
    if not has_request_context():
        return None
    forwarded = request.headers.get("X-Forwarded-For") or ""
    if forwarded.strip():
        return forwarded.split(",", 1)[0].strip()
    return request.remote_addr or None


def _request_user_agent() -> str | None:
    if not has_request_context():
        return None
    value = (request.headers.get("User-Agent") or "").strip()
    return value[:255] or None


@dataclass
class ActivityPage:
    items: list[ActivityLog]
    page: int
    per_page: int
    total: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.per_page - 1) // self.per_page

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "pagination": {
                "page": self.page,
                "per_page": self.per_page,
                "total": self.total,
                "total_pages": self.total_pages,
            },
        }


class ActivityRecorder:
    def __init__(self, session: Session, policy: AccessPolicy, max_per_page: int = 100) -> None:
        self.session = session
        self.policy = policy
        self.max_per_page = max(1, max_per_page)

    def record(
        self,
        user_id: str | None,
        action: str,
        resource_type: str | None,
        resource_id: str | None,
        resource_name: str | None,
        details: dict[str, Any] | None = None,
        ip: str | None = None,
    ) -> ActivityLog | None:
        entry = ActivityLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            resource_name=resource_name,
            details=details or {},
            ip_address=ip or _request_actor_ip(),
            user_agent=_request_user_agent(),
        )
        # The entry lives in a savepoint of the caller's transaction: a failed
        # insert is dropped and the business operation still commits.
        try:
            with self.session.begin_nested():
                self.session.add(entry)
                self.session.flush([entry])
        except SQLAlchemyError:
            current_app.logger.warning(
                "Activity log entry dropped: action=%s resource=%s/%s",
                action,
                resource_type,
                resource_id,
                exc_info=True,
            )
            try:
                self.session.expunge(entry)
            except InvalidRequestError:
                pass
            return None

        return entry

    def list_entries(
        self,
        identity: Identity,
        *,
        user_id: str | None = None,
        action: str | None = None,
        resource_type: str | None = None,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
    ) -> ActivityPage:
        page = max(1, int(page))
        per_page = min(self.max_per_page, max(1, int(per_page)))

        query = self.session.query(ActivityLog)
        if not self.policy.is_admin(identity):
            query = query.filter(ActivityLog.user_id == identity.user_id)
        elif user_id:
            query = query.filter(ActivityLog.user_id == user_id)
        if action:
            query = query.filter(ActivityLog.action == action)
        if resource_type:
            query = query.filter(ActivityLog.resource_type == resource_type)

        total = query.count()
        items = (
            query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return ActivityPage(items=items, page=page, per_page=per_page, total=total)
