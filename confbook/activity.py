"""Append-only activity log used as the audit trail."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import ActivityLog

logger = logging.getLogger(__name__)

BOOKING_CREATE = "booking_create"
BOOKING_RESCHEDULE = "booking_reschedule"
BOOKING_STATUS_CHANGE = "booking_status_change"
BOOKING_CANCEL = "booking_cancel"
BOOKING_DELETE = "booking_delete"
ROOM_CREATE = "room_create"
ROOM_UPDATE = "room_update"
ROOM_DELETE = "room_delete"
LOGIN = "login"
REGISTER = "register"


class ActivityRecorder:
    """Writes each record in a session of its own, never the caller's."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    def record(
        self,
        actor_id: Optional[int],
        event_type: str,
        details: Optional[Dict[str, Any]] = None,
        ip: Optional[str] = None,
    ) -> None:
        session = self.session_factory()
        try:
            session.add(ActivityLog(user_id=actor_id, type=event_type, details=details or {}, ip=ip))
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
        logger.debug("Recorded %s for user %s", event_type, actor_id)


def list_activity_logs(
    db: Session,
    user_id: Optional[int] = None,
    event_type: Optional[str] = None,
    limit: int = 100,
) -> List[ActivityLog]:
    stmt = select(ActivityLog)
    if user_id is not None:
        stmt = stmt.where(ActivityLog.user_id == user_id)
    if event_type:
        stmt = stmt.where(ActivityLog.type == event_type)
    stmt = stmt.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit)
    return list(db.scalars(stmt))
