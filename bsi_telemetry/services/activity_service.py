from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from bsi_telemetry.db.models import ActivityLog


class ActivityService:
    """User activity trail (logins, user and assignment changes, mapping edits).

    ``record`` only stages the row; callers commit it together with the change
    it describes. ``log`` is the standalone variant that commits immediately.
    """

    def record(
        self,
        db: Session,
        *,
        action: str,
        user_id: Optional[int],
        client_ip: Optional[str],
        resource: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> ActivityLog:
        entry = ActivityLog(
            action=action,
            user_id=user_id,
            ip_address=client_ip,
            resource=resource,
            details=details,
        )
        db.add(entry)
        return entry

    def log(
        self,
        db: Session,
        *,
        action: str,
        user_id: Optional[int],
        client_ip: Optional[str],
        resource: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> ActivityLog:
        entry = self.record(
            db, action=action, user_id=user_id, client_ip=client_ip, resource=resource, details=details
        )
        db.commit()
        db.refresh(entry)
        return entry

    def recent(
        self,
        db: Session,
        *,
        limit: int = 100,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
    ) -> List[ActivityLog]:
        q = db.query(ActivityLog)
        if user_id is not None:
            q = q.filter(ActivityLog.user_id == int(user_id))
        if action:
            q = q.filter(ActivityLog.action == action)
        limit = max(1, min(int(limit), 1000))
        return q.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit).all()
