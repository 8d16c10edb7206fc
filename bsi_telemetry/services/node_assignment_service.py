from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from bsi_telemetry.db.models import NodeAssignment, User, utcnow
from bsi_telemetry.services.activity_service import ActivityService
from bsi_telemetry.services.exceptions import NotFound, ValidationFailed

logger = logging.getLogger(__name__)


def _normalize_names(node_names: Iterable[Any]) -> List[str]:
    seen: Dict[str, None] = {}
    for raw in node_names or []:
        name = str(raw).strip() if raw is not None else ""
        if name:
            seen.setdefault(name, None)
    return list(seen)


class NodeAssignmentService:
    """Per-user node grants used by the access-control resolver."""

    def __init__(self, activity: ActivityService) -> None:
        self._activity = activity

    @staticmethod
    def _require_user(db: Session, user_id: int) -> User:
        user = db.get(User, int(user_id))
        if user is None:
            raise NotFound("User not found")
        return user

    def list_for_user(self, db: Session, user_id: int) -> List[NodeAssignment]:
        self._require_user(db, user_id)
        return (
            db.query(NodeAssignment)
            .filter(NodeAssignment.user_id == int(user_id))
            .order_by(NodeAssignment.assigned_at.desc(), NodeAssignment.id.desc())
            .all()
        )

    def assign(
        self,
        db: Session,
        *,
        actor_id: int,
        client_ip: Optional[str],
        user_id: Any,
        node_names: Any,
        notes: Optional[str] = None,
        base_station_name: Optional[str] = None,
    ) -> List[Dict[str, str]]:
        """Upsert one assignment per node name.

        Re-assigning an existing (user, node, base station) refreshes notes,
        assigner and timestamp instead of failing.
        """
        if not user_id or not isinstance(node_names, list):
            raise ValidationFailed("User ID and at least one node name are required")
        names = _normalize_names(node_names)
        if not names:
            raise ValidationFailed("User ID and at least one node name are required")
        try:
            target_id = int(user_id)
        except (TypeError, ValueError) as e:
            raise ValidationFailed("User ID must be an integer") from e

        self._require_user(db, target_id)
        base_station_name = (base_station_name or "").strip() or None
        notes = (notes or "").strip() or None

        results: List[Dict[str, str]] = []
        try:
            for name in names:
                q = db.query(NodeAssignment).filter(
                    NodeAssignment.user_id == target_id,
                    NodeAssignment.node_name == name,
                )
                if base_station_name is None:
                    q = q.filter(NodeAssignment.base_station_name.is_(None))
                else:
                    q = q.filter(NodeAssignment.base_station_name == base_station_name)
                existing = q.one_or_none()

                if existing is not None:
                    existing.notes = notes
                    existing.assigned_by = actor_id
                    existing.assigned_at = utcnow()
                    db.add(existing)
                    results.append({"nodeName": name, "status": "updated"})
                else:
                    db.add(
                        NodeAssignment(
                            user_id=target_id,
                            node_name=name,
                            base_station_name=base_station_name,
                            assigned_by=actor_id,
                            notes=notes,
                        )
                    )
                    results.append({"nodeName": name, "status": "assigned"})

            details: Dict[str, Any] = {"targetUserId": target_id, "nodes": names}
            if base_station_name is not None:
                details["baseStationName"] = base_station_name
            self._activity.record(
                db,
                action="ASSIGN_NODES",
                user_id=actor_id,
                client_ip=client_ip,
                resource="node_assignments",
                details=details,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info("Assigned nodes %s to user_id=%s", names, target_id)
        return results

    def remove(self, db: Session, *, actor_id: int, client_ip: Optional[str], assignment_id: int) -> None:
        a = db.get(NodeAssignment, int(assignment_id))
        if a is None:
            raise NotFound("Assignment not found")
        details = {"assignmentId": a.id, "userId": a.user_id, "nodeName": a.node_name}
        try:
            db.delete(a)
            self._activity.record(
                db,
                action="REMOVE_NODE_ASSIGNMENT",
                user_id=actor_id,
                client_ip=client_ip,
                resource="node_assignments",
                details=details,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

    def remove_for_node(
        self,
        db: Session,
        *,
        actor_id: int,
        client_ip: Optional[str],
        user_id: int,
        node_name: str,
    ) -> int:
        """Drop every assignment of ``node_name`` for the user, across base stations."""
        rows = (
            db.query(NodeAssignment)
            .filter(NodeAssignment.user_id == int(user_id), NodeAssignment.node_name == node_name)
            .all()
        )
        if not rows:
            raise NotFound("Assignment not found")
        try:
            for a in rows:
                db.delete(a)
            self._activity.record(
                db,
                action="REMOVE_NODE_ASSIGNMENT",
                user_id=actor_id,
                client_ip=client_ip,
                resource="node_assignments",
                details={"userId": int(user_id), "nodeName": node_name, "removed": len(rows)},
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        return len(rows)

    def set_access_all(
        self,
        db: Session,
        *,
        actor_id: int,
        client_ip: Optional[str],
        user_id: int,
        access_all_nodes: Any,
    ) -> User:
        if not isinstance(access_all_nodes, bool):
            raise ValidationFailed("accessAllNodes must be a boolean value")
        user = self._require_user(db, user_id)
        try:
            user.access_all_nodes = access_all_nodes
            db.add(user)
            self._activity.record(
                db,
                action="UPDATE_NODE_ACCESS",
                user_id=actor_id,
                client_ip=client_ip,
                resource="users",
                details={"userId": user.id, "accessAllNodes": access_all_nodes},
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(user)
        return user
