from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from bsi_telemetry.db.models import NodeAssignment, Sample, User

logger = logging.getLogger(__name__)


class _AssignmentLike(Protocol):
    node_name: str
    base_station_name: Optional[str]


class NodeAccessDenied(RuntimeError):
    def __init__(self, node_name: str, base_station: Optional[str] = None):
        target = node_name if base_station is None else f"{node_name}/{base_station}"
        super().__init__(f"Access to node {target} denied")
        self.node_name = node_name
        self.base_station = base_station


def has_unrestricted_access(user: User) -> bool:
    return bool(user.is_active) and (user.role == "admin" or bool(user.access_all_nodes))


def is_node_visible(
    user: User,
    node_name: str,
    assignments: Iterable[_AssignmentLike],
    base_station: Optional[str] = None,
) -> bool:
    """Single visibility predicate for (user, node[, base station]).

    An assignment without a base station grants every base station of the
    node; one naming a base station grants only that stream.
    """
    if not user.is_active:
        return False
    if has_unrestricted_access(user):
        return True
    for a in assignments:
        if a.node_name != node_name:
            continue
        if a.base_station_name is None or base_station is None or a.base_station_name == base_station:
            return True
    return False


class AccessControlService:
    """Resolves node visibility for a user against the samples table."""

    def assignments_for(self, db: Session, user: User) -> List[NodeAssignment]:
        return (
            db.query(NodeAssignment)
            .filter(NodeAssignment.user_id == int(user.id))
            .order_by(NodeAssignment.assigned_at.desc())
            .all()
        )

    def all_nodes(self, db: Session) -> List[str]:
        rows = db.execute(select(Sample.NodeName).distinct().order_by(Sample.NodeName)).all()
        return [r[0] for r in rows]

    def base_stations(self, db: Session, node_name: str) -> List[str]:
        rows = db.execute(
            select(Sample.NodeBaseStationName)
            .where(Sample.NodeName == node_name)
            .distinct()
            .order_by(Sample.NodeBaseStationName)
        ).all()
        return [r[0] for r in rows]

    def visible_nodes(self, db: Session, user: User) -> List[str]:
        if not user.is_active:
            return []
        if has_unrestricted_access(user):
            return self.all_nodes(db)

        assigned = sorted({a.node_name for a in self.assignments_for(db, user)})
        if not assigned:
            return []
        # Assigned names with no samples simply drop out.
        rows = db.execute(
            select(Sample.NodeName)
            .where(Sample.NodeName.in_(assigned))
            .distinct()
            .order_by(Sample.NodeName)
        ).all()
        return [r[0] for r in rows]

    def visible_base_stations(self, db: Session, user: User, node_name: str) -> List[str]:
        stations = self.base_stations(db, node_name)
        if has_unrestricted_access(user):
            return stations
        assignments = self.assignments_for(db, user)
        return [bs for bs in stations if is_node_visible(user, node_name, assignments, base_station=bs)]

    def can_view(self, db: Session, user: User, node_name: str, base_station: Optional[str] = None) -> bool:
        if has_unrestricted_access(user):
            return True
        return is_node_visible(user, node_name, self.assignments_for(db, user), base_station=base_station)

    def ensure_visible(self, db: Session, user: User, node_name: str, base_station: Optional[str] = None) -> None:
        if not self.can_view(db, user, node_name, base_station):
            logger.warning(
                "Node access denied user=%s node=%s base_station=%s",
                user.username,
                node_name,
                base_station,
            )
            raise NodeAccessDenied(node_name, base_station)
