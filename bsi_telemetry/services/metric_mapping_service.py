from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func, or_, select
from sqlalchemy.orm import Session

from bsi_telemetry.db.models import (
    ANALOG_COLUMNS,
    DIGITAL_COLUMNS,
    OUTPUT_COLUMNS,
    VALUE_COLUMNS,
    MetricMapping,
    MetricMappingAudit,
    Sample,
)
from bsi_telemetry.services.activity_service import ActivityService
from bsi_telemetry.services.exceptions import Conflict, NotFound, ValidationFailed

logger = logging.getLogger(__name__)

MUTABLE_FIELDS = ("metric_name", "column_name", "unit", "display_order")


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _order(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationFailed("display_order must be an integer") from e


def _check_column(column_name: str) -> str:
    if column_name not in VALUE_COLUMNS:
        raise ValidationFailed(f"Unknown column '{column_name}'; must be one of the node_status_table value columns")
    return column_name


class MetricMappingService:
    """Per node/base station metric-name to value-column bindings.

    Every create/update/delete writes the mapping change, one audit row and
    one activity row in a single transaction.
    """

    def __init__(self, activity: ActivityService) -> None:
        self._activity = activity

    # ---- reads ----

    @staticmethod
    def columns() -> Dict[str, List[str]]:
        return {
            "analog": list(ANALOG_COLUMNS),
            "digital": list(DIGITAL_COLUMNS),
            "output": list(OUTPUT_COLUMNS),
            "all": list(VALUE_COLUMNS),
        }

    def list_mappings(
        self,
        db: Session,
        *,
        node_name: Optional[str] = None,
        base_station_name: Optional[str] = None,
        include_inactive: bool = False,
    ) -> List[MetricMapping]:
        q = db.query(MetricMapping)
        if not include_inactive:
            q = q.filter(MetricMapping.is_active == True)  # noqa: E712
        if node_name:
            q = q.filter(MetricMapping.node_name == node_name)
        if base_station_name:
            q = q.filter(MetricMapping.base_station_name == base_station_name)
        return q.order_by(
            MetricMapping.node_name,
            MetricMapping.base_station_name,
            MetricMapping.display_order,
            MetricMapping.id,
        ).all()

    def active_for(self, db: Session, node_name: str, base_station_name: str) -> List[MetricMapping]:
        """Active mappings of one stream in display order."""
        return (
            db.query(MetricMapping)
            .filter(
                MetricMapping.node_name == node_name,
                MetricMapping.base_station_name == base_station_name,
                MetricMapping.is_active == True,  # noqa: E712
            )
            .order_by(MetricMapping.display_order, MetricMapping.metric_name)
            .all()
        )

    def node_pairs(self, db: Session) -> List[Dict[str, Any]]:
        pairs = db.execute(
            select(Sample.NodeName, Sample.NodeBaseStationName)
            .distinct()
            .order_by(Sample.NodeName, Sample.NodeBaseStationName)
        ).all()
        mapped = {
            (n, bs)
            for n, bs in db.execute(
                select(MetricMapping.node_name, MetricMapping.base_station_name)
                .where(MetricMapping.is_active == True)  # noqa: E712
                .distinct()
            ).all()
        }
        return [
            {"node_name": n, "base_station_name": bs, "has_mappings": (n, bs) in mapped}
            for n, bs in pairs
        ]

    def unmapped(self, db: Session) -> List[Dict[str, Any]]:
        """Sample streams with no active mapping, busiest first."""
        has_mapping = (
            select(MetricMapping.id)
            .where(
                MetricMapping.node_name == Sample.NodeName,
                MetricMapping.base_station_name == Sample.NodeBaseStationName,
                MetricMapping.is_active == True,  # noqa: E712
            )
            .exists()
        )
        data_points = func.count(func.distinct(Sample.time)).label("data_points")
        rows = db.execute(
            select(Sample.NodeName, Sample.NodeBaseStationName, data_points)
            .where(~has_mapping)
            .group_by(Sample.NodeName, Sample.NodeBaseStationName)
            .order_by(desc("data_points"), Sample.NodeName, Sample.NodeBaseStationName)
        ).all()
        return [
            {"node_name": n, "base_station_name": bs, "data_points": int(dp or 0)}
            for n, bs, dp in rows
        ]

    def audit_history(self, db: Session, mapping_id: int) -> List[MetricMappingAudit]:
        if db.get(MetricMapping, int(mapping_id)) is None:
            raise NotFound("Metric mapping not found")
        return (
            db.query(MetricMappingAudit)
            .filter(MetricMappingAudit.mapping_id == int(mapping_id))
            .order_by(MetricMappingAudit.changed_at.desc(), MetricMappingAudit.id.desc())
            .all()
        )

    # ---- writes ----

    def _get_active(self, db: Session, mapping_id: int) -> MetricMapping:
        m = (
            db.query(MetricMapping)
            .filter(MetricMapping.id == int(mapping_id), MetricMapping.is_active == True)  # noqa: E712
            .one_or_none()
        )
        if m is None:
            raise NotFound("Metric mapping not found")
        return m

    def _ensure_unique(
        self,
        db: Session,
        *,
        node_name: str,
        base_station_name: str,
        metric_name: str,
        column_name: str,
        exclude_id: Optional[int] = None,
    ) -> None:
        q = db.query(MetricMapping.id).filter(
            MetricMapping.node_name == node_name,
            MetricMapping.base_station_name == base_station_name,
            MetricMapping.is_active == True,  # noqa: E712
            or_(MetricMapping.column_name == column_name, MetricMapping.metric_name == metric_name),
        )
        if exclude_id is not None:
            q = q.filter(MetricMapping.id != int(exclude_id))
        if q.first() is not None:
            logger.warning(
                "Duplicate mapping rejected node=%s base_station=%s metric=%s column=%s",
                node_name,
                base_station_name,
                metric_name,
                column_name,
            )
            raise Conflict("Mapping already exists for this column or metric name", code="DUPLICATE_MAPPING")

    def _audit(
        self,
        db: Session,
        m: MetricMapping,
        *,
        action: str,
        actor_id: int,
        client_ip: Optional[str],
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
    ) -> None:
        db.add(
            MetricMappingAudit(
                mapping_id=m.id,
                node_name=m.node_name,
                base_station_name=m.base_station_name,
                metric_name=m.metric_name,
                column_name=m.column_name,
                unit=m.unit,
                action=action,
                changed_by=actor_id,
                old_values=old_values,
                new_values=new_values,
                ip_address=client_ip,
            )
        )

    def create(
        self,
        db: Session,
        *,
        actor_id: int,
        client_ip: Optional[str],
        payload: Dict[str, Any],
    ) -> MetricMapping:
        node_name = _text(payload.get("node_name"))
        base_station_name = _text(payload.get("base_station_name"))
        metric_name = _text(payload.get("metric_name"))
        column_name = _text(payload.get("column_name"))
        if not (node_name and base_station_name and metric_name and column_name):
            raise ValidationFailed("Missing required fields")
        _check_column(column_name)
        unit = _text(payload.get("unit"))
        display_order = _order(payload.get("display_order"))

        self._ensure_unique(
            db,
            node_name=node_name,
            base_station_name=base_station_name,
            metric_name=metric_name,
            column_name=column_name,
        )

        m = MetricMapping(
            node_name=node_name,
            base_station_name=base_station_name,
            metric_name=metric_name,
            column_name=column_name,
            unit=unit,
            display_order=display_order,
            is_active=True,
            created_by=actor_id,
        )
        try:
            db.add(m)
            db.flush()
            self._audit(
                db,
                m,
                action="CREATE",
                actor_id=actor_id,
                client_ip=client_ip,
                new_values={k: getattr(m, k) for k in MUTABLE_FIELDS},
            )
            self._activity.record(
                db,
                action="CREATE",
                user_id=actor_id,
                client_ip=client_ip,
                resource="metric_mapping",
                details={
                    "mappingId": m.id,
                    "summary": f"Created mapping: {metric_name} -> {column_name} for {node_name}/{base_station_name}",
                },
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(m)
        return m

    def update(
        self,
        db: Session,
        *,
        actor_id: int,
        client_ip: Optional[str],
        mapping_id: int,
        payload: Dict[str, Any],
    ) -> MetricMapping:
        m = self._get_active(db, mapping_id)
        old = m.snapshot()

        metric_name = _text(payload["metric_name"]) if "metric_name" in payload else m.metric_name
        column_name = _text(payload["column_name"]) if "column_name" in payload else m.column_name
        if not metric_name or not column_name:
            raise ValidationFailed("metric_name and column_name must not be empty")
        _check_column(column_name)
        unit = _text(payload["unit"]) if "unit" in payload else m.unit
        display_order = _order(payload["display_order"]) if "display_order" in payload else m.display_order

        self._ensure_unique(
            db,
            node_name=m.node_name,
            base_station_name=m.base_station_name,
            metric_name=metric_name,
            column_name=column_name,
            exclude_id=m.id,
        )

        try:
            m.metric_name = metric_name
            m.column_name = column_name
            m.unit = unit
            m.display_order = display_order
            db.add(m)
            db.flush()
            self._audit(
                db,
                m,
                action="UPDATE",
                actor_id=actor_id,
                client_ip=client_ip,
                old_values=old,
                new_values={k: getattr(m, k) for k in MUTABLE_FIELDS},
            )
            self._activity.record(
                db,
                action="UPDATE",
                user_id=actor_id,
                client_ip=client_ip,
                resource="metric_mapping",
                details={
                    "mappingId": m.id,
                    "summary": f"Updated mapping: {metric_name} for {m.node_name}/{m.base_station_name}",
                },
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(m)
        return m

    def delete(self, db: Session, *, actor_id: int, client_ip: Optional[str], mapping_id: int) -> None:
        m = self._get_active(db, mapping_id)
        old = m.snapshot()
        try:
            m.is_active = False
            db.add(m)
            db.flush()
            self._audit(db, m, action="DELETE", actor_id=actor_id, client_ip=client_ip, old_values=old)
            self._activity.record(
                db,
                action="DELETE",
                user_id=actor_id,
                client_ip=client_ip,
                resource="metric_mapping",
                details={
                    "mappingId": m.id,
                    "summary": f"Deleted mapping: {m.metric_name} for {m.node_name}/{m.base_station_name}",
                },
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
