from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Optional

from bsi_telemetry.db.models import ActivityLog, MetricMapping, MetricMappingAudit, NodeAssignment, User


def as_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    # SQLite hands back naive datetimes; everything stored here is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def iso(value: Optional[dt.datetime]) -> Optional[str]:
    value = as_utc(value)
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


def user_out(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "isActive": bool(user.is_active),
        "accessAllNodes": bool(user.access_all_nodes),
        "createdAt": iso(user.created_at),
        "updatedAt": iso(user.updated_at),
        "lastLogin": iso(user.last_login),
    }


def session_user_out(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "firstName": user.first_name,
        "lastName": user.last_name,
    }


def assignment_out(a: NodeAssignment) -> Dict[str, Any]:
    return {
        "id": a.id,
        "userId": a.user_id,
        "nodeName": a.node_name,
        "baseStationName": a.base_station_name,
        "assignedBy": a.assigned_by,
        "assignedByUsername": a.assigner.username if a.assigner else None,
        "assignedAt": iso(a.assigned_at),
        "notes": a.notes,
    }


def mapping_out(m: MetricMapping) -> Dict[str, Any]:
    return {
        "id": m.id,
        "node_name": m.node_name,
        "base_station_name": m.base_station_name,
        "metric_name": m.metric_name,
        "column_name": m.column_name,
        "unit": m.unit,
        "display_order": m.display_order,
        "is_active": bool(m.is_active),
        "created_by": m.created_by,
        "created_by_username": m.creator.username if m.creator else None,
        "created_at": iso(m.created_at),
        "updated_at": iso(m.updated_at),
    }


def audit_out(a: MetricMappingAudit) -> Dict[str, Any]:
    return {
        "id": a.id,
        "mapping_id": a.mapping_id,
        "node_name": a.node_name,
        "base_station_name": a.base_station_name,
        "metric_name": a.metric_name,
        "column_name": a.column_name,
        "unit": a.unit,
        "action": a.action,
        "changed_by": a.changed_by,
        "changed_by_username": a.changed_by_user.username if a.changed_by_user else None,
        "changed_at": iso(a.changed_at),
        "old_values": a.old_values,
        "new_values": a.new_values,
        "ip_address": a.ip_address,
    }


def activity_out(log: ActivityLog) -> Dict[str, Any]:
    return {
        "id": log.id,
        "userId": log.user_id,
        "username": log.user.username if log.user else None,
        "action": log.action,
        "resource": log.resource,
        "details": log.details,
        "ipAddress": log.ip_address,
        "createdAt": iso(log.created_at),
    }
