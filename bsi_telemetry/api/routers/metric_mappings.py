from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from bsi_telemetry.api.deps import get_db, get_metric_mapping_service, require_policy
from bsi_telemetry.api.security import Principal, client_ip
from bsi_telemetry.services.mappers import audit_out, mapping_out
from bsi_telemetry.services.metric_mapping_service import MetricMappingService

router = APIRouter(prefix="/api/metric-mappings", tags=["metric-mappings"])


class MappingCreate(BaseModel):
    node_name: Optional[str] = None
    base_station_name: Optional[str] = None
    metric_name: Optional[str] = None
    column_name: Optional[str] = None
    unit: Optional[str] = None
    display_order: Optional[Any] = None


class MappingUpdate(BaseModel):
    metric_name: Optional[str] = None
    column_name: Optional[str] = None
    unit: Optional[str] = None
    display_order: Optional[Any] = None


@router.get("/columns")
def list_columns(
    svc: MetricMappingService = Depends(get_metric_mapping_service),
    _principal: Principal = Depends(require_policy("list", "metric_mappings")),
):
    return svc.columns()


@router.get("/nodes")
def list_mapping_nodes(
    db: Session = Depends(get_db),
    svc: MetricMappingService = Depends(get_metric_mapping_service),
    _principal: Principal = Depends(require_policy("list", "metric_mappings")),
):
    return svc.node_pairs(db)


@router.get("/unmapped")
def list_unmapped(
    db: Session = Depends(get_db),
    svc: MetricMappingService = Depends(get_metric_mapping_service),
    _principal: Principal = Depends(require_policy("list", "unmapped_nodes")),
):
    nodes = svc.unmapped(db)
    return {"count": len(nodes), "nodes": nodes}


@router.get("/audit/{mapping_id}")
def mapping_audit(
    mapping_id: int,
    db: Session = Depends(get_db),
    svc: MetricMappingService = Depends(get_metric_mapping_service),
    _principal: Principal = Depends(require_policy("read", "metric_mapping_audit")),
):
    return [audit_out(a) for a in svc.audit_history(db, mapping_id)]


@router.get("")
def list_mappings(
    node_name: Optional[str] = Query(None, max_length=150),
    base_station_name: Optional[str] = Query(None, max_length=150),
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    svc: MetricMappingService = Depends(get_metric_mapping_service),
    _principal: Principal = Depends(require_policy("list", "metric_mappings")),
):
    rows = svc.list_mappings(
        db,
        node_name=node_name,
        base_station_name=base_station_name,
        include_inactive=include_inactive,
    )
    return [mapping_out(m) for m in rows]


@router.post("", status_code=201)
def create_mapping(
    req: MappingCreate,
    request: Request,
    db: Session = Depends(get_db),
    svc: MetricMappingService = Depends(get_metric_mapping_service),
    principal: Principal = Depends(require_policy("create", "metric_mappings")),
):
    m = svc.create(db, actor_id=principal.user_id, client_ip=client_ip(request), payload=req.model_dump())
    return {"success": True, "message": "Metric mapping created successfully", "id": m.id}


@router.put("/{mapping_id}")
def update_mapping(
    mapping_id: int,
    req: MappingUpdate,
    request: Request,
    db: Session = Depends(get_db),
    svc: MetricMappingService = Depends(get_metric_mapping_service),
    principal: Principal = Depends(require_policy("update", "metric_mappings")),
):
    m = svc.update(
        db,
        actor_id=principal.user_id,
        client_ip=client_ip(request),
        mapping_id=mapping_id,
        payload=req.model_dump(exclude_unset=True),
    )
    return {"success": True, "message": "Metric mapping updated successfully", "mapping": mapping_out(m)}


@router.delete("/{mapping_id}")
def delete_mapping(
    mapping_id: int,
    request: Request,
    db: Session = Depends(get_db),
    svc: MetricMappingService = Depends(get_metric_mapping_service),
    principal: Principal = Depends(require_policy("delete", "metric_mappings")),
):
    svc.delete(db, actor_id=principal.user_id, client_ip=client_ip(request), mapping_id=mapping_id)
    return {"success": True, "message": "Metric mapping deleted successfully"}
