from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from bsi_telemetry.api.deps import (
    get_access_control_service,
    get_db,
    get_metric_mapping_service,
    get_telemetry_service,
    require_policy,
)
from bsi_telemetry.api.security import Principal
from bsi_telemetry.services.access_control_service import AccessControlService
from bsi_telemetry.services.mappers import iso
from bsi_telemetry.services.metric_mapping_service import MetricMappingService
from bsi_telemetry.services.telemetry_service import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, TelemetryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["telemetry"])


@router.get("/telemetry/{node_name}/{base_station}")
def get_telemetry(
    node_name: str,
    base_station: str,
    response: Response,
    time_filter: str = Query("1h", alias="timeFilter"),
    aggregate: str = Query("auto", pattern="^(auto|raw|bucket)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, alias="pageSize", ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    ac: AccessControlService = Depends(get_access_control_service),
    svc: TelemetryService = Depends(get_telemetry_service),
    principal: Principal = Depends(require_policy("read", "telemetry")),
):
    ac.ensure_visible(db, principal.user, node_name, base_station)

    started = time.perf_counter()
    result = svc.query(
        db,
        node_name=node_name,
        base_station=base_station,
        time_filter=time_filter,
        aggregate=aggregate,
        page=page,
        page_size=page_size,
    )
    elapsed_ms = (time.perf_counter() - started) * 1000.0
    logger.info(
        "Telemetry %s/%s filter=%s total=%d page=%d in %.1fms",
        node_name,
        base_station,
        result["time_filter"],
        result["total"],
        page,
        elapsed_ms,
    )

    response.headers["X-Response-Time"] = f"{elapsed_ms:.0f}ms"
    response.headers["X-Total-Records"] = str(result["total"])
    response.headers["X-Page"] = str(result["page"])
    response.headers["X-Page-Size"] = str(result["page_size"])
    response.headers["X-Total-Pages"] = str(result["total_pages"])
    return result


@router.get("/telemetry-mappings/{node_name}/{base_station}")
def get_telemetry_mappings(
    node_name: str,
    base_station: str,
    db: Session = Depends(get_db),
    ac: AccessControlService = Depends(get_access_control_service),
    svc: MetricMappingService = Depends(get_metric_mapping_service),
    principal: Principal = Depends(require_policy("read", "telemetry_mappings")),
):
    ac.ensure_visible(db, principal.user, node_name, base_station)
    mappings = svc.active_for(db, node_name, base_station)
    if not mappings:
        return {
            "hasMappings": False,
            "mappings": [],
            "message": "No metric mappings configured for this node/base station.",
        }
    return {
        "hasMappings": True,
        "mappings": [
            {
                "id": m.id,
                "metric_name": m.metric_name,
                "column_name": m.column_name,
                "unit": m.unit,
                "display_order": m.display_order,
                "updated_at": iso(m.updated_at),
            }
            for m in mappings
        ],
        "message": "Custom metric mappings loaded successfully.",
    }
