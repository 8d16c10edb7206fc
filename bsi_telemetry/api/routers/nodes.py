from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bsi_telemetry.api.deps import (
    get_access_control_service,
    get_basestation_directory,
    get_db,
    require_policy,
)
from bsi_telemetry.api.security import Principal
from bsi_telemetry.services.access_control_service import AccessControlService
from bsi_telemetry.services.basestation_directory import BaseStationDirectory

router = APIRouter(prefix="/api", tags=["nodes"])


@router.get("/nodes")
def list_nodes(
    db: Session = Depends(get_db),
    ac: AccessControlService = Depends(get_access_control_service),
    principal: Principal = Depends(require_policy("read", "nodes")),
):
    return [{"id": n, "name": n} for n in ac.visible_nodes(db, principal.user)]


@router.get("/basestations/{node_name}")
def list_base_stations(
    node_name: str,
    db: Session = Depends(get_db),
    ac: AccessControlService = Depends(get_access_control_service),
    principal: Principal = Depends(require_policy("read", "nodes")),
):
    ac.ensure_visible(db, principal.user, node_name)
    return [{"id": bs, "name": bs} for bs in ac.visible_base_stations(db, principal.user, node_name)]


@router.get("/basestations-map")
def base_station_map(
    db: Session = Depends(get_db),
    ac: AccessControlService = Depends(get_access_control_service),
    directory: BaseStationDirectory = Depends(get_basestation_directory),
    principal: Principal = Depends(require_policy("read", "nodes")),
):
    names = set()
    for node in ac.visible_nodes(db, principal.user):
        names.update(bs for bs in ac.visible_base_stations(db, principal.user, node) if bs and bs.strip())
    return directory.locate(sorted(names))
