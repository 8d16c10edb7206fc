from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from bsi_telemetry.api.deps import (
    get_access_control_service,
    get_db,
    get_node_assignment_service,
    require_policy,
)
from bsi_telemetry.api.security import Principal, client_ip
from bsi_telemetry.services.access_control_service import AccessControlService
from bsi_telemetry.services.mappers import assignment_out
from bsi_telemetry.services.node_assignment_service import NodeAssignmentService

router = APIRouter(prefix="/api/node-assignments", tags=["node-assignments"])


class AssignNodesRequest(BaseModel):
    userId: Optional[Any] = None
    nodeNames: Optional[Any] = None
    notes: Optional[str] = None
    baseStationName: Optional[str] = None


class AccessAllRequest(BaseModel):
    accessAllNodes: Optional[Any] = None


@router.get("/user/{user_id}")
def list_user_assignments(
    user_id: int,
    db: Session = Depends(get_db),
    svc: NodeAssignmentService = Depends(get_node_assignment_service),
    _principal: Principal = Depends(require_policy("read", "node_assignments", self_param="user_id")),
):
    return {"success": True, "assignments": [assignment_out(a) for a in svc.list_for_user(db, user_id)]}


@router.get("/available-nodes")
def available_nodes(
    db: Session = Depends(get_db),
    ac: AccessControlService = Depends(get_access_control_service),
    _principal: Principal = Depends(require_policy("list", "available_nodes")),
):
    return {"success": True, "nodes": ac.all_nodes(db)}


@router.post("", status_code=201)
def assign_nodes(
    req: AssignNodesRequest,
    request: Request,
    db: Session = Depends(get_db),
    svc: NodeAssignmentService = Depends(get_node_assignment_service),
    principal: Principal = Depends(require_policy("create", "node_assignments")),
):
    results = svc.assign(
        db,
        actor_id=principal.user_id,
        client_ip=client_ip(request),
        user_id=req.userId,
        node_names=req.nodeNames,
        notes=req.notes,
        base_station_name=req.baseStationName,
    )
    return {"success": True, "message": "Nodes assigned successfully", "assignments": results}


@router.delete("/user/{user_id}/node/{node_name}")
def remove_user_node(
    user_id: int,
    node_name: str,
    request: Request,
    db: Session = Depends(get_db),
    svc: NodeAssignmentService = Depends(get_node_assignment_service),
    principal: Principal = Depends(require_policy("delete", "node_assignments")),
):
    removed = svc.remove_for_node(
        db,
        actor_id=principal.user_id,
        client_ip=client_ip(request),
        user_id=user_id,
        node_name=node_name,
    )
    return {"success": True, "message": "Node assignment removed successfully", "removed": removed}


@router.put("/user/{user_id}/access-all")
def set_access_all(
    user_id: int,
    req: AccessAllRequest,
    request: Request,
    db: Session = Depends(get_db),
    svc: NodeAssignmentService = Depends(get_node_assignment_service),
    principal: Principal = Depends(require_policy("update", "node_access")),
):
    user = svc.set_access_all(
        db,
        actor_id=principal.user_id,
        client_ip=client_ip(request),
        user_id=user_id,
        access_all_nodes=req.accessAllNodes,
    )
    verb = "granted" if user.access_all_nodes else "revoked"
    return {"success": True, "message": f"User {verb} access to all nodes", "accessAllNodes": bool(user.access_all_nodes)}


@router.delete("/{assignment_id}")
def remove_assignment(
    assignment_id: int,
    request: Request,
    db: Session = Depends(get_db),
    svc: NodeAssignmentService = Depends(get_node_assignment_service),
    principal: Principal = Depends(require_policy("delete", "node_assignments")),
):
    svc.remove(db, actor_id=principal.user_id, client_ip=client_ip(request), assignment_id=assignment_id)
    return {"success": True, "message": "Node assignment removed successfully"}
