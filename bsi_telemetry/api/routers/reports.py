from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, Query, Request
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from bsi_telemetry.api.deps import get_access_control_service, get_db, get_report_service, require_policy
from bsi_telemetry.api.security import Principal
from bsi_telemetry.services.access_control_service import AccessControlService
from bsi_telemetry.services.report_service import ReportService

TEMPLATES_DIR = Path(__file__).resolve().parents[2] / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

router = APIRouter(prefix="/api/reports", tags=["reports"])


@router.get("/{node_name}")
def node_report(
    request: Request,
    node_name: str,
    time_filter: str = Query("1d", alias="timeFilter"),
    fmt: str = Query("json", alias="format", pattern="^(json|html)$"),
    db: Session = Depends(get_db),
    ac: AccessControlService = Depends(get_access_control_service),
    svc: ReportService = Depends(get_report_service),
    principal: Principal = Depends(require_policy("read", "reports")),
):
    ac.ensure_visible(db, principal.user, node_name)
    report = svc.build(db, user=principal.user, node_name=node_name, time_filter=time_filter)

    if fmt == "html":
        return templates.TemplateResponse(request, "report.html", svc.html_context(report))
    return {"success": True, "report": report}
