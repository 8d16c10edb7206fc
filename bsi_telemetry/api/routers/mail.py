from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from starlette.concurrency import run_in_threadpool

from bsi_telemetry.api.deps import get_rate_limiter, get_report_mailer, get_settings, require_policy
from bsi_telemetry.api.errors import ApiError
from bsi_telemetry.api.security import Principal, client_ip
from bsi_telemetry.core.settings import Settings
from bsi_telemetry.services.rate_limiter import RateLimiter
from bsi_telemetry.services.report_mailer import PDF_CONTENT_TYPE, ReportMailer, parse_recipients

router = APIRouter(prefix="/api", tags=["reports"])


@router.post("/send-report")
async def send_report(
    request: Request,
    recipients: Optional[str] = Form(None),
    subject: Optional[str] = Form(None),
    message: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    mailer: ReportMailer = Depends(get_report_mailer),
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
    _principal: Principal = Depends(require_policy("send", "reports")),
):
    lim = limiter.hit(
        f"send_report:{client_ip(request)}",
        limit=settings.report_email_rate_limit,
        window_s=settings.login_rate_window_s,
    )
    if not lim.allowed:
        raise ApiError(
            429,
            "Too many email requests from this IP, please try again later",
            "RATE_LIMITED",
            headers={"Retry-After": str(lim.retry_after)},
        )

    to = parse_recipients(recipients)
    if file is None:
        raise ApiError(400, "No file uploaded", "VALIDATION_ERROR")
    if (file.content_type or "").split(";")[0].strip().lower() != PDF_CONTENT_TYPE:
        raise ApiError(400, "Invalid file type. Only PDF files are allowed.", "VALIDATION_ERROR")

    content = await file.read()
    if len(content) > settings.report_email_max_bytes:
        raise ApiError(413, "Attachment too large", "PAYLOAD_TOO_LARGE")

    message_id = await run_in_threadpool(
        mailer.send,
        recipients=to,
        filename=file.filename or "report.pdf",
        content=content,
        subject=subject,
        body=message,
    )
    return {"success": True, "message": "Email sent successfully", "messageId": message_id}
