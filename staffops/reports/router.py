"""Reports router — thin HTTP surface over the report composer.

Every report type shares one endpoint; the per-staff report also has its own
path with the staff id in the URL. ``format`` selects json, pdf or excel.
"""

import uuid

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, Response

from staffops.auth.dependencies import get_caller_scope
from staffops.common.constants import ReportFormat, ReportType
from staffops.common.rate_limit import limiter
from staffops.config import settings
from staffops.dependencies import get_report_composer
from staffops.reports.renderers import render
from staffops.reports.schemas import CallerScope, Report
from staffops.reports.service import ReportComposer

router = APIRouter()


def _respond(report: Report, fmt: ReportFormat) -> Response:
    output = render(report, fmt)
    if isinstance(output, Report):
        return JSONResponse(content=output.to_payload())
    return Response(
        content=output.content,
        media_type=output.media_type,
        headers={"Content-Disposition": f'attachment; filename="{output.filename}"'},
    )


# ── GET /staff/{staff_id} ───────────────────────────────────────────

@router.get("/staff/{staff_id}")
@limiter.limit(settings.REPORT_RATE_LIMIT)
async def staff_report(
    request: Request,
    staff_id: uuid.UUID,
    format: ReportFormat = Query(ReportFormat.json, description="json, pdf or excel"),
    scope: CallerScope = Depends(get_caller_scope),
    composer: ReportComposer = Depends(get_report_composer),
):
    """Individual report: profile, attendance, leave, disciplinary and score.
    Staff may only request their own."""
    params = dict(request.query_params)
    params["staffId"] = str(staff_id)
    report = await composer.compose_report(ReportType.staff, params, scope)
    return _respond(report, format)


# ── GET /{report_type} ──────────────────────────────────────────────

@router.get("/{report_type}")
@limiter.limit(settings.REPORT_RATE_LIMIT)
async def generate_report(
    request: Request,
    report_type: ReportType,
    format: ReportFormat = Query(ReportFormat.json, description="json, pdf or excel"),
    scope: CallerScope = Depends(get_caller_scope),
    composer: ReportComposer = Depends(get_report_composer),
):
    """Any report type; filters come from the query string (``startDate``,
    ``endDate``, ``department``, ``staffId``, ``leaveType``,
    ``infractionType``, ``status``, ``period``, ``referenceDate``)."""
    report = await composer.compose_report(report_type, dict(request.query_params), scope)
    return _respond(report, format)
