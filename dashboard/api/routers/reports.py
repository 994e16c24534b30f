"""
Sales Pulse Hub — Reports Router
===================================
Rendered daily reports.

Endpoints:
  POST /api/reports/generate  - Render a template for a day and owner selection
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from dashboard.api.deps import get_hubspot, get_store, get_tz, http_error
from models.pulse_models import ReportRequest
from scripts.lib.logger import setup_logger
from scripts.pulse.reports import generate_report

logger = setup_logger("reports_router")

router = APIRouter(prefix="/api/reports", tags=["reports"])


@router.post("/generate")
async def generate(
    body: ReportRequest,
    hubspot=Depends(get_hubspot),
    store=Depends(get_store),
    tz=Depends(get_tz),
):
    try:
        report = await generate_report(hubspot, store, body, tz)
        return {
            "id": report.id,
            "markdown": report.content,
            "plain_text": report.plain_text,
            "date": report.report_date,
            "persisted": report.persisted,
        }
    except Exception as e:
        raise http_error(e, "generate report")
