"""Reporter-facing incident report endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from safereport.api.deps import get_current_user, get_services
from safereport.models import (
    Category,
    Priority,
    ReportEdit,
    ReportQuery,
    ReportStatus,
    ReportSubmission,
    User,
    as_utc,
)
from safereport.services import Services

router = APIRouter(prefix="/api/v1", tags=["reports"])


def report_filters(
    category: Optional[Category] = Query(None),
    status: Optional[ReportStatus] = Query(None),
    priority: Optional[Priority] = Query(None),
    start_date: Optional[datetime] = Query(None, description="Created at or after"),
    end_date: Optional[datetime] = Query(None, description="Created at or before"),
) -> ReportQuery:
    return ReportQuery(
        category=category,
        status=status,
        priority=priority,
        created_after=as_utc(start_date),
        created_before=as_utc(end_date),
    )


def page(reports, total: int, skip: int, limit: int) -> dict:
    return {
        "reports": [r.model_dump(mode="json") for r in reports],
        "total": total,
        "skip": skip,
        "limit": limit,
    }


@router.post("/reports", status_code=201)
async def submit_report(
    body: ReportSubmission,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Submit an incident report. Classification runs inline but never blocks."""
    report = await services.reports.submit(body, user)
    return {"report": report.model_dump(mode="json", exclude={"private_notes"})}


@router.get("/reports")
async def list_my_reports(
    query: ReportQuery = Depends(report_filters),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    reports, total = await services.reports.list(user, query, skip=skip, limit=limit)
    return page(reports, total, skip, limit)


@router.get("/reports/heatmap/data")
async def heatmap_data(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    categories: Optional[str] = Query(None, description="Comma-separated categories"),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Incident locations for the campus heatmap, last 30 days by default."""
    return {"heatmap_data": await services.reports.heatmap(user, start_date, end_date, categories)}


@router.get("/reports/{report_id}")
async def get_report(
    report_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    report = await services.reports.get(report_id, user)
    return {"report": report.model_dump(mode="json")}


@router.put("/reports/{report_id}")
async def edit_report(
    report_id: str,
    body: ReportEdit,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Reporter edit. Attachments are kept as they were."""
    report = await services.reports.edit(report_id, user, body)
    return {"report": report.model_dump(mode="json")}
