"""Admin triage and moderator review endpoints."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from safereport.api.deps import get_current_user, get_services
from safereport.api.reports import page, report_filters
from safereport.models import AdminRequestStatus, ReportQuery, User
from safereport.policy import Capability, require
from safereport.services import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


class StatusUpdate(BaseModel):
    # Plain str: an unknown status is a business validation error (400), not a schema one.
    status: str


class NoteRequest(BaseModel):
    note: str


class PublicUpdateRequest(BaseModel):
    message: str


class ReviewRequest(BaseModel):
    notes: str = Field("", max_length=1000)


# ---- Reports ----

@router.get("/reports")
async def list_all_reports(
    query: ReportQuery = Depends(report_filters),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    require(user, Capability.MANAGE_REPORTS)
    reports, total = await services.reports.list(user, query, skip=skip, limit=limit)
    return page(reports, total, skip, limit)


@router.patch("/reports/{report_id}/status")
async def set_report_status(
    report_id: str,
    body: StatusUpdate,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    report = await services.reports.set_status(report_id, body.status, user)
    return {"report": report.model_dump(mode="json")}


@router.post("/reports/{report_id}/assign")
async def assign_report(
    report_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Claim a report. Exactly one admin ever wins; everyone else gets 409."""
    report = await services.reports.assign(report_id, user)
    return {"report": report.model_dump(mode="json")}


@router.post("/reports/{report_id}/note")
async def add_private_note(
    report_id: str,
    body: NoteRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    report = await services.reports.add_private_note(report_id, user, body.note)
    return {"report": report.model_dump(mode="json")}


@router.post("/reports/{report_id}/update")
async def add_public_update(
    report_id: str,
    body: PublicUpdateRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    report = await services.reports.add_public_update(report_id, user, body.message)
    return {"report": report.model_dump(mode="json")}


@router.get("/stats")
async def dashboard_stats(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return {"stats": await services.reports.stats(user)}


@router.get("/dashboard")
async def dashboard(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    data = await services.reports.dashboard(user, start_date, end_date)
    data["recent_reports"] = [r.model_dump(mode="json") for r in data["recent_reports"]]
    return {"dashboard": data}


@router.get("/analytics")
async def analytics(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return {"analytics": await services.reports.analytics(user, start_date, end_date)}


@router.get("/users")
async def user_stats(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return {"users": await services.reports.user_overview(user)}


# ---- Admin requests (moderators) ----

@router.get("/requests")
async def list_admin_requests(
    status: Optional[AdminRequestStatus] = Query(None),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    pairs = await services.admin_requests.list(user, status)
    return {
        "requests": [
            {
                **request.model_dump(mode="json"),
                "requester": {
                    "email": requester.email if requester else None,
                    "anonymous_id": requester.anonymous_id if requester else None,
                },
            }
            for request, requester in pairs
        ]
    }


@router.post("/requests/{request_id}/approve")
async def approve_admin_request(
    request_id: str,
    body: Optional[ReviewRequest] = None,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Approve and promote the requester to admin."""
    request = await services.admin_requests.approve(request_id, user, body.notes if body else "")
    return {"request": request.model_dump(mode="json")}


@router.post("/requests/{request_id}/reject")
async def reject_admin_request(
    request_id: str,
    body: Optional[ReviewRequest] = None,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    request = await services.admin_requests.reject(request_id, user, body.notes if body else "")
    return {"request": request.model_dump(mode="json")}
