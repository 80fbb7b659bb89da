"""Report lifecycle: submission, reporter edits, triage and annotations.

Status transitions are deliberately unrestricted. Any privileged actor may
move a report to any status, including back to ``pending``.
"""
from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import replace
from datetime import timedelta, timezone
from typing import Optional

from safereport.errors import AccessDenied, AlreadyAssigned, NotFound, ValidationError
from safereport.models import (
    Category,
    NotificationType,
    Priority,
    PrivateNote,
    PublicUpdate,
    Report,
    ReportEdit,
    ReportQuery,
    ReportStatus,
    ReportSubmission,
    User,
    as_utc,
    parse_input,
    utcnow,
)
from safereport.policy import Capability, is_privileged, require
from safereport.store.base import Store

logger = logging.getLogger(__name__)

MAX_NOTE_CHARS = 1000
RECENT_WINDOW = timedelta(hours=24)
DASHBOARD_WINDOW = timedelta(days=30)
ACTIVE_WINDOW = timedelta(days=7)
RECENT_REPORTS_SHOWN = 10
PRIORITY_WEIGHT = {Priority.LOW: 1, Priority.MEDIUM: 2, Priority.HIGH: 3, Priority.CRITICAL: 4}


def _redact(report: Report) -> Report:
    """What the reporter sees: everything but the private notes."""
    return report.model_copy(update={"private_notes": []})


def _window(start, end) -> ReportQuery:
    """Creation-time window for the dashboards; the last 30 days unless given."""
    end = as_utc(end) or utcnow()
    start = as_utc(start) or end - DASHBOARD_WINDOW
    if start > end:
        raise ValidationError("start_date must not be after end_date")
    return ReportQuery(created_after=start, created_before=end)


def _parse_categories(categories) -> list[Category]:
    """Accepts a list or the comma-separated form used in query strings."""
    if isinstance(categories, str):
        categories = [part.strip() for part in categories.split(",") if part.strip()]
    try:
        return [Category(c) for c in categories or []]
    except ValueError as exc:
        raise ValidationError(f"categories: {exc}") from exc


def _resolution_hours(facts) -> dict:
    hours = [
        (f.updated_at - f.created_at).total_seconds() / 3600
        for f in facts if f.status == ReportStatus.RESOLVED
    ]
    if not hours:
        return {"avg_hours": 0.0, "min_hours": 0.0, "max_hours": 0.0}
    return {
        "avg_hours": round(sum(hours) / len(hours), 2),
        "min_hours": round(min(hours), 2),
        "max_hours": round(max(hours), 2),
    }


def _annotation_text(text: Optional[str], what: str) -> str:
    text = (text or "").strip()
    if not text:
        raise ValidationError(f"{what} is required")
    if len(text) > MAX_NOTE_CHARS:
        raise ValidationError(f"{what} must be at most {MAX_NOTE_CHARS} characters")
    return text


class ReportService:
    def __init__(self, store: Store, classifier=None, notifications=None, hub=None):
        self.store = store
        self.classifier = classifier
        self.notifications = notifications
        self.hub = hub

    async def _load(self, report_id: str) -> Report:
        report = await self.store.get_report(report_id)
        if report is None:
            raise NotFound("Report not found")
        return report

    async def submit(self, data: ReportSubmission | dict, owner: User) -> Report:
        require(owner, Capability.SUBMIT_REPORT)
        submission = parse_input(ReportSubmission, data)
        report = await self.store.create_report(owner.id, submission, is_anonymous=owner.is_anonymous)
        logger.info("Report %s submitted (category=%s)", report.id, report.category.value)

        if self.classifier is not None:
            # Best effort: a failed classification keeps the defaults.
            try:
                result = await self.classifier.classify(report.description)
                updated = await self.store.update_report(
                    report.id,
                    ai_category=result.category,
                    sentiment=result.sentiment,
                    priority=result.priority,
                )
                if updated is not None:
                    report = updated
            except Exception as exc:
                logger.warning("Classification failed for report %s: %s", report.id, exc)
        return report

    async def edit(self, report_id: str, owner: User, data: ReportEdit | dict) -> Report:
        edit = parse_input(ReportEdit, data)
        report = await self._load(report_id)
        if report.reporter_id != owner.id:
            raise AccessDenied("You can only edit your own reports")
        fields = {"title": edit.title, "description": edit.description, "category": edit.category}
        if edit.location is not None:
            fields["location"] = edit.location
        if edit.incident_time is not None:
            fields["incident_time"] = edit.incident_time
        updated = await self.store.update_report(report_id, **fields)
        if updated is None:
            raise NotFound("Report not found")
        return _redact(updated)

    async def set_status(self, report_id: str, status: ReportStatus | str, actor: User) -> Report:
        require(actor, Capability.MANAGE_REPORTS)
        try:
            status = ReportStatus(status)
        except ValueError:
            raise ValidationError("Invalid status") from None
        report = await self.store.update_report(report_id, status=status)
        if report is None:
            raise NotFound("Report not found")
        logger.info("Report %s status -> %s by %s", report_id, status.value, actor.id)

        if self.notifications is not None:
            await self.notifications.fan_out(
                [report.reporter_id],
                NotificationType.STATUS,
                f'Your report "{report.title}" is now {status.value.replace("_", " ")}',
                f"/reports/{report.id}",
            )
        if self.hub is not None:
            await self.hub.publish_report_update(report)
        return report

    async def assign(self, report_id: str, actor: User) -> Report:
        require(actor, Capability.MANAGE_REPORTS)
        report = await self._load(report_id)
        if not await self.store.assign_report(report_id, actor.id):
            # Same actor retrying counts as a conflict too.
            raise AlreadyAssigned(
                "Report is already assigned to you" if report.assigned_to == actor.id
                else "Report is already assigned to another admin"
            )
        logger.info("Report %s assigned to %s", report_id, actor.id)
        return await self._load(report_id)

    async def add_private_note(self, report_id: str, actor: User, text: str) -> Report:
        require(actor, Capability.MANAGE_REPORTS)
        note = PrivateNote(note=_annotation_text(text, "Note"), added_by=actor.id, added_at=utcnow())
        report = await self.store.add_private_note(report_id, note)
        if report is None:
            raise NotFound("Report not found")
        return report

    async def add_public_update(self, report_id: str, actor: User, text: str) -> Report:
        require(actor, Capability.MANAGE_REPORTS)
        update = PublicUpdate(message=_annotation_text(text, "Update message"), added_at=utcnow())
        report = await self.store.add_public_update(report_id, update)
        if report is None:
            raise NotFound("Report not found")
        return report

    async def get(self, report_id: str, viewer: User) -> Report:
        report = await self._load(report_id)
        if is_privileged(viewer):
            return report
        if report.reporter_id != viewer.id:
            raise AccessDenied("You can only view your own reports")
        return _redact(report)

    async def list(
        self,
        viewer: User,
        query: Optional[ReportQuery] = None,
        *,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[list[Report], int]:
        query = query or ReportQuery()
        if skip < 0 or not 1 <= limit <= 100:
            raise ValidationError("skip must be >= 0 and limit between 1 and 100")
        if not is_privileged(viewer):
            query = replace(query, reporter_id=viewer.id)
            reports, total = await self.store.list_reports(query, skip=skip, limit=limit)
            return [_redact(r) for r in reports], total
        return await self.store.list_reports(query, skip=skip, limit=limit)

    async def stats(self, actor: User) -> dict:
        require(actor, Capability.MANAGE_REPORTS)
        counts = await self.store.stats(utcnow() - RECENT_WINDOW)
        rate = round(counts.resolved_reports / counts.total_reports * 100, 1) if counts.total_reports else 0.0
        return {
            "total_users": counts.total_users,
            "total_reports": counts.total_reports,
            "pending_reports": counts.pending_reports,
            "resolved_reports": counts.resolved_reports,
            "recent_reports": counts.recent_reports,
            "active_chats": counts.active_chats,
            "resolution_rate": rate,
        }

    async def dashboard(self, actor: User, start=None, end=None) -> dict:
        """Window totals, category and priority breakdowns, and the newest reports."""
        require(actor, Capability.MANAGE_REPORTS)
        window = _window(start, end)
        breakdown = await self.store.report_breakdown(window)
        recent, _ = await self.store.list_reports(window, limit=RECENT_REPORTS_SHOWN)
        return {
            "start": window.created_after.isoformat(),
            "end": window.created_before.isoformat(),
            "total_reports": breakdown.total,
            "pending_reports": breakdown.pending,
            "resolved_reports": breakdown.resolved,
            "category_stats": [{"category": k, "count": n} for k, n in breakdown.by_category.items()],
            "priority_stats": [{"priority": k, "count": n} for k, n in breakdown.by_priority.items()],
            "recent_reports": recent,
        }

    async def analytics(self, actor: User, start=None, end=None) -> dict:
        require(actor, Capability.MANAGE_REPORTS)
        window = _window(start, end)
        facts = await self.store.report_facts(window)

        daily = Counter(f.created_at.astimezone(timezone.utc).date().isoformat() for f in facts)
        weights: dict[str, list[int]] = defaultdict(list)
        for f in facts:
            weights[f.category.value].append(PRIORITY_WEIGHT[f.priority])
        ranked = sorted(weights.items(), key=lambda kv: (-len(kv[1]), kv[0]))

        return {
            "start": window.created_after.isoformat(),
            "end": window.created_before.isoformat(),
            "daily_trend": [{"date": day, "count": n} for day, n in sorted(daily.items())],
            "category_distribution": [
                {"category": name, "count": len(w), "avg_priority": round(sum(w) / len(w), 2)}
                for name, w in ranked
            ],
            "resolution_time": _resolution_hours(facts),
        }

    async def user_overview(self, actor: User) -> dict:
        require(actor, Capability.MANAGE_REPORTS)
        counts = await self.store.user_counts(utcnow() - ACTIVE_WINDOW)
        return {
            "total": counts.total,
            "active": counts.active,
            "anonymous": counts.anonymous,
            "registered": counts.registered,
        }

    async def heatmap(self, actor: User, start=None, end=None, categories=None) -> list[dict]:
        """Report locations in the window; privileged only since points span every reporter."""
        require(actor, Capability.MANAGE_REPORTS)
        facts = await self.store.report_facts(_window(start, end), _parse_categories(categories))
        return [
            {
                "coordinates": f.coordinates,
                "category": f.category.value,
                "priority": f.priority.value,
                "created_at": f.created_at.isoformat(),
            }
            for f in facts
        ]
