"""
Report lifecycle: creation, status transitions, upvotes and deletion.

All writes to a report's status, history and upvote set go through this
module. Every operation takes the acting identity explicitly.
"""
from typing import Any, Dict, FrozenSet, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from civic_reporter.core.config import settings
from civic_reporter.core.errors import AuthorizationError, NotFoundError, ValidationError
from civic_reporter.core.logging import get_logger
from civic_reporter.crud import report as crud
from civic_reporter.models import Report, ReportCategory, ReportSeverity, ReportStatus
from civic_reporter.schemas.report import Location
from civic_reporter.services.actor import Actor
from civic_reporter.services.geo import validate_coordinates
from civic_reporter.services.media import MediaStore, StoredMedia

logger = get_logger("civic_reporter.lifecycle")

INITIAL_HISTORY_NOTES = "Report submitted"

# Allowed targets per current status when strict transitions are enabled
TRANSITIONS: Dict[ReportStatus, FrozenSet[ReportStatus]] = {
    ReportStatus.REPORTED: frozenset({
        ReportStatus.ACKNOWLEDGED, ReportStatus.IN_PROGRESS, ReportStatus.RESOLVED,
        ReportStatus.CLOSED, ReportStatus.REJECTED,
    }),
    ReportStatus.ACKNOWLEDGED: frozenset({
        ReportStatus.IN_PROGRESS, ReportStatus.RESOLVED, ReportStatus.CLOSED, ReportStatus.REJECTED,
    }),
    ReportStatus.IN_PROGRESS: frozenset({
        ReportStatus.RESOLVED, ReportStatus.CLOSED, ReportStatus.REJECTED,
    }),
    ReportStatus.RESOLVED: frozenset({ReportStatus.CLOSED}),
    ReportStatus.CLOSED: frozenset(),
    ReportStatus.REJECTED: frozenset(),
}


def coerce_enum(enum_cls, value: Any, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {label} '{value}'. Allowed values: {allowed}")


def parse_status(value: Any) -> ReportStatus:
    return coerce_enum(ReportStatus, value, "status")


def is_transition_allowed(current: ReportStatus, target: ReportStatus) -> bool:
    if not settings.STRICT_STATUS_TRANSITIONS:
        return True
    return target in TRANSITIONS[current]


async def _load(db: AsyncSession, report_id: int) -> Report:
    report = await crud.get_report(db, report_id)
    if not report:
        raise NotFoundError("Report not found")
    return report


async def create_report(
    db: AsyncSession,
    actor: Optional[Actor],
    *,
    title: Optional[str],
    description: Optional[str],
    category: Any,
    severity: Any = ReportSeverity.MEDIUM,
    location: Optional[Location],
    media: Sequence[StoredMedia] = (),
) -> Report:
    """
    Create a report owned by ``actor`` with status ``reported``.

    The report starts with one history entry recording the submission. Media
    must already be stored; only their records are attached here.
    """
    if actor is None:
        raise AuthorizationError("Login required to submit a report")

    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required")
    if len(title) > 200:
        raise ValidationError("Title must be at most 200 characters")
    if location is None:
        raise ValidationError("Location is required")
    validate_coordinates(location.lat, location.lng)

    category = coerce_enum(ReportCategory, category, "category")
    severity = coerce_enum(ReportSeverity, severity or ReportSeverity.MEDIUM, "severity")

    report = await crud.create_report(
        db,
        user_id=actor.id,
        title=title,
        description=(description or "").strip(),
        category=category,
        severity=severity,
        location_lat=location.lat,
        location_lng=location.lng,
        location_address=(location.address or "").strip(),
        media=[item.as_dict() for item in media],
        initial_notes=INITIAL_HISTORY_NOTES,
    )
    logger.info(
        f"Report created: report_id={report.id}, user_id={actor.id}, "
        f"category={category.value}, severity={severity.value}, media={len(media)}"
    )
    return report


async def transition_status(
    db: AsyncSession,
    actor: Optional[Actor],
    report_id: int,
    new_status: Any,
    notes: Optional[str] = "",
) -> Report:
    """
    Move a report to ``new_status`` and record the change in its history.

    Admin only. Rejection requires notes. The status update and the history
    entry are committed together.
    """
    if actor is None or not actor.is_admin:
        raise AuthorizationError("Admin access required")

    new_status = parse_status(new_status)
    notes = (notes or "").strip()
    report = await _load(db, report_id)

    if new_status == ReportStatus.REJECTED and not notes:
        raise ValidationError("A reason is required for rejection")
    if not is_transition_allowed(report.status, new_status):
        raise ValidationError(
            f"Cannot change status from '{report.status.value}' to '{new_status.value}'"
        )

    previous = report.status
    report = await crud.apply_status_change(
        db, report, status=new_status, notes=notes, updated_by_id=actor.id
    )
    logger.info(
        f"Report status changed: report_id={report_id}, {previous.value} -> {new_status.value}, "
        f"admin_id={actor.id}"
    )
    return report


async def reject_report(
    db: AsyncSession, actor: Optional[Actor], report_id: int, reason: Optional[str]
) -> Report:
    if actor is None or not actor.is_admin:
        raise AuthorizationError("Admin access required")
    if not (reason or "").strip():
        raise ValidationError("Rejection reason is required")
    return await transition_status(db, actor, report_id, ReportStatus.REJECTED, reason)


async def toggle_upvote(
    db: AsyncSession, actor: Optional[Actor], report_id: int
) -> Tuple[int, bool]:
    """
    Add the actor's upvote if absent, remove it if present.
    Returns the new upvote count and whether the actor now upvotes the report.
    """
    if actor is None:
        raise AuthorizationError("Login required to upvote")
    await _load(db, report_id)

    count, has_upvoted = await crud.toggle_upvote(db, report_id=report_id, user_id=actor.id)
    logger.info(
        f"Upvote toggled: report_id={report_id}, user_id={actor.id}, "
        f"has_upvoted={has_upvoted}, upvotes={count}"
    )
    return count, has_upvoted


async def delete_report(
    db: AsyncSession, actor: Optional[Actor], report_id: int, media_store: Optional[MediaStore] = None
) -> Report:
    """
    Delete a report as its owner or an admin. Stored media are removed
    afterwards on a best-effort basis.
    """
    if actor is None:
        raise AuthorizationError("Login required")
    report = await _load(db, report_id)
    if report.user_id != actor.id and not actor.is_admin:
        logger.warning(f"Delete refused: report_id={report_id}, user_id={actor.id}")
        raise AuthorizationError("Not authorized to delete this report")

    media_keys = [item.storage_key for item in report.media]
    report = await crud.delete_report(db, report)
    logger.info(f"Report deleted: report_id={report_id}, by_user_id={actor.id}")

    if media_store is not None and media_keys:
        await media_store.delete_many(media_keys)
    return report
