from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from timedesk.errors import ApiError
from timedesk.models import (
    AttendanceRecord,
    Employee,
    ManualAttendanceRequest,
    ManualRequestStatus,
)
from timedesk.security import has_sub_role
from timedesk.services.attendance import get_day_record
from timedesk.services.timeutils import as_utc, combine_local_utc, local_day, normalize_ts, utcnow

OPEN_STATUSES = (ManualRequestStatus.PENDING, ManualRequestStatus.ACKED)


def can_manage_requests(employee: Employee) -> bool:
    return employee.is_admin or has_sub_role(employee, "hr")


def create_manual_request(
    db: Session,
    *,
    employee: Employee,
    day_date: date,
    note: str,
    now_utc: datetime | None = None,
) -> ManualAttendanceRequest:
    now = as_utc(now_utc or utcnow())
    if day_date >= local_day(now):
        raise ApiError(
            status_code=422,
            code="BACKFILL_PAST_DAYS_ONLY",
            message="Manual attendance can only be requested for a past day.",
        )

    existing = db.scalar(
        select(ManualAttendanceRequest).where(
            ManualAttendanceRequest.employee_id == employee.id,
            ManualAttendanceRequest.work_date == day_date,
            ManualAttendanceRequest.status.in_(OPEN_STATUSES),
        )
    )
    if existing is not None:
        raise ApiError(
            status_code=409,
            code="MANUAL_REQUEST_EXISTS",
            message="A manual attendance request for this day is already open.",
            details={"request_id": existing.id},
        )

    request_row = ManualAttendanceRequest(
        employee_id=employee.id,
        work_date=day_date,
        note=(note or "").strip(),
        status=ManualRequestStatus.PENDING,
        requested_at=now,
    )
    db.add(request_row)
    db.commit()
    db.refresh(request_row)
    return request_row


def list_manual_requests(db: Session, *, viewer: Employee) -> list[ManualAttendanceRequest]:
    stmt = select(ManualAttendanceRequest).order_by(
        ManualAttendanceRequest.requested_at.desc(),
        ManualAttendanceRequest.id.desc(),
    )
    if not can_manage_requests(viewer):
        stmt = stmt.where(ManualAttendanceRequest.employee_id == viewer.id)
    return list(db.scalars(stmt).all())


def _load_request(db: Session, request_id: int) -> ManualAttendanceRequest:
    request_row = db.get(ManualAttendanceRequest, request_id)
    if request_row is None:
        raise ApiError(status_code=404, code="MANUAL_REQUEST_NOT_FOUND", message="Manual request not found.")
    return request_row


def update_request_status(
    db: Session,
    *,
    request_id: int,
    status: ManualRequestStatus,
    now_utc: datetime | None = None,
) -> ManualAttendanceRequest:
    if status == ManualRequestStatus.COMPLETED:
        raise ApiError(
            status_code=422,
            code="INVALID_STATUS",
            message="Use the resolve endpoint to complete a request.",
        )
    request_row = _load_request(db, request_id)
    if request_row.status == ManualRequestStatus.COMPLETED:
        raise ApiError(
            status_code=409,
            code="MANUAL_REQUEST_COMPLETED",
            message="Completed requests cannot change status.",
        )

    request_row.status = status
    if status == ManualRequestStatus.ACKED and request_row.acknowledged_at is None:
        request_row.acknowledged_at = as_utc(now_utc or utcnow())
    db.commit()
    db.refresh(request_row)
    return request_row


def resolve_manual_request(
    db: Session,
    *,
    resolver: Employee,
    request_id: int,
    first_punch_in: str,
    last_punch_out: str,
    break_minutes: int | None = None,
    total_minutes: int | None = None,
    admin_note: str | None = None,
    now_utc: datetime | None = None,
) -> ManualAttendanceRequest:
    now = as_utc(now_utc or utcnow())
    request_row = _load_request(db, request_id)
    if request_row.status not in OPEN_STATUSES:
        raise ApiError(
            status_code=409,
            code="MANUAL_REQUEST_CLOSED",
            message="Only pending or acknowledged requests can be resolved.",
        )

    in_ts = combine_local_utc(request_row.work_date, first_punch_in)
    out_ts = combine_local_utc(request_row.work_date, last_punch_out)
    if out_ts <= in_ts:
        raise ApiError(
            status_code=422,
            code="PUNCH_OUT_BEFORE_PUNCH_IN",
            message="Punch-out time must be after the punch-in time.",
        )

    if total_minutes is not None:
        worked_minutes = total_minutes
    else:
        span_minutes = int((out_ts - in_ts).total_seconds() // 60)
        worked_minutes = max(0, span_minutes - (break_minutes or 0))

    record = get_day_record(db, employee_id=request_row.employee_id, day_date=request_row.work_date)
    if record is None:
        record = AttendanceRecord(employee_id=request_row.employee_id, work_date=request_row.work_date)
        db.add(record)
    record.first_punch_in = in_ts
    record.last_punch_in = None
    record.last_punch_out = out_ts
    record.worked_ms = worked_minutes * 60000
    if record.auto_punch_out:
        record.auto_punch_resolved_at = now

    request_row.status = ManualRequestStatus.COMPLETED
    request_row.resolved_at = now
    request_row.resolved_by_id = resolver.id
    if request_row.acknowledged_at is None:
        request_row.acknowledged_at = now
    if admin_note is not None:
        request_row.admin_note = admin_note.strip()
    db.commit()
    db.refresh(request_row)
    return request_row


def serialize_request(db: Session, request_row: ManualAttendanceRequest) -> dict[str, object]:
    employee = db.get(Employee, request_row.employee_id)
    record = get_day_record(db, employee_id=request_row.employee_id, day_date=request_row.work_date)
    return {
        "id": request_row.id,
        "employee_id": request_row.employee_id,
        "employee_name": employee.full_name if employee is not None else None,
        "date": request_row.work_date,
        "note": request_row.note,
        "admin_note": request_row.admin_note,
        "status": request_row.status,
        "requested_at": normalize_ts(request_row.requested_at),
        "acknowledged_at": normalize_ts(request_row.acknowledged_at),
        "resolved_at": normalize_ts(request_row.resolved_at),
        "resolved_by_id": request_row.resolved_by_id,
        "auto_punch_out": bool(record.auto_punch_out) if record else False,
        "auto_punch_out_at": normalize_ts(record.auto_punch_out_at) if record else None,
        "first_punch_in": normalize_ts(record.first_punch_in) if record else None,
        "last_punch_out": normalize_ts(record.last_punch_out) if record else None,
        "worked_ms": int(record.worked_ms or 0) if record else 0,
    }
