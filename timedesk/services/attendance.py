from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from timedesk.errors import ApiError
from timedesk.models import (
    AttendanceRecord,
    Employee,
    Leave,
    LeaveStatus,
    PrimaryRole,
)
from timedesk.services.issues import list_blocking_issues
from timedesk.services.timeutils import (
    as_utc,
    combine_local_utc,
    local_day,
    local_day_bounds_utc,
    normalize_ts,
    utcnow,
)
from timedesk.settings import get_settings

logger = logging.getLogger("timedesk.auto_punch_out")

MIN_AUTO_PUNCH_SEGMENT = timedelta(minutes=1)


def is_open(record: AttendanceRecord | None) -> bool:
    return bool(record is not None and record.last_punch_in is not None and record.last_punch_out is None)


def live_worked_ms(record: AttendanceRecord | None, now_utc: datetime) -> int:
    if record is None:
        return 0
    base = int(record.worked_ms or 0)
    if is_open(record):
        assert record.last_punch_in is not None
        base += max(0, int((as_utc(now_utc) - as_utc(record.last_punch_in)).total_seconds() * 1000))
    return base


def get_day_record(db: Session, *, employee_id: int, day_date: date) -> AttendanceRecord | None:
    return db.scalar(
        select(AttendanceRecord).where(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.work_date == day_date,
        )
    )


def get_today_record(
    db: Session,
    *,
    employee: Employee,
    now_utc: datetime | None = None,
) -> AttendanceRecord | None:
    now = as_utc(now_utc or utcnow())
    return get_day_record(db, employee_id=employee.id, day_date=local_day(now))


def list_history(db: Session, *, employee: Employee) -> list[AttendanceRecord]:
    return list(
        db.scalars(
            select(AttendanceRecord)
            .where(AttendanceRecord.employee_id == employee.id)
            .order_by(AttendanceRecord.work_date.desc())
        ).all()
    )


def punch(
    db: Session,
    *,
    employee: Employee,
    action: str,
    location_label: str | None = None,
    now_utc: datetime | None = None,
) -> AttendanceRecord:
    if action not in {"in", "out"}:
        raise ApiError(status_code=400, code="INVALID_ACTION", message="Invalid action.")

    now = as_utc(now_utc or utcnow())
    today = local_day(now)
    record = get_day_record(db, employee_id=employee.id, day_date=today)

    if action == "in":
        blocking = list_blocking_issues(
            db,
            employee=employee,
            today=today,
            lookback_days=get_settings().issue_lookback_days,
        )
        if blocking:
            raise ApiError(
                status_code=409,
                code="ATTENDANCE_ISSUES_PENDING",
                message="Resolve pending attendance issues before punching in.",
                details={"issues": [issue.to_dict() for issue in blocking]},
            )

    label = (location_label or "").strip() or None

    if record is None:
        if action == "out":
            raise ApiError(status_code=400, code="PUNCH_IN_REQUIRED", message="Must punch in first.")
        record = AttendanceRecord(
            employee_id=employee.id,
            work_date=today,
            first_punch_in=now,
            last_punch_in=now,
            worked_ms=0,
            location_label=label,
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    if action == "in":
        if record.last_punch_in is None:
            if record.first_punch_in is None:
                record.first_punch_in = now
            record.last_punch_in = now
            record.last_punch_out = None
            if label:
                record.location_label = label
    elif record.last_punch_in is not None:
        record.worked_ms = live_worked_ms(record, now)
        record.last_punch_out = now
        record.last_punch_in = None

    db.commit()
    db.refresh(record)
    return record


def set_punch_out_at(
    db: Session,
    *,
    employee: Employee,
    day_date: date,
    hhmm: str,
    now_utc: datetime | None = None,
) -> AttendanceRecord:
    now = as_utc(now_utc or utcnow())
    if day_date >= local_day(now):
        raise ApiError(
            status_code=422,
            code="BACKFILL_PAST_DAYS_ONLY",
            message="Punch-out time can only be set for a past day.",
        )

    record = get_day_record(db, employee_id=employee.id, day_date=day_date)
    if record is None or record.first_punch_in is None:
        raise ApiError(
            status_code=404,
            code="ATTENDANCE_NOT_FOUND",
            message="No punch-in recorded for that day.",
        )

    auto_pending = record.auto_punch_out and record.auto_punch_resolved_at is None
    if not is_open(record) and not auto_pending:
        raise ApiError(
            status_code=409,
            code="ATTENDANCE_ALREADY_CLOSED",
            message="That day is already punched out.",
        )

    if is_open(record):
        open_start = as_utc(record.last_punch_in)  # type: ignore[arg-type]
        base_ms = int(record.worked_ms or 0)
    else:
        open_start = as_utc(record.auto_punch_last_in or record.first_punch_in)  # type: ignore[arg-type]
        auto_out = normalize_ts(record.auto_punch_out_at) or normalize_ts(record.last_punch_out) or open_start
        auto_segment_ms = max(0, int((auto_out - open_start).total_seconds() * 1000))
        base_ms = max(0, int(record.worked_ms or 0) - auto_segment_ms)

    punch_out = combine_local_utc(day_date, hhmm)
    _, day_end = local_day_bounds_utc(day_date)
    if punch_out <= open_start:
        raise ApiError(
            status_code=422,
            code="PUNCH_OUT_BEFORE_PUNCH_IN",
            message="Punch-out time must be after the punch-in time.",
        )
    if punch_out > day_end:
        raise ApiError(
            status_code=422,
            code="PUNCH_OUT_AFTER_DAY_END",
            message="Punch-out time must fall within the same day.",
        )

    record.worked_ms = base_ms + int((punch_out - open_start).total_seconds() * 1000)
    record.last_punch_out = punch_out
    record.last_punch_in = None
    if record.auto_punch_out:
        record.auto_punch_resolved_at = now
    db.commit()
    db.refresh(record)
    return record


@dataclass(frozen=True, slots=True)
class AutoPunchOutResult:
    candidates: int
    closed: int


def run_auto_punch_out(db: Session, *, now_utc: datetime | None = None) -> AutoPunchOutResult:
    now = as_utc(now_utc or utcnow())
    today = local_day(now)
    records = list(
        db.scalars(
            select(AttendanceRecord).where(
                AttendanceRecord.work_date < today,
                AttendanceRecord.last_punch_in.is_not(None),
            )
        ).all()
    )
    if not records:
        return AutoPunchOutResult(candidates=0, closed=0)

    closed = 0
    for record in records:
        open_start = normalize_ts(record.last_punch_in) or normalize_ts(record.first_punch_in)
        if open_start is None:
            continue
        _, day_end = local_day_bounds_utc(record.work_date)
        auto_out = min(now, day_end)
        if auto_out <= open_start:
            auto_out = open_start + MIN_AUTO_PUNCH_SEGMENT

        added_ms = int((auto_out - open_start).total_seconds() * 1000)
        record.worked_ms = int(record.worked_ms or 0) + added_ms
        record.last_punch_out = auto_out
        record.last_punch_in = None
        record.auto_punch_out = True
        record.auto_punch_out_at = auto_out
        record.auto_punch_last_in = open_start
        record.auto_punch_resolved_at = None
        closed += 1
        logger.info(
            "auto_punch_out_closed",
            extra={
                "employee_id": record.employee_id,
                "work_date": record.work_date,
                "auto_out": auto_out,
                "added_minutes": round(added_ms / 60000),
            },
        )

    db.commit()
    return AutoPunchOutResult(candidates=len(records), closed=closed)


def company_today(db: Session, *, now_utc: datetime | None = None) -> list[dict[str, object]]:
    now = as_utc(now_utc or utcnow())
    today = local_day(now)
    employees = list(
        db.scalars(
            select(Employee)
            .where(Employee.primary_role == PrimaryRole.EMPLOYEE, Employee.is_active.is_(True))
            .order_by(Employee.full_name.asc(), Employee.id.asc())
        ).all()
    )
    records = {
        record.employee_id: record
        for record in db.scalars(select(AttendanceRecord).where(AttendanceRecord.work_date == today)).all()
    }
    on_leave_ids = set(
        db.scalars(
            select(Leave.employee_id).where(
                Leave.status == LeaveStatus.APPROVED,
                Leave.start_date <= today,
                Leave.end_date >= today,
            )
        ).all()
    )
    items: list[dict[str, object]] = []
    for employee in employees:
        record = records.get(employee.id)
        items.append(
            {
                "employee_id": employee.id,
                "employee_name": employee.full_name,
                "first_punch_in": normalize_ts(record.first_punch_in) if record else None,
                "last_punch_out": normalize_ts(record.last_punch_out) if record else None,
                "punched_in": is_open(record),
                "on_leave": employee.id in on_leave_ids,
            }
        )
    return items


def company_history(db: Session, *, start: date, end_exclusive: date) -> list[dict[str, object]]:
    rows = db.execute(
        select(AttendanceRecord, Employee)
        .join(Employee, Employee.id == AttendanceRecord.employee_id)
        .where(
            Employee.primary_role == PrimaryRole.EMPLOYEE,
            AttendanceRecord.work_date >= start,
            AttendanceRecord.work_date < end_exclusive,
        )
        .order_by(AttendanceRecord.work_date.asc(), Employee.full_name.asc())
    ).all()
    return [
        {
            "employee_id": employee.id,
            "employee_name": employee.full_name,
            "date": record.work_date,
            "first_punch_in": normalize_ts(record.first_punch_in),
            "last_punch_out": normalize_ts(record.last_punch_out),
            "worked_ms": int(record.worked_ms or 0),
        }
        for record, employee in rows
    ]

