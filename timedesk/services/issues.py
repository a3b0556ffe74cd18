from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from timedesk.models import (
    AttendanceRecord,
    Employee,
    Leave,
    LeaveStatus,
    ManualAttendanceRequest,
    ManualRequestStatus,
)
from timedesk.services.timeutils import normalize_ts
from timedesk.settings import get_weekly_off_days

ISSUE_MISSING_PUNCH_OUT = "missingPunchOut"
ISSUE_AUTO_PUNCH = "autoPunch"
ISSUE_NO_ATTENDANCE = "noAttendance"


@dataclass(frozen=True, slots=True)
class AttendanceIssue:
    date: date
    type: str
    auto_punch_out_at: datetime | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "date": self.date,
            "type": self.type,
            "auto_punch_out_at": self.auto_punch_out_at,
        }


def _iter_days(start: date, end_exclusive: date) -> Iterable[date]:
    current = start
    while current < end_exclusive:
        yield current
        current += timedelta(days=1)


def _covered_by_leave(day_date: date, leaves: Iterable[Leave]) -> bool:
    for leave in leaves:
        if leave.status == LeaveStatus.REJECTED:
            continue
        if leave.start_date <= day_date <= leave.end_date:
            return True
    return False


def collect_issues(
    *,
    records: Iterable[AttendanceRecord],
    leaves: Iterable[Leave],
    resolved_days: Iterable[date],
    start: date,
    end_exclusive: date,
    today: date,
    attendance_start_date: date | None,
    weekly_off_days: set[int],
) -> list[AttendanceIssue]:
    """Derive attendance anomalies for ``[start, end_exclusive)``.

    Open and missing days only count once the day is over; an unresolved
    system auto punch-out is reported whenever it happened.
    """
    records_by_day = {record.work_date: record for record in records}
    leaves = list(leaves)
    resolved = set(resolved_days)
    window_start = start
    if attendance_start_date is not None and attendance_start_date > window_start:
        window_start = attendance_start_date

    issues: list[AttendanceIssue] = []
    for day_date in _iter_days(window_start, end_exclusive):
        if day_date > today:
            break
        record = records_by_day.get(day_date)
        if record is not None and record.auto_punch_out and record.auto_punch_resolved_at is None:
            issues.append(
                AttendanceIssue(
                    date=day_date,
                    type=ISSUE_AUTO_PUNCH,
                    auto_punch_out_at=normalize_ts(record.auto_punch_out_at),
                )
            )
            continue
        if day_date >= today:
            continue
        if record is not None and record.last_punch_in is not None and record.last_punch_out is None:
            issues.append(AttendanceIssue(date=day_date, type=ISSUE_MISSING_PUNCH_OUT))
            continue
        has_punch = record is not None and (record.first_punch_in is not None or (record.worked_ms or 0) > 0)
        if has_punch:
            continue
        if day_date.weekday() in weekly_off_days:
            continue
        if day_date in resolved or _covered_by_leave(day_date, leaves):
            continue
        issues.append(AttendanceIssue(date=day_date, type=ISSUE_NO_ATTENDANCE))
    return issues


def list_employee_issues(
    db: Session,
    *,
    employee: Employee,
    start: date,
    end_exclusive: date,
    today: date,
) -> list[AttendanceIssue]:
    last_day = end_exclusive - timedelta(days=1)
    records = db.scalars(
        select(AttendanceRecord).where(
            AttendanceRecord.employee_id == employee.id,
            AttendanceRecord.work_date >= start,
            AttendanceRecord.work_date < end_exclusive,
        )
    ).all()
    leaves = db.scalars(
        select(Leave).where(
            Leave.employee_id == employee.id,
            Leave.start_date <= last_day,
            Leave.end_date >= start,
        )
    ).all()
    resolved_days = db.scalars(
        select(ManualAttendanceRequest.work_date).where(
            ManualAttendanceRequest.employee_id == employee.id,
            ManualAttendanceRequest.status == ManualRequestStatus.COMPLETED,
            ManualAttendanceRequest.work_date >= start,
            ManualAttendanceRequest.work_date < end_exclusive,
        )
    ).all()
    return collect_issues(
        records=records,
        leaves=leaves,
        resolved_days=resolved_days,
        start=start,
        end_exclusive=end_exclusive,
        today=today,
        attendance_start_date=employee.attendance_start_date,
        weekly_off_days=get_weekly_off_days(),
    )


def list_blocking_issues(
    db: Session,
    *,
    employee: Employee,
    today: date,
    lookback_days: int,
) -> list[AttendanceIssue]:
    start = today - timedelta(days=max(1, lookback_days))
    return [
        issue
        for issue in list_employee_issues(db, employee=employee, start=start, end_exclusive=today, today=today)
        if issue.date < today
    ]
