from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from timedesk.errors import ApiError
from timedesk.models import Employee, Task, TimeLog
from timedesk.security import has_sub_role
from timedesk.services.attendance import get_day_record, live_worked_ms
from timedesk.services.timeutils import as_utc, local_day, utcnow
from timedesk.settings import get_settings


@dataclass(frozen=True, slots=True)
class DayBudget:
    worked_minutes: int
    logged_minutes: int
    cap_minutes: int
    remaining_minutes: int


def cap_minutes(worked_minutes: int, break_minutes: int) -> int:
    return max(0, worked_minutes - break_minutes)


def remaining_minutes(worked_minutes: int, logged_minutes: int, break_minutes: int) -> int:
    return max(0, cap_minutes(worked_minutes, break_minutes) - logged_minutes)


def worked_minutes_for_day(db: Session, *, employee_id: int, day_date: date, now_utc: datetime) -> int:
    record = get_day_record(db, employee_id=employee_id, day_date=day_date)
    if record is None:
        return 0
    if day_date == local_day(now_utc):
        return live_worked_ms(record, now_utc) // 60000
    return int(record.worked_ms or 0) // 60000


def logged_minutes_for_day(
    db: Session,
    *,
    employee_id: int,
    day_date: date,
    exclude_log_id: int | None = None,
) -> int:
    stmt = select(func.coalesce(func.sum(TimeLog.minutes), 0)).where(
        TimeLog.employee_id == employee_id,
        TimeLog.work_date == day_date,
    )
    if exclude_log_id is not None:
        stmt = stmt.where(TimeLog.id != exclude_log_id)
    return int(db.scalar(stmt) or 0)


def day_budget(
    db: Session,
    *,
    employee_id: int,
    day_date: date,
    now_utc: datetime | None = None,
    exclude_log_id: int | None = None,
) -> DayBudget:
    now = as_utc(now_utc or utcnow())
    break_minutes = get_settings().break_minutes
    worked = worked_minutes_for_day(db, employee_id=employee_id, day_date=day_date, now_utc=now)
    logged = logged_minutes_for_day(db, employee_id=employee_id, day_date=day_date, exclude_log_id=exclude_log_id)
    return DayBudget(
        worked_minutes=worked,
        logged_minutes=logged,
        cap_minutes=cap_minutes(worked, break_minutes),
        remaining_minutes=remaining_minutes(worked, logged, break_minutes),
    )


def _ensure_within_cap(budget: DayBudget, requested: int) -> None:
    if requested <= budget.remaining_minutes:
        return
    overage = requested - budget.remaining_minutes
    raise ApiError(
        status_code=422,
        code="TIME_LOG_CAP_EXCEEDED",
        message=(
            f"Requested {requested} minutes exceeds the remaining time by {overage} minutes "
            f"(remaining {budget.remaining_minutes} of {budget.cap_minutes})."
        ),
        details={
            "requested_minutes": requested,
            "remaining_minutes": budget.remaining_minutes,
            "cap_minutes": budget.cap_minutes,
            "overage_minutes": overage,
        },
    )


def _load_task(db: Session, *, project_id: int, task_id: int) -> Task:
    task = db.get(Task, task_id)
    if task is None or task.project_id != project_id:
        raise ApiError(status_code=404, code="TASK_NOT_FOUND", message="Task not found.")
    return task


def _resolve_target_employee(db: Session, *, actor: Employee, for_employee: int | None) -> Employee:
    if for_employee is None or for_employee == actor.id:
        return actor
    if not (actor.is_admin or has_sub_role(actor, "hr") or has_sub_role(actor, "manager")):
        raise ApiError(
            status_code=403,
            code="FORBIDDEN",
            message="Only managers can log time for another employee.",
        )
    target = db.get(Employee, for_employee)
    if target is None:
        raise ApiError(status_code=404, code="EMPLOYEE_NOT_FOUND", message="Employee not found.")
    return target


def log_time(
    db: Session,
    *,
    actor: Employee,
    project_id: int,
    task_id: int,
    minutes: int,
    note: str | None = None,
    day_date: date | None = None,
    for_employee: int | None = None,
    now_utc: datetime | None = None,
) -> TimeLog:
    now = as_utc(now_utc or utcnow())
    today = local_day(now)
    work_date = day_date or today
    if work_date > today:
        raise ApiError(
            status_code=422,
            code="FUTURE_DATE_NOT_ALLOWED",
            message="Time cannot be logged for a future date.",
        )

    task = _load_task(db, project_id=project_id, task_id=task_id)
    employee = _resolve_target_employee(db, actor=actor, for_employee=for_employee)
    budget = day_budget(db, employee_id=employee.id, day_date=work_date, now_utc=now)
    _ensure_within_cap(budget, minutes)

    log = TimeLog(
        task_id=task.id,
        employee_id=employee.id,
        work_date=work_date,
        minutes=minutes,
        note=(note or "").strip() or None,
    )
    task.time_spent_minutes = int(task.time_spent_minutes or 0) + minutes
    db.add(log)
    db.commit()
    db.refresh(log)
    return log


def list_day_logs(db: Session, *, employee_id: int, day_date: date) -> list[TimeLog]:
    return list(
        db.scalars(
            select(TimeLog)
            .where(TimeLog.employee_id == employee_id, TimeLog.work_date == day_date)
            .order_by(TimeLog.created_at.asc(), TimeLog.id.asc())
        ).all()
    )


def _load_own_log(db: Session, *, actor: Employee, log_id: int) -> TimeLog:
    log = db.get(TimeLog, log_id)
    if log is None:
        raise ApiError(status_code=404, code="TIME_LOG_NOT_FOUND", message="Time log not found.")
    if log.employee_id != actor.id and not actor.is_admin:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Cannot change another employee's time log.")
    return log


def update_time_log(
    db: Session,
    *,
    actor: Employee,
    log_id: int,
    minutes: int,
    note: str | None = None,
    now_utc: datetime | None = None,
) -> TimeLog:
    log = _load_own_log(db, actor=actor, log_id=log_id)
    budget = day_budget(
        db,
        employee_id=log.employee_id,
        day_date=log.work_date,
        now_utc=now_utc,
        exclude_log_id=log.id,
    )
    _ensure_within_cap(budget, minutes)

    delta = minutes - int(log.minutes)
    task = db.get(Task, log.task_id)
    if task is not None:
        task.time_spent_minutes = max(0, int(task.time_spent_minutes or 0) + delta)
    log.minutes = minutes
    if note is not None:
        log.note = note.strip() or None
    db.commit()
    db.refresh(log)
    return log


def delete_time_log(db: Session, *, actor: Employee, log_id: int) -> int:
    log = _load_own_log(db, actor=actor, log_id=log_id)
    task = db.get(Task, log.task_id)
    if task is not None:
        task.time_spent_minutes = max(0, int(task.time_spent_minutes or 0) - int(log.minutes))
    deleted_id = log.id
    db.delete(log)
    db.commit()
    return deleted_id
