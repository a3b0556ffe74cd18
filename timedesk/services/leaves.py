from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from timedesk.errors import ApiError
from timedesk.models import Employee, Leave, LeaveStatus, LeaveType
from timedesk.security import has_sub_role
from timedesk.services.timeutils import as_utc, local_day, utcnow


def _can_act_for_others(employee: Employee) -> bool:
    return employee.is_admin or has_sub_role(employee, "hr")


def create_leave(
    db: Session,
    *,
    employee: Employee,
    start_date: date,
    end_date: date,
    leave_type: LeaveType,
    reason: str | None,
) -> Leave:
    if end_date < start_date:
        raise ApiError(
            status_code=422,
            code="INVALID_DATE_RANGE",
            message="end_date must be on or after start_date.",
        )

    leave = Leave(
        employee_id=employee.id,
        approver_id=employee.reporting_person_id,
        start_date=start_date,
        end_date=end_date,
        type=leave_type,
        status=LeaveStatus.PENDING,
        reason=(reason or "").strip() or None,
    )
    db.add(leave)
    db.commit()
    db.refresh(leave)
    return leave


def list_own_leaves(db: Session, *, employee: Employee) -> list[Leave]:
    return list(
        db.scalars(
            select(Leave)
            .where(Leave.employee_id == employee.id)
            .order_by(Leave.start_date.desc(), Leave.id.desc())
        ).all()
    )


def list_assigned_leaves(db: Session, *, approver: Employee) -> list[Leave]:
    stmt = select(Leave).where(Leave.status == LeaveStatus.PENDING)
    if not _can_act_for_others(approver):
        reports = select(Employee.id).where(Employee.reporting_person_id == approver.id)
        stmt = stmt.where(or_(Leave.approver_id == approver.id, Leave.employee_id.in_(reports)))
    return list(db.scalars(stmt.order_by(Leave.start_date.asc(), Leave.id.asc())).all())


def decide_leave(
    db: Session,
    *,
    approver: Employee,
    leave_id: int,
    approve: bool,
    admin_message: str | None = None,
) -> Leave:
    leave = db.get(Leave, leave_id)
    if leave is None:
        raise ApiError(status_code=404, code="LEAVE_NOT_FOUND", message="Leave not found.")
    if leave.employee_id == approver.id and not approver.is_admin:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Cannot decide your own leave.")

    owner = db.get(Employee, leave.employee_id)
    is_reporting_person = owner is not None and owner.reporting_person_id == approver.id
    if not (_can_act_for_others(approver) or leave.approver_id == approver.id or is_reporting_person):
        raise ApiError(status_code=403, code="FORBIDDEN", message="Not allowed to decide this leave.")
    if leave.status != LeaveStatus.PENDING:
        raise ApiError(status_code=409, code="LEAVE_ALREADY_DECIDED", message="Leave has already been decided.")

    leave.status = LeaveStatus.APPROVED if approve else LeaveStatus.REJECTED
    leave.approver_id = approver.id
    if admin_message is not None:
        leave.admin_message = admin_message.strip() or None
    db.commit()
    db.refresh(leave)
    return leave


def resolve_issue_with_leave(
    db: Session,
    *,
    actor: Employee,
    start_date: date,
    end_date: date | None,
    leave_type: LeaveType,
    reason: str | None,
    employee_id: int | None = None,
    now_utc: datetime | None = None,
) -> Leave:
    """Close a ``noAttendance`` gap with an already-approved leave."""
    today = local_day(as_utc(now_utc or utcnow()))
    final_end = end_date or start_date
    if final_end < start_date:
        raise ApiError(
            status_code=422,
            code="INVALID_DATE_RANGE",
            message="end_date must be on or after date.",
        )
    if final_end > today:
        raise ApiError(
            status_code=422,
            code="FUTURE_DATE_NOT_ALLOWED",
            message="Leave for an attendance issue cannot be in the future.",
        )

    target = actor
    if employee_id is not None and employee_id != actor.id:
        if not _can_act_for_others(actor):
            raise ApiError(status_code=403, code="FORBIDDEN", message="Not allowed to resolve for others.")
        found = db.get(Employee, employee_id)
        if found is None:
            raise ApiError(status_code=404, code="EMPLOYEE_NOT_FOUND", message="Employee not found.")
        target = found

    leave = Leave(
        employee_id=target.id,
        approver_id=actor.id,
        start_date=start_date,
        end_date=final_end,
        type=leave_type,
        status=LeaveStatus.APPROVED,
        reason=(reason or "").strip() or "Resolved attendance issue",
        resolved_issue=True,
    )
    db.add(leave)
    db.commit()
    db.refresh(leave)
    return leave
