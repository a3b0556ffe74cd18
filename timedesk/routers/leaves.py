from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from timedesk.audit import audit_request
from timedesk.db import get_db
from timedesk.models import Employee
from timedesk.schemas import LeaveCreateRequest, LeaveDecisionRequest, LeaveRead
from timedesk.security import require_employee
from timedesk.services.leaves import create_leave, decide_leave, list_assigned_leaves, list_own_leaves

router = APIRouter(prefix="/api/leaves", tags=["leaves"])


@router.post("", response_model=LeaveRead, status_code=201)
def post_leave(
    payload: LeaveCreateRequest,
    request: Request,
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> LeaveRead:
    leave = create_leave(
        db,
        employee=employee,
        start_date=payload.start_date,
        end_date=payload.end_date,
        leave_type=payload.type,
        reason=payload.reason,
    )
    audit_request(db, request, actor=employee, action="LEAVE_REQUESTED", entity_type="leave", entity_id=leave.id)
    return LeaveRead.model_validate(leave)


@router.get("", response_model=list[LeaveRead])
def get_own_leaves(
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> list[LeaveRead]:
    return [LeaveRead.model_validate(item) for item in list_own_leaves(db, employee=employee)]


@router.get("/assigned", response_model=list[LeaveRead])
def get_assigned_leaves(
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> list[LeaveRead]:
    return [LeaveRead.model_validate(item) for item in list_assigned_leaves(db, approver=employee)]


def _decide(
    leave_id: int,
    payload: LeaveDecisionRequest | None,
    request: Request,
    employee: Employee,
    db: Session,
    *,
    approve: bool,
) -> LeaveRead:
    leave = decide_leave(
        db,
        approver=employee,
        leave_id=leave_id,
        approve=approve,
        admin_message=payload.admin_message if payload is not None else None,
    )
    audit_request(
        db,
        request,
        actor=employee,
        action="LEAVE_APPROVED" if approve else "LEAVE_REJECTED",
        entity_type="leave",
        entity_id=leave.id,
        details={"employee_id": leave.employee_id},
    )
    return LeaveRead.model_validate(leave)


@router.post("/{leave_id}/approve", response_model=LeaveRead)
def approve_leave(
    leave_id: int,
    request: Request,
    payload: LeaveDecisionRequest | None = None,
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> LeaveRead:
    return _decide(leave_id, payload, request, employee, db, approve=True)


@router.post("/{leave_id}/reject", response_model=LeaveRead)
def reject_leave(
    leave_id: int,
    request: Request,
    payload: LeaveDecisionRequest | None = None,
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> LeaveRead:
    return _decide(leave_id, payload, request, employee, db, approve=False)
