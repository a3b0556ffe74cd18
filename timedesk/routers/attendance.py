from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from timedesk.audit import audit_request
from timedesk.db import get_db
from timedesk.errors import ApiError
from timedesk.models import Employee, ManualRequestStatus
from timedesk.schemas import (
    AttendanceHistoryResponse,
    AttendanceIssueRead,
    AttendanceIssuesResponse,
    AttendanceRead,
    AttendanceTodayResponse,
    CompanyHistoryItem,
    CompanyTodayItem,
    LeaveRead,
    ManualRequestCreate,
    ManualRequestRead,
    ManualRequestResolve,
    ManualRequestStatusUpdate,
    PunchOutAtRequest,
    PunchRequest,
    ResolveLeaveRequest,
)
from timedesk.security import require_admin, require_employee
from timedesk.services.attendance import (
    company_history,
    company_today,
    get_today_record,
    list_history,
    punch,
    set_punch_out_at,
)
from timedesk.services.issues import list_employee_issues
from timedesk.services.leaves import resolve_issue_with_leave
from timedesk.services.manual_requests import (
    can_manage_requests,
    create_manual_request,
    list_manual_requests,
    resolve_manual_request,
    serialize_request,
    update_request_status,
)
from timedesk.services.timeutils import format_month, local_day, parse_month, utcnow

router = APIRouter(prefix="/api/attendance", tags=["attendance"])


def _require_request_manager(employee: Employee = Depends(require_employee)) -> Employee:
    if not can_manage_requests(employee):
        raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")
    return employee


@router.get("/today", response_model=AttendanceTodayResponse)
def get_today(
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> AttendanceTodayResponse:
    record = get_today_record(db, employee=employee)
    return AttendanceTodayResponse(
        attendance=AttendanceRead.model_validate(record) if record is not None else None,
    )


@router.post("/punch", response_model=AttendanceTodayResponse)
def post_punch(
    payload: PunchRequest,
    request: Request,
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> AttendanceTodayResponse:
    record = punch(db, employee=employee, action=payload.action, location_label=payload.location_label)
    audit_request(
        db,
        request,
        actor=employee,
        action="PUNCH_IN" if payload.action == "in" else "PUNCH_OUT",
        entity_type="attendance_record",
        entity_id=record.id,
        details={"work_date": record.work_date.isoformat(), "worked_ms": int(record.worked_ms or 0)},
    )
    return AttendanceTodayResponse(attendance=AttendanceRead.model_validate(record))


@router.get("/history", response_model=AttendanceHistoryResponse)
def get_history(
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> AttendanceHistoryResponse:
    records = list_history(db, employee=employee)
    return AttendanceHistoryResponse(attendance=[AttendanceRead.model_validate(item) for item in records])


@router.get("/missing-out", response_model=AttendanceIssuesResponse)
def get_missing_out(
    month: str | None = Query(default=None),
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> AttendanceIssuesResponse:
    today = local_day(utcnow())
    start, end_exclusive = parse_month(month, today=today)
    issues = list_employee_issues(db, employee=employee, start=start, end_exclusive=end_exclusive, today=today)
    return AttendanceIssuesResponse(
        month=format_month(start),
        issues=[AttendanceIssueRead.model_validate(issue.to_dict()) for issue in issues],
    )


@router.post("/punchout-at", response_model=AttendanceTodayResponse)
def post_punch_out_at(
    payload: PunchOutAtRequest,
    request: Request,
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> AttendanceTodayResponse:
    record = set_punch_out_at(db, employee=employee, day_date=payload.date, hhmm=payload.time)
    audit_request(
        db,
        request,
        actor=employee,
        action="PUNCH_OUT_BACKFILLED",
        entity_type="attendance_record",
        entity_id=record.id,
        details={"work_date": payload.date.isoformat(), "time": payload.time},
    )
    return AttendanceTodayResponse(attendance=AttendanceRead.model_validate(record))


@router.post("/resolve/leave", response_model=LeaveRead)
def post_resolve_leave(
    payload: ResolveLeaveRequest,
    request: Request,
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> LeaveRead:
    leave = resolve_issue_with_leave(
        db,
        actor=employee,
        start_date=payload.date,
        end_date=payload.end_date,
        leave_type=payload.type,
        reason=payload.reason,
        employee_id=payload.employee_id,
    )
    audit_request(
        db,
        request,
        actor=employee,
        action="ATTENDANCE_ISSUE_RESOLVED_WITH_LEAVE",
        entity_type="leave",
        entity_id=leave.id,
        details={
            "employee_id": leave.employee_id,
            "start_date": leave.start_date.isoformat(),
            "end_date": leave.end_date.isoformat(),
        },
    )
    return LeaveRead.model_validate(leave)


@router.post("/manual-request", response_model=ManualRequestRead, status_code=201)
def post_manual_request(
    payload: ManualRequestCreate,
    request: Request,
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> ManualRequestRead:
    request_row = create_manual_request(db, employee=employee, day_date=payload.date, note=payload.note)
    audit_request(
        db,
        request,
        actor=employee,
        action="MANUAL_REQUEST_CREATED",
        entity_type="manual_attendance_request",
        entity_id=request_row.id,
        details={"work_date": payload.date.isoformat()},
    )
    return ManualRequestRead.model_validate(serialize_request(db, request_row))


@router.get("/manual-requests", response_model=list[ManualRequestRead])
def get_manual_requests(
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> list[ManualRequestRead]:
    return [
        ManualRequestRead.model_validate(serialize_request(db, item))
        for item in list_manual_requests(db, viewer=employee)
    ]


@router.patch("/manual-request/{request_id}/status", response_model=ManualRequestRead)
def patch_manual_request_status(
    request_id: int,
    payload: ManualRequestStatusUpdate,
    request: Request,
    manager: Employee = Depends(_require_request_manager),
    db: Session = Depends(get_db),
) -> ManualRequestRead:
    request_row = update_request_status(db, request_id=request_id, status=ManualRequestStatus(payload.status))
    audit_request(
        db,
        request,
        actor=manager,
        action="MANUAL_REQUEST_STATUS_UPDATED",
        entity_type="manual_attendance_request",
        entity_id=request_row.id,
        details={"status": payload.status},
    )
    return ManualRequestRead.model_validate(serialize_request(db, request_row))


@router.post("/manual-request/{request_id}/resolve", response_model=ManualRequestRead)
def post_manual_request_resolve(
    request_id: int,
    payload: ManualRequestResolve,
    request: Request,
    manager: Employee = Depends(_require_request_manager),
    db: Session = Depends(get_db),
) -> ManualRequestRead:
    request_row = resolve_manual_request(
        db,
        resolver=manager,
        request_id=request_id,
        first_punch_in=payload.first_punch_in,
        last_punch_out=payload.last_punch_out,
        break_minutes=payload.break_minutes,
        total_minutes=payload.total_minutes,
        admin_note=payload.admin_note,
    )
    audit_request(
        db,
        request,
        actor=manager,
        action="MANUAL_REQUEST_RESOLVED",
        entity_type="manual_attendance_request",
        entity_id=request_row.id,
        details={
            "employee_id": request_row.employee_id,
            "work_date": request_row.work_date.isoformat(),
            "first_punch_in": payload.first_punch_in,
            "last_punch_out": payload.last_punch_out,
        },
    )
    return ManualRequestRead.model_validate(serialize_request(db, request_row))


@router.get("/company/today", response_model=list[CompanyTodayItem])
def get_company_today(
    _: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[CompanyTodayItem]:
    return [CompanyTodayItem.model_validate(item) for item in company_today(db)]


@router.get("/company/history", response_model=list[CompanyHistoryItem])
def get_company_history(
    month: str | None = Query(default=None),
    _: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[CompanyHistoryItem]:
    start, end_exclusive = parse_month(month, today=local_day(utcnow()))
    return [
        CompanyHistoryItem.model_validate(item)
        for item in company_history(db, start=start, end_exclusive=end_exclusive)
    ]
