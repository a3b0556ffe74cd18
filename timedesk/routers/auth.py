from fastapi import APIRouter, Depends, Request
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from timedesk.audit import client_ip, log_audit
from timedesk.db import get_db
from timedesk.errors import ApiError
from timedesk.models import AuditActorType, Employee
from timedesk.schemas import EmployeeRead, LoginRequest, LoginResponse
from timedesk.security import (
    create_access_token,
    ensure_login_attempt_allowed,
    register_login_failure,
    register_login_success,
    require_employee,
    verify_password,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)) -> LoginResponse:
    ip = client_ip(request) or "unknown"
    email = payload.email.strip().lower()
    throttle_key = f"{ip}:{email}"
    ensure_login_attempt_allowed(throttle_key)

    employee = db.scalar(select(Employee).where(func.lower(Employee.email) == email))
    if employee is None or not verify_password(payload.password, employee.password_hash):
        register_login_failure(throttle_key)
        log_audit(
            db,
            actor_type=AuditActorType.EMPLOYEE,
            actor_id=email,
            action="LOGIN_FAILED",
            success=False,
            ip=ip,
            user_agent=request.headers.get("user-agent"),
            request_id=getattr(request.state, "request_id", None),
        )
        raise ApiError(status_code=401, code="INVALID_CREDENTIALS", message="Invalid email or password.")
    if not employee.is_active:
        raise ApiError(status_code=403, code="EMPLOYEE_INACTIVE", message="Inactive employee cannot use the portal.")

    register_login_success(throttle_key)
    token, expires_in, _ = create_access_token(employee)
    request.state.actor = "admin" if employee.is_admin else "employee"
    request.state.actor_id = str(employee.id)
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN if employee.is_admin else AuditActorType.EMPLOYEE,
        actor_id=str(employee.id),
        action="LOGIN_SUCCESS",
        success=True,
        ip=ip,
        user_agent=request.headers.get("user-agent"),
        request_id=getattr(request.state, "request_id", None),
    )
    return LoginResponse(
        access_token=token,
        expires_in=expires_in,
        employee=EmployeeRead.model_validate(employee),
    )


@router.get("/me", response_model=EmployeeRead)
def me(employee: Employee = Depends(require_employee)) -> EmployeeRead:
    return EmployeeRead.model_validate(employee)
