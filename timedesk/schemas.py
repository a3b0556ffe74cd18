import datetime as dt
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from timedesk.models import (
    LeaveStatus,
    LeaveType,
    ManualRequestStatus,
    PrimaryRole,
    TaskStatus,
)

HHMM_PATTERN = r"^\d{1,2}:\d{2}$"


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class EmployeeRead(BaseModel):
    id: int
    full_name: str
    email: str
    primary_role: PrimaryRole
    sub_roles: list[str] = Field(default_factory=list)
    is_active: bool
    attendance_start_date: date | None = None
    reporting_person_id: int | None = None

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    employee: EmployeeRead


class AttendanceRead(BaseModel):
    id: int
    employee_id: int
    date: dt.date = Field(validation_alias="work_date")
    first_punch_in: datetime | None = None
    last_punch_in: datetime | None = None
    last_punch_out: datetime | None = None
    worked_ms: int = 0
    location_label: str | None = None
    auto_punch_out: bool = False
    auto_punch_out_at: datetime | None = None
    auto_punch_resolved_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class AttendanceTodayResponse(BaseModel):
    attendance: AttendanceRead | None = None


class AttendanceHistoryResponse(BaseModel):
    attendance: list[AttendanceRead] = Field(default_factory=list)


class PunchRequest(BaseModel):
    action: Literal["in", "out"]
    location_label: str | None = Field(default=None, max_length=255)


class AttendanceIssueRead(BaseModel):
    date: date
    type: Literal["missingPunchOut", "autoPunch", "noAttendance"]
    auto_punch_out_at: datetime | None = None


class AttendanceIssuesResponse(BaseModel):
    month: str
    issues: list[AttendanceIssueRead] = Field(default_factory=list)


class PunchOutAtRequest(BaseModel):
    date: date
    time: str = Field(pattern=HHMM_PATTERN)


class ResolveLeaveRequest(BaseModel):
    date: date
    end_date: date | None = None
    type: LeaveType = LeaveType.PAID
    reason: str | None = Field(default=None, max_length=1000)
    employee_id: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _check_range(self) -> "ResolveLeaveRequest":
        if self.end_date is not None and self.end_date < self.date:
            raise ValueError("end_date must be on or after date")
        return self


class LeaveCreateRequest(BaseModel):
    start_date: date
    end_date: date
    type: LeaveType
    reason: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _check_range(self) -> "LeaveCreateRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class LeaveDecisionRequest(BaseModel):
    admin_message: str | None = Field(default=None, max_length=1000)


class LeaveRead(BaseModel):
    id: int
    employee_id: int
    approver_id: int | None = None
    start_date: date
    end_date: date
    type: LeaveType
    status: LeaveStatus
    reason: str | None = None
    admin_message: str | None = None
    resolved_issue: bool = False
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ManualRequestCreate(BaseModel):
    date: date
    note: str = Field(default="", max_length=1000)


class ManualRequestStatusUpdate(BaseModel):
    status: Literal["PENDING", "ACKED", "CANCELLED"]


class ManualRequestResolve(BaseModel):
    first_punch_in: str = Field(pattern=HHMM_PATTERN)
    last_punch_out: str = Field(pattern=HHMM_PATTERN)
    break_minutes: int | None = Field(default=None, ge=0, le=24 * 60)
    total_minutes: int | None = Field(default=None, ge=0, le=24 * 60)
    admin_note: str | None = Field(default=None, max_length=1000)


class ManualRequestRead(BaseModel):
    id: int
    employee_id: int
    employee_name: str | None = None
    date: date
    note: str
    admin_note: str
    status: ManualRequestStatus
    requested_at: datetime
    acknowledged_at: datetime | None = None
    resolved_at: datetime | None = None
    resolved_by_id: int | None = None
    auto_punch_out: bool = False
    auto_punch_out_at: datetime | None = None
    first_punch_in: datetime | None = None
    last_punch_out: datetime | None = None
    worked_ms: int = 0


class CompanyTodayItem(BaseModel):
    employee_id: int
    employee_name: str
    first_punch_in: datetime | None = None
    last_punch_out: datetime | None = None
    punched_in: bool = False
    on_leave: bool = False


class CompanyHistoryItem(BaseModel):
    employee_id: int
    employee_name: str
    date: date
    first_punch_in: datetime | None = None
    last_punch_out: datetime | None = None
    worked_ms: int = 0


class ProjectCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)


class ProjectRead(BaseModel):
    id: int
    title: str
    is_personal: bool
    owner_id: int | None = None

    model_config = ConfigDict(from_attributes=True)


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    parent_task_id: int | None = Field(default=None, ge=1)
    assigned_to: list[int] = Field(default_factory=list)


class TaskRead(BaseModel):
    id: int
    project_id: int
    project_title: str | None = None
    parent_task_id: int | None = None
    title: str
    status: TaskStatus
    is_meeting_default: bool = False
    time_spent_minutes: int = 0
    subtasks: list["TaskRead"] = Field(default_factory=list)


class PersonalProjectResponse(BaseModel):
    project: ProjectRead
    meeting_task: TaskRead


class TimeLogCreate(BaseModel):
    minutes: int = Field(ge=1, le=24 * 60)
    note: str | None = Field(default=None, max_length=1000)


class TimeLogAtCreate(TimeLogCreate):
    date: date
    for_employee: int | None = Field(default=None, ge=1)


class TimeLogUpdate(BaseModel):
    minutes: int = Field(ge=1, le=24 * 60)
    note: str | None = Field(default=None, max_length=1000)


class TimeLogRead(BaseModel):
    id: int
    task_id: int
    employee_id: int
    date: dt.date = Field(validation_alias="work_date")
    minutes: int
    note: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class DayLogsResponse(BaseModel):
    date: date
    logs: list[TimeLogRead] = Field(default_factory=list)
    logged_minutes: int
    worked_minutes: int
    cap_minutes: int
    remaining_minutes: int


class SoftDeleteResponse(BaseModel):
    ok: bool = True
    id: int
