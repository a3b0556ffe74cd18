from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from timedesk.db import Base
from timedesk.models import (
    AttendanceRecord,
    Employee,
    PrimaryRole,
    Project,
    Task,
    TaskStatus,
)

# 11:30 in Asia/Kolkata on Wednesday 2026-03-11.
NOW_UTC = datetime(2026, 3, 11, 6, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 11)


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def make_session() -> Session:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()


def override_db(db: Session) -> Callable[[], Generator[Session, None, None]]:
    def _override() -> Generator[Session, None, None]:
        yield db

    return _override


def add_employee(
    db: Session,
    *,
    full_name: str = "Asha Rao",
    email: str | None = None,
    role: PrimaryRole = PrimaryRole.EMPLOYEE,
    sub_roles: list[str] | None = None,
    attendance_start_date: date | None = TODAY,
    reporting_person_id: int | None = None,
) -> Employee:
    employee = Employee(
        full_name=full_name,
        email=email or f"{full_name.lower().replace(' ', '.')}@example.com",
        password_hash="",
        primary_role=role,
        sub_roles=sub_roles or [],
        is_active=True,
        attendance_start_date=attendance_start_date,
        reporting_person_id=reporting_person_id,
    )
    db.add(employee)
    db.commit()
    db.refresh(employee)
    return employee


def add_record(
    db: Session,
    employee: Employee,
    work_date: date,
    *,
    first_in: datetime | None = None,
    last_in: datetime | None = None,
    last_out: datetime | None = None,
    worked_minutes: int = 0,
    auto_punch_out: bool = False,
    auto_punch_out_at: datetime | None = None,
    auto_punch_last_in: datetime | None = None,
) -> AttendanceRecord:
    record = AttendanceRecord(
        employee_id=employee.id,
        work_date=work_date,
        first_punch_in=first_in,
        last_punch_in=last_in,
        last_punch_out=last_out,
        worked_ms=worked_minutes * 60000,
        auto_punch_out=auto_punch_out,
        auto_punch_out_at=auto_punch_out_at,
        auto_punch_last_in=auto_punch_last_in,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def add_closed_day(db: Session, employee: Employee, work_date: date, worked_minutes: int) -> AttendanceRecord:
    start = datetime(work_date.year, work_date.month, work_date.day, 4, 0, tzinfo=timezone.utc)
    return add_record(
        db,
        employee,
        work_date,
        first_in=start,
        last_out=start + timedelta(minutes=worked_minutes),
        worked_minutes=worked_minutes,
    )


def add_task(db: Session, employee: Employee, *, title: str = "Build reports API") -> Task:
    project = Project(title="Client portal", is_personal=False, owner_id=employee.id)
    db.add(project)
    db.flush()
    task = Task(project_id=project.id, title=title, status=TaskStatus.INPROGRESS, created_by_id=employee.id)
    task.assignees.append(employee)
    db.add(task)
    db.commit()
    db.refresh(task)
    return task
