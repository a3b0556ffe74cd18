from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from timedesk.audit import audit_request
from timedesk.db import get_db
from timedesk.models import Employee
from timedesk.schemas import (
    DayLogsResponse,
    PersonalProjectResponse,
    ProjectCreate,
    ProjectRead,
    SoftDeleteResponse,
    TaskCreate,
    TaskRead,
    TimeLogAtCreate,
    TimeLogCreate,
    TimeLogRead,
    TimeLogUpdate,
)
from timedesk.security import require_employee
from timedesk.services.projects import (
    create_project,
    create_task,
    ensure_personal_project,
    list_assigned_tasks,
    serialize_task,
)
from timedesk.services.timeutils import local_day, utcnow
from timedesk.services.worklogs import (
    day_budget,
    delete_time_log,
    list_day_logs,
    log_time,
    update_time_log,
)

router = APIRouter(prefix="/api/projects", tags=["projects"])
worklogs_router = APIRouter(prefix="/api/worklogs", tags=["worklogs"])


@router.get("/tasks/assigned", response_model=list[TaskRead])
def get_assigned_tasks(
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> list[TaskRead]:
    return [TaskRead.model_validate(serialize_task(task)) for task in list_assigned_tasks(db, employee=employee)]


@router.get("/personal", response_model=PersonalProjectResponse)
def get_personal_project(
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> PersonalProjectResponse:
    project, meeting = ensure_personal_project(db, employee=employee)
    return PersonalProjectResponse(
        project=ProjectRead.model_validate(project),
        meeting_task=TaskRead.model_validate(serialize_task(meeting)),
    )


@router.post("", response_model=ProjectRead, status_code=201)
def post_project(
    payload: ProjectCreate,
    request: Request,
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> ProjectRead:
    project = create_project(db, owner=employee, title=payload.title)
    audit_request(db, request, actor=employee, action="PROJECT_CREATED", entity_type="project", entity_id=project.id)
    return ProjectRead.model_validate(project)


@router.post("/{project_id}/tasks", response_model=TaskRead, status_code=201)
def post_task(
    project_id: int,
    payload: TaskCreate,
    request: Request,
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> TaskRead:
    task = create_task(
        db,
        creator=employee,
        project_id=project_id,
        title=payload.title,
        description=payload.description,
        parent_task_id=payload.parent_task_id,
        assigned_to=payload.assigned_to,
    )
    audit_request(db, request, actor=employee, action="TASK_CREATED", entity_type="task", entity_id=task.id)
    return TaskRead.model_validate(serialize_task(task))


@router.post("/{project_id}/tasks/{task_id}/time", response_model=TimeLogRead, status_code=201)
def post_task_time(
    project_id: int,
    task_id: int,
    payload: TimeLogCreate,
    request: Request,
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> TimeLogRead:
    log = log_time(
        db,
        actor=employee,
        project_id=project_id,
        task_id=task_id,
        minutes=payload.minutes,
        note=payload.note,
    )
    audit_request(
        db,
        request,
        actor=employee,
        action="TIME_LOGGED",
        entity_type="time_log",
        entity_id=log.id,
        details={"task_id": task_id, "minutes": payload.minutes},
    )
    return TimeLogRead.model_validate(log)


@router.post("/{project_id}/tasks/{task_id}/time-at", response_model=TimeLogRead, status_code=201)
def post_task_time_at(
    project_id: int,
    task_id: int,
    payload: TimeLogAtCreate,
    request: Request,
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> TimeLogRead:
    log = log_time(
        db,
        actor=employee,
        project_id=project_id,
        task_id=task_id,
        minutes=payload.minutes,
        note=payload.note,
        day_date=payload.date,
        for_employee=payload.for_employee,
    )
    audit_request(
        db,
        request,
        actor=employee,
        action="TIME_LOGGED_AT",
        entity_type="time_log",
        entity_id=log.id,
        details={
            "task_id": task_id,
            "minutes": payload.minutes,
            "work_date": payload.date.isoformat(),
            "employee_id": log.employee_id,
        },
    )
    return TimeLogRead.model_validate(log)


@worklogs_router.get("", response_model=DayLogsResponse)
def get_day_logs(
    day: date | None = Query(default=None, alias="date"),
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> DayLogsResponse:
    now = utcnow()
    day_date = day or local_day(now)
    budget = day_budget(db, employee_id=employee.id, day_date=day_date, now_utc=now)
    logs = list_day_logs(db, employee_id=employee.id, day_date=day_date)
    return DayLogsResponse(
        date=day_date,
        logs=[TimeLogRead.model_validate(item) for item in logs],
        logged_minutes=budget.logged_minutes,
        worked_minutes=budget.worked_minutes,
        cap_minutes=budget.cap_minutes,
        remaining_minutes=budget.remaining_minutes,
    )


@worklogs_router.patch("/{log_id}", response_model=TimeLogRead)
def patch_time_log(
    log_id: int,
    payload: TimeLogUpdate,
    request: Request,
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> TimeLogRead:
    log = update_time_log(db, actor=employee, log_id=log_id, minutes=payload.minutes, note=payload.note)
    audit_request(
        db,
        request,
        actor=employee,
        action="TIME_LOG_UPDATED",
        entity_type="time_log",
        entity_id=log.id,
        details={"minutes": payload.minutes},
    )
    return TimeLogRead.model_validate(log)


@worklogs_router.delete("/{log_id}", response_model=SoftDeleteResponse)
def remove_time_log(
    log_id: int,
    request: Request,
    employee: Employee = Depends(require_employee),
    db: Session = Depends(get_db),
) -> SoftDeleteResponse:
    deleted_id = delete_time_log(db, actor=employee, log_id=log_id)
    audit_request(db, request, actor=employee, action="TIME_LOG_DELETED", entity_type="time_log", entity_id=deleted_id)
    return SoftDeleteResponse(id=deleted_id)
