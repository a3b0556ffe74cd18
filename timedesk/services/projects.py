from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from timedesk.errors import ApiError
from timedesk.models import Employee, Project, Task, TaskStatus, task_assignees
from timedesk.security import has_sub_role

PERSONAL_PROJECT_TITLE = "Personal"
MEETING_TASK_TITLE = "Meetings"


def serialize_task(task: Task, *, include_subtasks: bool = True) -> dict[str, object]:
    return {
        "id": task.id,
        "project_id": task.project_id,
        "project_title": task.project.title if task.project is not None else None,
        "parent_task_id": task.parent_task_id,
        "title": task.title,
        "status": task.status,
        "is_meeting_default": bool(task.is_meeting_default),
        "time_spent_minutes": int(task.time_spent_minutes or 0),
        "subtasks": [serialize_task(item) for item in task.subtasks] if include_subtasks else [],
    }


def list_assigned_tasks(db: Session, *, employee: Employee) -> list[Task]:
    """Top-level tasks assigned to the employee, plus parents of assigned subtasks."""
    assigned = list(
        db.scalars(
            select(Task)
            .join(task_assignees, task_assignees.c.task_id == Task.id)
            .join(Project, Project.id == Task.project_id)
            .where(
                task_assignees.c.employee_id == employee.id,
                Project.is_active.is_(True),
            )
            .order_by(Task.project_id.asc(), Task.id.asc())
        ).all()
    )
    roots: dict[int, Task] = {}
    for task in assigned:
        root = task
        while root.parent_task is not None:
            root = root.parent_task
        roots.setdefault(root.id, root)
    return list(roots.values())


def ensure_personal_project(db: Session, *, employee: Employee) -> tuple[Project, Task]:
    project = db.scalar(
        select(Project).where(Project.owner_id == employee.id, Project.is_personal.is_(True))
    )
    created = False
    if project is None:
        project = Project(title=PERSONAL_PROJECT_TITLE, is_personal=True, owner_id=employee.id)
        db.add(project)
        db.flush()
        created = True

    meeting = db.scalar(
        select(Task).where(Task.project_id == project.id, Task.is_meeting_default.is_(True))
    )
    if meeting is None:
        meeting = Task(
            project_id=project.id,
            title=MEETING_TASK_TITLE,
            status=TaskStatus.INPROGRESS,
            is_meeting_default=True,
            created_by_id=employee.id,
        )
        meeting.assignees.append(employee)
        db.add(meeting)
        created = True

    if created:
        db.commit()
        db.refresh(project)
        db.refresh(meeting)
    return project, meeting


def create_project(db: Session, *, owner: Employee, title: str) -> Project:
    if not (owner.is_admin or has_sub_role(owner, "manager")):
        raise ApiError(status_code=403, code="FORBIDDEN", message="Only managers can create projects.")
    project = Project(title=title.strip(), is_personal=False, owner_id=owner.id)
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def create_task(
    db: Session,
    *,
    creator: Employee,
    project_id: int,
    title: str,
    description: str | None = None,
    parent_task_id: int | None = None,
    assigned_to: list[int] | None = None,
) -> Task:
    project = db.get(Project, project_id)
    if project is None or not project.is_active:
        raise ApiError(status_code=404, code="PROJECT_NOT_FOUND", message="Project not found.")
    if project.is_personal and project.owner_id != creator.id:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Cannot add tasks to another personal project.")

    if parent_task_id is not None:
        parent = db.get(Task, parent_task_id)
        if parent is None or parent.project_id != project.id:
            raise ApiError(status_code=404, code="TASK_NOT_FOUND", message="Parent task not found.")

    assignee_ids = list(dict.fromkeys(assigned_to or [creator.id]))
    assignees = list(db.scalars(select(Employee).where(Employee.id.in_(assignee_ids))).all())
    if len(assignees) != len(assignee_ids):
        raise ApiError(status_code=404, code="EMPLOYEE_NOT_FOUND", message="Assignee not found.")

    task = Task(
        project_id=project.id,
        parent_task_id=parent_task_id,
        title=title.strip(),
        description=(description or "").strip() or None,
        status=TaskStatus.PENDING,
        created_by_id=creator.id,
    )
    task.assignees.extend(assignees)
    db.add(task)
    db.commit()
    db.refresh(task)
    return task
