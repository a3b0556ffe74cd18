from __future__ import annotations

import logging
from datetime import date
from typing import Any

import httpx

from timedesk.tracker.session import SessionContext
from timedesk.tracker.settings import TrackerSettings, get_tracker_settings
from timedesk.tracker.types import AttendanceIssue, AttendanceSnapshot, DayLogs, TaskRef

logger = logging.getLogger("timedesk.tracker")

ISSUES_PENDING_CODE = "ATTENDANCE_ISSUES_PENDING"


class ApiClientError(Exception):
    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details or {}

    @property
    def is_issues_pending(self) -> bool:
        return self.status_code == 409 and self.code == ISSUES_PENDING_CODE


def _error_from_response(response: httpx.Response) -> ApiClientError:
    try:
        body = response.json()
    except ValueError:
        body = None
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return ApiClientError(
            response.status_code,
            str(error.get("code") or "HTTP_ERROR"),
            str(error.get("message") or f"Request failed with status {response.status_code}."),
            error.get("details") if isinstance(error.get("details"), dict) else None,
        )
    return ApiClientError(
        response.status_code,
        "HTTP_ERROR",
        f"Request failed with status {response.status_code}.",
    )


class TimedeskClient:
    """Async REST client for the attendance service.

    Every call reads the bearer token from the shared :class:`SessionContext`;
    non-2xx responses and transport failures raise :class:`ApiClientError`.
    """

    def __init__(
        self,
        session: SessionContext,
        *,
        settings: TrackerSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.session = session
        self.settings = settings or get_tracker_settings()
        self._http = http or httpx.AsyncClient(
            base_url=self.settings.api_base_url,
            timeout=self.settings.request_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self._http.request(
                method,
                path,
                json=json,
                params=params,
                headers=self.session.auth_headers(),
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "tracker_request_failed",
                extra={"method": method, "path": path, "error": exc.__class__.__name__},
            )
            raise ApiClientError(0, "NETWORK_ERROR", "Could not reach the server.") from exc

        if response.status_code >= 400:
            error = _error_from_response(response)
            logger.info(
                "tracker_request_rejected",
                extra={"method": method, "path": path, "status_code": response.status_code, "code": error.code},
            )
            raise error
        if not response.content:
            return None
        return response.json()

    async def login(self, email: str, password: str) -> dict[str, Any]:
        body = await self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.session.set(body["access_token"], body["employee"])
        return body["employee"]

    def logout(self) -> None:
        self.session.clear()

    async def get_today(self) -> AttendanceSnapshot | None:
        body = await self._request("GET", "/api/attendance/today")
        attendance = (body or {}).get("attendance")
        if not attendance:
            return None
        return AttendanceSnapshot.from_payload(attendance)

    async def punch(self, action: str, location_label: str | None = None) -> AttendanceSnapshot | None:
        payload: dict[str, Any] = {"action": action}
        if location_label:
            payload["location_label"] = location_label
        body = await self._request("POST", "/api/attendance/punch", json=payload)
        attendance = (body or {}).get("attendance")
        return AttendanceSnapshot.from_payload(attendance) if attendance else None

    async def get_issues(self, month: str | None = None) -> list[AttendanceIssue]:
        params = {"month": month} if month else None
        body = await self._request("GET", "/api/attendance/missing-out", params=params)
        return [AttendanceIssue.from_payload(item) for item in (body or {}).get("issues") or []]

    async def set_punch_out_at(self, day: date, hhmm: str) -> None:
        await self._request("POST", "/api/attendance/punchout-at", json={"date": day.isoformat(), "time": hhmm})

    async def resolve_with_leave(
        self,
        day: date,
        *,
        end_date: date | None = None,
        leave_type: str = "PAID",
        reason: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"date": day.isoformat(), "type": leave_type}
        if end_date is not None:
            payload["end_date"] = end_date.isoformat()
        if reason:
            payload["reason"] = reason
        return await self._request("POST", "/api/attendance/resolve/leave", json=payload)

    async def request_manual_entry(self, day: date, note: str = "") -> dict[str, Any]:
        return await self._request(
            "POST",
            "/api/attendance/manual-request",
            json={"date": day.isoformat(), "note": note},
        )

    async def get_day_logs(self, day: date | None = None) -> DayLogs:
        params = {"date": day.isoformat()} if day else None
        body = await self._request("GET", "/api/worklogs", params=params)
        return DayLogs.from_payload(body)

    async def log_time(self, task: TaskRef, minutes: int, note: str | None = None) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/api/projects/{task.project_id}/tasks/{task.task_id}/time",
            json={"minutes": minutes, "note": note},
        )

    async def log_time_at(
        self,
        task: TaskRef,
        minutes: int,
        day: date,
        note: str | None = None,
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/api/projects/{task.project_id}/tasks/{task.task_id}/time-at",
            json={"minutes": minutes, "note": note, "date": day.isoformat()},
        )

    async def update_time_log(self, log_id: int, minutes: int, note: str | None = None) -> dict[str, Any]:
        return await self._request("PATCH", f"/api/worklogs/{log_id}", json={"minutes": minutes, "note": note})

    async def delete_time_log(self, log_id: int) -> None:
        await self._request("DELETE", f"/api/worklogs/{log_id}")

    async def get_assigned_tasks(self) -> list[TaskRef]:
        body = await self._request("GET", "/api/projects/tasks/assigned")
        refs: list[TaskRef] = []

        def _walk(items: list[dict[str, Any]]) -> None:
            for item in items:
                refs.append(
                    TaskRef(
                        project_id=int(item["project_id"]),
                        task_id=int(item["id"]),
                        title=str(item.get("title") or ""),
                        is_meeting=bool(item.get("is_meeting_default")),
                    )
                )
                _walk(item.get("subtasks") or [])

        _walk(body or [])
        return refs

    async def get_meeting_task(self) -> TaskRef:
        body = await self._request("GET", "/api/projects/personal")
        meeting = body["meeting_task"]
        return TaskRef(
            project_id=int(meeting["project_id"]),
            task_id=int(meeting["id"]),
            title=str(meeting.get("title") or ""),
            is_meeting=True,
        )
