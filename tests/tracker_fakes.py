from __future__ import annotations

import inspect
from datetime import date, datetime, timedelta
from typing import Any

from timedesk.tracker.client import ApiClientError
from timedesk.tracker.types import AttendanceIssue, AttendanceSnapshot, DayLogs, TaskRef


class FakeHandle:
    def __init__(self, name: str, callback, delay: float, repeat: bool):  # type: ignore[no-untyped-def]
        self.name = name
        self.callback = callback
        self.delay = delay
        self.repeat = repeat
        self.cancelled = False

    @property
    def active(self) -> bool:
        return not self.cancelled

    def cancel(self) -> None:
        self.cancelled = True

    async def fire(self) -> None:
        result = self.callback()
        if inspect.isawaitable(result):
            await result


class FakeScheduler:
    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []

    def every(self, interval_seconds, callback, *, name):  # type: ignore[no-untyped-def]
        handle = FakeHandle(name, callback, interval_seconds, True)
        self.handles.append(handle)
        return handle

    def once(self, delay_seconds, callback, *, name):  # type: ignore[no-untyped-def]
        handle = FakeHandle(name, callback, delay_seconds, False)
        self.handles.append(handle)
        return handle

    def active(self, name: str) -> list[FakeHandle]:
        return [item for item in self.handles if item.name == name and item.active]


class ManualClock:
    def __init__(self, start: datetime):
        self.value = start

    def __call__(self) -> datetime:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value = self.value + timedelta(seconds=seconds)


class FakeTrackerClient:
    """Records calls in order; ``failures`` maps a method name to the error it raises."""

    def __init__(
        self,
        *,
        day_logs: DayLogs | None = None,
        issues: list[AttendanceIssue] | None = None,
        issues_by_month: dict[str, list[AttendanceIssue]] | None = None,
        snapshot: AttendanceSnapshot | None = None,
    ) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.failures: dict[str, ApiClientError] = {}
        self.fail_after: dict[str, int] = {}
        self.day_logs = day_logs
        self.issues = issues or []
        self.issues_by_month = issues_by_month
        self.snapshot = snapshot
        self.logged_out = False

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        budget = self.fail_after.get(name)
        if budget is not None:
            if budget <= 0:
                raise self.failures[name]
            self.fail_after[name] = budget - 1
            return
        if name in self.failures:
            raise self.failures[name]

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def get_today(self) -> AttendanceSnapshot | None:
        self._record("get_today")
        return self.snapshot

    async def punch(self, action: str, location_label: str | None = None) -> AttendanceSnapshot | None:
        self._record("punch", action, location_label)
        return self.snapshot

    async def get_issues(self, month: str | None = None) -> list[AttendanceIssue]:
        self._record("get_issues", month)
        if self.issues_by_month is not None:
            return list(self.issues_by_month.get(month or "", []))
        return list(self.issues)

    async def set_punch_out_at(self, day: date, hhmm: str) -> None:
        self._record("set_punch_out_at", day, hhmm)

    async def resolve_with_leave(self, day: date, *, end_date=None, leave_type="PAID", reason=None):  # type: ignore[no-untyped-def]
        self._record("resolve_with_leave", day, leave_type)
        return {"id": 1}

    async def request_manual_entry(self, day: date, note: str = "") -> dict[str, Any]:
        self._record("request_manual_entry", day, note)
        return {"id": 1}

    async def get_day_logs(self, day: date | None = None) -> DayLogs:
        self._record("get_day_logs", day)
        assert self.day_logs is not None
        return self.day_logs

    async def log_time(self, task: TaskRef, minutes: int, note: str | None = None) -> dict[str, Any]:
        self._record("log_time", task.task_id, minutes)
        return {"id": len(self.calls)}

    async def log_time_at(self, task: TaskRef, minutes: int, day: date, note: str | None = None) -> dict[str, Any]:
        self._record("log_time_at", task.task_id, minutes, day)
        return {"id": len(self.calls)}

    async def update_time_log(self, log_id: int, minutes: int, note: str | None = None) -> dict[str, Any]:
        self._record("update_time_log", log_id, minutes)
        return {"id": log_id}

    def logout(self) -> None:
        self.logged_out = True
