from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any


class IssueType(str, enum.Enum):
    MISSING_PUNCH_OUT = "missingPunchOut"
    AUTO_PUNCH = "autoPunch"
    NO_ATTENDANCE = "noAttendance"


def parse_ts(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_day(value: Any) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass(frozen=True, slots=True)
class AttendanceSnapshot:
    """Server view of today's attendance. Replaced wholesale on every fetch."""

    first_punch_in: datetime | None = None
    last_punch_in: datetime | None = None
    last_punch_out: datetime | None = None
    worked_ms: int = 0
    location_label: str | None = None
    day: date | None = None
    auto_punch_out: bool = False
    auto_punch_out_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.last_punch_in is not None and self.last_punch_out is None

    def elapsed_ms(self, now: datetime) -> int:
        if not self.is_open:
            return self.worked_ms
        assert self.last_punch_in is not None
        delta_ms = int((now - self.last_punch_in).total_seconds() * 1000)
        return self.worked_ms + max(0, delta_ms)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> AttendanceSnapshot:
        return cls(
            first_punch_in=parse_ts(payload.get("first_punch_in")),
            last_punch_in=parse_ts(payload.get("last_punch_in")),
            last_punch_out=parse_ts(payload.get("last_punch_out")),
            worked_ms=int(payload.get("worked_ms") or 0),
            location_label=payload.get("location_label"),
            day=parse_day(payload["date"]) if payload.get("date") else None,
            auto_punch_out=bool(payload.get("auto_punch_out")),
            auto_punch_out_at=parse_ts(payload.get("auto_punch_out_at")),
        )


@dataclass(frozen=True, slots=True)
class AttendanceIssue:
    date: date
    type: IssueType
    auto_punch_out_at: datetime | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> AttendanceIssue:
        return cls(
            date=parse_day(payload["date"]),
            type=IssueType(payload["type"]),
            auto_punch_out_at=parse_ts(payload.get("auto_punch_out_at")),
        )


@dataclass(frozen=True, slots=True)
class TaskRef:
    project_id: int
    task_id: int
    title: str = ""
    is_meeting: bool = False


@dataclass(slots=True)
class TaskTimeEntry:
    """One draft line of a time-logging flow.

    Either ``minutes`` alone or ``hours`` plus ``minutes`` may be given.
    """

    task: TaskRef
    minutes: float | None = None
    hours: float | None = None
    note: str | None = None

    @property
    def total_minutes(self) -> int | None:
        total = 0.0
        for value, factor in ((self.hours, 60), (self.minutes, 1)):
            if value is None:
                continue
            try:
                number = float(value)
            except (TypeError, ValueError):
                return None
            if not math.isfinite(number):
                return None
            total += number * factor
        if total <= 0:
            return None
        rounded = int(round(total))
        return rounded if rounded > 0 else None


@dataclass(frozen=True, slots=True)
class TimeLogRecord:
    id: int
    task_id: int
    day: date
    minutes: int
    note: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> TimeLogRecord:
        return cls(
            id=int(payload["id"]),
            task_id=int(payload["task_id"]),
            day=parse_day(payload["date"]),
            minutes=int(payload["minutes"]),
            note=payload.get("note"),
        )


@dataclass(frozen=True, slots=True)
class DayLogs:
    day: date
    worked_minutes: int
    logged_minutes: int
    cap_minutes: int | None = None
    remaining_minutes: int | None = None
    logs: list[TimeLogRecord] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> DayLogs:
        return cls(
            day=parse_day(payload["date"]),
            worked_minutes=int(payload.get("worked_minutes") or 0),
            logged_minutes=int(payload.get("logged_minutes") or 0),
            cap_minutes=payload.get("cap_minutes"),
            remaining_minutes=payload.get("remaining_minutes"),
            logs=[TimeLogRecord.from_payload(item) for item in payload.get("logs") or []],
        )
