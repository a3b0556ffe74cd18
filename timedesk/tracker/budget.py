from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from timedesk.tracker.types import DayLogs, TaskTimeEntry

BREAK_MINUTES = 60


class TimeLogCapError(Exception):
    def __init__(self, requested: int, remaining: int):
        self.requested = requested
        self.remaining = remaining
        self.overage = requested - remaining
        super().__init__(
            f"Requested {requested} minutes exceeds the remaining time by {self.overage} minutes."
        )


class DraftValidationError(Exception):
    pass


def cap_minutes(worked_minutes: int, break_minutes: int = BREAK_MINUTES) -> int:
    return max(0, int(worked_minutes) - break_minutes)


def remaining_minutes(worked_minutes: int, logged_minutes: int, break_minutes: int = BREAK_MINUTES) -> int:
    return max(0, cap_minutes(worked_minutes, break_minutes) - int(logged_minutes))


@dataclass(frozen=True, slots=True)
class RemainingMinutesBudget:
    worked_minutes: int
    logged_minutes: int
    cap_minutes: int
    remaining_minutes: int

    @classmethod
    def compute(
        cls,
        worked_minutes: int,
        logged_minutes: int,
        break_minutes: int = BREAK_MINUTES,
    ) -> RemainingMinutesBudget:
        return cls(
            worked_minutes=int(worked_minutes),
            logged_minutes=int(logged_minutes),
            cap_minutes=cap_minutes(worked_minutes, break_minutes),
            remaining_minutes=remaining_minutes(worked_minutes, logged_minutes, break_minutes),
        )

    @classmethod
    def from_day_logs(cls, day_logs: DayLogs) -> RemainingMinutesBudget:
        if day_logs.cap_minutes is None:
            return cls.compute(day_logs.worked_minutes, day_logs.logged_minutes)
        cap = max(0, int(day_logs.cap_minutes))
        return cls(
            worked_minutes=day_logs.worked_minutes,
            logged_minutes=day_logs.logged_minutes,
            cap_minutes=cap,
            remaining_minutes=max(0, cap - day_logs.logged_minutes),
        )

    def excluding(self, minutes: int) -> RemainingMinutesBudget:
        """Budget with one existing entry taken out of the logged total."""
        logged = max(0, self.logged_minutes - int(minutes))
        return RemainingMinutesBudget(
            worked_minutes=self.worked_minutes,
            logged_minutes=logged,
            cap_minutes=self.cap_minutes,
            remaining_minutes=max(0, self.cap_minutes - logged),
        )


def normalize_entries(entries: Iterable[TaskTimeEntry]) -> list[tuple[TaskTimeEntry, int]]:
    """Pair each usable entry with its minute total; unusable ones are dropped."""
    normalized: list[tuple[TaskTimeEntry, int]] = []
    for entry in entries:
        minutes = entry.total_minutes
        if minutes is None:
            continue
        normalized.append((entry, minutes))
    return normalized


def validate_batch(entries: Iterable[TaskTimeEntry], remaining: int) -> list[tuple[TaskTimeEntry, int]]:
    normalized = normalize_entries(entries)
    requested = sum(minutes for _, minutes in normalized)
    if requested > remaining:
        raise TimeLogCapError(requested, remaining)
    return normalized


def validate_edit(new_minutes: int, budget: RemainingMinutesBudget, original_minutes: int) -> int:
    if new_minutes is None or new_minutes <= 0:
        raise DraftValidationError("Minutes must be greater than zero.")
    remaining = budget.excluding(original_minutes).remaining_minutes
    if new_minutes > remaining:
        raise TimeLogCapError(int(new_minutes), remaining)
    return int(new_minutes)
