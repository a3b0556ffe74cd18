from __future__ import annotations

import enum
import logging
from collections.abc import Awaitable, Callable
from datetime import date

from timedesk.tracker.budget import (
    DraftValidationError,
    RemainingMinutesBudget,
    TimeLogCapError,
    validate_batch,
)
from timedesk.tracker.client import ApiClientError, TimedeskClient
from timedesk.tracker.formatting import format_minutes_label
from timedesk.tracker.types import TaskRef, TaskTimeEntry

logger = logging.getLogger("timedesk.tracker")

AfterSubmit = Callable[[], Awaitable[None]]


class FlowMode(str, enum.Enum):
    TODAY = "today"
    BACKFILL = "backfill"
    SET_OUT = "setOut"


class FlowStep(str, enum.Enum):
    SET_PUNCH_OUT = "setPunchOut"
    ENTRIES = "entries"
    DONE = "done"
    CANCELLED = "cancelled"


class TimeLogFlow:
    """Draft of task-time entries for one day, checked against the cap.

    ``today``: entries are posted, then the employee is punched out.
    ``backfill``: a punch-out time for a past day is set first, then entries
    for that day are posted. ``setOut``: only the punch-out time is set.
    Closing the flow with :meth:`cancel` discards the draft without a request.
    """

    def __init__(
        self,
        client: TimedeskClient,
        mode: FlowMode,
        *,
        day: date | None = None,
        confirm_auto_punch: bool = False,
        after_submit: AfterSubmit | None = None,
    ) -> None:
        if mode != FlowMode.TODAY and day is None:
            raise ValueError("backfill and setOut flows need a day")
        self._client = client
        self.mode = mode
        self.day = day
        self.confirm_auto_punch = confirm_auto_punch
        self._after_submit = after_submit

        self.entries: list[TaskTimeEntry] = []
        self.budget: RemainingMinutesBudget | None = None
        self.error: str | None = None
        self.submitting = False
        self.step = FlowStep.ENTRIES if mode == FlowMode.TODAY else FlowStep.SET_PUNCH_OUT

    @property
    def is_open(self) -> bool:
        return self.step not in {FlowStep.DONE, FlowStep.CANCELLED}

    @property
    def title(self) -> str:
        if self.mode == FlowMode.TODAY:
            return "Log today's work and punch out"
        if self.confirm_auto_punch:
            return "Confirm actual punch-out time"
        if self.mode == FlowMode.SET_OUT:
            return "Set punch-out time"
        return "Set punch-out time and log work"

    @property
    def remaining(self) -> int:
        return self.budget.remaining_minutes if self.budget is not None else 0

    @property
    def remaining_label(self) -> str:
        return format_minutes_label(self.remaining)

    async def open(self) -> None:
        if self.mode == FlowMode.TODAY:
            await self._load_budget()

    def add_entry(
        self,
        task: TaskRef,
        *,
        minutes: float | None = None,
        hours: float | None = None,
        note: str | None = None,
    ) -> TaskTimeEntry:
        if self.step != FlowStep.ENTRIES:
            raise DraftValidationError("Set the punch-out time before adding entries.")
        entry = TaskTimeEntry(task=task, minutes=minutes, hours=hours, note=note)
        self.entries.append(entry)
        return entry

    def remove_entry(self, entry: TaskTimeEntry) -> None:
        self.entries = [item for item in self.entries if item is not entry]

    def cancel(self) -> None:
        self.entries = []
        self.error = None
        self.step = FlowStep.CANCELLED

    async def set_punch_out(self, hhmm: str) -> bool:
        if self.step != FlowStep.SET_PUNCH_OUT:
            return False
        assert self.day is not None
        self.submitting = True
        self.error = None
        try:
            await self._client.set_punch_out_at(self.day, hhmm)
        except ApiClientError as exc:
            self.error = exc.message
            return False
        finally:
            self.submitting = False

        if self.mode == FlowMode.SET_OUT:
            await self._finish()
            return True
        self.step = FlowStep.ENTRIES
        await self._load_budget()
        return True

    async def submit(self) -> bool:
        if self.step != FlowStep.ENTRIES:
            return False
        if self.budget is None:
            await self._load_budget()
            if self.budget is None:
                return False
        try:
            batch = validate_batch(self.entries, self.remaining)
        except TimeLogCapError as exc:
            self.error = str(exc)
            return False

        self.submitting = True
        self.error = None
        posted = 0
        try:
            for entry, minutes in batch:
                if self.mode == FlowMode.TODAY:
                    await self._client.log_time(entry.task, minutes, entry.note)
                else:
                    assert self.day is not None
                    await self._client.log_time_at(entry.task, minutes, self.day, entry.note)
                self.remove_entry(entry)
                posted += 1
            if self.mode == FlowMode.TODAY:
                await self._client.punch("out")
        except ApiClientError as exc:
            logger.info("tracker_time_log_submit_failed", extra={"mode": self.mode.value, "code": exc.code})
            if posted:
                # logged minutes changed on the server; the retry must see the new cap
                await self._load_budget()
            self.error = exc.message
            return False
        finally:
            self.submitting = False

        await self._finish()
        return True

    async def skip(self) -> bool:
        """Close the flow without logging time; ``today`` still punches out."""
        if self.step != FlowStep.ENTRIES:
            return False
        self.entries = []
        if self.mode == FlowMode.TODAY:
            self.submitting = True
            self.error = None
            try:
                await self._client.punch("out")
            except ApiClientError as exc:
                self.error = exc.message
                return False
            finally:
                self.submitting = False
        await self._finish()
        return True

    async def _load_budget(self) -> None:
        try:
            day_logs = await self._client.get_day_logs(self.day)
        except ApiClientError as exc:
            self.error = exc.message
            return
        self.budget = RemainingMinutesBudget.from_day_logs(day_logs)

    async def _finish(self) -> None:
        self.entries = []
        self.step = FlowStep.DONE
        if self._after_submit is not None:
            await self._after_submit()
