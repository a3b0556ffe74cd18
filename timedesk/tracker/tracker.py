from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from timedesk.tracker.budget import (
    DraftValidationError,
    RemainingMinutesBudget,
    TimeLogCapError,
    validate_edit,
)
from timedesk.tracker.client import ApiClientError, TimedeskClient
from timedesk.tracker.clock import SessionClock
from timedesk.tracker.flows import FlowMode, TimeLogFlow
from timedesk.tracker.location import resolve_location_label
from timedesk.tracker.reconciliation import IssueReconciler, Remediation, remediation_for
from timedesk.tracker.scheduler import Scheduler
from timedesk.tracker.settings import TrackerSettings, get_tracker_settings
from timedesk.tracker.types import AttendanceIssue

logger = logging.getLogger("timedesk.tracker")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttendanceTracker:
    """Employee-side attendance session: clock, issues and logging flows.

    The server stays authoritative; every successful mutation is followed by
    a re-fetch of the snapshot and, where relevant, the issue list.
    """

    def __init__(
        self,
        client: TimedeskClient,
        *,
        settings: TrackerSettings | None = None,
        scheduler: Scheduler | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.client = client
        self.settings = settings or get_tracker_settings()
        self._now = now
        self._tz = ZoneInfo(self.settings.timezone)
        self.clock = SessionClock(client.get_today, scheduler=scheduler, now=now, settings=self.settings)
        self.reconciler = IssueReconciler(
            client,
            today=self.today,
            lookback_days=self.settings.issue_lookback_days,
        )
        self.flow: TimeLogFlow | None = None
        self.error: str | None = None
        self.submitting = False

    def today(self) -> date:
        return self._now().astimezone(self._tz).date()

    async def start(self) -> None:
        await self.clock.start()
        await self.reconciler.load()

    def stop(self) -> None:
        self.clock.stop()
        self.flow = None

    async def logout(self) -> None:
        self.stop()
        self.client.logout()

    async def punch_in(self, *, lat: float | None = None, lon: float | None = None) -> bool:
        if self.submitting:
            return False
        self.submitting = True
        self.error = None
        try:
            label = await resolve_location_label(lat, lon, settings=self.settings)
            await self.client.punch("in", label)
        except ApiClientError as exc:
            if exc.is_issues_pending:
                await self.reconciler.handle_punch_in_rejected(exc)
            else:
                self.error = exc.message
            return False
        finally:
            self.submitting = False
        await self.clock.refresh()
        return True

    async def begin_punch_out(self) -> TimeLogFlow:
        self.flow = TimeLogFlow(self.client, FlowMode.TODAY, after_submit=self.clock.refresh)
        await self.flow.open()
        return self.flow

    def begin_remediation(self, issue: AttendanceIssue, *, set_out_only: bool = False) -> TimeLogFlow:
        remediation = remediation_for(issue)
        if remediation == Remediation.LEAVE_OR_NOTIFY:
            raise DraftValidationError("Use apply leave or notify admin for days without attendance.")
        self.flow = TimeLogFlow(
            self.client,
            FlowMode.SET_OUT if set_out_only else FlowMode.BACKFILL,
            day=issue.date,
            confirm_auto_punch=remediation == Remediation.CONFIRM_PUNCH_OUT,
            after_submit=self.reconciler.load,
        )
        return self.flow

    def close_flow(self) -> None:
        if self.flow is not None:
            self.flow.cancel()
        self.flow = None

    async def edit_time_log(self, log_id: int, minutes: int, note: str | None = None, *, day: date | None = None) -> bool:
        self.submitting = True
        self.error = None
        try:
            day_logs = await self.client.get_day_logs(day)
            original = next((item for item in day_logs.logs if item.id == log_id), None)
            if original is None:
                self.error = "Time log not found."
                return False
            budget = RemainingMinutesBudget.from_day_logs(day_logs)
            validate_edit(minutes, budget, original.minutes)
            await self.client.update_time_log(log_id, minutes, note)
        except (ApiClientError, TimeLogCapError, DraftValidationError) as exc:
            self.error = exc.message if isinstance(exc, ApiClientError) else str(exc)
            return False
        finally:
            self.submitting = False
        return True
