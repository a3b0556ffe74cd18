from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, timedelta

from timedesk.tracker.client import ApiClientError, TimedeskClient
from timedesk.tracker.types import AttendanceIssue, IssueType

logger = logging.getLogger("timedesk.tracker")

DEFAULT_LOOKBACK_DAYS = 31


class Remediation(str, enum.Enum):
    BACKFILL_PUNCH_OUT = "backfillPunchOut"
    CONFIRM_PUNCH_OUT = "confirmPunchOut"
    LEAVE_OR_NOTIFY = "leaveOrNotify"


def blocking_issues(
    issues: Iterable[AttendanceIssue],
    today: date,
    lookback_days: int | None = None,
) -> list[AttendanceIssue]:
    earliest = today - timedelta(days=lookback_days) if lookback_days is not None else date.min
    return [issue for issue in issues if earliest <= issue.date < today]


def lookback_months(today: date, lookback_days: int) -> list[str]:
    """``YYYY-MM`` months overlapping ``[today - lookback_days, today]``, oldest first."""
    cursor = (today - timedelta(days=lookback_days)).replace(day=1)
    months: list[str] = []
    while cursor <= today:
        months.append(cursor.strftime("%Y-%m"))
        cursor = (cursor + timedelta(days=32)).replace(day=1)
    return months


def merge_issues(*groups: Iterable[AttendanceIssue]) -> list[AttendanceIssue]:
    merged: dict[tuple[date, IssueType], AttendanceIssue] = {}
    for group in groups:
        for issue in group:
            merged[(issue.date, issue.type)] = issue
    return sorted(merged.values(), key=lambda item: item.date)


def remediation_for(issue: AttendanceIssue) -> Remediation:
    if issue.type == IssueType.MISSING_PUNCH_OUT:
        return Remediation.BACKFILL_PUNCH_OUT
    if issue.type == IssueType.AUTO_PUNCH:
        return Remediation.CONFIRM_PUNCH_OUT
    return Remediation.LEAVE_OR_NOTIFY


def describe_issue(issue: AttendanceIssue) -> str:
    day = issue.date.isoformat()
    if issue.type == IssueType.MISSING_PUNCH_OUT:
        return f"Missing punch-out on {day}"
    if issue.type == IssueType.AUTO_PUNCH:
        if issue.auto_punch_out_at is not None:
            return f"Auto punched out on {day} at {issue.auto_punch_out_at.strftime('%H:%M')} UTC"
        return f"Auto punched out on {day}"
    return f"No attendance recorded on {day}"


def issue_hint(issue: AttendanceIssue) -> str:
    remediation = remediation_for(issue)
    if remediation == Remediation.BACKFILL_PUNCH_OUT:
        return "Set your punch-out time and log the work you did that day."
    if remediation == Remediation.CONFIRM_PUNCH_OUT:
        return "The system closed this day for you. Confirm your actual punch-out time."
    return "Apply leave for this day or ask an admin to add your attendance."


@dataclass(frozen=True, slots=True)
class IssueRow:
    issue: AttendanceIssue
    label: str
    hint: str
    remediation: Remediation
    blocking: bool


@dataclass(slots=True)
class RemediationState:
    submitting: bool = False
    error: str | None = None
    done: bool = False


def _default_today() -> date:
    return date.today()


class IssueReconciler:
    """Holds recent attendance issues and runs per-issue remediations.

    Without an explicit month every month overlapping the blocking lookback
    window is fetched, so a blocker from the previous month is still listed
    on the first days of a new one. Each remediation keeps its own
    :class:`RemediationState` so one failure is reported inline and can be
    retried without touching the others.
    """

    def __init__(
        self,
        client: TimedeskClient,
        *,
        today: Callable[[], date] = _default_today,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    ) -> None:
        self._client = client
        self._today = today
        self.lookback_days = lookback_days
        self.issues: list[AttendanceIssue] = []
        self.month: str | None = None
        self.error: str | None = None
        self.loading = False
        self.view_open = False
        self.states: dict[date, RemediationState] = {}

    @property
    def blocking(self) -> list[AttendanceIssue]:
        return blocking_issues(self.issues, self._today(), self.lookback_days)

    def rows(self) -> list[IssueRow]:
        today = self._today()
        blocking = set(blocking_issues(self.issues, today, self.lookback_days))
        return [
            IssueRow(
                issue=issue,
                label=describe_issue(issue),
                hint=issue_hint(issue),
                remediation=remediation_for(issue),
                blocking=issue in blocking,
            )
            for issue in self.issues
        ]

    def state_for(self, issue: AttendanceIssue) -> RemediationState:
        return self.states.setdefault(issue.date, RemediationState())

    async def load(self, month: str | None = None) -> None:
        if month is not None:
            self.month = month
        months = [self.month] if self.month is not None else lookback_months(self._today(), self.lookback_days)
        self.loading = True
        try:
            fetched = [await self._client.get_issues(item) for item in months]
            self.issues = merge_issues(*fetched)
            self.error = None
        except ApiClientError as exc:
            self.error = exc.message
        finally:
            self.loading = False

    async def handle_punch_in_rejected(self, exc: ApiClientError) -> None:
        raw = exc.details.get("issues") if exc.details else None
        rejected = [AttendanceIssue.from_payload(item) for item in raw] if isinstance(raw, list) else []
        self.issues = merge_issues(rejected)
        await self.load()
        # the server's list is what blocked the punch, keep it even if the re-fetch misses it
        self.issues = merge_issues(rejected, self.issues)
        self.view_open = True
        logger.info("tracker_punch_in_blocked", extra={"blocking": len(self.blocking)})

    def close_view(self) -> None:
        self.view_open = False

    async def apply_leave(
        self,
        issue: AttendanceIssue,
        *,
        leave_type: str = "PAID",
        reason: str | None = None,
        end_date: date | None = None,
    ) -> bool:
        state = self.state_for(issue)
        state.submitting = True
        state.error = None
        try:
            await self._client.resolve_with_leave(
                issue.date,
                end_date=end_date,
                leave_type=leave_type,
                reason=reason,
            )
        except ApiClientError as exc:
            state.error = exc.message
            return False
        finally:
            state.submitting = False
        state.done = True
        await self.load()
        return True

    async def notify_admin(self, issue: AttendanceIssue, note: str = "") -> bool:
        state = self.state_for(issue)
        state.submitting = True
        state.error = None
        try:
            await self._client.request_manual_entry(issue.date, note)
        except ApiClientError as exc:
            state.error = exc.message
            return False
        finally:
            state.submitting = False
        # The issue stays listed until an admin resolves the request.
        state.done = True
        return True
