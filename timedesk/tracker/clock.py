from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from timedesk.tracker.client import ApiClientError
from timedesk.tracker.formatting import format_elapsed
from timedesk.tracker.scheduler import AsyncioScheduler, Scheduler, TimerHandle
from timedesk.tracker.settings import TrackerSettings, get_tracker_settings
from timedesk.tracker.types import AttendanceSnapshot

logger = logging.getLogger("timedesk.tracker")

SnapshotFetcher = Callable[[], Awaitable[AttendanceSnapshot | None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def seconds_until_rollover(now: datetime, tz: ZoneInfo, delay_seconds: float) -> float:
    local_now = now.astimezone(tz)
    next_midnight = datetime.combine(local_now.date() + timedelta(days=1), time.min, tzinfo=tz)
    return max(0.0, (next_midnight - local_now).total_seconds() + delay_seconds)


class SessionClock:
    """Live elapsed-time display for today's attendance snapshot.

    While the snapshot is open the value is recomputed every tick from
    ``worked_ms + (now - last_punch_in)`` and the snapshot itself is re-fetched
    on a slower poll, so a server-side auto punch-out stops the ticking. A
    one-shot timer shortly after local midnight forces a refresh for the new
    day. Fetch failures keep the previous snapshot and set :attr:`error`.
    """

    def __init__(
        self,
        fetch_snapshot: SnapshotFetcher,
        *,
        scheduler: Scheduler | None = None,
        now: Callable[[], datetime] = _utcnow,
        settings: TrackerSettings | None = None,
        on_change: Callable[[int], None] | None = None,
    ) -> None:
        self._fetch_snapshot = fetch_snapshot
        self._scheduler = scheduler or AsyncioScheduler()
        self._now = now
        self._settings = settings or get_tracker_settings()
        self._on_change = on_change
        self._tz = ZoneInfo(self._settings.timezone)

        self.snapshot: AttendanceSnapshot | None = None
        self.elapsed_ms = 0
        self.error: str | None = None
        self.loading = False
        self._hidden = False
        self._tick: TimerHandle | None = None
        self._poll: TimerHandle | None = None
        self._rollover: TimerHandle | None = None

    @property
    def is_open(self) -> bool:
        return self.snapshot is not None and self.snapshot.is_open

    @property
    def display(self) -> str:
        return format_elapsed(self.elapsed_ms)

    async def start(self) -> None:
        await self.refresh()
        self._schedule_rollover()

    def stop(self) -> None:
        for handle in (self._tick, self._poll, self._rollover):
            if handle is not None:
                handle.cancel()
        self._tick = None
        self._poll = None
        self._rollover = None

    async def refresh(self) -> None:
        self.loading = True
        try:
            snapshot = await self._fetch_snapshot()
        except ApiClientError as exc:
            self.error = exc.message
            logger.warning("tracker_snapshot_fetch_failed", extra={"code": exc.code, "status_code": exc.status_code})
            return
        finally:
            self.loading = False
        self.error = None
        self.apply_snapshot(snapshot)

    def apply_snapshot(self, snapshot: AttendanceSnapshot | None) -> None:
        if self._tick is not None:
            self._tick.cancel()
            self._tick = None
        self.snapshot = snapshot
        self._set_elapsed(self._compute(), reset=True)

        if snapshot is not None and snapshot.is_open:
            self._tick = self._scheduler.every(self._settings.tick_interval_seconds, self.recompute, name="tick")
            if self._poll is None or not self._poll.active:
                self._poll = self._scheduler.every(self._settings.poll_interval_seconds, self.refresh, name="poll")
        elif self._poll is not None:
            self._poll.cancel()
            self._poll = None

    def recompute(self) -> None:
        self._set_elapsed(self._compute(), reset=False)

    def on_visibility_change(self, hidden: bool) -> None:
        was_hidden = self._hidden
        self._hidden = hidden
        if was_hidden and not hidden:
            self.recompute()

    def _compute(self) -> int:
        if self.snapshot is None:
            return 0
        return self.snapshot.elapsed_ms(self._now())

    def _set_elapsed(self, value: int, *, reset: bool) -> None:
        # Within one snapshot the value never goes backwards, even if the clock does.
        new_value = value if reset else max(self.elapsed_ms, value)
        changed = new_value != self.elapsed_ms
        self.elapsed_ms = new_value
        if changed and self._on_change is not None:
            self._on_change(new_value)

    def _schedule_rollover(self) -> None:
        if self._rollover is not None:
            self._rollover.cancel()
        delay = seconds_until_rollover(self._now(), self._tz, self._settings.rollover_delay_seconds)
        self._rollover = self._scheduler.once(delay, self._on_rollover, name="rollover")

    async def _on_rollover(self) -> None:
        logger.info("tracker_day_rollover")
        await self.refresh()
        self._schedule_rollover()
