from __future__ import annotations

import unittest
from datetime import date

from timedesk.models import AttendanceRecord, Leave, LeaveStatus, LeaveType
from timedesk.services.issues import (
    ISSUE_AUTO_PUNCH,
    ISSUE_MISSING_PUNCH_OUT,
    ISSUE_NO_ATTENDANCE,
    collect_issues,
    list_blocking_issues,
)
from tests.support import TODAY, add_closed_day, add_employee, add_record, make_session, utc

MARCH_START = date(2026, 3, 1)
APRIL_START = date(2026, 4, 1)
SUNDAY_OFF = {6}


def _record(work_date: date, **kwargs) -> AttendanceRecord:  # type: ignore[no-untyped-def]
    kwargs.setdefault("worked_ms", 0)
    kwargs.setdefault("auto_punch_out", False)
    return AttendanceRecord(employee_id=1, work_date=work_date, **kwargs)


class CollectIssuesTests(unittest.TestCase):
    def test_open_and_auto_punched_days_are_reported(self) -> None:
        records = [
            _record(date(2026, 3, 9), first_punch_in=utc(2026, 3, 9, 4), last_punch_in=utc(2026, 3, 9, 4)),
            _record(
                date(2026, 3, 10),
                first_punch_in=utc(2026, 3, 10, 4),
                last_punch_out=utc(2026, 3, 10, 18, 30),
                worked_ms=14 * 3600 * 1000,
                auto_punch_out=True,
                auto_punch_out_at=utc(2026, 3, 10, 18, 30),
            ),
        ]

        issues = collect_issues(
            records=records,
            leaves=[],
            resolved_days=[],
            start=MARCH_START,
            end_exclusive=APRIL_START,
            today=TODAY,
            attendance_start_date=date(2026, 3, 9),
            weekly_off_days=SUNDAY_OFF,
        )

        self.assertEqual(
            [(item.date, item.type) for item in issues],
            [(date(2026, 3, 9), ISSUE_MISSING_PUNCH_OUT), (date(2026, 3, 10), ISSUE_AUTO_PUNCH)],
        )
        self.assertEqual(issues[1].auto_punch_out_at, utc(2026, 3, 10, 18, 30))

    def test_missing_days_skip_weekly_off_leave_and_resolved_days(self) -> None:
        leave = Leave(
            employee_id=1,
            start_date=date(2026, 3, 9),
            end_date=date(2026, 3, 9),
            type=LeaveType.SICK,
            status=LeaveStatus.PENDING,
        )
        rejected = Leave(
            employee_id=1,
            start_date=date(2026, 3, 7),
            end_date=date(2026, 3, 7),
            type=LeaveType.CASUAL,
            status=LeaveStatus.REJECTED,
        )

        issues = collect_issues(
            records=[],
            leaves=[leave, rejected],
            resolved_days=[date(2026, 3, 10)],
            start=MARCH_START,
            end_exclusive=APRIL_START,
            today=TODAY,
            attendance_start_date=date(2026, 3, 6),
            weekly_off_days=SUNDAY_OFF,
        )

        self.assertEqual(
            [(item.date, item.type) for item in issues],
            [(date(2026, 3, 6), ISSUE_NO_ATTENDANCE), (date(2026, 3, 7), ISSUE_NO_ATTENDANCE)],
        )

    def test_today_is_never_reported_as_missing(self) -> None:
        records = [_record(TODAY, first_punch_in=utc(2026, 3, 11, 4), last_punch_in=utc(2026, 3, 11, 4))]

        issues = collect_issues(
            records=records,
            leaves=[],
            resolved_days=[],
            start=MARCH_START,
            end_exclusive=APRIL_START,
            today=TODAY,
            attendance_start_date=TODAY,
            weekly_off_days=SUNDAY_OFF,
        )

        self.assertEqual(issues, [])


class BlockingIssuesTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()

    def tearDown(self) -> None:
        self.db.close()

    def test_blocking_issues_only_cover_earlier_days(self) -> None:
        employee = add_employee(self.db, attendance_start_date=date(2026, 3, 9))
        add_closed_day(self.db, employee, date(2026, 3, 9), 480)
        add_record(
            self.db,
            employee,
            date(2026, 3, 10),
            first_in=utc(2026, 3, 10, 4),
            last_in=utc(2026, 3, 10, 4),
        )
        add_record(
            self.db,
            employee,
            TODAY,
            first_in=utc(2026, 3, 11, 4),
            last_out=utc(2026, 3, 11, 5),
            worked_minutes=60,
            auto_punch_out=True,
            auto_punch_out_at=utc(2026, 3, 11, 5),
        )

        issues = list_blocking_issues(self.db, employee=employee, today=TODAY, lookback_days=31)

        self.assertEqual([(item.date, item.type) for item in issues], [(date(2026, 3, 10), ISSUE_MISSING_PUNCH_OUT)])

    def test_days_before_attendance_start_do_not_block(self) -> None:
        employee = add_employee(self.db, attendance_start_date=TODAY)

        issues = list_blocking_issues(self.db, employee=employee, today=TODAY, lookback_days=31)

        self.assertEqual(issues, [])


if __name__ == "__main__":
    unittest.main()
