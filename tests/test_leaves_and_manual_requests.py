from __future__ import annotations

import unittest
from datetime import date

from timedesk.errors import ApiError
from timedesk.models import LeaveStatus, LeaveType, ManualRequestStatus, PrimaryRole
from timedesk.services.attendance import get_day_record
from timedesk.services.issues import list_blocking_issues
from timedesk.services.leaves import (
    create_leave,
    decide_leave,
    list_assigned_leaves,
    resolve_issue_with_leave,
)
from timedesk.services.manual_requests import (
    create_manual_request,
    list_manual_requests,
    resolve_manual_request,
    update_request_status,
)
from timedesk.services.timeutils import normalize_ts
from tests.support import NOW_UTC, TODAY, add_employee, add_record, make_session, utc

MONDAY = date(2026, 3, 9)
TUESDAY = date(2026, 3, 10)


class LeaveTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.manager = add_employee(self.db, full_name="Meera Iyer", sub_roles=["manager"])
        self.employee = add_employee(
            self.db,
            attendance_start_date=MONDAY,
            reporting_person_id=self.manager.id,
        )

    def tearDown(self) -> None:
        self.db.close()

    def test_resolve_with_leave_clears_no_attendance_issue(self) -> None:
        self.assertEqual(len(list_blocking_issues(self.db, employee=self.employee, today=TODAY, lookback_days=31)), 2)

        leave = resolve_issue_with_leave(
            self.db,
            actor=self.employee,
            start_date=MONDAY,
            end_date=TUESDAY,
            leave_type=LeaveType.SICK,
            reason=None,
            now_utc=NOW_UTC,
        )

        self.assertEqual(leave.status, LeaveStatus.APPROVED)
        self.assertTrue(leave.resolved_issue)
        self.assertEqual(leave.reason, "Resolved attendance issue")
        self.assertEqual(list_blocking_issues(self.db, employee=self.employee, today=TODAY, lookback_days=31), [])

    def test_resolve_with_leave_rejects_future_dates(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            resolve_issue_with_leave(
                self.db,
                actor=self.employee,
                start_date=TODAY,
                end_date=date(2026, 3, 12),
                leave_type=LeaveType.CASUAL,
                reason="Trip",
                now_utc=NOW_UTC,
            )

        self.assertEqual(ctx.exception.code, "FUTURE_DATE_NOT_ALLOWED")

    def test_employee_cannot_resolve_for_colleague(self) -> None:
        colleague = add_employee(self.db, full_name="Ravi Kumar")

        with self.assertRaises(ApiError) as ctx:
            resolve_issue_with_leave(
                self.db,
                actor=colleague,
                start_date=MONDAY,
                end_date=None,
                leave_type=LeaveType.SICK,
                reason=None,
                employee_id=self.employee.id,
                now_utc=NOW_UTC,
            )

        self.assertEqual(ctx.exception.status_code, 403)

    def test_reporting_person_decides_pending_leave_once(self) -> None:
        leave = create_leave(
            self.db,
            employee=self.employee,
            start_date=date(2026, 3, 16),
            end_date=date(2026, 3, 17),
            leave_type=LeaveType.PAID,
            reason="Family event",
        )
        self.assertEqual([item.id for item in list_assigned_leaves(self.db, approver=self.manager)], [leave.id])

        decided = decide_leave(self.db, approver=self.manager, leave_id=leave.id, approve=True, admin_message=" Enjoy ")
        self.assertEqual(decided.status, LeaveStatus.APPROVED)
        self.assertEqual(decided.admin_message, "Enjoy")

        with self.assertRaises(ApiError) as ctx:
            decide_leave(self.db, approver=self.manager, leave_id=leave.id, approve=False)
        self.assertEqual(ctx.exception.code, "LEAVE_ALREADY_DECIDED")

    def test_unrelated_employee_cannot_decide(self) -> None:
        leave = create_leave(
            self.db,
            employee=self.employee,
            start_date=date(2026, 3, 16),
            end_date=date(2026, 3, 16),
            leave_type=LeaveType.CASUAL,
            reason=None,
        )
        outsider = add_employee(self.db, full_name="Ravi Kumar")

        with self.assertRaises(ApiError) as ctx:
            decide_leave(self.db, approver=outsider, leave_id=leave.id, approve=True)

        self.assertEqual(ctx.exception.status_code, 403)

    def test_inverted_range_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            create_leave(
                self.db,
                employee=self.employee,
                start_date=date(2026, 3, 17),
                end_date=date(2026, 3, 16),
                leave_type=LeaveType.CASUAL,
                reason=None,
            )

        self.assertEqual(ctx.exception.code, "INVALID_DATE_RANGE")


class ManualRequestTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.employee = add_employee(self.db, attendance_start_date=TUESDAY)
        self.hr = add_employee(self.db, full_name="Kavya HR", sub_roles=["hr"])

    def tearDown(self) -> None:
        self.db.close()

    def test_second_open_request_for_same_day_conflicts(self) -> None:
        create_manual_request(self.db, employee=self.employee, day_date=TUESDAY, note="Forgot to punch", now_utc=NOW_UTC)

        with self.assertRaises(ApiError) as ctx:
            create_manual_request(self.db, employee=self.employee, day_date=TUESDAY, note="Again", now_utc=NOW_UTC)

        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(ctx.exception.code, "MANUAL_REQUEST_EXISTS")

    def test_request_for_today_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            create_manual_request(self.db, employee=self.employee, day_date=TODAY, note="x", now_utc=NOW_UTC)

        self.assertEqual(ctx.exception.code, "BACKFILL_PAST_DAYS_ONLY")

    def test_visibility_is_scoped_for_plain_employees(self) -> None:
        other = add_employee(self.db, full_name="Ravi Kumar", attendance_start_date=TUESDAY)
        create_manual_request(self.db, employee=self.employee, day_date=TUESDAY, note="a", now_utc=NOW_UTC)
        create_manual_request(self.db, employee=other, day_date=TUESDAY, note="b", now_utc=NOW_UTC)

        self.assertEqual(len(list_manual_requests(self.db, viewer=self.employee)), 1)
        self.assertEqual(len(list_manual_requests(self.db, viewer=self.hr)), 2)

    def test_acknowledge_then_resolve_writes_attendance(self) -> None:
        request_row = create_manual_request(
            self.db,
            employee=self.employee,
            day_date=TUESDAY,
            note="Phone died",
            now_utc=NOW_UTC,
        )
        acked = update_request_status(self.db, request_id=request_row.id, status=ManualRequestStatus.ACKED, now_utc=NOW_UTC)
        self.assertEqual(normalize_ts(acked.acknowledged_at), NOW_UTC)

        resolved = resolve_manual_request(
            self.db,
            resolver=self.hr,
            request_id=request_row.id,
            first_punch_in="09:00",
            last_punch_out="18:30",
            break_minutes=60,
            admin_note="Confirmed with lead",
            now_utc=NOW_UTC,
        )

        self.assertEqual(resolved.status, ManualRequestStatus.COMPLETED)
        self.assertEqual(resolved.resolved_by_id, self.hr.id)
        record = get_day_record(self.db, employee_id=self.employee.id, day_date=TUESDAY)
        self.assertIsNotNone(record)
        self.assertEqual(record.worked_ms, 510 * 60000)
        self.assertEqual(normalize_ts(record.first_punch_in), utc(2026, 3, 10, 3, 30))
        self.assertEqual(list_blocking_issues(self.db, employee=self.employee, today=TODAY, lookback_days=31), [])

    def test_resolve_prefers_total_minutes_and_clears_auto_punch(self) -> None:
        add_record(
            self.db,
            self.employee,
            TUESDAY,
            first_in=utc(2026, 3, 10, 3, 30),
            last_out=utc(2026, 3, 10, 18, 30),
            worked_minutes=900,
            auto_punch_out=True,
            auto_punch_out_at=utc(2026, 3, 10, 18, 30),
        )
        request_row = create_manual_request(self.db, employee=self.employee, day_date=TUESDAY, note="x", now_utc=NOW_UTC)

        resolve_manual_request(
            self.db,
            resolver=self.hr,
            request_id=request_row.id,
            first_punch_in="09:00",
            last_punch_out="17:00",
            total_minutes=420,
            now_utc=NOW_UTC,
        )

        record = get_day_record(self.db, employee_id=self.employee.id, day_date=TUESDAY)
        self.assertEqual(record.worked_ms, 420 * 60000)
        self.assertEqual(normalize_ts(record.auto_punch_resolved_at), NOW_UTC)

        with self.assertRaises(ApiError) as ctx:
            update_request_status(self.db, request_id=request_row.id, status=ManualRequestStatus.CANCELLED)
        self.assertEqual(ctx.exception.code, "MANUAL_REQUEST_COMPLETED")

    def test_completed_status_must_go_through_resolve(self) -> None:
        request_row = create_manual_request(self.db, employee=self.employee, day_date=TUESDAY, note="x", now_utc=NOW_UTC)

        with self.assertRaises(ApiError) as ctx:
            update_request_status(self.db, request_id=request_row.id, status=ManualRequestStatus.COMPLETED)

        self.assertEqual(ctx.exception.code, "INVALID_STATUS")

    def test_admin_role_counts_as_request_manager(self) -> None:
        admin = add_employee(self.db, full_name="Nisha Admin", role=PrimaryRole.ADMIN)
        create_manual_request(self.db, employee=self.employee, day_date=TUESDAY, note="x", now_utc=NOW_UTC)

        self.assertEqual(len(list_manual_requests(self.db, viewer=admin)), 1)


if __name__ == "__main__":
    unittest.main()
