from __future__ import annotations

import unittest
from datetime import date, timedelta

from timedesk.errors import ApiError
from timedesk.models import PrimaryRole, Task
from timedesk.services.worklogs import (
    cap_minutes,
    day_budget,
    delete_time_log,
    log_time,
    remaining_minutes,
    update_time_log,
)
from tests.support import NOW_UTC, TODAY, add_closed_day, add_employee, add_record, add_task, make_session

YESTERDAY = date(2026, 3, 10)


class CapArithmeticTests(unittest.TestCase):
    def test_cap_subtracts_break_and_clamps_at_zero(self) -> None:
        self.assertEqual(cap_minutes(500, 60), 440)
        self.assertEqual(cap_minutes(45, 60), 0)
        self.assertEqual(remaining_minutes(500, 100, 60), 340)
        self.assertEqual(remaining_minutes(500, 480, 60), 0)


class LogTimeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.employee = add_employee(self.db, attendance_start_date=YESTERDAY)
        self.task = add_task(self.db, self.employee)
        add_closed_day(self.db, self.employee, YESTERDAY, 500)

    def tearDown(self) -> None:
        self.db.close()

    def _log(self, minutes: int, *, day: date = YESTERDAY):  # type: ignore[no-untyped-def]
        return log_time(
            self.db,
            actor=self.employee,
            project_id=self.task.project_id,
            task_id=self.task.id,
            minutes=minutes,
            day_date=day,
            now_utc=NOW_UTC,
        )

    def test_budget_reflects_logged_minutes(self) -> None:
        self._log(100)

        budget = day_budget(self.db, employee_id=self.employee.id, day_date=YESTERDAY, now_utc=NOW_UTC)

        self.assertEqual(budget.worked_minutes, 500)
        self.assertEqual(budget.logged_minutes, 100)
        self.assertEqual(budget.cap_minutes, 440)
        self.assertEqual(budget.remaining_minutes, 340)

    def test_request_over_remaining_is_rejected_with_overage(self) -> None:
        self._log(100)

        with self.assertRaises(ApiError) as ctx:
            self._log(360)

        self.assertEqual(ctx.exception.status_code, 422)
        self.assertEqual(ctx.exception.code, "TIME_LOG_CAP_EXCEEDED")
        self.assertIn("by 20 minutes", ctx.exception.message)
        self.assertEqual(ctx.exception.details["overage_minutes"], 20)  # type: ignore[index]

    def test_exact_remaining_is_accepted(self) -> None:
        log = self._log(440)

        self.assertEqual(log.minutes, 440)
        self.db.refresh(self.task)
        self.assertEqual(self.task.time_spent_minutes, 440)

    def test_today_uses_live_worked_time(self) -> None:
        # punched in at 08:30 local, now 11:30 local: 180 worked, 120 loggable
        add_record(self.db, self.employee, TODAY, first_in=NOW_UTC - timedelta(hours=3), last_in=NOW_UTC - timedelta(hours=3))

        budget = day_budget(self.db, employee_id=self.employee.id, day_date=TODAY, now_utc=NOW_UTC)
        self.assertEqual(budget.remaining_minutes, 120)

        with self.assertRaises(ApiError):
            self._log(121, day=TODAY)

    def test_future_day_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            self._log(30, day=TODAY + timedelta(days=1))

        self.assertEqual(ctx.exception.code, "FUTURE_DATE_NOT_ALLOWED")

    def test_task_from_other_project_is_not_found(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            log_time(
                self.db,
                actor=self.employee,
                project_id=self.task.project_id + 100,
                task_id=self.task.id,
                minutes=30,
                day_date=YESTERDAY,
                now_utc=NOW_UTC,
            )

        self.assertEqual(ctx.exception.status_code, 404)

    def test_logging_for_another_employee_requires_manager(self) -> None:
        colleague = add_employee(self.db, full_name="Ravi Kumar", attendance_start_date=YESTERDAY)
        add_closed_day(self.db, colleague, YESTERDAY, 300)

        with self.assertRaises(ApiError) as ctx:
            log_time(
                self.db,
                actor=colleague,
                project_id=self.task.project_id,
                task_id=self.task.id,
                minutes=30,
                day_date=YESTERDAY,
                for_employee=self.employee.id,
                now_utc=NOW_UTC,
            )
        self.assertEqual(ctx.exception.status_code, 403)

        manager = add_employee(self.db, full_name="Meera Iyer", sub_roles=["manager"])
        log = log_time(
            self.db,
            actor=manager,
            project_id=self.task.project_id,
            task_id=self.task.id,
            minutes=30,
            day_date=YESTERDAY,
            for_employee=colleague.id,
            now_utc=NOW_UTC,
        )
        self.assertEqual(log.employee_id, colleague.id)


class EditTimeLogTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.employee = add_employee(self.db, attendance_start_date=YESTERDAY)
        self.task = add_task(self.db, self.employee)
        add_closed_day(self.db, self.employee, YESTERDAY, 500)
        self.first = log_time(
            self.db,
            actor=self.employee,
            project_id=self.task.project_id,
            task_id=self.task.id,
            minutes=300,
            day_date=YESTERDAY,
            now_utc=NOW_UTC,
        )
        log_time(
            self.db,
            actor=self.employee,
            project_id=self.task.project_id,
            task_id=self.task.id,
            minutes=100,
            day_date=YESTERDAY,
            now_utc=NOW_UTC,
        )

    def tearDown(self) -> None:
        self.db.close()

    def test_edit_excludes_the_original_entry_from_the_budget(self) -> None:
        # cap 440, other entries 100: the edited entry may grow to 340
        updated = update_time_log(self.db, actor=self.employee, log_id=self.first.id, minutes=340, now_utc=NOW_UTC)

        self.assertEqual(updated.minutes, 340)
        self.assertEqual(self.db.get(Task, self.task.id).time_spent_minutes, 440)

    def test_edit_beyond_budget_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            update_time_log(self.db, actor=self.employee, log_id=self.first.id, minutes=341, now_utc=NOW_UTC)

        self.assertIn("by 1 minutes", ctx.exception.message)

    def test_other_employee_cannot_edit(self) -> None:
        other = add_employee(self.db, full_name="Ravi Kumar")

        with self.assertRaises(ApiError) as ctx:
            update_time_log(self.db, actor=other, log_id=self.first.id, minutes=10, now_utc=NOW_UTC)

        self.assertEqual(ctx.exception.status_code, 403)

    def test_admin_can_delete_and_task_total_follows(self) -> None:
        admin = add_employee(self.db, full_name="Nisha Admin", role=PrimaryRole.ADMIN)

        deleted_id = delete_time_log(self.db, actor=admin, log_id=self.first.id)

        self.assertEqual(deleted_id, self.first.id)
        self.assertEqual(self.db.get(Task, self.task.id).time_spent_minutes, 100)
        budget = day_budget(self.db, employee_id=self.employee.id, day_date=YESTERDAY, now_utc=NOW_UTC)
        self.assertEqual(budget.remaining_minutes, 340)


if __name__ == "__main__":
    unittest.main()
