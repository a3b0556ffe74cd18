from __future__ import annotations

import json
import math
import unittest
from datetime import date

import httpx

from timedesk.tracker.client import ApiClientError, TimedeskClient
from timedesk.tracker.location import build_location_label, resolve_location_label
from timedesk.tracker.session import SessionContext
from timedesk.tracker.settings import TrackerSettings
from timedesk.tracker.types import IssueType, TaskRef


class TimedeskClientTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: dict[tuple[str, str], httpx.Response] = {}
        self.session = SessionContext()
        self.client = TimedeskClient(
            self.session,
            settings=TrackerSettings(api_base_url="http://timedesk.test"),
            transport=httpx.MockTransport(self._handle),
        )

    async def asyncTearDown(self) -> None:
        await self.client.aclose()

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.get((request.method, request.url.path))
        if response is None:
            return httpx.Response(404, json={"error": {"code": "NOT_FOUND", "message": "Not found.", "request_id": "r1"}})
        return response

    async def test_login_stores_token_for_later_calls(self) -> None:
        self.responses[("POST", "/api/auth/login")] = httpx.Response(
            200,
            json={
                "access_token": "token-123",
                "token_type": "bearer",
                "expires_in": 43200,
                "employee": {"id": 7, "full_name": "Asha Rao"},
            },
        )
        self.responses[("GET", "/api/attendance/today")] = httpx.Response(200, json={"attendance": None})

        employee = await self.client.login("asha@example.com", "secret")
        snapshot = await self.client.get_today()

        self.assertEqual(employee["id"], 7)
        self.assertEqual(self.session.employee_id, 7)
        self.assertIsNone(snapshot)
        self.assertNotIn("authorization", self.requests[0].headers)
        self.assertEqual(self.requests[1].headers["authorization"], "Bearer token-123")

        self.client.logout()
        self.assertFalse(self.session.is_authenticated)

    async def test_today_snapshot_is_parsed(self) -> None:
        self.responses[("GET", "/api/attendance/today")] = httpx.Response(
            200,
            json={
                "attendance": {
                    "id": 1,
                    "employee_id": 7,
                    "date": "2026-03-11",
                    "first_punch_in": "2026-03-11T03:30:00Z",
                    "last_punch_in": "2026-03-11T03:30:00Z",
                    "last_punch_out": None,
                    "worked_ms": 0,
                    "auto_punch_out": False,
                }
            },
        )

        snapshot = await self.client.get_today()

        assert snapshot is not None
        self.assertTrue(snapshot.is_open)
        self.assertEqual(snapshot.day, date(2026, 3, 11))
        self.assertEqual(snapshot.last_punch_in.utcoffset().total_seconds(), 0)  # type: ignore[union-attr]

    async def test_issues_pending_error_carries_details(self) -> None:
        self.responses[("POST", "/api/attendance/punch")] = httpx.Response(
            409,
            json={
                "error": {
                    "code": "ATTENDANCE_ISSUES_PENDING",
                    "message": "Resolve pending attendance issues before punching in.",
                    "request_id": "r2",
                    "details": {"issues": [{"date": "2026-03-10", "type": "noAttendance"}]},
                }
            },
        )

        with self.assertRaises(ApiClientError) as ctx:
            await self.client.punch("in", "Koramangala")

        self.assertTrue(ctx.exception.is_issues_pending)
        self.assertEqual(ctx.exception.details["issues"][0]["type"], "noAttendance")
        self.assertEqual(json.loads(self.requests[0].content), {"action": "in", "location_label": "Koramangala"})

    async def test_non_json_error_body_falls_back_to_status(self) -> None:
        self.responses[("GET", "/api/worklogs")] = httpx.Response(502, text="<html>Bad gateway</html>")

        with self.assertRaises(ApiClientError) as ctx:
            await self.client.get_day_logs()

        self.assertEqual(ctx.exception.status_code, 502)
        self.assertEqual(ctx.exception.code, "HTTP_ERROR")
        self.assertFalse(ctx.exception.is_issues_pending)

    async def test_transport_failure_is_network_error(self) -> None:
        def _fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = TimedeskClient(
            SessionContext(),
            settings=TrackerSettings(api_base_url="http://timedesk.test"),
            transport=httpx.MockTransport(_fail),
        )
        try:
            with self.assertRaises(ApiClientError) as ctx:
                await client.get_issues()
        finally:
            await client.aclose()

        self.assertEqual((ctx.exception.status_code, ctx.exception.code), (0, "NETWORK_ERROR"))

    async def test_issues_and_day_logs_are_typed(self) -> None:
        self.responses[("GET", "/api/attendance/missing-out")] = httpx.Response(
            200,
            json={
                "month": "2026-03",
                "issues": [
                    {"date": "2026-03-10", "type": "autoPunch", "auto_punch_out_at": "2026-03-10T18:30:00+00:00"},
                ],
            },
        )
        self.responses[("GET", "/api/worklogs")] = httpx.Response(
            200,
            json={
                "date": "2026-03-10",
                "logs": [
                    {"id": 5, "task_id": 11, "employee_id": 7, "date": "2026-03-10", "minutes": 90, "note": None},
                ],
                "logged_minutes": 90,
                "worked_minutes": 540,
                "cap_minutes": 480,
                "remaining_minutes": 390,
            },
        )

        issues = await self.client.get_issues("2026-03")
        day_logs = await self.client.get_day_logs(date(2026, 3, 10))

        self.assertEqual(issues[0].type, IssueType.AUTO_PUNCH)
        self.assertEqual(self.requests[0].url.params["month"], "2026-03")
        self.assertEqual(day_logs.remaining_minutes, 390)
        self.assertEqual(day_logs.logs[0].minutes, 90)
        self.assertEqual(self.requests[1].url.params["date"], "2026-03-10")

    async def test_time_log_endpoints(self) -> None:
        task = TaskRef(project_id=3, task_id=11)
        self.responses[("POST", "/api/projects/3/tasks/11/time-at")] = httpx.Response(201, json={"id": 5})
        self.responses[("DELETE", "/api/worklogs/5")] = httpx.Response(200, json={"ok": True, "id": 5})

        created = await self.client.log_time_at(task, 45, date(2026, 3, 10), "Code review")
        await self.client.delete_time_log(5)

        self.assertEqual(created, {"id": 5})
        self.assertEqual(
            json.loads(self.requests[0].content),
            {"minutes": 45, "note": "Code review", "date": "2026-03-10"},
        )
        self.assertEqual(self.requests[1].method, "DELETE")

    async def test_assigned_tasks_are_flattened(self) -> None:
        self.responses[("GET", "/api/projects/tasks/assigned")] = httpx.Response(
            200,
            json=[
                {
                    "id": 11,
                    "project_id": 3,
                    "title": "Payments API",
                    "subtasks": [{"id": 12, "project_id": 3, "title": "Refunds", "subtasks": []}],
                }
            ],
        )
        self.responses[("GET", "/api/projects/personal")] = httpx.Response(
            200,
            json={
                "project": {"id": 9, "title": "Personal", "is_personal": True},
                "meeting_task": {"id": 40, "project_id": 9, "title": "Meetings", "is_meeting_default": True},
            },
        )

        tasks = await self.client.get_assigned_tasks()
        meeting = await self.client.get_meeting_task()

        self.assertEqual([(item.task_id, item.title) for item in tasks], [(11, "Payments API"), (12, "Refunds")])
        self.assertEqual(meeting, TaskRef(project_id=9, task_id=40, title="Meetings", is_meeting=True))


class LocationLabelTests(unittest.IsolatedAsyncioTestCase):
    def test_label_prefers_local_then_short_names(self) -> None:
        payload = {
            "name": "Forum Mall",
            "display_name": "Forum Mall, Hosur Road, Koramangala, Bengaluru, Karnataka, India",
            "address": {
                "suburb": "Koramangala",
                "city": "Bengaluru",
                "state": "Karnataka",
                "country": "India",
            },
        }

        self.assertEqual(build_location_label(payload), "Forum Mall, Koramangala, Bengaluru")

    def test_label_from_address_only(self) -> None:
        self.assertEqual(build_location_label({"address": {"city": "Pune", "country": "India"}}), "Pune, India")
        self.assertIsNone(build_location_label({}))

    async def test_resolve_uses_geocoder_and_swallows_failures(self) -> None:
        seen: list[httpx.Request] = []

        def _handle(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.params["lat"] == "0.0":
                return httpx.Response(500)
            return httpx.Response(200, json={"address": {"suburb": "Indiranagar", "city": "Bengaluru"}})

        settings = TrackerSettings(geocoder_url="http://geo.test/reverse")
        async with httpx.AsyncClient(transport=httpx.MockTransport(_handle)) as http:
            label = await resolve_location_label(12.97, 77.64, http=http, settings=settings)
            failed = await resolve_location_label(0.0, 0.0, http=http, settings=settings)
            skipped = await resolve_location_label(math.nan, 77.64, http=http, settings=settings)

        self.assertEqual(label, "Indiranagar, Bengaluru")
        self.assertIsNone(failed)
        self.assertIsNone(skipped)
        self.assertEqual(len(seen), 2)
        self.assertEqual(seen[0].url.params["format"], "jsonv2")


if __name__ == "__main__":
    unittest.main()
