from __future__ import annotations

import unittest
from unittest.mock import patch

from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from timedesk.db import Base
from timedesk.services.schema_guard import verify_runtime_schema


class _FakeResult:
    def __init__(self, value):
        self._value = value

    def scalar(self):  # type: ignore[no-untyped-def]
        return self._value


class _FakeConnection:
    def __init__(self, version_value):
        self._version_value = version_value

    def __enter__(self):  # type: ignore[no-untyped-def]
        return self

    def __exit__(self, exc_type, exc, tb):  # type: ignore[no-untyped-def]
        return False

    def execute(self, _statement):  # type: ignore[no-untyped-def]
        return _FakeResult(self._version_value)


class _FakeEngine:
    def __init__(self, version_value):
        self._version_value = version_value

    def connect(self):  # type: ignore[no-untyped-def]
        return _FakeConnection(self._version_value)


class _FakeInspector:
    def __init__(self, *, columns_by_table: dict[str, set[str]]):
        self._columns_by_table = columns_by_table

    def get_table_names(self):  # type: ignore[no-untyped-def]
        return list(self._columns_by_table)

    def get_columns(self, table_name: str):  # type: ignore[no-untyped-def]
        return [{"name": item} for item in self._columns_by_table[table_name]]


class SchemaGuardTests(unittest.TestCase):
    def test_verify_runtime_schema_reports_missing_columns_and_tables(self) -> None:
        fake_inspector = _FakeInspector(
            columns_by_table={
                "employees": {"id", "email", "primary_role"},
                "attendance_records": {"id", "employee_id", "work_date", "last_punch_in", "last_punch_out", "worked_ms"},
                "time_logs": {"id", "task_id", "employee_id", "work_date", "minutes"},
                "leaves": {"id", "employee_id", "status", "resolved_issue"},
                "alembic_version": {"version_num"},
            },
        )

        with patch("timedesk.services.schema_guard.inspect", return_value=fake_inspector):
            result = verify_runtime_schema(_FakeEngine(""))  # type: ignore[arg-type]

        self.assertFalse(result.ok)
        self.assertIn("MISSING_COLUMNS:employees:attendance_start_date", result.issues)
        self.assertIn(
            "MISSING_COLUMNS:attendance_records:auto_punch_out,auto_punch_resolved_at",
            result.issues,
        )
        self.assertIn("MISSING_TABLE:manual_attendance_requests", result.issues)
        self.assertIn("ALEMBIC_VERSION_EMPTY", result.issues)
        self.assertEqual(result.to_dict()["issue_count"], len(result.issues))

    def test_verify_runtime_schema_ok_for_migrated_database(self) -> None:
        engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(engine)
        with engine.begin() as connection:
            connection.execute(text("CREATE TABLE alembic_version (version_num VARCHAR(32) NOT NULL)"))
            connection.execute(text("INSERT INTO alembic_version (version_num) VALUES ('0001_initial')"))

        result = verify_runtime_schema(engine)

        self.assertTrue(result.ok, result.issues)
        self.assertEqual(result.warnings, [])


if __name__ == "__main__":
    unittest.main()
