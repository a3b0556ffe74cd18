#!/usr/bin/env python
from __future__ import annotations

import json
import sys

from sqlalchemy import create_engine, text

from timedesk.services.schema_guard import verify_runtime_schema
from timedesk.settings import get_settings

EXPECTED_HEAD = "0001_initial"


def run() -> dict:
    engine = create_engine(get_settings().database_url)
    result = verify_runtime_schema(engine)
    report = result.to_dict()

    current_versions: list[str] = []
    if result.ok:
        with engine.connect() as conn:
            current_versions = [
                row[0] for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
    report["expected_head"] = EXPECTED_HEAD
    report["current_versions"] = current_versions
    report["migration_up_to_date"] = EXPECTED_HEAD in current_versions
    return report


if __name__ == "__main__":
    report = run()
    print(json.dumps(report, indent=2, ensure_ascii=False))
    sys.exit(0 if report["ok"] and report["migration_up_to_date"] else 1)
