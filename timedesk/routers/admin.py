from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from timedesk.audit import audit_request
from timedesk.db import get_db
from timedesk.models import Employee
from timedesk.security import require_admin
from timedesk.services.exports import build_timesheet_xlsx_bytes
from timedesk.services.timeutils import format_month, local_day, parse_month, utcnow

router = APIRouter(prefix="/api/admin", tags=["admin"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("/reports/timesheet.xlsx")
def export_timesheet(
    request: Request,
    month: str | None = Query(default=None),
    admin: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Response:
    start, end_exclusive = parse_month(month, today=local_day(utcnow()))
    content = build_timesheet_xlsx_bytes(db, start=start, end_exclusive=end_exclusive)
    month_label = format_month(start)
    audit_request(
        db,
        request,
        actor=admin,
        action="TIMESHEET_EXPORTED",
        entity_type="report",
        entity_id=month_label,
        details={"bytes": len(content)},
    )
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="timesheet-{month_label}.xlsx"'},
    )
