from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timezone
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet
from sqlalchemy import select
from sqlalchemy.orm import Session

from timedesk.models import AttendanceRecord, Employee, PrimaryRole, Task, TimeLog
from timedesk.services.timeutils import attendance_timezone, format_month, normalize_ts
from timedesk.services.worklogs import cap_minutes
from timedesk.settings import get_settings

DAILY_HEADERS = [
    "Date",
    "Punch in",
    "Punch out",
    "Worked (hh:mm)",
    "Loggable (hh:mm)",
    "Logged (hh:mm)",
    "Auto punch-out",
    "Tasks",
]

SUMMARY_HEADERS = [
    "Employee",
    "Email",
    "Days present",
    "Worked (hh:mm)",
    "Logged (hh:mm)",
    "Auto punch-outs",
]

HEADER_FILL = PatternFill(fill_type="solid", fgColor="0B4F73")
ZEBRA_FILL = PatternFill(fill_type="solid", fgColor="F7FBFE")
WARNING_FILL = PatternFill(fill_type="solid", fgColor="FFF3CD")

HEADER_FONT = Font(bold=True, color="FFFFFF")
TITLE_FONT = Font(bold=True, color="0B4F73", size=14)

THIN_SIDE = Side(style="thin", color="D5E2EC")
THIN_BORDER = Border(left=THIN_SIDE, right=THIN_SIDE, top=THIN_SIDE, bottom=THIN_SIDE)


def _minutes_to_hhmm(minutes: int) -> str:
    value = max(0, int(minutes))
    return f"{value // 60:02d}:{value % 60:02d}"


def _local_hhmm(value: datetime | None) -> str:
    ts = normalize_ts(value)
    if ts is None:
        return "-"
    return ts.astimezone(attendance_timezone()).strftime("%H:%M")


def _style_header(ws: Worksheet, row: int) -> None:
    for cell in ws[row]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = THIN_BORDER


def _auto_width(ws: Worksheet) -> None:
    for column_cells in ws.iter_cols(min_row=1, max_row=ws.max_row, min_col=1, max_col=ws.max_column):
        col_letter = get_column_letter(column_cells[0].column)
        max_len = 0
        for cell in column_cells:
            if cell.coordinate in ws.merged_cells:
                continue
            max_len = max(max_len, len("" if cell.value is None else str(cell.value)))
        ws.column_dimensions[col_letter].width = min(max_len + 2, 45)


def _safe_sheet_title(title: str, fallback: str) -> str:
    cleaned = "".join(ch for ch in title if ch not in "[]:*?/\\").strip()
    return (cleaned or fallback)[:31]


def _write_title(ws: Worksheet, text: str, width: int) -> None:
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=width)
    cell = ws.cell(row=1, column=1, value=text)
    cell.font = TITLE_FONT
    cell.alignment = Alignment(horizontal="left", vertical="center")


def build_timesheet_xlsx_bytes(db: Session, *, start: date, end_exclusive: date) -> bytes:
    """Monthly timesheet: one summary sheet plus a daily sheet per employee."""
    break_minutes = get_settings().break_minutes
    employees = list(
        db.scalars(
            select(Employee)
            .where(Employee.primary_role == PrimaryRole.EMPLOYEE)
            .order_by(Employee.full_name.asc(), Employee.id.asc())
        ).all()
    )
    records = db.scalars(
        select(AttendanceRecord).where(
            AttendanceRecord.work_date >= start,
            AttendanceRecord.work_date < end_exclusive,
        )
    ).all()
    log_rows = db.execute(
        select(TimeLog, Task.title)
        .join(Task, Task.id == TimeLog.task_id)
        .where(TimeLog.work_date >= start, TimeLog.work_date < end_exclusive)
    ).all()

    records_by_employee: dict[int, list[AttendanceRecord]] = defaultdict(list)
    for record in records:
        records_by_employee[record.employee_id].append(record)
    logged_by_day: dict[tuple[int, date], int] = defaultdict(int)
    tasks_by_day: dict[tuple[int, date], set[str]] = defaultdict(set)
    for log, task_title in log_rows:
        key = (log.employee_id, log.work_date)
        logged_by_day[key] += int(log.minutes)
        tasks_by_day[key].add(task_title)

    month_label = format_month(start)
    wb = Workbook()
    summary = wb.active
    summary.title = "Summary"
    _write_title(summary, f"Timesheet {month_label}", len(SUMMARY_HEADERS))
    summary.append(SUMMARY_HEADERS)
    _style_header(summary, 2)

    for employee in employees:
        employee_records = sorted(records_by_employee.get(employee.id, []), key=lambda item: item.work_date)
        ws = wb.create_sheet(_safe_sheet_title(employee.full_name, f"Employee {employee.id}"))
        _write_title(ws, f"{employee.full_name} - {month_label}", len(DAILY_HEADERS))
        ws.append(DAILY_HEADERS)
        _style_header(ws, 2)

        total_worked = 0
        total_logged = 0
        auto_count = 0
        for index, record in enumerate(employee_records):
            worked = int(record.worked_ms or 0) // 60000
            logged = logged_by_day.get((employee.id, record.work_date), 0)
            total_worked += worked
            total_logged += logged
            if record.auto_punch_out:
                auto_count += 1
            ws.append(
                [
                    record.work_date.isoformat(),
                    _local_hhmm(record.first_punch_in),
                    _local_hhmm(record.last_punch_out),
                    _minutes_to_hhmm(worked),
                    _minutes_to_hhmm(cap_minutes(worked, break_minutes)),
                    _minutes_to_hhmm(logged),
                    "yes" if record.auto_punch_out else "",
                    ", ".join(sorted(tasks_by_day.get((employee.id, record.work_date), set()))),
                ]
            )
            row_idx = ws.max_row
            fill = WARNING_FILL if record.auto_punch_out and record.auto_punch_resolved_at is None else None
            if fill is None and index % 2 == 1:
                fill = ZEBRA_FILL
            for cell in ws[row_idx]:
                cell.border = THIN_BORDER
                if fill is not None:
                    cell.fill = fill
        ws.freeze_panes = "A3"
        _auto_width(ws)

        summary.append(
            [
                employee.full_name,
                employee.email,
                sum(1 for item in employee_records if item.first_punch_in is not None),
                _minutes_to_hhmm(total_worked),
                _minutes_to_hhmm(total_logged),
                auto_count,
            ]
        )
        for cell in summary[summary.max_row]:
            cell.border = THIN_BORDER

    summary.freeze_panes = "A3"
    _auto_width(summary)
    summary["A" + str(summary.max_row + 2)] = (
        f"Generated {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M')} UTC"
    )

    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()
