"""Renderers — format one ``Report`` as structured data, PDF or XLSX.

Renderers never recompute anything: the PDF statistics section and the
spreadsheet ``Summary`` sheet both come from ``Report.summary_metrics()``,
and detail rows are written as they are. Missing values are written as
``N/A``.

Outputs:
  - json   → the ``Report`` itself (``to_payload()`` gives the data object)
  - pdf    → landscape A4, header on every page, rows paginated
  - excel  → primary sheet + Summary sheet + one sheet per section/trend
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from io import BytesIO
from typing import Any, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.units import cm
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas as rl_canvas

from staffops.common.constants import NOT_AVAILABLE, LeaveType, ReportFormat, ReportType
from staffops.common.exceptions import InvalidParameterException, RenderFailure
from staffops.config import settings
from staffops.reports.schemas import Report

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

Columns = Sequence[tuple[str, str]]


# ═════════════════════════════════════════════════════════════════════
# Column layouts
# ═════════════════════════════════════════════════════════════════════

_STAFF = [("employee_code", "Employee ID"), ("name", "Name"), ("department", "Department")]

ATTENDANCE_COLUMNS: Columns = _STAFF + [
    ("date", "Date"),
    ("status", "Status"),
    ("check_in", "Check In"),
    ("check_out", "Check Out"),
    ("hours_worked", "Hours Worked"),
    ("remarks", "Remarks"),
]

LEAVE_COLUMNS: Columns = _STAFF + [
    ("leave_type", "Leave Type"),
    ("start_date", "Start Date"),
    ("end_date", "End Date"),
    ("number_of_days", "Days"),
    ("status", "Status"),
    ("rejection_reason", "Rejection Reason"),
    ("created_at", "Applied On"),
]

CASE_COLUMNS: Columns = _STAFF + [
    ("infraction_type", "Infraction Type"),
    ("status", "Status"),
    ("date_of_infraction", "Date of Infraction"),
    ("sanction", "Sanction"),
    ("description", "Description"),
    ("created_at", "Opened On"),
]

PERFORMANCE_COLUMNS: Columns = _STAFF + [
    ("position", "Position"),
    ("total_days", "Total Days"),
    ("present_days", "Present Days"),
    ("attendance_rate", "Attendance Rate (%)"),
    ("leaves_taken", "Leave Days"),
    ("leave_applications", "Approved Leaves"),
    ("disciplinary_cases", "Open Cases"),
    ("score", "Score"),
]

DEPARTMENT_COLUMNS: Columns = [
    ("department", "Department"),
    ("staff_count", "Staff"),
    ("present", "Present"),
    ("absent", "Absent"),
    ("late", "Late"),
    ("leave", "On Leave"),
    ("off_duty", "Off Duty"),
    ("unspecified", "Unspecified"),
    ("attendance_rate", "Attendance Rate (%)"),
    ("leaves_approved", "Approved Leaves"),
    ("leaves_pending", "Pending Leaves"),
    ("leave_days", "Leave Days"),
    ("disciplinary_cases", "Disciplinary Cases"),
]

DASHBOARD_COLUMNS: Columns = [
    ("department", "Department"),
    ("staff_count", "Staff"),
    ("attendance_rate", "Attendance Rate (%)"),
    ("approved_leaves", "Approved Leaves (last month)"),
]

LEAVE_BALANCE_COLUMNS: Columns = _STAFF + [("position", "Position")] + [
    (f"{leave_type.value}_{part}", f"{leave_type.value.title()} {part.title()}")
    for leave_type in LeaveType
    for part in ("total", "taken", "remaining")
]

PROFILE_COLUMNS: Columns = _STAFF + [
    ("email", "Email"),
    ("position", "Position"),
    ("role", "Role"),
    ("is_active", "Active"),
    ("date_of_joining", "Date of Joining"),
]

DETAIL_COLUMNS: dict[ReportType, Columns] = {
    ReportType.attendance: ATTENDANCE_COLUMNS,
    ReportType.leave: LEAVE_COLUMNS,
    ReportType.disciplinary: CASE_COLUMNS,
    ReportType.performance: PERFORMANCE_COLUMNS,
    ReportType.department: DEPARTMENT_COLUMNS,
    ReportType.dashboard: DASHBOARD_COLUMNS,
    ReportType.staff: ATTENDANCE_COLUMNS,
    ReportType.leave_balance: LEAVE_BALANCE_COLUMNS,
}

PRIMARY_SHEETS: dict[ReportType, str] = {
    ReportType.attendance: "Attendance",
    ReportType.leave: "Leaves",
    ReportType.disciplinary: "Cases",
    ReportType.performance: "Performance",
    ReportType.department: "Departments",
    ReportType.dashboard: "Departments",
    ReportType.staff: "Attendance",
    ReportType.leave_balance: "Leave Balance",
}

SECTION_COLUMNS: dict[str, Columns] = {
    "profile": PROFILE_COLUMNS,
    "leaves": LEAVE_COLUMNS,
    "cases": CASE_COLUMNS,
    "leaves_by_type": [
        ("department", "Department"),
        ("leave_type", "Leave Type"),
        ("approved", "Approved"),
        ("pending", "Pending"),
        ("total_days", "Total Days"),
    ],
}

TREND_COLUMNS: dict[str, Columns] = {
    "attendance": [("date", "Date"), ("attendance", "Present"), ("rate", "Rate (%)")],
    "leaves": [
        ("month", "Month"),
        ("year", "Year"),
        ("start_date", "From"),
        ("end_date", "To"),
        ("leaves", "Leave Applications"),
    ],
}


@dataclass(frozen=True)
class RenderedReport:
    """A binary rendition ready to be sent as an attachment."""

    content: bytes
    media_type: str
    filename: str
    page_count: int = 1


# ── Value formatting ────────────────────────────────────────────────

def cell_value(value: Any) -> Any:
    """Spreadsheet/PDF representation of one value. ``None`` → ``N/A``."""
    if value is None or value == "":
        return NOT_AVAILABLE
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return value


def cell_text(value: Any) -> str:
    value = cell_value(value)
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def metric_label(path: str) -> str:
    """``by_type.annual.total`` → ``By Type / Annual / Total``."""
    return " / ".join(part.replace("_", " ").title() for part in path.split("."))


def report_filename(report: Report, extension: str) -> str:
    stamp = int(report.generated_at.timestamp() * 1000)
    return f"{report.report_type.value}_report_{stamp}.{extension}"


def columns_for(name: str, rows: Sequence[dict[str, Any]], known: dict[str, Columns]) -> Columns:
    if name in known:
        return known[name]
    keys = list(rows[0]) if rows else []
    return [(key, key.replace("_", " ").title()) for key in keys]


def table_rows(rows: Sequence[dict[str, Any]], columns: Columns) -> list[list[Any]]:
    return [[cell_value(row.get(key)) for key, _ in columns] for row in rows]


def _extra_tables(report: Report) -> list[tuple[str, Columns, Sequence[dict[str, Any]]]]:
    tables = []
    for name, rows in report.sections.items():
        tables.append((name, columns_for(name, rows, SECTION_COLUMNS), rows))
    for name, rows in report.trends.items():
        tables.append((f"{name}_trend", columns_for(name, rows, TREND_COLUMNS), rows))
    return tables


# ═════════════════════════════════════════════════════════════════════
# Entry point
# ═════════════════════════════════════════════════════════════════════

def render(report: Report, fmt: ReportFormat | str = ReportFormat.json) -> Report | RenderedReport:
    """Render *report* in *fmt*. ``json`` returns the report unchanged."""
    try:
        fmt = ReportFormat(fmt.value if isinstance(fmt, ReportFormat) else fmt)
    except ValueError:
        raise InvalidParameterException(
            "format", f"must be one of {[f.value for f in ReportFormat]}"
        ) from None

    if fmt == ReportFormat.json:
        return report

    renderer = render_pdf if fmt == ReportFormat.pdf else render_excel
    try:
        return renderer(report)
    except RenderFailure:
        raise
    except Exception as exc:
        logger.exception(
            "Rendering %s report as %s failed", report.report_type.value, fmt.value,
            extra={"report_type": report.report_type.value},
        )
        raise RenderFailure(report.report_type.value, fmt.value, str(exc)) from exc


# ═════════════════════════════════════════════════════════════════════
# PDF
# ═════════════════════════════════════════════════════════════════════

_MARGIN = 1.5 * cm
_LINE = 0.5 * cm
_BOTTOM = 1.6 * cm
_FONT = "Helvetica"
_BOLD = "Helvetica-Bold"


class _PdfDocument:
    """Canvas wrapper that keeps a running page count and redraws the
    header block on every new page."""

    def __init__(self, report: Report, buffer: BytesIO, rows_per_page: int) -> None:
        self.report = report
        self.rows_per_page = rows_per_page
        self.page_w, self.page_h = landscape(A4)
        self.c = rl_canvas.Canvas(buffer, pagesize=landscape(A4))
        self.c.setTitle(report.title)
        self.c.setAuthor(settings.ORGANISATION_NAME)
        self.page = 1
        self.y = self._draw_header()

    # ── Page furniture ──────────────────────────────────────────────

    def _draw_header(self) -> float:
        c, report = self.c, self.report
        y = self.page_h - _MARGIN
        c.setFillColorRGB(0.08, 0.08, 0.12)
        c.setFont(_BOLD, 14)
        c.drawCentredString(self.page_w / 2, y, settings.ORGANISATION_NAME)
        y -= 0.7 * cm
        c.setFont(_BOLD, 12)
        c.drawCentredString(self.page_w / 2, y, report.title)
        y -= 0.55 * cm
        c.setFont(_FONT, 9)
        c.setFillColorRGB(0.3, 0.3, 0.3)
        c.drawCentredString(self.page_w / 2, y, f"Period: {report.period.describe()}")
        y -= 0.45 * cm
        generated = report.generated_at.strftime("%d %b %Y %H:%M")
        c.drawCentredString(self.page_w / 2, y, f"Generated: {generated}")
        if report.filters:
            y -= 0.45 * cm
            text = ", ".join(f"{k}: {v}" for k, v in report.filters.items())
            c.drawCentredString(self.page_w / 2, y, _fit(f"Filters: {text}", self.page_w - 2 * _MARGIN, 9))
        y -= 0.3 * cm
        c.setStrokeColorRGB(0.58, 0.64, 0.72)
        c.line(_MARGIN, y, self.page_w - _MARGIN, y)
        c.setStrokeColorRGB(0, 0, 0)
        self._draw_footer()
        c.setFillColorRGB(0, 0, 0)
        return y - 0.7 * cm

    def _draw_footer(self) -> None:
        c = self.c
        c.setFillColorRGB(0.5, 0.5, 0.5)
        c.setFont(_FONT, 7)
        c.drawString(_MARGIN, 0.8 * cm, settings.ORGANISATION_NAME)
        c.drawRightString(self.page_w - _MARGIN, 0.8 * cm, f"Page {self.page}")

    def new_page(self) -> None:
        self.c.showPage()
        self.page += 1
        self.y = self._draw_header()

    def check_page(self, needed: float = _LINE) -> None:
        if self.y - needed < _BOTTOM:
            self.new_page()

    # ── Sections ────────────────────────────────────────────────────

    def heading(self, text: str) -> None:
        self.check_page(2 * _LINE)
        self.c.setFont(_BOLD, 11)
        self.c.drawString(_MARGIN, self.y, text)
        self.y -= _LINE

    def statistics(self, metrics: Sequence[tuple[str, Any]]) -> None:
        self.heading("Statistics")
        if not metrics:
            self.line(NOT_AVAILABLE)
        value_x = self.page_w / 2
        for path, value in metrics:
            self.check_page()
            self.c.setFont(_FONT, 9)
            self.c.drawString(_MARGIN, self.y, _fit(metric_label(path), value_x - _MARGIN - 10, 9))
            self.c.setFont(_BOLD, 9)
            self.c.drawString(value_x, self.y, _fit(cell_text(value), self.page_w / 2 - _MARGIN, 9))
            self.y -= 0.42 * cm

    def line(self, text: str) -> None:
        self.check_page()
        self.c.setFont(_FONT, 9)
        self.c.drawString(_MARGIN, self.y, text)
        self.y -= 0.42 * cm

    def table(self, title: str, columns: Columns, rows: Sequence[dict[str, Any]]) -> None:
        """Detail listing starting on a fresh page; breaks every
        ``rows_per_page`` rows, or sooner when the page is full, and
        repeats the column header."""
        self.new_page()
        width = (self.page_w - 2 * _MARGIN) / max(len(columns), 1)
        font_size = 7 if len(columns) > 10 else 8

        def column_header() -> None:
            self.heading(f"{title} ({len(rows)} records)")
            self.c.setFont(_BOLD, font_size)
            for idx, (_, label) in enumerate(columns):
                self.c.drawString(_MARGIN + idx * width, self.y, _fit(label, width - 4, font_size, _BOLD))
            self.y -= 0.15 * cm
            self.c.line(_MARGIN, self.y, self.page_w - _MARGIN, self.y)
            self.y -= 0.4 * cm

        column_header()
        if not rows:
            self.line("No records.")
            return
        on_page = 0
        for row in rows:
            if on_page == self.rows_per_page or self.y - _LINE < _BOTTOM:
                self.new_page()
                column_header()
                on_page = 0
            self.c.setFont(_FONT, font_size)
            for idx, (key, _) in enumerate(columns):
                text = _fit(cell_text(row.get(key)), width - 4, font_size)
                self.c.drawString(_MARGIN + idx * width, self.y, text)
            self.y -= _LINE
            on_page += 1

    def save(self) -> int:
        self.c.save()
        return self.page


def _fit(text: str, width: float, size: float, font: str = _FONT) -> str:
    """Truncate *text* with an ellipsis so it fits in *width* points."""
    if stringWidth(text, font, size) <= width:
        return text
    while text and stringWidth(text + "...", font, size) > width:
        text = text[:-1]
    return text + "..."


def render_pdf(report: Report, rows_per_page: Optional[int] = None) -> RenderedReport:
    """Header, statistics, then the detail listing and any sections/trends,
    each starting on a new page."""
    buffer = BytesIO()
    doc = _PdfDocument(report, buffer, rows_per_page or settings.PDF_ROWS_PER_PAGE)
    doc.statistics(report.summary_metrics())

    title = PRIMARY_SHEETS[report.report_type]
    doc.table(title, DETAIL_COLUMNS[report.report_type], report.details)
    for name, columns, rows in _extra_tables(report):
        doc.table(metric_label(name), columns, rows)

    pages = doc.save()
    return RenderedReport(
        content=buffer.getvalue(),
        media_type=PDF_MEDIA_TYPE,
        filename=report_filename(report, "pdf"),
        page_count=pages,
    )


# ═════════════════════════════════════════════════════════════════════
# Excel
# ═════════════════════════════════════════════════════════════════════

# Leading characters that make a spreadsheet treat text as a formula
_FORMULA_PREFIXES = ("=", "+", "-", "@")


def _write_sheet(wb: Workbook, title: str, headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
    ws = wb.create_sheet(title=title[:31])
    ws.append(list(headers))
    header_font = Font(bold=True)
    for col in range(1, len(headers) + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = header_font
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)

    for row in rows:
        ws.append(list(row))
        for cell in ws[ws.max_row]:
            if isinstance(cell.value, str) and cell.value.startswith(_FORMULA_PREFIXES):
                cell.data_type = "s"
                cell.quotePrefix = True

    ws.freeze_panes = "A2"

    for col_idx in range(1, len(headers) + 1):
        col_letter = get_column_letter(col_idx)
        max_len = max((len(str(cell.value)) for cell in ws[col_letter] if cell.value is not None), default=0)
        ws.column_dimensions[col_letter].width = min(max(10, max_len + 2), 55)


def render_excel(report: Report) -> RenderedReport:
    """Primary detail sheet, a Metric/Value ``Summary`` sheet, then one
    sheet per section and trend series."""
    wb = Workbook()
    wb.remove(wb.active)

    columns = DETAIL_COLUMNS[report.report_type]
    _write_sheet(
        wb,
        PRIMARY_SHEETS[report.report_type],
        [label for _, label in columns],
        table_rows(report.details, columns),
    )
    _write_sheet(
        wb,
        "Summary",
        ["Metric", "Value"],
        [[path, cell_value(value)] for path, value in report.summary_metrics()],
    )
    for name, extra_columns, rows in _extra_tables(report):
        _write_sheet(
            wb,
            metric_label(name),
            [label for _, label in extra_columns],
            table_rows(rows, extra_columns),
        )

    buffer = BytesIO()
    wb.save(buffer)
    return RenderedReport(
        content=buffer.getvalue(),
        media_type=XLSX_MEDIA_TYPE,
        filename=report_filename(report, "xlsx"),
        page_count=len(wb.worksheets),
    )
