# report_export.py — PDF (reportlab) and Excel (openpyxl) renderings of manager analytics
#
# Both builders take the camelCase dict produced by
# ManagerAnalytics.to_dict() and return the file as bytes.

import io
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle

PDF_MEDIA_TYPE = "application/pdf"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

REPORT_TITLE = "Manager Analytics Report"
SHEET_TITLE = "Analytics Report"
EXCEL_COLUMN_WIDTHS = (35, 20, 25, 15, 15, 15, 15)
PRIORITY_ORDER = ("CRITICAL", "HIGH", "MEDIUM", "LOW")

# Table header colours per section
BLUE = colors.Color(59 / 255, 130 / 255, 246 / 255)
PURPLE = colors.Color(139 / 255, 92 / 255, 246 / 255)
GREEN = colors.Color(16 / 255, 185 / 255, 129 / 255)
AMBER = colors.Color(245 / 255, 158 / 255, 11 / 255)


def _num(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _label(value: str) -> str:
    return value.replace("_", " ")


def export_filename(fmt: str, today: Optional[datetime] = None) -> str:
    stamp = (today or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
    return f"analytics-report-{stamp}.{fmt}"


# ============================================================
# PDF
# ============================================================

def _pdf_sections(a: Dict[str, Any]) -> List[Tuple[str, List[str], List[List[str]], colors.Color]]:
    overview = a["overview"]
    sections = [
        ("Overview", ["Metric", "Value"], [
            ["Total Projects", str(overview["totalProjects"])],
            ["Total Tasks", str(overview["totalTasks"])],
            ["Completed Tasks", str(overview["completedTasks"])],
            ["In Progress", str(overview["inProgressTasks"])],
            ["Completion Rate", f"{_num(overview['completionRate']):.1f}%"],
            ["Project Members", str(overview["totalTeamMembers"])],
        ], BLUE),
        ("Key Performance Indicators", ["KPI", "Value"], [
            ["Sprint Velocity", f"{_num(a['velocity']['tasksPerWeek']):.1f} tasks/week"],
            ["Estimation Accuracy", f"{_num(a['estimation']['accuracy']):.1f}%"],
            ["Burn Rate", f"{_num(a['burnRate']['percentage']):.1f}%"],
        ], PURPLE),
        ("Velocity Trend", ["Week", "Tasks Completed"], [
            [item["week"], str(item["tasksCompleted"])] for item in a["velocity"]["trend"]
        ], BLUE),
        ("Team Performance", ["Member", "Tasks", "Hours", "Efficiency"], [
            [
                m.get("username") or "Unknown",
                str(m["tasksCompleted"]),
                f"{_num(m['hoursLogged']):.1f}h",
                f"{_num(m['efficiency']):.1f}%",
            ]
            for m in a["teamPerformance"]
        ], GREEN),
        ("Project Health", ["Project", "Completion", "Health Score", "Status"], [
            [
                p["projectName"],
                f"{_num(p['completionRate']):.1f}%",
                f"{_num(p['healthScore']):.1f}",
                p["status"],
            ]
            for p in a["projectHealth"]
        ], AMBER),
        ("Work Type Distribution", ["Work Type", "Hours"], [
            [_label(w["workType"]), f"{_num(w['hours']):.1f}h"] for w in a["workTypeDistribution"]
        ], PURPLE),
        ("Task Status Distribution", ["Status", "Count"], [
            ["Completed", str(overview["completedTasks"])],
            ["In Progress", str(overview["inProgressTasks"])],
            ["To Do", str(overview["todoTasks"])],
        ], GREEN),
    ]
    return [s for s in sections if s[2]]


def build_pdf(analytics: Dict[str, Any], generated_at: Optional[datetime] = None) -> bytes:
    """Render the analytics as an A4 PDF of titled tables; empty sections are skipped"""
    generated_at = generated_at or datetime.now(timezone.utc)
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer, pagesize=A4, title=REPORT_TITLE,
        leftMargin=14 * mm, rightMargin=14 * mm, topMargin=20 * mm, bottomMargin=20 * mm,
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle("ReportTitle", parent=styles["Title"], textColor=BLUE)
    meta_style = ParagraphStyle("ReportMeta", parent=styles["Normal"], alignment=1, textColor=colors.grey)

    story = [
        Paragraph(REPORT_TITLE, title_style),
        Paragraph(f"Generated: {generated_at.strftime('%Y-%m-%d')}", meta_style),
        Paragraph(f"Time Range: Last {analytics['timeRange']['days']} days", meta_style),
        Spacer(1, 8 * mm),
    ]

    for heading, header, rows, colour in _pdf_sections(analytics):
        table = Table([header] + rows, repeatRows=1, hAlign="LEFT")
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), colour),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ]))
        story.extend([Paragraph(heading, styles["Heading2"]), table, Spacer(1, 6 * mm)])

    doc.build(story)
    return buffer.getvalue()


# ============================================================
# EXCEL
# ============================================================

def _excel_rows(a: Dict[str, Any], generated_at: datetime) -> List[Tuple[List[Any], bool]]:
    """(row, bold) pairs laid out top to bottom"""
    rows: List[Tuple[List[Any], bool]] = []

    def section(title: str, header: List[str], body: List[List[Any]]):
        rows.append(([title], True))
        rows.append(([""], False))
        rows.append((header, True))
        rows.extend((r, False) for r in body)
        rows.append(([""], False))

    overview = a["overview"]
    velocity = a["velocity"]
    estimation = a["estimation"]
    burn = a["burnRate"]
    distribution = a["distribution"]

    rows.append((["PROJECT ANALYTICS DASHBOARD REPORT"], True))
    rows.append(([f"Generated: {generated_at.strftime('%Y-%m-%d %H:%M:%S')} UTC"], False))
    rows.append(([""], False))

    section("OVERVIEW METRICS", ["Metric", "Value"], [
        ["Total Projects", overview["totalProjects"]],
        ["Total Tasks", overview["totalTasks"]],
        ["Completed Tasks", overview["completedTasks"]],
        ["In Progress Tasks", overview["inProgressTasks"]],
        ["To Do Tasks", overview["todoTasks"]],
        ["Completion Rate", f"{_num(overview['completionRate']):.1f}%"],
        ["Team Members", overview["totalTeamMembers"]],
    ])

    section("KEY PERFORMANCE INDICATORS", ["KPI", "Value", "Details"], [
        ["Sprint Velocity", f"{_num(velocity['tasksPerWeek']):.1f} tasks/week",
         f"Total Weeks: {velocity['totalWeeks']}"],
        ["Estimation Accuracy", f"{_num(estimation['accuracy']):.1f}%",
         f"{estimation['tasksWithEstimates']} tasks with estimates"],
        ["Burn Rate", f"{_num(burn['percentage']):.1f}%",
         f"{burn['hoursConsumed']}h / {burn['hoursEstimated']}h"],
    ])

    if velocity["trend"]:
        section("VELOCITY TREND (Tasks Per Week)", ["Week", "Tasks Completed"], [
            [item["week"], item["tasksCompleted"]] for item in velocity["trend"]
        ])

    if a["teamPerformance"]:
        section(
            "TEAM PERFORMANCE",
            ["Member", "Tasks Completed", "Hours Logged", "Avg Hours/Task", "Efficiency %"],
            [
                [
                    m.get("username") or "Unknown",
                    m["tasksCompleted"],
                    f"{_num(m['hoursLogged']):.1f}",
                    m["avgHoursPerTask"],
                    f"{_num(m['efficiency']):.1f}",
                ]
                for m in a["teamPerformance"]
            ],
        )

    if a["projectHealth"]:
        section(
            "PROJECT HEALTH STATUS",
            ["Project", "Total Tasks", "Completed", "Completion %", "Burn Rate %", "Health Score", "Status"],
            [
                [
                    p["projectName"], p["totalTasks"], p["completedTasks"],
                    f"{_num(p['completionRate']):.1f}", p["burnRate"],
                    f"{_num(p['healthScore']):.1f}", p["status"],
                ]
                for p in a["projectHealth"]
            ],
        )

    by_status = distribution["byStatus"]
    section("TASK STATUS DISTRIBUTION", ["Status", "Count"], [
        ["Completed", by_status.get("COMPLETED", 0)],
        ["In Progress", by_status.get("IN_PROGRESS", 0)],
        ["To Do", by_status.get("TODO", 0)],
        ["Cancelled", by_status.get("CANCELLED", 0)],
    ])

    if a["workTypeDistribution"]:
        total_hours = sum(_num(w["hours"]) for w in a["workTypeDistribution"])
        section("WORK TYPE DISTRIBUTION", ["Work Type", "Hours", "Percentage"], [
            [
                w["workType"],
                f"{_num(w['hours']):.1f}",
                f"{_num(w['hours']) / total_hours * 100:.1f}%" if total_hours > 0 else "0%",
            ]
            for w in a["workTypeDistribution"]
        ])

    by_priority = distribution["byPriority"]
    section("TASK PRIORITY DISTRIBUTION", ["Priority", "Count"], [
        [p.title(), by_priority.get(p, 0)] for p in PRIORITY_ORDER
    ])

    section("TIME ANALYSIS", ["Metric", "Hours"], [
        ["Total Estimated", estimation["totalEstimatedHours"]],
        ["Total Actual", estimation["totalActualHours"]],
        ["Variance", estimation["variance"]],
        ["Remaining", burn["hoursRemaining"]],
    ])
    return rows


def build_xlsx(analytics: Dict[str, Any], generated_at: Optional[datetime] = None) -> bytes:
    """Render the analytics as a single-sheet workbook"""
    generated_at = generated_at or datetime.now(timezone.utc)
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE

    bold = Font(bold=True)
    for row, is_header in _excel_rows(analytics, generated_at):
        ws.append(row)
        for cell in ws[ws.max_row]:
            # Usernames and project names are user input; never let them become formulas
            if cell.data_type == "f":
                cell.data_type = "s"
            if is_header:
                cell.font = bold

    for index, width in enumerate(EXCEL_COLUMN_WIDTHS, start=1):
        ws.column_dimensions[get_column_letter(index)].width = width

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


EXPORTERS = {
    "pdf": (PDF_MEDIA_TYPE, build_pdf),
    "xlsx": (XLSX_MEDIA_TYPE, build_xlsx),
}
