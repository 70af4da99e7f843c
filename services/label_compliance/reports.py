"""
Compliance Reports
==================

CSV and PDF renderings of a completed compliance check.

The CSV quotes every cell (embedded quotes doubled) so spreadsheet tools
never split an explanation on a comma.

Version: 0.1.0
"""

import csv
import io
from collections.abc import Sequence
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from shared.database.models import (
    CheckResultModel,
    CheckStatus,
    ComplianceCheckModel,
    ProductType,
)


CSV_HEADERS = [
    "Rule Name",
    "Category",
    "Status",
    "Found Value",
    "Expected Value",
    "Explanation",
    "Citation",
]

STATUS_COLORS = {
    CheckStatus.PASS: "#198754",
    CheckStatus.WARNING: "#b7791f",
    CheckStatus.FAIL: "#c0392b",
}


def report_file_name(check_id: object, extension: str) -> str:
    return f"compliance-report-{check_id}.{extension}"


def _row(result: CheckResultModel) -> list[str]:
    if result.rule is not None:
        name, category = result.rule.name, result.rule.category
    else:
        name, category = "Custom Rule", "Custom"
    return [
        name,
        category,
        CheckStatus(result.status).value,
        result.found_value or "",
        result.expected_value or "",
        result.explanation or "",
        result.citation or "",
    ]


def render_csv(results: Sequence[CheckResultModel]) -> str:
    """One row per result under the fixed header."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for result in results:
        writer.writerow(_row(result))
    return buffer.getvalue()


def render_pdf(check: ComplianceCheckModel, results: Sequence[CheckResultModel]) -> bytes:
    """Summary header plus a results table."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        rightMargin=0.75 * inch,
        leftMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
    )
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "ReportTitle",
        parent=styles["Title"],
        fontSize=20,
        textColor=colors.HexColor("#1a1a1a"),
        spaceAfter=12,
    )
    heading_style = ParagraphStyle(
        "ReportHeading",
        parent=styles["Heading2"],
        fontSize=13,
        textColor=colors.HexColor("#2c3e50"),
        spaceBefore=14,
        spaceAfter=8,
    )
    cell_style = ParagraphStyle("ReportCell", parent=styles["Normal"], fontSize=8, leading=10)

    overall = CheckStatus(check.overall_status) if check.overall_status else None
    state_name = check.state.name if check.state is not None else ""

    story = [
        Paragraph("Label Compliance Report", title_style),
        Paragraph(escape(check.product_name or "Unnamed product"), styles["Heading3"]),
        Spacer(1, 0.1 * inch),
    ]

    summary = [
        ["State", state_name],
        ["Product type", ProductType(check.product_type).value],
        ["Overall status", overall.value.upper() if overall else "PENDING"],
        ["Passed", str(check.pass_count)],
        ["Warnings", str(check.warning_count)],
        ["Failed", str(check.fail_count)],
        [
            "Completed",
            check.completed_at.strftime("%Y-%m-%d %H:%M UTC") if check.completed_at else "",
        ],
    ]
    summary_table = Table(summary, colWidths=[2 * inch, 4.5 * inch])
    summary_style = [
        ("BACKGROUND", (0, 0), (0, -1), colors.HexColor("#f8f9fa")),
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 10),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#dee2e6")),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]
    if overall:
        summary_style.append(("TEXTCOLOR", (1, 2), (1, 2), colors.HexColor(STATUS_COLORS[overall])))
    summary_table.setStyle(TableStyle(summary_style))
    story += [Paragraph("<b>Summary</b>", heading_style), summary_table]

    rows = [[Paragraph(f"<b>{h}</b>", cell_style) for h in ("Rule", "Status", "Found", "Explanation", "Citation")]]
    status_styles = []
    for index, result in enumerate(results, start=1):
        name, _, status, found, _, explanation, citation = _row(result)
        rows.append([Paragraph(escape(cell), cell_style) for cell in (name, status, found, explanation, citation)])
        status_styles.append(
            ("TEXTCOLOR", (1, index), (1, index), colors.HexColor(STATUS_COLORS[CheckStatus(status)]))
        )

    results_table = Table(
        rows,
        colWidths=[1.4 * inch, 0.7 * inch, 1.4 * inch, 2.0 * inch, 1.5 * inch],
        repeatRows=1,
    )
    results_table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#e9ecef")),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#dee2e6")),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                *status_styles,
            ]
        )
    )
    story += [Paragraph("<b>Rule Results</b>", heading_style), results_table]

    doc.build(story)
    return buffer.getvalue()
