"""Payslip rendering."""

from __future__ import annotations

import io
from decimal import Decimal
from typing import Protocol
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from workforce_payroll.config import Settings
from workforce_payroll.line_items import round2
from workforce_payroll.models import PayrollRecord

DEFAULT_COMPANY = "FieldOps"


class DocumentRenderer(Protocol):
    """Turns a payroll record into a downloadable document."""

    media_type: str

    def render(
        self, record: PayrollRecord, settings: Settings | None, employee_name: str = "Employee"
    ) -> bytes: ...


def _money(amount: Decimal | None) -> str:
    return f"{round2(amount or Decimal('0')):,.2f}"


class PdfPayslipRenderer:
    """Renders a single-page A4 payslip.

    Args:
        compress: Deflate page streams. Uncompressed output keeps the text
            searchable in the raw bytes.
    """

    media_type = "application/pdf"

    def __init__(self, compress: bool = True):
        self.compress = compress

    def filename(self, record: PayrollRecord) -> str:
        return f"payslip-{record.period_start.isoformat()}-{record.payroll_record_id}.pdf"

    def render(
        self, record: PayrollRecord, settings: Settings | None, employee_name: str = "Employee"
    ) -> bytes:
        company = (settings.company_name if settings is not None else None) or DEFAULT_COMPANY

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            topMargin=15 * mm,
            bottomMargin=15 * mm,
            title=f"Payslip - {employee_name}",
            author=company,
            pageCompression=1 if self.compress else 0,
            invariant=1,
        )

        styles = getSampleStyleSheet()
        title_style = ParagraphStyle("PayslipTitle", parent=styles["Heading1"], fontSize=18)
        subtitle_style = ParagraphStyle("PayslipSubtitle", parent=styles["Heading2"], fontSize=14)

        story = [
            Paragraph(escape(company), title_style),
            Paragraph(escape(f"Payslip for {employee_name}"), subtitle_style),
            Paragraph(
                f"Period: {record.period_start.isoformat()} - {record.period_end.isoformat()}",
                styles["Normal"],
            ),
            Spacer(1, 10),
        ]

        info_table = Table(
            [
                ["Hours worked:", f"{round2(record.hours_worked or 0)}"],
                ["Hourly rate:", _money(record.hourly_rate)],
                ["Status:", record.payroll_status],
            ],
            colWidths=[90, 150],
        )
        info_table.setStyle(
            TableStyle(
                [
                    ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                    ("FONTSIZE", (0, 0), (-1, -1), 10),
                ]
            )
        )
        story.append(info_table)
        story.append(Spacer(1, 15))

        pay_data = [
            ["Base Pay", _money(record.task_pay)],
            ["Overtime", _money(record.overtime_pay)],
            ["Bonuses", _money(record.total_bonuses)],
            ["Allowances", _money(record.total_allowances)],
            ["Expenses Reimbursed", _money(record.approved_expenses)],
            ["Gross Pay", _money(record.gross_pay)],
            ["Deductions", _money(record.total_deductions)],
            ["Net Pay", _money(record.net_pay)],
        ]
        pay_table = Table(pay_data, colWidths=[200, 100])
        pay_table.setStyle(
            TableStyle(
                [
                    ("FONTSIZE", (0, 0), (-1, -1), 11),
                    ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                    ("ALIGN", (1, 0), (1, -1), "RIGHT"),
                    # Net pay row
                    ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                    ("BACKGROUND", (0, -1), (-1, -1), colors.lightblue),
                ]
            )
        )
        story.append(pay_table)

        doc.build(story)
        return buffer.getvalue()
