# pdf_generator.py
# Printable PDF of a ward morbidity worksheet using reportlab

from io import BytesIO
from datetime import datetime
from typing import List, Optional
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import inch
from reportlab.lib import colors
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle
from reportlab.lib.enums import TA_CENTER

from core.config import HOSPITAL_NAME, PDF_HEADER_COLOR
from core.models import WorksheetState, DiseaseEntry


class WorksheetPDFGenerator:
    """Generates printable PDF copies of monthly ward worksheets"""

    def __init__(self):
        """Initialize PDF generator with styling and configuration"""
        # Page dimensions
        self.page_width, self.page_height = A4
        self.margin = 0.6 * inch

        # Colors
        self.header_color = colors.HexColor(PDF_HEADER_COLOR)
        self.text_color = colors.black
        self.light_gray = colors.HexColor("#F1F5F9")

        # Fonts and sizes
        self.title_font = "Helvetica-Bold"
        self.title_size = 15
        self.section_font = "Helvetica-Bold"
        self.section_size = 12
        self.body_font = "Helvetica"
        self.body_size = 9
        self.small_font = "Helvetica"
        self.small_size = 8

        self.styles = getSampleStyleSheet()

        self.title_style = ParagraphStyle(
            'WorksheetTitle',
            parent=self.styles['Heading1'],
            fontName=self.title_font,
            fontSize=self.title_size,
            textColor=self.header_color,
            alignment=TA_CENTER,
            spaceAfter=4
        )

        self.subtitle_style = ParagraphStyle(
            'WorksheetSubtitle',
            parent=self.styles['Normal'],
            fontName=self.body_font,
            fontSize=10,
            textColor=colors.gray,
            alignment=TA_CENTER,
            spaceAfter=10
        )

        self.section_style = ParagraphStyle(
            'WorksheetSection',
            parent=self.styles['Heading2'],
            fontName=self.section_font,
            fontSize=self.section_size,
            textColor=self.header_color,
            spaceAfter=6,
            spaceBefore=10
        )

        self.body_style = ParagraphStyle(
            'WorksheetBody',
            parent=self.styles['BodyText'],
            fontName=self.body_font,
            fontSize=self.body_size,
            textColor=self.text_color,
            leading=11
        )

    def generate_worksheet_pdf(self, report: WorksheetState, hospital_name: Optional[str] = None) -> bytes:
        """
        Generate a PDF for one report

        Args:
            report: Saved report, draft or aggregated bucket
            hospital_name: Name printed in the title; defaults to HOSPITAL_NAME

        Returns:
            PDF file as bytes
        """
        self._hospital_name = hospital_name or HOSPITAL_NAME
        buffer = BytesIO()

        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=self.margin,
            leftMargin=self.margin,
            topMargin=self.margin + 0.4*inch,  # Extra space for header
            bottomMargin=self.margin + 0.3*inch,  # Extra space for footer
            title=f"Ward Worksheet - {report.metadata.month} {report.metadata.year}"
        )

        story = []
        story.append(Paragraph(escape(self._hospital_name.upper()), self.title_style))
        period = report.label or f"{report.metadata.month} {report.metadata.year}"
        story.append(Paragraph(
            f"Monthly Ward Morbidity &amp; Mortality Worksheet - {escape(period)}", self.subtitle_style
        ))

        story.extend(self._add_metadata_section(report))
        story.append(Spacer(1, 0.15*inch))
        story.extend(self._add_disease_table(report.entries))
        story.append(Spacer(1, 0.3*inch))
        story.extend(self._add_signature_section(report))

        doc.build(
            story,
            onFirstPage=self._add_header_footer,
            onLaterPages=self._add_header_footer
        )

        pdf_bytes = buffer.getvalue()
        buffer.close()
        return pdf_bytes

    def _add_metadata_section(self, report: WorksheetState) -> list:
        """Ward details and operational counters"""
        elements = []
        metadata = report.metadata

        elements.append(Paragraph("WARD DETAILS", self.section_style))

        data = [
            ["Ward:", metadata.ward_name, "Month / Year:", f"{metadata.month} {metadata.year}"],
            ["In-Patient Days:", str(metadata.total_inpatient_days), "Ward Rounds:", str(metadata.ward_rounds)],
            ["Referrals from HC:", str(metadata.referrals_from_hc), "Referrals to Hospital:", str(metadata.referrals_to_hospital)],
            ["Abscondees:", str(metadata.abscondees), "", ""],
        ]

        table = Table(data, colWidths=[1.4*inch, 2.1*inch, 1.6*inch, 1.9*inch])
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (0, -1), self.light_gray),
            ('BACKGROUND', (2, 0), (2, -1), self.light_gray),
            ('FONTNAME', (0, 0), (0, -1), self.section_font),
            ('FONTNAME', (2, 0), (2, -1), self.section_font),
            ('FONTNAME', (1, 0), (1, -1), self.body_font),
            ('FONTNAME', (3, 0), (3, -1), self.body_font),
            ('FONTSIZE', (0, 0), (-1, -1), self.body_size),
            ('PADDING', (0, 0), (-1, -1), 5),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.gray),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ]))

        elements.append(table)
        return elements

    def _add_disease_table(self, entries: List[DiseaseEntry]) -> list:
        """Disease rows with under/over five splits and a totals row"""
        elements = []
        elements.append(Paragraph("ADMISSIONS AND DEATHS", self.section_style))

        data = [
            ["Disease / Condition", "Admissions", "", "", "Deaths", "", ""],
            ["", "<5", ">5", "Total", "<5", ">5", "Total"],
        ]
        for entry in entries:
            data.append([
                Paragraph(escape(entry.name), self.body_style),
                entry.admissions_u5, entry.admissions_o5, entry.total_admissions,
                entry.deaths_u5, entry.deaths_o5, entry.total_deaths,
            ])
        data.append([
            "TOTAL",
            sum(e.admissions_u5 for e in entries),
            sum(e.admissions_o5 for e in entries),
            sum(e.total_admissions for e in entries),
            sum(e.deaths_u5 for e in entries),
            sum(e.deaths_o5 for e in entries),
            sum(e.total_deaths for e in entries),
        ])

        table = Table(data, colWidths=[2.8*inch] + [0.7*inch] * 6, repeatRows=2)
        table.setStyle(TableStyle([
            ('SPAN', (0, 0), (0, 1)),
            ('SPAN', (1, 0), (3, 0)),
            ('SPAN', (4, 0), (6, 0)),
            ('BACKGROUND', (0, 0), (-1, 1), self.header_color),
            ('TEXTCOLOR', (0, 0), (-1, 1), colors.white),
            ('FONTNAME', (0, 0), (-1, 1), self.section_font),
            ('BACKGROUND', (3, 2), (3, -2), self.light_gray),
            ('BACKGROUND', (6, 2), (6, -2), self.light_gray),
            ('BACKGROUND', (0, -1), (-1, -1), self.light_gray),
            ('FONTNAME', (0, -1), (-1, -1), self.section_font),
            ('FONTNAME', (1, 2), (-1, -2), self.body_font),
            ('FONTSIZE', (0, 0), (-1, -1), self.body_size),
            ('ALIGN', (1, 0), (-1, -1), 'CENTER'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('PADDING', (0, 0), (-1, -1), 3),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.gray),
        ]))

        elements.append(table)
        return elements

    def _add_signature_section(self, report: WorksheetState) -> list:
        """Compiled-by and checked-by lines"""
        metadata = report.metadata
        data = [
            ["Compiled by:", metadata.compiled_by or "", "Checked by:", metadata.checked_by or ""],
            ["Signature:", "", "Signature:", ""],
        ]

        table = Table(data, colWidths=[1.1*inch, 2.4*inch, 1.1*inch, 2.4*inch])
        table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (0, -1), self.section_font),
            ('FONTNAME', (2, 0), (2, -1), self.section_font),
            ('FONTSIZE', (0, 0), (-1, -1), self.body_size),
            ('LINEBELOW', (1, 0), (1, -1), 0.5, colors.gray),
            ('LINEBELOW', (3, 0), (3, -1), 0.5, colors.gray),
            ('TOPPADDING', (0, 0), (-1, -1), 10),
            ('VALIGN', (0, 0), (-1, -1), 'BOTTOM'),
        ]))
        return [table]

    def _add_header_footer(self, canvas, doc):
        """Add header and footer to each page"""
        canvas.saveState()

        # Header
        canvas.setFont(self.title_font, 10)
        canvas.setFillColor(self.header_color)
        canvas.drawString(self.margin, self.page_height - 0.5*inch, "WARD MORBIDITY REPORT")

        canvas.setFont(self.body_font, 9)
        canvas.setFillColor(colors.gray)
        generation_date = datetime.now().strftime("%B %d, %Y")
        canvas.drawRightString(self.page_width - self.margin, self.page_height - 0.5*inch, f"Generated: {generation_date}")

        # Header line
        canvas.setStrokeColor(self.header_color)
        canvas.setLineWidth(1)
        canvas.line(self.margin, self.page_height - 0.6*inch, self.page_width - self.margin, self.page_height - 0.6*inch)

        # Footer
        canvas.setFont(self.small_font, self.small_size)
        canvas.setFillColor(colors.gray)
        canvas.drawCentredString(self.page_width / 2, 0.5*inch, f"Page {doc.page}")
        canvas.drawString(self.margin, 0.5*inch, self._hospital_name)
        canvas.drawRightString(self.page_width - self.margin, 0.5*inch, "CONFIDENTIAL HEALTH INFORMATION")

        canvas.restoreState()
