"""
Unit Tests for the worksheet PDF export
"""
from datetime import date

from services.aggregation import MODE_QUARTERLY, bucket_reports
from services.pdf_generator import WorksheetPDFGenerator
from services.worksheet import new_draft, update_entry


class TestWorksheetPDF:
    """Test PDF generation"""

    def test_blank_draft(self):
        pdf = WorksheetPDFGenerator().generate_worksheet_pdf(new_draft(date(2024, 3, 1)))
        assert pdf.startswith(b"%PDF")

    def test_filled_report_with_special_characters(self):
        draft = new_draft(date(2024, 3, 1))
        draft.entries = update_entry(draft.entries, "disease-0", "admissions_u5", 12)
        draft.metadata.ward_name = "Ward <A> & B"
        draft.metadata.compiled_by = "Nurse Banda"

        pdf = WorksheetPDFGenerator().generate_worksheet_pdf(draft, "Test & District Hospital")

        assert pdf.startswith(b"%PDF")
        assert len(pdf) > 1000

    def test_aggregated_bucket(self, make_report):
        history = [
            make_report("r1", "January", "2024", {"Malaria": (3, 1, 0, 0)}),
            make_report("r2", "February", "2024", {"Malaria": (2, 0, 1, 0)}),
        ]
        bucket = bucket_reports(history, None, MODE_QUARTERLY)[0]

        pdf = WorksheetPDFGenerator().generate_worksheet_pdf(bucket)

        assert pdf.startswith(b"%PDF")
