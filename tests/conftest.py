"""
Ward Portal - Test Configuration and Fixtures
"""
import os

import pytest

# Keep tests independent of any developer .env
os.environ['OPENAI_API_KEY'] = 'test-api-key'
os.environ['LOG_LEVEL'] = 'DEBUG'

import core.database as database
from core.models import DiseaseEntry, WorksheetMetadata, WorksheetState, DeathAuditEntry


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    """Point the store at a fresh SQLite file and create the schema"""
    db_path = tmp_path / "ward_portal_test.db"
    monkeypatch.setattr(database, "DB_PATH", db_path)
    database.init_database()
    return db_path


def _make_report(report_id="report-1", month="January", year="2024", counts=None, timestamp=0, **metadata):
    """
    Build a report from {disease name: (adm_u5, adm_o5, deaths_u5, deaths_o5)}
    """
    entries = [
        DiseaseEntry(
            id=f"disease-{index}",
            name=name,
            admissions_u5=values[0],
            admissions_o5=values[1],
            deaths_u5=values[2],
            deaths_o5=values[3],
        )
        for index, (name, values) in enumerate((counts or {}).items())
    ]
    return WorksheetState(
        id=report_id,
        metadata=WorksheetMetadata(month=month, year=year, **metadata),
        entries=entries,
        timestamp=timestamp,
    )


@pytest.fixture
def make_report():
    """Factory fixture for reports"""
    return _make_report


@pytest.fixture
def make_audit():
    """Factory fixture for death audits"""
    def factory(**fields):
        return DeathAuditEntry(**fields)
    return factory
