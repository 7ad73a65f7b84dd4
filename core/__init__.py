# core/__init__.py
# Re-export everything for short imports

from .models import DiseaseEntry, WorksheetMetadata, WorksheetState, DeathAuditEntry, User, AuditEvent
from .config import (
    OPENAI_API_KEY, OPENAI_MODEL, HOSPITAL_NAME, DEFAULT_WARD_NAME, PDF_HEADER_COLOR,
    MONTHS, ALL_TABS, TAB_LABELS, DISEASE_LIST, DIAGNOSIS_LIST, PREDEFINED_STAFF,
    validate_config
)
from .database import init_database, DatabaseConnection, DB_PATH

__all__ = [
    # Models
    'DiseaseEntry', 'WorksheetMetadata', 'WorksheetState',
    'DeathAuditEntry', 'User', 'AuditEvent',
    # Config
    'OPENAI_API_KEY', 'OPENAI_MODEL', 'HOSPITAL_NAME', 'DEFAULT_WARD_NAME',
    'PDF_HEADER_COLOR', 'MONTHS', 'ALL_TABS', 'TAB_LABELS', 'DISEASE_LIST',
    'DIAGNOSIS_LIST', 'PREDEFINED_STAFF', 'validate_config',
    # Database
    'init_database', 'DatabaseConnection', 'DB_PATH'
]
