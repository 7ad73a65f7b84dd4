# services/__init__.py
# Re-export everything for short imports

from .db_operations import (
    load_value, save_value,
    get_all_users, save_users,
    get_report_history, save_report_history,
    get_death_audits, save_death_audits,
    log_event, get_recent_logs
)
from .openai_service import WorksheetExtractor, ExtractionError
from .pdf_generator import WorksheetPDFGenerator

__all__ = [
    # DB Operations
    'load_value', 'save_value',
    'get_all_users', 'save_users',
    'get_report_history', 'save_report_history',
    'get_death_audits', 'save_death_audits',
    'log_event', 'get_recent_logs',
    # Services
    'WorksheetExtractor', 'ExtractionError',
    'WorksheetPDFGenerator'
]
