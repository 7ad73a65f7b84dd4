# worksheet.py
# State transitions for the worksheet draft, report history and death audits
#
# Each operation takes the old state and returns a new one; callers persist
# the result afterwards. Inputs are never mutated.

import copy
import logging
import numbers
import re
import time
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from core.config import DEFAULT_WARD_NAME, DIAGNOSIS_LIST, DISEASE_LIST, MONTHS
from core.models import DeathAuditEntry, DiseaseEntry, WorksheetMetadata, WorksheetState

logger = logging.getLogger(__name__)

DRAFT_ID = "current"

COUNT_FIELDS = ("admissions_u5", "admissions_o5", "deaths_u5", "deaths_o5")
METADATA_COUNT_FIELDS = (
    "total_inpatient_days", "referrals_from_hc", "referrals_to_hospital", "ward_rounds", "abscondees"
)
METADATA_TEXT_FIELDS = ("ward_name", "month", "year", "compiled_by", "checked_by")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def now_ms() -> int:
    return int(time.time() * 1000)

def coerce_count(value: Any) -> int:
    """
    Turn form or extraction input into a non-negative count

    Strings use their leading integer ("12abc" -> 12); anything non-numeric is 0.
    """
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, numbers.Real):  # includes numpy scalars from data editors
        try:
            result = int(value)
        except (OverflowError, ValueError):  # inf / nan
            return 0
    elif isinstance(value, str):
        match = _LEADING_INT.match(value)
        result = int(match.group(1)) if match else 0
    else:
        return 0
    return max(result, 0)

def normalize_month(value: Any) -> Optional[str]:
    """Full month name for "March", "mar", "MARCH"; None if unrecognised"""
    text = str(value or "").strip().lower()
    for name in MONTHS:
        if text == name.lower() or (len(text) >= 3 and name.lower().startswith(text)):
            return name
    return None

# ========================================
# Draft construction
# ========================================

def previous_month(today: Optional[date] = None) -> Tuple[str, str]:
    """Reporting month and year default to the month before today"""
    today = today or date.today()
    if today.month == 1:
        return MONTHS[11], str(today.year - 1)
    return MONTHS[today.month - 2], str(today.year)

def default_metadata(today: Optional[date] = None) -> WorksheetMetadata:
    month, year = previous_month(today)
    return WorksheetMetadata(ward_name=DEFAULT_WARD_NAME, month=month, year=year)

def blank_entries() -> List[DiseaseEntry]:
    """One zeroed entry per canonical disease, in canonical order"""
    return [DiseaseEntry(id=f"disease-{index}", name=name) for index, name in enumerate(DISEASE_LIST)]

def new_draft(today: Optional[date] = None) -> WorksheetState:
    return WorksheetState(id=DRAFT_ID, metadata=default_metadata(today), entries=blank_entries(), timestamp=now_ms())

def update_entry(entries: List[DiseaseEntry], entry_id: str, field: str, raw_value: Any) -> List[DiseaseEntry]:
    """Replace one count of one entry with its coerced value"""
    if field not in COUNT_FIELDS:
        raise ValueError(f"Not an editable count: {field}")
    value = coerce_count(raw_value)
    return [replace(e, **{field: value}) if e.id == entry_id else replace(e) for e in entries]

def update_metadata(metadata: WorksheetMetadata, field: str, value: Any) -> WorksheetMetadata:
    if field in METADATA_COUNT_FIELDS:
        return replace(metadata, **{field: coerce_count(value)})
    if field in METADATA_TEXT_FIELDS:
        return replace(metadata, **{field: str(value if value is not None else "").strip()})
    raise ValueError(f"Unknown worksheet field: {field}")

# ========================================
# Session lifecycle
# ========================================

def reset_session(draft: WorksheetState, today: Optional[date] = None) -> WorksheetState:
    """
    Clear the draft for a new entry (also used to cancel an edit)

    Ward name, compiler, checker and ward rounds carry over to the next report.
    """
    month, year = previous_month(today)
    metadata = replace(
        draft.metadata,
        month=month,
        year=year,
        total_inpatient_days=0,
        referrals_from_hc=0,
        referrals_to_hospital=0,
        abscondees=0,
    )
    return WorksheetState(id=DRAFT_ID, metadata=metadata, entries=blank_entries(), timestamp=now_ms())

def load_for_editing(report: WorksheetState) -> Tuple[WorksheetState, str]:
    """Copy a stored report into the draft; returns the draft and the editing id"""
    draft = copy.deepcopy(report)
    draft.label = None
    return draft, report.id

def submit_report(history: List[WorksheetState], draft: WorksheetState, editing_id: Optional[str] = None,
                  timestamp: Optional[int] = None) -> Tuple[List[WorksheetState], WorksheetState]:
    """
    Save the draft into history

    With an editing id that names a stored report, that report is replaced in
    place (same id and position, fresh timestamp). Otherwise a new report is
    appended.

    Returns:
        (new history, saved report)
    """
    timestamp = timestamp if timestamp is not None else now_ms()
    metadata = replace(draft.metadata)
    entries = [replace(e) for e in draft.entries]

    if editing_id and any(r.id == editing_id for r in history):
        saved = WorksheetState(id=editing_id, metadata=metadata, entries=entries, timestamp=timestamp)
        new_history = [saved if r.id == editing_id else r for r in history]
        logger.info("Updated report %s (%s %s)", editing_id, metadata.month, metadata.year)
        return new_history, saved

    if editing_id:
        logger.warning("Report %s no longer exists; saving as a new report", editing_id)
    saved = WorksheetState(id=f"report-{timestamp}", metadata=metadata, entries=entries, timestamp=timestamp)
    logger.info("Saved report %s (%s %s)", saved.id, metadata.month, metadata.year)
    return list(history) + [saved], saved

# ========================================
# Optical extraction merge
# ========================================

@dataclass
class ExtractionRequest:
    """A photographed worksheet waiting to be sent to the extractor"""
    image: bytes
    mime_type: str
    filename: str = ""

def request_extraction(pending: Optional[ExtractionRequest], image: bytes, mime_type: Optional[str],
                       filename: str = "") -> Optional[ExtractionRequest]:
    """
    Queue a new extraction

    Returns None while another request is pending or when there is no image,
    so at most one extraction call is in flight per session.
    """
    if pending is not None:
        logger.info("Extraction already pending for %s; ignoring %s", pending.filename, filename)
        return None
    if not image:
        return None
    return ExtractionRequest(image=image, mime_type=mime_type or "image/jpeg", filename=filename)

def _find_extracted_match(name: str, extracted_entries: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """First returned entry whose name contains, or is contained in, the canonical name"""
    canonical = name.lower()
    for candidate in extracted_entries:
        other = str(candidate.get("name") or "").strip().lower()
        if not other:
            continue
        if other in canonical or canonical in other:
            return candidate
    return None

def merge_extraction(draft: WorksheetState, extracted: Dict[str, Any]) -> WorksheetState:
    """
    Overlay a partial worksheet returned by the extractor onto the draft

    Known metadata fields are overlaid. Each canonical entry takes the counts
    of its first fuzzy match; unmatched canonical entries are untouched and
    unmatched returned entries are dropped. Canonical names never change.
    """
    metadata = replace(draft.metadata)
    for key, value in (extracted.get("metadata") or {}).items():
        if value is None:
            continue
        if key == "month":
            month = normalize_month(value)
            if month:
                metadata = replace(metadata, month=month)
        elif key in METADATA_COUNT_FIELDS or key in METADATA_TEXT_FIELDS:
            metadata = update_metadata(metadata, key, value)

    extracted_entries = [e for e in (extracted.get("entries") or []) if isinstance(e, dict)]
    entries = []
    for entry in draft.entries:
        matched = _find_extracted_match(entry.name, extracted_entries)
        if matched is None:
            entries.append(replace(entry))
            continue
        counts = {f: coerce_count(matched[f]) for f in COUNT_FIELDS if f in matched}
        entries.append(replace(entry, **counts))

    return replace(draft, metadata=metadata, entries=entries)

# ========================================
# Death audits
# ========================================

def add_death_audit(audits: List[DeathAuditEntry], audit: DeathAuditEntry,
                    timestamp: Optional[int] = None) -> Tuple[List[DeathAuditEntry], DeathAuditEntry]:
    """Newest audits go first"""
    timestamp = timestamp if timestamp is not None else now_ms()
    saved = replace(audit, id=f"audit-{timestamp}")
    return [saved] + list(audits), saved

def delete_death_audit(audits: List[DeathAuditEntry], audit_id: str) -> List[DeathAuditEntry]:
    return [a for a in audits if a.id != audit_id]

def search_diagnoses(query: str) -> List[str]:
    if not query:
        return DIAGNOSIS_LIST[:10]
    needle = query.lower()
    return [d for d in DIAGNOSIS_LIST if needle in d.lower()][:15]
