# aggregation.py
# Report aggregation: pivot tables, time buckets, dashboard and death-audit analytics
#
# Every function here is pure: inputs are never mutated and the same inputs
# always produce the same output, so results can be cached by the UI.

import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple

from core.config import MONTHS
from core.models import DeathAuditEntry, DiseaseEntry, WorksheetState

CURRENT_ID = "current"

PIVOT_DIMENSIONS = ("disease", "month", "year")
PIVOT_METRICS = ("admissions", "deaths")

MODE_MONTHLY = "monthly"
MODE_QUARTERLY = "quarterly"
MODE_SIX_MONTHLY = "six-monthly"
MODE_YEARLY = "yearly"
AGGREGATION_MODES = (MODE_MONTHLY, MODE_QUARTERLY, MODE_SIX_MONTHLY, MODE_YEARLY)

AGE_BANDS = ["<10", "10-19", "20-29", "30-39", "40-49", "50-59", "60-69", "70-79", "80+"]

_COLUMNS = ("admissions", "deaths", "u5_admissions", "o5_admissions", "u5_deaths", "o5_deaths")


@dataclass(frozen=True)
class FlatRecord:
    """One disease line of one report"""
    disease: str
    month: str
    year: str
    admissions: int
    deaths: int
    u5_admissions: int
    o5_admissions: int
    u5_deaths: int
    o5_deaths: int


@dataclass
class PivotRow:
    """Summed metrics for one group of flat records"""
    label: str
    admissions: int = 0
    deaths: int = 0
    u5_admissions: int = 0
    o5_admissions: int = 0
    u5_deaths: int = 0
    o5_deaths: int = 0

    def add(self, record) -> None:
        for column in _COLUMNS:
            setattr(self, column, getattr(self, column) + getattr(record, column))


@dataclass
class DashboardSummary:
    top_admissions: List[DiseaseEntry] = field(default_factory=list)
    top_deaths: List[DiseaseEntry] = field(default_factory=list)
    operational_metrics: List[Tuple[str, int]] = field(default_factory=list)
    age_breakdown: List[Tuple[str, int]] = field(default_factory=list)
    total_u5_admissions: int = 0
    total_o5_admissions: int = 0
    total_deaths: int = 0

    @property
    def total_admissions(self) -> int:
        return self.total_u5_admissions + self.total_o5_admissions


# ========================================
# Report selection and flattening
# ========================================

def draft_has_data(draft: Optional[WorksheetState]) -> bool:
    """A draft only counts once any of its counts is nonzero"""
    return draft is not None and any(entry.has_data for entry in draft.entries)

def collect_reports(history: List[WorksheetState], current: Optional[WorksheetState] = None) -> List[WorksheetState]:
    """History plus the current draft (under the id 'current') when it has data"""
    reports = list(history)
    if draft_has_data(current):
        reports.append(replace(current, id=CURRENT_ID))
    return reports

def flatten_reports(history: List[WorksheetState], current: Optional[WorksheetState] = None) -> List[FlatRecord]:
    """
    Emit one record per disease line that carries data

    All-zero lines are dropped so they don't inflate the "records analyzed" count.
    """
    records = []
    for report in collect_reports(history, current):
        for entry in report.entries:
            if not entry.has_data:
                continue
            records.append(FlatRecord(
                disease=entry.name,
                month=report.metadata.month,
                year=report.metadata.year,
                admissions=entry.total_admissions,
                deaths=entry.total_deaths,
                u5_admissions=entry.admissions_u5,
                o5_admissions=entry.admissions_o5,
                u5_deaths=entry.deaths_u5,
                o5_deaths=entry.deaths_o5,
            ))
    return records


# ========================================
# Pivot
# ========================================

def pivot(records: Iterable[FlatRecord], dimension: str = "disease", metric: str = "admissions") -> List[PivotRow]:
    """
    Group flat records by a dimension and sum every metric per group

    Args:
        records: flat records from flatten_reports
        dimension: one of "disease", "month", "year" (exact string match, no normalisation)
        metric: "admissions" or "deaths"; rows are sorted by it, descending

    Returns:
        One PivotRow per distinct key. Ties keep first-encountered order.
    """
    if dimension not in PIVOT_DIMENSIONS:
        raise ValueError(f"Unknown pivot dimension: {dimension}")
    if metric not in PIVOT_METRICS:
        raise ValueError(f"Unknown pivot metric: {metric}")

    groups: Dict[str, PivotRow] = {}
    for record in records:
        key = getattr(record, dimension)
        row = groups.get(key)
        if row is None:
            row = groups[key] = PivotRow(label=key)
        row.add(record)

    # sorted() is stable, including with reverse=True
    return sorted(groups.values(), key=lambda row: getattr(row, metric), reverse=True)

def grand_totals(rows: Iterable, label: str = "Total") -> PivotRow:
    """Column sums over pivot rows (or flat records)"""
    totals = PivotRow(label=label)
    for row in rows:
        totals.add(row)
    return totals


# ========================================
# Time buckets
# ========================================

def month_index(month: str) -> int:
    """0-11 for a known month name, -1 otherwise"""
    return MONTHS.index(month) if month in MONTHS else -1

def quarter_label(month: str) -> str:
    idx = month_index(month)
    if idx < 3:
        return "Q1"
    if idx < 6:
        return "Q2"
    if idx < 9:
        return "Q3"
    return "Q4"

def half_year_label(month: str) -> str:
    return "H1 (Jan-Jun)" if month_index(month) < 6 else "H2 (Jul-Dec)"

def bucket_key(report: WorksheetState, mode: str) -> str:
    month, year = report.metadata.month, report.metadata.year
    if mode == MODE_QUARTERLY:
        return f"{quarter_label(month)} {year}"
    if mode == MODE_SIX_MONTHLY:
        return f"{half_year_label(month)} {year}"
    if mode == MODE_YEARLY:
        return f"{year}"
    raise ValueError(f"Unknown aggregation mode: {mode}")

def monthly_label(report: WorksheetState) -> str:
    suffix = " (Current)" if report.id == CURRENT_ID else ""
    return f"{report.metadata.month} {report.metadata.year}{suffix}"

def merge_reports(label: str, reports: List[WorksheetState]) -> WorksheetState:
    """Merge reports into one synthetic report; entries are matched by disease name"""
    disease_map: Dict[str, DiseaseEntry] = {}
    for report in reports:
        for entry in report.entries:
            merged = disease_map.get(entry.name)
            if merged is None:
                disease_map[entry.name] = replace(entry, id=f"agg-{entry.name}")
            else:
                merged.admissions_u5 += entry.admissions_u5
                merged.admissions_o5 += entry.admissions_o5
                merged.deaths_u5 += entry.deaths_u5
                merged.deaths_o5 += entry.deaths_o5

    first = reports[0]
    metadata = replace(
        first.metadata,
        referrals_from_hc=sum(r.metadata.referrals_from_hc for r in reports),
        referrals_to_hospital=sum(r.metadata.referrals_to_hospital for r in reports),
        abscondees=sum(r.metadata.abscondees for r in reports),
        ward_rounds=sum(r.metadata.ward_rounds for r in reports),
        total_inpatient_days=sum(r.metadata.total_inpatient_days for r in reports),
    )
    return WorksheetState(
        id=f"agg-{label}",
        metadata=metadata,
        entries=list(disease_map.values()),
        timestamp=first.timestamp,
        label=label,
    )

def bucket_reports(history: List[WorksheetState], current: Optional[WorksheetState] = None,
                   mode: str = MODE_MONTHLY) -> List[WorksheetState]:
    """
    Roll whole reports up into monthly, quarterly, six-monthly or yearly buckets

    Monthly mode keeps every report as its own bucket. Other modes merge the
    reports sharing a bucket key; buckets are ordered by first appearance.
    """
    if mode not in AGGREGATION_MODES:
        raise ValueError(f"Unknown aggregation mode: {mode}")

    reports = collect_reports(history, current)
    if mode == MODE_MONTHLY:
        return [
            replace(r, metadata=replace(r.metadata), entries=[replace(e) for e in r.entries], label=monthly_label(r))
            for r in reports
        ]

    groups: Dict[str, List[WorksheetState]] = {}
    for report in reports:
        groups.setdefault(bucket_key(report, mode), []).append(report)

    return [merge_reports(label, members) for label, members in groups.items()]

def default_selection(buckets: List[WorksheetState], mode: str) -> Optional[str]:
    """Monthly mode prefers the current draft; otherwise the latest bucket"""
    if not buckets:
        return None
    if mode == MODE_MONTHLY:
        for bucket in buckets:
            if bucket.id == CURRENT_ID:
                return bucket.id
    return buckets[-1].id

def find_bucket(buckets: List[WorksheetState], bucket_id: Optional[str]) -> Optional[WorksheetState]:
    for bucket in buckets:
        if bucket.id == bucket_id:
            return bucket
    return buckets[0] if buckets else None


# ========================================
# Dashboard
# ========================================

def dashboard_summary(report: WorksheetState, top_n: int = 10) -> DashboardSummary:
    """Headline numbers and chart series for one (possibly aggregated) report"""
    active = [e for e in report.entries if e.has_data]
    metadata = report.metadata

    total_u5 = sum(e.admissions_u5 for e in report.entries)
    total_o5 = sum(e.admissions_o5 for e in report.entries)

    return DashboardSummary(
        top_admissions=sorted(active, key=lambda e: e.total_admissions, reverse=True)[:top_n],
        top_deaths=sorted(active, key=lambda e: e.total_deaths, reverse=True)[:top_n],
        operational_metrics=[
            ("Ref. In", metadata.referrals_from_hc),
            ("Ref. Out", metadata.referrals_to_hospital),
            ("Abscondees", metadata.abscondees),
            ("In-Patient Days", metadata.total_inpatient_days),
        ],
        age_breakdown=[(name, value) for name, value in (("Under 5", total_u5), ("Over 5", total_o5)) if value > 0],
        total_u5_admissions=total_u5,
        total_o5_admissions=total_o5,
        total_deaths=sum(e.total_deaths for e in report.entries),
    )

def admissions_by_month(reports: List[WorksheetState]) -> Dict[Tuple[int, int], int]:
    """Total admissions keyed by (year, month number 1-12)"""
    totals: Dict[Tuple[int, int], int] = {}
    for report in reports:
        idx = month_index(report.metadata.month)
        try:
            year = int(report.metadata.year)
        except (TypeError, ValueError):
            continue
        if idx < 0:
            continue
        key = (year, idx + 1)
        totals[key] = totals.get(key, 0) + sum(e.total_admissions for e in report.entries)
    return totals


# ========================================
# Death audit analytics
# ========================================

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_INFANT_MARKERS = ("month", "wk", "day")
_DIAGNOSIS_SEPARATORS = re.compile(r"[,;\n]")

def parse_age(age: str) -> Optional[int]:
    """Leading integer of a free-text age, or None"""
    match = _LEADING_INT.match(age or "")
    return int(match.group(1)) if match else None

def age_band(age: str) -> Optional[str]:
    """
    Age band for a free-text age

    Ages given in months, weeks or days always land in the youngest band.
    Unparseable ages return None and are left out of the histogram.
    """
    text = (age or "").lower()
    if any(marker in text for marker in _INFANT_MARKERS):
        return AGE_BANDS[0]
    value = parse_age(text)
    if value is None:
        return None
    if value < 10:
        return AGE_BANDS[0]
    if value >= 80:
        return AGE_BANDS[-1]
    low = value // 10 * 10
    return f"{low}-{low + 9}"

def age_histogram(audits: List[DeathAuditEntry]) -> Dict[str, int]:
    histogram = {band: 0 for band in AGE_BANDS}
    for audit in audits:
        band = age_band(audit.age)
        if band is not None:
            histogram[band] += 1
    return histogram

def gender_counts(audits: List[DeathAuditEntry]) -> Dict[str, int]:
    counts = {"Female": 0, "Male": 0}
    for audit in audits:
        if audit.sex in counts:
            counts[audit.sex] += 1
    return counts

def split_diagnoses(text: str) -> List[str]:
    """Split free text on comma, semicolon or newline; drop empty fragments"""
    return [part.strip() for part in _DIAGNOSIS_SEPARATORS.split(text or "") if part.strip()]

def diagnosis_frequency(audits: List[DeathAuditEntry], limit: int = 10) -> List[Tuple[str, int]]:
    """Most frequent diagnoses, ties broken by first appearance"""
    counts: Dict[str, int] = {}
    for audit in audits:
        for diagnosis in split_diagnoses(audit.diagnosis):
            counts[diagnosis] = counts.get(diagnosis, 0) + 1
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)[:limit]

def parse_date(value: str) -> Optional[date]:
    try:
        return datetime.strptime((value or "").strip(), "%Y-%m-%d").date()
    except ValueError:
        return None

def death_trend(audits: List[DeathAuditEntry], start: Optional[date] = None, end: Optional[date] = None,
                admissions: Optional[Dict[Tuple[int, int], int]] = None) -> List[Tuple[str, float]]:
    """
    Deaths per calendar month, oldest first

    Args:
        audits: death audit records; records without a parseable death date are skipped
        start, end: optional inclusive date range
        admissions: optional admissions per (year, month); when given, values become
            deaths per 1,000 admissions (0 for months without admissions)

    Returns:
        List of (label, value) pairs with labels like "Jun 24"
    """
    death_dates = []
    for audit in audits:
        death_date = parse_date(audit.death_date)
        if death_date is None:
            continue
        if start is not None and death_date < start:
            continue
        if end is not None and death_date > end:
            continue
        death_dates.append(death_date)

    counts: Dict[Tuple[int, int], int] = {}
    for death_date in sorted(death_dates):
        key = (death_date.year, death_date.month)
        counts[key] = counts.get(key, 0) + 1

    trend = []
    for (year, month), count in counts.items():
        label = date(year, month, 1).strftime("%b %y")
        if admissions is None:
            trend.append((label, float(count)))
        else:
            denominator = admissions.get((year, month), 0)
            trend.append((label, round(count * 1000 / denominator, 1) if denominator else 0.0))
    return trend
