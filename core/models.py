# models.py
# Data models for the ward morbidity reporting portal
from dataclasses import dataclass, field, fields, asdict
from typing import Optional, List, Dict, Any


def _known_kwargs(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only keys that are dataclass fields (older payloads may carry extras)"""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in (data or {}).items() if k in names}


@dataclass
class DiseaseEntry:
    id: str
    name: str
    admissions_u5: int = 0
    admissions_o5: int = 0
    deaths_u5: int = 0
    deaths_o5: int = 0

    @property
    def total_admissions(self) -> int:
        return self.admissions_u5 + self.admissions_o5

    @property
    def total_deaths(self) -> int:
        return self.deaths_u5 + self.deaths_o5

    @property
    def has_data(self) -> bool:
        return (self.admissions_u5 + self.admissions_o5 + self.deaths_u5 + self.deaths_o5) > 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiseaseEntry":
        return cls(**_known_kwargs(cls, data))


@dataclass
class WorksheetMetadata:
    ward_name: str = "Peadiatric Ward"
    month: str = "January"
    year: str = ""
    compiled_by: str = ""
    checked_by: str = ""
    total_inpatient_days: int = 0
    referrals_from_hc: int = 0      # referrals in
    referrals_to_hospital: int = 0  # referrals out
    ward_rounds: int = 0
    abscondees: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorksheetMetadata":
        return cls(**_known_kwargs(cls, data))


@dataclass
class WorksheetState:
    id: str
    metadata: WorksheetMetadata
    entries: List[DiseaseEntry]
    timestamp: int = 0  # ms since epoch
    label: Optional[str] = None  # set on aggregated buckets only, never persisted

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("label", None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorksheetState":
        return cls(
            id=data["id"],
            metadata=WorksheetMetadata.from_dict(data.get("metadata", {})),
            entries=[DiseaseEntry.from_dict(e) for e in data.get("entries", [])],
            timestamp=data.get("timestamp", 0),
        )


@dataclass
class DeathAuditEntry:
    id: str = ""
    serial_number: str = ""
    patient_name: str = ""
    residential_address: str = ""
    dob: str = ""
    age: str = ""
    sex: str = "Male"                    # Male, Female, Other
    weight: str = ""
    readmission: str = "N"               # Y, N, U
    admission_date: str = ""
    admission_time: str = ""
    death_date: str = ""
    death_time: str = ""
    death_occurrence: str = "Weekday"    # Weekday, Weekend, Public holiday
    dead_on_arrival: str = "N"           # Y, N, U

    # Record quality
    file_present_used: str = "N"
    ccp_used: str = "N"
    records_incomplete: str = "N"
    quality_of_notes_poor: str = "N"
    records_notes_ok: str = "Y"
    emergency_signs: str = ""
    triage: str = ""                     # E, P, Q or blank
    initial_et_name: str = ""
    initial_et_time: str = ""

    # Referral
    is_referred: str = "N"
    referring_facility_name: str = ""
    referral_date: str = ""
    referral_time: str = ""
    referring_facility_type: str = ""    # Hospital, Health centre, Private, Other or blank
    diagnosis_on_referral: str = ""
    reason_for_referral: str = ""
    pre_referral_treatment: str = ""
    pre_referral_treatment_time: str = ""
    mode_of_transport: str = ""

    # Social
    mother_status: str = "Alive and well"
    father_status: str = "Alive and well"
    primary_caregiver: str = "Mother"

    diagnosis: str = ""
    treatment: str = ""
    confirmed_by: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeathAuditEntry":
        return cls(**_known_kwargs(cls, data))


@dataclass
class User:
    id: str
    username: str
    password: str
    role: str = "staff"  # admin, staff
    permissions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        kwargs = _known_kwargs(cls, data)
        kwargs["permissions"] = list(kwargs.get("permissions") or [])
        return cls(**kwargs)


@dataclass
class AuditEvent:
    ts: str
    msg: str
    id: Optional[int] = None
    username: Optional[str] = None
