# config.py
# Configuration, environment variable loading and portal reference lists

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file (for local development)
load_dotenv()

# OpenAI Configuration
# Try Streamlit secrets first (for deployed app), then fall back to .env
try:
    import streamlit as st
    OPENAI_API_KEY = st.secrets.get("OPENAI_API_KEY", os.getenv("OPENAI_API_KEY"))
except Exception:
    # Streamlit not available or no secrets file - use .env
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")

# Storage
DB_PATH = Path(os.getenv("PORTAL_DB_PATH", str(Path(__file__).parent / "ward_portal.db")))

# Portal identity
HOSPITAL_NAME = os.getenv("HOSPITAL_NAME", "Machinga District Hospital")
DEFAULT_WARD_NAME = os.getenv("DEFAULT_WARD_NAME", "Peadiatric Ward")
PDF_HEADER_COLOR = "#1D4ED8"

# Seeded administrator (cannot be deleted)
SEED_ADMIN_ID = "admin-1"
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "machinga")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "machinga123")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

# Views, in navigation priority order
TAB_DASHBOARD = "dashboard"
TAB_WORKSHEET = "worksheet"
TAB_DEATH_AUDIT = "death_audit"
TAB_VISUALIZER = "visualizer"
TAB_ADMIN = "admin"
ALL_TABS = [TAB_DASHBOARD, TAB_WORKSHEET, TAB_DEATH_AUDIT, TAB_VISUALIZER, TAB_ADMIN]
TAB_LABELS = {
    TAB_DASHBOARD: "Dashboard",
    TAB_WORKSHEET: "Data Entry",
    TAB_DEATH_AUDIT: "Death Audit",
    TAB_VISUALIZER: "Visualizer",
    TAB_ADMIN: "Users",
}
STAFF_DEFAULT_TABS = [TAB_DASHBOARD, TAB_VISUALIZER]

# Canonical in-patient morbidity list; worksheet rows follow this order.
# No name may contain another, since extraction matches names by substring.
DISEASE_LIST = [
    "Acute Respiratory Infection",
    "Pneumonia (non-severe)",
    "Severe Pneumonia",
    "Malaria (uncomplicated)",
    "Malaria (severe)",
    "Diarrhoea (non-bloody)",
    "Dysentery",
    "Cholera",
    "Severe Acute Malnutrition",
    "Anaemia",
    "Meningitis",
    "Measles",
    "Tuberculosis",
    "HIV related conditions",
    "Neonatal Sepsis",
    "Prematurity / Low Birth Weight",
    "Birth Asphyxia",
    "Neonatal Jaundice",
    "Sepsis (post-neonatal)",
    "Sickle Cell Disease",
    "Asthma",
    "Epilepsy / Convulsions",
    "Burns",
    "Injuries / Trauma",
    "Poisoning",
    "Other Conditions",
]

# Searchable final-diagnosis suggestions for death audits
DIAGNOSIS_LIST = [
    "Severe malaria",
    "Cerebral malaria",
    "Severe anaemia",
    "Severe pneumonia",
    "Sepsis",
    "Neonatal sepsis",
    "Meningitis",
    "Severe acute malnutrition",
    "Acute gastroenteritis with severe dehydration",
    "Hypovolaemic shock",
    "Birth asphyxia",
    "Prematurity",
    "Respiratory distress syndrome",
    "Congenital heart disease",
    "HIV/AIDS",
    "Tuberculosis",
    "Sickle cell crisis",
    "Status epilepticus",
    "Poisoning",
    "Burns",
    "Head injury",
    "Hypoglycaemia",
    "Diabetic ketoacidosis",
    "Renal failure",
    "Measles",
    "Cholera",
]

# Reviewers offered on the death audit form
PREDEFINED_STAFF = ["Eda Kachipala", "Dr W Barton"]

DEATH_AUDIT_RULES = [
    "All in-patient deaths must be documented within 24 hours.",
    "Senior clinical staff signature is mandatory for registry closure.",
    "Cause of death should follow ICD-10 coding where applicable.",
]

# Validate that required environment variables are set
def validate_config():
    """Check if required configuration is present"""
    if not OPENAI_API_KEY or OPENAI_API_KEY == "your-openai-api-key-here":
        return False, "OPENAI_API_KEY not configured in .env file"
    return True, "Configuration valid"
