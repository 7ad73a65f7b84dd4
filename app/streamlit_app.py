# streamlit_app.py
# Streamlit shell for the ward morbidity reporting portal:
# - Login screen (one generic failure message)
# - Left sidebar: signed-in user + logout
# - Main: permission-filtered tab bar
# - Tabs: Dashboard / Data Entry / Death Audit / Visualizer / Users
#
# Run: streamlit run app/streamlit_app.py

# Add parent directory to Python path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import copy
import logging
from dataclasses import replace
from datetime import date, datetime
from typing import List, Optional

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from core.config import (
    OPENAI_API_KEY, OPENAI_MODEL, HOSPITAL_NAME, LOG_LEVEL, MONTHS,
    TAB_DASHBOARD, TAB_WORKSHEET, TAB_DEATH_AUDIT, TAB_VISUALIZER, TAB_ADMIN, TAB_LABELS,
    PREDEFINED_STAFF, DEATH_AUDIT_RULES
)
from core.database import init_database
from core.models import AuditEvent, DeathAuditEntry, User, WorksheetState
from services.access import (
    ROLES, INVALID_CREDENTIALS_MESSAGE, authenticate, allowed_tabs, landing_tab, resolve_tab,
    build_user, add_user, delete_user, toggle_permission, update_user, is_seed_admin
)
from services.aggregation import (
    AGGREGATION_MODES, MODE_MONTHLY, MODE_QUARTERLY, MODE_SIX_MONTHLY, MODE_YEARLY,
    PIVOT_DIMENSIONS, PIVOT_METRICS, bucket_reports, default_selection, find_bucket,
    dashboard_summary, flatten_reports, pivot, grand_totals, collect_reports, month_index,
    admissions_by_month, death_trend, age_histogram, gender_counts, diagnosis_frequency
)
from services.worksheet import (
    new_draft, update_entry, update_metadata, reset_session, load_for_editing,
    submit_report, merge_extraction, ExtractionRequest, request_extraction,
    add_death_audit, delete_death_audit, search_diagnoses, now_ms
)
from services.db_operations import (
    get_all_users, save_users,
    get_report_history, save_report_history,
    get_death_audits, save_death_audits,
    log_event, get_recent_logs
)
from services.openai_service import WorksheetExtractor, ExtractionError
from services.pdf_generator import WorksheetPDFGenerator

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

EXTRACTION_FAILED_MESSAGE = "Failed to extract data. Please try again or enter manually."

MODE_LABELS = {
    MODE_MONTHLY: "Monthly",
    MODE_QUARTERLY: "Quarterly",
    MODE_SIX_MONTHLY: "Six-Monthly",
    MODE_YEARLY: "Yearly",
}

# Data editor column -> DiseaseEntry count field
GRID_COLUMNS = {
    "Admissions <5": "admissions_u5",
    "Admissions >5": "admissions_o5",
    "Deaths <5": "deaths_u5",
    "Deaths >5": "deaths_o5",
}

METADATA_COUNT_LABELS = {
    "total_inpatient_days": "Total In-Patient Days",
    "referrals_from_hc": "Referrals from HC",
    "referrals_to_hospital": "Referrals to Hospital",
    "ward_rounds": "Ward Rounds",
    "abscondees": "Abscondees",
}

OTHER_STAFF = "Other Staff..."

# -----------------------------
# Session state init
# -----------------------------
def init_state():
    # Load persisted collections once per browser session
    if "users" not in st.session_state:
        st.session_state.users = get_all_users()

    if "history" not in st.session_state:
        st.session_state.history = get_report_history()

    if "death_audits" not in st.session_state:
        st.session_state.death_audits = get_death_audits()

    if "audit_log" not in st.session_state:
        st.session_state.audit_log = get_recent_logs(limit=50)

    if "current_user_id" not in st.session_state:
        st.session_state.current_user_id = None

    if "active_tab" not in st.session_state:
        st.session_state.active_tab = None

    if "draft" not in st.session_state:
        st.session_state.draft = new_draft()
        st.session_state.editing_id = None
        st.session_state.form_version = 0
        st.session_state.form_base = copy.deepcopy(st.session_state.draft)

    if "extraction_request" not in st.session_state:
        st.session_state.extraction_request = None
        st.session_state.extraction_failed = False

    if "flash" not in st.session_state:
        st.session_state.flash = []

def now_str():
    return datetime.now().strftime("%H:%M:%S")

def current_username() -> Optional[str]:
    user = get_current_user()
    return user.username if user else None

def log(msg: str, username: Optional[str] = None):
    # Save to database
    username = username or current_username()
    log_event(msg, username)
    logger.info("%s (%s)", msg, username or "anonymous")
    # Also update session_state for immediate display
    event = AuditEvent(ts=now_str(), msg=msg, username=username)
    st.session_state.audit_log.insert(0, event)

def flash(msg: str):
    """Queue a success message that survives the next rerun"""
    st.session_state.flash.append(msg)

def render_flash():
    for msg in st.session_state.flash:
        st.success(msg)
    st.session_state.flash = []

def get_current_user() -> Optional[User]:
    # Always read from the user list so permission changes apply immediately
    user_id = st.session_state.get("current_user_id")
    for user in st.session_state.get("users", []):
        if user.id == user_id:
            return user
    return None

# -----------------------------
# Persistence helpers (save right after each mutation)
# -----------------------------
def set_users(users: List[User]):
    st.session_state.users = users
    save_users(users)

def set_history(history: List[WorksheetState]):
    st.session_state.history = history
    save_report_history(history)

def set_death_audits(audits: List[DeathAuditEntry]):
    st.session_state.death_audits = audits
    save_death_audits(audits)

def sync_form():
    """Re-seed the worksheet widgets from the draft"""
    st.session_state.form_version += 1
    st.session_state.form_base = copy.deepcopy(st.session_state.draft)

def set_active_tab(user: User, tab: Optional[str]):
    st.session_state.active_tab = resolve_tab(user, tab)
    # Widgets of a hidden tab lose their state; start the worksheet fresh from the draft
    sync_form()

# -----------------------------
# Login
# -----------------------------
def render_login():
    st.markdown(f"<h2 style='text-align: center;'>🏥 {HOSPITAL_NAME}</h2>", unsafe_allow_html=True)
    st.markdown("<p style='text-align: center; color: #666;'>Ward Data Portal</p>", unsafe_allow_html=True)

    _, middle, _ = st.columns([1, 1.2, 1])
    with middle:
        with st.form("login_form"):
            username = st.text_input("Username")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Sign In", type="primary", use_container_width=True)

        if submitted:
            # Another session may have added the account since this one started
            users = get_all_users()
            st.session_state.users = users
            user = authenticate(users, (username or "").strip(), password)
            if user is None:
                st.error(INVALID_CREDENTIALS_MESSAGE)
                return

            st.session_state.current_user_id = user.id
            st.session_state.active_tab = landing_tab(user)
            log("Signed in", user.username)
            st.rerun()

# -----------------------------
# Sidebar (fixed)
# -----------------------------
def render_sidebar(user: User):
    st.sidebar.header(HOSPITAL_NAME)
    st.sidebar.markdown(f"Signed in as **{user.username}**  \nRole: `{user.role}`")

    if st.session_state.editing_id:
        st.sidebar.info("✏️ A stored report is open for editing in Data Entry.")

    st.sidebar.divider()
    st.sidebar.caption(f"{len(st.session_state.history)} reports · {len(st.session_state.death_audits)} death audits")

    if st.sidebar.button("🚪 Log Out", use_container_width=True):
        log("Signed out", user.username)
        st.session_state.current_user_id = None
        st.session_state.active_tab = None
        st.session_state.editing_id = None
        st.session_state.extraction_request = None
        st.session_state.draft = reset_session(st.session_state.draft)
        sync_form()
        st.rerun()

# -----------------------------
# Tab bar
# -----------------------------
def render_tabs(user: User):
    # Self-correct the active view on every run; permissions may have changed
    active = resolve_tab(user, st.session_state.active_tab)
    if active != st.session_state.active_tab:
        st.session_state.active_tab = active

    tabs = allowed_tabs(user)
    if active is None:
        st.warning("Your account has no views assigned. Please contact the administrator.")
        return

    # Custom CSS for tab-style radio buttons
    st.markdown("""
        <style>
        div[role="radiogroup"][aria-label="Tabs"] {
            border-bottom: 2px solid #e0e0e0;
            margin-bottom: 1rem;
            padding-bottom: 0;
        }
        div[role="radiogroup"][aria-label="Tabs"] label {
            padding: 14px 28px !important;
            margin-bottom: -2px !important;
            border-bottom: 3px solid transparent !important;
            border-radius: 0 !important;
            background: transparent !important;
            cursor: pointer !important;
            font-size: 15px !important;
            font-weight: 500 !important;
            color: #666 !important;
        }
        div[role="radiogroup"][aria-label="Tabs"] input[type="radio"] {
            opacity: 0 !important;
            position: absolute !important;
            width: 0 !important;
            height: 0 !important;
        }
        div[role="radiogroup"][aria-label="Tabs"] label:has(input:checked) {
            border-bottom: 3px solid #1D4ED8 !important;
            color: #1D4ED8 !important;
            font-weight: 600 !important;
        }
        div[role="radiogroup"][aria-label="Tabs"] label:hover {
            background: rgba(29, 78, 216, 0.05) !important;
            color: #333 !important;
        }
        </style>
    """, unsafe_allow_html=True)

    chosen = st.radio(
        "Tabs",
        tabs,
        index=tabs.index(active),
        format_func=lambda tab: TAB_LABELS[tab],
        horizontal=True,
        label_visibility="collapsed",
    )
    if chosen != active:
        set_active_tab(user, chosen)
        st.rerun()

    render_flash()

    if active == TAB_DASHBOARD:
        render_dashboard_tab()
    elif active == TAB_WORKSHEET:
        render_worksheet_tab(user)
    elif active == TAB_DEATH_AUDIT:
        render_death_audit_tab()
    elif active == TAB_VISUALIZER:
        render_visualizer_tab()
    elif active == TAB_ADMIN:
        render_users_tab(user)

# -----------------------------
# Dashboard
# -----------------------------
def render_pdf_export(report: WorksheetState, key: str):
    if st.button("📄 Export PDF", key=f"pdf_{key}"):
        try:
            with st.spinner("🔄 Generating PDF..."):
                pdf_bytes = WorksheetPDFGenerator().generate_worksheet_pdf(report, HOSPITAL_NAME)

            period = (report.label or f"{report.metadata.month} {report.metadata.year}").replace(" ", "_")
            filename = f"ward_worksheet_{period}.pdf"
            st.download_button(
                label="💾 Download PDF",
                data=pdf_bytes,
                file_name=filename,
                mime="application/pdf",
                key=f"download_{key}"
            )
            log(f"Exported worksheet PDF: {filename}")
        except Exception as e:
            logger.exception("PDF generation failed")
            st.error(f"❌ Failed to generate PDF: {str(e)}")

def render_dashboard_tab():
    st.subheader("📊 Ward Dashboard")

    mode = st.radio(
        "Aggregation",
        AGGREGATION_MODES,
        format_func=MODE_LABELS.get,
        horizontal=True,
        key="dashboard_mode"
    )
    buckets = bucket_reports(st.session_state.history, st.session_state.draft, mode)

    if not buckets:
        st.info("📭 No reports yet. Submit a worksheet under Data Entry to populate the dashboard.")
        return

    bucket_ids = [b.id for b in buckets]
    default_id = default_selection(buckets, mode)
    # A new bucket list (new report, mode change) falls back to the default selection
    selected_id = st.selectbox(
        "Reporting Period",
        bucket_ids,
        index=bucket_ids.index(default_id),
        format_func=lambda bucket_id: find_bucket(buckets, bucket_id).label,
        key=f"dashboard_period_{mode}_{abs(hash(tuple(bucket_ids)))}"
    )
    report = find_bucket(buckets, selected_id)
    summary = dashboard_summary(report)

    col1, col2, col3, col4, col5 = st.columns(5)
    col1.metric("Total Admissions", summary.total_admissions)
    col2.metric("Under 5", summary.total_u5_admissions)
    col3.metric("Over 5", summary.total_o5_admissions)
    col4.metric("Total Deaths", summary.total_deaths)
    col5.metric("In-Patient Days", report.metadata.total_inpatient_days)

    st.divider()

    left, right = st.columns(2)
    with left:
        st.markdown("#### Top Admissions")
        if summary.top_admissions:
            df = pd.DataFrame([
                {"Disease": e.name, "Under 5": e.admissions_u5, "Over 5": e.admissions_o5}
                for e in summary.top_admissions
            ])
            fig = px.bar(df, x="Disease", y=["Under 5", "Over 5"], barmode="stack",
                         color_discrete_sequence=["#1D4ED8", "#93C5FD"])
            fig.update_layout(xaxis_title="", yaxis_title="Admissions", legend_title="")
            st.plotly_chart(fig, width='stretch')
        else:
            st.info("No admissions recorded for this period.")

    with right:
        st.markdown("#### Top Causes of Death")
        deaths = [e for e in summary.top_deaths if e.total_deaths > 0]
        if deaths:
            df = pd.DataFrame([
                {"Disease": e.name, "Under 5": e.deaths_u5, "Over 5": e.deaths_o5}
                for e in deaths
            ])
            fig = px.bar(df, x="Disease", y=["Under 5", "Over 5"], barmode="stack",
                         color_discrete_sequence=["#DC2626", "#FCA5A5"])
            fig.update_layout(xaxis_title="", yaxis_title="Deaths", legend_title="")
            st.plotly_chart(fig, width='stretch')
        else:
            st.info("No deaths recorded for this period.")

    left, right = st.columns(2)
    with left:
        st.markdown("#### Operational Metrics")
        fig = go.Figure(data=[go.Bar(
            x=[name for name, _ in summary.operational_metrics],
            y=[value for _, value in summary.operational_metrics],
            marker_color="#0F766E"
        )])
        fig.update_layout(yaxis_title="Count")
        st.plotly_chart(fig, width='stretch')

    with right:
        st.markdown("#### Admissions by Age Group")
        if summary.age_breakdown:
            fig = go.Figure(data=[go.Pie(
                labels=[name for name, _ in summary.age_breakdown],
                values=[value for _, value in summary.age_breakdown],
                hole=0.4,
                marker_colors=["#1D4ED8", "#93C5FD"]
            )])
            st.plotly_chart(fig, width='stretch')
        else:
            st.info("No admissions to break down.")

    render_pdf_export(report, f"dashboard_{report.id}")

# -----------------------------
# Data Entry
# -----------------------------
def _entries_frame(report: WorksheetState) -> pd.DataFrame:
    rows = []
    for entry in report.entries:
        row = {"id": entry.id, "Disease": entry.name}
        for column, field in GRID_COLUMNS.items():
            row[column] = getattr(entry, field)
        rows.append(row)
    return pd.DataFrame(rows)

def render_extraction_panel():
    with st.expander("📷 Extract from a photographed worksheet", expanded=st.session_state.extraction_request is not None):
        if not OPENAI_API_KEY or OPENAI_API_KEY == "your-openai-api-key-here":
            st.file_uploader("Worksheet photo", type=["png", "jpg", "jpeg", "webp"], disabled=True)
            st.caption("⚠️ Photo extraction needs OPENAI_API_KEY in .env or Streamlit secrets.")
            return

        if st.session_state.extraction_failed:
            st.error(EXTRACTION_FAILED_MESSAGE)
            st.session_state.extraction_failed = False

        # Phase 2 renders the trigger disabled before the call starts
        pending = st.session_state.extraction_request
        running = pending is not None
        uploaded = st.file_uploader(
            "Worksheet photo",
            type=["png", "jpg", "jpeg", "webp"],
            key=f"worksheet_photo_{st.session_state.form_version}",
            disabled=running
        )
        clicked = st.button("🔍 Extract Data", type="primary", disabled=running or uploaded is None)

        if running:
            run_pending_extraction(pending)
        elif clicked and uploaded is not None:
            request = request_extraction(pending, uploaded.getvalue(), uploaded.type, uploaded.name)
            if request is not None:
                st.session_state.extraction_request = request
                log(f"Started worksheet extraction ({uploaded.name})")
                st.rerun()

def run_pending_extraction(request: ExtractionRequest):
    try:
        with st.spinner("🤖 Reading the worksheet... This may take 10-20 seconds."):
            extractor = WorksheetExtractor(OPENAI_API_KEY, OPENAI_MODEL)
            extracted = extractor.extract_worksheet_data(request.image, request.mime_type)
    except ExtractionError as e:
        logger.error("Worksheet extraction failed: %s", e)
        log("Worksheet extraction failed")
        st.session_state.extraction_failed = True
    else:
        st.session_state.draft = merge_extraction(st.session_state.draft, extracted)
        sync_form()
        log("Merged extracted worksheet data into the draft")
        flash("✅ Data extracted. Please review every value before submitting.")
    finally:
        st.session_state.extraction_request = None
    st.rerun()

def render_worksheet_tab(user: User):
    draft = st.session_state.draft
    base = st.session_state.form_base
    version = st.session_state.form_version
    editing_id = st.session_state.editing_id

    st.subheader("📝 Monthly Ward Worksheet")
    if editing_id:
        st.info(f"✏️ Editing the stored report for {base.metadata.month} {base.metadata.year}. "
                "Submitting will update it in place.")

    render_extraction_panel()

    # Ward details
    st.markdown("### 🏥 Ward Details")
    md = base.metadata
    values = {}
    col1, col2, col3 = st.columns(3)
    values["ward_name"] = col1.text_input("Ward", value=md.ward_name, key=f"ws_ward_name_{version}")
    values["month"] = col2.selectbox(
        "Month", MONTHS,
        index=MONTHS.index(md.month) if md.month in MONTHS else 0,
        key=f"ws_month_{version}"
    )
    values["year"] = col3.text_input("Year", value=md.year, key=f"ws_year_{version}")

    col1, col2 = st.columns(2)
    values["compiled_by"] = col1.text_input("Compiled By", value=md.compiled_by, key=f"ws_compiled_by_{version}")
    values["checked_by"] = col2.text_input("Checked By", value=md.checked_by, key=f"ws_checked_by_{version}")

    columns = st.columns(len(METADATA_COUNT_LABELS))
    for column, (field, label) in zip(columns, METADATA_COUNT_LABELS.items()):
        values[field] = column.number_input(
            label, min_value=0, step=1, value=int(getattr(md, field)), key=f"ws_{field}_{version}"
        )

    metadata = draft.metadata
    for field, value in values.items():
        metadata = update_metadata(metadata, field, value)

    # Disease grid
    st.markdown("### 🦠 Admissions and Deaths")
    edited = st.data_editor(
        _entries_frame(base),
        key=f"ws_entries_{version}",
        hide_index=True,
        num_rows="fixed",
        disabled=["id", "Disease"],
        column_order=["Disease"] + list(GRID_COLUMNS),
        column_config={
            column: st.column_config.NumberColumn(column, min_value=0, step=1, format="%d")
            for column in GRID_COLUMNS
        },
        width='stretch',
        height=35 * (len(base.entries) + 1) + 3
    )

    entries = draft.entries
    current = {e.id: e for e in entries}
    for _, row in edited.iterrows():
        entry = current.get(row["id"])
        if entry is None:
            continue
        for column, field in GRID_COLUMNS.items():
            raw = row[column]
            if pd.isna(raw):
                raw = 0
            if raw != getattr(entry, field):
                entries = update_entry(entries, entry.id, field, raw)

    draft = replace(draft, metadata=metadata, entries=entries)
    st.session_state.draft = draft

    total_admissions = sum(e.total_admissions for e in draft.entries)
    total_deaths = sum(e.total_deaths for e in draft.entries)
    col1, col2, col3 = st.columns(3)
    col1.metric("Total Admissions", total_admissions)
    col2.metric("Total Deaths", total_deaths)
    col3.metric("Diseases Reported", sum(1 for e in draft.entries if e.has_data))

    st.divider()

    col1, col2, _ = st.columns([1, 1, 2])
    with col1:
        submit_label = "✅ Update Report" if editing_id else "✅ Submit Report"
        if st.button(submit_label, type="primary", use_container_width=True):
            history, saved = submit_report(st.session_state.history, draft, editing_id)
            set_history(history)
            action = "Updated" if saved.id == editing_id else "Submitted"
            log(f"{action} report for {saved.metadata.month} {saved.metadata.year} ({saved.metadata.ward_name})")
            flash("Report updated successfully." if action == "Updated" else "Report saved to historical database.")

            st.session_state.draft = reset_session(draft)
            st.session_state.editing_id = None
            set_active_tab(user, TAB_DASHBOARD)
            st.rerun()
    with col2:
        clear_label = "✖ Cancel Edit" if editing_id else "🧹 Clear Form"
        if st.button(clear_label, use_container_width=True):
            st.session_state.draft = reset_session(draft)
            st.session_state.editing_id = None
            sync_form()
            if editing_id:
                log("Cancelled report edit")
            st.rerun()

    render_report_history(user)

def render_report_history(user: User):
    st.divider()
    st.markdown("### 🗂️ Report History")

    history = st.session_state.history
    if not history:
        st.info("No reports submitted yet.")
        return

    # Newest first
    for report in sorted(history, key=lambda r: r.timestamp, reverse=True):
        md = report.metadata
        saved_at = datetime.fromtimestamp(report.timestamp / 1000).strftime("%Y-%m-%d %H:%M") if report.timestamp else "N/A"
        with st.container(border=True):
            col1, col2, col3, col4 = st.columns([3, 2, 1, 1])
            with col1:
                st.markdown(f"**{md.month} {md.year}** · {md.ward_name}")
                st.caption(f"Saved {saved_at} · compiled by {md.compiled_by or 'N/A'}")
            with col2:
                admissions = sum(e.total_admissions for e in report.entries)
                deaths = sum(e.total_deaths for e in report.entries)
                st.markdown(f"Admissions: `{admissions}` · Deaths: `{deaths}`")
            with col3:
                if st.button("✏️ Edit", key=f"edit_{report.id}", use_container_width=True):
                    draft, editing_id = load_for_editing(report)
                    st.session_state.draft = draft
                    st.session_state.editing_id = editing_id
                    set_active_tab(user, TAB_WORKSHEET)
                    log(f"Opened report for {md.month} {md.year} for editing")
                    st.rerun()
            with col4:
                render_pdf_export(report, f"history_{report.id}")

# -----------------------------
# Visualizer
# -----------------------------
def _chronological(rows, dimension: str):
    """Order month and year groups by time for line charts"""
    if dimension == "month":
        return sorted(rows, key=lambda row: month_index(row.label))
    if dimension == "year":
        return sorted(rows, key=lambda row: row.label)
    return rows

def _pivot_frame(rows, dimension: str) -> pd.DataFrame:
    return pd.DataFrame([{
        dimension.title(): row.label,
        "Admissions <5": row.u5_admissions,
        "Admissions >5": row.o5_admissions,
        "Total Admissions": row.admissions,
        "Deaths <5": row.u5_deaths,
        "Deaths >5": row.o5_deaths,
        "Total Deaths": row.deaths,
    } for row in rows])

def render_visualizer_tab():
    st.subheader("🧮 Data Visualizer")

    records = flatten_reports(st.session_state.history, st.session_state.draft)
    if not records:
        st.info("📭 No data to analyze yet. Reports with at least one nonzero count appear here.")
        return

    col1, col2, col3 = st.columns(3)
    dimension = col1.selectbox("Group By", PIVOT_DIMENSIONS, format_func=str.title, key="viz_dimension")
    metric = col2.selectbox("Sort By", PIVOT_METRICS, format_func=str.title, key="viz_metric")
    chart_type = col3.selectbox("View", ["Pivot Table", "Trend", "Area", "Radar"], key="viz_chart")

    rows = pivot(records, dimension, metric)
    totals = grand_totals(rows)
    st.caption(f"{len(records)} records analyzed · {len(rows)} groups")

    if chart_type == "Pivot Table":
        st.dataframe(_pivot_frame(rows + [totals], dimension), width='stretch', hide_index=True)

        fig = px.bar(
            _pivot_frame(rows, dimension),
            x=dimension.title(),
            y="Total Admissions" if metric == "admissions" else "Total Deaths",
            color_discrete_sequence=["#1D4ED8" if metric == "admissions" else "#DC2626"]
        )
        fig.update_layout(xaxis_title="", yaxis_title=metric.title())
        st.plotly_chart(fig, width='stretch')

    elif chart_type in ("Trend", "Area"):
        df = _pivot_frame(_chronological(rows, dimension), dimension)
        plot = px.line if chart_type == "Trend" else px.area
        kwargs = {"markers": True} if chart_type == "Trend" else {}
        fig = plot(
            df,
            x=dimension.title(),
            y=["Total Admissions", "Total Deaths"],
            color_discrete_sequence=["#1D4ED8", "#DC2626"],
            **kwargs
        )
        fig.update_layout(xaxis_title="", yaxis_title="Count", legend_title="")
        st.plotly_chart(fig, width='stretch')

    else:
        top = rows[:8]
        labels = [row.label for row in top]
        fig = go.Figure()
        fig.add_trace(go.Scatterpolar(
            r=[row.admissions for row in top] + [top[0].admissions],
            theta=labels + [labels[0]],
            fill="toself",
            name="Admissions",
            line_color="#1D4ED8"
        ))
        fig.add_trace(go.Scatterpolar(
            r=[row.deaths for row in top] + [top[0].deaths],
            theta=labels + [labels[0]],
            fill="toself",
            name="Deaths",
            line_color="#DC2626"
        ))
        fig.update_layout(polar=dict(radialaxis=dict(visible=True)), showlegend=True)
        st.plotly_chart(fig, width='stretch')

    col1, col2 = st.columns(2)
    col1.metric("Grand Total Admissions", totals.admissions)
    col2.metric("Grand Total Deaths", totals.deaths)

# -----------------------------
# Death Audit
# -----------------------------
def _append_diagnosis():
    choice = st.session_state.get("da_diagnosis_pick")
    if not choice:
        return
    current = (st.session_state.get("da_diagnosis") or "").strip()
    st.session_state.da_diagnosis = f"{current}; {choice}" if current else choice

def _clear_audit_form():
    for key in list(st.session_state.keys()):
        if str(key).startswith("da_"):
            del st.session_state[key]

def _iso(value) -> str:
    return value.isoformat() if value else ""

def _hhmm(value) -> str:
    return value.strftime("%H:%M") if value else ""

@st.dialog("New Death Audit Review", width="large")
def death_audit_dialog():
    """Death review form; fields follow the paper audit tool"""
    yn = ["Y", "N"]

    st.markdown("##### Patient Identification")
    col1, col2, col3 = st.columns(3)
    patient_name = col1.text_input("Patient Name", key="da_patient_name")
    residential_address = col2.text_input("Residential Address", key="da_residential_address")
    serial_number = col3.text_input("Serial Number", placeholder="Registry ID", key="da_serial_number")

    col1, col2, col3, col4 = st.columns(4)
    dob = col1.date_input("Date of Birth", value=None, key="da_dob")
    age = col2.text_input("Age", placeholder="e.g. 4 or 6 months", key="da_age")
    sex = col3.selectbox("Gender", ["Male", "Female", "Other"], key="da_sex")
    weight = col4.text_input("Weight (kg)", key="da_weight")

    col1, col2, col3, col4 = st.columns(4)
    admission_date = col1.date_input("Date of Admission", value=None, key="da_admission_date")
    admission_time = col2.time_input("Time of Admission", value=None, key="da_admission_time")
    death_date = col3.date_input("Date of Death", value=None, key="da_death_date")
    death_time = col4.time_input("Time of Death", value=None, key="da_death_time")

    col1, col2, col3 = st.columns(3)
    readmission = col1.radio("Readmission", ["Y", "N", "U"], index=1, horizontal=True, key="da_readmission")
    death_occurrence = col2.radio("Death Occurred On", ["Weekday", "Weekend", "Public holiday"],
                                  horizontal=True, key="da_death_occurrence")
    dead_on_arrival = col3.radio("Dead on Arrival", ["Y", "N", "U"], index=1, horizontal=True, key="da_dead_on_arrival")

    st.markdown("##### Records (critical care pathways (CCP))")
    col1, col2, col3, col4, col5 = st.columns(5)
    file_present_used = col1.radio("File present used", yn, index=1, horizontal=True, key="da_file_present_used")
    ccp_used = col2.radio("CCP used", yn, index=1, horizontal=True, key="da_ccp_used")
    records_incomplete = col3.radio("Records incomplete", yn, index=1, horizontal=True, key="da_records_incomplete")
    quality_of_notes_poor = col4.radio("Notes poor", yn, index=1, horizontal=True, key="da_quality_of_notes_poor")
    records_notes_ok = col5.radio("Records & notes OK", yn, index=0, horizontal=True, key="da_records_notes_ok")

    col1, col2, col3, col4 = st.columns([2, 1, 2, 1])
    emergency_signs = col1.text_input("Emergency Signs", key="da_emergency_signs")
    triage = col2.selectbox("Triage", ["", "E", "P", "Q"], key="da_triage")
    initial_et_name = col3.text_input("Name of initial ET", key="da_initial_et_name")
    initial_et_time = col4.time_input("Time given", value=None, key="da_initial_et_time")

    st.markdown("##### Referral")
    is_referred = st.radio("Referred?", yn, index=1, horizontal=True, key="da_is_referred")
    referral = {}
    if is_referred == "Y":
        col1, col2, col3, col4 = st.columns(4)
        referral["referring_facility_name"] = col1.text_input("Name of referring facility", key="da_referring_facility_name")
        referral["referring_facility_type"] = col2.selectbox(
            "Facility type", ["", "Hospital", "Health centre", "Private", "Other"], key="da_referring_facility_type"
        )
        referral["referral_date"] = _iso(col3.date_input("Referral Date", value=None, key="da_referral_date"))
        referral["referral_time"] = _hhmm(col4.time_input("Referral Time", value=None, key="da_referral_time"))
        col1, col2 = st.columns(2)
        referral["diagnosis_on_referral"] = col1.text_input("Diagnosis on Referral", key="da_diagnosis_on_referral")
        referral["reason_for_referral"] = col2.text_input("Reason for Referral", key="da_reason_for_referral")
        col1, col2, col3 = st.columns(3)
        referral["pre_referral_treatment"] = col1.text_input("Pre-referral treatment", key="da_pre_referral_treatment")
        referral["pre_referral_treatment_time"] = _hhmm(
            col2.time_input("Time given", value=None, key="da_pre_referral_treatment_time")
        )
        referral["mode_of_transport"] = col3.text_input("Mode of transport", key="da_mode_of_transport")

    st.markdown("##### Social")
    parent_status = ["Alive and well", "Dead", "Sick", "Unknown"]
    col1, col2, col3 = st.columns(3)
    mother_status = col1.selectbox("Mother Status", parent_status, key="da_mother_status")
    father_status = col2.selectbox("Father Status", parent_status, key="da_father_status")
    primary_caregiver = col3.selectbox("Primary Caregiver", ["Mother", "Grandmother", "Father", "Other", "Unknown"],
                                       key="da_primary_caregiver")

    st.markdown("##### Final Clinical Summary")
    col1, col2 = st.columns([3, 1])
    query = col1.text_input("Search diagnosis", placeholder="Search diagnosis...", key="da_diagnosis_query")
    col1.selectbox("Matching diagnoses", search_diagnoses(query), key="da_diagnosis_pick")
    col2.write("")
    col2.button("➕ Add", on_click=_append_diagnosis, use_container_width=True)
    diagnosis = st.text_area("Final Diagnosis", key="da_diagnosis",
                             help="Separate several diagnoses with a semicolon or a new line")
    treatment = st.text_area("Treatment Provided", placeholder="List medications and interventions...",
                             key="da_treatment")

    col1, col2 = st.columns(2)
    reviewer = col1.selectbox("Review Confirmed By", PREDEFINED_STAFF + [OTHER_STAFF], key="da_reviewer")
    confirmed_by = reviewer
    if reviewer == OTHER_STAFF:
        confirmed_by = col2.text_input("Reviewer name", key="da_other_reviewer")

    st.divider()
    col1, col2 = st.columns(2)
    with col1:
        if st.button("Save Review Audit", type="primary", use_container_width=True):
            if not diagnosis.strip():
                st.error("Final diagnosis is required")
                return
            if not (confirmed_by or "").strip():
                st.error("Please name the reviewer")
                return

            audit = DeathAuditEntry(
                serial_number=serial_number.strip(),
                patient_name=patient_name.strip(),
                residential_address=residential_address.strip(),
                dob=_iso(dob),
                age=age.strip(),
                sex=sex,
                weight=weight.strip(),
                readmission=readmission,
                admission_date=_iso(admission_date),
                admission_time=_hhmm(admission_time),
                death_date=_iso(death_date),
                death_time=_hhmm(death_time),
                death_occurrence=death_occurrence,
                dead_on_arrival=dead_on_arrival,
                file_present_used=file_present_used,
                ccp_used=ccp_used,
                records_incomplete=records_incomplete,
                quality_of_notes_poor=quality_of_notes_poor,
                records_notes_ok=records_notes_ok,
                emergency_signs=emergency_signs.strip(),
                triage=triage,
                initial_et_name=initial_et_name.strip(),
                initial_et_time=_hhmm(initial_et_time),
                is_referred=is_referred,
                mother_status=mother_status,
                father_status=father_status,
                primary_caregiver=primary_caregiver,
                diagnosis=diagnosis.strip(),
                treatment=treatment.strip(),
                confirmed_by=confirmed_by.strip(),
                **referral
            )
            audits, saved = add_death_audit(st.session_state.death_audits, audit)
            set_death_audits(audits)
            log(f"Added death audit {saved.serial_number or saved.id} ({saved.patient_name or 'unnamed'})")
            flash("Death audit saved.")
            _clear_audit_form()
            st.rerun()
    with col2:
        if st.button("Cancel", use_container_width=True):
            _clear_audit_form()
            st.rerun()

@st.dialog("Delete Death Audit")
def confirm_delete_audit_dialog(audit: DeathAuditEntry):
    st.write(f"Delete the audit for **{audit.patient_name or 'unnamed patient'}** "
             f"(serial `{audit.serial_number or audit.id}`)? This cannot be undone.")
    col1, col2 = st.columns(2)
    with col1:
        if st.button("Delete", type="primary", use_container_width=True):
            set_death_audits(delete_death_audit(st.session_state.death_audits, audit.id))
            log(f"Deleted death audit {audit.serial_number or audit.id}")
            st.rerun()
    with col2:
        if st.button("Cancel", use_container_width=True):
            st.rerun()

def render_death_trend(audits: List[DeathAuditEntry]):
    today = date.today()
    col1, col2 = st.columns([2, 1])
    selected = col1.date_input(
        "Date of death between",
        value=(date(today.year - 5, today.month, 1), today),
        key="trend_range"
    )
    per_thousand = col2.toggle("Per 1,000 admissions", key="trend_per_thousand")

    # The picker yields a single date while a range is being chosen
    start, end = (selected + (None, None))[:2] if isinstance(selected, tuple) else (selected, None)

    admissions = None
    if per_thousand:
        admissions = admissions_by_month(collect_reports(st.session_state.history, st.session_state.draft))
    trend = death_trend(audits, start, end, admissions)

    if not trend:
        st.info("No deaths with a recorded date in this range.")
        return

    df = pd.DataFrame(trend, columns=["Month", "Value"])
    fig = px.bar(df, x="Month", y="Value", color_discrete_sequence=["#6b7280"])
    fig.update_layout(
        title="Deaths in the Last 5 Years - All Trend",
        xaxis_title="",
        yaxis_title="Deaths per 1,000 admissions" if per_thousand else "Deaths"
    )
    st.plotly_chart(fig, width='stretch')

def render_death_demographics(audits: List[DeathAuditEntry]):
    if not audits:
        st.info("No audits recorded yet.")
        return

    col1, col2 = st.columns(2)
    with col1:
        histogram = age_histogram(audits)
        fig = px.bar(x=list(histogram), y=list(histogram.values()), color_discrete_sequence=["#6b7280"])
        fig.update_layout(title="Age", xaxis_title="Age band (years)", yaxis_title="Deaths")
        st.plotly_chart(fig, width='stretch')
    with col2:
        genders = gender_counts(audits)
        fig = go.Figure(data=[go.Pie(
            labels=list(genders),
            values=list(genders.values()),
            hole=0.4,
            marker_colors=["#EC4899", "#3B82F6"]
        )])
        fig.update_layout(title="Gender")
        st.plotly_chart(fig, width='stretch')

    st.markdown("#### Top Diagnoses")
    top = diagnosis_frequency(audits)
    if top:
        df = pd.DataFrame(top, columns=["Diagnosis", "Deaths"])
        fig = px.bar(df, x="Deaths", y="Diagnosis", orientation="h", color_discrete_sequence=["#6b7280"])
        fig.update_layout(yaxis=dict(autorange="reversed"), xaxis_title="Deaths", yaxis_title="")
        st.plotly_chart(fig, width='stretch')
    else:
        st.info("No diagnoses recorded yet.")

def render_death_audit_tab():
    st.subheader("⚰️ Death Audit Registry")
    audits = st.session_state.death_audits

    view = st.radio("View", ["Trend", "Demographics", "Rules"], horizontal=True, key="death_audit_view")
    if view == "Trend":
        render_death_trend(audits)
    elif view == "Demographics":
        render_death_demographics(audits)
    else:
        st.markdown(f"#### {HOSPITAL_NAME} Death Audit Rules")
        for i, rule in enumerate(DEATH_AUDIT_RULES, 1):
            st.markdown(f"{i}. {rule}")

    st.divider()

    if st.button("➕ New Death Audit", type="primary"):
        death_audit_dialog()

    st.caption(f"{len(audits)} records found")
    if not audits:
        st.info("No death audits recorded.")
        return

    for audit in audits:
        with st.container(border=True):
            col1, col2, col3, col4, col5 = st.columns([2, 2, 2, 3, 1])
            with col1:
                st.markdown(f"**{audit.patient_name or 'Unnamed'}**")
                st.caption(f"Serial: {audit.serial_number or 'N/A'}")
            with col2:
                st.markdown(f"Admitted: `{audit.admission_date or 'N/A'}`")
                st.markdown(f"Died: `{audit.death_date or 'N/A'}`")
            with col3:
                st.markdown(f"{audit.age or '?'} · {audit.sex}")
                st.caption(f"Referred: {audit.is_referred}")
            with col4:
                st.markdown(audit.diagnosis or "_No diagnosis_")
                st.caption(f"Confirmed by {audit.confirmed_by or 'N/A'}")
            with col5:
                if st.button("🗑️", key=f"delete_audit_{audit.id}", help="Delete audit"):
                    confirm_delete_audit_dialog(audit)

# -----------------------------
# Users
# -----------------------------
def _toggle_permission(user_id: str, tab: str):
    users = st.session_state.users
    target = next((u for u in users if u.id == user_id), None)
    if target is None:
        return
    updated = toggle_permission(target, tab)
    if updated is target:
        return
    set_users(update_user(users, updated))
    verb = "Granted" if tab in updated.permissions else "Revoked"
    log(f"{verb} {TAB_LABELS[tab]} access for {updated.username}")

@st.dialog("Delete User")
def confirm_delete_user_dialog(user: User):
    st.write(f"Delete the account **{user.username}**? This cannot be undone.")
    col1, col2 = st.columns(2)
    with col1:
        if st.button("Delete", type="primary", use_container_width=True):
            set_users(delete_user(st.session_state.users, user.id))
            log(f"Deleted user {user.username}")
            st.rerun()
    with col2:
        if st.button("Cancel", use_container_width=True):
            st.rerun()

def render_users_tab(current: User):
    st.subheader("👥 User Management")

    with st.expander("➕ Create User", expanded=False):
        with st.form("create_user_form", clear_on_submit=True):
            col1, col2, col3 = st.columns(3)
            username = col1.text_input("Username")
            password = col2.text_input("Password", type="password")
            role = col3.selectbox("Role", ROLES, index=1, format_func=str.title)
            submitted = st.form_submit_button("Create User", type="primary")

        if submitted:
            try:
                user = build_user(username, password, role, st.session_state.users, f"user-{now_ms()}")
            except ValueError as e:
                st.error(str(e))
            else:
                set_users(add_user(st.session_state.users, user))
                log(f"Created {user.role} user {user.username}")
                st.success(f"✅ Created user: {user.username}")

    st.markdown("### Accounts")
    for user in st.session_state.users:
        with st.container(border=True):
            col1, col2, col3 = st.columns([2, 5, 1])
            with col1:
                st.markdown(f"**{user.username}**")
                st.caption(f"Role: {user.role}" + (" · built-in" if is_seed_admin(user) else ""))
            with col2:
                tab_cols = st.columns(len(TAB_LABELS))
                for tab_col, (tab, label) in zip(tab_cols, TAB_LABELS.items()):
                    tab_col.checkbox(
                        label,
                        value=tab in user.permissions,
                        key=f"perm_{user.id}_{tab}_{tab in user.permissions}",
                        disabled=(user.role == "admin" and tab == TAB_ADMIN),
                        on_change=_toggle_permission,
                        args=(user.id, tab)
                    )
            with col3:
                protected = is_seed_admin(user) or user.id == current.id
                if st.button("🗑️", key=f"delete_user_{user.id}", disabled=protected,
                             help="This account cannot be deleted" if protected else "Delete user"):
                    confirm_delete_user_dialog(user)

    st.markdown("### Activity Log")
    for e in st.session_state.audit_log[:50]:
        who = f" · **{e.username}**" if e.username else ""
        st.write(f"`{e.ts}`{who}  {e.msg}")

# -----------------------------
# App entry
# -----------------------------
def main():
    st.set_page_config(page_title="Ward Data Portal", page_icon="🏥", layout="wide")

    # Global font size configuration via CSS
    st.markdown("""
        <style>
        html, body, [class*="css"] {
            font-size: 16px;
        }
        h1 { font-size: 2.0rem !important; }
        h2 { font-size: 1.6rem !important; }
        h3 { font-size: 1.3rem !important; }
        h4 { font-size: 1.1rem !important; }
        .stButton button {
            font-size: 0.95rem !important;
        }
        [data-testid="stSidebar"] {
            font-size: 0.9rem !important;
        }
        </style>
    """, unsafe_allow_html=True)

    # Initialize database on first run
    init_database()
    init_state()

    user = get_current_user()
    if user is None:
        # Signed out, or the account was deleted in another session
        st.session_state.current_user_id = None
        render_login()
        return

    render_sidebar(user)
    render_tabs(user)

if __name__ == "__main__":
    main()
