"""
MedClaim AI - Main Application.

Single-page UI: landing content for visitors; ABHA search and the claims
dashboard once signed in. Login, Sign Up and New Claim open as modal
dialogs. All backend work goes through the per-session ``AppContext``.
"""

import html
from typing import Sequence

import pandas as pd
import streamlit as st

from medclaim.core.config import Settings, get_settings
from medclaim.gateways import DemoStore
from medclaim.schemas.claim import Claim, DocumentUpload
from medclaim.services.context import AppContext
from medclaim.services.runtime import BackgroundLoop
from medclaim.utils.formatting import format_currency, format_date, format_status, status_colors
from medclaim.utils.logging import setup_logging_from_settings

settings = get_settings()

# Page configuration
st.set_page_config(
    page_title=settings.APP_NAME,
    page_icon="🏥",
    layout="wide",
    initial_sidebar_state="collapsed",
    menu_items={
        "About": f"{settings.APP_NAME}: medical insurance claims made simple",
    },
)

# Custom CSS
st.markdown(
    """
<style>
    :root {
        --primary-blue: #0066CC;
        --secondary-blue: #004C99;
        --light-gray: #F8F9FA;
    }

    .main-header {
        background: linear-gradient(135deg, #0066CC 0%, #004C99 100%);
        color: white;
        padding: 1.25rem 1.5rem;
        border-radius: 10px;
        margin-bottom: 1rem;
        box-shadow: 0 4px 6px rgba(0, 0, 0, 0.1);
    }

    .main-header h1 {
        margin: 0;
        font-size: 1.8rem;
        font-weight: 600;
    }

    .main-header p {
        margin: 0.35rem 0 0 0;
        opacity: 0.9;
    }

    .feature-card {
        background: white;
        border-radius: 10px;
        padding: 1.5rem;
        box-shadow: 0 2px 4px rgba(0, 0, 0, 0.08);
        border-left: 4px solid #0066CC;
        margin-bottom: 1rem;
        min-height: 170px;
    }

    .feature-card .icon {
        font-size: 2rem;
        margin-bottom: 0.5rem;
    }

    .feature-card h3 {
        margin: 0 0 0.5rem 0;
        font-size: 1.1rem;
        color: #004C99;
    }

    .feature-card p {
        margin: 0;
        color: #555;
        font-size: 0.9rem;
    }

    .footer {
        text-align: center;
        padding: 1rem;
        color: #6C757D;
        font-size: 0.85rem;
        border-top: 1px solid #DEE2E6;
        margin-top: 2rem;
    }
</style>
""",
    unsafe_allow_html=True,
)

FEATURES = [
    ("🔐", "Secure Integration", "Seamlessly integrate with ABHA for secure and verified patient information."),
    ("✅", "Automated Verification", "Automatic verification of patient details and medical records."),
    ("⚙️", "Smart Processing", "AI-powered claim processing with intelligent document analysis."),
    ("⏱️", "Faster Processing", "Reduce claim processing time from weeks to hours."),
    ("🎯", "Accuracy Assured", "Minimize errors with automated validation and verification."),
    ("📄", "Digital Documentation", "Paperless claims with secure digital document management."),
]


# =============================================================================
# Session Context
# =============================================================================


@st.cache_resource
def get_demo_store(seed_claims: bool, claims_table: str) -> DemoStore:
    """In-memory backend shared by every browser session of this server."""
    return DemoStore(seed_claims=seed_claims, claims_table=claims_table)


@st.cache_resource
def get_background_loop() -> BackgroundLoop:
    """Event loop shared by every browser session of this server."""
    return BackgroundLoop(name="medclaim-loop").start()


def get_context(app_settings: Settings) -> AppContext:
    if "ctx" not in st.session_state:
        setup_logging_from_settings(app_settings)
        store = (
            get_demo_store(app_settings.DEMO_SEED_CLAIMS, app_settings.CLAIMS_TABLE)
            if app_settings.is_demo
            else None
        )
        st.session_state.ctx = AppContext.create(app_settings, store, loop=get_background_loop())
    return st.session_state.ctx


def show_notifications(ctx: AppContext) -> None:
    for notification in ctx.notifier.drain():
        st.toast(notification.message, icon=notification.icon)


ctx = get_context(settings)


# =============================================================================
# Dialogs
# =============================================================================


@st.dialog("Login")
def login_dialog() -> None:
    with st.form("login_form", clear_on_submit=False):
        email = st.text_input("Email", key="login_email")
        password = st.text_input("Password", type="password", key="login_password")
        submitted = st.form_submit_button("Login", type="primary")

    if submitted:
        with st.spinner("Signing in..."):
            ok = ctx.sign_in(email, password)
        if ok:
            st.rerun()
        show_notifications(ctx)


@st.dialog("Sign Up")
def signup_dialog() -> None:
    with st.form("signup_form", clear_on_submit=False):
        full_name = st.text_input("Full Name", key="signup_full_name")
        email = st.text_input("Email", key="signup_email")
        password = st.text_input("Password", type="password", key="signup_password")
        submitted = st.form_submit_button("Sign Up", type="primary")

    if submitted:
        with st.spinner("Creating account..."):
            ok = ctx.sign_up(full_name, email, password)
        if ok:
            st.rerun()
        show_notifications(ctx)


@st.dialog("Submit New Claim", width="large")
def new_claim_dialog() -> None:
    with st.form("new_claim_form", clear_on_submit=False):
        patient_name = st.text_input("Patient Name", key="claim_patient_name")
        diagnosis = st.text_area("Diagnosis", key="claim_diagnosis", height=80)
        treatment = st.text_area("Treatment", key="claim_treatment", height=80)
        cost = st.number_input(
            f"Cost ({settings.CURRENCY_SYMBOL})",
            min_value=0.0,
            value=None,
            step=100.0,
            key="claim_cost",
        )
        uploaded = st.file_uploader(
            "Supporting Documents",
            type=settings.ALLOWED_DOCUMENT_TYPES,
            key="claim_document",
        )
        submitted = st.form_submit_button("Submit Claim", type="primary")

    if submitted:
        document = None
        if uploaded is not None:
            document = DocumentUpload(
                filename=uploaded.name,
                content=uploaded.getvalue(),
                content_type=uploaded.type or "application/octet-stream",
            )
        with st.spinner("Submitting claim..."):
            ok = ctx.submit_claim(patient_name, diagnosis, treatment, cost, document)
        if ok:
            st.rerun()
        show_notifications(ctx)


# =============================================================================
# Header
# =============================================================================

header_col, actions_col = st.columns([4, 1])

with header_col:
    st.markdown(
        f"""
    <div class="main-header">
        <h1>🏥 {html.escape(settings.APP_NAME)}</h1>
        <p>Medical insurance claims, verified and processed faster</p>
    </div>
    """,
        unsafe_allow_html=True,
    )

with actions_col:
    session = ctx.session
    if session is not None:
        st.markdown(f"**Welcome, {session.display_name}**")
        if st.button("Logout", key="btn_logout"):
            ctx.sign_out()
            st.session_state.pop("document_cache", None)
            st.rerun()
    else:
        if st.button("Login", key="btn_login", type="primary"):
            login_dialog()
        if st.button("Sign Up", key="btn_signup"):
            signup_dialog()


# =============================================================================
# Landing (anonymous)
# =============================================================================


def render_landing() -> None:
    st.markdown("### Why MedClaim AI?")
    for row_start in range(0, len(FEATURES), 3):
        columns = st.columns(3)
        for column, (icon, title, description) in zip(columns, FEATURES[row_start : row_start + 3]):
            with column:
                st.markdown(
                    f"""
                <div class="feature-card">
                    <div class="icon">{icon}</div>
                    <h3>{title}</h3>
                    <p>{description}</p>
                </div>
                """,
                    unsafe_allow_html=True,
                )


# =============================================================================
# Dashboard (authenticated)
# =============================================================================


def render_abha_search() -> None:
    st.markdown("### 🔍 ABHA Lookup")
    search_col, button_col = st.columns([4, 1])
    with search_col:
        abha_number = st.text_input(
            "ABHA Number",
            placeholder="Enter ABHA number",
            key="abha_number",
            label_visibility="collapsed",
        )
    with button_col:
        if st.button("Verify", key="btn_verify_abha"):
            ctx.verify_abha(abha_number)


def claims_table(snapshot_claims: Sequence[Claim]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Patient": claim.patient_name,
                "Treatment": claim.treatment,
                "Cost": format_currency(claim.cost, settings.CURRENCY_SYMBOL),
                "Status": format_status(claim.status),
                "Date": format_date(claim.created_at, settings.DATE_FORMAT),
                "Document": "📎 Attached" if claim.has_document else "—",
            }
            for claim in snapshot_claims
        ]
    )


def style_status(value: str) -> str:
    background, foreground = status_colors(value.lower())
    return f"background-color: {background}; color: {foreground}; font-weight: 500;"


def render_documents(snapshot_claims: Sequence[Claim]) -> None:
    with_documents = [claim for claim in snapshot_claims if claim.has_document]
    if not with_documents:
        return
    with st.expander(f"📎 Supporting Documents ({len(with_documents)})"):
        labels = {
            claim.id: f"{claim.patient_name} · {format_date(claim.created_at, settings.DATE_FORMAT)}"
            for claim in with_documents
        }
        claim_id = st.selectbox(
            "Claim",
            options=list(labels),
            format_func=labels.get,
            key="document_claim",
        )
        selected = next(claim for claim in with_documents if claim.id == claim_id)
        cache = st.session_state.setdefault("document_cache", {})
        path = selected.document_url
        if path not in cache and st.button("Prepare download", key="btn_prepare_download"):
            content = ctx.download_document(path)
            if content is not None:
                cache[path] = content
        if path in cache:
            st.download_button("Download", data=cache[path], file_name=path, key="btn_download_document")
            if not settings.is_demo:
                link = ctx.document_link(path)
                if link:
                    st.link_button("Open in new tab", link)


@st.fragment(run_every=settings.CHANGE_FEED_POLL_SECONDS)
def render_claims() -> None:
    snapshot = ctx.snapshot()
    show_notifications(ctx)
    if snapshot is None:
        return

    if snapshot.loading and snapshot.is_empty:
        st.info("Loading claims...")
        return
    if snapshot.is_empty:
        st.info("No claims found. Create your first claim!")
        return

    df = claims_table(snapshot.claims)
    st.dataframe(
        df.style.map(style_status, subset=["Status"]),
        hide_index=True,
    )
    live = "🟢 Live updates on" if snapshot.live_updates else "⚪ Live updates off"
    st.caption(f"{len(snapshot.claims)} claim(s) · {live}")
    render_documents(snapshot.claims)


def render_dashboard() -> None:
    ctx.ensure_dashboard()
    render_abha_search()
    st.divider()

    title_col, new_col, refresh_col = st.columns([4, 1, 1])
    with title_col:
        st.markdown("### 📋 Claims Dashboard")
    with new_col:
        if st.button("➕ New Claim", key="btn_new_claim", type="primary"):
            new_claim_dialog()
    with refresh_col:
        if st.button("🔄 Refresh", key="btn_refresh"):
            with st.spinner("Loading claims..."):
                ctx.refresh_claims()

    render_claims()


if ctx.is_authenticated:
    render_dashboard()
else:
    render_landing()

show_notifications(ctx)

# Footer
st.markdown(
    f"""
<div class="footer">
    <p style="font-size: 0.75rem;">© 2025 {html.escape(settings.APP_NAME)}. All rights reserved.</p>
</div>
""",
    unsafe_allow_html=True,
)
