from __future__ import annotations
import streamlit as st

from masjeed_core.errors import handle_error
from masjeed_core.logging import setup_logging, get_logger
from masjeed_core.offline import ResponseSource, get_offline_client
from masjeed_core.ui import render_offline_indicator, render_cached_data_notice

# ============================================================================
# PAGE CONFIGURATION
# ============================================================================
st.set_page_config(
    page_title="Masjeed - Community",
    page_icon="🕌",
    layout="wide",
)

if not st.session_state.get("_logging_configured", False):
    setup_logging()
    st.session_state["_logging_configured"] = True

logger = get_logger(__name__)

try:
    client = get_offline_client()
except Exception as e:
    handle_error(e, user_message="The offline store could not be opened")
    st.stop()

auth_headers = {}
if st.session_state.get("auth_token"):
    auth_headers["Authorization"] = f"Bearer {st.session_state['auth_token']}"

render_offline_indicator(client)

st.title("🕌 Masjeed")
st.caption("Prayer times, events and announcements for your community")

prayers_tab, events_tab, announcements_tab, donate_tab = st.tabs(
    ["Prayer Times", "Events", "Announcements", "Donate"]
)

# ============================================================================
# PRAYER TIMES
# ============================================================================
with prayers_tab:
    response = client.fetch("GET", "/api/prayers/today", headers=auth_headers)
    render_cached_data_notice(response, "prayer times")
    if response.ok and response.body:
        data = response.body.get("data", response.body) if isinstance(response.body, dict) else response.body
        st.table(data)

# ============================================================================
# EVENTS
# ============================================================================
with events_tab:
    response = client.fetch("GET", "/api/events", headers=auth_headers)
    render_cached_data_notice(response, "events")
    events = response.body.get("data", []) if isinstance(response.body, dict) else (response.body or [])

    for event in events:
        with st.container(border=True):
            st.markdown(f"**{event.get('title', 'Event')}**")
            st.caption(event.get("date", ""))
            if st.button("Register", key=f"register_{event.get('id')}"):
                result = client.fetch("POST", f"/api/events/{event.get('id')}/register", {}, auth_headers)
                if result.ok and result.source == ResponseSource.NETWORK:
                    st.success("You're registered!")
                else:
                    render_cached_data_notice(result, "registration")

# ============================================================================
# ANNOUNCEMENTS
# ============================================================================
with announcements_tab:
    response = client.fetch("GET", "/api/announcements", headers=auth_headers)
    render_cached_data_notice(response, "announcements")
    announcements = response.body.get("data", []) if isinstance(response.body, dict) else (response.body or [])

    for announcement in announcements:
        st.markdown(f"#### {announcement.get('title', '')}")
        st.write(announcement.get("content", ""))

# ============================================================================
# DONATIONS
# ============================================================================
with donate_tab:
    with st.form("donation_form"):
        amount = st.number_input("Amount", min_value=1.0, value=20.0, step=5.0)
        purpose = st.selectbox("Purpose", ["General", "Zakat", "Sadaqah", "Building fund"])
        submitted = st.form_submit_button("Donate")

    if submitted:
        logger.info(f"Donation submitted: {amount} ({purpose})")
        result = client.fetch(
            "POST",
            "/api/donations",
            {"amount": amount, "purpose": purpose.lower()},
            auth_headers,
        )
        if result.ok and result.source == ResponseSource.NETWORK:
            st.success("Jazakallah khair! Your donation was received.")
        else:
            render_cached_data_notice(result, "donation")
