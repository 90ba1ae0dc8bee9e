# =============================================================================
# masjeed_core/ui/offline_status.py
# Offline Status Widgets
# =============================================================================
"""
Streamlit widgets that display what the offline core knows: connection
status, pending writes, and whether the data on screen is live or cached.
The widgets hold no state of their own.
"""
from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Optional

import streamlit as st

from masjeed_core.errors import error_boundary
from masjeed_core.offline.client import OfflineClient
from masjeed_core.offline.interceptor import ApiResponse
from masjeed_core.offline.models import ResponseSource, now_ms

STALE_AFTER_SECONDS = 24 * 60 * 60

CATEGORY_LABELS = {
    "donations": "Donations",
    "registrations": "Event registrations",
    "announcements": "Announcements",
    "general": "Other changes",
}


def format_age(seconds: Optional[float]) -> str:
    """Human readable age, e.g. '5 minutes ago'."""
    if seconds is None:
        return "never"
    seconds = max(int(seconds), 0)
    if seconds < 60:
        return "just now"

    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"

    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"

    days = hours // 24
    return f"{days} day{'s' if days != 1 else ''} ago"


def _age_since(timestamp_ms: Optional[int]) -> Optional[float]:
    if timestamp_ms is None:
        return None
    return (now_ms() - timestamp_ms) / 1000.0


@error_boundary(default_return=None, error_message="Could not sync queued changes")
def _sync_now(client: OfflineClient) -> Optional[Dict[str, int]]:
    summary = client.process_queue()
    if summary["attempted"]:
        st.toast(f"Synced {summary['succeeded']} of {summary['attempted']} queued changes")
    return summary


@error_boundary(default_return=False, error_message="Could not clear the offline queue")
def _clear_queue(client: OfflineClient) -> bool:
    client.clear_queue()
    st.toast("Offline queue cleared")
    return True


@error_boundary(default_return=None, error_message="Offline status unavailable")
def render_offline_indicator(client: OfflineClient) -> Optional[Dict[str, Any]]:
    """
    Sidebar block with connection badge, queue counts and sync actions.

    Returns:
        The status dict that was rendered
    """
    if not client.is_online:
        # Re-check on each rerun; a reachable host drains the queue
        client.refresh_connectivity()

    status = client.get_status()
    queue = status["queue"]
    is_online = status["is_online"]
    syncing = status["sync_in_progress"]

    with st.sidebar:
        st.markdown("### Connection")
        if is_online:
            st.success("🟢 Online")
        else:
            st.warning("🔴 Offline: changes will be sent when you reconnect")

        if syncing:
            st.info("🔄 Syncing queued changes...")

        if queue["total"]:
            st.markdown(f"**{queue['total']} change(s) waiting to sync**")
            for category, count in queue["byType"].items():
                st.caption(f"{CATEGORY_LABELS.get(category, category)}: {count}")

            with st.expander("Queued requests", expanded=False):
                st.dataframe(client.get_queue_status().to_dataframe(), hide_index=True)
        else:
            st.caption("No pending changes")

        if status["last_sync_at"] is not None:
            synced = datetime.fromtimestamp(status["last_sync_at"] / 1000)
            st.caption(f"Last sync: {format_age(_age_since(status['last_sync_at']))} ({synced:%H:%M})")

        col1, col2 = st.columns(2)
        with col1:
            if st.button(
                "Sync now",
                key="offline_sync_now",
                disabled=not is_online or syncing,
                use_container_width=True,
            ):
                _sync_now(client)
        with col2:
            if st.button(
                "Clear queue",
                key="offline_clear_queue",
                disabled=queue["total"] == 0,
                use_container_width=True,
            ):
                _clear_queue(client)

    return status


def render_cached_data_notice(response: ApiResponse, data_type: str) -> str:
    """
    Banner telling the user where the data on screen came from.

    Returns:
        One of 'live', 'cached', 'stale', 'queued', 'unavailable'
    """
    if response.source == ResponseSource.QUEUED:
        st.info(f"📤 You're offline. Your {data_type} request was saved and will be sent automatically.")
        return "queued"

    if response.source == ResponseSource.OFFLINE:
        st.error(f"📵 {data_type.capitalize()} are not available offline yet. Connect once to load them.")
        return "unavailable"

    if response.source == ResponseSource.CACHE:
        age = response.age_seconds
        if age is not None and age > STALE_AFTER_SECONDS:
            st.warning(f"⚠️ Showing saved {data_type} from {format_age(age)}. They may be out of date.")
            return "stale"
        st.info(f"💾 Showing saved {data_type} (updated {format_age(age)})")
        return "cached"

    st.caption(f"🟢 Live {data_type}")
    return "live"
