# =============================================================================
# masjeed_core/ui/__init__.py
# Streamlit Widgets for the Masjeed client
# =============================================================================

from .offline_status import (
    render_offline_indicator,
    render_cached_data_notice,
    format_age,
)

__all__ = [
    "render_offline_indicator",
    "render_cached_data_notice",
    "format_age",
]
