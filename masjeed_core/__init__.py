# =============================================================================
# masjeed_core/__init__.py
# Core library for the Masjeed community app
# =============================================================================
"""
Masjeed core: offline request queue, cache fallback and connectivity handling
for the Masjeed community-management client.
"""

__version__ = "1.0.0"
