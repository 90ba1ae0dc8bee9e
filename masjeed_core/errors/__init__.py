# =============================================================================
# masjeed_core/errors/__init__.py
# Centralized Error Handling for the Masjeed client
# =============================================================================

from .exceptions import (
    MasjeedError,
    NetworkError,
    StorageError,
    SerializationError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    error_boundary,
)

__all__ = [
    # Exceptions
    "MasjeedError",
    "NetworkError",
    "StorageError",
    "SerializationError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "error_boundary",
]
