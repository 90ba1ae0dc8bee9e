# =============================================================================
# masjeed_core/errors/exceptions.py
# Exception Hierarchy for the Masjeed offline core
# =============================================================================

from typing import Optional, Dict, Any


class MasjeedError(Exception):
    """
    Base exception for all Masjeed client errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "NET_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "MSJ_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# NETWORK EXCEPTIONS
# =============================================================================

class NetworkError(MasjeedError):
    """Raised when a request cannot reach the server or returns non-2xx"""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        method: Optional[str] = None,
        status: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if url:
            details["url"] = url
        if method:
            details["method"] = method
        if status is not None:
            details["status"] = status

        super().__init__(
            message=message,
            code="NET_001",
            details=details,
            **kwargs,
        )
        self.status = status


# =============================================================================
# STORAGE EXCEPTIONS
# =============================================================================

class StorageError(MasjeedError):
    """Raised when a durable store operation fails (quota, corruption, encoding)"""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if collection:
            details["collection"] = collection
        if record_id:
            details["record_id"] = record_id

        super().__init__(
            message=message,
            code="STORE_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# QUEUE EXCEPTIONS
# =============================================================================

class SerializationError(MasjeedError):
    """Raised when a request body cannot be captured for replay"""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        body_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if url:
            details["url"] = url
        if body_type:
            details["body_type"] = body_type

        super().__init__(
            message=message,
            code="QUEUE_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(MasjeedError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
