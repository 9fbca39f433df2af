"""
Exception hierarchy for the quiz pipeline.

Every domain error carries:
- error_code: machine-readable string (e.g. "QUIZ_NOT_FOUND")
- status_code: HTTP status used by the API layer
- message: human-readable description
- context: optional structured metadata dict
"""
from typing import Any, Dict, Optional


class GroundSchoolError(Exception):
    """Base exception for all domain errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.context = context or {}
        super().__init__(message)


class ValidationError(GroundSchoolError):
    """Bad input or a 4xx answer from a remote service. Never retried."""

    def __init__(
        self,
        message: str,
        error_code: str = "VALIDATION_ERROR",
        context: Optional[Dict[str, Any]] = None,
        upstream_status: Optional[int] = None,
    ):
        self.upstream_status = upstream_status
        super().__init__(message, error_code=error_code, status_code=400, context=context)


class NetworkError(GroundSchoolError):
    """Transport failure or 5xx that survived every retry."""

    def __init__(
        self,
        message: str,
        error_code: str = "NETWORK_ERROR",
        context: Optional[Dict[str, Any]] = None,
        upstream_status: Optional[int] = None,
    ):
        self.upstream_status = upstream_status
        super().__init__(message, error_code=error_code, status_code=503, context=context)


TransportError = NetworkError


class StorageConflictError(GroundSchoolError):
    """Blob storage refused an upload because the key already exists."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="STORAGE_CONFLICT", status_code=409, context=context)


class PersistenceError(GroundSchoolError):
    """A remote write failed after a prerequisite step already succeeded."""

    def __init__(
        self,
        message: str,
        error_code: str = "PERSISTENCE_FAILED",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code=error_code, status_code=502, context=context)


class NotFoundError(GroundSchoolError):
    """Record absent from both the remote store and the local cache."""

    def __init__(
        self,
        message: str,
        error_code: str = "NOT_FOUND",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code=error_code, status_code=404, context=context)


class GenerationError(GroundSchoolError):
    """Question generation produced nothing usable."""

    def __init__(
        self,
        message: str,
        error_code: str = "GENERATION_FAILED",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code=error_code, status_code=500, context=context)
