"""
Error Taxonomy

Every failure surfaced by the servicing core carries a human readable
``reason`` and the HTTP status the API layer should answer with.
"""

from typing import Any, Dict, Optional


class ServicingError(Exception):
    """Base class for all loan servicing errors"""
    
    status_code: int = 500
    retryable: bool = False
    
    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(reason)
        self.reason = reason
        self.details = details or {}
    
    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.reason}
        if self.details:
            payload["errors"] = self.details
        if self.retryable:
            payload["retryable"] = True
        return payload


class ValidationError(ServicingError):
    """Malformed or missing input, rejected before any write"""
    status_code = 400


class NotFoundError(ServicingError):
    """Client, loan or installment does not exist"""
    status_code = 404


class ConflictError(ServicingError):
    """Operation conflicts with current state (e.g. loan already settled)"""
    status_code = 409


class IntegrityError(ServicingError):
    """A multi-step write failed part way and was compensated; safe to retry"""
    status_code = 503
    retryable = True
