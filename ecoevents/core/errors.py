# ecoevents/core/errors.py
from typing import Any, Dict, Optional


class MarketplaceError(Exception):
    """Base class for failures the API reports to callers."""
    status_code = 500

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail: Dict[str, Any] = detail

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message}
        if self.detail:
            body["detail"] = self.detail
        return body


class ValidationError(MarketplaceError):
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, **detail: Any):
        if field is not None:
            detail["field"] = field
        super().__init__(message, **detail)
        self.field = field


class NotFoundError(MarketplaceError):
    status_code = 404


class AuthorizationError(MarketplaceError):
    status_code = 403


class ConflictError(MarketplaceError):
    status_code = 409

    def __init__(self, message: str, current_status: Optional[str] = None, **detail: Any):
        if current_status is not None:
            detail["current_status"] = current_status
        super().__init__(message, **detail)
        self.current_status = current_status


class ExpiredError(ConflictError):
    status_code = 410

    def __init__(self, message: str = "Donation has expired", **detail: Any):
        super().__init__(message, current_status="expired", **detail)
