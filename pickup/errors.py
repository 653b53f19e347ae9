"""
Pickup Store exception hierarchy

    PickupError
    ├── ValidationError       resolved locally, never reaches the boundary
    ├── EligibilityDenied     fulfillment option withheld or rejected locally
    ├── ReservationLocked     terminal: the modification window has closed
    └── BoundaryFailure       network/server error on a boundary call
        └── AuthenticationFailure   401/403 from the boundary transport

Every message is a single line so the UI can show it as-is.
"""
from typing import Optional, Dict, Any


class PickupError(Exception):
    default_code: str = "PICKUP_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(PickupError):
    default_code = "VALIDATION_ERROR"


class EligibilityDenied(PickupError):
    default_code = "ELIGIBILITY_DENIED"


class ReservationLocked(PickupError):
    default_code = "RESERVATION_LOCKED"


class BoundaryFailure(PickupError):
    default_code = "BOUNDARY_FAILURE"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        super().__init__(message, code=code, details=details)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["status_code"] = self.status_code
        return data


class AuthenticationFailure(BoundaryFailure):
    default_code = "AUTHENTICATION_FAILURE"
