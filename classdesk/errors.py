"""Error taxonomy shared by the service layer and the HTTP surface.

Every error carries a stable ``code`` and the HTTP status it maps to. The
server installs one exception handler for :class:`RegistrationError`; nothing
here knows about FastAPI.
"""
from typing import Any, Dict, Optional


class RegistrationError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.code, "message": self.message}


class ValidationError(RegistrationError):
    status_code = 400
    code = "validation_error"


class NotFoundError(RegistrationError):
    status_code = 404
    code = "not_found"


class InvalidSignatureError(RegistrationError):
    status_code = 401
    code = "invalid_signature"


class InvalidStateError(RegistrationError):
    status_code = 409
    code = "invalid_state"


class GatewayError(RegistrationError):
    """Upstream payment-provider failure.

    ``provider_code``/``description`` are passed through to the caller as the
    provider reported them.
    """
    status_code = 502
    code = "gateway_error"

    def __init__(self, provider_code: str,
                 description: Optional[str] = None) -> None:
        super().__init__(description or provider_code)
        self.provider_code = provider_code
        self.description = description or ""

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["details"] = {
            "code": self.provider_code,
            "description": self.description,
        }
        return d


class NotificationError(RegistrationError):
    # confirmation failures are only logged; contact failures surface as 500
    code = "notification_error"


class AuthError(RegistrationError):
    status_code = 401
    code = "unauthenticated"


class ForbiddenError(RegistrationError):
    status_code = 403
    code = "forbidden"
