from __future__ import annotations

import re
from typing import Any, Dict

from cotiz.ui_strings import error_message


class AppError(Exception):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True

    def __init__(
        self,
        code: str | None = None,
        message_key: str | None = None,
        http_status: int | None = None,
        critical: bool | None = None,
        details: str | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.code = (code or self.default_code).strip()
        self.message_key = (message_key or self.default_message_key).strip()
        self.http_status = int(http_status or self.default_http_status)
        self.critical = bool(self.default_critical if critical is None else critical)
        self.details = (details or "").strip() or None
        self.payload = dict(payload or {})
        super().__init__(self.details or self.code)

    def user_message(self) -> str:
        fallback = error_message("unexpected_error", "Nao foi possivel concluir a operacao.")
        return error_message(self.message_key, fallback)

    def to_response_payload(self, request_id: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.user_message(),
            "request_id": request_id,
        }
        if self.payload:
            payload.update(self.payload)
        return payload


class UserActionError(AppError):
    default_code = "action_invalid"
    default_message_key = "action_invalid"
    default_http_status = 400
    default_critical = False


class ValidationError(UserActionError):
    """Locally detected input problem; never reaches a port."""

    default_code = "validation_error"
    default_message_key = "validation_error"
    default_http_status = 400
    default_critical = False

    def __init__(self, *args, message: str | None = None, field_errors: Dict[str, str] | None = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.message = (message or "").strip() or None
        self.field_errors = dict(field_errors or {})
        if self.field_errors:
            self.payload.setdefault("field_errors", dict(self.field_errors))

    def user_message(self) -> str:
        if self.message:
            return self.message
        return super().user_message()


class PermissionError(UserActionError):
    default_code = "permission_denied"
    default_message_key = "permission_denied"
    default_http_status = 403
    default_critical = False


class NotFoundError(UserActionError):
    default_code = "not_found"
    default_message_key = "not_found"
    default_http_status = 404
    default_critical = False


class ConflictError(UserActionError):
    default_code = "action_not_allowed_for_status"
    default_message_key = "action_not_allowed_for_status"
    default_http_status = 409
    default_critical = False


class TokenResolutionError(UserActionError):
    """Bad or expired public token: the view must be abandoned, no retry offered."""

    default_code = "token_invalid"
    default_message_key = "token_invalid"
    default_http_status = 404
    default_critical = False

    def __init__(self, *args, redirect_to: str = "/", **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.redirect_to = redirect_to
        self.payload.setdefault("redirect_to", redirect_to)


class IntegrationError(AppError):
    default_code = "integration_error"
    default_message_key = "gateway_temporarily_unavailable"
    default_http_status = 502
    default_critical = False


class SystemError(AppError):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True


_HTTP_CODE_PATTERN = re.compile(r"http\s+(\d{3})", re.IGNORECASE)


def classify_gateway_failure(details: str | None) -> tuple[str, int]:
    """Return (code, http_status) for a port failure description."""
    normalized = (details or "").strip().lower()
    code_match = _HTTP_CODE_PATTERN.search(normalized)
    if code_match:
        http_code = int(code_match.group(1))
        if 400 <= http_code < 500 and http_code not in {408, 429}:
            return ("gateway_rejected", 422)
    return ("gateway_unavailable", 502)
