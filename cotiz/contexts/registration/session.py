from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from cotiz.domain.contracts import AuthIdentity, RegistrationResult
from cotiz.domain.gateway import AuthClient, GatewayError
from cotiz.ui_strings import success_message, warning_message


logger = logging.getLogger(__name__)

ATTEMPT_DIRECT_SESSION = "attempt_direct_session"
ATTEMPT_PASSWORD_FALLBACK = "attempt_password_fallback"
AUTHENTICATED = "authenticated"
FAILED = "failed"


@dataclass(frozen=True)
class SessionOutcome:
    authenticated: bool
    method: str | None = None
    identity: AuthIdentity | None = None
    trail: List[str] = field(default_factory=list)
    message: str = ""


class SessionEstablisher:
    """AttemptDirectSession -> AttemptPasswordFallback -> Fail.

    Each attempt is a separate method so either path can be exercised alone.
    """

    def __init__(self, auth: AuthClient) -> None:
        self.auth = auth

    def attempt_direct_session(self, result: RegistrationResult) -> AuthIdentity | None:
        if result.session is None:
            return None
        try:
            return self.auth.set_session(result.session)
        except GatewayError as exc:
            logger.warning("registration_direct_session_failed", extra={"user_id": result.user_id, "details": str(exc)})
            return None

    def attempt_password_fallback(self, result: RegistrationResult) -> AuthIdentity | None:
        if not result.email or not result.temporary_password:
            return None
        try:
            return self.auth.sign_in_with_password(result.email, result.temporary_password)
        except GatewayError as exc:
            logger.warning("registration_password_fallback_failed", extra={"user_id": result.user_id, "details": str(exc)})
            return None

    def establish(self, result: RegistrationResult) -> SessionOutcome:
        state = ATTEMPT_DIRECT_SESSION
        trail: List[str] = []
        identity: AuthIdentity | None = None
        method: str | None = None

        while state not in (AUTHENTICATED, FAILED):
            trail.append(state)
            if state == ATTEMPT_DIRECT_SESSION:
                identity = self.attempt_direct_session(result)
                method = "direct"
                state = AUTHENTICATED if identity else ATTEMPT_PASSWORD_FALLBACK
            else:
                identity = self.attempt_password_fallback(result)
                method = "password"
                state = AUTHENTICATED if identity else FAILED
        trail.append(state)

        if state == FAILED:
            return SessionOutcome(
                authenticated=False,
                trail=trail,
                message=warning_message("registration_login_required"),
            )
        return SessionOutcome(
            authenticated=True,
            method=method,
            identity=identity,
            trail=trail,
            message=success_message("registration_completed"),
        )
