from __future__ import annotations

import logging
from typing import Any, Dict, List

from cotiz.domain.gateway import GatewayError, LetterGateway
from cotiz.errors import ConflictError, IntegrationError, NotFoundError
from cotiz.observability import observe_gateway_call


logger = logging.getLogger(__name__)


class InvitationLetterService:
    """Lifecycle of letters after composition: listing, dispatch, resend and cancel."""

    def __init__(self, letters: LetterGateway) -> None:
        self.letters = letters

    def list_letters(self, client_id: str) -> List[Dict[str, Any]]:
        return self.letters.list_letters(client_id)

    def get_letter(self, letter_id: str, client_id: str) -> Dict[str, Any]:
        letter = self.letters.get_letter(letter_id, client_id)
        if not letter:
            raise NotFoundError(code="letter_not_found", message_key="letter_not_found")
        return letter

    def _require_status(self, letter: Dict[str, Any], *allowed: str) -> None:
        if letter.get("status") not in allowed:
            raise ConflictError(
                details=f"status atual: {letter.get('status')}",
                payload={"status": letter.get("status")},
            )

    def send(self, letter_id: str, client_id: str) -> Dict[str, Any]:
        letter = self.get_letter(letter_id, client_id)
        self._require_status(letter, "draft")
        return self._dispatch(letter_id, resend=False)

    def resend(self, letter_id: str, client_id: str) -> Dict[str, Any]:
        letter = self.get_letter(letter_id, client_id)
        self._require_status(letter, "sent")
        return self._dispatch(letter_id, resend=True)

    def cancel(self, letter_id: str, client_id: str) -> Dict[str, Any]:
        letter = self.get_letter(letter_id, client_id)
        self._require_status(letter, "draft", "sent")
        cancelled = self.letters.cancel_letter(letter_id)
        logger.info("letter_cancelled", extra={"letter_id": letter_id, "client_id": client_id})
        return cancelled

    def _dispatch(self, letter_id: str, *, resend: bool) -> Dict[str, Any]:
        try:
            letter = self.letters.send_letter(letter_id, resend=resend)
        except GatewayError as exc:
            observe_gateway_call("send_invitation_letter", "failed")
            raise IntegrationError(
                code="letter_send_failed",
                message_key="letter_send_failed",
                details=str(exc),
            ) from exc
        observe_gateway_call("send_invitation_letter", "ok")
        return letter
