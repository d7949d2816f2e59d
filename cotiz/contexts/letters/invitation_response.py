from __future__ import annotations

import logging
from typing import Any, Dict

from cotiz.catalog import is_allowed_mime_type
from cotiz.domain.contracts import StoredBlob, UploadedFile
from cotiz.domain.gateway import BlobStorage, GatewayError, LetterGateway
from cotiz.errors import ConflictError, IntegrationError, TokenResolutionError, ValidationError
from cotiz.validators import is_expired


logger = logging.getLogger(__name__)

RESPONSE_STATUSES = ("accepted", "declined", "no_interest")


class InvitationResponseHandler:
    """Public answer to an invitation letter reached through its response token."""

    def __init__(self, letters: LetterGateway, storage: BlobStorage, *, max_upload_bytes: int) -> None:
        self.letters = letters
        self.storage = storage
        self.max_upload_bytes = int(max_upload_bytes)

    def _load(self, token: str) -> Dict[str, Any]:
        recipient = self.letters.find_recipient_by_token(str(token or "").strip()) if token else None
        if not recipient:
            raise TokenResolutionError(code="token_invalid", message_key="token_invalid")
        if recipient.get("letter_status") == "cancelled":
            raise TokenResolutionError(code="invitation_cancelled", message_key="invitation_cancelled", http_status=410)
        if is_expired(recipient.get("token_expires_at")):
            raise TokenResolutionError(code="token_expired", message_key="token_expired", http_status=410)
        return recipient

    def open(self, token: str) -> Dict[str, Any]:
        recipient = self._load(token)
        if not recipient.get("viewed_at"):
            self.letters.mark_recipient_viewed(str(recipient["id"]))
        return self._view(recipient)

    def respond(
        self,
        token: str,
        *,
        status: str,
        notes: str | None = None,
        attachment: UploadedFile | None = None,
    ) -> Dict[str, Any]:
        recipient = self._load(token)
        if recipient.get("response_status") not in (None, "", "pending"):
            raise ConflictError(code="invitation_already_answered", message_key="invitation_already_answered")

        normalized = str(status or "").strip().lower()
        if normalized not in RESPONSE_STATUSES:
            raise ValidationError(
                code="invitation_response_invalid",
                message_key="invitation_response_invalid",
                field_errors={"status": "invitation_response_invalid"},
            )
        if attachment is not None:
            if attachment.size > self.max_upload_bytes:
                raise ValidationError(code="attachment_too_large", message_key="attachment_too_large")
            if not is_allowed_mime_type(attachment.content_type):
                raise ValidationError(code="attachment_type_not_allowed", message_key="attachment_type_not_allowed")

        stored: StoredBlob | None = None
        try:
            if attachment is not None:
                stored = self.storage.save(attachment, folder=f"invitation-responses/{recipient['letter_id']}")
            updated = self.letters.record_recipient_response(
                str(recipient["id"]),
                status=normalized,
                notes=(notes or "").strip() or None,
                attachment_url=stored.public_url if stored else None,
            )
        except (GatewayError, OSError) as exc:
            if stored is not None:
                self.storage.delete(stored.storage_uri)
            logger.warning("invitation_response_failed", extra={"recipient_id": recipient.get("id"), "details": str(exc)})
            raise IntegrationError(
                code="invitation_response_failed",
                message_key="invitation_response_failed",
                details=str(exc),
            ) from exc
        return self._view({**recipient, **updated})

    @staticmethod
    def _view(recipient: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "letter": {
                "id": recipient.get("letter_id"),
                "letter_number": recipient.get("letter_number"),
                "title": recipient.get("title"),
                "description": recipient.get("description"),
                "deadline": recipient.get("deadline"),
                "category": recipient.get("category"),
                "client_name": recipient.get("client_name"),
                "required_documents": recipient.get("required_documents") or [],
                "attachments": [
                    {"file_name": item.get("file_name"), "url": item.get("public_url")}
                    for item in (recipient.get("attachments") or [])
                ],
            },
            "response": {
                "status": recipient.get("response_status") or "pending",
                "notes": recipient.get("response_notes"),
                "attachment_url": recipient.get("response_attachment_url"),
                "responded_at": recipient.get("responded_at"),
            },
        }
