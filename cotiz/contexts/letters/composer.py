from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List

from cotiz.catalog import CATEGORY_DOCUMENTS, DOCUMENT_TYPES, LETTER_CATEGORIES, document_label, is_allowed_mime_type
from cotiz.domain.contracts import LetterDraft, RequiredDocument, StoredBlob, UploadedFile
from cotiz.domain.gateway import BlobStorage, GatewayError, LetterGateway
from cotiz.errors import IntegrationError, ValidationError
from cotiz.money import parse_localized_currency
from cotiz.observability import observe_gateway_call
from cotiz.ui_strings import success_message, warning_message
from cotiz.validators import parse_date


logger = logging.getLogger(__name__)

MODES = ("standalone", "linked")
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class AttachmentRejection:
    filename: str
    reason: str


@dataclass(frozen=True)
class ComposerResult:
    letter: Dict[str, Any]
    sent: bool
    message: str
    warnings: List[str] = field(default_factory=list)


def split_direct_emails(raw_value: str | Iterable[str] | None) -> List[str]:
    if raw_value is None:
        return []
    if isinstance(raw_value, str):
        parts = raw_value.split(",")
    else:
        parts = [str(item) for item in raw_value]
    return [part.strip() for part in parts if part and part.strip()]


class InvitationLetterComposer:
    def __init__(
        self,
        letters: LetterGateway,
        storage: BlobStorage,
        *,
        client_id: str,
        created_by: str | None = None,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self.letters = letters
        self.storage = storage
        self.client_id = client_id
        self.created_by = created_by
        self.max_upload_bytes = int(max_upload_bytes)

        self.mode = "standalone"
        self.title = ""
        self.description = ""
        self.deadline = ""
        self.category: str | None = None
        self.quote_id: str | None = None
        self.estimated_budget: Decimal | None = None
        self.required_documents: List[RequiredDocument] = []
        self.supplier_ids: List[str] = []
        self.direct_emails: List[str] = []
        self.attachments: List[UploadedFile] = []
        self.warnings: List[str] = []

    # --- state edits -------------------------------------------------

    def set_mode(self, mode: str) -> None:
        normalized = str(mode or "").strip().lower()
        if normalized not in MODES:
            raise ValidationError(code="invalid_mode", message_key="invalid_mode")
        if normalized == self.mode:
            return
        self.mode = normalized
        if normalized == "linked":
            self.category = None
            self.estimated_budget = None
            self.direct_emails = []
        else:
            self.quote_id = None

    def select_category(self, category: str) -> bool:
        """Replace required documents with the category suggestion.

        Returns True when a different, non-empty selection was overwritten.
        """
        normalized = str(category or "").strip().lower()
        if normalized not in LETTER_CATEGORIES:
            raise ValidationError(code="invalid_category", message_key="invalid_category")
        suggested = [
            RequiredDocument(type=doc_type, label=document_label(doc_type), mandatory=True)
            for doc_type in CATEGORY_DOCUMENTS.get(normalized, ())
        ]
        replaced = bool(self.required_documents) and self.required_documents != suggested
        self.category = normalized
        self.required_documents = suggested
        if replaced:
            self.warnings.append(warning_message("required_documents_replaced"))
        return replaced

    def toggle_required_document(self, doc_type: str) -> bool:
        """Add or remove a document type; returns True when it is now required."""
        normalized = str(doc_type or "").strip()
        if normalized not in DOCUMENT_TYPES:
            raise ValidationError(code="invalid_document_type", message_key="invalid_document_type")
        remaining = [doc for doc in self.required_documents if doc.type != normalized]
        if len(remaining) != len(self.required_documents):
            self.required_documents = remaining
            return False
        self.required_documents.append(RequiredDocument(type=normalized, label=document_label(normalized), mandatory=True))
        return True

    def toggle_supplier(self, supplier_id: str) -> bool:
        normalized = str(supplier_id or "").strip()
        if not normalized:
            return False
        if normalized in self.supplier_ids:
            self.supplier_ids.remove(normalized)
            return False
        self.supplier_ids.append(normalized)
        return True

    def set_direct_emails(self, raw_value: str | Iterable[str] | None) -> None:
        self.direct_emails = split_direct_emails(raw_value)

    def set_estimated_budget(self, raw_value: object) -> None:
        self.estimated_budget = parse_localized_currency(raw_value)

    def add_attachments(self, files: Iterable[UploadedFile]) -> List[AttachmentRejection]:
        rejected: List[AttachmentRejection] = []
        for upload in files:
            if upload.size > self.max_upload_bytes:
                rejected.append(AttachmentRejection(upload.filename, "attachment_too_large"))
                continue
            if not is_allowed_mime_type(upload.content_type):
                rejected.append(AttachmentRejection(upload.filename, "attachment_type_not_allowed"))
                continue
            self.attachments.append(upload)
        return rejected

    def remove_attachment(self, filename: str) -> bool:
        for index, upload in enumerate(self.attachments):
            if upload.filename == filename:
                del self.attachments[index]
                return True
        return False

    @property
    def recipients(self) -> List[str]:
        return list(self.supplier_ids) + list(self.direct_emails)

    # --- submission --------------------------------------------------

    def validate(self) -> None:
        if self.mode == "linked" and not self.quote_id:
            raise ValidationError(code="letter_quote_required", message_key="letter_quote_required")
        if self.mode == "standalone" and not self.category:
            raise ValidationError(code="letter_category_required", message_key="letter_category_required")
        if not self.title.strip() or not self.description.strip() or not str(self.deadline or "").strip():
            raise ValidationError(code="letter_required_fields", message_key="letter_required_fields")
        if not self.recipients:
            raise ValidationError(code="letter_recipients_required", message_key="letter_recipients_required")
        if parse_date(self.deadline) is None:
            raise ValidationError(
                code="letter_required_fields",
                message_key="letter_required_fields",
                field_errors={"deadline": "deadline_invalid"},
            )

    def build_draft(self, stored: List[StoredBlob]) -> LetterDraft:
        standalone = self.mode == "standalone"
        return LetterDraft(
            client_id=self.client_id,
            title=self.title.strip(),
            description=self.description.strip(),
            deadline=parse_date(self.deadline).isoformat(),
            category=self.category if standalone else None,
            quote_id=None if standalone else self.quote_id,
            estimated_budget=self.estimated_budget if standalone else None,
            required_documents=list(self.required_documents),
            supplier_ids=list(self.supplier_ids),
            direct_emails=list(self.direct_emails) if standalone else [],
            attachments=stored,
            created_by=self.created_by,
        )

    def _discard(self, stored: List[StoredBlob]) -> None:
        for blob in stored:
            try:
                self.storage.delete(blob.storage_uri)
            except (GatewayError, OSError) as exc:
                logger.warning("attachment_rollback_failed", extra={"storage_uri": blob.storage_uri, "details": str(exc)})

    def _upload_attachments(self) -> List[StoredBlob]:
        stored: List[StoredBlob] = []
        for upload in self.attachments:
            try:
                stored.append(self.storage.save(upload, folder=f"invitation-letters/{self.client_id}"))
            except (GatewayError, OSError) as exc:
                self._discard(stored)
                observe_gateway_call("upload_letter_attachment", "failed")
                raise IntegrationError(
                    code="attachment_upload_failed",
                    message_key="attachment_upload_failed",
                    details=str(exc),
                ) from exc
        return stored

    def submit(self, send_immediately: bool = False) -> ComposerResult:
        self.validate()
        stored = self._upload_attachments()
        draft = self.build_draft(stored)

        try:
            letter = self.letters.create_letter(draft)
        except GatewayError as exc:
            self._discard(stored)
            observe_gateway_call("create_invitation_letter", "failed")
            raise IntegrationError(
                code="letter_create_failed",
                message_key="letter_create_failed",
                details=str(exc),
            ) from exc
        observe_gateway_call("create_invitation_letter", "ok")

        warnings = list(self.warnings)
        if not send_immediately:
            return ComposerResult(letter=letter, sent=False, message=success_message("letter_saved_draft"), warnings=warnings)

        try:
            letter = self.letters.send_letter(str(letter["id"]))
        except GatewayError as exc:
            observe_gateway_call("send_invitation_letter", "failed")
            logger.warning("letter_send_failed", extra={"letter_id": letter.get("id"), "details": str(exc)})
            warnings.append(warning_message("letter_created_send_failed"))
            return ComposerResult(
                letter=letter,
                sent=False,
                message=warning_message("letter_created_send_failed"),
                warnings=warnings,
            )
        observe_gateway_call("send_invitation_letter", "ok")
        return ComposerResult(letter=letter, sent=True, message=success_message("letter_sent"), warnings=warnings)

    @classmethod
    def from_payload(
        cls,
        payload: Dict[str, Any],
        *,
        letters: LetterGateway,
        storage: BlobStorage,
        client_id: str,
        created_by: str | None = None,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        files: Iterable[UploadedFile] = (),
    ) -> tuple["InvitationLetterComposer", List[AttachmentRejection]]:
        composer = cls(
            letters,
            storage,
            client_id=client_id,
            created_by=created_by,
            max_upload_bytes=max_upload_bytes,
        )
        data = dict(payload or {})
        composer.set_mode(data.get("mode") or ("linked" if data.get("quote_id") else "standalone"))
        composer.title = str(data.get("title") or "")
        composer.description = str(data.get("description") or "")
        composer.deadline = str(data.get("deadline") or "")
        if composer.mode == "linked":
            composer.quote_id = str(data.get("quote_id") or "").strip() or None
        elif data.get("category"):
            composer.select_category(str(data["category"]))
            composer.set_estimated_budget(data.get("estimated_budget"))
            composer.set_direct_emails(data.get("direct_emails"))
        else:
            composer.set_direct_emails(data.get("direct_emails"))

        if data.get("required_documents") is not None:
            composer.required_documents = []
            for item in data.get("required_documents") or []:
                doc_type = item.get("type") if isinstance(item, dict) else item
                if not any(doc.type == doc_type for doc in composer.required_documents):
                    composer.toggle_required_document(str(doc_type or ""))

        for supplier_id in data.get("supplier_ids") or []:
            if str(supplier_id) not in composer.supplier_ids:
                composer.toggle_supplier(str(supplier_id))
        rejected = composer.add_attachments(files)
        return composer, rejected
