from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable

from cotiz.catalog import is_allowed_mime_type
from cotiz.contexts.responses.resolver import QuoteTokenResolver, ResolvedQuote, ResponseRow
from cotiz.domain.contracts import QuickResponseSubmission, StoredBlob, SubmissionResult, UploadedFile
from cotiz.domain.gateway import BlobStorage, GatewayError, QuoteGateway
from cotiz.errors import ConflictError, IntegrationError, TokenResolutionError, ValidationError
from cotiz.money import money_str, parse_localized_currency, quantize_money
from cotiz.observability import observe_gateway_call
from cotiz.ui_strings import error_message
from cotiz.validators import format_date_br, parse_date


logger = logging.getLogger(__name__)

STATE_VALIDATING = "validating"
STATE_INVALID = "invalid"
STATE_READY = "ready"
STATE_SUBMITTING = "submitting"
STATE_SUCCESS = "success"

SUCCESS_REDIRECT = "/r/success"

DEFAULT_DELIVERY_DAYS = 7
DEFAULT_WARRANTY_MONTHS = 12
DEFAULT_PAYMENT_TERMS = "30 dias"


def _int_or_default(value: object, default: int) -> int:
    if value is None or str(value).strip() == "":
        return default
    try:
        return max(0, int(str(value).strip()))
    except ValueError:
        return default


@dataclass
class ResponseForm:
    supplier_name: str = ""
    supplier_email: str = ""
    delivery_days: str = ""
    shipping_cost: str = ""
    warranty_months: str = ""
    payment_terms: str = ""
    notes: str = ""
    visit_date: str = ""
    visit_notes: str = ""

    def update(self, data: Dict[str, Any]) -> None:
        for key in self.__dataclass_fields__:
            if key in data and data[key] is not None:
                setattr(self, key, str(data[key]))


class QuickResponseHandler:
    """Drives one supplier's quick response from token resolution to submission.

    States: validating -> invalid | ready -> submitting -> success | ready.
    Validation failures never leave ``ready`` and never reach a port.
    """

    def __init__(
        self,
        gateway: QuoteGateway,
        storage: BlobStorage,
        *,
        max_upload_bytes: int,
    ) -> None:
        self.gateway = gateway
        self.storage = storage
        self.max_upload_bytes = int(max_upload_bytes)
        self.state = STATE_VALIDATING
        self.resolved: ResolvedQuote | None = None
        self.form = ResponseForm()
        self.error: str | None = None
        self.redirect_to: str | None = None

    def load(self, token: str, resolver: QuoteTokenResolver | None = None) -> ResolvedQuote:
        resolver = resolver or QuoteTokenResolver(self.gateway)
        try:
            resolved = resolver.resolve(token)
        except TokenResolutionError as exc:
            self.state = STATE_INVALID
            self.redirect_to = exc.redirect_to
            raise
        self.resolved = resolved
        self.form.supplier_name = resolved.supplier.name or ""
        self.form.supplier_email = resolved.supplier.email or ""
        self.state = STATE_READY
        return resolved

    def _row(self, item_id: str) -> ResponseRow:
        for row in self.rows:
            if row.item_id == str(item_id):
                return row
        raise ValidationError(code="item_not_found", message_key="validation_error", field_errors={"items": str(item_id)})

    @property
    def rows(self) -> list[ResponseRow]:
        return list(self.resolved.rows) if self.resolved else []

    def set_item_price(self, item_id: str, raw_price: object) -> ResponseRow:
        row = self._row(item_id)
        row.set_unit_price(raw_price)
        return row

    def set_item_quantity(self, item_id: str, raw_quantity: object) -> ResponseRow:
        row = self._row(item_id)
        row.set_quantity(raw_quantity)
        return row

    def apply_items(self, items: Iterable[Dict[str, Any]]) -> None:
        for item in items or []:
            item_id = str(item.get("item_id") or item.get("id") or "")
            if "proposed_quantity" in item or "quantity" in item:
                self.set_item_quantity(item_id, item.get("proposed_quantity", item.get("quantity")))
            if "proposed_unit_price" in item or "unit_price" in item:
                self.set_item_price(item_id, item.get("proposed_unit_price", item.get("unit_price")))

    @property
    def total_amount(self) -> Decimal:
        return quantize_money(sum((row.proposed_total for row in self.rows), Decimal("0")))

    def validate(self, attachment: UploadedFile | None = None) -> date | None:
        """Raise the first failing rule; returns the parsed visit date."""
        if not self.form.supplier_name.strip() or not self.form.supplier_email.strip():
            raise ValidationError(
                code="supplier_contact_required",
                message_key="supplier_contact_required",
                field_errors={
                    key: "field_required"
                    for key in ("supplier_name", "supplier_email")
                    if not getattr(self.form, key).strip()
                },
            )

        quote = self.resolved.quote
        visit_date = parse_date(self.form.visit_date)
        if quote.requires_visit:
            if visit_date is None:
                raise ValidationError(
                    code="visit_date_required",
                    message_key="visit_date_required",
                    field_errors={"visit_date": "visit_date_required"},
                )
            if quote.visit_deadline is not None and visit_date > quote.visit_deadline:
                raise ValidationError(
                    code="visit_date_after_deadline",
                    message_key="visit_date_after_deadline",
                    message=error_message("visit_date_after_deadline").format(
                        deadline=format_date_br(quote.visit_deadline)
                    ),
                    field_errors={"visit_date": "visit_date_after_deadline"},
                )

        if not any(row.parsed_unit_price > 0 for row in self.rows):
            raise ValidationError(code="prices_required", message_key="prices_required")

        if attachment is not None:
            if attachment.size > self.max_upload_bytes:
                raise ValidationError(code="attachment_too_large", message_key="attachment_too_large")
            if not is_allowed_mime_type(attachment.content_type):
                raise ValidationError(code="attachment_type_not_allowed", message_key="attachment_type_not_allowed")
        return visit_date if quote.requires_visit else None

    def build_submission(self, attachment_url: str | None, visit_date: date | None) -> QuickResponseSubmission:
        items = [
            {
                "item_id": row.item_id,
                "product_name": row.product_name,
                "quantity": str(row.proposed_quantity),
                "unit_price": money_str(row.parsed_unit_price),
                "total": money_str(row.proposed_total),
            }
            for row in self.rows
        ]
        return QuickResponseSubmission(
            token=self.resolved.token,
            supplier_name=self.form.supplier_name.strip(),
            supplier_email=self.form.supplier_email.strip().lower(),
            total_amount=self.total_amount,
            delivery_days=_int_or_default(self.form.delivery_days, DEFAULT_DELIVERY_DAYS),
            shipping_cost=parse_localized_currency(self.form.shipping_cost) or Decimal("0"),
            warranty_months=_int_or_default(self.form.warranty_months, DEFAULT_WARRANTY_MONTHS),
            payment_terms=self.form.payment_terms.strip() or DEFAULT_PAYMENT_TERMS,
            items=items,
            notes=self.form.notes.strip() or None,
            attachment_url=attachment_url,
            visit_date=visit_date,
            visit_notes=self.form.visit_notes.strip() or None if visit_date else None,
        )

    def submit(self, attachment: UploadedFile | None = None) -> SubmissionResult:
        if self.state == STATE_SUBMITTING:
            raise ConflictError(code="submission_in_progress", message_key="submission_in_progress")
        if self.state != STATE_READY or self.resolved is None:
            raise ConflictError(code="action_invalid", message_key="action_invalid")

        visit_date = self.validate(attachment)
        self.error = None
        self.state = STATE_SUBMITTING

        stored: StoredBlob | None = None
        if attachment is not None:
            try:
                stored = self.storage.save(attachment, folder="quick-responses")
            except (GatewayError, OSError) as exc:
                self._fail("quick_response_upload_failed", "upload_quick_response_attachment", exc)

        try:
            result = self.gateway.submit_quick_response(
                self.build_submission(stored.public_url if stored else None, visit_date)
            )
            if not result.success:
                raise GatewayError(result.error or "submit-quick-response recusou a proposta")
        except GatewayError as exc:
            if stored is not None:
                self._discard(stored)
            self._fail("quick_response_failed", "submit_quick_response", exc)

        observe_gateway_call("submit_quick_response", "ok")
        self.state = STATE_SUCCESS
        self.redirect_to = SUCCESS_REDIRECT
        logger.info(
            "quick_response_submitted",
            extra={"quote_id": self.resolved.quote.id, "response_id": result.response_id},
        )
        return result

    def _discard(self, stored: StoredBlob) -> None:
        try:
            self.storage.delete(stored.storage_uri)
        except (GatewayError, OSError) as exc:
            logger.warning("attachment_rollback_failed", extra={"storage_uri": stored.storage_uri, "details": str(exc)})

    def _fail(self, message_key: str, operation: str, exc: Exception) -> None:
        observe_gateway_call(operation, "failed")
        self.state = STATE_READY
        self.error = message_key
        http_status = getattr(exc, "status", None)
        raise IntegrationError(
            code=message_key,
            message_key=message_key,
            http_status=http_status if http_status in (403, 404, 409) else None,
            details=str(exc),
        ) from exc
