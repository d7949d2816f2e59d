from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List

from cotiz.domain.contracts import QuoteItem, QuoteSummary, SupplierProfile
from cotiz.domain.gateway import GatewayError, QuoteGateway
from cotiz.errors import TokenResolutionError
from cotiz.money import money_str, parse_localized_currency, quantize_money, to_decimal
from cotiz.observability import observe_gateway_call


logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class ResponseRow:
    """Editable pricing row; ``proposed_total`` always reflects the current inputs."""

    item_id: str
    product_name: str
    quantity: Decimal
    reference_unit_price: Decimal | None
    proposed_quantity: Decimal
    proposed_unit_price: str = ""
    proposed_total: Decimal = ZERO

    @classmethod
    def from_item(cls, item: QuoteItem) -> "ResponseRow":
        return cls(
            item_id=item.id,
            product_name=item.product_name,
            quantity=item.quantity,
            reference_unit_price=item.unit_price,
            proposed_quantity=item.quantity,
        )

    @property
    def parsed_unit_price(self) -> Decimal:
        return parse_localized_currency(self.proposed_unit_price) or ZERO

    def set_unit_price(self, raw_value: object) -> None:
        self.proposed_unit_price = "" if raw_value is None else str(raw_value)
        self._recompute()

    def set_quantity(self, raw_value: object) -> None:
        quantity = parse_localized_currency(raw_value) if isinstance(raw_value, str) else to_decimal(raw_value)
        self.proposed_quantity = quantity if quantity is not None else ZERO
        self._recompute()

    def _recompute(self) -> None:
        self.proposed_total = quantize_money(self.parsed_unit_price * self.proposed_quantity)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "product_name": self.product_name,
            "quantity": str(self.quantity),
            "reference_unit_price": money_str(self.reference_unit_price),
            "proposed_quantity": str(self.proposed_quantity),
            "proposed_unit_price": self.proposed_unit_price,
            "proposed_total": money_str(self.proposed_total),
        }


@dataclass(frozen=True)
class SupplierPrefill:
    name: str | None = None
    email: str | None = None
    supplier_id: str | None = None
    source: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "email": self.email, "supplier_id": self.supplier_id, "source": self.source}


@dataclass
class ResolvedQuote:
    token: str
    quote: QuoteSummary
    rows: List[ResponseRow] = field(default_factory=list)
    supplier: SupplierPrefill = field(default_factory=SupplierPrefill)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": True,
            "token": self.token,
            "quote": self.quote.to_dict(),
            "items": [row.to_dict() for row in self.rows],
            "supplier": self.supplier.to_dict(),
        }


class QuoteTokenResolver:
    def __init__(self, gateway: QuoteGateway) -> None:
        self.gateway = gateway

    def resolve(self, token: str) -> ResolvedQuote:
        normalized = str(token or "").strip()
        if not normalized:
            raise TokenResolutionError(code="token_invalid", message_key="token_invalid")
        try:
            validation = self.gateway.validate_quote_token(normalized)
        except GatewayError as exc:
            observe_gateway_call("validate_quote_token", "failed")
            logger.warning("token_validation_failed", extra={"details": str(exc)})
            raise TokenResolutionError(
                code="token_validation_failed",
                message_key="token_invalid",
                http_status=502,
                details=str(exc),
            ) from exc
        observe_gateway_call("validate_quote_token", "ok")

        if not validation.valid or validation.quote is None:
            code = validation.error or "token_invalid"
            expired = code == "token_expired"
            raise TokenResolutionError(
                code=code,
                message_key="token_expired" if expired else "token_invalid",
                http_status=410 if expired else 404,
            )

        rows = [ResponseRow.from_item(item) for item in validation.items]
        return ResolvedQuote(
            token=normalized,
            quote=validation.quote,
            rows=rows,
            supplier=self._prefill(validation.quote, validation.supplier),
        )

    def _prefill(self, quote: QuoteSummary, supplier: SupplierProfile | None) -> SupplierPrefill:
        if supplier is not None:
            return SupplierPrefill(name=supplier.name, email=supplier.email, supplier_id=supplier.id, source="resolver")

        if quote.supplier_id:
            try:
                looked_up = self.gateway.get_supplier(quote.supplier_id)
            except GatewayError as exc:
                logger.warning("supplier_lookup_failed", extra={"supplier_id": quote.supplier_id, "details": str(exc)})
                looked_up = None
            if looked_up is not None:
                return SupplierPrefill(
                    name=looked_up.name,
                    email=looked_up.email,
                    supplier_id=looked_up.id,
                    source="lookup",
                )

        if quote.supplier_name:
            return SupplierPrefill(name=quote.supplier_name, supplier_id=quote.supplier_id, source="quote_name")
        return SupplierPrefill()
