from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List

from cotiz.catalog import document_label
from cotiz.money import money_str, to_decimal
from cotiz.validators import parse_date


ELIGIBILITY_STATUSES = ("eligible", "pending", "ineligible", "not_checked")
DOCUMENT_STATUSES = ("missing", "pending", "validated", "rejected", "expired")


def _iso_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _safe_str(value: object | None) -> str | None:
    if value is None:
        return None
    raw = str(value).strip()
    return raw or None


def _safe_int(value: object | None, default: int = 0) -> int:
    if value is None or value == "":
        return int(default)
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return int(default)


def _str_list(values: object | None) -> List[str]:
    if not values:
        return []
    return [str(value) for value in values if str(value or "").strip()]


@dataclass(frozen=True)
class RequiredDocument:
    type: str
    label: str
    mandatory: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "label": self.label, "mandatory": bool(self.mandatory)}

    @staticmethod
    def from_dict(payload: dict[str, Any]) -> "RequiredDocument":
        data = dict(payload or {})
        doc_type = str(data.get("type") or "").strip()
        return RequiredDocument(
            type=doc_type,
            label=_safe_str(data.get("label")) or document_label(doc_type),
            mandatory=bool(data.get("mandatory", True)),
        )


@dataclass(frozen=True)
class DocumentDetail:
    type: str
    label: str
    mandatory: bool
    status: str
    file_name: str | None = None
    validated_at: str | None = None
    expiry_date: str | None = None
    rejection_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "label": self.label,
            "mandatory": self.mandatory,
            "status": self.status,
            "file_name": self.file_name,
            "validated_at": self.validated_at,
            "expiry_date": self.expiry_date,
            "rejection_reason": self.rejection_reason,
        }

    @staticmethod
    def from_dict(payload: dict[str, Any]) -> "DocumentDetail":
        data = dict(payload or {})
        status = str(data.get("status") or "missing").strip().lower()
        return DocumentDetail(
            type=str(data.get("type") or ""),
            label=str(data.get("label") or data.get("type") or ""),
            mandatory=bool(data.get("mandatory", True)),
            status=status if status in DOCUMENT_STATUSES else "missing",
            file_name=_safe_str(data.get("file_name") or data.get("fileName")),
            validated_at=_safe_str(data.get("validated_at") or data.get("validatedAt")),
            expiry_date=_safe_str(data.get("expiry_date") or data.get("expiryDate")),
            rejection_reason=_safe_str(data.get("rejection_reason") or data.get("rejectionReason")),
        )


@dataclass(frozen=True)
class EligibilityResult:
    supplier_id: str
    status: str
    reason: str | None = None
    score: int = 0
    documents: List[DocumentDetail] = field(default_factory=list)
    missing_docs: List[str] = field(default_factory=list)
    pending_docs: List[str] = field(default_factory=list)
    expired_docs: List[str] = field(default_factory=list)
    rejected_docs: List[str] = field(default_factory=list)
    supplier_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "status": self.status,
            "reason": self.reason,
            "score": self.score,
            "documents": [doc.to_dict() for doc in self.documents],
            "missing_docs": list(self.missing_docs),
            "pending_docs": list(self.pending_docs),
            "expired_docs": list(self.expired_docs),
            "rejected_docs": list(self.rejected_docs),
        }

    @staticmethod
    def from_dict(supplier_id: str, payload: dict[str, Any]) -> "EligibilityResult":
        data = dict(payload or {})
        status = str(data.get("status") or "").strip().lower()
        if status not in ELIGIBILITY_STATUSES:
            raise ValueError(f"status de elegibilidade desconhecido: {status!r}")
        score = max(0, min(100, _safe_int(data.get("score"), 0)))
        return EligibilityResult(
            supplier_id=str(supplier_id),
            status=status,
            reason=_safe_str(data.get("reason")),
            score=score,
            documents=[DocumentDetail.from_dict(item) for item in (data.get("documents") or [])],
            missing_docs=_str_list(data.get("missing_docs")),
            pending_docs=_str_list(data.get("pending_docs")),
            expired_docs=_str_list(data.get("expired_docs")),
            rejected_docs=_str_list(data.get("rejected_docs")),
            supplier_name=_safe_str(data.get("supplier_name")),
        )

    @staticmethod
    def not_checked(supplier_id: str, reason: str) -> "EligibilityResult":
        return EligibilityResult(supplier_id=str(supplier_id), status="not_checked", reason=reason, score=0)


@dataclass(frozen=True)
class EligibilitySummary:
    total: int = 0
    eligible: int = 0
    pending: int = 0
    ineligible: int = 0
    not_checked: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "eligible": self.eligible,
            "pending": self.pending,
            "ineligible": self.ineligible,
            "not_checked": self.not_checked,
        }


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class StoredBlob:
    file_name: str
    storage_uri: str
    public_url: str
    content_type: str
    size_bytes: int
    checksum: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_name": self.file_name,
            "storage_uri": self.storage_uri,
            "public_url": self.public_url,
            "content_type": self.content_type,
            "size_bytes": self.size_bytes,
            "checksum": self.checksum,
        }

    @staticmethod
    def from_dict(payload: dict[str, Any]) -> "StoredBlob":
        data = dict(payload or {})
        return StoredBlob(
            file_name=str(data.get("file_name") or ""),
            storage_uri=str(data.get("storage_uri") or ""),
            public_url=str(data.get("public_url") or ""),
            content_type=str(data.get("content_type") or ""),
            size_bytes=_safe_int(data.get("size_bytes"), 0),
            checksum=str(data.get("checksum") or ""),
        )


@dataclass(frozen=True)
class LetterDraft:
    client_id: str
    title: str
    description: str
    deadline: str
    category: str | None
    quote_id: str | None
    estimated_budget: Decimal | None
    required_documents: List[RequiredDocument]
    supplier_ids: List[str]
    direct_emails: List[str]
    attachments: List[StoredBlob]
    created_by: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "client_id": self.client_id,
            "title": self.title,
            "description": self.description,
            "deadline": self.deadline,
            "category": self.category,
            "quote_id": self.quote_id,
            "estimated_budget": money_str(self.estimated_budget),
            "required_documents": [doc.to_dict() for doc in self.required_documents],
            "supplier_ids": list(self.supplier_ids),
            "direct_emails": list(self.direct_emails),
            "attachments": [blob.to_dict() for blob in self.attachments],
            "created_by": self.created_by,
        }


@dataclass(frozen=True)
class QuoteItem:
    id: str
    product_name: str
    quantity: Decimal
    unit_price: Decimal | None = None

    @staticmethod
    def from_dict(payload: dict[str, Any]) -> "QuoteItem":
        data = dict(payload or {})
        return QuoteItem(
            id=str(data.get("id") or ""),
            product_name=str(data.get("product_name") or data.get("description") or ""),
            quantity=to_decimal(data.get("quantity"), Decimal("1")),
            unit_price=to_decimal(data.get("unit_price")),
        )


@dataclass(frozen=True)
class SupplierProfile:
    id: str | None
    name: str | None
    email: str | None = None
    cnpj: str | None = None
    phone: str | None = None
    city: str | None = None
    state: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "cnpj": self.cnpj,
            "phone": self.phone,
            "city": self.city,
            "state": self.state,
        }

    @staticmethod
    def from_dict(payload: dict[str, Any]) -> "SupplierProfile":
        data = dict(payload or {})
        return SupplierProfile(
            id=_safe_str(data.get("id")),
            name=_safe_str(data.get("name")),
            email=_safe_str(data.get("email")),
            cnpj=_safe_str(data.get("cnpj")),
            phone=_safe_str(data.get("phone") or data.get("whatsapp")),
            city=_safe_str(data.get("city")),
            state=_safe_str(data.get("state")),
        )


@dataclass(frozen=True)
class QuoteSummary:
    id: str
    title: str
    description: str | None = None
    client_name: str | None = None
    supplier_id: str | None = None
    supplier_name: str | None = None
    requires_visit: bool = False
    visit_deadline: date | None = None
    client_address: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "client_name": self.client_name,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "requires_visit": self.requires_visit,
            "visit_deadline": self.visit_deadline.isoformat() if self.visit_deadline else None,
            "client_address": self.client_address,
        }

    @staticmethod
    def from_dict(payload: dict[str, Any]) -> "QuoteSummary":
        data = dict(payload or {})
        return QuoteSummary(
            id=str(data.get("id") or ""),
            title=str(data.get("title") or ""),
            description=_safe_str(data.get("description")),
            client_name=_safe_str(data.get("client_name")),
            supplier_id=_safe_str(data.get("supplier_id")),
            supplier_name=_safe_str(data.get("supplier_name")),
            requires_visit=bool(data.get("requires_visit")),
            visit_deadline=parse_date(data.get("visit_deadline")),
            client_address=_safe_str(data.get("client_address")),
        )


@dataclass(frozen=True)
class TokenValidation:
    valid: bool
    quote: QuoteSummary | None = None
    items: List[QuoteItem] = field(default_factory=list)
    supplier: SupplierProfile | None = None
    error: str | None = None

    @staticmethod
    def from_dict(payload: dict[str, Any]) -> "TokenValidation":
        data = dict(payload or {})
        if not data.get("valid"):
            return TokenValidation(valid=False, error=_safe_str(data.get("error")) or "token_invalid")
        quote_data = dict(data.get("quote") or {})
        items = data.get("items")
        if items is None:
            items = quote_data.get("items") or []
        supplier_data = data.get("supplier")
        return TokenValidation(
            valid=True,
            quote=QuoteSummary.from_dict(quote_data),
            items=[QuoteItem.from_dict(item) for item in items],
            supplier=SupplierProfile.from_dict(supplier_data) if supplier_data else None,
        )


@dataclass(frozen=True)
class QuickResponseSubmission:
    token: str
    supplier_name: str
    supplier_email: str
    total_amount: Decimal
    delivery_days: int
    shipping_cost: Decimal
    warranty_months: int
    payment_terms: str
    items: List[Dict[str, Any]]
    notes: str | None = None
    attachment_url: str | None = None
    visit_date: date | None = None
    visit_notes: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "supplier_name": self.supplier_name,
            "supplier_email": self.supplier_email,
            "total_amount": money_str(self.total_amount),
            "delivery_days": self.delivery_days,
            "shipping_cost": money_str(self.shipping_cost),
            "warranty_months": self.warranty_months,
            "payment_terms": self.payment_terms,
            "notes": self.notes,
            "attachment_url": self.attachment_url,
            "items": [dict(item) for item in self.items],
            "visit_date": self.visit_date.isoformat() if self.visit_date else None,
            "visit_notes": self.visit_notes,
        }


@dataclass(frozen=True)
class SubmissionResult:
    success: bool
    response_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class SessionTokens:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class RegistrationResult:
    success: bool
    user_id: str | None = None
    supplier_id: str | None = None
    quote_id: str | None = None
    email: str | None = None
    session: SessionTokens | None = None
    temporary_password: str | None = None
    message: str | None = None

    @staticmethod
    def from_dict(payload: dict[str, Any]) -> "RegistrationResult":
        data = dict(payload or {})
        session_data = data.get("session") or {}
        session = None
        if session_data.get("access_token") and session_data.get("refresh_token"):
            session = SessionTokens(
                access_token=str(session_data["access_token"]),
                refresh_token=str(session_data["refresh_token"]),
            )
        return RegistrationResult(
            success=bool(data.get("success")),
            user_id=_safe_str(data.get("user_id")),
            supplier_id=_safe_str(data.get("supplier_id")),
            quote_id=_safe_str(data.get("quote_id")),
            email=_safe_str(data.get("email")),
            session=session,
            temporary_password=_safe_str(data.get("temporary_password")),
            message=_safe_str(data.get("message")),
        )


@dataclass(frozen=True)
class AuthIdentity:
    user_id: str
    email: str
    display_name: str | None
    role: str
    client_id: str | None = None
    supplier_id: str | None = None


@dataclass(frozen=True)
class CepAddress:
    cep: str
    street: str | None = None
    neighborhood: str | None = None
    city: str | None = None
    state: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "cep": self.cep,
            "street": self.street,
            "neighborhood": self.neighborhood,
            "city": self.city,
            "state": self.state,
        }


@dataclass(frozen=True)
class PlatformBalance:
    available: Decimal
    pending: Decimal
    in_escrow: Decimal
    currency: str = "BRL"
    updated_at: str = field(default_factory=_iso_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "available": money_str(self.available),
            "pending": money_str(self.pending),
            "in_escrow": money_str(self.in_escrow),
            "currency": self.currency,
            "updated_at": self.updated_at,
        }

    @staticmethod
    def from_dict(payload: dict[str, Any]) -> "PlatformBalance":
        data = dict(payload or {})
        return PlatformBalance(
            available=to_decimal(data.get("available"), Decimal("0")),
            pending=to_decimal(data.get("pending"), Decimal("0")),
            in_escrow=to_decimal(data.get("in_escrow"), Decimal("0")),
            currency=str(data.get("currency") or "BRL"),
            updated_at=str(data.get("updated_at") or _iso_now()),
        )


@dataclass(frozen=True)
class PaymentRecord:
    id: str
    amount: Decimal
    status: str
    scheduled_delivery_date: date | None = None
    released_at: datetime | None = None
    platform_commission: Decimal | None = None
    supplier_id: str | None = None
    quote_id: str | None = None


@dataclass(frozen=True)
class ReleaseResult:
    payment_id: str
    status: str
    released_at: str | None = None
    platform_commission: Decimal | None = None
    supplier_net_amount: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "payment_id": self.payment_id,
            "status": self.status,
            "released_at": self.released_at,
            "platform_commission": money_str(self.platform_commission),
            "supplier_net_amount": money_str(self.supplier_net_amount),
        }
