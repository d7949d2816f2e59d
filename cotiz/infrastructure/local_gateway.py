from __future__ import annotations

import contextlib
import json
import logging
import secrets
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Sequence

from werkzeug.security import generate_password_hash

from cotiz.catalog import document_label
from cotiz.db import DB_ERRORS, Database, new_id, open_database, utc_now_iso
from cotiz.domain.contracts import (
    LetterDraft,
    PaymentRecord,
    PlatformBalance,
    QuickResponseSubmission,
    QuoteItem,
    QuoteSummary,
    RegistrationResult,
    ReleaseResult,
    RequiredDocument,
    SessionTokens,
    SubmissionResult,
    SupplierProfile,
    TokenValidation,
)
from cotiz.domain.gateway import GatewayError, LetterGateway, PaymentsGateway, QuoteGateway
from cotiz.money import money_str, quantize_money, to_decimal
from cotiz.validators import is_expired, parse_date, parse_timestamp


logger = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
TEMP_PASSWORD_LENGTH = 8
SHORT_CODE_LENGTH = 8
SESSION_TTL_HOURS = 12


def generate_temporary_password(length: int = TEMP_PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_short_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(SHORT_CODE_LENGTH))


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _json_load(raw: object, default: Any) -> Any:
    if raw is None or raw == "":
        return default
    if isinstance(raw, (list, dict)):
        return raw
    try:
        return json.loads(str(raw))
    except json.JSONDecodeError:
        return default


def _json_dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=True, separators=(",", ":"), default=str)


def rows_to_dicts(rows: Iterable[Any]) -> list[dict]:
    return [dict(row) for row in rows]


class _LocalStore:
    """Shared plumbing: one short-lived connection per call, driver errors as GatewayError."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    @contextlib.contextmanager
    def _session(self, operation: str):
        try:
            with open_database(self.db_path) as db:
                yield db
        except DB_ERRORS as exc:
            logger.warning("local_gateway_db_error", extra={"operation": operation, "details": str(exc)})
            raise GatewayError(f"{operation}: {exc}", code="database_error") from exc

    @staticmethod
    def _audit(
        db: Database,
        *,
        action: str,
        entity_type: str,
        entity_id: str | None,
        actor: str | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        db.execute(
            """
            INSERT INTO audit_logs (id, actor, action, entity_type, entity_id, details, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (new_id(), actor, action, entity_type, entity_id, _json_dump(details or {}), utc_now_iso()),
        )

    @staticmethod
    def _find_quote_token(db: Database, token: str) -> dict | None:
        row = db.execute(
            """
            SELECT id, quote_id, supplier_id, full_token, short_code, expires_at, used_at
            FROM quote_tokens
            WHERE full_token = ? OR short_code = ?
            """,
            (token, token.upper()),
        ).fetchone()
        return dict(row) if row else None

    @staticmethod
    def _supplier_row(db: Database, supplier_id: str) -> dict | None:
        row = db.execute("SELECT * FROM suppliers WHERE id = ?", (supplier_id,)).fetchone()
        return dict(row) if row else None


def _supplier_profile(row: dict) -> SupplierProfile:
    return SupplierProfile(
        id=row.get("id"),
        name=row.get("name"),
        email=row.get("email"),
        cnpj=row.get("cnpj"),
        phone=row.get("whatsapp") or row.get("phone"),
        city=row.get("city"),
        state=row.get("state"),
    )


class LocalQuoteGateway(_LocalStore, QuoteGateway):
    def validate_quote_token(self, token: str) -> TokenValidation:
        with self._session("validate_quote_token") as db:
            token_row = self._find_quote_token(db, token)
            if token_row is None:
                return TokenValidation(valid=False, error="token_invalid")
            if is_expired(token_row["expires_at"]):
                return TokenValidation(valid=False, error="token_expired")
            if token_row.get("used_at"):
                return TokenValidation(valid=False, error="token_already_used")

            quote = db.execute(
                """
                SELECT q.id, q.title, q.description, q.requires_visit, q.visit_deadline,
                       q.client_address, c.name AS client_name
                FROM quotes q
                LEFT JOIN clients c ON c.id = q.client_id
                WHERE q.id = ?
                """,
                (token_row["quote_id"],),
            ).fetchone()
            if quote is None:
                return TokenValidation(valid=False, error="token_invalid")
            quote = dict(quote)
            items = rows_to_dicts(
                db.execute(
                    """
                    SELECT id, product_name, quantity, unit_price
                    FROM quote_items
                    WHERE quote_id = ?
                    ORDER BY position, product_name
                    """,
                    (quote["id"],),
                ).fetchall()
            )
            supplier = self._supplier_row(db, token_row["supplier_id"]) if token_row.get("supplier_id") else None

        return TokenValidation(
            valid=True,
            quote=QuoteSummary(
                id=str(quote["id"]),
                title=str(quote["title"] or ""),
                description=quote.get("description"),
                client_name=quote.get("client_name"),
                supplier_id=supplier["id"] if supplier else None,
                supplier_name=supplier["name"] if supplier else None,
                requires_visit=bool(quote.get("requires_visit")),
                visit_deadline=parse_date(quote.get("visit_deadline")),
                client_address=quote.get("client_address"),
            ),
            items=[QuoteItem.from_dict(item) for item in items],
            supplier=_supplier_profile(supplier) if supplier else None,
        )

    def get_supplier(self, supplier_id: str) -> SupplierProfile | None:
        with self._session("get_supplier") as db:
            row = self._supplier_row(db, supplier_id)
        return _supplier_profile(row) if row else None

    def _find_or_create_supplier(self, db: Database, token_row: dict, name: str, email: str) -> str:
        if token_row.get("supplier_id"):
            return str(token_row["supplier_id"])
        row = db.execute("SELECT id FROM suppliers WHERE lower(email) = ?", (email.lower(),)).fetchone()
        if row:
            return str(dict(row)["id"])
        supplier_id = new_id()
        now = utc_now_iso()
        db.execute(
            """
            INSERT INTO suppliers (id, name, email, status, created_at, updated_at)
            VALUES (?, ?, ?, 'pending', ?, ?)
            """,
            (supplier_id, name, email.lower(), now, now),
        )
        return supplier_id

    def submit_quick_response(self, submission: QuickResponseSubmission) -> SubmissionResult:
        with self._session("submit_quick_response") as db:
            token_row = self._find_quote_token(db, submission.token)
            if token_row is None:
                raise GatewayError("token nao encontrado", code="token_invalid", status=404)
            if is_expired(token_row["expires_at"]):
                raise GatewayError("token expirado", code="token_expired", status=403)
            now = utc_now_iso()
            claimed = db.execute(
                "UPDATE quote_tokens SET used_at = ? WHERE id = ? AND used_at IS NULL",
                (now, token_row["id"]),
            )
            if token_row.get("used_at") or claimed.rowcount == 0:
                raise GatewayError("proposta ja enviada para este token", code="token_already_used", status=409)

            supplier_id = self._find_or_create_supplier(db, token_row, submission.supplier_name, submission.supplier_email)
            response_id = new_id()
            db.execute(
                """
                INSERT INTO quote_responses (
                    id, quote_id, supplier_id, token_id, supplier_name, supplier_email, total_amount,
                    delivery_days, shipping_cost, warranty_months, payment_terms, notes,
                    attachment_url, items, status, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'submitted', ?)
                """,
                (
                    response_id,
                    token_row["quote_id"],
                    supplier_id,
                    token_row["id"],
                    submission.supplier_name,
                    submission.supplier_email,
                    money_str(submission.total_amount),
                    int(submission.delivery_days),
                    money_str(submission.shipping_cost),
                    int(submission.warranty_months),
                    submission.payment_terms,
                    submission.notes,
                    submission.attachment_url,
                    _json_dump(submission.items),
                    now,
                ),
            )
            if submission.visit_date is not None:
                db.execute(
                    """
                    INSERT INTO quote_visits (id, quote_id, supplier_id, scheduled_date, notes, status, created_at)
                    VALUES (?, ?, ?, ?, ?, 'scheduled', ?)
                    """,
                    (new_id(), token_row["quote_id"], supplier_id, submission.visit_date.isoformat(), submission.visit_notes, now),
                )
            self._audit(
                db,
                action="QUICK_RESPONSE_SUBMITTED",
                entity_type="quote",
                entity_id=str(token_row["quote_id"]),
                actor=submission.supplier_email,
                details={
                    "response_id": response_id,
                    "supplier_id": supplier_id,
                    "total_amount": money_str(submission.total_amount),
                    "visit_date": submission.visit_date.isoformat() if submission.visit_date else None,
                },
            )
        return SubmissionResult(success=True, response_id=response_id)

    def complete_supplier_registration(self, invitation_token: str, supplier_data: Dict[str, Any]) -> RegistrationResult:
        data = dict(supplier_data or {})
        address = dict(data.get("address") or {})
        with self._session("complete_supplier_registration") as db:
            token_row = self._find_quote_token(db, str(invitation_token or "").strip())
            if token_row is None or not token_row.get("supplier_id"):
                raise GatewayError("convite nao encontrado", code="token_invalid", status=404)
            if is_expired(token_row["expires_at"]):
                raise GatewayError("link de cadastro expirado", code="token_expired", status=410)
            supplier = self._supplier_row(db, str(token_row["supplier_id"]))
            if supplier is None:
                raise GatewayError("fornecedor nao encontrado", code="token_invalid", status=404)
            email = str(supplier.get("email") or "").strip().lower()
            if not email:
                raise GatewayError("fornecedor sem e-mail cadastrado", code="supplier_email_missing", status=422)

            now = utc_now_iso()
            temporary_password = generate_temporary_password()
            password_hash = generate_password_hash(temporary_password)
            existing = db.execute("SELECT id FROM auth_users WHERE lower(email) = ?", (email,)).fetchone()
            if existing:
                user_id = str(dict(existing)["id"])
                db.execute(
                    """
                    UPDATE auth_users
                    SET password_hash = ?, role = 'supplier', supplier_id = ?, must_change_password = 1, updated_at = ?
                    WHERE id = ?
                    """,
                    (password_hash, supplier["id"], now, user_id),
                )
            else:
                user_id = new_id()
                db.execute(
                    """
                    INSERT INTO auth_users (
                        id, email, password_hash, display_name, role, supplier_id,
                        must_change_password, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, 'supplier', ?, 1, ?, ?)
                    """,
                    (user_id, email, password_hash, supplier.get("name"), supplier["id"], now, now),
                )

            db.execute(
                """
                UPDATE suppliers
                SET document_type = ?, cnpj = ?, whatsapp = ?, address = ?, city = ?, state = ?,
                    specialties = ?, website = ?, description = ?, payout = ?, status = 'active',
                    user_id = ?, registration_completed_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    data.get("document_type"),
                    data.get("document_number"),
                    data.get("whatsapp"),
                    _json_dump(address),
                    address.get("city") or supplier.get("city"),
                    address.get("state") or supplier.get("state"),
                    _json_dump(list(data.get("specialties") or [])),
                    data.get("website"),
                    data.get("description"),
                    _json_dump(data.get("payment") or {}),
                    user_id,
                    now,
                    now,
                    supplier["id"],
                ),
            )

            tokens = SessionTokens(access_token=secrets.token_urlsafe(32), refresh_token=secrets.token_urlsafe(32))
            expires_at = _iso(datetime.now(timezone.utc) + timedelta(hours=SESSION_TTL_HOURS))
            db.execute(
                """
                INSERT INTO auth_sessions (id, user_id, access_token, refresh_token, expires_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (new_id(), user_id, tokens.access_token, tokens.refresh_token, expires_at, now),
            )
            self._audit(
                db,
                action="SUPPLIER_REGISTRATION_COMPLETED",
                entity_type="supplier",
                entity_id=str(supplier["id"]),
                actor=email,
                details={"user_id": user_id, "quote_id": token_row["quote_id"]},
            )

        return RegistrationResult(
            success=True,
            user_id=user_id,
            supplier_id=str(supplier["id"]),
            quote_id=str(token_row["quote_id"]),
            email=email,
            session=tokens,
            temporary_password=temporary_password,
            message="Cadastro concluido",
        )

    def get_supplier_eligibility_for_letter(
        self,
        supplier_id: str,
        client_id: str,
        required_documents: Sequence[RequiredDocument],
    ) -> Dict[str, Any]:
        with self._session("get_supplier_eligibility_for_letter") as db:
            supplier = self._supplier_row(db, supplier_id)
            if supplier is None:
                return {"status": "not_checked", "reason": "Fornecedor nao encontrado", "score": 0}
            rows = rows_to_dicts(
                db.execute(
                    """
                    SELECT document_type, status, file_name, expiry_date, rejection_reason, validated_at, created_at
                    FROM supplier_documents
                    WHERE supplier_id = ? AND (client_id IS NULL OR client_id = ?)
                    ORDER BY created_at DESC
                    """,
                    (supplier_id, client_id),
                ).fetchall()
            )
        return classify_supplier_documents(supplier, rows, required_documents)


def _document_status(row: dict | None, today: date) -> str:
    if row is None:
        return "missing"
    status = str(row.get("status") or "pending").lower()
    if status == "validated":
        expiry = parse_date(row.get("expiry_date"))
        if expiry is not None and expiry < today:
            return "expired"
    return status if status in ("pending", "validated", "rejected", "expired") else "pending"


def classify_supplier_documents(
    supplier: dict,
    rows: Sequence[dict],
    required_documents: Sequence[RequiredDocument],
    *,
    today: date | None = None,
) -> Dict[str, Any]:
    """Score a supplier's latest document per required type.

    ``rows`` must be ordered newest first.
    """
    current = today or date.today()
    latest: Dict[str, dict] = {}
    for row in rows:
        latest.setdefault(str(row.get("document_type")), row)

    buckets: Dict[str, List[str]] = {"missing": [], "pending": [], "expired": [], "rejected": []}
    documents = []
    mandatory_count = 0
    validated_count = 0
    for doc in required_documents:
        row = latest.get(doc.type)
        status = _document_status(row, current)
        label = doc.label or document_label(doc.type)
        documents.append(
            {
                "type": doc.type,
                "label": label,
                "mandatory": doc.mandatory,
                "status": status,
                "file_name": row.get("file_name") if row else None,
                "validated_at": row.get("validated_at") if row else None,
                "expiry_date": row.get("expiry_date") if row else None,
                "rejection_reason": row.get("rejection_reason") if row else None,
            }
        )
        if not doc.mandatory:
            continue
        mandatory_count += 1
        if status == "validated":
            validated_count += 1
        else:
            buckets[status].append(label)

    score = 100 if mandatory_count == 0 else round(100 * validated_count / mandatory_count)
    if buckets["missing"] or buckets["rejected"] or buckets["expired"]:
        status = "ineligible"
        parts = []
        if buckets["missing"]:
            parts.append("Ausentes: " + ", ".join(buckets["missing"]))
        if buckets["rejected"]:
            parts.append("Rejeitados: " + ", ".join(buckets["rejected"]))
        if buckets["expired"]:
            parts.append("Vencidos: " + ", ".join(buckets["expired"]))
        reason = "; ".join(parts)
    elif buckets["pending"]:
        status = "pending"
        reason = "Aguardando validacao: " + ", ".join(buckets["pending"])
    else:
        status = "eligible"
        reason = None
    return {
        "status": status,
        "reason": reason,
        "score": score,
        "supplier_name": supplier.get("name"),
        "documents": documents,
        "missing_docs": buckets["missing"],
        "pending_docs": buckets["pending"],
        "expired_docs": buckets["expired"],
        "rejected_docs": buckets["rejected"],
    }


class LocalLetterGateway(_LocalStore, LetterGateway):
    def __init__(self, db_path: str, *, token_ttl_days: int = 30, public_url: str = "") -> None:
        super().__init__(db_path)
        self.token_ttl_days = int(token_ttl_days)
        self.public_url = str(public_url or "").rstrip("/")

    @staticmethod
    def _next_letter_number(db: Database, client_id: str, year: int) -> str:
        prefix = f"CC-{year}-"
        rows = db.execute(
            "SELECT letter_number FROM invitation_letters WHERE client_id = ? AND letter_number LIKE ?",
            (client_id, f"{prefix}%"),
        ).fetchall()
        highest = 0
        for row in rows:
            suffix = str(dict(row)["letter_number"])[len(prefix):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return f"{prefix}{highest + 1:03d}"

    def create_letter(self, draft: LetterDraft) -> Dict[str, Any]:
        letter_id = new_id()
        now = utc_now_iso()
        with self._session("create_invitation_letter") as db:
            letter_number = self._next_letter_number(db, draft.client_id, datetime.now(timezone.utc).year)
            db.execute(
                """
                INSERT INTO invitation_letters (
                    id, client_id, letter_number, title, description, deadline, category, quote_id,
                    estimated_budget, required_documents, attachments, status, created_by, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'draft', ?, ?, ?)
                """,
                (
                    letter_id,
                    draft.client_id,
                    letter_number,
                    draft.title,
                    draft.description,
                    draft.deadline,
                    draft.category,
                    draft.quote_id,
                    money_str(draft.estimated_budget),
                    _json_dump([doc.to_dict() for doc in draft.required_documents]),
                    _json_dump([blob.to_dict() for blob in draft.attachments]),
                    draft.created_by,
                    now,
                    now,
                ),
            )
            position = 0
            for supplier_id in draft.supplier_ids:
                db.execute(
                    "INSERT INTO invitation_letter_recipients (id, letter_id, supplier_id, position) VALUES (?, ?, ?, ?)",
                    (new_id(), letter_id, supplier_id, position),
                )
                position += 1
            for email in draft.direct_emails:
                db.execute(
                    "INSERT INTO invitation_letter_recipients (id, letter_id, email, position) VALUES (?, ?, ?, ?)",
                    (new_id(), letter_id, email.lower(), position),
                )
                position += 1
            self._audit(
                db,
                action="INVITATION_LETTER_CREATED",
                entity_type="invitation_letter",
                entity_id=letter_id,
                actor=draft.created_by,
                details={"letter_number": letter_number, "recipients": len(draft.supplier_ids) + len(draft.direct_emails)},
            )
            return self._load_letter(db, letter_id)

    def delete_letter(self, letter_id: str) -> None:
        with self._session("delete_invitation_letter") as db:
            db.execute("DELETE FROM invitation_letter_recipients WHERE letter_id = ?", (letter_id,))
            db.execute("DELETE FROM invitation_letters WHERE id = ?", (letter_id,))

    def _response_link(self, response_token: str | None) -> str | None:
        if not response_token:
            return None
        return f"{self.public_url}/invitation-response/{response_token}"

    def _load_letter(self, db: Database, letter_id: str, client_id: str | None = None) -> Dict[str, Any] | None:
        if client_id is None:
            row = db.execute("SELECT * FROM invitation_letters WHERE id = ?", (letter_id,)).fetchone()
        else:
            row = db.execute(
                "SELECT * FROM invitation_letters WHERE id = ? AND client_id = ?",
                (letter_id, client_id),
            ).fetchone()
        if row is None:
            return None
        letter = dict(row)
        recipients = rows_to_dicts(
            db.execute(
                """
                SELECT r.id, r.supplier_id, r.email, r.response_token, r.quote_token, r.token_expires_at,
                       r.sent_at, r.viewed_at, r.response_status, r.response_notes,
                       r.response_attachment_url, r.responded_at, s.name AS supplier_name
                FROM invitation_letter_recipients r
                LEFT JOIN suppliers s ON s.id = r.supplier_id
                WHERE r.letter_id = ?
                ORDER BY r.position
                """,
                (letter_id,),
            ).fetchall()
        )
        for recipient in recipients:
            recipient["response_link"] = self._response_link(recipient.get("response_token"))
        letter["estimated_budget"] = money_str(to_decimal(letter.get("estimated_budget")))
        letter["required_documents"] = _json_load(letter.get("required_documents"), [])
        letter["attachments"] = _json_load(letter.get("attachments"), [])
        letter["mode"] = "linked" if letter.get("quote_id") else "standalone"
        letter["recipients"] = recipients
        letter["supplier_ids"] = [r["supplier_id"] for r in recipients if r.get("supplier_id")]
        letter["direct_emails"] = [r["email"] for r in recipients if r.get("email") and not r.get("supplier_id")]
        return letter

    def get_letter(self, letter_id: str, client_id: str | None = None) -> Dict[str, Any] | None:
        with self._session("get_invitation_letter") as db:
            return self._load_letter(db, letter_id, client_id)

    def list_letters(self, client_id: str) -> List[Dict[str, Any]]:
        with self._session("list_invitation_letters") as db:
            rows = rows_to_dicts(
                db.execute(
                    """
                    SELECT l.id, l.letter_number, l.title, l.deadline, l.category, l.quote_id, l.status,
                           l.sent_at, l.created_at,
                           COUNT(r.id) AS recipient_count,
                           SUM(CASE WHEN r.response_status <> 'pending' THEN 1 ELSE 0 END) AS response_count
                    FROM invitation_letters l
                    LEFT JOIN invitation_letter_recipients r ON r.letter_id = l.id
                    WHERE l.client_id = ?
                    GROUP BY l.id, l.letter_number, l.title, l.deadline, l.category, l.quote_id, l.status,
                             l.sent_at, l.created_at
                    ORDER BY l.created_at DESC, l.letter_number DESC
                    """,
                    (client_id,),
                ).fetchall()
            )
        for row in rows:
            row["recipient_count"] = int(row.get("recipient_count") or 0)
            row["response_count"] = int(row.get("response_count") or 0)
        return rows

    def send_letter(self, letter_id: str, *, resend: bool = False) -> Dict[str, Any]:
        now_dt = datetime.now(timezone.utc)
        now = _iso(now_dt)
        expires_at = _iso(now_dt + timedelta(days=self.token_ttl_days))
        with self._session("send_invitation_letter") as db:
            letter = self._load_letter(db, letter_id)
            if letter is None:
                raise GatewayError("carta nao encontrada", code="letter_not_found", status=404)
            if letter["status"] == "cancelled":
                raise GatewayError("carta cancelada", code="letter_cancelled", status=409)

            refreshed = 0
            for recipient in letter["recipients"]:
                has_live_token = recipient.get("response_token") and not is_expired(recipient.get("token_expires_at"))
                if resend and has_live_token:
                    continue
                quote_token = None
                if letter.get("quote_id") and recipient.get("supplier_id"):
                    quote_token = secrets.token_urlsafe(24)
                    db.execute(
                        """
                        INSERT INTO quote_tokens (id, quote_id, supplier_id, full_token, short_code, expires_at, created_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?)
                        """,
                        (new_id(), letter["quote_id"], recipient["supplier_id"], quote_token, generate_short_code(), expires_at, now),
                    )
                db.execute(
                    """
                    UPDATE invitation_letter_recipients
                    SET response_token = ?, quote_token = ?, token_expires_at = ?, sent_at = ?
                    WHERE id = ?
                    """,
                    (str(uuid.uuid4()), quote_token, expires_at, now, recipient["id"]),
                )
                refreshed += 1

            db.execute(
                "UPDATE invitation_letters SET status = 'sent', sent_at = COALESCE(sent_at, ?), updated_at = ? WHERE id = ?",
                (now, now, letter_id),
            )
            self._audit(
                db,
                action="INVITATION_LETTER_RESENT" if resend else "INVITATION_LETTER_SENT",
                entity_type="invitation_letter",
                entity_id=letter_id,
                details={"tokens_generated": refreshed},
            )
            return self._load_letter(db, letter_id)

    def cancel_letter(self, letter_id: str) -> Dict[str, Any]:
        now = utc_now_iso()
        with self._session("cancel_invitation_letter") as db:
            db.execute(
                "UPDATE invitation_letters SET status = 'cancelled', cancelled_at = ?, updated_at = ? WHERE id = ?",
                (now, now, letter_id),
            )
            self._audit(db, action="INVITATION_LETTER_CANCELLED", entity_type="invitation_letter", entity_id=letter_id)
            letter = self._load_letter(db, letter_id)
        if letter is None:
            raise GatewayError("carta nao encontrada", code="letter_not_found", status=404)
        return letter

    def find_recipient_by_token(self, response_token: str) -> Dict[str, Any] | None:
        with self._session("find_letter_recipient") as db:
            row = db.execute(
                """
                SELECT r.id, r.letter_id, r.token_expires_at, r.viewed_at, r.response_status,
                       r.response_notes, r.response_attachment_url, r.responded_at,
                       l.status AS letter_status, l.letter_number, l.title, l.description, l.deadline,
                       l.category, l.required_documents, l.attachments, c.name AS client_name
                FROM invitation_letter_recipients r
                JOIN invitation_letters l ON l.id = r.letter_id
                LEFT JOIN clients c ON c.id = l.client_id
                WHERE r.response_token = ?
                """,
                (response_token,),
            ).fetchone()
        if row is None:
            return None
        recipient = dict(row)
        recipient["required_documents"] = _json_load(recipient.get("required_documents"), [])
        recipient["attachments"] = _json_load(recipient.get("attachments"), [])
        return recipient

    def mark_recipient_viewed(self, recipient_id: str) -> None:
        with self._session("mark_recipient_viewed") as db:
            db.execute(
                "UPDATE invitation_letter_recipients SET viewed_at = ? WHERE id = ? AND viewed_at IS NULL",
                (utc_now_iso(), recipient_id),
            )

    def record_recipient_response(
        self,
        recipient_id: str,
        *,
        status: str,
        notes: str | None,
        attachment_url: str | None,
    ) -> Dict[str, Any]:
        now = utc_now_iso()
        with self._session("record_recipient_response") as db:
            cursor = db.execute(
                """
                UPDATE invitation_letter_recipients
                SET response_status = ?, response_notes = ?, response_attachment_url = ?, responded_at = ?
                WHERE id = ? AND response_status = 'pending'
                """,
                (status, notes, attachment_url, now, recipient_id),
            )
            if cursor.rowcount == 0:
                raise GatewayError("convite ja respondido", code="invitation_already_answered", status=409)
            self._audit(
                db,
                action="INVITATION_RESPONDED",
                entity_type="invitation_letter_recipient",
                entity_id=recipient_id,
                details={"status": status},
            )
        return {
            "response_status": status,
            "response_notes": notes,
            "response_attachment_url": attachment_url,
            "responded_at": now,
        }


def _payment_record(row: dict) -> PaymentRecord:
    return PaymentRecord(
        id=str(row["id"]),
        amount=to_decimal(row.get("amount"), Decimal("0")),
        status=str(row.get("status") or ""),
        scheduled_delivery_date=parse_date(row.get("scheduled_delivery_date")),
        released_at=parse_timestamp(row.get("released_at")),
        platform_commission=to_decimal(row.get("platform_commission")),
        supplier_id=row.get("supplier_id"),
        quote_id=row.get("quote_id"),
    )


class LocalPaymentsGateway(_LocalStore, PaymentsGateway):
    def __init__(self, db_path: str, *, commission_percent: int | Decimal = 5) -> None:
        super().__init__(db_path)
        self.commission_percent = Decimal(str(commission_percent))

    def get_platform_balance(self) -> PlatformBalance:
        with self._session("get_platform_balance") as db:
            rows = rows_to_dicts(db.execute("SELECT amount, status, platform_commission FROM payments").fetchall())
        available = Decimal("0")
        pending = Decimal("0")
        in_escrow = Decimal("0")
        for row in rows:
            amount = to_decimal(row.get("amount"), Decimal("0"))
            if row["status"] == "completed":
                available += to_decimal(row.get("platform_commission"), Decimal("0"))
            elif row["status"] == "pending":
                pending += amount
            elif row["status"] == "in_escrow":
                in_escrow += amount
        return PlatformBalance(
            available=quantize_money(available),
            pending=quantize_money(pending),
            in_escrow=quantize_money(in_escrow),
        )

    def release_escrow_payment(self, payment_id: str) -> ReleaseResult:
        with self._session("release_escrow_payment") as db:
            row = db.execute("SELECT id, amount, status FROM payments WHERE id = ?", (payment_id,)).fetchone()
            if row is None:
                raise GatewayError("pagamento nao encontrado", code="payment_not_found", status=404)
            row = dict(row)
            if row["status"] != "in_escrow":
                raise GatewayError(f"pagamento em status {row['status']}", code="payment_not_in_escrow", status=409)

            amount = to_decimal(row["amount"], Decimal("0"))
            commission = quantize_money(amount * self.commission_percent / Decimal("100"))
            net = quantize_money(amount - commission)
            released_at = utc_now_iso()
            db.execute(
                """
                UPDATE payments
                SET status = 'completed', released_at = ?, platform_commission = ?, supplier_net_amount = ?
                WHERE id = ?
                """,
                (released_at, money_str(commission), money_str(net), payment_id),
            )
            self._audit(
                db,
                action="ESCROW_RELEASED",
                entity_type="payment",
                entity_id=payment_id,
                details={"amount": money_str(amount), "platform_commission": money_str(commission)},
            )
        return ReleaseResult(
            payment_id=payment_id,
            status="completed",
            released_at=released_at,
            platform_commission=commission,
            supplier_net_amount=net,
        )

    def list_payments(self, statuses: Sequence[str], *, released_since: date | None = None) -> List[PaymentRecord]:
        wanted = [str(status) for status in statuses if str(status or "").strip()]
        if not wanted:
            return []
        placeholders = ", ".join("?" for _ in wanted)
        with self._session("list_payments") as db:
            rows = rows_to_dicts(
                db.execute(
                    f"""
                    SELECT id, quote_id, supplier_id, amount, status, scheduled_delivery_date,
                           released_at, platform_commission
                    FROM payments
                    WHERE status IN ({placeholders})
                    ORDER BY created_at
                    """,
                    wanted,
                ).fetchall()
            )
        records = [_payment_record(row) for row in rows]
        if released_since is not None:
            records = [r for r in records if r.released_at is not None and r.released_at.date() >= released_since]
        return records
