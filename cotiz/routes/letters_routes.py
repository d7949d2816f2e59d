from __future__ import annotations

import re

from flask import Blueprint, Response, current_app, jsonify, session

from cotiz.catalog import CATEGORY_DOCUMENTS, document_label
from cotiz.contexts.letters.composer import InvitationLetterComposer
from cotiz.contexts.letters.eligibility import (
    EligibilityAggregator,
    EligibilityEvaluator,
    export_eligibility_report,
    summarize,
)
from cotiz.contexts.letters.service import InvitationLetterService
from cotiz.domain.contracts import RequiredDocument
from cotiz.errors import ValidationError
from cotiz.infrastructure.factory import build_blob_storage, build_letter_gateway, build_quote_gateway
from cotiz.policies import LETTER_ROLES, require_roles
from cotiz.routes.request_utils import flag, request_payload, uploaded_files
from cotiz.tenant import require_client_id
from cotiz.ui_strings import success_message


letters_bp = Blueprint("letters", __name__, url_prefix="/api/cartas-convite")


def _aggregator() -> EligibilityAggregator:
    return EligibilityAggregator(
        EligibilityEvaluator(build_quote_gateway()),
        max_workers=int(current_app.config.get("ELIGIBILITY_MAX_WORKERS", 8)),
    )


def _service() -> InvitationLetterService:
    return InvitationLetterService(build_letter_gateway())


def _required_documents(data: dict) -> list[RequiredDocument]:
    raw = data.get("required_documents")
    if raw is None and data.get("category"):
        category = str(data["category"]).strip().lower()
        if category not in CATEGORY_DOCUMENTS:
            raise ValidationError(code="invalid_category", message_key="invalid_category")
        return [
            RequiredDocument(type=doc_type, label=document_label(doc_type))
            for doc_type in CATEGORY_DOCUMENTS[category]
        ]
    documents = []
    for item in raw or []:
        if isinstance(item, dict):
            documents.append(RequiredDocument.from_dict(item))
        else:
            documents.append(RequiredDocument(type=str(item), label=document_label(str(item))))
    return [doc for doc in documents if doc.type]


def _supplier_ids(data: dict) -> list[str]:
    return [str(item) for item in (data.get("supplier_ids") or []) if str(item or "").strip()]


@letters_bp.route("", methods=["GET"])
def list_letters():
    require_roles(*LETTER_ROLES)
    client_id = require_client_id()
    return jsonify({"items": _service().list_letters(client_id)})


@letters_bp.route("", methods=["POST"])
def create_letter():
    require_roles(*LETTER_ROLES)
    client_id = require_client_id()
    data = request_payload()
    composer, rejected = InvitationLetterComposer.from_payload(
        data,
        letters=build_letter_gateway(),
        storage=build_blob_storage(),
        client_id=client_id,
        created_by=session.get("user_email"),
        max_upload_bytes=int(current_app.config.get("MAX_UPLOAD_BYTES", 10 * 1024 * 1024)),
        files=uploaded_files("attachments"),
    )

    excluded: list[str] = []
    if flag(data.get("eligible_only")) and composer.supplier_ids and composer.required_documents:
        eligible_ids, _results = _aggregator().filter_eligible_only(
            composer.supplier_ids,
            client_id,
            composer.required_documents,
        )
        excluded = [sid for sid in composer.supplier_ids if sid not in eligible_ids]
        composer.supplier_ids = eligible_ids

    result = composer.submit(send_immediately=flag(data.get("send_immediately")))
    current_app.logger.info(
        "letter_created",
        extra={"letter_id": result.letter.get("id"), "client_id": client_id, "sent": result.sent},
    )
    return (
        jsonify(
            {
                "letter": result.letter,
                "sent": result.sent,
                "message": result.message,
                "warnings": result.warnings,
                "rejected_attachments": [{"filename": item.filename, "reason": item.reason} for item in rejected],
                "excluded_supplier_ids": excluded,
            }
        ),
        201,
    )


@letters_bp.route("/<letter_id>", methods=["GET"])
def letter_detail(letter_id: str):
    require_roles(*LETTER_ROLES)
    return jsonify(_service().get_letter(letter_id, require_client_id()))


@letters_bp.route("/<letter_id>/enviar", methods=["POST"])
def send_letter(letter_id: str):
    require_roles(*LETTER_ROLES)
    letter = _service().send(letter_id, require_client_id())
    return jsonify({"letter": letter, "message": success_message("letter_sent")})


@letters_bp.route("/<letter_id>/reenviar", methods=["POST"])
def resend_letter(letter_id: str):
    require_roles(*LETTER_ROLES)
    letter = _service().resend(letter_id, require_client_id())
    return jsonify({"letter": letter, "message": success_message("letter_resent")})


@letters_bp.route("/<letter_id>/cancelar", methods=["POST"])
def cancel_letter(letter_id: str):
    require_roles(*LETTER_ROLES)
    letter = _service().cancel(letter_id, require_client_id())
    return jsonify({"letter": letter, "message": success_message("letter_cancelled")})


@letters_bp.route("/elegibilidade", methods=["POST"])
def eligibility_summary():
    require_roles(*LETTER_ROLES)
    client_id = require_client_id()
    data = request_payload()
    summary, results = _aggregator().summary(_supplier_ids(data), client_id, _required_documents(data))
    return jsonify({"summary": summary.to_dict(), "results": [result.to_dict() for result in results]})


@letters_bp.route("/elegibilidade/filtrar", methods=["POST"])
def eligibility_filter():
    require_roles(*LETTER_ROLES)
    client_id = require_client_id()
    data = request_payload()
    eligible_ids, results = _aggregator().filter_eligible_only(
        _supplier_ids(data),
        client_id,
        _required_documents(data),
    )
    return jsonify(
        {
            "eligible_supplier_ids": eligible_ids,
            "summary": summarize(results).to_dict(),
            "results": [result.to_dict() for result in results],
        }
    )


@letters_bp.route("/<letter_id>/elegibilidade/relatorio", methods=["GET", "POST"])
def eligibility_report(letter_id: str):
    require_roles(*LETTER_ROLES)
    client_id = require_client_id()
    letter = _service().get_letter(letter_id, client_id)
    data = request_payload()
    supplier_ids = _supplier_ids(data) or list(letter.get("supplier_ids") or [])
    required = [RequiredDocument.from_dict(item) for item in (letter.get("required_documents") or [])]
    results = _aggregator().evaluate_all(supplier_ids, client_id, required)
    content = export_eligibility_report(letter, results)
    safe_number = re.sub(r"[^A-Za-z0-9_-]", "", str(letter.get("letter_number") or letter_id))
    return Response(
        content,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="relatorio-elegibilidade-{safe_number}.csv"'},
    )
