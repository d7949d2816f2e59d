from __future__ import annotations

from flask import Blueprint, abort, current_app, jsonify, send_from_directory, session

from cotiz.auth import start_session
from cotiz.catalog import ACCOUNT_TYPES, BRAZILIAN_BANKS, COMMON_SPECIALTIES, MAX_SPECIALTIES
from cotiz.contexts.letters.invitation_response import InvitationResponseHandler
from cotiz.contexts.registration.session import SessionEstablisher
from cotiz.contexts.registration.wizard import LAST_STEP, RegistrationData, RegistrationWizard
from cotiz.contexts.responses.quick_response import QuickResponseHandler
from cotiz.contexts.responses.resolver import QuoteTokenResolver
from cotiz.domain.gateway import GatewayError
from cotiz.errors import IntegrationError, NotFoundError, ValidationError
from cotiz.infrastructure.factory import (
    build_auth_client,
    build_blob_storage,
    build_cep_lookup,
    build_letter_gateway,
    build_quote_gateway,
)
from cotiz.observability import observe_gateway_call
from cotiz.routes.request_utils import flag, request_payload, uploaded_file
from cotiz.ui_strings import get_ui_text, success_message
from cotiz.validators import normalize_cep


public_bp = Blueprint("public", __name__)


def _max_upload_bytes() -> int:
    return int(current_app.config.get("MAX_UPLOAD_BYTES", 10 * 1024 * 1024))


def _wizard() -> RegistrationWizard:
    return RegistrationWizard(
        build_quote_gateway(),
        cep_lookup=build_cep_lookup(),
        merge_policy=str(current_app.config.get("CEP_MERGE_POLICY") or "keep_user_edits"),
    )


def _registration_fields(data: dict) -> dict:
    return {key: value for key, value in data.items() if key in RegistrationData.__dataclass_fields__}


# --- quote token / quick response ------------------------------------


@public_bp.route("/api/r/<token>", methods=["GET"])
def resolve_quote_token(token: str):
    resolved = QuoteTokenResolver(build_quote_gateway()).resolve(token)
    return jsonify(resolved.to_dict())


@public_bp.route("/api/r/<token>/proposta", methods=["POST"])
def submit_quick_response(token: str):
    handler = QuickResponseHandler(build_quote_gateway(), build_blob_storage(), max_upload_bytes=_max_upload_bytes())
    handler.load(token)
    data = request_payload()
    handler.form.update(data)
    handler.apply_items(data.get("items") or [])
    result = handler.submit(uploaded_file("attachment"))
    return (
        jsonify(
            {
                "success": True,
                "response_id": result.response_id,
                "total_amount": str(handler.total_amount),
                "redirect_to": handler.redirect_to,
                "message": success_message("quick_response_sent"),
            }
        ),
        201,
    )


# --- supplier self-registration --------------------------------------


@public_bp.route("/api/fornecedor/cadastro/<token>", methods=["GET"])
def registration_context(token: str):
    gateway = build_quote_gateway()
    resolved = QuoteTokenResolver(gateway).resolve(token)
    wizard = _wizard()
    if resolved.supplier.supplier_id:
        wizard.prefill_from_supplier(gateway.get_supplier(resolved.supplier.supplier_id))
    return jsonify(
        {
            "token": resolved.token,
            "quote": resolved.quote.to_dict(),
            "supplier": resolved.supplier.to_dict(),
            "steps": [{"step": n, "label": get_ui_text(f"registration.step.{n}")} for n in range(1, LAST_STEP + 1)],
            "wizard": wizard.snapshot(),
            "options": {
                "banks": list(BRAZILIAN_BANKS),
                "specialties": list(COMMON_SPECIALTIES),
                "account_types": list(ACCOUNT_TYPES),
                "max_specialties": MAX_SPECIALTIES,
            },
        }
    )


@public_bp.route("/api/fornecedor/cadastro/<token>/etapa/<int:step>", methods=["POST"])
def registration_step(token: str, step: int):
    data = request_payload()
    wizard = _wizard()
    wizard.update(_registration_fields(data))
    wizard.step = step
    if step == 2 and flag(data.get("lookup_cep")):
        wizard.lookup_cep(data.get("cep"))

    errors = wizard.validate_step(step)
    if errors:
        raise ValidationError(
            code="registration_step_invalid",
            message_key=next(iter(errors.values())),
            field_errors=errors,
            payload={"step": step, "wizard": wizard.snapshot()},
        )
    return jsonify(
        {
            "valid": True,
            "step": step,
            "next_step": min(step + 1, LAST_STEP),
            "wizard": wizard.snapshot(),
        }
    )


@public_bp.route("/api/fornecedor/cadastro/<token>", methods=["POST"])
def complete_registration(token: str):
    data = request_payload()
    wizard = _wizard()
    wizard.update(_registration_fields(data))
    outcome = wizard.complete(token, SessionEstablisher(build_auth_client()))

    if outcome.session.authenticated and outcome.session.identity is not None:
        start_session(outcome.session.identity)
    if outcome.redirect_to:
        session["redirect_after_login"] = outcome.redirect_to
    payload = outcome.to_dict()
    payload["email"] = outcome.result.email
    return jsonify(payload), 201


@public_bp.route("/api/cep/<cep>", methods=["GET"])
def cep_lookup(cep: str):
    normalized = normalize_cep(cep)
    if normalized is None:
        raise ValidationError(code="cep_invalid", message_key="cep_invalid", field_errors={"cep": "cep_invalid"})
    try:
        address = build_cep_lookup().lookup(normalized)
    except GatewayError as exc:
        observe_gateway_call("cep_lookup", "failed")
        raise IntegrationError(code="cep_lookup_failed", message_key="cep_lookup_failed", details=str(exc)) from exc
    observe_gateway_call("cep_lookup", "ok")
    if address is None:
        raise NotFoundError(code="cep_not_found", message_key="cep_not_found")
    return jsonify(address.to_dict())


# --- invitation letter response ---------------------------------------


def _invitation_handler() -> InvitationResponseHandler:
    return InvitationResponseHandler(build_letter_gateway(), build_blob_storage(), max_upload_bytes=_max_upload_bytes())


@public_bp.route("/api/invitation-response/<token>", methods=["GET"])
def invitation_view(token: str):
    return jsonify(_invitation_handler().open(token))


@public_bp.route("/api/invitation-response/<token>", methods=["POST"])
def invitation_respond(token: str):
    data = request_payload()
    view = _invitation_handler().respond(
        token,
        status=str(data.get("status") or ""),
        notes=data.get("notes"),
        attachment=uploaded_file("attachment"),
    )
    return jsonify({**view, "message": success_message("invitation_response_saved")})


@public_bp.route("/files/<path:relative_path>", methods=["GET"])
def stored_file(relative_path: str):
    upload_dir = current_app.config.get("UPLOAD_DIR")
    if not upload_dir:
        abort(404)
    return send_from_directory(upload_dir, relative_path)
