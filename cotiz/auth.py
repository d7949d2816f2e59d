from __future__ import annotations

from flask import Blueprint, jsonify, request, session

from cotiz.domain.contracts import AuthIdentity
from cotiz.domain.gateway import GatewayError
from cotiz.errors import UserActionError, ValidationError
from cotiz.infrastructure.factory import build_auth_client
from cotiz.observability import current_request_id
from cotiz.ui_strings import error_message


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

PUBLIC_PATHS = {"/health", "/api/auth/login", "/api/catalogo"}
PUBLIC_PREFIXES = (
    "/api/r/",
    "/api/fornecedor/cadastro/",
    "/api/cep/",
    "/api/invitation-response/",
    "/files/",
)


def is_public_path(path: str) -> bool:
    if path in PUBLIC_PATHS:
        return True
    return any(path.startswith(prefix) for prefix in PUBLIC_PREFIXES)


def register_auth(app) -> None:
    app.register_blueprint(auth_bp)

    @app.before_request
    def _require_login():
        if not app.config.get("AUTH_ENABLED", True):
            return None
        if app.config.get("TESTING"):
            return None

        path = request.path or "/"
        if is_public_path(path):
            return None
        if session.get("user_email"):
            return None
        return (
            jsonify(
                {
                    "error": "auth_required",
                    "message": error_message("auth_required"),
                    "request_id": current_request_id(default="n/a"),
                }
            ),
            401,
        )


def start_session(identity: AuthIdentity) -> None:
    redirect_after_login = session.get("redirect_after_login")
    session.clear()
    session["user_id"] = identity.user_id
    session["user_email"] = identity.email
    session["display_name"] = identity.display_name
    session["user_role"] = identity.role
    if identity.client_id:
        session["client_id"] = identity.client_id
    if identity.supplier_id:
        session["supplier_id"] = identity.supplier_id
    if redirect_after_login:
        session["redirect_after_login"] = redirect_after_login


def session_payload() -> dict:
    return {
        "authenticated": bool(session.get("user_email")),
        "email": session.get("user_email"),
        "display_name": session.get("display_name"),
        "role": session.get("user_role"),
        "client_id": session.get("client_id"),
        "supplier_id": session.get("supplier_id"),
        "redirect_after_login": session.get("redirect_after_login"),
    }


@auth_bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or {}
    email = str(data.get("email") or "").strip().lower()
    password = str(data.get("password") or "")
    if not email or not password:
        raise ValidationError(
            code="credentials_required",
            message_key="validation_error",
            field_errors={key: "field_required" for key, value in (("email", email), ("password", password)) if not value},
        )
    try:
        identity = build_auth_client().sign_in_with_password(email, password)
    except GatewayError as exc:
        raise UserActionError(
            code="invalid_credentials",
            message_key="invalid_credentials",
            http_status=401,
            details=str(exc),
        ) from exc
    start_session(identity)
    return jsonify(session_payload())


@auth_bp.route("/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify({"authenticated": False})


@auth_bp.route("/me", methods=["GET"])
def me():
    return jsonify(session_payload())
