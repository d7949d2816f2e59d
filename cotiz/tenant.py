from flask import current_app, g, request, session

from cotiz.errors import UserActionError


def normalize_client_id(value: str | None) -> str | None:
    client_id = str(value or "").strip()
    return client_id or None


def current_client_id() -> str | None:
    client_id = normalize_client_id(session.get("client_id")) or normalize_client_id(getattr(g, "client_id", None))
    if client_id:
        return client_id
    # Header scoping is only honoured without a login guard (tests, local tooling).
    if current_app.config.get("TESTING") or not current_app.config.get("AUTH_ENABLED", True):
        return normalize_client_id(request.headers.get("X-Client-Id"))
    return None


def require_client_id() -> str:
    client_id = current_client_id()
    if not client_id:
        raise UserActionError(code="client_required", message_key="client_required", http_status=400)
    return client_id
