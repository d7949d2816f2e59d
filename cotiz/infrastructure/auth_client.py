from __future__ import annotations

from werkzeug.security import check_password_hash

from cotiz.db import DB_ERRORS, open_database
from cotiz.domain.contracts import AuthIdentity, SessionTokens
from cotiz.domain.gateway import AuthClient, GatewayError
from cotiz.policies import normalize_role
from cotiz.validators import is_expired


def _identity(row: dict) -> AuthIdentity:
    return AuthIdentity(
        user_id=str(row["id"]),
        email=str(row["email"]),
        display_name=row.get("display_name") or str(row["email"]).split("@")[0],
        role=normalize_role(row.get("role")),
        client_id=row.get("client_id"),
        supplier_id=row.get("supplier_id"),
    )


class LocalAuthClient(AuthClient):
    """Accounts and sessions stored in ``auth_users`` / ``auth_sessions``."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    def set_session(self, tokens: SessionTokens) -> AuthIdentity:
        try:
            with open_database(self.db_path) as db:
                row = db.execute(
                    """
                    SELECT u.id, u.email, u.display_name, u.role, u.client_id, u.supplier_id, s.expires_at
                    FROM auth_sessions s
                    JOIN auth_users u ON u.id = s.user_id
                    WHERE s.access_token = ? AND s.refresh_token = ?
                    """,
                    (tokens.access_token, tokens.refresh_token),
                ).fetchone()
        except DB_ERRORS as exc:
            raise GatewayError(f"set_session: {exc}") from exc
        if row is None:
            raise GatewayError("sessao invalida", code="invalid_session", status=401)
        row = dict(row)
        if is_expired(row.get("expires_at")):
            raise GatewayError("sessao expirada", code="session_expired", status=401)
        return _identity(row)

    def sign_in_with_password(self, email: str, password: str) -> AuthIdentity:
        normalized = str(email or "").strip().lower()
        try:
            with open_database(self.db_path) as db:
                row = db.execute(
                    """
                    SELECT id, email, password_hash, display_name, role, client_id, supplier_id
                    FROM auth_users
                    WHERE lower(email) = ?
                    """,
                    (normalized,),
                ).fetchone()
        except DB_ERRORS as exc:
            raise GatewayError(f"sign_in_with_password: {exc}") from exc
        if row is None or not check_password_hash(dict(row)["password_hash"], password or ""):
            raise GatewayError("credenciais invalidas", code="invalid_credentials", status=401)
        return _identity(dict(row))
