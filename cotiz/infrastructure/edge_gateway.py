from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Dict, Sequence

from cotiz.domain.contracts import (
    AuthIdentity,
    PlatformBalance,
    QuickResponseSubmission,
    RegistrationResult,
    ReleaseResult,
    RequiredDocument,
    SessionTokens,
    SubmissionResult,
    TokenValidation,
)
from cotiz.domain.gateway import AuthClient, GatewayError
from cotiz.infrastructure.local_gateway import LocalLetterGateway, LocalPaymentsGateway, LocalQuoteGateway
from cotiz.money import to_decimal
from cotiz.policies import normalize_role


logger = logging.getLogger(__name__)


class EdgeFunctionClient:
    """JSON-over-HTTP caller for hosted edge functions and RPC procedures."""

    def __init__(self, base_url: str, api_key: str | None = None, *, timeout: int = 20) -> None:
        if not base_url:
            raise GatewayError("EDGE_FUNCTIONS_URL nao configurada.", code="edge_not_configured")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = int(timeout)

    def _headers(self, bearer: str | None = None) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
            headers["apikey"] = self.api_key
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return headers

    def invoke(self, function_name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request_json(f"{self.base_url}/functions/v1/{function_name}", payload, function_name)

    def rpc(self, procedure: str, params: Dict[str, Any]) -> Dict[str, Any]:
        return self._request_json(f"{self.base_url}/rest/v1/rpc/{procedure}", params, procedure)

    def auth(
        self,
        path: str,
        payload: Dict[str, Any] | None = None,
        *,
        method: str = "POST",
        bearer: str | None = None,
    ) -> Dict[str, Any]:
        operation = f"auth/{path.split('?', 1)[0]}"
        return self._request_json(f"{self.base_url}/auth/v1/{path}", payload, operation, method=method, bearer=bearer)

    def _request_json(
        self,
        url: str,
        payload: Dict[str, Any] | None,
        operation: str,
        *,
        method: str = "POST",
        bearer: str | None = None,
    ) -> Dict[str, Any]:
        data = None
        if payload is not None:
            data = json.dumps(payload, separators=(",", ":"), ensure_ascii=True, default=str).encode("utf-8")
        request = urllib.request.Request(url, data=data, headers=self._headers(bearer), method=method)
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                body = response.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            error_body = exc.read().decode("utf-8") if exc.fp else ""
            logger.warning("edge_function_http_error", extra={"operation": operation, "http_status": exc.code})
            raise GatewayError(
                f"{operation} HTTP {exc.code}: {error_body[:200]}",
                code=_error_code(error_body),
                status=exc.code,
                definitive=400 <= exc.code < 500,
            ) from exc
        except urllib.error.URLError as exc:
            logger.warning("edge_function_unreachable", extra={"operation": operation, "details": str(exc.reason)})
            raise GatewayError(f"Erro de conexao em {operation}: {exc.reason}") from exc
        except TimeoutError as exc:
            raise GatewayError(f"Tempo esgotado em {operation}") from exc

        if not body:
            return {}
        try:
            parsed = json.loads(body)
        except json.JSONDecodeError as exc:
            raise GatewayError(f"{operation} retornou JSON invalido.") from exc
        if isinstance(parsed, list):
            parsed = parsed[0] if parsed and isinstance(parsed[0], dict) else {}
        if not isinstance(parsed, dict):
            raise GatewayError(f"{operation} retornou resposta inesperada.")
        return parsed


def _error_code(body: str) -> str | None:
    try:
        parsed = json.loads(body) if body else {}
    except json.JSONDecodeError:
        return None
    if isinstance(parsed, dict):
        value = parsed.get("code") or parsed.get("error")
        return str(value) if isinstance(value, str) else None
    return None


class EdgeQuoteGateway(LocalQuoteGateway):
    def __init__(self, db_path: str, client: EdgeFunctionClient) -> None:
        super().__init__(db_path)
        self.client = client

    def validate_quote_token(self, token: str) -> TokenValidation:
        return TokenValidation.from_dict(self.client.invoke("validate-quote-token", {"token": token}))

    def submit_quick_response(self, submission: QuickResponseSubmission) -> SubmissionResult:
        payload = self.client.invoke("submit-quick-response", submission.to_payload())
        return SubmissionResult(
            success=bool(payload.get("success")),
            response_id=payload.get("response_id") or payload.get("responseId"),
            error=payload.get("error"),
        )

    def complete_supplier_registration(self, invitation_token: str, supplier_data: Dict[str, Any]) -> RegistrationResult:
        payload = self.client.invoke(
            "complete-supplier-registration",
            {"invitation_token": invitation_token, "supplier_data": supplier_data},
        )
        result = RegistrationResult.from_dict(payload)
        if not result.success and payload.get("error"):
            raise GatewayError(str(payload["error"]), code=str(payload.get("code") or "registration_failed"))
        return result

    def get_supplier_eligibility_for_letter(
        self,
        supplier_id: str,
        client_id: str,
        required_documents: Sequence[RequiredDocument],
    ) -> Dict[str, Any]:
        return self.client.rpc(
            "get_supplier_eligibility_for_letter",
            {
                "p_supplier_id": supplier_id,
                "p_client_id": client_id,
                "p_required_documents": [doc.to_dict() for doc in required_documents],
            },
        )


class EdgeLetterGateway(LocalLetterGateway):
    """Letters persist locally; dispatch runs on the hosted function."""

    def __init__(self, db_path: str, client: EdgeFunctionClient, **kwargs) -> None:
        super().__init__(db_path, **kwargs)
        self.client = client

    def send_letter(self, letter_id: str, *, resend: bool = False) -> Dict[str, Any]:
        payload = self.client.invoke("send-invitation-letter", {"letter_id": letter_id, "resend": bool(resend)})
        if payload.get("success") is False:
            raise GatewayError(str(payload.get("error") or "send-invitation-letter falhou"))
        letter = self.get_letter(letter_id)
        if letter is None:
            raise GatewayError("carta nao encontrada", code="letter_not_found", status=404)
        return letter


class EdgePaymentsGateway(LocalPaymentsGateway):
    def __init__(self, db_path: str, client: EdgeFunctionClient, **kwargs) -> None:
        super().__init__(db_path, **kwargs)
        self.client = client

    def get_platform_balance(self) -> PlatformBalance:
        payload = self.client.invoke("get-platform-balance", {})
        return PlatformBalance.from_dict(payload.get("balance") or payload)

    def release_escrow_payment(self, payment_id: str) -> ReleaseResult:
        payload = self.client.invoke("release-escrow-payment", {"payment_id": payment_id})
        if payload.get("success") is False:
            raise GatewayError(str(payload.get("error") or "release-escrow-payment falhou"))
        return ReleaseResult(
            payment_id=payment_id,
            status=str(payload.get("status") or "completed"),
            released_at=payload.get("released_at"),
            platform_commission=to_decimal(payload.get("platform_commission")),
            supplier_net_amount=to_decimal(payload.get("supplier_net_amount")),
        )


def _hosted_identity(user: Dict[str, Any] | None) -> AuthIdentity:
    user = user if isinstance(user, dict) else {}
    email = str(user.get("email") or "").strip().lower()
    if not user.get("id") or not email:
        raise GatewayError("usuario hospedado invalido", code="invalid_session", status=401)
    user_meta = user.get("user_metadata") or {}
    app_meta = user.get("app_metadata") or {}
    return AuthIdentity(
        user_id=str(user["id"]),
        email=email,
        display_name=user_meta.get("display_name") or user_meta.get("name") or email.split("@")[0],
        role=normalize_role(app_meta.get("role") or user_meta.get("role"), default="supplier"),
        client_id=user_meta.get("client_id"),
        supplier_id=user_meta.get("supplier_id"),
    )


class EdgeAuthClient(AuthClient):
    """Sessions issued by the hosted auth service."""

    def __init__(self, client: EdgeFunctionClient) -> None:
        self.client = client

    def set_session(self, tokens: SessionTokens) -> AuthIdentity:
        user = self.client.auth("user", method="GET", bearer=tokens.access_token)
        return _hosted_identity(user)

    def sign_in_with_password(self, email: str, password: str) -> AuthIdentity:
        payload = self.client.auth(
            "token?grant_type=password",
            {"email": str(email or "").strip().lower(), "password": password or ""},
        )
        if not payload.get("access_token"):
            raise GatewayError("credenciais invalidas", code="invalid_credentials", status=401)
        return _hosted_identity(payload.get("user"))
