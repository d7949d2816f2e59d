from __future__ import annotations

from typing import Any, Callable

from flask import current_app

from cotiz.domain.gateway import AuthClient, BlobStorage, CepLookup, LetterGateway, PaymentsGateway, QuoteGateway
from cotiz.infrastructure.auth_client import LocalAuthClient
from cotiz.infrastructure.cep import ViaCepLookup
from cotiz.infrastructure.edge_gateway import (
    EdgeAuthClient,
    EdgeFunctionClient,
    EdgeLetterGateway,
    EdgePaymentsGateway,
    EdgeQuoteGateway,
)
from cotiz.infrastructure.local_gateway import LocalLetterGateway, LocalPaymentsGateway, LocalQuoteGateway
from cotiz.infrastructure.storage import LocalBlobStorage


PORTS_EXTENSION = "cotiz_ports"


def register_port(app, name: str, instance: Any) -> None:
    """Pin a port instance on the app; the builders below return it instead of building one."""
    app.extensions.setdefault(PORTS_EXTENSION, {})[name] = instance


def _port(name: str, builder: Callable[[], Any]) -> Any:
    pinned = current_app.extensions.get(PORTS_EXTENSION, {}).get(name)
    if pinned is not None:
        return pinned
    return builder()


def _remote() -> bool:
    return str(current_app.config.get("GATEWAY_MODE") or "local").strip().lower() == "remote"


def _db_path() -> str:
    return current_app.config["DB_PATH"]


def _edge_client() -> EdgeFunctionClient:
    return EdgeFunctionClient(
        current_app.config.get("EDGE_FUNCTIONS_URL") or "",
        current_app.config.get("EDGE_FUNCTIONS_KEY"),
        timeout=int(current_app.config.get("EDGE_TIMEOUT_SECONDS", 20)),
    )


def build_quote_gateway() -> QuoteGateway:
    def _build() -> QuoteGateway:
        if _remote():
            return EdgeQuoteGateway(_db_path(), _edge_client())
        return LocalQuoteGateway(_db_path())

    return _port("quote_gateway", _build)


def build_letter_gateway() -> LetterGateway:
    def _build() -> LetterGateway:
        options = {
            "token_ttl_days": int(current_app.config.get("QUOTE_TOKEN_TTL_DAYS", 30)),
            "public_url": current_app.config.get("APP_PUBLIC_URL") or "",
        }
        if _remote():
            return EdgeLetterGateway(_db_path(), _edge_client(), **options)
        return LocalLetterGateway(_db_path(), **options)

    return _port("letter_gateway", _build)


def build_payments_gateway() -> PaymentsGateway:
    def _build() -> PaymentsGateway:
        commission = int(current_app.config.get("PLATFORM_COMMISSION_PERCENT", 5))
        if _remote():
            return EdgePaymentsGateway(_db_path(), _edge_client(), commission_percent=commission)
        return LocalPaymentsGateway(_db_path(), commission_percent=commission)

    return _port("payments_gateway", _build)


def build_blob_storage() -> BlobStorage:
    return _port(
        "blob_storage",
        lambda: LocalBlobStorage(
            current_app.config["UPLOAD_DIR"],
            current_app.config.get("PUBLIC_FILES_BASE_URL", "/files"),
        ),
    )


def build_cep_lookup() -> CepLookup:
    return _port(
        "cep_lookup",
        lambda: ViaCepLookup(
            current_app.config.get("CEP_LOOKUP_URL", "https://viacep.com.br/ws"),
            timeout=int(current_app.config.get("CEP_TIMEOUT_SECONDS", 5)),
        ),
    )


def build_auth_client() -> AuthClient:
    def _build() -> AuthClient:
        if _remote():
            return EdgeAuthClient(_edge_client())
        return LocalAuthClient(_db_path())

    return _port("auth_client", _build)
