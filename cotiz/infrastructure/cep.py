from __future__ import annotations

import json
import urllib.error
import urllib.request

from cotiz.domain.contracts import CepAddress
from cotiz.domain.gateway import CepLookup, GatewayError
from cotiz.validators import normalize_cep


class ViaCepLookup(CepLookup):
    def __init__(self, base_url: str = "https://viacep.com.br/ws", *, timeout: int = 5) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = int(timeout)

    def lookup(self, cep: str) -> CepAddress | None:
        normalized = normalize_cep(cep)
        if normalized is None:
            return None
        request = urllib.request.Request(
            f"{self.base_url}/{normalized}/json/",
            headers={"Accept": "application/json"},
            method="GET",
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                body = response.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            if exc.code == 400:
                return None
            raise GatewayError(f"ViaCEP HTTP {exc.code}", status=exc.code) from exc
        except urllib.error.URLError as exc:
            raise GatewayError(f"Erro de conexao ViaCEP: {exc.reason}") from exc
        except TimeoutError as exc:
            raise GatewayError("Tempo esgotado na consulta de CEP") from exc

        try:
            payload = json.loads(body or "{}")
        except json.JSONDecodeError as exc:
            raise GatewayError("ViaCEP retornou JSON invalido.") from exc
        if not isinstance(payload, dict) or payload.get("erro"):
            return None
        return CepAddress(
            cep=normalized,
            street=payload.get("logradouro") or None,
            neighborhood=payload.get("bairro") or None,
            city=payload.get("localidade") or None,
            state=payload.get("uf") or None,
        )
