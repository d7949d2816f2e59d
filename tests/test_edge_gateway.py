import io
import json
import unittest
import urllib.error
from decimal import Decimal
from unittest.mock import patch

from cotiz import create_app
from cotiz.config import Config
from cotiz.domain.contracts import SessionTokens
from cotiz.domain.gateway import GatewayError
from cotiz.infrastructure.cep import ViaCepLookup
from cotiz.infrastructure.edge_gateway import (
    EdgeAuthClient,
    EdgeFunctionClient,
    EdgePaymentsGateway,
    EdgeQuoteGateway,
)
from cotiz.infrastructure.factory import build_auth_client
from tests.helpers.seed import REGISTRATION_DATA
from tests.helpers.temp_db import TempDbSandbox


class _FakeResponse:
    def __init__(self, payload) -> None:
        self._body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        return None


def _http_error(code: int, body: dict) -> urllib.error.HTTPError:
    return urllib.error.HTTPError(
        "https://edge.test/functions/v1/x",
        code,
        "error",
        {},
        io.BytesIO(json.dumps(body).encode("utf-8")),
    )


class EdgeFunctionClientTest(unittest.TestCase):
    def setUp(self) -> None:
        self.client = EdgeFunctionClient("https://edge.test/", "key-123", timeout=3)

    def test_requires_base_url(self) -> None:
        with self.assertRaises(GatewayError):
            EdgeFunctionClient("")

    def test_invoke_posts_json_with_auth_headers(self) -> None:
        with patch("urllib.request.urlopen", return_value=_FakeResponse({"ok": True})) as urlopen:
            result = self.client.invoke("validate-quote-token", {"token": "abc"})

        self.assertEqual(result, {"ok": True})
        request = urlopen.call_args.args[0]
        self.assertEqual(request.full_url, "https://edge.test/functions/v1/validate-quote-token")
        self.assertEqual(request.get_header("Authorization"), "Bearer key-123")
        self.assertEqual(json.loads(request.data), {"token": "abc"})
        self.assertEqual(urlopen.call_args.kwargs["timeout"], 3)

    def test_rpc_unwraps_single_row_lists(self) -> None:
        with patch("urllib.request.urlopen", return_value=_FakeResponse([{"status": "eligible"}])) as urlopen:
            result = self.client.rpc("get_supplier_eligibility_for_letter", {})
        self.assertEqual(result, {"status": "eligible"})
        self.assertTrue(urlopen.call_args.args[0].full_url.endswith("/rest/v1/rpc/get_supplier_eligibility_for_letter"))

    def test_http_error_keeps_status_and_code(self) -> None:
        with patch("urllib.request.urlopen", side_effect=_http_error(410, {"code": "token_expired"})):
            with self.assertRaises(GatewayError) as ctx:
                self.client.invoke("complete-supplier-registration", {})
        self.assertEqual(ctx.exception.status, 410)
        self.assertEqual(ctx.exception.code, "token_expired")
        self.assertTrue(ctx.exception.definitive)
        self.assertIn("HTTP 410", str(ctx.exception))

    def test_connection_error_and_bad_json(self) -> None:
        with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("refused")):
            with self.assertRaises(GatewayError) as ctx:
                self.client.invoke("x", {})
        self.assertIsNone(ctx.exception.status)

        with patch("urllib.request.urlopen", return_value=_FakeResponse(b"<html>")):
            with self.assertRaises(GatewayError):
                self.client.invoke("x", {})


class EdgeGatewaysTest(unittest.TestCase):
    def setUp(self) -> None:
        self.sandbox = TempDbSandbox(prefix="cotiz_edge_tests")
        self.client = EdgeFunctionClient("https://edge.test")

    def tearDown(self) -> None:
        self.sandbox.cleanup()

    def test_validate_quote_token_maps_payload(self) -> None:
        gateway = EdgeQuoteGateway(self.sandbox.db_path, self.client)
        payload = {
            "valid": True,
            "quote": {
                "id": "quote-1",
                "title": "Pintura",
                "requires_visit": True,
                "visit_deadline": "2026-05-10",
                "items": [{"id": "item-1", "product_name": "Tinta", "quantity": 2}],
            },
            "supplier": {"id": "sup-1", "name": "Atlas", "email": "atlas@fornecedor.test"},
        }
        with patch("urllib.request.urlopen", return_value=_FakeResponse(payload)):
            result = gateway.validate_quote_token("tok")

        self.assertTrue(result.valid)
        self.assertEqual(result.quote.visit_deadline.isoformat(), "2026-05-10")
        self.assertEqual(result.items[0].quantity, Decimal("2"))
        self.assertEqual(result.supplier.email, "atlas@fornecedor.test")

    def test_invalid_token_payload(self) -> None:
        gateway = EdgeQuoteGateway(self.sandbox.db_path, self.client)
        with patch("urllib.request.urlopen", return_value=_FakeResponse({"valid": False, "error": "token_expired"})):
            result = gateway.validate_quote_token("tok")
        self.assertFalse(result.valid)
        self.assertEqual(result.error, "token_expired")

    def test_registration_failure_payload_raises(self) -> None:
        gateway = EdgeQuoteGateway(self.sandbox.db_path, self.client)
        body = {"success": False, "error": "fornecedor bloqueado", "code": "supplier_blocked"}
        with patch("urllib.request.urlopen", return_value=_FakeResponse(body)):
            with self.assertRaises(GatewayError) as ctx:
                gateway.complete_supplier_registration("tok", {})
        self.assertEqual(ctx.exception.code, "supplier_blocked")

    def test_release_escrow_payment(self) -> None:
        gateway = EdgePaymentsGateway(self.sandbox.db_path, self.client)
        body = {"success": True, "status": "completed", "platform_commission": "50.00", "supplier_net_amount": "950.00"}
        with patch("urllib.request.urlopen", return_value=_FakeResponse(body)):
            result = gateway.release_escrow_payment("pay-1")
        self.assertEqual(result.platform_commission, Decimal("50.00"))
        self.assertEqual(result.supplier_net_amount, Decimal("950.00"))

        with patch("urllib.request.urlopen", return_value=_FakeResponse({"success": False, "error": "saldo"})):
            with self.assertRaises(GatewayError):
                gateway.release_escrow_payment("pay-1")

    def test_platform_balance(self) -> None:
        gateway = EdgePaymentsGateway(self.sandbox.db_path, self.client)
        body = {"balance": {"available": "10.5", "pending": 0, "in_escrow": "200"}}
        with patch("urllib.request.urlopen", return_value=_FakeResponse(body)):
            balance = gateway.get_platform_balance()
        self.assertEqual(balance.available, Decimal("10.5"))
        self.assertEqual(balance.in_escrow, Decimal("200"))


class ViaCepLookupTest(unittest.TestCase):
    def setUp(self) -> None:
        self.lookup = ViaCepLookup("https://viacep.test/ws", timeout=2)

    def test_found(self) -> None:
        body = {"cep": "01310-100", "logradouro": "Avenida Paulista", "bairro": "Bela Vista", "localidade": "Sao Paulo", "uf": "SP"}
        with patch("urllib.request.urlopen", return_value=_FakeResponse(body)) as urlopen:
            address = self.lookup.lookup("01310-100")
        self.assertEqual(address.street, "Avenida Paulista")
        self.assertEqual(address.cep, "01310100")
        self.assertEqual(urlopen.call_args.args[0].full_url, "https://viacep.test/ws/01310100/json/")

    def test_not_found_and_invalid(self) -> None:
        with patch("urllib.request.urlopen", return_value=_FakeResponse({"erro": True})):
            self.assertIsNone(self.lookup.lookup("99999999"))
        with patch("urllib.request.urlopen") as urlopen:
            self.assertIsNone(self.lookup.lookup("123"))
        urlopen.assert_not_called()

    def test_server_error(self) -> None:
        with patch("urllib.request.urlopen", side_effect=_http_error(503, {})):
            with self.assertRaises(GatewayError) as ctx:
                self.lookup.lookup("01310100")
        self.assertEqual(ctx.exception.status, 503)


if __name__ == "__main__":
    unittest.main()


HOSTED_USER = {
    "id": "hosted-user",
    "email": "Atlas@Fornecedor.test",
    "user_metadata": {"display_name": "Atlas", "supplier_id": "sup-hosted"},
    "app_metadata": {"role": "supplier"},
}


class EdgeAuthClientTest(unittest.TestCase):
    def setUp(self) -> None:
        self.auth = EdgeAuthClient(EdgeFunctionClient("https://edge.test", "anon-key"))

    def test_set_session_reads_hosted_user_with_access_token(self) -> None:
        with patch("urllib.request.urlopen", return_value=_FakeResponse(HOSTED_USER)) as urlopen:
            identity = self.auth.set_session(SessionTokens(access_token="hosted-access", refresh_token="hosted-refresh"))

        request = urlopen.call_args.args[0]
        self.assertEqual(request.full_url, "https://edge.test/auth/v1/user")
        self.assertEqual(request.get_method(), "GET")
        self.assertIsNone(request.data)
        self.assertEqual(request.get_header("Authorization"), "Bearer hosted-access")
        self.assertEqual(identity.user_id, "hosted-user")
        self.assertEqual(identity.email, "atlas@fornecedor.test")
        self.assertEqual(identity.role, "supplier")
        self.assertEqual(identity.supplier_id, "sup-hosted")

    def test_rejected_session_raises(self) -> None:
        with patch("urllib.request.urlopen", side_effect=_http_error(401, {"error": "invalid_token"})):
            with self.assertRaises(GatewayError) as ctx:
                self.auth.set_session(SessionTokens(access_token="x", refresh_token="y"))
        self.assertEqual(ctx.exception.status, 401)

    def test_password_sign_in(self) -> None:
        body = {"access_token": "a", "refresh_token": "r", "user": HOSTED_USER}
        with patch("urllib.request.urlopen", return_value=_FakeResponse(body)) as urlopen:
            identity = self.auth.sign_in_with_password(" Atlas@Fornecedor.test ", "ABCD2345")

        request = urlopen.call_args.args[0]
        self.assertEqual(request.full_url, "https://edge.test/auth/v1/token?grant_type=password")
        self.assertEqual(request.get_header("Authorization"), "Bearer anon-key")
        self.assertEqual(json.loads(request.data), {"email": "atlas@fornecedor.test", "password": "ABCD2345"})
        self.assertEqual(identity.user_id, "hosted-user")

    def test_password_sign_in_without_token_fails(self) -> None:
        with patch("urllib.request.urlopen", return_value=_FakeResponse({"user": HOSTED_USER})):
            with self.assertRaises(GatewayError) as ctx:
                self.auth.sign_in_with_password("atlas@fornecedor.test", "x")
        self.assertEqual(ctx.exception.code, "invalid_credentials")


class RemoteRegistrationTest(unittest.TestCase):
    registration = {
        "success": True,
        "user_id": "hosted-user",
        "supplier_id": "sup-hosted",
        "quote_id": "quote-9",
        "email": "atlas@fornecedor.test",
        "session": {"access_token": "hosted-access", "refresh_token": "hosted-refresh"},
        "temporary_password": "ABCD2345",
    }

    def setUp(self) -> None:
        self.sandbox = TempDbSandbox(prefix="cotiz_remote_tests")
        config = self.sandbox.make_config(Config, GATEWAY_MODE="remote", EDGE_FUNCTIONS_URL="https://edge.test")
        self.app = create_app(config)
        self.client = self.app.test_client()
        self.urls = []

    def tearDown(self) -> None:
        self.sandbox.cleanup()

    def _hosted(self, *, session_ok: bool):
        def _urlopen(request, timeout=None):
            url = request.full_url
            self.urls.append(url)
            if url.endswith("/functions/v1/complete-supplier-registration"):
                return _FakeResponse(self.registration)
            if url.endswith("/auth/v1/user"):
                if not session_ok:
                    raise _http_error(401, {"error": "invalid_token"})
                return _FakeResponse(HOSTED_USER)
            if url.endswith("/auth/v1/token?grant_type=password"):
                return _FakeResponse({"access_token": "a", "refresh_token": "r", "user": HOSTED_USER})
            raise AssertionError(f"unexpected call {url}")

        return _urlopen

    def test_factory_picks_hosted_auth(self) -> None:
        with self.app.app_context():
            self.assertIsInstance(build_auth_client(), EdgeAuthClient)

    def test_registration_uses_hosted_session(self) -> None:
        with patch("urllib.request.urlopen", side_effect=self._hosted(session_ok=True)):
            response = self.client.post("/api/fornecedor/cadastro/tok-remote", json=REGISTRATION_DATA)

        self.assertEqual(response.status_code, 201)
        payload = response.get_json()
        self.assertTrue(payload["authenticated"])
        self.assertEqual(payload["session_method"], "direct")
        self.assertEqual(payload["redirect_to"], "/supplier/quick-response/quote-9/tok-remote")
        me = self.client.get("/api/auth/me").get_json()
        self.assertEqual(me["role"], "supplier")
        self.assertEqual(me["supplier_id"], "sup-hosted")

    def test_registration_falls_back_to_hosted_password_sign_in(self) -> None:
        with patch("urllib.request.urlopen", side_effect=self._hosted(session_ok=False)):
            response = self.client.post("/api/fornecedor/cadastro/tok-remote", json=REGISTRATION_DATA)

        payload = response.get_json()
        self.assertTrue(payload["authenticated"])
        self.assertEqual(payload["session_method"], "password")
        self.assertTrue(self.urls[-1].endswith("/auth/v1/token?grant_type=password"))
