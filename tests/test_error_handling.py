import unittest
from unittest.mock import patch

from cotiz import create_app
from cotiz.config import Config
from cotiz.db import close_db
from cotiz.domain.gateway import GatewayError
from cotiz.ui_strings import error_message
from tests.helpers.seed import init_schema, insert_client, insert_user
from tests.helpers.temp_db import TempDbSandbox


class ErrorPermissionTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="error_perm")
        init_schema(self._temp_db.db_path)
        insert_client(self._temp_db.db_path, client_id="client-perm")
        insert_user(self._temp_db.db_path, email="sindico@aurora.test", password="segredo123", client_id="client-perm")
        self.app = create_app(self._temp_db.make_config(Config, TESTING=False, AUTH_ENABLED=True))
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_permission_error_for_unauthenticated_api(self) -> None:
        response = self.client.get("/api/cartas-convite", headers={"X-Client-Id": "client-perm"})
        self.assertEqual(response.status_code, 401)

        payload = response.get_json()
        self.assertEqual(payload.get("error"), "auth_required")
        self.assertEqual(payload.get("message"), error_message("auth_required"))
        self.assertTrue((payload.get("request_id") or "").strip())
        self.assertNotIn("Traceback", response.get_data(as_text=True))

    def test_public_routes_skip_login(self) -> None:
        self.assertEqual(self.client.get("/api/catalogo").status_code, 200)
        token_res = self.client.get("/api/r/nao-existe")
        self.assertEqual(token_res.status_code, 404)
        self.assertEqual(token_res.get_json()["error"], "token_invalid")

    def test_login_scopes_tenant_from_session(self) -> None:
        wrong = self.client.post("/api/auth/login", json={"email": "sindico@aurora.test", "password": "errada"})
        self.assertEqual(wrong.status_code, 401)
        self.assertEqual(wrong.get_json()["error"], "invalid_credentials")

        empty = self.client.post("/api/auth/login", json={"email": ""})
        self.assertEqual(empty.status_code, 400)
        self.assertEqual(empty.get_json()["field_errors"], {"email": "field_required", "password": "field_required"})

        login = self.client.post("/api/auth/login", json={"email": "Sindico@Aurora.test", "password": "segredo123"})
        self.assertEqual(login.status_code, 200)
        self.assertEqual(login.get_json()["client_id"], "client-perm")

        # Header is ignored once a login guard is active; the session decides.
        listing = self.client.get("/api/cartas-convite", headers={"X-Client-Id": "outro"})
        self.assertEqual(listing.status_code, 200)
        self.assertEqual(listing.get_json()["items"], [])

        self.client.post("/api/auth/logout")
        self.assertEqual(self.client.get("/api/cartas-convite").status_code, 401)

    def test_finance_routes_need_admin_role(self) -> None:
        self.client.post("/api/auth/login", json={"email": "sindico@aurora.test", "password": "segredo123"})
        response = self.client.get("/api/admin/liquidez")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["message"], error_message("permission_denied"))


class ErrorHandlingApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="error_api")
        self.app = create_app(self._temp_db.make_config(Config))
        self.client = self.app.test_client()
        self.headers = {"X-Client-Id": "client-error-api"}

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_validation_error_payload(self) -> None:
        response = self.client.post("/api/cartas-convite", headers=self.headers, json=["not", "a", "dict"])
        self.assertEqual(response.status_code, 400)
        payload = response.get_json()
        self.assertEqual(payload.get("error"), "validation_error")
        self.assertEqual(payload.get("message"), error_message("validation_error"))
        self.assertTrue((payload.get("request_id") or "").strip())

    def test_gateway_outage_maps_to_unavailable(self) -> None:
        with patch(
            "cotiz.infrastructure.local_gateway.LocalLetterGateway.list_letters",
            side_effect=GatewayError("list-letters HTTP 503"),
        ):
            response = self.client.get("/api/cartas-convite", headers=self.headers)

        self.assertEqual(response.status_code, 502)
        payload = response.get_json()
        self.assertEqual(payload.get("error"), "gateway_unavailable")
        self.assertEqual(payload.get("message"), error_message("gateway_temporarily_unavailable"))
        self.assertNotIn("HTTP 503", response.get_data(as_text=True))

    def test_gateway_rejection_maps_to_unprocessable(self) -> None:
        with patch(
            "cotiz.infrastructure.local_gateway.LocalLetterGateway.list_letters",
            side_effect=GatewayError("list-letters HTTP 400: bad filter"),
        ):
            response = self.client.get("/api/cartas-convite", headers=self.headers)

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.get_json().get("error"), "gateway_rejected")

    def test_stack_trace_not_exposed_for_unhandled_error(self) -> None:
        with patch("cotiz.routes.catalog_routes.catalog_payload", side_effect=RuntimeError("stack_secret_token")):
            response = self.client.get("/api/catalogo")

        self.assertEqual(response.status_code, 500)
        payload = response.get_json()
        self.assertEqual(payload.get("error"), "unexpected_error")
        self.assertEqual(payload.get("message"), error_message("unexpected_error"))
        body = response.get_data(as_text=True)
        self.assertNotIn("Traceback", body)
        self.assertNotIn("stack_secret_token", body)

    def test_unknown_route_keeps_http_status(self) -> None:
        response = self.client.get("/api/nao-existe")
        self.assertEqual(response.status_code, 404)


if __name__ == "__main__":
    unittest.main()
