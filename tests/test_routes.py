import io
import unittest

from cotiz import create_app
from cotiz.config import Config
from cotiz.domain.contracts import CepAddress
from cotiz.domain.gateway import GatewayError
from cotiz.infrastructure.factory import register_port
from cotiz.observability import reset_metrics_for_tests
from tests.helpers.fakes import FakeCepLookup
from tests.helpers.seed import (
    REGISTRATION_DATA,
    date_in,
    fetch_one,
    insert_client,
    insert_document,
    insert_payment,
    insert_quote,
    insert_quote_token,
    insert_supplier,
)
from tests.helpers.temp_db import TempDbSandbox


class _AppCase(unittest.TestCase):
    def setUp(self) -> None:
        reset_metrics_for_tests()
        self.sandbox = TempDbSandbox(prefix="cotiz_routes_tests")
        self.app = create_app(self.sandbox.make_config(Config))
        self.client = self.app.test_client()
        self.db_path = self.sandbox.db_path
        self.client_id = insert_client(self.db_path)
        self.headers = {"X-Client-Id": self.client_id}

    def tearDown(self) -> None:
        self.sandbox.cleanup()


class HealthAndCatalogTest(_AppCase):
    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["db"], "sqlite")
        self.assertIn("X-Request-Id", response.headers)

    def test_catalog_lists_categories_and_ui_bundle(self) -> None:
        payload = self.client.get("/api/catalogo").get_json()
        self.assertIn("ui", payload)
        self.assertTrue(payload)


class LetterRoutesTest(_AppCase):
    def setUp(self) -> None:
        super().setUp()
        self.atlas = insert_supplier(self.db_path, name="Fornecedor Atlas", email="atlas@fornecedor.test")
        self.nexo = insert_supplier(self.db_path, name="Fornecedor Nexo", email="nexo@fornecedor.test")
        for doc_type in ("cnpj", "certidao_regularidade_fiscal"):
            insert_document(self.db_path, self.atlas, doc_type, expiry_date=date_in(60))
        insert_document(self.db_path, self.nexo, "cnpj", expiry_date=date_in(60))
        insert_document(self.db_path, self.nexo, "certidao_regularidade_fiscal", status="pending")

    def _create(self, **overrides):
        payload = {
            "title": "Carta convite jardinagem",
            "description": "Manutencao mensal das areas verdes",
            "deadline": date_in(15),
            "category": "jardinagem",
            "estimated_budget": "R$ 2.500,00",
            "supplier_ids": [self.atlas, self.nexo],
            "direct_emails": "contato@externo.test, outro@externo.test",
        }
        payload.update(overrides)
        return self.client.post("/api/cartas-convite", json=payload, headers=self.headers)

    def test_client_scope_is_required(self) -> None:
        response = self.client.get("/api/cartas-convite")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "client_required")

    def test_create_send_resend_and_cancel(self) -> None:
        created = self._create()
        self.assertEqual(created.status_code, 201)
        letter = created.get_json()["letter"]
        self.assertEqual(letter["status"], "draft")
        self.assertEqual(letter["estimated_budget"], "2500.00")
        self.assertEqual(len(letter["recipients"]), 4)
        self.assertFalse(created.get_json()["sent"])

        listing = self.client.get("/api/cartas-convite", headers=self.headers).get_json()["items"]
        self.assertEqual([item["id"] for item in listing], [letter["id"]])

        sent = self.client.post(f"/api/cartas-convite/{letter['id']}/enviar", headers=self.headers)
        self.assertEqual(sent.status_code, 200)
        self.assertEqual(sent.get_json()["letter"]["status"], "sent")

        again = self.client.post(f"/api/cartas-convite/{letter['id']}/enviar", headers=self.headers)
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.get_json()["status"], "sent")

        resent = self.client.post(f"/api/cartas-convite/{letter['id']}/reenviar", headers=self.headers)
        self.assertEqual(resent.status_code, 200)

        cancelled = self.client.post(f"/api/cartas-convite/{letter['id']}/cancelar", headers=self.headers)
        self.assertEqual(cancelled.get_json()["letter"]["status"], "cancelled")

    def test_letter_detail_is_tenant_scoped(self) -> None:
        letter = self._create().get_json()["letter"]
        insert_client(self.db_path, client_id="client-2", name="Condominio Boreal")

        other = self.client.get(f"/api/cartas-convite/{letter['id']}", headers={"X-Client-Id": "client-2"})
        self.assertEqual(other.status_code, 404)
        self.assertEqual(other.get_json()["error"], "letter_not_found")
        own = self.client.get(f"/api/cartas-convite/{letter['id']}", headers=self.headers)
        self.assertEqual(own.status_code, 200)

    def test_validation_errors(self) -> None:
        missing_category = self._create(category=None)
        self.assertEqual(missing_category.status_code, 400)
        self.assertEqual(missing_category.get_json()["error"], "letter_category_required")

        no_recipients = self._create(supplier_ids=[], direct_emails="")
        self.assertEqual(no_recipients.get_json()["error"], "letter_recipients_required")

        linked = self._create(mode="linked", category=None)
        self.assertEqual(linked.get_json()["error"], "letter_quote_required")

    def test_eligible_only_excludes_pending_suppliers(self) -> None:
        response = self._create(eligible_only=True, direct_emails="")
        payload = response.get_json()
        self.assertEqual(response.status_code, 201)
        self.assertEqual(payload["excluded_supplier_ids"], [self.nexo])
        self.assertEqual(payload["letter"]["supplier_ids"], [self.atlas])

    def test_send_immediately_with_linked_quote(self) -> None:
        quote_id = insert_quote(self.db_path, self.client_id)
        response = self._create(mode="linked", category=None, quote_id=quote_id, send_immediately=True)
        payload = response.get_json()
        self.assertTrue(payload["sent"])
        self.assertEqual(payload["letter"]["mode"], "linked")
        self.assertEqual(payload["letter"]["direct_emails"], [])
        self.assertTrue(all(r["quote_token"] for r in payload["letter"]["recipients"]))

    def test_eligibility_summary_counts_every_supplier(self) -> None:
        response = self.client.post(
            "/api/cartas-convite/elegibilidade",
            json={"supplier_ids": [self.atlas, self.nexo, "ghost"], "category": "jardinagem"},
            headers=self.headers,
        )
        payload = response.get_json()
        self.assertEqual(
            payload["summary"],
            {"total": 3, "eligible": 1, "pending": 1, "ineligible": 0, "not_checked": 1},
        )
        self.assertEqual([item["supplier_id"] for item in payload["results"]], [self.atlas, self.nexo, "ghost"])

    def test_eligibility_filter(self) -> None:
        response = self.client.post(
            "/api/cartas-convite/elegibilidade/filtrar",
            json={"supplier_ids": [self.atlas, self.nexo], "category": "jardinagem"},
            headers=self.headers,
        )
        self.assertEqual(response.get_json()["eligible_supplier_ids"], [self.atlas])

    def test_unknown_category_is_rejected(self) -> None:
        response = self.client.post(
            "/api/cartas-convite/elegibilidade",
            json={"supplier_ids": [self.atlas], "category": "astronautica"},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "invalid_category")

    def test_eligibility_report_csv(self) -> None:
        letter = self._create().get_json()["letter"]
        response = self.client.get(f"/api/cartas-convite/{letter['id']}/elegibilidade/relatorio", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.mimetype.startswith("text/csv"))
        self.assertIn(letter["letter_number"], response.headers["Content-Disposition"])
        body = response.get_data(as_text=True)
        self.assertIn("Fornecedor Atlas", body)
        self.assertIn("Fornecedor Nexo", body)

    def test_invitation_response_flow(self) -> None:
        letter = self._create().get_json()["letter"]
        sent = self.client.post(f"/api/cartas-convite/{letter['id']}/enviar", headers=self.headers).get_json()["letter"]
        token = sent["recipients"][0]["response_token"]

        view = self.client.get(f"/api/invitation-response/{token}")
        self.assertEqual(view.status_code, 200)
        self.assertEqual(view.get_json()["letter"]["title"], "Carta convite jardinagem")
        self.assertEqual(view.get_json()["response"]["status"], "pending")

        answer = self.client.post(f"/api/invitation-response/{token}", json={"status": "accepted", "notes": "Temos agenda"})
        self.assertEqual(answer.status_code, 200)
        self.assertEqual(answer.get_json()["response"]["status"], "accepted")

        twice = self.client.post(f"/api/invitation-response/{token}", json={"status": "declined"})
        self.assertEqual(twice.status_code, 409)
        unknown = self.client.get("/api/invitation-response/nao-existe")
        self.assertEqual(unknown.status_code, 404)

    def test_invitation_response_rejects_unknown_status(self) -> None:
        letter = self._create().get_json()["letter"]
        sent = self.client.post(f"/api/cartas-convite/{letter['id']}/enviar", headers=self.headers).get_json()["letter"]
        token = sent["recipients"][0]["response_token"]
        response = self.client.post(f"/api/invitation-response/{token}", json={"status": "talvez"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["field_errors"], {"status": "invitation_response_invalid"})


class QuickResponseRoutesTest(_AppCase):
    def setUp(self) -> None:
        super().setUp()
        self.supplier_id = insert_supplier(self.db_path)
        self.quote_id = insert_quote(self.db_path, self.client_id)
        self.token = insert_quote_token(self.db_path, self.quote_id, supplier_id=self.supplier_id)

    def test_resolve_and_submit(self) -> None:
        resolved = self.client.get(f"/api/r/{self.token}")
        self.assertEqual(resolved.status_code, 200)
        payload = resolved.get_json()
        self.assertEqual(payload["supplier"]["email"], "atlas@fornecedor.test")
        items = payload["items"]

        response = self.client.post(
            f"/api/r/{self.token}/proposta",
            json={
                "items": [
                    {"item_id": items[0]["item_id"], "unit_price": "10,50"},
                    {"item_id": items[1]["item_id"], "unit_price": "1.245,06"},
                ]
            },
        )
        self.assertEqual(response.status_code, 201)
        body = response.get_json()
        self.assertEqual(body["total_amount"], "1266.06")
        self.assertEqual(body["redirect_to"], "/r/success")

        used = self.client.get(f"/api/r/{self.token}")
        self.assertEqual(used.status_code, 404)
        self.assertEqual(used.get_json()["error"], "token_already_used")

    def test_submit_without_prices(self) -> None:
        response = self.client.post(f"/api/r/{self.token}/proposta", json={"items": []})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "prices_required")

    def test_expired_token(self) -> None:
        expired = insert_quote_token(self.db_path, self.quote_id, expires_in_days=-1)
        response = self.client.get(f"/api/r/{expired}")
        self.assertEqual(response.status_code, 410)
        self.assertEqual(response.get_json()["redirect_to"], "/")

    def test_multipart_submission_with_attachment(self) -> None:
        items = self.client.get(f"/api/r/{self.token}").get_json()["items"]
        data = {
            "items": '[{"item_id": "%s", "unit_price": "10,00"}]' % items[0]["item_id"],
            "notes": "Proposta em anexo",
            "attachment": (io.BytesIO(b"%PDF-1.4"), "proposta.pdf", "application/pdf"),
        }
        response = self.client.post(f"/api/r/{self.token}/proposta", data=data, content_type="multipart/form-data")
        self.assertEqual(response.status_code, 201)
        row = fetch_one(self.db_path, "SELECT attachment_url, notes FROM quote_responses WHERE id = ?", (response.get_json()["response_id"],))
        self.assertTrue(row["attachment_url"].startswith("/files/quick-responses/"))
        self.assertTrue(row["attachment_url"].endswith("-proposta.pdf"))
        self.assertNotIn(self.token, row["attachment_url"])
        self.assertEqual(row["notes"], "Proposta em anexo")

        stored = self.client.get(row["attachment_url"])
        self.assertEqual(stored.status_code, 200)
        self.assertEqual(stored.data, b"%PDF-1.4")
        stored.close()


class RegistrationRoutesTest(_AppCase):
    def setUp(self) -> None:
        super().setUp()
        self.supplier_id = insert_supplier(self.db_path, cnpj="11.222.333/0001-81")
        self.quote_id = insert_quote(self.db_path, self.client_id)
        self.token = insert_quote_token(self.db_path, self.quote_id, supplier_id=self.supplier_id)
        self.cep = FakeCepLookup(
            CepAddress(cep="01310100", street="Avenida Paulista", neighborhood="Bela Vista", city="Sao Paulo", state="SP")
        )
        register_port(self.app, "cep_lookup", self.cep)

    def test_context_prefills_wizard(self) -> None:
        response = self.client.get(f"/api/fornecedor/cadastro/{self.token}")
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(len(payload["steps"]), 4)
        self.assertEqual(payload["wizard"]["data"]["document_number"], "11222333000181")
        self.assertEqual(payload["options"]["max_specialties"], 10)

    def test_step_validation(self) -> None:
        response = self.client.post(
            f"/api/fornecedor/cadastro/{self.token}/etapa/1",
            json={"document_type": "cnpj", "document_number": "123", "whatsapp": "11999999999"},
        )
        self.assertEqual(response.status_code, 400)
        payload = response.get_json()
        self.assertEqual(payload["error"], "registration_step_invalid")
        self.assertEqual(payload["field_errors"], {"document_number": "document_number_invalid"})
        self.assertEqual(payload["step"], 1)

    def test_address_step_with_cep_lookup(self) -> None:
        response = self.client.post(
            f"/api/fornecedor/cadastro/{self.token}/etapa/2",
            json={"cep": "01310-100", "number": "1000", "lookup_cep": True},
        )
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(payload["next_step"], 3)
        self.assertEqual(payload["wizard"]["data"]["street"], "Avenida Paulista")
        self.assertEqual(self.cep.calls, ["01310100"])

    def test_complete_registration_starts_session(self) -> None:
        response = self.client.post(f"/api/fornecedor/cadastro/{self.token}", json=REGISTRATION_DATA)
        self.assertEqual(response.status_code, 201)
        payload = response.get_json()
        self.assertTrue(payload["authenticated"])
        self.assertEqual(payload["session_method"], "direct")
        self.assertEqual(payload["redirect_to"], f"/supplier/quick-response/{self.quote_id}/{self.token}")
        self.assertNotIn("temporary_password", payload)

        me = self.client.get("/api/auth/me").get_json()
        self.assertEqual(me["role"], "supplier")
        self.assertEqual(me["supplier_id"], self.supplier_id)

        supplier = fetch_one(self.db_path, "SELECT status, whatsapp FROM suppliers WHERE id = ?", (self.supplier_id,))
        self.assertEqual(supplier["status"], "active")
        self.assertEqual(supplier["whatsapp"], "11987654321")

    def test_incomplete_registration_is_rejected(self) -> None:
        data = dict(REGISTRATION_DATA, pix_key="")
        response = self.client.post(f"/api/fornecedor/cadastro/{self.token}", json=data)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["step"], 4)

    def test_cep_endpoint(self) -> None:
        self.assertEqual(self.client.get("/api/cep/123").get_json()["error"], "cep_invalid")
        found = self.client.get("/api/cep/01310-100")
        self.assertEqual(found.get_json()["street"], "Avenida Paulista")

        register_port(self.app, "cep_lookup", FakeCepLookup(None))
        missing = self.client.get("/api/cep/01310100")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.get_json()["error"], "cep_not_found")

        register_port(self.app, "cep_lookup", FakeCepLookup(error=GatewayError("viacep HTTP 503")))
        failed = self.client.get("/api/cep/01310100")
        self.assertEqual(failed.status_code, 502)
        self.assertEqual(failed.get_json()["error"], "cep_lookup_failed")


class AdminRoutesTest(_AppCase):
    def setUp(self) -> None:
        super().setUp()
        self.escrow_id = insert_payment(self.db_path, amount="1000.00", status="in_escrow", scheduled_delivery_date=date_in(3))
        insert_payment(self.db_path, amount="500.00", status="failed")

    def _as_admin(self) -> None:
        with self.client.session_transaction() as sess:
            sess["user_email"] = "admin@cotiz.test"
            sess["user_role"] = "admin"

    def test_finance_routes_require_admin(self) -> None:
        response = self.client.get("/api/admin/liquidez")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["error"], "permission_denied")

    def test_liquidity_metrics(self) -> None:
        self._as_admin()
        payload = self.client.get("/api/admin/liquidez").get_json()
        self.assertEqual(payload["total_in_escrow"], "1000.00")
        self.assertEqual(payload["releasing_next_7_days"], "1000.00")
        self.assertEqual(payload["pending_errors"], 1)
        self.assertEqual(payload["refresh_interval_seconds"], 60)

    def test_release_and_balance(self) -> None:
        self._as_admin()
        released = self.client.post(f"/api/admin/pagamentos/{self.escrow_id}/liberar")
        self.assertEqual(released.status_code, 200)
        self.assertEqual(released.get_json()["platform_commission"], "50.00")

        again = self.client.post(f"/api/admin/pagamentos/{self.escrow_id}/liberar")
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.get_json()["error"], "payment_not_in_escrow")

        missing = self.client.post("/api/admin/pagamentos/ghost/liberar")
        self.assertEqual(missing.status_code, 404)

        balance = self.client.get("/api/admin/saldo-plataforma").get_json()
        self.assertEqual(balance["available"], "50.00")
        self.assertEqual(balance["in_escrow"], "0.00")


if __name__ == "__main__":
    unittest.main()
