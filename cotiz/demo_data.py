from __future__ import annotations

import secrets
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List

from werkzeug.security import generate_password_hash

from cotiz.db import Database, new_id, utc_now_iso
from cotiz.infrastructure.local_gateway import generate_short_code


DEMO_CLIENT_ID = "client-demo"
DEMO_ADMIN_EMAIL = "admin@demo.com"
DEMO_CLIENT_EMAIL = "sindico@demo.com"
DEMO_PASSWORD = "demo1234"


def _iso_days(days: int) -> str:
    value = datetime.now(timezone.utc) + timedelta(days=days)
    return value.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _date_days(days: int) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


def seed_demo_data(db: Database, ttl_days: int = 30) -> Dict[str, str]:
    """Cria cliente, fornecedores, documentos, cotacao com token e pagamentos demo."""
    now = utc_now_iso()
    existing = db.execute("SELECT id FROM clients WHERE id = ?", (DEMO_CLIENT_ID,)).fetchone()
    if existing is None:
        db.execute(
            "INSERT INTO clients (id, name, email, address, created_at) VALUES (?, ?, ?, ?, ?)",
            (DEMO_CLIENT_ID, "Condominio Demo", DEMO_CLIENT_EMAIL, "Rua das Flores, 100 - Sao Paulo/SP", now),
        )
        _seed_users(db, now)

    supplier_ids = _ensure_demo_suppliers(db, now)
    _seed_documents(db, supplier_ids, now)
    quote_id = _seed_quote(db, now)

    full_token = secrets.token_urlsafe(24)
    short_code = generate_short_code()
    db.execute(
        """
        INSERT INTO quote_tokens (id, quote_id, supplier_id, full_token, short_code, expires_at, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (new_id(), quote_id, supplier_ids[0], full_token, short_code, _iso_days(ttl_days), now),
    )
    _seed_payments(db, quote_id, supplier_ids, now)
    db.commit()
    return {
        "client_id": DEMO_CLIENT_ID,
        "quote_id": quote_id,
        "quote_token": full_token,
        "short_code": short_code,
        "supplier_ids": ",".join(supplier_ids),
    }


def _seed_users(db: Database, now: str) -> None:
    for email, role, name in (
        (DEMO_ADMIN_EMAIL, "admin", "Administrador Demo"),
        (DEMO_CLIENT_EMAIL, "client", "Sindico Demo"),
    ):
        db.execute(
            """
            INSERT INTO auth_users (id, email, password_hash, display_name, role, client_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (new_id(), email, generate_password_hash(DEMO_PASSWORD), name, role, DEMO_CLIENT_ID, now, now),
        )


def _ensure_demo_suppliers(db: Database, now: str) -> List[str]:
    existing = db.execute(
        "SELECT id FROM suppliers WHERE email LIKE ? ORDER BY email",
        ("%@fornecedor.demo",),
    ).fetchall()
    if existing:
        return [row["id"] for row in existing]

    demo_suppliers = [
        ("Fornecedor Atlas", "atlas@fornecedor.demo", "11222333000181", "Sao Paulo", "SP"),
        ("Fornecedor Nexo", "nexo@fornecedor.demo", "22333444000172", "Campinas", "SP"),
        ("Fornecedor Prisma", "prisma@fornecedor.demo", "33444555000163", "Curitiba", "PR"),
    ]
    ids = []
    for name, email, cnpj, city, state in demo_suppliers:
        supplier_id = new_id()
        db.execute(
            """
            INSERT INTO suppliers (
                id, name, email, document_type, cnpj, city, state, status, created_at, updated_at
            ) VALUES (?, ?, ?, 'cnpj', ?, ?, ?, 'active', ?, ?)
            """,
            (supplier_id, name, email, cnpj, city, state, now, now),
        )
        ids.append(supplier_id)
    return ids


def _seed_documents(db: Database, supplier_ids: List[str], now: str) -> None:
    already = db.execute(
        "SELECT COUNT(*) AS total FROM supplier_documents WHERE client_id = ?",
        (DEMO_CLIENT_ID,),
    ).fetchone()
    if already and int(already["total"]) > 0:
        return

    # Atlas em dia, Nexo com pendencia, Prisma com certidao vencida.
    plan = [
        (supplier_ids[0], "cnpj", "validated", _date_days(180)),
        (supplier_ids[0], "certidao_regularidade_fiscal", "validated", _date_days(90)),
        (supplier_ids[1], "cnpj", "validated", _date_days(180)),
        (supplier_ids[1], "certidao_regularidade_fiscal", "pending", None),
        (supplier_ids[2], "cnpj", "validated", _date_days(180)),
        (supplier_ids[2], "certidao_regularidade_fiscal", "validated", _date_days(-5)),
    ]
    for supplier_id, document_type, status, expiry in plan:
        db.execute(
            """
            INSERT INTO supplier_documents (
                id, supplier_id, client_id, document_type, status, file_name, expiry_date, validated_at, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                new_id(),
                supplier_id,
                DEMO_CLIENT_ID,
                document_type,
                status,
                f"{document_type}.pdf",
                expiry,
                now if status == "validated" else None,
                now,
            ),
        )


def _seed_quote(db: Database, now: str) -> str:
    quote_id = new_id()
    db.execute(
        """
        INSERT INTO quotes (
            id, client_id, title, description, status, requires_visit, visit_deadline, client_address, created_at
        ) VALUES (?, ?, ?, ?, 'open', 1, ?, ?, ?)
        """,
        (
            quote_id,
            DEMO_CLIENT_ID,
            "Manutencao da jardinagem",
            "Poda mensal e manutencao das areas verdes.",
            _date_days(10),
            "Rua das Flores, 100 - Sao Paulo/SP",
            now,
        ),
    )
    for position, (product, quantity) in enumerate((("Poda de arvores", 4), ("Corte de grama", 2), ("Adubacao", 1))):
        db.execute(
            """
            INSERT INTO quote_items (id, quote_id, product_name, quantity, position)
            VALUES (?, ?, ?, ?, ?)
            """,
            (new_id(), quote_id, product, quantity, position),
        )
    return quote_id


def _seed_payments(db: Database, quote_id: str, supplier_ids: List[str], now: str) -> None:
    plan = [
        (supplier_ids[0], "1500.00", "in_escrow", _date_days(3), None),
        (supplier_ids[1], "3200.00", "in_escrow", _date_days(20), None),
        (supplier_ids[2], "800.00", "completed", None, now),
    ]
    for supplier_id, amount, status, delivery, released_at in plan:
        commission = "40.00" if status == "completed" else None
        net = "760.00" if status == "completed" else None
        db.execute(
            """
            INSERT INTO payments (
                id, quote_id, client_id, supplier_id, amount, status, scheduled_delivery_date,
                released_at, platform_commission, supplier_net_amount, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (new_id(), quote_id, DEMO_CLIENT_ID, supplier_id, amount, status, delivery, released_at, commission, net, now),
        )
