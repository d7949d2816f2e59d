from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from werkzeug.security import generate_password_hash

from cotiz.db import apply_schema, new_id, open_database, utc_now_iso


def iso_in(days: float) -> str:
    value = datetime.now(timezone.utc) + timedelta(days=days)
    return value.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def date_in(days: int) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


def init_schema(db_path: str) -> None:
    with open_database(db_path) as db:
        apply_schema(db)


def insert_client(db_path: str, *, client_id: str = "client-1", name: str = "Condominio Aurora") -> str:
    with open_database(db_path) as db:
        db.execute(
            "INSERT INTO clients (id, name, email, created_at) VALUES (?, ?, ?, ?)",
            (client_id, name, "sindico@aurora.test", utc_now_iso()),
        )
    return client_id


def insert_supplier(
    db_path: str,
    *,
    name: str = "Fornecedor Atlas",
    email: str | None = "atlas@fornecedor.test",
    cnpj: str | None = None,
    supplier_id: str | None = None,
) -> str:
    supplier_id = supplier_id or new_id()
    now = utc_now_iso()
    with open_database(db_path) as db:
        db.execute(
            """
            INSERT INTO suppliers (id, name, email, cnpj, city, state, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, 'Sao Paulo', 'SP', 'pending', ?, ?)
            """,
            (supplier_id, name, email, cnpj, now, now),
        )
    return supplier_id


def insert_document(
    db_path: str,
    supplier_id: str,
    document_type: str,
    *,
    status: str = "validated",
    client_id: str | None = None,
    expiry_date: str | None = None,
    created_at: str | None = None,
) -> None:
    with open_database(db_path) as db:
        db.execute(
            """
            INSERT INTO supplier_documents (
                id, supplier_id, client_id, document_type, status, file_name, expiry_date, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                new_id(),
                supplier_id,
                client_id,
                document_type,
                status,
                f"{document_type}.pdf",
                expiry_date,
                created_at or utc_now_iso(),
            ),
        )


def insert_quote(
    db_path: str,
    client_id: str,
    *,
    title: str = "Pintura da fachada",
    requires_visit: bool = False,
    visit_deadline: str | None = None,
    items: tuple = (("Tinta acrilica", 2), ("Mao de obra", 1)),
) -> str:
    quote_id = new_id()
    with open_database(db_path) as db:
        db.execute(
            """
            INSERT INTO quotes (id, client_id, title, status, requires_visit, visit_deadline, created_at)
            VALUES (?, ?, ?, 'open', ?, ?, ?)
            """,
            (quote_id, client_id, title, 1 if requires_visit else 0, visit_deadline, utc_now_iso()),
        )
        for position, (product_name, quantity) in enumerate(items):
            db.execute(
                "INSERT INTO quote_items (id, quote_id, product_name, quantity, position) VALUES (?, ?, ?, ?, ?)",
                (new_id(), quote_id, product_name, quantity, position),
            )
    return quote_id


def insert_quote_token(
    db_path: str,
    quote_id: str,
    *,
    supplier_id: str | None = None,
    full_token: str | None = None,
    short_code: str | None = None,
    expires_in_days: float = 30,
    used: bool = False,
) -> str:
    token = full_token or new_id()
    with open_database(db_path) as db:
        db.execute(
            """
            INSERT INTO quote_tokens (id, quote_id, supplier_id, full_token, short_code, expires_at, used_at, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                new_id(),
                quote_id,
                supplier_id,
                token,
                short_code or new_id()[:8].upper(),
                iso_in(expires_in_days),
                utc_now_iso() if used else None,
                utc_now_iso(),
            ),
        )
    return token


def insert_payment(
    db_path: str,
    *,
    amount: str,
    status: str,
    scheduled_delivery_date: str | None = None,
    released_at: str | None = None,
    platform_commission: str | None = None,
) -> str:
    payment_id = new_id()
    with open_database(db_path) as db:
        db.execute(
            """
            INSERT INTO payments (
                id, amount, status, scheduled_delivery_date, released_at, platform_commission, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (payment_id, amount, status, scheduled_delivery_date, released_at, platform_commission, utc_now_iso()),
        )
    return payment_id


def insert_user(
    db_path: str,
    *,
    email: str,
    password: str,
    role: str = "client",
    client_id: str | None = None,
) -> str:
    user_id = new_id()
    now = utc_now_iso()
    with open_database(db_path) as db:
        db.execute(
            """
            INSERT INTO auth_users (id, email, password_hash, display_name, role, client_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (user_id, email, generate_password_hash(password), email.split("@")[0], role, client_id, now, now),
        )
    return user_id


def fetch_one(db_path: str, sql: str, params: tuple = ()) -> dict | None:
    with open_database(db_path) as db:
        row = db.execute(sql, params).fetchone()
    return dict(row) if row else None


REGISTRATION_DATA = {
    "document_type": "cnpj",
    "document_number": "11.222.333/0001-81",
    "whatsapp": "(11) 98765-4321",
    "cep": "01310-100",
    "street": "Avenida Paulista",
    "number": "1000",
    "neighborhood": "Bela Vista",
    "city": "Sao Paulo",
    "state": "SP",
    "specialties": ["Jardinagem"],
    "payment_method": "pix",
    "pix_key": "pix@atlas.com.br",
}
