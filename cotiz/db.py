import contextlib
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Iterable, List

try:
    import psycopg2
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g


DB_ERRORS: tuple = (sqlite3.Error,) + ((psycopg2.Error,) if psycopg2 is not None else ())


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            if params:
                sql = _convert_qmark_to_pg(sql)
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, tuple(params or ()))

    def executescript(self, sql: str):
        if self.backend != "postgres":
            return self._conn.executescript(sql)
        for statement in _split_sql_statements(sql):
            if statement.strip():
                self.execute(statement)

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()


def _split_sql_statements(sql: str) -> List[str]:
    statements = []
    current = []
    in_single = False
    for ch in sql:
        if ch == "'":
            in_single = not in_single
        if ch == ";" and not in_single:
            statements.append("".join(current))
            current = []
            continue
        current.append(ch)
    if current:
        statements.append("".join(current))
    return statements


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def _connect_database(db_path: str, *, autocommit: bool = True) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 nao instalado.")
        conn = psycopg2.connect(db_path)
        conn.autocommit = autocommit
        return Database("postgres", conn)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return Database("sqlite", conn)


@contextlib.contextmanager
def open_database(db_path: str):
    """Short-lived connection for work outside the request-bound one (ports, worker threads).

    The block runs as one transaction on both backends: committed on exit,
    rolled back on any exception.
    """
    db = _connect_database(db_path, autocommit=False)
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db():
    if "db" not in g:
        db_path = current_app.config["DB_PATH"]
        g.db = _connect_database(db_path)
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


# Portable DDL: TEXT ids, ISO timestamps, amounts bound as strings, flags as 0/1.
SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS clients (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT,
        address TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS suppliers (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT,
        document_type TEXT,
        cnpj TEXT,
        phone TEXT,
        whatsapp TEXT,
        city TEXT,
        state TEXT,
        address TEXT,
        specialties TEXT,
        website TEXT,
        description TEXT,
        payout TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        user_id TEXT,
        registration_completed_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_suppliers_email ON suppliers (email)",
    """
    CREATE TABLE IF NOT EXISTS supplier_documents (
        id TEXT PRIMARY KEY,
        supplier_id TEXT NOT NULL REFERENCES suppliers (id),
        client_id TEXT,
        document_type TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'validated', 'rejected', 'expired')),
        file_name TEXT,
        expiry_date TEXT,
        rejection_reason TEXT,
        validated_at TEXT,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_supplier_documents_supplier ON supplier_documents (supplier_id, document_type)",
    """
    CREATE TABLE IF NOT EXISTS quotes (
        id TEXT PRIMARY KEY,
        client_id TEXT NOT NULL REFERENCES clients (id),
        title TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'open',
        requires_visit INTEGER NOT NULL DEFAULT 0,
        visit_deadline TEXT,
        client_address TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS quote_items (
        id TEXT PRIMARY KEY,
        quote_id TEXT NOT NULL REFERENCES quotes (id),
        product_name TEXT NOT NULL,
        quantity NUMERIC NOT NULL DEFAULT 1,
        unit_price NUMERIC,
        position INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS quote_tokens (
        id TEXT PRIMARY KEY,
        quote_id TEXT NOT NULL REFERENCES quotes (id),
        supplier_id TEXT REFERENCES suppliers (id),
        full_token TEXT NOT NULL UNIQUE,
        short_code TEXT NOT NULL UNIQUE,
        expires_at TEXT NOT NULL,
        used_at TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS quote_responses (
        id TEXT PRIMARY KEY,
        quote_id TEXT NOT NULL REFERENCES quotes (id),
        supplier_id TEXT NOT NULL REFERENCES suppliers (id),
        token_id TEXT UNIQUE REFERENCES quote_tokens (id),
        supplier_name TEXT NOT NULL,
        supplier_email TEXT NOT NULL,
        total_amount NUMERIC NOT NULL,
        delivery_days INTEGER NOT NULL,
        shipping_cost NUMERIC NOT NULL DEFAULT 0,
        warranty_months INTEGER NOT NULL,
        payment_terms TEXT NOT NULL,
        notes TEXT,
        attachment_url TEXT,
        items TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'submitted',
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS quote_visits (
        id TEXT PRIMARY KEY,
        quote_id TEXT NOT NULL REFERENCES quotes (id),
        supplier_id TEXT NOT NULL REFERENCES suppliers (id),
        scheduled_date TEXT NOT NULL,
        notes TEXT,
        status TEXT NOT NULL DEFAULT 'scheduled',
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS invitation_letters (
        id TEXT PRIMARY KEY,
        client_id TEXT NOT NULL REFERENCES clients (id),
        letter_number TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT NOT NULL,
        deadline TEXT NOT NULL,
        category TEXT,
        quote_id TEXT REFERENCES quotes (id),
        estimated_budget NUMERIC,
        required_documents TEXT NOT NULL,
        attachments TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'draft' CHECK (status IN ('draft', 'sent', 'cancelled')),
        sent_at TEXT,
        cancelled_at TEXT,
        created_by TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (client_id, letter_number),
        CHECK ((category IS NULL) <> (quote_id IS NULL))
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS invitation_letter_recipients (
        id TEXT PRIMARY KEY,
        letter_id TEXT NOT NULL REFERENCES invitation_letters (id),
        supplier_id TEXT REFERENCES suppliers (id),
        email TEXT,
        position INTEGER NOT NULL DEFAULT 0,
        response_token TEXT UNIQUE,
        quote_token TEXT,
        token_expires_at TEXT,
        sent_at TEXT,
        viewed_at TEXT,
        response_status TEXT NOT NULL DEFAULT 'pending'
            CHECK (response_status IN ('pending', 'accepted', 'declined', 'no_interest')),
        response_notes TEXT,
        response_attachment_url TEXT,
        responded_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_letter_recipients_letter ON invitation_letter_recipients (letter_id)",
    """
    CREATE TABLE IF NOT EXISTS auth_users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        display_name TEXT,
        role TEXT NOT NULL DEFAULT 'client',
        client_id TEXT,
        supplier_id TEXT,
        must_change_password INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS auth_sessions (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES auth_users (id),
        access_token TEXT NOT NULL UNIQUE,
        refresh_token TEXT NOT NULL UNIQUE,
        expires_at TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS payments (
        id TEXT PRIMARY KEY,
        quote_id TEXT REFERENCES quotes (id),
        client_id TEXT REFERENCES clients (id),
        supplier_id TEXT REFERENCES suppliers (id),
        amount NUMERIC NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'in_escrow', 'completed', 'failed', 'refunded')),
        scheduled_delivery_date TEXT,
        released_at TEXT,
        platform_commission NUMERIC,
        supplier_net_amount NUMERIC,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_logs (
        id TEXT PRIMARY KEY,
        actor TEXT,
        action TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id TEXT,
        details TEXT,
        created_at TEXT NOT NULL
    )
    """,
)

SCHEMA_TABLES = (
    "clients",
    "suppliers",
    "supplier_documents",
    "quotes",
    "quote_items",
    "quote_tokens",
    "quote_responses",
    "quote_visits",
    "invitation_letters",
    "invitation_letter_recipients",
    "auth_users",
    "auth_sessions",
    "payments",
    "audit_logs",
)


def init_db():
    db = get_db()
    apply_schema(db)


def apply_schema(db: Database) -> None:
    for statement in SCHEMA_STATEMENTS:
        db.execute(statement)
    db.commit()


def table_exists(db: Database, table: str) -> bool:
    if db.backend == "postgres":
        row = db.execute(
            "SELECT 1 AS found FROM information_schema.tables WHERE table_name = ?",
            (table,),
        ).fetchone()
        return bool(row)
    row = db.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name = ?",
        (table,),
    ).fetchone()
    return row is not None
