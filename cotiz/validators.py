from __future__ import annotations

import re
from datetime import date, datetime, timezone


DOCUMENT_LENGTHS = {"cpf": 11, "cnpj": 14}

PIX_KEY_TYPES = ("cpf", "cnpj", "email", "phone", "random")

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_PATTERN = re.compile(r"^(\+55)?\d{10,11}$")
_UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
_PIX_STRIP = re.compile(r"[^\w@.+-]")
_DOCUMENT_LIKE = re.compile(r"^[\d.\-/]+$")
_STATE_PATTERN = re.compile(r"^[A-Za-z]{2}$")


def only_digits(value: object) -> str:
    return re.sub(r"\D", "", str(value or ""))


def normalize_document_number(document_type: str | None, raw_value: object) -> str | None:
    """Digits-only document number, or None when the length does not match the type."""
    expected = DOCUMENT_LENGTHS.get(str(document_type or "").strip().lower())
    if expected is None:
        return None
    digits = only_digits(raw_value)
    if len(digits) != expected:
        return None
    return digits


def is_valid_email(value: object) -> bool:
    return bool(_EMAIL_PATTERN.match(str(value or "").strip()))


def detect_pix_key_type(raw_key: object) -> str | None:
    key = _PIX_STRIP.sub("", str(raw_key or "").strip())
    if not key:
        return None
    if _DOCUMENT_LIKE.match(key):
        digits = only_digits(key)
        if len(digits) == 11:
            return "cpf"
        if len(digits) == 14:
            return "cnpj"
    if _EMAIL_PATTERN.match(key):
        return "email"
    if _PHONE_PATTERN.match(key.replace("-", "")):
        return "phone"
    if _UUID_PATTERN.match(key):
        return "random"
    return None


def normalize_cep(raw_value: object) -> str | None:
    digits = only_digits(raw_value)
    if len(digits) != 8:
        return None
    return digits


def is_valid_state(value: object) -> bool:
    return bool(_STATE_PATTERN.match(str(value or "").strip()))


def parse_date(value: object) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(text[:10], fmt).date()
        except ValueError:
            continue
    return None


def format_date_br(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def parse_timestamp(value: object) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_expired(expires_at: object, now: datetime | None = None) -> bool:
    parsed = parse_timestamp(expires_at)
    if parsed is None:
        return False
    return parsed <= (now or datetime.now(timezone.utc))
