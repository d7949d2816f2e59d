from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation


CENTS = Decimal("0.01")

_NON_NUMERIC = re.compile(r"[^\d.,]")


def parse_localized_currency(raw_value: object) -> Decimal | None:
    """Parse a free-text pt-BR amount ("R$ 1.234,56", "10,50", "1234.5").

    Everything except digits, "," and "." is discarded, so signs are ignored.
    When both separators appear the rightmost one is the decimal separator.
    A lone "," is decimal. A lone "." is decimal unless it is followed by
    exactly three digits ("1.234" is one thousand two hundred thirty four).
    Returns None when nothing numeric is left.
    """
    if raw_value is None:
        return None
    if isinstance(raw_value, Decimal):
        return raw_value
    if isinstance(raw_value, (int, float)):
        return Decimal(str(raw_value))

    cleaned = _NON_NUMERIC.sub("", str(raw_value))
    if not any(ch.isdigit() for ch in cleaned):
        return None

    last_comma = cleaned.rfind(",")
    last_dot = cleaned.rfind(".")
    if last_comma >= 0 and last_dot >= 0:
        decimal_sep = "," if last_comma > last_dot else "."
    elif last_comma >= 0:
        decimal_sep = ","
    elif cleaned.count(".") > 1:
        decimal_sep = None
    elif last_dot >= 0 and len(cleaned) - last_dot - 1 == 3 and last_dot > 0:
        decimal_sep = None
    elif last_dot >= 0:
        decimal_sep = "."
    else:
        decimal_sep = None

    if decimal_sep is None:
        normalized = cleaned.replace(",", "").replace(".", "")
    else:
        split_at = cleaned.rfind(decimal_sep)
        integer_part = cleaned[:split_at].replace(",", "").replace(".", "")
        fraction_part = cleaned[split_at + 1 :].replace(",", "").replace(".", "")
        normalized = f"{integer_part or '0'}.{fraction_part or '0'}"

    try:
        return Decimal(normalized)
    except InvalidOperation:
        return None


def to_decimal(value: object, default: Decimal | None = None) -> Decimal | None:
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def money_str(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return format(quantize_money(value), "f")


def format_brl(value: Decimal | int | float | None) -> str:
    amount = quantize_money(to_decimal(value, Decimal("0")))
    sign = "-" if amount < 0 else ""
    integer_part, fraction_part = format(abs(amount), "f").split(".")
    groups = []
    while len(integer_part) > 3:
        groups.insert(0, integer_part[-3:])
        integer_part = integer_part[:-3]
    groups.insert(0, integer_part)
    return f"{sign}R$ {'.'.join(groups)},{fraction_part}"
