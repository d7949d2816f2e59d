from __future__ import annotations

import json
from typing import Any, Dict, List

from flask import request

from cotiz.domain.contracts import UploadedFile
from cotiz.errors import ValidationError


# Multipart forms carry structured fields as JSON strings.
JSON_FORM_FIELDS = ("items", "supplier_ids", "required_documents", "specialties", "direct_emails")


def _decode_json_field(key: str, raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise ValidationError(
            code="validation_error",
            message_key="validation_error",
            field_errors={key: "json_invalid"},
            details=str(exc),
        ) from exc


def request_payload() -> Dict[str, Any]:
    """Body as a dict for JSON requests and for multipart/urlencoded forms."""
    if request.is_json:
        data = request.get_json(silent=True)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValidationError(code="validation_error", message_key="validation_error")
        return dict(data)

    data: Dict[str, Any] = {key: value for key, value in request.form.items()}
    raw_payload = data.pop("payload", None)
    if raw_payload:
        decoded = _decode_json_field("payload", raw_payload)
        if isinstance(decoded, dict):
            data = {**decoded, **data}
    for key in JSON_FORM_FIELDS:
        value = data.get(key)
        if isinstance(value, str) and value.strip().startswith(("[", "{")):
            data[key] = _decode_json_field(key, value)
    return data


def uploaded_files(field: str) -> List[UploadedFile]:
    files: List[UploadedFile] = []
    for storage in request.files.getlist(field):
        if storage is None or not storage.filename:
            continue
        files.append(
            UploadedFile(
                filename=storage.filename,
                content_type=storage.mimetype or "application/octet-stream",
                data=storage.read(),
            )
        )
    return files


def uploaded_file(field: str) -> UploadedFile | None:
    files = uploaded_files(field)
    return files[0] if files else None


def flag(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on", "sim"}
