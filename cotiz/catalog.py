from __future__ import annotations

from typing import Dict, List, Tuple


DOCUMENT_TYPES: Dict[str, str] = {
    "cnpj": "Cartao CNPJ",
    "contrato_social": "Contrato Social",
    "certidao_regularidade_fiscal": "Certidao de Regularidade Fiscal",
    "certidao_inss": "Certidao Negativa INSS",
    "certidao_fgts": "Certidao de Regularidade FGTS",
    "alvara": "Alvara de Funcionamento",
    "certificado_iso": "Certificado ISO",
    "apolice_seguro": "Apolice de Seguro",
    "certidao_trabalhista": "Certidao Negativa de Debitos Trabalhistas",
    "outros": "Outros",
}

LETTER_CATEGORIES: Dict[str, str] = {
    "manutencao": "Manutencao",
    "limpeza": "Limpeza",
    "seguranca": "Seguranca",
    "jardinagem": "Jardinagem",
    "elevadores": "Elevadores",
    "piscina": "Piscina",
    "portaria": "Portaria",
    "outros": "Outros",
}

# Suggested compliance documents per service category, in display order.
CATEGORY_DOCUMENTS: Dict[str, Tuple[str, ...]] = {
    "manutencao": ("cnpj", "contrato_social", "certidao_regularidade_fiscal", "alvara", "apolice_seguro"),
    "limpeza": ("cnpj", "certidao_regularidade_fiscal", "certidao_inss", "certidao_fgts"),
    "seguranca": (
        "cnpj",
        "contrato_social",
        "certidao_inss",
        "certidao_fgts",
        "certidao_trabalhista",
        "alvara",
    ),
    "jardinagem": ("cnpj", "certidao_regularidade_fiscal"),
    "elevadores": ("cnpj", "contrato_social", "certificado_iso", "apolice_seguro", "certidao_regularidade_fiscal"),
    "piscina": ("cnpj", "alvara", "certidao_regularidade_fiscal"),
    "portaria": ("cnpj", "certidao_inss", "certidao_fgts", "certidao_trabalhista"),
    "outros": ("cnpj",),
}

ALLOWED_MIME_TYPES: Dict[str, str] = {
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.ms-excel": "xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
}

BRAZILIAN_BANKS: List[Dict[str, str]] = [
    {"code": "001", "name": "Banco do Brasil"},
    {"code": "033", "name": "Santander"},
    {"code": "104", "name": "Caixa Economica Federal"},
    {"code": "237", "name": "Bradesco"},
    {"code": "341", "name": "Itau"},
    {"code": "260", "name": "Nubank"},
    {"code": "077", "name": "Inter"},
    {"code": "212", "name": "Banco Original"},
    {"code": "756", "name": "Sicoob"},
    {"code": "748", "name": "Sicredi"},
    {"code": "336", "name": "C6 Bank"},
    {"code": "290", "name": "PagSeguro"},
    {"code": "323", "name": "Mercado Pago"},
]

COMMON_SPECIALTIES: Tuple[str, ...] = (
    "Limpeza",
    "Manutencao",
    "Seguranca",
    "Jardinagem",
    "Eletrica",
    "Hidraulica",
    "Pintura",
    "Marcenaria",
    "Alvenaria",
    "Elevadores",
    "Piscina",
    "Portaria",
    "Dedetizacao",
    "Impermeabilizacao",
    "Serralheria",
    "Vidracaria",
)

ACCOUNT_TYPES = ("corrente", "poupanca")

MAX_SPECIALTIES = 10
MAX_SPECIALTY_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 500


def document_label(document_type: str) -> str:
    return DOCUMENT_TYPES.get(document_type, document_type)


def is_allowed_mime_type(content_type: str | None) -> bool:
    return str(content_type or "").strip().lower() in ALLOWED_MIME_TYPES


def bank_name(code: str | None) -> str | None:
    for bank in BRAZILIAN_BANKS:
        if bank["code"] == code:
            return bank["name"]
    return None


def catalog_payload() -> dict:
    return {
        "categories": [{"key": key, "label": label} for key, label in LETTER_CATEGORIES.items()],
        "document_types": [{"type": key, "label": label} for key, label in DOCUMENT_TYPES.items()],
        "category_documents": {key: list(types) for key, types in CATEGORY_DOCUMENTS.items()},
        "allowed_mime_types": sorted(ALLOWED_MIME_TYPES),
        "banks": list(BRAZILIAN_BANKS),
        "specialties": list(COMMON_SPECIALTIES),
        "account_types": list(ACCOUNT_TYPES),
    }
