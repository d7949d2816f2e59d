from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

from cotiz.catalog import ACCOUNT_TYPES, MAX_DESCRIPTION_LENGTH, MAX_SPECIALTIES, MAX_SPECIALTY_LENGTH, bank_name
from cotiz.contexts.registration.session import SessionEstablisher, SessionOutcome
from cotiz.domain.contracts import CepAddress, RegistrationResult, SupplierProfile
from cotiz.domain.gateway import CepLookup, GatewayError, QuoteGateway
from cotiz.errors import IntegrationError, TokenResolutionError, ValidationError
from cotiz.observability import observe_gateway_call
from cotiz.ui_strings import warning_message
from cotiz.validators import (
    detect_pix_key_type,
    is_valid_state,
    normalize_cep,
    normalize_document_number,
    only_digits,
)


logger = logging.getLogger(__name__)

FIRST_STEP = 1
LAST_STEP = 4

MERGE_OVERWRITE = "overwrite"
MERGE_KEEP_USER_EDITS = "keep_user_edits"
MERGE_POLICIES = (MERGE_OVERWRITE, MERGE_KEEP_USER_EDITS)

CEP_FILLED_FIELDS = ("street", "neighborhood", "city", "state")
ADDRESS_REQUIRED_FIELDS = ("cep", "street", "number", "neighborhood", "city", "state")
BANK_REQUIRED_FIELDS = ("bank_code", "agency", "account_number", "account_holder_name", "account_holder_document")


@dataclass
class RegistrationData:
    document_type: str = "cnpj"
    document_number: str = ""
    whatsapp: str = ""
    cep: str = ""
    street: str = ""
    number: str = ""
    complement: str = ""
    neighborhood: str = ""
    city: str = ""
    state: str = ""
    specialties: List[str] = field(default_factory=list)
    website: str = ""
    description: str = ""
    payment_method: str = "pix"
    pix_key: str = ""
    bank_code: str = ""
    agency: str = ""
    agency_digit: str = ""
    account_number: str = ""
    account_digit: str = ""
    account_type: str = "corrente"
    account_holder_name: str = ""
    account_holder_document: str = ""

    def to_supplier_data(self) -> Dict[str, Any]:
        if self.payment_method == "pix":
            payment = {
                "method": "pix",
                "pix_key": self.pix_key.strip(),
                "pix_key_type": detect_pix_key_type(self.pix_key),
            }
        else:
            payment = {
                "method": "bank_account",
                "bank_code": self.bank_code.strip(),
                "bank_name": bank_name(self.bank_code.strip()),
                "agency": only_digits(self.agency),
                "agency_digit": self.agency_digit.strip() or None,
                "account_number": only_digits(self.account_number),
                "account_digit": self.account_digit.strip() or None,
                "account_type": self.account_type,
                "holder_name": self.account_holder_name.strip(),
                "holder_document": only_digits(self.account_holder_document),
            }
        return {
            "document_type": self.document_type,
            "document_number": normalize_document_number(self.document_type, self.document_number),
            "whatsapp": only_digits(self.whatsapp),
            "address": {
                "zipCode": normalize_cep(self.cep),
                "street": self.street.strip(),
                "number": self.number.strip(),
                "complement": self.complement.strip() or None,
                "neighborhood": self.neighborhood.strip(),
                "city": self.city.strip(),
                "state": self.state.strip().upper(),
            },
            "specialties": list(self.specialties),
            "website": self.website.strip() or None,
            "description": self.description.strip() or None,
            "payment": payment,
        }


@dataclass(frozen=True)
class RegistrationOutcome:
    result: RegistrationResult
    session: SessionOutcome
    redirect_to: str | None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "supplier_id": self.result.supplier_id,
            "quote_id": self.result.quote_id,
            "authenticated": self.session.authenticated,
            "login_required": not self.session.authenticated,
            "session_method": self.session.method,
            "redirect_to": self.redirect_to,
            "message": self.session.message,
        }


class RegistrationWizard:
    """Four-step supplier onboarding.

    Moving forward validates the current step; moving back never does.
    Errors are keyed by field name so the UI can attach each to its input.
    """

    def __init__(
        self,
        gateway: QuoteGateway,
        *,
        cep_lookup: CepLookup | None = None,
        merge_policy: str = MERGE_KEEP_USER_EDITS,
    ) -> None:
        if merge_policy not in MERGE_POLICIES:
            raise ValueError(f"politica de CEP invalida: {merge_policy}")
        self.gateway = gateway
        self.cep_lookup = cep_lookup
        self.merge_policy = merge_policy
        self.step = FIRST_STEP
        self.data = RegistrationData()
        self.errors: Dict[str, str] = {}
        self.notices: List[str] = []
        self.supplier_name: str | None = None
        self._edited_address_fields: set[str] = set()

    # --- field edits -------------------------------------------------

    def set_field(self, name: str, value: Any) -> None:
        if name == "specialties":
            self.data.specialties = []
            for specialty in value or []:
                self.add_specialty(specialty)
            return
        if name not in RegistrationData.__dataclass_fields__:
            raise ValidationError(code="unknown_field", message_key="validation_error", field_errors={name: "unknown_field"})
        setattr(self.data, name, "" if value is None else str(value))
        if name in CEP_FILLED_FIELDS:
            self._edited_address_fields.add(name)
        if name == "document_number" and not self.data.account_holder_document:
            self.data.account_holder_document = only_digits(value)

    def update(self, values: Dict[str, Any]) -> None:
        for name, value in (values or {}).items():
            self.set_field(name, value)

    def add_specialty(self, raw_value: object) -> bool:
        specialty = str(raw_value or "").strip()
        if not specialty or specialty in self.data.specialties:
            return False
        if len(specialty) > MAX_SPECIALTY_LENGTH:
            raise ValidationError(
                code="specialty_too_long",
                message_key="specialty_too_long",
                field_errors={"specialties": "specialty_too_long"},
            )
        if len(self.data.specialties) >= MAX_SPECIALTIES:
            raise ValidationError(
                code="specialties_limit",
                message_key="specialties_limit",
                field_errors={"specialties": "specialties_limit"},
            )
        self.data.specialties.append(specialty)
        return True

    def remove_specialty(self, specialty: str) -> bool:
        if specialty in self.data.specialties:
            self.data.specialties.remove(specialty)
            return True
        return False

    def prefill_from_supplier(self, supplier: SupplierProfile | None) -> None:
        if supplier is None:
            return
        self.supplier_name = supplier.name
        if supplier.cnpj and not self.data.document_number:
            self.data.document_number = only_digits(supplier.cnpj)
            self.data.document_type = "cpf" if len(self.data.document_number) == 11 else "cnpj"
        if supplier.phone and not self.data.whatsapp:
            self.data.whatsapp = supplier.phone
        if supplier.city and not self.data.city:
            self.data.city = supplier.city
        if supplier.state and not self.data.state:
            self.data.state = supplier.state
        if supplier.name and not self.data.account_holder_name:
            self.data.account_holder_name = supplier.name
        if self.data.document_number and not self.data.account_holder_document:
            self.data.account_holder_document = self.data.document_number

    # --- CEP ---------------------------------------------------------

    def lookup_cep(self, raw_cep: object) -> CepAddress | None:
        """Fill address fields from the CEP; only 8-digit codes are looked up."""
        self.data.cep = "" if raw_cep is None else str(raw_cep)
        cep = normalize_cep(raw_cep)
        if cep is None or self.cep_lookup is None:
            return None
        try:
            address = self.cep_lookup.lookup(cep)
        except GatewayError as exc:
            observe_gateway_call("cep_lookup", "failed")
            logger.warning("cep_lookup_failed", extra={"cep": cep, "details": str(exc)})
            self.errors["cep"] = "cep_lookup_failed"
            return None
        observe_gateway_call("cep_lookup", "ok")
        if address is None:
            self.notices.append(warning_message("cep_not_found"))
            return None
        self.errors.pop("cep", None)
        self.merge_address(address)
        return address

    def merge_address(self, address: CepAddress) -> None:
        for name in CEP_FILLED_FIELDS:
            value = getattr(address, name)
            if not value:
                continue
            if self.merge_policy == MERGE_KEEP_USER_EDITS and name in self._edited_address_fields:
                if str(getattr(self.data, name) or "").strip():
                    continue
            setattr(self.data, name, value)

    # --- validation --------------------------------------------------

    def validate_step(self, step: int) -> Dict[str, str]:
        validators = {
            1: self._validate_identity,
            2: self._validate_address,
            3: self._validate_business,
            4: self._validate_payout,
        }
        if step not in validators:
            raise ValidationError(code="registration_step_invalid", message_key="registration_step_invalid")
        return validators[step]()

    def _validate_identity(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if self.data.document_type not in ("cpf", "cnpj"):
            errors["document_type"] = "field_required"
        elif normalize_document_number(self.data.document_type, self.data.document_number) is None:
            errors["document_number"] = "document_number_invalid"
        if not self.data.whatsapp.strip():
            errors["whatsapp"] = "whatsapp_required"
        return errors

    def _validate_address(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        for name in ADDRESS_REQUIRED_FIELDS:
            if not str(getattr(self.data, name) or "").strip():
                errors[name] = "field_required"
        if "cep" not in errors and normalize_cep(self.data.cep) is None:
            errors["cep"] = "cep_invalid"
        if "state" not in errors and not is_valid_state(self.data.state):
            errors["state"] = "state_invalid"
        return errors

    def _validate_business(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if not self.data.specialties:
            errors["specialties"] = "specialties_required"
        if len(self.data.description or "") > MAX_DESCRIPTION_LENGTH:
            errors["description"] = "description_too_long"
        return errors

    def _validate_payout(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        method = self.data.payment_method
        if method == "pix":
            if not self.data.pix_key.strip():
                errors["pix_key"] = "pix_key_required"
            elif detect_pix_key_type(self.data.pix_key) is None:
                errors["pix_key"] = "pix_key_invalid"
        elif method == "bank_account":
            for name in BANK_REQUIRED_FIELDS:
                if not str(getattr(self.data, name) or "").strip():
                    errors[name] = "field_required"
            if self.data.account_type not in ACCOUNT_TYPES:
                errors["account_type"] = "account_type_invalid"
        else:
            errors["payment_method"] = "payment_method_invalid"
        return errors

    @property
    def description_remaining(self) -> int:
        return MAX_DESCRIPTION_LENGTH - len(self.data.description or "")

    # --- navigation --------------------------------------------------

    def next(self) -> bool:
        errors = self.validate_step(self.step)
        self.errors = errors
        if errors:
            return False
        if self.step < LAST_STEP:
            self.step += 1
        return True

    def back(self) -> None:
        self.errors = {}
        if self.step > FIRST_STEP:
            self.step -= 1

    # --- completion --------------------------------------------------

    def _validate_all(self) -> None:
        for step in range(FIRST_STEP, LAST_STEP + 1):
            errors = self.validate_step(step)
            if errors:
                self.step = step
                self.errors = errors
                first_key = next(iter(errors.values()))
                raise ValidationError(
                    code="registration_step_invalid",
                    message_key=first_key,
                    field_errors=errors,
                    payload={"step": step},
                )

    def complete(self, invitation_token: str, establisher: SessionEstablisher) -> RegistrationOutcome:
        self._validate_all()
        try:
            result = self.gateway.complete_supplier_registration(invitation_token, self.data.to_supplier_data())
        except GatewayError as exc:
            observe_gateway_call("complete_supplier_registration", "failed")
            if exc.code in ("token_expired", "token_invalid"):
                raise TokenResolutionError(
                    code="registration_link_expired",
                    message_key="registration_link_expired",
                    http_status=410,
                    details=str(exc),
                ) from exc
            raise IntegrationError(code="registration_failed", message_key="registration_failed", details=str(exc)) from exc
        if not result.success:
            observe_gateway_call("complete_supplier_registration", "failed")
            raise IntegrationError(code="registration_failed", message_key="registration_failed", details=result.message)
        observe_gateway_call("complete_supplier_registration", "ok")

        session = establisher.establish(result)
        redirect_to = None
        if result.quote_id:
            redirect_to = f"/supplier/quick-response/{result.quote_id}/{invitation_token}"
        logger.info(
            "supplier_registration_completed",
            extra={
                "supplier_id": result.supplier_id,
                "authenticated": session.authenticated,
                "session_trail": session.trail,
            },
        )
        return RegistrationOutcome(result=result, session=session, redirect_to=redirect_to)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "data": asdict(self.data),
            "errors": dict(self.errors),
            "notices": list(self.notices),
            "description_remaining": self.description_remaining,
        }
