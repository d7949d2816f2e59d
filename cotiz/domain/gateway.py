from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List, Sequence

from cotiz.domain.contracts import (
    AuthIdentity,
    CepAddress,
    LetterDraft,
    PaymentRecord,
    PlatformBalance,
    QuickResponseSubmission,
    RegistrationResult,
    ReleaseResult,
    RequiredDocument,
    SessionTokens,
    StoredBlob,
    SubmissionResult,
    SupplierProfile,
    TokenValidation,
    UploadedFile,
)


class GatewayError(RuntimeError):
    """Transport or server failure of an external collaborator."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status: int | None = None,
        definitive: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = str(code or "").strip() or None
        self.status = int(status) if status is not None else None
        self.definitive = bool(definitive)


class QuoteGateway(ABC):
    @abstractmethod
    def validate_quote_token(self, token: str) -> TokenValidation:
        raise NotImplementedError

    @abstractmethod
    def get_supplier(self, supplier_id: str) -> SupplierProfile | None:
        raise NotImplementedError

    @abstractmethod
    def submit_quick_response(self, submission: QuickResponseSubmission) -> SubmissionResult:
        raise NotImplementedError

    @abstractmethod
    def complete_supplier_registration(self, invitation_token: str, supplier_data: Dict[str, Any]) -> RegistrationResult:
        raise NotImplementedError

    @abstractmethod
    def get_supplier_eligibility_for_letter(
        self,
        supplier_id: str,
        client_id: str,
        required_documents: Sequence[RequiredDocument],
    ) -> Dict[str, Any]:
        raise NotImplementedError


class LetterGateway(ABC):
    @abstractmethod
    def create_letter(self, draft: LetterDraft) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def delete_letter(self, letter_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_letter(self, letter_id: str, client_id: str | None = None) -> Dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def list_letters(self, client_id: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def send_letter(self, letter_id: str, *, resend: bool = False) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def cancel_letter(self, letter_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def find_recipient_by_token(self, response_token: str) -> Dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def mark_recipient_viewed(self, recipient_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def record_recipient_response(
        self,
        recipient_id: str,
        *,
        status: str,
        notes: str | None,
        attachment_url: str | None,
    ) -> Dict[str, Any]:
        raise NotImplementedError


class PaymentsGateway(ABC):
    @abstractmethod
    def get_platform_balance(self) -> PlatformBalance:
        raise NotImplementedError

    @abstractmethod
    def release_escrow_payment(self, payment_id: str) -> ReleaseResult:
        raise NotImplementedError

    @abstractmethod
    def list_payments(self, statuses: Sequence[str], *, released_since: date | None = None) -> List[PaymentRecord]:
        raise NotImplementedError


class BlobStorage(ABC):
    @abstractmethod
    def save(self, upload: UploadedFile, *, folder: str, name_hint: str | None = None) -> StoredBlob:
        raise NotImplementedError

    @abstractmethod
    def delete(self, storage_uri: str) -> bool:
        raise NotImplementedError


class CepLookup(ABC):
    @abstractmethod
    def lookup(self, cep: str) -> CepAddress | None:
        """Address for an 8-digit CEP, or None when the CEP does not exist."""
        raise NotImplementedError


class AuthClient(ABC):
    @abstractmethod
    def set_session(self, tokens: SessionTokens) -> AuthIdentity:
        raise NotImplementedError

    @abstractmethod
    def sign_in_with_password(self, email: str, password: str) -> AuthIdentity:
        raise NotImplementedError
