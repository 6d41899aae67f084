"""
Taxonomie fermée des erreurs métier de la billetterie.

Chaque ErrorKind porte:
- error_type: code exposé au client ({success: false, errorType, error})
- status_code: code HTTP rendu par les gestionnaires d'exceptions
- retry: classe de reprise ("retryable", "terminal", "fatal")

L'orchestrateur ne rejoue que les erreurs "retryable" du prestataire de paiement.
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    VALIDATION = ("VALIDATION_ERROR", 400, "terminal")
    NOT_FOUND = ("NOT_FOUND", 404, "terminal")
    MISSING_CATALOG_REFERENCE = ("MISSING_CATALOG_REFERENCE", 400, "terminal")
    INVENTORY_UNAVAILABLE = ("INVENTORY_UNAVAILABLE", 400, "terminal")
    INVENTORY_CONFLICT = ("INVENTORY_UNAVAILABLE", 409, "retryable")
    CATALOG_UNAVAILABLE = ("CATALOG_UNAVAILABLE", 503, "retryable")
    PAYMENT_DECLINED = ("PAYMENT_FAILED", 402, "terminal")
    PAYMENT_FAILED = ("PAYMENT_FAILED", 400, "terminal")
    PAYMENT_REFUNDED = ("PAYMENT_FAILED", 409, "terminal")
    PROVIDER_UNAVAILABLE = ("PAYMENT_PROVIDER_UNAVAILABLE", 503, "retryable")
    PERSISTENCE = ("PERSISTENCE_ERROR", 500, "fatal")
    CONFIRMATION_PENDING = ("CONFIRMATION_PENDING", 503, "retryable")
    INTERNAL = ("INTERNAL_ERROR", 500, "fatal")

    def __init__(self, error_type: str, status_code: int, retry: str):
        self.error_type = error_type
        self.status_code = status_code
        self.retry = retry


class TicketingError(Exception):
    """Base des erreurs typées; message destiné au client."""
    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, *, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind

    @property
    def error_type(self) -> str:
        return self.kind.error_type

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    @property
    def retryable(self) -> bool:
        return self.kind.retry == "retryable"

    def to_payload(self) -> dict:
        return {"success": False, "error": self.message, "errorType": self.error_type}


class ValidationError(TicketingError):
    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, *, code: str = "invalid"):
        super().__init__(message)
        self.code = code


class NotFoundError(TicketingError):
    kind = ErrorKind.NOT_FOUND


class MissingCatalogReference(TicketingError):
    kind = ErrorKind.MISSING_CATALOG_REFERENCE

    def __init__(self, message: str, *, item_id: Optional[str] = None):
        super().__init__(message)
        self.item_id = item_id


class InsufficientInventory(TicketingError):
    kind = ErrorKind.INVENTORY_UNAVAILABLE

    def __init__(self, item_name: str, *, requested: int, available: int, catalog_item_id: Optional[str] = None):
        if available <= 0:
            message = f"Stock insuffisant: {item_name} est épuisé"
        else:
            message = f"Stock insuffisant: {item_name} ({available} disponibles, {requested} demandés)"
        super().__init__(message)
        self.item_name = item_name
        self.requested = requested
        self.available = available
        self.catalog_item_id = catalog_item_id


class InventoryConflict(TicketingError):
    kind = ErrorKind.INVENTORY_CONFLICT


class CatalogLookupError(TicketingError):
    """Lecture du catalogue impossible (distinct de « introuvable »)."""
    kind = ErrorKind.CATALOG_UNAVAILABLE


class PaymentDeclined(TicketingError):
    kind = ErrorKind.PAYMENT_DECLINED

    def __init__(self, message: str, *, decline_code: Optional[str] = None):
        super().__init__(message)
        self.decline_code = decline_code


class PaymentProviderError(TicketingError):
    kind = ErrorKind.PAYMENT_FAILED


class PaymentRefunded(TicketingError):
    """Paiement remboursé par compensation: l'inscription ne peut plus être complétée."""
    kind = ErrorKind.PAYMENT_REFUNDED


class ProviderUnavailable(TicketingError):
    kind = ErrorKind.PROVIDER_UNAVAILABLE


class PersistenceError(TicketingError):
    kind = ErrorKind.PERSISTENCE


class ConfirmationPending(TicketingError):
    """
    Paiement enregistré (inscription completed) sans numéro de confirmation:
    le client rejoue via verify-payment, le paiement n'est jamais remboursé.
    """
    kind = ErrorKind.CONFIRMATION_PENDING

    def __init__(self, message: str, *, registration_id: str):
        super().__init__(message)
        self.registration_id = registration_id

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["registrationId"] = self.registration_id
        return payload


@dataclass(frozen=True)
class PriceIntegrityWarning:
    """
    Signalement (pas une exception) attaché à une ligne dont le prix
    n'a pas pu être vérifié contre le catalogue.
    """
    item_id: str
    client_price: Decimal
    reason: str = "catalog_record_not_found"
