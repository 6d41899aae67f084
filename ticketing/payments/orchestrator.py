"""
Orchestration du paiement d'une inscription.

États: INIT -> CUSTOMER_CREATED -> ORDER_CREATED -> INVENTORY_OK
       -> PAYMENT_CAPTURED -> METADATA_ATTACHED -> DONE, FAILED depuis toute étape.

- Contrôle de stock en lecture seule avant tout appel prestataire.
- Une clé d'idempotence par étape, réutilisée lors des rejeux.
- Échec après capture: remboursement compensatoire (au mieux), libération du stock,
  inscription marquée remboursée (payment_status refunded, plus jamais complétée).
- Échec avant capture: libération du stock, inscription marquée en échec, pas de remboursement.
- Une fois le paiement enregistré (inscription completed), plus aucune compensation:
  l'attribution du numéro est rejouée puis signalée en ConfirmationPending.
- La dernière étape appelle la finalisation idempotente (partagée avec le webhook).
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, TypeVar
import logging
import time

from ticketing.config import Settings
from ticketing.errors import ConfirmationPending, PersistenceError, TicketingError
from ticketing.orders.builder import Order
from ticketing.orders.inventory import InventoryGuard, Reservation
from ticketing.pricing.fees import FeeBreakdown
from .provider import PaymentProvider
from .retry import with_retries

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PaymentState(Enum):
    INIT = "init"
    CUSTOMER_CREATED = "customer_created"
    ORDER_CREATED = "order_created"
    INVENTORY_OK = "inventory_ok"
    PAYMENT_CAPTURED = "payment_captured"
    METADATA_ATTACHED = "metadata_attached"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PaymentAttempt:
    registration_id: str
    base_key: str
    state: PaymentState = PaymentState.INIT
    history: List[PaymentState] = field(default_factory=lambda: [PaymentState.INIT])
    customer_id: Optional[str] = None
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    refund_id: Optional[str] = None
    payment_recorded: bool = False
    reservations: List[Reservation] = field(default_factory=list)
    error: Optional[Exception] = None

    def key(self, step: str) -> str:
        return f"{self.base_key}:{step}"

    def advance(self, state: PaymentState) -> None:
        self.state = state
        self.history.append(state)

    @property
    def captured(self) -> bool:
        return self.payment_id is not None


@dataclass(frozen=True)
class PaymentOutcome:
    registration_id: str
    state: PaymentState
    payment_id: Optional[str]
    confirmation_number: Optional[str]
    attempt: PaymentAttempt


class PaymentOrchestrator:
    def __init__(
        self,
        provider: PaymentProvider,
        guard: InventoryGuard,
        finalizer,
        settings: Settings,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.guard = guard
        self.finalizer = finalizer
        self.settings = settings
        self.sleep = sleep

    def _call(self, op: str, fn: Callable[[], T]) -> T:
        return with_retries(
            fn,
            op=op,
            attempts=self.settings.provider_max_retries,
            backoff=self.settings.provider_retry_backoff_seconds,
            sleep=self.sleep,
        )

    def run(
        self,
        registration_id: str,
        order: Order,
        payment_method_id: str,
        *,
        registration_type: str,
        amounts: Optional[FeeBreakdown] = None,
    ) -> PaymentOutcome:
        attempt = PaymentAttempt(registration_id=registration_id, base_key=order.idempotency_key)
        try:
            # Pré-contrôle: aucun appel prestataire si le stock manque
            self.guard.check_order(order)

            customer_id = self._call("create_customer", lambda: self.provider.create_customer(
                order.contact, idempotency_key=attempt.key("customer"),
            ))
            attempt.customer_id = customer_id
            attempt.advance(PaymentState.CUSTOMER_CREATED)
            order = order.with_customer(customer_id)

            attempt.order_id = self._call("create_order", lambda: self.provider.create_order(
                order, idempotency_key=attempt.key("order"),
            ))
            attempt.advance(PaymentState.ORDER_CREATED)

            attempt.reservations = self.guard.reserve_order(order)
            attempt.advance(PaymentState.INVENTORY_OK)

            attempt.payment_id = self._call("capture_payment", lambda: self.provider.capture_payment(
                attempt.order_id, payment_method_id, order.amount_due, idempotency_key=attempt.key("payment"),
            ))
            attempt.advance(PaymentState.PAYMENT_CAPTURED)
            logger.info(
                "payments.orchestrator.captured registration_id=%s payment_id=%s",
                registration_id, attempt.payment_id,
            )

            metadata = dict(order.metadata)
            metadata["registration_id"] = registration_id
            self._call("attach_metadata", lambda: self.provider.attach_metadata(
                attempt.order_id, metadata, idempotency_key=attempt.key("metadata"),
            ))
            attempt.advance(PaymentState.METADATA_ATTACHED)

            self.finalizer.record_payment(registration_id, attempt.payment_id, amounts=amounts)
            attempt.payment_recorded = True
            confirmation = self._confirm(attempt, registration_type)
            attempt.advance(PaymentState.DONE)
        except Exception as e:
            attempt.error = e
            if self._payment_recorded(attempt):
                # Inscription déjà completed: jamais de remboursement, le numéro reste attribuable
                logger.error(
                    "payments.orchestrator.confirmation_pending registration_id=%s payment_id=%s error=%s",
                    registration_id, attempt.payment_id, e,
                )
                if isinstance(e, ConfirmationPending):
                    raise
                raise ConfirmationPending(
                    "Paiement enregistré, numéro de confirmation en attente",
                    registration_id=registration_id,
                ) from e
            self._compensate(attempt, order)
            raise

        logger.info(
            "payments.orchestrator.done registration_id=%s confirmation=%s",
            registration_id, confirmation,
        )
        return PaymentOutcome(
            registration_id=registration_id,
            state=attempt.state,
            payment_id=attempt.payment_id,
            confirmation_number=confirmation,
            attempt=attempt,
        )

    def _confirm(self, attempt: PaymentAttempt, registration_type: str) -> str:
        """Attribution idempotente du numéro, rejouée sur erreur de persistance."""
        attempts = max(1, self.settings.provider_max_retries)
        for n in range(1, attempts + 1):
            try:
                return self.finalizer.assign_confirmation(attempt.registration_id, registration_type)
            except PersistenceError as e:
                if n >= attempts:
                    raise ConfirmationPending(
                        "Paiement enregistré, numéro de confirmation en attente",
                        registration_id=attempt.registration_id,
                    ) from e
                logger.warning(
                    "payments.orchestrator.confirmation_retry registration_id=%s attempt=%s",
                    attempt.registration_id, n,
                )
                self.sleep(self.settings.provider_retry_backoff_seconds * n)
        raise ConfirmationPending("Numéro de confirmation en attente", registration_id=attempt.registration_id)

    def _payment_recorded(self, attempt: PaymentAttempt) -> bool:
        if attempt.payment_recorded:
            return True
        if not attempt.captured:
            return False
        try:
            return self.finalizer.get(attempt.registration_id).get("status") == "completed"
        except TicketingError:
            return False

    def _compensate(self, attempt: PaymentAttempt, order: Order) -> None:
        failed_at = attempt.state
        logger.warning(
            "payments.orchestrator.failed registration_id=%s state=%s error=%s",
            attempt.registration_id, failed_at.value, attempt.error,
        )
        if attempt.captured:
            try:
                attempt.refund_id = self._call("refund", lambda: self.provider.refund(
                    attempt.payment_id, order.amount_due, idempotency_key=attempt.key("refund"),
                ))
                logger.info(
                    "payments.orchestrator.refunded registration_id=%s refund_id=%s",
                    attempt.registration_id, attempt.refund_id,
                )
            except TicketingError:
                # Remboursement manuel nécessaire
                logger.exception(
                    "payments.orchestrator.refund_failed registration_id=%s payment_id=%s amount=%s",
                    attempt.registration_id, attempt.payment_id, order.amount_due,
                )
        if attempt.reservations:
            self.guard.release(attempt.reservations)
        try:
            if attempt.refund_id:
                self.finalizer.refunded(attempt.registration_id, attempt.refund_id, reason=str(attempt.error))
            else:
                self.finalizer.fail(attempt.registration_id, reason=str(attempt.error))
        except TicketingError:
            logger.exception("payments.orchestrator.mark_failed failed registration_id=%s", attempt.registration_id)
        attempt.advance(PaymentState.FAILED)
