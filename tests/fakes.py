"""
Doubles en mémoire du catalogue, du prestataire de paiement et du stockage
des inscriptions, avec les mêmes gardes que les implémentations Supabase/Stripe.
"""
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from ticketing.catalog.models import CatalogItem
from ticketing.errors import CatalogLookupError, MissingCatalogReference
from ticketing.payments.provider import PaymentStatus
from ticketing.registrations.confirmation import generate_confirmation_number


def ticket(item_id: str, name: str, price: str, available: Optional[int] = None, function_id: str = "fn-1") -> CatalogItem:
    return CatalogItem(id=item_id, name=name, price=Decimal(price), available_count=available, function_id=function_id)


def package(item_id: str, name: str, price: str, includes=(), available: Optional[int] = None, function_id: str = "fn-1") -> CatalogItem:
    return CatalogItem(
        id=item_id,
        name=name,
        price=Decimal(price),
        includes=tuple(includes),
        available_count=available,
        function_id=function_id,
        is_package=True,
    )


class FakeCatalog:
    def __init__(self, tickets: Iterable[CatalogItem] = (), packages: Iterable[CatalogItem] = ()):
        self.tickets = {t.id: t for t in tickets}
        self.packages = {p.id: p for p in packages}
        self.stock: Dict[str, int] = {
            it.id: it.available_count
            for it in list(self.tickets.values()) + list(self.packages.values())
            if it.available_count is not None
        }
        self.fail_lookups = False
        self.conflicts = 0
        self.availability_reads = 0

    def _pick(self, source, ids, function_id):
        if self.fail_lookups:
            raise CatalogLookupError("Catalogue momentanément indisponible")
        return {
            i: source[i] for i in ids
            if i in source and (not function_id or source[i].function_id == function_id)
        }

    def get_catalog_items(self, ids, function_id=None):
        return self._pick(self.tickets, ids, function_id)

    def get_packages(self, ids, function_id=None):
        return self._pick(self.packages, ids, function_id)

    def get_catalog_item(self, item_id):
        return self.tickets.get(item_id)

    def get_package(self, package_id):
        return self.packages.get(package_id)

    def get_available_quantity(self, item_id):
        self.availability_reads += 1
        if item_id not in self.tickets and item_id not in self.packages:
            raise MissingCatalogReference(f"Article de catalogue introuvable: {item_id}", item_id=item_id)
        return self.stock.get(item_id)

    def compare_and_set_available(self, item_id, expected, new):
        if self.conflicts > 0:
            self.conflicts -= 1
            return False
        if self.stock.get(item_id) != expected:
            return False
        self.stock[item_id] = new
        return True


class FakeProvider:
    """Prestataire idempotent: une clé déjà vue renvoie le même résultat sans nouvel effet."""

    def __init__(self):
        self.calls: List[str] = []
        self.keys: List[str] = []
        self.failures: Dict[str, List[Exception]] = {}
        self.results: Dict[str, Any] = {}
        self.intents: Dict[str, Dict[str, Any]] = {}
        self.refunds: List[tuple] = []
        self._seq = 0

    def fail(self, op: str, *errors: Exception) -> None:
        self.failures.setdefault(op, []).extend(errors)

    def _next(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}_{self._seq}"

    def _record(self, op: str, key: str, make):
        self.calls.append(op)
        self.keys.append(key)
        queue = self.failures.get(op)
        if queue:
            raise queue.pop(0)
        if key not in self.results:
            self.results[key] = make()
        return self.results[key]

    def create_customer(self, contact, *, idempotency_key):
        return self._record("create_customer", idempotency_key, lambda: self._next("cus"))

    def create_order(self, order, *, idempotency_key):
        def make():
            intent_id = self._next("pi")
            self.intents[intent_id] = {
                "status": "requires_payment_method",
                "amount": order.amount_due,
                "metadata": dict(order.metadata),
                "customer": order.customer_id,
                "lines": order.lines,
            }
            return intent_id
        return self._record("create_order", idempotency_key, make)

    def capture_payment(self, order_id, payment_method_id, amount, *, idempotency_key):
        def make():
            self.intents[order_id]["status"] = "succeeded"
            self.intents[order_id]["captured"] = amount
            return order_id
        return self._record("capture_payment", idempotency_key, make)

    def refund(self, payment_id, amount, *, idempotency_key):
        def make():
            self.refunds.append((payment_id, amount))
            if payment_id in self.intents:
                self.intents[payment_id]["refunded"] = amount
            return self._next("re")
        return self._record("refund", idempotency_key, make)

    def attach_metadata(self, order_id, metadata, *, idempotency_key):
        def make():
            self.intents[order_id]["metadata"].update(metadata)
            return None
        return self._record("attach_metadata", idempotency_key, make)

    def get_payment(self, payment_id):
        intent = self.intents[payment_id]
        return PaymentStatus(
            payment_id=payment_id,
            status=intent["status"],
            amount=Decimal(intent.get("captured") or intent["amount"]),
            metadata={k: str(v) for k, v in intent["metadata"].items()},
            amount_refunded=Decimal(intent.get("refunded") or 0),
        )


class FakeRegistrationStore:
    def __init__(self):
        self.registrations: Dict[str, Dict[str, Any]] = {}
        self.attendees: List[Dict[str, Any]] = []
        self.tickets: List[Dict[str, Any]] = []
        self.completions = 0
        self.confirmation_failures: List[Exception] = []

    def create_registration(self, row):
        self.registrations[row["registration_id"]] = dict(row)
        return row["registration_id"]

    def create_attendees(self, rows):
        self.attendees.extend(dict(r) for r in rows)

    def create_tickets(self, rows):
        self.tickets.extend(dict(r) for r in rows)

    def get_registration(self, registration_id):
        row = self.registrations.get(registration_id)
        return dict(row) if row else None

    def mark_completed(self, registration_id, payment_id, amounts):
        row = self.registrations.get(registration_id)
        if row is None or row["status"] == "completed" or row.get("payment_status") == "refunded":
            return False
        row.update({"status": "completed", "payment_status": "completed", "payment_id": payment_id})
        row.update({k: str(v) for k, v in (amounts or {}).items()})
        self.completions += 1
        return True

    def mark_failed(self, registration_id, reason):
        row = self.registrations.get(registration_id)
        if row is None or row["status"] == "completed" or row.get("payment_status") == "refunded":
            return False
        row.update({"status": "failed", "payment_status": "failed", "failure_reason": reason})
        return True

    def mark_refunded(self, registration_id, refund_id, reason):
        row = self.registrations.get(registration_id)
        if row is None or row["status"] == "completed":
            return False
        row.update({"status": "failed", "payment_status": "refunded", "refund_id": refund_id, "failure_reason": reason})
        return True

    def mark_tickets_sold(self, registration_id):
        sold = 0
        for t in self.tickets:
            if t["registration_id"] == registration_id and t["status"] == "reserved":
                t["status"] = "sold"
                sold += 1
        return sold

    def assign_confirmation_number(self, registration_id, prefix):
        if self.confirmation_failures:
            raise self.confirmation_failures.pop(0)
        row = self.registrations[registration_id]
        if not row.get("confirmation_number"):
            taken = {r.get("confirmation_number") for r in self.registrations.values()}
            number = generate_confirmation_number(prefix)
            while number in taken:
                number = generate_confirmation_number(prefix)
            row["confirmation_number"] = number
        return row["confirmation_number"]
