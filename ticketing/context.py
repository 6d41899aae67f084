"""
Contexte applicatif explicite: remplace les clients globaux.

Construit une fois par le lifespan (app.state.context) et injecté par
requête via la dépendance get_context; les tests construisent le leur.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Optional
import time

from fastapi import Request

from ticketing.catalog.repository import CatalogSource, SupabaseCatalogRepository
from ticketing.config import Settings, PROVIDER_TIMEOUT_SECONDS
from ticketing.orders.inventory import InventoryGuard
from ticketing.payments.orchestrator import PaymentOrchestrator
from ticketing.payments.provider import PaymentProvider
from ticketing.registrations.finalizer import RegistrationFinalizer
from ticketing.registrations.repository import RegistrationStore, SupabaseRegistrationRepository


@dataclass(frozen=True)
class AppContext:
    catalog: CatalogSource
    registrations: RegistrationStore
    payments: PaymentProvider
    settings: Settings = field(default_factory=Settings)
    db: Optional[Any] = None
    sleep: Callable[[float], None] = time.sleep

    def inventory_guard(self) -> InventoryGuard:
        return InventoryGuard(self.catalog, self.settings.inventory_max_conflict_retries)

    def finalizer(self) -> RegistrationFinalizer:
        return RegistrationFinalizer(self.registrations, self.settings)

    def orchestrator(self) -> PaymentOrchestrator:
        return PaymentOrchestrator(
            self.payments,
            self.inventory_guard(),
            self.finalizer(),
            self.settings,
            sleep=self.sleep,
        )


def build_context(settings: Optional[Settings] = None) -> AppContext:
    """Contexte de production: Supabase service-role + Stripe."""
    from ticketing.infra.supabase_client import build_service_client
    from ticketing.payments.stripe_client import StripePaymentProvider

    settings = settings or Settings.from_config()
    client = build_service_client()
    return AppContext(
        catalog=SupabaseCatalogRepository(client),
        registrations=SupabaseRegistrationRepository(client),
        payments=StripePaymentProvider(currency=settings.currency, timeout=PROVIDER_TIMEOUT_SECONDS),
        settings=settings,
        db=client,
    )


def get_context(request: Request) -> AppContext:
    ctx = getattr(request.app.state, "context", None)
    if ctx is None:
        raise RuntimeError("AppContext non initialisé (lifespan)")
    return ctx
