"""
Registre central des routers (API v1, health).
- API v1: inscriptions (fonctions + registrations), paiements (webhook, verify-payment)
- Health: /health, /health/supabase
"""
from fastapi import FastAPI
from ticketing.registrations import views as registrations_views
from ticketing.payments import views as payments_views
from ticketing.health.router import router as health_router


def register_routers(app: FastAPI) -> None:
    """
    Agrège tous les routers de l'application.
    L'ordre n'a pas d'impact sauf conflits de chemins (évités par préfixes).
    """
    # API v1
    app.include_router(registrations_views.functions_router)
    app.include_router(registrations_views.router)
    app.include_router(payments_views.router)
    app.include_router(payments_views.registrations_router)
    # Health & monitoring
    app.include_router(health_router)
