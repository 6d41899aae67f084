"""
Factory d'application pour les entrypoints (ex: ticketing.asgi).
Ordonne les étapes d'initialisation de manière lisible et testable.
"""
from fastapi import FastAPI
from .lifespan import lifespan
from .middlewares import register_basic_middlewares, register_security_middleware, register_force_https_middleware
from .exceptions import register_exception_handlers
from .routers import register_routers


def create_app() -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      1) middlewares de base (CORS, TrustedHost, ProxyHeaders) puis sécurité
      2) gestionnaires d'exceptions (format {success: false, error, errorType})
      3) tous les routers (API v1, health)
      4) middleware HTTPS en dernier pour qu'il s'exécute en premier
    """
    app = FastAPI(title="Masonic Ticketing API", lifespan=lifespan)
    register_basic_middlewares(app)
    register_security_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    register_force_https_middleware(app)
    return app
