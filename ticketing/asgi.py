"""
ASGI entrypoint: expose `app` for process managers / deployments.

- En production, un process manager (ex: gunicorn -k uvicorn.workers.UvicornWorker) importe
  `ticketing.asgi:app` pour servir l'application FastAPI en mode ASGI.
- Toute la configuration (routes, middlewares, exceptions, contexte) est centralisée
  dans ticketing.app_setup, ce fichier ne fait qu'exposer l'instance `app`.
"""

from ticketing.app import app

__all__ = ["app"]
