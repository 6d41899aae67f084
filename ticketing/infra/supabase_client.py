"""
Construction des clients Supabase.

Pas de singleton global: le client service-role est créé une fois par le
lifespan et porté par AppContext. Les timeouts PostgREST viennent de la config.
"""
from typing import Optional
from supabase import create_client, Client
from supabase.lib.client_options import ClientOptions
from ticketing.config import SUPABASE_URL, SUPABASE_SERVICE_KEY, DB_TIMEOUT_SECONDS


def build_service_client(
    url: Optional[str] = None,
    key: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Client:
    """
    Client 'service-role' (bypass RLS), utilisé par les repositories côté serveur.
    Lève RuntimeError si la configuration est incomplète.
    """
    url = url or SUPABASE_URL
    key = key or SUPABASE_SERVICE_KEY
    if not url or not key:
        raise RuntimeError("SUPABASE_URL/SUPABASE_SERVICE_KEY manquants pour build_service_client()")
    options = ClientOptions(postgrest_client_timeout=timeout or DB_TIMEOUT_SECONDS)
    return create_client(url, key, options=options)
