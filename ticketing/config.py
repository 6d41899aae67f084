# ticketing.config
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Dict
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du service de billetterie.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe), CORS/hosts
- Expose les paramètres métier: frais, préfixes de confirmation, timeouts et retries
- Settings.from_config() fige ces valeurs dans un objet immuable porté par AppContext
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _env_decimal(name: str, default: str) -> Decimal:
    raw = _clean_env(os.getenv(name) or "") or default
    try:
        return Decimal(raw)
    except ArithmeticError:
        return Decimal(default)

def _env_int(name: str, default: int) -> int:
    try:
        return int(_clean_env(os.getenv(name) or "") or default)
    except ValueError:
        return default

def _env_float(name: str, default: float) -> float:
    try:
        return float(_clean_env(os.getenv(name) or "") or default)
    except ValueError:
        return default

# Supabase: URL et clés
# - SUPABASE_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

DB_TIMEOUT_SECONDS = _env_float("DB_TIMEOUT_SECONDS", 10.0)

COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Stripe: clé privée, secret webhook et paramètres réseau
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")
PAYMENT_CURRENCY = _clean_env(os.getenv("PAYMENT_CURRENCY") or "aud").lower()
PAYMENT_LOCATION_ID = _clean_env(os.getenv("PAYMENT_LOCATION_ID") or "default")
PROVIDER_TIMEOUT_SECONDS = _env_float("PROVIDER_TIMEOUT_SECONDS", 20.0)
PROVIDER_MAX_RETRIES = _env_int("PROVIDER_MAX_RETRIES", 3)
PROVIDER_RETRY_BACKOFF_SECONDS = _env_float("PROVIDER_RETRY_BACKOFF_SECONDS", 0.5)

# Frais: plateforme (plafonnée) puis frais du prestataire répercutés au client
PLATFORM_FEE_PERCENTAGE = _env_decimal("PLATFORM_FEE_PERCENTAGE", "0.02")
PLATFORM_FEE_CAP = _env_decimal("PLATFORM_FEE_CAP", "20")
PLATFORM_FEE_MINIMUM = _env_decimal("PLATFORM_FEE_MINIMUM", "1")
PROVIDER_FEE_PERCENTAGE = _env_decimal("PROVIDER_FEE_PERCENTAGE", "0.022")
PROVIDER_FEE_FIXED = _env_decimal("PROVIDER_FEE_FIXED", "0")

# Numéros de confirmation: préfixe par type d'inscription
CONFIRMATION_PREFIX_INDIVIDUAL = _clean_env(os.getenv("CONFIRMATION_PREFIX_INDIVIDUAL") or "IND")
CONFIRMATION_PREFIX_LODGE = _clean_env(os.getenv("CONFIRMATION_PREFIX_LODGE") or "LDG")
CONFIRMATION_PREFIX_DELEGATION = _clean_env(os.getenv("CONFIRMATION_PREFIX_DELEGATION") or "DEL")

INVENTORY_MAX_CONFLICT_RETRIES = _env_int("INVENTORY_MAX_CONFLICT_RETRIES", 3)


@dataclass(frozen=True)
class Settings:
    """Instantané immuable de la configuration, injecté via AppContext."""
    currency: str = "aud"
    location_id: str = "default"
    platform_fee_percentage: Decimal = Decimal("0.02")
    platform_fee_cap: Decimal = Decimal("20")
    platform_fee_minimum: Decimal = Decimal("1")
    provider_fee_percentage: Decimal = Decimal("0.022")
    provider_fee_fixed: Decimal = Decimal("0")
    provider_max_retries: int = 3
    provider_retry_backoff_seconds: float = 0.5
    inventory_max_conflict_retries: int = 3
    confirmation_prefixes: Dict[str, str] = field(default_factory=lambda: {
        "individual": "IND",
        "lodge": "LDG",
        "delegation": "DEL",
    })
    webhook_secret: str = ""

    @classmethod
    def from_config(cls) -> "Settings":
        return cls(
            currency=PAYMENT_CURRENCY,
            location_id=PAYMENT_LOCATION_ID,
            platform_fee_percentage=PLATFORM_FEE_PERCENTAGE,
            platform_fee_cap=PLATFORM_FEE_CAP,
            platform_fee_minimum=PLATFORM_FEE_MINIMUM,
            provider_fee_percentage=PROVIDER_FEE_PERCENTAGE,
            provider_fee_fixed=PROVIDER_FEE_FIXED,
            provider_max_retries=PROVIDER_MAX_RETRIES,
            provider_retry_backoff_seconds=PROVIDER_RETRY_BACKOFF_SECONDS,
            inventory_max_conflict_retries=INVENTORY_MAX_CONFLICT_RETRIES,
            confirmation_prefixes={
                "individual": CONFIRMATION_PREFIX_INDIVIDUAL,
                "lodge": CONFIRMATION_PREFIX_LODGE,
                "delegation": CONFIRMATION_PREFIX_DELEGATION,
            },
            webhook_secret=STRIPE_WEBHOOK_SECRET,
        )

    def prefix_for(self, registration_type: str) -> str:
        return self.confirmation_prefixes.get(registration_type, self.confirmation_prefixes["individual"])
