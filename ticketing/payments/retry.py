from typing import Callable, TypeVar
import logging
import time

from ticketing.errors import ProviderUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def with_retries(
    fn: Callable[[], T],
    *,
    op: str,
    attempts: int = 3,
    backoff: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Exécute fn en rejouant uniquement les indisponibilités du prestataire.
    fn doit réutiliser la même clé d'idempotence à chaque essai.
    Refus, validation et stock ne sont jamais rejoués.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except ProviderUnavailable:
            if attempt >= attempts:
                logger.error("payments.retry.exhausted op=%s attempts=%s", op, attempts)
                raise
            logger.warning("payments.retry op=%s attempt=%s", op, attempt)
            sleep(backoff * attempt)
    raise ProviderUnavailable(f"Prestataire de paiement indisponible ({op})")
