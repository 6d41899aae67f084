"""
Module 'payments' (feature-first): orchestration du paiement, adaptateur Stripe,
webhook et vérification de paiement.
"""

from .orchestrator import PaymentAttempt, PaymentOrchestrator, PaymentOutcome, PaymentState
from .provider import PaymentProvider, PaymentStatus
from .retry import with_retries

__all__ = [
    "PaymentAttempt",
    "PaymentOrchestrator",
    "PaymentOutcome",
    "PaymentState",
    "PaymentProvider",
    "PaymentStatus",
    "with_retries",
]
