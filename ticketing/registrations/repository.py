"""
Accès aux données pour la feature 'registrations' (tables registrations, attendees, tickets).

Transitions gardées au niveau des requêtes:
- complétion: uniquement si status != 'completed' et paiement non remboursé
  (le second écrivain ne modifie rien)
- échec: jamais sur une inscription complétée ou remboursée
- remboursement compensatoire: payment_status='refunded', état terminal
- numéro de confirmation: écrit uniquement là où il est encore NULL (premier écrivain gagnant)
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol
import logging

from postgrest.exceptions import APIError
from supabase import Client

from ticketing.errors import PersistenceError
from .confirmation import generate_confirmation_number

logger = logging.getLogger(__name__)

REGISTRATIONS_TABLE = "registrations"
ATTENDEES_TABLE = "attendees"
TICKETS_TABLE = "tickets"

CONFIRMATION_MAX_ATTEMPTS = 10
UNIQUE_VIOLATION = "23505"


class RegistrationStore(Protocol):
    def create_registration(self, row: Dict[str, Any]) -> str: ...

    def create_attendees(self, rows: List[Dict[str, Any]]) -> None: ...

    def create_tickets(self, rows: List[Dict[str, Any]]) -> None: ...

    def get_registration(self, registration_id: str) -> Optional[Dict[str, Any]]: ...

    def mark_completed(self, registration_id: str, payment_id: str, amounts: Dict[str, Any]) -> bool: ...

    def mark_failed(self, registration_id: str, reason: str) -> bool: ...

    def mark_refunded(self, registration_id: str, refund_id: Optional[str], reason: str) -> bool: ...

    def mark_tickets_sold(self, registration_id: str) -> int: ...

    def assign_confirmation_number(self, registration_id: str, prefix: str) -> str: ...


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# module ticketing.registrations.repository
class SupabaseRegistrationRepository:
    def __init__(self, client: Client):
        self.client = client

    def create_registration(self, row: Dict[str, Any]) -> str:
        try:
            res = self.client.table(REGISTRATIONS_TABLE).insert(row).execute()
        except Exception as e:
            logger.exception("registrations.repository.create_registration failed id=%s", row.get("registration_id"))
            raise PersistenceError("Création de l'inscription impossible") from e
        data = res.data or []
        return str((data[0] if data else row).get("registration_id"))

    def create_attendees(self, rows: List[Dict[str, Any]]) -> None:
        if not rows:
            return
        try:
            self.client.table(ATTENDEES_TABLE).insert(rows).execute()
        except Exception as e:
            logger.exception("registrations.repository.create_attendees failed count=%s", len(rows))
            raise PersistenceError("Enregistrement des participants impossible") from e

    def create_tickets(self, rows: List[Dict[str, Any]]) -> None:
        if not rows:
            return
        try:
            self.client.table(TICKETS_TABLE).insert(rows).execute()
        except Exception as e:
            logger.exception("registrations.repository.create_tickets failed count=%s", len(rows))
            raise PersistenceError("Enregistrement des billets impossible") from e

    def get_registration(self, registration_id: str) -> Optional[Dict[str, Any]]:
        try:
            res = (
                self.client
                .table(REGISTRATIONS_TABLE)
                .select("*")
                .eq("registration_id", registration_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.exception("registrations.repository.get_registration failed id=%s", registration_id)
            raise PersistenceError("Lecture de l'inscription impossible") from e
        rows = res.data or []
        return rows[0] if rows else None

    def mark_completed(self, registration_id: str, payment_id: str, amounts: Dict[str, Any]) -> bool:
        """
        Transition unique vers completed. Retourne False si l'inscription
        était déjà complétée ou remboursée (aucune ligne modifiée).
        """
        values = {
            "status": "completed",
            "payment_status": "completed",
            "payment_id": payment_id,
            "updated_at": _now(),
        }
        values.update({k: str(v) for k, v in (amounts or {}).items() if v is not None})
        try:
            res = (
                self.client
                .table(REGISTRATIONS_TABLE)
                .update(values)
                .eq("registration_id", registration_id)
                .neq("status", "completed")
                .neq("payment_status", "refunded")
                .execute()
            )
        except Exception as e:
            logger.exception("registrations.repository.mark_completed failed id=%s", registration_id)
            raise PersistenceError("Finalisation de l'inscription impossible") from e
        return bool(res.data)

    def mark_failed(self, registration_id: str, reason: str) -> bool:
        try:
            res = (
                self.client
                .table(REGISTRATIONS_TABLE)
                .update({"status": "failed", "payment_status": "failed", "failure_reason": reason[:500], "updated_at": _now()})
                .eq("registration_id", registration_id)
                .neq("status", "completed")
                .neq("payment_status", "refunded")
                .execute()
            )
        except Exception as e:
            logger.exception("registrations.repository.mark_failed failed id=%s", registration_id)
            raise PersistenceError("Mise à jour de l'inscription impossible") from e
        return bool(res.data)

    def mark_refunded(self, registration_id: str, refund_id: Optional[str], reason: str) -> bool:
        """
        Trace le remboursement compensatoire: failed/refunded, état terminal
        que mark_completed et mark_failed ne modifient plus.
        """
        values = {
            "status": "failed",
            "payment_status": "refunded",
            "refund_id": refund_id,
            "failure_reason": reason[:500],
            "updated_at": _now(),
        }
        try:
            res = (
                self.client
                .table(REGISTRATIONS_TABLE)
                .update(values)
                .eq("registration_id", registration_id)
                .neq("status", "completed")
                .execute()
            )
        except Exception as e:
            logger.exception("registrations.repository.mark_refunded failed id=%s", registration_id)
            raise PersistenceError("Mise à jour de l'inscription impossible") from e
        return bool(res.data)

    def mark_tickets_sold(self, registration_id: str) -> int:
        try:
            res = (
                self.client
                .table(TICKETS_TABLE)
                .update({"status": "sold", "updated_at": _now()})
                .eq("registration_id", registration_id)
                .eq("status", "reserved")
                .execute()
            )
        except Exception as e:
            logger.exception("registrations.repository.mark_tickets_sold failed id=%s", registration_id)
            raise PersistenceError("Mise à jour des billets impossible") from e
        return len(res.data or [])

    def assign_confirmation_number(self, registration_id: str, prefix: str) -> str:
        """
        Premier écrivain gagnant: si un numéro existe déjà il est renvoyé,
        sinon un numéro est généré et écrit seulement si la colonne est encore NULL.
        Les collisions d'unicité (23505) relancent une génération.
        """
        for attempt in range(1, CONFIRMATION_MAX_ATTEMPTS + 1):
            current = self.get_registration(registration_id)
            if current is None:
                raise PersistenceError(f"Inscription introuvable: {registration_id}")
            if current.get("confirmation_number"):
                return current["confirmation_number"]

            number = generate_confirmation_number(prefix)
            try:
                res = (
                    self.client
                    .table(REGISTRATIONS_TABLE)
                    .update({"confirmation_number": number, "confirmation_generated_at": _now()})
                    .eq("registration_id", registration_id)
                    .is_("confirmation_number", "null")
                    .execute()
                )
            except APIError as e:
                if e.code == UNIQUE_VIOLATION:
                    logger.info("registrations.repository.confirmation_collision id=%s attempt=%s", registration_id, attempt)
                    continue
                logger.exception("registrations.repository.assign_confirmation_number failed id=%s", registration_id)
                raise PersistenceError("Génération du numéro de confirmation impossible") from e
            if res.data:
                return number
            # Écriture concurrente: la relecture renvoie le numéro gagnant
        raise PersistenceError("Numéro de confirmation unique introuvable après plusieurs essais")
