import pytest
from unittest.mock import MagicMock

from postgrest.exceptions import APIError

from ticketing.errors import PersistenceError
from ticketing.registrations.confirmation import CONFIRMATION_PATTERN
from ticketing.registrations.repository import SupabaseRegistrationRepository


class _Resp:
    def __init__(self, data=None):
        self.data = data


class _Query:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def __getattr__(self, name):
        def _chain(*args, **kwargs):
            self.calls.append((name, args))
            return self
        return _chain

    def execute(self):
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return _Resp(item)


def _repo(*responses):
    query = _Query(list(responses))
    client = MagicMock()
    client.table.return_value = query
    return SupabaseRegistrationRepository(client), query, client


def test_mark_completed_is_guarded_on_status():
    repo, query, _ = _repo([{"registration_id": "r1"}])
    assert repo.mark_completed("r1", "pi_1", {"total_amount_paid": "156.44"}) is True
    assert ("neq", ("status", "completed")) in query.calls
    update = next(args for name, args in query.calls if name == "update")[0]
    assert update["payment_id"] == "pi_1"
    assert update["total_amount_paid"] == "156.44"


def test_mark_completed_second_writer_changes_nothing():
    repo, _, _ = _repo([])
    assert repo.mark_completed("r1", "pi_1", {}) is False


def test_mark_failed_never_touches_completed():
    repo, query, _ = _repo([])
    assert repo.mark_failed("r1", "card_declined") is False
    assert ("neq", ("status", "completed")) in query.calls


def test_mark_completed_refuses_refunded_rows():
    repo, query, _ = _repo([])
    assert repo.mark_completed("r1", "pi_1", {}) is False
    assert ("neq", ("payment_status", "refunded")) in query.calls


def test_mark_refunded_records_refund_and_spares_completed():
    repo, query, _ = _repo([{"registration_id": "r1"}])
    assert repo.mark_refunded("r1", "re_1", "metadata rejected") is True
    assert ("neq", ("status", "completed")) in query.calls
    update = next(args for name, args in query.calls if name == "update")[0]
    assert update["status"] == "failed"
    assert update["payment_status"] == "refunded"
    assert update["refund_id"] == "re_1"


def test_mark_tickets_sold_counts_reserved_rows():
    repo, query, client = _repo([{"ticket_id": "a"}, {"ticket_id": "b"}])
    assert repo.mark_tickets_sold("r1") == 2
    client.table.assert_called_with("tickets")
    assert ("eq", ("status", "reserved")) in query.calls


def test_existing_confirmation_number_is_returned():
    repo, query, _ = _repo([{"registration_id": "r1", "confirmation_number": "IND-123456AB"}])
    assert repo.assign_confirmation_number("r1", "IND") == "IND-123456AB"
    assert not any(name == "update" for name, _ in query.calls)


def test_confirmation_written_only_where_null():
    repo, query, _ = _repo([{"registration_id": "r1", "confirmation_number": None}], [{"registration_id": "r1"}])
    number = repo.assign_confirmation_number("r1", "LDG")
    assert CONFIRMATION_PATTERN.match(number)
    assert number.startswith("LDG-")
    assert ("is_", ("confirmation_number", "null")) in query.calls


def test_unique_collision_generates_again():
    collision = APIError({"code": "23505", "message": "duplicate key value", "details": None, "hint": None})
    repo, _, _ = _repo(
        [{"registration_id": "r1", "confirmation_number": None}],
        collision,
        [{"registration_id": "r1", "confirmation_number": None}],
        [{"registration_id": "r1"}],
    )
    assert repo.assign_confirmation_number("r1", "IND").startswith("IND-")


def test_concurrent_writer_wins():
    repo, _, _ = _repo(
        [{"registration_id": "r1", "confirmation_number": None}],
        [],
        [{"registration_id": "r1", "confirmation_number": "IND-654321ZZ"}],
    )
    assert repo.assign_confirmation_number("r1", "IND") == "IND-654321ZZ"


def test_other_api_errors_are_persistence_errors():
    boom = APIError({"code": "42501", "message": "permission denied", "details": None, "hint": None})
    repo, _, _ = _repo([{"registration_id": "r1", "confirmation_number": None}], boom)
    with pytest.raises(PersistenceError):
        repo.assign_confirmation_number("r1", "IND")


def test_read_failure_is_persistence_error():
    repo, _, _ = _repo(RuntimeError("timeout"))
    with pytest.raises(PersistenceError) as exc:
        repo.get_registration("r1")
    assert exc.value.error_type == "PERSISTENCE_ERROR"


def test_empty_inserts_skip_queries():
    repo, _, client = _repo()
    repo.create_attendees([])
    repo.create_tickets([])
    client.table.assert_not_called()
