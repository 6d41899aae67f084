import pytest

import ticketing.payments.stripe_client as stripe_client
from ticketing.errors import PaymentProviderError

WEBHOOK = "/api/v1/payments/webhook"
URL = "/api/v1/functions/fn-1/registrations"


def _body():
    return {
        "registrationType": "individual",
        "attendees": [{"attendeeId": "a1", "firstName": "Jean", "lastName": "Martin", "isPrimary": True}],
        "tickets": [{"attendeeId": "a1", "catalogItemId": "t-banquet"}],
        "billingDetails": {"firstName": "Jean", "lastName": "Martin", "email": "jean.martin@grandlodge.org.au"},
        "paymentMethodId": "pm_card_visa",
    }


def _register(client):
    r = client.post(URL, json=_body())
    assert r.status_code == 200, r.text
    return r.json()


def _event(event_type, registration_id, payment_id="pi_1", amount=15644, **extra):
    obj = {"id": payment_id, "amount": amount, "amount_received": amount, "metadata": {"registration_id": registration_id}}
    obj.update(extra)
    return {"type": event_type, "data": {"object": obj}}


@pytest.fixture
def send_event(monkeypatch, client):
    def _send(event):
        monkeypatch.setattr(stripe_client, "parse_event", lambda payload, sig, secret: event)
        return client.post(WEBHOOK, content=b"{}", headers={"Stripe-Signature": "t=1,v1=test"})
    return _send


def test_replayed_success_returns_same_confirmation(client, store, send_event):
    created = _register(client)
    registration_id = created["registrationId"]
    payment_id = store.registrations[registration_id]["payment_id"]

    r1 = send_event(_event("payment_intent.succeeded", registration_id, payment_id))
    r2 = send_event(_event("payment_intent.succeeded", registration_id, payment_id))

    assert r1.status_code == 200
    assert r1.json() == {
        "status": "ok",
        "registrationId": registration_id,
        "confirmationNumber": created["confirmationNumber"],
    }
    assert r2.json() == r1.json()
    assert store.completions == 1


def test_webhook_can_complete_before_synchronous_path(client, store, send_event):
    store.create_registration({
        "registration_id": "reg-async",
        "registration_type": "delegation",
        "status": "unpaid",
        "payment_status": "pending",
        "confirmation_number": None,
    })
    r = send_event(_event("payment_intent.succeeded", "reg-async", "pi_async"))
    assert r.status_code == 200
    assert r.json()["confirmationNumber"].startswith("DEL-")
    assert store.registrations["reg-async"]["status"] == "completed"
    assert store.registrations["reg-async"]["total_amount_paid"] == "156.44"


def test_failure_event_marks_registration_failed(client, store, send_event):
    store.create_registration({"registration_id": "reg-f", "status": "unpaid", "payment_status": "pending"})
    r = send_event(_event(
        "payment_intent.payment_failed", "reg-f", "pi_f",
        last_payment_error={"message": "Your card has insufficient funds."},
    ))
    assert r.status_code == 200
    assert store.registrations["reg-f"]["status"] == "failed"
    assert store.registrations["reg-f"]["failure_reason"] == "Your card has insufficient funds."


def test_failure_event_never_overrides_completed(client, store, send_event):
    created = _register(client)
    send_event(_event("payment_intent.payment_failed", created["registrationId"]))
    assert store.registrations[created["registrationId"]]["status"] == "completed"


def test_other_event_types_are_ignored(client, send_event):
    r = send_event({"type": "charge.refunded", "data": {"object": {"id": "ch_1"}}})
    assert r.status_code == 200
    assert r.json() == {"status": "ignored"}


def test_event_without_registration_is_ignored(client, send_event):
    r = send_event({"type": "payment_intent.succeeded", "data": {"object": {"id": "pi_x", "metadata": {}}}})
    assert r.json() == {"status": "ignored"}


def test_invalid_signature_is_rejected(client, store):
    r = client.post(WEBHOOK, content=b'{"type": "payment_intent.succeeded"}', headers={"Stripe-Signature": "t=1,v1=bad"})
    assert r.status_code == 400
    assert r.json()["errorType"] == "VALIDATION_ERROR"
    assert store.completions == 0


def test_verify_payment_finalizes_from_provider_state(client, store, provider):
    store.create_registration({
        "registration_id": "reg-v",
        "registration_type": "individual",
        "status": "unpaid",
        "payment_status": "pending",
        "confirmation_number": None,
    })
    provider.intents["pi_v"] = {"status": "succeeded", "amount": "156.44", "metadata": {"registration_id": "reg-v"}}

    r = client.post("/api/v1/registrations/reg-v/verify-payment?paymentIntentId=pi_v")
    assert r.status_code == 200, r.text
    assert r.json()["confirmationNumber"].startswith("IND-")
    assert store.registrations["reg-v"]["status"] == "completed"


def test_verify_payment_rejects_foreign_payment(client, store, provider):
    store.create_registration({"registration_id": "reg-v", "status": "unpaid", "payment_status": "pending"})
    provider.intents["pi_other"] = {"status": "succeeded", "amount": "80", "metadata": {"registration_id": "reg-other"}}

    r = client.post("/api/v1/registrations/reg-v/verify-payment", json={"paymentIntentId": "pi_other"})
    assert r.status_code == 400
    assert r.json()["errorType"] == "VALIDATION_ERROR"
    assert store.registrations["reg-v"]["status"] == "unpaid"


def test_verify_payment_requires_succeeded_intent(client, store, provider):
    store.create_registration({"registration_id": "reg-v", "status": "unpaid", "payment_status": "pending"})
    provider.intents["pi_p"] = {"status": "requires_action", "amount": "156.44", "metadata": {"registration_id": "reg-v"}}

    r = client.post("/api/v1/registrations/reg-v/verify-payment?paymentIntentId=pi_p")
    assert r.status_code == 400
    assert r.json()["errorType"] == "PAYMENT_FAILED"


def _refunded_registration(client, store, provider):
    provider.fail("attach_metadata", PaymentProviderError("metadata rejected"))
    r = client.post(URL, json=_body())
    assert r.status_code == 400
    (registration_id,) = store.registrations
    payment_id, _ = provider.refunds[0]
    return registration_id, payment_id


def test_success_event_after_refund_is_ignored(client, store, provider, catalog, send_event):
    registration_id, payment_id = _refunded_registration(client, store, provider)

    r = send_event(_event("payment_intent.succeeded", registration_id, payment_id))
    assert r.status_code == 200
    assert r.json() == {"status": "ignored", "registrationId": registration_id, "reason": "refunded"}

    row = store.registrations[registration_id]
    assert row["status"] == "failed"
    assert row["payment_status"] == "refunded"
    assert row.get("confirmation_number") is None
    assert store.completions == 0
    assert catalog.stock["t-banquet"] == 100


def test_verify_payment_rejects_refunded_intent(client, store, provider):
    registration_id, payment_id = _refunded_registration(client, store, provider)

    r = client.post(f"/api/v1/registrations/{registration_id}/verify-payment?paymentIntentId={payment_id}")
    assert r.status_code == 409
    assert r.json()["errorType"] == "PAYMENT_FAILED"
    assert store.registrations[registration_id]["payment_status"] == "refunded"


def test_verify_payment_unknown_registration(client):
    r = client.post("/api/v1/registrations/does-not-exist/verify-payment?paymentIntentId=pi_1")
    assert r.status_code == 404
    assert r.json()["errorType"] == "NOT_FOUND"
