from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe

import ticketing.payments.stripe_client as sc
from ticketing.errors import PaymentDeclined, PaymentProviderError, ProviderUnavailable, ValidationError
from ticketing.orders import Order, OrderLine


def _order():
    return Order(
        location_id="loc",
        lines=(OrderLine(catalog_item_id="t-banquet", name="Grand Banquet", quantity=2, unit_price=Decimal("150")),),
        metadata={"registration_id": "reg-1", "function_id": "fn-1"},
        customer_id="cus_1",
        total=Decimal("309.81"),
    )


@pytest.fixture
def provider():
    return sc.StripePaymentProvider(currency="aud", api_key="sk_test_dummy", timeout=5)


def test_require_stripe_sets_key_and_disables_sdk_retries():
    mod = sc.require_stripe("sk_test_x", 7)
    assert mod is stripe
    assert stripe.api_key == "sk_test_x"
    assert stripe.max_network_retries == 0


def test_create_order_sends_minor_units_and_metadata(monkeypatch, provider):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="pi_123")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    assert provider.create_order(_order(), idempotency_key="k:order") == "pi_123"
    assert captured["amount"] == 30981
    assert captured["currency"] == "aud"
    assert captured["customer"] == "cus_1"
    assert captured["idempotency_key"] == "k:order"
    assert captured["metadata"]["registration_id"] == "reg-1"
    assert '"t-banquet"' in captured["metadata"]["lines"]


def test_create_customer_passes_idempotency_key(monkeypatch, provider):
    seen = {}
    monkeypatch.setattr(stripe.Customer, "create", lambda **kw: seen.update(kw) or SimpleNamespace(id="cus_9"))
    contact = {"first_name": "Jean", "last_name": "Martin", "email": "jean.martin@grandlodge.org.au"}
    assert provider.create_customer(contact, idempotency_key="k:customer") == "cus_9"
    assert seen["name"] == "Jean Martin"
    assert seen["idempotency_key"] == "k:customer"


def test_card_error_is_a_decline(monkeypatch, provider):
    def boom(*a, **kw):
        raise stripe.CardError("Your card was declined.", None, "card_declined")

    monkeypatch.setattr(stripe.PaymentIntent, "confirm", boom)
    with pytest.raises(PaymentDeclined) as exc:
        provider.capture_payment("pi_1", "pm_x", Decimal("10"), idempotency_key="k:capture")
    assert exc.value.decline_code == "card_declined"
    assert exc.value.error_type == "PAYMENT_FAILED"


def test_connection_error_is_retryable(monkeypatch, provider):
    def boom(*a, **kw):
        raise stripe.APIConnectionError("network down")

    monkeypatch.setattr(stripe.Refund, "create", boom)
    with pytest.raises(ProviderUnavailable) as exc:
        provider.refund("pi_1", Decimal("10"), idempotency_key="k:refund")
    assert exc.value.retryable


def test_other_stripe_errors_are_provider_errors(monkeypatch, provider):
    def boom(*a, **kw):
        raise stripe.InvalidRequestError("No such payment_intent", "id")

    monkeypatch.setattr(stripe.PaymentIntent, "modify", boom)
    with pytest.raises(PaymentProviderError):
        provider.attach_metadata("pi_1", {"registration_id": "reg-1"}, idempotency_key="k:metadata")


def test_unsucceeded_capture_is_a_decline(monkeypatch, provider):
    monkeypatch.setattr(
        stripe.PaymentIntent, "confirm",
        lambda *a, **kw: SimpleNamespace(id="pi_1", status="requires_action", amount=1000),
    )
    with pytest.raises(PaymentDeclined):
        provider.capture_payment("pi_1", "pm_x", Decimal("10"), idempotency_key="k:capture")


def test_status_from_intent():
    status = sc.status_from_intent({
        "id": "pi_1", "status": "succeeded", "amount": 15644, "amount_received": 15644,
        "metadata": {"registration_id": "reg-1"},
    })
    assert status.succeeded
    assert status.amount == Decimal("156.44")
    assert status.registration_id == "reg-1"


def test_refunded_intent_is_not_succeeded():
    status = sc.status_from_intent({
        "id": "pi_1", "status": "succeeded", "amount": 15644, "amount_received": 15644,
        "latest_charge": {"id": "ch_1", "amount_refunded": 15644},
        "metadata": {"registration_id": "reg-1"},
    })
    assert status.refunded
    assert not status.succeeded
    assert status.amount_refunded == Decimal("156.44")


def test_get_payment_expands_latest_charge(monkeypatch, provider):
    seen = {}

    def fake_retrieve(payment_id, **kwargs):
        seen.update(kwargs, id=payment_id)
        return {
            "id": payment_id, "status": "succeeded", "amount": 15644,
            "latest_charge": {"id": "ch_1", "amount_refunded": 15644},
            "metadata": {},
        }

    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", fake_retrieve)
    status = provider.get_payment("pi_1")
    assert seen == {"id": "pi_1", "expand": ["latest_charge"]}
    assert status.refunded


def test_parse_event_rejects_bad_signature(monkeypatch):
    def boom(payload, sig, secret):
        raise stripe.SignatureVerificationError("bad signature", sig)

    monkeypatch.setattr(stripe.Webhook, "construct_event", boom)
    with pytest.raises(ValidationError) as exc:
        sc.parse_event(b"{}", "t=1,v1=bad", "whsec_test")
    assert exc.value.code == "invalid_webhook"


def test_parse_event_returns_dict(monkeypatch):
    event = {"type": "payment_intent.succeeded", "data": {"object": {"id": "pi_1"}}}
    monkeypatch.setattr(stripe.Webhook, "construct_event", lambda payload, sig, secret: event)
    assert sc.parse_event(b"{}", "sig", "whsec_test")["type"] == "payment_intent.succeeded"
