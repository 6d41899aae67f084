from decimal import Decimal

from ticketing.pricing import CartSelection, expand
from tests.fakes import package, ticket

TICKETS = {
    "t-banquet": ticket("t-banquet", "Grand Banquet", "150"),
    "t-lunch": ticket("t-lunch", "Déjeuner", "85"),
}
PACKAGES = {
    "p-full": package("p-full", "Forfait Complet", "235", includes=["t-banquet", "t-lunch"]),
    "p-table": package("p-table", "Table de Loge", "180"),
    "p-broken": package("p-broken", "Forfait Cassé", "99", includes=["t-banquet", "t-missing"]),
}


def test_package_expands_into_included_tickets_at_their_own_price():
    sel = CartSelection(attendee_id="att-1", catalog_item_id="p-full", is_package=True, price=Decimal("0"))
    items = expand([sel], TICKETS, PACKAGES)
    assert [i.catalog_item_id for i in items] == ["t-banquet", "t-lunch"]
    assert [i.price for i in items] == [Decimal("150"), Decimal("85")]
    assert sum(i.price for i in items) == Decimal("235")
    for i in items:
        assert i.is_from_package is True
        assert i.package_id == "p-full"
        assert i.package_name == "Forfait Complet"
        assert i.attendee_id == "att-1"
    assert items[0].id == "att-1-t-banquet"


def test_atomic_package_stays_single_item():
    sel = CartSelection(attendee_id="att-1", catalog_item_id="p-table", is_package=True)
    [item] = expand([sel], TICKETS, PACKAGES)
    assert item.price == Decimal("180")
    assert item.is_from_package is False
    assert item.is_package is True


def test_plain_ticket_resolves_like_resolver():
    sel = CartSelection(attendee_id="att-1", catalog_item_id="t-lunch", price=Decimal("1"))
    [item] = expand([sel], TICKETS, PACKAGES)
    assert item.price == Decimal("85")
    assert item.is_from_package is False


def test_unknown_package_falls_back_flagged():
    sel = CartSelection(attendee_id="att-1", catalog_item_id="p-ghost", is_package=True, price=Decimal("50"))
    [item] = expand([sel], TICKETS, PACKAGES)
    assert item.flagged
    assert item.price == Decimal("50")


def test_missing_included_ticket_is_emitted_flagged_at_zero():
    sel = CartSelection(attendee_id="att-1", catalog_item_id="p-broken", is_package=True)
    items = expand([sel], TICKETS, PACKAGES)
    assert len(items) == 2
    missing = items[1]
    assert missing.catalog_item_id == "t-missing"
    assert missing.price == Decimal("0")
    assert missing.flagged
    assert missing.warning.reason == "included_item_not_found"


def test_selections_processed_in_input_order():
    sels = [
        CartSelection(attendee_id="att-2", catalog_item_id="t-lunch"),
        CartSelection(attendee_id="att-1", catalog_item_id="p-full", is_package=True),
    ]
    items = expand(sels, TICKETS, PACKAGES)
    assert [(i.attendee_id, i.catalog_item_id) for i in items] == [
        ("att-2", "t-lunch"),
        ("att-1", "t-banquet"),
        ("att-1", "t-lunch"),
    ]
