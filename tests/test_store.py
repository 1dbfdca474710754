"""Store: reducer transitions, persistence and rehydration."""
import json

import pytest

from colo_configurator.engine.models import CartItem, LineItem, Order, Price, ProductRef, Quote, StoreState
from colo_configurator.services.errors import StorageError
from colo_configurator.services.storage import InMemoryStorage, JsonFileStorage
from colo_configurator.services.store import (
    ADD_TO_CART,
    CLEAR_CART,
    Action,
    Store,
    store_reducer,
)


def cart_row(name="Patch Panel", price=120, qty=1):
    return CartItem(id=0, name=name, category="Colocation", price=price, qty=qty, key="patch-panel")


def line_item(item_id=1, qty=1, one_time=500, recurring=1260):
    return LineItem(
        id=item_id,
        name="Secure Cabinet Express",
        category="Colocation",
        qty=qty,
        unit_price=Price(one_time=one_time, recurring=recurring),
        product=ProductRef(id="secure-cabinet", name="Secure Cabinet Express", category="Colocation"),
    )


class FailingStorage(InMemoryStorage):
    def set(self, key, value):
        raise StorageError("quota exceeded")


# Reducer

def test_reducer_returns_new_state():
    state = StoreState()
    new_state = store_reducer(state, Action(ADD_TO_CART, cart_row()))
    assert state.cart == []
    assert len(new_state.cart) == 1


def test_reducer_ignores_unknown_actions():
    state = StoreState(selected_ibx='MB1')
    assert store_reducer(state, Action('NOPE')) is state


def test_clear_cart_leaves_packages():
    state = StoreState(cart=[cart_row()], packages=[cart_row("Package")])
    new_state = store_reducer(state, Action(CLEAR_CART))
    assert new_state.cart == []
    assert len(new_state.packages) == 1


# Cart and packages

def test_add_to_cart_mints_distinct_ids(store):
    first = store.add_to_cart(cart_row())
    second = store.add_to_cart(cart_row())
    assert first.id != second.id
    assert len(store.state.cart) == 2


def test_remove_missing_id_is_noop(store):
    store.add_to_cart(cart_row())
    store.remove_from_cart(123)
    assert len(store.state.cart) == 1


def test_update_quantity_does_not_validate(store):
    row = store.add_to_cart(cart_row())
    store.update_cart_quantity(row.id, 0)
    assert store.state.cart[0].qty == 0


def test_flat_totals_ignore_quantity(store):
    store.add_to_cart(cart_row(price=120, qty=3))
    store.add_to_cart(cart_row(price=500))
    store.add_to_packages(cart_row("Package", price=1200, qty=2))
    assert store.get_cart_total() == 620
    assert store.get_packages_total() == 1200


def test_packages_crud(store):
    row = store.add_to_packages(cart_row("Package", price=1200))
    store.update_packages_quantity(row.id, 4)
    assert store.state.packages[0].qty == 4
    store.remove_from_packages(row.id)
    assert store.state.packages == []


# Quotes

def test_create_quote_from_items(store, settings):
    store.add_to_cart(cart_row())
    quote = store.create_quote([line_item(1), line_item(2, qty=2, one_time=300, recurring=150)])

    assert quote.id.startswith("1-") and len(quote.id) == 10
    assert quote.quote_number == quote.id
    assert quote.status == 'pending'
    assert quote.created_at == store.now_iso()
    assert quote.customer_info == settings.customer_info
    assert quote.final_totals == Price(one_time=1100, recurring=1560)
    # cart untouched
    assert len(store.state.cart) == 1


def test_create_quote_from_payload_keeps_id(store):
    quote = store.create_quote({'id': '1-CUSTOM01', 'items': [line_item().to_dict()]})
    assert quote.id == '1-CUSTOM01'
    assert len(quote.items) == 1
    assert store.get_quote('1-CUSTOM01') is not None


def test_add_quote_is_verbatim(store):
    quote = Quote(id='1-DEMO0001', items=[line_item()], created_at='2025-01-01T00:00:00+00:00')
    store.add_quote(quote)
    assert store.get_quote('1-DEMO0001') == quote


def test_update_quote_replaces_items_only(store):
    quote = store.create_quote([line_item(1), line_item(2)])
    new_items = [quote.items[0], LineItem.from_dict({**quote.items[1].to_dict(), 'qty': 5})]

    updated = store.update_quote(quote.id, {'items': new_items})

    assert updated.items[0] == quote.items[0]
    assert updated.items[1].qty == 5
    assert updated.created_at == quote.created_at


def test_update_quote_unknown_id_is_noop(store):
    before = store.state
    assert store.update_quote('1-MISSING0', {'currency': 'EUR'}) is None
    assert store.state.quotes == before.quotes


def test_update_quote_ignores_protected_fields(store):
    quote = store.create_quote([line_item()])
    updated = store.update_quote(quote.id, {'status': 'accepted', 'currency': 'EUR'})
    assert updated.status == 'pending'
    assert updated.currency == 'EUR'


def test_update_quote_status_is_idempotent(store):
    quote = store.create_quote([line_item()])
    signature = {'signedBy': 'John Smith', 'signedAt': store.now_iso(), 'signedByEmail': 'john.smith@company.com'}

    once = store.update_quote_status(quote.id, 'accepted', signature)
    twice = store.update_quote_status(quote.id, 'accepted', signature)

    assert once.status == twice.status == 'accepted'
    assert once.signature == twice.signature
    assert twice.signature.signed_by == 'John Smith'


def test_declined_quote_cannot_be_accepted(store):
    quote = store.create_quote([line_item()])
    store.update_quote_status(quote.id, 'declined')
    assert store.update_quote_status(quote.id, 'accepted').status == 'declined'
    assert store.update_quote_status(quote.id, 'pending').status == 'declined'


# Orders

def test_create_order_mints_id_and_timestamp(store, clock):
    order = store.create_order({'quoteId': '1-ABCDEFGH', 'items': [], 'total': 500, 'monthlyTotal': 1260})
    assert order.id == f"1-{int(clock() * 1000)}"
    assert order.order_number == order.id
    assert order.created_at == store.now_iso()
    assert order.status == 'pending'


def test_order_status_moves_forward_only(store):
    order = store.create_order(Order(id='', items=[], created_at=''))
    assert store.update_order_status(order.id, 'shipped').status == 'shipped'
    assert store.update_order_status(order.id, 'processing').status == 'shipped'
    assert store.update_order_status(order.id, 'completed').status == 'completed'


# Location

def test_location_defaults_and_setters(store):
    assert store.state.selected_ibx == 'MB2'
    assert store.state.selected_cage == 'A-101'
    store.set_selected_ibx('MB4')
    store.set_selected_cage('MB4:0002')
    assert (store.state.selected_ibx, store.state.selected_cage) == ('MB4', 'MB4:0002')


# Persistence

def test_every_dispatch_is_persisted(store, storage, settings):
    store.add_to_cart(cart_row())
    stored = json.loads(storage.get(settings.storage_key))
    assert len(stored['cart']) == 1
    assert stored['selectedIBX'] == 'MB2'


def test_state_survives_restart(store, storage, settings, clock):
    store.add_to_cart(cart_row())
    quote = store.create_quote([line_item()])

    restored = Store(storage=storage, settings=settings, clock=clock)
    assert restored.state == store.state
    assert restored.get_quote(quote.id).final_totals == quote.final_totals


def test_rehydration_sanitizes_quotes_and_orders(storage, settings, clock):
    storage.set(settings.storage_key, json.dumps({
        'cart': [],
        'quotes': [{'id': '1-BROKEN01', 'items': None}, 'garbage'],
        'orders': [{'id': '1-1700000000000'}],
    }))
    store = Store(storage=storage, settings=settings, clock=clock)

    quote = store.get_quote('1-BROKEN01')
    assert quote.items == []
    assert quote.status == 'pending'
    assert store.get_order('1-1700000000000').status == 'pending'
    assert store.get_order('1-1700000000000').items == []
    assert store.state.selected_ibx == 'MB2'


def test_corrupt_storage_starts_empty(storage, settings, clock):
    storage.set(settings.storage_key, "{not json")
    store = Store(storage=storage, settings=settings, clock=clock)
    assert store.state == StoreState()


def test_storage_failure_does_not_block_transition(settings, clock, caplog):
    store = Store(storage=FailingStorage(), settings=settings, clock=clock)
    store.add_to_cart(cart_row())
    assert len(store.state.cart) == 1
    assert "Error writing state" in caplog.text


def test_json_file_storage_round_trip(tmp_path, settings, clock):
    storage = JsonFileStorage(tmp_path / 'nested' / 'store.json')
    store = Store(storage=storage, settings=settings, clock=clock)
    store.add_to_cart(cart_row())

    restored = Store(storage=JsonFileStorage(tmp_path / 'nested' / 'store.json'), settings=settings, clock=clock)
    assert len(restored.state.cart) == 1


def test_json_file_storage_rejects_non_object(tmp_path):
    path = tmp_path / 'store.json'
    path.write_text("[1, 2]", encoding='utf-8')
    with pytest.raises(StorageError):
        JsonFileStorage(path).get('key')


# Dict-shaped patches and payloads

def test_update_quote_parses_dict_items(store, storage, settings):
    quote = store.create_quote([line_item(1)])
    patch_item = {
        'id': 1, 'name': 'Secure Cabinet Express', 'category': 'Colocation', 'qty': 2,
        'unitPrice': {'oneTime': 500, 'recurring': 1260},
    }

    updated = store.update_quote(quote.id, {'items': [patch_item]})

    assert isinstance(updated.items[0], LineItem)
    assert updated.final_totals == Price(one_time=1000, recurring=2520)
    stored = json.loads(storage.get(settings.storage_key))
    assert stored['quotes'][0]['items'][0]['qty'] == 2

    # later dispatches still persist
    store.add_to_cart(cart_row())
    assert len(json.loads(storage.get(settings.storage_key))['cart']) == 1


class UnserializableStorage(InMemoryStorage):
    def set(self, key, value):
        raise RuntimeError("disk on fire")


def test_unexpected_storage_error_is_swallowed(settings, clock, caplog):
    store = Store(storage=UnserializableStorage(), settings=settings, clock=clock)
    store.add_to_cart(cart_row())
    store.add_to_cart(cart_row())
    assert len(store.state.cart) == 2
    assert "Error writing state" in caplog.text


def test_payload_quote_gets_validity_window_and_customer(store, settings, clock):
    quote = store.create_quote({'items': []})

    assert quote.valid_until == quote.expires_at
    assert quote.valid_until.startswith("2026-02-14")
    assert quote.customer_info == settings.customer_info
    assert quote.currency == 'USD'

    clock.advance(days=31)
    assert quote.display_status(store.now()) == 'expired'


def test_payload_quote_keeps_supplied_fields(store):
    quote = store.create_quote({
        'items': [],
        'createdAt': '2026-03-01T00:00:00+00:00',
        'customerInfo': {'name': 'Ada', 'email': 'ada@example.com', 'company': 'Acme'},
    })
    assert quote.expires_at.startswith("2026-03-31")
    assert quote.customer_info['company'] == 'Acme'
