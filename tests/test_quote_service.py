"""Quote lifecycle: cart to quote, accept/decline, configuration and orders."""
import pytest

from colo_configurator.engine.models import Price
from colo_configurator.services.errors import NotFoundError, PreconditionError, ValidationFailedError
from colo_configurator.services.quote_service import quote_to_frame

from conftest import CABINET_STARTER, CROSS_CONNECT


# Cart

def test_add_product_prices_and_copies_location(service, store):
    store.set_selected_ibx('MB3')
    row = service.add_product_to_cart('secure-cabinet', CABINET_STARTER)

    assert row.price == 1260
    assert row.one_time_price == 500
    assert row.configuration['ibx'] == 'MB3'
    assert row.configuration['cage'] == 'A-101'


def test_caller_location_wins(service):
    row = service.add_product_to_cart('ethernet-cross-connect', {**CROSS_CONNECT, 'ibx': 'MB6'})
    assert row.configuration['ibx'] == 'MB6'


def test_template_fills_configuration(service):
    row = service.add_product_to_cart('secure-cabinet', template_id='secure-cabinet-enterprise')
    assert row.price == 1870
    assert row.configuration['circuitType'] == 'Three Phase Circuit'


def test_missing_required_field_is_rejected_before_store(service, store):
    with pytest.raises(ValidationFailedError) as exc:
        service.add_product_to_cart('ethernet-cross-connect', {'connector': 'LC'})
    assert "Connection Type is required" in exc.value.errors
    assert store.state.cart == []


def test_unknown_product_and_template(service):
    with pytest.raises(NotFoundError):
        service.add_product_to_cart('quantum-link')
    with pytest.raises(NotFoundError):
        service.add_product_to_cart('secure-cabinet', template_id='nope')


def test_add_package_uses_discounted_prices(service):
    row = service.add_package('complete-colocation')
    assert row.price == 1200
    assert row.one_time_price == 300
    assert row.original_price == 1470


# Quote generation

def test_quote_totals_from_two_item_cart(service):
    service.add_product_to_cart('secure-cabinet', CABINET_STARTER)
    service.add_product_to_cart('ethernet-cross-connect', CROSS_CONNECT, qty=2)

    quote = service.generate_quote()

    assert quote.final_totals == Price(one_time=1100, recurring=1560)
    assert sum(i.total_price.recurring for i in quote.items) == quote.final_totals.recurring
    assert sum(i.total_price.one_time for i in quote.items) == quote.final_totals.one_time
    assert quote.to_dict()['finalTotals'] == {'oneTime': 1100, 'recurring': 1560}


def test_line_items_start_unconfigured(service):
    service.add_product_to_cart('ethernet-cross-connect', CROSS_CONNECT, qty=3)
    quote = service.generate_quote()
    item = quote.items[0]

    assert item.needs_configuration is True
    assert item.total_required == 3
    assert item.configuration_status == 'not-started'
    assert item.to_dict()['configuration']['totalRequired'] == 3


def test_package_line_items_carry_savings(service):
    service.add_package('complete-colocation')
    quote = service.generate_quote()

    assert quote.items[0].item_type == 'package'
    assert quote.original_totals.recurring == 1470
    assert quote.total_savings == 270


def test_row_without_one_time_gets_default(service, store, settings):
    from colo_configurator.engine.models import CartItem

    store.add_to_packages(CartItem(id=0, name="Custom Bundle", category="Package", price=900))
    quote = service.generate_quote()
    assert quote.items[0].unit_price.one_time == settings.default_package_one_time


def test_generate_quote_from_selection(service, store):
    first = service.add_product_to_cart('secure-cabinet', CABINET_STARTER)
    service.add_product_to_cart('ethernet-cross-connect', CROSS_CONNECT)

    quote = service.generate_quote(cart_ids=[first.id], package_ids=[])

    assert [i.name for i in quote.items] == ["Secure Cabinet Express"]
    assert len(store.state.cart) == 2


def test_empty_selection_is_refused(service):
    with pytest.raises(PreconditionError):
        service.generate_quote()


def test_quote_defaults(service, store):
    service.add_package('startup-essentials')
    quote = service.generate_quote()

    assert quote.valid_until == quote.expires_at
    assert quote.valid_until.startswith("2026-02-14")
    assert quote.currency == 'USD'
    assert quote.initial_term_months == 24


# Accept / decline

def test_accept_signs_and_clears_cart(service, store):
    service.add_product_to_cart('secure-cabinet', CABINET_STARTER)
    quote = service.generate_quote()

    accepted = service.accept_quote(quote.id)

    assert accepted.status == 'accepted'
    assert accepted.signature.signed_by == "John Smith"
    assert accepted.signature.signed_by_email == "john.smith@company.com"
    assert accepted.updated_at == store.now_iso()
    assert store.state.cart == []


def test_decline_then_accept_is_refused(service):
    service.add_package('startup-essentials')
    quote = service.generate_quote()
    service.decline_quote(quote.id)

    with pytest.raises(PreconditionError):
        service.accept_quote(quote.id)
    assert service.get_quote(quote.id).status == 'declined'


def test_expired_quote_cannot_be_accepted(service, clock):
    service.add_package('startup-essentials')
    quote = service.generate_quote()
    clock.advance(days=31)

    assert service.display_status(quote) == 'expired'
    with pytest.raises(PreconditionError):
        service.accept_quote(quote.id)
    # stored status stays pending
    assert service.get_quote(quote.id).status == 'pending'


def test_unknown_quote(service):
    with pytest.raises(NotFoundError):
        service.accept_quote('1-MISSING0')


# Configuration

def test_configuration_requires_accepted_quote(service):
    service.add_product_to_cart('secure-cabinet', CABINET_STARTER)
    quote = service.generate_quote()
    before = service.get_quote(quote.id)

    with pytest.raises(PreconditionError) as exc:
        service.submit_configuration(quote.id, 0, {'pdu': 'PDU:P24E16G'})

    assert "Configuration is only available for accepted quotes" in str(exc.value)
    assert service.get_quote(quote.id) == before
    assert service.store.state.orders == []


def test_submit_configuration_advances_item_and_spawns_order(service, accepted_quote):
    result = service.submit_configuration(accepted_quote.id, 1, {'zSideCage': 'MB2:0002'})

    item = result.quote.items[1]
    assert item.completed_count == 1
    assert item.configuration_status == 'partial'
    assert item.configuration_progress == 50
    assert item.configuration['zSideCage'] == 'MB2:0002'
    assert result.quote.items[0] == accepted_quote.items[0]

    assert result.order.quote_id == accepted_quote.id
    assert result.order.total == 600
    assert result.order.monthly_total == 300
    assert result.order.configuration_summary == "Ethernet Cross Connect configured for Tech Solutions Inc."
    assert "Progress: 1/2 instances configured" in result.message
    assert result.order.order_number in result.message


def test_second_submission_completes_per_quantity_item(service, accepted_quote):
    service.submit_configuration(accepted_quote.id, 1, {})
    result = service.submit_configuration(accepted_quote.id, 1, {})

    assert result.item.completed_count == 2
    assert result.item.configuration_status == 'complete'
    assert result.message.startswith("All configurations completed!")
    assert len(service.orders_for_quote(accepted_quote.id)) == 2


def test_single_instance_message(service, accepted_quote):
    result = service.submit_configuration(accepted_quote.id, 0, {})
    assert result.message.startswith("Configuration completed! Order")


def test_bad_item_index(service, accepted_quote):
    with pytest.raises(NotFoundError):
        service.start_configuration(accepted_quote.id, 5)


def test_configuration_overview(service, accepted_quote):
    service.submit_configuration(accepted_quote.id, 1, {})
    overview = service.configuration_overview(accepted_quote.id)

    assert overview['totalInstances'] == 3
    assert overview['completedInstances'] == 1
    assert overview['progress'] == 33
    assert overview['byStatus'] == {'not-started': 1, 'partial': 1, 'complete': 0}


# Quote-level order

def test_quote_order_requires_acceptance(service):
    service.add_package('startup-essentials')
    quote = service.generate_quote()
    with pytest.deprecated_call(), pytest.raises(PreconditionError) as exc:
        service.create_order_from_quote(quote.id)
    assert str(exc.value) == "Quote must be accepted before creating an order."


def test_quote_order_lists_incomplete_items(service, accepted_quote):
    service.submit_configuration(accepted_quote.id, 0, {})

    with pytest.deprecated_call(), pytest.raises(PreconditionError) as exc:
        service.create_order_from_quote(accepted_quote.id)

    assert exc.value.incomplete_items == ["Ethernet Cross Connect"]
    assert str(exc.value) == "Please complete configuration for: Ethernet Cross Connect"


def test_quote_order_for_complete_quote(service, accepted_quote):
    for index, count in ((0, 1), (1, 2)):
        for _ in range(count):
            service.submit_configuration(accepted_quote.id, index, {})

    with pytest.deprecated_call():
        order = service.create_order_from_quote(accepted_quote.id)

    assert order.total == 1100
    assert order.monthly_total == 1560
    assert len(order.items) == 2


def test_order_status_progression(service, accepted_quote):
    order = service.submit_configuration(accepted_quote.id, 0, {}).order

    assert service.update_order_status(order.id, 'processing').status == 'processing'
    with pytest.raises(PreconditionError):
        service.update_order_status(order.id, 'pending')
    with pytest.raises(PreconditionError):
        service.update_order_status(order.id, 'lost')
    with pytest.raises(NotFoundError):
        service.update_order_status('1-0', 'shipped')


# Demo quote and export

def test_demo_quote_materialized_once(service, store):
    quote = service.materialize_demo_quote('1-DEMO1234')

    assert quote.final_totals == Price(one_time=1100, recurring=1560)
    assert [i.configuration_status for i in quote.items] == ['complete', 'partial']
    assert quote.status == 'pending'
    assert service.materialize_demo_quote('1-DEMO1234') is store.get_quote('1-DEMO1234')
    assert len(store.state.quotes) == 1


def test_quote_to_frame(service, accepted_quote):
    frame = quote_to_frame(accepted_quote)
    assert list(frame['Item']) == ["Secure Cabinet Express", "Ethernet Cross Connect"]
    assert frame['Total MRC'].sum() == 1560
    assert list(frame['Configured']) == ["0/1", "0/2"]
