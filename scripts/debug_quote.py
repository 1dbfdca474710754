import sys
import warnings
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from colo_configurator.config.logging import setup_logging
from colo_configurator.config.settings import get_settings
from colo_configurator.data.catalog import Catalog
from colo_configurator.engine.money import format_currency
from colo_configurator.services.quote_service import QuoteService, quote_to_frame
from colo_configurator.services.storage import InMemoryStorage
from colo_configurator.services.store import Store


def debug():
    setup_logging()
    settings = get_settings()
    catalog = Catalog.load(settings=settings)
    store = Store(storage=InMemoryStorage(), settings=settings)
    service = QuoteService(store, catalog, settings=settings)

    print("Catalog:")
    print(catalog.to_frame())

    print("\n--- Cabinet breakdown (starter template) ---")
    config = service.build_configuration('secure-cabinet', template_id='secure-cabinet-starter')
    product = catalog.get('secure-cabinet')
    print(service.pricing.breakdown(product, config).get_breakdown_text())

    print("\n--- Cart ---")
    service.add_product_to_cart('secure-cabinet', template_id='secure-cabinet-starter')
    service.add_product_to_cart(
        'ethernet-cross-connect', {'connectionType': 'Single Mode Fiber', 'connector': 'LC'}, qty=2
    )
    service.add_package('complete-colocation')
    for row in store.state.cart + store.state.packages:
        print(f"{row.name} x{row.qty}: {format_currency(row.price)}/mo")

    quote = service.generate_quote()
    print(f"\nQuote {quote.quote_number} ({service.display_status(quote)})")
    print(quote_to_frame(quote))
    totals = quote.final_totals
    print(f"Totals: {format_currency(totals.one_time)} one-time, {format_currency(totals.recurring)}/mo")

    service.accept_quote(quote.id)
    print(f"\nAccepted; cart now has {len(store.state.cart)} rows")

    for index, item in enumerate(quote.items):
        for _ in range(item.total_required):
            result = service.submit_configuration(quote.id, index, {'notes': 'debug run'})
            print(result.message)

    print("\nOverview:", service.configuration_overview(quote.id))

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", DeprecationWarning)
        order = service.create_order_from_quote(quote.id)
    print(f"Consolidated order {order.order_number}: {format_currency(order.monthly_total)}/mo")
    print(f"Orders on record: {len(service.orders_for_quote(quote.id))}")


if __name__ == "__main__":
    debug()
