"""
Quote Service - cart to quote to order flow.

Guards every lifecycle step before touching the store:
- only pending, unexpired quotes can be accepted or declined
- line items can only be configured on accepted quotes
- a quote-level order needs every configurable item at 100%

Guard failures raise NotFoundError / PreconditionError carrying the
user-facing message; nothing is dispatched when a guard fails.
"""
import logging
import warnings
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import pandas as pd

from ..config.settings import get_settings, Settings
from ..data.catalog import Catalog
from ..engine.models import (
    ORDER_STATUSES,
    CartItem,
    LineItem,
    Order,
    Price,
    ProductRef,
    Quote,
    Signature,
)
from ..engine.pricing_engine import PricingEngine
from ..engine.progress import (
    COMPLETE,
    NOT_STARTED,
    PARTIAL,
    PER_LINE_ITEM,
    advance_configuration,
    progress_percent,
)
from ..engine.validation import ValidationResult, validate_configuration
from .errors import NotFoundError, PreconditionError, ValidationFailedError
from .store import Store


logger = logging.getLogger(__name__)


NOT_AVAILABLE_MESSAGE = (
    "Configuration is only available for accepted quotes. Please accept the quote first."
)


@dataclass
class ConfigurationResult:
    """Outcome of one configuration submission."""
    quote: Quote
    item: LineItem
    order: Optional[Order]
    message: str


class QuoteService:
    """Orchestrates pricing, quoting, acceptance, configuration and ordering."""

    def __init__(
        self,
        store: Store,
        catalog: Catalog,
        pricing: Optional[PricingEngine] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.catalog = catalog
        self.settings = settings or store.settings or get_settings()
        self.pricing = pricing or PricingEngine(catalog, self.settings)

    # ------------------------------------------------------------------
    # Catalog -> cart
    # ------------------------------------------------------------------

    def _require_product(self, product_key: str):
        product = self.catalog.get(product_key)
        if product is None:
            raise NotFoundError(f"Product '{product_key}' not found")
        return product

    def _with_location(self, configuration: dict) -> dict:
        """Copy the selected IBX/cage into a configuration unless already set."""
        state = self.store.state
        return {'ibx': state.selected_ibx, 'cage': state.selected_cage, **configuration}

    def build_configuration(
        self, product_key: str, configuration: Optional[dict] = None, template_id: Optional[str] = None
    ) -> dict:
        """Field defaults, then template presets, then the caller's values."""
        self._require_product(product_key)
        base = self.catalog.default_configuration(product_key)
        if template_id:
            preset = self.catalog.apply_template(product_key, template_id)
            if preset is None:
                raise NotFoundError(f"Template '{template_id}' not found for {product_key}")
            base = preset
        return {**base, **(configuration or {})}

    def validate(self, product_key: str, configuration: dict) -> ValidationResult:
        return validate_configuration(self._require_product(product_key), configuration)

    def price_configuration(self, product_key: str, configuration: dict) -> Price:
        return self.pricing.price(self._require_product(product_key), configuration)

    def add_product_to_cart(
        self,
        product_key: str,
        configuration: Optional[dict] = None,
        qty: int = 1,
        template_id: Optional[str] = None,
    ) -> CartItem:
        """Validate, price and add a configured product to the cart."""
        product = self._require_product(product_key)
        config = self.build_configuration(product_key, configuration, template_id)

        result = validate_configuration(product, config)
        if not result.valid:
            raise ValidationFailedError(
                f"Configuration for {product.name} is incomplete", errors=result.errors
            )

        price = self.pricing.price(product, config)
        item = CartItem(
            id=0,
            name=product.name,
            category=product.category,
            price=price.recurring,
            configuration=self._with_location(config),
            qty=qty,
            key=product.key,
            one_time_price=price.one_time,
        )
        return self.store.add_to_cart(item)

    def add_package(self, package_key: str, qty: int = 1) -> CartItem:
        """Add a catalog package at its discounted monthly price and setup fee."""
        package = self.catalog.get_package(package_key)
        if package is None:
            raise NotFoundError(f"Package '{package_key}' not found")

        item = CartItem(
            id=0,
            name=package.name,
            category=package.category,
            price=package.discounted_price,
            configuration=self._with_location(dict(package.configuration)),
            qty=qty,
            key=package.key,
            one_time_price=package.discounted_setup_fee,
            original_price=package.original_price,
        )
        return self.store.add_to_packages(item)

    # ------------------------------------------------------------------
    # Cart -> quote
    # ------------------------------------------------------------------

    def _product_ref(self, row: CartItem, is_package: bool) -> ProductRef:
        product = None if is_package or not row.key else self.catalog.get(row.key)
        if product is None:
            return ProductRef(
                id=row.key,
                name=row.name,
                category=row.category,
                configuration_required=True,
                configuration_scope=PER_LINE_ITEM,
            )
        return ProductRef(
            id=product.key,
            name=product.name,
            category=product.category,
            configuration_required=product.configuration_required,
            configuration_scope=product.configuration_scope,
        )

    def to_line_item(self, row: CartItem, is_package: bool = False) -> LineItem:
        """Turn a cart or package row into a quote line item."""
        default_one_time = (
            self.settings.default_package_one_time if is_package
            else self.settings.default_product_one_time
        )
        one_time = row.one_time_price if row.one_time_price is not None else default_one_time
        unit_price = Price(one_time=one_time, recurring=row.price or 0)

        original = None
        if row.original_price is not None:
            original = Price(one_time=one_time, recurring=row.original_price)

        return LineItem(
            id=row.id,
            name=row.name,
            category=row.category,
            key=row.key,
            qty=row.qty or 1,
            unit_price=unit_price,
            product=self._product_ref(row, is_package),
            needs_configuration=True,
            configuration=dict(row.configuration),
            completed_count=0,
            original_unit_price=original,
            item_type='package' if is_package else 'product',
        )

    def build_line_items(
        self, cart_ids: Optional[list[int]] = None, package_ids: Optional[list[int]] = None
    ) -> list[LineItem]:
        """Line items for the selected rows; None selects every row."""
        state = self.store.state
        items = [
            self.to_line_item(row)
            for row in state.cart
            if cart_ids is None or row.id in cart_ids
        ]
        items += [
            self.to_line_item(row, is_package=True)
            for row in state.packages
            if package_ids is None or row.id in package_ids
        ]
        return items

    def generate_quote(
        self, cart_ids: Optional[list[int]] = None, package_ids: Optional[list[int]] = None
    ) -> Quote:
        """Create a pending quote from the selected cart and package rows."""
        items = self.build_line_items(cart_ids, package_ids)
        if not items:
            raise PreconditionError("Select at least one item to generate a quote")
        return self.store.create_quote(items)

    # ------------------------------------------------------------------
    # Quote lookup
    # ------------------------------------------------------------------

    def get_quote(self, quote_id: str) -> Quote:
        quote = self.store.get_quote(quote_id)
        if quote is None:
            raise NotFoundError(f"Quote {quote_id} not found")
        return quote

    def display_status(self, quote: Quote) -> str:
        return quote.display_status(self.store.now())

    def materialize_demo_quote(self, quote_id: str) -> Quote:
        """Return the stored quote, or insert the two-item demo quote under this id."""
        existing = self.store.get_quote(quote_id)
        if existing is not None:
            return existing

        now = self.store.now()
        deadline = (now + timedelta(days=self.settings.quote_validity_days)).isoformat()
        item_id = int(now.timestamp() * 1000)

        cabinet = LineItem(
            id=item_id,
            name="Secure Cabinet Express",
            category="Colocation",
            key="secure-cabinet",
            qty=1,
            unit_price=Price(one_time=500, recurring=1260),
            product=ProductRef(
                id="secure-cabinet",
                name="Secure Cabinet Express",
                category="Colocation",
                configuration_required=True,
                configuration_scope="per-line-item",
            ),
            configuration={
                'cabinetDimensions': "600mm × 1200mm × 2200mm",
                'circuitType': "Two Phase Circuit",
                'drawCap': "3kVA",
                'pduCount': 2,
                'pdu': "PDU:P36E30G",
                'ibx': "NY1",
                'cage': "C-123",
            },
            completed_count=1,
            configured_at=now.isoformat(),
        )
        cross_connect = LineItem(
            id=item_id + 1,
            name="Ethernet Cross Connect",
            category="Interconnection",
            key="ethernet-cross-connect",
            qty=2,
            unit_price=Price(one_time=300, recurring=150),
            product=ProductRef(
                id="ethernet-cross-connect",
                name="Ethernet Cross Connect",
                category="Interconnection",
                configuration_required=True,
                configuration_scope="per-quantity",
            ),
            configuration={
                'bandwidth': "1 Gbps",
                'connectionType': "Single Mode Fiber",
                'ibx': "NY1",
            },
            completed_count=1,
        )

        quote = Quote(
            id=quote_id,
            items=[cabinet, cross_connect],
            created_at=now.isoformat(),
            currency=self.settings.currency,
            valid_until=deadline,
            expires_at=deadline,
            customer_info=dict(self.settings.customer_info),
            initial_term_months=self.settings.initial_term_months,
            renewal_period_months=self.settings.renewal_period_months,
            non_renewal_notice=self.settings.non_renewal_notice_days,
        )
        return self.store.add_quote(quote)

    # ------------------------------------------------------------------
    # Accept / decline
    # ------------------------------------------------------------------

    def _signature(self) -> Signature:
        customer = self.settings.customer_info
        return Signature(
            signed_by=customer.get('name', ''),
            signed_at=self.store.now_iso(),
            signed_by_email=customer.get('email', ''),
        )

    def _require_open(self, quote: Quote, action: str):
        if quote.status != 'pending':
            raise PreconditionError(
                f"Quote {quote.quote_number} is already {quote.status} and cannot be {action}"
            )
        if quote.is_expired(self.store.now()):
            raise PreconditionError(f"Quote {quote.quote_number} has expired")

    def accept_quote(self, quote_id: str) -> Quote:
        """pending -> accepted; signs the quote and clears the cart."""
        quote = self.get_quote(quote_id)
        self._require_open(quote, 'accepted')

        accepted = self.store.update_quote_status(quote_id, 'accepted', self._signature())
        self.store.clear_cart()
        logger.info("Quote %s accepted", quote_id)
        return accepted

    def decline_quote(self, quote_id: str) -> Quote:
        """pending -> declined."""
        quote = self.get_quote(quote_id)
        self._require_open(quote, 'declined')

        declined = self.store.update_quote_status(quote_id, 'declined', self._signature())
        logger.info("Quote %s declined", quote_id)
        return declined

    # ------------------------------------------------------------------
    # Per-item configuration
    # ------------------------------------------------------------------

    def start_configuration(self, quote_id: str, item_index: int) -> LineItem:
        """The line item to configure, after the acceptance and index guards."""
        quote = self.store.get_quote(quote_id)
        if quote is None or quote.status != 'accepted':
            raise PreconditionError(NOT_AVAILABLE_MESSAGE)
        if not 0 <= item_index < len(quote.items):
            raise NotFoundError(f"Line item {item_index} not found on quote {quote_id}")

        item = quote.items[item_index]
        if not item.requires_configuration:
            raise PreconditionError("This item does not require configuration.")
        return item

    def submit_configuration(self, quote_id: str, item_index: int, config_data: dict) -> ConfigurationResult:
        """
        Record one configuration for a line item.

        Advances the item's completed count by one (capped), replaces the
        quote's items with only that index changed, and spawns an order for
        the configured item.
        """
        item = self.start_configuration(quote_id, item_index)
        quote = self.store.get_quote(quote_id)

        configured = advance_configuration(item, config_data, self.store.now_iso())

        order = None
        if self.settings.spawn_order_per_configuration:
            order = self.store.create_order(self._order_for_item(quote, configured))

        items = [configured if idx == item_index else existing for idx, existing in enumerate(quote.items)]
        updated = self.store.update_quote(quote_id, {'items': items})

        message = self._configuration_message(configured, order)
        logger.info(
            "Configured item %d of quote %s: %d/%d",
            item_index, quote_id, configured.completed_count, configured.total_required,
        )
        return ConfigurationResult(quote=updated, item=configured, order=order, message=message)

    def _order_for_item(self, quote: Quote, item: LineItem) -> Order:
        company = quote.customer_info.get('company') or "Customer"
        return Order(
            id='',
            quote_id=quote.id,
            items=[item],
            created_at='',
            total=item.total_price.one_time or 0,
            monthly_total=item.total_price.recurring or 0,
            customer_info=dict(quote.customer_info or self.settings.customer_info),
            configuration_summary=f"{item.name} configured for {company}",
        )

    @staticmethod
    def _configuration_message(item: LineItem, order: Optional[Order]) -> str:
        done, total = item.completed_count, item.total_required
        if order is None:
            if total > 1:
                return f"Configuration saved for {item.name}. Progress: {done}/{total} instances configured."
            return f"Configuration saved for {item.name}."

        if total > 1:
            if done == total:
                return (
                    f"All configurations completed! Order {order.order_number} has been created "
                    f"for {item.name} ({done}/{total} instances configured)."
                )
            return (
                f"Configuration saved! Order {order.order_number} has been created for "
                f"{item.name}. Progress: {done}/{total} instances configured."
            )
        return f"Configuration completed! Order {order.order_number} has been created for {item.name}."

    def configuration_overview(self, quote_id: str) -> dict:
        """Instance counts and status breakdown over the configurable items of an accepted quote."""
        quote = self.get_quote(quote_id)
        if quote.status != 'accepted':
            raise PreconditionError(NOT_AVAILABLE_MESSAGE)

        configurable = [item for item in quote.items if item.requires_configuration]
        total = sum(item.total_required for item in configurable)
        completed = sum(item.completed_count for item in configurable)
        by_status = {NOT_STARTED: 0, PARTIAL: 0, COMPLETE: 0}
        for item in configurable:
            by_status[item.configuration_status] += 1

        return {
            'quoteId': quote.id,
            'configurableItems': len(configurable),
            'totalInstances': total,
            'completedInstances': completed,
            'progress': progress_percent(completed, total) if total else 100,
            'byStatus': by_status,
        }

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_order_from_quote(self, quote_id: str) -> Order:
        """
        One consolidated order for a fully configured accepted quote.

        Deprecated: submit_configuration already spawns an order per
        configuration, so running both duplicates orders for the same quote.
        """
        warnings.warn(
            "create_order_from_quote is deprecated; orders are created per configuration",
            DeprecationWarning,
            stacklevel=2,
        )
        quote = self.get_quote(quote_id)
        if quote.status != 'accepted':
            raise PreconditionError("Quote must be accepted before creating an order.")

        incomplete = [
            item.name for item in quote.items
            if item.requires_configuration and item.configuration_progress < 100
        ]
        if incomplete:
            raise PreconditionError(
                f"Please complete configuration for: {', '.join(incomplete)}",
                incomplete_items=incomplete,
            )

        totals = quote.final_totals
        order = Order(
            id='',
            quote_id=quote.id,
            items=list(quote.items),
            created_at='',
            total=totals.one_time,
            monthly_total=totals.recurring,
            customer_info=dict(quote.customer_info or self.settings.customer_info),
            configuration_summary=f"{len(quote.items)} items from quote {quote.quote_number}",
        )
        return self.store.create_order(order)

    def get_order(self, order_id: str) -> Order:
        order = self.store.get_order(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def orders_for_quote(self, quote_id: str) -> list[Order]:
        return [o for o in self.store.state.orders if o.quote_id == quote_id]

    def update_order_status(self, order_id: str, status: str) -> Order:
        """Move an order forward: pending -> processing -> shipped -> completed."""
        order = self.get_order(order_id)
        if status not in ORDER_STATUSES:
            raise PreconditionError(f"Unknown order status '{status}'")
        current = ORDER_STATUSES.index(order.status) if order.status in ORDER_STATUSES else 0
        if ORDER_STATUSES.index(status) < current:
            raise PreconditionError(f"Order {order.order_number} is already {order.status}")
        return self.store.update_order_status(order_id, status)


def quote_to_frame(quote: Quote) -> pd.DataFrame:
    """Line items of a quote as a DataFrame, one row per item, for CSV export."""
    rows = [
        {
            'Item': item.name,
            'Category': item.category,
            'Qty': item.qty,
            'Unit NRC': item.unit_price.one_time,
            'Unit MRC': item.unit_price.recurring,
            'Total NRC': item.total_price.one_time,
            'Total MRC': item.total_price.recurring,
            'Configured': f"{item.completed_count}/{item.total_required}",
            'Status': item.configuration_status,
        }
        for item in quote.items
    ]
    columns = ['Item', 'Category', 'Qty', 'Unit NRC', 'Unit MRC', 'Total NRC', 'Total MRC', 'Configured', 'Status']
    return pd.DataFrame(rows, columns=columns)
