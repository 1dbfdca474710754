"""
Data models for the configurator.

Uses dataclasses for structured, type-safe data representation. Every entity
round-trips through the camelCase JSON layout the store persists; derived
aggregates (line totals, progress, quote totals) are computed on read and
only written out as cached values.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .progress import (
    PER_LINE_ITEM,
    clamp_completed,
    progress_percent,
    progress_status,
    total_required_for,
)


QUOTE_STATUSES = ('pending', 'accepted', 'declined', 'expired')
ORDER_STATUSES = ('pending', 'processing', 'shipped', 'completed')

# Keys LineItem.configuration carries besides the user's configuration values
CONFIGURATION_META_KEYS = ('status', 'completedCount', 'totalRequired', 'configuredAt')


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp, tolerating a trailing 'Z'."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None


# ============================================================================
# CATALOG
# ============================================================================

@dataclass
class ProductField:
    """A single configurable field on a product."""
    name: str
    label: str
    type: str  # "select", "number" or "text"
    options: list[str] = field(default_factory=list)
    min: Optional[float] = None
    max: Optional[float] = None
    required: bool = False
    default: Any = None

    @classmethod
    def from_dict(cls, data: dict) -> 'ProductField':
        return cls(
            name=data['name'],
            label=data.get('label', data['name']),
            type=data.get('type', 'text'),
            options=[str(o) for o in data.get('options', [])],
            min=data.get('min'),
            max=data.get('max'),
            required=bool(data.get('required', False)),
            default=data.get('default'),
        )


@dataclass
class Template:
    """A preset configuration bundle with fixed display pricing."""
    id: str
    name: str
    configuration: dict
    description: str = ""
    pricing: str = ""
    essential: bool = False
    features: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict, essential: bool = False) -> 'Template':
        return cls(
            id=data['id'],
            name=data.get('name', data['id']),
            configuration=dict(data.get('configuration', {})),
            description=data.get('description', ''),
            pricing=data.get('pricing', ''),
            essential=essential,
            features=list(data.get('features', data.get('keyFeatures', []))),
        )


@dataclass
class Product:
    """A catalog product definition (read-only)."""
    key: str
    name: str
    category: str  # "Colocation" or "Interconnection"
    base_price: float
    fields: list[ProductField] = field(default_factory=list)
    templates: list[Template] = field(default_factory=list)
    description: str = ""
    configuration_required: bool = True
    configuration_scope: str = PER_LINE_ITEM
    pricing_family: Optional[str] = None  # "cabinet" selects the itemized cabinet pricer
    one_time_price: Optional[float] = None

    def get_field(self, name: str) -> Optional[ProductField]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def get_template(self, template_id: str) -> Optional[Template]:
        for t in self.templates:
            if t.id == template_id:
                return t
        return None

    @classmethod
    def from_dict(cls, key: str, data: dict) -> 'Product':
        templates = [Template.from_dict(t, essential=True) for t in data.get('essentialTemplates', [])]
        templates += [Template.from_dict(t) for t in data.get('templates', [])]
        return cls(
            key=key,
            name=data['name'],
            category=data.get('category', ''),
            base_price=float(data.get('basePrice', 0)),
            fields=[ProductField.from_dict(f) for f in data.get('fields', [])],
            templates=templates,
            description=data.get('description', ''),
            configuration_required=bool(data.get('configurationRequired', True)),
            configuration_scope=data.get('configurationScope', PER_LINE_ITEM),
            pricing_family=data.get('pricingFamily'),
            one_time_price=data.get('oneTimePrice'),
        )


@dataclass
class PackageDefinition:
    """A bundled package of products sold at a discounted monthly price."""
    key: str
    name: str
    original_price: float
    discounted_price: float
    category: str = "Package"
    description: str = ""
    discount_percent: float = 0
    setup_fee: float = 0
    discounted_setup_fee: float = 0
    included_products: list[dict] = field(default_factory=list)
    features: list[str] = field(default_factory=list)
    configuration: dict = field(default_factory=dict)

    @property
    def monthly_savings(self) -> float:
        return self.original_price - self.discounted_price

    @classmethod
    def from_dict(cls, key: str, data: dict) -> 'PackageDefinition':
        return cls(
            key=key,
            name=data['name'],
            original_price=float(data.get('originalPrice', 0)),
            discounted_price=float(data.get('discountedPrice', 0)),
            category=data.get('category', 'Package'),
            description=data.get('description', ''),
            discount_percent=float(data.get('discount', 0)),
            setup_fee=float(data.get('setupFee', 0)),
            discounted_setup_fee=float(data.get('discountedSetupFee', data.get('setupFee', 0))),
            included_products=list(data.get('includedProducts', [])),
            features=list(data.get('features', [])),
            configuration=dict(data.get('configuration', {})),
        )


# ============================================================================
# CART
# ============================================================================

@dataclass
class CartItem:
    """A configured product or package waiting in the cart or package list."""
    id: int
    name: str
    category: str
    price: float  # monthly
    configuration: dict = field(default_factory=dict)
    qty: int = 1
    key: Optional[str] = None
    one_time_price: Optional[float] = None
    original_price: Optional[float] = None

    def to_dict(self) -> dict:
        data = {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'price': self.price,
            'configuration': dict(self.configuration),
            'qty': self.qty,
        }
        if self.key is not None:
            data['key'] = self.key
        if self.one_time_price is not None:
            data['oneTimePrice'] = self.one_time_price
        if self.original_price is not None:
            data['originalPrice'] = self.original_price
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'CartItem':
        return cls(
            id=data.get('id', 0),
            name=data.get('name', ''),
            category=data.get('category', ''),
            price=data.get('price') or 0,
            configuration=dict(data.get('configuration') or {}),
            qty=data.get('qty', 1),
            key=data.get('key'),
            one_time_price=data.get('oneTimePrice'),
            original_price=data.get('originalPrice'),
        )


# ============================================================================
# QUOTES AND ORDERS
# ============================================================================

@dataclass
class Price:
    """A one-time (NRC) and monthly recurring (MRC) amount pair."""
    one_time: float = 0
    recurring: float = 0

    def scaled(self, qty: int) -> 'Price':
        return Price(one_time=self.one_time * qty, recurring=self.recurring * qty)

    def __add__(self, other: 'Price') -> 'Price':
        return Price(
            one_time=self.one_time + other.one_time,
            recurring=self.recurring + other.recurring,
        )

    def to_dict(self) -> dict:
        return {'oneTime': self.one_time, 'recurring': self.recurring}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'Price':
        data = data or {}
        return cls(one_time=data.get('oneTime') or 0, recurring=data.get('recurring') or 0)


@dataclass
class ProductRef:
    """The product summary a line item carries."""
    id: Optional[str]
    name: str
    category: str
    configuration_required: bool = True
    configuration_scope: str = PER_LINE_ITEM

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'configurationRequired': self.configuration_required,
            'configurationScope': self.configuration_scope,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict], fallback: dict) -> 'ProductRef':
        data = data or {}
        return cls(
            id=data.get('id', fallback.get('key')),
            name=data.get('name', fallback.get('name', '')),
            category=data.get('category', fallback.get('category', '')),
            configuration_required=bool(data.get('configurationRequired', False)),
            configuration_scope=data.get('configurationScope') or PER_LINE_ITEM,
        )


# Keys whose presence marks a line item as configurable
CONFIGURABLE_PRODUCT_KEYS = ('secure-cabinet', 'ethernet-cross-connect', 'cross-connect')


@dataclass
class LineItem:
    """One product entry within a quote or order."""
    id: Any
    name: str
    category: str
    qty: int
    unit_price: Price
    product: ProductRef
    key: Optional[str] = None
    needs_configuration: bool = True
    configuration: dict = field(default_factory=dict)  # configuration values only
    completed_count: int = 0
    configured_at: Optional[str] = None
    configuration_data: Optional[dict] = None  # last submitted form data
    original_unit_price: Optional[Price] = None
    item_type: str = "product"

    def __post_init__(self):
        self.completed_count = clamp_completed(self.completed_count, self.total_required)

    @property
    def total_price(self) -> Price:
        return self.unit_price.scaled(self.qty)

    @property
    def original_total_price(self) -> Price:
        return (self.original_unit_price or self.unit_price).scaled(self.qty)

    @property
    def configuration_scope(self) -> str:
        return self.product.configuration_scope or PER_LINE_ITEM

    @property
    def total_required(self) -> int:
        return total_required_for(self.configuration_scope, self.qty)

    @property
    def configuration_status(self) -> str:
        return progress_status(self.completed_count, self.total_required)

    @property
    def configuration_progress(self) -> int:
        return progress_percent(self.completed_count, self.total_required)

    @property
    def requires_configuration(self) -> bool:
        """Whether the item goes through the configuration flow."""
        return bool(
            self.product.configuration_required
            or self.needs_configuration
            or (self.key and self.key in CONFIGURABLE_PRODUCT_KEYS)
            or 'cross connect' in (self.name or '').lower()
        )

    def to_dict(self) -> dict:
        configuration = {
            **self.configuration,
            'status': self.configuration_status,
            'completedCount': self.completed_count,
            'totalRequired': self.total_required,
        }
        if self.configured_at:
            configuration['configuredAt'] = self.configured_at

        data = {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'key': self.key,
            'qty': self.qty,
            'type': self.item_type,
            'unitPrice': self.unit_price.to_dict(),
            'totalPrice': self.total_price.to_dict(),
            'product': self.product.to_dict(),
            'needsConfiguration': self.needs_configuration,
            'configuration': configuration,
            'configurationProgress': self.configuration_progress,
            'configurationStatus': self.configuration_status,
        }
        if self.configured_at:
            data['configuredAt'] = self.configured_at
        if self.configuration_data is not None:
            data['configurationData'] = dict(self.configuration_data)
        if self.original_unit_price is not None:
            data['originalUnitPrice'] = self.original_unit_price.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'LineItem':
        raw_config = dict(data.get('configuration') or {})
        values = {k: v for k, v in raw_config.items() if k not in CONFIGURATION_META_KEYS}
        original = data.get('originalUnitPrice')
        return cls(
            id=data.get('id'),
            name=data.get('name', ''),
            category=data.get('category', ''),
            key=data.get('key'),
            qty=int(data.get('qty') or 1),
            unit_price=Price.from_dict(data.get('unitPrice')),
            product=ProductRef.from_dict(data.get('product'), data),
            needs_configuration=bool(data.get('needsConfiguration', False)),
            configuration=values,
            completed_count=int(raw_config.get('completedCount') or 0),
            configured_at=raw_config.get('configuredAt') or data.get('configuredAt'),
            configuration_data=data.get('configurationData'),
            original_unit_price=Price.from_dict(original) if original else None,
            item_type=data.get('type', 'product'),
        )


@dataclass
class Signature:
    """Who accepted or declined a quote, and when."""
    signed_by: str
    signed_at: str
    signed_by_email: str

    def to_dict(self) -> dict:
        return {
            'signedBy': self.signed_by,
            'signedAt': self.signed_at,
            'signedByEmail': self.signed_by_email,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional['Signature']:
        if not data:
            return None
        signed_at = data.get('signedAt', '')
        if isinstance(signed_at, datetime):
            signed_at = signed_at.isoformat()
        return cls(
            signed_by=data.get('signedBy', ''),
            signed_at=signed_at,
            signed_by_email=data.get('signedByEmail', ''),
        )


@dataclass
class Quote:
    """A priced offer built from cart contents."""
    id: str
    items: list[LineItem]
    created_at: str
    quote_number: Optional[str] = None
    status: str = 'pending'
    currency: str = 'USD'
    valid_until: Optional[str] = None
    expires_at: Optional[str] = None
    customer_info: dict = field(default_factory=dict)
    signature: Optional[Signature] = None
    updated_at: Optional[str] = None
    initial_term_months: int = 24
    renewal_period_months: int = 12
    non_renewal_notice: int = 90

    def __post_init__(self):
        if not self.quote_number:
            self.quote_number = self.id

    @property
    def final_totals(self) -> Price:
        total = Price()
        for item in self.items:
            total = total + item.total_price
        return total

    @property
    def original_totals(self) -> Price:
        total = Price()
        for item in self.items:
            total = total + item.original_total_price
        return total

    @property
    def total_savings(self) -> float:
        original = self.original_totals
        final = self.final_totals
        return (original.one_time - final.one_time) + (original.recurring - final.recurring)

    def is_expired(self, now: datetime) -> bool:
        deadline = parse_timestamp(self.expires_at or self.valid_until)
        if deadline is None:
            return False
        if deadline.tzinfo is None and now.tzinfo is not None:
            now = now.replace(tzinfo=None)
        elif deadline.tzinfo is not None and now.tzinfo is None:
            deadline = deadline.replace(tzinfo=None)
        return now > deadline

    def display_status(self, now: datetime) -> str:
        """Stored status, except a still-pending quote past its deadline reads 'expired'."""
        if self.status == 'pending' and self.is_expired(now):
            return 'expired'
        return self.status

    def to_dict(self) -> dict:
        data = {
            'id': self.id,
            'quoteNumber': self.quote_number,
            'status': self.status,
            'currency': self.currency,
            'items': [item.to_dict() for item in self.items],
            'finalTotals': self.final_totals.to_dict(),
            'originalTotals': self.original_totals.to_dict(),
            'totalSavings': self.total_savings,
            'createdAt': self.created_at,
            'validUntil': self.valid_until,
            'expiresAt': self.expires_at,
            'customerInfo': dict(self.customer_info),
            'initialTermMonths': self.initial_term_months,
            'renewalPeriodMonths': self.renewal_period_months,
            'nonRenewalNotice': self.non_renewal_notice,
        }
        if self.signature is not None:
            data['signature'] = self.signature.to_dict()
        if self.updated_at:
            data['updatedAt'] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Quote':
        return cls(
            id=str(data.get('id', '')),
            quote_number=data.get('quoteNumber'),
            items=[LineItem.from_dict(i) for i in (data.get('items') or []) if isinstance(i, dict)],
            created_at=data.get('createdAt', ''),
            status=data.get('status') or 'pending',
            currency=data.get('currency', 'USD'),
            valid_until=data.get('validUntil'),
            expires_at=data.get('expiresAt'),
            customer_info=dict(data.get('customerInfo') or {}),
            signature=Signature.from_dict(data.get('signature')),
            updated_at=data.get('updatedAt'),
            initial_term_months=data.get('initialTermMonths', 24),
            renewal_period_months=data.get('renewalPeriodMonths', 12),
            non_renewal_notice=data.get('nonRenewalNotice', 90),
        )


@dataclass
class Order:
    """An order placed against an accepted quote."""
    id: str
    items: list[LineItem]
    created_at: str
    quote_id: Optional[str] = None  # lookup only, never cascades
    order_number: Optional[str] = None
    status: str = 'pending'
    total: float = 0  # one-time
    monthly_total: float = 0
    customer_info: dict = field(default_factory=dict)
    configuration_summary: str = ""
    updated_at: Optional[str] = None

    def __post_init__(self):
        if not self.order_number:
            self.order_number = self.id

    def to_dict(self) -> dict:
        data = {
            'id': self.id,
            'orderNumber': self.order_number,
            'quoteId': self.quote_id,
            'status': self.status,
            'items': [item.to_dict() for item in self.items],
            'total': self.total,
            'monthlyTotal': self.monthly_total,
            'createdAt': self.created_at,
            'customerInfo': dict(self.customer_info),
            'configurationSummary': self.configuration_summary,
        }
        if self.updated_at:
            data['updatedAt'] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Order':
        return cls(
            id=str(data.get('id', '')),
            order_number=data.get('orderNumber'),
            quote_id=data.get('quoteId'),
            items=[LineItem.from_dict(i) for i in (data.get('items') or []) if isinstance(i, dict)],
            created_at=data.get('createdAt', ''),
            status=data.get('status') or 'pending',
            total=data.get('total') or 0,
            monthly_total=data.get('monthlyTotal') or 0,
            customer_info=dict(data.get('customerInfo') or {}),
            configuration_summary=data.get('configurationSummary', ''),
            updated_at=data.get('updatedAt'),
        )


# ============================================================================
# STORE STATE
# ============================================================================

@dataclass
class StoreState:
    """The whole session state tree."""
    cart: list[CartItem] = field(default_factory=list)
    packages: list[CartItem] = field(default_factory=list)
    quotes: list[Quote] = field(default_factory=list)
    orders: list[Order] = field(default_factory=list)
    selected_ibx: str = 'MB2'
    selected_cage: str = 'A-101'

    def find_quote(self, quote_id: str) -> Optional[Quote]:
        for quote in self.quotes:
            if quote.id == quote_id:
                return quote
        return None

    def find_order(self, order_id: str) -> Optional[Order]:
        for order in self.orders:
            if order.id == order_id:
                return order
        return None

    def to_dict(self) -> dict:
        return {
            'cart': [item.to_dict() for item in self.cart],
            'packages': [item.to_dict() for item in self.packages],
            'quotes': [quote.to_dict() for quote in self.quotes],
            'orders': [order.to_dict() for order in self.orders],
            'selectedIBX': self.selected_ibx,
            'selectedCage': self.selected_cage,
        }

    @classmethod
    def from_dict(cls, data: dict, defaults: Optional['StoreState'] = None) -> 'StoreState':
        """
        Rebuild state from its persisted layout.

        Missing quote/order items become [] and missing statuses become
        'pending'; malformed entries are coerced rather than rejected.
        """
        defaults = defaults or cls()
        return cls(
            cart=[CartItem.from_dict(i) for i in (data.get('cart') or []) if isinstance(i, dict)],
            packages=[CartItem.from_dict(i) for i in (data.get('packages') or []) if isinstance(i, dict)],
            quotes=[Quote.from_dict(q) for q in (data.get('quotes') or []) if isinstance(q, dict)],
            orders=[Order.from_dict(o) for o in (data.get('orders') or []) if isinstance(o, dict)],
            selected_ibx=data.get('selectedIBX') or defaults.selected_ibx,
            selected_cage=data.get('selectedCage') or defaults.selected_cage,
        )
