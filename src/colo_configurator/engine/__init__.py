"""Engine subpackage - pricing, identifiers and configuration progress."""
from .pricing_engine import PricingEngine, calculate_price, calculate_cabinet_price
from .models import CartItem, LineItem, Order, Price, Product, Quote, StoreState

__all__ = [
    'PricingEngine', 'calculate_price', 'calculate_cabinet_price',
    'CartItem', 'LineItem', 'Order', 'Price', 'Product', 'Quote', 'StoreState',
]
