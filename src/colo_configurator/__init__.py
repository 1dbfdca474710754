"""
Colo Configurator Package

Quote and order lifecycle for a data-center services catalog.
Prices configured colocation and interconnection products, mints quotes
from cart contents, and tracks per-item configuration through to orders.
"""

__version__ = "1.0.0"
