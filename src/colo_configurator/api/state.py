"""
Process-wide wiring of the catalog, store and quote service.

Endpoints receive the service through `Depends(get_service)`; tests swap it
with `app.dependency_overrides`.
"""
import logging
from functools import lru_cache

from ..config.logging import setup_logging
from ..config.settings import get_settings
from ..data.catalog import Catalog
from ..services.quote_service import QuoteService
from ..services.store import Store


logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_service() -> QuoteService:
    """Build the session service on first use."""
    settings = get_settings()
    setup_logging(level=settings.log_level)

    catalog = Catalog.load(settings=settings)
    store = Store(settings=settings)
    logger.info("Store backed by %s", settings.state_file)
    return QuoteService(store, catalog, settings=settings)
