"""
Catalog Lookup - read-only product and package definitions.

Loads data/catalog.json once and answers lookups keyed by product id. The
core never mutates catalog data; every accessor hands back the parsed
dataclasses built at load time.
"""
import json
import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from ..config.settings import get_settings, Settings
from ..engine.models import PackageDefinition, Product


logger = logging.getLogger(__name__)


class Catalog:
    """Product and package definitions keyed by id."""

    def __init__(self, raw: dict):
        self.raw = raw
        self._products = {
            key: Product.from_dict(key, data)
            for key, data in raw.get('products', {}).items()
        }
        self._packages = {
            key: PackageDefinition.from_dict(key, data)
            for key, data in raw.get('packages', {}).items()
        }

    @classmethod
    def load(cls, path: Optional[Path] = None, settings: Optional[Settings] = None) -> 'Catalog':
        """Load the catalog JSON from disk."""
        settings = settings or get_settings()
        catalog_path = path or settings.catalog_file

        if not catalog_path.exists():
            raise FileNotFoundError(f"catalog.json not found at {catalog_path}.")

        with open(catalog_path, 'r', encoding='utf-8') as f:
            raw = json.load(f)

        catalog = cls(raw)
        logger.info(
            "Loaded catalog %s: %d products, %d packages",
            catalog.version, len(catalog._products), len(catalog._packages),
        )
        return catalog

    @property
    def version(self) -> str:
        return self.raw.get('version', '0.0.0')

    def get(self, product_key: str) -> Optional[Product]:
        return self._products.get(product_key)

    def get_package(self, package_key: str) -> Optional[PackageDefinition]:
        return self._packages.get(package_key)

    def products(self) -> list[Product]:
        return list(self._products.values())

    def packages(self) -> list[PackageDefinition]:
        return list(self._packages.values())

    def search(self, category: Optional[str] = None, text: Optional[str] = None) -> list[Product]:
        """Filter products by category (case-insensitive) and free text over name/description."""
        results = self.products()
        if category and category.lower() != 'all':
            results = [p for p in results if p.category.lower() == category.lower()]
        if text:
            term = text.lower()
            results = [
                p for p in results
                if term in p.name.lower() or term in p.description.lower() or term in p.key
            ]
        return results

    def default_configuration(self, product_key: str) -> dict:
        """Field defaults for a product ({} for unknown products)."""
        product = self.get(product_key)
        if product is None:
            return {}
        return {f.name: f.default for f in product.fields if f.default is not None}

    def apply_template(self, product_key: str, template_id: str) -> Optional[dict]:
        """A template's preset configuration merged over the field defaults."""
        product = self.get(product_key)
        if product is None:
            return None
        template = product.get_template(template_id)
        if template is None:
            return None
        return {**self.default_configuration(product_key), **template.configuration}

    def to_frame(self) -> pd.DataFrame:
        """Products as a DataFrame indexed by key, for listing and export."""
        rows = [
            {
                'Key': p.key,
                'Name': p.name,
                'Category': p.category,
                'Base Price': p.base_price,
                'Configuration Scope': p.configuration_scope,
                'Templates': len(p.templates),
            }
            for p in self._products.values()
        ]
        return pd.DataFrame(rows).set_index('Key')
