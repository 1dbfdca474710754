"""
Form-layer validation of product configurations.

Runs before any store operation; the store itself trusts its callers.
"""
from dataclasses import dataclass, field
from typing import Mapping

from .models import Product


@dataclass
class ValidationResult:
    """Result of configuration validation."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == '')


def validate_configuration(product: Product, configuration: Mapping) -> ValidationResult:
    """Check required fields, select options and numeric ranges."""
    result = ValidationResult(valid=True)

    for f in product.fields:
        value = configuration.get(f.name)

        if _is_blank(value):
            if f.required:
                result.errors.append(f"{f.label} is required")
                result.valid = False
            continue

        if f.type == 'select' and f.options and str(value) not in f.options:
            result.errors.append(
                f"{f.label} must be one of: {', '.join(f.options)}"
            )
            result.valid = False

        elif f.type == 'number':
            try:
                number = float(value)
            except (TypeError, ValueError):
                result.errors.append(f"{f.label} must be a number")
                result.valid = False
                continue
            if f.min is not None and number < f.min:
                result.errors.append(f"{f.label} must be at least {f.min:g}")
                result.valid = False
            if f.max is not None and number > f.max:
                result.errors.append(f"{f.label} must be at most {f.max:g}")
                result.valid = False

    known = {f.name for f in product.fields}
    for name in configuration:
        if name not in known and name not in ('ibx', 'cage'):
            result.warnings.append(f"'{name}' is not a field of {product.name}")

    return result
