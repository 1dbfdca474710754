"""
Pricing Engine - maps a product definition plus a configuration to a price.

Two pricers:
- calculate_price: base price plus independent per-field surcharges, rounded
  to whole dollars. Pure; re-run on every configuration change.
- calculate_cabinet_price: itemized MRC/NRC breakdown for the colocation
  cabinet family, reproducible line by line.
"""
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from ..config.settings import get_settings, Settings
from .models import Price, Product
from .money import round_half_up


logger = logging.getLogger(__name__)


# Linear terms: price += numeric value * rate
LINEAR_SURCHARGES = {
    'power': 50,
    'bandwidth': 0.1,
}

# Discrete lookups keyed by the selected option
TABLE_SURCHARGES = {
    'cabinetSize': {
        'Full Rack': 200,
        'Half Rack': 100,
        'Quarter Rack': 50,
    },
    'speed': {
        '100G': 500,
        '10G': 200,
        '1G': 50,
    },
}

CABINET_FAMILY = 'cabinet'
CABINET_DEFAULT_NRC = 500

CABINET_DIMENSION_ADJUSTMENTS = {
    '600mm × 1000mm × 2000mm': 0,
    '600mm × 1200mm × 2200mm': 60,
    '800mm × 1200mm × 2200mm': 120,
}

CABINET_CIRCUIT_SURCHARGES = {
    'Single Phase Circuit': 0,
    'Two Phase Circuit': 150,
    'Three Phase Circuit': 300,
}

CABINET_DRAW_CAP_SURCHARGES = {
    '2kVA': 0,
    '3kVA': 100,
    '5kVA': 250,
    '8kVA': 450,
}

PDU_UNIT_MRC = 50
PDU_UNIT_NRC = 0


def _numeric(value: Any) -> Optional[int]:
    """Integer part of a numeric config value, or None when it is blank or not a number."""
    if value is None or isinstance(value, bool) or value == '':
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return int(number)


def _base_price(product: Product | Mapping) -> float:
    if isinstance(product, Mapping):
        return float(product.get('basePrice', 0))
    return float(product.base_price)


def calculate_price(product: Product | Mapping, configuration: Mapping) -> int:
    """
    Monthly price for a product and configuration.

    Surcharges are additive and evaluated independently; keys with no
    surcharge rule contribute nothing.
    """
    price = _base_price(product)

    for name, rate in LINEAR_SURCHARGES.items():
        amount = _numeric(configuration.get(name))
        if amount:
            price += amount * rate

    for name, table in TABLE_SURCHARGES.items():
        option = configuration.get(name)
        if option:
            price += table.get(str(option), 0)

    return round_half_up(price)


@dataclass
class BreakdownLine:
    """A single line in an itemized price breakdown."""
    step: str
    description: str
    mrc: float = 0
    nrc: float = 0


@dataclass
class CabinetPrice:
    """Itemized cabinet price with monthly (MRC) and one-time (NRC) totals."""
    product_key: str
    lines: list[BreakdownLine] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def mrc(self) -> int:
        return round_half_up(sum(line.mrc for line in self.lines))

    @property
    def nrc(self) -> int:
        return round_half_up(sum(line.nrc for line in self.lines))

    def add_line(self, step: str, description: str, mrc: float = 0, nrc: float = 0):
        self.lines.append(BreakdownLine(step=step, description=description, mrc=mrc, nrc=nrc))

    def add_warning(self, warning: str):
        self.warnings.append(warning)

    def get_breakdown_text(self) -> str:
        """Human-readable breakdown, one line per component."""
        lines = [
            f"→ {line.step}: {line.description} = MRC ${line.mrc:,.2f} / NRC ${line.nrc:,.2f}"
            for line in self.lines
        ]
        lines.append(f"→ Total: MRC ${self.mrc:,} / NRC ${self.nrc:,}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            'productKey': self.product_key,
            'lines': [
                {'step': l.step, 'description': l.description, 'mrc': l.mrc, 'nrc': l.nrc}
                for l in self.lines
            ],
            'mrc': self.mrc,
            'nrc': self.nrc,
            'warnings': list(self.warnings),
        }


def _table_line(result: CabinetPrice, step: str, table: dict, option: Any):
    if not option:
        result.add_line(step, "Not selected")
        return
    option = str(option)
    if option not in table:
        result.add_line(step, f"Unknown option {option}")
        result.add_warning(f"Unknown {step.lower()} '{option}' priced at $0")
        logger.warning("Unknown %s option %r priced at 0", step, option)
        return
    result.add_line(step, option, mrc=table[option])


def calculate_cabinet_price(product: Product, configuration: Mapping) -> CabinetPrice:
    """
    Itemized pricing for the colocation cabinet family.

    Lines, in order: standard cabinet, dimension adjustment, circuit type,
    PDUs (unit cost x count), draw cap.
    """
    result = CabinetPrice(product_key=product.key)

    nrc = product.one_time_price if product.one_time_price is not None else CABINET_DEFAULT_NRC
    result.add_line("Standard Cabinet", product.name, mrc=product.base_price, nrc=nrc)

    _table_line(result, "Dimension Adjustment", CABINET_DIMENSION_ADJUSTMENTS,
                configuration.get('cabinetDimensions'))
    _table_line(result, "Circuit Type", CABINET_CIRCUIT_SURCHARGES,
                configuration.get('circuitType'))

    pdu_count = max(_numeric(configuration.get('pduCount')) or 0, 0)
    result.add_line(
        "PDUs",
        f"{pdu_count} × ${PDU_UNIT_MRC}",
        mrc=pdu_count * PDU_UNIT_MRC,
        nrc=pdu_count * PDU_UNIT_NRC,
    )

    _table_line(result, "Draw Cap", CABINET_DRAW_CAP_SURCHARGES,
                configuration.get('drawCap'))

    return result


class PricingEngine:
    """
    Resolves unit prices for catalog products.

    Cabinet-family products use the itemized breakdown; everything else uses
    calculate_price for the monthly charge and the product's one-time price
    (or the configured default) for the NRC.
    """

    def __init__(self, catalog, settings: Optional[Settings] = None):
        self.catalog = catalog
        self.settings = settings or get_settings()

    def get_product(self, product_key: str) -> Optional[Product]:
        return self.catalog.get(product_key)

    def price(self, product: Product, configuration: Mapping) -> Price:
        """Unit price (one-time and monthly) for a configured product."""
        if product.pricing_family == CABINET_FAMILY:
            breakdown = calculate_cabinet_price(product, configuration)
            return Price(one_time=breakdown.nrc, recurring=breakdown.mrc)

        one_time = product.one_time_price
        if one_time is None:
            one_time = self.settings.default_product_one_time
        return Price(one_time=one_time, recurring=calculate_price(product, configuration))

    def breakdown(self, product: Product, configuration: Mapping) -> Optional[CabinetPrice]:
        """Itemized breakdown for cabinet products, None for other families."""
        if product.pricing_family != CABINET_FAMILY:
            return None
        return calculate_cabinet_price(product, configuration)
