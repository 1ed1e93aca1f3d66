"""Cost breakdown calculations for BuildBid quotes.

Aggregates the nested cost-breakdown tree into totals and margins, and
builds the short human-readable quote reference shown to homeowners.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Iterable, Iterator, List

from models.quote import BreakdownItem, Quote


@dataclass
class BreakdownTotals:
    """Sums over every node of a breakdown tree."""

    total_cost: float = 0.0
    total_labour: float = 0.0
    total_materials: float = 0.0
    total_equipment: float = 0.0
    total_overheads: float = 0.0
    total_profit: float = 0.0

    @property
    def direct_costs(self) -> float:
        return self.total_labour + self.total_materials + self.total_equipment

    def to_dict(self) -> Dict[str, float]:
        return {
            "totalCost": self.total_cost,
            "totalLabour": self.total_labour,
            "totalMaterials": self.total_materials,
            "totalEquipment": self.total_equipment,
            "totalOverheads": self.total_overheads,
            "totalProfit": self.total_profit,
        }


@dataclass
class Margins:
    """Margin percentages relative to the quoted price, 2 dp."""

    gross_margin: float
    net_margin: float
    overhead_percentage: float
    profit_percentage: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def iter_items(breakdown: Iterable[BreakdownItem]) -> Iterator[BreakdownItem]:
    """Depth-first walk over a breakdown tree, parents before children."""
    for item in breakdown:
        yield item
        if item.sub_items:
            yield from iter_items(item.sub_items)


def max_depth(breakdown: List[BreakdownItem]) -> int:
    """Depth of the deepest branch; a flat list has depth 1, empty is 0."""
    if not breakdown:
        return 0
    return 1 + max(max_depth(item.sub_items) for item in breakdown)


def calculate_totals(breakdown: List[BreakdownItem]) -> BreakdownTotals:
    """Sum costs across the whole tree.

    Overhead and profit amounts are derived per item as
    ``total_cost * percentage / 100`` and accumulated.
    """
    totals = BreakdownTotals()
    for item in iter_items(breakdown):
        totals.total_cost += item.total_cost
        totals.total_labour += item.labour_cost
        totals.total_materials += item.material_cost
        totals.total_equipment += item.equipment_cost
        totals.total_overheads += item.total_cost * (item.overhead_percentage / 100)
        totals.total_profit += item.total_cost * (item.profit_percentage / 100)
    return totals


def calculate_margins(quote: Quote) -> Margins:
    """Gross/net margin and overhead/profit share of the quoted price.

    Args:
        quote: Quote with a positive total price.

    Returns:
        Margins rounded to 2 decimal places. All zero when the price is
        not positive, since the ratios are undefined.
    """
    if quote.total_price <= 0:
        return Margins(0.0, 0.0, 0.0, 0.0)

    totals = calculate_totals(quote.breakdown)
    price = quote.total_price

    gross_margin = (price - totals.direct_costs) / price * 100
    net_margin = totals.total_profit / price * 100
    overhead_percentage = totals.total_overheads / price * 100

    return Margins(
        gross_margin=round(gross_margin, 2),
        net_margin=round(net_margin, 2),
        overhead_percentage=round(overhead_percentage, 2),
        profit_percentage=round(net_margin, 2),
    )


def generate_reference(quote: Quote) -> str:
    """Display reference such as ``Q2610-A1B2C3``. Not a lookup key."""
    stamp = quote.submitted_at
    short_id = quote.id[-6:].upper()
    return f"Q{stamp.strftime('%y')}{stamp.month:02d}-{short_id}"
