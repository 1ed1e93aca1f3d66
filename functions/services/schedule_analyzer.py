"""Schedule analysis for BuildBid quotes.

Derives the critical path, phase overlaps and resource summary from a
quote's timeline phases.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, List, Tuple

from models.quote import Quote, QuotePhase, ResourceType


@dataclass
class ResourceSummary:
    """Resource totals across all phases of a timeline."""

    total_labour_days: float = 0.0
    total_equipment_days: float = 0.0
    total_materials_cost: float = 0.0
    subcontractor_cost: float = 0.0
    critical_resources: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalLabourDays": self.total_labour_days,
            "totalEquipmentDays": self.total_equipment_days,
            "totalMaterialsCost": self.total_materials_cost,
            "subcontractorCost": self.subcontractor_cost,
            "criticalResources": list(self.critical_resources),
        }


def sort_phases(phases: List[QuotePhase]) -> List[QuotePhase]:
    """Phases ordered by start day. Stable, and never mutates the input."""
    return sorted(phases, key=lambda phase: phase.start_day)


def get_critical_path(quote: Quote) -> List[str]:
    """Phases that gate progress, in start order.

    Single forward pass: a phase joins the path when it has no
    dependencies or when any of its dependencies is already on the path.
    This is a heuristic, not a longest-path computation; it assumes
    dependencies are listed in causal order. Unknown dependency IDs never
    match, so phases waiting only on them are excluded.
    """
    path: List[str] = []
    on_path = set()
    for phase in sort_phases(quote.timeline.phases):
        if not phase.dependencies or any(dep in on_path for dep in phase.dependencies):
            path.append(phase.id)
            on_path.add(phase.id)
    return path


def find_phase_overlaps(phases: List[QuotePhase]) -> List[Tuple[QuotePhase, QuotePhase]]:
    """Pairs of (conflicting phase, earlier phase it overlaps).

    Sorted sweep that tracks the latest-ending phase seen so far, so a
    phase overlapping any earlier phase is reported, not just its
    immediate predecessor. Each conflicting phase is reported once.
    """
    conflicts: List[Tuple[QuotePhase, QuotePhase]] = []
    latest = None
    for phase in sort_phases(phases):
        if latest is not None and phase.start_day < latest.end_day:
            conflicts.append((phase, latest))
        if latest is None or phase.end_day > latest.end_day:
            latest = phase
    return conflicts


def get_resource_summary(quote: Quote) -> ResourceSummary:
    """Accumulate resource requirements by type in one pass."""
    summary = ResourceSummary()

    for phase in quote.timeline.phases:
        for resource in phase.resources:
            if resource.type == ResourceType.LABOUR:
                summary.total_labour_days += resource.quantity
            elif resource.type == ResourceType.EQUIPMENT:
                summary.total_equipment_days += resource.quantity
            elif resource.type == ResourceType.MATERIALS:
                summary.total_materials_cost += resource.total_cost
            elif resource.type == ResourceType.SUBCONTRACTOR:
                summary.subcontractor_cost += resource.total_cost

            if resource.critical:
                summary.critical_resources.append(f"{phase.name}: {resource.description}")

    return summary
