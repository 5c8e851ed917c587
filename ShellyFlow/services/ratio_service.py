"""
Efficiency Ratio Service for ShellyFlow.

Self-consumption: share of PV production used on site.
Self-production: share of home consumption covered by PV.

Both are percentages clamped to [0, 100]. Zero denominators give 0 and
NaN never comes out, since a NaN silently breaks gauge rendering.
"""

import logging
import math

from ShellyFlow.models import DailyTotals, EfficiencyRatio, FlowGraph, NodeId
from ShellyFlow.services.validation_service import as_number


logger = logging.getLogger(__name__)


def clamp_percent(value: float) -> float:
    """Clamp to [0, 100]; NaN maps to 0."""
    if value != value:
        return 0.0
    return max(0.0, min(100.0, value))


def _percent(numerator: float, denominator: float) -> float:
    if not math.isfinite(denominator) or denominator <= 0:
        return 0.0
    return clamp_percent(numerator / denominator * 100)


class RatioCalculator:
    """
    Service for calculating self-consumption and self-production rates.
    """

    def self_consumption(self, totals: DailyTotals) -> float:
        """
        Percentage of PV production consumed on site.

        Args:
            totals: DailyTotals for the window

        Returns:
            float: Rate in [0, 100], 0 when nothing was produced
        """
        production = as_number(totals.production)
        injection = as_number(totals.injection)

        if production <= 0:
            return 0.0

        return _percent(production - injection, production)

    def self_production(self, totals: DailyTotals) -> float:
        """
        Percentage of home consumption covered by PV.

        Home consumption is grid import plus the PV energy that stayed
        on site: consumption + production - injection.

        Args:
            totals: DailyTotals for the window

        Returns:
            float: Rate in [0, 100], 0 when nothing was consumed
        """
        consumption = as_number(totals.consumption)
        production = as_number(totals.production)
        injection = as_number(totals.injection)

        total_home_consumption = consumption + production - injection
        if total_home_consumption <= 0:
            return 0.0

        return _percent(production - injection, total_home_consumption)

    def calculate(self, totals: DailyTotals) -> EfficiencyRatio:
        ratio = EfficiencyRatio(
            self_consumption_rate=self.self_consumption(totals),
            self_production_rate=self.self_production(totals)
        )
        logger.debug(f"Efficiency ratios: {ratio}")
        return ratio

    def from_flow_graph(self, graph: FlowGraph) -> EfficiencyRatio:
        """
        Ratios read off a flow graph, realtime or daily.

        Self-consumption is PV→HOME over PV production, self-production
        is PV→HOME over the HOME magnitude.

        Args:
            graph: FlowGraph from FlowGraphBuilder

        Returns:
            EfficiencyRatio with the same clamping rules as calculate()
        """
        pv = graph.nodes[NodeId.PV].magnitude
        home = graph.nodes[NodeId.HOME].magnitude
        pv_to_home = graph.breakdown.pv_to_home

        return EfficiencyRatio(
            self_consumption_rate=_percent(pv_to_home, pv),
            self_production_rate=_percent(pv_to_home, home)
        )
