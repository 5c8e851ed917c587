"""
Flow Graph Service for ShellyFlow.

This service derives the PV / GRID / HOME flow graph:
- Realtime mode from instantaneous power (W)
- Daily mode from aggregated DailyTotals (Wh)
- Grid sign convention: positive = importing, negative = exporting
- Only flows with a magnitude above zero become edges
"""

import logging
from typing import Dict, List, Optional

from ShellyFlow.models import (
    DailyTotals,
    FlowBreakdown,
    FlowEdge,
    FlowGraph,
    FlowMode,
    FlowNode,
    GridDirection,
    NodeId,
    PowerInput,
    RealtimeSample,
)
from ShellyFlow.services.validation_service import as_number
from ShellyFlow.settings import EngineSettings


logger = logging.getLogger(__name__)


class FlowGraphBuilder:
    """
    Service for building the three-node energy flow graph.

    The HOME magnitude is always pv_to_home + grid_to_home; it is the
    displayed home consumption and is never derived any other way.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        """
        Initialize the builder.

        Args:
            settings: Engine settings (PV activity thresholds)
        """
        self.settings = settings or EngineSettings()

    def build(self, power_input: PowerInput) -> FlowGraph:
        """
        Build a graph from either input variant, dispatching on its mode.

        Args:
            power_input: RealtimeSample or DailyAggregate

        Returns:
            FlowGraph for the matching mode

        Raises:
            TypeError: If the input carries no known mode
        """
        mode = getattr(power_input, 'mode', None)

        if mode == FlowMode.REALTIME:
            return self.build_realtime(power_input)
        if mode == FlowMode.DAILY:
            return self.build_daily(power_input.totals)

        raise TypeError(f"Unsupported power input: {type(power_input).__name__}")

    def build_realtime(self, power: RealtimeSample) -> FlowGraph:
        """
        Build the graph for one instant.

        Args:
            power: RealtimeSample with signed grid power and PV power (W)

        Returns:
            FlowGraph in realtime mode
        """
        grid = as_number(power.grid)
        pv = as_number(power.pv)

        is_pv_producing = pv > self.settings.activity_threshold_w
        is_grid_importing = grid > 0
        is_grid_exporting = grid < 0

        pv_to_grid = abs(grid) if is_grid_exporting else 0.0
        pv_to_home = max(0.0, pv - pv_to_grid)
        grid_to_home = grid if is_grid_importing else 0.0

        logger.debug(f"Realtime flows: pv={pv} grid={grid} pv_to_home={pv_to_home} "
                     f"pv_to_grid={pv_to_grid} grid_to_home={grid_to_home}")

        return self._assemble(
            mode=FlowMode.REALTIME,
            pv=max(0.0, pv),
            grid_magnitude=abs(grid),
            grid_direction=self._direction(is_grid_importing, is_grid_exporting),
            breakdown=FlowBreakdown(pv_to_home, pv_to_grid, grid_to_home),
            pv_to_grid_active=is_pv_producing and is_grid_exporting,
            grid_to_home_active=is_grid_importing,
        )

    def build_daily(self, totals: DailyTotals) -> FlowGraph:
        """
        Build the graph for a day of aggregated energy.

        Mirrors build_realtime: production stands in for PV power,
        import_from_grid for grid import and injection for grid export.

        Args:
            totals: DailyTotals for the day (Wh)

        Returns:
            FlowGraph in daily mode
        """
        production = as_number(totals.production)
        imported = as_number(totals.import_from_grid)
        injection = as_number(totals.injection)

        is_pv_producing = production > self.settings.daily_activity_threshold_wh
        is_grid_importing = imported > 0
        is_grid_exporting = injection > 0

        pv_to_grid = injection if is_grid_exporting else 0.0
        pv_to_home = max(0.0, production - injection)
        grid_to_home = imported if is_grid_importing else 0.0

        # Net exchange decides the grid node direction over a whole day
        net = imported - injection

        return self._assemble(
            mode=FlowMode.DAILY,
            pv=max(0.0, production),
            grid_magnitude=abs(net),
            grid_direction=self._direction(net > 0, net < 0),
            breakdown=FlowBreakdown(pv_to_home, pv_to_grid, grid_to_home),
            pv_to_grid_active=is_pv_producing and is_grid_exporting,
            grid_to_home_active=is_grid_importing,
        )

    def _assemble(
        self,
        mode: FlowMode,
        pv: float,
        grid_magnitude: float,
        grid_direction: Optional[GridDirection],
        breakdown: FlowBreakdown,
        pv_to_grid_active: bool,
        grid_to_home_active: bool
    ) -> FlowGraph:
        """Materialize nodes and the active edges."""
        edges: List[FlowEdge] = []

        if breakdown.pv_to_home > 0:
            edges.append(FlowEdge(NodeId.PV, NodeId.HOME, breakdown.pv_to_home))
        if pv_to_grid_active and breakdown.pv_to_grid > 0:
            edges.append(FlowEdge(NodeId.PV, NodeId.GRID, breakdown.pv_to_grid))
        if grid_to_home_active and breakdown.grid_to_home > 0:
            edges.append(FlowEdge(NodeId.GRID, NodeId.HOME, breakdown.grid_to_home))

        nodes: Dict[NodeId, FlowNode] = {
            NodeId.PV: FlowNode(NodeId.PV, pv),
            NodeId.GRID: FlowNode(NodeId.GRID, grid_magnitude, grid_direction),
            NodeId.HOME: FlowNode(NodeId.HOME, breakdown.pv_to_home + breakdown.grid_to_home),
        }

        if not edges:
            logger.debug(f"{mode.value} flow graph is idle")

        return FlowGraph(mode, nodes, edges, breakdown)

    @staticmethod
    def _direction(importing: bool, exporting: bool) -> Optional[GridDirection]:
        if importing:
            return GridDirection.IMPORT
        if exporting:
            return GridDirection.EXPORT
        return None
