"""
Visual Encoding Service for ShellyFlow.

This service is the boundary to the rendering layer. It turns graph
magnitudes into scalars the renderer can use directly:
- Gauge fractions in [0, 1]: against configured capacities for live
  power, as PV shares for a day of energy
- Gauge arc angles in degrees
- Edge stroke widths (linear or logarithmic scale, floor and ceiling)

Nothing here mutates the graph.
"""

import logging
import math
from typing import Dict, Iterable, Optional, Tuple

from ShellyFlow.models import (
    CapacityBounds,
    FlowGraph,
    FlowMode,
    NodeId,
    VisualEncoding,
)
from ShellyFlow.settings import EngineSettings


logger = logging.getLogger(__name__)

SCALE_LINEAR = 'linear'
SCALE_LOG = 'log'


def _finite_positive(value) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value) and value > 0


class VisualEncodingMapper:
    """
    Service for mapping flow magnitudes to gauge and stroke scalars.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()

    def map_to_gauge(self, magnitude: float, capacity_w: float) -> float:
        """
        Fraction of a capacity, clamped to [0, 1].

        Args:
            magnitude: Node magnitude
            capacity_w: Capacity bound for that node

        Returns:
            float: Gauge fraction, 0 for unusable inputs
        """
        if not _finite_positive(capacity_w) or not _finite_positive(magnitude):
            return 0.0
        return min(1.0, magnitude / capacity_w)

    def map_to_arc_angle(self, fraction: float) -> float:
        """Gauge fraction to sweep angle in degrees."""
        if not _finite_positive(fraction):
            return 0.0
        return min(1.0, fraction) * 360.0

    def gauge_for_node(self, graph: FlowGraph, node_id: NodeId, bounds: CapacityBounds) -> float:
        """
        Gauge fraction for one node. PV is measured against the inverter,
        GRID and HOME against the grid subscription.
        """
        capacity = bounds.inverter_power_w if node_id == NodeId.PV else bounds.grid_subscription_w
        return self.map_to_gauge(graph.nodes[node_id].magnitude, capacity)

    def daily_gauges(self, graph: FlowGraph) -> Dict[NodeId, float]:
        """
        Gauge fractions for a day of energy.

        Wh totals have no capacity to compare against, so the daily gauges
        show shares instead: PV is the part of production used at home,
        HOME the part of consumption covered by PV. GRID is full whenever
        the grid exchanged any energy that day.

        Args:
            graph: FlowGraph in daily mode

        Returns:
            dict: NodeId -> fraction in [0, 1]
        """
        pv_to_home = graph.breakdown.pv_to_home
        grid_active = any(NodeId.GRID in edge.key for edge in graph.edges)

        return {
            NodeId.PV: self.map_to_gauge(pv_to_home, graph.nodes[NodeId.PV].magnitude),
            NodeId.GRID: 1.0 if grid_active else 0.0,
            NodeId.HOME: self.map_to_gauge(pv_to_home, graph.nodes[NodeId.HOME].magnitude),
        }

    def map_to_stroke_width(
        self,
        magnitude: float,
        all_magnitudes: Iterable[float],
        min_width: float = 2.0,
        max_width: float = 10.0,
        scale: str = SCALE_LINEAR
    ) -> float:
        """
        Stroke width for an edge relative to the other active edges.

        The domain runs from the smallest to the largest active magnitude.
        Active but tiny flows stay visible at ``min_width``; the largest
        flow never exceeds ``max_width``.

        Args:
            magnitude: Edge magnitude
            all_magnitudes: Magnitudes of all edges in view
            min_width: Floor in px
            max_width: Ceiling in px
            scale: 'linear' or 'log'

        Returns:
            float: Width in [min_width, max_width]
        """
        active = [m for m in all_magnitudes if _finite_positive(m)]
        if not _finite_positive(magnitude) or not active:
            return min_width

        low = min(active)
        high = max(active)
        if high <= low:
            return max_width

        if scale == SCALE_LOG:
            position = (math.log1p(magnitude) - math.log1p(low)) / (math.log1p(high) - math.log1p(low))
        else:
            position = (magnitude - low) / (high - low)

        position = max(0.0, min(1.0, position))
        return min_width + position * (max_width - min_width)

    def stroke_range(self, mode: FlowMode) -> Tuple[float, float, str]:
        """Width range and scale used for a graph mode."""
        if mode == FlowMode.REALTIME:
            low, high = self.settings.realtime_stroke_range
            return low, high, SCALE_LOG
        low, high = self.settings.daily_stroke_range
        return low, high, SCALE_LINEAR

    def encode(self, graph: FlowGraph, bounds: CapacityBounds) -> VisualEncoding:
        """
        Compute every visual scalar for a graph.

        Args:
            graph: FlowGraph from FlowGraphBuilder
            bounds: Capacity bounds for the device (realtime gauges only)

        Returns:
            VisualEncoding: gauges, arc angles, stroke widths and the
            PV/grid split of the home node
        """
        if graph.mode == FlowMode.DAILY:
            gauges = self.daily_gauges(graph)
        else:
            gauges = {node_id: self.gauge_for_node(graph, node_id, bounds) for node_id in NodeId}
        angles = {node_id: self.map_to_arc_angle(fraction) for node_id, fraction in gauges.items()}

        min_width, max_width, scale = self.stroke_range(graph.mode)
        magnitudes = [edge.magnitude for edge in graph.edges]
        widths = {
            edge.key: self.map_to_stroke_width(edge.magnitude, magnitudes, min_width, max_width, scale)
            for edge in graph.edges
        }

        home = graph.nodes[NodeId.HOME].magnitude
        if _finite_positive(home):
            pv_share = min(1.0, graph.breakdown.pv_to_home / home)
            grid_share = min(1.0, graph.breakdown.grid_to_home / home)
        else:
            pv_share = grid_share = 0.0

        return VisualEncoding(gauges, angles, widths, pv_share, grid_share)
