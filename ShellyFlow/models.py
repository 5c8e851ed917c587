"""
Data model for the ShellyFlow energy flow engine.

Every record here is an immutable NamedTuple: readings come in from the
meter, derived values (totals, graphs, ratios, encodings) are recomputed
wholesale on each refresh and never patched in place.

Units:
- Power values are watts (W)
- Energy values and cumulative counters are watt-hours (Wh)
"""

from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple, Union


class NodeId(str, Enum):
    """The three nodes of the flow graph."""
    PV = "PV"
    GRID = "GRID"
    HOME = "HOME"


class GridDirection(str, Enum):
    """Direction of the grid exchange (positive power = import)."""
    IMPORT = "import"
    EXPORT = "export"


class FlowMode(str, Enum):
    """Whether a graph describes an instant (W) or a day (Wh)."""
    REALTIME = "realtime"
    DAILY = "daily"


class MeterReading(NamedTuple):
    """
    One telemetry sample from the energy meter.

    Values are stored as received; nothing here is validated. Use
    SampleValidator before trusting the cumulative counters.
    """
    timestamp: object
    grid_power: float  # Positive = importing, negative = exporting
    pv_power: float
    grid_energy_total: float  # Cumulative import counter (Wh)
    grid_energy_returned: float  # Cumulative export counter (Wh)
    pv_energy_total: float  # Cumulative production counter (Wh)
    voltage: float = 0.0
    reactive: Optional[float] = None
    power_factor: Optional[float] = None
    frequency: Optional[float] = None
    current: Optional[float] = None
    temperature: Optional[float] = None


class Rejected(NamedTuple):
    """A reading that failed validation, with the reason."""
    reading: object
    reason: str


class DailyTotals(NamedTuple):
    """Energy totals (Wh) for one closed query window."""
    consumption: float = 0.0
    production: float = 0.0
    injection: float = 0.0
    import_from_grid: float = 0.0

    @classmethod
    def zero(cls) -> 'DailyTotals':
        return cls(0.0, 0.0, 0.0, 0.0)


class AggregationReport(NamedTuple):
    """What the aggregator computed and what it silently corrected."""
    totals: DailyTotals
    valid_count: int
    rejected: List[Rejected]
    capped_fields: Dict[str, float]  # field -> uncapped value
    counter_reset: List[str]  # counters that went backwards


class FlowNode(NamedTuple):
    node_id: NodeId
    magnitude: float
    direction: Optional[GridDirection] = None


class FlowEdge(NamedTuple):
    source: NodeId
    target: NodeId
    magnitude: float

    @property
    def key(self) -> Tuple[NodeId, NodeId]:
        return (self.source, self.target)


class FlowBreakdown(NamedTuple):
    """Decomposition of the flows, including ones too small to draw."""
    pv_to_home: float = 0.0
    pv_to_grid: float = 0.0
    grid_to_home: float = 0.0


class FlowGraph(NamedTuple):
    """
    Three-node directed flow graph.

    Only active edges (magnitude > 0) are present in ``edges``; an idle
    graph simply has none.
    """
    mode: FlowMode
    nodes: Dict[NodeId, FlowNode]
    edges: List[FlowEdge]
    breakdown: FlowBreakdown

    def edge(self, source: NodeId, target: NodeId) -> Optional[FlowEdge]:
        for edge in self.edges:
            if edge.source == source and edge.target == target:
                return edge
        return None

    def has_edge(self, source: NodeId, target: NodeId) -> bool:
        return self.edge(source, target) is not None

    @property
    def is_idle(self) -> bool:
        return not self.edges


class EfficiencyRatio(NamedTuple):
    """Percentages in [0, 100]."""
    self_consumption_rate: float = 0.0
    self_production_rate: float = 0.0


class CapacityBounds(NamedTuple):
    """Maximum capacities used to normalize gauges, in watts."""
    inverter_power_w: float = 3000.0
    grid_subscription_w: float = 6000.0


class RealtimeSample(NamedTuple):
    """Instantaneous power input (W)."""
    grid: float
    pv: float

    mode = FlowMode.REALTIME


class DailyAggregate(NamedTuple):
    """Daily energy input (Wh)."""
    totals: DailyTotals

    mode = FlowMode.DAILY


PowerInput = Union[RealtimeSample, DailyAggregate]


class VisualEncoding(NamedTuple):
    """Visual scalars ready for the rendering layer."""
    node_gauges: Dict[NodeId, float]  # fraction in [0, 1]
    node_arc_angles: Dict[NodeId, float]  # degrees in [0, 360]
    edge_widths: Dict[Tuple[NodeId, NodeId], float]  # px
    home_pv_share: float = 0.0
    home_grid_share: float = 0.0


class DailySnapshot(NamedTuple):
    """Everything the day view needs, computed from one reading window."""
    config_id: Optional[str]
    computed_at: float  # epoch seconds
    totals: DailyTotals
    graph: FlowGraph
    ratios: EfficiencyRatio
    encoding: VisualEncoding


class RealtimeSnapshot(NamedTuple):
    """Everything the live view needs, computed from one reading."""
    reading: MeterReading
    graph: FlowGraph
    ratios: EfficiencyRatio
    encoding: VisualEncoding
