"""
ShellyFlow: energy flow engine for a Shelly EM home energy dashboard.

Turns meter readings into daily totals, a PV / GRID / HOME flow graph,
efficiency ratios and visual scalars for the rendering layer.
"""

__version__ = "1.0.0"
