"""
Visualization package - Plotting tools for sweep results.

Contains:
- Metric heatmaps over window size and loss probability
"""

from .heatmap import EfficiencyHeatmap

__all__ = [
    'EfficiencyHeatmap'
]
