"""
Visualization of refined predictions.

Quick Start
-----------
    >>> from tmrefine.visualization import save_topology_profile
    >>> save_topology_profile(result, "profile.png")
"""

from .profiles import ProfilePlotConfig, plot_topology_profile, save_topology_profile

__all__ = ["ProfilePlotConfig", "plot_topology_profile", "save_topology_profile"]
