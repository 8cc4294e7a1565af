"""Visualization module for TARF analytics.

This module provides plotting functions for:
- Proxy functions of one fixing index
- Proxy surfaces over spot and accumulated amount
"""

from .proxy import plot_proxy_functions, plot_proxy_surface

__all__ = [
    "plot_proxy_functions",
    "plot_proxy_surface",
]
