"""Plot TARF proxy functions and surfaces."""

from typing import TYPE_CHECKING
import numpy as np
import matplotlib.pyplot as plt
from matplotlib.figure import Figure
from matplotlib.axes import Axes
from mpl_toolkits.mplot3d import Axes3D

if TYPE_CHECKING:
    from ..valuation.proxy import ProxySurface


def plot_proxy_functions(
    surface: "ProxySurface",
    fixing_index: int,
    spot_range: tuple[float, float],
    num_points: int = 200,
    figsize: tuple[float, float] = (12, 6),
) -> tuple[Figure, Axes]:
    """Plot the distinct proxy functions of one fixing index.

    Parameters
    ----------
    surface : ProxySurface
        Proxy surface returned by a valuation with ``generate_proxy``
    fixing_index : int
        Number of open fixings minus one
    spot_range : tuple[float, float]
        (min_spot, max_spot) of the plot
    num_points : int, optional
        Number of spot points (default: 200)
    figsize : tuple[float, float], optional
        Figure size (default: (12, 6))

    Returns
    -------
    tuple[Figure, Axes]
        Matplotlib figure and axes objects
    """
    fig, ax = plt.subplots(figsize=figsize)
    spots = np.linspace(spot_range[0], spot_range[1], num_points)
    limits = surface.bucket_limits
    functions = surface.functions[fixing_index]

    for fct in surface.distinct_functions(fixing_index):
        buckets = [b for b, f in enumerate(functions) if f is fct]
        label = f"acc. amount >= {limits[buckets[0]]:.4g}"
        (line,) = ax.plot(spots, fct(spots), linewidth=1.5, label=label)
        if not fct.is_constant:
            ax.axvline(x=fct.cutoff, color=line.get_color(), linestyle=":", linewidth=1)
        # core region of the first function only, to keep the plot readable
        if buckets[0] == 0:
            ax.axvspan(*fct.core_region, color="grey", alpha=0.1, label="Core region")

    ax.set_xlabel("Spot")
    ax.set_ylabel("Value at last payment date")
    ax.set_title(f"Proxy functions, {fixing_index + 1} open fixing(s)")
    ax.legend()
    ax.grid(True, alpha=0.3)

    return fig, ax


def plot_proxy_surface(
    surface: "ProxySurface",
    fixing_index: int,
    spot_range: tuple[float, float],
    num_points: int = 50,
    figsize: tuple[float, float] = (12, 8),
) -> tuple[Figure, Axes3D]:
    """Plot the proxy value over spot and accumulated amount for one fixing index.

    Parameters
    ----------
    surface : ProxySurface
        Proxy surface returned by a valuation with ``generate_proxy``
    fixing_index : int
        Number of open fixings minus one
    spot_range : tuple[float, float]
        (min_spot, max_spot) of the plot
    num_points : int, optional
        Number of points per axis (default: 50)
    figsize : tuple[float, float], optional
        Figure size (default: (12, 8))

    Returns
    -------
    tuple[Figure, Axes3D]
        Matplotlib figure and 3D axes objects
    """
    fig = plt.figure(figsize=figsize)
    ax = fig.add_subplot(111, projection="3d")

    limits = surface.bucket_limits
    # the last bucket extends to the target, approximated by one more bucket width
    upper = limits[-1] + (limits[-1] - limits[-2] if limits.size > 1 else 1.0)
    spot_grid = np.linspace(spot_range[0], spot_range[1], num_points)
    acc_grid = np.linspace(0.0, upper, num_points, endpoint=False)
    spot_mesh, acc_mesh = np.meshgrid(spot_grid, acc_grid)

    value_grid = np.empty_like(spot_mesh)
    for i, acc in enumerate(acc_grid):
        value_grid[i] = surface.evaluate(fixing_index, acc, spot_grid)

    surf = ax.plot_surface(spot_mesh, acc_mesh, value_grid, cmap="coolwarm", alpha=0.8, edgecolor="none")
    ax.set_xlabel("Spot")
    ax.set_ylabel("Accumulated amount")
    ax.set_zlabel("Value at last payment date")
    ax.set_title(f"Proxy surface, {fixing_index + 1} open fixing(s)")
    fig.colorbar(surf, ax=ax, shrink=0.5)

    return fig, ax
