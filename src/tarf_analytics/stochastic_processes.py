"Path simulation for the TARF underlying"

from dataclasses import dataclass
import numpy as np
from .market_environment import MarketData
from .rates import DiscountCurve
from .exceptions import ValidationError


@dataclass(frozen=True, slots=True, kw_only=True)
class GBMParams:
    initial_value: float
    volatility: float

    def __post_init__(self) -> None:
        if not np.isfinite(self.initial_value) or self.initial_value <= 0.0:
            raise ValidationError(f"initial_value must be positive, got {self.initial_value}")
        if not np.isfinite(self.volatility) or self.volatility < 0.0:
            raise ValidationError(f"volatility must be >= 0, got {self.volatility}")


class GeometricBrownianMotion:
    """Black-Scholes geometric Brownian motion (Garman-Kohlhagen for FX rates).

    Attributes
    ==========
    name: str
        Name of the simulation object (typically the currency pair).
    market_data: MarketData
        Pricing date and domestic discount curve (risk-free drift).
    process_params: GBMParams
        Spot and volatility.
    foreign_curve: DiscountCurve, optional
        Foreign (or dividend) discount curve; its forward rates are subtracted
        from the domestic ones in the drift.

    Methods
    =======
    generate_paths:
        evolves the process along a time grid for a block of normals
    """

    def __init__(
        self,
        name: str,
        market_data: MarketData,
        process_params: GBMParams,
        foreign_curve: DiscountCurve | None = None,
    ):
        self.name = name
        self.pricing_date = market_data.pricing_date
        self.currency = market_data.currency
        self.discount_curve = market_data.discount_curve
        self.foreign_curve = foreign_curve

        self.initial_value = float(process_params.initial_value)
        self.volatility = float(process_params.volatility)

    def drift_rates(self, time_grid: np.ndarray) -> np.ndarray:
        """Risk-neutral drift r_d - r_f on each interval of *time_grid*."""
        rates = self.discount_curve.step_forward_rates(time_grid)
        if self.foreign_curve is not None:
            rates = rates - self.foreign_curve.step_forward_rates(time_grid)
        return rates

    def generate_paths(self, time_grid: np.ndarray, normals: np.ndarray) -> np.ndarray:
        """Generate geometric Brownian motion paths.

        dS_t = (r_d - r_f) * S_t * dt + sigma * S_t * dW_t

        Parameters
        ==========
        time_grid: np.ndarray
            Year fractions from the pricing date, starting at 0.
        normals: np.ndarray
            Standard normal increments of shape ``(len(time_grid) - 1, num_paths)``.

        Returns
        =======
        paths: np.ndarray
            Simulated values of shape ``(len(time_grid), num_paths)``.
        """
        time_grid = np.asarray(time_grid, dtype=float)
        normals = np.asarray(normals, dtype=float)
        M = len(time_grid)
        if normals.ndim != 2 or normals.shape[0] != M - 1:
            raise ValidationError(
                f"normals must have shape ({M - 1}, num_paths), got {normals.shape}"
            )

        delta_t = np.diff(time_grid)[:, None]
        drift = (self.drift_rates(time_grid)[:, None] - 0.5 * self.volatility**2) * delta_t
        diffusion = self.volatility * np.sqrt(delta_t) * normals
        log_paths = np.cumsum(drift + diffusion, axis=0)

        paths = np.empty((M, normals.shape[1]), dtype=float)
        paths[0] = self.initial_value
        paths[1:] = self.initial_value * np.exp(log_paths)
        return paths
