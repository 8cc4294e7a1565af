"""Path pricer replaying the TARF fixing by fixing on simulated paths."""

from __future__ import annotations

import numpy as np

from ..tarf import TargetRedemptionForward
from .observations import ObservationStore


class TarfPathPricer:
    """Discounted TARF payoff for a block of simulated paths.

    Parameters
    ----------
    contract : TargetRedemptionForward
        The contract whose open fixings are replayed.
    fixing_grid_indices : np.ndarray
        Row of the simulated path array for each open fixing.
    discounts : np.ndarray
        Discount factors of the open payment dates (from the pricing date).
    last_discount : float
        Discount factor of the contract's last payment date. Observations are
        stored as values forward to that date, so that a proxy can be
        re-discounted on any later evaluation date.
    accumulated_amount : float
        Amount accumulated before the first open fixing.
    """

    def __init__(
        self,
        contract: TargetRedemptionForward,
        fixing_grid_indices: np.ndarray,
        discounts: np.ndarray,
        last_discount: float,
        accumulated_amount: float,
    ) -> None:
        self.contract = contract
        self.fixing_grid_indices = np.asarray(fixing_grid_indices, dtype=int)
        self.discounts = np.asarray(discounts, dtype=float)
        self.last_discount = float(last_discount)
        self.accumulated_amount = float(accumulated_amount)

    @property
    def n_fixings(self) -> int:
        return self.fixing_grid_indices.size

    def __call__(self, paths: np.ndarray, store: ObservationStore | None = None) -> np.ndarray:
        """Return the discounted payoff per path.

        If *store* is given, one observation per fixing still alive on a path is
        added: the fixing spot and the value of all payouts from that fixing on,
        bucketed by the accumulated amount before the fixing.
        """
        fixings = paths[self.fixing_grid_indices]
        n_fix, n_paths = fixings.shape
        target = self.contract.target

        accumulated = np.full(n_paths, self.accumulated_amount)
        alive = np.ones(n_paths, dtype=bool)
        payouts = np.zeros((n_fix, n_paths))
        accumulated_before = np.empty((n_fix, n_paths))
        alive_before = np.empty((n_fix, n_paths), dtype=bool)

        for j in range(n_fix):
            accumulated_before[j] = accumulated
            alive_before[j] = alive
            paid, updated = self.contract.payout(fixings[j], accumulated)
            payouts[j] = np.where(alive, paid, 0.0)
            accumulated = np.where(alive, updated, accumulated)
            alive &= accumulated < target

        discounted = payouts * self.discounts[:, None] * self.contract.source_nominal
        if store is not None:
            residual = np.cumsum(discounted[::-1], axis=0)[::-1] / self.last_discount
            for j in range(n_fix):
                mask = alive_before[j]
                store.add(
                    n_fix - 1 - j,
                    accumulated_before[j][mask],
                    fixings[j][mask],
                    residual[j][mask],
                )
        return discounted.sum(axis=0)
