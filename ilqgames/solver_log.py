#!/usr/bin/env python

"""Record of every accepted iterate of a solve, for inspection and plotting"""

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from .operating_point import OperatingPoint
from .strategy import Strategy


@dataclass(frozen=True)
class SolverLogEntry:
    """Snapshot of one outer iteration"""

    iteration: int
    operating_point: OperatingPoint
    strategies: Tuple[Strategy, ...]
    total_cost: float
    player_costs: Tuple[float, ...]
    step_scale: float
    elapsed: float


class SolverLog:
    """Append-only sequence of ``SolverLogEntry``'s, one per accepted iterate"""

    def __init__(self):
        self._entries: List[SolverLogEntry] = []

    def append(self, op, strategies, total_cost, player_costs, step_scale, elapsed=0.0):
        entry = SolverLogEntry(
            len(self._entries),
            op,
            tuple(strategies),
            float(total_cost),
            tuple(float(J) for J in player_costs),
            float(step_scale),
            float(elapsed),
        )
        self._entries.append(entry)
        return entry

    def __len__(self):
        return len(self._entries)

    def __getitem__(self, index):
        return self._entries[index]

    def __iter__(self):
        return iter(self._entries)

    @property
    def total_costs(self):
        return np.array([entry.total_cost for entry in self._entries])

    @property
    def final_operating_point(self):
        if not self._entries:
            return None
        return self._entries[-1].operating_point

    @property
    def final_strategies(self):
        if not self._entries:
            return None
        return list(self._entries[-1].strategies)

    def as_arrays(self):
        """Stack the logged states and costs

        Returns
        -------
        xs : np.ndarray
            States of shape (n_entries, N + 1, x_dim)
        costs : np.ndarray
            Per-player costs of shape (n_entries, n_players)

        """

        xs = np.stack([entry.operating_point.xs for entry in self._entries])
        costs = np.array([entry.player_costs for entry in self._entries])
        return xs, costs

    def __repr__(self):
        return f"SolverLog(n_entries: {len(self)})"
