#!/usr/bin/env python

"""Logic to combine dynamics and the players' costs in one framework"""

import numpy as np

from .cost import PlayerCost
from .dynamics import MultiPlayerDynamics
from .errors import ConfigurationError


class ilqGameProblem:
    """General-sum game between players sharing one joint dynamical system"""

    def __init__(self, dynamics, player_costs, x0):
        if not isinstance(dynamics, MultiPlayerDynamics):
            raise ConfigurationError(
                f"Expected a MultiPlayerDynamics, got {type(dynamics).__name__}."
            )
        if len(player_costs) != dynamics.n_players:
            raise ConfigurationError(
                f"Got {len(player_costs)} player costs for {dynamics.n_players} players."
            )
        if not all(isinstance(cost, PlayerCost) for cost in player_costs):
            raise ConfigurationError("Each player's cost must be a PlayerCost.")
        if any(u_dim < 1 for u_dim in dynamics.u_dims):
            raise ConfigurationError(f"Every player needs a control: {dynamics.u_dims}")

        for cost in player_costs:
            bad = [j for j in cost.control_costs if not 0 <= j < dynamics.n_players]
            if bad:
                raise ConfigurationError(
                    f"{cost.name or 'PlayerCost'} has control costs for unknown players {bad}."
                )

        x0 = np.asarray(x0, dtype=float).flatten()
        if x0.size != dynamics.x_dim:
            raise ConfigurationError(
                f"Initial state has dimension {x0.size}, dynamics expect {dynamics.x_dim}."
            )

        self.dynamics = dynamics
        self.player_costs = list(player_costs)
        self.x0 = x0
        self.x0.setflags(write=False)

    @property
    def n_players(self):
        return self.dynamics.n_players

    @property
    def x_dim(self):
        return self.dynamics.x_dim

    @property
    def u_dims(self):
        return self.dynamics.u_dims

    def with_initial_state(self, x0):
        """Same game starting from a different state"""
        return ilqGameProblem(self.dynamics, self.player_costs, x0)

    def __repr__(self):
        return f"ilqGameProblem(\n\t{self.dynamics},\n\t{self.player_costs}\n)"
