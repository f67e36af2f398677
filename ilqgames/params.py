#!/usr/bin/env python

"""Configuration of the iterative LQ game solver"""

from dataclasses import dataclass

import numpy as np

from .errors import ConfigurationError


@dataclass(frozen=True)
class SolverParams:
    """Options recognized by ``ilqGameSolver``

    Attributes
    ----------
    horizon : int
        Number of time steps N in the operating point
    dt : float
        Discretization time step, must agree with the dynamics
    max_iterations : int
        Maximum number of outer iterations
    cost_tolerance : float
        Relative change in total cost below which we call the run converged
    strategy_tolerance : float
        Largest feedforward term below which the LQ step is considered a no-op
    initial_step_scale : float
        First step size tried by the line search
    max_backtracks : int
        Number of times the step size is shrunk before giving up
    backtrack_factor : float
        Multiplicative shrink applied to the step size per backtrack
    sufficient_decrease : float
        Fraction of the current cost a candidate must improve by to be accepted
    max_condition_number : float
        Threshold above which the per-step coupled linear system is rejected

    """

    horizon: int = 20
    dt: float = 0.1
    max_iterations: int = 50
    cost_tolerance: float = 1e-3
    strategy_tolerance: float = 1e-4
    initial_step_scale: float = 1.0
    max_backtracks: int = 10
    backtrack_factor: float = 0.5
    sufficient_decrease: float = 0.0
    max_condition_number: float = 1e8

    def __post_init__(self):
        if int(self.horizon) != self.horizon or self.horizon < 1:
            raise ConfigurationError(f"horizon must be a positive integer: {self.horizon}")
        if not self.dt > 0.0:
            raise ConfigurationError(f"dt must be positive: {self.dt}")
        if self.max_iterations < 1:
            raise ConfigurationError(
                f"max_iterations must be positive: {self.max_iterations}"
            )
        if self.cost_tolerance < 0.0 or self.strategy_tolerance < 0.0:
            raise ConfigurationError("Tolerances must be non-negative.")
        if not 0.0 < self.initial_step_scale <= 1.0:
            raise ConfigurationError(
                f"initial_step_scale must lie in (0, 1]: {self.initial_step_scale}"
            )
        if self.max_backtracks < 0:
            raise ConfigurationError(
                f"max_backtracks must be non-negative: {self.max_backtracks}"
            )
        if not 0.0 < self.backtrack_factor < 1.0:
            raise ConfigurationError(
                f"backtrack_factor must lie in (0, 1): {self.backtrack_factor}"
            )
        if self.sufficient_decrease < 0.0:
            raise ConfigurationError("sufficient_decrease must be non-negative.")
        if not self.max_condition_number > 1.0:
            raise ConfigurationError("max_condition_number must exceed 1.")

    @property
    def step_scales(self):
        """Backtracking schedule, largest scale first"""
        return self.initial_step_scale * self.backtrack_factor ** np.arange(
            self.max_backtracks + 1
        )

    @property
    def time_horizon(self):
        return self.horizon * self.dt
