#!/usr/bin/env python

"""Iterative linear-quadratic solver for general-sum differential games.

Each outer iteration linearizes the joint dynamics and quadraticizes every
player's cost about the current operating point, solves the resulting LQ game
for feedback Nash strategies, and rolls those strategies out on the true
nonlinear dynamics with a backtracking line search.

[1] Fridovich-Keil et al. Efficient Iterative Linear-Quadratic Approximations
    for Nonlinear Multi-Player General-Sum Differential Games.
[2] Anass. iLQR Implementation. https://github.com/anassinator/ilqr/

"""

from dataclasses import dataclass
from enum import Enum
import functools
import logging
import threading
from time import perf_counter as pc
from typing import List, Optional

import numpy as np

from .constants import SMALL_NUMBER
from .errors import ConfigurationError, NonFiniteValue, SolverFailure
from .lq_game import LinearDynamicsApproximation, solve_lq_game
from .operating_point import OperatingPoint
from .params import SolverParams
from .solver_log import SolverLog
from .strategy import Strategy
from .util import check_finite


class SolverState(Enum):
    INITIALIZING = "initializing"
    LINEARIZING = "linearizing"
    SOLVING = "solving"
    LINE_SEARCHING = "line_searching"
    CONVERGED = "converged"
    FAILED = "failed"


class SolverStatus(Enum):
    CONVERGED = "converged"
    MAX_ITERATIONS = "max_iterations"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class SolverResult:
    """Outcome of ``ilqGameSolver.solve``

    ``operating_point`` and ``strategies`` are always the last accepted
    iterate, even when the solve failed or ran out of iterations. They are
    ``None`` only if the very first rollout failed.
    """

    status: SolverStatus
    operating_point: Optional[OperatingPoint]
    strategies: Optional[List[Strategy]]
    cost: float
    n_iterations: int
    log: SolverLog
    error: Optional[SolverFailure] = None

    @property
    def converged(self):
        return self.status is SolverStatus.CONVERGED

    def raise_for_status(self):
        if self.error is not None:
            raise self.error


class ilqGameSolver:
    """Iterative LQ game solver

    Attributes
    ----------
    problem : ilqGameProblem
        Dynamics, player costs and initial state of the game
    params : SolverParams
        Horizon, tolerances and line search settings
    pool : object, optional
        Anything with a ``map`` method, e.g. ``multiprocessing.pool.ThreadPool``,
        used to linearize the time steps and evaluate the line search candidates
        concurrently
    verbose : bool
        Print progress at each outer iteration
    state : SolverState
        Stage the solver is currently in

    """

    def __init__(self, problem, params=None, pool=None, verbose=False):
        if params is None:
            params = SolverParams()
        if abs(params.dt - problem.dynamics.dt) > 1e-9:
            raise ConfigurationError(
                f"Solver dt ({params.dt}) doesn't match the dynamics' dt "
                f"({problem.dynamics.dt})."
            )

        self.problem = problem
        self.params = params
        self.pool = pool
        self.verbose = verbose
        self.state = SolverState.INITIALIZING

        self._cancelled = threading.Event()

    @property
    def dynamics(self):
        return self.problem.dynamics

    @property
    def player_costs(self):
        return self.problem.player_costs

    @property
    def N(self):
        return self.params.horizon

    @property
    def x_dim(self):
        return self.problem.x_dim

    @property
    def u_dims(self):
        return self.problem.u_dims

    def cancel(self):
        """Stop the solve before the next outer iteration begins"""
        self._cancelled.set()

    def _map(self, fn, items):
        if self.pool is None:
            return [fn(item) for item in items]
        return list(self.pool.map(fn, items))

    def zero_strategies(self):
        return [Strategy(self.N, self.x_dim, u_dim) for u_dim in self.u_dims]

    def total_cost(self, op):
        """Sum of every player's cost over the operating point"""
        return sum(self._player_costs(op))

    def _player_costs(self, op):
        return [cost.evaluate_trajectory(op) for cost in self.player_costs]

    def _is_feasible(self, op):
        return all(cost.is_feasible(x) for cost in self.player_costs for x in op.xs)

    def rollout(self, op, strategies, scale=1.0):
        """Integrate the nonlinear dynamics under the strategies about op

        Each player applies u_i = u_ref_i - scale * (P_i δx + alpha_i) where δx
        is the deviation from the states of ``op``.
        """

        xs = np.zeros((self.N + 1, self.x_dim))
        us = [np.zeros((self.N, u_dim)) for u_dim in self.u_dims]
        xs[0] = self.problem.x0

        for t in range(self.N):
            δx = xs[t] - op.xs[t]
            for ui, u_ref, strategy in zip(us, op.us, strategies):
                ui[t] = u_ref[t] - scale * (strategy.Ps[t] @ δx + strategy.alphas[t])
            xs[t + 1] = self.dynamics(xs[t], [ui[t] for ui in us])

        check_finite("rollout", xs, *us)

        new_op = OperatingPoint(xs, us, op.t0)
        player_costs = self._player_costs(new_op)
        if np.any(np.isnan(player_costs)):
            raise NonFiniteValue("NaN cost encountered in rollout.")

        return new_op, sum(player_costs), player_costs

    def linearize(self, op):
        """Dynamics jacobians at each time step of the operating point"""

        def linearize_at(t):
            A, Bs = self.dynamics.linearize(op.xs[t], op.controls_at(t))
            check_finite("linearization", A, *Bs)
            return LinearDynamicsApproximation(np.asarray(A, dtype=float), list(Bs))

        return self._map(linearize_at, range(self.N))

    def quadraticize(self, op):
        """Every player's cost approximation at each time step, and at the
        terminal time
        """

        def quadraticize_at(t):
            terminal = t == self.N
            us = None if terminal else op.controls_at(t)
            quads = [cost.quadraticize(op.xs[t], us, terminal) for cost in self.player_costs]
            for quad in quads:
                check_finite("quadraticization", *quad.arrays())
            return quads

        quads = self._map(quadraticize_at, range(self.N + 1))
        return quads[:-1], quads[-1]

    def _trial(self, op, strategies, scale):
        new_op, J, player_costs = self.rollout(op, strategies, scale)
        return new_op, J, player_costs, self._is_feasible(new_op)

    def _line_search(self, op, strategies, J_star):
        """Backtrack from the initial step scale until the cost decreases enough

        Returns the first acceptable (scale, operating point, J, player costs) in
        the schedule, or ``None`` if no scale improved on ``J_star``.
        """

        scales = self.params.step_scales
        threshold = J_star - self.params.sufficient_decrease * abs(J_star)
        trial = functools.partial(self._trial, op, strategies)

        # Without a pool ``map`` is lazy so we stop at the first acceptable scale.
        if self.pool is None:
            trials = map(trial, scales)
        else:
            trials = self.pool.map(trial, scales)

        for scale, (new_op, J, player_costs, feasible) in zip(scales, trials):
            if feasible and J < threshold:
                return scale, new_op, J, player_costs

        return None

    def _check_initialization(self, strategies, op):
        if op.horizon != self.N or op.x_dim != self.x_dim or op.u_dims != self.u_dims:
            raise ConfigurationError(f"{op} doesn't match the problem dimensions.")
        if len(strategies) != self.problem.n_players:
            raise ConfigurationError(
                f"Got {len(strategies)} strategies for {self.problem.n_players} players."
            )
        for strategy, u_dim in zip(strategies, self.u_dims):
            if (strategy.horizon, strategy.u_dim, strategy.x_dim) != (
                self.N,
                u_dim,
                self.x_dim,
            ):
                raise ConfigurationError(f"{strategy} doesn't match the problem dimensions.")

    def solve(self, strategies=None, operating_point=None):
        """Run the outer iterations until convergence, failure or cancellation

        Parameters
        ----------
        strategies : list[Strategy], optional
            Initial strategies, zero by default
        operating_point : OperatingPoint, optional
            Operating point the initial strategies are expressed about, zero by
            default

        Returns
        -------
        SolverResult

        """

        if operating_point is None:
            operating_point = OperatingPoint.zeros(self.N, self.x_dim, self.u_dims)
        if strategies is None:
            strategies = self.zero_strategies()
        self._check_initialization(strategies, operating_point)

        self._cancelled.clear()
        self.state = SolverState.INITIALIZING
        log = SolverLog()
        max_iter = self.params.max_iterations

        iteration = 0
        op, J_star = None, np.inf

        def finish(status, error=None):
            self.state = (
                SolverState.FAILED if status is SolverStatus.FAILED else SolverState.CONVERGED
            )
            return SolverResult(
                status, op, log.final_strategies, J_star, iteration, log, error
            )

        try:
            t0 = pc()
            op, J_star, player_costs = self.rollout(operating_point, strategies)
            if not np.isfinite(J_star):
                op = None
                raise NonFiniteValue("Initial operating point has non-finite cost.")
            log.append(op, strategies, J_star, player_costs, 1.0, pc() - t0)

            if self.verbose:
                print(f"0/{max_iter}\tJ: {J_star:g}")

            while True:
                if self._cancelled.is_set():
                    if self.verbose:
                        print("Solve cancelled.")
                    return finish(SolverStatus.CANCELLED)

                t0 = pc()
                self.state = SolverState.LINEARIZING
                linearizations = self.linearize(op)
                quadraticizations, terminal_quadraticizations = self.quadraticize(op)

                self.state = SolverState.SOLVING
                new_strategies = solve_lq_game(
                    linearizations,
                    quadraticizations,
                    terminal_quadraticizations,
                    self.params.max_condition_number,
                )

                # The LQ step has nothing left to change.
                max_ff = max(strategy.max_feedforward() for strategy in new_strategies)
                if max_ff < self.params.strategy_tolerance:
                    if self.verbose:
                        print(f"Converged: feedforward terms below {max_ff:g}.")
                    return finish(SolverStatus.CONVERGED)

                if iteration >= max_iter:
                    if self.verbose:
                        print(f"Did not converge within {max_iter} iterations.")
                    return finish(SolverStatus.MAX_ITERATIONS)

                self.state = SolverState.LINE_SEARCHING
                accepted = self._line_search(op, new_strategies, J_star)
                if accepted is None:
                    if self.verbose:
                        print("Line search found no improvement, treating as converged.")
                    return finish(SolverStatus.CONVERGED)

                scale, op, J, player_costs = accepted
                Δt = pc() - t0
                log.append(op, new_strategies, J, player_costs, scale, Δt)

                iteration += 1
                ΔJ = abs(J_star - J) / max(abs(J_star), SMALL_NUMBER)
                J_star = J

                if self.verbose:
                    print(f"{iteration}/{max_iter}\tJ: {J_star:g}\tscale: {scale:g}")
                costs = [float(J_i) for J_i in player_costs]
                logging.info(f'{iteration},{J_star},"{costs}",{scale},{Δt}')

                if ΔJ < self.params.cost_tolerance:
                    if self.verbose:
                        print(f"Converged: relative cost change {ΔJ:g}.")
                    return finish(SolverStatus.CONVERGED)

        except SolverFailure as e:
            e.iteration = iteration
            e.stage = self.state
            logging.warning(f"Solve failed: {e}")
            if self.verbose:
                print(f"Failed: {e}")
            return finish(SolverStatus.FAILED, e)

    def __repr__(self):
        return (
            f"ilqGameSolver(\n\tdynamics: {self.dynamics},\n\tN: {self.N},"
            f"\n\tdt: {self.params.dt},\n\tplayers: {self.problem.n_players}\n)"
        )


# Based off of: [2] ilqr/controller.py
class RecedingHorizonController:
    """Receding horizon controller

    Re-solves the game from the current state every ``step_size`` steps,
    warm starting from the shifted operating point of the previous solve.

    Attributes
    ----------
    x : np.ndarray
        Current state
    problem : ilqGameProblem
        Game to solve, whose initial state is replaced as we advance
    step_size : int, default=1
        Number of steps to take between solves

    """

    def __init__(self, problem, params=None, step_size=1, **solver_kwargs):
        if params is None:
            params = SolverParams()
        if not 1 <= step_size <= params.horizon:
            raise ConfigurationError(
                f"step_size must lie in [1, {params.horizon}]: {step_size}"
            )

        self.x = problem.x0.copy()
        self.problem = problem
        self.params = params
        self.step_size = step_size
        self._solver_kwargs = solver_kwargs

    @property
    def N(self):
        return self.params.horizon

    def run(self, n_solves):
        """Optimize the game from the current state repeatedly

        Yields
        ------
        xs : np.ndarray
            States visited until the next solve, of shape (step_size, x_dim)
        us : list[np.ndarray]
            Controls applied by each player, of shape (step_size, u_dim_i)
        J : float
            Total cost of the operating point from that solve

        """

        op = None
        for i in range(n_solves):
            if self._solver_kwargs.get("verbose"):
                print("-" * 50 + f"\nHorizon {i}")

            solver = ilqGameSolver(
                self.problem.with_initial_state(self.x), self.params, **self._solver_kwargs
            )
            result = solver.solve(operating_point=op)
            result.raise_for_status()

            solved = result.operating_point
            k = self.step_size

            # Shift the state to our predicted value. NOTE: this can be
            # updated externally for actual sensor feedback.
            self.x = solved.xs[k].copy()

            yield solved.xs[:k], [ui[:k] for ui in solved.us], result.cost

            # Seed the next solve by staying at the last visited state.
            op = OperatingPoint(
                np.r_[solved.xs[k:], np.tile(solved.xs[-1], (k, 1))],
                [np.r_[ui[k:], np.zeros((k, ui.shape[1]))] for ui in solved.us],
                solved.t0 + k * self.params.dt,
            )
