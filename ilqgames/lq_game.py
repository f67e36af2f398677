#!/usr/bin/env python

"""Solver for time-varying, finite horizon LQ games.

Finds the closed-loop (feedback) Nash equilibrium for all players at once,
assuming the dynamics are given by

    δx[t+1] = A[t] δx[t] + Σ_i B_i[t] δu_i[t]

and player i's cost at each time step is quadratic in δx and every player's
δu. At each step backward in time the gains of all players are coupled
through one dense linear system whose unknowns are every player's P and alpha.

[1] Basar and Olsder. Dynamic Noncooperative Game Theory, Corollary 6.1.
[2] Fridovich-Keil et al. Efficient Iterative Linear-Quadratic Approximations
    for Nonlinear Multi-Player General-Sum Differential Games.

"""

from typing import List, NamedTuple

import numpy as np
import scipy.linalg

from .errors import NumericalFailure
from .strategy import Strategy


class LinearDynamicsApproximation(NamedTuple):
    """Jacobians of the joint dynamics at one time step"""

    A: np.ndarray
    Bs: List[np.ndarray]


def solve_lq_game(linearizations, quadraticizations, terminal_quadraticizations,
                  max_condition_number=1e8):
    """Backward recursion for the feedback Nash strategies of an LQ game

    Parameters
    ----------
    linearizations : list[LinearDynamicsApproximation]
        Dynamics jacobians for t = 0, ..., N - 1
    quadraticizations : list[list[QuadraticCostApproximation]]
        Per time step, each player's cost approximation
    terminal_quadraticizations : list[QuadraticCostApproximation]
        Each player's cost approximation at t = N
    max_condition_number : float
        Largest condition number accepted for the coupled system at each step

    Returns
    -------
    list[Strategy]
        One strategy per player

    Raises
    ------
    NumericalFailure
        If the coupled system at any step is singular, ill-conditioned or
        produces non-finite gains

    """

    horizon = len(linearizations)
    A0, Bs0 = linearizations[0]
    x_dim = A0.shape[0]
    u_dims = [Bi.shape[1] for Bi in Bs0]
    n_players = len(u_dims)
    offsets = np.r_[0, np.cumsum(u_dims)]
    rows = [slice(offsets[i], offsets[i + 1]) for i in range(n_players)]

    strategies = [Strategy(horizon, x_dim, u_dim) for u_dim in u_dims]

    # Value function of each player at t + 1: 0.5 δxᵀ Z δx + ζᵀ δx.
    Zs = [quad.state_hess.copy() for quad in terminal_quadraticizations]
    zetas = [quad.state_grad.copy() for quad in terminal_quadraticizations]

    S = np.zeros((offsets[-1], offsets[-1]))
    Y = np.zeros((offsets[-1], x_dim + 1))

    for t in range(horizon - 1, -1, -1):
        A, Bs = linearizations[t]
        quads = quadraticizations[t]

        # Stack every player's first order optimality conditions. The last
        # column of Y corresponds to the feedforward terms.
        for i in range(n_players):
            BiZ = Bs[i].T @ Zs[i]
            for j in range(n_players):
                S[rows[i], rows[j]] = BiZ @ Bs[j]
            S[rows[i], rows[i]] += quads[i].control_hess[i]

            Y[rows[i], :x_dim] = BiZ @ A
            Y[rows[i], x_dim] = Bs[i].T @ zetas[i] + quads[i].control_grads[i]

        PA = _solve_coupled(S, Y, t, max_condition_number)

        for i in range(n_players):
            strategies[i].Ps[t] = PA[rows[i], :x_dim]
            strategies[i].alphas[t] = PA[rows[i], x_dim]

        Ps = [strategy.Ps[t] for strategy in strategies]
        alphas = [strategy.alphas[t] for strategy in strategies]

        # Closed-loop dynamics δx[t+1] = F δx[t] + β.
        F = A - sum(Bj @ Pj for Bj, Pj in zip(Bs, Ps))
        beta = -sum(Bj @ alphaj for Bj, alphaj in zip(Bs, alphas))

        for i in range(n_players):
            quad = quads[i]

            zeta = F.T @ (zetas[i] + Zs[i] @ beta) + quad.state_grad
            Z = F.T @ Zs[i] @ F + quad.state_hess
            for Pj, alphaj, R_ij, r_ij in zip(
                Ps, alphas, quad.control_hess, quad.control_grads
            ):
                zeta += Pj.T @ (R_ij @ alphaj - r_ij)
                Z += Pj.T @ R_ij @ Pj

            zetas[i] = zeta
            Zs[i] = 0.5 * (Z + Z.T)

    return strategies


def _solve_coupled(S, Y, t, max_condition_number):
    """Dense solve of S X = Y, refusing systems we can't trust"""

    if not (np.all(np.isfinite(S)) and np.all(np.isfinite(Y))):
        raise NumericalFailure(
            f"Non-finite coupled LQ system at t = {t}.", time_index=t
        )

    with np.errstate(divide="ignore", invalid="ignore"):
        cond = np.linalg.cond(S)
    if not cond <= max_condition_number:
        raise NumericalFailure(
            f"Coupled LQ system at t = {t} is singular or ill-conditioned "
            f"(condition number {cond:g}).",
            time_index=t,
        )

    try:
        X = scipy.linalg.solve(S, Y)
    except np.linalg.LinAlgError as e:
        raise NumericalFailure(
            f"Coupled LQ system at t = {t} could not be solved: {e}", time_index=t
        ) from e

    if not np.all(np.isfinite(X)):
        raise NumericalFailure(f"Non-finite gains at t = {t}.", time_index=t)

    return X
