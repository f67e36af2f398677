#!/usr/bin/env python

"""Containers for a single player's time-indexed feedback strategy.

Notation follows Basar and Olsder, Corollary 6.1, where the alphas are the
feedforward terms and the Ps are the feedback gains, i.e.

    δu[t] = -P[t] δx[t] - alpha[t]

"""

import numpy as np

from .errors import ConfigurationError


def _num_variables(Ps, alphas):
    horizon = len(Ps)
    if horizon != len(alphas):
        raise ConfigurationError(
            f"Got {horizon} feedback gains but {len(alphas)} feedforward terms."
        )
    return horizon * (Ps[0].size + alphas[0].size)


class StrategyRef:
    """Strategy whose gains and feedforward terms are views into a shared,
    preallocated primal arena.

    The views stay valid for as long as the arena is alive, and writing through
    them writes into the arena.
    """

    def __init__(self, horizon, x_dim, u_dim, primals, initial_idx):
        self.Ps = []
        self.alphas = []

        primal_idx = initial_idx
        for _ in range(horizon):
            P = primals[primal_idx : primal_idx + u_dim * x_dim]
            self.Ps.append(P.reshape(u_dim, x_dim))
            primal_idx += u_dim * x_dim
            self.alphas.append(primals[primal_idx : primal_idx + u_dim])
            primal_idx += u_dim

        self.end_idx = primal_idx

    def __call__(self, t, x):
        """Control at time index t for state x"""
        return -self.Ps[t] @ x - self.alphas[t]

    @property
    def num_variables(self):
        return _num_variables(self.Ps, self.alphas)


def allocate_primals(horizon, x_dim, u_dims):
    """Allocate one contiguous arena for every player's strategy

    Returns the arena along with a ``StrategyRef`` per player viewing into it.
    """

    size = horizon * sum(u_dim * x_dim + u_dim for u_dim in u_dims)
    primals = np.zeros(size)

    refs = []
    idx = 0
    for u_dim in u_dims:
        ref = StrategyRef(horizon, x_dim, u_dim, primals, idx)
        idx = ref.end_idx
        refs.append(ref)

    return primals, refs


class Strategy:
    """Owned, time-indexed affine feedback law for one player

    Attributes
    ----------
    Ps : np.ndarray
        Feedback gains of shape (N, u_dim, x_dim)
    alphas : np.ndarray
        Feedforward terms of shape (N, u_dim)

    """

    def __init__(self, horizon, x_dim, u_dim):
        if horizon < 1:
            raise ConfigurationError(f"Strategy horizon must be positive: {horizon}")

        self.Ps = np.zeros((horizon, u_dim, x_dim))
        self.alphas = np.zeros((horizon, u_dim))

    @classmethod
    def from_arrays(cls, Ps, alphas):
        Ps = np.asarray(Ps, dtype=float)
        alphas = np.asarray(alphas, dtype=float)
        if Ps.ndim != 3 or Ps.shape[:2] != alphas.shape:
            raise ConfigurationError(
                f"Inconsistent strategy shapes: {Ps.shape} and {alphas.shape}"
            )

        strategy = cls(Ps.shape[0], Ps.shape[2], Ps.shape[1])
        strategy.Ps[:] = Ps
        strategy.alphas[:] = alphas
        return strategy

    @classmethod
    def from_ref(cls, ref, op, player):
        """Construct from a reference view and an operating point, folding the
        nominal control and state into the feedforward term.
        """

        u_dim, x_dim = ref.Ps[0].shape
        strategy = cls(len(ref.Ps), x_dim, u_dim)
        for t in range(len(ref.Ps)):
            strategy.Ps[t] = ref.Ps[t]
            strategy.alphas[t] = (
                ref.alphas[t] + op.us[player][t] - ref.Ps[t] @ op.xs[t]
            )

        return strategy

    @property
    def horizon(self):
        return self.Ps.shape[0]

    @property
    def u_dim(self):
        return self.Ps.shape[1]

    @property
    def x_dim(self):
        return self.Ps.shape[2]

    @property
    def num_variables(self):
        return _num_variables(self.Ps, self.alphas)

    def __call__(self, t, delta_x, u_ref):
        """Control at time index t given the deviation from the nominal state"""
        return u_ref - self.Ps[t] @ delta_x - self.alphas[t]

    def max_feedforward(self):
        return np.abs(self.alphas).max()

    def __repr__(self):
        return f"Strategy(horizon: {self.horizon}, u_dim: {self.u_dim}, x_dim: {self.x_dim})"
