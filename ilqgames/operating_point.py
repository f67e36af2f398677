#!/usr/bin/env python

"""Nominal joint trajectory about which the game is linearized"""

import numpy as np

from .errors import ConfigurationError


def _frozen(arr):
    arr = np.array(arr, dtype=float)
    arr.setflags(write=False)
    return arr


class OperatingPoint:
    """States and per-player controls over a fixed horizon

    Attributes
    ----------
    xs : np.ndarray
        Joint states of shape (N + 1, x_dim)
    us : list[np.ndarray]
        Controls of each player, each of shape (N, u_dim_i)
    t0 : float
        Time at which this operating point starts

    Arrays are read-only once stored, so an accepted iterate can never be
    modified by a later candidate.
    """

    def __init__(self, xs, us, t0=0.0):
        xs = np.atleast_2d(xs)
        if xs.shape[0] < 2:
            raise ConfigurationError("An operating point needs at least one time step.")
        if not us:
            raise ConfigurationError("An operating point needs at least one player.")

        horizon = xs.shape[0] - 1
        us = [np.asarray(ui, dtype=float) for ui in us]
        us = [ui.reshape(-1, 1) if ui.ndim == 1 else ui for ui in us]
        for i, ui in enumerate(us):
            if ui.ndim != 2 or ui.shape[0] != horizon:
                raise ConfigurationError(
                    f"Player {i} has controls of shape {ui.shape} for {horizon} time steps."
                )

        self.xs = _frozen(xs)
        self.us = [_frozen(ui) for ui in us]
        self.t0 = t0

    @classmethod
    def zeros(cls, horizon, x_dim, u_dims, t0=0.0):
        return cls(
            np.zeros((horizon + 1, x_dim)),
            [np.zeros((horizon, u_dim)) for u_dim in u_dims],
            t0,
        )

    @property
    def horizon(self):
        return self.xs.shape[0] - 1

    @property
    def n_players(self):
        return len(self.us)

    @property
    def x_dim(self):
        return self.xs.shape[1]

    @property
    def u_dims(self):
        return [ui.shape[1] for ui in self.us]

    def controls_at(self, t):
        """List of every player's control at time index t"""
        return [ui[t] for ui in self.us]

    def copy(self):
        return OperatingPoint(self.xs, self.us, self.t0)

    def __repr__(self):
        return (
            f"OperatingPoint(horizon: {self.horizon}, x_dim: {self.x_dim}, "
            f"u_dims: {self.u_dims}, t0: {self.t0})"
        )
