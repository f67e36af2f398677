#!/usr/bin/env python

"""Various utilities"""

from dataclasses import dataclass
import itertools

import numpy as np

from .errors import NonFiniteValue


@dataclass
class Point:
    """Point in 3D"""

    x: float
    y: float
    z: float = 0

    @classmethod
    def from_array(cls, arr):
        return cls(*np.asarray(arr, dtype=float).flatten()[:3])

    def __sub__(self, other):
        return Point(self.x - other.x, self.y - other.y, self.z - other.z)

    def __repr__(self):
        return str((self.x, self.y, self.z))

    def hypot2(self):
        return self.x**2 + self.y**2 + self.z**2


def split_agents_gen(z, z_dims):
    """Partition a joint state or control vector into each agent's part"""
    start = 0
    for dim in z_dims:
        yield z[start : start + dim]
        start += dim


def block_diag(*arrs):
    """Block diagonal matrix construction for 2D arrays of any shape"""
    rdims = [arr.shape[0] for arr in arrs]
    cdims = [arr.shape[1] for arr in arrs]
    blocked = np.zeros((sum(rdims), sum(cdims)))

    r, c = 0, 0
    for arr, rdim, cdim in zip(arrs, rdims, cdims):
        blocked[r : r + rdim, c : c + cdim] = arr
        r += rdim
        c += cdim

    return blocked


def compute_pairwise_distance(X, position_dims):
    """Compute the distance between each pair of agents over a trajectory

    ``position_dims`` holds the indices of each agent's position in the joint
    state, returning an array of shape (n_steps, n_pairs).
    """

    if len(position_dims) == 1:
        raise ValueError("Can't compute pairwise distance for one agent.")

    X = np.atleast_2d(X)
    distances = [
        np.linalg.norm(X[:, list(dims_i)] - X[:, list(dims_j)], axis=1)
        for dims_i, dims_j in itertools.combinations(position_dims, 2)
    ]
    return np.stack(distances, axis=1)


def check_finite(name, *arrs):
    """Raise ``NonFiniteValue`` if any of the arrays contain NaN or Inf"""
    for arr in arrs:
        if not np.all(np.isfinite(arr)):
            raise NonFiniteValue(f"Non-finite value encountered in {name}.")
