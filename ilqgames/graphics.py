#!/usr/bin/env python

"""Plotting of solved operating points and solver logs"""

import matplotlib.pyplot as plt
import numpy as np


def set_bounds(xydata, ax=None, zoom=0.1):
    """Set the axis on plt.gca() by some margin beyond the data, default 10% margin"""

    xydata = np.atleast_2d(xydata)

    if not ax:
        ax = plt.gca()

    xmarg = np.ptp(xydata[:, 0]) * zoom
    ymarg = np.ptp(xydata[:, 1]) * zoom
    ax.set(
        xlim=(xydata[:, 0].min() - xmarg, xydata[:, 0].max() + xmarg),
        ylim=(xydata[:, 1].min() - ymarg, xydata[:, 1].max() + ymarg),
    )


def plot_solve(op, J, position_dims, goals=None, ax=None):
    """Plot each player's trajectory from an operating point on plt.gca()

    ``position_dims`` holds the (x, y) indices of each player in the joint
    state and ``goals`` optionally the (x, y) goal of each player.
    """

    if not ax:
        ax = plt.gca()

    n = np.arange(op.xs.shape[0])
    if goals is None:
        goals = [None] * len(position_dims)

    for i, (dims, goal) in enumerate(zip(position_dims, goals)):
        X = op.xs[:, list(dims)]
        ax.scatter(X[:, 0], X[:, 1], c=n, label=f"Player {i + 1}")
        ax.scatter(X[0, 0], X[0, 1], s=80, c="g", marker="x")
        if goal is not None:
            ax.scatter(goal[0], goal[1], s=80, c="r", marker="x")

    ax.set_aspect("equal")
    ax.legend()
    plt.margins(0.1)
    ax.set_title(f"Final Cost: {J:.3g}")
    plt.draw()

    return ax


def plot_cost_history(log, ax=None):
    """Plot the total cost of each logged iterate"""

    if not ax:
        ax = plt.gca()

    costs = log.total_costs
    ax.plot(np.arange(costs.size), costs, "o-")
    ax.set_xlabel("Iteration")
    ax.set_ylabel("Total cost")
    plt.draw()

    return ax
