#!/usr/bin/env python

"""Implements the cost structures of each player in the game"""

import abc
from dataclasses import dataclass, field

import numpy as np
from scipy.optimize import approx_fprime

from .constants import INFINITY
from .util import Point


class Cost(abc.ABC):
    """
    Abstract base class for cost terms acting on a single vector, either the
    joint state or the control of one player.
    """

    def __init__(self, name=""):
        self.name = name

    @abc.abstractmethod
    def __call__(self, z, terminal=False):
        """Returns the cost evaluated at the given vector"""
        pass

    @abc.abstractmethod
    def quadraticize(self, z, terminal=False):
        """Compute the gradient and hessian of the cost at z"""
        pass

    def __repr__(self):
        return f"{type(self).__name__}({self.name!r})"


class QuadraticCost(Cost):
    """Half the weighted squared deviation of one (or every) dimension from an
    origin
    """

    def __init__(self, weight, dimension=None, origin=0.0, name=""):
        super().__init__(name)
        self.weight = weight
        self.dimension = dimension
        self.origin = origin

    def _dims(self, z):
        if self.dimension is None:
            return np.arange(z.size)
        return np.atleast_1d(self.dimension)

    def __call__(self, z, terminal=False):
        diff = z[self._dims(z)] - self.origin
        return 0.5 * self.weight * np.sum(diff**2)

    def quadraticize(self, z, terminal=False):
        dims = self._dims(z)

        L_z = np.zeros(z.size)
        L_zz = np.zeros((z.size, z.size))

        L_z[dims] = self.weight * (z[dims] - self.origin)
        L_zz[dims, dims] = self.weight

        return L_z, L_zz


class ReferenceCost(Cost):
    """
    The cost of a state from some reference state.
    """

    def __init__(self, xf, Q, Qf=None, name=""):
        super().__init__(name)

        if Qf is None:
            Qf = Q

        self.xf = np.asarray(xf, dtype=float).flatten()
        self.Q = Q
        self.Qf = Qf

        self.Q_plus_QT = Q + Q.T
        self.Qf_plus_QfT = Qf + Qf.T

    def __call__(self, x, terminal=False):
        Q = self.Qf if terminal else self.Q
        return (x - self.xf) @ Q @ (x - self.xf)

    def quadraticize(self, x, terminal=False):
        L_xx = self.Qf_plus_QfT if terminal else self.Q_plus_QT
        L_x = L_xx @ (x - self.xf)
        return L_x, L_xx.copy()

    def __repr__(self):
        return f"ReferenceCost(\n\tQ: {self.Q},\n\tQf: {self.Qf},\n\tname: {self.name}\n)"


class GoalRegionCost(Cost):
    """Squared distance from a position to the inside of a circle (or sphere)

    Zero once the position is within ``radius`` of ``center``.
    """

    def __init__(
        self, center, radius, position_dims, weight=1.0, terminal_weight=None, name=""
    ):
        super().__init__(name)

        if terminal_weight is None:
            terminal_weight = weight

        self.center = np.asarray(center, dtype=float).flatten()
        self.radius = radius
        self.position_dims = list(position_dims)
        self.weight = weight
        self.terminal_weight = terminal_weight

    def _weight(self, terminal):
        return self.terminal_weight if terminal else self.weight

    def __call__(self, x, terminal=False):
        distance = np.linalg.norm(x[self.position_dims] - self.center)
        return self._weight(terminal) * max(0.0, distance - self.radius) ** 2

    def quadraticize(self, x, terminal=False):
        n_d = len(self.position_dims)

        L_x = np.zeros(x.size)
        L_xx = np.zeros((x.size, x.size))

        position = x[self.position_dims]
        if np.linalg.norm(position - self.center) <= self.radius:
            return L_x, L_xx

        L_x_pos, L_xx_pos = quadraticize_distance(
            Point.from_array(position), Point.from_array(self.center), self.radius, n_d
        )

        weight = self._weight(terminal)
        L_x[self.position_dims] = weight * L_x_pos
        L_xx[np.ix_(self.position_dims, self.position_dims)] = weight * L_xx_pos

        return L_x, L_xx


class ProximityCost(Cost):
    """Penalize two players for coming within ``radius`` of one another"""

    def __init__(self, position_dims_a, position_dims_b, radius, weight=1.0, name=""):
        super().__init__(name)

        if len(position_dims_a) != len(position_dims_b):
            raise ValueError("Both players need positions of the same dimension.")

        self.position_dims_a = list(position_dims_a)
        self.position_dims_b = list(position_dims_b)
        self.radius = radius
        self.weight = weight

    def __call__(self, x, terminal=False):
        distance = np.linalg.norm(x[self.position_dims_a] - x[self.position_dims_b])
        return self.weight * min(0.0, distance - self.radius) ** 2

    def quadraticize(self, x, terminal=False):
        nx = x.size
        nd = len(self.position_dims_a)
        ia, ib = self.position_dims_a, self.position_dims_b

        L_x = np.zeros(nx)
        L_xx = np.zeros((nx, nx))

        pa, pb = x[ia], x[ib]
        if np.linalg.norm(pa - pb) >= self.radius:
            return L_x, L_xx

        L_x_pair, L_xx_pair = quadraticize_distance(
            Point.from_array(pa), Point.from_array(pb), self.radius, nd
        )

        L_x[ia] = +self.weight * L_x_pair
        L_x[ib] = -self.weight * L_x_pair

        L_xx[np.ix_(ia, ia)] = +self.weight * L_xx_pair
        L_xx[np.ix_(ib, ib)] = +self.weight * L_xx_pair
        L_xx[np.ix_(ia, ib)] = -self.weight * L_xx_pair
        L_xx[np.ix_(ib, ia)] = -self.weight * L_xx_pair

        return L_x, L_xx


class SingleDimensionConstraint(Cost):
    """Logarithmic barrier keeping one dimension on one side of a threshold

    With ``oriented_right`` the feasible side is ``z[dimension] > threshold``,
    otherwise it's ``z[dimension] < threshold``.
    """

    def __init__(self, dimension, threshold, oriented_right=True, weight=1.0, name=""):
        super().__init__(name)
        self.dimension = dimension
        self.threshold = threshold
        self.sign = 1.0 if oriented_right else -1.0
        self.weight = weight

    def slack(self, z):
        return self.sign * (z[self.dimension] - self.threshold)

    def is_satisfied(self, z):
        return self.slack(z) > 0.0

    def __call__(self, z, terminal=False):
        s = self.slack(z)
        if s <= 0.0:
            return INFINITY
        return -self.weight * np.log(s)

    def quadraticize(self, z, terminal=False):
        s = self.slack(z)

        L_z = np.zeros(z.size)
        L_zz = np.zeros((z.size, z.size))

        # The barrier is undefined outside the feasible set.
        if s <= 0.0:
            L_z[self.dimension] = np.nan
            L_zz[self.dimension, self.dimension] = np.nan
            return L_z, L_zz

        L_z[self.dimension] = -self.sign * self.weight / s
        L_zz[self.dimension, self.dimension] = self.weight / s**2

        return L_z, L_zz


@dataclass
class QuadraticCostApproximation:
    """Gradient and hessian blocks of one player's cost at one time step

    ``control_grads[j]`` and ``control_hess[j]`` hold the terms with respect
    to player j's control, and are empty at the terminal time.
    """

    state_grad: np.ndarray
    state_hess: np.ndarray
    control_grads: list = field(default_factory=list)
    control_hess: list = field(default_factory=list)

    def arrays(self):
        return [self.state_grad, self.state_hess, *self.control_grads, *self.control_hess]


class PlayerCost:
    """Total cost of a single player, made up of state costs, control costs on
    any player's input, and state constraints.

    If an exponential constant k is set, the cost c at each time step is
    reported as exp(k c).
    """

    def __init__(self, name=""):
        self.name = name
        self.state_costs = []
        self.control_costs = {}
        self.state_constraints = []
        self.exponential_constant = None

    def add_state_cost(self, cost):
        self.state_costs.append(cost)

    def add_control_cost(self, player, cost):
        self.control_costs.setdefault(player, []).append(cost)

    def add_state_constraint(self, constraint):
        self.state_constraints.append(constraint)

    def set_exponential_constant(self, k):
        self.exponential_constant = k

    @property
    def is_exponentiated(self):
        return self.exponential_constant is not None

    def is_feasible(self, x):
        return all(constraint.is_satisfied(x) for constraint in self.state_constraints)

    def _evaluate_raw(self, x, us, terminal):
        total = 0.0
        for cost in self.state_costs + self.state_constraints:
            total += cost(x, terminal)

        if not terminal:
            for player, costs in self.control_costs.items():
                for cost in costs:
                    total += cost(us[player])

        return total

    def evaluate(self, x, us=None, terminal=False):
        """Cost incurred at one time step, or the terminal time"""

        total = self._evaluate_raw(x, us, terminal)
        if self.is_exponentiated:
            return np.exp(self.exponential_constant * total)
        return total

    def evaluate_trajectory(self, op):
        """Cost accumulated over an entire operating point"""

        total = 0.0
        for t in range(op.horizon):
            total += self.evaluate(op.xs[t], op.controls_at(t))
        total += self.evaluate(op.xs[-1], terminal=True)

        return total

    def quadraticize(self, x, us=None, terminal=False):
        """Quadratic approximation of this player's cost about (x, us)"""

        L_x = np.zeros(x.size)
        L_xx = np.zeros((x.size, x.size))
        for cost in self.state_costs + self.state_constraints:
            L_x_i, L_xx_i = cost.quadraticize(x, terminal)
            L_x += L_x_i
            L_xx += L_xx_i

        L_us, L_uus = [], []
        if not terminal:
            for player, ui in enumerate(us):
                L_u = np.zeros(ui.size)
                L_uu = np.zeros((ui.size, ui.size))
                for cost in self.control_costs.get(player, []):
                    L_u_i, L_uu_i = cost.quadraticize(ui)
                    L_u += L_u_i
                    L_uu += L_uu_i
                L_us.append(L_u)
                L_uus.append(L_uu)

        quad = QuadraticCostApproximation(L_x, L_xx, L_us, L_uus)
        if self.is_exponentiated:
            quad = self._exponentiate(quad, self._evaluate_raw(x, us, terminal))

        return quad

    def _exponentiate(self, quad, c):
        """Chain rule through exp(k c) applied to each block separately"""

        k = self.exponential_constant
        scale = k * np.exp(k * c)

        def hess(g, H):
            return scale * (H + k * np.outer(g, g))

        return QuadraticCostApproximation(
            scale * quad.state_grad,
            hess(quad.state_grad, quad.state_hess),
            [scale * g for g in quad.control_grads],
            [hess(g, H) for g, H in zip(quad.control_grads, quad.control_hess)],
        )

    def __repr__(self):
        return (
            f"PlayerCost(\n\tname: {self.name},\n\tstate_costs: {self.state_costs},"
            f"\n\tcontrol_costs: {self.control_costs},"
            f"\n\tconstraints: {self.state_constraints}\n)"
        )


def quadraticize_distance(point_a, point_b, radius, n_d):
    """Quadraticize (|a - b| - radius)^2 with respect to point a in either 2 or 3
       dimensions returning the n_d x 1 jacobian and n_d x n_d hessian.

    NOTE: this still works in two dimensions since the default z value for the
          point class is 0.
    """

    L_x = np.zeros((3))
    L_xx = np.zeros((3, 3))

    diff = point_a - point_b
    delta = np.array([diff.x, diff.y, diff.z])
    distance = np.sqrt(diff.hypot2())

    # The gradient isn't defined with both points on top of each other.
    if distance == 0.0:
        return L_x[:n_d], L_xx[:n_d, :n_d]

    L_x = 2 * (distance - radius) / distance * delta
    L_xx = 2 * radius * np.outer(delta, delta) / distance**3 + 2 * (
        1 - radius / distance
    ) * np.eye(3)

    return L_x[:n_d], L_xx[:n_d, :n_d]


def quadraticize_finite_difference(cost, z, terminal=False, jac_eps=None):
    """Finite difference quadraticized cost

    NOTE: slow and approximate, used to validate the analytical versions.
    """
    if not jac_eps:
        jac_eps = np.sqrt(np.finfo(float).eps)
    hess_eps = np.sqrt(jac_eps)

    z = np.asarray(z, dtype=float)

    def Lz(z):
        return approx_fprime(z, lambda z: cost(z, terminal), jac_eps)

    L_zz = np.vstack([approx_fprime(z, lambda z: Lz(z)[i], hess_eps) for i in range(z.size)])

    return Lz(z), L_zz
