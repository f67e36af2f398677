#!/usr/bin/env python

"""Dynamics module to simulate single and multi-player dynamical systems"""

import abc

import numpy as np
from scipy.optimize import approx_fprime
import sympy as sym

from .errors import ConfigurationError
from .util import block_diag, split_agents_gen


def rk4_integration(f, x0, u, h, dh=None):
    """Classic Runge-Kutta Method with sub-integration"""

    if not dh:
        dh = h

    t = 0.0
    x = np.array(x0, dtype=float)

    while t < h - 1e-8:
        step = min(dh, h - t)

        k0 = f(x, u)
        k1 = f(x + 0.5 * k0 * step, u)
        k2 = f(x + 0.5 * k1 * step, u)
        k3 = f(x + k2 * step, u)

        x += step * (k0 + 2.0 * k1 + 2.0 * k2 + k3) / 6.0
        t += step

    return x


def forward_euler_integration(f, x, u, h):
    """Simple 1st Order Method to integrate f with step size h"""
    return x + f(x, u) * h


class DynamicalModel(abc.ABC):
    """Single player dynamical model, integrated with a zero-order hold"""

    def __init__(self, n_x, n_u, dt):
        self.n_x = n_x
        self.n_u = n_u
        self.dt = dt

    def __call__(self, x, u):
        """Zero-order hold to integrate continuous dynamics f"""
        return rk4_integration(self.f, x, u, self.dt, self.dt / 5.0)

    @abc.abstractmethod
    def f(self, x, u):
        """Continuous derivative of dynamics with respect to time"""
        pass

    def linearize(self, x, u):
        """Discrete jacobians of the step about (x, u)"""
        return linearize_finite_difference(self.__call__, x, u)

    def __repr__(self):
        return f"{type(self).__name__}(n_x: {self.n_x}, n_u: {self.n_u}, dt: {self.dt})"


class SymbolicModel(DynamicalModel):
    """Mix-in for analytical linearization

    Subclasses implement ``_build`` returning the sympy state and control
    vectors along with the symbolic derivative x_dot.
    """

    def __init__(self, n_x, n_u, dt):
        super().__init__(n_x, n_u, dt)
        self._lambdify()

    @abc.abstractmethod
    def _build(self):
        pass

    def _lambdify(self):
        x, u, x_dot = self._build()

        self._f = sym.lambdify((x, u), sym.Array(x_dot)[:, 0])
        self.A_num = sym.lambdify((x, u), x_dot.jacobian(x))
        self.B_num = sym.lambdify((x, u), x_dot.jacobian(u))

    def __getstate__(self):
        state = self.__dict__.copy()
        del state["A_num"]
        del state["B_num"]
        del state["_f"]
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self._lambdify()

    def f(self, x, u):
        return np.array(self._f(x, u), dtype=float)

    def linearize(self, x, u):
        """Linearization via numerical Jacobians A_num and B_num with Euler method"""
        A = np.eye(x.size) + self.dt * np.array(self.A_num(x, u), dtype=float)
        B = self.dt * np.array(self.B_num(x, u), dtype=float)
        return A, B


class DoubleIntDynamics4D(DynamicalModel):
    def __init__(self, dt):
        super().__init__(4, 2, dt)

    def f(self, x, u):
        *_, vx, vy = x
        ax, ay = u
        return np.stack([vx, vy, ax, ay])

    def __call__(self, x, u):
        A, B = self.linearize(x, u)
        return A @ x + B @ u

    def linearize(self, *_):
        A = np.array(
            [[1, 0, self.dt, 0], [0, 1, 0, self.dt], [0, 0, 1, 0], [0, 0, 0, 1]],
            dtype=float,
        )
        B = self.dt * np.array([[0.5 * self.dt, 0], [0, 0.5 * self.dt], [1, 0], [0, 1]])

        return A, B


class CarDynamics3D(DynamicalModel):
    def __init__(self, dt):
        super().__init__(3, 2, dt)

    def f(self, x, u):
        *_, theta = x
        v, omega = u
        return np.stack([v * np.cos(theta), v * np.sin(theta), omega])

    def linearize(self, x, u):

        v = u[0]
        theta = x[2]

        A = np.array(
            [
                [1, 0, -v * self.dt * np.sin(theta)],
                [0, 1, v * self.dt * np.cos(theta)],
                [0, 0, 1],
            ]
        )
        B = self.dt * np.array([[np.cos(theta), 0], [np.sin(theta), 0], [0, 1]])

        return A, B


class DubinsCar3D(DynamicalModel):
    """Constant speed car steered by its turning rate"""

    def __init__(self, dt, speed=1.0):
        super().__init__(3, 1, dt)
        self.speed = speed

    def f(self, x, u):
        *_, theta = x
        return np.stack(
            [self.speed * np.cos(theta), self.speed * np.sin(theta), u[0]]
        )

    def linearize(self, x, u):
        theta = x[2]

        A = np.array(
            [
                [1, 0, -self.speed * self.dt * np.sin(theta)],
                [0, 1, self.speed * self.dt * np.cos(theta)],
                [0, 0, 1],
            ]
        )
        B = self.dt * np.array([[0.0], [0.0], [1.0]])

        return A, B


class UnicycleDynamics4D(SymbolicModel):
    def __init__(self, dt):
        super().__init__(4, 2, dt)

    def _build(self):
        p_x, p_y, v, theta, omega, a = sym.symbols("p_x p_y v theta omega a")
        x = sym.Matrix([p_x, p_y, v, theta])
        u = sym.Matrix([a, omega])

        x_dot = sym.Matrix(
            [
                x[2] * sym.cos(x[3]),
                x[2] * sym.sin(x[3]),
                u[0],
                u[1],
            ]
        )
        return x, u, x_dot


class DelayedDubinsCar4D(SymbolicModel):
    """Constant speed car whose turning rate is itself a state, driven by its
    rate of change
    """

    def __init__(self, dt, speed=1.0):
        self.speed = speed
        super().__init__(4, 1, dt)

    def _build(self):
        p_x, p_y, theta, omega, alpha = sym.symbols("p_x p_y theta omega alpha")
        x = sym.Matrix([p_x, p_y, theta, omega])
        u = sym.Matrix([alpha])

        speed = sym.nsimplify(self.speed)
        x_dot = sym.Matrix(
            [
                speed * sym.cos(theta),
                speed * sym.sin(theta),
                omega,
                u[0],
            ]
        )
        return x, u, x_dot


class MultiPlayerDynamics(abc.ABC):
    """Joint dynamics of every player in the game

    Exposes the nonlinear discrete step from the joint state and a list of
    per-player controls, and its jacobians with respect to the joint state
    and each player's control.
    """

    def __init__(self, x_dim, u_dims, dt):
        self.x_dim = x_dim
        self.u_dims = list(u_dims)
        self.dt = dt

    @property
    def n_players(self):
        return len(self.u_dims)

    @abc.abstractmethod
    def __call__(self, x, us):
        """Integrate the joint state forward by one time step"""
        pass

    @abc.abstractmethod
    def linearize(self, x, us):
        """Return the state jacobian A and a list of control jacobians B_i"""
        pass

    def _check_controls(self, us):
        if len(us) != self.n_players:
            raise ConfigurationError(
                f"Expected controls for {self.n_players} players, got {len(us)}."
            )

    def __repr__(self):
        return (
            f"{type(self).__name__}(x_dim: {self.x_dim}, u_dims: {self.u_dims}, "
            f"dt: {self.dt})"
        )


class ConcatenatedDynamics(MultiPlayerDynamics):
    """Encompasses the dynamical simulation and linearization for a collection of
    independent single player ``DynamicalModel``'s
    """

    def __init__(self, submodels):
        if not submodels:
            raise ConfigurationError("Need at least one submodel.")

        dts = {submodel.dt for submodel in submodels}
        if len(dts) != 1:
            raise ConfigurationError(f"Submodels have inconsistent time steps: {dts}")

        self.submodels = submodels
        self.x_dims = [submodel.n_x for submodel in submodels]
        self._x_offsets = np.r_[0, np.cumsum(self.x_dims)]

        super().__init__(
            sum(self.x_dims), [submodel.n_u for submodel in submodels], dts.pop()
        )

    def x_slice(self, i):
        """Slice of player i's states within the joint state"""
        return slice(self._x_offsets[i], self._x_offsets[i + 1])

    def __call__(self, x, us):
        self._check_controls(us)
        return np.concatenate(
            [
                submodel(xi, np.asarray(ui, dtype=float))
                for submodel, xi, ui in zip(
                    self.submodels, split_agents_gen(x, self.x_dims), us
                )
            ]
        )

    def linearize(self, x, us):
        self._check_controls(us)
        sub_linearizations = [
            submodel.linearize(xi, np.asarray(ui, dtype=float))
            for submodel, xi, ui in zip(
                self.submodels, split_agents_gen(x, self.x_dims), us
            )
        ]

        A = block_diag(*[AB[0] for AB in sub_linearizations])

        Bs = []
        for i, (_, Bi_sub) in enumerate(sub_linearizations):
            Bi = np.zeros((self.x_dim, self.u_dims[i]))
            Bi[self.x_slice(i)] = Bi_sub
            Bs.append(Bi)

        return A, Bs

    def __repr__(self):
        sub_reprs = ",\n\t".join([repr(submodel) for submodel in self.submodels])
        return f"ConcatenatedDynamics(\n\t{sub_reprs}\n)"


class LinearDynamics(MultiPlayerDynamics):
    """Time invariant linear dynamics x' = A x + sum_i B_i u_i"""

    def __init__(self, A, Bs, dt):
        A = np.atleast_2d(np.asarray(A, dtype=float))
        Bs = [np.atleast_2d(np.asarray(Bi, dtype=float)) for Bi in Bs]

        if A.shape[0] != A.shape[1]:
            raise ConfigurationError(f"A must be square, got {A.shape}.")
        if any(Bi.shape[0] != A.shape[0] for Bi in Bs):
            raise ConfigurationError("Each B_i must have as many rows as A.")

        self.A = A
        self.Bs = Bs
        super().__init__(A.shape[0], [Bi.shape[1] for Bi in Bs], dt)

    def __call__(self, x, us):
        self._check_controls(us)
        return self.A @ x + sum(Bi @ ui for Bi, ui in zip(self.Bs, us))

    def linearize(self, x, us):
        return self.A, self.Bs


# Based off of https://github.com/anassinator/ilqr/blob/master/ilqr/dynamics.py
def linearize_finite_difference(f, x, u):
    """Linearization using finite difference"""

    x = np.asarray(x, dtype=float)
    u = np.asarray(u, dtype=float)
    n_x = x.size
    jac_eps = np.sqrt(np.finfo(float).eps)

    A = np.vstack([approx_fprime(x, lambda x: f(x, u)[i], jac_eps) for i in range(n_x)])
    B = np.vstack([approx_fprime(u, lambda u: f(x, u)[i], jac_eps) for i in range(n_x)])

    return A, B
