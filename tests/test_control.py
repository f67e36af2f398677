#!/usr/bin/env python

"""Unit testing for the iterative LQ game solver"""

import ast
import csv
from multiprocessing.pool import ThreadPool
import unittest

import numpy as np

from ilqgames import (
    CarDynamics3D,
    ConcatenatedDynamics,
    ConfigurationError,
    DoubleIntDynamics4D,
    GoalRegionCost,
    LinearDynamics,
    NonFiniteValue,
    NumericalFailure,
    OperatingPoint,
    PlayerCost,
    ProximityCost,
    QuadraticCost,
    RecedingHorizonController,
    SingleDimensionConstraint,
    SolverParams,
    SolverState,
    SolverStatus,
    Strategy,
    ilqGameProblem,
    ilqGameSolver,
)


def dubins_reach_problem():
    """One car starting at (2, 2) facing away from a goal circle at the origin"""

    dynamics = ConcatenatedDynamics([CarDynamics3D(0.1)])

    cost = PlayerCost("P1")
    cost.add_control_cost(0, QuadraticCost(1.0, name="Effort"))
    cost.add_state_cost(
        GoalRegionCost([0.0, 0.0], 0.5, [0, 1], weight=1.0, terminal_weight=100.0)
    )

    return ilqGameProblem(dynamics, [cost], [2.0, 2.0, -np.pi])


def linear_problem(q=1.0, r=0.01, x0=(1.0, 1.0)):
    dt = 0.1
    dynamics = LinearDynamics([[1.0, dt], [0.0, 1.0]], [[[0.0], [dt]]], dt)

    cost = PlayerCost()
    cost.add_state_cost(QuadraticCost(q))
    cost.add_control_cost(0, QuadraticCost(r))

    return ilqGameProblem(dynamics, [cost], x0)


class TestLQRBoundary(unittest.TestCase):
    """A one step linear quadratic problem is solved by the first iteration"""

    def test_closed_form(self):
        q, r = 1.0, 0.01
        problem = linear_problem(q, r)
        solver = ilqGameSolver(problem, SolverParams(horizon=1, dt=0.1))
        result = solver.solve()

        self.assertTrue(result.converged)
        self.assertEqual(result.n_iterations, 1)

        A = problem.dynamics.A
        B = problem.dynamics.Bs[0]
        x0 = problem.x0
        u_star = -np.linalg.solve(r * np.eye(1) + q * B.T @ B, q * B.T @ A @ x0)

        self.assertTrue(np.allclose(result.operating_point.us[0][0], u_star))
        self.assertTrue(np.allclose(result.operating_point.xs[1], A @ x0 + B @ u_star))


class TestDubinsReach(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.problem = dubins_reach_problem()
        cls.params = SolverParams(horizon=20, dt=0.1, max_iterations=50, cost_tolerance=1e-3)
        cls.result = ilqGameSolver(cls.problem, cls.params).solve()

    def test_converges(self):
        self.assertIs(self.result.status, SolverStatus.CONVERGED)
        self.assertLessEqual(self.result.n_iterations, 50)
        self.assertIsNone(self.result.error)

    def test_reaches_goal(self):
        x_final = self.result.operating_point.xs[-1]
        self.assertLess(np.hypot(x_final[0], x_final[1]), 0.5 + 0.15)

    def test_initial_state_fixed(self):
        for entry in self.result.log:
            self.assertTrue(np.allclose(entry.operating_point.xs[0], self.problem.x0))

    def test_monotonic_improvement(self):
        costs = self.result.log.total_costs
        self.assertEqual(costs.size, self.result.n_iterations + 1)
        self.assertTrue(np.all(np.diff(costs) <= 1e-9))
        self.assertAlmostEqual(costs[-1], self.result.cost)

    def test_log_matches_result(self):
        log = self.result.log
        self.assertIs(log.final_operating_point, self.result.operating_point)
        self.assertEqual(len(log.final_strategies), 1)
        self.assertTrue(0.0 < log[-1].step_scale <= 1.0)

    def test_fixed_point(self):
        solver = ilqGameSolver(self.problem, self.params)
        self.assertAlmostEqual(solver.total_cost(self.result.operating_point), self.result.cost)

        # Re-solving from the converged trajectory barely changes it.
        result = solver.solve(operating_point=self.result.operating_point)
        self.assertTrue(result.converged)
        self.assertLessEqual(result.cost, self.result.cost + 1e-9)
        self.assertLess(abs(result.cost - self.result.cost), 5e-2 * self.result.cost)

    def test_thread_pool_is_deterministic(self):
        with ThreadPool(4) as pool:
            result = ilqGameSolver(self.problem, self.params, pool=pool).solve()

        self.assertEqual(result.n_iterations, self.result.n_iterations)
        self.assertTrue(np.allclose(result.operating_point.xs, self.result.operating_point.xs))

    def test_max_iterations(self):
        params = SolverParams(max_iterations=1, cost_tolerance=0.0, strategy_tolerance=0.0)
        result = ilqGameSolver(self.problem, params).solve()

        self.assertIs(result.status, SolverStatus.MAX_ITERATIONS)
        self.assertFalse(result.converged)
        self.assertEqual(result.n_iterations, 1)
        self.assertEqual(len(result.log), 2)
        self.assertTrue(np.all(np.isfinite(result.operating_point.xs)))


class TestLineSearch(unittest.TestCase):
    def test_rejects_infeasible_steps(self):
        # Pulled towards x = -5 while a barrier keeps x > 0, so the full LQ step
        # crosses the barrier and has to be damped.
        dynamics = LinearDynamics([[1.0]], [[[1.0]]], 0.1)
        cost = PlayerCost()
        cost.add_state_cost(QuadraticCost(1.0, origin=-5.0))
        cost.add_control_cost(0, QuadraticCost(0.1))
        cost.add_state_constraint(SingleDimensionConstraint(0, 0.0, True, weight=0.01))
        problem = ilqGameProblem(dynamics, [cost], [1.0])

        result = ilqGameSolver(problem, SolverParams(horizon=5)).solve()

        self.assertIsNot(result.status, SolverStatus.FAILED)
        self.assertGreater(len(result.log), 1)
        self.assertLess(result.log[1].step_scale, 1.0)
        for entry in result.log:
            self.assertTrue(np.all(entry.operating_point.xs[:, 0] > 0.0))
            self.assertTrue(np.isfinite(entry.total_cost))
        self.assertTrue(np.all(np.diff(result.log.total_costs) < 0.0))

    def test_plateau_is_converged(self):
        # No candidate can beat a threshold of J - |J| = 0 with non-negative costs.
        params = SolverParams(horizon=5, sufficient_decrease=1.0)
        result = ilqGameSolver(linear_problem(), params).solve()

        self.assertIs(result.status, SolverStatus.CONVERGED)
        self.assertIsNone(result.error)
        self.assertEqual(result.n_iterations, 0)
        self.assertEqual(len(result.log), 1)
        self.assertAlmostEqual(result.cost, result.log.total_costs[0])

    def test_iteration_record(self):
        with self.assertLogs(level="INFO") as logs:
            ilqGameSolver(linear_problem(), SolverParams(horizon=3)).solve()

        (row,) = csv.reader([logs.records[0].getMessage()])
        iteration, J, player_costs, scale, _ = row
        self.assertEqual(int(iteration), 1)

        player_costs = ast.literal_eval(player_costs)
        self.assertEqual(len(player_costs), 1)
        self.assertIsInstance(player_costs[0], float)
        self.assertAlmostEqual(player_costs[0], float(J))
        self.assertEqual(float(scale), 1.0)


class TestExponentiatedCost(unittest.TestCase):
    def test_solve(self):
        k, q, r = 0.1, 1.0, 0.01
        problem = linear_problem(q, r)
        problem.player_costs[0].set_exponential_constant(k)

        result = ilqGameSolver(problem, SolverParams(horizon=10)).solve()

        self.assertTrue(result.converged)
        self.assertGreater(result.n_iterations, 0)
        self.assertTrue(np.all(np.diff(result.log.total_costs) <= 1e-9))

        op = result.operating_point
        expected = sum(
            np.exp(k * (0.5 * q * x @ x + 0.5 * r * u @ u)) for x, u in zip(op.xs, op.us[0])
        )
        expected += np.exp(k * 0.5 * q * op.xs[-1] @ op.xs[-1])
        self.assertAlmostEqual(result.cost, expected)

        # Every exponentiated step costs at least exp(0).
        self.assertGreaterEqual(result.cost, op.horizon + 1)
        self.assertLess(np.linalg.norm(op.xs[-1]), np.linalg.norm(problem.x0))


class TestTwoPlayer(unittest.TestCase):
    def test_swap_positions(self):
        dt = 0.1
        dynamics = ConcatenatedDynamics([DoubleIntDynamics4D(dt), DoubleIntDynamics4D(dt)])
        x0 = np.array([-2.0, 0.1, 0.0, 0.0, 2.0, -0.1, 0.0, 0.0])
        goals = [[2.0, 0.0], [-2.0, 0.0]]

        costs = []
        for i, goal in enumerate(goals):
            cost = PlayerCost(f"P{i + 1}")
            pos = [4 * i, 4 * i + 1]
            cost.add_state_cost(GoalRegionCost(goal, 0.1, pos, 1.0, 50.0))
            cost.add_state_cost(ProximityCost([0, 1], [4, 5], 1.0, weight=20.0))
            cost.add_control_cost(i, QuadraticCost(1.0))
            costs.append(cost)

        problem = ilqGameProblem(dynamics, costs, x0)
        result = ilqGameSolver(problem, SolverParams(horizon=25, dt=dt)).solve()

        self.assertIn(result.status, (SolverStatus.CONVERGED, SolverStatus.MAX_ITERATIONS))
        self.assertTrue(np.all(np.diff(result.log.total_costs) <= 1e-9))
        self.assertLess(result.cost, result.log.total_costs[0])
        self.assertEqual([s.Ps.shape for s in result.strategies], [(25, 2, 8)] * 2)


class TestFailures(unittest.TestCase):
    def test_singular_hessian(self):
        problem = linear_problem(q=0.0, r=0.0)
        result = ilqGameSolver(problem, SolverParams(horizon=5)).solve()

        self.assertIs(result.status, SolverStatus.FAILED)
        self.assertIsInstance(result.error, NumericalFailure)
        self.assertEqual(result.error.stage, SolverState.SOLVING)
        self.assertEqual(result.error.iteration, 0)
        self.assertEqual(result.error.time_index, 4)

        # The last accepted iterate is still intact.
        self.assertEqual(len(result.log), 1)
        self.assertTrue(np.all(np.isfinite(result.operating_point.xs)))
        self.assertTrue(np.allclose(result.operating_point.xs[0], problem.x0))

        with self.assertRaises(NumericalFailure):
            result.raise_for_status()

    def test_non_finite_dynamics(self):
        class Exploding(LinearDynamics):
            def __call__(self, x, us):
                return np.full_like(x, np.nan)

        dynamics = Exploding(np.eye(2), [np.ones((2, 1))], 0.1)
        cost = PlayerCost()
        cost.add_state_cost(QuadraticCost(1.0))
        cost.add_control_cost(0, QuadraticCost(1.0))
        problem = ilqGameProblem(dynamics, [cost], [1.0, 1.0])

        result = ilqGameSolver(problem).solve()
        self.assertIs(result.status, SolverStatus.FAILED)
        self.assertIsInstance(result.error, NonFiniteValue)
        self.assertEqual(result.error.stage, SolverState.INITIALIZING)
        self.assertIsNone(result.operating_point)
        self.assertIsNone(result.strategies)

    def assertFailedWhileLinearizing(self, problem):
        result = ilqGameSolver(problem, SolverParams(horizon=5)).solve()

        self.assertIs(result.status, SolverStatus.FAILED)
        self.assertIsInstance(result.error, NonFiniteValue)
        self.assertEqual(result.error.stage, SolverState.LINEARIZING)
        self.assertEqual(result.error.iteration, 0)
        self.assertIn("LINEARIZING", str(result.error))

        # The initial rollout survives as the last accepted iterate.
        self.assertEqual(len(result.log), 1)
        self.assertIs(result.operating_point, result.log.final_operating_point)
        self.assertTrue(np.allclose(result.operating_point.xs[0], problem.x0))

    def test_non_finite_linearization(self):
        class NaNJacobians(LinearDynamics):
            def linearize(self, x, us):
                return np.full_like(self.A, np.nan), self.Bs

        problem = linear_problem()
        dynamics = NaNJacobians(problem.dynamics.A, problem.dynamics.Bs, 0.1)
        self.assertFailedWhileLinearizing(
            ilqGameProblem(dynamics, problem.player_costs, problem.x0)
        )

    def test_non_finite_quadraticization(self):
        class InfiniteCurvature(QuadraticCost):
            def quadraticize(self, z, terminal=False):
                L_z, L_zz = super().quadraticize(z, terminal)
                return L_z, np.full_like(L_zz, np.inf)

        problem = linear_problem()
        problem.player_costs[0].add_state_cost(InfiniteCurvature(1.0))
        self.assertFailedWhileLinearizing(problem)


class TestCancellation(unittest.TestCase):
    def test_cancel_between_iterations(self):
        problem = dubins_reach_problem()

        class CancellingDynamics(ConcatenatedDynamics):
            solver = None

            def linearize(self, x, us):
                self.solver.cancel()
                return super().linearize(x, us)

        dynamics = CancellingDynamics(problem.dynamics.submodels)
        problem = ilqGameProblem(dynamics, problem.player_costs, problem.x0)
        solver = ilqGameSolver(problem, SolverParams(cost_tolerance=0.0))
        dynamics.solver = solver

        result = solver.solve()
        self.assertIs(result.status, SolverStatus.CANCELLED)
        self.assertEqual(result.n_iterations, 1)
        self.assertIsNone(result.error)


class TestConfiguration(unittest.TestCase):
    def test_dt_mismatch(self):
        with self.assertRaises(ConfigurationError):
            ilqGameSolver(linear_problem(), SolverParams(dt=0.2))

    def test_wrong_number_of_costs(self):
        problem = linear_problem()
        with self.assertRaises(ConfigurationError):
            ilqGameProblem(problem.dynamics, problem.player_costs * 2, problem.x0)

    def test_wrong_initial_state(self):
        problem = linear_problem()
        with self.assertRaises(ConfigurationError):
            ilqGameProblem(problem.dynamics, problem.player_costs, [1.0, 2.0, 3.0])

    def test_control_cost_for_unknown_player(self):
        problem = linear_problem()
        cost = PlayerCost()
        cost.add_control_cost(3, QuadraticCost(1.0))
        with self.assertRaises(ConfigurationError):
            ilqGameProblem(problem.dynamics, [cost], problem.x0)

    def test_mismatched_strategies(self):
        solver = ilqGameSolver(linear_problem(), SolverParams(horizon=4))
        with self.assertRaises(ConfigurationError):
            solver.solve(strategies=[Strategy(4, 3, 1)])
        with self.assertRaises(ConfigurationError):
            solver.solve(operating_point=OperatingPoint.zeros(5, 2, [1]))


class TestRecedingHorizonController(unittest.TestCase):
    def test_run(self):
        problem = linear_problem(x0=(2.0, 0.0))
        params = SolverParams(horizon=10, dt=0.1)
        controller = RecedingHorizonController(problem, params, step_size=2)

        chunks = list(controller.run(3))
        self.assertEqual(len(chunks), 3)

        xs = np.concatenate([chunk[0] for chunk in chunks])
        us = np.concatenate([chunk[1][0] for chunk in chunks])
        self.assertEqual(xs.shape, (6, 2))
        self.assertEqual(us.shape, (6, 1))
        self.assertTrue(np.allclose(xs[0], problem.x0))

        # Executed controls chain together under the true dynamics.
        for t in range(5):
            self.assertTrue(np.allclose(xs[t + 1], problem.dynamics(xs[t], [us[t]])))
        self.assertTrue(np.allclose(controller.x, problem.dynamics(xs[-1], [us[-1]])))

        # Heading towards the origin.
        self.assertLess(np.linalg.norm(controller.x), np.linalg.norm(problem.x0))

    def test_bad_step_size(self):
        with self.assertRaises(ConfigurationError):
            RecedingHorizonController(linear_problem(), SolverParams(horizon=5), step_size=6)


if __name__ == "__main__":
    unittest.main()
