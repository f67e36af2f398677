#!/usr/bin/env python

"""Collection of examples that demonstrate the functionality of ilqgames.

Including:
 - one player reachability with a delayed dubins car
 - two unicycles crossing an intersection

"""

import argparse
import logging

import matplotlib.pyplot as plt
import numpy as np

import ilqgames as ilq
from ilqgames import plot_cost_history, plot_solve, π


def one_player_reachability(horizon=20, max_iterations=50, verbose=False):
    """Steer a constant speed car into a circle around the origin

    The car covers speed * horizon * dt = 3m, a little more than the distance to
    the center, so it has to turn towards the goal early to end inside it.
    """

    dt = 0.1
    speed = 1.5
    omega_max = 1.0
    radius = 0.5

    x0 = np.array([2.0, 2.0, -π, 0.0])
    x_goal = np.zeros(2)

    dynamics = ilq.ConcatenatedDynamics([ilq.DelayedDubinsCar4D(dt, speed)])

    cost = ilq.PlayerCost("P1")
    cost.add_control_cost(0, ilq.QuadraticCost(0.1, 0, 0.0, "Steering"))
    cost.add_state_constraint(
        ilq.SingleDimensionConstraint(3, omega_max, False, name="Input Constraint (Max)")
    )
    cost.add_state_constraint(
        ilq.SingleDimensionConstraint(3, -omega_max, True, name="Input Constraint (Min)")
    )

    # Mostly terminal, since a constant speed car can't linger inside the circle.
    cost.add_state_cost(
        ilq.GoalRegionCost(
            x_goal, radius, [0, 1], weight=0.1, terminal_weight=30.0, name="Goal"
        )
    )
    cost.set_exponential_constant(0.1)

    problem = ilq.ilqGameProblem(dynamics, [cost], x0)
    params = ilq.SolverParams(horizon=horizon, dt=dt, max_iterations=max_iterations)
    solver = ilq.ilqGameSolver(problem, params, verbose=verbose)
    result = solver.solve()

    if result.operating_point is not None:
        distance = np.linalg.norm(result.operating_point.xs[-1, :2] - x_goal)
        print(f"Final distance to goal: {distance:.3g} (radius {radius})")

    return result, [(0, 1)], [x_goal]


def two_player_intersection(horizon=40, max_iterations=50, verbose=False):
    """Two unicycles cross paths on their way to the opposite side

    Driving straight at their initial speed both reach their goals at the
    final time, but they'd collide at the crossing, so one has to yield.
    """

    dt = 0.1
    radius = 1.0
    v_max = 2.0

    x0 = np.array([-2.5, 0.0, 1.25, 0.0, 0.3, -3.0, 1.25, π / 2])
    goals = [np.array([2.5, 0.0]), np.array([0.3, 2.0])]
    position_dims = [(0, 1), (4, 5)]

    dynamics = ilq.ConcatenatedDynamics([ilq.UnicycleDynamics4D(dt)] * 2)

    costs = []
    for i, (goal, dims) in enumerate(zip(goals, position_dims)):
        cost = ilq.PlayerCost(f"P{i + 1}")
        cost.add_state_cost(
            ilq.GoalRegionCost(goal, 0.2, dims, weight=0.1, terminal_weight=50.0)
        )
        cost.add_state_cost(
            ilq.ProximityCost(*position_dims, radius, weight=50.0, name="Proximity")
        )
        cost.add_state_constraint(
            ilq.SingleDimensionConstraint(
                dynamics.x_slice(i).start + 2, v_max, False, weight=0.1
            )
        )
        cost.add_control_cost(i, ilq.QuadraticCost(1.0, name="Effort"))
        costs.append(cost)

    problem = ilq.ilqGameProblem(dynamics, costs, x0)
    params = ilq.SolverParams(horizon=horizon, dt=dt, max_iterations=max_iterations)
    solver = ilq.ilqGameSolver(problem, params, verbose=verbose)
    result = solver.solve()

    if result.operating_point is not None:
        xs = result.operating_point.xs
        distances = ilq.compute_pairwise_distance(xs, position_dims)
        print(f"Closest approach: {distances.min():.3g} (radius {radius})")
        for i, (goal, dims) in enumerate(zip(goals, position_dims)):
            distance = np.linalg.norm(xs[-1, list(dims)] - goal)
            print(f"Player {i + 1} final distance to goal: {distance:.3g}")

    return result, position_dims, goals


EXAMPLES = {
    "reachability": one_player_reachability,
    "intersection": two_player_intersection,
}


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("example", choices=EXAMPLES.keys())
    parser.add_argument("-N", "--horizon", type=int, default=None)
    parser.add_argument("-i", "--max-iterations", type=int, default=50)
    parser.add_argument("-p", "--plot", action="store_true", default=False)
    parser.add_argument("-v", "--verbose", action="store_true", default=False)
    parser.add_argument("-l", "--log-file", default=None)
    args = parser.parse_args()

    logging.basicConfig(filename=args.log_file, format="%(message)s", level=logging.INFO)
    logging.info("iteration,J,player_costs,step_scale,time")

    kwargs = dict(max_iterations=args.max_iterations, verbose=args.verbose)
    if args.horizon is not None:
        kwargs["horizon"] = args.horizon

    result, position_dims, goals = EXAMPLES[args.example](**kwargs)
    print(
        f"{result.status.value} after {result.n_iterations} iterations, J: {result.cost:g}"
    )
    result.raise_for_status()

    if args.plot:
        plt.figure()
        plot_solve(result.operating_point, result.cost, position_dims, goals)

        plt.figure()
        plot_cost_history(result.log)

        plt.show()


if __name__ == "__main__":
    main()
