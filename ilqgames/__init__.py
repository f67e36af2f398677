from .constants import GRAVITY, INFINITY, SMALL_NUMBER, π
from .control import (
    RecedingHorizonController,
    SolverResult,
    SolverState,
    SolverStatus,
    ilqGameSolver,
)
from .cost import (
    Cost,
    GoalRegionCost,
    PlayerCost,
    ProximityCost,
    QuadraticCost,
    QuadraticCostApproximation,
    ReferenceCost,
    SingleDimensionConstraint,
    quadraticize_distance,
    quadraticize_finite_difference,
)
from .dynamics import (
    CarDynamics3D,
    ConcatenatedDynamics,
    DelayedDubinsCar4D,
    DoubleIntDynamics4D,
    DubinsCar3D,
    DynamicalModel,
    LinearDynamics,
    MultiPlayerDynamics,
    SymbolicModel,
    UnicycleDynamics4D,
    forward_euler_integration,
    linearize_finite_difference,
    rk4_integration,
)
from .errors import (
    ConfigurationError,
    NonFiniteValue,
    NumericalFailure,
    SolverFailure,
    ilqgamesError,
)
from .graphics import plot_cost_history, plot_solve, set_bounds
from .lq_game import LinearDynamicsApproximation, solve_lq_game
from .operating_point import OperatingPoint
from .params import SolverParams
from .problem import ilqGameProblem
from .solver_log import SolverLog, SolverLogEntry
from .strategy import Strategy, StrategyRef, allocate_primals
from .util import (
    Point,
    block_diag,
    check_finite,
    compute_pairwise_distance,
    split_agents_gen,
)
