from .config import SolverConfig
from .control import (
    Solution,
    SolverStatus,
    StrategyModificationError,
    ilqGameSolver,
    rollout,
    scale_feedforward,
)
from .constraint import AffineEqualityConstraint, EqualityConstraint
from .cost import (
    AutoDiffCost,
    Cost,
    FinalTimeCost,
    PlayerCost,
    ProximityCost,
    ReferenceCost,
    RouteProgressCost,
    SemiquadraticCost,
    exponentiated_cost_fn,
    joint_cost_fn,
    quadraticize_distance,
    quadraticize_finite_difference,
)
from .dynamics import (
    BikeDynamics5D,
    CarDynamics3D,
    DiscreteLinearModel,
    DoubleIntDynamics4D,
    DynamicalModel,
    MultiDynamicalModel,
    MultiPlayerModel,
    SharedControlModel,
    SymbolicModel,
    UnicycleDynamics4D,
    UnicycleDynamics5D,
    as_multi_player,
    linearize_finite_difference,
)
from .evaluate import compute_strategy_costs
from .log import SolverLog
from .lq_game import SingularGameError, solve_lq_game
from .problem import ilqGameProblem
from .trajectory import (
    LinearDynamicsApproximation,
    OperatingPoint,
    QuadraticCostApproximation,
    Strategy,
)
from .util import (
    Point,
    Polyline2,
    agent_slices,
    split_agents,
    split_agents_gen,
    stack_controls,
    uniform_block_diag,
    π,
)
