#!/usr/bin/env python

"""Iterative LQ game solver.

Each iteration rolls the current strategies out about the last operating point,
approximates the game about the resulting trajectory, and solves that LQ game
for new strategies [1].

[1] Fridovich-Keil et al. Efficient Iterative Linear-Quadratic Approximations
    for Nonlinear Multi-Player General-Sum Differential Games. ICRA 2020.

"""

from dataclasses import dataclass
import enum
import logging
from typing import List

import numpy as np

from .lq_game import solve_lq_game
from .trajectory import OperatingPoint, Strategy

logger = logging.getLogger(__name__)


class SolverStatus(enum.Enum):
    INITIALIZING = "initializing"
    ITERATING = "iterating"
    CONVERGED = "converged"
    FAILED = "failed"


class StrategyModificationError(RuntimeError):
    """The strategy modification hook rejected an LQ solution"""


@dataclass
class Solution:
    """Result of a completed solve

    Attributes
    ----------
    operating_point : OperatingPoint
        Final trajectory
    strategies : list of Strategy
        Final strategies, defined relative to ``operating_point``
    n_iterations : int
        Number of completed outer iterations
    status : SolverStatus
        Always CONVERGED for a returned solution
    reached_tolerance : bool
        False if the solve stopped because it ran out of iterations

    """

    operating_point: OperatingPoint
    strategies: List[Strategy]
    n_iterations: int
    status: SolverStatus
    reached_tolerance: bool


def scale_feedforward(alpha_scaling):
    """Strategy hook that shrinks every feedforward term by a fixed factor,
    keeping successive operating points close like a crude line search.
    """

    def modify(operating_point, strategies):
        for strategy in strategies:
            strategy.scale_alphas(alpha_scaling)
        return True

    return modify


def rollout(dynamics, strategies, operating_point, x0, dt=None, out=None):
    """Simulate the strategies in closed loop about an operating point.

    Each player's control at step k is ``strategy(k, x_k - x_ref,k, u_ref,k)``
    and the state is integrated between recorded steps only.

    Parameters
    ----------
    dynamics : MultiPlayerModel
        Joint dynamics
    strategies : list of Strategy
        One per player
    operating_point : OperatingPoint
        Reference trajectory the strategies are defined relative to
    x0 : np.ndarray
        Initial state
    dt : float, optional
        Spacing of the time stamps passed to the dynamics, ``dynamics.dt`` by
        default
    out : OperatingPoint, optional
        Buffer to fill in place, which must not be ``operating_point``

    Returns
    -------
    OperatingPoint
        The resulting trajectory, starting at ``operating_point.t0``

    """

    T = len(operating_point)
    if out is None:
        out = OperatingPoint.zeros(T, operating_point.n_x, operating_point.u_dims)
    if out is operating_point:
        raise ValueError("Can't roll out into the reference operating point.")

    if dt is None:
        dt = dynamics.dt

    out.t0 = operating_point.t0
    x = np.array(x0, dtype=float).flatten()
    for k in range(T):
        t = operating_point.t0 + k * dt
        dx = x - operating_point.xs[k]
        out.xs[k] = x

        us = []
        for i, strategy in enumerate(strategies):
            u_i = strategy(k, dx, operating_point.us[i][k])
            out.us[i][k] = u_i
            us.append(u_i)

        if k < T - 1:
            x = dynamics(x, us, t)

    return out


class ilqGameSolver:
    """Iterative Linear Quadratic game solver

    Attributes
    ----------
    problem : ilqGameProblem
        Dynamics, player costs and solver settings
    strategy_hook : callable
        ``hook(operating_point, strategies) -> bool`` applied in place to every
        LQ solution. Returning False fails the solve. Defaults to scaling the
        feedforward terms by ``config.alpha_scaling``.
    log : SolverLog, optional
        Sink that receives every iterate
    status : SolverStatus
        Where the last call to ``solve`` got to
    n_iterations : int
        Number of iterations completed by the last call to ``solve``

    """

    def __init__(self, problem, strategy_hook=None, log=None):
        self.problem = problem
        self.strategy_hook = strategy_hook or scale_feedforward(problem.config.alpha_scaling)
        self.log = log

        self.status = SolverStatus.INITIALIZING
        self.n_iterations = 0

    @property
    def config(self):
        return self.problem.config

    @property
    def dynamics(self):
        return self.problem.dynamics

    @property
    def N(self):
        return self.problem.N

    def modify_strategies(self, operating_point, strategies):
        return self.strategy_hook(operating_point, strategies)

    def has_converged(self, iteration, last_operating_point, current_operating_point):
        """Converged once the iteration budget is spent or, after at least one
        iteration, no state or control moved by more than the tolerance.
        """

        if iteration >= self.config.max_iterations:
            return True
        if iteration == 0:
            return False

        return self._within_tolerance(last_operating_point, current_operating_point)

    def _within_tolerance(self, last_operating_point, current_operating_point):
        return (
            current_operating_point.max_difference(last_operating_point)
            <= self.config.convergence_tolerance
        )

    def solve(self, x0, initial_operating_point=None, initial_strategies=None):
        """Find a local feedback Nash equilibrium starting from x0

        Parameters
        ----------
        x0 : np.ndarray
            Initial joint state
        initial_operating_point : OperatingPoint, optional
            Initial operating point, all zeros by default
        initial_strategies : list of Strategy, optional
            Initial strategies, all zeros by default

        Returns
        -------
        Solution

        Raises
        ------
        ValueError
            If the inputs don't match the problem's dimensions or horizon
        SingularGameError
            If some LQ game along the way can't be solved
        StrategyModificationError
            If the strategy hook rejects an LQ solution

        Any exception raised while iterating leaves ``status`` at FAILED.

        """

        self.status = SolverStatus.INITIALIZING
        self.n_iterations = 0

        x0 = np.asarray(x0, dtype=float).flatten()
        if x0.size != self.problem.n_x:
            raise ValueError(f"Initial state has {x0.size} entries, expected {self.problem.n_x}.")

        operating_point = initial_operating_point
        if operating_point is None:
            operating_point = self.problem.initial_operating_point()
        strategies = initial_strategies
        if strategies is None:
            strategies = self.problem.initial_strategies()

        self.problem.check_operating_point(operating_point)
        self.problem.check_strategies(strategies)

        last_operating_point = OperatingPoint.zeros(
            self.N, self.problem.n_x, self.problem.u_dims, operating_point.t0
        )
        current_operating_point = operating_point.copy()
        current_strategies = [strategy.copy() for strategy in strategies]

        if self.log is not None:
            self.log.add_solver_iterate(current_operating_point, current_strategies)

        self.status = SolverStatus.ITERATING
        n_iterations = 0
        while not self.has_converged(
            n_iterations, last_operating_point, current_operating_point
        ):
            n_iterations += 1
            self.n_iterations = n_iterations

            try:
                last_operating_point.swap(current_operating_point)
                rollout(
                    self.dynamics,
                    current_strategies,
                    last_operating_point,
                    x0,
                    out=current_operating_point,
                )

                linearizations, quadraticizations = self.problem.approximate(
                    current_operating_point
                )
                current_strategies = solve_lq_game(
                    linearizations, quadraticizations, self.config.regularization
                )

                if not self.modify_strategies(current_operating_point, current_strategies):
                    raise StrategyModificationError(
                        f"Strategy modification failed at iteration {n_iterations}."
                    )
            except Exception:
                self.status = SolverStatus.FAILED
                raise

            if self.log is not None:
                self.log.add_solver_iterate(current_operating_point, current_strategies)

            logger.info(
                "%d/%d\tΔ: %.3g",
                n_iterations,
                self.config.max_iterations,
                current_operating_point.max_difference(last_operating_point),
            )

        self.status = SolverStatus.CONVERGED
        reached_tolerance = n_iterations > 0 and self._within_tolerance(
            last_operating_point, current_operating_point
        )
        if not reached_tolerance:
            logger.info("Stopped after %d iterations without reaching tolerance.", n_iterations)

        return Solution(
            current_operating_point,
            current_strategies,
            n_iterations,
            self.status,
            reached_tolerance,
        )

    def __repr__(self):
        return (
            f"ilqGameSolver(\n\tproblem: {self.problem},\n\tstatus: {self.status},"
            f"\n\tn_iterations: {self.n_iterations}\n)"
        )
