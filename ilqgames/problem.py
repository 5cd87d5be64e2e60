#!/usr/bin/env python

"""Logic to combine dynamics, player costs and solver settings in one framework"""

import numpy as np

from .config import SolverConfig
from .dynamics import as_multi_player
from .trajectory import LinearDynamicsApproximation, OperatingPoint, Strategy


class ilqGameProblem:
    """Finite horizon game that combines joint dynamics and one cost per player

    Attributes
    ----------
    dynamics : MultiPlayerModel
        Joint dynamics of all players
    player_costs : list of PlayerCost
        Objective of each player, in the same order as ``dynamics.u_dims``
    config : SolverConfig
        Time discretization and solver settings

    """

    def __init__(self, dynamics, player_costs, config=None):
        dynamics = as_multi_player(dynamics)
        config = config or SolverConfig(time_step=dynamics.dt)

        if len(player_costs) != dynamics.n_players:
            raise ValueError(
                f"Have {len(player_costs)} player costs for {dynamics.n_players} players."
            )
        if not np.isclose(dynamics.dt, config.time_step):
            raise ValueError(
                f"Dynamics time step {dynamics.dt} doesn't match the configured "
                f"time step {config.time_step}."
            )

        self.dynamics = dynamics
        self.player_costs = list(player_costs)
        self.config = config

    @property
    def n_x(self):
        return self.dynamics.n_x

    @property
    def u_dims(self):
        return self.dynamics.u_dims

    @property
    def n_players(self):
        return self.dynamics.n_players

    @property
    def N(self):
        """Number of time steps in the horizon"""
        return self.config.num_time_steps

    @property
    def dt(self):
        return self.config.time_step

    def time_stamp(self, k, t0=0.0):
        return self.config.time_stamp(k, t0)

    def set_exponential_constant(self, a):
        """Make every player risk sensitive with the same constant"""
        for player_cost in self.player_costs:
            player_cost.set_exponential_constant(a)

    def initial_operating_point(self, x0=None, t0=0.0):
        """Zero controls, with every state at x0 if given"""
        op = OperatingPoint.zeros(self.N, self.n_x, self.u_dims, t0)
        if x0 is not None:
            op.xs[:] = np.asarray(x0, dtype=float).flatten()
        return op

    def initial_strategies(self):
        return [Strategy.zeros(self.N, self.n_x, n_u) for n_u in self.u_dims]

    def check_operating_point(self, operating_point):
        if len(operating_point) != self.N:
            raise ValueError(
                f"Operating point has {len(operating_point)} time steps, expected {self.N}."
            )
        if operating_point.n_x != self.n_x or operating_point.u_dims != self.u_dims:
            raise ValueError(
                f"Operating point dimensions ({operating_point.n_x}, "
                f"{operating_point.u_dims}) don't match the problem "
                f"({self.n_x}, {self.u_dims})."
            )

    def check_strategies(self, strategies):
        if len(strategies) != self.n_players:
            raise ValueError(
                f"Have {len(strategies)} strategies for {self.n_players} players."
            )
        for i, (strategy, n_u) in enumerate(zip(strategies, self.u_dims)):
            if len(strategy) != self.N:
                raise ValueError(
                    f"Strategy {i} has {len(strategy)} time steps, expected {self.N}."
                )
            if strategy.n_u != n_u or strategy.n_x != self.n_x:
                raise ValueError(
                    f"Strategy {i} maps {strategy.n_x} states to {strategy.n_u} "
                    f"controls, expected {self.n_x} to {n_u}."
                )

    def approximate(self, operating_point):
        """Linearize the dynamics and quadraticize every player's cost about each
        time step of the operating point.

        Returns
        -------
        linearizations : list of LinearDynamicsApproximation
            One per time step
        quadraticizations : list of list of QuadraticCostApproximation
            For each time step, one per player

        """

        linearizations = []
        quadraticizations = []
        for k in range(len(operating_point)):
            t = self.time_stamp(k, operating_point.t0)
            x = operating_point.xs[k]
            us = operating_point.us_at(k)

            A, B = self.dynamics.linearize(x, us, t)
            linearizations.append(LinearDynamicsApproximation(A, B, self.u_dims))
            quadraticizations.append(
                [player_cost.quadraticize(x, us, t) for player_cost in self.player_costs]
            )

        return linearizations, quadraticizations

    def __repr__(self):
        costs = ",\n\t".join(repr(player_cost) for player_cost in self.player_costs)
        return f"ilqGameProblem(\n\t{self.dynamics},\n\t{costs},\n\t{self.config}\n)"
