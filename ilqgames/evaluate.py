#!/usr/bin/env python

"""Score fixed strategies by simulating them and summing each player's cost"""

import logging

import numpy as np

from .dynamics import as_multi_player

logger = logging.getLogger(__name__)


def _shared_exponential_constant(player_costs):
    """Exponential constant shared by every player, or None if none are
    exponentiated.
    """

    a = player_costs[0].exponential_constant
    for i, player_cost in enumerate(player_costs[1:], start=1):
        if player_cost.exponential_constant != a:
            raise ValueError(
                f"Player {i} has exponential constant {player_cost.exponential_constant}, "
                f"but player 0 has {a}."
            )

    if a is not None and a <= 0.0:
        raise ValueError(f"Exponential constant must be positive, got {a}.")

    return a


def compute_strategy_costs(
    player_costs,
    strategies,
    operating_point,
    dynamics,
    x0,
    time_step,
    open_loop=False,
):
    """Total cost to each player of following the given strategies from x0

    Parameters
    ----------
    player_costs : list of PlayerCost
        One per player, all exponentiated with the same constant or none at all
    strategies : list of Strategy
        One per player, defined relative to ``operating_point``
    operating_point : OperatingPoint
        Reference trajectory, whose ``t0`` is the initial time
    dynamics : MultiPlayerModel
        Joint dynamics
    x0 : np.ndarray
        Initial state
    time_step : float
        Spacing of the time stamps, matching ``dynamics.dt``
    open_loop : bool
        If True, every strategy sees zero state deviation so only the reference
        controls and feedforward terms act, and state costs are charged at the
        next state for one step less than the horizon. Otherwise the
        strategies close the loop on the true deviation over the full horizon.

    Returns
    -------
    np.ndarray
        Total cost of each player. Exponentiated costs accumulate ``exp(a c)``
        per step and are mapped back through ``log(total) / a``.

    """

    dynamics = as_multi_player(dynamics)
    n_players = len(player_costs)
    if n_players == 0:
        raise ValueError("Need at least one player cost.")
    if len(strategies) != n_players or dynamics.n_players != n_players:
        raise ValueError(
            f"Have {n_players} player costs, {len(strategies)} strategies and "
            f"{dynamics.n_players} players in the dynamics."
        )
    if any(len(strategy) != len(strategies[0]) for strategy in strategies):
        raise ValueError("Strategies must all have the same number of time steps.")
    T = len(strategies[0]) - 1 if open_loop else len(strategies[0])
    if T <= 0:
        raise ValueError(
            f"Strategies with {len(strategies[0])} time steps leave nothing to evaluate "
            f"{'open' if open_loop else 'closed'} loop."
        )
    if len(operating_point) < len(strategies[0]):
        raise ValueError(
            f"Operating point has {len(operating_point)} time steps but strategies "
            f"have {len(strategies[0])}."
        )
    if not np.isclose(time_step, dynamics.dt):
        raise ValueError(f"Time step {time_step} doesn't match dynamics time step {dynamics.dt}.")

    a = _shared_exponential_constant(player_costs)

    x = np.array(x0, dtype=float).flatten()
    if x.size != dynamics.n_x:
        raise ValueError(f"Initial state has {x.size} entries, expected {dynamics.n_x}.")

    t = operating_point.t0
    total_costs = np.zeros(n_players)
    zero_dx = np.zeros(x.size)

    for k in range(T):
        dx = zero_dx if open_loop else x - operating_point.xs[k]
        us = [
            strategy(k, dx, operating_point.us[i][k])
            for i, strategy in enumerate(strategies)
        ]

        next_x = dynamics(x, us, t)
        next_t = t + time_step

        for i, player_cost in enumerate(player_costs):
            if open_loop:
                cost = player_cost.evaluate_offset(t, next_t, next_x, us)
            else:
                cost = player_cost.evaluate(x, us, t)
            total_costs[i] += cost if a is None else np.exp(a * cost)

        x = next_x
        t = next_t

    if a is not None:
        if np.any(total_costs <= 0.0):
            raise ValueError(
                f"Accumulated exponentiated costs {total_costs} must be positive."
            )
        total_costs = np.log(total_costs) / a

    logger.debug("Strategy costs over %d steps: %s", T, total_costs)

    return total_costs
