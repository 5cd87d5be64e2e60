#!/usr/bin/env python

"""Feedback Nash equilibria of time-varying, finite horizon LQ games.

The game is posed in deviation coordinates about an operating point::

    δx_{k+1} = A_k δx_k + Σ_j B_j,k δu_j,k

with player i paying, at every step,

    l_iᵀδx + r_iᵀδu + ½δxᵀQ_iδx + ½δuᵀR_iδu + δuᵀS_iδx

where δu stacks every player's control. Each player's value function
``½δxᵀZ_iδx + ζ_iᵀδx`` is propagated backward from zero after the final step.
At every step the players' first order conditions are coupled through the
shared next state, which leaves one linear system over all of the stacked
gains and feedforward terms [2].

[1] Fridovich-Keil et al. Efficient Iterative Linear-Quadratic Approximations
    for Nonlinear Multi-Player General-Sum Differential Games. ICRA 2020.
[2] Basar and Olsder. Dynamic Noncooperative Game Theory, Corollary 6.1.

"""

import logging

import numpy as np
import scipy.linalg as la

from .trajectory import Strategy
from .util import agent_slices, symmetrize

logger = logging.getLogger(__name__)

MAX_CONDITION_NUMBER = 1e12
N_REGULARIZATION_ITER = 5


class SingularGameError(np.linalg.LinAlgError):
    """The coupled system for the players' gains can't be solved reliably"""

    def __init__(self, k, condition_number):
        self.k = k
        self.condition_number = condition_number
        super().__init__(
            f"Joint gain system at time step {k} is singular or ill-conditioned "
            f"(condition number {condition_number:.3g})."
        )


def _solve_joint(S, Y, k, regularization):
    """Solve S X = Y, optionally retrying with a growing multiple of identity"""

    if not (np.all(np.isfinite(S)) and np.all(np.isfinite(Y))):
        raise SingularGameError(k, np.nan)

    cond = np.linalg.cond(S)
    if cond < MAX_CONDITION_NUMBER:
        try:
            return la.solve(S, Y)
        except la.LinAlgError as e:
            raise SingularGameError(k, cond) from e

    μ = regularization
    if μ > 0.0:
        eye = np.eye(S.shape[0])
        for _ in range(N_REGULARIZATION_ITER):
            logger.warning(
                "Joint gain system at time step %d has condition number %.3g, "
                "regularizing with μ = %.3g.",
                k,
                cond,
                μ,
            )
            S_reg = S + μ * eye
            if np.linalg.cond(S_reg) < MAX_CONDITION_NUMBER:
                return la.solve(S_reg, Y)
            μ *= 10.0

    raise SingularGameError(k, cond)


def solve_lq_game(linearizations, quadraticizations, regularization=0.0):
    """Compute feedback Nash strategies for every player of an LQ game

    Parameters
    ----------
    linearizations : list of LinearDynamicsApproximation
        Dynamics at each of the T time steps
    quadraticizations : list of list of QuadraticCostApproximation
        For each time step, one approximation per player
    regularization : float
        If positive, the initial multiple of identity used to recover from a
        singular joint system. Each attempt is logged as a warning.

    Returns
    -------
    list of Strategy
        One strategy per player such that
        ``u_i = u_ref,i - P_i[k] @ δx - α_i[k]``

    Raises
    ------
    SingularGameError
        If the joint system at some time step can't be solved.

    """

    T = len(linearizations)
    if T == 0:
        raise ValueError("Can't solve an LQ game with no time steps.")
    if len(quadraticizations) != T:
        raise ValueError(
            f"Have {T} linearizations but {len(quadraticizations)} quadraticizations."
        )

    u_dims = list(linearizations[0].u_dims)
    n_players = len(u_dims)
    n_x = linearizations[0].A.shape[0]
    n_u = sum(u_dims)
    slices = agent_slices(u_dims)

    if any(len(quads) != n_players for quads in quadraticizations):
        raise ValueError(f"Expected one quadraticization per player ({n_players}).")

    Ps = np.zeros((T, n_u, n_x))
    alphas = np.zeros((T, n_u))

    Zs = [np.zeros((n_x, n_x)) for _ in range(n_players)]
    zetas = [np.zeros(n_x) for _ in range(n_players)]

    for k in range(T - 1, -1, -1):
        A = linearizations[k].A
        B = linearizations[k].B
        quads = quadraticizations[k]

        # Stack each player's stationarity condition wrt. its own control into
        # S [P | α] = Y, with the final column of Y giving the feedforward.
        S = np.zeros((n_u, n_u))
        Y = np.zeros((n_u, n_x + 1))
        for i, s in enumerate(slices):
            B_i = linearizations[k].B_i(i)
            BiT_Z = B_i.T @ Zs[i]
            S[s] = quads[i].R[s] + BiT_Z @ B
            Y[s, :n_x] = BiT_Z @ A + quads[i].S_block(i)
            Y[s, n_x] = B_i.T @ zetas[i] + quads[i].r_block(i)

        X = _solve_joint(S, Y, k, regularization)
        P = X[:, :n_x]
        alpha = X[:, n_x]
        Ps[k] = P
        alphas[k] = alpha

        # Closed loop dynamics under everyone's strategy.
        F = A - B @ P
        β = -B @ alpha

        for i, q in enumerate(quads):
            zetas[i] = (
                F.T @ (zetas[i] + Zs[i] @ β)
                + q.l
                + P.T @ (q.R @ alpha - q.r)
                - q.S.T @ alpha
            )
            Zs[i] = symmetrize(
                F.T @ Zs[i] @ F + q.Q + P.T @ q.R @ P - P.T @ q.S - q.S.T @ P
            )

    logger.debug("Solved LQ game with %d players over %d time steps.", n_players, T)

    return [Strategy(Ps[:, s, :].copy(), alphas[:, s].copy()) for s in slices]
