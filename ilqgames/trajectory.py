#!/usr/bin/env python

"""Time-indexed trajectories, feedback strategies and the LQ approximations built
about them.

Conventions
-----------
T : number of time steps
n_x : dimension of the joint state
u_dims : per-player control dimensions, the joint control is their concatenation

A strategy maps a state deviation from an operating point to a control::

    u_i = u_ref,i - P_i[k] @ (x - x_ref) - α_i[k]

"""

from dataclasses import dataclass
from typing import List

import numpy as np

from .util import agent_slices


class OperatingPoint:
    """Joint state and per-player control sequences about which we approximate

    Attributes
    ----------
    xs : np.ndarray
        States of shape (T, n_x)
    us : list of np.ndarray
        Controls for each player, each of shape (T, n_ui)
    t0 : float
        Time stamp of the first step

    """

    def __init__(self, xs, us, t0=0.0):
        xs = np.atleast_2d(np.asarray(xs, dtype=float))
        us = [np.asarray(ui, dtype=float) for ui in us]
        us = [ui if ui.ndim == 2 else ui.reshape(-1, 1) for ui in us]
        if any(ui.shape[0] != xs.shape[0] for ui in us):
            raise ValueError(
                f"Controls {[ui.shape for ui in us]} don't match {xs.shape[0]} states."
            )

        self.xs = xs
        self.us = us
        self.t0 = t0

    @classmethod
    def zeros(cls, T, n_x, u_dims, t0=0.0):
        return cls(np.zeros((T, n_x)), [np.zeros((T, n_u)) for n_u in u_dims], t0)

    @property
    def n_x(self):
        return self.xs.shape[1]

    @property
    def u_dims(self):
        return [ui.shape[1] for ui in self.us]

    @property
    def n_players(self):
        return len(self.us)

    def us_at(self, k):
        """Per-player controls at time step k"""
        return [ui[k] for ui in self.us]

    def copy(self):
        return OperatingPoint(self.xs.copy(), [ui.copy() for ui in self.us], self.t0)

    def swap(self, other):
        """Exchange contents with another operating point without copying"""
        self.xs, other.xs = other.xs, self.xs
        self.us, other.us = other.us, self.us
        self.t0, other.t0 = other.t0, self.t0

    def max_difference(self, other):
        """Largest elementwise absolute change in any state or control"""

        if len(self) != len(other) or self.u_dims != other.u_dims:
            raise ValueError("Can't compare operating points of different shapes.")
        if not len(self):
            return 0.0

        delta = np.abs(self.xs - other.xs).max(initial=0.0)
        for ui, other_ui in zip(self.us, other.us):
            delta = max(delta, np.abs(ui - other_ui).max(initial=0.0))
        return float(delta)

    def __len__(self):
        return self.xs.shape[0]

    def __repr__(self):
        return (
            f"OperatingPoint(T: {len(self)}, n_x: {self.n_x}, u_dims: {self.u_dims}, "
            f"t0: {self.t0})"
        )


class Strategy:
    """Time-indexed affine feedback law for a single player

    Attributes
    ----------
    Ps : np.ndarray
        Feedback gains of shape (T, n_u, n_x)
    alphas : np.ndarray
        Feedforward terms of shape (T, n_u)

    """

    def __init__(self, Ps, alphas):
        Ps = np.asarray(Ps, dtype=float)
        alphas = np.asarray(alphas, dtype=float)

        if Ps.ndim != 3 or alphas.ndim != 2:
            raise ValueError(
                f"Expected Ps of shape (T, n_u, n_x) and alphas of shape (T, n_u), "
                f"got {Ps.shape} and {alphas.shape}."
            )
        if Ps.shape[:2] != alphas.shape:
            raise ValueError(
                f"Inconsistent gains {Ps.shape} and feedforward terms {alphas.shape}."
            )

        self.Ps = Ps
        self.alphas = alphas

    @classmethod
    def zeros(cls, T, n_x, n_u):
        return cls(np.zeros((T, n_u, n_x)), np.zeros((T, n_u)))

    @property
    def n_u(self):
        return self.Ps.shape[1]

    @property
    def n_x(self):
        return self.Ps.shape[2]

    def __call__(self, k, dx, u_ref):
        """Control at time step k given the state deviation from the reference"""
        return u_ref - self.Ps[k] @ dx - self.alphas[k]

    def scale_alphas(self, factor):
        self.alphas *= factor

    def copy(self):
        return Strategy(self.Ps.copy(), self.alphas.copy())

    def __len__(self):
        return self.Ps.shape[0]

    def __repr__(self):
        return f"Strategy(T: {len(self)}, n_u: {self.n_u}, n_x: {self.n_x})"


@dataclass
class LinearDynamicsApproximation:
    """Discrete-time linearization ``δx_{k+1} = A δx_k + Σ_i B_i δu_i,k``"""

    A: np.ndarray
    B: np.ndarray
    u_dims: List[int]

    def B_i(self, i):
        return self.B[:, agent_slices(self.u_dims)[i]]


@dataclass
class QuadraticCostApproximation:
    """Second order expansion of one player's stage cost in deviation coordinates

    ``c ≈ c0 + lᵀδx + rᵀδu + ½δxᵀQδx + ½δuᵀRδu + δuᵀSδx``

    where δu stacks every player's control deviation. Block (i, j) of R is
    the cost's cross Hessian between player i's and player j's controls.

    """

    Q: np.ndarray
    l: np.ndarray
    R: np.ndarray
    r: np.ndarray
    S: np.ndarray
    u_dims: List[int]

    @classmethod
    def zeros(cls, n_x, u_dims):
        n_u = sum(u_dims)
        return cls(
            np.zeros((n_x, n_x)),
            np.zeros(n_x),
            np.zeros((n_u, n_u)),
            np.zeros(n_u),
            np.zeros((n_u, n_x)),
            list(u_dims),
        )

    @property
    def n_x(self):
        return self.Q.shape[0]

    @property
    def n_u(self):
        return self.R.shape[0]

    def r_block(self, i):
        return self.r[agent_slices(self.u_dims)[i]]

    def S_block(self, i):
        return self.S[agent_slices(self.u_dims)[i]]

    def hessian(self):
        """Full Hessian over the stacked vector [δx, δu]"""
        return np.block([[self.Q, self.S.T], [self.S, self.R]])

    def gradient(self):
        """Full gradient over the stacked vector [δx, δu]"""
        return np.r_[self.l, self.r]

    @classmethod
    def from_blocks(cls, hessian, gradient, n_x, u_dims):
        return cls(
            hessian[:n_x, :n_x].copy(),
            gradient[:n_x].copy(),
            hessian[n_x:, n_x:].copy(),
            gradient[n_x:].copy(),
            hessian[n_x:, :n_x].copy(),
            list(u_dims),
        )
