#!/usr/bin/env python

"""Implements various cost structures in the LQ Game

Individual ``Cost`` terms are functions of a single input vector, which is
either the joint state or one player's control. A ``PlayerCost`` gathers the
terms that make up one player's objective and produces the quadratic
approximations consumed by the LQ game solver.

"""

import abc

import numpy as np
from scipy.optimize import approx_fprime
import torch

from .trajectory import QuadraticCostApproximation
from .util import Point, agent_slices, split_agents_gen


class Cost(abc.ABC):
    """
    Abstract base class for cost terms.

    Attributes
    ----------
    weight : float
        Multiplicative weight applied to the cost and its derivatives
    name : str
        Human readable identifier

    """

    def __init__(self, weight=1.0, name=""):
        self.weight = weight
        self.name = name

    @abc.abstractmethod
    def __call__(self, z, t=0.0):
        """Returns the cost evaluated at the given input"""
        pass

    @abc.abstractmethod
    def quadraticize(self, z, t=0.0):
        """Compute the gradient and hessian wrt. the input at the operating point"""
        pass

    def __repr__(self):
        return f"{type(self).__name__}(weight: {self.weight}, name: {self.name!r})"


class ReferenceCost(Cost):
    """
    Quadratic cost of an input's distance from some reference.

    ``weight * (z[dims] - z_ref)ᵀ Q (z[dims] - z_ref)``
    """

    def __init__(self, Q, z_ref=None, dims=None, weight=1.0, name=""):
        super().__init__(weight, name)

        self.Q = np.atleast_2d(np.asarray(Q, dtype=float))
        self.n = self.Q.shape[0]
        self.z_ref = np.zeros(self.n) if z_ref is None else np.asarray(z_ref, dtype=float).flatten()
        self.dims = np.arange(self.n) if dims is None else np.asarray(dims)

        if self.z_ref.size != self.n or self.dims.size != self.n:
            raise ValueError(
                f"Reference {self.z_ref.shape} and dimensions {self.dims.shape} don't "
                f"match Q {self.Q.shape}."
            )

        self.Q_plus_QT = self.Q + self.Q.T

    def __call__(self, z, t=0.0):
        dz = z[self.dims] - self.z_ref
        return self.weight * float(dz @ self.Q @ dz)

    def quadraticize(self, z, t=0.0):
        L_z = np.zeros(z.size)
        L_zz = np.zeros((z.size, z.size))

        dz = z[self.dims] - self.z_ref
        L_z[self.dims] = self.weight * self.Q_plus_QT @ dz
        L_zz[np.ix_(self.dims, self.dims)] = self.weight * self.Q_plus_QT

        return L_z, L_zz


class SemiquadraticCost(Cost):
    """
    One-sided quadratic penalty on a single dimension exceeding a threshold.
    Useful to emulate inequality constraints like speed or steering limits.
    """

    def __init__(self, dim, threshold, oriented_right=True, weight=1.0, name=""):
        super().__init__(weight, name)
        self.dim = dim
        self.threshold = threshold
        self.oriented_right = oriented_right

    def _violation(self, z):
        diff = z[self.dim] - self.threshold
        if self.oriented_right:
            return max(diff, 0.0)
        return min(diff, 0.0)

    def __call__(self, z, t=0.0):
        return self.weight * self._violation(z) ** 2

    def quadraticize(self, z, t=0.0):
        L_z = np.zeros(z.size)
        L_zz = np.zeros((z.size, z.size))

        diff = self._violation(z)
        if diff != 0.0:
            L_z[self.dim] = 2.0 * self.weight * diff
            L_zz[self.dim, self.dim] = 2.0 * self.weight

        return L_z, L_zz


class ProximityCost(Cost):
    """
    Penalize two positions within the joint state for being closer than a radius.

    ``weight * min(0, ||p_a - p_b|| - radius)²``
    """

    def __init__(self, position_idxs_a, position_idxs_b, radius, weight=1.0, name=""):
        super().__init__(weight, name)

        self.idx_a = np.asarray(position_idxs_a)
        self.idx_b = np.asarray(position_idxs_b)
        if self.idx_a.size != self.idx_b.size or self.idx_a.size not in (2, 3):
            raise ValueError("Positions must both be 2 or 3 dimensional.")

        self.radius = radius
        self.n_d = self.idx_a.size

    def __call__(self, z, t=0.0):
        distance = np.linalg.norm(z[self.idx_a] - z[self.idx_b])
        return self.weight * min(0.0, distance - self.radius) ** 2

    def quadraticize(self, z, t=0.0):
        L_z = np.zeros(z.size)
        L_zz = np.zeros((z.size, z.size))

        L_x_pair, L_xx_pair = quadraticize_distance(
            Point(*z[self.idx_a]), Point(*z[self.idx_b]), self.radius, self.n_d
        )

        L_z[self.idx_a] = +L_x_pair
        L_z[self.idx_b] = -L_x_pair

        L_zz[np.ix_(self.idx_a, self.idx_a)] = +L_xx_pair
        L_zz[np.ix_(self.idx_b, self.idx_b)] = +L_xx_pair
        L_zz[np.ix_(self.idx_a, self.idx_b)] = -L_xx_pair
        L_zz[np.ix_(self.idx_b, self.idx_a)] = -L_xx_pair

        return self.weight * L_z, self.weight * L_zz


class RouteProgressCost(Cost):
    """
    Quadratic penalty on the distance from where we should be along a route
    if we were traveling at the given nominal speed since time zero.
    """

    def __init__(
        self,
        polyline,
        nominal_speed,
        position_idxs,
        initial_route_pos=0.0,
        weight=1.0,
        name="",
    ):
        super().__init__(weight, name)
        self.polyline = polyline
        self.nominal_speed = nominal_speed
        self.idxs = np.asarray(position_idxs)
        self.initial_route_pos = initial_route_pos

    def desired_position(self, t):
        return self.polyline.point_at(self.initial_route_pos + self.nominal_speed * t)

    def __call__(self, z, t=0.0):
        diff = z[self.idxs] - self.desired_position(t)
        return self.weight * float(diff @ diff)

    def quadraticize(self, z, t=0.0):
        L_z = np.zeros(z.size)
        L_zz = np.zeros((z.size, z.size))

        L_z[self.idxs] = 2.0 * self.weight * (z[self.idxs] - self.desired_position(t))
        L_zz[self.idxs, self.idxs] = 2.0 * self.weight

        return L_z, L_zz


class FinalTimeCost(Cost):
    """Apply a wrapped cost only once the time reaches a threshold"""

    def __init__(self, cost, threshold_time, name=""):
        super().__init__(1.0, name or f"final_{cost.name}")
        self.cost = cost
        self.threshold_time = threshold_time

    def __call__(self, z, t=0.0):
        if t < self.threshold_time:
            return 0.0
        return self.cost(z, t)

    def quadraticize(self, z, t=0.0):
        if t < self.threshold_time:
            return np.zeros(z.size), np.zeros((z.size, z.size))
        return self.cost.quadraticize(z, t)


class AutoDiffCost(Cost):
    """
    Arbitrary cost written in terms of torch operations, quadraticized with
    torch automatic differentiation.

    ``fn(z, t)`` receives a double precision tensor and returns a scalar tensor.
    """

    def __init__(self, fn, weight=1.0, name=""):
        super().__init__(weight, name)
        self.fn = fn

    def __call__(self, z, t=0.0):
        z_torch = torch.as_tensor(np.asarray(z, dtype=float))
        return self.weight * float(self.fn(z_torch, t))

    def quadraticize(self, z, t=0.0):
        z_torch = torch.as_tensor(np.asarray(z, dtype=float))

        def cost_fn(z):
            return self.fn(z, t)

        L_z = torch.autograd.functional.jacobian(cost_fn, z_torch).reshape(-1)
        L_zz = torch.autograd.functional.hessian(cost_fn, z_torch).reshape(z.size, z.size)

        return self.weight * L_z.numpy(), self.weight * L_zz.numpy()


class PlayerCost:
    """
    Additive objective of one player over the joint state and every player's
    control, optionally transformed by an exponential utility.

    Terms are held by reference so the same term object may be shared between
    several players.

    Attributes
    ----------
    state_costs : list of Cost
        Terms evaluated on the joint state
    control_costs : list of (int, Cost)
        Terms evaluated on the control of the given player index
    exponential_constant : float or None
        Risk sensitivity ``a``; when set the stage cost ``c`` is replaced by
        ``exp(a c)`` in the quadratic approximation

    """

    def __init__(self, name=""):
        self.name = name
        self.state_costs = []
        self.control_costs = []
        self.exponential_constant = None

    def add_state_cost(self, cost):
        self.state_costs.append(cost)

    def add_control_cost(self, player, cost):
        if player < 0:
            raise IndexError(f"Invalid player index {player}.")
        self.control_costs.append((player, cost))

    def set_exponential_constant(self, a):
        if a == 0.0:
            raise ValueError("Exponential constant must be nonzero.")
        self.exponential_constant = float(a)

    def unset_exponential_constant(self):
        self.exponential_constant = None

    @property
    def is_exponentiated(self):
        return self.exponential_constant is not None

    def _check_player(self, us):
        for player, _ in self.control_costs:
            if player >= len(us):
                raise IndexError(f"No control for player {player}, got {len(us)} players.")

    def evaluate(self, x, us, t=0.0):
        """Total (non-exponentiated) stage cost at time t"""
        self._check_player(us)
        total = sum(cost(x, t) for cost in self.state_costs)
        total += sum(
            cost(np.atleast_1d(us[player]), t) for player, cost in self.control_costs
        )
        return float(total)

    def evaluate_offset(self, t, next_t, next_x, us):
        """Stage cost with state terms evaluated at the next state and time"""
        self._check_player(us)
        total = sum(cost(next_x, next_t) for cost in self.state_costs)
        total += sum(
            cost(np.atleast_1d(us[player]), t) for player, cost in self.control_costs
        )
        return float(total)

    def quadraticize(self, x, us, t=0.0):
        """Quadratic approximation of the stage cost about (x, us) at time t"""

        self._check_player(us)
        u_dims = [np.size(ui) for ui in us]
        quad = QuadraticCostApproximation.zeros(x.size, u_dims)
        slices = agent_slices(u_dims)

        for cost in self.state_costs:
            L_x, L_xx = cost.quadraticize(x, t)
            quad.l += L_x
            quad.Q += L_xx

        for player, cost in self.control_costs:
            L_u, L_uu = cost.quadraticize(np.atleast_1d(us[player]), t)
            s = slices[player]
            quad.r[s] += L_u
            quad.R[s, s] += L_uu

        if not self.is_exponentiated:
            return quad

        # Second order expansion of exp(a c) about the same point.
        a = self.exponential_constant
        scale = a * np.exp(a * self.evaluate(x, us, t))
        grad = quad.gradient()
        hess = quad.hessian() + a * np.outer(grad, grad)

        return QuadraticCostApproximation.from_blocks(
            scale * hess, scale * grad, x.size, u_dims
        )

    def __repr__(self):
        return (
            f"PlayerCost(name: {self.name!r}, n_state_costs: {len(self.state_costs)}, "
            f"n_control_costs: {len(self.control_costs)}, "
            f"exponential_constant: {self.exponential_constant})"
        )


def quadraticize_distance(point_a, point_b, radius, n_d):
    """Quadraticize the distance between two points thresholded by a radius
       in either 2 or 3 dimensions returning the n_d x 1 jacobian and
       n_d x n_d hessian.

    NOTE: this still works in two dimensions since the default z value for the
          point class is 0.
    """

    L_x = np.zeros((3))
    L_xx = np.zeros((3, 3))

    diff = point_a - point_b
    dx, dy, dz = diff.x, diff.y, diff.z
    distance = diff.norm()

    # Coincident points have no well defined direction to push apart along.
    if distance > radius or distance < np.finfo(float).eps:
        return L_x[:n_d], L_xx[:n_d, :n_d]

    L_x = 2 * (distance - radius) / distance * np.array([dx, dy, dz])

    cross_factors = 2 * radius / distance**3

    L_xx[np.diag_indices(3)] = (
        2 * radius * np.array([dx, dy, dz]) ** 2 / distance**3
        - 2 * radius / distance
        + 2
    )

    L_xx[np.tril_indices(3, -1)] = L_xx[np.triu_indices(3, 1)] = (
        np.array([dx * dy, dx * dz, dy * dz]) * cross_factors
    )

    return L_x[:n_d], L_xx[:n_d, :n_d]


def quadraticize_finite_difference(cost, x, u, jac_eps=None):
    """Finite difference quadraticized cost of ``cost(x, u)`` where u is the
    joint control, mostly useful to validate analytic derivatives.
    """
    if not jac_eps:
        jac_eps = np.sqrt(np.finfo(float).eps)
    hess_eps = np.sqrt(jac_eps)

    x = np.asarray(x, dtype=float)
    u = np.asarray(u, dtype=float)
    n_x = x.shape[0]
    n_u = u.shape[0]

    def Lx(x, u):
        return approx_fprime(x, lambda x: cost(x, u), jac_eps)

    def Lu(x, u):
        return approx_fprime(u, lambda u: cost(x, u), jac_eps)

    L_xx = np.vstack(
        [approx_fprime(x, lambda x: Lx(x, u)[i], hess_eps) for i in range(n_x)]
    )

    L_uu = np.vstack(
        [approx_fprime(u, lambda u: Lu(x, u)[i], hess_eps) for i in range(n_u)]
    )

    L_ux = np.vstack(
        [approx_fprime(x, lambda x: Lu(x, u)[i], hess_eps) for i in range(n_u)]
    )

    return Lx(x, u), Lu(x, u), L_xx, L_uu, L_ux


def joint_cost_fn(player_cost, u_dims, t=0.0):
    """Wrap a PlayerCost as a function of the state and the joint control"""

    def cost(x, u):
        return player_cost.evaluate(x, list(split_agents_gen(u, u_dims)), t)

    return cost


def exponentiated_cost_fn(player_cost, u_dims, t=0.0):
    """``exp(a c)`` of a PlayerCost as a function of the state and joint control"""

    a = player_cost.exponential_constant
    base = joint_cost_fn(player_cost, u_dims, t)

    def cost(x, u):
        return np.exp(a * base(x, u))

    return cost
