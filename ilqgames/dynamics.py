#!/usr/bin/env python

"""Dynamics module to simulate and linearize single and multi-player systems

Single-agent models implement ``f(x, u)``, ``linearize(x, u)`` and ``__call__(x, u)``
while the multi-player models consumed by the solver take a list of per-player
controls ``us`` and an optional time stamp ``t``.

"""

import abc

import numpy as np
from scipy.integrate import solve_ivp
from scipy.optimize import approx_fprime
import sympy as sym
import torch

from .util import agent_slices, ragged_block_diag, split_agents_gen, stack_controls


def rk4_integration(f, x0, u, h, dh=None):
    """Classic Runge-Kutta Method with sub-integration"""

    if not dh:
        dh = h

    t = 0.0
    x = np.array(x0, dtype=float)

    while t < h - 1e-8:
        step = min(dh, h - t)

        k0 = f(x, u)
        k1 = f(x + 0.5 * k0 * step, u)
        k2 = f(x + 0.5 * k1 * step, u)
        k3 = f(x + k2 * step, u)

        x += step * (k0 + 2.0 * k1 + 2.0 * k2 + k3) / 6.0
        t += step

    return x


def forward_euler_integration(f, x, u, h):
    """Simple 1st Order Method to integrate f with step size h"""
    return x + f(x, u) * h


def scipy_integration(f, x, u, h, **kwargs):
    sol = solve_ivp(lambda _, x, u: f(x, u), [0, h], x, args=(u,), t_eval=[h], **kwargs)
    if not sol.success:
        raise RuntimeError(sol.message)

    return sol.y.flatten()


class DynamicalModel(abc.ABC):
    """Simulation of a single agent's dynamical model.

    Attributes
    ----------
    n_x : int
        Number of states
    n_u : int
        Number of controls
    dt : float
        Integration time step
    integrator : str
        One of "rk4", "euler" or "scipy"

    """

    N_SUBSTEPS = 5
    INTEGRATORS = ("rk4", "euler", "scipy")

    def __init__(self, n_x, n_u, dt, integrator="rk4"):
        if dt <= 0.0:
            raise ValueError(f"Time step must be positive, got {dt}.")
        if integrator not in self.INTEGRATORS:
            raise ValueError(f"Unknown integrator {integrator!r}.")

        self.n_x = n_x
        self.n_u = n_u
        self.dt = dt
        self.integrator = integrator

    def __call__(self, x, u):
        """Zero-order hold to integrate continuous dynamics f"""

        if self.integrator == "euler":
            return forward_euler_integration(self.f, x, u, self.dt)
        if self.integrator == "scipy":
            return scipy_integration(self.f, x, u, self.dt, method="RK45", rtol=1e-8)
        return rk4_integration(self.f, x, u, self.dt, self.dt / self.N_SUBSTEPS)

    @abc.abstractmethod
    def f(self, x, u):
        """Continuous derivative of dynamics with respect to time"""
        pass

    @abc.abstractmethod
    def linearize(self, x, u):
        """Discrete-time jacobians (A, B) at the current operating point"""
        pass

    def distance(self, x0, x1):
        """Distance metric between two states"""
        return float(np.linalg.norm(np.asarray(x0) - np.asarray(x1)))

    def __repr__(self):
        return f"{type(self).__name__}(n_x: {self.n_x}, n_u: {self.n_u}, dt: {self.dt})"


class SymbolicModel(DynamicalModel):
    """Mix-in for analytical linearization via sympy

    Subclasses call ``_lambdify`` with their symbolic state, control and
    continuous time derivative.
    """

    def __getstate__(self):
        state = self.__dict__.copy()
        del state["A_num"]
        del state["B_num"]
        del state["_f"]
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self.__init__(self.dt, integrator=self.integrator)

    def _lambdify(self, x, u, x_dot):
        self._f = sym.lambdify((x, u), sym.Array(x_dot)[:, 0])
        self.A_num = sym.lambdify((x, u), x_dot.jacobian(x))
        self.B_num = sym.lambdify((x, u), x_dot.jacobian(u))

    def f(self, x, u):
        return np.array(self._f(x, u), dtype=float)

    def linearize(self, x, u):
        """Linearization via numerical Jacobians A_num and B_num with Euler method"""
        A_cont = np.array(self.A_num(x, u), dtype=float)
        B_cont = np.array(self.B_num(x, u), dtype=float)
        return np.eye(self.n_x) + self.dt * A_cont, self.dt * B_cont


class AutoDiffModel(DynamicalModel):
    """Mix-in to linearize with torch automatic differentiation

    Subclasses implement ``_f(x, u)`` in terms of torch operations.
    """

    @abc.abstractmethod
    def _f(self, x, u):
        pass

    def f(self, x, u):
        x_torch = torch.as_tensor(np.asarray(x, dtype=float))
        u_torch = torch.as_tensor(np.asarray(u, dtype=float))
        return self._f(x_torch, u_torch).numpy()

    def linearize(self, x, u):
        x_torch = torch.as_tensor(np.asarray(x, dtype=float))
        u_torch = torch.as_tensor(np.asarray(u, dtype=float))

        A_cont, B_cont = torch.autograd.functional.jacobian(self._f, (x_torch, u_torch))
        A = np.eye(self.n_x) + self.dt * A_cont.reshape(self.n_x, self.n_x).numpy()
        B = self.dt * B_cont.reshape(self.n_x, self.n_u).numpy()
        return A, B


class DiscreteLinearModel(DynamicalModel):
    """Exact discrete-time linear system ``x⁺ = A x + B u``"""

    def __init__(self, A, B, dt):
        A = np.atleast_2d(np.asarray(A, dtype=float))
        B = np.atleast_2d(np.asarray(B, dtype=float))
        if A.shape[0] != A.shape[1] or B.shape[0] != A.shape[0]:
            raise ValueError(f"Inconsistent system matrices {A.shape} and {B.shape}.")

        super().__init__(A.shape[0], B.shape[1], dt)
        self.A = A
        self.B = B

    def __call__(self, x, u):
        return self.A @ x + self.B @ u

    def f(self, x, u):
        """Continuous derivative that Euler-integrates to the discrete update"""
        return ((self.A - np.eye(self.n_x)) @ x + self.B @ u) / self.dt

    def linearize(self, *_):
        return self.A.copy(), self.B.copy()


class DoubleIntDynamics4D(DynamicalModel):
    """Planar double integrator.
    state := [x position, y position, x velocity, y velocity]
    control := [x acceleration, y acceleration]
    """

    def __init__(self, dt, *args, **kwargs):
        super().__init__(4, 2, dt, *args, **kwargs)

    def f(self, x, u):
        *_, vx, vy = x
        ax, ay = u
        return np.stack([vx, vy, ax, ay]).astype(float)

    def linearize(self, *_):
        """Zero-order hold discretization, exact for constant controls"""
        A = np.array(
            [[1, 0, self.dt, 0], [0, 1, 0, self.dt], [0, 0, 1, 0], [0, 0, 0, 1]],
            dtype=float,
        )
        B = np.array(
            [
                [0.5 * self.dt**2, 0],
                [0, 0.5 * self.dt**2],
                [self.dt, 0],
                [0, self.dt],
            ]
        )

        return A, B

    def distance(self, x0, x1):
        return float(np.hypot(x0[0] - x1[0], x0[1] - x1[1]))


class CarDynamics3D(DynamicalModel):
    """Kinematic car.
    state := [x position, y position, heading]
    control := [velocity, angular velocity]
    """

    def __init__(self, dt, *args, **kwargs):
        super().__init__(3, 2, dt, *args, **kwargs)

    def f(self, x, u):
        *_, theta = x
        v, omega = u
        return np.stack([v * np.cos(theta), v * np.sin(theta), omega]).astype(float)

    def linearize(self, x, u):

        v = u[0]
        theta = x[2]

        A = np.array(
            [
                [1, 0, -v * self.dt * np.sin(theta)],
                [0, 1, v * self.dt * np.cos(theta)],
                [0, 0, 1],
            ]
        )
        B = self.dt * np.array([[np.cos(theta), 0], [np.sin(theta), 0], [0, 1]])

        return A, B

    def distance(self, x0, x1):
        return float(np.hypot(x0[0] - x1[0], x0[1] - x1[1]))


class UnicycleDynamics4D(SymbolicModel):
    """Unicycle with acceleration input.
    state := [x position, y position, velocity, heading]
    control := [acceleration, angular velocity]
    """

    def __init__(self, dt, *args, **kwargs):
        super().__init__(4, 2, dt, *args, **kwargs)

        p_x, p_y, v, theta, omega, a = sym.symbols("p_x p_y v theta omega a")
        x = sym.Matrix([p_x, p_y, v, theta])
        u = sym.Matrix([a, omega])

        x_dot = sym.Matrix(
            [
                x[2] * sym.cos(x[3]),
                x[2] * sym.sin(x[3]),
                u[0],
                u[1],
            ]
        )

        self._lambdify(x, u, x_dot)

    def distance(self, x0, x1):
        return float(np.hypot(x0[0] - x1[0], x0[1] - x1[1]))


class UnicycleDynamics5D(DynamicalModel):
    """Unicycle that also tracks its travelled arc length.
    state := [x position, y position, heading, velocity, arc length]
    control := [angular velocity, acceleration]
    """

    PX, PY, THETA, V, S = range(5)
    OMEGA, A = range(2)

    def __init__(self, dt, *args, **kwargs):
        super().__init__(5, 2, dt, *args, **kwargs)

    def f(self, x, u):
        x_dot = np.zeros(5)
        x_dot[self.PX] = x[self.V] * np.cos(x[self.THETA])
        x_dot[self.PY] = x[self.V] * np.sin(x[self.THETA])
        x_dot[self.THETA] = u[self.OMEGA]
        x_dot[self.V] = u[self.A]
        x_dot[self.S] = x[self.V]
        return x_dot

    def linearize(self, x, u):
        ctheta = np.cos(x[self.THETA]) * self.dt
        stheta = np.sin(x[self.THETA]) * self.dt

        A = np.eye(5)
        A[self.PX, self.THETA] += -x[self.V] * stheta
        A[self.PX, self.V] += ctheta
        A[self.PY, self.THETA] += x[self.V] * ctheta
        A[self.PY, self.V] += stheta
        A[self.S, self.V] += self.dt

        B = np.zeros((5, 2))
        B[self.THETA, self.OMEGA] = self.dt
        B[self.V, self.A] = self.dt

        return A, B

    def distance(self, x0, x1):
        """Squared distance in position space"""
        dx = x0[self.PX] - x1[self.PX]
        dy = x0[self.PY] - x1[self.PY]
        return float(dx * dx + dy * dy)


class BikeDynamics5D(AutoDiffModel):
    """Kinematic bicycle with steering angle state.
    state := [x position, y position, velocity, heading, steering angle]
    control := [acceleration, steering rate]
    """

    def __init__(self, dt, *args, **kwargs):
        super().__init__(5, 2, dt, *args, **kwargs)

    def _f(self, x, u):
        return torch.stack(
            [
                x[2] * torch.cos(x[3]),
                x[2] * torch.sin(x[3]),
                u[0],
                x[2] * torch.tan(x[4]),
                u[1],
            ]
        )

    def distance(self, x0, x1):
        return float(np.hypot(x0[0] - x1[0], x0[1] - x1[1]))


class MultiPlayerModel(abc.ABC):
    """Joint dynamics of several players, each owning a slice of the controls

    Attributes
    ----------
    n_x : int
        Dimension of the joint state
    u_dims : list of int
        Control dimension of each player
    dt : float
        Integration time step

    """

    def __init__(self, n_x, u_dims, dt):
        self.n_x = n_x
        self.u_dims = list(u_dims)
        self.dt = dt

    @property
    def n_u(self):
        return sum(self.u_dims)

    @property
    def n_players(self):
        return len(self.u_dims)

    def _check_controls(self, us):
        if len(us) != self.n_players:
            raise ValueError(f"Expected controls for {self.n_players} players, got {len(us)}.")

    @abc.abstractmethod
    def f(self, x, us, t=0.0):
        """Continuous derivative of the joint state"""
        pass

    @abc.abstractmethod
    def __call__(self, x, us, t=0.0):
        """Integrate the joint state forward by one time step"""
        pass

    @abc.abstractmethod
    def linearize(self, x, us, t=0.0):
        """Discrete-time jacobians A and B, with B blocked by player"""
        pass

    @abc.abstractmethod
    def distance(self, x0, x1):
        pass


class MultiDynamicalModel(MultiPlayerModel):
    """Encompasses the dynamical simulation and linearization for a collection of
    decoupled DynamicalModel's, one per player
    """

    def __init__(self, submodels):
        if not submodels:
            raise ValueError("Need at least one submodel.")
        if len({submodel.dt for submodel in submodels}) != 1:
            raise ValueError("All submodels must share the same time step.")

        self.submodels = submodels
        self.x_dims = [submodel.n_x for submodel in submodels]

        super().__init__(
            sum(self.x_dims), [submodel.n_u for submodel in submodels], submodels[0].dt
        )

    def f(self, x, us, t=0.0):
        """Derivative of the current combined states and controls"""
        self._check_controls(us)
        return np.concatenate(
            [
                model.f(xi, ui)
                for model, xi, ui in zip(self.submodels, split_agents_gen(x, self.x_dims), us)
            ]
        )

    def __call__(self, x, us, t=0.0):
        self._check_controls(us)
        return np.concatenate(
            [
                model(xi, ui)
                for model, xi, ui in zip(self.submodels, split_agents_gen(x, self.x_dims), us)
            ]
        )

    def linearize(self, x, us, t=0.0):
        self._check_controls(us)
        sub_linearizations = [
            submodel.linearize(xi, ui)
            for submodel, xi, ui in zip(
                self.submodels, split_agents_gen(x, self.x_dims), us
            )
        ]

        sub_As = [AB[0] for AB in sub_linearizations]
        sub_Bs = [AB[1] for AB in sub_linearizations]

        return ragged_block_diag(*sub_As), ragged_block_diag(*sub_Bs)

    def distance(self, x0, x1):
        """Sum of each submodel's distance between its own states"""
        return sum(
            model.distance(x0i, x1i)
            for model, x0i, x1i in zip(
                self.submodels,
                split_agents_gen(x0, self.x_dims),
                split_agents_gen(x1, self.x_dims),
            )
        )

    def __repr__(self):
        sub_reprs = ",\n\t".join([repr(submodel) for submodel in self.submodels])
        return f"MultiDynamicalModel(\n\t{sub_reprs}\n)"


class SharedControlModel(MultiPlayerModel):
    """A single dynamical model whose control vector is divided among players"""

    def __init__(self, model, u_dims):
        if sum(u_dims) != model.n_u:
            raise ValueError(f"Control split {u_dims} doesn't cover {model.n_u} controls.")

        self.model = model
        super().__init__(model.n_x, u_dims, model.dt)

    def f(self, x, us, t=0.0):
        self._check_controls(us)
        return self.model.f(x, stack_controls(us))

    def __call__(self, x, us, t=0.0):
        self._check_controls(us)
        return self.model(x, stack_controls(us))

    def linearize(self, x, us, t=0.0):
        self._check_controls(us)
        return self.model.linearize(x, stack_controls(us))

    def distance(self, x0, x1):
        return self.model.distance(x0, x1)

    def split_controls(self, u):
        return [u[s] for s in agent_slices(self.u_dims)]

    def __repr__(self):
        return f"SharedControlModel({self.model}, u_dims: {self.u_dims})"


def as_multi_player(model):
    """Treat a single DynamicalModel as a one player system"""
    if isinstance(model, MultiPlayerModel):
        return model
    return SharedControlModel(model, [model.n_u])


# Based off of https://github.com/anassinator/ilqr/blob/master/ilqr/dynamics.py
def linearize_finite_difference(f, x, u):
    """Linearization using finite difference"""

    x = np.asarray(x, dtype=float)
    u = np.asarray(u, dtype=float)
    n_x = np.asarray(f(x, u)).size
    jac_eps = np.sqrt(np.finfo(float).eps)

    A = np.vstack([approx_fprime(x, lambda x: f(x, u)[i], jac_eps) for i in range(n_x)])
    B = np.vstack([approx_fprime(u, lambda u: f(x, u)[i], jac_eps) for i in range(n_x)])

    return A, B
