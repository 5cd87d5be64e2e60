#!/usr/bin/env python

"""Configuration for the iterative LQ game solver.

All of the numeric knobs that govern one solve live here so that a problem can
be described by its dynamics, its costs and a single ``SolverConfig``.
"""

from dataclasses import asdict, dataclass, fields, replace


@dataclass(frozen=True)
class SolverConfig:
    """
    Parameters of a finite horizon iterative LQ game solve.

    Attributes
    ----------
    time_step : float
        Discretization time step in seconds.
    time_horizon : float
        Length of the planning horizon in seconds. The number of time steps is
        ``time_horizon / time_step``.
    max_iterations : int
        Iteration budget of the outer loop. Hitting it ends the solve normally.
    convergence_tolerance : float
        Largest elementwise change in any state or control between consecutive
        operating points for which we declare convergence.
    alpha_scaling : float
        Factor in (0, 1] applied to every feedforward term after each LQ solve,
        which keeps successive operating points close together.
    regularization : float
        Initial multiple of identity added to a singular joint gain system
        before retrying. Zero disables the fallback.
    """

    time_step: float = 0.1
    time_horizon: float = 2.0
    max_iterations: int = 50
    convergence_tolerance: float = 0.1
    alpha_scaling: float = 0.05
    regularization: float = 0.0

    def __post_init__(self):
        if not self.time_step > 0.0:
            raise ValueError(f"time_step must be positive, got {self.time_step}.")
        if not self.time_horizon > 0.0:
            raise ValueError(f"time_horizon must be positive, got {self.time_horizon}.")
        if int(self.max_iterations) != self.max_iterations or self.max_iterations < 1:
            raise ValueError(
                f"max_iterations must be a positive integer, got {self.max_iterations}."
            )
        if not self.convergence_tolerance >= 0.0:
            raise ValueError(
                f"convergence_tolerance must be non-negative, got {self.convergence_tolerance}."
            )
        if not 0.0 < self.alpha_scaling <= 1.0:
            raise ValueError(f"alpha_scaling must lie in (0, 1], got {self.alpha_scaling}.")
        if not self.regularization >= 0.0:
            raise ValueError(
                f"regularization must be non-negative, got {self.regularization}."
            )
        if self.num_time_steps < 1:
            raise ValueError(
                f"Horizon {self.time_horizon} with step {self.time_step} has no time steps."
            )

    @property
    def num_time_steps(self) -> int:
        return int(round(self.time_horizon / self.time_step))

    def time_stamp(self, k, t0=0.0) -> float:
        """Time at step k of a horizon starting at t0"""
        return t0 + k * self.time_step

    def replace(self, **changes) -> "SolverConfig":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, params: dict) -> "SolverConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(params) - known
        if unknown:
            raise ValueError(f"Unknown solver parameters: {sorted(unknown)}.")
        return cls(**params)
