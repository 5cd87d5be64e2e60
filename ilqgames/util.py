#!/usr/bin/env python

"""Various utilities"""

from dataclasses import dataclass

import numpy as np
from scipy.linalg import block_diag

π = np.pi


@dataclass
class Point:
    """Point in 3D"""

    x: float
    y: float
    z: float = 0

    @property
    def ndim(self):
        return 2 if self.z == 0 else 3

    def __sub__(self, other):
        return Point(self.x - other.x, self.y - other.y, self.z - other.z)

    def __repr__(self):
        return str((self.x, self.y, self.z))

    def hypot2(self):
        return self.x**2 + self.y**2 + self.z**2

    def norm(self):
        return np.sqrt(self.hypot2())


class Polyline2:
    """Piecewise linear curve in the plane parameterized by arc length"""

    def __init__(self, points):
        points = np.asarray(points, dtype=float)
        if points.ndim != 2 or points.shape[1] != 2 or points.shape[0] < 2:
            raise ValueError(f"Polyline needs at least two 2D points, got {points.shape}.")

        self.points = points
        self.segment_lengths = np.linalg.norm(np.diff(points, axis=0), axis=1)
        if np.any(self.segment_lengths <= 0.0):
            raise ValueError("Polyline has a degenerate segment.")

        self.arc_lengths = np.r_[0.0, np.cumsum(self.segment_lengths)]

    @property
    def length(self):
        return self.arc_lengths[-1]

    def point_at(self, s):
        """Point at arc length ``s``, clamped to the end points"""

        s = np.clip(s, 0.0, self.length)
        i = min(np.searchsorted(self.arc_lengths, s, side="right") - 1, len(self) - 2)
        frac = (s - self.arc_lengths[i]) / self.segment_lengths[i]
        return self.points[i] + frac * (self.points[i + 1] - self.points[i])

    def __len__(self):
        return self.points.shape[0]

    def __repr__(self):
        return f"Polyline2(n_points: {len(self)}, length: {self.length:.3g})"


def split_agents(Z, z_dims):
    """Partition a cartesian product state or control for individual agents"""
    return np.split(np.atleast_2d(Z), np.cumsum(z_dims[:-1]), axis=1)


def split_agents_gen(z, z_dims):
    """Generator version of ``split_agents`` for a single flat vector"""
    start = 0
    for dim in z_dims:
        yield z[start : start + dim]
        start += dim


def agent_slices(z_dims):
    """Slices selecting each agent's portion of a concatenated vector"""
    offsets = np.r_[0, np.cumsum(z_dims)]
    return [slice(int(lo), int(hi)) for lo, hi in zip(offsets[:-1], offsets[1:])]


def uniform_block_diag(*arrs):
    """Block diagonal matrix construction for uniformly shaped arrays"""
    rdim, cdim = arrs[0].shape
    blocked = np.zeros((len(arrs) * rdim, len(arrs) * cdim))
    for i, arr in enumerate(arrs):
        blocked[rdim * i : rdim * (i + 1), cdim * i : cdim * (i + 1)] = arr

    return blocked


def ragged_block_diag(*arrs):
    """Block diagonal matrix construction for arbitrarily shaped arrays"""
    if len({arr.shape for arr in arrs}) == 1:
        return uniform_block_diag(*arrs)
    return block_diag(*arrs)


def stack_controls(us):
    """Concatenate a list of per-player controls into the joint control"""
    return np.concatenate([np.atleast_1d(u) for u in us]) if us else np.zeros(0)


def symmetrize(M):
    return 0.5 * (M + M.T)
