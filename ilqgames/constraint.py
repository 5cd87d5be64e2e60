#!/usr/bin/env python

"""Explicit equality constraints ``g(z) = 0`` over a single input vector"""

import abc

import numpy as np


class EqualityConstraint(abc.ABC):
    """
    Abstract base class for equality constraints.

    Attributes
    ----------
    name : str
        Human readable identifier
    tolerance : float
        Largest squared norm of ``g(z)`` still counted as satisfied

    """

    def __init__(self, name="", tolerance=1e-9):
        self.name = name
        self.tolerance = tolerance

    @abc.abstractmethod
    def __call__(self, z, t=0.0):
        """Returns the constraint value g(z), zero where satisfied"""
        pass

    @abc.abstractmethod
    def linearize(self, z, t=0.0):
        """Jacobian of g wrt. the input at the operating point"""
        pass

    def is_satisfied(self, z, t=0.0):
        """Whether g(z) vanishes, along with its squared norm"""
        level = float(np.sum(np.square(self(z, t))))
        return level <= self.tolerance, level

    def __repr__(self):
        return f"{type(self).__name__}(name: {self.name!r})"


class AffineEqualityConstraint(EqualityConstraint):
    """
    Affine constraint on a subset of an input's dimensions.

    ``A z[dims] - b = 0``
    """

    def __init__(self, A, b=None, dims=None, name="", tolerance=1e-9):
        super().__init__(name, tolerance)

        self.A = np.atleast_2d(np.asarray(A, dtype=float))
        n_g, n = self.A.shape
        self.b = np.zeros(n_g) if b is None else np.asarray(b, dtype=float).flatten()
        self.dims = np.arange(n) if dims is None else np.asarray(dims)

        if self.b.size != n_g or self.dims.size != n:
            raise ValueError(
                f"Offset {self.b.shape} and dimensions {self.dims.shape} don't "
                f"match A {self.A.shape}."
            )

    def __call__(self, z, t=0.0):
        return self.A @ z[self.dims] - self.b

    def linearize(self, z, t=0.0):
        jacobian = np.zeros((self.A.shape[0], z.size))
        jacobian[:, self.dims] = self.A
        return jacobian
