#!/usr/bin/env python

"""Record of solver iterates for diagnostics and visualization elsewhere"""

import numpy as np


class SolverLog:
    """Append-only sink of (operating point, strategies) pairs, one per iterate

    Iterates are copied on the way in since the solver reuses its buffers.
    """

    def __init__(self):
        self.operating_points = []
        self.strategies = []

    def add_solver_iterate(self, operating_point, strategies):
        self.operating_points.append(operating_point.copy())
        self.strategies.append([strategy.copy() for strategy in strategies])

    @property
    def final_operating_point(self):
        if not self.operating_points:
            raise IndexError("No iterates have been logged.")
        return self.operating_points[-1]

    @property
    def final_strategies(self):
        if not self.strategies:
            raise IndexError("No iterates have been logged.")
        return self.strategies[-1]

    def states(self):
        """States of every iterate, of shape (n_iterates, T, n_x)"""
        return np.stack([op.xs for op in self.operating_points])

    def controls(self, player):
        """One player's controls for every iterate, of shape (n_iterates, T, n_u)"""
        return np.stack([op.us[player] for op in self.operating_points])

    def max_differences(self):
        """Largest change in any state or control between consecutive iterates"""
        return [
            curr.max_difference(prev)
            for prev, curr in zip(self.operating_points[:-1], self.operating_points[1:])
        ]

    def __len__(self):
        return len(self.operating_points)

    def __repr__(self):
        return f"SolverLog(n_iterates: {len(self)})"
