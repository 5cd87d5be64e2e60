#!/usr/bin/env python

"""Unit testing for explicit equality constraints"""

import unittest

import numpy as np

from ilqgames import AffineEqualityConstraint, EqualityConstraint, linearize_finite_difference


def finite_difference_jacobian(constraint, z, t=0.0):
    jacobian, _ = linearize_finite_difference(lambda z, _: constraint(z, t), z, np.zeros(1))
    return jacobian


class UnitCircleConstraint(EqualityConstraint):
    """Keep a planar position on the unit circle"""

    def __call__(self, z, t=0.0):
        return np.array([z[0] ** 2 + z[1] ** 2 - 1.0])

    def linearize(self, z, t=0.0):
        jacobian = np.zeros((1, z.size))
        jacobian[0, :2] = 2.0 * z[:2]
        return jacobian


class TestAffineEqualityConstraint(unittest.TestCase):
    def setUp(self):
        self.A = np.array([[1.0, 2.0], [0.0, -1.0]])
        self.constraint = AffineEqualityConstraint(self.A, b=[3.0, 1.0], dims=[0, 2])

    def test_is_satisfied(self):
        satisfied, level = self.constraint.is_satisfied(np.array([5.0, 7.0, -1.0]))
        self.assertTrue(satisfied)
        self.assertAlmostEqual(level, 0.0)

        satisfied, level = self.constraint.is_satisfied(np.array([1.0, 7.0, 0.0]))
        self.assertFalse(satisfied)
        self.assertAlmostEqual(level, (1.0 - 3.0) ** 2 + 1.0**2)

    def test_linearize(self):
        z = np.array([0.3, -2.0, 1.5])
        jacobian = self.constraint.linearize(z)

        self.assertEqual(jacobian.shape, (2, 3))
        self.assertTrue(np.allclose(jacobian[:, [0, 2]], self.A))
        self.assertTrue(np.allclose(jacobian[:, 1], 0.0))
        self.assertTrue(np.allclose(jacobian, finite_difference_jacobian(self.constraint, z), atol=1e-5))

    def test_mismatched_offset(self):
        with self.assertRaises(ValueError):
            AffineEqualityConstraint(self.A, b=[1.0])
        with self.assertRaises(ValueError):
            AffineEqualityConstraint(self.A, dims=[0, 1, 2])


class TestEqualityConstraint(unittest.TestCase):
    def setUp(self):
        self.constraint = UnitCircleConstraint("circle")

    def test_is_satisfied(self):
        satisfied, level = self.constraint.is_satisfied(np.array([np.cos(0.4), np.sin(0.4), 3.0]))
        self.assertTrue(satisfied)
        self.assertAlmostEqual(level, 0.0)

        satisfied, level = self.constraint.is_satisfied(np.array([2.0, 0.0, 0.0]))
        self.assertFalse(satisfied)
        self.assertAlmostEqual(level, 9.0)

    def test_linearize(self):
        z = np.array([0.7, -1.2, 0.4])
        self.assertTrue(
            np.allclose(
                self.constraint.linearize(z),
                finite_difference_jacobian(self.constraint, z),
                atol=1e-5,
            )
        )

    def test_abstract(self):
        with self.assertRaises(TypeError):
            EqualityConstraint()


if __name__ == "__main__":
    unittest.main()
