#!/usr/bin/env python

import unittest

import numpy as np

from ilqgames import (
    NonFiniteValue,
    Point,
    block_diag,
    check_finite,
    compute_pairwise_distance,
    split_agents_gen,
)


class TestUtil(unittest.TestCase):
    def test_split_agents_gen(self):
        z = np.arange(7)
        parts = list(split_agents_gen(z, [3, 4]))
        self.assertEqual([part.tolist() for part in parts], [[0, 1, 2], [3, 4, 5, 6]])

    def test_block_diag(self):
        blocked = block_diag(np.ones((2, 1)), 2 * np.ones((1, 3)))
        expected = np.array(
            [[1.0, 0, 0, 0], [1.0, 0, 0, 0], [0, 2.0, 2.0, 2.0]]
        )
        self.assertTrue(np.array_equal(blocked, expected))

    def test_pairwise_distance(self):
        X = np.array([[0.0, 0.0, 3.0, 4.0, 0.0, 1.0], [1.0, 1.0, 1.0, 1.0, 1.0, 1.0]])
        distances = compute_pairwise_distance(X, [(0, 1), (2, 3), (4, 5)])

        self.assertEqual(distances.shape, (2, 3))
        self.assertTrue(np.allclose(distances[0], [5.0, 1.0, np.hypot(3, 3)]))
        self.assertTrue(np.allclose(distances[1], 0.0))

    def test_pairwise_distance_one_agent(self):
        with self.assertRaises(ValueError):
            compute_pairwise_distance(np.zeros((3, 2)), [(0, 1)])

    def test_check_finite(self):
        check_finite("ok", np.zeros(3), np.eye(2))
        with self.assertRaisesRegex(NonFiniteValue, "rollout"):
            check_finite("rollout", np.zeros(3), np.array([1.0, np.inf]))

    def test_point(self):
        p = Point.from_array([4.0, 6.0]) - Point(1.0, 2.0)
        self.assertEqual((p.x, p.y, p.z), (3.0, 4.0, 0.0))
        self.assertEqual(p.hypot2(), 25.0)


if __name__ == "__main__":
    unittest.main()
