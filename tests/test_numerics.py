import math
import unittest

import torch

from torch_fgbp.util import (LOG_EPSILON, log_sum_exp, normalize, damp_message,
                             gaussian_damp_message, cartesian_product)


class TestLogSumExp(unittest.TestCase):
    def test_empty_input_returns_floor(self):
        self.assertEqual(float(log_sum_exp([])), LOG_EPSILON)

    def test_all_neg_inf_returns_floor(self):
        self.assertEqual(float(log_sum_exp([-math.inf, -math.inf])), LOG_EPSILON)

    def test_matches_direct_computation(self):
        values = [math.log(0.2), math.log(0.3), math.log(0.5)]
        self.assertAlmostEqual(float(log_sum_exp(values)), 0.0, places=12)

    def test_large_values_are_stable(self):
        self.assertAlmostEqual(float(log_sum_exp([1000., 1000.])), 1000. + math.log(2.), places=9)

    def test_partial_neg_inf(self):
        self.assertAlmostEqual(float(log_sum_exp([-math.inf, 0.])), 0.0)

    def test_reduce_over_dims(self):
        table = torch.log(torch.tensor([[0.1, 0.2], [0.3, 0.4]], dtype=torch.float64))
        res = log_sum_exp(table, dim=0)
        self.assertTrue(torch.allclose(torch.exp(res), torch.tensor([0.4, 0.6], dtype=torch.float64)))
        row = torch.tensor([[-math.inf, -math.inf], [0., 0.]], dtype=torch.float64)
        res = log_sum_exp(row, dim=1)
        self.assertEqual(float(res[0]), LOG_EPSILON)
        self.assertAlmostEqual(float(res[1]), math.log(2.))


class TestMessageHelpers(unittest.TestCase):
    def test_normalize(self):
        res = normalize(torch.tensor([1., 3.], dtype=torch.float64))
        self.assertTrue(torch.allclose(res, torch.tensor([0.25, 0.75], dtype=torch.float64)))

    def test_damp_message_extremes(self):
        new = torch.tensor([0.9, 0.1], dtype=torch.float64)
        prev = torch.tensor([0.5, 0.5], dtype=torch.float64)
        self.assertTrue(torch.allclose(damp_message(new, prev, 1.), new))
        self.assertTrue(torch.allclose(damp_message(new, prev, 0.), prev))
        self.assertTrue(torch.allclose(damp_message(new, prev, 0.5),
                                       torch.tensor([0.7, 0.3], dtype=torch.float64)))

    def test_damp_message_renormalizes(self):
        res = damp_message(torch.tensor([2., 2.]), torch.tensor([1., 3.]), 0.5)
        self.assertAlmostEqual(float(res.sum()), 1.0, places=6)

    def test_gaussian_damp_message(self):
        mean, precision = gaussian_damp_message((2., 4.), (0., 2.), 0.25)
        self.assertAlmostEqual(mean, 0.5)
        self.assertAlmostEqual(precision, 2.5)

    def test_cartesian_product_order(self):
        self.assertEqual(cartesian_product([[0, 1], ["a", "b"]]),
                         [[0, "a"], [0, "b"], [1, "a"], [1, "b"]])
        self.assertEqual(cartesian_product([]), [[]])
        self.assertEqual(cartesian_product([[0, 1], []]), [])


if __name__ == "__main__":
    unittest.main()
