#!/usr/bin/env python3
"""
Tests for the vibrance value conversions.
"""

import sys
import unittest
from pathlib import Path

import numpy as np

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from vivid.mapper import (
    LUMA_WEIGHTS,
    MappingConstants,
    clamp_vibrance,
    from_legacy_percent,
    gamma_triplet,
    saturation_matrix,
    vcp_code,
)


class TestClampVibrance(unittest.TestCase):

    def test_values_inside_range_are_rounded(self):
        self.assertEqual(clamp_vibrance(12.4), 12)
        self.assertEqual(clamp_vibrance(-37), -37)

    def test_values_outside_range_are_clamped(self):
        self.assertEqual(clamp_vibrance(150), 100)
        self.assertEqual(clamp_vibrance(-101.7), -100)
        self.assertEqual(clamp_vibrance(float('inf')), 100)

    def test_custom_bounds(self):
        self.assertEqual(clamp_vibrance(90, -75, 75), 75)

    def test_nan_is_rejected(self):
        with self.assertRaises(ValueError):
            clamp_vibrance(float('nan'))

    def test_legacy_percent_scale(self):
        self.assertEqual(from_legacy_percent(100), 0)
        self.assertEqual(from_legacy_percent(150), 50)
        self.assertEqual(from_legacy_percent(0), -100)
        self.assertEqual(from_legacy_percent(250), 100)


class TestGammaTriplet(unittest.TestCase):

    def test_neutral_is_identity_gamma(self):
        self.assertEqual(gamma_triplet(0), (1.0, 1.0, 1.0))

    def test_full_vibrance_skews_red_and_blue(self):
        red, green, blue = gamma_triplet(100)
        self.assertAlmostEqual(green, 0.5)
        self.assertAlmostEqual(red, round(0.5 ** 0.8, 3))
        # 0.5 ** 1.2 is below the safe minimum
        self.assertAlmostEqual(blue, 0.5)

    def test_minimum_vibrance_is_clamped_to_safe_gamma(self):
        red, green, blue = gamma_triplet(-100)
        self.assertAlmostEqual(green, 2.0)
        self.assertAlmostEqual(red, round(2.0 ** 0.8, 3))
        self.assertAlmostEqual(blue, 2.0)

    def test_out_of_range_input_is_clamped(self):
        self.assertEqual(gamma_triplet(500), gamma_triplet(100))
        self.assertEqual(gamma_triplet(-500), gamma_triplet(-100))

    def test_output_stays_in_safe_range(self):
        mapping = MappingConstants()
        for value in range(-100, 101, 10):
            for channel in gamma_triplet(value):
                self.assertGreaterEqual(channel, mapping.gamma_min)
                self.assertLessEqual(channel, mapping.gamma_max)

    def test_divisor_controls_strength(self):
        gentle = MappingConstants(gamma_divisor=200.0)
        self.assertAlmostEqual(gamma_triplet(100, gentle)[1], round(1 / 1.5, 3))


class TestSaturationMatrix(unittest.TestCase):

    def test_neutral_is_identity(self):
        np.testing.assert_allclose(saturation_matrix(0), np.eye(3))

    def test_rows_preserve_gray(self):
        for value in (-100, -40, 25, 100):
            np.testing.assert_allclose(saturation_matrix(value).sum(axis=1), np.ones(3))

    def test_grayscale_collapses_to_luma(self):
        matrix = saturation_matrix(-100)
        for row in matrix:
            np.testing.assert_allclose(row, LUMA_WEIGHTS)

    def test_oversaturation_entries(self):
        matrix = saturation_matrix(100)  # s = 2
        self.assertAlmostEqual(matrix[0][0], 2 - LUMA_WEIGHTS[0])
        self.assertAlmostEqual(matrix[0][1], -LUMA_WEIGHTS[1])
        self.assertAlmostEqual(matrix[2][0], -LUMA_WEIGHTS[0])


class TestVcpCode(unittest.TestCase):

    def test_linear_remap(self):
        self.assertEqual(vcp_code(0), 50)
        self.assertEqual(vcp_code(100), 100)
        self.assertEqual(vcp_code(-100), 0)
        self.assertEqual(vcp_code(40), 70)

    def test_halves_round_up(self):
        self.assertEqual(vcp_code(1), 51)
        self.assertEqual(vcp_code(-99), 1)

    def test_out_of_range_input_is_clamped(self):
        self.assertEqual(vcp_code(300), 100)
        self.assertEqual(vcp_code(-300), 0)


if __name__ == '__main__':
    unittest.main()
