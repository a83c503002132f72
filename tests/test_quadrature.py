"""
Unit tests for Gauss quadrature rules.
"""

import pytest
import numpy as np
from numpy.testing import assert_almost_equal

from mortarIGA.quadrature.gauss import (
    gauss_legendre_1d, gauss_quad_rule, gauss_triangle_rule, points_per_direction
)


class TestGaussLegendre1D:
    """Tests for 1D Gauss-Legendre quadrature."""

    def test_weights_sum_to_one(self):
        """Test that weights sum to 1 (domain is [0,1])."""
        for n in [1, 2, 3, 4, 5]:
            pts, wts = gauss_legendre_1d(n)
            assert_almost_equal(np.sum(wts), 1.0, decimal=14)

    def test_points_in_domain(self):
        for n in [1, 2, 3, 4, 5]:
            pts, wts = gauss_legendre_1d(n)
            assert np.all(pts >= 0.0)
            assert np.all(pts <= 1.0)

    def test_integrate_polynomial(self):
        """Test exact integration of polynomials up to degree 2n-1."""
        pts, wts = gauss_legendre_1d(2)
        # ∫_0^1 x^3 dx = 1/4
        assert_almost_equal(np.sum(pts**3 * wts), 0.25, decimal=14)

        pts, wts = gauss_legendre_1d(3)
        # ∫_0^1 x^5 dx = 1/6
        assert_almost_equal(np.sum(pts**5 * wts), 1/6, decimal=14)

    def test_invalid_number_of_points(self):
        with pytest.raises(ValueError):
            gauss_legendre_1d(0)


class TestGaussQuadRule:
    """Tests for the tensor-product rule on [-1, 1]^2."""

    def test_weights_sum_to_four(self):
        for n in [1, 2, 3, 5]:
            pts, wts = gauss_quad_rule(n)
            assert pts.shape == (n * n, 2)
            assert_almost_equal(np.sum(wts), 4.0, decimal=14)

    def test_integrate_polynomial_2d(self):
        # ∫∫ x^2 y^2 over [-1,1]^2 = 4/9
        pts, wts = gauss_quad_rule(2)
        result = np.sum(pts[:, 0]**2 * pts[:, 1]**2 * wts)
        assert_almost_equal(result, 4.0 / 9.0, decimal=14)


class TestGaussTriangleRule:
    """Tests for the collapsed rule on the unit triangle."""

    def test_weights_sum_to_half(self):
        for n in [1, 2, 4]:
            pts, wts = gauss_triangle_rule(n)
            assert_almost_equal(np.sum(wts), 0.5, decimal=14)

    def test_points_inside_triangle(self):
        pts, _ = gauss_triangle_rule(4)
        assert np.all(pts >= 0.0)
        assert np.all(pts.sum(axis=1) <= 1.0)

    def test_integrate_monomials(self):
        # ∫ x^a y^b over the unit triangle = a! b! / (a + b + 2)!
        pts, wts = gauss_triangle_rule(4)
        x, y = pts[:, 0], pts[:, 1]
        assert_almost_equal(np.sum(x * wts), 1.0 / 6.0, decimal=14)
        assert_almost_equal(np.sum(x * y * wts), 1.0 / 24.0, decimal=14)
        assert_almost_equal(np.sum(x**3 * y**2 * wts), 6.0 * 2.0 / 5040.0, decimal=14)


class TestPointsPerDirection:
    """Tests for the Gauss point count conversion."""

    def test_perfect_squares(self):
        assert points_per_direction(1) == 1
        assert points_per_direction(16) == 4
        assert points_per_direction(25) == 5

    def test_non_square_rejected(self):
        for n in [0, 7, 12]:
            with pytest.raises(ValueError):
                points_per_direction(n)
