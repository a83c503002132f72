"""
Unit tests for NURBS geometry.
"""

import pytest
import numpy as np
from numpy.testing import assert_array_almost_equal, assert_almost_equal

from mortarIGA.discretization.knot_vector import make_open_knot_vector
from mortarIGA.geometry.nurbs import NURBSCurve, NURBSSurface
from mortarIGA.geometry.primitives import (
    make_plane_patch, make_quarter_cylinder_patch, make_nurbs_arc, make_nurbs_line
)


class TestNURBSCurve:
    """Tests for NURBS curves."""

    def test_bspline_curve_endpoints(self):
        """Test that B-spline curve interpolates endpoints."""
        kv = make_open_knot_vector(n_basis=4, degree=2, domain=(0.0, 1.0))
        control_points = np.array([
            [0.0, 0.0],
            [0.5, 1.0],
            [1.0, 1.0],
            [1.5, 0.0]
        ])

        curve = NURBSCurve(kv, control_points)

        assert_array_almost_equal(curve.eval_point(0.0), [0.0, 0.0])
        assert_array_almost_equal(curve.eval_point(1.0), [1.5, 0.0])

    def test_curve_derivatives(self):
        kv = make_open_knot_vector(n_basis=3, degree=2, domain=(0.0, 1.0))
        # Straight line from (0,0) to (2,4)
        control_points = np.array([
            [0.0, 0.0],
            [1.0, 2.0],
            [2.0, 4.0]
        ])

        curve = NURBSCurve(kv, control_points)
        C, dC = curve.eval_derivatives(0.5, n_ders=1)

        assert_array_almost_equal(C, [1.0, 2.0])
        assert_array_almost_equal(dC, [2.0, 4.0])

    def test_nurbs_curve_with_weights(self):
        """Higher weight at middle pushes curve toward middle control point."""
        kv = make_open_knot_vector(n_basis=3, degree=2, domain=(0.0, 1.0))
        control_points = np.array([
            [0.0, 0.0],
            [0.5, 0.5],
            [1.0, 0.0]
        ])
        weights = np.array([1.0, 2.0, 1.0])

        curve = NURBSCurve(kv, control_points, weights)

        p = curve.eval_point(0.5)
        assert p[1] > 0.25  # B-spline would give 0.25 here

    def test_arc_is_exact_circle(self):
        arc = make_nurbs_arc(2.0, (1.0, -1.0), 0.0, np.pi / 2)

        for xi in np.linspace(0.0, 1.0, 7):
            p = arc.eval_point(xi)
            assert_almost_equal(np.linalg.norm(p - [1.0, -1.0]), 2.0, decimal=12)

    def test_clockwise_arc(self):
        arc = make_nurbs_arc(1.0, (0.0, 0.0), 0.0, -np.pi / 2)

        assert_array_almost_equal(arc.eval_point(0.0), [1.0, 0.0])
        assert_array_almost_equal(arc.eval_point(1.0), [0.0, -1.0])

    def test_sample_reverse(self):
        line = make_nurbs_line((0.0, 0.0), (1.0, 2.0))

        points = line.sample(3, reverse=True)
        assert_array_almost_equal(points, [[1.0, 2.0], [0.5, 1.0], [0.0, 0.0]])

    def test_invalid_control_points(self):
        kv = make_open_knot_vector(n_basis=3, degree=2)
        with pytest.raises(ValueError):
            NURBSCurve(kv, np.zeros((4, 2)))
        with pytest.raises(ValueError):
            NURBSCurve(kv, np.zeros((3, 2)), np.array([1.0, 0.0, 1.0]))


class TestNURBSSurface:
    """Tests for NURBS surfaces."""

    def test_plane_patch_affine_mapping(self):
        """A flat patch maps (u, v) affinely onto its rectangle."""
        surface = make_plane_patch((1.0, 3.0), (0.0, 2.0), z=0.5, p=2, n_elem_u=2, n_elem_v=3)

        for u in [0.0, 0.25, 0.5, 0.75, 1.0]:
            for v in [0.0, 0.3, 1.0]:
                assert_array_almost_equal(surface.eval_point(u, v),
                                          [1.0 + 2.0 * u, 2.0 * v, 0.5], decimal=12)

    def test_plane_patch_derivatives(self):
        surface = make_plane_patch((1.0, 3.0), (0.0, 2.0), p=2, n_elem_u=2, n_elem_v=3)

        S = surface.eval_derivatives(0.3, 0.6, 2)
        assert S.shape == (3, 3, 3)
        assert_array_almost_equal(S[1, 0], [2.0, 0.0, 0.0])
        assert_array_almost_equal(S[0, 1], [0.0, 2.0, 0.0])
        assert_array_almost_equal(S[2, 0], 0.0)
        assert_array_almost_equal(S[1, 1], 0.0)

    def test_surface_properties(self):
        surface = make_plane_patch(p=2, n_elem_u=3, n_elem_v=2)

        assert surface.degrees == (2, 2)
        assert surface.n_control_points_per_dir == (5, 4)
        assert surface.n_control_points == 20
        assert surface.domain == ((0.0, 1.0), (0.0, 1.0))

    def test_2d_control_points_placed_at_zero_height(self):
        kv = make_open_knot_vector(n_basis=2, degree=1)
        surface = NURBSSurface(kv, kv, np.array([[0, 0], [1, 0], [0, 1], [1, 1]]))

        assert surface.control_points.shape == (4, 3)
        assert_array_almost_equal(surface.eval_point(0.5, 0.5), [0.5, 0.5, 0.0])

    def test_grid_control_points_are_flattened_u_fastest(self):
        kv_u = make_open_knot_vector(n_basis=3, degree=1)
        kv_v = make_open_knot_vector(n_basis=2, degree=1)
        grid = np.zeros((2, 3, 3))
        grid[..., 0] = [0.0, 0.5, 1.0]
        grid[..., 1] = [[0.0], [1.0]]
        surface = NURBSSurface(kv_u, kv_v, grid)

        assert_array_almost_equal(surface.control_points[:3, 0], [0.0, 0.5, 1.0])
        assert_array_almost_equal(surface.eval_point(0.25, 1.0), [0.25, 1.0, 0.0])

    def test_local_control_point_indices(self):
        surface = make_plane_patch(p=1, n_elem_u=2, n_elem_v=2)
        span_u, span_v = surface.find_spans(0.75, 0.25)

        assert (span_u, span_v) == (2, 1)
        assert list(surface.local_control_point_indices(span_u, span_v)) == [1, 2, 4, 5]

    def test_rational_basis_partition_of_unity(self):
        surface = make_quarter_cylinder_patch(n_elem_axial=2)

        for u, v in [(0.1, 0.2), (0.5, 0.5), (0.9, 0.99)]:
            R, indices = surface.eval_rational_basis(u, v, 1)
            assert_almost_equal(R[0, 0].sum(), 1.0, decimal=14)
            assert_almost_equal(R[1, 0].sum(), 0.0, decimal=12)
            assert len(indices) == 3 * 2

    def test_cylinder_points_on_circle(self):
        surface = make_quarter_cylinder_patch(radius=2.0, height=3.0)

        for u in np.linspace(0.0, 1.0, 5):
            p = surface.eval_point(u, 0.5)
            assert_almost_equal(np.hypot(p[0], p[1]), 2.0, decimal=12)
            assert_almost_equal(p[2], 1.5)

    def test_points_grid_matches_pointwise_evaluation(self):
        surface = make_quarter_cylinder_patch(n_elem_axial=3)
        us = np.array([0.0, 0.3, 1.0])
        vs = np.array([0.1, 0.8])

        grid = surface.eval_points_grid(us, vs)
        assert grid.shape == (2, 3, 3)
        assert_array_almost_equal(grid[1, 2], surface.eval_point(1.0, 0.8))
        assert_array_almost_equal(grid[0, 1], surface.eval_point(0.3, 0.1))

    def test_weights_must_be_positive(self):
        kv = make_open_knot_vector(n_basis=2, degree=1)
        with pytest.raises(ValueError):
            NURBSSurface(kv, kv, np.zeros((4, 3)), np.array([1.0, 1.0, 0.0, 1.0]))
