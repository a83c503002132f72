"""
Unit tests for IGA patches: differential geometry and point projection.
"""

import pytest
import numpy as np
from numpy.testing import assert_array_almost_equal, assert_almost_equal, assert_array_equal

from mortarIGA.discretization.knot_vector import make_open_knot_vector
from mortarIGA.geometry.patch import (
    BoundingBox, IGAPatchSurface, contravariant_base_vectors, covariant_metric
)
from mortarIGA.geometry.primitives import make_plane_patch, make_quarter_cylinder_patch


class TestPatchGeometry:
    """Tests for DOFs, bounding box and differential geometry."""

    def test_dof_offset(self):
        patch = make_plane_patch(p=1, n_elem_u=2, n_elem_v=1, dof_offset=10)

        assert_array_equal(patch.dof_indices, np.arange(10, 16))
        assert_array_equal(patch.local_dof_indices(2, 1), [11, 12, 14, 15])

    def test_wrong_number_of_dofs(self):
        kv = make_open_knot_vector(n_basis=2, degree=1)
        with pytest.raises(ValueError):
            IGAPatchSurface(kv, kv, np.zeros((4, 3)), dof_indices=[0, 1, 2])

    def test_bounding_box(self):
        patch = make_quarter_cylinder_patch(radius=1.0, height=2.0)
        bbox = patch.bounding_box

        assert_array_almost_equal(bbox.lower, [0.0, 0.0, 0.0])
        assert_array_almost_equal(bbox.upper, [1.0, 1.0, 2.0])
        assert patch.is_point_in_bounding_box(np.array([0.5, 0.5, 1.0]), 0.0)
        assert not patch.is_point_in_bounding_box(np.array([1.05, 0.5, 1.0]), 0.01)
        assert patch.is_point_in_bounding_box(np.array([1.05, 0.5, 1.0]), 0.1)

    def test_bounding_box_diagonal(self):
        bbox = BoundingBox.from_points(np.array([[0.0, 0.0, 0.0], [3.0, 4.0, 0.0]]))
        assert_almost_equal(bbox.diagonal, 5.0)

    def test_plane_base_vectors(self):
        patch = make_plane_patch((0.0, 2.0), (0.0, 3.0), p=2, n_elem_u=2, n_elem_v=2)

        g1, g2 = patch.compute_base_vectors(0.3, 0.7)
        assert_array_almost_equal(g1, [2.0, 0.0, 0.0])
        assert_array_almost_equal(g2, [0.0, 3.0, 0.0])
        assert_array_almost_equal(patch.compute_metric_tensor(0.3, 0.7), [[4.0, 0.0], [0.0, 9.0]])
        assert_array_almost_equal(patch.compute_surface_normal(0.3, 0.7), [0.0, 0.0, 1.0])

    def test_contravariant_base_vectors(self):
        g1 = np.array([1.0, 0.5, 0.0])
        g2 = np.array([0.2, 2.0, 1.0])

        g1_con, g2_con = contravariant_base_vectors(g1, g2)
        G = covariant_metric(g1, g2)
        assert_almost_equal(G[0, 1], G[1, 0])
        assert_almost_equal(g1_con @ g1, 1.0)
        assert_almost_equal(g1_con @ g2, 0.0)
        assert_almost_equal(g2_con @ g1, 0.0)
        assert_almost_equal(g2_con @ g2, 1.0)

    def test_patch_contravariant_base_vectors(self):
        patch = make_quarter_cylinder_patch(radius=2.0, height=3.0)

        g1, g2 = patch.compute_base_vectors(0.4, 0.6)
        g1_con, g2_con = patch.compute_contravariant_base_vectors(0.4, 0.6)
        assert_almost_equal(g1_con @ g1, 1.0)
        assert_almost_equal(g1_con @ g2, 0.0)
        assert_almost_equal(g2_con @ g2, 1.0)
        assert_almost_equal(np.linalg.norm(g2_con), 1.0 / 3.0)

    def test_cylinder_normal_is_radial(self):
        patch = make_quarter_cylinder_patch(radius=1.0, height=1.0)

        for u in [0.0, 0.4, 1.0]:
            point = patch.compute_cartesian_coordinates(u, 0.5)
            normal = patch.compute_surface_normal(u, 0.5)
            assert_array_almost_equal(normal, [point[0], point[1], 0.0])


class TestPointProjection:
    """Tests for closest point projection on a patch."""

    def test_projection_on_plane(self):
        patch = make_plane_patch((0.0, 2.0), (0.0, 1.0), p=2, n_elem_u=2, n_elem_v=2)
        point = np.array([0.5, 0.25, 0.3])

        u0, v0 = patch.find_initial_guess(point, 10, 10)
        projection = patch.compute_point_projection(point, u0, v0, 20, 1e-9)

        assert projection.converged
        assert_almost_equal(projection.u, 0.25)
        assert_almost_equal(projection.v, 0.25)
        assert_almost_equal(projection.distance, 0.3)
        assert_array_almost_equal(projection.point, [0.5, 0.25, 0.0])

    def test_projection_on_surface_point(self):
        patch = make_plane_patch(p=1)
        projection = patch.compute_point_projection(np.array([0.6, 0.2, 0.0]), 0.0, 0.0, 20, 1e-9)

        assert projection.converged
        assert_almost_equal(projection.distance, 0.0)

    def test_projection_on_cylinder(self):
        patch = make_quarter_cylinder_patch(radius=1.0, height=1.0)
        theta = 0.6
        point = np.array([2.0 * np.cos(theta), 2.0 * np.sin(theta), 0.4])

        u0, v0 = patch.find_initial_guess(point, 10, 10)
        projection = patch.compute_point_projection(point, u0, v0, 30, 1e-10)

        assert projection.converged
        assert_almost_equal(projection.distance, 1.0, decimal=8)
        assert_array_almost_equal(projection.point, [np.cos(theta), np.sin(theta), 0.4], decimal=8)

    def test_point_beyond_edge_does_not_converge(self):
        patch = make_plane_patch(p=1)
        projection = patch.compute_point_projection(np.array([1.5, 0.5, 0.0]), 0.9, 0.5, 20, 1e-9)

        assert not projection.converged
        assert_almost_equal(projection.u, 1.0)

    def test_initial_guess_is_closest_sample(self):
        patch = make_plane_patch((0.0, 1.0), (0.0, 1.0), p=1)
        u, v = patch.find_initial_guess(np.array([0.69, 0.31, 1.0]), 10, 10)

        assert_almost_equal(u, 0.7)
        assert_almost_equal(v, 0.3)


class TestBoundaryProjection:
    """Tests for the crossing of a segment with the patch boundary."""

    def test_newton_crossing(self):
        patch = make_plane_patch(p=1)
        crossing = patch.compute_point_projection_on_boundary_newton(
            np.array([0.5, 0.5, 0.0]), np.array([1.5, 0.5, 0.0]), 0.5, 0.5, 20, 1e-9)

        assert crossing.converged
        assert_almost_equal(crossing.u, 1.0)
        assert_almost_equal(crossing.v, 0.5)
        assert_almost_equal(crossing.div, 0.5)
        assert_almost_equal(crossing.distance, 0.0)

    def test_newton_crossing_through_corner_region(self):
        patch = make_plane_patch(p=2, n_elem_u=2, n_elem_v=2)
        crossing = patch.compute_point_projection_on_boundary_newton(
            np.array([0.75, 0.75, 0.0]), np.array([1.25, 1.0, 0.0]), 0.75, 0.75, 20, 1e-9)

        assert crossing.converged
        assert_almost_equal(crossing.u, 1.0)
        assert_almost_equal(crossing.v, 0.875)
        assert_almost_equal(crossing.div, 0.5)

    def test_newton_without_crossing(self):
        patch = make_plane_patch(p=1)
        crossing = patch.compute_point_projection_on_boundary_newton(
            np.array([0.2, 0.5, 0.0]), np.array([0.4, 0.5, 0.0]), 0.2, 0.5, 20, 1e-9)

        assert not crossing.converged

    def test_bisection_crossing(self):
        patch = make_plane_patch(p=1)
        crossing = patch.compute_point_projection_on_boundary_bisection(
            np.array([0.5, 0.5, 0.0]), np.array([1.5, 0.5, 0.0]), 0.5, 0.5,
            40, 1e-8, 20, 1e-9, 1e-2)

        assert crossing.converged
        assert_almost_equal(crossing.div, 0.5, decimal=6)
        assert_almost_equal(crossing.u, 1.0, decimal=6)
        assert_almost_equal(crossing.v, 0.5)
