"""
Unit tests for weak continuity conditions between patches and their
penalty terms in the mortar mapper.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from mortarIGA.config import MapperConfig
from mortarIGA.discretization.knot_vector import KnotVector
from mortarIGA.exceptions import OrientationError
from mortarIGA.geometry.continuity import WeakContinuityCondition, build_from_curves
from mortarIGA.geometry.nurbs import NURBSCurve
from mortarIGA.geometry.primitives import make_nurbs_line
from mortarIGA.mapping.mortar_mapper import IGAMortarMapper


def interface_line(u: float) -> NURBSCurve:
    """Parametric line u = const with a knot at v = 0.5."""
    kv = KnotVector(np.array([0.0, 0.0, 0.5, 1.0, 1.0]), 1)
    return NURBSCurve(kv, np.array([[u, 0.0], [u, 0.5], [u, 1.0]]))


@pytest.fixture
def seam_condition(two_patch_mesh):
    """Condition along x = 0.5: u = 1 on the left patch, u = 0 on the right one."""
    left, right = two_patch_mesh[0], two_patch_mesh[1]
    return build_from_curves(0, left, interface_line(1.0), 1, right, interface_line(0.0))


def coupling_config(disp=0.0, rot=0.0, automatic=False):
    return MapperConfig.from_dict({"patch_coupling": {
        "disp_penalty": disp, "rot_penalty": rot, "is_automatic_penalty_factors": automatic}})


def penalty_matrix(mesh_iga, mesh_fe, condition, config):
    """CNN holding the penalty terms only."""
    mesh_iga.add_weak_continuity_condition(condition)
    mapper = IGAMortarMapper("coupling", mesh_iga, mesh_fe, False, config)
    mapper.compute_iga_patch_weak_continuity_condition_matrices()
    return mapper.cnn.toarray()


def nodal_field(mesh_iga, function, component):
    """Expanded DOF vector interpolating function(x) in one component."""
    d = np.zeros(3 * mesh_iga.num_nodes)
    for patch in mesh_iga:
        for dof, cp in zip(patch.dof_indices, patch.control_points):
            d[3 * dof + component] = function(cp[0])
    return d


class TestWeakContinuityCondition:
    """Tests for the Gauss point data along an interface."""

    def test_build_from_curves(self, two_patch_mesh, seam_condition):
        assert seam_condition.n_gauss_points == 6
        assert_allclose(seam_condition.interface_length, 1.0)
        assert_allclose(seam_condition.master_gps[:, 0], 1.0)
        assert_allclose(seam_condition.slave_gps[:, 0], 0.0)
        assert_allclose(seam_condition.master_gps[:, 1], seam_condition.slave_gps[:, 1])
        assert_allclose(seam_condition.master_tangents, [[0.0, 1.0, 0.0]] * 6, atol=1e-12)
        assert_allclose(seam_condition.slave_tangents, [[0.0, 1.0, 0.0]] * 6, atol=1e-12)

        for uv_m, uv_s in zip(seam_condition.master_gps, seam_condition.slave_gps):
            assert_allclose(two_patch_mesh[0].compute_cartesian_coordinates(*uv_m),
                            two_patch_mesh[1].compute_cartesian_coordinates(*uv_s), atol=1e-12)

    def test_reversed_slave_curve(self, two_patch_mesh):
        left, right = two_patch_mesh[0], two_patch_mesh[1]
        condition = build_from_curves(0, left, make_nurbs_line((1.0, 0.0), (1.0, 1.0)),
                                      1, right, make_nurbs_line((0.0, 1.0), (0.0, 0.0)),
                                      reverse_slave=True)

        assert_allclose(condition.master_gps[:, 1], condition.slave_gps[:, 1])
        assert_allclose(condition.slave_tangents, condition.master_tangents, atol=1e-12)

    def test_gauss_points_split_at_slave_knots(self, two_patch_mesh):
        left, right = two_patch_mesh[0], two_patch_mesh[1]
        condition = build_from_curves(0, left, make_nurbs_line((1.0, 0.0), (1.0, 1.0)),
                                      1, right, interface_line(0.0))

        v = condition.master_gps[:, 1]
        assert condition.n_gauss_points == 6
        assert v[:3].max() < 0.5 < v[3:].min()
        assert_allclose(condition.gp_weights.sum(), 1.0)
        assert_allclose(condition.slave_gps[:, 1], v)

    def test_reversed_slave_knots_mapped_to_master_parameter(self, two_patch_mesh):
        left, right = two_patch_mesh[0], two_patch_mesh[1]
        kv = KnotVector(np.array([0.0, 0.0, 0.25, 1.0, 1.0]), 1)
        slave_curve = NURBSCurve(kv, np.array([[0.0, 1.0], [0.0, 0.75], [0.0, 0.0]]))
        condition = build_from_curves(0, left, make_nurbs_line((1.0, 0.0), (1.0, 1.0)),
                                      1, right, slave_curve, reverse_slave=True)

        v = condition.master_gps[:, 1]
        assert condition.n_gauss_points == 6
        assert v[:3].max() < 0.75 < v[3:].min()
        assert_allclose(condition.slave_gps[:, 1], v)
        assert_allclose(condition.interface_length, 1.0)

    def test_smallest_element_length(self, two_patch_mesh, seam_condition):
        length = seam_condition.smallest_element_length(two_patch_mesh[0], two_patch_mesh[1])
        assert_allclose(length, 0.5)

    def test_same_patch_rejected(self):
        with pytest.raises(ValueError):
            WeakContinuityCondition(0, 0, [[1.0, 0.5]], [[0.0, 0.5]], [1.0],
                                    [[0.0, 1.0, 0.0]], [[0.0, 1.0, 0.0]], [1.0])

    def test_inconsistent_sizes_rejected(self):
        with pytest.raises(ValueError):
            WeakContinuityCondition(0, 1, [[1.0, 0.5]], [[0.0, 0.5], [0.0, 0.6]], [1.0],
                                    [[0.0, 1.0, 0.0]], [[0.0, 1.0, 0.0]], [1.0])

    def test_unknown_patch_rejected(self, single_patch_mesh):
        condition = WeakContinuityCondition(0, 1, [[1.0, 0.5]], [[0.0, 0.5]], [1.0],
                                            [[0.0, 1.0, 0.0]], [[0.0, 1.0, 0.0]], [1.0])
        with pytest.raises(ValueError):
            single_patch_mesh.add_weak_continuity_condition(condition)


class TestPenaltyTerms:
    """Tests for the penalty matrices added to CNN."""

    def test_rigid_translation_not_penalized(self, two_patch_mesh, quad_mesh_2x2, seam_condition):
        K = penalty_matrix(two_patch_mesh, quad_mesh_2x2, seam_condition,
                           coupling_config(disp=1e3, rot=1e2))
        d = np.tile([1.0, -2.0, 0.5], two_patch_mesh.num_nodes)

        assert K.shape == (72, 72)
        assert_allclose(K, K.T, atol=1e-9)
        assert_allclose(K @ d, 0.0, atol=1e-9)

    def test_smooth_field_not_penalized(self, two_patch_mesh, quad_mesh_2x2, seam_condition):
        K = penalty_matrix(two_patch_mesh, quad_mesh_2x2, seam_condition,
                           coupling_config(disp=1e3, rot=1e2))
        d = nodal_field(two_patch_mesh, lambda x: x, component=2)

        assert_allclose(K @ d, 0.0, atol=1e-9)

    def test_displacement_jump(self, two_patch_mesh, quad_mesh_2x2, seam_condition):
        K = penalty_matrix(two_patch_mesh, quad_mesh_2x2, seam_condition,
                           coupling_config(disp=1e3, rot=1e2))
        d = np.zeros(3 * two_patch_mesh.num_nodes)
        d[3 * two_patch_mesh[1].dof_indices] = 1.0

        assert_allclose(d @ K @ d, 1e3)

    def test_rotation_jump(self, two_patch_mesh, quad_mesh_2x2, seam_condition):
        K = penalty_matrix(two_patch_mesh, quad_mesh_2x2, seam_condition,
                           coupling_config(disp=1e3, rot=1e2))
        d = np.zeros(3 * two_patch_mesh.num_nodes)
        right = two_patch_mesh[1]
        d[3 * right.dof_indices + 2] = right.control_points[:, 0] - 0.5

        assert_allclose(d @ K @ d, 1e2)

    def test_automatic_penalty_factors(self, two_patch_mesh, quad_mesh_2x2, seam_condition):
        two_patch_mesh.add_weak_continuity_condition(seam_condition)
        mapper = IGAMortarMapper("coupling", two_patch_mesh, quad_mesh_2x2, False,
                                 coupling_config(automatic=True))

        alpha_disp, alpha_rot = mapper.compute_penalty_factors(seam_condition)
        assert_allclose(alpha_disp, 2.0)
        assert_allclose(alpha_rot, np.sqrt(2.0))

    def test_orthogonal_tangents(self, two_patch_mesh, quad_mesh_2x2):
        condition = WeakContinuityCondition(0, 1, [[1.0, 0.5]], [[0.0, 0.5]], [1.0],
                                            [[0.0, 1.0, 0.0]], [[1.0, 0.0, 0.0]], [1.0])
        with pytest.raises(OrientationError):
            penalty_matrix(two_patch_mesh, quad_mesh_2x2, condition, coupling_config(disp=1.0))


class TestCoupledMapping:
    """Tests for mappings with patch coupling active."""

    def test_constant_vector_field(self, two_patch_mesh, quad_mesh_2x2, seam_condition):
        two_patch_mesh.add_weak_continuity_condition(seam_condition)
        mapper = IGAMortarMapper("fe2iga", two_patch_mesh, quad_mesh_2x2, False,
                                 coupling_config(disp=1e3, rot=1e2))
        mapper.build_coupling_matrices()

        assert mapper.is_expanded
        assert mapper.size_n == 3 * two_patch_mesh.num_nodes
        assert mapper.size_r == 3 * quad_mesh_2x2.n_nodes

        field = np.tile([1.0, 2.0, 3.0], (quad_mesh_2x2.n_nodes, 1))
        mapped = mapper.consistent_mapping(field)
        assert mapped.shape == (two_patch_mesh.num_nodes, 3)
        assert_allclose(mapped, np.tile([1.0, 2.0, 3.0], (two_patch_mesh.num_nodes, 1)),
                        atol=1e-8)

    def test_coupling_ignored_with_fe_master(self, two_patch_mesh, quad_mesh_2x2,
                                             seam_condition):
        two_patch_mesh.add_weak_continuity_condition(seam_condition)
        mapper = IGAMortarMapper("iga2fe", two_patch_mesh, quad_mesh_2x2, True,
                                 coupling_config(disp=1e3))
        mapper.build_coupling_matrices()

        assert not mapper.is_expanded
        assert mapper.size_n == quad_mesh_2x2.n_nodes
