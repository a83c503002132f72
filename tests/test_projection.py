"""
Unit tests for the projection of FE nodes onto IGA patches.
"""

import logging
import pytest
import numpy as np
from numpy.testing import assert_allclose

from mortarIGA.config import MapperConfig
from mortarIGA.discretization.fe_mesh import FEMesh, make_structured_quad_mesh
from mortarIGA.exceptions import ConfigurationError
from mortarIGA.mapping.projection import (NO_PROJECTION_DISTANCE, BruteForceSamplingStrategy,
                                          NewtonRaphsonStrategy, ProjectionAttempt,
                                          ProjectionEngine, ProjectionStrategy)


class TestProjectionEngine:
    """Tests for the full projection pass."""

    def test_single_patch(self, single_patch_mesh, quad_mesh_2x2):
        engine = ProjectionEngine(quad_mesh_2x2, single_patch_mesh)
        coords = engine.project_points_to_surface()

        assert engine.n_projected_nodes == quad_mesh_2x2.n_nodes
        for node, projections in zip(quad_mesh_2x2.nodes, coords):
            assert list(projections) == [0]
            assert_allclose(projections[0], node[:2], atol=1e-10)
        assert_allclose(engine.min_projection_distance, 0.0, atol=1e-10)

    def test_corner_nodes_projected_on_first_pass(self, single_patch_mesh, quad_mesh_2x2, caplog):
        engine = ProjectionEngine(quad_mesh_2x2, single_patch_mesh)
        with caplog.at_level(logging.WARNING):
            coords = engine.project_points_to_surface()

        assert "not projected at first pass" not in caplog.text
        corners = {0: [0.0, 0.0], 2: [1.0, 0.0], 6: [0.0, 1.0], 8: [1.0, 1.0]}
        for node, uv in corners.items():
            assert_allclose(coords[node][0], uv, atol=1e-10)
            assert engine.min_projection_distance[node] == pytest.approx(0.0, abs=1e-12)

    def test_seam_nodes_keep_both_patches(self, two_patch_mesh, quad_mesh_2x2):
        engine = ProjectionEngine(quad_mesh_2x2, two_patch_mesh)
        coords = engine.project_points_to_surface()

        for index, node in enumerate(quad_mesh_2x2.nodes):
            if np.isclose(node[0], 0.5):
                assert set(coords[index]) == {0, 1}
                assert_allclose(coords[index][0], [1.0, node[1]], atol=1e-10)
                assert_allclose(coords[index][1], [0.0, node[1]], atol=1e-10)
            elif node[0] < 0.5:
                assert set(coords[index]) == {0}
            else:
                assert set(coords[index]) == {1}

    def test_projection_from_above(self, single_patch_mesh):
        mesh = make_structured_quad_mesh(n_x=2, n_y=2, z=5e-3)
        engine = ProjectionEngine(mesh, single_patch_mesh)
        engine.project_points_to_surface()

        assert_allclose(engine.min_projection_distance, 5e-3, atol=1e-10)

    def test_second_run_changes_nothing(self, two_patch_mesh, quad_mesh_2x2):
        engine = ProjectionEngine(quad_mesh_2x2, two_patch_mesh)
        first = [{k: v.copy() for k, v in p.items()}
                 for p in engine.project_points_to_surface()]
        second = engine.project_points_to_surface()

        for a, b in zip(first, second):
            assert set(a) == set(b)
            for k in a:
                assert_allclose(a[k], b[k])

    def test_node_far_from_every_patch(self, single_patch_mesh):
        mesh = FEMesh(np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.5, 0.5, 1.0]]),
                      [[0, 1, 2]])
        engine = ProjectionEngine(mesh, single_patch_mesh)

        with pytest.raises(ConfigurationError):
            engine.project_points_to_surface()

    def test_candidate_patches(self, two_patch_mesh, quad_mesh_2x2):
        engine = ProjectionEngine(quad_mesh_2x2, two_patch_mesh)
        candidates = engine.compute_candidate_patches()

        assert candidates[0] == {0}
        assert candidates[1] == {0, 1}
        assert candidates[2] == {1}


class TestAcceptProjection:
    """Tests for the bookkeeping of accepted projections."""

    @pytest.fixture
    def engine(self, two_patch_mesh, quad_mesh_2x2):
        return ProjectionEngine(quad_mesh_2x2, two_patch_mesh)

    def test_failed_attempt_rejected(self, engine):
        attempt = ProjectionAttempt(False, 0.0, 0.0, np.zeros(3), 0.0)

        assert not engine.accept_projection(0, 0, attempt)
        assert engine.projected_coords[0] == {}
        assert engine.min_projection_distance[0] == NO_PROJECTION_DISTANCE

    def test_too_far_rejected_unless_forced(self, engine):
        attempt = ProjectionAttempt(True, 0.0, 0.0, np.array([0.0, 0.0, 0.5]), 0.5)

        assert not engine.accept_projection(0, 0, attempt)
        assert engine.accept_projection(0, 0, attempt, forced=True)
        assert engine.min_projection_distance[0] == 0.5

    def test_close_projections_on_two_patches_kept(self, engine):
        a = ProjectionAttempt(True, 1.0, 0.0, np.array([0.5, 0.0, 1e-3]), 1e-3)
        b = ProjectionAttempt(True, 0.0, 0.0, np.array([0.5, 0.0, 5e-4]), 5e-4)

        assert engine.accept_projection(1, 0, a)
        assert engine.accept_projection(1, 1, b)
        assert set(engine.projected_coords[1]) == {0, 1}
        assert engine.min_projection_distance[1] == 5e-4

    def test_closer_projection_elsewhere_replaces(self, engine):
        a = ProjectionAttempt(True, 1.0, 0.0, np.array([0.5, 0.0, 5e-3]), 5e-3)
        b = ProjectionAttempt(True, 0.2, 0.0, np.array([0.6, 0.0, 0.0]), 1e-4)

        assert engine.accept_projection(1, 0, a)
        assert engine.accept_projection(1, 1, b)
        assert set(engine.projected_coords[1]) == {1}
        assert_allclose(engine.projected_coords[1][1], [0.2, 0.0])

    def test_farther_projection_elsewhere_rejected(self, engine):
        a = ProjectionAttempt(True, 0.2, 0.0, np.array([0.6, 0.0, 0.0]), 1e-4)
        b = ProjectionAttempt(True, 1.0, 0.0, np.array([0.5, 0.0, 5e-4]), 5e-4)

        assert engine.accept_projection(1, 1, a)
        assert not engine.accept_projection(1, 0, b)
        assert set(engine.projected_coords[1]) == {1}


class TestBruteForceProjection:
    """Tests for the forced projection of the second pass."""

    def test_forced_projection_of_offset_node(self, single_patch_mesh):
        mesh = FEMesh(np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.5, 0.5, 5e-3]]),
                      [[0, 1, 2]])
        engine = ProjectionEngine(mesh, single_patch_mesh)
        attempt = BruteForceSamplingStrategy().attempt(engine, 0, 2)

        assert attempt.success
        assert_allclose([attempt.u, attempt.v], [0.5, 0.5])
        assert_allclose(attempt.distance, 5e-3)

    def test_second_pass_projects_what_newton_misses(self, single_patch_mesh):
        mesh = make_structured_quad_mesh(n_x=2, n_y=2, z=5e-3)
        config = MapperConfig.from_dict({"newton_raphson": {"max_num_iterations": 1,
                                                            "tolerance": 1e-300}})
        engine = ProjectionEngine(mesh, single_patch_mesh, config)
        engine.project_points_to_surface()

        assert engine.n_projected_nodes == mesh.n_nodes
        assert_allclose(engine.min_projection_distance, 5e-3, atol=1e-10)

    @pytest.mark.parametrize("tie_break, expected", [("last", (1.0, 1.0)),
                                                     ("nearest", (0.3, 0.3))])
    def test_neighbour_seed_tie_break(self, single_patch_mesh, quad_mesh_2x2,
                                      tie_break, expected):
        engine = ProjectionEngine(quad_mesh_2x2, single_patch_mesh)
        engine.projected_coords[0][0] = np.array([0.3, 0.3])
        engine.projected_coords[8][0] = np.array([1.0, 1.0])

        seed = BruteForceSamplingStrategy._neighbour_seed(engine, 0, 4, tie_break)
        assert_allclose(seed, expected)

    def test_no_neighbour_seed(self, single_patch_mesh, quad_mesh_2x2):
        engine = ProjectionEngine(quad_mesh_2x2, single_patch_mesh)

        assert BruteForceSamplingStrategy._neighbour_seed(engine, 0, 4, "last") is None


class TestProjectionStrategies:
    """Tests for the fallback chain building blocks."""

    def test_base_strategy_is_abstract(self):
        with pytest.raises(TypeError):
            ProjectionStrategy()

    def test_default_fallback_chain(self, single_patch_mesh, quad_mesh_2x2):
        engine = ProjectionEngine(quad_mesh_2x2, single_patch_mesh)

        assert all(isinstance(s, ProjectionStrategy) for s in engine.fallback_strategies)
        assert isinstance(engine.fallback_strategies[0], NewtonRaphsonStrategy)
        assert engine.fallback_strategies[-1].is_forced
