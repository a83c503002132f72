"""
Projection of FE nodes onto the patches of an IGA mesh.

Every FE node must end up with the parameters (u, v) of its closest point on
at least one patch. A node close to a patch seam may keep projections on
several patches, as long as they agree within
max_distance_for_projected_points_on_different_patches.

The projection runs in three stages:

1. Bounding boxes: candidate patches of a node are those whose control net
   box, inflated by max_projection_distance, contains it.
2. First pass: per element and candidate patch, Newton-Raphson from an
   initial guess shared by the element (a sibling node's projection when
   one exists, else a coarse sampling of the patch).
3. Second pass, for the nodes left: an ordered list of fallback strategies
   (Newton-Raphson with a relaxed tolerance, then brute-force sampling of
   the patch) tried until one succeeds.

Nodes still unprojected abort the mapping with a ProjectionError.

Results are kept per node as {patch_index: array([u, v])}.
"""

import logging
import time
import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from ..config import MapperConfig
from ..discretization.fe_mesh import FEMesh
from ..exceptions import ConfigurationError, ProjectionError
from ..geometry.iga_mesh import IGAMesh

logger = logging.getLogger(__name__)

# Minimum distance of a node without any projection yet
NO_PROJECTION_DISTANCE = 1e9


@dataclass
class ProjectionAttempt:
    """
    Outcome of one projection strategy for one node and one patch.

    Attributes:
        success: Whether the strategy produced a usable point
        u, v: Parameters of the projected point
        point: Cartesian coordinates of the projected point
        distance: Distance between node and projected point
    """
    success: bool
    u: float
    v: float
    point: np.ndarray
    distance: float


class ProjectionStrategy(ABC):
    """
    One stage of the projection fallback chain.

    Attributes:
        name: Label used in log messages
        is_forced: Forced results skip the distance threshold and the
                   seam check; only the minimum distance bookkeeping applies
    """
    name = "strategy"
    is_forced = False

    @abstractmethod
    def attempt(self, engine: "ProjectionEngine", patch_index: int, node_index: int,
                initial_guess: Optional[Tuple[float, float]] = None) -> ProjectionAttempt:
        """Project one node on one patch."""
        pass


class NewtonRaphsonStrategy(ProjectionStrategy):
    """Closest point Newton-Raphson with the tolerance scaled by tolerance_factor."""
    name = "newton_raphson"

    def __init__(self, tolerance_factor: float = 1.0):
        self.tolerance_factor = tolerance_factor

    def attempt(self, engine, patch_index, node_index, initial_guess=None):
        if initial_guess is None:
            elements = engine.mesh_fe.node_to_element_table[node_index]
            element_index = elements[0] if elements else None
            initial_guess = engine.compute_initial_guess(patch_index, element_index, node_index)

        parameters = engine.config.newton_raphson
        patch = engine.mesh_iga[patch_index]
        projection = patch.compute_point_projection(
            engine.mesh_fe.nodes[node_index], initial_guess[0], initial_guess[1],
            parameters.max_num_iterations, parameters.tolerance * self.tolerance_factor)
        return ProjectionAttempt(projection.converged, projection.u, projection.v,
                                 projection.point, projection.distance)


class BruteForceSamplingStrategy(ProjectionStrategy):
    """
    Closest sample of a dense parameter grid, accepted whatever its distance.

    The projection of a neighbouring node on the same patch competes with the
    grid sample; with several projected neighbours the tie-break rule picks
    the last one found ("last") or the one closest to the node ("nearest").
    """
    name = "brute_force"
    is_forced = True

    def attempt(self, engine, patch_index, node_index, initial_guess=None):
        properties = engine.config.projection
        patch = engine.mesh_iga[patch_index]
        P = engine.mesh_fe.nodes[node_index]
        n = properties.num_samples_forced_projection

        candidates = [patch.find_initial_guess(P, n, n)]
        neighbour = self._neighbour_seed(engine, patch_index, node_index,
                                         properties.forced_projection_tie_break)
        if neighbour is not None:
            candidates.append(neighbour)

        best = None
        for u, v in candidates:
            point = patch.compute_cartesian_coordinates(u, v)
            distance = float(np.linalg.norm(point - P))
            if best is None or distance < best.distance:
                best = ProjectionAttempt(True, float(u), float(v), point, distance)
        return best

    @staticmethod
    def _neighbour_seed(engine, patch_index, node_index, tie_break):
        P = engine.mesh_fe.nodes[node_index]
        patch = engine.mesh_iga[patch_index]
        seeds = []
        for element_index in engine.mesh_fe.node_to_element_table[node_index]:
            for other in engine.mesh_fe.direct_element_table[element_index]:
                uv = engine.projected_coords[other].get(patch_index)
                if uv is not None:
                    seeds.append(uv)
        if not seeds:
            return None
        if tie_break == "last":
            return tuple(seeds[-1])
        distances = [np.linalg.norm(patch.compute_cartesian_coordinates(*uv) - P) for uv in seeds]
        return tuple(seeds[int(np.argmin(distances))])


class ProjectionEngine:
    """
    Projects all FE nodes onto the IGA mesh.

    Attributes:
        projected_coords: Per FE node, {patch index: array([u, v])}
        min_projection_distance: Per FE node, smallest accepted distance
        min_projection_point: Per FE node, projected point of that distance
        candidate_patches: Per FE node, patches whose bounding box contains it
        fallback_strategies: Strategies of the second pass, in order
    """

    def __init__(self, mesh_fe: FEMesh, mesh_iga: IGAMesh,
                 config: Optional[MapperConfig] = None):
        self.mesh_fe = mesh_fe
        self.mesh_iga = mesh_iga
        self.config = config if config is not None else MapperConfig()

        n_nodes = mesh_fe.n_nodes
        self.projected_coords: List[Dict[int, np.ndarray]] = [dict() for _ in range(n_nodes)]
        self.min_projection_distance = np.full(n_nodes, NO_PROJECTION_DISTANCE)
        self.min_projection_point: List[Optional[np.ndarray]] = [None] * n_nodes
        self.candidate_patches: Optional[List[Set[int]]] = None

        self.first_pass_strategy = NewtonRaphsonStrategy()
        self.fallback_strategies: List[ProjectionStrategy] = [
            NewtonRaphsonStrategy(tolerance_factor=10.0),
            BruteForceSamplingStrategy(),
        ]

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def compute_candidate_patches(self) -> List[Set[int]]:
        """
        Bounding box pass.

        Raises:
            ConfigurationError: A node lies in no inflated bounding box
        """
        tol = self.config.projection.max_projection_distance
        candidates = []
        for i, P in enumerate(self.mesh_fe.nodes):
            patches = {k for k, patch in enumerate(self.mesh_iga)
                       if patch.is_point_in_bounding_box(P, tol)}
            if not patches:
                msg = (f"Node [{i}] at {P.tolist()} is not in any bounding box of the "
                       f"NURBS patches. Increase max_projection_distance.")
                logger.error(msg)
                raise ConfigurationError(msg)
            candidates.append(patches)
        self.candidate_patches = candidates
        return candidates

    def compute_initial_guess(self, patch_index: int, element_index: Optional[int],
                              node_index: int) -> Tuple[float, float]:
        """
        Initial guess for the projection of a node of an element.

        The first node of the element already projected on the patch gives
        its parameters; otherwise the patch is sampled coarsely.
        """
        if element_index is not None:
            for other in self.mesh_fe.direct_element_table[element_index]:
                uv = self.projected_coords[other].get(patch_index)
                if uv is not None:
                    return float(uv[0]), float(uv[1])
        n = self.config.projection.num_refinement_for_initial_guess
        return self.mesh_iga[patch_index].find_initial_guess(self.mesh_fe.nodes[node_index], n, n)

    def accept_projection(self, node_index: int, patch_index: int,
                          attempt: ProjectionAttempt, forced: bool = False) -> bool:
        """
        Store a projection if it is acceptable.

        A regular attempt must have succeeded within max_projection_distance.
        It is rejected when it is farther than the best projection so far by
        more than the seam tolerance, or when it is both farther than the best
        one and lands on a different point. Existing entries of the node are
        dropped when the new projection is clearly closer or lands on a
        different point. Forced attempts only go through the distance
        comparison with the best projection.

        Returns:
            Whether the projection was stored
        """
        properties = self.config.projection
        seam = properties.max_distance_for_projected_points_on_different_patches
        distance = attempt.distance
        min_distance = self.min_projection_distance[node_index]
        min_point = self.min_projection_point[node_index]

        if not forced and not (attempt.success and distance < properties.max_projection_distance):
            return False
        if distance > min_distance + seam:
            return False

        elsewhere = (min_point is not None
                     and np.linalg.norm(attempt.point - min_point) > seam)
        if not forced and elsewhere and distance > min_distance:
            return False

        if distance < min_distance - seam or (not forced and elsewhere):
            self.projected_coords[node_index].clear()

        self.projected_coords[node_index][patch_index] = np.array([attempt.u, attempt.v])
        self.min_projection_distance[node_index] = distance
        self.min_projection_point[node_index] = np.array(attempt.point, dtype=np.float64)
        return True

    def project_points_to_surface(self) -> List[Dict[int, np.ndarray]]:
        """
        Project every FE node on its candidate patches.

        Nodes that already carry a projection on a patch are not projected
        on it again, so running the projection twice changes nothing.

        Returns:
            projected_coords

        Raises:
            ConfigurationError: A node lies in no inflated bounding box
            ProjectionError: Nodes remain unprojected after all fallbacks
        """
        mesh_fe = self.mesh_fe
        n_nodes = mesh_fe.n_nodes

        logger.info("Bounding box preprocessing...")
        start = time.perf_counter()
        candidates = self.compute_candidate_patches()
        logger.info("Bounding box preprocessing done in %.3f s", time.perf_counter() - start)

        is_projected = np.array([bool(coords) for coords in self.projected_coords])

        logger.info("First pass projection...")
        start = time.perf_counter()
        for element_index, node_indices in enumerate(mesh_fe.direct_element_table):
            for patch_index in range(self.mesh_iga.n_patches):
                initial_guess = None
                for node_index in node_indices:
                    if patch_index in self.projected_coords[node_index]:
                        continue
                    if patch_index not in candidates[node_index]:
                        continue
                    if initial_guess is None:
                        initial_guess = self.compute_initial_guess(patch_index, element_index,
                                                                   node_index)
                    attempt = self.first_pass_strategy.attempt(self, patch_index, node_index,
                                                               initial_guess)
                    if self.accept_projection(node_index, patch_index, attempt):
                        is_projected[node_index] = True
        logger.info("First pass projection done in %.3f s", time.perf_counter() - start)

        missing = np.flatnonzero(~is_projected)
        for node_index in missing:
            logger.warning("Node not projected at first pass [%d] of coordinates %s",
                           node_index, mesh_fe.nodes[node_index].tolist())
        logger.info("%d nodes over %d could be projected during first pass",
                    n_nodes - missing.size, n_nodes)
        if missing.size == 0:
            return self.projected_coords

        logger.info("Second pass projection...")
        start = time.perf_counter()
        for node_index in missing:
            for strategy in self.fallback_strategies:
                for patch_index in sorted(candidates[node_index]):
                    attempt = strategy.attempt(self, patch_index, node_index)
                    if self.accept_projection(node_index, patch_index, attempt, strategy.is_forced):
                        is_projected[node_index] = True
                if is_projected[node_index]:
                    logger.debug("Node [%d] projected by %s", node_index, strategy.name)
                    break
        logger.info("Second pass projection done in %.3f s", time.perf_counter() - start)

        missing = np.flatnonzero(~is_projected)
        if missing.size:
            for node_index in missing:
                logger.error("Node not projected at second pass [%d] of coordinates %s",
                             node_index, mesh_fe.nodes[node_index].tolist())
            msg = (f"{missing.size} nodes over {n_nodes} could NOT be projected during second pass.\n"
                   f"Treatment possibility 1: relax the projection or Newton-Raphson parameters.\n"
                   f"Treatment possibility 2: remesh with more digits on the FE node coordinates.")
            raise ProjectionError(msg, missing, mesh_fe.nodes[missing])
        return self.projected_coords

    @property
    def n_projected_nodes(self) -> int:
        return sum(1 for coords in self.projected_coords if coords)
