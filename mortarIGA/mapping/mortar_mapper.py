"""
Mortar mapping between an IGA multi-patch surface and an FE surface mesh.

The mapper builds the coupling matrices

    CNN_ij = integral of N_i N_j      (master basis, symmetric)
    CNR_ij = integral of N_i R_j      (master x slave basis)

over the common surface and uses them to transfer fields:

    consistent:    CNN x_master = CNR x_slave        (displacements)
    conservative:  f_slave = CNR^T CNN^-1 f_master   (forces)

The master side is the FE mesh when is_mapping_iga2fem is True and the IGA
mesh otherwise.

Building the matrices:
    1. project all FE nodes onto the patches (ProjectionEngine)
    2. per FE element and patch, build the element polygon in the patch
       parameter space; elements partly on the patch get their missing
       vertices from the crossing of their edges with the patch boundary
    3. clip the polygon by the patch domain, the trimming loops and the
       knot spans, and triangulate the pieces that are not triangles or
       convex quadrilaterals
    4. integrate every piece with a Gauss rule and add the element
       contribution to the global matrices
    5. add weak continuity penalties between patches, apply Dirichlet
       conditions, factorize CNN and check that a unit field is reproduced

Example:
    mapper = IGAMortarMapper("iga2fe", mesh_iga, mesh_fe, is_mapping_iga2fem=True)
    mapper.build_coupling_matrices()
    u_fe = mapper.consistent_mapping(u_iga)
    f_iga = mapper.conservative_mapping(f_fe)
"""

import logging
import time
import numpy as np
from typing import Dict, List, Optional, Set, Tuple

from ..config import MapperConfig
from ..discretization.fe_mesh import FEMesh
from ..exceptions import (BoundaryProjectionError, ConfigurationError,
                          InconsistentMappingError, MortarMappingError, OrientationError)
from ..geometry.continuity import WeakContinuityCondition
from ..geometry.iga_mesh import IGAMesh
from ..geometry.patch import BoundaryProjection, IGAPatchSurface, contravariant_base_vectors
from ..quadrature.gauss import gauss_quad_rule, gauss_triangle_rule, points_per_direction
from .coupling_matrices import CouplingMatrices, ElementContribution
from .polygon import (CLEAN_TOLERANCE_TRIANGLE, build_trimming_region, clean_polygon,
                      clip_polygon_by_knot_spans, clip_polygon_by_rectangle,
                      clip_polygon_by_trimming, compute_local_coordinates, intersect_lines_2d,
                      low_order_shape_function_derivatives, low_order_shape_functions,
                      polygon_signed_area, polygons_area, triangulate_polygon)
from .projection import ProjectionEngine

logger = logging.getLogger(__name__)

# Smallest accepted position of a boundary crossing along an element edge
TOLERANCE_RATIO = 1e-6
# Smallest |cos| between tangents (and curve normals) of a weak continuity condition
TOLERANCE_ANGLE = 1e-1
# Number of components of vector fields once patch coupling is active
N_COMPONENTS = 3


class IGAMortarMapper:
    """
    Mortar mapper between an IGAMesh and an FEMesh.

    Attributes:
        name: Mapper name used in log messages
        mesh_iga: IGA multi-patch surface
        mesh_fe: FE mesh (triangulated when it had polygonal elements)
        is_mapping_iga2fem: True when the FE mesh is the master side
        config: Mapper parameters
        coupling_matrices: CNN/CNR store
        projection: Projection engine holding the projected node coordinates
        projected_polygons: Per FE element, {patch index: parametric polygon}
        empty_rows: Rows of CNN without any contribution (IGA master only)
    """

    def __init__(self, name: str, mesh_iga: IGAMesh, mesh_fe: FEMesh,
                 is_mapping_iga2fem: bool, config: Optional[MapperConfig] = None):
        if mesh_iga is None or mesh_fe is None:
            raise ConfigurationError("Both an IGA mesh and an FE mesh are required")
        if mesh_iga.n_patches == 0:
            raise ConfigurationError(f"IGA mesh {mesh_iga.name} has no patch")

        self.name = name
        self.mesh_iga = mesh_iga
        triangulated = mesh_fe.triangulate()
        self.mesh_fe = triangulated if triangulated is not None else mesh_fe
        self.is_mapping_iga2fem = is_mapping_iga2fem
        self.config = (config if config is not None else MapperConfig()).validate()

        if is_mapping_iga2fem:
            n_master, n_slave = self.mesh_fe.n_nodes, mesh_iga.num_nodes
        else:
            n_master, n_slave = mesh_iga.num_nodes, self.mesh_fe.n_nodes
        self.coupling_matrices = CouplingMatrices(n_master, n_slave)
        self.projection = ProjectionEngine(self.mesh_fe, mesh_iga, self.config)

        self.projected_polygons: List[Dict[int, np.ndarray]] = [
            dict() for _ in range(self.mesh_fe.n_elements)]
        self.integrated_elements: Set[int] = set()
        self.empty_rows = np.zeros(0, dtype=int)
        self.is_expanded = False
        self._trimming_regions = {}
        self._is_built = False

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def cnn(self):
        return self.coupling_matrices.cnn

    @property
    def cnr(self):
        return self.coupling_matrices.cnr

    @property
    def size_n(self) -> int:
        return self.coupling_matrices.size_n

    @property
    def size_r(self) -> int:
        return self.coupling_matrices.size_r

    @property
    def projected_coords(self) -> List[Dict[int, np.ndarray]]:
        return self.projection.projected_coords

    @property
    def is_iga_master(self) -> bool:
        return not self.is_mapping_iga2fem

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build_coupling_matrices(self) -> None:
        """
        Compute, correct and factorize the coupling matrices.

        Raises:
            ConfigurationError: Unknown node IDs or nodes far from every patch
            ProjectionError: FE nodes that could not be projected
            BoundaryProjectionError: Split element on an untrimmed patch without
                                     boundary crossing
            OrientationError: Ambiguous weak continuity condition
            InconsistentMappingError: Unit field not reproduced
        """
        n_master = self.coupling_matrices.size_n
        n_slave = self.coupling_matrices.size_r
        logger.info("Building coupling matrices for (%s)...", self.name)
        logger.info("Number of nodes in NURBS mesh is %d", self.mesh_iga.num_nodes)
        logger.info("Number of nodes in FE mesh is %d", self.mesh_fe.n_nodes)
        logger.info("Size of matrices will be %dx%d and %dx%d",
                    n_master, n_master, n_master, n_slave)

        self.init_tables()
        self.projection.project_points_to_surface()
        self.compute_coupling_matrices()

        patch_coupling = self.config.patch_coupling
        if patch_coupling.is_active and self.mesh_iga.weak_continuity_conditions:
            if self.is_iga_master:
                logger.info("Compute penalty patch coupling")
                self.compute_iga_patch_weak_continuity_condition_matrices()
            else:
                logger.warning("Patch coupling penalties need the IGA mesh as master side; "
                               "ignored for (%s)", self.name)
        else:
            logger.info("No penalty patch coupling")

        is_dirichlet = self.config.dirichlet_bcs.is_dirichlet_bcs
        if is_dirichlet:
            self.apply_dirichlet_bcs()
        else:
            logger.info("No Dirichlet boundary conditions")

        if self.is_iga_master:
            self.empty_rows = self.coupling_matrices.enforce_cnn()

        self.coupling_matrices.factorize()
        logger.info("Factorization was successful")
        self._is_built = True

        if not is_dirichlet and self.config.consistency_check.enabled:
            self.check_consistency()

    def init_tables(self) -> None:
        """Element tables of the FE mesh; unknown node IDs fail here."""
        self.mesh_fe.direct_element_table
        self.mesh_fe.node_to_element_table

    def get_patches_element_is_on(self, element_index: int) -> Tuple[List[int], List[int]]:
        """
        Patches carrying all nodes of an element, and patches carrying some.

        Returns:
            (full, split) lists of patch indices
        """
        full, split = [], []
        node_indices = self.mesh_fe.direct_element_table[element_index]
        for patch_index in range(self.mesh_iga.n_patches):
            on_patch = [patch_index in self.projected_coords[n] for n in node_indices]
            if all(on_patch):
                full.append(patch_index)
            elif any(on_patch):
                split.append(patch_index)
        return full, split

    def compute_coupling_matrices(self) -> None:
        """Integrate every FE element on every patch it is projected on."""
        logger.info("Computing coupling matrices...")
        start = time.perf_counter()
        for element_index in range(self.mesh_fe.n_elements):
            full, split = self.get_patches_element_is_on(element_index)
            logger.debug("Element [%d] fully projected on %d patches, partly on %d patches",
                         element_index, len(full), len(split))
            for patch_index in full:
                polygon = self.build_full_parametric_element(element_index, patch_index)
                self._integrate_element_on_patch(element_index, patch_index, polygon)
            for patch_index in split:
                polygon = self.build_boundary_parametric_element(element_index, patch_index)
                if polygon is not None:
                    self._integrate_element_on_patch(element_index, patch_index, polygon)
        logger.info("Computing coupling matrices done in %.3f s", time.perf_counter() - start)

        n_elements = self.mesh_fe.n_elements
        if len(self.integrated_elements) != n_elements:
            missing = sorted(set(range(n_elements)) - self.integrated_elements)
            logger.warning("Number of FE elements integrated is %d over %d",
                           len(self.integrated_elements), n_elements)
            for element_index in missing:
                logger.warning("Missing element number %d", element_index)

    def _integrate_element_on_patch(self, element_index: int, patch_index: int,
                                    polygon: np.ndarray) -> None:
        if self.compute_local_coupling_matrix(element_index, patch_index, polygon):
            self.integrated_elements.add(element_index)
            self.projected_polygons[element_index][patch_index] = polygon

    # ------------------------------------------------------------------
    # Element polygons
    # ------------------------------------------------------------------

    def build_full_parametric_element(self, element_index: int, patch_index: int) -> np.ndarray:
        node_indices = self.mesh_fe.direct_element_table[element_index]
        return np.array([self.projected_coords[n][patch_index] for n in node_indices])

    def project_line_on_patch_boundary(self, patch: IGAPatchSurface, u_in: float, v_in: float,
                                       p_in: np.ndarray, p_out: np.ndarray) -> BoundaryProjection:
        """
        Crossing of the segment p_in -> p_out with the patch boundary.

        Newton-Raphson first, bisection when Newton-Raphson fails or ends
        too far from the segment. The result is flagged not converged when
        the crossing lies farther than max_projection_distance.
        """
        max_distance = self.config.projection.max_projection_distance
        newton = self.config.newton_raphson_boundary
        crossing = patch.compute_point_projection_on_boundary_newton(
            p_in, p_out, u_in, v_in, newton.max_num_iterations, newton.tolerance)

        if not crossing.converged or crossing.distance > max_distance:
            logger.debug("Boundary projection by Newton-Raphson failed, trying bisection")
            bisection = self.config.bisection
            interior = self.config.newton_raphson
            crossing = patch.compute_point_projection_on_boundary_bisection(
                p_in, p_out, u_in, v_in, bisection.max_num_iterations, bisection.tolerance,
                interior.max_num_iterations, interior.tolerance, max_distance)

        if not crossing.converged:
            logger.warning("Point projection on patch boundary did not converge. Relax the "
                           "boundary Newton-Raphson and/or bisection parameters.")
        elif crossing.distance > max_distance:
            logger.warning("Point projection on patch boundary found too far: distance %g for "
                           "a maximum of %g. Relax max_projection_distance.",
                           crossing.distance, max_distance)
            crossing.converged = False
        return crossing

    def build_boundary_parametric_element(self, element_index: int,
                                          patch_index: int) -> Optional[np.ndarray]:
        """
        Parametric polygon of an element only partly projected on a patch.

        Nodes projected on the patch keep their parameters. An outside node
        is replaced by the extrapolation u_in + (u_b - u_in) / div of the
        boundary crossing u_b found at ratio div along the edge from an
        inside node. When both neighbours are inside, the two edge lines are
        intersected instead, which keeps the corner of the element. A
        crossing at the inside node itself (div below TOLERANCE_RATIO, the
        element only touches the patch there) adds no vertex.

        Returns:
            The polygon, or None when a crossing was not found on a trimmed
            patch (the element is skipped on that patch)

        Raises:
            BoundaryProjectionError: A crossing was not found on an untrimmed patch
        """
        patch = self.mesh_iga[patch_index]
        node_indices = self.mesh_fe.direct_element_table[element_index]
        nodes = self.mesh_fe.nodes
        coords = self.projected_coords
        n = len(node_indices)
        inside = [patch_index in coords[node] for node in node_indices]

        def is_valid(crossing):
            return crossing is not None and crossing.converged and crossing.div >= TOLERANCE_RATIO

        polygon = []
        for i in range(n):
            node = node_indices[i]
            if inside[i]:
                polygon.append(coords[node][patch_index])
                continue

            prev_i, next_i = (i - 1) % n, (i + 1) % n
            prev_node, next_node = node_indices[prev_i], node_indices[next_i]
            crossing, uv_in = None, None
            is_projected = True

            if inside[prev_i] and inside[next_i]:
                uv_prev = coords[prev_node][patch_index]
                uv_next = coords[next_node][patch_index]
                c0 = self.project_line_on_patch_boundary(patch, uv_prev[0], uv_prev[1],
                                                         nodes[prev_node], nodes[node])
                c2 = self.project_line_on_patch_boundary(patch, uv_next[0], uv_next[1],
                                                         nodes[next_node], nodes[node])
                is_projected = c0.converged or c2.converged
                if is_valid(c0) and is_valid(c2):
                    corner = intersect_lines_2d(uv_prev, np.array([c0.u, c0.v]),
                                                uv_next, np.array([c2.u, c2.v]))
                    if corner is not None:
                        polygon.append(corner)
                        continue
                if is_valid(c0):
                    crossing, uv_in = c0, uv_prev
                elif is_valid(c2):
                    crossing, uv_in = c2, uv_next
            elif inside[prev_i] or inside[next_i]:
                neighbour = prev_node if inside[prev_i] else next_node
                uv_in = coords[neighbour][patch_index]
                crossing = self.project_line_on_patch_boundary(patch, uv_in[0], uv_in[1],
                                                               nodes[neighbour], nodes[node])
                is_projected = crossing.converged

            if not is_valid(crossing):
                crossing = None
                # Any other inside node of the element
                for j in range(n):
                    if not inside[j] or j in (prev_i, next_i):
                        continue
                    uv_j = coords[node_indices[j]][patch_index]
                    candidate = self.project_line_on_patch_boundary(
                        patch, uv_j[0], uv_j[1], nodes[node_indices[j]], nodes[node])
                    is_projected = candidate.converged
                    if is_valid(candidate):
                        crossing, uv_in = candidate, uv_j
                        break

            if crossing is not None:
                uv_boundary = np.array([crossing.u, crossing.v])
                polygon.append(uv_in + (uv_boundary - uv_in) / crossing.div)
            elif not is_projected:
                if patch.is_trimmed:
                    logger.warning("Cannot find point projection on patch boundary. Element %d "
                                   "on patch %d not integrated and skipped.",
                                   element_index, patch_index)
                    return None
                msg = (f"Cannot find point projection on the boundary of patch [{patch_index}] "
                       f"for node [{node}] at {nodes[node].tolist()} of element "
                       f"[{element_index}] in mapper {self.name}")
                logger.error(msg)
                raise BoundaryProjectionError(msg)

        return np.array(polygon)

    def _trimming_region(self, patch_index: int):
        if patch_index not in self._trimming_regions:
            self._trimming_regions[patch_index] = build_trimming_region(
                self.mesh_iga[patch_index].trimming)
        return self._trimming_regions[patch_index]

    def compute_local_coupling_matrix(self, element_index: int, patch_index: int,
                                      projected_element: np.ndarray) -> bool:
        """
        Clip, triangulate and integrate one element polygon on one patch.

        Returns:
            Whether any part of the element was integrated
        """
        polygon = clean_polygon(projected_element)
        if len(polygon) < 3:
            return False
        patch = self.mesh_iga[patch_index]
        kv_u, kv_v = patch.knot_vectors
        u_range, v_range = patch.domain

        pieces = [clean_polygon(p) for p in clip_polygon_by_rectangle(polygon, u_range, v_range)]
        if patch.is_trimmed:
            region = self._trimming_region(patch_index)
            pieces = [t for p in pieces if len(p) >= 3
                      for t in clip_polygon_by_trimming(p, region)]
        pieces = [p for p in pieces if len(p) >= 3]
        logger.debug("Element [%d] covers a parametric area of %g on patch [%d]",
                     element_index, polygons_area(pieces), patch_index)

        is_integrated = False
        for piece in pieces:
            for span_u, span_v, sub_polygon in clip_polygon_by_knot_spans(piece, kv_u, kv_v):
                if len(sub_polygon) < 3:
                    continue
                is_integrated = True
                for quadrature_polygon in triangulate_polygon(sub_polygon):
                    quadrature_polygon = clean_polygon(quadrature_polygon, CLEAN_TOLERANCE_TRIANGLE)
                    if len(quadrature_polygon) < 3:
                        continue
                    polygon_wz = self.compute_canonical_element(
                        element_index, projected_element, quadrature_polygon)
                    if polygon_wz is None:
                        continue
                    contribution = self.integrate(patch, quadrature_polygon, span_u, span_v,
                                                  polygon_wz, element_index)
                    self.coupling_matrices.add_element_contribution(contribution)
        return is_integrated

    def compute_canonical_element(self, element_index: int, projected_element: np.ndarray,
                                  polygon_uv: np.ndarray) -> Optional[np.ndarray]:
        """
        Local coordinates in the FE element of the vertices of polygon_uv.

        projected_element is the unclipped element polygon, one vertex per
        element node, so the local coordinates refer to the FE element itself.
        """
        n_nodes = len(self.mesh_fe.direct_element_table[element_index])
        if len(projected_element) != n_nodes:
            logger.warning("Projected polygon of element %d has %d vertices for %d nodes; "
                           "piece skipped", element_index, len(projected_element), n_nodes)
            return None
        return np.array([compute_local_coordinates(projected_element, vertex)
                         for vertex in polygon_uv])

    # ------------------------------------------------------------------
    # Integration
    # ------------------------------------------------------------------

    def integrate(self, patch: IGAPatchSurface, polygon_uv: np.ndarray, span_u: int, span_v: int,
                  polygon_wz: np.ndarray, element_index: int) -> ElementContribution:
        """
        Local CNN/CNR of one triangle or quadrilateral of the patch parameter space.

        Parameters:
            patch: The patch
            polygon_uv: Triangle or quadrilateral in the patch parameter space
            span_u, span_v: Knot spans containing polygon_uv
            polygon_wz: Its vertices in local coordinates of the FE element
            element_index: The FE element
        """
        n_vertices = len(polygon_uv)
        integration = self.config.integration
        if n_vertices == 3:
            points, weights = gauss_triangle_rule(points_per_direction(integration.num_gp_triangle))
            jacobian_canonical = 2.0 * abs(polygon_signed_area(polygon_uv))
        else:
            points, weights = gauss_quad_rule(points_per_direction(integration.num_gp_quad))

        fe_nodes = self.mesh_fe.direct_element_table[element_index]
        n_fe = len(fe_nodes)
        iga_dofs = patch.local_dof_indices(span_u, span_v)

        if self.is_mapping_iga2fem:
            master_dofs, slave_dofs = fe_nodes, iga_dofs
        else:
            master_dofs, slave_dofs = iga_dofs, fe_nodes
        cnn = np.zeros((len(master_dofs), len(master_dofs)))
        cnr = np.zeros((len(master_dofs), len(slave_dofs)))

        for (xi, eta), w in zip(points, weights):
            N = low_order_shape_functions(n_vertices, xi, eta)
            u, v = N @ polygon_uv
            wz = N @ polygon_wz
            N_fe = low_order_shape_functions(n_fe, wz[0], wz[1])

            R, indices = patch.eval_rational_basis(u, v, 1, span_u, span_v)
            g1, g2 = patch.base_vectors_from_basis(R, indices)
            jacobian_surface = np.linalg.norm(np.cross(g1, g2))
            if n_vertices != 3:
                dN = low_order_shape_function_derivatives(4, xi, eta)
                jacobian_canonical = abs(np.linalg.det(dN @ polygon_uv))

            factor = jacobian_surface * jacobian_canonical * w
            if self.is_mapping_iga2fem:
                master, slave = N_fe, R[0, 0]
            else:
                master, slave = R[0, 0], N_fe
            cnn += factor * np.outer(master, master)
            cnr += factor * np.outer(master, slave)

        return ElementContribution(np.asarray(master_dofs), np.asarray(slave_dofs), cnn, cnr)

    # ------------------------------------------------------------------
    # Weak patch continuity
    # ------------------------------------------------------------------

    def compute_penalty_factors(self, condition: WeakContinuityCondition) -> Tuple[float, float]:
        """
        Penalty factors of a condition: alpha_disp = 1/h, alpha_rot = 1/sqrt(h).

        h is the shortest interface length inside one knot span pair of
        either patch.
        """
        h = condition.smallest_element_length(self.mesh_iga[condition.master_patch_index],
                                              self.mesh_iga[condition.slave_patch_index])
        return 1.0 / h, 1.0 / np.sqrt(h)

    def _expand(self) -> None:
        if not self.is_expanded:
            self.coupling_matrices.expand_to_vector_field(N_COMPONENTS)
            self.is_expanded = True

    def compute_iga_patch_weak_continuity_condition_matrices(self) -> None:
        """
        Add the penalty terms of the weak continuity conditions to CNN.

        The matrices are expanded to 3 components per DOF first. At each
        Gauss point of a condition, the displacement jump u_master - u_slave
        and the jump of the rotation about the interface curve are penalized.

        Raises:
            OrientationError: Tangents or curve normals of master and slave
                              are close to orthogonal
        """
        self._expand()
        parameters = self.config.patch_coupling

        for condition in self.mesh_iga.weak_continuity_conditions:
            master = self.mesh_iga[condition.master_patch_index]
            slave = self.mesh_iga[condition.slave_patch_index]
            if parameters.is_automatic_penalty_factors:
                alpha_disp, alpha_rot = self.compute_penalty_factors(condition)
                logger.info("Automatic patch coupling penalties: alpha_disp = %g, alpha_rot = %g",
                            alpha_disp, alpha_rot)
            else:
                alpha_disp, alpha_rot = parameters.disp_penalty, parameters.rot_penalty
                logger.info("Manual patch coupling penalties: alpha_disp = %g, alpha_rot = %g",
                            alpha_disp, alpha_rot)

            for g in range(condition.n_gauss_points):
                dofs_m, B_disp_m, B_rot_m, m_m = _interface_operators(
                    master, condition.master_gps[g], condition.master_tangents[g])
                dofs_s, B_disp_s, B_rot_s, m_s = _interface_operators(
                    slave, condition.slave_gps[g], condition.slave_tangents[g])

                self._check_orientation(condition, g, condition.master_tangents[g] @
                                        condition.slave_tangents[g], "tangent")
                factor_normal = self._check_orientation(condition, g, m_m @ m_s, "normal")

                dofs = np.concatenate([_expanded_dofs(dofs_m), _expanded_dofs(dofs_s)])
                length = condition.jacobian_products[g] * condition.gp_weights[g]

                if alpha_disp > 0:
                    B = np.hstack([B_disp_m, -B_disp_s])
                    self.coupling_matrices.add_cnn_block(dofs, alpha_disp * length * B.T @ B)
                if alpha_rot > 0:
                    B = np.concatenate([B_rot_m, factor_normal * B_rot_s])
                    self.coupling_matrices.add_cnn_block(dofs, alpha_rot * length * np.outer(B, B))

        logger.info("Application of weak patch continuity conditions finished")

    @staticmethod
    def _check_orientation(condition: WeakContinuityCondition, g: int, dot: float,
                           what: str) -> int:
        if abs(dot) <= TOLERANCE_ANGLE:
            msg = (f"Weak continuity condition between patches {condition.master_patch_index} "
                   f"and {condition.slave_patch_index}: {what} vectors at Gauss point {g} are "
                   f"close to orthogonal (dot product {dot:.3g})")
            logger.error(msg)
            raise OrientationError(msg)
        return -1 if dot > TOLERANCE_ANGLE else 1

    # ------------------------------------------------------------------
    # Dirichlet conditions and consistency
    # ------------------------------------------------------------------

    def apply_dirichlet_bcs(self) -> None:
        """
        Clamp the IGA DOFs listed by the IGA mesh.

        With the IGA mesh as master, clamped DOFs map to zero; as slave,
        their values are ignored. Clamping only some directions switches
        the mapping to 3-component fields.
        """
        dofs = self.mesh_iga.clamped_dofs
        directions = self.mesh_iga.clamped_directions
        if dofs.size == 0:
            logger.info("Dirichlet conditions active but no clamped DOF in %s", self.mesh_iga.name)
            return
        if tuple(directions) != (0, 1, 2):
            self._expand()
        if self.is_expanded:
            indices = np.array([N_COMPONENTS * d + j for d in dofs for j in directions], dtype=int)
        else:
            indices = dofs

        logger.info("Applying Dirichlet conditions on %d IGA DOFs", indices.size)
        if self.is_iga_master:
            self.coupling_matrices.apply_dirichlet(master_rows=indices)
        else:
            self.coupling_matrices.apply_dirichlet(slave_cols=indices)

    def check_consistency(self) -> float:
        """
        Check that a unit slave field maps to a unit master field.

        Rows mapping to a value different from 0 and 1 are replaced by the
        row sum of CNR on the diagonal of CNN, and the check is repeated.

        Returns:
            Root-mean-square deviation from 1 over the non-empty rows

        Raises:
            InconsistentMappingError: The deviation exceeds the tolerance
        """
        logger.info("Check consistency")
        tol = self.config.consistency_check.tolerance
        cm = self.coupling_matrices
        ones = np.ones(cm.size_r)
        output = self._consistent_solve(ones)

        inconsistent = np.flatnonzero((np.abs(output - 1.0) > tol) & (output != 0.0))
        if inconsistent.size:
            logger.warning("%d inconsistent rows in CNN replaced by the row sum of CNR",
                           inconsistent.size)
            for row in inconsistent:
                cm.delete_row_cnn(row)
                cm.set_cnn_value(row, row, cm.cnr_row_sum(row))
            cm.factorize()
            output = self._consistent_solve(ones)

        mask = np.ones(cm.size_n, dtype=bool)
        mask[self.empty_rows] = False
        deviation = float(np.sqrt(np.mean((output[mask] - 1.0) ** 2))) if mask.any() else 0.0
        logger.debug("Root-mean-square deviation of the mapped unit field: %g", deviation)
        if deviation > tol:
            msg = f"Coupling not consistent: unit field mapped with a deviation of {deviation:g}"
            logger.error(msg)
            raise InconsistentMappingError(msg, deviation)
        logger.info("Consistency check passed (deviation %g)", deviation)
        return deviation

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def _check_built(self) -> None:
        if not self._is_built:
            raise MortarMappingError(
                f"Coupling matrices of {self.name} not built. Call build_coupling_matrices() first."
            )

    def _as_field(self, field: np.ndarray, size: int, side: str) -> Tuple[np.ndarray, tuple]:
        """Flatten a field to the matrix layout; returns it with the original trailing shape."""
        array = np.asarray(field, dtype=np.float64)
        if self.is_expanded and array.ndim == 2 and array.shape[1] == N_COMPONENTS:
            if array.shape[0] * N_COMPONENTS != size:
                raise ConfigurationError(
                    f"{side} field has {array.shape[0]} nodes, expected {size // N_COMPONENTS}"
                )
            return array.reshape(-1), (N_COMPONENTS,)
        if array.ndim not in (1, 2) or array.shape[0] != size:
            raise ConfigurationError(
                f"{side} field of shape {array.shape} does not fit {size} DOFs"
            )
        if self.is_expanded and array.ndim != 1:
            raise ConfigurationError(
                f"{side} field must have shape ({size},) or ({size // N_COMPONENTS}, 3)"
            )
        return array, None

    def _consistent_solve(self, slave_values: np.ndarray) -> np.ndarray:
        cm = self.coupling_matrices
        return cm.solve_cnn(cm.multiply_cnr(slave_values))

    def consistent_mapping(self, slave_field: np.ndarray) -> np.ndarray:
        """
        Map a slave field to the master side: solve CNN x = CNR y.

        Parameters:
            slave_field: Shape (n_slave,) or (n_slave, k); with patch coupling,
                         (3 n_slave,) or (n_slave, 3)

        Returns:
            Master field with the matching shape
        """
        self._check_built()
        values, components = self._as_field(slave_field, self.size_r, "Slave")
        result = self._consistent_solve(values)
        if components is not None:
            return result.reshape(-1, *components)
        return result

    def conservative_mapping(self, master_field: np.ndarray) -> np.ndarray:
        """
        Map a master field of integral quantities to the slave side:
        f_slave = CNR^T CNN^-1 f_master.
        """
        self._check_built()
        values, components = self._as_field(master_field, self.size_n, "Master")
        cm = self.coupling_matrices
        result = cm.transpose_multiply_cnr(cm.solve_cnn(values))
        if components is not None:
            return result.reshape(-1, *components)
        return result


def _expanded_dofs(dofs: np.ndarray) -> np.ndarray:
    """DOF k of a scalar field becomes DOFs 3k, 3k+1, 3k+2."""
    return (N_COMPONENTS * np.asarray(dofs)[:, None] + np.arange(N_COMPONENTS)).ravel()


def _interface_operators(patch: IGAPatchSurface, uv: np.ndarray, tangent: np.ndarray):
    """
    Displacement and rotation operators of a patch at an interface Gauss point.

    With d the interleaved control point displacements of the local basis:
        u = B_disp d                         (B_disp of shape (3, 3n))
        w = B_rot . d = n . d u / d m        (B_rot of shape (3n,))
    where n is the unit surface normal, m = n x t the in-plane normal of the
    interface curve and
        d u / d m = (g^1 . m) d u / du + (g^2 . m) d u / dv

    Returns:
        (dofs, B_disp, B_rot, m)
    """
    R, indices = patch.eval_rational_basis(uv[0], uv[1], 1)
    g1, g2 = patch.base_vectors_from_basis(R, indices)
    normal = np.cross(g1, g2)
    normal /= np.linalg.norm(normal)
    curve_normal = np.cross(normal, tangent)

    g1_con, g2_con = contravariant_base_vectors(g1, g2)
    dR_dm = R[1, 0] * (g1_con @ curve_normal) + R[0, 1] * (g2_con @ curve_normal)
    B_disp = np.kron(R[0, 0][None, :], np.eye(N_COMPONENTS))
    B_rot = np.kron(dR_dm, normal)
    return patch.dof_indices[indices], B_disp, B_rot, curve_normal
