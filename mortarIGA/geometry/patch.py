"""
IGA patch surface: a NURBS surface with everything the mortar mapper asks of it.

On top of the plain NURBSSurface evaluation this adds
- the global DOF index of every control point,
- the optional trimming description,
- an axis-aligned bounding box for candidate patch detection,
- differential geometry at a parametric point (base vectors, metric,
  contravariant base vectors, unit normal),
- closest point projection of a Cartesian point on the surface
  (Newton-Raphson on the squared distance, with a sampled initial guess),
- intersection of a Cartesian segment with the patch boundary
  (Newton-Raphson per boundary edge, or bisection along the segment).

Projection routines return small result records instead of mutating their
arguments; the caller decides whether a result is acceptable.
"""

import logging
import numpy as np
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..discretization.control_point import ControlPoint
from ..discretization.knot_vector import KnotVector
from .nurbs import NURBSSurface
from .trimming import PatchTrimming

logger = logging.getLogger(__name__)

# Relative distance (w.r.t. the bounding box diagonal) below which a point is
# considered to lie on the surface
EPS_DISTANCE = 1e-13


@dataclass
class BoundingBox:
    """Axis-aligned box [lower, upper] in Cartesian space."""
    lower: np.ndarray
    upper: np.ndarray

    @classmethod
    def from_points(cls, points: np.ndarray) -> "BoundingBox":
        return cls(points.min(axis=0), points.max(axis=0))

    @property
    def diagonal(self) -> float:
        return float(np.linalg.norm(self.upper - self.lower))

    def is_point_inside(self, point: np.ndarray, tol: float = 0.0) -> bool:
        """Whether point lies in the box inflated by tol on every side."""
        point = np.asarray(point)
        return bool(np.all(point >= self.lower - tol) and np.all(point <= self.upper + tol))


@dataclass
class PointProjection:
    """Result of a closest point projection on a patch."""
    u: float
    v: float
    point: np.ndarray
    distance: float
    converged: bool


@dataclass
class BoundaryProjection:
    """
    Crossing of a segment P_in -> P_out with the patch boundary.

    Attributes:
        u, v: Parameters of the crossing on the patch boundary
        div: Position of the crossing along the segment as a ratio in [0, 1]
        distance: Distance between the segment and the boundary point
        converged: Whether the iteration converged
    """
    u: float
    v: float
    div: float
    distance: float
    converged: bool


class IGAPatchSurface(NURBSSurface):
    """
    One patch of an IGA multi-patch surface.

    Attributes:
        dof_indices: Global DOF index of each control point (u fastest)
        trimming: Trimming loops of the patch (empty when untrimmed)
        name: Optional label used in log messages
    """

    def __init__(self,
                 knot_vector_u: KnotVector,
                 knot_vector_v: KnotVector,
                 control_points: np.ndarray,
                 weights: Optional[np.ndarray] = None,
                 dof_indices: Optional[Sequence[int]] = None,
                 trimming: Optional[PatchTrimming] = None,
                 name: Optional[str] = None):
        super().__init__(knot_vector_u, knot_vector_v, control_points, weights)

        if dof_indices is None:
            self._dof_indices = np.arange(self.n_control_points)
        else:
            self._dof_indices = np.asarray(dof_indices, dtype=int).ravel()
            if len(self._dof_indices) != self.n_control_points:
                raise ValueError(
                    f"Expected {self.n_control_points} DOF indices, got {len(self._dof_indices)}"
                )
        self.trimming = trimming if trimming is not None else PatchTrimming()
        self.name = name
        self._bounding_box = BoundingBox.from_points(self._control_points)

    @classmethod
    def from_control_points(cls, knot_vector_u: KnotVector, knot_vector_v: KnotVector,
                            control_points: List[ControlPoint],
                            trimming: Optional[PatchTrimming] = None,
                            name: Optional[str] = None) -> "IGAPatchSurface":
        """Build a patch from ControlPoint objects ordered u fastest."""
        coordinates = np.array([cp.coordinates for cp in control_points])
        weights = np.array([cp.weight for cp in control_points])
        dofs = [cp.dof_index for cp in control_points]
        if any(dof < 0 for dof in dofs):
            raise ValueError("Every control point needs a DOF index")
        return cls(knot_vector_u, knot_vector_v, coordinates, weights, dofs, trimming, name)

    @property
    def dof_indices(self) -> np.ndarray:
        return self._dof_indices.copy()

    @property
    def is_trimmed(self) -> bool:
        return self.trimming.is_trimmed

    @property
    def bounding_box(self) -> BoundingBox:
        """Bounding box of the control net, which contains the surface."""
        return self._bounding_box

    def is_point_in_bounding_box(self, point: np.ndarray, tol: float) -> bool:
        return self._bounding_box.is_point_inside(point, tol)

    def local_dof_indices(self, span_u: int, span_v: int) -> np.ndarray:
        """Global DOF indices of the basis functions living on a span pair."""
        return self._dof_indices[self.local_control_point_indices(span_u, span_v)]

    def clamp_parameters(self, u: float, v: float) -> Tuple[float, float]:
        return self._kv_u.clamp(u), self._kv_v.clamp(v)

    # ------------------------------------------------------------------
    # Differential geometry
    # ------------------------------------------------------------------

    def compute_cartesian_coordinates(self, u: float, v: float) -> np.ndarray:
        return self.eval_point(u, v)

    def base_vectors_from_basis(self, R: np.ndarray, indices: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Covariant base vectors g1 = dS/du, g2 = dS/dv from evaluated basis derivatives."""
        P = self._control_points[indices]
        return R[1, 0] @ P, R[0, 1] @ P

    def compute_base_vectors(self, u: float, v: float,
                             span_u: Optional[int] = None,
                             span_v: Optional[int] = None) -> Tuple[np.ndarray, np.ndarray]:
        R, indices = self.eval_rational_basis(u, v, 1, span_u, span_v)
        return self.base_vectors_from_basis(R, indices)

    def compute_metric_tensor(self, u: float, v: float) -> np.ndarray:
        """Covariant metric tensor g_ab = g_a . g_b, shape (2, 2)."""
        g1, g2 = self.compute_base_vectors(u, v)
        return covariant_metric(g1, g2)

    def compute_contravariant_base_vectors(self, u: float, v: float) -> Tuple[np.ndarray, np.ndarray]:
        g1, g2 = self.compute_base_vectors(u, v)
        return contravariant_base_vectors(g1, g2)

    def compute_surface_normal(self, u: float, v: float) -> np.ndarray:
        """Unit normal g1 x g2 / |g1 x g2|."""
        g1, g2 = self.compute_base_vectors(u, v)
        g3 = np.cross(g1, g2)
        return g3 / np.linalg.norm(g3)

    # ------------------------------------------------------------------
    # Point projection
    # ------------------------------------------------------------------

    def find_initial_guess(self, point: np.ndarray, n_u: int, n_v: int) -> Tuple[float, float]:
        """
        Parameters of the closest point among a uniform sampling of the patch.

        The domain is sampled at (n_u + 1) x (n_v + 1) parameter pairs,
        boundaries included.
        """
        (u0, u1), (v0, v1) = self.domain
        us = np.linspace(u0, u1, n_u + 1)
        vs = np.linspace(v0, v1, n_v + 1)
        samples = self.eval_points_grid(us, vs)
        distances = np.linalg.norm(samples - np.asarray(point), axis=2)
        b, a = np.unravel_index(np.argmin(distances), distances.shape)
        return float(us[a]), float(vs[b])

    def compute_point_projection(self, point: np.ndarray, u0: float, v0: float,
                                 max_iterations: int, tolerance: float) -> PointProjection:
        """
        Closest point projection by Newton-Raphson on f(u, v) = |S(u, v) - P|^2 / 2.

        The iteration is converged when S coincides with P or when S - P is
        orthogonal to both tangents (cosine below tolerance). Parameters are
        clamped to the patch domain after each step; a projection stuck on the
        domain boundary without orthogonality is reported as not converged.

        Parameters:
            point: Cartesian point P
            u0, v0: Initial guess
            max_iterations: Maximum number of Newton steps
            tolerance: Orthogonality tolerance

        Returns:
            PointProjection with the last iterate
        """
        point = np.asarray(point, dtype=np.float64)
        u, v = self.clamp_parameters(u0, v0)
        eps_distance = EPS_DISTANCE * max(self._bounding_box.diagonal, 1.0)
        span_u_len = self.domain[0][1] - self.domain[0][0]
        span_v_len = self.domain[1][1] - self.domain[1][0]
        converged = False

        for iteration in range(max_iterations + 1):
            S = self.eval_derivatives(u, v, 2)
            d = S[0, 0] - point
            distance = float(np.linalg.norm(d))
            Su, Sv = S[1, 0], S[0, 1]

            if distance <= eps_distance:
                converged = True
                break
            norm_u = np.linalg.norm(Su)
            norm_v = np.linalg.norm(Sv)
            cos_u = abs(d @ Su) / (distance * norm_u) if norm_u > 0 else 0.0
            cos_v = abs(d @ Sv) / (distance * norm_v) if norm_v > 0 else 0.0
            if max(cos_u, cos_v) < tolerance:
                converged = True
                break
            if iteration == max_iterations:
                break

            residual = np.array([d @ Su, d @ Sv])
            J = np.array([[Su @ Su + d @ S[2, 0], Su @ Sv + d @ S[1, 1]],
                          [Su @ Sv + d @ S[1, 1], Sv @ Sv + d @ S[0, 2]]])
            if abs(np.linalg.det(J)) < 1e-14 * (Su @ Su) * (Sv @ Sv):
                # Gauss-Newton step when the full Hessian is singular
                J = np.array([[Su @ Su, Su @ Sv], [Su @ Sv, Sv @ Sv]])
            try:
                du, dv = np.linalg.solve(J, -residual)
            except np.linalg.LinAlgError:
                break

            u_new, v_new = self.clamp_parameters(u + du, v + dv)
            if abs(u_new - u) <= 1e-15 * span_u_len and abs(v_new - v) <= 1e-15 * span_v_len:
                break
            u, v = u_new, v_new

        return PointProjection(u, v, S[0, 0].copy(), distance, converged)

    # ------------------------------------------------------------------
    # Boundary projection
    # ------------------------------------------------------------------

    def _boundary_edges(self):
        """The four domain edges as (fixed direction, fixed value, free range)."""
        (u0, u1), (v0, v1) = self.domain
        return [(1, v0, (u0, u1)), (0, u1, (v0, v1)),
                (1, v1, (u0, u1)), (0, u0, (v0, v1))]

    def _edge_derivatives(self, fixed_dir: int, fixed_value: float, s: float):
        """Point, first and second derivative of an edge curve at its parameter s."""
        if fixed_dir == 0:
            S = self.eval_derivatives(fixed_value, s, 2)
            return S[0, 0], S[0, 1], S[0, 2], (fixed_value, s)
        S = self.eval_derivatives(s, fixed_value, 2)
        return S[0, 0], S[1, 0], S[2, 0], (s, fixed_value)

    def compute_point_projection_on_boundary_newton(
            self, p_in: np.ndarray, p_out: np.ndarray, u_in: float, v_in: float,
            max_iterations: int, tolerance: float) -> BoundaryProjection:
        """
        Intersect the segment p_in -> p_out with the patch boundary.

        For every domain edge C(s), the closest approach between C(s) and the
        line L(t) = p_in + t (p_out - p_in) is found by Newton-Raphson on
        (s, t). Solutions with 0 <= t <= 1 are kept. Among the edges actually
        hit, the first crossing after p_in wins; a crossing at p_in itself
        (p_in on the boundary) is only returned when nothing else is hit.
        Without any hit, the closest approach is returned.

        Parameters:
            p_in: Point whose projection lies on the patch
            p_out: Point whose projection does not
            u_in, v_in: Parameters of the projection of p_in
            max_iterations: Newton iterations per edge
            tolerance: Relative step size at convergence

        Returns:
            BoundaryProjection; converged is False when no edge qualified
        """
        p_in = np.asarray(p_in, dtype=np.float64)
        D = np.asarray(p_out, dtype=np.float64) - p_in
        DD = D @ D
        eps_distance = EPS_DISTANCE * max(self._bounding_box.diagonal, 1.0)
        candidates = []

        for fixed_dir, fixed_value, (s_min, s_max) in self._boundary_edges():
            s = v_in if fixed_dir == 0 else u_in
            s = min(max(s, s_min), s_max)
            t = 0.5
            converged = False
            for _ in range(max_iterations):
                C, C1, C2, _ = self._edge_derivatives(fixed_dir, fixed_value, s)
                e = C - (p_in + t * D)
                f = np.array([e @ C1, -(e @ D)])
                J = np.array([[C1 @ C1 + e @ C2, -(C1 @ D)],
                              [-(C1 @ D), DD]])
                det = J[0, 0] * J[1, 1] - J[0, 1] * J[1, 0]
                if abs(det) <= 1e-12 * (C1 @ C1) * DD:
                    # Edge parallel to the segment
                    break
                ds, dt = np.linalg.solve(J, -f)
                s_new = min(max(s + ds, s_min), s_max)
                step_s = abs(s_new - s)
                s, t = s_new, t + dt
                if step_s <= tolerance * (s_max - s_min) and abs(dt) <= tolerance:
                    converged = True
                    break
            if not converged or t < -tolerance or t > 1.0 + tolerance:
                continue

            C, _, _, (u, v) = self._edge_derivatives(fixed_dir, fixed_value, s)
            gap = float(np.linalg.norm(C - (p_in + t * D)))
            candidates.append(BoundaryProjection(u, v, min(max(t, 0.0), 1.0), gap, True))

        if not candidates:
            return BoundaryProjection(u_in, v_in, 0.0, np.inf, False)
        hits = [c for c in candidates if c.distance <= eps_distance]
        crossings = [c for c in hits if c.div > tolerance]
        if crossings:
            return min(crossings, key=lambda c: c.div)
        if hits:
            return hits[0]
        return min(candidates, key=lambda c: (c.distance, c.div))

    def compute_point_projection_on_boundary_bisection(
            self, p_in: np.ndarray, p_out: np.ndarray, u_in: float, v_in: float,
            max_iterations: int, tolerance: float,
            newton_max_iterations: int, newton_tolerance: float,
            max_distance: float) -> BoundaryProjection:
        """
        Locate the boundary crossing of p_in -> p_out by bisection.

        A point of the segment is inside when its closest point projection
        converges within max_distance. The returned parameters are those of
        the last inside point, and div its position along the segment.
        """
        p_in = np.asarray(p_in, dtype=np.float64)
        D = np.asarray(p_out, dtype=np.float64) - p_in
        lo, hi = 0.0, 1.0
        u_lo, v_lo = u_in, v_in
        distance_lo = float(np.linalg.norm(self.eval_point(u_in, v_in) - p_in))
        converged = False

        for _ in range(max_iterations):
            mid = 0.5 * (lo + hi)
            projection = self.compute_point_projection(p_in + mid * D, u_lo, v_lo,
                                                       newton_max_iterations, newton_tolerance)
            if projection.converged and projection.distance <= max_distance:
                lo = mid
                u_lo, v_lo, distance_lo = projection.u, projection.v, projection.distance
            else:
                hi = mid
            if hi - lo <= tolerance:
                converged = True
                break

        return BoundaryProjection(u_lo, v_lo, lo, distance_lo, converged and lo > 0.0)


def covariant_metric(g1: np.ndarray, g2: np.ndarray) -> np.ndarray:
    return np.array([[g1 @ g1, g1 @ g2], [g2 @ g1, g2 @ g2]])


def contravariant_base_vectors(g1: np.ndarray, g2: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """g^a = g^ab g_b with g^ab the inverse of the covariant metric."""
    G_inv = np.linalg.inv(covariant_metric(g1, g2))
    return G_inv[0, 0] * g1 + G_inv[0, 1] * g2, G_inv[1, 0] * g1 + G_inv[1, 1] * g2
