"""
Parametric polygon operations of the mortar integration.

A projected FE element becomes a polygon in the (u, v) parameter space of a
patch. Before it can be integrated it is cut by the patch domain, by the
trimming loops and by the knot span lines, and finally split into triangles
when it is not a triangle or a convex quadrilateral.

Polygons are (n, 2) float arrays with an implicit closing edge. Lists of
polygons are plain Python lists. Boolean operations and the constrained
triangulation are delegated to shapely; vertex clean-up, orientation and
local coordinates are done directly on the arrays.

Clipping never touches a polygon that already lies inside the clip window:
it is returned as is, with its vertex order.
"""

import logging
import numpy as np
from typing import List, Optional, Sequence, Tuple

import shapely
from shapely.geometry import GeometryCollection, MultiPolygon, Polygon, box
from shapely.ops import unary_union

from ..discretization.knot_vector import KnotVector
from ..geometry.trimming import PatchTrimming

logger = logging.getLogger(__name__)

# Tolerance used to decide on which knot spans a polygon lies
CLIP_TOLERANCE_KNOT_SPAN = 1e-9
# Clean-up tolerance for triangles produced by the triangulation
CLEAN_TOLERANCE_TRIANGLE = 1e-8
# Default clean-up tolerance for projected polygons
CLEAN_TOLERANCE = 1e-12

Polygon2D = np.ndarray
ListPolygon2D = List[np.ndarray]


def polygon_signed_area(polygon: Polygon2D) -> float:
    """Shoelace area, positive for counterclockwise vertex order."""
    if len(polygon) < 3:
        return 0.0
    x = polygon[:, 0]
    y = polygon[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


def clean_polygon(polygon: Polygon2D, tol: float = CLEAN_TOLERANCE) -> Polygon2D:
    """
    Remove duplicated and collinear vertices.

    A vertex is dropped when it lies within tol of its predecessor or within
    tol of the line through its two neighbours. Polygons left with fewer than
    three vertices come back empty, with shape (0, 2).
    """
    points = [np.asarray(p, dtype=np.float64) for p in polygon]

    changed = True
    while changed and len(points) >= 3:
        changed = False
        n = len(points)
        for k in range(n):
            prev_pt = points[k - 1]
            point = points[k]
            next_pt = points[(k + 1) % n]
            if np.linalg.norm(point - prev_pt) <= tol:
                del points[k]
                changed = True
                break
            chord = next_pt - prev_pt
            chord_length = np.linalg.norm(chord)
            offset = point - prev_pt
            cross = abs(chord[0] * offset[1] - chord[1] * offset[0])
            if chord_length <= tol or cross <= tol * chord_length:
                del points[k]
                changed = True
                break

    if len(points) < 3:
        return np.zeros((0, 2))
    return np.array(points)


def is_convex(polygon: Polygon2D) -> bool:
    """Whether all turns of the polygon have the same orientation."""
    edges = np.roll(polygon, -1, axis=0) - polygon
    cross = edges[:, 0] * np.roll(edges[:, 1], -1) - edges[:, 1] * np.roll(edges[:, 0], -1)
    return bool(np.all(cross >= 0) or np.all(cross <= 0))


def _oriented(polygon: Polygon2D, sign: float) -> Polygon2D:
    if sign * polygon_signed_area(polygon) < 0:
        return polygon[::-1].copy()
    return polygon


def _exterior(geometry: Polygon) -> Polygon2D:
    return np.asarray(geometry.exterior.coords)[:-1, :2]


def _collect_polygons(geometry, sign: float) -> ListPolygon2D:
    """Flatten a shapely result into arrays oriented like the subject."""
    if geometry.is_empty:
        return []
    if isinstance(geometry, Polygon):
        parts = [geometry]
    elif isinstance(geometry, (MultiPolygon, GeometryCollection)):
        parts = [g for g in geometry.geoms if isinstance(g, Polygon)]
    else:
        return []

    result = []
    for part in parts:
        if part.is_empty or part.area <= 0.0:
            continue
        if len(part.interiors) == 0:
            result.append(_oriented(_exterior(part), sign))
        else:
            # Pieces with holes cannot be described by a single vertex loop
            for triangle in shapely.constrained_delaunay_triangles(part).geoms:
                result.append(_oriented(_exterior(triangle), sign))
    return result


def _as_shapely(polygon: Polygon2D) -> Polygon:
    geometry = Polygon(polygon)
    if not geometry.is_valid:
        geometry = shapely.make_valid(geometry)
    return geometry


def clip_polygon(polygon: Polygon2D, window) -> ListPolygon2D:
    """
    Intersect a polygon with a shapely clip geometry.

    Returns:
        The polygon itself when window covers it, else the pieces of the
        intersection oriented like the input; empty when nothing remains
    """
    if len(polygon) < 3:
        return []
    subject = _as_shapely(polygon)
    if window.covers(subject):
        return [np.array(polygon, dtype=np.float64)]
    sign = 1.0 if polygon_signed_area(polygon) >= 0 else -1.0
    return _collect_polygons(subject.intersection(window), sign)


def clip_polygon_by_rectangle(polygon: Polygon2D, u_range: Tuple[float, float],
                              v_range: Tuple[float, float]) -> ListPolygon2D:
    """Clip by the rectangle u_range x v_range, e.g. the patch domain."""
    return clip_polygon(polygon, box(u_range[0], v_range[0], u_range[1], v_range[1]))


def build_trimming_region(trimming: PatchTrimming):
    """
    Region enclosed by the trimming loops with the positive fill rule.

    Counterclockwise loops add material and clockwise loops remove it.
    """
    outer, holes = [], []
    for loop in trimming.loops:
        ring = Polygon(loop.polyline)
        if not ring.is_valid:
            ring = shapely.make_valid(ring)
        (outer if loop.is_outer else holes).append(ring)
    region = unary_union(outer) if outer else Polygon()
    if holes:
        region = region.difference(unary_union(holes))
    return region


def clip_polygon_by_trimming(polygon: Polygon2D, trimming_region) -> ListPolygon2D:
    """Clip by a region returned by build_trimming_region."""
    return clip_polygon(polygon, trimming_region)


def clip_polygon_by_knot_spans(polygon: Polygon2D, kv_u: KnotVector, kv_v: KnotVector,
                               tol: float = CLIP_TOLERANCE_KNOT_SPAN
                               ) -> List[Tuple[int, int, Polygon2D]]:
    """
    Split a parametric polygon along the knot lines of a patch.

    Returns:
        List of (span_u, span_v, polygon); a polygon inside one knot span
        pair is returned unchanged
    """
    if len(polygon) < 3:
        return []
    u_min, v_min = polygon.min(axis=0)
    u_max, v_max = polygon.max(axis=0)
    span_u_min, span_u_max = kv_u.find_span_range(u_min, u_max, tol)
    span_v_min, span_v_max = kv_v.find_span_range(v_min, v_max, tol)

    if span_u_min == span_u_max and span_v_min == span_v_max:
        return [(span_u_min, span_v_min, polygon)]

    pieces = []
    for span_u in range(span_u_min, span_u_max + 1):
        u0, u1 = kv_u.span_bounds(span_u)
        if u1 <= u0:
            continue
        for span_v in range(span_v_min, span_v_max + 1):
            v0, v1 = kv_v.span_bounds(span_v)
            if v1 <= v0:
                continue
            for piece in clip_polygon(polygon, box(u0, v0, u1, v1)):
                pieces.append((span_u, span_v, piece))
    return pieces


def triangulate_polygon(polygon: Polygon2D,
                        clean_tol: float = CLEAN_TOLERANCE_TRIANGLE) -> ListPolygon2D:
    """
    Split a polygon into integrable pieces.

    Triangles and convex quadrilaterals are returned as they are. Anything
    else is split by a constrained Delaunay triangulation; triangles that
    degenerate under clean-up are dropped.

    Returns:
        List of triangles/quads; empty when the triangulation failed
    """
    n = len(polygon)
    if n == 3 or (n == 4 and is_convex(polygon)):
        return [polygon]
    if n < 3:
        return []

    sign = 1.0 if polygon_signed_area(polygon) >= 0 else -1.0
    triangles = []
    for triangle in shapely.constrained_delaunay_triangles(_as_shapely(polygon)).geoms:
        if not isinstance(triangle, Polygon) or triangle.is_empty:
            continue
        cleaned = clean_polygon(_oriented(_exterior(triangle), sign), clean_tol)
        if len(cleaned) == 3:
            triangles.append(cleaned)
    return triangles


# ----------------------------------------------------------------------
# Low order shape functions and local coordinates
# ----------------------------------------------------------------------

def low_order_shape_functions(n_nodes: int, xi: float, eta: float) -> np.ndarray:
    """
    Linear triangle or bilinear quadrilateral shape functions.

    Triangle: reference (0,0), (1,0), (0,1).
    Quadrilateral: reference [-1,1]^2, corners (-1,-1), (1,-1), (1,1), (-1,1).
    """
    if n_nodes == 3:
        return np.array([1.0 - xi - eta, xi, eta])
    if n_nodes == 4:
        return 0.25 * np.array([(1 - xi) * (1 - eta), (1 + xi) * (1 - eta),
                                (1 + xi) * (1 + eta), (1 - xi) * (1 + eta)])
    raise ValueError(f"Only triangles and quadrilaterals are supported, got {n_nodes} nodes")


def low_order_shape_function_derivatives(n_nodes: int, xi: float, eta: float) -> np.ndarray:
    """Derivatives dN/dxi (row 0) and dN/deta (row 1)."""
    if n_nodes == 3:
        return np.array([[-1.0, 1.0, 0.0], [-1.0, 0.0, 1.0]])
    if n_nodes == 4:
        return 0.25 * np.array([[-(1 - eta), (1 - eta), (1 + eta), -(1 + eta)],
                                [-(1 - xi), -(1 + xi), (1 + xi), (1 - xi)]])
    raise ValueError(f"Only triangles and quadrilaterals are supported, got {n_nodes} nodes")


def compute_local_coordinates_in_triangle(triangle: Polygon2D, point: np.ndarray) -> np.ndarray:
    """Inverse of the linear map of the reference triangle onto triangle."""
    A = np.column_stack([triangle[1] - triangle[0], triangle[2] - triangle[0]])
    return np.linalg.solve(A, np.asarray(point) - triangle[0])


def compute_local_coordinates_in_quad(quad: Polygon2D, point: np.ndarray,
                                      max_iterations: int = 20,
                                      tol: float = 1e-13) -> np.ndarray:
    """
    Inverse of the bilinear map of [-1,1]^2 onto quad, by Newton-Raphson.

    Points outside the quadrilateral yield local coordinates outside
    [-1,1]^2, which the caller uses for extrapolation.
    """
    point = np.asarray(point, dtype=np.float64)
    local = np.zeros(2)
    scale = max(np.ptp(quad, axis=0).max(), 1e-300)
    for _ in range(max_iterations):
        N = low_order_shape_functions(4, local[0], local[1])
        residual = N @ quad - point
        if np.linalg.norm(residual) <= tol * scale:
            break
        dN = low_order_shape_function_derivatives(4, local[0], local[1])
        J = (dN @ quad).T
        local -= np.linalg.solve(J, residual)
    return local


def compute_local_coordinates(element: Polygon2D, point: np.ndarray) -> np.ndarray:
    if len(element) == 3:
        return compute_local_coordinates_in_triangle(element, point)
    return compute_local_coordinates_in_quad(element, point)


def intersect_lines_2d(p1: np.ndarray, p2: np.ndarray,
                       q1: np.ndarray, q2: np.ndarray) -> Optional[np.ndarray]:
    """
    Intersection of the infinite lines p1p2 and q1q2.

    Returns:
        The intersection point, or None for parallel lines
    """
    d1 = np.asarray(p2) - np.asarray(p1)
    d2 = np.asarray(q2) - np.asarray(q1)
    denom = d1[0] * d2[1] - d1[1] * d2[0]
    if abs(denom) <= 1e-14 * np.linalg.norm(d1) * np.linalg.norm(d2):
        return None
    r = np.asarray(q1) - np.asarray(p1)
    t = (r[0] * d2[1] - r[1] * d2[0]) / denom
    return np.asarray(p1) + t * d1


def polygons_area(polygons: Sequence[Polygon2D]) -> float:
    return float(sum(abs(polygon_signed_area(p)) for p in polygons))
