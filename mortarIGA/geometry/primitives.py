"""
Primitive patch factory functions.

Factory functions for the IGA patches and parametric curves commonly used
when setting up mortar mappings:
- flat rectangular patches in 3D with a given global DOF offset
- quarter-cylinder patches (exact NURBS arcs)
- straight and circular parametric curves for trimming loops and for
  weak continuity interfaces
"""

import numpy as np
from typing import Optional, Tuple

from ..discretization.knot_vector import KnotVector, make_open_knot_vector
from .nurbs import NURBSCurve
from .patch import IGAPatchSurface
from .trimming import PatchTrimming, TrimmingLoop


def make_plane_patch(x_range: Tuple[float, float] = (0.0, 1.0),
                     y_range: Tuple[float, float] = (0.0, 1.0),
                     z: float = 0.0,
                     p: int = 1,
                     n_elem_u: int = 1,
                     n_elem_v: int = 1,
                     dof_offset: int = 0,
                     domain: Tuple[float, float] = (0.0, 1.0),
                     trimming: Optional[PatchTrimming] = None,
                     name: Optional[str] = None) -> IGAPatchSurface:
    """
    Create a flat rectangular patch in the plane z = const.

    Control points sit at the Greville abscissae, so the parametrization is
    affine: x = x_min + (x_max - x_min) (u - u0) / (u1 - u0), likewise for y.

    Parameters:
        x_range: (x_min, x_max)
        y_range: (y_min, y_max)
        z: Height of the plane
        p: Polynomial degree in both directions
        n_elem_u: Number of knot spans in u
        n_elem_v: Number of knot spans in v
        dof_offset: Global DOF index of the first control point
        domain: Parametric domain of both knot vectors
        trimming: Optional trimming loops
        name: Optional label

    Returns:
        IGAPatchSurface with DOFs dof_offset ... dof_offset + n_cp - 1
    """
    n_basis_u = n_elem_u + p
    n_basis_v = n_elem_v + p
    kv_u = make_open_knot_vector(n_basis_u, p, domain=domain)
    kv_v = make_open_knot_vector(n_basis_v, p, domain=domain)

    a, b = domain
    greville_u = (kv_u.greville_abscissae() - a) / (b - a)
    greville_v = (kv_v.greville_abscissae() - a) / (b - a)

    x_min, x_max = x_range
    y_min, y_max = y_range
    control_points = np.zeros((n_basis_u * n_basis_v, 3))
    idx = 0
    for j in range(n_basis_v):
        for i in range(n_basis_u):
            control_points[idx] = (x_min + (x_max - x_min) * greville_u[i],
                                   y_min + (y_max - y_min) * greville_v[j],
                                   z)
            idx += 1

    dofs = dof_offset + np.arange(n_basis_u * n_basis_v)
    return IGAPatchSurface(kv_u, kv_v, control_points, np.ones(len(control_points)),
                           dofs, trimming, name)


def make_quarter_cylinder_patch(radius: float = 1.0,
                                height: float = 1.0,
                                start_angle: float = 0.0,
                                n_elem_axial: int = 1,
                                dof_offset: int = 0,
                                name: Optional[str] = None) -> IGAPatchSurface:
    """
    Create a patch representing a quarter of a cylinder around the z-axis.

    u runs along the arc (degree 2, exact circle), v along the axis
    (degree 1, n_elem_axial spans).
    """
    arc = make_nurbs_arc(radius, (0.0, 0.0), start_angle, start_angle + np.pi / 2)
    kv_u = arc.knot_vector
    n_basis_v = n_elem_axial + 1
    kv_v = make_open_knot_vector(n_basis_v, 1)
    heights = np.linspace(0.0, height, n_basis_v)

    control_points = []
    weights = []
    for zj in heights:
        for cp, w in zip(arc.control_points, arc.weights):
            control_points.append([cp[0], cp[1], zj])
            weights.append(w)

    dofs = dof_offset + np.arange(len(control_points))
    return IGAPatchSurface(kv_u, kv_v, np.array(control_points), np.array(weights),
                           dofs, name=name)


def make_nurbs_line(start: Tuple[float, float], end: Tuple[float, float]) -> NURBSCurve:
    """Straight degree-1 curve from start to end, parametrized on [0, 1]."""
    kv = KnotVector(np.array([0.0, 0.0, 1.0, 1.0]), 1)
    return NURBSCurve(kv, np.array([start, end], dtype=np.float64))


def make_nurbs_arc(radius: float = 1.0,
                   center: Tuple[float, float] = (0.0, 0.0),
                   start_angle: float = 0.0,
                   end_angle: float = np.pi / 2) -> NURBSCurve:
    """
    Create a NURBS curve representing a circular arc.

    Uses degree 2 with 3 control points for arcs up to 90 degrees. A
    negative sweep (end_angle < start_angle) runs clockwise.
    """
    sweep = end_angle - start_angle
    if abs(sweep) > np.pi / 2 + 1e-10:
        raise ValueError("Arc sweep must be <= 90 degrees")

    kv = KnotVector(np.array([0.0, 0.0, 0.0, 1.0, 1.0, 1.0]), 2)
    w = np.cos(sweep / 2)
    mid_angle = (start_angle + end_angle) / 2
    # Middle control point at the intersection of the end tangents
    d = radius / np.cos(sweep / 2)

    control_points = np.array([
        [center[0] + radius * np.cos(start_angle), center[1] + radius * np.sin(start_angle)],
        [center[0] + d * np.cos(mid_angle), center[1] + d * np.sin(mid_angle)],
        [center[0] + radius * np.cos(end_angle), center[1] + radius * np.sin(end_angle)],
    ])
    return NURBSCurve(kv, control_points, np.array([1.0, w, 1.0]))


def make_circle_trimming_loop(center: Tuple[float, float], radius: float,
                              hole: bool = True) -> TrimmingLoop:
    """
    Trimming loop of four quarter arcs.

    Parameters:
        center: Circle center in parameter space
        radius: Circle radius in parameter space
        hole: Clockwise loop cutting a hole when True, counterclockwise
              loop bounding material otherwise
    """
    sign = -1.0 if hole else 1.0
    quarter = sign * np.pi / 2
    arcs = [make_nurbs_arc(radius, center, k * quarter, (k + 1) * quarter) for k in range(4)]
    return TrimmingLoop(arcs)
