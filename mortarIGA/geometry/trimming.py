"""
Trimming description of a NURBS patch.

A trimmed patch keeps its full tensor-product control net, but only the
part of its parametric domain enclosed by the trimming loops is physical.
Each loop is an ordered, closed chain of 2D NURBS curves living in the
parameter space (u, v) of the patch. A direction flag per curve tells
whether the curve is traversed along (True) or against (False) its own
parametrization when walking the loop.

Loops are oriented: counterclockwise loops bound material, clockwise loops
cut holes. The trimmed region follows the positive fill rule, i.e. the
points with positive winding number.
"""

import numpy as np
from typing import List, Optional, Sequence

from ..discretization.knot_vector import KnotVector
from .nurbs import NURBSCurve


def linearization_sample_count(curve: NURBSCurve) -> int:
    """
    Number of samples used to linearize a trimming curve.

    n = n_cp * p * (1 + max(0, 4 - p)^3): low-degree curves are sampled
    more densely so that straight segments are not the only vertices.
    """
    p = max(curve.degree, 1)
    factor = 1 + max(0, 4 - p) ** 3
    return max(curve.n_control_points * p * factor, 2)


def polyline_signed_area(polyline: np.ndarray) -> float:
    """Shoelace area of a closed polyline, positive when counterclockwise."""
    x = polyline[:, 0]
    y = polyline[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


class TrimmingLoop:
    """
    Closed chain of parametric trimming curves.

    Attributes:
        curves: 2D NURBS curves in the patch parameter space
        directions: Traversal direction of each curve
    """

    def __init__(self, curves: Sequence[NURBSCurve],
                 directions: Optional[Sequence[bool]] = None):
        if len(curves) == 0:
            raise ValueError("A trimming loop needs at least one curve")
        for curve in curves:
            if curve.n_dim_physical != 2:
                raise ValueError("Trimming curves must live in the 2D parameter space")
        self.curves = list(curves)
        if directions is None:
            directions = [True] * len(self.curves)
        if len(directions) != len(self.curves):
            raise ValueError("One direction flag per trimming curve is required")
        self.directions = [bool(d) for d in directions]
        self._polyline = None

    @property
    def n_curves(self) -> int:
        return len(self.curves)

    @property
    def polyline(self) -> np.ndarray:
        """
        Linearized loop as an (n, 2) array, closing segment implicit.

        The end point of every curve is dropped because it coincides with
        the start point of the next one.
        """
        if self._polyline is None:
            pieces = []
            for curve, direction in zip(self.curves, self.directions):
                points = curve.sample(linearization_sample_count(curve), reverse=not direction)
                pieces.append(points[:-1])
            self._polyline = np.vstack(pieces)
        return self._polyline

    @property
    def is_outer(self) -> bool:
        """True for counterclockwise loops."""
        return polyline_signed_area(self.polyline) > 0.0


class PatchTrimming:
    """
    All trimming loops of one patch.

    Attributes:
        loops: Trimming loops; an empty list means the patch is untrimmed
    """

    def __init__(self, loops: Optional[Sequence[TrimmingLoop]] = None):
        self.loops = list(loops) if loops is not None else []

    def add_loop(self, loop: TrimmingLoop) -> None:
        self.loops.append(loop)

    @property
    def is_trimmed(self) -> bool:
        return len(self.loops) > 0

    @property
    def n_loops(self) -> int:
        return len(self.loops)

    def polylines(self) -> List[np.ndarray]:
        return [loop.polyline for loop in self.loops]


def make_polygon_trimming_loop(vertices: np.ndarray) -> TrimmingLoop:
    """
    Trimming loop made of straight parametric segments.

    Parameters:
        vertices: (n, 2) polygon vertices in parameter space, in loop order
                  (counterclockwise for an outer loop, clockwise for a hole)
    """
    vertices = np.asarray(vertices, dtype=np.float64)
    kv = KnotVector(np.array([0.0, 0.0, 1.0, 1.0]), 1)
    curves = []
    for k in range(len(vertices)):
        segment = np.array([vertices[k], vertices[(k + 1) % len(vertices)]])
        curves.append(NURBSCurve(kv, segment))
    return TrimmingLoop(curves)
