"""
Weak continuity conditions between two IGA patches.

Patches of a multi-patch surface that meet along a trimming curve are in
general not conforming, so their displacement fields are coupled weakly by
a penalty on the interface. A WeakContinuityCondition stores everything the
mapper needs to integrate those penalty terms along the shared curve:

- the Gauss points of the curve, in the parameter space of both patches
- the unit tangents of the curve at these points in Cartesian space, as
  seen from each patch
- the Gauss weights and the Jacobian of the curve parameter to arc length

Conditions are usually provided by the CAD description. build_from_curves
computes them from the parametric images of the interface curve on both
patches when the two images share their parametrization (possibly reversed).
"""

import numpy as np
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..quadrature.gauss import gauss_legendre_1d
from .nurbs import NURBSCurve
from .patch import IGAPatchSurface

# Relative distance below which two curve breakpoints are merged
BREAKPOINT_TOLERANCE = 1e-10


@dataclass
class WeakContinuityCondition:
    """
    Matched Gauss points along the interface between a master and a slave patch.

    Attributes:
        master_patch_index: Index of the master patch in the IGA mesh
        slave_patch_index: Index of the slave patch in the IGA mesh
        master_gps: (n, 2) parameters (u, v) on the master patch
        slave_gps: (n, 2) parameters (u, v) on the slave patch
        gp_weights: (n,) Gauss weights in curve parameter space
        master_tangents: (n, 3) unit tangents of the curve from the master patch
        slave_tangents: (n, 3) unit tangents of the curve from the slave patch
        jacobian_products: (n,) arc length per unit curve parameter
    """
    master_patch_index: int
    slave_patch_index: int
    master_gps: np.ndarray
    slave_gps: np.ndarray
    gp_weights: np.ndarray
    master_tangents: np.ndarray
    slave_tangents: np.ndarray
    jacobian_products: np.ndarray

    def __post_init__(self):
        self.master_gps = np.asarray(self.master_gps, dtype=np.float64).reshape(-1, 2)
        self.slave_gps = np.asarray(self.slave_gps, dtype=np.float64).reshape(-1, 2)
        self.gp_weights = np.asarray(self.gp_weights, dtype=np.float64).ravel()
        self.master_tangents = np.asarray(self.master_tangents, dtype=np.float64).reshape(-1, 3)
        self.slave_tangents = np.asarray(self.slave_tangents, dtype=np.float64).reshape(-1, 3)
        self.jacobian_products = np.asarray(self.jacobian_products, dtype=np.float64).ravel()
        n = self.master_gps.shape[0]
        for name in ("slave_gps", "master_tangents", "slave_tangents"):
            if getattr(self, name).shape[0] != n:
                raise ValueError(f"{name} must have {n} rows")
        if self.gp_weights.shape != (n,) or self.jacobian_products.shape != (n,):
            raise ValueError(f"gp_weights and jacobian_products must have {n} entries")
        if self.master_patch_index == self.slave_patch_index:
            raise ValueError("A weak continuity condition needs two different patches")

    @property
    def n_gauss_points(self) -> int:
        return self.master_gps.shape[0]

    @property
    def interface_length(self) -> float:
        return float(np.sum(self.jacobian_products * self.gp_weights))

    def smallest_element_length(self, master: IGAPatchSurface,
                                slave: IGAPatchSurface) -> float:
        """
        Shortest interface length covered by a single knot span pair.

        The curve length is accumulated per knot span pair of the master
        patch and per knot span pair of the slave patch; the minimum over
        all non-empty spans is returned.
        """
        lengths = []
        increments = self.jacobian_products * self.gp_weights
        for patch, gps in ((master, self.master_gps), (slave, self.slave_gps)):
            per_span = {}
            for (u, v), dl in zip(gps, increments):
                key = patch.find_spans(u, v)
                per_span[key] = per_span.get(key, 0.0) + dl
            lengths.extend(length for length in per_span.values() if length > 0)
        if not lengths:
            raise ValueError("Weak continuity condition has zero length")
        return min(lengths)


def _interface_segments(master_curve: NURBSCurve, slave_curve: NURBSCurve,
                       reverse_slave: bool) -> List[Tuple[float, float]]:
    """
    Integration intervals in the master curve parameter.

    Breakpoints are the knots of both curves, the slave ones mapped into the
    master parameter, so that no interval spans a kink of either image.
    """
    a0, a1 = master_curve.domain
    s0, s1 = slave_curve.domain
    breaks = [a0, a1]
    breaks.extend(hi for _, hi in master_curve.knot_vector.elements)
    for _, s in slave_curve.knot_vector.elements:
        x = (s1 - s) if reverse_slave else (s - s0)
        breaks.append(a0 + x * (a1 - a0) / (s1 - s0))

    tol = BREAKPOINT_TOLERANCE * (a1 - a0)
    merged = []
    for t in sorted(breaks):
        if not merged or t - merged[-1] > tol:
            merged.append(t)
    merged[-1] = a1
    return list(zip(merged[:-1], merged[1:]))


def _cartesian_tangent(patch: IGAPatchSurface, uv: np.ndarray, duv: np.ndarray) -> np.ndarray:
    g1, g2 = patch.compute_base_vectors(uv[0], uv[1])
    return g1 * duv[0] + g2 * duv[1]


def build_from_curves(master_patch_index: int, master: IGAPatchSurface, master_curve: NURBSCurve,
                      slave_patch_index: int, slave: IGAPatchSurface, slave_curve: NURBSCurve,
                      reverse_slave: bool = False,
                      n_gp_per_span: Optional[int] = None) -> WeakContinuityCondition:
    """
    Build a weak continuity condition from the images of the interface curve.

    The curve parameter of master_curve is mapped linearly onto the domain of
    slave_curve (reversed when reverse_slave is set), so both images must
    describe the same physical curve with proportional parametrizations.
    Gauss points are placed per interval between the knots of both curves.

    Parameters:
        master_patch_index, slave_patch_index: Patch indices in the IGA mesh
        master, slave: The two patches
        master_curve, slave_curve: 2D curves in the parameter spaces of the patches
        reverse_slave: Whether the slave image runs opposite to the master one
        n_gp_per_span: Gauss points per interval; defaults to the highest
                       patch degree plus one
    """
    if n_gp_per_span is None:
        n_gp_per_span = max(max(master.degrees), max(slave.degrees)) + 1
    points, weights = gauss_legendre_1d(n_gp_per_span)

    a0, a1 = master_curve.domain
    s0, s1 = slave_curve.domain
    ratio = (s1 - s0) / (a1 - a0)

    master_gps, slave_gps, gp_weights = [], [], []
    master_tangents, slave_tangents, jacobians = [], [], []

    for lo, hi in _interface_segments(master_curve, slave_curve, reverse_slave):
        for x, w in zip(points, weights):
            t = lo + (hi - lo) * x
            if reverse_slave:
                ts, dts = s1 - (t - a0) * ratio, -ratio
            else:
                ts, dts = s0 + (t - a0) * ratio, ratio

            uv_m, duv_m = master_curve.eval_derivatives(t, 1)
            uv_s, duv_s = slave_curve.eval_derivatives(ts, 1)
            T_m = _cartesian_tangent(master, uv_m, duv_m)
            T_s = _cartesian_tangent(slave, uv_s, duv_s * dts)
            J = np.linalg.norm(T_m)

            master_gps.append(uv_m)
            slave_gps.append(uv_s)
            gp_weights.append((hi - lo) * w)
            master_tangents.append(T_m / J)
            slave_tangents.append(T_s / np.linalg.norm(T_s))
            jacobians.append(J)

    return WeakContinuityCondition(master_patch_index, slave_patch_index,
                                   np.array(master_gps), np.array(slave_gps),
                                   np.array(gp_weights), np.array(master_tangents),
                                   np.array(slave_tangents), np.array(jacobians))
