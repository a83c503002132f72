"""
NURBS (Non-Uniform Rational B-Spline) geometry representation.

NURBS extend B-splines by introducing weights for each control point,
enabling exact representation of conic sections (circles, ellipses, etc.).

A NURBS curve/surface point is computed as:

    C(xi) = sum_i (N_i(xi) * w_i * P_i) / sum_i (N_i(xi) * w_i)

where:
- N_i are B-spline basis functions
- w_i are weights (positive real numbers)
- P_i are control points

The rational basis functions R_i(xi) = N_i(xi) * w_i / sum_j N_j(xi) * w_j
form a partition of unity and are non-negative.

This module provides:
- NURBSCurve: parametric curves, used for trimming curves in the
  parameter space of a patch and for weak continuity interfaces
- NURBSSurface: tensor-product surfaces in 3D, the geometric core of
  an IGA patch
"""

import math
import numpy as np
from typing import Optional, Tuple

from ..discretization.knot_vector import KnotVector
from .bspline import (
    eval_basis_1d, eval_basis_ders_1d, eval_basis_matrix_1d,
    eval_nurbs_basis_ders_2d
)


class NURBSCurve:
    """
    NURBS curve in arbitrary dimensional space.

    A NURBS curve C(xi) is defined by:
    - Knot vector defining the parametric domain
    - Control points P_i in R^d (d = physical dimension)
    - Weights w_i > 0
    """

    def __init__(self, knot_vector: KnotVector,
                 control_points: np.ndarray,
                 weights: Optional[np.ndarray] = None):
        """
        Parameters:
            knot_vector: KnotVector defining the basis
            control_points: Array of shape (n, d) where n = n_basis functions
            weights: Array of shape (n,), defaults to 1.0 (B-spline)
        """
        self._knot_vector = knot_vector
        self._control_points = np.atleast_2d(np.asarray(control_points, dtype=np.float64))

        if self._control_points.shape[0] != knot_vector.n_basis:
            raise ValueError(
                f"Number of control points ({self._control_points.shape[0]}) "
                f"must match number of basis functions ({knot_vector.n_basis})"
            )

        if weights is None:
            self._weights = np.ones(knot_vector.n_basis)
        else:
            self._weights = np.asarray(weights, dtype=np.float64)
            if len(self._weights) != knot_vector.n_basis:
                raise ValueError("Weights array length must match number of control points")
            if np.any(self._weights <= 0):
                raise ValueError("All weights must be positive")

    @property
    def n_dim_physical(self) -> int:
        return self._control_points.shape[1]

    @property
    def n_control_points(self) -> int:
        return self._knot_vector.n_basis

    @property
    def control_points(self) -> np.ndarray:
        return self._control_points.copy()

    @property
    def weights(self) -> np.ndarray:
        return self._weights.copy()

    @property
    def knot_vector(self) -> KnotVector:
        return self._knot_vector

    @property
    def degree(self) -> int:
        return self._knot_vector.degree

    @property
    def domain(self) -> Tuple[float, float]:
        return self._knot_vector.domain

    def _local(self, span: int):
        indices = self._knot_vector.active_basis_indices(span)
        return self._control_points[indices], self._weights[indices]

    def eval_point(self, xi: float) -> np.ndarray:
        """
        Evaluate curve at parameter value.

        Returns:
            Point coordinates as (d,) array
        """
        span = self._knot_vector.find_span(xi)
        N = eval_basis_1d(self._knot_vector, xi, span)
        P_local, w_local = self._local(span)
        Nw = N * w_local
        return Nw @ P_local / np.sum(Nw)

    def eval_derivatives(self, xi: float, n_ders: int = 1) -> Tuple[np.ndarray, ...]:
        """
        Evaluate curve and derivatives at parameter value.

        Uses the formula for rational derivatives (Piegl & Tiller, Eq. 4.8):
            C^(k) = (A^(k) - sum_{j=1}^{k} C(k,j) * w^(j) * C^(k-j)) / w^(0)

        Returns:
            Tuple (C, dC/dxi, d²C/dxi², ...) of arrays
        """
        span = self._knot_vector.find_span(xi)
        Nders = eval_basis_ders_1d(self._knot_vector, xi, n_ders, span)
        P_local, w_local = self._local(span)

        Nw = Nders * w_local
        A_ders = Nw @ P_local
        w_ders = Nw.sum(axis=1)

        C_ders = np.zeros_like(A_ders)
        for k in range(n_ders + 1):
            value = A_ders[k].copy()
            for j in range(1, k + 1):
                value -= math.comb(k, j) * w_ders[j] * C_ders[k - j]
            C_ders[k] = value / w_ders[0]

        return tuple(C_ders)

    def sample(self, n_points: int, reverse: bool = False) -> np.ndarray:
        """
        Evaluate the curve at n_points uniformly spaced parameters.

        Returns:
            Array of shape (n_points, d), end points included
        """
        a, b = self.domain
        xis = np.linspace(a, b, n_points)
        if reverse:
            xis = xis[::-1]
        return np.array([self.eval_point(xi) for xi in xis])


class NURBSSurface:
    """
    NURBS surface in 3D space.

    A NURBS surface S(u, v) is defined by:
    - Two knot vectors (u and v directions)
    - Control points P_{i,j} arranged in a grid
    - Weights w_{i,j} > 0

    The surface point is:
    S(u, v) = sum_{i,j} R_{i,j}(u, v) * P_{i,j}

    Control points are stored with u varying fastest:
    [P_{0,0}, P_{1,0}, ..., P_{n_u-1,0}, P_{0,1}, ..., P_{n_u-1,n_v-1}]
    """

    def __init__(self,
                 knot_vector_u: KnotVector,
                 knot_vector_v: KnotVector,
                 control_points: np.ndarray,
                 weights: Optional[np.ndarray] = None):
        """
        Parameters:
            knot_vector_u: KnotVector for u direction
            knot_vector_v: KnotVector for v direction
            control_points: Array of shape (n_u * n_v, d), u fastest,
                            or (n_v, n_u, d) which will be flattened; d is 2 or 3
                            (2D control points are placed at z = 0)
            weights: Array of shape (n_u * n_v,) or (n_v, n_u), defaults to 1.0
        """
        self._kv_u = knot_vector_u
        self._kv_v = knot_vector_v

        n_u = knot_vector_u.n_basis
        n_v = knot_vector_v.n_basis
        n_total = n_u * n_v

        control_points = np.asarray(control_points, dtype=np.float64)
        if control_points.ndim == 3:
            if control_points.shape[:2] != (n_v, n_u):
                raise ValueError(
                    f"Control points shape {control_points.shape} doesn't match "
                    f"expected ({n_v}, {n_u}, d)"
                )
            control_points = control_points.reshape(n_total, -1)
        if control_points.shape[0] != n_total:
            raise ValueError(
                f"Number of control points ({control_points.shape[0]}) "
                f"must equal n_u * n_v ({n_total})"
            )
        if control_points.shape[1] == 2:
            control_points = np.hstack([control_points, np.zeros((n_total, 1))])
        if control_points.shape[1] != 3:
            raise ValueError("Control points must have 2 or 3 coordinates")
        self._control_points = control_points

        if weights is None:
            self._weights = np.ones(n_total)
        else:
            weights = np.asarray(weights, dtype=np.float64).ravel()
            if len(weights) != n_total:
                raise ValueError(f"Weights length ({len(weights)}) must equal {n_total}")
            if np.any(weights <= 0):
                raise ValueError("All weights must be positive")
            self._weights = weights

        self._n_u = n_u
        self._n_v = n_v

    @property
    def n_control_points(self) -> int:
        return self._n_u * self._n_v

    @property
    def n_control_points_per_dir(self) -> Tuple[int, int]:
        """Number of control points in each direction (n_u, n_v)."""
        return (self._n_u, self._n_v)

    @property
    def control_points(self) -> np.ndarray:
        return self._control_points.copy()

    @property
    def weights(self) -> np.ndarray:
        return self._weights.copy()

    @property
    def knot_vectors(self) -> Tuple[KnotVector, KnotVector]:
        return (self._kv_u, self._kv_v)

    @property
    def degrees(self) -> Tuple[int, int]:
        return (self._kv_u.degree, self._kv_v.degree)

    @property
    def domain(self) -> Tuple[Tuple[float, float], Tuple[float, float]]:
        """Parametric domain as ((u_min, u_max), (v_min, v_max))."""
        return (self._kv_u.domain, self._kv_v.domain)

    def find_spans(self, u: float, v: float) -> Tuple[int, int]:
        return self._kv_u.find_span(u), self._kv_v.find_span(v)

    def local_control_point_indices(self, span_u: int, span_v: int) -> np.ndarray:
        """
        Indices of the control points supporting a knot span pair.

        Ordered u fastest, like the local basis functions.
        """
        i = self._kv_u.active_basis_indices(span_u)
        j = self._kv_v.active_basis_indices(span_v)
        return (j[:, None] * self._n_u + i[None, :]).ravel()

    def eval_rational_basis(self, u: float, v: float, n_ders: int = 0,
                            span_u: Optional[int] = None,
                            span_v: Optional[int] = None) -> Tuple[np.ndarray, np.ndarray]:
        """
        Evaluate the non-zero rational basis functions and their derivatives.

        Parameters:
            u, v: Parameter values
            n_ders: Highest total derivative order
            span_u, span_v: Knot spans to evaluate on (found from u, v if omitted)

        Returns:
            (R, indices) where R has shape (n_ders+1, n_ders+1, n_local)
            (see eval_nurbs_basis_ders_2d) and indices are the control point
            indices of the local basis functions
        """
        if span_u is None:
            span_u = self._kv_u.find_span(u)
        if span_v is None:
            span_v = self._kv_v.find_span(v)
        indices = self.local_control_point_indices(span_u, span_v)
        R = eval_nurbs_basis_ders_2d(self._kv_u, self._kv_v, self._weights[indices],
                                     u, v, n_ders, span_u, span_v)
        return R, indices

    def eval_point(self, u: float, v: float) -> np.ndarray:
        """Evaluate the surface point S(u, v)."""
        R, indices = self.eval_rational_basis(u, v, 0)
        return R[0, 0] @ self._control_points[indices]

    def eval_derivatives(self, u: float, v: float, n_ders: int = 1) -> np.ndarray:
        """
        Evaluate surface point and partial derivatives.

        Returns:
            Array S of shape (n_ders+1, n_ders+1, 3) with
            S[k, l] = d^(k+l) S / du^k dv^l for k + l <= n_ders
        """
        R, indices = self.eval_rational_basis(u, v, n_ders)
        return R @ self._control_points[indices]

    def eval_points_grid(self, us: np.ndarray, vs: np.ndarray) -> np.ndarray:
        """
        Evaluate the surface on the tensor grid us x vs.

        Returns:
            Array of shape (len(vs), len(us), 3)
        """
        Bu = eval_basis_matrix_1d(self._kv_u, us)
        Bv = eval_basis_matrix_1d(self._kv_v, vs)
        Pw = np.concatenate([self._control_points * self._weights[:, None],
                             self._weights[:, None]], axis=1)
        Pw = Pw.reshape(self._n_v, self._n_u, 4)
        Sw = np.einsum("bj,ai,jic->bac", Bv, Bu, Pw)
        return Sw[..., :3] / Sw[..., 3:]
