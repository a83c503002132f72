"""
B-spline and NURBS basis function evaluation.

B-splines are piecewise polynomial functions defined by:
1. A knot vector (non-decreasing sequence of parametric values)
2. A polynomial degree p

The i-th B-spline basis function of degree p is defined recursively:

    N_{i,0}(xi) = 1 if xi_i <= xi < xi_{i+1}, else 0

    N_{i,p}(xi) = (xi - xi_i)/(xi_{i+p} - xi_i) * N_{i,p-1}(xi)
                + (xi_{i+p+1} - xi)/(xi_{i+p+1} - xi_{i+1}) * N_{i+1,p-1}(xi)

Properties:
- Partition of unity: sum of all basis functions = 1
- Non-negativity: N_{i,p}(xi) >= 0
- Local support: N_{i,p} is non-zero only on [xi_i, xi_{i+p+1})

Bivariate derivatives are returned as arrays ders[k, l, i] holding
d^(k+l) N_i / du^k dv^l for k + l <= n_ders, i.e. the derivative order is
the major axis and the local basis function index the minor one. Local
basis functions of a span pair (span_u, span_v) are numbered u fastest:

    i = b * (p_u + 1) + a   <->   N_{span_u-p_u+a}(u) * N_{span_v-p_v+b}(v)

which matches the control point ordering of NURBSSurface.
"""

import math
import numpy as np
from typing import Optional

from ..discretization.knot_vector import KnotVector


def eval_basis_1d(kv: KnotVector, xi: float,
                  span: Optional[int] = None) -> np.ndarray:
    """
    Evaluate all non-zero B-spline basis functions at a parameter value.

    Uses the Cox-de Boor algorithm optimized for evaluating only
    the p+1 non-zero basis functions at a given parameter value.

    Parameters:
        kv: Knot vector
        xi: Parameter value
        span: Optional pre-computed span index

    Returns:
        Array of shape (p+1,) containing N_{span-p,p}(xi) to N_{span,p}(xi)
    """
    kv.check_parameter(xi)
    p = kv.degree
    knots = kv.knots

    if span is None:
        span = kv.find_span(xi)

    N = np.zeros(p + 1)
    N[0] = 1.0
    left = np.zeros(p + 1)
    right = np.zeros(p + 1)

    for j in range(1, p + 1):
        left[j] = xi - knots[span + 1 - j]
        right[j] = knots[span + j] - xi

        saved = 0.0
        for r in range(j):
            temp = N[r] / (right[r + 1] + left[j - r])
            N[r] = saved + right[r + 1] * temp
            saved = left[j - r] * temp
        N[j] = saved

    return N


def eval_basis_ders_1d(kv: KnotVector, xi: float, n_ders: int,
                       span: Optional[int] = None) -> np.ndarray:
    """
    Evaluate B-spline basis functions and derivatives at a parameter value.

    Uses the algorithm from Piegl & Tiller "The NURBS Book" (Algorithm A2.3).
    Derivatives of order higher than p are identically zero.

    Parameters:
        kv: Knot vector
        xi: Parameter value
        n_ders: Number of derivatives to compute (0 = just values)
        span: Optional pre-computed span index

    Returns:
        Array of shape (n_ders+1, p+1) where result[k, j] is the k-th derivative
        of the j-th non-zero basis function (N_{span-p+j, p})
    """
    kv.check_parameter(xi)
    if n_ders < 0:
        raise ValueError(f"Number of derivatives must be non-negative, got {n_ders}")
    p = kv.degree
    knots = kv.knots

    if span is None:
        span = kv.find_span(xi)

    ders = np.zeros((n_ders + 1, p + 1))
    n_computed = min(n_ders, p)

    # ndu[j][r]: basis functions (upper triangle) and knot differences (lower)
    ndu = np.zeros((p + 1, p + 1))
    ndu[0, 0] = 1.0
    left = np.zeros(p + 1)
    right = np.zeros(p + 1)

    for j in range(1, p + 1):
        left[j] = xi - knots[span + 1 - j]
        right[j] = knots[span + j] - xi

        saved = 0.0
        for r in range(j):
            ndu[j, r] = right[r + 1] + left[j - r]
            temp = ndu[r, j - 1] / ndu[j, r]
            ndu[r, j] = saved + right[r + 1] * temp
            saved = left[j - r] * temp

        ndu[j, j] = saved

    ders[0, :] = ndu[:, p]

    a = np.zeros((2, p + 1))
    for r in range(p + 1):
        s1, s2 = 0, 1
        a[0, 0] = 1.0

        for k in range(1, n_computed + 1):
            d = 0.0
            rk = r - k
            pk = p - k

            if r >= k:
                a[s2, 0] = a[s1, 0] / ndu[pk + 1, rk]
                d = a[s2, 0] * ndu[rk, pk]

            j1 = 1 if rk >= -1 else -rk
            j2 = k - 1 if r - 1 <= pk else p - r

            for j in range(j1, j2 + 1):
                a[s2, j] = (a[s1, j] - a[s1, j - 1]) / ndu[pk + 1, rk + j]
                d += a[s2, j] * ndu[rk + j, pk]

            if r <= pk:
                a[s2, k] = -a[s1, k - 1] / ndu[pk + 1, r]
                d += a[s2, k] * ndu[r, pk]

            ders[k, r] = d
            s1, s2 = s2, s1

    # Multiply by p! / (p-k)!
    factor = p
    for k in range(1, n_computed + 1):
        ders[k, :] *= factor
        factor *= (p - k)

    return ders


def eval_basis_matrix_1d(kv: KnotVector, xis: np.ndarray) -> np.ndarray:
    """
    Values of all n_basis functions at several parameters.

    Returns:
        Dense array of shape (len(xis), n_basis)
    """
    xis = np.asarray(xis, dtype=np.float64)
    B = np.zeros((len(xis), kv.n_basis))
    for row, xi in enumerate(xis):
        span = kv.find_span(xi)
        B[row, span - kv.degree:span + 1] = eval_basis_1d(kv, xi, span)
    return B


def eval_bspline_basis_ders_2d(kv_u: KnotVector, kv_v: KnotVector,
                               u: float, v: float, n_ders: int,
                               span_u: Optional[int] = None,
                               span_v: Optional[int] = None) -> np.ndarray:
    """
    Tensor-product B-spline basis functions and partial derivatives.

    Parameters:
        kv_u, kv_v: Knot vectors in u and v
        u, v: Parameter values
        n_ders: Highest total derivative order k + l
        span_u, span_v: Optional knot span indices

    Returns:
        Array ders of shape (n_ders+1, n_ders+1, (p_u+1)*(p_v+1)) where
        ders[k, l, i] = d^(k+l) N_i / du^k dv^l for k + l <= n_ders and zero
        otherwise.
    """
    if span_u is None:
        span_u = kv_u.find_span(u)
    if span_v is None:
        span_v = kv_v.find_span(v)

    Nu = eval_basis_ders_1d(kv_u, u, n_ders, span_u)
    Nv = eval_basis_ders_1d(kv_v, v, n_ders, span_v)
    n_local = Nu.shape[1] * Nv.shape[1]

    ders = np.zeros((n_ders + 1, n_ders + 1, n_local))
    for k in range(n_ders + 1):
        for l in range(n_ders - k + 1):
            ders[k, l] = np.outer(Nv[l], Nu[k]).ravel()
    return ders


def eval_nurbs_basis_ders_2d(kv_u: KnotVector, kv_v: KnotVector,
                             weights_local: np.ndarray,
                             u: float, v: float, n_ders: int,
                             span_u: Optional[int] = None,
                             span_v: Optional[int] = None) -> np.ndarray:
    """
    Rational (NURBS) basis functions and partial derivatives on one span pair.

    With A_i = N_i * w_i and the denominator W = sum_i A_i, the rational basis
    R_i = A_i / W is differentiated with the quotient rule of Piegl & Tiller
    (Eq. 4.20 applied per basis function):

        R^(k,l) = ( A^(k,l) - sum_{(i,j) != (0,0), i<=k, j<=l}
                    C(k,i) C(l,j) W^(i,j) R^(k-i,l-j) ) / W

    Parameters:
        kv_u, kv_v: Knot vectors in u and v
        weights_local: Weights of the (p_u+1)*(p_v+1) local control points,
                       ordered u fastest
        u, v: Parameter values
        n_ders: Highest total derivative order
        span_u, span_v: Optional knot span indices

    Returns:
        Array of shape (n_ders+1, n_ders+1, n_local), see
        eval_bspline_basis_ders_2d.
    """
    weights_local = np.asarray(weights_local, dtype=np.float64)
    N = eval_bspline_basis_ders_2d(kv_u, kv_v, u, v, n_ders, span_u, span_v)
    if weights_local.shape != (N.shape[2],):
        raise ValueError(
            f"Expected {N.shape[2]} local weights, got shape {weights_local.shape}"
        )

    A = N * weights_local
    W = A.sum(axis=2)

    R = np.zeros_like(A)
    for k in range(n_ders + 1):
        for l in range(n_ders - k + 1):
            value = A[k, l].copy()
            for i in range(k + 1):
                for j in range(l + 1):
                    if i == 0 and j == 0:
                        continue
                    value -= math.comb(k, i) * math.comb(l, j) * W[i, j] * R[k - i, l - j]
            R[k, l] = value / W[0, 0]
    return R


def compute_denominator_function(kv_u: KnotVector, kv_v: KnotVector,
                                 weights_local: np.ndarray,
                                 u: float, v: float, n_ders: int,
                                 span_u: Optional[int] = None,
                                 span_v: Optional[int] = None) -> np.ndarray:
    """
    The NURBS denominator W(u, v) = sum_i N_i w_i and its partial derivatives.

    Returns:
        Array W of shape (n_ders+1, n_ders+1), W[k, l] = d^(k+l) W / du^k dv^l
    """
    N = eval_bspline_basis_ders_2d(kv_u, kv_v, u, v, n_ders, span_u, span_v)
    return (N * np.asarray(weights_local, dtype=np.float64)).sum(axis=2)
