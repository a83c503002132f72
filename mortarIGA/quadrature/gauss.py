"""
Gauss quadrature rules used by the mortar integration.

Gauss quadrature provides optimal polynomial integration:
n points integrate exactly polynomials up to degree 2n-1.

Three reference domains are used:
- [0, 1] for curve integrals (weak continuity interfaces)
- the quadrilateral [-1, 1]^2 with bilinear corner ordering
  (-1,-1), (1,-1), (1,1), (-1,1); weights sum to 4
- the triangle (0,0), (1,0), (0,1); weights sum to 1/2

The triangle rule is the collapsed (Duffy) tensor-product rule: an n x n
Gauss-Legendre rule on the unit square is mapped to the triangle by
(x, y) -> (x (1 - y), y) with Jacobian (1 - y). It integrates polynomials
up to degree 2n - 2 exactly.

Usage:
    points, weights = gauss_legendre_1d(n)     # 1D quadrature on [0,1]
    points, weights = gauss_quad_rule(n)       # n*n points on [-1,1]^2
    points, weights = gauss_triangle_rule(n)   # n*n points on the unit triangle
"""

import math
import numpy as np
from typing import Tuple
from functools import lru_cache


@lru_cache(maxsize=16)
def gauss_legendre_1d(n: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Gauss-Legendre quadrature points and weights on [0, 1].

    Parameters:
        n: Number of quadrature points

    Returns:
        (points, weights) where:
        - points: Array of n quadrature points in [0, 1]
        - weights: Array of n quadrature weights (sum to 1)
    """
    if n < 1:
        raise ValueError("Need at least 1 quadrature point")

    points_std, weights_std = np.polynomial.legendre.leggauss(n)
    return 0.5 * (points_std + 1.0), 0.5 * weights_std


@lru_cache(maxsize=16)
def gauss_quad_rule(n: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Tensor-product Gauss-Legendre rule on [-1, 1]^2.

    Returns:
        (points, weights) with points of shape (n*n, 2), xi fastest
    """
    if n < 1:
        raise ValueError("Need at least 1 quadrature point per direction")
    x, w = np.polynomial.legendre.leggauss(n)
    xi, eta = np.meshgrid(x, x)
    points = np.column_stack([xi.ravel(), eta.ravel()])
    weights = np.outer(w, w).ravel()
    return points, weights


@lru_cache(maxsize=16)
def gauss_triangle_rule(n: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Collapsed Gauss-Legendre rule on the triangle (0,0), (1,0), (0,1).

    Returns:
        (points, weights) with points of shape (n*n, 2); weights sum to 1/2
    """
    x, w = gauss_legendre_1d(n)
    xs, ys = np.meshgrid(x, x)
    ws = np.outer(w, w)
    points = np.column_stack([(xs * (1.0 - ys)).ravel(), ys.ravel()])
    weights = (ws * (1.0 - ys)).ravel()
    return points, weights


def points_per_direction(num_gauss_points: int) -> int:
    """
    Number of points per direction of a rule with num_gauss_points points.

    Both the quadrilateral and the collapsed triangle rules are tensor
    products, so the total count must be a perfect square.
    """
    n = math.isqrt(num_gauss_points)
    if num_gauss_points < 1 or n * n != num_gauss_points:
        raise ValueError(
            f"Number of Gauss points must be a positive perfect square, got {num_gauss_points}"
        )
    return n
