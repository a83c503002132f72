"""
Knot vector utilities for the mortar mapper.

A knot vector is a non-decreasing sequence of real numbers that defines
the parametric domain and basis function support for B-splines/NURBS.

Mathematical background:
- Open knot vectors have p+1 repeated knots at each end (interpolatory at boundaries)
- The number of basis functions n = len(knots) - p - 1
- Knot spans are intervals [xi_i, xi_{i+1}]; only spans with xi_i < xi_{i+1}
  carry integration area

The mapper addresses knot spans by their index in the full knot array
(the convention of find_span), not by element number. Polygons are clipped
against the rectangles of non-zero spans and the span index is then handed
to the basis evaluator so that points on span boundaries are evaluated on
the span they were integrated on.
"""

import numpy as np
from typing import List, Tuple
from dataclasses import dataclass

# Relative slack accepted when checking that a parameter lies in the domain
PARAMETER_SLACK = 1e-12


@dataclass
class KnotVector:
    """
    Represents a univariate knot vector.

    Attributes:
        knots: The knot values (non-decreasing sequence)
        degree: Polynomial degree p

    Properties computed:
        n_basis: Number of basis functions
        elements: List of (start, end) parametric coordinates of non-zero spans
        domain: (first knot, last knot)
    """
    knots: np.ndarray
    degree: int

    def __post_init__(self):
        self.knots = np.asarray(self.knots, dtype=np.float64)
        self._validate()
        self._compute_spans()

    def _validate(self):
        """Validate knot vector properties."""
        if self.degree < 0:
            raise ValueError(f"Polynomial degree must be non-negative, got {self.degree}.")
        if self.degree >= len(self.knots):
            raise ValueError(
                f"Degree {self.degree} must be smaller than the number of knots "
                f"({len(self.knots)})."
            )
        if len(self.knots) < 2 * (self.degree + 1):
            raise ValueError(
                f"Knot vector too short for degree {self.degree}. "
                f"Need at least {2 * (self.degree + 1)} knots, got {len(self.knots)}."
            )
        if not np.all(np.diff(self.knots) >= 0):
            raise ValueError("Knot vector must be non-decreasing.")
        if self.knots[self.degree] >= self.knots[-self.degree - 1]:
            raise ValueError("Knot vector has an empty parametric domain.")

    def _compute_spans(self):
        """Collect the indices of the knot spans with non-zero measure."""
        p = self.degree
        self._nonzero_spans = [
            i for i in range(p, self.n_basis)
            if self.knots[i + 1] > self.knots[i]
        ]

    @property
    def n_basis(self) -> int:
        """Number of basis functions."""
        return len(self.knots) - self.degree - 1

    @property
    def n_elements(self) -> int:
        """Number of non-zero measure knot spans."""
        return len(self._nonzero_spans)

    @property
    def elements(self) -> List[Tuple[float, float]]:
        """List of non-zero span intervals as (xi_start, xi_end) tuples."""
        return [self.span_bounds(s) for s in self._nonzero_spans]

    @property
    def first_knot(self) -> float:
        return float(self.knots[0])

    @property
    def last_knot(self) -> float:
        return float(self.knots[-1])

    @property
    def domain(self) -> Tuple[float, float]:
        """Parametric domain (start, end) of the basis."""
        return (float(self.knots[self.degree]), float(self.knots[self.n_basis]))

    def nonzero_spans(self) -> List[int]:
        """Knot span indices (into knots) of all spans with non-zero length."""
        return list(self._nonzero_spans)

    def span_bounds(self, span: int) -> Tuple[float, float]:
        """Parametric interval [xi_span, xi_{span+1}] of a knot span."""
        return (float(self.knots[span]), float(self.knots[span + 1]))

    def check_parameter(self, xi: float) -> None:
        """
        Raise ValueError if xi lies outside [first knot, last knot].

        A relative slack of PARAMETER_SLACK is accepted so that values produced
        by floating point arithmetic on the domain boundary pass.
        """
        a, b = self.first_knot, self.last_knot
        slack = PARAMETER_SLACK * max(1.0, b - a)
        if not (a - slack <= xi <= b + slack):
            raise ValueError(f"Parameter {xi} outside knot vector range [{a}, {b}].")

    def clamp(self, xi: float) -> float:
        """Clamp a parameter value into the parametric domain."""
        a, b = self.domain
        return min(max(xi, a), b)

    def find_span(self, xi: float) -> int:
        """
        Find the knot span index containing parameter value xi.

        For xi in [xi_i, xi_{i+1}), returns i.
        Uses the convention that the last span is closed: [xi_{n-1}, xi_n].

        Parameters:
            xi: Parameter value

        Returns:
            Span index i such that xi in [xi_i, xi_{i+1})
        """
        n = self.n_basis
        p = self.degree

        if xi >= self.knots[n]:
            return n - 1
        if xi <= self.knots[p]:
            return p

        # Binary search
        low = p
        high = n
        mid = (low + high) // 2

        while xi < self.knots[mid] or xi >= self.knots[mid + 1]:
            if xi < self.knots[mid]:
                high = mid
            else:
                low = mid
            mid = (low + high) // 2

        return mid

    def find_span_range(self, xi_min: float, xi_max: float,
                        tol: float = 0.0) -> Tuple[int, int]:
        """
        Knot spans touched by the interval [xi_min, xi_max].

        The interval is shrunk by tol on both ends so that an interval ending
        exactly on a knot does not report the neighbouring span.
        """
        lo = xi_min + tol
        hi = xi_max - tol
        if hi < lo:
            lo = hi = 0.5 * (xi_min + xi_max)
        return self.find_span(lo), self.find_span(hi)

    def active_basis_indices(self, span: int) -> np.ndarray:
        """
        Indices of the p+1 basis functions that are non-zero on a knot span.

        For span index i, active functions are i-p, i-p+1, ..., i.
        """
        return np.arange(span - self.degree, span + 1)

    def greville_abscissae(self) -> np.ndarray:
        """
        Compute Greville abscissae (nodal parameters for basis functions).

        The i-th Greville abscissa is the average of p consecutive knots:
        xi_i = (xi_{i+1} + xi_{i+2} + ... + xi_{i+p}) / p
        """
        p = self.degree
        if p == 0:
            return 0.5 * (self.knots[:-1] + self.knots[1:])
        return np.array([np.sum(self.knots[i + 1:i + p + 1]) / p
                         for i in range(self.n_basis)])


def make_open_knot_vector(n_basis: int, degree: int,
                          domain: Tuple[float, float] = (0.0, 1.0)) -> KnotVector:
    """
    Create an open (clamped) uniform knot vector.

    Open knot vectors have the first and last knot repeated p+1 times,
    ensuring the basis interpolates the first and last control points.

    Parameters:
        n_basis: Number of basis functions desired
        degree: Polynomial degree p
        domain: Parametric domain (start, end)

    Returns:
        KnotVector with uniform internal knots
    """
    p = degree
    n_internal = n_basis - p - 1

    if n_internal < 0:
        raise ValueError(
            f"Cannot create knot vector: n_basis={n_basis} too small for degree={degree}"
        )

    a, b = domain
    knots = [a] * (p + 1)
    if n_internal > 0:
        knots.extend(np.linspace(a, b, n_internal + 2)[1:-1])
    knots.extend([b] * (p + 1))

    return KnotVector(np.array(knots), degree)
