"""
Quadrature rules on the line, the quadrilateral and the triangle.
"""

from .gauss import gauss_legendre_1d, gauss_quad_rule, gauss_triangle_rule, points_per_direction
