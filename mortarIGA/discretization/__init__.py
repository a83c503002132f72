"""
Discretization module.

Provides:
- KnotVector: Knot vector representation
- ControlPoint: First-class control point object with global DOF index
- FEMesh: Low-order FE surface mesh (triangles and quadrilaterals)
"""

from .knot_vector import KnotVector, make_open_knot_vector
from .control_point import ControlPoint, create_control_points_from_array
from .fe_mesh import FEMesh, make_structured_quad_mesh
