"""
Geometry module for NURBS curves, IGA patches and multi-patch meshes.
"""

from .nurbs import NURBSCurve, NURBSSurface
from .trimming import PatchTrimming, TrimmingLoop, make_polygon_trimming_loop
from .patch import IGAPatchSurface
from .continuity import WeakContinuityCondition, build_from_curves
from .iga_mesh import IGAMesh
from .primitives import (
    make_plane_patch,
    make_quarter_cylinder_patch,
    make_nurbs_line,
    make_nurbs_arc,
    make_circle_trimming_loop,
)
