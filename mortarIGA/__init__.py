"""
mortarIGA - Mortar mapping between IGA multi-patch surfaces and FE meshes

Transfers fields between a trimmed multi-patch NURBS surface and a
low-order finite element surface mesh (triangles and quadrilaterals)
using the mortar method: the coupling matrices CNN and CNR are integrated
over the common surface and the mapping solves CNN x = CNR y.

Key modules:
- discretization: Knot vectors, control points, FE surface meshes
- geometry: NURBS, IGA patches, trimming, multi-patch meshes, weak continuity
- quadrature: Gauss-Legendre and triangle rules
- mapping: Point projection, polygon clipping, coupling matrices, the mapper
- config: Mapper parameters and YAML loading

Quick start:
    from mortarIGA.geometry.primitives import make_plane_patch
    from mortarIGA.geometry.iga_mesh import IGAMesh
    from mortarIGA.discretization.fe_mesh import make_structured_quad_mesh
    from mortarIGA.mapping.mortar_mapper import IGAMortarMapper

    mesh_iga = IGAMesh([make_plane_patch(p=2, n_elem_u=4, n_elem_v=4)])
    mesh_fe = make_structured_quad_mesh(n_x=10, n_y=10)

    mapper = IGAMortarMapper("iga2fe", mesh_iga, mesh_fe, is_mapping_iga2fem=True)
    mapper.build_coupling_matrices()
    u_fe = mapper.consistent_mapping(u_iga)
"""

__version__ = "0.1.0"

# Core imports for convenience
from .config import MapperConfig, load_config
from .discretization.fe_mesh import FEMesh, make_structured_quad_mesh
from .geometry.iga_mesh import IGAMesh
from .geometry.patch import IGAPatchSurface
from .geometry.primitives import make_plane_patch
from .mapping.mortar_mapper import IGAMortarMapper
from .exceptions import (
    MortarMappingError,
    ConfigurationError,
    ProjectionError,
    BoundaryProjectionError,
    OrientationError,
    InconsistentMappingError,
)
