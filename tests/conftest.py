"""
Pytest configuration and shared fixtures for mortar mapping tests.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add the parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from mortarIGA.discretization.fe_mesh import make_structured_quad_mesh
from mortarIGA.geometry.iga_mesh import IGAMesh
from mortarIGA.geometry.primitives import make_plane_patch


@pytest.fixture
def tolerance():
    """Default tolerance for floating point comparisons."""
    return 1e-12


@pytest.fixture
def loose_tolerance():
    """Looser tolerance for numerical integration tests."""
    return 1e-8


@pytest.fixture
def unit_square_patch():
    """Bilinear patch on the unit square with one interior knot per direction."""
    return make_plane_patch(p=1, n_elem_u=2, n_elem_v=2)


@pytest.fixture
def single_patch_mesh(unit_square_patch):
    return IGAMesh([unit_square_patch])


@pytest.fixture
def quad_mesh_2x2():
    """2x2 quadrilateral FE mesh on the unit square."""
    return make_structured_quad_mesh(n_x=2, n_y=2)


@pytest.fixture
def two_patch_mesh():
    """Unit square split at x = 0.5 into two quadratic patches with separate DOFs."""
    left = make_plane_patch((0.0, 0.5), (0.0, 1.0), p=2, n_elem_u=1, n_elem_v=2)
    right = make_plane_patch((0.5, 1.0), (0.0, 1.0), p=2, n_elem_u=1, n_elem_v=2,
                             dof_offset=left.n_control_points)
    return IGAMesh([left, right])
