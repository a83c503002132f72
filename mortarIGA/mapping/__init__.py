"""
Mortar mapping module.

Provides:
- ProjectionEngine: Projection of FE nodes onto the IGA patches
- CouplingMatrices: Sparse CNN / CNR storage and factorization
- polygon: Clipping, triangulation and canonical coordinates in parameter space
- IGAMortarMapper: Builds the coupling matrices and maps fields
"""

from .coupling_matrices import CouplingMatrices, ElementContribution
from .projection import ProjectionEngine
from .mortar_mapper import IGAMortarMapper
