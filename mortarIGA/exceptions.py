"""
Exceptions raised while building or applying a mortar mapping.

Low-level numerical routines (knot vectors, basis evaluation, quadrature)
raise plain ValueError on bad input. The classes below describe failures
of the mapping build itself, which abort the whole operation.
"""

from typing import Optional, Sequence

import numpy as np


class MortarMappingError(RuntimeError):
    """Base class for irrecoverable mapping failures."""


class ConfigurationError(MortarMappingError, ValueError):
    """Inputs do not fit together (mesh/parameter mismatch, bad field size, ...)."""


class ProjectionError(MortarMappingError):
    """
    FE nodes could not be projected on any patch after all fallbacks.

    Attributes:
        node_indices: Indices of the unprojected nodes
        coordinates: Their Cartesian coordinates, shape (n, 3)
    """

    def __init__(self, message: str, node_indices: Sequence[int] = (),
                 coordinates: Optional[np.ndarray] = None):
        super().__init__(message)
        self.node_indices = list(node_indices)
        self.coordinates = coordinates


class BoundaryProjectionError(MortarMappingError):
    """An FE element edge crossing an untrimmed patch boundary was not found."""


class OrientationError(MortarMappingError):
    """Tangent or normal vectors of a weak continuity condition are ambiguous."""


class InconsistentMappingError(MortarMappingError):
    """
    The mapping does not reproduce a unit field.

    Attributes:
        rms_deviation: Root-mean-square deviation from 1 of the mapped unit field
    """

    def __init__(self, message: str, rms_deviation: float):
        super().__init__(message)
        self.rms_deviation = rms_deviation
