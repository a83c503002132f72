"""
Control point abstraction for IGA patches.

Control points are the DOFs of the IGA side of the mortar coupling.
Unlike FE nodes which only have coordinates, IGA control points have:
- Physical coordinates
- NURBS weight
- A global DOF index, shared by all patches that reference the same point

Two patches that are conforming along an edge may refer to the same
control points; they then carry the same dof_index and the coupling
matrices see a single unknown.
"""

import numpy as np
from typing import List, Optional, Sequence
from dataclasses import dataclass


@dataclass
class ControlPoint:
    """
    Control point of a NURBS patch.

    Attributes:
        id: Identifier inside its patch (position in the control net)
        coordinates: Physical coordinates (x, y, z)
        weight: NURBS weight (1.0 for B-splines)
        dof_index: Global DOF index in the IGA mesh
    """
    id: int
    coordinates: np.ndarray
    weight: float = 1.0
    dof_index: int = -1

    def __post_init__(self):
        self.coordinates = np.asarray(self.coordinates, dtype=np.float64)
        if self.coordinates.shape == (2,):
            self.coordinates = np.append(self.coordinates, 0.0)
        if self.coordinates.shape != (3,):
            raise ValueError(
                f"Control point {self.id} needs 2 or 3 coordinates, "
                f"got shape {self.coordinates.shape}"
            )
        if self.weight <= 0:
            raise ValueError(f"Control point {self.id} has non-positive weight {self.weight}")

    @property
    def x(self) -> float:
        return self.coordinates[0]

    @property
    def y(self) -> float:
        return self.coordinates[1]

    @property
    def z(self) -> float:
        return self.coordinates[2]

    def __repr__(self) -> str:
        return (f"ControlPoint(id={self.id}, coord={self.coordinates}, "
                f"w={self.weight}, dof={self.dof_index})")


def create_control_points_from_array(
    coordinates: np.ndarray,
    weights: Optional[np.ndarray] = None,
    dof_indices: Optional[Sequence[int]] = None
) -> List[ControlPoint]:
    """
    Create ControlPoint objects from coordinate array.

    Parameters:
        coordinates: Array of shape (n_points, 2) or (n_points, 3)
        weights: Optional array of shape (n_points,), defaults to 1.0
        dof_indices: Optional global DOF indices, defaults to 0..n_points-1

    Returns:
        List of ControlPoint in the order of the input rows
    """
    coordinates = np.atleast_2d(np.asarray(coordinates, dtype=np.float64))
    n_points = coordinates.shape[0]

    if weights is None:
        weights = np.ones(n_points)
    if dof_indices is None:
        dof_indices = range(n_points)
    if len(weights) != n_points or len(dof_indices) != n_points:
        raise ValueError("weights and dof_indices must have one entry per control point")

    return [
        ControlPoint(id=i, coordinates=coordinates[i].copy(),
                     weight=float(weights[i]), dof_index=int(dof_indices[i]))
        for i in range(n_points)
    ]
