"""
Multi-patch IGA surface mesh.

The IGA mesh is an ordered list of patches sharing one global DOF
numbering. Besides geometry it carries the information the mortar mapper
needs on the IGA side:
- the number of global DOFs (control points with distinct DOF index)
- clamped control points and directions (homogeneous Dirichlet conditions)
- weak continuity conditions between non-conforming patches
"""

import logging
import numpy as np
from typing import List, Optional, Sequence

from .continuity import WeakContinuityCondition
from .patch import IGAPatchSurface

logger = logging.getLogger(__name__)


class IGAMesh:
    """
    Ordered collection of IGA patches.

    Attributes:
        name: Mesh name used in log messages
        patches: The surface patches
        num_nodes: Number of global DOFs (max DOF index + 1 when not given)
        clamped_dofs: Global DOF indices of clamped control points
        clamped_directions: Cartesian directions (0, 1, 2) fixed at clamped DOFs
        weak_continuity_conditions: Penalty couplings between patches
    """

    def __init__(self, patches: Optional[Sequence[IGAPatchSurface]] = None,
                 num_nodes: Optional[int] = None, name: str = "meshIGA"):
        self.name = name
        self.patches: List[IGAPatchSurface] = []
        self._num_nodes = num_nodes
        self.clamped_dofs = np.zeros(0, dtype=int)
        self.clamped_directions = (0, 1, 2)
        self.weak_continuity_conditions: List[WeakContinuityCondition] = []
        for patch in patches or []:
            self.add_patch(patch)

    def add_patch(self, patch: IGAPatchSurface) -> int:
        """Append a patch and return its index."""
        self.patches.append(patch)
        return len(self.patches) - 1

    @property
    def n_patches(self) -> int:
        return len(self.patches)

    @property
    def num_nodes(self) -> int:
        if self._num_nodes is not None:
            return self._num_nodes
        if not self.patches:
            return 0
        return int(max(patch.dof_indices.max() for patch in self.patches)) + 1

    def set_clamped_dofs(self, dofs: Sequence[int], directions: Sequence[int] = (0, 1, 2)) -> None:
        """
        Mark control point DOFs as clamped.

        Parameters:
            dofs: Global DOF indices
            directions: Cartesian directions fixed at those DOFs; only
                        relevant when the mapping runs on 3-component fields
        """
        dofs = np.unique(np.asarray(dofs, dtype=int))
        if dofs.size and (dofs.min() < 0 or dofs.max() >= self.num_nodes):
            raise ValueError(f"Clamped DOFs must lie in [0, {self.num_nodes})")
        if not set(directions) <= {0, 1, 2}:
            raise ValueError(f"Clamped directions must be among 0, 1, 2, got {directions}")
        self.clamped_dofs = dofs
        self.clamped_directions = tuple(sorted(set(directions)))

    def add_weak_continuity_condition(self, condition: WeakContinuityCondition) -> None:
        for index in (condition.master_patch_index, condition.slave_patch_index):
            if not 0 <= index < self.n_patches:
                raise ValueError(f"Weak continuity condition refers to unknown patch {index}")
        self.weak_continuity_conditions.append(condition)
        logger.debug("Weak continuity condition between patches %d and %d with %d Gauss points",
                     condition.master_patch_index, condition.slave_patch_index,
                     condition.n_gauss_points)

    def __getitem__(self, index: int) -> IGAPatchSurface:
        return self.patches[index]

    def __len__(self) -> int:
        return len(self.patches)

    def __iter__(self):
        return iter(self.patches)
