"""
Finite element surface mesh seen by the mortar mapper.

The mapper only reads the FE mesh: node coordinates, external node IDs and
element connectivity. Elements reference nodes by ID; the direct element
table translates those IDs once into node positions (indices into the node
array) so that the projection and integration loops work on plain indices.

Elements are triangles or quadrilaterals. Polygonal elements with more than
four nodes are accepted on input and must be fan-triangulated first
(see FEMesh.triangulate).
"""

import logging
import numpy as np
from typing import Dict, List, Optional, Sequence

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class FEMesh:
    """
    FE surface mesh with derived lookup tables.

    Attributes:
        name: Mesh name used in log messages
        nodes: Node coordinates, shape (n_nodes, 3)
        node_ids: External node IDs, shape (n_nodes,)
        elements: List of node-ID sequences, one per element
    """

    def __init__(self, nodes: np.ndarray, elements: Sequence[Sequence[int]],
                 node_ids: Optional[Sequence[int]] = None, name: str = "meshFE"):
        nodes = np.asarray(nodes, dtype=np.float64)
        if nodes.ndim != 2 or nodes.shape[1] not in (2, 3):
            raise ConfigurationError(
                f"FE nodes must have shape (n, 2) or (n, 3), got {nodes.shape}"
            )
        if nodes.shape[1] == 2:
            nodes = np.hstack([nodes, np.zeros((nodes.shape[0], 1))])

        self.name = name
        self.nodes = nodes
        if node_ids is None:
            self.node_ids = np.arange(nodes.shape[0])
        else:
            self.node_ids = np.asarray(node_ids, dtype=int)
            if self.node_ids.shape != (nodes.shape[0],):
                raise ConfigurationError("One node ID per FE node is required")
        self.elements = [list(int(n) for n in elem) for elem in elements]
        for e, elem in enumerate(self.elements):
            if len(elem) < 3:
                raise ConfigurationError(f"FE element {e} has fewer than 3 nodes")

        self._direct_element_table = None
        self._node_to_element_table = None

    @property
    def n_nodes(self) -> int:
        return self.nodes.shape[0]

    @property
    def n_elements(self) -> int:
        return len(self.elements)

    @property
    def num_nodes_per_element(self) -> np.ndarray:
        return np.array([len(elem) for elem in self.elements], dtype=int)

    def needs_triangulation(self) -> bool:
        return any(len(elem) > 4 for elem in self.elements)

    def triangulate(self) -> Optional["FEMesh"]:
        """
        Fan-triangulate elements with more than 4 nodes.

        Returns:
            A new FEMesh sharing the nodes, or None when every element is
            already a triangle or a quadrilateral.
        """
        if not self.needs_triangulation():
            return None

        elements = []
        for elem in self.elements:
            if len(elem) <= 4:
                elements.append(list(elem))
                continue
            for k in range(1, len(elem) - 1):
                elements.append([elem[0], elem[k], elem[k + 1]])

        logger.info("Triangulated %s: %d elements -> %d elements",
                    self.name, self.n_elements, len(elements))
        return FEMesh(self.nodes, elements, self.node_ids, name=self.name + "_triangulated")

    @property
    def direct_element_table(self) -> List[np.ndarray]:
        """Per element, the positions of its nodes in the node array."""
        if self._direct_element_table is None:
            id_to_index: Dict[int, int] = {int(nid): i for i, nid in enumerate(self.node_ids)}
            table = []
            for e, elem in enumerate(self.elements):
                try:
                    table.append(np.array([id_to_index[nid] for nid in elem], dtype=int))
                except KeyError as exc:
                    raise ConfigurationError(
                        f"Element {e} of {self.name} references unknown node ID {exc.args[0]}"
                    ) from None
            self._direct_element_table = table
        return self._direct_element_table

    @property
    def node_to_element_table(self) -> List[List[int]]:
        """Per node, the elements it belongs to."""
        if self._node_to_element_table is None:
            table: List[List[int]] = [[] for _ in range(self.n_nodes)]
            for e, node_indices in enumerate(self.direct_element_table):
                for node in node_indices:
                    table[node].append(e)
            self._node_to_element_table = table
        return self._node_to_element_table

    def element_coordinates(self, element_index: int) -> np.ndarray:
        """Node coordinates of an element, shape (n_nodes_elem, 3)."""
        return self.nodes[self.direct_element_table[element_index]]


def make_structured_quad_mesh(x_range=(0.0, 1.0), y_range=(0.0, 1.0),
                              n_x: int = 2, n_y: int = 2, z: float = 0.0,
                              triangles: bool = False) -> FEMesh:
    """
    Create a flat structured FE mesh of quads (or split triangles).

    Nodes are numbered x fastest, which matches the control point ordering
    of a bilinear NURBS patch over the same rectangle.
    """
    xs = np.linspace(x_range[0], x_range[1], n_x + 1)
    ys = np.linspace(y_range[0], y_range[1], n_y + 1)
    nodes = np.array([[x, y, z] for y in ys for x in xs])

    elements = []
    for j in range(n_y):
        for i in range(n_x):
            n0 = j * (n_x + 1) + i
            n1 = n0 + 1
            n3 = n0 + n_x + 1
            n2 = n3 + 1
            if triangles:
                elements.append([n0, n1, n2])
                elements.append([n0, n2, n3])
            else:
                elements.append([n0, n1, n2, n3])

    return FEMesh(nodes, elements)
