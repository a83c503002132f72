"""
Sparse storage of the mortar coupling matrices.

CNN is the mass matrix of the master basis, square and symmetric; CNR is
the mixed mass matrix between master (rows) and slave (columns) bases.
Element integration produces dense local matrices which are scattered
additively into the global ones: entries are only ever summed, never
overwritten, except through the explicit editing operations used by the
Dirichlet treatment and the consistency repair.

Contributions are collected as (row, col, value) triplets and converted to
CSR on first access, so that element loops never touch the sparse
structure directly. Adding contributions is guarded by a lock; element
integration may therefore run in worker threads as long as each worker
hands its ElementContribution to add_element_contribution.

Lifecycle:
    1. add_* during assembly
    2. optional editing (Dirichlet rows, enforce_cnn, penalty blocks)
    3. factorize() exactly once
    4. solve_cnn / multiply_cnr / transpose_multiply_cnr as often as needed
    5. consistency repair may edit rows again and refactorize
"""

import logging
import threading
import numpy as np
from dataclasses import dataclass
from typing import Optional, Sequence

from scipy import sparse
from scipy.sparse.linalg import splu

from ..exceptions import MortarMappingError

logger = logging.getLogger(__name__)


@dataclass
class ElementContribution:
    """
    Local coupling matrices of one integrated sub-polygon.

    Attributes:
        master_dofs: Global master DOF indices of the local master functions
        slave_dofs: Global slave DOF indices of the local slave functions
        cnn: (n_master, n_master) local master mass matrix
        cnr: (n_master, n_slave) local mixed mass matrix
    """
    master_dofs: np.ndarray
    slave_dofs: np.ndarray
    cnn: np.ndarray
    cnr: np.ndarray


class CouplingMatrices:
    """
    Global CNN / CNR matrices with factorization of CNN.

    Attributes:
        size_n: Number of master DOFs (rows of CNN and CNR)
        size_r: Number of slave DOFs (columns of CNR)
    """

    def __init__(self, size_n: int, size_r: int):
        if size_n <= 0 or size_r <= 0:
            raise ValueError(f"Coupling matrices need positive sizes, got ({size_n}, {size_r})")
        self.size_n = size_n
        self.size_r = size_r
        self._lock = threading.Lock()
        self._cnn_triplets = ([], [], [])
        self._cnr_triplets = ([], [], [])
        self._cnn = sparse.csr_matrix((size_n, size_n))
        self._cnr = sparse.csr_matrix((size_n, size_r))
        self._lu = None

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def add_cnn_value(self, row: int, col: int, value: float) -> None:
        with self._lock:
            self._append(self._cnn_triplets, [row], [col], [value])

    def add_cnr_value(self, row: int, col: int, value: float) -> None:
        with self._lock:
            self._append(self._cnr_triplets, [row], [col], [value])

    def add_element_contribution(self, contribution: ElementContribution) -> None:
        """Scatter-add the local matrices of one element into CNN and CNR."""
        m = np.asarray(contribution.master_dofs, dtype=int)
        s = np.asarray(contribution.slave_dofs, dtype=int)
        rows_nn, cols_nn = np.meshgrid(m, m, indexing="ij")
        rows_nr, cols_nr = np.meshgrid(m, s, indexing="ij")
        with self._lock:
            self._append(self._cnn_triplets, rows_nn.ravel(), cols_nn.ravel(),
                         np.asarray(contribution.cnn).ravel())
            self._append(self._cnr_triplets, rows_nr.ravel(), cols_nr.ravel(),
                         np.asarray(contribution.cnr).ravel())

    def add_cnn_block(self, dofs: Sequence[int], block: np.ndarray) -> None:
        """Scatter-add a dense square block into CNN (penalty terms)."""
        dofs = np.asarray(dofs, dtype=int)
        rows, cols = np.meshgrid(dofs, dofs, indexing="ij")
        with self._lock:
            self._append(self._cnn_triplets, rows.ravel(), cols.ravel(),
                         np.asarray(block).ravel())

    def _append(self, triplets, rows, cols, values) -> None:
        triplets[0].extend(rows)
        triplets[1].extend(cols)
        triplets[2].extend(values)
        self._lu = None

    def _flush(self) -> None:
        with self._lock:
            for triplets, attr, shape in ((self._cnn_triplets, "_cnn", (self.size_n, self.size_n)),
                                          (self._cnr_triplets, "_cnr", (self.size_n, self.size_r))):
                rows, cols, values = triplets
                if not values:
                    continue
                pending = sparse.csr_matrix((values, (rows, cols)), shape=shape)
                setattr(self, attr, (getattr(self, attr) + pending).tocsr())
                rows.clear()
                cols.clear()
                values.clear()

    @property
    def cnn(self) -> sparse.csr_matrix:
        self._flush()
        return self._cnn

    @property
    def cnr(self) -> sparse.csr_matrix:
        self._flush()
        return self._cnr

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def _edit_cnn(self):
        self._flush()
        self._lu = None
        return self._cnn.tolil()

    def delete_row_cnn(self, row: int) -> None:
        cnn = self._edit_cnn()
        cnn[row, :] = 0.0
        self._cnn = cnn.tocsr()
        self._cnn.eliminate_zeros()

    def set_cnn_value(self, row: int, col: int, value: float) -> None:
        cnn = self._edit_cnn()
        cnn[row, col] = value
        self._cnn = cnn.tocsr()

    def cnr_row_sum(self, row: int) -> float:
        return float(self.cnr.getrow(row).sum())

    def cnn_empty_rows(self, tol: float = 0.0) -> np.ndarray:
        """Rows of CNN whose entries are all at most tol in magnitude."""
        cnn = abs(self.cnn)
        row_max = np.asarray(cnn.max(axis=1).todense()).ravel()
        return np.flatnonzero(row_max <= tol)

    def enforce_cnn(self) -> np.ndarray:
        """
        Make CNN invertible by giving empty rows a unit diagonal.

        Empty rows belong to master functions whose support is not covered
        by the slave mesh; their mapped values become zero.

        Returns:
            Indices of the empty rows
        """
        empty = self.cnn_empty_rows()
        if empty.size:
            logger.info("%d empty rows in CNN receive a unit diagonal", empty.size)
            cnn = self._edit_cnn()
            for row in empty:
                cnn[row, row] = 1.0
            self._cnn = cnn.tocsr()
        return empty

    def apply_dirichlet(self, master_rows: Sequence[int] = (),
                        slave_cols: Sequence[int] = ()) -> None:
        """
        Constrain DOFs to zero.

        Master DOFs: the CNN rows and columns are zeroed with a unit diagonal
        and the CNR rows are zeroed, so consistent mapping returns 0 there.
        Slave DOFs: the CNR columns are zeroed, so their values never enter
        the mapped field.
        """
        master_rows = np.asarray(master_rows, dtype=int)
        slave_cols = np.asarray(slave_cols, dtype=int)
        if master_rows.size == 0 and slave_cols.size == 0:
            return
        cnn = self._edit_cnn()
        cnr = self._cnr.tolil()
        for row in master_rows:
            cnn[row, :] = 0.0
            cnn[:, row] = 0.0
            cnn[row, row] = 1.0
            cnr[row, :] = 0.0
        for col in slave_cols:
            cnr[:, col] = 0.0
        self._cnn = cnn.tocsr()
        self._cnn.eliminate_zeros()
        self._cnr = cnr.tocsr()
        self._cnr.eliminate_zeros()

    def expand_to_vector_field(self, n_components: int) -> None:
        """
        Switch to vector fields with n_components per DOF.

        DOF k becomes DOFs n_components * k + j; both matrices are replaced
        by their Kronecker product with the identity.
        """
        self._flush()
        identity = sparse.identity(n_components, format="csr")
        self._cnn = sparse.kron(self._cnn, identity, format="csr")
        self._cnr = sparse.kron(self._cnr, identity, format="csr")
        self.size_n *= n_components
        self.size_r *= n_components
        self._lu = None

    # ------------------------------------------------------------------
    # Solve
    # ------------------------------------------------------------------

    @property
    def is_factorized(self) -> bool:
        return self._lu is not None

    def factorize(self) -> None:
        """LU factorization of CNN; required before solve_cnn."""
        try:
            self._lu = splu(self.cnn.tocsc())
        except RuntimeError as exc:
            raise MortarMappingError(
                f"CNN could not be factorized ({exc}). Some master DOFs are not "
                f"covered by the slave mesh."
            ) from exc

    def solve_cnn(self, rhs: np.ndarray) -> np.ndarray:
        if self._lu is None:
            raise RuntimeError("CNN not factorized. Call factorize() first.")
        return self._lu.solve(np.asarray(rhs, dtype=np.float64))

    def multiply_cnr(self, slave_values: np.ndarray) -> np.ndarray:
        return self.cnr @ slave_values

    def transpose_multiply_cnr(self, master_values: np.ndarray) -> np.ndarray:
        return self.cnr.T @ master_values

    def is_cnn_symmetric(self, tol: Optional[float] = None) -> bool:
        cnn = self.cnn
        if tol is None:
            tol = 1e-12 * max(abs(cnn).max(), 1.0)
        difference = cnn - cnn.T
        return difference.nnz == 0 or abs(difference).max() <= tol
