from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment
from scipy.sparse.csgraph import NegativeCycleError, bellman_ford, csgraph_from_dense

from utils.utils import setup_logger

logger = setup_logger(__name__)


class InfeasibleAssignmentError(RuntimeError):
    """The cost matrix admits no finite assignment, or no dual certificate could be built."""


@dataclass(eq=False)
class Mapping:
    """
    A node mapping between two graphs with explicit epsilon bookkeeping.

    Attributes
    ----------
    g1_to_g2 : np.ndarray
        Length ``n``. ``g1_to_g2[i] = j < m`` substitutes node i by node j,
        ``g1_to_g2[i] = m`` deletes node i.
    g2_to_g1 : np.ndarray
        Length ``m``. ``g2_to_g1[j] = i < n`` is the converse of a substitution,
        ``g2_to_g1[j] = n`` inserts node j.
    """

    g1_to_g2: np.ndarray
    g2_to_g1: np.ndarray

    def __post_init__(self):
        self.g1_to_g2 = np.asarray(self.g1_to_g2, dtype=int)
        self.g2_to_g1 = np.asarray(self.g2_to_g1, dtype=int)

    @property
    def n(self) -> int:
        return len(self.g1_to_g2)

    @property
    def m(self) -> int:
        return len(self.g2_to_g1)

    @classmethod
    def from_lsap(cls, perm, n: int, m: int) -> "Mapping":
        """
        Decodes a square (n+m) permutation into a rectangular mapping.

        Left indices sent to a deletion slot (``>= m``) map to epsilon, right
        indices not reached by a real left node map to epsilon.
        """
        perm = np.asarray(perm, dtype=int)
        g1_to_g2 = np.full(n, m, dtype=int)
        g2_to_g1 = np.full(m, n, dtype=int)
        for i in range(n):
            if perm[i] < m:
                g1_to_g2[i] = perm[i]
                g2_to_g1[perm[i]] = i
        return cls(g1_to_g2, g2_to_g1)

    def to_lsap(self) -> np.ndarray:
        """
        Embeds the mapping into a permutation of size n+m.

        Substitutions carry over, node i deleted goes to its own slot ``m+i``,
        epsilon row ``n+j`` goes to column j when j is inserted and otherwise
        to the first deletion slot still free.
        """
        n, m = self.n, self.m
        perm = np.empty(n + m, dtype=int)
        slot_used = np.zeros(n, dtype=bool)
        for i in range(n):
            if self.g1_to_g2[i] < m:
                perm[i] = self.g1_to_g2[i]
            else:
                perm[i] = m + i
                slot_used[i] = True
        first_free = 0
        for j in range(m):
            if self.g2_to_g1[j] >= n:
                perm[n + j] = j
            else:
                while first_free < n and slot_used[first_free]:
                    first_free += 1
                perm[n + j] = m + first_free
                slot_used[first_free] = True
        return perm

    def to_matrix(self) -> np.ndarray:
        """Binary (n+1)x(m+1) matrix of the mapping; the epsilon/epsilon cell stays 0."""
        n, m = self.n, self.m
        X = np.zeros((n + 1, m + 1))
        X[np.arange(n), self.g1_to_g2] = 1.0
        inserted = np.flatnonzero(self.g2_to_g1 >= n)
        X[n, inserted] = 1.0
        return X

    def linear_cost(self, C: np.ndarray) -> float:
        """Sum of the cells of an (n+1)x(m+1) cost matrix selected by the mapping."""
        n = self.n
        inserted = np.flatnonzero(self.g2_to_g1 >= n)
        return float(C[np.arange(n), self.g1_to_g2].sum() + C[n, inserted].sum())

    def is_valid(self) -> bool:
        """Checks that both arrays are total and mutually consistent."""
        n, m = self.n, self.m
        if np.any(self.g1_to_g2 < 0) or np.any(self.g1_to_g2 > m):
            return False
        if np.any(self.g2_to_g1 < 0) or np.any(self.g2_to_g1 > n):
            return False
        for i, j in enumerate(self.g1_to_g2):
            if j < m and self.g2_to_g1[j] != i:
                return False
        for j, i in enumerate(self.g2_to_g1):
            if i < n and self.g1_to_g2[i] != j:
                return False
        return True

    def copy(self) -> "Mapping":
        return Mapping(self.g1_to_g2.copy(), self.g2_to_g1.copy())

    def __eq__(self, other):
        if not isinstance(other, Mapping):
            return NotImplemented
        return (np.array_equal(self.g1_to_g2, other.g1_to_g2)
                and np.array_equal(self.g2_to_g1, other.g2_to_g1))

    def __hash__(self):
        return hash((self.g1_to_g2.tobytes(), self.g2_to_g1.tobytes()))


def lsap_cost_matrix(C: np.ndarray) -> np.ndarray:
    """
    Embeds an (n+1)x(m+1) LSAPE cost matrix into a square (n+m)x(n+m) one.

    The top-left n x m block holds substitutions, cell (i, m+i) the deletion
    of i, cell (n+j, j) the insertion of j and the bottom-right m x n block
    is free. Every other cell is infinite.
    """
    n, m = C.shape[0] - 1, C.shape[1] - 1
    square = np.full((n + m, n + m), np.inf)
    square[:n, :m] = C[:n, :m]
    square[np.arange(n), m + np.arange(n)] = C[:n, m]
    square[n + np.arange(m), np.arange(m)] = C[n, :m]
    square[n:, m:] = 0.0
    return square


def _check_lsape_matrix(C) -> np.ndarray:
    C = np.asarray(C, dtype=float)
    if C.ndim != 2 or C.shape[0] < 1 or C.shape[1] < 1:
        raise ValueError(f"LSAPE cost matrix must be (n+1)x(m+1), got shape {C.shape}")
    return C


def lsape_duals(C: np.ndarray, rho: np.ndarray, varrho: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Recovers dual potentials certifying an optimal LSAPE assignment.

    The dual constraints ``u[i] + v[j] <= C[i, j]``, ``u[i] <= C[i, m]`` and
    ``v[j] <= C[n, j]``, tight on the assigned cells, form a system of
    difference constraints over the rows, the columns and the epsilon node.
    Shortest-path distances from a virtual source solve it; the potentials
    are shifted so that the epsilon node sits at 0.

    Parameters
    ----------
    C : np.ndarray
        The (n+1)x(m+1) cost matrix.
    rho, varrho : np.ndarray
        An optimal assignment in ``solve_lsape`` format.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        ``u`` of length n+1 and ``v`` of length m+1 with ``u[n] = v[m] = 0``.
    """
    n, m = C.shape[0] - 1, C.shape[1] - 1
    eps, source = 0, n + m + 1
    rows = 1 + np.arange(n)
    cols = 1 + n + np.arange(m)

    W = np.full((n + m + 2, n + m + 2), np.inf)
    W[np.ix_(cols, rows)] = C[:n, :m].T
    W[eps, rows] = C[:n, m]
    W[cols, eps] = C[n, :m]
    for i in range(n):
        if rho[i] < m:
            W[rows[i], cols[rho[i]]] = -C[i, rho[i]]
        else:
            W[rows[i], eps] = -C[i, m]
    for j in range(m):
        if varrho[j] >= n:
            W[eps, cols[j]] = -C[n, j]
    W[source, :source] = 0.0

    graph = csgraph_from_dense(W, null_value=np.inf)
    try:
        dist = bellman_ford(graph, directed=True, indices=source)
    except NegativeCycleError as e:
        raise InfeasibleAssignmentError("assignment is not optimal, no dual certificate exists") from e

    potential = dist - dist[eps]
    u = np.append(potential[rows], 0.0)
    v = np.append(-potential[cols], 0.0)
    return u, v


def solve_lsape(C, duals: bool = True) -> Tuple[np.ndarray, np.ndarray, Optional[np.ndarray], Optional[np.ndarray]]:
    """
    Solves a linear sum assignment problem with error-correction (LSAPE).

    Parameters
    ----------
    C : array_like
        (n+1)x(m+1) cost matrix: substitutions in the top-left block,
        deletions in the last column, insertions in the last row.
        Infinite cells are never selected.
    duals : bool, optional
        Also compute the dual potentials. Defaults to True.

    Returns
    -------
    tuple
        ``rho`` (length n, values in [0, m]), ``varrho`` (length m, values in
        [0, n]), and the dual vectors ``u`` (length n+1) and ``v`` (length
        m+1), or ``None`` for both when ``duals`` is False.

    Raises
    ------
    InfeasibleAssignmentError
        When no finite assignment exists.
    """
    C = _check_lsape_matrix(C)
    n, m = C.shape[0] - 1, C.shape[1] - 1
    rho = np.full(n, m, dtype=int)
    varrho = np.full(m, n, dtype=int)

    if n > 0 and m > 0:
        try:
            row_ind, col_ind = linear_sum_assignment(lsap_cost_matrix(C))
        except ValueError as e:
            raise InfeasibleAssignmentError(f"no feasible assignment for a {n + 1}x{m + 1} matrix: {e}") from e
        for i, j in zip(row_ind, col_ind):
            if i < n and j < m:
                rho[i] = j
                varrho[j] = i
    elif not (np.all(np.isfinite(C[:n, m])) and np.all(np.isfinite(C[n, :m]))):
        raise InfeasibleAssignmentError(f"no feasible assignment for a {n + 1}x{m + 1} matrix")

    if not duals:
        return rho, varrho, None, None
    u, v = lsape_duals(C, rho, varrho)
    return rho, varrho, u, v
