from __future__ import annotations

from typing import List, Optional, Tuple

import networkx as nx
import numpy as np

import config
from assignment import Mapping, lsap_cost_matrix, solve_lsape
from costs import EditCost
from ged import GraphEditDistance, MappingGenerator
from matching import PerfectMatchingEnumerator, equality_digraph
from utils.utils import setup_logger

logger = setup_logger(__name__)


class BipartiteGraphEditDistance(GraphEditDistance):
    """
    Bipartite approximation of the graph edit distance (Riesen & Bunke).

    Each node pair is priced by its own substitution cost plus the cheapest
    assignment between the edges incident to the two nodes; deletions and
    insertions carry the cost of their incident edges. One LSAPE over the
    resulting (n+1)x(m+1) matrix gives the mapping.

    Attributes
    ----------
    cf : EditCost
        The edit cost model.
    C : np.ndarray | None
        The cost matrix of the last computation.
    """

    def __init__(self, cf: EditCost):
        super().__init__(cf)
        self.C: Optional[np.ndarray] = None

    def substitution_cost(self, g1: nx.Graph, u1, g2: nx.Graph, u2) -> float:
        edges1 = list(g1.edges(u1))
        edges2 = list(g2.edges(u2))
        p, q = len(edges1), len(edges2)

        local_C = np.zeros((p + 1, q + 1))
        for a, e1 in enumerate(edges1):
            for b, e2 in enumerate(edges2):
                local_C[a, b] = self.cf.edge_substitution_cost(g1, e1, g2, e2)
        for a, e1 in enumerate(edges1):
            local_C[a, q] = self.cf.edge_deletion_cost(g1, e1)
        for b, e2 in enumerate(edges2):
            local_C[p, b] = self.cf.edge_insertion_cost(g2, e2)

        rho, varrho, _, _ = solve_lsape(local_C, duals=False)
        edge_cost = Mapping(rho, varrho).linear_cost(local_C)
        return edge_cost + self.cf.node_substitution_cost(g1, u1, g2, u2)

    def deletion_cost(self, g1: nx.Graph, u1) -> float:
        cost = sum(self.cf.edge_deletion_cost(g1, e1) for e1 in g1.edges(u1))
        return cost + self.cf.node_deletion_cost(g1, u1)

    def insertion_cost(self, g2: nx.Graph, u2) -> float:
        cost = sum(self.cf.edge_insertion_cost(g2, e2) for e2 in g2.edges(u2))
        return cost + self.cf.node_insertion_cost(g2, u2)

    def compute_cost_matrix(self, g1: nx.Graph, g2: nx.Graph) -> np.ndarray:
        nodes1, nodes2 = list(g1.nodes), list(g2.nodes)
        n, m = len(nodes1), len(nodes2)

        C = np.zeros((n + 1, m + 1))
        for i, u1 in enumerate(nodes1):
            for j, u2 in enumerate(nodes2):
                C[i, j] = self.substitution_cost(g1, u1, g2, u2)
        for i, u1 in enumerate(nodes1):
            C[i, m] = self.deletion_cost(g1, u1)
        for j, u2 in enumerate(nodes2):
            C[n, j] = self.insertion_cost(g2, u2)

        self.C = C
        return C

    def solve(self, g1: nx.Graph, g2: nx.Graph) -> Tuple[Mapping, float]:
        """
        Computes the bipartite mapping and its linear cost.

        Returns
        -------
        tuple[Mapping, float]
            The optimal LSAPE mapping and its cost with respect to ``self.C``.
        """
        C = self.compute_cost_matrix(g1, g2)
        rho, varrho, _, _ = solve_lsape(C, duals=False)
        mapping = Mapping(rho, varrho)
        return mapping, mapping.linear_cost(C)

    def get_optimal_mapping(self, g1: nx.Graph, g2: nx.Graph) -> Mapping:
        mapping, _ = self.solve(g1, g2)
        return mapping


class BipartiteGraphEditDistanceMulti(GraphEditDistance, MappingGenerator):
    """
    Several equally optimal bipartite mappings, and the best of them.

    The LSAPE is solved once, its solution is embedded into a square
    (n+m)x(n+m) assignment and every perfect matching of the equality
    digraph of that assignment is another mapping of the same linear cost.
    The mapping kept is the one with the lowest true edit cost.

    Parameters
    ----------
    cf : EditCost
        The edit cost model.
    k : int, optional
        Number of mappings to enumerate, -1 for all. Defaults to ``config.DEFAULT_K``.
    distinct : bool, optional
        Only report square assignments that decode to different mappings.
        Defaults to False.
    tol : float, optional
        Tolerance on zero reduced costs. Defaults to ``config.EQUALITY_TOL``.
    """

    def __init__(self, cf: EditCost, k: int = config.DEFAULT_K, distinct: bool = False, tol: float = None):
        super().__init__(cf)
        self.bipartite = BipartiteGraphEditDistance(cf)
        self._nep = k
        self._ged = -1.0
        self._Clsap: Optional[np.ndarray] = None
        self.distinct = distinct
        self.tol = config.EQUALITY_TOL if tol is None else tol

    def set_k(self, k: int):
        self._nep = k

    def get_k(self) -> int:
        return self._nep

    def get_ged(self) -> float:
        """The distance of the last ``compute_optimal_mapping``, -1 before any."""
        return self._ged

    def get_k_optimal_mappings(self, g1: nx.Graph, g2: nx.Graph,
                               C: Optional[np.ndarray] = None, k: Optional[int] = None) -> List[np.ndarray]:
        """
        Returns up to ``k`` optimal square assignments between g1 and g2.

        Parameters
        ----------
        g1, g2 : nx.Graph
            The graphs.
        C : np.ndarray, optional
            The (n+1)x(m+1) cost matrix; the bipartite one when omitted.
        k : int, optional
            Number of assignments, -1 for all. Defaults to ``get_k()``.

        Returns
        -------
        list[np.ndarray]
            Permutations of size n+m, the LSAPE solution first. Index i < n
            maps to a node of g2 or to the deletion slot ``m+i``; index
            ``n+j`` maps to j (insertion) or to a free deletion slot.
        """
        n, m = g1.number_of_nodes(), g2.number_of_nodes()
        if k is None:
            k = self._nep
        if C is None:
            C = self.bipartite.compute_cost_matrix(g1, g2)
        C = np.asarray(C, dtype=float)
        if C.shape != (n + 1, m + 1):
            raise ValueError(f"cost matrix must be {(n + 1, m + 1)}, got {C.shape}")

        self._Clsap = lsap_cost_matrix(C)
        rho, varrho, u, v = solve_lsape(C)
        perm = Mapping(rho, varrho).to_lsap()

        # epsilon rows and columns of the square problem get null potentials
        lu = np.concatenate([u[:n], np.zeros(m)])
        lv = np.concatenate([v[:m], np.zeros(n)])
        gm = equality_digraph(self._Clsap, perm, lu, lv, self.tol)

        key = (lambda p: Mapping.from_lsap(p, n, m)) if self.distinct else None
        mappings = PerfectMatchingEnumerator(gm, perm).enumerate(k, key=key)
        logger.debug(f"{len(mappings)} optimal mappings of linear cost {Mapping(rho, varrho).linear_cost(C):.4f}")
        return mappings

    def get_mappings(self, g1: nx.Graph, g2: nx.Graph, k: int) -> List[np.ndarray]:
        return self.get_k_optimal_mappings(g1, g2, None, k)

    def compute_optimal_mapping(self, g1: nx.Graph, g2: nx.Graph, C: Optional[np.ndarray] = None) -> Mapping:
        """
        Keeps, among the optimal assignments, the one of lowest true edit cost.

        The first assignment wins on ties. The distance is stored and
        available through ``get_ged()``.
        """
        n, m = g1.number_of_nodes(), g2.number_of_nodes()
        best, self._ged = None, -1.0
        for perm in self.get_k_optimal_mappings(g1, g2, C, self._nep):
            mapping = Mapping.from_lsap(perm, n, m)
            ged = self.ged_from_mapping(g1, g2, mapping)
            if best is None or ged < self._ged:
                best, self._ged = mapping, ged
        return best

    def get_optimal_mapping(self, g1: nx.Graph, g2: nx.Graph) -> Mapping:
        return self.compute_optimal_mapping(g1, g2)
