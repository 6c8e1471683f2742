from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import networkx as nx
import numpy as np

import config
from assignment import Mapping, solve_lsape
from bipartite import BipartiteGraphEditDistance
from costs import EditCost, node_cost_matrix
from ged import GraphEditDistance, MappingRefinement
from utils.utils import setup_logger

logger = setup_logger(__name__)


@dataclass
class EdgeStructure:
    """
    Edge costs of a pair of graphs, laid out for the quadratic term.

    Self-loops are left out. Undirected edges appear in both orientations.

    Attributes
    ----------
    directed : bool
        Both graphs are directed.
    W1 : np.ndarray
        (n+1)x(n+1), deletion cost of edge (i, j) of g1, 0 where there is none.
    B1 : np.ndarray
        (n+1)x(n+1), 1 where g1 has no edge (i, j), 0 on edges and on the real diagonal.
    W2, B2 : np.ndarray
        Same for g2 with insertion costs.
    src1, dst1, src2, dst2 : np.ndarray
        Endpoints of the oriented edges of g1 and g2.
    sub : np.ndarray
        Substitution cost of every oriented edge of g1 by every oriented edge of g2.
    """

    directed: bool
    W1: np.ndarray
    B1: np.ndarray
    W2: np.ndarray
    B2: np.ndarray
    src1: np.ndarray
    dst1: np.ndarray
    src2: np.ndarray
    dst2: np.ndarray
    sub: np.ndarray


def _oriented_edges(g: nx.Graph, directed: bool):
    index = {u: i for i, u in enumerate(g.nodes)}
    edges = [(a, b) for a, b in g.edges() if a != b]
    src, dst, eid = [], [], []
    for e, (a, b) in enumerate(edges):
        src.append(index[a])
        dst.append(index[b])
        eid.append(e)
        if not directed:
            src.append(index[b])
            dst.append(index[a])
            eid.append(e)
    return edges, np.array(src, dtype=int), np.array(dst, dtype=int), np.array(eid, dtype=int)


def _no_edge_mask(size: int, src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    B = np.ones((size + 1, size + 1))
    B[src, dst] = 0.0
    B[np.arange(size), np.arange(size)] = 0.0
    return B


def edge_structure(g1: nx.Graph, g2: nx.Graph, cf: EditCost) -> EdgeStructure:
    if g1.is_directed() != g2.is_directed():
        raise ValueError("Cannot compare a directed graph with an undirected one.")
    directed = g1.is_directed() and g2.is_directed()
    n, m = g1.number_of_nodes(), g2.number_of_nodes()

    edges1, src1, dst1, eid1 = _oriented_edges(g1, directed)
    edges2, src2, dst2, eid2 = _oriented_edges(g2, directed)

    deletion = np.array([cf.edge_deletion_cost(g1, e) for e in edges1], dtype=float)
    insertion = np.array([cf.edge_insertion_cost(g2, e) for e in edges2], dtype=float)
    sub = np.array([[cf.edge_substitution_cost(g1, e1, g2, e2) for e2 in edges2] for e1 in edges1],
                   dtype=float).reshape(len(edges1), len(edges2))

    W1 = np.zeros((n + 1, n + 1))
    W1[src1, dst1] = deletion[eid1]
    W2 = np.zeros((m + 1, m + 1))
    W2[src2, dst2] = insertion[eid2]

    return EdgeStructure(
        directed=directed,
        W1=W1, B1=_no_edge_mask(n, src1, dst1),
        W2=W2, B2=_no_edge_mask(m, src2, dst2),
        src1=src1, dst1=dst1, src2=src2, dst2=dst2,
        sub=sub[eid1[:, None], eid2[None, :]],
    )


class IPFPGraphEditDistance(MappingRefinement):
    """
    Integer Projected Fixed Point refinement of a graph edit mapping.

    The edit cost of a mapping matrix X is the quadratic form
    ``<C, X> + <XkD(X), X>`` where C holds the node costs and ``XkD(X)``
    the edge costs implied by X. Each iteration solves the linear
    sub-problem ``2 XkD + C`` for a binary direction, then moves along the
    segment towards it with an exact line search. The final, possibly
    fractional, iterate is projected back onto a mapping.

    Parameters
    ----------
    cf : EditCost
        The edit cost model.
    ed_init : GraphEditDistance, optional
        Provides the initial mapping of ``get_optimal_mapping``;
        the bipartite approximation when omitted.
    max_iter : int, optional
        Iteration budget. Defaults to ``config.IPFP_MAX_ITER``.
    epsilon : float, optional
        Stopping tolerance on the (relative) slope. Defaults to ``config.IPFP_EPSILON``.
    small_r, small_beta : float, optional
        Thresholds below which the sub-problem cost and the curvature count
        as zero. Default to ``config.IPFP_SMALL_R`` and ``config.IPFP_SMALL_BETA``.

    Attributes
    ----------
    S : list[float]
        Quadratic cost of the iterate, per iteration.
    R : list[float]
        Linear sub-problem cost of the direction, per iteration.
    n_iterations : int
        Iterations used by the last run; equal to ``max_iter`` when it
        stopped without meeting the tolerance.
    Xk : np.ndarray | None
        The last (possibly fractional) iterate.
    """

    def __init__(self, cf: EditCost, ed_init: Optional[GraphEditDistance] = None,
                 max_iter: int = config.IPFP_MAX_ITER, epsilon: float = config.IPFP_EPSILON,
                 small_r: float = config.IPFP_SMALL_R, small_beta: float = config.IPFP_SMALL_BETA):
        super().__init__(cf)
        self._ed_init = ed_init
        self.max_iter = max_iter
        self.epsilon = epsilon
        self.small_r = small_r
        self.small_beta = small_beta

        self.C: Optional[np.ndarray] = None
        self.Xk: Optional[np.ndarray] = None
        self.XkD: Optional[np.ndarray] = None
        self.linear_sub_problem: Optional[np.ndarray] = None
        self.S: List[float] = []
        self.R: List[float] = []
        self.Lterm = 0.0
        self.oldLterm = 0.0
        self.n_iterations = 0
        self._edges: Optional[EdgeStructure] = None

    def quadratic_term(self, X: np.ndarray, edges: Optional[EdgeStructure] = None) -> np.ndarray:
        """
        Edge costs incurred by each candidate pair (j, l) given the mapping X.

        ``XkD[j, l] = sum over (i, k) of X[i, k] * cost(edge (i, j), edge (k, l))``
        where a missing edge turns a substitution into a deletion or an
        insertion; pairs with i == j or k == l (real nodes) do not count.
        Halved for undirected graphs, each edge being seen from both ends.
        For directed graphs the term is averaged with its adjoint, which
        leaves ``<XkD(X), X>`` unchanged and makes ``2 XkD`` the gradient.
        """
        s = self._edges if edges is None else edges
        XkD = s.W1.T @ X @ s.B2 + s.B1.T @ X @ s.W2
        np.add.at(XkD, (s.dst1[:, None], s.dst2[None, :]), X[s.src1[:, None], s.src2[None, :]] * s.sub)
        if not s.directed:
            return 0.5 * XkD

        adjoint = s.W1 @ X @ s.B2.T + s.B1 @ X @ s.W2.T
        np.add.at(adjoint, (s.src1[:, None], s.src2[None, :]), X[s.dst1[:, None], s.dst2[None, :]] * s.sub)
        return 0.5 * (XkD + adjoint)

    @staticmethod
    def linear_cost(M: np.ndarray, X: np.ndarray) -> float:
        return float(np.sum(M * X))

    def quadratic_cost(self, g1: nx.Graph, g2: nx.Graph, X: np.ndarray) -> float:
        """
        Cost of a (possibly fractional) (n+1)x(m+1) mapping matrix.

        On a binary matrix it is the edit cost of the mapping, self-loops aside.
        """
        edges = edge_structure(g1, g2, self.cf)
        C = node_cost_matrix(g1, g2, self.cf)
        return self.linear_cost(self.quadratic_term(X, edges), X) + self.linear_cost(C, X)

    def get_alpha(self) -> float:
        return self.R[-1] - 2 * self.S[self.n_iterations] + self.oldLterm

    def get_beta(self) -> float:
        return self.S[-1] + self.S[self.n_iterations] - self.R[-1] - self.oldLterm

    def ipfp_algorithm(self, g1: nx.Graph, g2: nx.Graph):
        """
        Runs IPFP from ``self.Xk``, which may be binary or fractional.

        On return ``self.Xk`` holds the last iterate and ``self.S``,
        ``self.R`` and ``self.n_iterations`` describe the run.
        """
        self._edges = edge_structure(g1, g2, self.cf)
        self.C = node_cost_matrix(g1, g2, self.cf)
        self.S, self.R = [], []

        self.XkD = self.quadratic_term(self.Xk)
        self.Lterm = self.linear_cost(self.C, self.Xk)
        self.S.append(self.linear_cost(self.XkD, self.Xk) + self.Lterm)
        logger.debug(f"S(0) = {self.S[-1]}")

        self.n_iterations = 0
        flag_continue = True
        while self.n_iterations < self.max_iter and flag_continue:
            k = self.n_iterations
            self.XkD = self.quadratic_term(self.Xk)
            self.linear_sub_problem = 2 * self.XkD + self.C

            rho, varrho, _, _ = solve_lsape(self.linear_sub_problem, duals=False)
            direction = Mapping(rho, varrho)
            bkp1 = direction.to_matrix()
            self.R.append(direction.linear_cost(self.linear_sub_problem))

            self.oldLterm = self.Lterm
            self.Lterm = direction.linear_cost(self.C)
            self.XkD = self.quadratic_term(bkp1)
            self.S.append(direction.linear_cost(self.XkD) + self.Lterm)

            alpha = self.get_alpha()
            beta = self.get_beta()
            t0 = -alpha / (2.0 * beta) if beta > self.small_beta else 0.0
            logger.debug(f"iteration {k}: R = {self.R[-1]}, S = {self.S[-1]}, "
                         f"alpha = {alpha}, beta = {beta}, t0 = {t0}")

            if abs(self.R[-1]) < self.small_r:
                flag_continue = abs(alpha) > self.epsilon
            else:
                flag_continue = abs(alpha / self.R[-1]) > self.epsilon

            if beta <= self.small_beta or t0 >= 1:
                self.Xk = bkp1
            else:
                # line search, Xk becomes fractional
                self.Xk = self.Xk + t0 * (bkp1 - self.Xk)
                self.S[k + 1] = self.S[k] - alpha ** 2 / (4 * beta)
                self.Lterm = self.linear_cost(self.C, self.Xk)

            self.n_iterations += 1

        if flag_continue:
            logger.debug(f"IPFP stopped after max_iter={self.max_iter} iterations without converging")
        else:
            logger.debug(f"IPFP converged in {self.n_iterations} iterations, S = {self.S[-1]}")

    def refine(self, g1: nx.Graph, g2: nx.Graph, mapping: Mapping) -> Mapping:
        """
        Refines a mapping to a local optimum of the quadratic edit cost.

        Parameters
        ----------
        g1, g2 : nx.Graph
            The graphs.
        mapping : Mapping
            The initial mapping; it is not modified.

        Returns
        -------
        Mapping
            The projection of the last iterate onto the mappings.
        """
        if mapping.n != g1.number_of_nodes() or mapping.m != g2.number_of_nodes():
            raise ValueError(f"mapping of size ({mapping.n}, {mapping.m}) does not fit graphs of size "
                             f"({g1.number_of_nodes()}, {g2.number_of_nodes()})")
        self.Xk = mapping.to_matrix()
        self.ipfp_algorithm(g1, g2)

        # maximise the weight kept from Xk
        rho, varrho, _, _ = solve_lsape(1.0 - self.Xk, duals=False)
        return Mapping(rho, varrho)

    def get_optimal_mapping(self, g1: nx.Graph, g2: nx.Graph) -> Mapping:
        ed_init = self._ed_init or BipartiteGraphEditDistance(self.cf)
        return self.refine(g1, g2, ed_init.get_optimal_mapping(g1, g2))
