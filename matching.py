from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import numpy as np

import config
from utils.utils import setup_logger

logger = setup_logger(__name__)


@dataclass
class BipartiteSCC:
    """Membership of the left (``u``) and right (``v``) vertices in one strongly connected component.

    Attributes
    ----------
    u : np.ndarray
        ``u[i]`` is True iff x_i belongs to the component.
    v : np.ndarray
        ``v[j]`` is True iff y_j belongs to the component.
    """

    u: np.ndarray
    v: np.ndarray

    @classmethod
    def empty(cls, size_u: int, size_v: int) -> "BipartiteSCC":
        return cls(np.zeros(size_u, dtype=bool), np.zeros(size_v, dtype=bool))

    def size(self) -> int:
        return int(self.u.sum() + self.v.sum())


def equality_digraph(C: np.ndarray, perm, u, v, tol: float = None) -> np.ndarray:
    """
    Builds the equality digraph of an optimal assignment.

    Parameters
    ----------
    C : np.ndarray
        Square cost matrix; infinite cells are infeasible.
    perm : array_like
        Optimal assignment, ``perm[i]`` is the column of row i.
    u, v : array_like
        Dual potentials satisfying complementary slackness with ``perm``.
    tol : float, optional
        Reduced costs within ``tol`` of zero count as zero. Defaults to ``config.EQUALITY_TOL``.

    Returns
    -------
    np.ndarray
        int8 matrix ``gm`` with ``gm[i, j] = 1`` for an edge x_i -> y_j
        (zero reduced cost, not in the assignment), ``gm[i, j] = -1`` for the
        assignment edge y_j -> x_i and 0 elsewhere.
    """
    if tol is None:
        tol = config.EQUALITY_TOL
    C = np.asarray(C, dtype=float)
    perm = np.asarray(perm, dtype=int)
    if C.ndim != 2 or C.shape[0] != C.shape[1] or perm.shape != (C.shape[0],):
        raise ValueError(f"square LSAP matrix and permutation expected, got {C.shape} and {perm.shape}")
    size = C.shape[0]

    with np.errstate(invalid="ignore"):
        reduced = C - np.asarray(u, dtype=float)[:, None] - np.asarray(v, dtype=float)[None, :]
    equal = np.isfinite(C) & (np.abs(reduced) <= tol)

    gm = np.where(equal, 1, 0).astype(np.int8)
    gm[np.arange(size), perm] = -1
    return gm


@dataclass
class _TarjanContext:
    """Traversal state of one SCC computation; nothing is shared between calls."""

    gm: np.ndarray
    index: List[int] = field(default_factory=list)
    lowlink: List[int] = field(default_factory=list)
    on_stack: List[bool] = field(default_factory=list)
    stack: List[int] = field(default_factory=list)
    counter: int = 0
    components: List[BipartiteSCC] = field(default_factory=list)

    def __post_init__(self):
        total = self.gm.shape[0] + self.gm.shape[1]
        self.index = [-1] * total
        self.lowlink = [0] * total
        self.on_stack = [False] * total

    @property
    def offset(self) -> int:
        return self.gm.shape[0]

    def successors(self, vertex: int):
        # left vertices are 0..N-1, right vertices are offset-addressed after them
        if vertex < self.offset:
            return (self.offset + j for j in np.flatnonzero(self.gm[vertex] == 1))
        return iter(np.flatnonzero(self.gm[:, vertex - self.offset] == -1))

    def discover(self, vertex: int):
        self.index[vertex] = self.counter
        self.lowlink[vertex] = self.counter
        self.counter += 1
        self.stack.append(vertex)
        self.on_stack[vertex] = True

    def pop_component(self, root: int):
        scc = BipartiteSCC.empty(self.gm.shape[0], self.gm.shape[1])
        while True:
            vertex = self.stack.pop()
            self.on_stack[vertex] = False
            if vertex < self.offset:
                scc.u[vertex] = True
            else:
                scc.v[vertex - self.offset] = True
            if vertex == root:
                break
        self.components.append(scc)


def _strong_connect(ctx: _TarjanContext, root: int):
    ctx.discover(root)
    work = [(root, ctx.successors(root))]
    while work:
        vertex, successors = work[-1]
        descended = False
        for w in successors:
            w = int(w)
            if ctx.index[w] < 0:
                ctx.discover(w)
                work.append((w, ctx.successors(w)))
                descended = True
                break
            elif ctx.on_stack[w]:
                ctx.lowlink[vertex] = min(ctx.lowlink[vertex], ctx.index[w])
        if descended:
            continue

        work.pop()
        if work:
            parent = work[-1][0]
            ctx.lowlink[parent] = min(ctx.lowlink[parent], ctx.lowlink[vertex])
        if ctx.lowlink[vertex] == ctx.index[vertex]:
            ctx.pop_component(vertex)


def find_scc(gm: np.ndarray) -> List[BipartiteSCC]:
    """
    Finds the strongly connected components of a bipartite digraph (Tarjan).

    Vertices are visited left block first then right block, in index order,
    so the numbering of the components is deterministic.

    Parameters
    ----------
    gm : np.ndarray
        Adjacency matrix with ``card(X)`` rows and ``card(Y)`` columns:
        1 for an edge x_i -> y_j, -1 for an edge y_j -> x_i, 0 for none.

    Returns
    -------
    list[BipartiteSCC]
        The components, in the order Tarjan closes them.
    """
    ctx = _TarjanContext(np.asarray(gm))
    for vertex in range(gm.shape[0] + gm.shape[1]):
        if ctx.index[vertex] < 0:
            _strong_connect(ctx, vertex)
    return ctx.components


def rm_unnecessary_edges(gm: np.ndarray, sccs: List[BipartiteSCC]) -> int:
    """
    Removes, in place, the non-assignment edges joining two different SCCs.

    Such an edge lies on no alternating cycle, so no perfect matching of the
    same cost uses it. Assignment edges are left untouched: when they join
    two components they belong to every perfect matching.

    Returns
    -------
    int
        Number of edges removed.
    """
    label_u = np.full(gm.shape[0], -1)
    label_v = np.full(gm.shape[1], -1)
    for label, scc in enumerate(sccs):
        label_u[scc.u] = label
        label_v[scc.v] = label

    across = (gm == 1) & (label_u[:, None] != label_v[None, :])
    gm[across] = 0
    return int(across.sum())


class PerfectMatchingEnumerator:
    """
    Enumerates the perfect matchings of a bipartite equality digraph.

    Every perfect matching of the equality digraph is an assignment of the
    same (optimal) cost. Enumeration follows the binary partition scheme:
    an alternating cycle through an assignment edge ``e`` yields a new
    matching ``M'``, then the matchings containing ``e`` are enumerated from
    ``M`` and the ones avoiding ``e`` from ``M'``. Before each step the
    digraph is trimmed of the edges lying between strongly connected
    components. Partitions are explored depth-first with an explicit stack.

    Attributes
    ----------
    gm : np.ndarray
        The equality digraph (see ``equality_digraph``).
    perm : np.ndarray
        The assignment ``gm`` is oriented against.
    matchings : list[np.ndarray]
        The matchings found by the last call to ``enumerate``, ``perm`` first.
    """

    def __init__(self, gm: np.ndarray, perm):
        self.gm = np.array(gm, dtype=np.int8)
        self.perm = np.asarray(perm, dtype=int).copy()
        if self.gm.ndim != 2 or self.gm.shape[0] != self.gm.shape[1] or self.perm.shape != (self.gm.shape[0],):
            raise ValueError(f"square equality digraph expected, got {self.gm.shape}")
        self.matchings: List[np.ndarray] = []

    @staticmethod
    def _trim(gm: np.ndarray) -> int:
        return rm_unnecessary_edges(gm, find_scc(gm))

    @staticmethod
    def _find_cycle(gm: np.ndarray, perm: np.ndarray) -> Optional[Tuple[int, List[Tuple[int, int]]]]:
        """
        Finds an alternating cycle through the assignment edge of the first
        left vertex that still has a non-assignment edge.

        Returns the left vertex and the new (row, column) pairs of the cycle,
        or None when the digraph is acyclic.
        """
        candidates = np.flatnonzero((gm == 1).any(axis=1))
        if len(candidates) == 0:
            return None
        start = int(candidates[0])
        target = int(perm[start])
        inverse = np.empty_like(perm)
        inverse[perm] = np.arange(len(perm))

        # depth-first search x -> y (free edge) -> x' (assignment edge) until target is reached
        parent = {start: None}
        work = [(start, iter(np.flatnonzero(gm[start] == 1)))]
        while work:
            x, successors = work[-1]
            advanced = False
            for y in successors:
                y = int(y)
                if y == target:
                    pairs = [(x, y)]
                    while parent[x] is not None:
                        prev_x, prev_y = parent[x]
                        pairs.append((prev_x, prev_y))
                        x = prev_x
                    pairs.reverse()
                    return start, pairs
                next_x = int(inverse[y])
                if next_x not in parent:
                    parent[next_x] = (x, y)
                    work.append((next_x, iter(np.flatnonzero(gm[next_x] == 1))))
                    advanced = True
                    break
            if not advanced:
                work.pop()
        return None

    def enumerate(self, k: int = -1, key: Optional[Callable] = None) -> List[np.ndarray]:
        """
        Enumerates up to ``k`` perfect matchings, ``-1`` for all of them.

        Parameters
        ----------
        k : int, optional
            Maximum number of matchings returned, the initial one included.
        key : callable, optional
            When given, a matching is only reported if ``key(matching)`` differs
            from the keys of the matchings reported before. The search itself
            still visits every matching.

        Returns
        -------
        list[np.ndarray]
            Distinct permutations, the initial assignment first.
        """
        if k == 0 or k < -1:
            raise ValueError(f"k must be positive or -1, got {k}")

        seen = set()
        if key is not None:
            seen.add(key(self.perm))
        self.matchings = [self.perm.copy()]
        stack = [(self.gm.copy(), self.perm.copy())]
        while stack and (k < 0 or len(self.matchings) < k):
            gm, perm = stack.pop()
            self._trim(gm)
            found = self._find_cycle(gm, perm)
            if found is None:
                continue
            x, pairs = found

            new_perm = perm.copy()
            for row, col in pairs:
                new_perm[row] = col
            if key is None:
                self.matchings.append(new_perm)
            elif key(new_perm) not in seen:
                seen.add(key(new_perm))
                self.matchings.append(new_perm)

            # matchings avoiding e = (x, perm[x]), oriented against new_perm
            gm_minus = gm.copy()
            for row, col in pairs:
                gm_minus[row, perm[row]] = 1
            for row, col in pairs:
                gm_minus[row, col] = -1
            gm_minus[x, perm[x]] = 0

            # matchings containing e, oriented against perm
            gm_plus = gm.copy()
            gm_plus[x, :] = 0
            gm_plus[:, perm[x]] = 0
            gm_plus[x, perm[x]] = -1

            stack.append((gm_minus, new_perm))
            stack.append((gm_plus, perm))

        logger.debug(f"Enumerated {len(self.matchings)} perfect matchings (k={k})")
        return self.matchings
