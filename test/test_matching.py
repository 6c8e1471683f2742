import itertools

import networkx as nx
import numpy as np
import pytest

from assignment import lsap_cost_matrix, solve_lsape
from matching import PerfectMatchingEnumerator, equality_digraph, find_scc, rm_unnecessary_edges


def random_digraph(size, density, seed):
    """Random bipartite digraph around a random perfect matching."""
    rng = np.random.default_rng(seed)
    perm = rng.permutation(size)
    gm = (rng.random((size, size)) < density).astype(np.int8)
    gm[np.arange(size), perm] = -1
    return gm, perm


def perfect_matchings(gm):
    size = gm.shape[0]
    return {
        p for p in itertools.permutations(range(size))
        if all(gm[i, p[i]] != 0 for i in range(size))
    }


def to_networkx(gm):
    D = nx.DiGraph()
    D.add_nodes_from(("x", i) for i in range(gm.shape[0]))
    D.add_nodes_from(("y", j) for j in range(gm.shape[1]))
    for i, j in zip(*np.nonzero(gm == 1)):
        D.add_edge(("x", i), ("y", j))
    for i, j in zip(*np.nonzero(gm == -1)):
        D.add_edge(("y", j), ("x", i))
    return D


@pytest.mark.parametrize(
    "size, density, seed",
    [
        (1, 0.5, 0),
        (4, 0.2, 1),
        (5, 0.4, 2),
        (6, 0.3, 3),
        (8, 0.25, 4),
    ],
)
def test_scc_agrees_with_networkx(size, density, seed):
    gm, _ = random_digraph(size, density, seed)
    sccs = find_scc(gm)

    ours = {
        frozenset([("x", i) for i in np.flatnonzero(scc.u)] + [("y", j) for j in np.flatnonzero(scc.v)])
        for scc in sccs
    }
    reference = {frozenset(c) for c in nx.strongly_connected_components(to_networkx(gm))}
    assert ours == reference
    assert sum(scc.size() for scc in sccs) == 2 * size


def test_scc_does_not_keep_state_between_calls():
    gm, _ = random_digraph(5, 0.4, 7)
    assert len(find_scc(gm)) == len(find_scc(gm))


@pytest.mark.parametrize("size, density, seed", [(4, 0.3, 10), (5, 0.4, 11), (6, 0.35, 12)])
def test_pruning_is_lossless(size, density, seed):
    gm, perm = random_digraph(size, density, seed)
    before = perfect_matchings(gm)

    pruned = gm.copy()
    removed = rm_unnecessary_edges(pruned, find_scc(pruned))

    assert perfect_matchings(pruned) == before
    assert removed == int((gm == 1).sum() - (pruned == 1).sum())
    assert np.array_equal(pruned == -1, gm == -1), "assignment edges must be kept"


@pytest.mark.parametrize("size, density, seed", [(3, 0.5, 20), (5, 0.4, 21), (6, 0.5, 22), (6, 0.15, 23)])
def test_enumeration_finds_every_perfect_matching(size, density, seed):
    gm, perm = random_digraph(size, density, seed)
    found = PerfectMatchingEnumerator(gm, perm).enumerate()

    assert np.array_equal(found[0], perm)
    as_tuples = [tuple(int(x) for x in p) for p in found]
    assert len(as_tuples) == len(set(as_tuples)), "duplicate matchings"
    assert set(as_tuples) == perfect_matchings(gm)


def test_enumeration_stops_at_k():
    gm = np.ones((4, 4), dtype=np.int8)
    perm = np.arange(4)
    gm[perm, perm] = -1

    assert len(PerfectMatchingEnumerator(gm, perm).enumerate(5)) == 5
    only = PerfectMatchingEnumerator(gm, perm).enumerate(1)
    assert len(only) == 1 and np.array_equal(only[0], perm)
    assert len(PerfectMatchingEnumerator(gm, perm).enumerate(-1)) == 24


@pytest.mark.parametrize("k", [0, -2])
def test_enumeration_rejects_bad_k(k):
    gm = -np.eye(2, dtype=np.int8)
    with pytest.raises(ValueError):
        PerfectMatchingEnumerator(gm, np.arange(2)).enumerate(k)


def test_enumeration_key_skips_equivalent_matchings():
    gm = np.ones((3, 3), dtype=np.int8)
    perm = np.arange(3)
    gm[perm, perm] = -1
    # matchings are equivalent when they agree on row 0
    found = PerfectMatchingEnumerator(gm, perm).enumerate(key=lambda p: int(p[0]))
    assert sorted(int(p[0]) for p in found) == [0, 1, 2]


def test_enumeration_leaves_input_untouched():
    gm, perm = random_digraph(5, 0.5, 30)
    original = gm.copy()
    PerfectMatchingEnumerator(gm, perm).enumerate()
    assert np.array_equal(gm, original)


def test_equality_digraph_marks_zero_reduced_costs():
    C = np.array([[0.0, 0.0, 9.0],
                  [0.0, 0.0, 9.0],
                  [9.0, 9.0, 0.0]])
    rho, varrho, u, v = solve_lsape(C)
    square = lsap_cost_matrix(C)
    perm = np.array([rho[0], rho[1], 2, 3])
    lu = np.concatenate([u[:2], np.zeros(2)])
    lv = np.concatenate([v[:2], np.zeros(2)])
    gm = equality_digraph(square, perm, lu, lv)

    assert gm.dtype == np.int8
    assert np.all(gm[np.arange(4), perm] == -1)
    # the two substitution orders are equally optimal
    assert gm[0, 1 - rho[0]] == 1 and gm[1, 1 - rho[1]] == 1
    # infeasible cells never carry an edge
    assert np.all(gm[np.isinf(square)] == 0)


def test_non_square_input_is_rejected():
    with pytest.raises(ValueError):
        PerfectMatchingEnumerator(np.zeros((2, 3), dtype=np.int8), np.arange(2))
    with pytest.raises(ValueError):
        equality_digraph(np.zeros((2, 3)), np.arange(2), np.zeros(2), np.zeros(3))
