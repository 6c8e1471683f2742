import itertools

import networkx as nx
import numpy as np
import pytest

from assignment import Mapping
from costs import ConstantEditCost, ged_from_mapping


def _labelled_graph(node_labels, edges=(), directed=False):
    """node_labels: list of labels, node i gets node_labels[i]; edges: (i, j) or (i, j, label)."""
    G = nx.DiGraph() if directed else nx.Graph()
    for i, label in enumerate(node_labels):
        G.add_node(i, label=label)
    for edge in edges:
        label = edge[2] if len(edge) > 2 else "a"
        G.add_edge(edge[0], edge[1], label=label)
    return G


def _all_mappings(n, m):
    for images in itertools.product(range(m + 1), repeat=n):
        used = [j for j in images if j < m]
        if len(used) != len(set(used)):
            continue
        g1_to_g2 = np.array(images, dtype=int)
        g2_to_g1 = np.full(m, n, dtype=int)
        for i, j in enumerate(images):
            if j < m:
                g2_to_g1[j] = i
        yield Mapping(g1_to_g2, g2_to_g1)


def _exact_ged(g1, g2, cf):
    n, m = g1.number_of_nodes(), g2.number_of_nodes()
    return min(ged_from_mapping(g1, g2, cf, M.g1_to_g2, M.g2_to_g1) for M in _all_mappings(n, m))


@pytest.fixture
def cf():
    return ConstantEditCost(cns=1.0, cnd=3.0, cni=3.0, ces=1.0, ced=3.0, cei=3.0)


@pytest.fixture
def labelled_graph():
    return _labelled_graph


@pytest.fixture
def all_mappings():
    return _all_mappings


@pytest.fixture
def exact_ged():
    return _exact_ged


@pytest.fixture
def molecule_pair():
    # a labelled triangle with a tail, and the same shape with one label and one edge changed
    g1 = _labelled_graph(["C", "C", "O", "N"], [(0, 1, "s"), (1, 2, "d"), (2, 0, "s"), (2, 3, "s")])
    g2 = _labelled_graph(["C", "C", "O", "C"], [(0, 1, "s"), (1, 2, "s"), (2, 0, "s"), (1, 3, "s")])
    return g1, g2
