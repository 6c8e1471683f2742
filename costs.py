from __future__ import annotations

from typing import Callable, Hashable, Optional, Tuple

import networkx as nx
import numpy as np

Edge = Tuple[Hashable, Hashable]


class EditCost:
    """
    Edit cost model consumed by every graph edit distance method.

    All costs are non-negative reals and pure functions of their arguments.
    Nodes are networkx node keys and edges are ``(u, v)`` tuples of node keys
    of the graph they belong to.
    """

    def node_substitution_cost(self, g1: nx.Graph, u1, g2: nx.Graph, u2) -> float:
        raise NotImplementedError("Subclasses should implement this method!")

    def node_deletion_cost(self, g1: nx.Graph, u1) -> float:
        raise NotImplementedError("Subclasses should implement this method!")

    def node_insertion_cost(self, g2: nx.Graph, u2) -> float:
        raise NotImplementedError("Subclasses should implement this method!")

    def edge_substitution_cost(self, g1: nx.Graph, e1: Edge, g2: nx.Graph, e2: Edge) -> float:
        raise NotImplementedError("Subclasses should implement this method!")

    def edge_deletion_cost(self, g1: nx.Graph, e1: Edge) -> float:
        raise NotImplementedError("Subclasses should implement this method!")

    def edge_insertion_cost(self, g2: nx.Graph, e2: Edge) -> float:
        raise NotImplementedError("Subclasses should implement this method!")


class ConstantEditCost(EditCost):
    """
    Constant costs on labelled graphs.

    A substitution costs ``cns`` (nodes) or ``ces`` (edges) when the compared
    labels differ and nothing when they are equal. Deletions and insertions
    cost the given constants whatever the labels.

    Parameters
    ----------
    cns, cnd, cni : float
        Node substitution, deletion and insertion costs.
    ces, ced, cei : float
        Edge substitution, deletion and insertion costs.
    node_label, edge_label : str
        Attribute names holding the labels.
    """

    def __init__(self, cns=1.0, cnd=3.0, cni=3.0, ces=1.0, ced=3.0, cei=3.0,
                 node_label: str = "label", edge_label: str = "label"):
        self.cns = cns
        self.cnd = cnd
        self.cni = cni
        self.ces = ces
        self.ced = ced
        self.cei = cei
        self.node_label = node_label
        self.edge_label = edge_label

    def node_substitution_cost(self, g1, u1, g2, u2):
        if g1.nodes[u1].get(self.node_label) == g2.nodes[u2].get(self.node_label):
            return 0.0
        return self.cns

    def node_deletion_cost(self, g1, u1):
        return self.cnd

    def node_insertion_cost(self, g2, u2):
        return self.cni

    def edge_substitution_cost(self, g1, e1, g2, e2):
        if g1.edges[e1].get(self.edge_label) == g2.edges[e2].get(self.edge_label):
            return 0.0
        return self.ces

    def edge_deletion_cost(self, g1, e1):
        return self.ced

    def edge_insertion_cost(self, g2, e2):
        return self.cei

    def __repr__(self):
        return (f"ConstantEditCost(cns={self.cns}, cnd={self.cnd}, cni={self.cni}, "
                f"ces={self.ces}, ced={self.ced}, cei={self.cei})")


class FunctionEditCost(EditCost):
    """
    Edit costs given as plain callables.

    Any callable left to ``None`` falls back to the corresponding
    ``ConstantEditCost`` default. Callables must be picklable (module level
    functions) to be used with a process pool.
    """

    def __init__(self,
                 node_substitution: Optional[Callable] = None,
                 node_deletion: Optional[Callable] = None,
                 node_insertion: Optional[Callable] = None,
                 edge_substitution: Optional[Callable] = None,
                 edge_deletion: Optional[Callable] = None,
                 edge_insertion: Optional[Callable] = None):
        self._default = ConstantEditCost()
        self._node_substitution = node_substitution or self._default.node_substitution_cost
        self._node_deletion = node_deletion or self._default.node_deletion_cost
        self._node_insertion = node_insertion or self._default.node_insertion_cost
        self._edge_substitution = edge_substitution or self._default.edge_substitution_cost
        self._edge_deletion = edge_deletion or self._default.edge_deletion_cost
        self._edge_insertion = edge_insertion or self._default.edge_insertion_cost

    def node_substitution_cost(self, g1, u1, g2, u2):
        return self._node_substitution(g1, u1, g2, u2)

    def node_deletion_cost(self, g1, u1):
        return self._node_deletion(g1, u1)

    def node_insertion_cost(self, g2, u2):
        return self._node_insertion(g2, u2)

    def edge_substitution_cost(self, g1, e1, g2, e2):
        return self._edge_substitution(g1, e1, g2, e2)

    def edge_deletion_cost(self, g1, e1):
        return self._edge_deletion(g1, e1)

    def edge_insertion_cost(self, g2, e2):
        return self._edge_insertion(g2, e2)


def node_cost_matrix(g1: nx.Graph, g2: nx.Graph, cf: EditCost) -> np.ndarray:
    """
    Builds the (n+1)x(m+1) matrix of plain node edit costs.

    Row ``n`` holds insertions, column ``m`` holds deletions and the
    epsilon/epsilon cell is 0.
    """
    nodes1, nodes2 = list(g1.nodes), list(g2.nodes)
    n, m = len(nodes1), len(nodes2)

    C = np.zeros((n + 1, m + 1))
    for i, u1 in enumerate(nodes1):
        for j, u2 in enumerate(nodes2):
            C[i, j] = cf.node_substitution_cost(g1, u1, g2, u2)
    for i, u1 in enumerate(nodes1):
        C[i, m] = cf.node_deletion_cost(g1, u1)
    for j, u2 in enumerate(nodes2):
        C[n, j] = cf.node_insertion_cost(g2, u2)
    return C


def ged_from_mapping(g1: nx.Graph, g2: nx.Graph, cf: EditCost, g1_to_g2, g2_to_g1) -> float:
    """
    Computes the cost of the edit path induced by a node mapping.

    Parameters
    ----------
    g1, g2 : nx.Graph
        Source and target graphs.
    cf : EditCost
        The edit cost model.
    g1_to_g2 : sequence of int
        For each node index of ``g1``, its image index in ``g2``; ``m`` means deleted.
    g2_to_g1 : sequence of int
        For each node index of ``g2``, its preimage index in ``g1``; ``n`` means inserted.

    Returns
    -------
    float
        Node substitutions/deletions/insertions plus the edge operations they imply.
    """
    nodes1, nodes2 = list(g1.nodes), list(g2.nodes)
    n, m = len(nodes1), len(nodes2)
    index1 = {u: i for i, u in enumerate(nodes1)}
    index2 = {u: j for j, u in enumerate(nodes2)}

    cost = 0.0
    for i, u1 in enumerate(nodes1):
        j = g1_to_g2[i]
        if j < m:
            cost += cf.node_substitution_cost(g1, u1, g2, nodes2[j])
        else:
            cost += cf.node_deletion_cost(g1, u1)
    for j, u2 in enumerate(nodes2):
        if g2_to_g1[j] >= n:
            cost += cf.node_insertion_cost(g2, u2)

    # edges of g1 are either substituted or deleted
    for a, b in g1.edges():
        ia, ib = g1_to_g2[index1[a]], g1_to_g2[index1[b]]
        if ia < m and ib < m and g2.has_edge(nodes2[ia], nodes2[ib]):
            cost += cf.edge_substitution_cost(g1, (a, b), g2, (nodes2[ia], nodes2[ib]))
        else:
            cost += cf.edge_deletion_cost(g1, (a, b))

    # edges of g2 with no substituted counterpart are inserted
    for a, b in g2.edges():
        ja, jb = g2_to_g1[index2[a]], g2_to_g1[index2[b]]
        if ja < n and jb < n and g1.has_edge(nodes1[ja], nodes1[jb]):
            continue
        cost += cf.edge_insertion_cost(g2, (a, b))

    return cost
