import networkx as nx
import random
from typing import List, Optional, Tuple

import config


class Generator:
    """
    Abstract base class for labelled graph generators.

    Node labels are drawn from ``n_node_labels`` symbols ("A", "B", ...),
    edge labels from ``n_edge_labels`` symbols ("a", "b", ...).
    """
    def __init__(self, num_nodes: int, average_degree: float, n_node_labels: int = 3, n_edge_labels: int = 2,
                 directed: bool = False, seed: Optional[int] = None):
        if num_nodes < 0:
            raise ValueError("Number of nodes must be non-negative.")
        if average_degree < 0:
            raise ValueError("Average degree must be non-negative.")
        if n_node_labels <= 0 or n_edge_labels <= 0:
            raise ValueError("Label alphabets must not be empty.")
        self.num_nodes = num_nodes
        self.average_degree = average_degree
        self.node_labels = [chr(ord("A") + i) for i in range(n_node_labels)]
        self.edge_labels = [chr(ord("a") + i) for i in range(n_edge_labels)]
        self.directed = directed
        self.rng = random.Random(seed)

    def generate_graph(self) -> nx.Graph:
        """Generates a single graph. Must be implemented by subclasses."""
        raise NotImplementedError("Subclasses should implement this method!")

    def generate_graphs(self, n: int) -> List[nx.Graph]:
        return [self.generate_graph() for _ in range(n)]

    def _empty_graph(self) -> nx.Graph:
        return nx.DiGraph() if self.directed else nx.Graph()

    def perturb(self, graph: nx.Graph, n_edits: int, costs: Optional[dict] = None) -> Tuple[nx.Graph, float]:
        """
        Applies random edit operations to a copy of the graph.

        Each operation relabels a node or an edge, deletes or inserts an edge,
        or deletes or inserts a node. The returned bound is the sum of the
        constant costs of the operations applied, so the edit distance between
        ``graph`` and the result does not exceed it.

        Parameters:
        - graph (nx.Graph): The graph to perturb, left unchanged.
        - n_edits (int): Number of operations.
        - costs (dict): Constant costs keyed like ``config.DEFAULT_COSTS``.

        Returns:
        - tuple: The perturbed graph and the upper bound on its edit distance.
        """
        costs = costs or config.DEFAULT_COSTS
        new_graph = graph.copy()
        bound = 0.0
        next_id = max(new_graph.nodes, default=0) + 1

        for _ in range(n_edits):
            nodes = list(new_graph.nodes)
            edges = list(new_graph.edges)
            operations = ["insert_node", "insert_edge"]
            if nodes:
                operations += ["relabel_node", "delete_node"]
            if edges:
                operations += ["relabel_edge", "delete_edge"]
            operation = self.rng.choice(operations)

            if operation == "relabel_node":
                node = self.rng.choice(nodes)
                new_graph.nodes[node]["label"] = self.rng.choice(self.node_labels)
                bound += costs["cns"]
            elif operation == "delete_node":
                node = self.rng.choice(nodes)
                bound += costs["cnd"] + costs["ced"] * len(list(nx.all_neighbors(new_graph, node)))
                new_graph.remove_node(node)
            elif operation == "insert_node":
                new_graph.add_node(next_id, label=self.rng.choice(self.node_labels))
                next_id += 1
                bound += costs["cni"]
            elif operation == "relabel_edge":
                source, target = self.rng.choice(edges)
                new_graph.edges[source, target]["label"] = self.rng.choice(self.edge_labels)
                bound += costs["ces"]
            elif operation == "delete_edge":
                source, target = self.rng.choice(edges)
                new_graph.remove_edge(source, target)
                bound += costs["ced"]
            else:
                if len(nodes) < 2:
                    continue
                source, target = self.rng.sample(nodes, 2)
                if new_graph.has_edge(source, target):
                    continue
                new_graph.add_edge(source, target, label=self.rng.choice(self.edge_labels))
                bound += costs["cei"]

        return new_graph, bound


class ERGenerator(Generator):
    """
    Generates labelled Erdős-Rényi (ER) graphs without self-loops.
    """
    def generate_graph(self) -> nx.Graph:
        graph = self._empty_graph()
        for i in range(self.num_nodes):
            graph.add_node(i, label=self.rng.choice(self.node_labels))
        if self.num_nodes <= 1:
            return graph

        # expected degree (in + out for digraphs) equals average_degree
        p = min(1.0, self.average_degree / (self.num_nodes - 1))
        if self.directed:
            p /= 2
        for i in range(self.num_nodes):
            for j in range(self.num_nodes):
                if i == j or (not self.directed and j < i):
                    continue
                if self.rng.random() < p:
                    graph.add_edge(i, j, label=self.rng.choice(self.edge_labels))
        return graph
