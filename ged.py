from __future__ import annotations

import copy
from typing import List

import networkx as nx
import numpy as np

from assignment import Mapping
from costs import EditCost, ged_from_mapping


class GraphEditDistance:
    """
    Base class of the graph edit distance methods.

    A method finds a node mapping between two graphs; its distance is the
    cost of the edit path induced by that mapping under the cost model ``cf``.
    """

    def __init__(self, cf: EditCost):
        self.cf = cf

    def get_optimal_mapping(self, g1: nx.Graph, g2: nx.Graph) -> Mapping:
        """Finds a mapping between g1 and g2. Must be implemented by subclasses."""
        raise NotImplementedError("Subclasses should implement this method!")

    def ged_from_mapping(self, g1: nx.Graph, g2: nx.Graph, mapping: Mapping) -> float:
        return ged_from_mapping(g1, g2, self.cf, mapping.g1_to_g2, mapping.g2_to_g1)

    def __call__(self, g1: nx.Graph, g2: nx.Graph) -> float:
        return self.ged_from_mapping(g1, g2, self.get_optimal_mapping(g1, g2))

    def clone(self):
        return copy.deepcopy(self)


class MappingGenerator:
    """
    Produces initial mappings for a multistart search.

    Mappings are returned as square permutations of size n+m
    (see ``Mapping.from_lsap`` for their decoding).
    """

    def get_mappings(self, g1: nx.Graph, g2: nx.Graph, k: int) -> List[np.ndarray]:
        """Returns at most ``k`` square permutations, all of them if ``k == -1``."""
        raise NotImplementedError("Subclasses should implement this method!")

    def clone(self):
        return copy.deepcopy(self)


class MappingRefinement(GraphEditDistance):
    """
    Improves a given mapping, typically by local search.

    A refinement instance may keep per-call scratch state, so parallel
    callers must work on their own ``clone()``.
    """

    def refine(self, g1: nx.Graph, g2: nx.Graph, mapping: Mapping) -> Mapping:
        raise NotImplementedError("Subclasses should implement this method!")

    def cost(self, g1: nx.Graph, g2: nx.Graph, mapping: Mapping) -> float:
        return self.ged_from_mapping(g1, g2, mapping)
