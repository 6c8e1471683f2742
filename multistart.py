from __future__ import annotations

import multiprocessing
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

import networkx as nx
import numpy as np

import config
from assignment import Mapping
from costs import EditCost
from ged import GraphEditDistance, MappingGenerator, MappingRefinement
from ipfp import IPFPGraphEditDistance
from utils.utils import setup_logger

logger = setup_logger(__name__)


class SequentialExecutor:
    """Runs the tasks one after the other in the calling process."""

    def map(self, fn: Callable, tasks: Iterable) -> list:
        return [fn(task) for task in tasks]


def _indexed_call(job):
    fn, index, task = job
    return index, fn(task)


class PoolExecutor:
    """
    Runs the tasks on a pool of worker processes.

    Tasks are handed out one at a time as workers free up, so refinements of
    very different lengths do not hold each other back. Results come back in
    task order whatever the completion order.

    Parameters
    ----------
    n_jobs : int
        Number of worker processes, -1 for one per CPU.
    """

    def __init__(self, n_jobs: int = -1):
        if n_jobs == 0:
            raise ValueError("n_jobs must be positive or -1")
        self.n_jobs = multiprocessing.cpu_count() if n_jobs < 0 else n_jobs

    def map(self, fn: Callable, tasks: Iterable) -> list:
        jobs = [(fn, index, task) for index, task in enumerate(tasks)]
        if not jobs:
            return []
        with multiprocessing.Pool(processes=min(self.n_jobs, len(jobs))) as pool:
            results = list(pool.imap_unordered(_indexed_call, jobs, chunksize=1))
        results.sort(key=lambda result: result[0])
        return [value for _, value in results]


def make_executor(n_jobs: int = config.N_JOBS):
    """1 gives a SequentialExecutor, anything else a PoolExecutor."""
    if n_jobs == 1:
        return SequentialExecutor()
    return PoolExecutor(n_jobs)


def _refine_task(task) -> Tuple[Mapping, float]:
    refiner, g1, g2, mapping = task
    # refiners keep per-call state, each task works on its own copy
    local = refiner.clone()
    refined = local.refine(g1, g2, mapping.copy())
    return refined, local.cost(g1, g2, refined)


def _reduce(results: Sequence[Tuple[Mapping, float]]) -> Tuple[int, Mapping, float]:
    """Keeps the cheapest refined mapping, the first one on ties."""
    best = 0
    for index, (_, cost) in enumerate(results):
        if cost < results[best][1]:
            best = index
    mapping, cost = results[best]
    return best, mapping, cost


def _as_mapping(candidate: Union[Mapping, np.ndarray], n: int, m: int) -> Mapping:
    if isinstance(candidate, Mapping):
        return candidate
    return Mapping.from_lsap(candidate, n, m)


def refine_all(g1: nx.Graph, g2: nx.Graph, refiner: MappingRefinement, candidates: Sequence,
               executor=None) -> List[Tuple[Mapping, float]]:
    """
    Refines every candidate independently.

    Parameters
    ----------
    g1, g2 : nx.Graph
        The graphs, only read.
    refiner : MappingRefinement
        Cloned once per candidate.
    candidates : sequence
        Square permutations or Mappings.
    executor : SequentialExecutor | PoolExecutor, optional
        Sequential when omitted.

    Returns
    -------
    list[tuple[Mapping, float]]
        Refined mapping and its edit cost, in candidate order.
    """
    n, m = g1.number_of_nodes(), g2.number_of_nodes()
    executor = executor or SequentialExecutor()
    tasks = [(refiner, g1, g2, _as_mapping(c, n, m)) for c in candidates]
    return executor.map(_refine_task, tasks)


def search(g1: nx.Graph, g2: nx.Graph, generator: MappingGenerator, refiner: MappingRefinement,
           k: int, executor=None) -> Tuple[Mapping, float]:
    """
    Multistart local search for the graph edit distance.

    ``k`` initial mappings are drawn from ``generator``, each one is refined
    by its own clone of ``refiner`` and the mapping of lowest edit cost is
    kept, the first one in candidate order on ties.

    Returns
    -------
    tuple[Mapping, float]
        The best refined mapping and its edit cost.
    """
    candidates = generator.get_mappings(g1, g2, k)
    if len(candidates) == 0:
        raise ValueError("the generator produced no initial mapping")
    results = refine_all(g1, g2, refiner, candidates, executor)
    index, mapping, cost = _reduce(results)
    logger.debug(f"best of {len(results)} refined mappings: #{index} with cost {cost}")
    return mapping, cost


class MultistartRefinementGraphEditDistance(GraphEditDistance):
    """
    Refines several initial mappings and keeps the best one.

    Parameters
    ----------
    cf : EditCost
        The edit cost model.
    generator : MappingGenerator
        Source of the initial mappings, e.g. ``BipartiteGraphEditDistanceMulti``.
    k : int, optional
        Number of initial mappings. Defaults to ``config.DEFAULT_K``.
    refiner : MappingRefinement, optional
        The local search; IPFP when omitted.
    n_jobs : int, optional
        1 to refine sequentially, more to use a process pool, -1 for all CPUs.
        Defaults to ``config.N_JOBS``.
    """

    def __init__(self, cf: EditCost, generator: MappingGenerator, k: int = config.DEFAULT_K,
                 refiner: Optional[MappingRefinement] = None, n_jobs: int = config.N_JOBS):
        super().__init__(cf)
        if refiner is None:
            refiner = IPFPGraphEditDistance(cf)
        self.generator = generator
        self.k = k
        self.refiner = refiner
        self.executor = make_executor(n_jobs)
        self.refined_mappings: List[Mapping] = []
        self.costs: List[float] = []

    def get_better_mappings_from_set(self, g1: nx.Graph, g2: nx.Graph, mappings: Sequence) -> List[Mapping]:
        """Refines the given square permutations or Mappings, keeping their order."""
        results = refine_all(g1, g2, self.refiner, mappings, self.executor)
        self.refined_mappings = [mapping for mapping, _ in results]
        self.costs = [cost for _, cost in results]
        return self.refined_mappings

    def get_better_mappings(self, g1: nx.Graph, g2: nx.Graph) -> List[Mapping]:
        return self.get_better_mappings_from_set(g1, g2, self.generator.get_mappings(g1, g2, self.k))

    def search(self, g1: nx.Graph, g2: nx.Graph) -> Tuple[Mapping, float]:
        return search(g1, g2, self.generator, self.refiner, self.k, self.executor)

    def get_optimal_mapping(self, g1: nx.Graph, g2: nx.Graph) -> Mapping:
        mapping, _ = self.search(g1, g2)
        return mapping


class RandomMappingGenerator(MappingGenerator):
    """
    Random initial mappings.

    Each mapping substitutes a random number of node pairs chosen at random;
    the other nodes of g1 are deleted and those of g2 inserted.

    Parameters
    ----------
    seed : int, optional
        Seed of the numpy generator.
    """

    def __init__(self, seed: Optional[int] = None):
        self.rng = np.random.default_rng(seed)

    def random_mapping(self, n: int, m: int) -> Mapping:
        g1_to_g2 = np.full(n, m, dtype=int)
        g2_to_g1 = np.full(m, n, dtype=int)
        s = int(self.rng.integers(0, min(n, m) + 1))
        rows = self.rng.permutation(n)[:s]
        cols = self.rng.permutation(m)[:s]
        g1_to_g2[rows] = cols
        g2_to_g1[cols] = rows
        return Mapping(g1_to_g2, g2_to_g1)

    def get_mappings(self, g1: nx.Graph, g2: nx.Graph, k: int) -> List[np.ndarray]:
        if k < 1:
            raise ValueError(f"k must be positive for random mappings, got {k}")
        n, m = g1.number_of_nodes(), g2.number_of_nodes()
        return [self.random_mapping(n, m).to_lsap() for _ in range(k)]
