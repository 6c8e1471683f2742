import numpy as np
import pytest

from assignment import Mapping, lsap_cost_matrix
from bipartite import BipartiteGraphEditDistance, BipartiteGraphEditDistanceMulti
from ged import MappingRefinement
from ipfp import IPFPGraphEditDistance
from multistart import (
    MultistartRefinementGraphEditDistance,
    PoolExecutor,
    RandomMappingGenerator,
    SequentialExecutor,
    _reduce,
    make_executor,
    search,
)
from utils.generator import ERGenerator


class KeepMapping(MappingRefinement):
    def refine(self, g1, g2, mapping):
        return mapping


@pytest.fixture
def er_pair():
    generator = ERGenerator(8, 3.0, seed=3)
    g1 = generator.generate_graph()
    g2, _ = generator.perturb(g1, 5)
    return g1, g2


def test_single_baseline_candidate_reproduces_the_baseline(er_pair, cf):
    g1, g2 = er_pair
    baseline = BipartiteGraphEditDistance(cf).get_optimal_mapping(g1, g2)
    generator = BipartiteGraphEditDistanceMulti(cf)

    candidates = generator.get_mappings(g1, g2, 1)
    assert len(candidates) == 1
    assert Mapping.from_lsap(candidates[0], g1.number_of_nodes(), g2.number_of_nodes()) == baseline

    mapping, cost = search(g1, g2, generator, KeepMapping(cf), 1)
    assert mapping == baseline
    assert cost == BipartiteGraphEditDistance(cf)(g1, g2)


def test_target_graph_empty(labelled_graph, cf):
    g1 = labelled_graph(["A", "B"], [(0, 1)])
    g2 = labelled_graph([])
    method = MultistartRefinementGraphEditDistance(cf, BipartiteGraphEditDistanceMulti(cf), k=5)
    mapping, cost = method.search(g1, g2)

    assert list(mapping.g1_to_g2) == [0, 0]
    assert cost == 2 * cf.cnd + cf.ced


def test_search_picks_the_cheapest_refinement(er_pair, cf):
    g1, g2 = er_pair
    method = MultistartRefinementGraphEditDistance(cf, RandomMappingGenerator(seed=0), k=6)
    refined = method.get_better_mappings(g1, g2)

    assert len(refined) == 6
    assert all(m.is_valid() for m in refined)
    assert method.costs == [method.ged_from_mapping(g1, g2, m) for m in refined]

    # same seed, same candidates
    same = MultistartRefinementGraphEditDistance(cf, RandomMappingGenerator(seed=0), k=6)
    mapping, cost = same.search(g1, g2)
    assert cost == min(method.costs)
    assert mapping == refined[method.costs.index(cost)]


def test_refined_set_keeps_candidate_order(er_pair, cf):
    g1, g2 = er_pair
    n, m = g1.number_of_nodes(), g2.number_of_nodes()
    candidates = RandomMappingGenerator(seed=4).get_mappings(g1, g2, 4)
    method = MultistartRefinementGraphEditDistance(cf, RandomMappingGenerator(), refiner=KeepMapping(cf))

    refined = method.get_better_mappings_from_set(g1, g2, candidates)
    assert refined == [Mapping.from_lsap(p, n, m) for p in candidates]


def test_pool_agrees_with_sequential(er_pair, cf):
    g1, g2 = er_pair
    generator = BipartiteGraphEditDistanceMulti(cf)
    refiner = IPFPGraphEditDistance(cf)

    sequential = search(g1, g2, generator, refiner, 4, SequentialExecutor())
    pooled = search(g1, g2, generator, refiner, 4, PoolExecutor(2))

    assert sequential[0] == pooled[0]
    assert sequential[1] == pytest.approx(pooled[1])


def test_pool_keeps_task_order():
    assert PoolExecutor(2).map(abs, [-3, 1, -2, 5]) == [3, 1, 2, 5]
    assert PoolExecutor(2).map(abs, []) == []


def test_reduce_breaks_ties_by_first_index():
    a, b, c = Mapping([0], [0]), Mapping([1], [1]), Mapping([1], [1])
    index, mapping, cost = _reduce([(a, 4.0), (b, 2.0), (c, 2.0)])
    assert index == 1 and mapping is b and cost == 2.0


def test_executor_choice():
    assert isinstance(make_executor(1), SequentialExecutor)
    assert isinstance(make_executor(3), PoolExecutor)
    assert make_executor(-1).n_jobs >= 1
    with pytest.raises(ValueError):
        make_executor(0)


def test_random_mappings_are_feasible_and_seeded(er_pair):
    g1, g2 = er_pair
    n, m = g1.number_of_nodes(), g2.number_of_nodes()
    square = lsap_cost_matrix(np.zeros((n + 1, m + 1)))

    first = RandomMappingGenerator(seed=7).get_mappings(g1, g2, 5)
    second = RandomMappingGenerator(seed=7).get_mappings(g1, g2, 5)
    assert all(np.array_equal(p, q) for p, q in zip(first, second))
    for perm in first:
        assert sorted(perm) == list(range(n + m))
        assert np.all(np.isfinite(square[np.arange(n + m), perm]))
        assert Mapping.from_lsap(perm, n, m).is_valid()

    with pytest.raises(ValueError):
        RandomMappingGenerator().get_mappings(g1, g2, 0)


def test_multistart_bounds_exact_ged(molecule_pair, cf, exact_ged):
    g1, g2 = molecule_pair
    method = MultistartRefinementGraphEditDistance(cf, BipartiteGraphEditDistanceMulti(cf), k=-1)
    assert method(g1, g2) >= exact_ged(g1, g2, cf)
