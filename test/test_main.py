import argparse
import os

import matplotlib

matplotlib.use("Agg")

import pytest

import config
from assignment import Mapping
from costs import ConstantEditCost
from main import build_methods, build_parser, get_graphs, run_methods
from utils.plot import plot_cost_trace, save_figure
from utils.utils import save_graph


def make_args(**kwargs):
    defaults = dict(n=8, degree=2.0, labels=2, edits=6, directed=False, seed=11, files=None)
    defaults.update(kwargs)
    return argparse.Namespace(**defaults)


def test_generated_pair_comes_with_a_bound():
    g1, g2, bound = get_graphs(make_args(), config.DEFAULT_COSTS)
    assert g1.number_of_nodes() == 8
    assert bound > 0


def test_graphs_read_from_files(tmp_path, molecule_pair):
    paths = []
    for i, g in enumerate(molecule_pair):
        paths.append(str(tmp_path / f"g{i}.txt"))
        save_graph(g, paths[-1])

    g1, g2, bound = get_graphs(make_args(files=paths), config.DEFAULT_COSTS)
    assert bound is None
    assert g1.number_of_nodes() == g2.number_of_nodes() == 4

    with pytest.raises(ValueError):
        get_graphs(make_args(files=paths[:1]), config.DEFAULT_COSTS)


def test_unknown_method_is_rejected():
    with pytest.raises(ValueError):
        build_methods(ConstantEditCost(), ["BP", "ASTAR"], 3, 1)


def test_candidate_methods_skip_duplicate_mappings(labelled_graph):
    ring = [(i, (i + 1) % 6) for i in range(6)]
    g1 = labelled_graph(["A"] * 6, ring)
    g2 = labelled_graph(["A"] * 6, ring)
    methods = build_methods(ConstantEditCost(), ["MULTI", "MULTISTART"], 10, 1)

    for generator in (methods["MULTI"], methods["MULTISTART"].generator):
        decoded = [Mapping.from_lsap(p, 6, 6) for p in generator.get_mappings(g1, g2, 10)]
        assert len(decoded) == len(set(decoded))


def test_output_help_names_the_result_directory():
    output = next(a for a in build_parser()._actions if "--output" in a.option_strings)
    assert config.RESULT_PATH in output.help


def test_results_table(molecule_pair):
    g1, g2 = molecule_pair
    methods = build_methods(ConstantEditCost(), ["BP", "MULTI", "IPFP", "MULTISTART"], 3, 1)
    df = run_methods(g1, g2, methods)

    assert list(df["Method"]) == ["BP", "MULTI", "IPFP", "MULTISTART"]
    assert (df["GED"] >= 0).all()
    # the bipartite mapping is one of the candidates of MULTI
    assert df.loc[df["Method"] == "MULTI", "GED"].item() <= df.loc[df["Method"] == "BP", "GED"].item()
    assert df.loc[df["Method"] == "IPFP", "Iterations"].item() >= 1


def test_cost_trace_figure_is_saved(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "TEMP_PATH", str(tmp_path))
    fig = plot_cost_trace([5.0, 3.0, 2.5], [4.0, 2.0], title="trace")
    path = save_figure(fig, "trace")

    assert path == os.path.join(str(tmp_path), "fig", "trace.png")
    assert os.path.getsize(path) > 0
