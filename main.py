import config
from utils.generator import ERGenerator
from utils.plot import plot_cost_trace, save_figure
from utils.utils import read_graph, setup_logger, timer, create_output_file
from costs import ConstantEditCost
from bipartite import BipartiteGraphEditDistance, BipartiteGraphEditDistanceMulti
from ipfp import IPFPGraphEditDistance
from multistart import MultistartRefinementGraphEditDistance
import argparse
import pandas as pd

logger = setup_logger(__name__)


def get_graphs(args, cf_params):
    """
    Reads the two graphs, or generates a random graph and a perturbed copy.

    :param args: The object containing arguments parsed from the command line.
    :param cf_params: The constant edit costs, used for the perturbation bound.
    :return: A tuple (g1, g2, bound) where bound is None for graphs read from files.
    """
    if args.files:
        if len(args.files) != 2:
            raise ValueError(f"Expected two graph files, got {len(args.files)}")
        logger.info(f"Reading graphs from files: {args.files}")
        g1, g2 = (read_graph(f, directed=args.directed) for f in args.files)
        return g1, g2, None

    generator = ERGenerator(args.n, args.degree, n_node_labels=args.labels, directed=args.directed,
                            seed=args.seed)
    logger.info(f"Generating ER graph (n={args.n}, degree={args.degree}) and a copy with {args.edits} edits")
    g1 = generator.generate_graph()
    g2, bound = generator.perturb(g1, args.edits, cf_params)
    return g1, g2, bound


def build_methods(cf, names, k, n_jobs):
    """
    Instantiates the requested graph edit distance methods.

    :return: A dict name -> method, in the requested order.
    """
    available_methods = {
        "BP": lambda: BipartiteGraphEditDistance(cf),
        "MULTI": lambda: BipartiteGraphEditDistanceMulti(cf, k=k, distinct=True),
        "IPFP": lambda: IPFPGraphEditDistance(cf),
        "MULTISTART": lambda: MultistartRefinementGraphEditDistance(
            cf, BipartiteGraphEditDistanceMulti(cf, k=k, distinct=True), k=k,
            refiner=IPFPGraphEditDistance(cf), n_jobs=n_jobs,
        ),
    }
    unknown = [name for name in names if name not in available_methods]
    if unknown:
        raise ValueError(f"Unknown methods: {unknown}. Available: {list(available_methods)}")
    return {name: available_methods[name]() for name in names}


def run_methods(g1, g2, methods):
    """
    Runs each method on the pair of graphs.

    :return: The results DataFrame.
    """
    results = []
    for name, method in methods.items():
        logger.info(f"================ Running {name} ================")
        ged, execution_time = timer(method)(g1, g2)
        logger.info(f"GED: {ged}")
        logger.info(f"Execution time: {execution_time:.3f} seconds")

        row = {"Method": name, "GED": ged, "Time (s)": round(execution_time, 3)}
        if isinstance(method, IPFPGraphEditDistance):
            row["Iterations"] = method.n_iterations
        results.append(row)

    return pd.DataFrame(results)


def build_parser():
    parser = argparse.ArgumentParser(
        description="Approximate the graph edit distance between two labelled graphs.",
        formatter_class=argparse.RawTextHelpFormatter,
    )

    # Graph parameters
    parser.add_argument("-n", type=int, default=20, help="Number of nodes of the generated graph.")
    parser.add_argument("-d", "--degree", type=float, default=3.0, help="Average degree for graph generation.")
    parser.add_argument("--labels", type=int, default=3, help="Number of distinct node labels.")
    parser.add_argument("--edits", type=int, default=5, help="Number of random edits applied to the copy.")
    parser.add_argument("--directed", action="store_true", help="Use directed graphs.")
    parser.add_argument("--seed", type=int, default=None, help="Random seed of the generator.")
    parser.add_argument(
        "--files",
        nargs="+",
        help="Two labelled edge-list files to compare (overrides generation).\nExample: --files g1.txt g2.txt",
    )

    # Method selection
    parser.add_argument(
        "--algos",
        nargs="+",
        default=["BP", "MULTI", "IPFP", "MULTISTART"],
        help="List of methods to run.\nAvailable: BP, MULTI, IPFP, MULTISTART.\nExample: --algos BP IPFP",
    )
    parser.add_argument(
        "-k",
        type=int,
        default=config.DEFAULT_K,
        help="Number of distinct initial mappings for MULTI and MULTISTART (-1 for all).\n"
             "Square assignments decoding to an already produced mapping are skipped.",
    )
    parser.add_argument("--jobs", type=int, default=config.N_JOBS,
                        help="Worker processes for MULTISTART (1 = sequential, -1 = all CPUs).")
    parser.add_argument("--plot", action="store_true", help="Save the cost trace of the IPFP run.")
    parser.add_argument("--output", type=str, default=None,
                        help=f"Name of the CSV file written under {config.RESULT_PATH}.")

    return parser


def main():
    """
    Main function: parses command-line arguments, runs the methods, and prints results.
    """
    args = build_parser().parse_args()

    try:
        # 1. Get graphs
        cf = ConstantEditCost(**config.DEFAULT_COSTS)
        g1, g2, bound = get_graphs(args, config.DEFAULT_COSTS)
        logger.info(f"g1: {g1.number_of_nodes()} nodes, {g1.number_of_edges()} edges; "
                    f"g2: {g2.number_of_nodes()} nodes, {g2.number_of_edges()} edges")

        # 2. Run methods
        methods = build_methods(cf, [algo.upper() for algo in args.algos], args.k, args.jobs)
        results_df = run_methods(g1, g2, methods)

        # 3. Display results
        print("\n================ Experiment Results ================")
        if bound is not None:
            print(f"Edit cost of the applied perturbation: {bound}")
        print(results_df.to_string(index=False))
        print("=" * 40)

        if args.output:
            output_path = create_output_file(list(results_df.columns), args.output)
            results_df.to_csv(output_path, mode="a", header=False, index=False)
            logger.info(f"Results saved to {output_path}")

        if args.plot and "IPFP" in methods:
            ipfp = methods["IPFP"]
            path = save_figure(plot_cost_trace(ipfp.S, ipfp.R, title=f"IPFP ({ipfp.n_iterations} iterations)"))
            logger.info(f"IPFP cost trace saved to {path}")

    except (ValueError, FileNotFoundError) as e:
        logger.error(f"An error occurred: {e}")


if __name__ == "__main__":
    main()
