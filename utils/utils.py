import networkx as nx
import time
import logging
import config
import os
import datetime

from config import LOG_PATH

# Labelled edge-list format, one item per line:
#   v <node> <label>
#   e <source> <target> <label>
# Node ids are integers; the label field is optional.


def timer(func):
    """Wraps ``func`` so that it returns ``(result, elapsed seconds)``."""
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        result = func(*args, **kwargs)
        return result, time.perf_counter() - start
    return wrapper


def setup_logger(name, save_file=False, level=None):
    """Create a logger with the specified name, configured once per name."""
    level = config.LOGGING_LEVEL if level is None else level
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if logger.handlers:
        return logger

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handlers = [logging.StreamHandler()]
    if save_file:
        os.makedirs(LOG_PATH, exist_ok=True)
        handlers.append(logging.FileHandler(
            os.path.join(LOG_PATH, f"{datetime.datetime.now().strftime('%Y-%m-%d')}.log")))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def read_graph(file_path: str, directed: bool = False) -> nx.Graph:
    """
    Read a labelled graph from an edge-list file.

    Parameters:
    - file_path (str): Path to the file containing the graph.
    - directed (bool): Build a DiGraph instead of a Graph.

    Returns:
    - nx.Graph: The labelled graph; labels are stored under the "label" attribute,
      which is absent for items written without a label.
    """

    graph = nx.DiGraph() if directed else nx.Graph()

    with open(file_path, 'r', encoding='utf-8') as file:
        for line_no, line in enumerate(file.readlines(), start=1):
            items = line.split()
            if not items or items[0].startswith("#"):
                continue
            if items[0] == "v" and len(items) in (2, 3):
                attrs = {"label": items[2]} if len(items) == 3 else {}
                graph.add_node(int(items[1]), **attrs)
            elif items[0] == "e" and len(items) in (3, 4):
                attrs = {"label": items[3]} if len(items) == 4 else {}
                graph.add_edge(int(items[1]), int(items[2]), **attrs)
            else:
                raise ValueError(f"{file_path}:{line_no}: cannot parse '{line.strip()}'")

    return graph


def _label_field(label, item) -> str:
    if label is None:
        return ""
    if not isinstance(label, str) or not label or label.split() != [label]:
        raise ValueError(f"label {label!r} of {item} cannot be saved: labels must be strings without whitespace")
    return f"\t{label}"


def save_graph(graph: nx.Graph, file_path: str) -> None:
    """
    Save a labelled graph to an edge-list file readable by `read_graph`.

    Node ids must be integers and labels strings without whitespace;
    missing labels are left out of the file.

    Parameters:
    - graph (nx.Graph): The graph to be saved.
    - file_path (str): Path to the file where the graph will be saved.
    """

    lines = []
    for node, label in graph.nodes(data="label"):
        if not isinstance(node, int):
            raise ValueError(f"node id {node!r} cannot be saved: node ids must be integers")
        lines.append(f"v\t{node}{_label_field(label, f'node {node}')}\n")
    for source, target, label in graph.edges(data="label"):
        lines.append(f"e\t{source}\t{target}{_label_field(label, f'edge ({source}, {target})')}\n")

    with open(file_path, 'w', encoding='utf-8') as file_object:
        file_object.writelines(lines)


def create_output_file(result_columns, output_file_name=None):
    """Creates a CSV file holding only the header row; returns its path."""
    if output_file_name is None:
        output_file_name = datetime.datetime.now().strftime('%Y-%m-%d_%H-%M-%S')
    os.makedirs(config.RESULT_PATH, exist_ok=True)
    path = os.path.join(config.RESULT_PATH, f"{output_file_name}.csv")
    with open(path, "w", encoding="utf-8") as output_file:
        output_file.write(",".join(result_columns) + "\n")
    return path
