import matplotlib.pyplot as plt
import datetime
import config
import os
from typing import Optional, Sequence


def plot_cost_trace(S: Sequence[float], R: Sequence[float], title: Optional[str] = None):
    """
    Plot the cost traces of an IPFP run.

    Parameters:
    - S (Sequence[float]): Quadratic cost of the iterate, one value per iteration (plus the initial one).
    - R (Sequence[float]): Linear sub-problem cost of each direction.
    - title (str): Optional figure title.

    Returns:
    - fig: The matplotlib figure.
    """
    fig, ax = plt.subplots(figsize=(6, 4))
    ax.plot(range(len(S)), S, marker="o", label="S (quadratic cost)")
    ax.plot(range(1, len(R) + 1), R, marker="x", linestyle="--", label="R (linear sub-problem)")
    ax.set_xlabel("Iteration")
    ax.set_ylabel("Cost")
    if title:
        ax.set_title(title)
    ax.legend()
    fig.tight_layout()
    return fig


def save_figure(fig, name: Optional[str] = None) -> str:
    os.makedirs(os.path.join(config.TEMP_PATH, "fig"), exist_ok=True)
    if name is None:
        name = datetime.datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    path = os.path.join(config.TEMP_PATH, "fig", f"{name}.png")
    fig.savefig(path)
    plt.close(fig)
    return path
