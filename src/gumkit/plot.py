from __future__ import annotations

from typing import Any, Sequence

import numpy as np
import matplotlib.pyplot as plt

from .labels import LabelLike, as_labels
from .uncertain import UncertainValues


def plot_values(
    values: UncertainValues,
    labels: Sequence[LabelLike] | None = None,
    k: float = 1.0,
    ax: Any | None = None,
) -> Any:
    """
    Plot value ± k·σ for each label (display order by default).
    """
    if ax is None:
        fig, ax = plt.subplots()
        _ = fig  # silence linters if unused
    lbls = values.sorted_labels() if labels is None else list(as_labels(labels))
    x = np.arange(len(lbls))
    ax.errorbar(
        x,
        [values.value(lbl) for lbl in lbls],
        yerr=[values.uncertainty(lbl, k) for lbl in lbls],
        fmt="o",
        capsize=3,
        label=f"value ± {k:g}σ",
    )
    ax.set_xticks(x)
    ax.set_xticklabels([str(lbl) for lbl in lbls])
    ax.legend()
    return ax


def plot_correlation(values: UncertainValues, ax: Any | None = None) -> Any:
    """
    Show the correlation matrix in natural label order.
    """
    if ax is None:
        fig, ax = plt.subplots()
        _ = fig
    names = [str(lbl) for lbl in values.labels]
    im = ax.imshow(values.correlation_matrix(), vmin=-1.0, vmax=1.0, cmap="RdBu_r")
    ax.set_xticks(np.arange(len(names)))
    ax.set_xticklabels(names)
    ax.set_yticks(np.arange(len(names)))
    ax.set_yticklabels(names)
    ax.figure.colorbar(im, ax=ax, label="correlation")
    return ax
