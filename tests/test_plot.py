# tests/test_plot.py
import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402

from gumkit import uvs  # noqa: E402
from gumkit.plot import plot_correlation, plot_values  # noqa: E402


def _values():
    cov = np.array([[0.04, 0.01], [0.01, 0.09]])
    return uvs(["y", "x"], [1.0, 2.0], cov)


def test_plot_values_draws_error_bars():
    ax = plot_values(_values(), k=2.0)
    assert len(ax.containers) == 1
    # display order puts x first
    line = ax.containers[0].lines[0]
    np.testing.assert_array_equal(line.get_ydata(), [2.0, 1.0])
    assert ax.get_legend().get_texts()[0].get_text() == "value ± 2σ"
    plt.close(ax.figure)


def test_plot_correlation_uses_natural_order():
    ax = plot_correlation(_values())
    image = ax.get_images()[0].get_array()
    assert image.shape == (2, 2)
    assert np.isclose(image[0, 1], 0.01 / (0.2 * 0.3))
    plt.close(ax.figure)
