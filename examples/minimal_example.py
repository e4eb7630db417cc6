import numpy as np
import matplotlib.pyplot as plt

from gumkit import LeafModel, combine_parallel, compose_sequential, label, uvs
from gumkit import PassThrough, make_rng, mc_propagate, propagate
from gumkit.plot import plot_correlation, plot_values

# Inputs: a length and a width, correlated through a shared ruler
L, W, A, P, R = (label(n) for n in ("L", "W", "area", "perimeter", "ratio"))
cov = np.array([[0.02**2, 0.5 * 0.02 * 0.01], [0.5 * 0.02 * 0.01, 0.01**2]])
inputs = uvs([L, W], [2.0, 0.5], cov)

area = LeafModel(
    inputs=(L, W),
    outputs=(A,),
    function=lambda x: [x[0] * x[1]],
    partials=lambda x: [[x[1], x[0]]],
)
perimeter = LeafModel(
    inputs=(L, W),
    outputs=(P,),
    function=lambda x: [2.0 * (x[0] + x[1])],
    partials=lambda x: [[2.0, 2.0]],
)
ratio = LeafModel(
    inputs=(A, P),
    outputs=(R,),
    function=lambda x: [x[0] / x[1]],
    partials=lambda x: [[1.0 / x[1], -x[0] / x[1] ** 2]],
)

# area and perimeter share the inputs; the ratio needs both
model = compose_sequential(ratio, combine_parallel(area, perimeter))

res = propagate(model, inputs)
print(res)
print(res.summary())

mc = mc_propagate(model, inputs, 50_000, make_rng(123))
print("Monte Carlo:", mc)

# Keep only the derived quantities
derived = propagate(combine_parallel(PassThrough((A,)), PassThrough((R,))), res)
ax = plot_values(derived)
ax.set_title("Derived quantities (1σ)")
plot_correlation(res)
plt.show()
