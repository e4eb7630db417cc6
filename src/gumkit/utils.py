from __future__ import annotations

from typing import Union

import numpy as np

RngLike = Union[None, int, np.random.Generator]


def make_rng(seed: RngLike) -> np.random.Generator:
    """
    Return a PCG64-based Generator for `seed`.

    A Generator passes through unchanged, so callers can share one stream
    across several Monte Carlo runs; None gives fresh OS entropy.
    """
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(None if seed is None else np.random.PCG64(seed))
