from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class ExecutionContext:
    """
    How much parallelism a propagation call may use.

    Passed explicitly to `propagate` / `mc_propagate`; nothing reads a global
    pool. `workers=1` (the default) keeps everything on the calling thread and
    fully deterministic.
    """

    workers: int = 1

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")

    @property
    def parallel(self) -> bool:
        return self.workers > 1

    def map(self, fn: Callable[[T], R], items: Sequence[T]) -> list[R]:
        """
        Apply `fn` to every item, on a thread pool when parallel.

        Results come back in item order; the first exception raised by any
        call propagates.
        """
        if not self.parallel or len(items) < 2:
            return [fn(item) for item in items]
        with ThreadPoolExecutor(max_workers=min(self.workers, len(items))) as ex:
            return list(ex.map(fn, items))


SERIAL = ExecutionContext()
