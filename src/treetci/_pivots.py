"""Function caching and pivot search shared by the cross interpolation drivers."""

from __future__ import annotations

import itertools
from typing import Callable, Sequence

import numpy as np


class CachedFunction:
    """Memoized wrapper of ``f(*indices)`` over 0-based multi-indices.

    Parameters
    ----------
    f : callable
        Function taking one integer argument per site.
    local_dims : list[int]
        Dimension of every site.
    """

    def __init__(self, f: Callable[..., float], local_dims: Sequence[int]):
        self.f = f
        self.local_dims = tuple(int(d) for d in local_dims)
        self._cache: dict[tuple, object] = {}
        self.max_abs = 0.0

    def __call__(self, idx: tuple):
        value = self._cache.get(idx)
        if value is None:
            value = self.f(*idx)
            if not np.isfinite(value):
                raise ValueError(f"f{idx} = {value} is not finite")
            self._cache[idx] = value
            self.max_abs = max(self.max_abs, abs(value))
        return value

    @property
    def n_evaluations(self) -> int:
        """Number of distinct points at which f was evaluated."""
        return len(self._cache)

    def tensor(
        self,
        lefts: Sequence[tuple],
        middle: Sequence[int],
        rights: Sequence[tuple],
    ) -> np.ndarray:
        """Values on ``lefts x range(middle[0]) x ... x rights``.

        Returns an array of shape ``(len(lefts), *middle, len(rights))``.
        """
        values = [
            self(left + mid + right)
            for left in lefts
            for mid in itertools.product(*(range(d) for d in middle))
            for right in rights
        ]
        shape = (len(lefts),) + tuple(middle) + (len(rights),)
        return np.array(values).reshape(shape)


def kron_rows(lefts: Sequence[tuple], dim: int) -> list[tuple]:
    """Row multi-indices ``left + (s,)`` in row-major order."""
    return [left + (s,) for left in lefts for s in range(dim)]


def kron_cols(dim: int, rights: Sequence[tuple]) -> list[tuple]:
    """Column multi-indices ``(t,) + right`` in row-major order."""
    return [(t,) + right for t in range(dim) for right in rights]


def find_global_pivots(
    f: CachedFunction,
    approx: Callable[[list], complex],
    *,
    nsearch: int,
    abstol: float,
    rng: np.random.Generator,
) -> list[tuple[tuple, float]]:
    """Search for points where `approx` misses `f` by more than `abstol`.

    Every search starts at a random point and greedily moves one site at a
    time to the value with the largest error until no single-site move
    improves it.

    Returns
    -------
    list of (pivot, error)
        Distinct points sorted by decreasing error.
    """
    dims = f.local_dims
    found: dict[tuple, float] = {}
    for _ in range(nsearch):
        x = [int(rng.integers(d)) for d in dims]
        err = abs(f(tuple(x)) - approx(x))
        improved = True
        while improved:
            improved = False
            for p, d in enumerate(dims):
                for s in range(d):
                    if s == x[p]:
                        continue
                    y = list(x)
                    y[p] = s
                    e = abs(f(tuple(y)) - approx(y))
                    if e > err:
                        x, err, improved = y, e, True
        if err > abstol:
            found[tuple(x)] = float(err)
    return sorted(found.items(), key=lambda item: -item[1])
