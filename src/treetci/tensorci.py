"""TensorCI - Tensor Cross Interpolation algorithms.

Tensor cross interpolation approximates a function of ``n`` integer
arguments as a tensor train while sampling it only on pivot slices, never on
the full grid. Two drivers are provided:

- :func:`crossinterpolate1` (:class:`TensorCI1`): nested pivot sets; every
  iteration adds exactly one pivot at the bond with the largest
  interpolation error.
- :func:`crossinterpolate2` (:class:`TensorCI2`): two-site sweeps that
  re-select all pivots of a bond with a rank-revealing LU, optionally
  enriched by a global pivot search on random probes.

Examples
--------
>>> from treetci.tensorci import crossinterpolate2
>>> import numpy as np
>>>
>>> # Define a function to interpolate
>>> def f(i, j, k):
...     return float((1 + i) * (1 + j) * (1 + k))
>>>
>>> # Perform cross interpolation
>>> tt, error = crossinterpolate2(f, [2, 2, 2], tolerance=1e-10)
>>> print(tt.n_sites)  # 3
>>> print(tt(0, 0, 0))  # 1.0
>>> print(tt(1, 1, 1))  # 8.0
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Callable, Optional, Sequence, Tuple

import numpy as np
import scipy.linalg

from ._pivots import CachedFunction, find_global_pivots, kron_cols, kron_rows
from .errors import ConvergenceFailure, InvalidDimensionError, StagnationDetected
from .factorize import rrlu
from .simplett import SimpleTensorTrain

logger = logging.getLogger(__name__)


class TCIStatus(IntEnum):
    """Why a cross interpolation stopped.

    Attributes
    ----------
    CONVERGED : int
        The error estimate reached the tolerance.
    MAX_RANK : int
        The bond dimension budget was exhausted above the tolerance.
    STAGNATED : int
        No pivot improving the approximation could be found.
    MAX_ITER : int
        The iteration limit was reached.
    """

    CONVERGED = 0
    MAX_RANK = 1
    STAGNATED = 2
    MAX_ITER = 3


def _maxrank(max_bonddim: Optional[int]) -> Optional[int]:
    if max_bonddim is None or max_bonddim == 0:
        return None
    if max_bonddim < 0:
        raise ValueError(f"max_bonddim must be non-negative, got {max_bonddim}")
    return int(max_bonddim)


class _TensorCI:
    """Pivot sets and sampling shared by both TCI variants.

    ``_I[p]`` holds the left multi-indices (length ``p``) and ``_J[p]`` the
    right multi-indices (length ``n - p - 1``) next to site ``p``. The pivots
    of bond ``b`` (between sites ``b`` and ``b + 1``) are ``_I[b + 1]`` and
    ``_J[b]``.
    """

    def __init__(
        self,
        func: Callable[..., float],
        local_dims: Sequence[int],
        initial_pivots: Optional[Sequence[Sequence[int]]] = None,
    ):
        local_dims = [int(d) for d in local_dims]
        n = len(local_dims)
        if n < 2:
            raise ValueError("local_dims must have at least 2 elements")
        for d in local_dims:
            if d <= 0:
                raise InvalidDimensionError(f"Local dimensions must be positive, got {d}")
        self._local_dims = local_dims
        if isinstance(func, CachedFunction):
            self._f = func
        else:
            self._f = CachedFunction(func, local_dims)

        if initial_pivots is None:
            initial_pivots = [[0] * n]
        pivots = [self._check_pivot(p) for p in initial_pivots]
        if not pivots:
            raise ValueError("At least one initial pivot is required")
        for p in pivots:
            if self._f(p) == 0:
                raise ValueError(f"f is zero at the initial pivot {list(p)}")

        first = max(pivots, key=lambda p: abs(self._f(p)))
        self._I = [[first[:p]] for p in range(n)]
        self._J = [[first[p + 1:]] for p in range(n)]
        self._initial_pivots = pivots
        self.bond_errors = [0.0] * (n - 1)
        self.errors: list[float] = []
        self.status: Optional[TCIStatus] = None

    def _check_pivot(self, pivot: Sequence[int]) -> tuple:
        pivot = tuple(int(i) for i in pivot)
        if len(pivot) != self.n_sites:
            raise ValueError(f"Pivot length {len(pivot)} must match n_sites {self.n_sites}")
        for p, (i, d) in enumerate(zip(pivot, self._local_dims)):
            if not 0 <= i < d:
                raise ValueError(f"Pivot {list(pivot)} out of range at site {p}")
        return pivot

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def _pi(self, b: int):
        """Two-site slice at bond `b` with its row and column multi-indices."""
        d1, d2 = self._local_dims[b], self._local_dims[b + 1]
        lefts, rights = self._I[b], self._J[b + 1]
        rows = kron_rows(lefts, d1)
        cols = kron_cols(d2, rights)
        mat = self._f.tensor(lefts, [d1, d2], rights).reshape(len(rows), len(cols))
        return rows, cols, mat

    def _site_tensor(self, p: int) -> np.ndarray:
        return self._f.tensor(self._I[p], [self._local_dims[p]], self._J[p])

    def _pivot_matrix(self, b: int) -> np.ndarray:
        return self._f.tensor(self._I[b + 1], [], self._J[b])

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def n_sites(self) -> int:
        """Number of sites."""
        return len(self._local_dims)

    def __len__(self) -> int:
        """Number of sites."""
        return self.n_sites

    @property
    def local_dims(self) -> list[int]:
        return list(self._local_dims)

    @property
    def link_dims(self) -> list[int]:
        """List of link (bond) dimensions."""
        return [len(self._I[b + 1]) for b in range(self.n_sites - 1)]

    @property
    def rank(self) -> int:
        """Current maximum bond dimension (rank)."""
        return max(self.link_dims, default=0)

    @property
    def max_sample_value(self) -> float:
        """Maximum absolute sample value encountered during interpolation."""
        return self._f.max_abs

    @property
    def max_bond_error(self) -> float:
        """Maximum bond error from the last iteration."""
        return max(self.bond_errors, default=0.0)

    @property
    def n_evaluations(self) -> int:
        """Number of distinct function evaluations."""
        return self._f.n_evaluations

    def pivots(self, b: int) -> tuple[list[tuple], list[tuple]]:
        """Left and right pivot multi-indices of bond `b`."""
        return list(self._I[b + 1]), list(self._J[b])

    def _normalized(self, error: float, normalize_error: bool) -> float:
        if normalize_error and self.max_sample_value > 0:
            return error / self.max_sample_value
        return error

    def to_tensor_train(self) -> SimpleTensorTrain:
        """Convert the TCI to a SimpleTensorTrain.

        Core ``p`` is ``T_p P_p^-1`` where ``T_p`` is the site slice and
        ``P_p`` the pivot matrix of bond ``p``; the last core is ``T_{n-1}``.

        Returns
        -------
        SimpleTensorTrain
            The tensor train representation.
        """
        cores = []
        n = self.n_sites
        for p in range(n):
            t = self._site_tensor(p)
            if p < n - 1:
                left, d, right = t.shape
                pm = self._pivot_matrix(p)
                mat = scipy.linalg.solve(pm.T, t.reshape(left * d, right).T).T
                t = mat.reshape(left, d, pm.shape[0])
            cores.append(t)
        return SimpleTensorTrain(cores)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(n_sites={self.n_sites}, rank={self.rank})"


class TensorCI1(_TensorCI):
    """TCI with nested pivot sets, growing one pivot per iteration.

    Parameters
    ----------
    func : callable
        Function taking one 0-based integer per site.
    local_dims : Sequence[int]
        Local dimension of every site.
    initial_pivots : Sequence[Sequence[int]], optional
        Candidate starting points; the one with the largest ``|f|`` is used.
        Default is ``[[0, 0, ...]]``.
    """

    def _bond_error(self, b: int) -> tuple[float, tuple, tuple]:
        """Largest ``|Pi - C P^-1 R|`` at bond `b` and where it occurs."""
        rows, cols, mat = self._pi(b)
        row_pos = {r: n for n, r in enumerate(rows)}
        col_pos = {c: n for n, c in enumerate(cols)}
        ri = [row_pos[i] for i in self._I[b + 1]]
        cj = [col_pos[j] for j in self._J[b]]
        pm = mat[np.ix_(ri, cj)]
        approx = mat[:, cj] @ scipy.linalg.solve(pm, mat[ri, :])
        diff = np.abs(mat - approx)
        r, c = np.unravel_index(int(np.argmax(diff)), diff.shape)
        return float(diff[r, c]), rows[r], cols[c]

    def iterate(
        self,
        *,
        tolerance: float,
        max_bonddim: Optional[int] = None,
        normalize_error: bool = True,
    ) -> Optional[TCIStatus]:
        """Add one pivot at the bond with the largest error.

        Returns
        -------
        TCIStatus or None
            A terminal status, or None if a pivot was added.
        """
        maxrank = _maxrank(max_bonddim)
        candidates = []
        for b in range(self.n_sites - 1):
            err, row, col = self._bond_error(b)
            self.bond_errors[b] = err
            candidates.append((err, b, row, col))
        error = self._normalized(self.max_bond_error, normalize_error)
        self.errors.append(error)
        if error <= tolerance:
            return TCIStatus.CONVERGED

        open_bonds = [
            c for c in candidates
            if maxrank is None or len(self._I[c[1] + 1]) < maxrank
        ]
        if not open_bonds:
            return TCIStatus.MAX_RANK
        err, b, row, col = max(open_bonds, key=lambda c: c[0])
        # err is the Schur complement entry of the new pivot; det(P) scales by it
        eps = np.finfo(np.float64).eps
        if err <= eps * self.max_sample_value:
            return TCIStatus.STAGNATED
        self._I[b + 1].append(row)
        self._J[b].append(col)
        if np.linalg.cond(self._pivot_matrix(b)) * eps >= 1.0:
            self._I[b + 1].pop()
            self._J[b].pop()
            return TCIStatus.STAGNATED
        logger.debug(
            "TCI1: pivot added at bond %d (error %.3e), link dims %s",
            b, err, self.link_dims,
        )
        return None


class TensorCI2(_TensorCI):
    """A TCI (Tensor Cross Interpolation) object for 2-site algorithm.

    Each iteration sweeps all bonds forward and backward. At every bond the
    two-site slice spanned by the neighbouring pivot sets is decomposed with
    a rank-revealing LU whose pivots replace the pivots of that bond.

    Parameters
    ----------
    func : callable
        Function taking one 0-based integer per site.
    local_dims : Sequence[int]
        Local dimension of every site.
    initial_pivots : Sequence[Sequence[int]], optional
        Initial pivots. Default is ``[[0, 0, ...]]``.

    Examples
    --------
    >>> tci = TensorCI2(lambda i, j, k: 1.0, [2, 3, 4])
    >>> print(tci.n_sites)  # 3
    >>> print(tci.rank)  # 1
    """

    def __init__(self, func, local_dims, initial_pivots=None):
        super().__init__(func, local_dims, initial_pivots)
        self.add_global_pivots(self._initial_pivots)

    def add_global_pivots(self, pivots: Sequence[Sequence[int]]) -> None:
        """Add global pivots to the TCI.

        Every prefix and suffix of each pivot is added to the pivot sets of
        all bonds; the next sweep re-selects the pivots from the enlarged
        slices.

        Parameters
        ----------
        pivots : Sequence[Sequence[int]]
            List of pivots, where each pivot is a list of indices (0-based).
        """
        for pivot in pivots:
            pivot = self._check_pivot(pivot)
            for b in range(self.n_sites - 1):
                if pivot[: b + 1] not in self._I[b + 1]:
                    self._I[b + 1].append(pivot[: b + 1])
                if pivot[b + 1:] not in self._J[b]:
                    self._J[b].append(pivot[b + 1:])

    def _update_bond(self, b: int, abstol: float, maxrank: Optional[int]) -> None:
        rows, cols, mat = self._pi(b)
        lu = rrlu(mat, abstol=abstol, maxrank=maxrank)
        self._I[b + 1] = [rows[r] for r in lu.row_pivots]
        self._J[b] = [cols[c] for c in lu.col_pivots]
        self.bond_errors[b] = lu.error

    def sweep(
        self,
        *,
        abstol: float = 0.0,
        max_bonddim: Optional[int] = None,
        forward: bool = True,
    ) -> None:
        """Update the pivots of every bond in one direction."""
        maxrank = _maxrank(max_bonddim)
        bonds = range(self.n_sites - 1)
        for b in (bonds if forward else reversed(bonds)):
            self._update_bond(b, abstol, maxrank)

    def iterate(
        self,
        *,
        tolerance: float,
        max_bonddim: Optional[int] = None,
        normalize_error: bool = True,
    ) -> float:
        """One forward and one backward sweep; returns the normalized error."""
        abstol = tolerance * self.max_sample_value if normalize_error else tolerance
        self.sweep(abstol=abstol, max_bonddim=max_bonddim, forward=True)
        abstol = tolerance * self.max_sample_value if normalize_error else tolerance
        self.sweep(abstol=abstol, max_bonddim=max_bonddim, forward=False)
        return self._normalized(self.max_bond_error, normalize_error)

    def search_global_pivots(
        self,
        *,
        nsearch: int,
        tolerance: float,
        normalize_error: bool = True,
        rng: Optional[np.random.Generator] = None,
    ) -> list[tuple[tuple, float]]:
        """Probe random points for errors above the tolerance.

        Returns
        -------
        list of (pivot, error)
            Points with their absolute error, largest first.
        """
        if rng is None:
            rng = np.random.default_rng()
        tt = self.to_tensor_train()
        abstol = tolerance * self.max_sample_value if normalize_error else tolerance
        return find_global_pivots(self._f, tt.evaluate, nsearch=nsearch, abstol=abstol, rng=rng)


def _finish(tci: _TensorCI, status: TCIStatus, error: float, tolerance: float, strict: bool) -> None:
    tci.status = status
    if status == TCIStatus.CONVERGED:
        logger.info(
            "%s converged: error %.3e, link dims %s, %d evaluations",
            type(tci).__name__, error, tci.link_dims, tci.n_evaluations,
        )
        return
    message = (
        f"{type(tci).__name__} stopped with status {status.name}: error {error:.3e} "
        f"above tolerance {tolerance:.1e} (link dims {tci.link_dims})"
    )
    logger.warning(message)
    if strict:
        if status == TCIStatus.STAGNATED:
            raise StagnationDetected(message, result=tci, error=error)
        raise ConvergenceFailure(message, result=tci, error=error)


def crossinterpolate1_tci(
    f: Callable[..., float],
    local_dims: Sequence[int],
    *,
    initial_pivots: Optional[Sequence[Sequence[int]]] = None,
    tolerance: float = 1e-8,
    max_bonddim: int = 0,
    max_iter: int = 200,
    normalize_error: bool = True,
    strict: bool = False,
) -> Tuple[TensorCI1, float]:
    """Cross interpolation with one pivot added per iteration.

    Returns the :class:`TensorCI1` object and the final error estimate; see
    :func:`crossinterpolate1` for the parameters.
    """
    tci = TensorCI1(f, local_dims, initial_pivots)
    status = TCIStatus.MAX_ITER
    for _ in range(max_iter):
        result = tci.iterate(
            tolerance=tolerance, max_bonddim=max_bonddim, normalize_error=normalize_error
        )
        if result is not None:
            status = result
            break
    error = tci.errors[-1] if tci.errors else float("inf")
    _finish(tci, status, error, tolerance, strict)
    return tci, error


def crossinterpolate1(
    f: Callable[..., float],
    local_dims: Sequence[int],
    *,
    initial_pivots: Optional[Sequence[Sequence[int]]] = None,
    tolerance: float = 1e-8,
    max_bonddim: int = 0,
    max_iter: int = 200,
    normalize_error: bool = True,
    strict: bool = False,
) -> Tuple[SimpleTensorTrain, float]:
    """Cross interpolation with one pivot added per iteration.

    Every iteration samples the two-site slices at the current pivots,
    measures the interpolation error at every bond and adds one pivot where
    it is largest.

    Parameters
    ----------
    f : Callable[..., float]
        A function that takes n_sites integer arguments (0-based indices) and returns a float.
    local_dims : Sequence[int]
        List of local dimensions for each site.
    initial_pivots : Sequence[Sequence[int]], optional
        Candidate starting points. Default is [[0, 0, ...]].
    tolerance : float, optional
        Tolerance for convergence (default: 1e-8).
    max_bonddim : int, optional
        Maximum bond dimension. 0 means unlimited (default: 0).
    max_iter : int, optional
        Maximum number of iterations, i.e. pivots added (default: 200).
    normalize_error : bool, optional
        Measure errors relative to the largest sampled ``|f|`` (default: True).
    strict : bool, optional
        Raise instead of warning when the tolerance is not reached.

    Returns
    -------
    tt : SimpleTensorTrain
        The resulting tensor train approximation.
    final_error : float
        The final error estimate.

    Raises
    ------
    StagnationDetected, ConvergenceFailure
        With ``strict=True`` when the tolerance is not reached.

    See Also
    --------
    crossinterpolate1_tci : Returns the :class:`TensorCI1` object, whose
        ``status`` tells why the iteration stopped.
    """
    tci, err = crossinterpolate1_tci(
        f,
        local_dims,
        initial_pivots=initial_pivots,
        tolerance=tolerance,
        max_bonddim=max_bonddim,
        max_iter=max_iter,
        normalize_error=normalize_error,
        strict=strict,
    )
    return tci.to_tensor_train(), err


def crossinterpolate2(
    f: Callable[..., float],
    local_dims: Sequence[int],
    *,
    initial_pivots: Optional[Sequence[Sequence[int]]] = None,
    tolerance: float = 1e-8,
    max_bonddim: int = 0,
    max_iter: int = 20,
    normalize_error: bool = True,
    nsearch_global: int = 5,
    seed: Optional[int] = None,
    strict: bool = False,
) -> Tuple[SimpleTensorTrain, float]:
    """Perform cross interpolation of a function to obtain a tensor train approximation.

    Parameters
    ----------
    f : Callable[..., float]
        A function that takes n_sites integer arguments (0-based indices) and returns a float.
    local_dims : Sequence[int]
        List of local dimensions for each site.
    initial_pivots : Sequence[Sequence[int]], optional
        Initial pivots. Default is [[0, 0, ...]].
    tolerance : float, optional
        Relative tolerance for convergence (default: 1e-8).
    max_bonddim : int, optional
        Maximum bond dimension. 0 means unlimited (default: 0).
    max_iter : int, optional
        Maximum number of iterations (default: 20).
    normalize_error : bool, optional
        Measure errors relative to the largest sampled ``|f|`` (default: True).
    nsearch_global : int, optional
        Random probes per iteration for the global pivot search; 0 disables
        it (default: 5).
    seed : int, optional
        Seed of the global pivot search.
    strict : bool, optional
        Raise instead of warning when the tolerance is not reached.

    Returns
    -------
    tt : SimpleTensorTrain
        The resulting tensor train approximation.
    final_error : float
        The final error estimate.

    See Also
    --------
    crossinterpolate2_tci : Returns the :class:`TensorCI2` object, whose
        ``status`` tells why the iteration stopped.

    Examples
    --------
    >>> def f(i, j, k):
    ...     return float((1 + i) * (1 + j) * (1 + k))
    >>> tt, err = crossinterpolate2(f, [2, 2, 2], tolerance=1e-10)
    >>> print(tt(0, 0, 0))  # 1.0
    >>> print(tt(1, 1, 1))  # 8.0
    """
    tci, err = crossinterpolate2_tci(
        f,
        local_dims,
        initial_pivots=initial_pivots,
        tolerance=tolerance,
        max_bonddim=max_bonddim,
        max_iter=max_iter,
        normalize_error=normalize_error,
        nsearch_global=nsearch_global,
        seed=seed,
        strict=strict,
    )
    return tci.to_tensor_train(), err


def crossinterpolate2_tci(
    f: Callable[..., float],
    local_dims: Sequence[int],
    *,
    initial_pivots: Optional[Sequence[Sequence[int]]] = None,
    tolerance: float = 1e-8,
    max_bonddim: int = 0,
    max_iter: int = 20,
    normalize_error: bool = True,
    nsearch_global: int = 5,
    seed: Optional[int] = None,
    strict: bool = False,
) -> Tuple[TensorCI2, float]:
    """Perform cross interpolation of a function and return the underlying TensorCI2 object.

    This is the low-level form of :func:`crossinterpolate2` that also exposes the
    intermediate `TensorCI2` state.

    An iteration counts as converged when its error is at most `tolerance`
    and no bond dimension changed. Three iterations with unchanged bond
    dimensions and no decrease of the error count as stagnation.
    """
    tci = TensorCI2(f, local_dims, initial_pivots)
    maxrank = _maxrank(max_bonddim)
    rng = np.random.default_rng(seed)
    status = TCIStatus.MAX_ITER
    ranks = tci.link_dims
    history = [ranks]
    # pivots added since the last sweep leave the pivot matrices unselected
    unswept = len(tci._initial_pivots) > 1
    for it in range(max_iter):
        error = tci.iterate(
            tolerance=tolerance, max_bonddim=maxrank, normalize_error=normalize_error
        )
        unswept = False
        if nsearch_global > 0:
            found = tci.search_global_pivots(
                nsearch=nsearch_global,
                tolerance=tolerance,
                normalize_error=normalize_error,
                rng=rng,
            )
            if found:
                error = max(error, tci._normalized(found[0][1], normalize_error))
                if maxrank is None or tci.rank < maxrank:
                    tci.add_global_pivots([p for p, _ in found])
                    unswept = True
        tci.errors.append(error)
        previous, ranks = ranks, tci.link_dims
        history.append(ranks)
        logger.debug(
            "TCI2 iteration %d: error %.3e, link dims %s", it + 1, error, ranks
        )
        if ranks == previous:
            if error <= tolerance:
                status = TCIStatus.CONVERGED
                break
            if maxrank is not None and max(ranks) >= maxrank:
                status = TCIStatus.MAX_RANK
                break
            if (
                len(tci.errors) >= 3
                and all(h == ranks for h in history[-3:])
                and tci.errors[-1] >= tci.errors[-3]
            ):
                status = TCIStatus.STAGNATED
                break
    if unswept:
        error = tci.iterate(
            tolerance=tolerance, max_bonddim=maxrank, normalize_error=normalize_error
        )
        tci.errors.append(error)
        logger.debug("TCI2 closing sweep: error %.3e, link dims %s", error, tci.link_dims)
    error = tci.errors[-1] if tci.errors else float("inf")
    _finish(tci, status, error, tolerance, strict)
    return tci, error


__all__ = [
    "TCIStatus",
    "TensorCI1",
    "TensorCI2",
    "crossinterpolate1",
    "crossinterpolate1_tci",
    "crossinterpolate2",
    "crossinterpolate2_tci",
]
