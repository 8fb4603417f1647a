"""Contraction of two tree tensor networks with the same topology.

At every vertex the tensors of both networks are contracted over their
common site indices; the bonds of the two inputs become one bond of the
result. Three strategies are available:

- ``naive``: exact. Bond dimensions multiply; an optional budget is applied
  by a single truncation at the end.
- ``zipup``: one pass from the leaves to the root (vertex 0), cutting every
  bond with a truncated SVD as soon as it is formed.
- ``fit``: starts from ``zipup`` and improves the result with two-site
  variational sweeps until the norm of the fit stops changing.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

import numpy as np

from .algorithm import (
    CanonicalForm,
    ContractionAlgorithm,
    FactorizeAlgorithm,
    resolve_maxdim,
    resolve_truncation_tolerance,
)
from .factorize import factorize
from .index import Index, uniqueinds
from .tensor import Tensor
from .treetn import TreeTensorNetwork, check_same_topology, sim_linkinds

logger = logging.getLogger(__name__)

#: Default number of variational sweeps of ``fit``.
DEFAULT_FIT_NSWEEPS = 10
#: Default relative change of the fitted norm below which ``fit`` stops.
DEFAULT_FIT_SWEEP_TOL = 1e-10


def _fuse(t: Tensor, ia: Index, ib: Index, new: Index) -> Tensor:
    """Merge legs `ia` and `ib` (in that order, row-major) into `new`."""
    rest = uniqueinds(t.indices, [ia, ib])
    data = t.permute(rest + [ia, ib])._data
    data = data.reshape(tuple(i.dim for i in rest) + (new.dim,))
    return Tensor._from_array(rest + [new], data)


def contract_naive(
    a: TreeTensorNetwork,
    b: TreeTensorNetwork,
    *,
    rtol: Optional[float] = None,
    cutoff: Optional[float] = None,
    maxdim: Optional[int] = None,
) -> TreeTensorNetwork:
    """Exact contraction; truncated once at the end if a budget is given."""
    check_same_topology(a, b)
    b = sim_linkinds(b)
    tensors = [a._tensors[v] * b._tensors[v] for v in range(a.num_vertices)]
    edges = {}
    for (u, w), ia in a._edges.items():
        ib = b._edges[(u, w)]
        new = Index(ia.dim * ib.dim, tags=ia.tagset)
        tensors[u] = _fuse(tensors[u], ia, ib, new)
        tensors[w] = _fuse(tensors[w], ia, ib, new)
        edges[(u, w)] = new
    result = TreeTensorNetwork._from_parts(tensors, edges, a._adj, a._node_names)
    if rtol is not None or cutoff is not None or maxdim is not None:
        result.truncate(rtol=rtol, cutoff=cutoff, maxdim=maxdim)
    return result


def contract_zipup(
    a: TreeTensorNetwork,
    b: TreeTensorNetwork,
    *,
    rtol: Optional[float] = None,
    cutoff: Optional[float] = None,
    maxdim: Optional[int] = None,
) -> TreeTensorNetwork:
    """One-pass contraction with on-the-fly truncation.

    The result is in unitary canonical form with its center at vertex 0.
    """
    check_same_topology(a, b)
    tol = resolve_truncation_tolerance(cutoff=cutoff, rtol=rtol)
    maxdim = resolve_maxdim(maxdim)
    b = sim_linkinds(b)

    tensors: list = [None] * a.num_vertices
    edges = {}
    carry: dict[int, Tensor] = {}
    for v, parent in a._postorder(0):
        t = a._tensors[v]
        for c in a._children(v, parent):
            t = t * carry.pop(c)
        t = t * b._tensors[v]
        if parent is None:
            tensors[v] = t
            continue
        ia = a._bond(v, parent)
        ib = b._bond(v, parent)
        left_inds = uniqueinds(t.indices, [ia, ib])
        left, right, result = factorize(
            t, left_inds, alg=FactorizeAlgorithm.SVD, rtol=tol, maxdim=maxdim,
            bond_tags=ia.tagset,
        )
        tensors[v] = left
        carry[v] = right
        edges[(min(v, parent), max(v, parent))] = right.indices[0]
        logger.debug(
            "zipup vertex %r: bond dim %d, error %.3e",
            a._name(v), result.rank, result.error,
        )
    return TreeTensorNetwork._from_parts(
        tensors, edges, a._adj, a._node_names, CanonicalForm.Unitary, 0
    )


class _FitEnvironments:
    """Cached contractions of ``conj(x) * a * b`` over subtrees.

    ``env(u, w)`` covers the vertices on the `u` side of bond ``(u, w)`` and
    carries the bonds ``(u, w)`` of `x`, `a` and `b`.
    """

    def __init__(self, x: TreeTensorNetwork, a: TreeTensorNetwork, b: TreeTensorNetwork):
        self.x = x
        self.a = a
        self.b = b
        self._cache: dict[tuple[int, int], Tensor] = {}
        self._sides: dict[tuple[int, int], set] = {}

    def side(self, u: int, w: int) -> set:
        key = (u, w)
        if key not in self._sides:
            self._sides[key] = self.x._side(u, w)
        return self._sides[key]

    def get(self, u: int, w: int) -> Tensor:
        if (u, w) not in self._cache:
            for x, parent in self.x._postorder(u, w):
                if (x, parent) not in self._cache:
                    self._cache[(x, parent)] = self._compute(x, parent)
        return self._cache[(u, w)]

    def _compute(self, v: int, parent: int) -> Tensor:
        t = self.a._tensors[v]
        for c in self.x._children(v, parent):
            t = t * self._cache[(c, v)]
        t = t * self.b._tensors[v]
        return t * self.x._tensors[v].conj()

    def invalidate(self, *vertices: int) -> None:
        for key in list(self._cache):
            if any(v in self.side(*key) for v in vertices):
                del self._cache[key]

    def two_site(self, v: int, w: int) -> Tensor:
        """Optimal two-site tensor of `x` on bond ``(v, w)``."""
        a, b, x = self.a, self.b, self.x
        t = a._tensors[v]
        for c in x._children(v, w):
            t = t * self.get(c, v)
        t = t * b._tensors[v]
        t = t * a._tensors[w]
        for d in x._children(w, v):
            t = t * self.get(d, w)
        return t * b._tensors[w]


def contract_fit(
    a: TreeTensorNetwork,
    b: TreeTensorNetwork,
    *,
    rtol: Optional[float] = None,
    cutoff: Optional[float] = None,
    maxdim: Optional[int] = None,
    nsweeps: Optional[int] = None,
    sweep_tol: Optional[float] = None,
    init: Optional[TreeTensorNetwork] = None,
) -> TreeTensorNetwork:
    """Variational contraction.

    Parameters
    ----------
    a, b : TreeTensorNetwork
        Networks to contract.
    rtol, cutoff, maxdim :
        Truncation budget of every two-site update.
    nsweeps : int, optional
        Maximum number of sweeps (default 10).
    sweep_tol : float, optional
        Stop when the relative change of the fitted norm between two sweeps
        is below this value (default 1e-10).
    init : TreeTensorNetwork, optional
        Initial guess; the zipup result by default. Must carry the external
        site indices of the product.

    Returns
    -------
    TreeTensorNetwork
        The fit, in unitary canonical form centered at vertex 0.
    """
    check_same_topology(a, b)
    tol = resolve_truncation_tolerance(cutoff=cutoff, rtol=rtol)
    maxdim = resolve_maxdim(maxdim)
    nsweeps = DEFAULT_FIT_NSWEEPS if nsweeps is None else int(nsweeps)
    sweep_tol = DEFAULT_FIT_SWEEP_TOL if sweep_tol is None else float(sweep_tol)
    if nsweeps < 0:
        raise ValueError(f"nsweeps must be non-negative, got {nsweeps}")

    if a.num_vertices == 1:
        return contract_naive(a, b)

    if init is None:
        x = contract_zipup(a, b, rtol=tol, maxdim=maxdim)
    else:
        check_same_topology(a, init)
        x = init.copy()
        if x._canonical_form != CanonicalForm.Unitary or x._center != 0:
            x.orthogonalize(x._name(0))
    b = sim_linkinds(b)
    envs = _FitEnvironments(x, a, b)

    tour = x._euler_tour(0)
    previous = x._tensors[0].norm()
    converged = False
    for sweep in range(nsweeps):
        for v, w in tour:
            theta = envs.two_site(v, w)
            old = x._bond(v, w)
            v_legs = uniqueinds(x._tensors[v].indices, [old])
            left, right, _ = factorize(
                theta, v_legs, alg=FactorizeAlgorithm.SVD, rtol=tol, maxdim=maxdim,
                bond_tags=old.tagset,
            )
            new = right.indices[0]
            x._tensors[v] = left
            x._tensors[w] = right
            x._set_bond(v, w, new)
            envs.invalidate(v, w)
        current = x._tensors[0].norm()
        change = abs(current - previous) / max(current, np.finfo(float).tiny)
        logger.debug(
            "fit sweep %d: norm %.12e, relative change %.3e, max bond dim %d",
            sweep + 1, current, change, x.maxbonddim,
        )
        previous = current
        if change < sweep_tol:
            converged = True
            break
    if not converged and nsweeps > 0:
        logger.warning(
            "fit did not converge in %d sweeps (sweep_tol=%.1e)", nsweeps, sweep_tol
        )
    x._canonical_form = CanonicalForm.Unitary
    x._center = 0
    return x


def contract(
    a: TreeTensorNetwork,
    b: TreeTensorNetwork,
    *,
    method: Union[str, ContractionAlgorithm] = "zipup",
    maxdim: Optional[int] = None,
    rtol: Optional[float] = None,
    cutoff: Optional[float] = None,
    nsweeps: Optional[int] = None,
    sweep_tol: Optional[float] = None,
) -> TreeTensorNetwork:
    """Contract two tree tensor networks.

    Parameters
    ----------
    a : TreeTensorNetwork
        First TTN.
    b : TreeTensorNetwork
        Second TTN (must share site indices with a).
    method : str or ContractionAlgorithm
        Contraction method: "zipup" (default), "fit", or "naive".
    maxdim : int, optional
        Maximum bond dimension.
    rtol : float, optional
        Relative tolerance.
    cutoff : float, optional
        ITensorMPS.jl cutoff.
    nsweeps, sweep_tol : optional
        Stopping rule of "fit" (ignored by the other methods).

    Returns
    -------
    TreeTensorNetwork
        The contraction result.

    Raises
    ------
    IncompatibleTopologyError
        If the vertex names or bond structure of `a` and `b` differ.
    ValueError
        If `method` is unknown.
    """
    alg = ContractionAlgorithm.from_name(method)
    if alg == ContractionAlgorithm.Naive:
        result = contract_naive(a, b, rtol=rtol, cutoff=cutoff, maxdim=maxdim)
    elif alg == ContractionAlgorithm.ZipUp:
        result = contract_zipup(a, b, rtol=rtol, cutoff=cutoff, maxdim=maxdim)
    else:
        result = contract_fit(
            a, b, rtol=rtol, cutoff=cutoff, maxdim=maxdim,
            nsweeps=nsweeps, sweep_tol=sweep_tol,
        )
    logger.info(
        "contract(%s): %d vertices, max bond dim %d",
        alg.name(), result.num_vertices, result.maxbonddim,
    )
    return result


__all__ = [
    "DEFAULT_FIT_NSWEEPS",
    "DEFAULT_FIT_SWEEP_TOL",
    "contract",
    "contract_naive",
    "contract_zipup",
    "contract_fit",
]
