"""Canonical forms of tree tensor networks.

Moving the orthogonality center across a bond factors the tensor on the
departing side, keeps the left factor there and absorbs the remainder into
the neighbour. The factorization depends on the form:

- ``Unitary``: QR, the kept factor has orthonormal columns.
- ``LU``: rank-revealing LU, the kept factor is unit lower triangular on its
  pivot rows.
- ``CI``: cross interpolation, the kept factor is the identity on its pivot
  rows.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

import numpy as np

from .algorithm import CanonicalForm, FactorizeAlgorithm
from .errors import EmptyNetworkError, UnknownIndexError
from .factorize import FactorizeResult, factorize
from .index import Index, uniqueinds
from .tensor import Tensor
from .treetn import TreeTensorNetwork

logger = logging.getLogger(__name__)


def shift_center(
    ttn: TreeTensorNetwork,
    v: int,
    w: int,
    alg: FactorizeAlgorithm,
    *,
    rtol: float = 0.0,
    maxdim: Optional[int] = None,
) -> FactorizeResult:
    """Factor the tensor at position `v` across its bond to `w`.

    The left factor stays at `v`, the remainder is absorbed into `w`. Leg
    order of both tensors is preserved, with the bond index replaced by the
    new one.
    """
    bond = ttn._bond(v, w)
    tv = ttn._tensors[v]
    tw = ttn._tensors[w]
    left_inds = uniqueinds(tv.indices, [bond])
    left, right, result = factorize(
        tv, left_inds, alg=alg, rtol=rtol, maxdim=maxdim, bond_tags=bond.tagset
    )
    new_bond = right.indices[0]
    ttn._tensors[v] = left.permute([new_bond if i == bond else i for i in tv.indices])
    ttn._tensors[w] = (right * tw).permute(
        [new_bond if i == bond else i for i in tw.indices]
    )
    ttn._set_bond(v, w, new_bond)
    return result


def orthogonalize(
    ttn: TreeTensorNetwork,
    target,
    form: Union[str, CanonicalForm] = CanonicalForm.Unitary,
) -> TreeTensorNetwork:
    """Move the orthogonality center of `ttn` to `target` in place.

    If the network already has a center in the requested form, only the
    tensors on the path from it to `target` are refactored. Otherwise every
    vertex is swept toward `target`, leaves first.

    Parameters
    ----------
    ttn : TreeTensorNetwork
        Network to canonicalize.
    target : vertex name
        New orthogonality center.
    form : str or CanonicalForm
        "unitary" (QR), "lu" or "ci".

    Returns
    -------
    TreeTensorNetwork
        `ttn` itself.

    Raises
    ------
    KeyError
        If `target` is not a vertex of `ttn`.
    EmptyNetworkError
        If `ttn` has no vertices.
    """
    form = CanonicalForm.from_name(form)
    if ttn.num_vertices == 0:
        raise EmptyNetworkError("Cannot orthogonalize an empty network")
    t = ttn._pos(target)
    alg = form.factorize_algorithm()

    if ttn._canonical_form == form and ttn._center is not None:
        path = ttn._path(ttn._center, t)
        steps = list(zip(path[:-1], path[1:]))
    else:
        steps = [(v, p) for v, p in ttn._postorder(t) if p is not None]

    for v, w in steps:
        shift_center(ttn, v, w, alg)

    ttn._canonical_form = form
    ttn._center = t
    logger.debug(
        "orthogonalize(%s): center %r after %d steps, bond dims %s",
        form.name, target, len(steps), ttn.bond_dims,
    )
    return ttn


def tree_path(ttn: TreeTensorNetwork, src, dst) -> list:
    """Vertex names on the unique path from `src` to `dst`, both included."""
    return [ttn._name(p) for p in ttn._path(ttn._pos(src), ttn._pos(dst))]


def _pivot_rows(mat: np.ndarray, atol: float, identity: bool) -> bool:
    """Check for ``k`` rows forming a unit lower triangle (or the identity)."""
    k = mat.shape[1]
    used = set()
    for j in range(k - 1, -1, -1):
        ok = (np.abs(mat[:, j] - 1.0) <= atol) & np.all(
            np.abs(mat[:, j + 1:]) <= atol, axis=1
        )
        if identity:
            ok &= np.all(np.abs(mat[:, :j]) <= atol, axis=1)
        rows = [r for r in np.nonzero(ok)[0] if r not in used]
        if not rows:
            return False
        used.add(rows[0])
    return True


def is_orthogonal(
    tensor: Tensor,
    bond: Index,
    form: Union[str, CanonicalForm] = CanonicalForm.Unitary,
    atol: float = 1e-10,
) -> bool:
    """Check the orthogonality condition of a tensor pointing along `bond`.

    The tensor is viewed as a matrix with `bond` as column index and all
    other legs as row index.

    Parameters
    ----------
    tensor : Tensor
        Tensor away from the orthogonality center.
    bond : Index
        Leg pointing toward the center.
    form : str or CanonicalForm
        Condition to check.
    atol : float
        Absolute tolerance.
    """
    form = CanonicalForm.from_name(form)
    if bond not in tensor.indices:
        raise UnknownIndexError(f"{bond!r} is not an index of the tensor")
    rows = uniqueinds(tensor.indices, [bond])
    mat = tensor.permute(rows + [bond])._data.reshape(-1, bond.dim)
    if form == CanonicalForm.Unitary:
        gram = mat.conj().T @ mat
        return bool(np.max(np.abs(gram - np.eye(bond.dim))) <= atol)
    return _pivot_rows(mat, atol, identity=form == CanonicalForm.CI)


def check_canonical(ttn: TreeTensorNetwork, atol: float = 1e-10) -> bool:
    """True if every non-center tensor satisfies the condition of its form."""
    if ttn._canonical_form is None or ttn._center is None:
        return False
    for v, parent in ttn._postorder(ttn._center):
        if parent is None:
            continue
        if not is_orthogonal(
            ttn._tensors[v], ttn._bond(v, parent), ttn._canonical_form, atol
        ):
            return False
    return True


__all__ = [
    "orthogonalize",
    "shift_center",
    "tree_path",
    "is_orthogonal",
    "check_canonical",
]
