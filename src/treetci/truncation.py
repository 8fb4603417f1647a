"""Bond-dimension truncation of tree tensor networks.

Starting from a unitary canonical form, the orthogonality center walks a
depth-first tour of the tree. On the way out each bond is cut with a
truncated SVD of the center tensor, on the way back the center returns with
a plain QR. Since every tensor away from the center is an isometry, the
singular values at the cut are the Schmidt values of the full state and the
discarded weight is the exact local error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from math import sqrt
from typing import Optional

from .algorithm import (
    CanonicalForm,
    FactorizeAlgorithm,
    resolve_maxdim,
    resolve_truncation_tolerance,
)
from .canonical import orthogonalize, shift_center
from .errors import InvalidBudgetError, NotCanonicalizedError
from .treetn import TreeTensorNetwork

logger = logging.getLogger(__name__)


@dataclass
class TruncationResult:
    """Errors realised by a truncation sweep.

    Attributes
    ----------
    bond_errors : dict
        ``(v1, v2) -> error`` per bond (vertex names ordered by position).
        The error is the relative discarded weight
        ``sqrt(sum(discarded s**2) / sum(s**2))``.
    error : float
        Square root of the sum of squared bond errors.
    """

    bond_errors: dict = field(default_factory=dict)
    error: float = 0.0

    @property
    def max_bond_error(self) -> float:
        return max(self.bond_errors.values(), default=0.0)


def _resolve_budget(rtol, cutoff, maxdim) -> tuple[float, Optional[int]]:
    if rtol is None and cutoff is None and maxdim is None:
        raise InvalidBudgetError(
            "truncate needs at least one of `rtol`, `cutoff` or `maxdim`"
        )
    return resolve_truncation_tolerance(cutoff=cutoff, rtol=rtol), resolve_maxdim(maxdim)


def truncate_canonical(
    ttn: TreeTensorNetwork,
    *,
    rtol: float,
    maxdim: Optional[int] = None,
) -> TruncationResult:
    """Truncate a network that is already in unitary canonical form.

    Parameters
    ----------
    ttn : TreeTensorNetwork
        Network with a unitary orthogonality center. Modified in place; the
        center is unchanged afterwards.
    rtol : float
        Relative discarded-weight tolerance per bond.
    maxdim : int, optional
        Maximum bond dimension.

    Returns
    -------
    TruncationResult

    Raises
    ------
    NotCanonicalizedError
        If `ttn` is not in unitary canonical form.
    """
    if ttn._canonical_form != CanonicalForm.Unitary or ttn._center is None:
        raise NotCanonicalizedError(
            "truncate_canonical requires a unitary canonical form; "
            "call orthogonalize() first"
        )
    root = ttn._center
    bond_errors = {}
    squares = 0.0
    for v, w in ttn._euler_tour(root):
        key = (v, w) if v < w else (w, v)
        if key in bond_errors:
            shift_center(ttn, v, w, FactorizeAlgorithm.QR)
            continue
        before = ttn._bond(v, w).dim
        result = shift_center(
            ttn, v, w, FactorizeAlgorithm.SVD, rtol=rtol, maxdim=maxdim
        )
        bond_errors[key] = result.error
        squares += result.error ** 2
        logger.debug(
            "truncate bond (%r, %r): %d -> %d, error %.3e",
            ttn._name(key[0]), ttn._name(key[1]), before, result.rank, result.error,
        )

    named = {(ttn._name(u), ttn._name(w)): e for (u, w), e in sorted(bond_errors.items())}
    result = TruncationResult(named, sqrt(squares))
    ttn.truncation_result = result
    logger.info(
        "truncated %d bonds: max bond dim %d, error %.3e",
        len(named), ttn.maxbonddim, result.error,
    )
    return result


def truncate(
    ttn: TreeTensorNetwork,
    *,
    rtol: Optional[float] = None,
    cutoff: Optional[float] = None,
    maxdim: Optional[int] = None,
) -> TruncationResult:
    """Truncate bond dimensions in place, canonicalizing first if needed.

    Parameters
    ----------
    ttn : TreeTensorNetwork
        Network to truncate.
    rtol : float, optional
        Relative tolerance per bond.
    cutoff : float, optional
        ITensorMPS.jl cutoff; ``rtol = sqrt(cutoff)``.
    maxdim : int, optional
        Maximum bond dimension.

    Returns
    -------
    TruncationResult

    Raises
    ------
    InvalidBudgetError
        If no budget is given, both `rtol` and `cutoff` are given, a
        tolerance is negative, or ``maxdim < 1``.
    """
    tol, maxdim = _resolve_budget(rtol, cutoff, maxdim)
    if ttn._canonical_form != CanonicalForm.Unitary or ttn._center is None:
        center = ttn._name(ttn._center) if ttn._center is not None else ttn._name(0)
        orthogonalize(ttn, center, CanonicalForm.Unitary)
    return truncate_canonical(ttn, rtol=tol, maxdim=maxdim)


__all__ = ["TruncationResult", "truncate", "truncate_canonical"]
