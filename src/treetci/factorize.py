"""Matrix and tensor factorizations used by canonicalization, truncation,
contraction and cross interpolation.

All matrices are plain numpy arrays in row-major order. :func:`factorize`
lifts the matrix routines to :class:`~treetci.tensor.Tensor` objects by
grouping a subset of legs into rows and introducing a fresh bond index.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence, Union

import numpy as np
import scipy.linalg

from .algorithm import FactorizeAlgorithm
from .errors import UnknownIndexError
from .index import Index, uniqueinds
from .tensor import Tensor

logger = logging.getLogger(__name__)


def svd(a: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Thin SVD with ``gesvd`` as backup when ``gesdd`` does not converge."""
    try:
        return scipy.linalg.svd(a, full_matrices=False, lapack_driver="gesdd")
    except np.linalg.LinAlgError:
        logger.warning("SVD with lapack_driver 'gesdd' failed. Use backup 'gesvd'")
    return scipy.linalg.svd(a, full_matrices=False, lapack_driver="gesvd")


def truncation_rank(
    s: np.ndarray, rtol: float = 0.0, maxdim: Optional[int] = None
) -> int:
    """Number of singular values to keep.

    Keeps the smallest number ``k`` such that the relative discarded weight
    ``sqrt(sum(s[k:]**2) / sum(s**2))`` is at most `rtol`, then caps ``k`` at
    `maxdim`. At least one value is always kept.
    """
    s = np.asarray(s, dtype=np.float64)
    if s.size == 0:
        return 1
    weights = s * s
    total = float(np.sum(weights))
    if total == 0.0:
        k = 1
    else:
        tail = np.append(np.cumsum(weights[::-1])[::-1], 0.0)
        k = int(np.nonzero(tail <= (rtol * rtol) * total)[0][0])
        k = max(k, 1)
    if maxdim is not None:
        k = min(k, maxdim)
    return k


def discarded_weight(s: np.ndarray, k: int) -> float:
    """Relative Frobenius error of keeping the first `k` singular values."""
    s = np.asarray(s, dtype=np.float64)
    total = float(np.sum(s * s))
    if total == 0.0:
        return 0.0
    return float(np.sqrt(np.sum(s[k:] ** 2) / total))


@dataclass
class RrLU:
    """Result of :func:`rrlu`.

    ``a[row_perm][:, col_perm] ~= L @ U`` where the first ``npivots`` entries
    of the permutations are the pivot rows and columns.
    """

    row_perm: np.ndarray
    col_perm: np.ndarray
    L: np.ndarray
    U: np.ndarray
    left_orthogonal: bool
    pivot_errors: list = field(default_factory=list)
    error: float = 0.0

    @property
    def npivots(self) -> int:
        return self.L.shape[1]

    @property
    def row_pivots(self) -> np.ndarray:
        return self.row_perm[: self.npivots]

    @property
    def col_pivots(self) -> np.ndarray:
        return self.col_perm[: self.npivots]

    def left(self) -> np.ndarray:
        """L with rows in the original order."""
        out = np.empty_like(self.L)
        out[self.row_perm] = self.L
        return out

    def right(self) -> np.ndarray:
        """U with columns in the original order."""
        out = np.empty_like(self.U)
        out[:, self.col_perm] = self.U
        return out

    def ci_factors(self, left_orthogonal: bool = True) -> tuple[np.ndarray, np.ndarray]:
        """Cross-interpolation factors in the original row/column order.

        With ``left_orthogonal=True`` returns ``(C P^-1, R)``: the left factor
        is the identity on the pivot rows. Otherwise returns ``(C, P^-1 R)``.
        Here ``C = a[:, J]``, ``R = a[I, :]`` and ``P = a[I, J]``.
        """
        k = self.npivots
        L, U = self.L, self.U
        L11, U11 = L[:k], U[:, :k]
        if self.pivot_errors and self.pivot_errors[0] == 0.0:
            left = np.zeros_like(L)
            right = np.zeros_like(U)
            if left_orthogonal:
                left[:k] = np.eye(k)
            else:
                right[:, :k] = np.eye(k)
        elif left_orthogonal:
            # C P^-1 = L L11^-1, R = L11 U
            left = scipy.linalg.solve_triangular(
                L11.T, L.T, lower=False, unit_diagonal=self.left_orthogonal
            ).T
            right = L11 @ U
        else:
            # C = L U11, P^-1 R = U11^-1 U
            left = L @ U11
            right = scipy.linalg.solve_triangular(
                U11, U, lower=False, unit_diagonal=not self.left_orthogonal
            )
        out_left = np.empty_like(left)
        out_left[self.row_perm] = left
        out_right = np.empty_like(right)
        out_right[:, self.col_perm] = right
        return out_left, out_right


def rrlu(
    a: np.ndarray,
    *,
    rtol: float = 0.0,
    abstol: float = 0.0,
    maxrank: Optional[int] = None,
    left_orthogonal: bool = True,
) -> RrLU:
    """Rank-revealing LU decomposition with full pivoting.

    Pivots are chosen greedily as the largest remaining entry of the Schur
    complement. Elimination stops when the next pivot is below
    ``max(abstol, rtol * |first pivot|)`` or `maxrank` pivots were taken.
    At least one pivot is always taken for a non-empty matrix.

    Parameters
    ----------
    a : np.ndarray
        Matrix to decompose.
    rtol, abstol : float
        Relative (to the largest entry) and absolute pivot thresholds.
    maxrank : int, optional
        Maximum number of pivots.
    left_orthogonal : bool
        If True, L has a unit diagonal; otherwise U has.

    Returns
    -------
    RrLU
        The factors. ``error`` is the largest absolute entry of the
        remaining Schur complement (0 if it is empty).
    """
    A = np.array(a, dtype=np.result_type(a, np.float64), copy=True)
    m, n = A.shape
    row_perm = np.arange(m)
    col_perm = np.arange(n)
    limit = min(m, n) if maxrank is None else min(maxrank, m, n)
    pivot_errors = []
    scale = 0.0
    k = 0
    while k < limit:
        sub = np.abs(A[k:, k:])
        r, c = np.unravel_index(int(np.argmax(sub)), sub.shape)
        piv = float(sub[r, c])
        if k == 0:
            scale = piv
        elif piv == 0.0 or piv <= abstol or piv < rtol * scale:
            break
        r += k
        c += k
        A[[k, r], :] = A[[r, k], :]
        row_perm[[k, r]] = row_perm[[r, k]]
        A[:, [k, c]] = A[:, [c, k]]
        col_perm[[k, c]] = col_perm[[c, k]]
        pivot_errors.append(piv)
        if piv == 0.0:
            # zero matrix: a single trivial pivot
            k += 1
            break
        p = A[k, k]
        if left_orthogonal:
            A[k + 1:, k] /= p
        else:
            A[k, k + 1:] /= p
        A[k + 1:, k + 1:] -= np.outer(A[k + 1:, k], A[k, k + 1:])
        k += 1

    if k < m and k < n:
        error = float(np.max(np.abs(A[k:, k:])))
    else:
        error = 0.0

    if left_orthogonal:
        L = np.tril(A[:, :k], -1)
        L[np.arange(k), np.arange(k)] = 1.0
        U = np.triu(A[:k, :])
    else:
        L = np.tril(A[:, :k])
        U = np.triu(A[:k, :], 1)
        U[np.arange(k), np.arange(k)] = 1.0
    return RrLU(row_perm, col_perm, L, U, left_orthogonal, pivot_errors, error)


@dataclass
class MatrixCI:
    """Cross interpolation ``a ~= left @ right`` built from pivot rows/columns."""

    row_pivots: np.ndarray
    col_pivots: np.ndarray
    left: np.ndarray
    right: np.ndarray
    error: float

    @property
    def rank(self) -> int:
        return len(self.row_pivots)


def matrix_ci(
    a: np.ndarray,
    *,
    rtol: float = 0.0,
    abstol: float = 0.0,
    maxrank: Optional[int] = None,
    left_orthogonal: bool = True,
) -> MatrixCI:
    """Cross interpolation of a matrix with pivots chosen by :func:`rrlu`.

    Returns ``C P^-1`` and ``R`` when `left_orthogonal` is True, otherwise
    ``C`` and ``P^-1 R``. The approximation is exact on the pivot rows and
    columns.
    """
    lu = rrlu(a, rtol=rtol, abstol=abstol, maxrank=maxrank, left_orthogonal=True)
    left, right = lu.ci_factors(left_orthogonal)
    return MatrixCI(lu.row_pivots.copy(), lu.col_pivots.copy(), left, right, lu.error)


@dataclass
class FactorizeResult:
    """Diagnostics of :func:`factorize`.

    Attributes
    ----------
    rank : int
        Dimension of the new bond.
    error : float
        Relative truncation error: discarded Frobenius weight for SVD,
        largest discarded pivot relative to the largest entry for LU/CI,
        0 for QR.
    singular_values : np.ndarray or None
        All singular values (SVD only).
    """

    rank: int
    error: float = 0.0
    singular_values: Optional[np.ndarray] = None


def _matrix(tensor: Tensor, left_inds: Sequence[Index]):
    left_inds = list(left_inds)
    inds = tensor.indices
    for idx in left_inds:
        if idx not in inds:
            raise UnknownIndexError(f"{idx!r} is not an index of the tensor")
    right_inds = uniqueinds(inds, left_inds)
    ldims = tuple(i.dim for i in left_inds)
    rdims = tuple(i.dim for i in right_inds)
    rows = int(np.prod(ldims, dtype=np.int64))
    cols = int(np.prod(rdims, dtype=np.int64))
    mat = tensor.permute(left_inds + right_inds)._data.reshape(rows, cols)
    return mat, left_inds, right_inds, ldims, rdims


def factorize(
    tensor: Tensor,
    left_inds: Sequence[Index],
    *,
    alg: Union[str, FactorizeAlgorithm] = FactorizeAlgorithm.SVD,
    rtol: float = 0.0,
    maxdim: Optional[int] = None,
    bond_tags: Union[str, Iterable[str]] = "Link",
) -> tuple[Tensor, Tensor, FactorizeResult]:
    """Split a tensor into two tensors joined by a new bond index.

    Parameters
    ----------
    tensor : Tensor
        Tensor to split.
    left_inds : list[Index]
        Legs that go to the left factor. The remaining legs go right.
    alg : FactorizeAlgorithm or str
        ``QR`` (no truncation), ``SVD``, ``LU`` or ``CI``.
    rtol : float
        Relative truncation tolerance (ignored for QR).
    maxdim : int, optional
        Maximum bond dimension (ignored for QR).
    bond_tags : str or iterable of str
        Tags of the new bond index.

    Returns
    -------
    left, right : Tensor
        ``left * right`` approximates `tensor`. `left` carries `left_inds`
        followed by the new bond; `right` the bond followed by the other legs.
    result : FactorizeResult
    """
    alg = FactorizeAlgorithm.from_name(alg)
    mat, left_inds, right_inds, ldims, rdims = _matrix(tensor, left_inds)
    singular_values = None
    error = 0.0

    if alg == FactorizeAlgorithm.QR:
        left, right = scipy.linalg.qr(mat, mode="economic")
    elif alg == FactorizeAlgorithm.SVD:
        u, s, vh = svd(mat)
        k = truncation_rank(s, rtol, maxdim)
        error = discarded_weight(s, k)
        singular_values = s
        left = u[:, :k]
        right = s[:k, None] * vh[:k]
    else:
        lu = rrlu(mat, rtol=rtol, maxrank=maxdim, left_orthogonal=True)
        scale = lu.pivot_errors[0] if lu.pivot_errors else 0.0
        error = lu.error / scale if scale > 0 else 0.0
        if alg == FactorizeAlgorithm.LU:
            left, right = lu.left(), lu.right()
        else:
            left, right = lu.ci_factors(left_orthogonal=True)

    k = left.shape[1]
    bond = Index(k, tags=bond_tags)
    lt = Tensor._from_array(
        left_inds + [bond], np.ascontiguousarray(left).reshape(ldims + (k,))
    )
    rt = Tensor._from_array(
        [bond] + right_inds, np.ascontiguousarray(right).reshape((k,) + rdims)
    )
    logger.debug("factorize(%s): %dx%d -> rank %d, error %.3e",
                 alg.name(), mat.shape[0], mat.shape[1], k, error)
    return lt, rt, FactorizeResult(k, error, singular_values)


__all__ = [
    "svd",
    "truncation_rank",
    "discarded_weight",
    "RrLU",
    "rrlu",
    "MatrixCI",
    "matrix_ci",
    "FactorizeResult",
    "factorize",
]
