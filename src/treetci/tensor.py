"""Tensor class for treetci."""

from __future__ import annotations

from enum import IntEnum
from numbers import Number
from typing import TYPE_CHECKING, Iterable, Mapping, Sequence, Union

import numpy as np

from .errors import DuplicateLegError, ShapeMismatchError, UnknownIndexError
from .index import Index, commoninds, replaceinds, uniqueinds

if TYPE_CHECKING:
    from numpy.typing import NDArray


class StorageKind(IntEnum):
    """Storage type for tensor data."""
    DenseF64 = 0
    DenseC64 = 1


def _storage_dtype(data: np.ndarray) -> np.dtype:
    if np.iscomplexobj(data):
        return np.dtype(np.complex128)
    return np.dtype(np.float64)


class Tensor:
    """A dense tensor with labeled indices.

    A Tensor stores multidimensional data with associated Index objects
    that label each dimension. The data is stored in row-major (C) order.

    Examples
    --------
    >>> i = Index(2)
    >>> j = Index(3)
    >>> data = np.array([[1, 2, 3], [4, 5, 6]], dtype=np.float64)
    >>> t = Tensor([i, j], data)
    >>> t.rank
    2
    >>> t.dims
    (2, 3)
    """

    __slots__ = ("_inds", "_data")

    def __init__(self, indices: Sequence[Index], data: NDArray):
        """Create a new Tensor.

        Parameters
        ----------
        indices : list[Index]
            List of indices, one for each dimension.
        data : np.ndarray
            NumPy array with shape matching the index dimensions, or a flat
            buffer in row-major order with the right number of elements.
            Real data is stored as float64, complex data as complex128.

        Raises
        ------
        ShapeMismatchError
            If the data does not match the index dimensions.
        DuplicateLegError
            If an index appears twice.
        """
        indices = tuple(indices)
        if len(set(indices)) != len(indices):
            raise DuplicateLegError(
                f"Tensor indices must be distinct, got ids {[i.id for i in indices]}"
            )

        data = np.asarray(data)
        dims = tuple(idx.dim for idx in indices)
        if data.ndim != len(indices):
            if data.ndim == 1 and data.size == int(np.prod(dims, dtype=np.int64)):
                data = data.reshape(dims)
            else:
                raise ShapeMismatchError(
                    f"Number of indices ({len(indices)}) must match data dimensions "
                    f"({data.ndim})"
                )

        for i, idx in enumerate(indices):
            if idx.dim != data.shape[i]:
                raise ShapeMismatchError(
                    f"Index {i} has dim {idx.dim} but data has shape {data.shape[i]} "
                    f"at that axis"
                )

        self._inds = indices
        self._data = np.array(data, dtype=_storage_dtype(data), order="C", copy=True)

    @classmethod
    def _from_array(cls, indices: Sequence[Index], data: np.ndarray) -> Tensor:
        """Wrap an array without validation (internal use)."""
        instance = object.__new__(cls)
        instance._inds = tuple(indices)
        if data.dtype != np.float64 and data.dtype != np.complex128:
            data = data.astype(_storage_dtype(data))
        instance._data = data
        return instance

    @classmethod
    def onehot(
        cls,
        assignments: Union[Mapping[Index, int], Iterable[tuple[Index, int]]],
    ) -> Tensor:
        """Create a one-hot tensor.

        Parameters
        ----------
        assignments : mapping Index -> int
            0-based position for every leg. The legs of the result are the
            keys in the given order.

        Returns
        -------
        Tensor
            Real tensor with a single 1.0 at the given coordinate.
        """
        if isinstance(assignments, Mapping):
            pairs = list(assignments.items())
        else:
            pairs = list(assignments)
        inds = [idx for idx, _ in pairs]
        data = np.zeros(tuple(idx.dim for idx in inds), dtype=np.float64)
        pos = []
        for idx, p in pairs:
            p = int(p)
            if not 0 <= p < idx.dim:
                raise ValueError(f"Position {p} out of range for {idx!r}")
            pos.append(p)
        data[tuple(pos)] = 1.0
        return cls(inds, data)

    @classmethod
    def random(
        cls,
        indices: Sequence[Index],
        *,
        rng: np.random.Generator | None = None,
        dtype=np.float64,
    ) -> Tensor:
        """Create a tensor with normally distributed entries."""
        if rng is None:
            rng = np.random.default_rng()
        shape = tuple(idx.dim for idx in indices)
        data = rng.standard_normal(shape)
        if np.issubdtype(np.dtype(dtype), np.complexfloating):
            data = data + 1j * rng.standard_normal(shape)
        return cls(indices, data)

    def __repr__(self) -> str:
        return f"Tensor(rank={self.rank}, dims={self.dims}, storage={self.storage_kind.name})"

    @property
    def rank(self) -> int:
        """Get the number of indices (dimensions)."""
        return len(self._inds)

    @property
    def dims(self) -> tuple[int, ...]:
        """Get the dimensions as a tuple."""
        return tuple(idx.dim for idx in self._inds)

    @property
    def shape(self) -> tuple[int, ...]:
        """Alias for dims (NumPy-style)."""
        return self.dims

    @property
    def size(self) -> int:
        """Total number of elements."""
        return int(self._data.size)

    @property
    def indices(self) -> list[Index]:
        """Get the list of indices."""
        return list(self._inds)

    @property
    def storage_kind(self) -> StorageKind:
        """Get the storage type."""
        if self._data.dtype == np.complex128:
            return StorageKind.DenseC64
        return StorageKind.DenseF64

    @property
    def dtype(self) -> np.dtype:
        """Get the NumPy dtype corresponding to the storage kind."""
        return self._data.dtype

    def to_numpy(self, order: Sequence[Index] | None = None) -> NDArray:
        """Convert the tensor data to a NumPy array.

        Parameters
        ----------
        order : list[Index], optional
            Leg order of the returned array. Default is the tensor's own order.

        Returns
        -------
        np.ndarray
            NumPy array with the tensor data in C order.
        """
        if order is None:
            return self._data.copy()
        return self.permute(order)._data.copy()

    to_array = to_numpy

    def data(self) -> NDArray:
        """Flat copy of the data in row-major order."""
        return self._data.ravel(order="C").copy()

    def _axes(self, order: Sequence[Index]) -> list[int]:
        positions = {idx: n for n, idx in enumerate(self._inds)}
        order = list(order)
        if len(order) != len(self._inds) or set(order) != set(self._inds):
            raise UnknownIndexError(
                f"{order} is not a permutation of the tensor indices {list(self._inds)}"
            )
        return [positions[idx] for idx in order]

    def permute(self, order: Sequence[Index]) -> Tensor:
        """Return a tensor with legs reordered.

        Raises
        ------
        UnknownIndexError
            If `order` is not a permutation of the tensor's indices.
        """
        axes = self._axes(order)
        data = np.asarray(np.transpose(self._data, axes), order="C")
        return Tensor._from_array([self._inds[a] for a in axes], data)

    reorder = permute

    def clone(self) -> Tensor:
        """Create a copy of this tensor."""
        return Tensor._from_array(self._inds, self._data.copy())

    copy = clone

    def conj(self) -> Tensor:
        """Complex conjugate (same indices)."""
        if self._data.dtype == np.complex128:
            return Tensor._from_array(self._inds, np.conj(self._data))
        return self

    def norm(self) -> float:
        """Frobenius norm."""
        return float(np.linalg.norm(self._data.ravel()))

    def item(self):
        """Scalar value of a rank-0 (or single element) tensor."""
        if self._data.size != 1:
            raise ValueError(f"item() needs a single element, tensor has {self._data.size}")
        return self._data.reshape(-1)[0].item()

    def replaceinds(self, old_inds: Sequence[Index], new_inds: Sequence[Index]) -> Tensor:
        """Return a tensor (sharing data) with some indices replaced."""
        if len(old_inds) != len(new_inds):
            raise ValueError("old_inds and new_inds must have the same length")
        mapping = {}
        for old, new in zip(old_inds, new_inds):
            if old not in self._inds:
                raise UnknownIndexError(f"{old!r} is not an index of the tensor")
            if old.dim != new.dim:
                raise ShapeMismatchError(
                    f"Cannot replace {old!r} by {new!r}: dimensions differ"
                )
            mapping[old] = new
        inds = replaceinds(self._inds, list(mapping), list(mapping.values()))
        if len(set(inds)) != len(inds):
            raise DuplicateLegError("Replacement creates duplicate indices")
        return Tensor._from_array(inds, self._data)

    def replaceind(self, old: Index, new: Index) -> Tensor:
        """Return a tensor (sharing data) with one index replaced."""
        return self.replaceinds([old], [new])

    def contract(self, other: Tensor) -> Tensor:
        """Contract over all common indices.

        The result carries the remaining indices of `self` followed by the
        remaining indices of `other`.
        """
        common = commoninds(self._inds, other._inds)
        ax_a = [self._inds.index(c) for c in common]
        ax_b = [other._inds.index(c) for c in common]
        data = np.tensordot(self._data, other._data, axes=(ax_a, ax_b))
        rest_a = uniqueinds(self._inds, common)
        rest_b = uniqueinds(other._inds, common)
        return Tensor._from_array(rest_a + rest_b, np.asarray(data, order="C"))

    def __mul__(self, other):
        if isinstance(other, Tensor):
            return self.contract(other)
        if isinstance(other, Number):
            return Tensor._from_array(self._inds, self._data * other)
        return NotImplemented

    def __rmul__(self, other):
        if isinstance(other, Number):
            return Tensor._from_array(self._inds, self._data * other)
        return NotImplemented

    def __truediv__(self, other):
        if isinstance(other, Number):
            return Tensor._from_array(self._inds, self._data / other)
        return NotImplemented

    def __neg__(self) -> Tensor:
        return Tensor._from_array(self._inds, -self._data)

    def __add__(self, other: Tensor) -> Tensor:
        if not isinstance(other, Tensor):
            return NotImplemented
        return Tensor._from_array(self._inds, self._data + other.permute(self._inds)._data)

    def __sub__(self, other: Tensor) -> Tensor:
        if not isinstance(other, Tensor):
            return NotImplemented
        return Tensor._from_array(self._inds, self._data - other.permute(self._inds)._data)

    def isapprox(self, other: Tensor, *, rtol: float = 1e-10, atol: float = 0.0) -> bool:
        """Compare data (aligned by index) up to tolerances."""
        if set(self._inds) != set(other._inds):
            return False
        diff = np.linalg.norm((self - other)._data.ravel())
        scale = max(self.norm(), other.norm())
        return bool(diff <= atol + rtol * scale)


__all__ = ["Tensor", "StorageKind"]
