"""SimpleTensorTrain - Simple tensor train for TCI operations.

A tensor train stored as a plain list of numpy cores of shape
``(left, site, right)``; the outer bonds have dimension 1.

Examples
--------
>>> from treetci.simplett import SimpleTensorTrain
>>> import numpy as np
>>>
>>> # Create a constant tensor train
>>> tt = SimpleTensorTrain.constant([2, 3, 4], value=1.5)
>>> print(tt.n_sites)  # 3
>>> print(tt.site_dims)  # [2, 3, 4]
>>> print(tt.sum())  # 36.0 (= 1.5 * 2 * 3 * 4)
>>>
>>> # Evaluate at specific indices
>>> print(tt(0, 0, 0))  # 1.5
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Union

import numpy as np

from .algorithm import CompressionAlgorithm, FactorizeAlgorithm
from .errors import ShapeMismatchError
from .factorize import rrlu, svd, truncation_rank
from .index import Index
from .tensor import Tensor

logger = logging.getLogger(__name__)


class SimpleTensorTrain:
    """A simple tensor train (MPS) for TCI operations.

    Parameters
    ----------
    cores : list of np.ndarray
        3D arrays of shape ``(left, site, right)``. Neighbouring bond
        dimensions must agree and the outer bonds must have dimension 1.

    Examples
    --------
    >>> tt = SimpleTensorTrain.constant([2, 2, 2], 1.0)
    >>> print(tt.n_sites)  # 3
    >>> print(tt.rank)  # 1
    >>> print(tt.sum())  # 8.0
    """

    def __init__(self, cores: Sequence[np.ndarray]):
        """Create a SimpleTensorTrain from its cores."""
        cores = [np.asarray(c) for c in cores]
        if not cores:
            raise ValueError("A tensor train needs at least one core")
        for n, c in enumerate(cores):
            if c.ndim != 3:
                raise ShapeMismatchError(f"Core {n} must be 3D, got shape {c.shape}")
        if cores[0].shape[0] != 1 or cores[-1].shape[2] != 1:
            raise ShapeMismatchError("Outer bond dimensions must be 1")
        for n in range(len(cores) - 1):
            if cores[n].shape[2] != cores[n + 1].shape[0]:
                raise ShapeMismatchError(
                    f"Bond {n}: core {n} has right dim {cores[n].shape[2]}, "
                    f"core {n + 1} has left dim {cores[n + 1].shape[0]}"
                )
        dtype = np.result_type(*cores, np.float64)
        self._cores = [np.array(c, dtype=dtype) for c in cores]

    @classmethod
    def from_cores(cls, cores: Sequence[np.ndarray]) -> SimpleTensorTrain:
        """Create a tensor train from a list of ``(left, site, right)`` cores."""
        return cls(cores)

    @classmethod
    def constant(cls, site_dims: Sequence[int], value: float = 1.0) -> SimpleTensorTrain:
        """Create a constant tensor train.

        All elements of the tensor train will have the specified value.

        Parameters
        ----------
        site_dims : Sequence[int]
            Dimensions for each site.
        value : float, optional
            The constant value (default: 1.0).

        Returns
        -------
        SimpleTensorTrain
            A new tensor train with all elements equal to `value`.

        Examples
        --------
        >>> tt = SimpleTensorTrain.constant([2, 3, 4], 2.0)
        >>> print(tt.sum())  # 48.0 (= 2.0 * 2 * 3 * 4)
        """
        cores = [np.ones((1, d, 1)) for d in site_dims]
        if cores:
            cores[0] = cores[0] * value
        return cls(cores)

    @classmethod
    def zeros(cls, site_dims: Sequence[int]) -> SimpleTensorTrain:
        """Create a zero tensor train.

        Parameters
        ----------
        site_dims : Sequence[int]
            Dimensions for each site.

        Returns
        -------
        SimpleTensorTrain
            A new tensor train with all elements equal to zero.
        """
        return cls([np.zeros((1, d, 1)) for d in site_dims])

    def copy(self) -> SimpleTensorTrain:
        """Create a deep copy of this tensor train."""
        return SimpleTensorTrain([c.copy() for c in self._cores])

    @property
    def n_sites(self) -> int:
        """Number of sites in the tensor train."""
        return len(self._cores)

    def __len__(self) -> int:
        """Number of sites in the tensor train."""
        return self.n_sites

    @property
    def cores(self) -> list[np.ndarray]:
        """The cores (not copied)."""
        return self._cores

    @property
    def dtype(self) -> np.dtype:
        return self._cores[0].dtype

    @property
    def site_dims(self) -> list[int]:
        """List of site (physical) dimensions."""
        return [c.shape[1] for c in self._cores]

    @property
    def link_dims(self) -> list[int]:
        """List of link (bond) dimensions. Returns n-1 values for n sites."""
        return [c.shape[2] for c in self._cores[:-1]]

    @property
    def rank(self) -> int:
        """Maximum bond dimension (rank)."""
        return max(self.link_dims, default=1)

    def evaluate(self, indices: Sequence[int]) -> Union[float, complex]:
        """Evaluate the tensor train at a given multi-index.

        Parameters
        ----------
        indices : Sequence[int]
            The indices for each site (0-based).

        Returns
        -------
        float
            The value at the specified indices.

        Examples
        --------
        >>> tt = SimpleTensorTrain.constant([2, 3], 5.0)
        >>> print(tt.evaluate([0, 1]))  # 5.0
        """
        indices = list(indices)
        if len(indices) != self.n_sites:
            raise ValueError(
                f"Expected {self.n_sites} indices, got {len(indices)}"
            )
        vec = np.ones((1,), dtype=self.dtype)
        for n, (core, i) in enumerate(zip(self._cores, indices)):
            if not 0 <= i < core.shape[1]:
                raise IndexError(f"Index {i} out of range [0, {core.shape[1]}) at site {n}")
            vec = vec @ core[:, i, :]
        return vec[0].item()

    def __call__(self, *indices: int) -> Union[float, complex]:
        """Evaluate the tensor train at a given multi-index.

        This is a convenience method equivalent to `evaluate()`.
        """
        return self.evaluate(indices)

    def sum(self) -> Union[float, complex]:
        """Compute the sum over all tensor train elements.

        Examples
        --------
        >>> tt = SimpleTensorTrain.constant([2, 3], 1.0)
        >>> print(tt.sum())  # 6.0 (= 2 * 3)
        """
        vec = np.ones((1,), dtype=self.dtype)
        for core in self._cores:
            vec = vec @ core.sum(axis=1)
        return vec[0].item()

    def norm(self) -> float:
        """Compute the Frobenius norm of the tensor train."""
        env = np.ones((1, 1), dtype=self.dtype)
        for core in self._cores:
            env = np.einsum("ab,asc,bsd->cd", env, core.conj(), core)
        return float(np.sqrt(abs(env[0, 0])))

    def site_tensor(self, site: int) -> np.ndarray:
        """Get the site tensor at a specific site.

        Parameters
        ----------
        site : int
            The site index (0-based).

        Returns
        -------
        np.ndarray
            A 3D array with shape (left_dim, site_dim, right_dim).
        """
        n = self.n_sites
        if site < 0 or site >= n:
            raise IndexError(f"Site index {site} out of range [0, {n})")
        return self._cores[site].copy()

    def to_numpy(self) -> np.ndarray:
        """Full tensor of shape ``site_dims`` (exponential in the number of sites)."""
        full = self._cores[0]
        for core in self._cores[1:]:
            full = np.tensordot(full, core, axes=([-1], [0]))
        return full.reshape(self.site_dims)

    fulltensor = to_numpy

    def compress(
        self,
        tolerance: float = 1e-12,
        max_bond_dim: Optional[int] = None,
        alg: Union[str, CompressionAlgorithm] = CompressionAlgorithm.SVD,
    ) -> SimpleTensorTrain:
        """Reduce bond dimensions in place.

        Parameters
        ----------
        tolerance : float
            Relative tolerance per bond (discarded singular weight for SVD,
            pivot size relative to the largest entry for LU/CI).
        max_bond_dim : int, optional
            Maximum bond dimension.
        alg : str or CompressionAlgorithm
            "svd" (default), "lu" or "ci".

        Returns
        -------
        self
        """
        alg = CompressionAlgorithm.from_name(alg)
        cores = self._cores
        n = len(cores)
        if alg == CompressionAlgorithm.SVD:
            # left-orthogonalize, then truncate from the right
            for i in range(n - 1):
                l, d, r = cores[i].shape
                q, rr = np.linalg.qr(cores[i].reshape(l * d, r))
                cores[i] = q.reshape(l, d, q.shape[1])
                cores[i + 1] = np.tensordot(rr, cores[i + 1], axes=([1], [0]))
            for i in range(n - 1, 0, -1):
                l, d, r = cores[i].shape
                u, s, vh = svd(cores[i].reshape(l, d * r))
                k = truncation_rank(s, tolerance, max_bond_dim)
                cores[i] = vh[:k].reshape(k, d, r)
                cores[i - 1] = np.tensordot(cores[i - 1], u[:, :k] * s[:k], axes=([2], [0]))
        else:
            fa = alg.factorize_algorithm()
            for i in range(n - 1):
                l, d, r = cores[i].shape
                lu = rrlu(cores[i].reshape(l * d, r), rtol=tolerance, maxrank=max_bond_dim)
                if fa == FactorizeAlgorithm.LU:
                    left, right = lu.left(), lu.right()
                else:
                    left, right = lu.ci_factors(left_orthogonal=True)
                cores[i] = left.reshape(l, d, left.shape[1])
                cores[i + 1] = np.tensordot(right, cores[i + 1], axes=([1], [0]))
        logger.debug("compress(%s): link dims %s", alg.name(), self.link_dims)
        return self

    def to_treetn(self, site_indices: Optional[Sequence[Index]] = None):
        """Convert to a :class:`~treetci.treetn.TreeTensorNetwork` (MPS).

        Parameters
        ----------
        site_indices : list[Index], optional
            Site index of every core. New indices tagged ``Site,n=<k>`` are
            created if omitted.
        """
        from .treetn import TreeTensorNetwork

        n = self.n_sites
        if site_indices is None:
            site_indices = [Index(d, tags=f"Site,n={i + 1}") for i, d in enumerate(self.site_dims)]
        site_indices = list(site_indices)
        if len(site_indices) != n:
            raise ValueError(f"Expected {n} site indices, got {len(site_indices)}")
        for i, (s, d) in enumerate(zip(site_indices, self.site_dims)):
            if s.dim != d:
                raise ShapeMismatchError(f"Site index {i} has dim {s.dim}, core has {d}")
        links = [Index(r, tags=f"Link,l={i + 1}") for i, r in enumerate(self.link_dims)]
        tensors = []
        for i, core in enumerate(self._cores):
            legs = [site_indices[i]]
            shape = [core.shape[1]]
            if i > 0:
                legs.insert(0, links[i - 1])
                shape.insert(0, core.shape[0])
            if i < n - 1:
                legs.append(links[i])
                shape.append(core.shape[2])
            tensors.append(Tensor(legs, core.reshape(shape)))
        return TreeTensorNetwork(tensors)

    def __repr__(self) -> str:
        return f"SimpleTensorTrain(n_sites={self.n_sites}, rank={self.rank})"


__all__ = ["SimpleTensorTrain"]
