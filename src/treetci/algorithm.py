"""Algorithm selection types and truncation defaults.

Provides enum-like types for selecting algorithms in various tensor operations.

Examples
--------
>>> from treetci.algorithm import FactorizeAlgorithm, ContractionAlgorithm
>>>
>>> # Factorization algorithms
>>> alg = FactorizeAlgorithm.SVD
>>> print(FactorizeAlgorithm.name(alg))  # "svd"
>>>
>>> # Contraction algorithms
>>> alg = ContractionAlgorithm.from_name("zipup")
"""

from __future__ import annotations

import os
from enum import IntEnum
from math import sqrt
from typing import Optional, Union

from .errors import InvalidBudgetError

#: Package default for the relative SVD truncation tolerance.
DEFAULT_SVD_RTOL = 1e-12

#: Environment variable overriding :data:`DEFAULT_SVD_RTOL`.
SVD_RTOL_ENV = "TREETCI_DEFAULT_SVD_RTOL"


class FactorizeAlgorithm(IntEnum):
    """Algorithm for matrix factorization / decomposition.

    Used in compression, truncation, and various tensor operations.

    Attributes
    ----------
    SVD : int
        Singular Value Decomposition (default, optimal truncation)
    LU : int
        LU decomposition with full pivoting (faster)
    CI : int
        Cross Interpolation / Skeleton decomposition (adaptive)
    QR : int
        QR decomposition (no truncation, unitary left factor)
    """

    SVD = 0
    LU = 1
    CI = 2
    QR = 3

    @classmethod
    def default(cls) -> "FactorizeAlgorithm":
        """Return the default algorithm."""
        return cls.SVD

    @classmethod
    def from_name(cls, name: Union[str, "FactorizeAlgorithm"]) -> "FactorizeAlgorithm":
        """Parse algorithm from string name."""
        if isinstance(name, cls):
            return name
        lower = name.lower()
        if lower == "svd":
            return cls.SVD
        elif lower == "lu":
            return cls.LU
        elif lower in ("ci", "cross", "crossinterpolation"):
            return cls.CI
        elif lower == "qr":
            return cls.QR
        else:
            raise ValueError(f"Unknown FactorizeAlgorithm: {name}")

    def name(self) -> str:
        """Get algorithm name as string."""
        return self._name_.lower()


class ContractionAlgorithm(IntEnum):
    """Algorithm for tensor network contraction (TTN-TTN, MPO-MPS, MPO-MPO).

    Attributes
    ----------
    Naive : int
        Exact contraction, optionally followed by compression
    ZipUp : int
        On-the-fly compression during contraction (default)
    Fit : int
        Variational fitting (best for low target rank)
    """

    Naive = 0
    ZipUp = 1
    Fit = 2

    @classmethod
    def default(cls) -> "ContractionAlgorithm":
        """Return the default algorithm."""
        return cls.ZipUp

    @classmethod
    def from_name(cls, name: Union[str, "ContractionAlgorithm"]) -> "ContractionAlgorithm":
        """Parse algorithm from string name."""
        if isinstance(name, cls):
            return name
        lower = name.lower()
        if lower == "naive":
            return cls.Naive
        elif lower in ("zipup", "zip_up", "zip-up"):
            return cls.ZipUp
        elif lower in ("fit", "variational"):
            return cls.Fit
        else:
            raise ValueError(
                f"Unknown contract method: {name}. Use 'zipup', 'fit', or 'naive'"
            )

    def name(self) -> str:
        """Get algorithm name as string."""
        return self._name_.lower()


class CompressionAlgorithm(IntEnum):
    """Algorithm for tensor train compression.

    Attributes
    ----------
    SVD : int
        SVD-based compression (default, optimal)
    LU : int
        LU-based compression (faster)
    CI : int
        Cross Interpolation based compression
    """

    SVD = 0
    LU = 1
    CI = 2

    @classmethod
    def default(cls) -> "CompressionAlgorithm":
        """Return the default algorithm."""
        return cls.SVD

    @classmethod
    def from_name(cls, name: Union[str, "CompressionAlgorithm"]) -> "CompressionAlgorithm":
        """Parse algorithm from string name."""
        if isinstance(name, cls):
            return name
        lower = name.lower()
        if lower == "svd":
            return cls.SVD
        elif lower == "lu":
            return cls.LU
        elif lower in ("ci", "cross", "crossinterpolation"):
            return cls.CI
        else:
            raise ValueError(f"Unknown CompressionAlgorithm: {name}")

    def name(self) -> str:
        """Get algorithm name as string."""
        return self._name_.lower()

    def factorize_algorithm(self) -> FactorizeAlgorithm:
        """The factorization used for each bond."""
        return FactorizeAlgorithm(int(self))


class CanonicalForm(IntEnum):
    """Canonical form of a tree tensor network.

    Attributes
    ----------
    Unitary : int
        QR-based; tensors away from the center are isometries.
    LU : int
        Rank-revealing LU; tensors away from the center are unit-triangular
        on their pivot rows.
    CI : int
        Cross interpolation; tensors away from the center reduce to the
        identity on their pivot rows.
    """

    Unitary = 0
    LU = 1
    CI = 2

    @classmethod
    def from_name(cls, name: Union[str, int, "CanonicalForm"]) -> "CanonicalForm":
        """Parse canonical form from string name."""
        if isinstance(name, cls):
            return name
        if isinstance(name, int):
            return cls(name)
        lower = name.lower()
        if lower in ("unitary", "qr"):
            return cls.Unitary
        elif lower == "lu":
            return cls.LU
        elif lower in ("ci", "cross"):
            return cls.CI
        else:
            raise ValueError(
                f"Unknown canonical form: {name}. Use 'unitary', 'lu', or 'ci'"
            )

    def factorize_algorithm(self) -> FactorizeAlgorithm:
        """The factorization used to move the orthogonality center."""
        return {
            CanonicalForm.Unitary: FactorizeAlgorithm.QR,
            CanonicalForm.LU: FactorizeAlgorithm.LU,
            CanonicalForm.CI: FactorizeAlgorithm.CI,
        }[self]


def get_default_svd_rtol() -> float:
    """Get the default SVD relative tolerance.

    This is the default value used for truncation when no tolerance is
    specified. It can be overridden with the ``TREETCI_DEFAULT_SVD_RTOL``
    environment variable.

    Returns
    -------
    float
        The default relative tolerance.
    """
    env_value = os.environ.get(SVD_RTOL_ENV)
    if env_value:
        try:
            return float(env_value)
        except ValueError:
            raise ValueError(
                f"{SVD_RTOL_ENV} must be a float, got {env_value!r}"
            ) from None
    return DEFAULT_SVD_RTOL


def resolve_truncation_tolerance(
    *,
    cutoff: Optional[float] = None,
    rtol: Optional[float] = None,
) -> float:
    """Resolve truncation tolerance from cutoff (ITensor style) or rtol.

    Parameters
    ----------
    cutoff : float, optional
        ITensor-style squared error tolerance: sum(discarded sigma^2) / sum(sigma^2) <= cutoff
    rtol : float, optional
        Relative Frobenius error: ||A - A_approx||_F / ||A||_F <= rtol

    Returns
    -------
    float
        The effective rtol value.

    Raises
    ------
    InvalidBudgetError
        If both cutoff and rtol are specified, or either is negative.

    Notes
    -----
    Conversion: cutoff = rtol^2, so rtol = sqrt(cutoff)

    - If neither specified: returns the default rtol
    - If only cutoff specified: returns sqrt(cutoff)
    - If only rtol specified: returns rtol
    - If both specified: raises InvalidBudgetError
    """
    if cutoff is not None and rtol is not None:
        raise InvalidBudgetError(
            "Cannot specify both `cutoff` and `rtol`. Use one or the other.\n"
            "- cutoff (ITensor style): sum(discarded sigma^2) / sum(sigma^2) <= cutoff\n"
            "- rtol: ||A - A_approx||_F / ||A||_F <= rtol\n"
            "Conversion: cutoff = rtol^2, so rtol = sqrt(cutoff)"
        )

    if cutoff is not None:
        if cutoff < 0:
            raise InvalidBudgetError(f"cutoff must be non-negative, got {cutoff}")
        return sqrt(cutoff)
    elif rtol is not None:
        if rtol < 0:
            raise InvalidBudgetError(f"rtol must be non-negative, got {rtol}")
        return rtol
    else:
        return get_default_svd_rtol()


def resolve_maxdim(maxdim: Optional[int]) -> Optional[int]:
    """Validate a maximum bond dimension (None means unlimited)."""
    if maxdim is None:
        return None
    if int(maxdim) < 1:
        raise InvalidBudgetError(f"maxdim must be at least 1, got {maxdim}")
    return int(maxdim)


__all__ = [
    "DEFAULT_SVD_RTOL",
    "SVD_RTOL_ENV",
    "FactorizeAlgorithm",
    "ContractionAlgorithm",
    "CompressionAlgorithm",
    "CanonicalForm",
    "get_default_svd_rtol",
    "resolve_truncation_tolerance",
    "resolve_maxdim",
]
