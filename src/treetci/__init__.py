"""treetci - Tree tensor networks and tensor cross interpolation.

This package provides labeled tensors, tree tensor networks (MPS, MPO and
general trees), canonical forms, truncation, contraction and tensor cross
interpolation of black-box functions, implemented on top of numpy/scipy.

Examples
--------
>>> from treetci import Index, Tensor
>>> import numpy as np
>>>
>>> # Create indices
>>> i = Index(2, tags="Site")
>>> j = Index(3, tags="Link")
>>>
>>> # Create a tensor
>>> data = np.array([[1, 2, 3], [4, 5, 6]], dtype=np.float64)
>>> t = Tensor([i, j], data)
>>>
>>> # Access tensor properties
>>> print(t.rank)  # 2
>>> print(t.dims)  # (2, 3)
>>> print(t.to_numpy())
"""

# Core types
from .index import Index, sim
from .tensor import Tensor, StorageKind

# Algorithm types
from .algorithm import (
    FactorizeAlgorithm,
    ContractionAlgorithm,
    CompressionAlgorithm,
    CanonicalForm,
    get_default_svd_rtol,
    resolve_truncation_tolerance,
)

# Decompositions
from .factorize import factorize, rrlu, matrix_ci

# SimpleTT types
from .simplett import SimpleTensorTrain

# TensorCI types
from .tensorci import (
    TCIStatus,
    TensorCI1,
    TensorCI2,
    crossinterpolate1,
    crossinterpolate1_tci,
    crossinterpolate2,
    crossinterpolate2_tci,
)

# TreeTN types (tree tensor network: MPS, MPO, TTN)
from .treetn import TreeTensorNetwork, MPS, MPO, random_mps, product_mps
from .treetn import inner as ttn_inner
from .treetn import lognorm as ttn_lognorm
from .canonical import orthogonalize, is_orthogonal, check_canonical
from .truncation import TruncationResult, truncate
from .contraction import contract as ttn_contract

# HDF5 functions (ITensors.jl compatible)
from .hdf5 import (
    save_itensor,
    load_itensor,
    save_mps,
    load_mps,
    save_treetn,
    load_treetn,
)

# Exceptions
from .errors import (
    TreeTCIError,
    InvalidArgumentError,
    InvalidDimensionError,
    TagOverflowError,
    TagTooLongError,
    ShapeMismatchError,
    DuplicateLegError,
    InvalidBudgetError,
    UnknownIndexError,
    StructureError,
    EmptyNetworkError,
    DisconnectedNetworkError,
    NotATreeError,
    NotCanonicalizedError,
    IncompatibleTopologyError,
    ConvergenceFailure,
    StagnationDetected,
    FileFormatError,
)

__version__ = "0.1.0"

__all__ = [
    # Core types
    "Index",
    "sim",
    "Tensor",
    "StorageKind",
    # Algorithm types
    "FactorizeAlgorithm",
    "ContractionAlgorithm",
    "CompressionAlgorithm",
    "CanonicalForm",
    "get_default_svd_rtol",
    "resolve_truncation_tolerance",
    # Decompositions
    "factorize",
    "rrlu",
    "matrix_ci",
    # SimpleTT types
    "SimpleTensorTrain",
    # TensorCI types
    "TCIStatus",
    "TensorCI1",
    "TensorCI2",
    "crossinterpolate1",
    "crossinterpolate1_tci",
    "crossinterpolate2",
    "crossinterpolate2_tci",
    # TreeTN types
    "TreeTensorNetwork",
    "MPS",
    "MPO",
    "random_mps",
    "product_mps",
    "ttn_inner",
    "ttn_lognorm",
    "ttn_contract",
    "orthogonalize",
    "is_orthogonal",
    "check_canonical",
    "TruncationResult",
    "truncate",
    # HDF5 functions
    "save_itensor",
    "load_itensor",
    "save_mps",
    "load_mps",
    "save_treetn",
    "load_treetn",
    # Exceptions
    "TreeTCIError",
    "InvalidArgumentError",
    "InvalidDimensionError",
    "TagOverflowError",
    "TagTooLongError",
    "ShapeMismatchError",
    "DuplicateLegError",
    "InvalidBudgetError",
    "UnknownIndexError",
    "StructureError",
    "EmptyNetworkError",
    "DisconnectedNetworkError",
    "NotATreeError",
    "NotCanonicalizedError",
    "IncompatibleTopologyError",
    "ConvergenceFailure",
    "StagnationDetected",
    "FileFormatError",
]
