"""Exception hierarchy for treetci.

Every error raised by the engine derives from :class:`TreeTCIError`.
Argument errors additionally derive from :class:`ValueError` and unknown-leg
lookups from :class:`KeyError`, so callers can catch them generically.
"""

from __future__ import annotations


class TreeTCIError(Exception):
    """Base exception for treetci errors."""
    pass


class InvalidArgumentError(TreeTCIError, ValueError):
    """Invalid argument error."""
    pass


class InvalidDimensionError(InvalidArgumentError):
    """Non-positive index dimension."""
    pass


class TagOverflowError(InvalidArgumentError):
    """Too many tags error."""
    pass


class TagTooLongError(InvalidArgumentError):
    """Tag string too long error."""
    pass


class ShapeMismatchError(InvalidArgumentError):
    """Tensor data does not match the dimensions of its indices."""
    pass


class DuplicateLegError(InvalidArgumentError):
    """The same index appears twice on one tensor."""
    pass


class InvalidBudgetError(InvalidArgumentError):
    """Missing or contradictory truncation parameters."""
    pass


class UnknownIndexError(TreeTCIError, KeyError):
    """Lookup of an index that is not a leg of the tensor."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class StructureError(TreeTCIError):
    """Violation of the tree-tensor-network invariants."""
    pass


class EmptyNetworkError(StructureError):
    """Operation on a network without vertices."""
    pass


class DisconnectedNetworkError(StructureError):
    """The tensors do not form a connected graph."""
    pass


class NotATreeError(StructureError):
    """The tensors form a graph with a cycle or a hyper-edge."""
    pass


class NotCanonicalizedError(TreeTCIError):
    """An operation requires a canonical form that the network does not have."""
    pass


class IncompatibleTopologyError(TreeTCIError):
    """Two networks cannot be aligned vertex by vertex."""
    pass


class ConvergenceFailure(TreeTCIError):
    """An iterative algorithm stopped before reaching its tolerance.

    Attributes
    ----------
    result : object
        The partial result (for cross interpolation, the TCI object).
    error : float
        The error estimate that was reached.
    """

    def __init__(self, message: str, result=None, error: float = float("nan")):
        super().__init__(message)
        self.result = result
        self.error = error


class StagnationDetected(ConvergenceFailure):
    """No pivot improving the approximation could be found."""
    pass


class FileFormatError(TreeTCIError):
    """An HDF5 group does not follow the expected layout."""
    pass


__all__ = [
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
