"""Index class for treetci."""

from __future__ import annotations

import threading
from typing import Iterable, Sequence, Union

from .errors import InvalidDimensionError, TagOverflowError, TagTooLongError

#: Maximum number of tags on one index.
MAX_TAGS = 4
#: Maximum number of characters of one tag.
MAX_TAG_LENGTH = 16

_ID_LIMIT = 2**64

_id_lock = threading.Lock()
_next_id = 1


def _issue_id() -> int:
    global _next_id
    with _id_lock:
        new_id = _next_id
        if new_id >= _ID_LIMIT:
            raise OverflowError("Index id counter exhausted")
        _next_id += 1
    return new_id


def _reserve_id(id: int) -> None:
    """Advance the counter past an explicitly requested id."""
    global _next_id
    with _id_lock:
        if id >= _next_id:
            _next_id = id + 1


def _parse_tags(tags: Union[str, Iterable[str], None]) -> frozenset:
    if tags is None:
        return frozenset()
    if isinstance(tags, str):
        items = [t.strip() for t in tags.split(",")]
    else:
        items = [str(t).strip() for t in tags]
    items = [t for t in items if t]
    for t in items:
        if len(t) > MAX_TAG_LENGTH:
            raise TagTooLongError(
                f"Tag '{t}' is longer than {MAX_TAG_LENGTH} characters"
            )
    result = frozenset(items)
    if len(result) > MAX_TAGS:
        raise TagOverflowError(f"At most {MAX_TAGS} tags allowed, got {len(result)}")
    return result


class Index:
    """A tensor index with dimension, unique ID, and tags.

    An Index represents one dimension of a tensor and has:
    - A dimension (size)
    - A unique 64-bit ID, issued by a process-wide counter
    - Optional tags (string labels like "Site", "n=1")

    Indices are immutable. Two indices are equal if they have the same ID.

    Examples
    --------
    >>> i = Index(5)  # Create index with dimension 5
    >>> i.dim
    5
    >>> j = Index(3, tags="Site,n=1")  # Create with tags
    >>> j.has_tag("Site")
    True
    """

    __slots__ = ("_id", "_dim", "_tags")

    def __init__(
        self,
        dim: int,
        *,
        tags: Union[str, Iterable[str]] = "",
        id: int | None = None,
    ):
        """Create a new Index.

        Parameters
        ----------
        dim : int
            The dimension (size) of the index. Must be > 0.
        tags : str or iterable of str, optional
            Comma-separated tags, e.g., "Site,n=1". Default is no tags.
        id : int, optional
            Explicit 64-bit ID (used when loading from files). If None, the
            next ID of the process-wide counter is used.

        Raises
        ------
        InvalidDimensionError
            If dim <= 0
        TagOverflowError, TagTooLongError
            If the tags do not fit
        """
        if int(dim) <= 0:
            raise InvalidDimensionError(f"Index dimension must be positive, got {dim}")
        self._dim = int(dim)
        self._tags = _parse_tags(tags)
        if id is None:
            self._id = _issue_id()
        else:
            id = int(id)
            if not 0 <= id < _ID_LIMIT:
                raise ValueError(f"Index id must fit in 64 bits, got {id}")
            _reserve_id(id)
            self._id = id

    @classmethod
    def _make(cls, dim: int, id: int, tags: frozenset) -> Index:
        instance = object.__new__(cls)
        instance._dim = dim
        instance._id = id
        instance._tags = tags
        return instance

    def __repr__(self) -> str:
        tags_str = self.tags
        if tags_str:
            return f"Index(dim={self.dim}, tags='{tags_str}')"
        return f"Index(dim={self.dim})"

    def __eq__(self, other: object) -> bool:
        """Two indices are equal if they have the same ID."""
        if not isinstance(other, Index):
            return NotImplemented
        return self._id == other._id

    def __hash__(self) -> int:
        """Hash based on ID."""
        return hash(self._id)

    def __copy__(self) -> Index:
        return self

    def __deepcopy__(self, memo) -> Index:
        return self

    @property
    def dim(self) -> int:
        """Get the dimension (size) of the index."""
        return self._dim

    @property
    def id(self) -> int:
        """Get the 64-bit ID."""
        return self._id

    @property
    def tags(self) -> str:
        """Get the comma-separated tags string (sorted)."""
        return ",".join(sorted(self._tags))

    @property
    def tagset(self) -> frozenset:
        """Get the tags as a frozenset."""
        return self._tags

    def has_tag(self, tag: str) -> bool:
        """Check if the index has a specific tag."""
        return tag in self._tags

    def copy(self) -> Index:
        """Create a copy of this index with the same ID and tags."""
        return Index._make(self._dim, self._id, self._tags)

    clone = copy

    def sim(self) -> Index:
        """Create a "similar" index with the same dim/tags but a new ID."""
        return Index._make(self._dim, _issue_id(), self._tags)

    def settags(self, tags: Union[str, Iterable[str]]) -> Index:
        """Return this index (same ID) with its tags replaced."""
        return Index._make(self._dim, self._id, _parse_tags(tags))

    def addtags(self, tags: Union[str, Iterable[str]]) -> Index:
        """Return this index (same ID) with additional tags."""
        return Index._make(self._dim, self._id, _parse_tags(self._tags | _parse_tags(tags)))

    def removetags(self, tags: Union[str, Iterable[str]]) -> Index:
        """Return this index (same ID) without the given tags."""
        return Index._make(self._dim, self._id, self._tags - _parse_tags(tags))


def sim(index: Index) -> Index:
    """Create a "similar" index with the same dim/tags but a new ID."""
    return index.sim()


# Helpers on index lists. Membership is by id; the order of the first
# argument is kept.


def commoninds(first: Sequence[Index], second: Sequence[Index]) -> list[Index]:
    """Indices of `first` that also appear in `second`."""
    shared = set(second)
    return [i for i in first if i in shared]


def uniqueinds(first: Sequence[Index], second: Sequence[Index]) -> list[Index]:
    """Indices of `first` that do not appear in `second`."""
    excluded = set(second)
    return [i for i in first if i not in excluded]


def replaceinds(
    inds: Sequence[Index],
    old: Sequence[Index],
    new: Sequence[Index],
) -> list[Index]:
    """Copy of `inds` with ``old[k]`` swapped for ``new[k]``."""
    if len(old) != len(new):
        raise ValueError(f"Got {len(old)} old and {len(new)} new indices")
    swap = dict(zip(old, new))
    return [swap.get(i, i) for i in inds]


__all__ = [
    "Index",
    "MAX_TAGS",
    "MAX_TAG_LENGTH",
    "sim",
    "commoninds",
    "uniqueinds",
    "replaceinds",
]
