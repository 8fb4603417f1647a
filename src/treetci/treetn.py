"""TreeTensorNetwork (TTN) - Tree tensor network with MPS/MPO support.

Tensors are stored in a flat list addressed by 0-based vertex positions.
Bonds are recorded as ``(u, w) -> Index`` entries (``u < w``) discovered from
shared index ids, so vertices never reference each other directly.

Examples
--------
>>> from treetci import Index, Tensor, TreeTensorNetwork
>>> import numpy as np
>>>
>>> # Create indices
>>> s0 = Index(2)
>>> l01 = Index(3)
>>> s1 = Index(2)
>>>
>>> # Create tensors for a 2-site MPS
>>> t0 = Tensor([s0, l01], np.ones((2, 3)))
>>> t1 = Tensor([l01, s1], np.ones((3, 2)))
>>> mps = TreeTensorNetwork([t0, t1])
>>>
>>> print(mps.num_vertices)  # 2
>>> print(mps.bond_dims)     # [3]
>>> print(mps.maxbonddim)    # 3
"""

from __future__ import annotations

import logging
from collections import deque
from numbers import Number
from typing import Iterator, Optional, Sequence, Union

import numpy as np

from .algorithm import CanonicalForm
from .errors import (
    DisconnectedNetworkError,
    EmptyNetworkError,
    IncompatibleTopologyError,
    NotATreeError,
    ShapeMismatchError,
)
from .index import Index, uniqueinds
from .tensor import Tensor

logger = logging.getLogger(__name__)


def _connectivity(tensors: Sequence[Tensor]) -> tuple[dict, list]:
    """Discover bonds from shared index ids and check the tree invariants."""
    n = len(tensors)
    owners: dict[Index, list[int]] = {}
    for pos, t in enumerate(tensors):
        for idx in t.indices:
            owners.setdefault(idx, []).append(pos)

    edges: dict[tuple[int, int], Index] = {}
    adj: list[list[int]] = [[] for _ in range(n)]
    for idx, vs in owners.items():
        if len(vs) == 1:
            continue
        if len(vs) > 2:
            raise NotATreeError(
                f"{idx!r} is shared by {len(vs)} tensors (vertices {vs})"
            )
        u, w = sorted(vs)
        if (u, w) in edges:
            raise NotATreeError(f"Vertices {u} and {w} share more than one index")
        du = tensors[u].dims[tensors[u].indices.index(idx)]
        dw = tensors[w].dims[tensors[w].indices.index(idx)]
        if du != dw:
            raise ShapeMismatchError(f"Bond {idx!r} has dims {du} and {dw}")
        edges[(u, w)] = idx
        adj[u].append(w)
        adj[w].append(u)

    seen = {0}
    queue = deque([0])
    while queue:
        v = queue.popleft()
        for w in adj[v]:
            if w not in seen:
                seen.add(w)
                queue.append(w)
    if len(seen) != n:
        missing = sorted(set(range(n)) - seen)
        raise DisconnectedNetworkError(
            f"Vertices {missing} are not connected to vertex 0"
        )
    if len(edges) != n - 1:
        raise NotATreeError(
            f"{n} vertices with {len(edges)} bonds contain a cycle"
        )
    for lst in adj:
        lst.sort()
    return edges, adj


class TreeTensorNetwork:
    """Tree tensor network (TTN) supporting MPS, MPO, and general tree topologies.

    Vertices are addressed by 0-based positions. Optional custom node names
    map onto those positions; every public method takes and returns names.

    Parameters
    ----------
    tensors : list of Tensor
        Tensors forming the tree tensor network. Connectivity is determined
        by shared index IDs (einsum rule).
    node_names : list, optional
        Custom node names (any hashable). If None, nodes are named
        0, 1, ..., n-1.

    Raises
    ------
    EmptyNetworkError
        If `tensors` is empty.
    NotATreeError
        If an index is shared by more than two tensors, two tensors share
        more than one index, or the bonds contain a cycle.
    DisconnectedNetworkError
        If the tensors do not form a connected graph.
    """

    __slots__ = (
        "_tensors",
        "_edges",
        "_adj",
        "_node_names",
        "_node_map",
        "_canonical_form",
        "_center",
        "truncation_result",
    )

    def __init__(self, tensors: Sequence[Tensor], node_names: Optional[list] = None):
        """Create a TreeTensorNetwork from a list of Tensor objects."""
        tensors = list(tensors)
        n = len(tensors)
        if n == 0:
            raise EmptyNetworkError("Cannot create TreeTensorNetwork from empty tensor list")

        if node_names is None:
            node_names = list(range(n))
        else:
            node_names = list(node_names)
            if len(node_names) != n:
                raise ValueError(
                    f"node_names length ({len(node_names)}) must match "
                    f"tensors length ({n})"
                )
            if len(set(node_names)) != n:
                raise ValueError("node_names must be distinct")

        edges, adj = _connectivity(tensors)
        self._init(tensors, edges, adj, node_names)

    def _init(self, tensors, edges, adj, node_names, form=None, center=None):
        self._tensors = tensors
        self._edges = edges
        self._adj = adj
        self._node_names = node_names
        self._node_map = {name: i for i, name in enumerate(node_names)}
        self._canonical_form = form
        self._center = center
        self.truncation_result = None

    @classmethod
    def _from_parts(
        cls, tensors, edges, adj, node_names, form=None, center=None
    ) -> TreeTensorNetwork:
        """Assemble a network from already validated parts (internal use)."""
        obj = object.__new__(cls)
        obj._init(
            list(tensors),
            dict(edges),
            [list(a) for a in adj],
            list(node_names),
            form,
            center,
        )
        return obj

    def _pos(self, v) -> int:
        """Convert a node name to a 0-based position."""
        try:
            return self._node_map[v]
        except (KeyError, TypeError):
            raise KeyError(f"Vertex {v} not found in TTN") from None

    def _name(self, pos: int):
        """Convert a 0-based position to a node name."""
        return self._node_names[pos]

    # ========================================================================
    # Graph helpers (positions)
    # ========================================================================

    def _bond(self, u: int, w: int) -> Index:
        key = (u, w) if u < w else (w, u)
        try:
            return self._edges[key]
        except KeyError:
            raise KeyError(
                f"No bond between vertices {self._name(u)} and {self._name(w)}"
            ) from None

    def _set_bond(self, u: int, w: int, idx: Index) -> None:
        key = (u, w) if u < w else (w, u)
        self._edges[key] = idx

    def _children(self, v: int, parent: Optional[int]) -> list[int]:
        return [w for w in self._adj[v] if w != parent]

    def _site_legs(self, v: int) -> list[Index]:
        links = {self._bond(v, w) for w in self._adj[v]}
        return uniqueinds(self._tensors[v].indices, links)

    def _postorder(
        self, root: int, parent: Optional[int] = None
    ) -> list[tuple[int, Optional[int]]]:
        """``(vertex, parent)`` pairs with every vertex after its descendants.

        With `parent` given, only the subtree on the side of `root` is visited.
        """
        preorder = []
        stack = [(root, parent)]
        while stack:
            v, parent = stack.pop()
            preorder.append((v, parent))
            for w in reversed(self._children(v, parent)):
                stack.append((w, v))
        preorder.reverse()
        return preorder

    def _euler_tour(self, root: int) -> list[tuple[int, int]]:
        """Depth-first moves ``(from, to)`` visiting every bond twice."""
        moves = []
        stack = [(root, None, iter(self._children(root, None)))]
        while stack:
            v, parent, it = stack[-1]
            w = next(it, None)
            if w is None:
                stack.pop()
                if parent is not None:
                    moves.append((v, parent))
            else:
                moves.append((v, w))
                stack.append((w, v, iter(self._children(w, v))))
        return moves

    def _path(self, src: int, dst: int) -> list[int]:
        """Vertices on the unique path from `src` to `dst` (both included)."""
        parent = {dst: None}
        queue = deque([dst])
        while queue and src not in parent:
            v = queue.popleft()
            for w in self._adj[v]:
                if w not in parent:
                    parent[w] = v
                    queue.append(w)
        if src not in parent:
            raise DisconnectedNetworkError(
                f"Vertex {self._name(dst)} is not reachable from {self._name(src)}"
            )
        path = [src]
        while path[-1] != dst:
            path.append(parent[path[-1]])
        return path

    def _side(self, v: int, w: int) -> set[int]:
        """Vertices reachable from `v` without crossing the bond to `w`."""
        return {x for x, _ in self._postorder(v, w)}

    def _invalidate(self) -> None:
        self._canonical_form = None
        self._center = None

    # ========================================================================
    # Accessors
    # ========================================================================

    @property
    def num_vertices(self) -> int:
        """Number of vertices (nodes) in the TTN."""
        return len(self._tensors)

    @property
    def num_edges(self) -> int:
        """Number of edges (bonds) in the TTN."""
        return len(self._edges)

    def __len__(self) -> int:
        """Number of vertices."""
        return self.num_vertices

    @property
    def vertices(self) -> list:
        """List of vertex names."""
        return list(self._node_names)

    @property
    def edges(self) -> list[tuple]:
        """Bonds as ``(v1, v2)`` name pairs, ordered by vertex position."""
        return [(self._name(u), self._name(w)) for u, w in sorted(self._edges)]

    def __getitem__(self, v) -> Tensor:
        """Get the tensor at vertex v."""
        return self._tensors[self._pos(v)]

    def __setitem__(self, v, tensor: Tensor):
        """Set the tensor at vertex v.

        The connectivity is recomputed; the canonical form is cleared.
        """
        pos = self._pos(v)
        tensors = list(self._tensors)
        tensors[pos] = tensor
        edges, adj = _connectivity(tensors)
        self._tensors = tensors
        self._edges = edges
        self._adj = adj
        self._invalidate()

    def __iter__(self) -> Iterator[Tensor]:
        return iter(self.collect())

    def collect(self) -> list[Tensor]:
        """All vertex tensors in vertex order."""
        return list(self._tensors)

    def neighbors(self, v) -> list:
        """Get the neighbors of vertex v."""
        return [self._name(w) for w in self._adj[self._pos(v)]]

    def siteinds(self, v) -> list[Index]:
        """Get the site (physical) indices at vertex v."""
        return self._site_legs(self._pos(v))

    def all_siteinds(self) -> list[list[Index]]:
        """Site indices of every vertex, in vertex order."""
        return [self._site_legs(v) for v in range(self.num_vertices)]

    def linkind(self, *args) -> Index:
        """Get a link (bond) index.

        linkind(v1, v2) - between vertices v1 and v2
        linkind(i) - between MPS sites i and i+1 (0-indexed)
        """
        if len(args) == 2:
            v1, v2 = args
            return self._bond(self._pos(v1), self._pos(v2))
        elif len(args) == 1:
            i = args[0]
            if not 0 <= i < self.num_vertices - 1:
                raise KeyError(f"No bond {i} in a network with {self.num_vertices} vertices")
            return self._bond(i, i + 1)
        else:
            raise TypeError("linkind() takes 1 or 2 arguments")

    def linkdim(self, *args) -> int:
        """Get a bond dimension.

        linkdim(v1, v2) - between vertices v1 and v2
        linkdim(i) - between MPS sites i and i+1 (0-indexed)
        """
        return self.linkind(*args).dim

    @property
    def bond_dims(self) -> list[int]:
        """Bond dimensions in edge order (length = num_vertices - 1)."""
        return [self._edges[e].dim for e in sorted(self._edges)]

    @property
    def maxbonddim(self) -> int:
        """Maximum bond dimension across all links."""
        return max(self.bond_dims, default=0)

    def is_chain(self) -> bool:
        """True if the bonds are exactly (0, 1), (1, 2), ..."""
        n = self.num_vertices
        return set(self._edges) == {(i, i + 1) for i in range(n - 1)}

    # ========================================================================
    # Canonical form
    # ========================================================================

    def orthogonalize(self, v, *, form: Union[str, CanonicalForm] = "unitary") -> TreeTensorNetwork:
        """Orthogonalize the TTN in-place to vertex v.

        Parameters
        ----------
        v : vertex name
            Target vertex for orthogonality center.
        form : str or CanonicalForm
            Canonical form: "unitary" (default), "lu", or "ci".

        Returns
        -------
        self
        """
        from .canonical import orthogonalize

        return orthogonalize(self, v, form)

    @property
    def canonical_form(self) -> Optional[CanonicalForm]:
        """Get the canonical form (Unitary, LU or CI).

        Returns None if not set.
        """
        return self._canonical_form

    @property
    def ortho_center(self):
        """Name of the orthogonality center, or None."""
        if self._center is None:
            return None
        return self._name(self._center)

    # ========================================================================
    # Operations
    # ========================================================================

    def truncate(
        self,
        *,
        rtol: Optional[float] = None,
        cutoff: Optional[float] = None,
        maxdim: Optional[int] = None,
    ) -> TreeTensorNetwork:
        """Truncate bond dimensions in-place.

        The network is brought into unitary canonical form first if needed.

        Parameters
        ----------
        rtol : float, optional
            Relative tolerance per bond.
        cutoff : float, optional
            ITensorMPS.jl cutoff. Converted to rtol = sqrt(cutoff).
        maxdim : int, optional
            Maximum bond dimension.

        Returns
        -------
        self
            The realised errors are stored in ``truncation_result``.
        """
        from .truncation import truncate

        truncate(self, rtol=rtol, cutoff=cutoff, maxdim=maxdim)
        return self

    def norm(self) -> float:
        """Compute the norm of the TTN."""
        if self._canonical_form == CanonicalForm.Unitary and self._center is not None:
            return self._tensors[self._center].norm()
        work = self.copy()
        work.orthogonalize(work._name(0))
        return work._tensors[0].norm()

    def lognorm(self) -> float:
        """Natural logarithm of the norm (``-inf`` for the zero network)."""
        n = self.norm()
        if n == 0.0:
            return float("-inf")
        return float(np.log(n))

    def inner(self, other: TreeTensorNetwork) -> complex:
        """Compute the inner product <self|other>."""
        return inner(self, other)

    def to_dense(self) -> Tensor:
        """Convert to a dense tensor by contracting all link indices.

        Returns
        -------
        Tensor
            The dense tensor with only site indices, in vertex order.
        """
        sites = [i for v in range(self.num_vertices) for i in self._site_legs(v)]
        return _contract_tree(self, self._tensors).permute(sites)

    def evaluate(self, assignment) -> Union[float, complex]:
        """Value of the network at one site configuration.

        Parameters
        ----------
        assignment : mapping Index -> int, or sequence of int
            0-based position of every site index. A sequence lists the
            positions of all site indices in vertex order.
        """
        sites = [i for v in range(self.num_vertices) for i in self._site_legs(v)]
        if not hasattr(assignment, "items"):
            values = list(assignment)
            if len(values) != len(sites):
                raise ValueError(
                    f"Expected {len(sites)} positions, got {len(values)}"
                )
            assignment = dict(zip(sites, values))
        local = []
        for v in range(self.num_vertices):
            t = self._tensors[v]
            pairs = []
            for i in self._site_legs(v):
                if i not in assignment:
                    raise KeyError(f"No position given for site index {i!r}")
                pairs.append((i, assignment[i]))
            if pairs:
                t = t * Tensor.onehot(pairs)
            local.append(t)
        return _contract_tree(self, local).item()

    def __call__(self, *positions) -> Union[float, complex]:
        return self.evaluate(positions)

    def __add__(self, other: TreeTensorNetwork) -> TreeTensorNetwork:
        """Add two TTNs using direct-sum construction."""
        if not isinstance(other, TreeTensorNetwork):
            return NotImplemented
        return _direct_sum(self, other)

    def __sub__(self, other: TreeTensorNetwork) -> TreeTensorNetwork:
        if not isinstance(other, TreeTensorNetwork):
            return NotImplemented
        return _direct_sum(self, other * -1.0)

    def __mul__(self, other):
        if not isinstance(other, Number):
            return NotImplemented
        out = self.copy()
        pos = out._center if out._center is not None else 0
        out._tensors[pos] = out._tensors[pos] * other
        return out

    __rmul__ = __mul__

    def contract(self, other: TreeTensorNetwork, **kwargs) -> TreeTensorNetwork:
        """Contract with another network; see :func:`treetci.contraction.contract`."""
        from .contraction import contract

        return contract(self, other, **kwargs)

    def copy(self) -> TreeTensorNetwork:
        """Create a copy (tensors are immutable and shared)."""
        return TreeTensorNetwork._from_parts(
            self._tensors,
            self._edges,
            self._adj,
            self._node_names,
            self._canonical_form,
            self._center,
        )

    def __repr__(self) -> str:
        n = self.num_vertices
        e = self.num_edges
        return f"TreeTensorNetwork(nv={n}, ne={e})"


# Type aliases
MPS = TreeTensorNetwork
MPO = TreeTensorNetwork


# ============================================================================
# Module-level functions
# ============================================================================


def check_same_topology(a: TreeTensorNetwork, b: TreeTensorNetwork) -> None:
    """Raise IncompatibleTopologyError unless `a` and `b` align vertex by vertex."""
    if a._node_names != b._node_names:
        raise IncompatibleTopologyError(
            f"Vertex names differ: {a._node_names} vs {b._node_names}"
        )
    if set(a._edges) != set(b._edges):
        raise IncompatibleTopologyError(
            f"Bond structure differs: {sorted(a._edges)} vs {sorted(b._edges)}"
        )
    # site indices present in both networks must sit on the same vertex
    where_a = {i: v for v in range(a.num_vertices) for i in a._site_legs(v)}
    for v in range(b.num_vertices):
        for i in b._site_legs(v):
            u = where_a.get(i)
            if u is not None and u != v:
                raise IncompatibleTopologyError(
                    f"Site index {i} is at vertex {a._name(u)!r} in one network "
                    f"and at vertex {b._name(v)!r} in the other"
                )


def sim_linkinds(ttn: TreeTensorNetwork) -> TreeTensorNetwork:
    """Copy of `ttn` with every bond index replaced by a similar one."""
    tensors = list(ttn._tensors)
    edges = {}
    for (u, w), old in ttn._edges.items():
        new = old.sim()
        tensors[u] = tensors[u].replaceind(old, new)
        tensors[w] = tensors[w].replaceind(old, new)
        edges[(u, w)] = new
    return TreeTensorNetwork._from_parts(
        tensors, edges, ttn._adj, ttn._node_names, ttn._canonical_form, ttn._center
    )


def _contract_tree(ttn: TreeTensorNetwork, tensors: Sequence[Tensor]) -> Tensor:
    """Contract tensors laid out on the tree of `ttn`, leaves first."""
    acc: dict[int, Tensor] = {}
    for v, parent in ttn._postorder(0):
        t = tensors[v]
        for c in ttn._children(v, parent):
            t = t * acc.pop(c)
        acc[v] = t
    return acc[0]


def inner(a: TreeTensorNetwork, b: TreeTensorNetwork) -> complex:
    """Compute the inner product <a|b>.

    Parameters
    ----------
    a : TreeTensorNetwork
        First TTN (complex conjugated).
    b : TreeTensorNetwork
        Second TTN. Must have the same topology and site indices as `a`.

    Returns
    -------
    complex
        The inner product.
    """
    check_same_topology(a, b)
    for v in range(a.num_vertices):
        if set(a._site_legs(v)) != set(b._site_legs(v)):
            raise IncompatibleTopologyError(
                f"Site indices differ at vertex {a._name(v)}"
            )
    b = sim_linkinds(b)
    env: dict[int, Tensor] = {}
    for v, parent in a._postorder(0):
        t = a._tensors[v].conj()
        for c in a._children(v, parent):
            t = t * env.pop(c)
        env[v] = t * b._tensors[v]
    return complex(env[0].item())


def lognorm(ttn: TreeTensorNetwork) -> float:
    """Compute the log-norm of the TTN.

    Parameters
    ----------
    ttn : TreeTensorNetwork
        The tree tensor network.

    Returns
    -------
    float
        The log-norm.
    """
    return ttn.lognorm()


def _direct_sum(a: TreeTensorNetwork, b: TreeTensorNetwork) -> TreeTensorNetwork:
    check_same_topology(a, b)
    n = a.num_vertices
    if n == 1:
        return TreeTensorNetwork([a._tensors[0] + b._tensors[0]], a._node_names)

    new_links = {
        e: Index(a._edges[e].dim + b._edges[e].dim, tags=a._edges[e].tagset)
        for e in a._edges
    }
    tensors = []
    for v in range(n):
        sites = a._site_legs(v)
        if set(sites) != set(b._site_legs(v)):
            raise IncompatibleTopologyError(
                f"Site indices differ at vertex {a._name(v)}"
            )
        nbrs = a._adj[v]
        la = [a._bond(v, w) for w in nbrs]
        lb = [b._bond(v, w) for w in nbrs]
        da = a._tensors[v].permute(sites + la)._data
        db = b._tensors[v].permute(sites + lb)._data
        links = [new_links[(min(v, w), max(v, w))] for w in nbrs]
        shape = tuple(i.dim for i in sites) + tuple(l.dim for l in links)
        data = np.zeros(shape, dtype=np.result_type(da, db))
        ns = len(sites)
        block_a = (slice(None),) * ns + tuple(slice(0, i.dim) for i in la)
        block_b = (slice(None),) * ns + tuple(slice(i.dim, None) for i in la)
        data[block_a] = da
        data[block_b] = db
        tensors.append(Tensor._from_array(sites + links, data))
    return TreeTensorNetwork._from_parts(tensors, new_links, a._adj, a._node_names)


def random_mps(
    sites: Sequence[Index],
    linkdims: Union[int, Sequence[int]] = 1,
    *,
    seed: Optional[int] = None,
    dtype=np.float64,
) -> TreeTensorNetwork:
    """Random normalized MPS in unitary canonical form centered at site 0.

    Parameters
    ----------
    sites : list[Index]
        Site index of every tensor.
    linkdims : int or list[int]
        Requested bond dimensions. Each is clipped to the dimension of the
        site space on either side of its bond.
    seed : int, optional
        Seed of the random generator.
    dtype : np.float64 or np.complex128
    """
    sites = list(sites)
    n = len(sites)
    if n == 0:
        raise EmptyNetworkError("random_mps needs at least one site")
    if isinstance(linkdims, int):
        linkdims = [linkdims] * (n - 1)
    linkdims = list(linkdims)
    if len(linkdims) != n - 1:
        raise ValueError(f"Expected {n - 1} link dimensions, got {len(linkdims)}")
    site_dims = [s.dim for s in sites]
    for i in range(n - 1):
        left = int(np.prod(site_dims[: i + 1], dtype=object))
        right = int(np.prod(site_dims[i + 1:], dtype=object))
        linkdims[i] = min(int(linkdims[i]), left, right)
    rng = np.random.default_rng(seed)
    links = [Index(d, tags=f"Link,l={i + 1}") for i, d in enumerate(linkdims)]
    tensors = []
    for i, s in enumerate(sites):
        legs = ([links[i - 1]] if i > 0 else []) + [s] + ([links[i]] if i < n - 1 else [])
        tensors.append(Tensor.random(legs, rng=rng, dtype=dtype))
    mps = TreeTensorNetwork(tensors)
    mps.orthogonalize(0)
    nrm = mps.norm()
    if nrm > 0:
        mps._tensors[0] = mps._tensors[0] / nrm
    return mps


def product_mps(sites: Sequence[Index], states: Sequence) -> TreeTensorNetwork:
    """MPS of a product state with bond dimension 1.

    Parameters
    ----------
    sites : list[Index]
        Site index of every tensor.
    states : list
        Per site either a 0-based basis position or a vector of amplitudes.
    """
    sites = list(sites)
    states = list(states)
    n = len(sites)
    if n == 0:
        raise EmptyNetworkError("product_mps needs at least one site")
    if len(states) != n:
        raise ValueError(f"Expected {n} states, got {len(states)}")
    links = [Index(1, tags=f"Link,l={i + 1}") for i in range(n - 1)]
    tensors = []
    for i, (s, state) in enumerate(zip(sites, states)):
        if isinstance(state, (int, np.integer)):
            vec = np.zeros(s.dim)
            if not 0 <= int(state) < s.dim:
                raise ValueError(f"State {state} out of range for {s!r}")
            vec[int(state)] = 1.0
        else:
            vec = np.asarray(state)
            if vec.shape != (s.dim,):
                raise ShapeMismatchError(
                    f"State vector of site {i} has shape {vec.shape}, expected ({s.dim},)"
                )
        legs = ([links[i - 1]] if i > 0 else []) + [s] + ([links[i]] if i < n - 1 else [])
        tensors.append(Tensor(legs, vec.reshape(tuple(l.dim for l in legs))))
    return TreeTensorNetwork(tensors)


__all__ = [
    "TreeTensorNetwork",
    "MPS",
    "MPO",
    "inner",
    "lognorm",
    "random_mps",
    "product_mps",
    "check_same_topology",
    "sim_linkinds",
]
