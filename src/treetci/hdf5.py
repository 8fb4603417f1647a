"""HDF5 save/load functions for treetci (ITensors.jl compatible format).

Provides functions to save and load tensors and MPS in HDF5 format that is
compatible with ITensors.jl and ITensorMPS.jl, plus a package specific
layout for general tree tensor networks. Files are written with `h5py`.

Layout of an ITensor group::

    <name>/                   attrs: type="ITensor", version=1
        inds/                 attrs: type="IndexSet", version=1
            length            number of indices
            index_<k>/        attrs: type="Index", version=1
                id, dim, dir, plev
                tags/         attrs: type="TagSet", version=1; dataset "tags"
        storage/              attrs: type="Dense{Float64}" or "Dense{ComplexF64}"
            data              flat payload in column-major order

Index ids are preserved: a loaded index compares equal to the saved one.

Examples
--------
>>> from treetci import Index, Tensor
>>> from treetci.hdf5 import save_itensor, load_itensor
>>> import numpy as np
>>>
>>> i = Index(2, tags="Site,n=1")
>>> j = Index(3, tags="Link,l=1")
>>> t = Tensor([i, j], np.ones((2, 3)))
>>>
>>> save_itensor("tensor.h5", "my_tensor", t)
>>> loaded = load_itensor("tensor.h5", "my_tensor")
"""

from __future__ import annotations

import logging
import os
from typing import Union

import h5py
import numpy as np

from .algorithm import CanonicalForm
from .errors import FileFormatError, IncompatibleTopologyError, TreeTCIError
from .index import Index
from .tensor import Tensor

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

_STORAGE_TYPES = {
    np.dtype(np.float64): "Dense{Float64}",
    np.dtype(np.complex128): "Dense{ComplexF64}",
}
_STORAGE_DTYPES = {v: k for k, v in _STORAGE_TYPES.items()}


def _attr(h5gr, name: str):
    """Return attribute `name` as str/int, raising FileFormatError if missing."""
    if name not in h5gr.attrs:
        raise FileFormatError(f"{h5gr.name}: missing attribute '{name}'")
    value = h5gr.attrs[name]
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    return value


def _check_type(h5gr, expected: str) -> None:
    found = _attr(h5gr, "type")
    if found != expected:
        raise FileFormatError(f"{h5gr.name}: expected type '{expected}', found '{found}'")


def _subgroup(h5gr, name: str):
    if name not in h5gr:
        raise FileFormatError(f"{h5gr.name}: missing '{name}'")
    return h5gr[name]


def _read_str(ds) -> str:
    # `asstr()` handles both variable-length and fixed-length strings
    return ds.asstr()[()]


def _new_group(parent, name: str):
    """Create group `name`, replacing an existing one."""
    if name in parent:
        del parent[name]
    gr = parent.create_group(name)
    gr.attrs["version"] = 1
    return gr


# ============================================================================
# Index / ITensor groups
# ============================================================================


def _write_index(h5gr, index: Index) -> None:
    h5gr.attrs["type"] = "Index"
    h5gr.create_dataset("id", data=np.uint64(index.id))
    h5gr.create_dataset("dim", data=np.int64(index.dim))
    h5gr.create_dataset("dir", data=np.int64(0))
    h5gr.create_dataset("plev", data=np.int64(0))
    tags = h5gr.create_group("tags")
    tags.attrs["type"] = "TagSet"
    tags.attrs["version"] = 1
    tags.create_dataset("tags", data=index.tags)


def _read_index(h5gr) -> Index:
    _check_type(h5gr, "Index")
    try:
        id = int(_subgroup(h5gr, "id")[()])
        dim = int(_subgroup(h5gr, "dim")[()])
        tags_gr = _subgroup(h5gr, "tags")
        tags = _read_str(_subgroup(tags_gr, "tags"))
        return Index(dim, tags=tags, id=id)
    except TreeTCIError as err:
        if isinstance(err, FileFormatError):
            raise
        raise FileFormatError(f"{h5gr.name}: invalid index ({err})") from err


def write_itensor(h5gr, tensor: Tensor) -> None:
    """Write `tensor` into the (empty) h5py group `h5gr`."""
    h5gr.attrs["type"] = "ITensor"
    h5gr.attrs["version"] = 1
    inds = h5gr.create_group("inds")
    inds.attrs["type"] = "IndexSet"
    inds.attrs["version"] = 1
    inds.create_dataset("length", data=np.int64(tensor.rank))
    for k, idx in enumerate(tensor.indices):
        sub = inds.create_group(f"index_{k + 1}")
        sub.attrs["version"] = 1
        _write_index(sub, idx)
    storage = h5gr.create_group("storage")
    storage.attrs["type"] = _STORAGE_TYPES[tensor.dtype]
    storage.attrs["version"] = 1
    storage.create_dataset("data", data=tensor.to_numpy().ravel(order="F"))


def read_itensor(h5gr) -> Tensor:
    """Read a tensor from an h5py group written by :func:`write_itensor`."""
    _check_type(h5gr, "ITensor")
    inds_gr = _subgroup(h5gr, "inds")
    _check_type(inds_gr, "IndexSet")
    n = int(_subgroup(inds_gr, "length")[()])
    indices = [_read_index(_subgroup(inds_gr, f"index_{k + 1}")) for k in range(n)]

    storage = _subgroup(h5gr, "storage")
    kind = _attr(storage, "type")
    if kind not in _STORAGE_DTYPES:
        raise FileFormatError(f"{storage.name}: unsupported storage type '{kind}'")
    data = np.asarray(_subgroup(storage, "data")[()], dtype=_STORAGE_DTYPES[kind])
    dims = tuple(i.dim for i in indices)
    if data.size != int(np.prod(dims, dtype=np.int64)):
        raise FileFormatError(
            f"{storage.name}: {data.size} elements do not match dims {dims}"
        )
    return Tensor(indices, data.reshape(dims, order="F"))


def save_itensor(filepath: PathLike, name: str, tensor: Tensor) -> None:
    """Save a tensor to an HDF5 file in ITensors.jl-compatible format.

    Parameters
    ----------
    filepath : str
        Path to the HDF5 file (created if missing).
    name : str
        Name of the HDF5 group to write the tensor to (replaced if present).
    tensor : Tensor
        Tensor to save.
    """
    with h5py.File(filepath, "a") as f:
        write_itensor(_new_group(f, name), tensor)
    logger.debug("saved tensor %r to %s:%s", tensor, filepath, name)


def load_itensor(filepath: PathLike, name: str) -> Tensor:
    """Load a tensor from an HDF5 file in ITensors.jl-compatible format.

    Parameters
    ----------
    filepath : str
        Path to the HDF5 file.
    name : str
        Name of the HDF5 group containing the tensor.

    Returns
    -------
    Tensor
        The loaded tensor.

    Raises
    ------
    FileFormatError
        If the group does not follow the ITensor layout.
    """
    with h5py.File(filepath, "r") as f:
        return read_itensor(_subgroup(f, name))


# ============================================================================
# MPS
# ============================================================================


def save_mps(filepath: PathLike, name: str, mps) -> None:
    """Save an MPS (TreeTensorNetwork) to an HDF5 file in ITensorMPS.jl-compatible format.

    Parameters
    ----------
    filepath : str
        Path to the HDF5 file (created if missing).
    name : str
        Name of the HDF5 group to write the MPS to (replaced if present).
    mps : TreeTensorNetwork
        The MPS to save. Bonds must be exactly (0, 1), (1, 2), ...

    Raises
    ------
    IncompatibleTopologyError
        If `mps` is not a chain in vertex order.
    """
    if not mps.is_chain():
        raise IncompatibleTopologyError(
            f"Only chains can be saved as MPS, got bonds {mps.edges}"
        )
    n = mps.num_vertices
    if mps._canonical_form == CanonicalForm.Unitary and mps._center is not None:
        llim, rlim = mps._center, mps._center + 2
    else:
        llim, rlim = 0, n + 1
    with h5py.File(filepath, "a") as f:
        gr = _new_group(f, name)
        gr.attrs["type"] = "MPS"
        gr.create_dataset("length", data=np.int64(n))
        gr.create_dataset("llim", data=np.int64(llim))
        gr.create_dataset("rlim", data=np.int64(rlim))
        for k, t in enumerate(mps.collect()):
            write_itensor(gr.create_group(f"MPS[{k + 1}]"), t)
    logger.debug("saved MPS with %d sites to %s:%s", n, filepath, name)


def load_mps(filepath: PathLike, name: str):
    """Load an MPS from an HDF5 file in ITensorMPS.jl-compatible format.

    Parameters
    ----------
    filepath : str
        Path to the HDF5 file.
    name : str
        Name of the HDF5 group containing the MPS.

    Returns
    -------
    TreeTensorNetwork
        The loaded MPS as a TreeTensorNetwork with 0-indexed node names.
    """
    from .treetn import TreeTensorNetwork

    with h5py.File(filepath, "r") as f:
        gr = _subgroup(f, name)
        _check_type(gr, "MPS")
        n = int(_subgroup(gr, "length")[()])
        tensors = [read_itensor(_subgroup(gr, f"MPS[{k + 1}]")) for k in range(n)]
        llim = int(gr["llim"][()]) if "llim" in gr else 0
        rlim = int(gr["rlim"][()]) if "rlim" in gr else n + 1
    mps = TreeTensorNetwork(tensors)
    if not mps.is_chain():
        raise FileFormatError(f"{name}: tensors do not form a chain")
    if rlim - llim == 2 and 0 <= llim < n:
        mps._canonical_form = CanonicalForm.Unitary
        mps._center = llim
    return mps


# ============================================================================
# General trees
# ============================================================================


def save_treetn(filepath: PathLike, name: str, ttn) -> None:
    """Save a tree tensor network with its bond structure and node names.

    Node names must all be integers or all be strings.

    Parameters
    ----------
    filepath : str
        Path to the HDF5 file (created if missing).
    name : str
        Name of the HDF5 group (replaced if present).
    ttn : TreeTensorNetwork
        Network to save.
    """
    names = ttn.vertices
    if all(isinstance(v, (int, np.integer)) for v in names):
        names_data = np.asarray(names, dtype=np.int64)
        name_kind = "int"
    elif all(isinstance(v, str) for v in names):
        names_data = np.asarray(names, dtype=h5py.string_dtype())
        name_kind = "str"
    else:
        raise ValueError("Node names must all be int or all be str to be saved")
    edges = np.asarray(sorted(ttn._edges), dtype=np.int64).reshape(-1, 2)
    with h5py.File(filepath, "a") as f:
        gr = _new_group(f, name)
        gr.attrs["type"] = "TreeTN"
        gr.attrs["node_name_type"] = name_kind
        form = ttn._canonical_form
        gr.attrs["canonical_form"] = -1 if form is None else int(form)
        gr.attrs["ortho_center"] = -1 if ttn._center is None else ttn._center
        gr.create_dataset("length", data=np.int64(ttn.num_vertices))
        gr.create_dataset("edges", data=edges)
        gr.create_dataset("node_names", data=names_data)
        for k, t in enumerate(ttn.collect()):
            write_itensor(gr.create_group(f"tensor[{k + 1}]"), t)
    logger.debug("saved TreeTN with %d vertices to %s:%s", ttn.num_vertices, filepath, name)


def load_treetn(filepath: PathLike, name: str):
    """Load a tree tensor network written by :func:`save_treetn`.

    Raises
    ------
    FileFormatError
        If the group layout is invalid or the stored bonds do not match the
        bonds implied by the tensors.
    """
    from .treetn import TreeTensorNetwork

    with h5py.File(filepath, "r") as f:
        gr = _subgroup(f, name)
        _check_type(gr, "TreeTN")
        n = int(_subgroup(gr, "length")[()])
        tensors = [read_itensor(_subgroup(gr, f"tensor[{k + 1}]")) for k in range(n)]
        edges = {tuple(int(x) for x in e) for e in _subgroup(gr, "edges")[()]}
        ds = _subgroup(gr, "node_names")
        if _attr(gr, "node_name_type") == "str":
            names = [str(s) for s in ds.asstr()[()]]
        else:
            names = [int(v) for v in ds[()]]
        form = int(_attr(gr, "canonical_form"))
        center = int(_attr(gr, "ortho_center"))
    ttn = TreeTensorNetwork(tensors, names)
    if set(ttn._edges) != edges:
        raise FileFormatError(
            f"{name}: stored bonds {sorted(edges)} differ from the tensors' "
            f"bonds {sorted(ttn._edges)}"
        )
    if form >= 0 and 0 <= center < n:
        ttn._canonical_form = CanonicalForm(form)
        ttn._center = center
    return ttn


__all__ = [
    "save_itensor",
    "load_itensor",
    "save_mps",
    "load_mps",
    "save_treetn",
    "load_treetn",
    "write_itensor",
    "read_itensor",
]
