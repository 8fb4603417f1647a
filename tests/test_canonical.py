"""Tests for canonical forms (orthogonalize)."""

import numpy as np
import pytest

from treetci import (
    CanonicalForm,
    Index,
    Tensor,
    TreeTensorNetwork,
    UnknownIndexError,
    check_canonical,
    is_orthogonal,
    orthogonalize,
)
from treetci.canonical import tree_path


def _random_chain(n=5, d=2, chi=3, seed=0, dtype=np.float64):
    rng = np.random.default_rng(seed)
    sites = [Index(d, tags=f"Site,n={i + 1}") for i in range(n)]
    links = [Index(chi, tags=f"Link,l={i + 1}") for i in range(n - 1)]
    tensors = []
    for i in range(n):
        legs = ([links[i - 1]] if i > 0 else []) + [sites[i]] + ([links[i]] if i < n - 1 else [])
        tensors.append(Tensor.random(legs, rng=rng, dtype=dtype))
    return TreeTensorNetwork(tensors), sites


def _random_tree(seed=0):
    """0 - 1 - 2 with 3 and 4 hanging off 1, 5 hanging off 4."""
    rng = np.random.default_rng(seed)
    bonds = [(0, 1), (1, 2), (1, 3), (1, 4), (4, 5)]
    links = {b: Index(3, tags="Link") for b in bonds}
    sites = [Index(2, tags="Site") for _ in range(6)]
    tensors = []
    for v in range(6):
        legs = [sites[v]] + [links[b] for b in bonds if v in b]
        tensors.append(Tensor.random(legs, rng=rng))
    return TreeTensorNetwork(tensors), sites


class TestOrthogonalizeUnitary:
    @pytest.mark.parametrize("center", [0, 2, 4])
    def test_chain_isometries(self, center):
        mps, _ = _random_chain()
        dense = mps.to_dense()
        orthogonalize(mps, center)
        assert mps.canonical_form == CanonicalForm.Unitary
        assert mps.ortho_center == center
        for v in range(mps.num_vertices):
            if v == center:
                continue
            w = v + 1 if v < center else v - 1
            assert is_orthogonal(mps[v], mps.linkind(v, w), atol=1e-10)
        assert check_canonical(mps)
        assert mps.to_dense().isapprox(dense, rtol=1e-10)

    def test_tree(self):
        ttn, _ = _random_tree()
        dense = ttn.to_dense()
        ttn.orthogonalize(4)
        assert check_canonical(ttn, atol=1e-10)
        assert ttn.to_dense().isapprox(dense, rtol=1e-10)
        assert ttn.norm() == pytest.approx(dense.norm())

    def test_complex(self):
        mps, _ = _random_chain(dtype=np.complex128, seed=2)
        dense = mps.to_dense()
        mps.orthogonalize(3)
        assert check_canonical(mps)
        assert mps.to_dense().isapprox(dense, rtol=1e-10)

    def test_bond_dims_never_grow(self):
        mps, _ = _random_chain(chi=8)
        before = mps.bond_dims
        mps.orthogonalize(2)
        after = mps.bond_dims
        assert all(a <= b for a, b in zip(after, before))
        # exceeding bonds shrink to the dimension of the smaller side
        assert after == [2, 4, 4, 2]

    def test_move_center_along_path(self):
        """Moving the center only refactors tensors on the path."""
        ttn, _ = _random_tree(seed=5)
        ttn.orthogonalize(0)
        untouched = {v: ttn[v] for v in (2, 3)}
        ttn.orthogonalize(5)
        assert ttn.ortho_center == 5
        assert check_canonical(ttn)
        for v, t in untouched.items():
            assert ttn[v] is t

    def test_tensors_between_old_and_new_center(self):
        mps, _ = _random_chain(n=6, seed=8)
        mps.orthogonalize(0)
        mps.orthogonalize(5)
        for v in range(0, 5):
            assert is_orthogonal(mps[v], mps.linkind(v, v + 1), "unitary", atol=1e-10)


class TestOrthogonalizeLUandCI:
    @pytest.mark.parametrize("form", ["lu", "ci", CanonicalForm.LU, CanonicalForm.CI])
    def test_chain(self, form):
        mps, _ = _random_chain(seed=3)
        dense = mps.to_dense()
        mps.orthogonalize(2, form=form)
        assert mps.canonical_form == CanonicalForm.from_name(form)
        assert check_canonical(mps, atol=1e-10)
        assert mps.to_dense().isapprox(dense, rtol=1e-8)

    def test_tree_ci(self):
        ttn, _ = _random_tree(seed=4)
        dense = ttn.to_dense()
        ttn.orthogonalize(1, form="ci")
        assert check_canonical(ttn, atol=1e-10)
        assert ttn.to_dense().isapprox(dense, rtol=1e-8)

    def test_ci_tensor_not_unitary(self):
        mps, _ = _random_chain(seed=6)
        mps.orthogonalize(4, form="ci")
        assert is_orthogonal(mps[1], mps.linkind(1), "ci")
        assert not is_orthogonal(mps[1], mps.linkind(1), "unitary")

    def test_switching_form_resweeps(self):
        mps, _ = _random_chain(seed=9)
        mps.orthogonalize(0, form="lu")
        mps.orthogonalize(0, form="unitary")
        assert mps.canonical_form == CanonicalForm.Unitary
        assert check_canonical(mps)


class TestOrthogonalizeErrors:
    def test_unknown_vertex(self):
        mps, _ = _random_chain()
        with pytest.raises(KeyError):
            mps.orthogonalize(17)

    def test_unknown_form(self):
        mps, _ = _random_chain()
        with pytest.raises(ValueError):
            mps.orthogonalize(0, form="polar")

    def test_is_orthogonal_unknown_bond(self):
        t = Tensor([Index(2)], np.ones(2))
        with pytest.raises(UnknownIndexError):
            is_orthogonal(t, Index(2))

    def test_not_canonical_initially(self):
        mps, _ = _random_chain()
        assert not check_canonical(mps)


class TestTreePath:
    def test_path(self):
        ttn, _ = _random_tree()
        assert tree_path(ttn, 0, 5) == [0, 1, 4, 5]
        assert tree_path(ttn, 3, 2) == [3, 1, 2]
        assert tree_path(ttn, 2, 2) == [2]
