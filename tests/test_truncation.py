"""Tests for bond-dimension truncation."""

import numpy as np
import pytest

from treetci import (
    CanonicalForm,
    Index,
    InvalidBudgetError,
    NotCanonicalizedError,
    Tensor,
    TreeTensorNetwork,
    TruncationResult,
    check_canonical,
    random_mps,
    truncate,
)
from treetci.truncation import truncate_canonical


def _schmidt_pair(singular_values):
    """Two-site MPS whose only bond carries the given Schmidt values."""
    k = len(singular_values)
    s0, s1, link = Index(k), Index(k), Index(k)
    t0 = Tensor([s0, link], np.diag(singular_values))
    t1 = Tensor([link, s1], np.eye(k))
    return TreeTensorNetwork([t0, t1])


def _star(seed=0, chi=4):
    rng = np.random.default_rng(seed)
    links = [Index(chi, tags="Link") for _ in range(3)]
    sites = [Index(2) for _ in range(4)]
    tensors = [Tensor.random([sites[0]] + links, rng=rng)]
    for leaf in range(3):
        tensors.append(Tensor.random([links[leaf], sites[leaf + 1], Index(2)], rng=rng))
    return TreeTensorNetwork(tensors)


class TestTruncateBudget:
    def test_requires_a_budget(self):
        mps = _schmidt_pair([1.0, 0.5])
        with pytest.raises(InvalidBudgetError):
            mps.truncate()

    def test_rtol_and_cutoff_exclusive(self):
        mps = _schmidt_pair([1.0, 0.5])
        with pytest.raises(InvalidBudgetError):
            mps.truncate(rtol=1e-3, cutoff=1e-6)

    def test_negative_tolerance(self):
        mps = _schmidt_pair([1.0, 0.5])
        with pytest.raises(InvalidBudgetError):
            mps.truncate(rtol=-1.0)

    def test_invalid_maxdim(self):
        mps = _schmidt_pair([1.0, 0.5])
        with pytest.raises(InvalidBudgetError):
            mps.truncate(maxdim=0)

    def test_budget_error_is_value_error(self):
        mps = _schmidt_pair([1.0, 0.5])
        with pytest.raises(ValueError):
            mps.truncate()


class TestTruncateExactSpectrum:
    def test_maxdim(self):
        mps = _schmidt_pair([4.0, 2.0, 1.0])
        mps.truncate(maxdim=2)
        result = mps.truncation_result
        assert isinstance(result, TruncationResult)
        assert mps.bond_dims == [2]
        assert result.bond_errors[(0, 1)] == pytest.approx(1.0 / np.sqrt(21.0))
        assert result.error == pytest.approx(1.0 / np.sqrt(21.0))

    def test_rtol(self):
        mps = _schmidt_pair([1.0, 1e-3, 1e-6])
        mps.truncate(rtol=1e-4)
        assert mps.bond_dims == [2]
        mps.truncate(rtol=1e-2)
        assert mps.bond_dims == [1]

    def test_cutoff_is_squared_rtol(self):
        a = _schmidt_pair([1.0, 1e-3, 1e-6])
        b = a.copy()
        a.truncate(cutoff=1e-8)
        b.truncate(rtol=1e-4)
        assert a.bond_dims == b.bond_dims

    def test_error_monotone_in_tolerance(self):
        base = _schmidt_pair([1.0, 0.3, 0.1, 0.03, 0.01])
        errors = []
        dims = []
        for rtol in [1e-4, 1e-3, 1e-2, 5e-2, 1e-1, 5e-1]:
            mps = base.copy()
            result = truncate(mps, rtol=rtol)
            errors.append(result.error)
            dims.append(mps.maxbonddim)
            assert result.error <= rtol
        assert errors == sorted(errors)
        assert dims == sorted(dims, reverse=True)

    def test_truncation_error_matches_dense(self):
        mps = _schmidt_pair([3.0, 2.0, 1.0])
        dense = mps.to_dense()
        mps.truncate(maxdim=1)
        err = (mps.to_dense() - dense).norm() / dense.norm()
        assert err == pytest.approx(mps.truncation_result.error)


class TestTruncateRandom:
    def test_random_mps_maxdim(self):
        sites = [Index(2) for _ in range(6)]
        mps = random_mps(sites, linkdims=6, seed=3)
        before = mps.bond_dims
        mps.truncate(maxdim=2)
        assert mps.maxbonddim == 2
        assert all(a <= b for a, b in zip(mps.bond_dims, before))
        assert mps.canonical_form == CanonicalForm.Unitary
        assert check_canonical(mps)

    @pytest.mark.parametrize("rtol", [1e-1, 1e-2, 1e-3])
    def test_random_mps_rtol(self, rtol):
        sites = [Index(2) for _ in range(6)]
        mps = random_mps(sites, linkdims=6, seed=11)
        before = mps.bond_dims
        result = truncate(mps, rtol=rtol)
        assert all(a <= b for a, b in zip(mps.bond_dims, before))
        assert result.max_bond_error <= rtol
        assert len(result.bond_errors) == 5

    def test_tree(self):
        ttn = _star(seed=2)
        before = ttn.bond_dims
        ttn.truncate(maxdim=2)
        assert ttn.bond_dims == [2, 2, 2]
        assert all(a <= b for a, b in zip(ttn.bond_dims, before))
        assert set(ttn.truncation_result.bond_errors) == {(0, 1), (0, 2), (0, 3)}

    def test_lossless_truncation_preserves_state(self):
        ttn = _star(seed=4)
        dense = ttn.to_dense()
        ttn.truncate(rtol=1e-14)
        assert ttn.to_dense().isapprox(dense, rtol=1e-10)

    def test_keeps_center(self):
        sites = [Index(2) for _ in range(5)]
        mps = random_mps(sites, linkdims=4, seed=5)
        mps.orthogonalize(3)
        mps.truncate(maxdim=2)
        assert mps.ortho_center == 3


class TestTruncateCanonical:
    def test_requires_unitary_form(self):
        mps = _schmidt_pair([1.0, 0.5])
        with pytest.raises(NotCanonicalizedError):
            truncate_canonical(mps, rtol=1e-3)
        mps.orthogonalize(0, form="lu")
        with pytest.raises(NotCanonicalizedError):
            truncate_canonical(mps, rtol=1e-3)

    def test_canonical(self):
        mps = _schmidt_pair([1.0, 0.5, 0.25])
        mps.orthogonalize(1)
        result = truncate_canonical(mps, rtol=0.0, maxdim=1)
        assert mps.bond_dims == [1]
        assert result.error == pytest.approx(np.sqrt(0.3125 / 1.3125))
