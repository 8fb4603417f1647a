"""Tests for TensorCI1/TensorCI2 and crossinterpolate1/crossinterpolate2."""

import logging

import numpy as np
import pytest

from treetci import (
    ConvergenceFailure,
    InvalidDimensionError,
    SimpleTensorTrain,
    TCIStatus,
    TensorCI1,
    TensorCI2,
    crossinterpolate1,
    crossinterpolate1_tci,
    crossinterpolate2,
    crossinterpolate2_tci,
)


def _product(i, j, k):
    return float((1 + i) * (1 + j) * (1 + k))


def _sum(i, j, k):
    return 1.0 + i + j + k


def _grid(f, dims):
    return np.array(
        [f(*idx) for idx in np.ndindex(*dims)], dtype=np.float64
    ).reshape(dims)


class TestTensorCI2:
    """Tests for TensorCI2 class."""

    def test_creation(self):
        """Test creating a TensorCI2 object."""
        tci = TensorCI2(_product, [2, 3, 4])

        assert tci.n_sites == 3
        assert len(tci) == 3
        assert tci.local_dims == [2, 3, 4]
        assert tci.rank == 1

    def test_repr(self):
        """Test string representation."""
        tci = TensorCI2(lambda i, j: 1.0, [2, 3])
        assert "TensorCI2" in repr(tci)

    def test_sweep_finds_rank(self):
        tci = TensorCI2(_sum, [3, 3, 3])
        tci.iterate(tolerance=1e-12)
        assert tci.link_dims == [2, 2]
        rows, cols = tci.pivots(0)
        assert len(rows) == len(cols) == 2

    def test_add_global_pivots(self):
        tci = TensorCI2(_sum, [3, 3, 3])
        tci.add_global_pivots([[2, 2, 2]])
        assert (2,) in tci.pivots(0)[0]
        assert (2, 2) in tci.pivots(0)[1]

    def test_invalid_pivot(self):
        with pytest.raises(ValueError):
            TensorCI2(_sum, [2, 2], initial_pivots=[[0, 5]])
        with pytest.raises(ValueError):
            TensorCI2(_sum, [2, 2], initial_pivots=[[0]])

    def test_invalid_dims(self):
        with pytest.raises(InvalidDimensionError):
            TensorCI2(_sum, [2, 0, 2])


class TestCrossinterpolate2:
    """Tests for crossinterpolate2 function."""

    def test_constant_function_2site(self):
        """Test interpolating a constant function with 2 sites."""
        tt, err = crossinterpolate2(lambda i, j: 1.0, [3, 4], tolerance=1e-10)

        assert tt.n_sites == 2
        assert tt.rank == 1  # Constant has rank 1

        # Sum should be 1.0 * 3 * 4 = 12.0
        assert abs(tt.sum() - 12.0) < 1e-8

    def test_product_function_2site(self):
        """Test interpolating a product function (rank-1)."""
        def f(i, j):
            return float((1 + i) * (1 + j))

        tt, err = crossinterpolate2(f, [3, 4], tolerance=1e-10)

        assert abs(tt(0, 0) - 1.0) < 1e-10
        assert abs(tt(1, 2) - 6.0) < 1e-10
        assert abs(tt(2, 3) - 12.0) < 1e-10
        assert tt.rank == 1

    def test_with_initial_pivots(self):
        """Test interpolation with custom initial pivots."""
        def f(i, j):
            return float((1 + i) * (2 + j))

        tt, err = crossinterpolate2(f, [3, 4], initial_pivots=[[1, 1]], tolerance=1e-10)

        assert abs(tt(0, 0) - 2.0) < 1e-10  # (0+1) * (0+2) = 2
        assert abs(tt(1, 2) - 8.0) < 1e-10  # (1+1) * (2+2) = 8

    def test_3site_product_scenario(self):
        """f(i,j,k) = (1+i)(1+j)(1+k) over [3, 4, 5]."""
        tt, err = crossinterpolate2(_product, [3, 4, 5], tolerance=1e-10)

        assert isinstance(tt, SimpleTensorTrain)
        assert abs(tt(0, 0, 0) - 1.0) < 1e-10
        assert abs(tt(2, 3, 4) - 60.0) < 1e-8
        assert err <= 1e-10

    def test_rank2_function(self):
        dims = [3, 4, 3]
        tt, err = crossinterpolate2(_sum, dims, tolerance=1e-12, seed=0)
        assert tt.link_dims == [2, 2]
        np.testing.assert_allclose(tt.to_numpy(), _grid(_sum, dims), atol=1e-10)

    def test_5site_constant(self):
        """Test 5-site constant function."""
        tt, err = crossinterpolate2(lambda *args: 2.5, [2, 2, 2, 2, 2], tolerance=1e-10)

        assert tt.n_sites == 5
        assert tt.rank == 1
        assert abs(tt.sum() - 80.0) < 1e-8  # 2.5 * 2^5 = 80

    def test_no_full_grid_sampling(self):
        def f(*idx):
            return float(np.prod([1.0 + 0.1 * i for i in idx]))

        dims = [10] * 5
        tci, err = crossinterpolate2_tci(f, dims, tolerance=1e-10, nsearch_global=0)
        assert tci.status == TCIStatus.CONVERGED
        assert tci.n_evaluations < 2000
        tt = tci.to_tensor_train()
        assert tt(9, 0, 3, 7, 2) == pytest.approx(f(9, 0, 3, 7, 2))

    def test_tci_object(self):
        tci, err = crossinterpolate2_tci(_product, [3, 4, 5], tolerance=1e-10)
        assert isinstance(tci, TensorCI2)
        assert tci.status == TCIStatus.CONVERGED
        assert tci.max_sample_value == pytest.approx(60.0)
        assert tci.errors[-1] == err
        assert tci.max_bond_error <= 1e-10 * 60.0

    def test_max_rank(self, caplog):
        with caplog.at_level(logging.WARNING, logger="treetci.tensorci"):
            tci, err = crossinterpolate2_tci(_sum, [3, 3, 3], tolerance=1e-12, max_bonddim=1)
        assert tci.status == TCIStatus.MAX_RANK
        assert tci.rank == 1
        assert err > 1e-12
        assert "MAX_RANK" in caplog.text

    def test_strict_raises(self):
        with pytest.raises(ConvergenceFailure) as info:
            crossinterpolate2(_sum, [3, 3, 3], tolerance=1e-12, max_bonddim=1, strict=True)
        assert isinstance(info.value.result, TensorCI2)
        assert info.value.error > 1e-12

    @pytest.mark.parametrize("max_iter", [1, 2])
    def test_stop_after_global_pivots(self, max_iter):
        """Pivots found by the global search are re-selected before returning."""
        def f(*x):
            return 1.0 / (1.0 + sum((k + 1) * xk for k, xk in enumerate(x)))

        dims = [2] * 10
        tci, err = crossinterpolate2_tci(f, dims, tolerance=1e-12, max_iter=max_iter, seed=0)
        if max_iter == 1:
            assert tci.status == TCIStatus.MAX_ITER
        for b in range(len(dims) - 1):
            rows, cols = tci.pivots(b)
            assert len(rows) == len(cols)
        tt = tci.to_tensor_train()
        assert tt.link_dims == tci.link_dims
        assert np.isfinite(tt(1, 0, 1, 1, 0, 0, 1, 0, 1, 1))

    def test_invalid_local_dims(self):
        """Test that single-site raises error."""
        with pytest.raises(ValueError):
            crossinterpolate2(lambda i: float(i), [2], tolerance=1e-10)

    def test_zero_at_initial_pivot(self):
        with pytest.raises(ValueError):
            crossinterpolate2(lambda i, j: float(i * j), [3, 3])

    def test_non_finite_value(self):
        with pytest.raises(ValueError):
            crossinterpolate2(lambda i, j: float("nan"), [2, 2])


class TestCrossinterpolate1:
    """Tests for the one-pivot-per-iteration variant."""

    def test_3site_product_scenario(self):
        tt, err = crossinterpolate1(_product, [3, 4, 5], tolerance=1e-10)

        assert abs(tt(0, 0, 0) - 1.0) < 1e-10
        assert abs(tt(2, 3, 4) - 60.0) < 1e-8
        assert err <= 1e-10
        assert tt.rank == 1

    def test_rank2_function(self):
        dims = [3, 4, 3]
        tci, err = crossinterpolate1_tci(_sum, dims, tolerance=1e-12)
        assert isinstance(tci, TensorCI1)
        assert tci.status == TCIStatus.CONVERGED
        assert tci.link_dims == [2, 2]
        np.testing.assert_allclose(
            tci.to_tensor_train().to_numpy(), _grid(_sum, dims), atol=1e-10
        )

    def test_one_pivot_per_iteration(self):
        tci = TensorCI1(_sum, [3, 3, 3])
        assert tci.link_dims == [1, 1]
        status = tci.iterate(tolerance=1e-12)
        assert status is None
        assert sum(tci.link_dims) == 3

    def test_low_rank_matrices(self):
        """A pivot that raises the max-norm error is still kept."""
        for seed in range(40):
            rng = np.random.default_rng(seed)
            mat = rng.standard_normal((6, 3)) @ rng.standard_normal((3, 6))
            tci, err = crossinterpolate1_tci(
                lambda i, j: float(mat[i, j]), [6, 6], tolerance=1e-10
            )
            assert tci.status == TCIStatus.CONVERGED, seed
            assert tci.link_dims == [3]
            np.testing.assert_allclose(tci.to_tensor_train().to_numpy(), mat, atol=1e-8)

    def test_stagnates_on_singular_pivot(self):
        tci = TensorCI1(lambda i, j: 1.0, [2, 2])
        assert tci.iterate(tolerance=-1.0) == TCIStatus.STAGNATED
        assert tci.link_dims == [1]

    def test_max_rank(self):
        tci, err = crossinterpolate1_tci(_sum, [3, 3, 3], tolerance=1e-12, max_bonddim=1)
        assert tci.status == TCIStatus.MAX_RANK
        assert err > 1e-12

    def test_max_iter(self):
        tci, err = crossinterpolate1_tci(_sum, [3, 3, 3], tolerance=1e-12, max_iter=1)
        assert tci.status == TCIStatus.MAX_ITER
        with pytest.raises(ConvergenceFailure):
            crossinterpolate1(_sum, [3, 3, 3], tolerance=1e-12, max_iter=1, strict=True)

    def test_errors_history(self):
        tci, err = crossinterpolate1_tci(_sum, [3, 3, 3], tolerance=1e-12)
        assert len(tci.errors) >= 2
        assert tci.errors[-1] == err
        assert tci.errors[0] > tci.errors[-1]
