"""Tests for SimpleTensorTrain."""

import numpy as np
import pytest

from treetci import Index, ShapeMismatchError, SimpleTensorTrain


def _redundant_tt():
    """Two-site train with link dim 2 holding a rank-1 tensor."""
    v = np.array([1.0, 2.0])
    w = np.array([3.0, -1.0, 0.5])
    core0 = np.stack([v, v], axis=-1)[None, :, :]
    core1 = np.stack([w, w], axis=0)[:, :, None]
    return SimpleTensorTrain([core0, core1]), 2.0 * np.outer(v, w)


def _random_tt(site_dims, link_dims, seed=0):
    rng = np.random.default_rng(seed)
    bonds = [1] + list(link_dims) + [1]
    cores = [
        rng.standard_normal((bonds[i], d, bonds[i + 1]))
        for i, d in enumerate(site_dims)
    ]
    return SimpleTensorTrain(cores)


class TestSimpleTensorTrain:
    """Tests for SimpleTensorTrain class."""

    def test_constant_creation(self):
        """Test creating a constant tensor train."""
        tt = SimpleTensorTrain.constant([2, 3, 4], 1.5)

        assert tt.n_sites == 3
        assert len(tt) == 3
        assert tt.site_dims == [2, 3, 4]
        assert tt.rank == 1

    def test_zeros_creation(self):
        """Test creating a zero tensor train."""
        tt = SimpleTensorTrain.zeros([2, 3])

        assert tt.n_sites == 2
        assert tt.site_dims == [2, 3]
        assert tt.sum() == 0.0

    def test_sum(self):
        """Test sum over all elements."""
        tt = SimpleTensorTrain.constant([2, 3, 4], 1.0)
        assert abs(tt.sum() - 24.0) < 1e-10

        tt2 = SimpleTensorTrain.constant([2, 3, 4], 2.0)
        assert abs(tt2.sum() - 48.0) < 1e-10

    def test_evaluate(self):
        """Test evaluating at specific indices."""
        tt = SimpleTensorTrain.constant([2, 3, 4], 5.0)

        assert abs(tt.evaluate([0, 0, 0]) - 5.0) < 1e-10
        assert abs(tt.evaluate([1, 2, 3]) - 5.0) < 1e-10

    def test_call(self):
        """Test callable interface."""
        tt = SimpleTensorTrain.constant([2, 3], 3.0)

        assert abs(tt(0, 0) - 3.0) < 1e-10
        assert abs(tt(1, 2) - 3.0) < 1e-10

    def test_evaluate_errors(self):
        tt = SimpleTensorTrain.constant([2, 3], 1.0)
        with pytest.raises(IndexError):
            tt.evaluate([0, 3])
        with pytest.raises(ValueError):
            tt.evaluate([0])

    def test_copy(self):
        """Test copying a tensor train."""
        tt = SimpleTensorTrain.constant([2, 3], 2.0)
        tt_copy = tt.copy()

        assert tt_copy.n_sites == tt.n_sites
        assert tt_copy.site_dims == tt.site_dims
        assert abs(tt_copy.sum() - tt.sum()) < 1e-10

        tt_copy.cores[0][:] = 0.0
        assert abs(tt.sum() - 12.0) < 1e-10

    def test_link_dims(self):
        """Test link dimensions."""
        tt = SimpleTensorTrain.constant([2, 3, 4], 1.0)
        link_dims = tt.link_dims

        assert len(link_dims) == 2  # n_sites - 1
        assert all(d == 1 for d in link_dims)  # Constant has rank 1

    def test_site_tensor(self):
        """Test getting site tensors."""
        tt = SimpleTensorTrain.constant([2, 3], 1.0)

        t0 = tt.site_tensor(0)
        assert t0.shape == (1, 2, 1)

        t1 = tt.site_tensor(1)
        assert t1.shape == (1, 3, 1)

        with pytest.raises(IndexError):
            tt.site_tensor(2)

    def test_repr(self):
        """Test string representation."""
        tt = SimpleTensorTrain.constant([2, 3], 1.0)
        assert "SimpleTensorTrain" in repr(tt)
        assert "n_sites=2" in repr(tt)

    def test_norm(self):
        """Test Frobenius norm."""
        tt = SimpleTensorTrain.constant([2, 3], 1.0)
        # norm = sqrt(sum of squares) = sqrt(6)
        assert abs(tt.norm() - np.sqrt(6.0)) < 1e-10

    def test_norm_complex(self):
        core = np.array([1.0 + 1.0j, 2.0j]).reshape(1, 2, 1)
        tt = SimpleTensorTrain([core])
        assert tt.norm() == pytest.approx(np.sqrt(6.0))

    def test_to_numpy(self):
        tt = _random_tt([2, 3, 2], [2, 3])
        full = tt.to_numpy()
        assert full.shape == (2, 3, 2)
        for idx in np.ndindex(*full.shape):
            assert full[idx] == pytest.approx(tt.evaluate(idx))
        np.testing.assert_allclose(tt.fulltensor(), full)


class TestSimpleTensorTrainValidation:
    def test_core_not_3d(self):
        with pytest.raises(ShapeMismatchError):
            SimpleTensorTrain([np.ones((2, 2))])

    def test_outer_bond(self):
        with pytest.raises(ShapeMismatchError):
            SimpleTensorTrain([np.ones((2, 2, 1))])

    def test_bond_mismatch(self):
        with pytest.raises(ShapeMismatchError):
            SimpleTensorTrain([np.ones((1, 2, 2)), np.ones((3, 2, 1))])

    def test_empty(self):
        with pytest.raises(ValueError):
            SimpleTensorTrain([])


class TestCompress:
    @pytest.mark.parametrize("alg", ["svd", "lu", "ci"])
    def test_removes_redundant_rank(self, alg):
        tt, full = _redundant_tt()
        assert tt.link_dims == [2]
        result = tt.compress(tolerance=1e-12, alg=alg)
        assert result is tt
        assert tt.link_dims == [1]
        np.testing.assert_allclose(tt.to_numpy(), full, atol=1e-12)

    @pytest.mark.parametrize("alg", ["svd", "lu", "ci"])
    def test_lossless(self, alg):
        tt = _random_tt([2, 3, 3, 2], [2, 4, 2], seed=1)
        full = tt.to_numpy()
        tt.compress(tolerance=1e-14, alg=alg)
        np.testing.assert_allclose(tt.to_numpy(), full, atol=1e-9)

    def test_max_bond_dim(self):
        tt = _random_tt([2, 2, 2, 2], [2, 4, 2], seed=2)
        tt.compress(max_bond_dim=1)
        assert tt.link_dims == [1, 1, 1]

    def test_svd_shrinks_to_exact_ranks(self):
        tt = _random_tt([2, 2, 2], [3, 3], seed=3)
        tt.compress()
        assert tt.link_dims == [2, 2]


class TestToTreeTN:
    def test_values(self):
        tt = _random_tt([2, 3, 2], [2, 2], seed=4)
        mps = tt.to_treetn()
        assert mps.num_vertices == 3
        assert mps.bond_dims == [2, 2]
        for idx in [(0, 0, 0), (1, 2, 1), (0, 1, 1)]:
            assert mps.evaluate(list(idx)) == pytest.approx(tt(*idx))

    def test_given_site_indices(self):
        tt = _random_tt([2, 3], [2], seed=5)
        sites = [Index(2), Index(3)]
        mps = tt.to_treetn(sites)
        assert mps.siteinds(0) == [sites[0]]
        assert mps.siteinds(1) == [sites[1]]
        np.testing.assert_allclose(
            mps.to_dense().to_numpy(sites), tt.to_numpy(), atol=1e-12
        )

    def test_site_index_dim_mismatch(self):
        tt = _random_tt([2, 3], [2])
        with pytest.raises(ShapeMismatchError):
            tt.to_treetn([Index(2), Index(2)])
        with pytest.raises(ValueError):
            tt.to_treetn([Index(2)])
