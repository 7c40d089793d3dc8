import pytest
import torch

from tensor_id.drm import CountSketchDRM, GaussianDRM
from tensor_id.errors import InvalidArgument
from tensor_id.sketching_methods import sketch_cp, sketch_matrix
from tensor_id.tensor import CPTensor
from tensor_id.utils import make_generator, spawn_seeds


class TestSketchCP:
    def test_shape(self, cp3):
        Y = sketch_cp(cp3, 5, seed=0)
        assert Y.shape == (5, cp3.rank)

    def test_matches_hadamard_of_mode_sketches(self, cp3):
        l, seed = 4, 21
        seeds = spawn_seeds(seed, cp3.ndim)
        expected = torch.ones((l, cp3.rank), dtype=torch.float64)
        for n, U in enumerate(cp3.factors):
            G = GaussianDRM().matrix(l, U.shape[0], generator=make_generator(seeds[n]))
            expected = expected * (G @ U)
        expected = expected * cp3.weights

        torch.testing.assert_close(sketch_cp(cp3, l, seed=seed), expected)

    def test_reproducible_with_seed(self, cp3):
        torch.testing.assert_close(sketch_cp(cp3, 5, seed=3), sketch_cp(cp3, 5, seed=3))
        assert not torch.allclose(sketch_cp(cp3, 5, seed=3), sketch_cp(cp3, 5, seed=4))

    def test_does_not_touch_global_rng(self, cp3):
        torch.manual_seed(0)
        before = torch.rand(3)
        torch.manual_seed(0)
        sketch_cp(cp3, 5, seed=1)
        after = torch.rand(3)
        assert torch.equal(before, after)

    def test_single_mode_equals_matrix_sketch(self):
        g = torch.Generator().manual_seed(0)
        A = torch.randn((15, 6), generator=g, dtype=torch.float64)
        X = CPTensor(torch.ones(6, dtype=torch.float64), [A])
        torch.testing.assert_close(sketch_cp(X, 4, seed=9), sketch_matrix(A, 4, seed=9))

    def test_sparse_aware_keeps_result_when_no_zero_rows(self, cp3):
        dense = sketch_cp(cp3, 5, drm=GaussianDRM(), seed=12)
        sparse_aware = sketch_cp(cp3, 5, drm=GaussianDRM(full_random=False), seed=12)
        torch.testing.assert_close(dense, sparse_aware)

    def test_sparse_aware_with_zero_rows(self, cp3):
        X = cp3.copy()
        X.factors[0][2:5] = 0
        Y = sketch_cp(X, 5, drm=GaussianDRM(full_random=False), seed=12)
        assert Y.shape == (5, X.rank)
        assert torch.isfinite(Y).all()

    def test_input_not_modified(self, cp3):
        before = cp3.copy()
        sketch_cp(cp3, 5, drm=CountSketchDRM(full_random=False), seed=0)
        for U, V in zip(cp3.factors, before.factors):
            assert torch.equal(U, V)
        assert torch.equal(cp3.weights, before.weights)

    def test_invalid_sketch_dimension(self, cp3):
        with pytest.raises(InvalidArgument):
            sketch_cp(cp3, 0)


class TestSketchMatrix:
    def test_sparse_and_dense_agree(self, low_rank_matrix):
        dense = sketch_matrix(low_rank_matrix, 8, seed=1)
        sparse = sketch_matrix(low_rank_matrix.to_sparse(), 8, seed=1)
        torch.testing.assert_close(dense, sparse)

    def test_countsketch(self, low_rank_matrix):
        Y = sketch_matrix(low_rank_matrix, 8, drm=CountSketchDRM(), seed=1)
        assert Y.shape == (8, low_rank_matrix.shape[1])
        assert int(torch.linalg.matrix_rank(Y)) == 5

    def test_rejects_non_matrix(self):
        with pytest.raises(InvalidArgument):
            sketch_matrix(torch.ones(3, 3, 3), 2)
