import pytest
import torch

from tensor_id.drm import CountSketchDRM, GaussianDRM, SRTTDRM, get_drm
from tensor_id.errors import InvalidArgument
from tensor_id.utils import make_generator

ALL_DRMS = (GaussianDRM, CountSketchDRM, SRTTDRM)


def _mask(m):
    mask = torch.ones(m, dtype=torch.bool)
    mask[[1, 4, 5]] = False
    return mask


class TestMatrix:
    @pytest.mark.parametrize("cls", ALL_DRMS)
    def test_shape_and_dtype(self, cls):
        G = cls().matrix(4, 9, generator=make_generator(0))
        assert G.shape == (4, 9)
        assert G.dtype == torch.float64

    @pytest.mark.parametrize("cls", ALL_DRMS)
    def test_same_seed_same_matrix(self, cls):
        G1 = cls().matrix(3, 8, generator=make_generator(11))
        G2 = cls().matrix(3, 8, generator=make_generator(11))
        assert torch.equal(G1, G2)

    @pytest.mark.parametrize("cls", ALL_DRMS)
    def test_inactive_columns_are_zero(self, cls):
        mask = _mask(8)
        G = cls(full_random=False).matrix(3, 8, generator=make_generator(2), active=mask)
        assert torch.all(G[:, ~mask] == 0)
        assert torch.all(G[:, mask].abs().sum(dim=0) > 0)

    @pytest.mark.parametrize("cls", ALL_DRMS)
    def test_all_active_mask_matches_dense_draw(self, cls):
        dense = cls().matrix(5, 10, generator=make_generator(3))
        sparse_aware = cls(full_random=False).matrix(
            5, 10, generator=make_generator(3), active=torch.ones(10, dtype=torch.bool)
        )
        assert torch.equal(dense, sparse_aware)

    @pytest.mark.parametrize("cls", ALL_DRMS)
    def test_mask_ignored_when_full_random(self, cls):
        dense = cls().matrix(5, 8, generator=make_generator(3))
        masked = cls().matrix(5, 8, generator=make_generator(3), active=_mask(8))
        assert torch.equal(dense, masked)

    def test_sparse_aware_gaussian_is_standard_normal(self):
        mask = torch.zeros(400, dtype=torch.bool)
        mask[::2] = True
        G = GaussianDRM(full_random=False).matrix(
            50, 400, generator=make_generator(0), active=mask
        )
        active = G[:, mask]
        assert abs(float(active.mean())) < 0.05
        assert abs(float(active.var()) - 1) < 0.05

    def test_countsketch_one_signed_entry_per_column(self):
        G = CountSketchDRM().matrix(6, 40, generator=make_generator(4))
        assert torch.all((G != 0).sum(dim=0) == 1)
        assert set(G[G != 0].tolist()) <= {-1.0, 1.0}

    def test_srtt_rows_are_orthonormal(self):
        l, m = 5, 12
        G = SRTTDRM().matrix(l, m, generator=make_generator(6))
        torch.testing.assert_close(G @ G.T, (m / l) * torch.eye(l, dtype=G.dtype))


class TestApply:
    @pytest.mark.parametrize("cls", ALL_DRMS)
    @pytest.mark.parametrize("full_random", [True, False])
    def test_apply_matches_explicit_matrix(self, cls, full_random):
        g = torch.Generator().manual_seed(1)
        U = torch.randn((10, 4), generator=g, dtype=torch.float64)
        mask = _mask(10)
        U[~mask] = 0
        drm = cls(full_random=full_random)
        G = drm.matrix(6, 10, generator=make_generator(8), active=mask)
        Y = drm.apply(U, 6, generator=make_generator(8), active=mask)
        torch.testing.assert_close(Y, G @ U)

    @pytest.mark.parametrize("cls", ALL_DRMS)
    def test_sparse_input_matches_dense_input(self, cls):
        g = torch.Generator().manual_seed(2)
        U = torch.randn((12, 3), generator=g, dtype=torch.float64)
        U[U.abs() < 0.8] = 0
        drm = cls()
        dense = drm.apply(U, 4, generator=make_generator(5))
        sparse = drm.apply(U.to_sparse(), 4, generator=make_generator(5))
        torch.testing.assert_close(sparse, dense)


class TestValidation:
    @pytest.mark.parametrize("cls", ALL_DRMS)
    @pytest.mark.parametrize("l,m", [(0, 5), (-1, 5), (3, 0)])
    def test_non_positive_dimensions(self, cls, l, m):
        with pytest.raises(InvalidArgument):
            cls().matrix(l, m, generator=make_generator(0))

    def test_mask_of_wrong_length(self):
        with pytest.raises(InvalidArgument):
            GaussianDRM(full_random=False).matrix(
                3, 5, generator=make_generator(0), active=torch.ones(4, dtype=torch.bool)
            )

    def test_srtt_needs_l_at_most_m(self):
        with pytest.raises(InvalidArgument):
            SRTTDRM().matrix(6, 5, generator=make_generator(0))

    def test_get_drm(self):
        drm = get_drm("CountSketch", full_random=False)
        assert isinstance(drm, CountSketchDRM)
        assert not drm.full_random
        with pytest.raises(InvalidArgument):
            get_drm("fourier")
