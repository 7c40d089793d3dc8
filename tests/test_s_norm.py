import logging
import warnings

import pytest
import torch

from tensor_id.errors import InvalidArgument, NonConvergenceWarning
from tensor_id.interpolative import gaussian_tensor_id
from tensor_id.s_norm import s_norm
from tensor_id.tensor import CPTensor


def _orthogonal_cp(weights, shape=(4, 5, 6)):
    R = len(weights)
    factors = [torch.eye(n, R, dtype=torch.float64) for n in shape]
    return CPTensor(torch.tensor(weights, dtype=torch.float64), factors)


def test_rank_one():
    X = CPTensor.random((5, 6, 7), 1, seed=0, weights=torch.tensor([2.5], dtype=torch.float64))
    assert s_norm(X, 1e-12) == pytest.approx(2.5, rel=1e-12)


@pytest.mark.parametrize("init", ["1", "mean"])
def test_orthogonal_components(init):
    X = _orthogonal_cp([5.0, 3.0, 1.0])
    assert s_norm(X, 1e-12, init=init) == pytest.approx(5.0, rel=1e-8)


def test_two_modes_is_spectral_norm():
    weights = torch.tensor([4.0, 2.0, 1.0, 0.5], dtype=torch.float64)
    X = CPTensor.random((6, 5), 4, seed=3, weights=weights)
    expected = float(torch.linalg.matrix_norm(X.full(), ord=2))
    assert s_norm(X, 1e-14, maxit=5000, init="mean") == pytest.approx(expected, rel=1e-5)


def test_scales_linearly(cp3):
    base = s_norm(cp3, 1e-12, maxit=5000)
    assert s_norm(3 * cp3, 1e-12, maxit=5000) == pytest.approx(3 * base, rel=1e-6)


def test_bounded_by_frobenius_norm(cp3):
    assert s_norm(cp3, 1e-10) <= cp3.norm() + 1e-10


def test_zero_tensor():
    X = _orthogonal_cp([0.0, 0.0])
    with warnings.catch_warnings():
        warnings.simplefilter("error", NonConvergenceWarning)
        assert s_norm(X, 1e-8) == 0.0


def test_rank_zero_tensor_from_id():
    g = torch.Generator().manual_seed(0)
    factors = [torch.randn((4, 3), generator=g, dtype=torch.float64) for _ in range(2)]
    X = CPTensor(torch.zeros(3, dtype=torch.float64), factors)
    Xk = gaussian_tensor_id(X, 2, 3, seed=0)
    assert Xk.rank == 0
    assert s_norm(Xk, 1e-8) == 0.0
    assert s_norm(Xk, 1e-8, return_n_iter=True) == (0.0, 0)


def test_vanished_contraction_on_nonzero_tensor_warns():
    X = _orthogonal_cp([0.0, 3.0, 1.0], shape=(4, 5))
    with pytest.warns(NonConvergenceWarning):
        lam = s_norm(X, 1e-10, init="1")
    assert lam == 0.0


def test_mean_init_recovers_from_zero_first_component():
    X = _orthogonal_cp([0.0, 3.0, 1.0], shape=(4, 5))
    with warnings.catch_warnings():
        warnings.simplefilter("error", NonConvergenceWarning)
        lam = s_norm(X, 1e-12, init="mean")
    assert lam == pytest.approx(3.0, rel=1e-8)


def test_warns_when_not_converged(cp3):
    with pytest.warns(NonConvergenceWarning):
        lam = s_norm(cp3, 0.0, maxit=1)
    assert lam > 0


def test_return_n_iter():
    X = _orthogonal_cp([5.0, 3.0, 1.0])
    lam, n_iter = s_norm(X, 1e-12, return_n_iter=True)
    assert lam == pytest.approx(5.0)
    assert 1 <= n_iter <= 3


def test_verbose_logging(caplog):
    X = _orthogonal_cp([5.0, 3.0, 1.0])
    with caplog.at_level(logging.INFO, logger="tensor_id.s_norm"):
        s_norm(X, 1e-12, verbosity=2)
    assert "Finished iteration 1" in caplog.text
    assert "Finished computing s-norm" in caplog.text


def test_does_not_modify_input(cp3):
    before = cp3.copy()
    s_norm(cp3, 1e-8, init="mean")
    for U, V in zip(cp3.factors, before.factors):
        assert torch.equal(U, V)


@pytest.mark.parametrize(
    "kwargs", [{"init": "2"}, {"tol": -1.0}, {"maxit": 0}]
)
def test_invalid_arguments(cp3, kwargs):
    params = {"tol": 1e-8}
    params.update(kwargs)
    with pytest.raises(InvalidArgument):
        s_norm(cp3, **params)
