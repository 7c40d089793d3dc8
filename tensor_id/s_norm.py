"""s-norm of a CP tensor by alternating power iteration.

The s-norm is the magnitude of the best rank-one approximation of the tensor.
The iteration follows [Bi15] and never forms the full tensor: every update
only needs the inner products ``U_n^T a_n`` of the factor matrices with the
current rank-one estimate.

[Bi15] D. J. Biagioni, D. Beylkin, G. Beylkin. Randomized interpolative
decomposition of separated representations. J. Comput. Phys. 281, 2015.
"""
import logging
import warnings

import torch

from tensor_id.errors import InvalidArgument, NonConvergenceWarning
from tensor_id.tensor import CPTensor
from tensor_id.utils import check_positive_int

logger = logging.getLogger(__name__)

INITS = ("1", "mean")


def _initial_vectors(tensor: CPTensor, init: str):
    if init == "1":
        return [U[:, 0].clone() for U in tensor.factors]
    return [U.mean(dim=1) for U in tensor.factors]


def s_norm(
    tensor: CPTensor,
    tol: float,
    maxit: int = 1000,
    init: str = "1",
    verbosity: int = 0,
    return_n_iter: bool = False,
):
    """Estimate the s-norm of ``tensor``.

    Parameters
    ----------
    tensor : CPTensor
    tol : float
        Stop once a full sweep changes the estimate by less than ``tol``.
    maxit : int
        Maximum number of sweeps. Hitting it issues a
        ``NonConvergenceWarning`` and returns the last estimate. So does a
        contraction that vanishes on a nonzero tensor, which returns 0.
    init : {"1", "mean"}
        Start from the first column of every factor matrix, or from the mean
        of its columns.
    verbosity : int
        0 is silent, 1 logs the result, 2 also logs every sweep.
    return_n_iter : bool
        Also return the number of sweeps used.
    """
    if init not in INITS:
        raise InvalidArgument(f"init must be one of {INITS}, got {init!r}")
    if tol < 0:
        raise InvalidArgument(f"tol must be non-negative, got {tol}")
    maxit = check_positive_int(maxit, "maxit")

    if tensor.rank == 0:
        if verbosity > 0:
            logger.info("Tensor has rank 0, s-norm is 0")
        return (0.0, 0) if return_n_iter else 0.0

    N = tensor.ndim
    weights = tensor.weights
    factors = tensor.factors
    A = _initial_vectors(tensor, init)
    lam = float(weights[0])

    # ip[:, n] holds U_n^T a_n; column 0 is refreshed before it is first read
    ip = torch.ones((tensor.rank, N), dtype=tensor.dtype)
    for n in range(1, N):
        ip[:, n] = factors[n].T @ A[n]

    converged = False
    stalled = False
    it = 0
    for it in range(1, maxit + 1):
        lam_old = lam
        for n in range(N):
            others = torch.cat((ip[:, :n], ip[:, n + 1 :]), dim=1)
            a = factors[n] @ (weights * torch.prod(others, dim=1))
            lam = float(torch.linalg.norm(a))
            if lam == 0:
                break
            A[n] = a / lam
            ip[:, n] = factors[n].T @ A[n]
        if verbosity > 1:
            logger.info("Finished iteration %d. Current lambda is %.6e.", it, lam)
        if lam == 0:
            # only a zero tensor has a vanishing contraction at its maximum
            converged = not tensor.norm() > 0
            stalled = not converged
            break
        if abs(lam_old - lam) < tol:
            converged = True
            break

    if stalled:
        warnings.warn(
            f"rank-one contraction vanished at iteration {it} on a nonzero "
            "tensor; try another init",
            NonConvergenceWarning,
            stacklevel=2,
        )
    elif not converged:
        warnings.warn(
            f"s-norm iteration did not reach tol = {tol} within {maxit} "
            f"iterations; last estimate {lam:.6e}",
            NonConvergenceWarning,
            stacklevel=2,
        )
    if verbosity > 0:
        logger.info(
            "Finished computing s-norm: %.6e. Iterations required: %d", lam, it
        )
    if return_n_iter:
        return lam, it
    return lam
