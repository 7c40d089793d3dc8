"""Rank-revealing QR factorizations of small dense matrices.

Both factorizations return ``(Q, R, perm)`` with ``A[:, perm] = Q @ R``.
Column-pivoted QR comes from LAPACK through scipy. Strong RRQR [Gu96] starts
from it and swaps leading and trailing columns until every entry of
``R11^{-1} R12`` and every ratio ``gamma_j / omega_i`` is at most ``f``.

[Gu96] M. Gu and S. C. Eisenstat. Efficient algorithms for computing a strong
rank-revealing QR factorization. SIAM J. Sci. Comput. 17(4), 1996.
"""
import logging
from typing import Optional, Tuple

import scipy.linalg
import torch

from tensor_id.errors import InvalidArgument, NumericalInstability
from tensor_id.utils import check_positive_int

logger = logging.getLogger(__name__)

QRResult = Tuple[torch.Tensor, torch.Tensor, torch.Tensor]


def pivoted_qr(A: torch.Tensor) -> QRResult:
    """Economic QR with column pivoting; ``|diag(R)|`` is non-increasing."""
    Q, R, perm = scipy.linalg.qr(
        A.detach().cpu().numpy(), mode="economic", pivoting=True
    )
    return (
        torch.from_numpy(Q).to(A.dtype),
        torch.from_numpy(R).to(A.dtype),
        torch.from_numpy(perm).to(torch.int64),
    )


def numerical_rank(R: torch.Tensor) -> int:
    """Rank with the usual SVD threshold ``max(m, n) * eps * sigma_max``."""
    if R.numel() == 0:
        return 0
    return int(torch.linalg.matrix_rank(R))


def leading_block_is_singular(R: torch.Tensor, k: int) -> bool:
    """Whether ``R[:k, :k]`` is numerically singular relative to ``R[0, 0]``."""
    if k == 0:
        return False
    diag = torch.abs(torch.diagonal(R[:k, :k]))
    scale = torch.abs(R[0, 0])
    tol = max(R.shape) * torch.finfo(R.dtype).eps * scale
    return bool(scale == 0 or diag.min() <= tol)


def strong_rrqr(
    A: torch.Tensor,
    k: int,
    f: float = 2.0,
    max_swaps: Optional[int] = None,
) -> QRResult:
    """Strong rank-revealing QR of ``A`` for target rank ``k``.

    Raises ``NumericalInstability`` if the leading ``k x k`` block is singular,
    i.e. ``A`` has numerical rank below ``k``.
    """
    k = check_positive_int(k, "rank k")
    if f < 1:
        raise InvalidArgument(f"f must be at least 1, got {f}")
    m, n = A.shape
    if k > min(m, n):
        raise InvalidArgument(f"rank k = {k} exceeds min(m, n) = {min(m, n)}")
    if max_swaps is None:
        max_swaps = 10 * n

    Q, R, perm = pivoted_qr(A)
    rank = numerical_rank(R)
    if rank < k or leading_block_is_singular(R, k):
        raise NumericalInstability(
            f"matrix has numerical rank {rank} < {k}; strong RRQR needs a "
            "nonsingular leading block",
            rank=rank,
        )
    if k == n:
        return Q, R, perm

    n_swaps = 0
    while True:
        R11 = R[:k, :k]
        AB = torch.linalg.solve_triangular(R11, R[:k, k:], upper=True)
        # gamma: column norms of R22; omega: inverse row norms of R11^{-1}
        gamma = torch.linalg.norm(R[k:, k:], dim=0)
        if gamma.numel() == 0:
            gamma = torch.zeros(n - k, dtype=R.dtype)
        R11_inv = torch.linalg.solve_triangular(
            R11, torch.eye(k, dtype=R.dtype), upper=True
        )
        omega = 1 / torch.linalg.norm(R11_inv, dim=1)

        score = AB**2 + (gamma[None, :] / omega[:, None]) ** 2
        flat = int(torch.argmax(score))
        i, j = divmod(flat, n - k)
        if score[i, j] <= f * f:
            break
        if n_swaps >= max_swaps:
            logger.warning(
                "strong RRQR stopped after %d swaps with max ratio %.3e > f = %g",
                n_swaps,
                float(score[i, j].sqrt()),
                f,
            )
            break

        # Each swap grows |det(R11)| by more than f, so this terminates.
        perm[[i, k + j]] = perm[[k + j, i]]
        Q, R = torch.linalg.qr(A[:, perm])
        n_swaps += 1

    logger.debug("strong RRQR finished after %d swaps", n_swaps)
    return Q, R, perm
