"""Randomized interpolative decompositions of matrices and CP tensors.

The pipeline is sketch -> extract -> assemble:

1. build a small projection ``Y`` of the input (``sketching_methods``);
2. compute a rank-``k`` column ID ``Y ~ Y[:, J] @ P`` with a rank-revealing
   QR (``interpolative_decomposition``);
3. map ``(J, P)`` back onto the input (``assemble_cp_id`` and
   ``assemble_matrix_id``).

For a CP tensor this is Algorithm 3 of [Bi15]; for matrices it is the
randomized ID of [Ma11] with a choice of sketch.

[Bi15] D. J. Biagioni, D. Beylkin, G. Beylkin. Randomized interpolative
decomposition of separated representations. J. Comput. Phys. 281, 2015.

[Ma11] P. G. Martinsson, V. Rokhlin, M. Tygert. A randomized algorithm for
the decomposition of matrices. Appl. Comput. Harmon. Anal. 30, 2011.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import torch
from tensorly.cp_tensor import CPTensor as TLCPTensor

from tensor_id.drm import DRM, CountSketchDRM, GaussianDRM, SRTTDRM, get_drm
from tensor_id.errors import InvalidArgument, NumericalInstability
from tensor_id.rrqr import leading_block_is_singular, numerical_rank, pivoted_qr, strong_rrqr
from tensor_id.sketching_methods import sketch_cp, sketch_matrix
from tensor_id.tensor import CPTensor
from tensor_id.utils import (
    Seed,
    as_float,
    as_index_tensor,
    check_index_set,
    check_positive_int,
    random_unit_vectors,
)

logger = logging.getLogger(__name__)

QR_TYPES = ("qr", "srrqr")


@dataclass
class IDResult:
    """Column ID ``Y ~ Y[:, J] @ P``.

    ``J`` holds ``rank`` distinct column indices and ``P`` has shape
    ``(rank, n_cols)``. ``rank`` can be smaller than ``requested_rank`` when
    the sketch was numerically rank deficient.
    """

    #: Selected column indices
    J: torch.Tensor

    #: Interpolation matrix
    P: torch.Tensor

    #: The rank asked for by the caller
    requested_rank: int

    def __post_init__(self):
        self.J = as_index_tensor(self.J)
        if self.P.ndim != 2 or self.P.shape[0] != self.J.numel():
            raise InvalidArgument(
                f"P must have {self.J.numel()} rows, got shape {tuple(self.P.shape)}"
            )

    @property
    def rank(self) -> int:
        return self.J.numel()

    @property
    def clamped(self) -> bool:
        return self.rank < self.requested_rank

    def reconstruct(self, Y: torch.Tensor) -> torch.Tensor:
        """``Y[:, J] @ P``."""
        return Y[:, self.J] @ self.P.to(Y.dtype)


def _interpolation_matrix(R: torch.Tensor, perm: torch.Tensor, k: int) -> torch.Tensor:
    """``[I_k | R11^{-1} R12]`` with its columns put back in input order."""
    n = R.shape[1]
    if k == 0:
        return torch.zeros((0, n), dtype=R.dtype)
    T = torch.linalg.solve_triangular(R[:k, :k], R[:k, k:], upper=True)
    if not bool(torch.isfinite(T).all()):
        raise NumericalInstability(
            f"interpolation coefficients are not finite at rank {k}", rank=k
        )
    P_perm = torch.cat((torch.eye(k, dtype=R.dtype), T), dim=1)
    P = torch.empty_like(P_perm)
    P[:, perm] = P_perm
    return P


def _id_pivoted_qr(Y: torch.Tensor, k: int) -> IDResult:
    _, R, perm = pivoted_qr(Y)
    rank = min(k, numerical_rank(R))
    if rank < k:
        logger.warning(
            "sketch has numerical rank %d < %d, returning a rank-%d ID",
            rank,
            k,
            rank,
        )
    if leading_block_is_singular(R, rank):
        raise NumericalInstability(
            f"leading {rank} x {rank} block of R is near singular", rank=rank
        )
    P = _interpolation_matrix(R, perm, rank)
    return IDResult(perm[:rank].clone(), P, requested_rank=k)


def _id_strong_rrqr(Y: torch.Tensor, k: int, f: float) -> IDResult:
    if k > Y.shape[1]:
        raise InvalidArgument(
            f"rank k = {k} exceeds the number of columns {Y.shape[1]}"
        )
    _, R, perm = strong_rrqr(Y, k, f=f)
    P = _interpolation_matrix(R, perm, k)
    return IDResult(perm[:k].clone(), P, requested_rank=k)


def interpolative_decomposition(
    Y: torch.Tensor, k: int, qr_type: str = "qr", f: float = 2.0
) -> IDResult:
    """Rank-``k`` column ID of the (sketched) matrix ``Y``.

    ``qr_type="qr"`` uses column-pivoted QR and silently lowers the rank to
    ``rank(R)`` when ``Y`` is rank deficient. ``qr_type="srrqr"`` uses strong
    RRQR with parameter ``f``, which bounds every entry of ``P`` by ``f`` but
    raises ``NumericalInstability`` on a rank-deficient ``Y``.
    """
    k = check_positive_int(k, "rank k")
    if Y.ndim != 2:
        raise InvalidArgument(f"expected a matrix, got shape {tuple(Y.shape)}")
    if k > Y.shape[0]:
        raise InvalidArgument(
            f"rank k = {k} exceeds the sketch dimension l = {Y.shape[0]}"
        )
    if qr_type == "qr":
        return _id_pivoted_qr(Y, k)
    elif qr_type == "srrqr":
        return _id_strong_rrqr(Y, k, f)
    raise InvalidArgument(f"unknown qr_type {qr_type!r}, expected one of {QR_TYPES}")


def assemble_cp_id(tensor: CPTensor, result: IDResult) -> CPTensor:
    """Rank-``result.rank`` CP tensor built from the selected components.

    Factors are copies of ``U_n[:, J]``; weights are
    ``lambda[J] * P.sum(dim=1)``.
    """
    J = result.J
    check_index_set(J, tensor.rank)
    if result.P.shape[1] != tensor.rank:
        raise InvalidArgument(
            f"P has {result.P.shape[1]} columns, tensor has rank {tensor.rank}"
        )
    factors = [U[:, J].clone() for U in tensor.factors]
    alpha = tensor.weights[J] * result.P.to(tensor.dtype).sum(dim=1)
    return CPTensor(alpha, factors)


def assemble_matrix_id(
    A: torch.Tensor, result: IDResult
) -> Tuple[torch.Tensor, torch.Tensor]:
    """``(A[:, J], P)``, so that ``A ~ A[:, J] @ P``."""
    check_index_set(result.J, A.shape[1])
    if A.is_sparse:
        C = torch.index_select(A, 1, result.J)
    else:
        C = A[:, result.J].clone()
    return C, result.P


def _check_ranks(k: int, l: int, n_cols: int, qr_type: str) -> Tuple[int, int]:
    """Contract checks that can be made before sketching."""
    k = check_positive_int(k, "rank k")
    l = check_positive_int(l, "sketch dimension l")
    if k > l:
        raise InvalidArgument(f"need l >= k, got k = {k} and l = {l}")
    if qr_type not in QR_TYPES:
        raise InvalidArgument(f"unknown qr_type {qr_type!r}, expected one of {QR_TYPES}")
    # pivoted QR clamps the rank instead
    if qr_type == "srrqr" and k > n_cols:
        raise InvalidArgument(f"rank k = {k} exceeds the number of columns {n_cols}")
    return k, l


def _as_matrix(A) -> torch.Tensor:
    if not isinstance(A, torch.Tensor):
        raise InvalidArgument(f"expected a torch tensor, got {type(A).__name__}")
    if A.ndim != 2:
        raise InvalidArgument(f"expected a matrix, got shape {tuple(A.shape)}")
    return as_float(A)


def _as_cp(X) -> CPTensor:
    if isinstance(X, CPTensor):
        return X
    if isinstance(X, (TLCPTensor, tuple)):
        return CPTensor.from_tensorly(X)
    raise InvalidArgument(f"expected a CP tensor, got {type(X).__name__}")


def sketched_tensor_id(
    X: Union[CPTensor, TLCPTensor],
    k: int,
    l: int,
    qr_type: str = "qr",
    drm: Optional[DRM] = None,
    seed: Seed = None,
    f: float = 2.0,
    return_id: bool = False,
):
    """Rank-``k`` tensor ID of the CP tensor ``X`` with oversampling ``l - k``.

    Returns a new ``CPTensor`` (and the ``IDResult`` if ``return_id``).
    """
    X = _as_cp(X)
    k, l = _check_ranks(k, l, X.rank, qr_type)
    Y = sketch_cp(X, l, drm=drm, seed=seed)
    result = interpolative_decomposition(Y, k, qr_type=qr_type, f=f)
    Xk = assemble_cp_id(X, result)
    logger.debug(
        "tensor ID of %r: kept %d of %d components", X, result.rank, X.rank
    )
    if return_id:
        return Xk, result
    return Xk


def gaussian_tensor_id(
    X: Union[CPTensor, TLCPTensor],
    k: int,
    l: int,
    qr_type: str = "qr",
    full_random: bool = True,
    seed: Seed = None,
    f: float = 2.0,
    return_id: bool = False,
):
    """Gaussian tensor ID [Bi15, Alg. 3].

    With ``full_random=False`` only the sketch columns that meet nonzero rows
    of the factor matrices are drawn, which is faster for very sparse
    factors.
    """
    drm = GaussianDRM(full_random=full_random, dtype=_as_cp(X).dtype)
    return sketched_tensor_id(
        X, k, l, qr_type=qr_type, drm=drm, seed=seed, f=f, return_id=return_id
    )


def sketched_matrix_id(
    A: torch.Tensor,
    k: int,
    l: int,
    qr_type: str = "qr",
    drm: Optional[DRM] = None,
    seed: Seed = None,
    f: float = 2.0,
) -> IDResult:
    """Rank-``k`` column ID ``A ~ A[:, J] @ P`` computed from the sketch ``G @ A``."""
    A = _as_matrix(A)
    k, l = _check_ranks(k, l, A.shape[1], qr_type)
    Y = sketch_matrix(A, l, drm=drm, seed=seed)
    return interpolative_decomposition(Y, k, qr_type=qr_type, f=f)


def gaussian_matrix_id(A, k, l, qr_type="qr", full_random=True, seed=None, f=2.0):
    A = _as_matrix(A)
    drm = GaussianDRM(full_random=full_random, dtype=A.dtype)
    return sketched_matrix_id(A, k, l, qr_type=qr_type, drm=drm, seed=seed, f=f)


def countsketch_matrix_id(A, k, l, qr_type="qr", seed=None, f=2.0):
    A = _as_matrix(A)
    drm = CountSketchDRM(dtype=A.dtype)
    return sketched_matrix_id(A, k, l, qr_type=qr_type, drm=drm, seed=seed, f=f)


def srtt_matrix_id(A, k, l, qr_type="qr", seed=None, f=2.0):
    A = _as_matrix(A)
    drm = SRTTDRM(dtype=A.dtype)
    return sketched_matrix_id(A, k, l, qr_type=qr_type, drm=drm, seed=seed, f=f)


def deterministic_matrix_id(A: torch.Tensor, k: int, qr_type: str = "qr", f: float = 2.0) -> IDResult:
    """Column ID of ``A`` itself, without sketching. ``A`` is densified."""
    A = _as_matrix(A)
    if A.is_sparse:
        A = A.to_dense()
    return interpolative_decomposition(A, k, qr_type=qr_type, f=f)


def randomized_id(X, k, l, qr_type="qr", sketch="gaussian", full_random=True, seed=None, f=2.0):
    """Sketched ID returning the same representation class as the input.

    A CP tensor gives a CP tensor; a matrix gives ``(A[:, J], P)``.
    """
    if isinstance(X, torch.Tensor):
        X = _as_matrix(X)
        drm = get_drm(sketch, full_random=full_random, dtype=X.dtype)
        result = sketched_matrix_id(X, k, l, qr_type=qr_type, drm=drm, seed=seed, f=f)
        return assemble_matrix_id(X, result)
    X = _as_cp(X)
    drm = get_drm(sketch, full_random=full_random, dtype=X.dtype)
    return sketched_tensor_id(X, k, l, qr_type=qr_type, drm=drm, seed=seed, f=f)


def id_error(
    A: torch.Tensor,
    result: IDResult,
    n_vectors: int = 18,
    seed: Optional[int] = None,
) -> float:
    """Estimate of ``||A - A[:, J] @ P||_2``.

    The maximum of ``||A x - A[:, J] (P x)||`` over ``n_vectors`` random unit
    vectors ``x``.
    """
    n_vectors = check_positive_int(n_vectors, "n_vectors")
    A = _as_matrix(A)
    C, P = assemble_matrix_id(A, result)
    X = random_unit_vectors(A.shape[1], n_vectors, seed=seed, dtype=A.dtype)
    if A.is_sparse:
        AX = torch.sparse.mm(A, X)
        CPX = torch.sparse.mm(C, P.to(A.dtype) @ X)
    else:
        AX = A @ X
        CPX = C @ (P.to(A.dtype) @ X)
    return float(torch.linalg.norm(AX - CPX, dim=0).max())
