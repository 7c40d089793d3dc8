"""CP tensors: a weight vector plus one factor matrix per mode."""
from __future__ import annotations

from typing import Optional, Sequence, Tuple, Union

import tensorly as tl
import torch
from tensorly.cp_tensor import CPTensor as TLCPTensor
from tensorly.cp_tensor import cp_norm, cp_to_tensor

from tensor_id.errors import InvalidArgument
from tensor_id.utils import DEFAULT_DTYPE, ArrayList, as_float, random_normal, spawn_seeds

tl.set_backend("pytorch")


class CPTensor:
    """Implements CP tensors.

    The tensor is ``sum_r weights[r] * U_0[:, r] o U_1[:, r] o ... o U_{N-1}[:, r]``.
    The factors are stored as a list of matrices of shape ``(shape[i], rank)``.
    Columns are conventionally unit-norm, but this is not enforced.
    """

    shape: Tuple[int, ...]
    rank: int
    weights: torch.Tensor
    factors: ArrayList

    def __init__(self, weights, factors: Sequence[torch.Tensor]) -> None:
        factors = [as_float(U) for U in factors]
        if len(factors) == 0:
            raise InvalidArgument("a CP tensor needs at least one factor matrix")
        for n, U in enumerate(factors):
            if U.ndim != 2:
                raise InvalidArgument(
                    f"factor {n} must be a matrix, got shape {tuple(U.shape)}"
                )
        rank = factors[0].shape[1]
        if any(U.shape[1] != rank for U in factors):
            raise InvalidArgument(
                "all factor matrices must have the same number of columns, got "
                f"{[U.shape[1] for U in factors]}"
            )
        weights = torch.as_tensor(weights, dtype=factors[0].dtype).reshape(-1)
        if weights.shape[0] != rank:
            raise InvalidArgument(
                f"weights have length {weights.shape[0]}, expected {rank}"
            )
        self.weights = weights
        self.factors = factors
        self.rank = rank
        self.shape = tuple(U.shape[0] for U in factors)

    @property
    def ndim(self) -> int:
        """Number of modes of the tensor."""
        return len(self.factors)

    @property
    def size(self) -> int:
        """Number of floating point elements used to store the tensor."""
        return self.weights.numel() + sum(U.numel() for U in self.factors)

    @property
    def dtype(self) -> torch.dtype:
        return self.factors[0].dtype

    def full(self) -> torch.Tensor:
        """Dense expansion of the tensor. Only sensible for small shapes."""
        return cp_to_tensor((self.weights, self.factors))

    def norm(self) -> float:
        """Frobenius norm, computed from the factors."""
        return float(cp_norm((self.weights, self.factors)))

    def dot(self, other: CPTensor) -> float:
        """Inner product of two CP tensors of the same shape."""
        if tuple(other.shape) != tuple(self.shape):
            raise InvalidArgument(
                f"shape mismatch: {self.shape} and {other.shape}"
            )
        gram = torch.outer(self.weights, other.weights.to(self.dtype))
        for U, V in zip(self.factors, other.factors):
            gram = gram * (U.T @ V.to(self.dtype))
        return float(gram.sum())

    def error(
        self, other: Union[CPTensor, torch.Tensor], relative: bool = False, fast: bool = False
    ) -> float:
        """L2 error between two tensors.

        If ``fast=True`` and ``other`` is a ``CPTensor``, the error is computed
        with the inner product formula, without forming either tensor. This is
        not numerically stable below relative errors of around 1e-8.
        """
        if isinstance(other, CPTensor):
            other_norm = other.norm()
            if fast:
                sq = self.norm() ** 2 + other_norm**2 - 2 * self.dot(other)
                error = abs(sq) ** 0.5
            else:
                error = float(torch.linalg.norm(self.full() - other.full()))
        else:
            other_norm = float(torch.linalg.norm(other))
            error = float(torch.linalg.norm(self.full() - other.to(self.dtype)))
        if relative:
            if other_norm == 0:
                return float("inf")
            error /= other_norm
        return error

    def gather(self, idx) -> torch.Tensor:
        """Obtain the values of the tensor at the given indices.

        ``idx`` holds one index array per mode."""
        res = self.weights
        for U, i in zip(self.factors, idx):
            res = res * U[torch.as_tensor(i)]
        return torch.sum(res, dim=-1)

    def copy(self) -> CPTensor:
        return self.__class__(
            self.weights.clone(), [U.clone() for U in self.factors]
        )

    def __getitem__(self, index: int) -> torch.Tensor:
        return self.factors[index]

    def __setitem__(self, index: int, data) -> None:
        data = as_float(data)
        if data.shape[1] != self.rank:
            raise InvalidArgument(
                f"factor must have {self.rank} columns, got {data.shape[1]}"
            )
        self.factors[index] = data
        self.shape = tuple(U.shape[0] for U in self.factors)

    def __add__(self, other: CPTensor) -> CPTensor:
        """Sum of two CP tensors, of rank ``self.rank + other.rank``."""
        if tuple(other.shape) != tuple(self.shape):
            raise InvalidArgument(
                f"shape mismatch: {self.shape} and {other.shape}"
            )
        weights = torch.cat((self.weights, other.weights.to(self.dtype)))
        factors = [
            torch.cat((U, V.to(self.dtype)), dim=1)
            for U, V in zip(self.factors, other.factors)
        ]
        return self.__class__(weights, factors)

    def __sub__(self, other: CPTensor) -> CPTensor:
        return self + (-other)

    def __mul__(self, other: float) -> CPTensor:
        return self.__class__(self.weights * other, list(self.factors))

    def __rmul__(self, other: float) -> CPTensor:
        return self.__mul__(other)

    def __truediv__(self, other: float) -> CPTensor:
        return self.__mul__(1 / other)

    def __neg__(self) -> CPTensor:
        return self * -1

    def __repr__(self) -> str:
        return (
            f"<CP tensor of shape {self.shape} and rank {self.rank} "
            f"at {hex(id(self))}>"
        )

    def to_tensorly(self) -> TLCPTensor:
        return TLCPTensor((self.weights, list(self.factors)))

    @classmethod
    def from_tensorly(cls, cp) -> CPTensor:
        """Build from a tensorly ``CPTensor`` or a ``(weights, factors)`` pair."""
        weights, factors = cp
        factors = [torch.as_tensor(U) for U in factors]
        if weights is None:
            weights = torch.ones(factors[0].shape[1], dtype=factors[0].dtype)
        return cls(weights, factors)

    @classmethod
    def random(
        cls,
        shape: Tuple[int, ...],
        rank: int,
        seed: Optional[int] = None,
        weights=None,
        dtype: torch.dtype = DEFAULT_DTYPE,
    ) -> CPTensor:
        """Gaussian factors with unit-norm columns.

        ``weights`` defaults to all ones."""
        d = len(shape)
        seeds = spawn_seeds(seed, d)
        factors = []
        for i in range(d):
            U = random_normal((shape[i], rank), seed=seeds[i], dtype=dtype)
            U /= torch.linalg.norm(U, dim=0, keepdim=True)
            factors.append(U)
        if weights is None:
            weights = torch.ones(rank, dtype=dtype)
        return cls(weights, factors)
