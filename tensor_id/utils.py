"""Small helpers shared across the package: seeding, sampling, checks."""
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import torch
from numpy.random import SeedSequence

from tensor_id.errors import InvalidArgument

ArrayList = List[torch.Tensor]
Seed = Optional[Union[int, SeedSequence]]

DEFAULT_DTYPE = torch.float64


def spawn_seeds(seed: Seed, n: int) -> List[int]:
    """Derive ``n`` independent integer seeds from ``seed``.

    ``seed=None`` draws fresh entropy, so repeated calls give independent
    streams. The same integer seed always gives the same list.
    """
    seq = seed if isinstance(seed, SeedSequence) else SeedSequence(seed)
    return [int(s) for s in seq.generate_state(n)]


def make_generator(seed: Optional[int] = None) -> torch.Generator:
    """A fresh CPU generator; never touches torch's global RNG state."""
    generator = torch.Generator()
    if seed is None:
        seed = spawn_seeds(None, 1)[0]
    generator.manual_seed(int(seed))
    return generator


def random_normal(
    shape: Tuple[int, ...],
    generator: Optional[torch.Generator] = None,
    seed: Optional[int] = None,
    dtype: torch.dtype = DEFAULT_DTYPE,
) -> torch.Tensor:
    """Standard normal samples of the given shape."""
    if generator is None:
        generator = make_generator(seed)
    return torch.randn(shape, generator=generator, dtype=dtype)


def random_unit_vectors(
    dim: int, count: int, seed: Optional[int] = None, dtype=DEFAULT_DTYPE
) -> torch.Tensor:
    """``count`` Gaussian vectors of length ``dim`` normalized to unit 2-norm,
    stacked as columns."""
    X = random_normal((dim, count), seed=seed, dtype=dtype)
    return X / torch.linalg.norm(X, dim=0, keepdim=True)


def as_float(X) -> torch.Tensor:
    """``X`` as a tensor, with integer and boolean input promoted to ``DEFAULT_DTYPE``."""
    X = torch.as_tensor(X)
    if X.is_floating_point() or X.is_complex():
        return X
    return X.to(DEFAULT_DTYPE)


def check_positive_int(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise InvalidArgument(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise InvalidArgument(f"{name} must be positive, got {value}")
    return int(value)


def as_index_tensor(idx: Union[torch.Tensor, Sequence[int]]) -> torch.Tensor:
    if isinstance(idx, torch.Tensor):
        return idx.to(torch.int64).reshape(-1)
    return torch.as_tensor(np.asarray(idx, dtype=np.int64)).reshape(-1)


def check_index_set(J: torch.Tensor, n: int) -> None:
    """Indices must be distinct and lie in ``[0, n)``."""
    if J.numel() == 0:
        return
    if int(J.min()) < 0 or int(J.max()) >= n:
        raise InvalidArgument(f"indices must lie in [0, {n}), got {J.tolist()}")
    if torch.unique(J).numel() != J.numel():
        raise InvalidArgument(f"indices must be distinct, got {J.tolist()}")


def nonzero_rows(U: torch.Tensor) -> torch.Tensor:
    """Boolean mask of rows of ``U`` holding at least one nonzero entry."""
    if U.is_sparse:
        rows = U.coalesce().indices()[0]
        mask = torch.zeros(U.shape[0], dtype=torch.bool)
        mask[rows] = True
        return mask
    return torch.abs(U).sum(dim=1) != 0
