from typing import Optional

import torch

from tensor_id.drm import DRM, GaussianDRM
from tensor_id.errors import InvalidArgument
from tensor_id.utils import Seed, check_positive_int, make_generator, nonzero_rows, spawn_seeds


def sketch_matrix(
    A: torch.Tensor,
    l: int,
    drm: Optional[DRM] = None,
    seed: Seed = None,
) -> torch.Tensor:
    """Projection ``Y = G @ A`` of shape ``(l, A.shape[1])``.

    ``A`` may be dense or a torch sparse COO matrix.
    """
    l = check_positive_int(l, "sketch dimension l")
    if A.ndim != 2:
        raise InvalidArgument(f"expected a matrix, got shape {tuple(A.shape)}")
    if drm is None:
        drm = GaussianDRM(dtype=A.dtype)
    active = None if drm.full_random else nonzero_rows(A)
    generator = make_generator(spawn_seeds(seed, 1)[0])
    return drm.apply(A, l, generator=generator, active=active)
