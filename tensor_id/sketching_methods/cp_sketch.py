from typing import Optional

import torch

from tensor_id.drm import DRM, GaussianDRM
from tensor_id.tensor import CPTensor
from tensor_id.utils import Seed, check_positive_int, make_generator, nonzero_rows, spawn_seeds


def sketch_psi_cp(
    drm: DRM,
    l: int,
    *,
    tensor: CPTensor,
    mu: int,
    generator: torch.Generator,
) -> torch.Tensor:
    """Sketch of the factor matrix of mode ``mu``, shape ``(l, tensor.rank)``."""
    cp_core = tensor.factors[mu]
    active = None if drm.full_random else nonzero_rows(cp_core)
    return drm.apply(cp_core, l, generator=generator, active=active)


def sketch_cp(
    tensor: CPTensor,
    l: int,
    drm: Optional[DRM] = None,
    seed: Seed = None,
) -> torch.Tensor:
    r"""Projection :math:`Y = \mathrm{diag}(\lambda)`-scaled Hadamard product of
    :math:`G_n U_n` over all modes, of shape ``(l, tensor.rank)``.

    Each mode draws a fresh sketch from its own generator; the per-mode seeds
    are derived from ``seed``, so a fixed seed gives a reproducible ``Y``
    regardless of mode order.
    """
    l = check_positive_int(l, "sketch dimension l")
    if drm is None:
        drm = GaussianDRM(dtype=tensor.dtype)
    seeds = spawn_seeds(seed, tensor.ndim)
    Y = torch.ones((l, tensor.rank), dtype=tensor.dtype)
    for mu in range(tensor.ndim):
        Y = Y * sketch_psi_cp(
            drm, l, tensor=tensor, mu=mu, generator=make_generator(seeds[mu])
        )
    return Y * tensor.weights[None, :]
