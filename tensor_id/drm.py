"""Dimension reduction maps (DRMs) used to sketch factor matrices.

A DRM draws a random ``(l, m)`` map and applies it to an ``(m, R)`` matrix.
``matrix`` returns the map explicitly, while ``apply`` computes the product,
possibly without ever forming the map. Both consume the generator in the same
order, so for equal seeds ``apply(U) == matrix(...) @ U``.

With ``full_random=False`` and an ``active`` mask, random entries are drawn
only for the active columns of the map; inactive columns are exactly zero.
For an all-true mask this reproduces the dense draw bit for bit.
"""
import math
from abc import ABC, abstractmethod
from typing import Dict, Optional, Type

import numpy as np
import scipy.fft
import torch

from tensor_id.errors import InvalidArgument
from tensor_id.utils import DEFAULT_DTYPE, check_positive_int


def _matmul(G: torch.Tensor, U: torch.Tensor) -> torch.Tensor:
    if U.is_sparse:
        return torch.sparse.mm(U.t().coalesce(), G.t()).t()
    return G @ U


class DRM(ABC):
    """Abstract base class for dimension reduction maps."""

    name: str

    def __init__(self, full_random: bool = True, dtype: torch.dtype = DEFAULT_DTYPE) -> None:
        self.full_random = full_random
        self.dtype = dtype

    def _active(self, active: Optional[torch.Tensor], m: int) -> Optional[torch.Tensor]:
        """Validated mask, or ``None`` when every column gets generated."""
        if active is None or self.full_random:
            return None
        active = torch.as_tensor(active, dtype=torch.bool).reshape(-1)
        if active.shape[0] != m:
            raise InvalidArgument(
                f"active mask has length {active.shape[0]}, expected {m}"
            )
        return active

    @staticmethod
    def _check_dims(l: int, m: int) -> None:
        check_positive_int(l, "sketch dimension l")
        check_positive_int(m, "input dimension m")

    @abstractmethod
    def matrix(
        self,
        l: int,
        m: int,
        *,
        generator: torch.Generator,
        active: Optional[torch.Tensor] = None,
    ) -> torch.Tensor:
        """Explicit ``(l, m)`` sketch matrix."""

    def apply(
        self,
        U: torch.Tensor,
        l: int,
        *,
        generator: torch.Generator,
        active: Optional[torch.Tensor] = None,
    ) -> torch.Tensor:
        """Sketch ``U`` of shape ``(m, R)`` down to shape ``(l, R)``."""
        G = self.matrix(l, U.shape[0], generator=generator, active=active)
        return _matmul(G.to(U.dtype), U)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(full_random={self.full_random})"


class GaussianDRM(DRM):
    """I.i.d. standard normal entries."""

    name = "gaussian"

    def matrix(self, l, m, *, generator, active=None):
        self._check_dims(l, m)
        active = self._active(active, m)
        if active is None:
            return torch.randn((l, m), generator=generator, dtype=self.dtype)
        G = torch.zeros((l, m), dtype=self.dtype)
        G[:, active] = torch.randn(
            (l, int(active.sum())), generator=generator, dtype=self.dtype
        )
        return G

    def apply(self, U, l, *, generator, active=None):
        self._check_dims(l, U.shape[0])
        mask = self._active(active, U.shape[0])
        if mask is None or U.is_sparse:
            return super().apply(U, l, generator=generator, active=active)
        # Only the active rows of U meet nonzero sketch columns.
        G = torch.randn((l, int(mask.sum())), generator=generator, dtype=self.dtype)
        return G.to(U.dtype) @ U[mask]


class CountSketchDRM(DRM):
    """CountSketch: every column has a single ``+-1`` in a uniformly random row.

    Applying it costs time proportional to the number of nonzeros of ``U``.
    """

    name = "countsketch"

    def _hash(self, l, m, generator, active):
        """Row index and sign per column; inactive columns get sign zero."""
        n_draw = m if active is None else int(active.sum())
        rows = torch.randint(0, l, (n_draw,), generator=generator)
        signs = torch.randint(0, 2, (n_draw,), generator=generator) * 2 - 1
        if active is None:
            return rows, signs
        rows_full = torch.zeros(m, dtype=torch.int64)
        signs_full = torch.zeros(m, dtype=torch.int64)
        rows_full[active] = rows
        signs_full[active] = signs
        return rows_full, signs_full

    def matrix(self, l, m, *, generator, active=None):
        self._check_dims(l, m)
        active = self._active(active, m)
        rows, signs = self._hash(l, m, generator, active)
        G = torch.zeros((l, m), dtype=self.dtype)
        G[rows, torch.arange(m)] = signs.to(self.dtype)
        return G

    def apply(self, U, l, *, generator, active=None):
        m = U.shape[0]
        self._check_dims(l, m)
        active = self._active(active, m)
        rows, signs = self._hash(l, m, generator, active)
        if U.is_sparse:
            U = U.coalesce()
            idx, vals = U.indices(), U.values()
            new_idx = torch.stack((rows[idx[0]], idx[1]))
            new_vals = vals * signs[idx[0]].to(vals.dtype)
            Y = torch.sparse_coo_tensor(new_idx, new_vals, (l, U.shape[1]))
            return Y.coalesce().to_dense()
        Y = torch.zeros((l, U.shape[1]), dtype=U.dtype)
        Y.index_add_(0, rows, U * signs.to(U.dtype)[:, None])
        return Y


class SRTTDRM(DRM):
    """Subsampled randomized trigonometric transform ``sqrt(m/l) * S C D``.

    ``D`` flips signs at random, ``C`` is the orthonormal DCT-II and ``S``
    keeps ``l`` of the ``m`` rows, drawn without replacement.
    """

    name = "srtt"

    def _draw(self, l, m, generator, active):
        if l > m:
            raise InvalidArgument(
                f"SRTT needs l <= m, got l = {l} and m = {m}"
            )
        n_draw = m if active is None else int(active.sum())
        signs = (torch.randint(0, 2, (n_draw,), generator=generator) * 2 - 1).to(
            self.dtype
        )
        if active is not None:
            signs_full = torch.zeros(m, dtype=self.dtype)
            signs_full[active] = signs
            signs = signs_full
        rows = torch.randperm(m, generator=generator)[:l]
        return signs, rows

    def matrix(self, l, m, *, generator, active=None):
        self._check_dims(l, m)
        active = self._active(active, m)
        signs, rows = self._draw(l, m, generator, active)
        C = torch.from_numpy(scipy.fft.dct(np.eye(m), norm="ortho", axis=0))
        return math.sqrt(m / l) * C[rows].to(self.dtype) * signs[None, :]

    def apply(self, U, l, *, generator, active=None):
        m = U.shape[0]
        self._check_dims(l, m)
        active = self._active(active, m)
        signs, rows = self._draw(l, m, generator, active)
        if U.is_sparse:
            U = U.to_dense()
        V = (U * signs.to(U.dtype)[:, None]).cpu().numpy()
        V = torch.from_numpy(scipy.fft.dct(V, norm="ortho", axis=0))
        return math.sqrt(m / l) * V[rows].to(U.dtype)


DRMS: Dict[str, Type[DRM]] = {
    cls.name: cls for cls in (GaussianDRM, CountSketchDRM, SRTTDRM)
}


def get_drm(name: str, full_random: bool = True, dtype: torch.dtype = DEFAULT_DTYPE) -> DRM:
    """Instantiate a DRM by name: ``gaussian``, ``countsketch`` or ``srtt``."""
    try:
        cls = DRMS[name.lower()]
    except (KeyError, AttributeError):
        raise InvalidArgument(
            f"unknown sketch {name!r}, expected one of {tuple(DRMS)}"
        ) from None
    return cls(full_random=full_random, dtype=dtype)
