"""Flat binary matrix files shared with an external native ID implementation.

Layout: two little-endian ``int64`` values ``(rows, cols)`` followed by
``rows * cols`` little-endian ``float64`` values, column-major (``order="F"``,
the default) or row-major (``order="C"``).
"""
import logging
import os
from typing import Union

import numpy as np
import torch

from tensor_id.errors import InvalidArgument
from tensor_id.interpolative import IDResult

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

_HEADER = np.dtype("<i8")
_VALUE = np.dtype("<f8")


def _check_order(order: str) -> str:
    if order not in ("C", "F"):
        raise InvalidArgument(f"order must be 'C' or 'F', got {order!r}")
    return order


def save_matrix_to_file(A, path: PathLike, order: str = "F", verbosity: int = 0) -> None:
    """Write the matrix ``A`` (torch, sparse torch or numpy) to ``path``."""
    order = _check_order(order)
    if isinstance(A, torch.Tensor):
        if A.is_sparse:
            A = A.to_dense()
        A = A.detach().cpu().numpy()
    A = np.asarray(A, dtype=_VALUE)
    if A.ndim != 2:
        raise InvalidArgument(f"expected a matrix, got shape {A.shape}")
    with open(path, "wb") as f:
        f.write(np.array(A.shape, dtype=_HEADER).tobytes())
        f.write(A.tobytes(order=order))
    if verbosity > 0:
        logger.info("Wrote %d x %d matrix to %s", A.shape[0], A.shape[1], path)


def load_matrix_from_file(path: PathLike, order: str = "F") -> torch.Tensor:
    """Read a matrix written by ``save_matrix_to_file`` (or the native tool)."""
    order = _check_order(order)
    with open(path, "rb") as f:
        raw = f.read(2 * _HEADER.itemsize)
        if len(raw) != 2 * _HEADER.itemsize:
            raise InvalidArgument(f"{path}: truncated header")
        rows, cols = (int(v) for v in np.frombuffer(raw, dtype=_HEADER))
        raw = f.read()
    if len(raw) % _VALUE.itemsize:
        raise InvalidArgument(f"{path}: trailing partial value")
    data = np.frombuffer(raw, dtype=_VALUE)
    if rows < 0 or cols < 0 or data.shape[0] != rows * cols:
        raise InvalidArgument(
            f"{path}: header says {rows} x {cols}, found {data.shape[0]} values"
        )
    return torch.from_numpy(data.reshape((rows, cols), order=order).copy())


def load_external_id(p_path: PathLike, j_path: PathLike, order: str = "F") -> IDResult:
    """Read an ID ``(J, P)`` computed by the native tool.

    ``P`` is a ``k x n`` matrix file; ``J`` is a matrix file holding ``k``
    one-based column indices.
    """
    P = load_matrix_from_file(p_path, order=order)
    J = load_matrix_from_file(j_path, order=order).reshape(-1)
    J = torch.round(J).to(torch.int64) - 1
    if J.numel() != P.shape[0]:
        raise InvalidArgument(
            f"J has {J.numel()} entries but P has {P.shape[0]} rows"
        )
    return IDResult(J, P, requested_rank=J.numel())
