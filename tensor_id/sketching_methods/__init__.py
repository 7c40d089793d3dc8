r"""Sketched projections of CP tensors and plain matrices.

Each method turns its input into the small matrix :math:`Y` whose columns
span, approximately, the column space of the input. Only :math:`Y` is handed
to the rank-revealing factorization, so its size is independent of the
ambient dimensions of the input.
"""
from tensor_id.sketching_methods.cp_sketch import sketch_cp
from tensor_id.sketching_methods.matrix_sketch import sketch_matrix

__all__ = ["sketch_cp", "sketch_matrix"]
