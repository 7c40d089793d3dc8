"""Randomized interpolative decompositions of matrices and CP tensors."""
from tensor_id.drm import DRM, CountSketchDRM, GaussianDRM, SRTTDRM, get_drm
from tensor_id.errors import (
    InvalidArgument,
    NonConvergenceWarning,
    NumericalInstability,
    TensorIDError,
)
from tensor_id.interpolative import (
    IDResult,
    assemble_cp_id,
    assemble_matrix_id,
    countsketch_matrix_id,
    deterministic_matrix_id,
    gaussian_matrix_id,
    gaussian_tensor_id,
    id_error,
    interpolative_decomposition,
    randomized_id,
    sketched_matrix_id,
    sketched_tensor_id,
    srtt_matrix_id,
)
from tensor_id.s_norm import s_norm
from tensor_id.sketching_methods import sketch_cp, sketch_matrix
from tensor_id.tensor import CPTensor

__version__ = "0.1.0"
