import pytest
import torch

from tensor_id.tensor import CPTensor


@pytest.fixture
def cp3():
    """Random 3-mode CP tensor of rank 6 with decaying weights."""
    weights = torch.tensor([8.0, 4.0, 2.0, 1.0, 0.5, 0.25], dtype=torch.float64)
    return CPTensor.random((7, 8, 9), 6, seed=179, weights=weights)


@pytest.fixture
def low_rank_matrix():
    """50 x 30 matrix of exact rank 5."""
    g = torch.Generator().manual_seed(5)
    B = torch.randn((50, 5), generator=g, dtype=torch.float64)
    C = torch.randn((5, 30), generator=g, dtype=torch.float64)
    return B @ C
