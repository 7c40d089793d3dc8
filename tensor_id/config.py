"""Configuration for the ID entry points and the experiment runner.

``DEFAULT_CONFIG`` holds every setting; ``load_config`` overrides it with the
contents of a YAML file.
"""
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

import yaml

from tensor_id.drm import DRMS
from tensor_id.errors import InvalidArgument
from tensor_id.interpolative import QR_TYPES
from tensor_id.s_norm import INITS

DEFAULT_CONFIG: Dict[str, Any] = {
    # interpolative decomposition
    "rank": 10,
    "sketch_dim": 20,
    "qr_type": "qr",
    "sketch": "gaussian",
    "full_random": True,
    "oversampling_factor": 2.0,
    "seed": None,
    # s-norm
    "tol": 1e-8,
    "maxit": 1000,
    "init": "1",
    "verbosity": 0,
    # experiments
    "experiment": "matrix",
    "sizes": [1000, 2000],
    "n_cols": 500,
    "density": 0.01,
    "n_trials": 2,
    "n_rand_norm_vec": 18,
    "methods": ["deterministic", "gaussian", "srtt", "countsketch"],
    "dense_limit": 2000,
    "n_modes": 3,
    "cp_rank": 50,
    "output": None,
    "external_dir": None,
    "wandb": False,
    "wandb_project": "tensor-id",
}


def load_config(path: Optional[str] = None, **overrides) -> Dict[str, Any]:
    """Defaults, updated by the YAML file at ``path``, then by ``overrides``."""
    config = dict(DEFAULT_CONFIG)
    if path is not None:
        with open(path, "r") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise InvalidArgument(f"{path}: expected a mapping at the top level")
        unknown = set(loaded) - set(DEFAULT_CONFIG)
        if unknown:
            raise InvalidArgument(f"{path}: unknown keys {sorted(unknown)}")
        config.update(loaded)
    config.update({k: v for k, v in overrides.items() if v is not None})
    return config


def _pick(cls, config: Dict[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in config.items() if k in names}


@dataclass
class IDConfig:
    """Settings of one interpolative decomposition; ``sketch_dim`` is ``l``."""

    rank: int
    sketch_dim: int
    qr_type: str = "qr"
    sketch: str = "gaussian"
    full_random: bool = True
    oversampling_factor: float = 2.0
    seed: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.rank, int) or self.rank <= 0:
            raise InvalidArgument(f"rank must be a positive integer, got {self.rank!r}")
        if not isinstance(self.sketch_dim, int) or self.sketch_dim <= 0:
            raise InvalidArgument(
                f"sketch_dim must be a positive integer, got {self.sketch_dim!r}"
            )
        if self.sketch_dim < self.rank:
            raise InvalidArgument(
                f"sketch_dim ({self.sketch_dim}) must be >= rank ({self.rank})"
            )
        if self.qr_type not in QR_TYPES:
            raise InvalidArgument(f"qr_type must be one of {QR_TYPES}, got {self.qr_type!r}")
        if self.sketch not in DRMS:
            raise InvalidArgument(f"sketch must be one of {tuple(DRMS)}, got {self.sketch!r}")
        if self.oversampling_factor < 1:
            raise InvalidArgument(
                f"oversampling_factor must be >= 1, got {self.oversampling_factor}"
            )

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "IDConfig":
        return cls(**_pick(cls, config))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SNormConfig:
    tol: float = 1e-8
    maxit: int = 1000
    init: str = "1"
    verbosity: int = 0

    def __post_init__(self):
        if self.tol < 0:
            raise InvalidArgument(f"tol must be non-negative, got {self.tol}")
        if not isinstance(self.maxit, int) or self.maxit < 1:
            raise InvalidArgument(f"maxit must be a positive integer, got {self.maxit!r}")
        if self.init not in INITS:
            raise InvalidArgument(f"init must be one of {INITS}, got {self.init!r}")

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "SNormConfig":
        return cls(**_pick(cls, config))
