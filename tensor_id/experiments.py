"""Experiments comparing interpolative decompositions.

``matrix``: random sparse low-rank matrices decomposed with a deterministic
ID, and with Gaussian, SRTT and CountSketch randomized IDs. The error of each
ID is the largest ``||A x - A[:, J] (P x)||`` over random unit vectors ``x``.
Methods that need the dense matrix are skipped above ``dense_limit`` rows.
With ``output`` set, each matrix is written to ``A_{I}_{trial}.bin`` for the
native ID tool; with ``external_dir`` set, the tool's ``P_{I}_{trial}.bin``
and ``J_{I}_{trial}.bin`` are read back and scored as method ``external``.

``tensor``: random CP tensors with decaying weights decomposed with the
Gaussian tensor ID using both QR types. The error is reported both in
Frobenius norm and in s-norm.

Usage::

    python run_experiments.py --experiment matrix --config my_config.yaml
"""
import csv
import logging
import os
from argparse import ArgumentParser
from time import time
from typing import Any, Dict, List

import numpy as np
import scipy.sparse
import torch
from tqdm import tqdm

from tensor_id.config import IDConfig, SNormConfig, load_config
from tensor_id.interpolative import (
    countsketch_matrix_id,
    deterministic_matrix_id,
    gaussian_matrix_id,
    gaussian_tensor_id,
    id_error,
    srtt_matrix_id,
)
from tensor_id.errors import InvalidArgument
from tensor_id.io import load_external_id, save_matrix_to_file
from tensor_id.s_norm import s_norm
from tensor_id.tensor import CPTensor
from tensor_id.utils import spawn_seeds

logger = logging.getLogger(__name__)

DENSE_ONLY = ("deterministic", "srtt")


def random_sparse_low_rank(
    n_rows: int, n_cols: int, rank: int, density: float, seed=None
) -> torch.Tensor:
    """Sparse ``B @ diag(s) @ C`` with ``rank`` terms and decaying ``s``.

    ``density`` is the target density of the product; the factors get
    ``sqrt(density / (2 * rank))`` each.
    """
    rng = np.random.default_rng(seed)
    col_dens = min(1.0, np.sqrt(density / (2 * rank)))
    B = scipy.sparse.random(n_rows, rank, density=col_dens, random_state=rng, format="csr")
    C = scipy.sparse.random(rank, n_cols, density=col_dens, random_state=rng, format="csr")
    s = scipy.sparse.diags(np.logspace(0, -8, rank))
    A = (B @ s @ C).tocoo()
    indices = torch.from_numpy(np.vstack((A.row, A.col)).astype(np.int64))
    values = torch.from_numpy(A.data.astype(np.float64))
    return torch.sparse_coo_tensor(indices, values, A.shape).coalesce()


def _matrix_method(name, A, id_config: IDConfig, seed):
    k, l, qr_type = id_config.rank, id_config.sketch_dim, id_config.qr_type
    f = id_config.oversampling_factor
    if name == "deterministic":
        return deterministic_matrix_id(A, k, qr_type=qr_type, f=f)
    if name == "gaussian":
        return gaussian_matrix_id(
            A, k, l, qr_type=qr_type, full_random=id_config.full_random, seed=seed, f=f
        )
    if name == "srtt":
        return srtt_matrix_id(A.to_dense(), k, l, qr_type=qr_type, seed=seed, f=f)
    if name == "countsketch":
        return countsketch_matrix_id(A, k, l, qr_type=qr_type, seed=seed, f=f)
    raise InvalidArgument(f"unknown method {name!r}")


def _external_row(A, I, tr, config, error_seed):
    """Score an ID computed by the native tool, if its files are present."""
    p_path = os.path.join(config["external_dir"], f"P_{I}_{tr}.bin")
    j_path = os.path.join(config["external_dir"], f"J_{I}_{tr}.bin")
    if not (os.path.exists(p_path) and os.path.exists(j_path)):
        logger.info("No external ID for I = %d, trial = %d", I, tr)
        return None
    result = load_external_id(p_path, j_path)
    error = id_error(A, result, config["n_rand_norm_vec"], seed=error_seed)
    return {
        "experiment": "matrix",
        "I": I,
        "trial": tr,
        "method": "external",
        "error": error,
        "time": float("nan"),
        "rank": result.rank,
    }


def run_matrix_experiment(config: Dict[str, Any], log=None) -> List[Dict[str, Any]]:
    id_config = IDConfig.from_dict(config)
    seeds = iter(spawn_seeds(config["seed"], 3 * len(config["sizes"]) * config["n_trials"]))
    results = []
    runs = [(I, tr) for I in config["sizes"] for tr in range(config["n_trials"])]
    for I, tr in tqdm(runs, total=len(runs)):
        A = random_sparse_low_rank(
            I, config["n_cols"], id_config.rank, config["density"], seed=next(seeds)
        )
        if config["output"] is not None and I <= config["dense_limit"]:
            os.makedirs(config["output"], exist_ok=True)
            save_matrix_to_file(
                A, os.path.join(config["output"], f"A_{I}_{tr}.bin"),
                verbosity=config["verbosity"],
            )
        sketch_seed = next(seeds)
        error_seed = next(seeds)
        for method in config["methods"]:
            row = {"experiment": "matrix", "I": I, "trial": tr, "method": method}
            if method in DENSE_ONLY and I > config["dense_limit"]:
                logger.info("Skipping %s ID for I = %d due to size of matrix", method, I)
                row.update(error=float("nan"), time=float("nan"))
            else:
                t0 = time()
                result = _matrix_method(method, A, id_config, sketch_seed)
                t1 = time()
                error = id_error(A, result, config["n_rand_norm_vec"], seed=error_seed)
                row.update(error=error, time=t1 - t0, rank=result.rank)
            results.append(row)
            if log is not None:
                log(row)
        if config["external_dir"] is not None:
            row = _external_row(A, I, tr, config, error_seed)
            if row is not None:
                results.append(row)
                if log is not None:
                    log(row)
    return results


def run_tensor_experiment(config: Dict[str, Any], log=None) -> List[Dict[str, Any]]:
    id_config = IDConfig.from_dict(config)
    snorm_config = SNormConfig.from_dict(config)
    seeds = iter(spawn_seeds(config["seed"], 2 * len(config["sizes"]) * config["n_trials"]))
    results = []
    runs = [(I, tr) for I in config["sizes"] for tr in range(config["n_trials"])]
    for I, tr in tqdm(runs, total=len(runs)):
        R = config["cp_rank"]
        weights = torch.from_numpy(np.logspace(0, -8, R))
        X = CPTensor.random((I,) * config["n_modes"], R, seed=next(seeds), weights=weights)
        sketch_seed = next(seeds)
        for qr_type in ("qr", "srrqr"):
            row = {"experiment": "tensor", "I": I, "trial": tr, "method": qr_type}
            t0 = time()
            Xk = gaussian_tensor_id(
                X,
                id_config.rank,
                id_config.sketch_dim,
                qr_type=qr_type,
                full_random=id_config.full_random,
                seed=sketch_seed,
                f=id_config.oversampling_factor,
            )
            t1 = time()
            row["time"] = t1 - t0
            row["error"] = X.error(Xk, relative=True, fast=True)
            row["s_norm_error"] = s_norm(
                X - Xk,
                snorm_config.tol,
                maxit=snorm_config.maxit,
                init=snorm_config.init,
                verbosity=snorm_config.verbosity,
            )
            row["rank"] = Xk.rank
            results.append(row)
            if log is not None:
                log(row)
    return results


EXPERIMENTS = {
    "matrix": run_matrix_experiment,
    "tensor": run_tensor_experiment,
}


def write_results(results: List[Dict[str, Any]], path: str) -> None:
    keys = sorted({key for row in results for key in row})
    with open(path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=keys)
        writer.writeheader()
        writer.writerows(results)


def main(argv=None):
    parser = ArgumentParser("tensor_id")
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--experiment", type=str, choices=tuple(EXPERIMENTS), default=None)
    parser.add_argument("--rank", type=int, default=None)
    parser.add_argument("--sketch-dim", type=int, default=None)
    parser.add_argument("--qr-type", type=str, default=None)
    parser.add_argument("--n-trials", type=int, default=None)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--output", type=str, default=None)
    parser.add_argument("--external-dir", type=str, default=None)
    parser.add_argument("--verbosity", type=int, default=None)
    parser.add_argument("--wandb", action="store_true", default=None)
    args = parser.parse_args(argv)

    config = load_config(args.config, **{k: v for k, v in vars(args).items() if k != "config"})
    logging.basicConfig(level=logging.INFO if config["verbosity"] > 0 else logging.WARNING)
    print(config)

    log = None
    run = None
    if config["wandb"]:
        import wandb

        run = wandb.init(project=config["wandb_project"], config=config)
        log = wandb.log

    results = EXPERIMENTS[config["experiment"]](config, log=log)

    for row in results:
        print(
            f"{row['method']:>13s} I = {row['I']:.1e} trial = {row['trial']}: "
            f"error {row['error']:.10e}, time {row['time']:.2f} s"
        )
    if config["output"] is not None:
        os.makedirs(config["output"], exist_ok=True)
        write_results(results, os.path.join(config["output"], f"{config['experiment']}_results.csv"))
    if run is not None:
        run.finish()
    return results


__all__ = ["main", "run_matrix_experiment", "run_tensor_experiment"]
