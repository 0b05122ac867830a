# utils.py

import logging
import os
from pathlib import Path

import joblib
import numpy as np
import scipy.sparse as sp

from config import EXTRA_DIRS


def create_directories(directories=None):
    """Create necessary directories if they don't exist."""
    for directory in directories or EXTRA_DIRS:
        if not os.path.exists(directory):
            os.makedirs(directory)
            logging.info(f"Created directory: {directory}")


def _atomic_dump(obj, path):
    # write next to the target, then rename: a failed dump leaves no artifact
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    try:
        joblib.dump(obj, tmp, compress=3)
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            tmp.unlink()
    logging.info(f"Artifact saved => {path}")
    return path


def save_matrix_bundle(path, X, y, feature_names, **extra):
    """Persist a sparse feature matrix with its label vector and column names."""
    X = sp.csr_matrix(X)
    y = np.asarray(y)
    if X.shape[0] != y.shape[0]:
        raise ValueError(f"X has {X.shape[0]} rows but y has {y.shape[0]}")
    if X.shape[1] != len(feature_names):
        raise ValueError(f"X has {X.shape[1]} columns but {len(feature_names)} feature names")
    bundle = {"X": X, "y": y, "feature_names": list(feature_names), **extra}
    return _atomic_dump(bundle, path)


def load_matrix_bundle(path):
    bundle = joblib.load(path)
    missing = {"X", "y", "feature_names"} - set(bundle)
    if missing:
        raise KeyError(f"Matrix bundle {path} lacks {sorted(missing)}")
    logging.info(f"Matrix bundle loaded from {path}: {bundle['X'].shape[0]:,} rows x {bundle['X'].shape[1]} cols")
    return bundle


def save_model_bundle(path, model, *, feature_names, encoder=None, config=None, metrics=None):
    """Persist the trained booster with everything needed to score new trips."""
    bundle = {
        "model": model,
        "feature_names": list(feature_names),
        "encoder": encoder,
        "config": config,
        "metrics": metrics,
    }
    return _atomic_dump(bundle, path)


def load_model_bundle(path):
    bundle = joblib.load(path)
    if "model" not in bundle or "feature_names" not in bundle:
        raise KeyError(f"{path} is not a model bundle")
    logging.info(f"Model bundle loaded from '{path}'")
    return bundle
