#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
model_training.py — time-ordered split + XGBoost tip regressor

• Stable sort by pickup timestamp, split at floor(train_frac · n), no shuffling
• Timestamp and label leave the model view; y = tip_amount
• Gradient-boosted trees behind a narrow fit / predict / importance capability
• Fixed training record: eta 0.3, depth 6, subsample 0.8, colsample 0.8,
  100 rounds, RMSE, fixed seed
• Held-out RMSE / MAE / residual std for the model and a naive mean-tip baseline
• Ranked importance table with human-readable feature names

This module exports:
  - time_ordered_split, TimeSplit
  - TrainingConfig, TreeTrainer, XGBoostTrainer
  - regression_metrics, naive_baseline, train_model
  - cli
"""

from __future__ import annotations

import argparse
import logging
import math
from dataclasses import asdict, dataclass, field
from fractions import Fraction
from typing import Any, Dict, List, Protocol

import numpy as np
import pandas as pd
import scipy.sparse as sp
import xgboost as xgb
from sklearn.metrics import mean_absolute_error, mean_squared_error

from config import (
    IMPORTANCE_TOP_N,
    IMPORTANCE_TYPE,
    LABEL_COL,
    MODEL_PATH,
    ORDER_COL,
    RANDOM_STATE,
    TEST_SPLIT_PATH,
    TRAIN_FRAC,
    TRAIN_SPLIT_PATH,
    XGB_NTHREAD,
)
from exceptions import EmptyPartition
from feature_engineering import EncodedMatrix
from model_interpretation import format_importance_table, importance_report
from utils import load_matrix_bundle, save_matrix_bundle, save_model_bundle

__all__ = [
    "TimeSplit",
    "time_ordered_split",
    "save_time_split",
    "load_time_split",
    "TrainingConfig",
    "TreeTrainer",
    "XGBoostTrainer",
    "regression_metrics",
    "naive_baseline",
    "TrainingResult",
    "train_model",
    "cli",
]

log = logging.getLogger(__name__)


# ────────────────────────── Logging helper ────────────────────────── #

def _setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(message)s",
        force=True,
    )


# ─────────────────────── Time-ordered split ─────────────────────── #

@dataclass
class TimeSplit:
    X_train: sp.csr_matrix
    y_train: np.ndarray
    X_test: sp.csr_matrix
    y_test: np.ndarray
    feature_names: List[str]
    ts_train: np.ndarray
    ts_test: np.ndarray
    # positions of the rows in the matrix handed to the splitter
    train_rows: np.ndarray = field(default_factory=lambda: np.array([], dtype=np.int64))
    test_rows: np.ndarray = field(default_factory=lambda: np.array([], dtype=np.int64))

    @property
    def n_train(self) -> int:
        return int(self.X_train.shape[0])

    @property
    def n_test(self) -> int:
        return int(self.X_test.shape[0])

    @property
    def boundary_timestamp(self) -> float:
        """Timestamp of the first test row."""
        return float(self.ts_test[0]) if self.ts_test.size else math.nan


def _train_size(n: int, train_frac: float) -> int:
    # exact rational arithmetic so 0.8 · n never floors one row short
    return math.floor(Fraction(str(train_frac)) * n)


def time_ordered_split(
    encoded: EncodedMatrix,
    *,
    train_frac: float = TRAIN_FRAC,
    order_col: str = ORDER_COL,
    label_col: str = LABEL_COL,
) -> TimeSplit:
    """Sort rows by *order_col* (stable) and cut into [0, k) train / [k, n) test.

    k = floor(train_frac · n). The ordering and label columns are removed from
    the returned matrices; the label becomes ``y``.
    """
    if not 0.0 < train_frac < 1.0:
        raise ValueError(f"train_frac must be in (0, 1) (got {train_frac})")
    for col in (order_col, label_col):
        if col not in encoded.feature_index:
            raise KeyError(f"Column '{col}' not in encoded matrix")

    n = encoded.n_rows
    ts = encoded.column(order_col)
    if np.isnan(ts).any():
        raise ValueError(f"Ordering column '{order_col}' contains missing values")

    k = _train_size(n, train_frac)
    if k == 0 or k == n:
        raise EmptyPartition(
            f"Cannot split {n} row(s) at train_frac={train_frac}: "
            f"train would hold {k} and test {n - k}",
            affected=n,
        )

    order = np.argsort(ts, kind="stable")
    X_sorted = encoded.X[order]
    y_sorted = encoded.column(label_col)[order]
    ts_sorted = ts[order]

    drop = {encoded.feature_index[order_col], encoded.feature_index[label_col]}
    keep = [i for i in range(len(encoded.feature_names)) if i not in drop]
    X_model = X_sorted[:, keep].tocsr()
    names = [encoded.feature_names[i] for i in keep]

    split = TimeSplit(
        X_train=X_model[:k],
        y_train=y_sorted[:k],
        X_test=X_model[k:],
        y_test=y_sorted[k:],
        feature_names=names,
        ts_train=ts_sorted[:k],
        ts_test=ts_sorted[k:],
        train_rows=order[:k],
        test_rows=order[k:],
    )
    log.info(
        "Time-ordered split: %d train / %d test rows, boundary at %s",
        split.n_train,
        split.n_test,
        pd.Timestamp(split.boundary_timestamp, unit="s"),
    )
    return split


def save_time_split(split: TimeSplit, train_path=TRAIN_SPLIT_PATH, test_path=TEST_SPLIT_PATH, *, encoder=None):
    save_matrix_bundle(
        train_path, split.X_train, split.y_train, split.feature_names,
        timestamps=split.ts_train, rows=split.train_rows, encoder=encoder,
    )
    save_matrix_bundle(
        test_path, split.X_test, split.y_test, split.feature_names,
        timestamps=split.ts_test, rows=split.test_rows,
    )


def load_time_split(train_path=TRAIN_SPLIT_PATH, test_path=TEST_SPLIT_PATH) -> tuple[TimeSplit, Any]:
    """Return the persisted split and the encoder stored with it (may be None)."""
    tr = load_matrix_bundle(train_path)
    te = load_matrix_bundle(test_path)
    if list(tr["feature_names"]) != list(te["feature_names"]):
        raise ValueError("Train and test bundles disagree on feature names")
    split = TimeSplit(
        X_train=tr["X"],
        y_train=tr["y"],
        X_test=te["X"],
        y_test=te["y"],
        feature_names=list(tr["feature_names"]),
        ts_train=tr.get("timestamps", np.array([])),
        ts_test=te.get("timestamps", np.array([])),
        train_rows=tr.get("rows", np.array([], dtype=np.int64)),
        test_rows=te.get("rows", np.array([], dtype=np.int64)),
    )
    return split, tr.get("encoder")


# ─────────────────────── Tree learner capability ─────────────────────── #

@dataclass(frozen=True)
class TrainingConfig:
    """Fixed training record for the boosted-tree regressor."""

    learning_rate: float = 0.3
    max_depth: int = 6
    subsample: float = 0.8
    colsample_bytree: float = 0.8
    num_boost_round: int = 100
    eval_metric: str = "rmse"
    objective: str = "reg:squarederror"
    seed: int = RANDOM_STATE
    nthread: int = XGB_NTHREAD

    def to_dict(self):
        return asdict(self)

    def to_xgb_params(self) -> Dict[str, Any]:
        return {
            "objective": self.objective,
            "eta": self.learning_rate,
            "max_depth": self.max_depth,
            "subsample": self.subsample,
            "colsample_bytree": self.colsample_bytree,
            "eval_metric": self.eval_metric,
            "seed": self.seed,
            "nthread": self.nthread,
        }


class TreeTrainer(Protocol):
    def fit(self, X, y, config: TrainingConfig) -> Any: ...

    def predict(self, model: Any, X) -> np.ndarray: ...

    def importance(self, model: Any) -> Dict[int, float]: ...


class XGBoostTrainer:
    """TreeTrainer backed by ``xgboost.train`` on sparse DMatrix input."""

    def __init__(self, importance_type: str = IMPORTANCE_TYPE):
        self.importance_type = importance_type
        self.evals_result_: dict = {}

    def fit(self, X, y, config: TrainingConfig, *, eval_set=None) -> xgb.Booster:
        y = np.asarray(y, dtype=np.float64)
        if X.shape[0] == 0:
            raise EmptyPartition("Cannot fit on zero rows")
        dtrain = xgb.DMatrix(X, label=y, nthread=config.nthread)
        evals = [(dtrain, "train")]
        if eval_set is not None:
            X_ev, y_ev = eval_set
            evals.append((xgb.DMatrix(X_ev, label=np.asarray(y_ev, dtype=np.float64), nthread=config.nthread), "test"))
        self.evals_result_ = {}
        booster = xgb.train(
            config.to_xgb_params(),
            dtrain,
            num_boost_round=config.num_boost_round,
            evals=evals,
            evals_result=self.evals_result_,
            verbose_eval=False,
        )
        for name, metrics in self.evals_result_.items():
            last = metrics[config.eval_metric][-1]
            log.info("XGBoost %s-%s after %d rounds: %.4f", name, config.eval_metric, config.num_boost_round, last)
        return booster

    def predict(self, model: xgb.Booster, X) -> np.ndarray:
        return np.asarray(model.predict(xgb.DMatrix(X)), dtype=np.float64)

    def importance(self, model: xgb.Booster) -> Dict[int, float]:
        # without explicit names the booster keys features as "f<column>"
        raw = model.get_score(importance_type=self.importance_type)
        return {int(k[1:]): float(v) for k, v in raw.items()}


# ─────────────────────────── Evaluation ─────────────────────────── #

def regression_metrics(y_true, y_pred) -> Dict[str, float]:
    y_true = np.asarray(y_true, dtype=np.float64)
    y_pred = np.asarray(y_pred, dtype=np.float64)
    if y_true.size == 0:
        raise EmptyPartition("Cannot evaluate on zero rows")
    resid = y_true - y_pred
    return {
        "rmse": float(np.sqrt(mean_squared_error(y_true, y_pred))),
        "mae": float(mean_absolute_error(y_true, y_pred)),
        "resid_std": float(np.std(resid)),
    }


def naive_baseline(y_train, y_test) -> tuple[float, Dict[str, float]]:
    """Always predict the training-set mean tip; return (mean, metrics on test)."""
    y_train = np.asarray(y_train, dtype=np.float64)
    y_test = np.asarray(y_test, dtype=np.float64)
    if y_train.size == 0 or y_test.size == 0:
        raise EmptyPartition("Naive baseline requires non-empty train and test targets")
    mu = float(y_train.mean())
    return mu, regression_metrics(y_test, np.full(y_test.shape[0], mu))


@dataclass
class TrainingResult:
    model: Any
    config: TrainingConfig
    metrics: Dict[str, Dict[str, float]]
    baseline_value: float
    importance: pd.DataFrame
    y_pred: np.ndarray

    @property
    def model_beats_naive(self) -> bool:
        return self.metrics["model"]["rmse"] < self.metrics["naive"]["rmse"]


def train_model(
    split: TimeSplit,
    *,
    config: TrainingConfig | None = None,
    trainer: TreeTrainer | None = None,
) -> TrainingResult:
    """Fit on the train partition, score the held-out partition, rank features."""
    cfg = config or TrainingConfig()
    trainer = trainer or XGBoostTrainer()
    if split.n_train == 0 or split.n_test == 0:
        raise EmptyPartition(
            f"Split has {split.n_train} train / {split.n_test} test rows",
            affected=split.n_train + split.n_test,
        )

    log.info("Training on %d rows x %d features: %s", split.n_train, split.X_train.shape[1], cfg.to_dict())
    model = trainer.fit(split.X_train, split.y_train, cfg)
    y_pred = trainer.predict(model, split.X_test)

    baseline_value, naive = naive_baseline(split.y_train, split.y_test)
    metrics = {"model": regression_metrics(split.y_test, y_pred), "naive": naive}
    for name, m in metrics.items():
        log.info("%-5s RMSE=%.4f | MAE=%.4f | resid std=%.4f", name, m["rmse"], m["mae"], m["resid_std"])

    report = importance_report(trainer.importance(model), split.feature_names)
    return TrainingResult(
        model=model,
        config=cfg,
        metrics=metrics,
        baseline_value=baseline_value,
        importance=report,
        y_pred=y_pred,
    )


def format_metrics_table(result: TrainingResult) -> str:
    rows = [
        {"predictor": name, "RMSE": m["rmse"], "MAE": m["mae"], "resid_std": m["resid_std"]}
        for name, m in result.metrics.items()
    ]
    return pd.DataFrame(rows).to_string(index=False, float_format=lambda v: f"{v:.4f}")


# ─────────────────────────────── CLI ─────────────────────────────── #

def cli() -> None:
    p = argparse.ArgumentParser(description="Train the tip regressor from persisted split bundles")
    p.add_argument("--train-bundle", default=TRAIN_SPLIT_PATH)
    p.add_argument("--test-bundle", default=TEST_SPLIT_PATH)
    p.add_argument("--model-path", default=MODEL_PATH)
    p.add_argument("--top-n", type=int, default=IMPORTANCE_TOP_N)
    p.add_argument("--log-level", default="INFO")
    args = p.parse_args()

    _setup_logging(args.log_level)
    split, encoder = load_time_split(args.train_bundle, args.test_bundle)
    result = train_model(split)
    save_model_bundle(
        args.model_path,
        result.model,
        feature_names=split.feature_names,
        encoder=encoder,
        config=result.config.to_dict(),
        metrics=result.metrics,
    )
    print(format_metrics_table(result))
    print()
    print(format_importance_table(result.importance, args.top_n))
    logging.info("🏁 Done. Model: %s", args.model_path)


if __name__ == "__main__":
    cli()
