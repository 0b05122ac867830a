# prediction.py
"""Score new trip files with a persisted model bundle."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path

import numpy as np
import pandas as pd

from config import (
    LABEL_COL,
    MALFORMED_TIMESTAMP_POLICY,
    MODEL_PATH,
    ORDER_COL,
    UNKNOWN_CATEGORY_POLICY,
)
from data_loading import load_trip_files
from exceptions import UnknownCategory
from model_training import XGBoostTrainer, _setup_logging
from time_features import TemporalFeatureDeriver
from utils import load_model_bundle

_POLICIES = {"raise", "drop"}


def _model_view(encoded, feature_names):
    """Columns of *encoded* in the order the model was trained on."""
    missing = [n for n in feature_names if n not in encoded.feature_index]
    if missing:
        raise KeyError(f"Encoded matrix lacks model features: {missing[:5]}")
    idx = [encoded.feature_index[n] for n in feature_names]
    return encoded.X[:, idx].tocsr()


def predict_frame(trips: pd.DataFrame, bundle: dict, *, unknown_policy: str = UNKNOWN_CATEGORY_POLICY):
    """Predict tips for normalized trips; returns (predictions frame, rows dropped).

    Rows carrying a category value the frozen encoder has never seen either
    abort the call (``raise``) or are dropped and counted (``drop``).
    """
    if unknown_policy not in _POLICIES:
        raise ValueError(f"unknown_policy must be one of {sorted(_POLICIES)} (got {unknown_policy})")
    encoder = bundle.get("encoder")
    if encoder is None:
        raise ValueError("Model bundle carries no encoder; cannot score raw trips")

    enriched = TemporalFeatureDeriver().fit_transform(trips)
    unknown = encoder.unknown_mask(enriched)
    n_unknown = int(unknown.sum())
    if n_unknown:
        if unknown_policy == "raise":
            raise UnknownCategory(encoder.unknown_values(enriched), affected=n_unknown)
        logging.warning("Dropping %d trip(s) with unseen category values: %s",
                        n_unknown, encoder.unknown_values(enriched))
        enriched = enriched.loc[~unknown].reset_index(drop=True)

    encoded = encoder.transform(enriched)
    X = _model_view(encoded, bundle["feature_names"])
    y_hat = XGBoostTrainer().predict(bundle["model"], X)

    out = pd.DataFrame({
        "pickup_datetime": enriched["pickup_datetime"].to_numpy(),
        ORDER_COL: encoded.column(ORDER_COL),
        "predicted_tip": y_hat,
    })
    if LABEL_COL in enriched.columns:
        out[LABEL_COL] = enriched[LABEL_COL].to_numpy(dtype=np.float64)
    return out, n_unknown


def predict_trips(
    paths,
    model_path=MODEL_PATH,
    *,
    unknown_policy: str = UNKNOWN_CATEGORY_POLICY,
    timestamp_policy: str = MALFORMED_TIMESTAMP_POLICY,
):
    """Load raw trip files and predict their tips with the bundle at *model_path*."""
    bundle = load_model_bundle(model_path)
    trips, norm_report = load_trip_files(paths, timestamp_policy=timestamp_policy)
    preds, n_unknown = predict_frame(trips, bundle, unknown_policy=unknown_policy)
    logging.info(
        "Scored %d trips (%d dropped for timestamps, %d for unseen categories)",
        len(preds), norm_report.rows_dropped, n_unknown,
    )
    return preds


def cli() -> None:
    p = argparse.ArgumentParser(description="Predict tip amounts for raw trip files")
    p.add_argument("csv_paths", nargs="+")
    p.add_argument("--model-path", default=MODEL_PATH)
    p.add_argument("--out", default="predictions.csv")
    p.add_argument("--unknown-policy", choices=sorted(_POLICIES), default=UNKNOWN_CATEGORY_POLICY)
    p.add_argument("--timestamp-policy", choices=["drop", "raise"], default=MALFORMED_TIMESTAMP_POLICY)
    p.add_argument("--log-level", default="INFO")
    args = p.parse_args()

    _setup_logging(args.log_level)
    preds = predict_trips(
        args.csv_paths,
        args.model_path,
        unknown_policy=args.unknown_policy,
        timestamp_policy=args.timestamp_policy,
    )
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    preds.to_csv(out, index=False)
    logging.info("Predictions written => %s", out)


if __name__ == "__main__":
    cli()
