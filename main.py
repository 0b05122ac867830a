#!/usr/bin/env python3
"""
main.py — end‑to‑end tip‑prediction pipeline controller
-------------------------------------------------------
• ingest → temporal features → outlier filter → sparse encoding
  → time‑ordered split → XGBoost training → report
• Each stage returns a new structure; a failing stage aborts the run with a
  summary of the stage and the number of records affected
• Artifacts are written only after the stage that produces them succeeded
"""

from __future__ import annotations

import argparse
import glob
import logging
import os
import sys
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List

import pandas as pd

import config as cfg
from exceptions import StageFailure, TipPipelineError
from data_loading import load_trip_files
from feature_engineering import TripFeatureEncoder
from model_interpretation import format_importance_table
from model_training import (
    TimeSplit,
    TrainingConfig,
    TrainingResult,
    format_metrics_table,
    save_time_split,
    time_ordered_split,
    train_model,
)
from outlier_removal import FilterReport, PlausibilityConfig, remove_outliers
from time_features import TemporalFeatureDeriver
from utils import save_model_bundle

# ───────────────────────── HELPERS ────────────────────────── #


class RemovedRowsTracker:
    """Aggregated "N rows dropped at step S for reason R" counts."""

    def __init__(self, output_path: Path | None = None):
        self.output_path = Path(output_path) if output_path else None
        self.counts: Counter = Counter()

    def track(self, step: str, reason: str, count: int) -> None:
        if count:
            self.counts[(step, reason)] += int(count)

    def track_many(self, step: str, counts: dict) -> None:
        for reason, count in counts.items():
            self.track(step, reason, count)

    @property
    def total(self) -> int:
        return int(sum(self.counts.values()))

    def summary(self) -> pd.DataFrame:
        rows = [{"step": s, "reason": r, "rows": n} for (s, r), n in self.counts.items()]
        return pd.DataFrame(rows, columns=["step", "reason", "rows"])

    def flush(self) -> None:
        if not self.counts or self.output_path is None:
            return
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self.summary().to_csv(self.output_path, index=False)
        logging.info("Removed-row summary saved => %s", self.output_path)


def run_stage(name: str, func: Callable[..., Any], *args, **kwargs) -> Any:
    logging.info("▶ stage: %s", name)
    try:
        return func(*args, **kwargs)
    except StageFailure:
        raise
    except TipPipelineError as err:
        raise StageFailure(name, err, affected=err.affected) from err
    except Exception as err:  # noqa: BLE001
        raise StageFailure(name, err) from err


@dataclass
class PipelineResult:
    rows_read: int
    rows_normalized: int
    filter_report: FilterReport
    encoder: TripFeatureEncoder
    split: TimeSplit
    training: TrainingResult
    removed: RemovedRowsTracker


def _encode(enriched: pd.DataFrame):
    encoder = TripFeatureEncoder()
    return encoder, encoder.fit(enriched).transform(enriched)


# ────────────────────────── MAIN FLOW ───────────────────────── #
def run_pipeline(
    paths: List[str | Path],
    *,
    timestamp_policy: str = cfg.MALFORMED_TIMESTAMP_POLICY,
    train_frac: float = cfg.TRAIN_FRAC,
    plausibility: PlausibilityConfig | None = None,
    training: TrainingConfig | None = None,
    persist: bool = True,
    artifact_dir: str | Path = cfg.ARTIFACT_DIR,
    model_path: str | Path = cfg.MODEL_PATH,
    train_split_path: str | Path = cfg.TRAIN_SPLIT_PATH,
    test_split_path: str | Path = cfg.TEST_SPLIT_PATH,
) -> PipelineResult:
    artifact_dir = Path(artifact_dir)
    tracker = RemovedRowsTracker(artifact_dir / Path(cfg.REMOVED_ROWS_PATH).name if persist else None)

    trips, norm_report = run_stage("ingestion", load_trip_files, paths, timestamp_policy=timestamp_policy)
    tracker.track_many("ingestion", norm_report.dropped)

    enriched = run_stage("temporal_features", TemporalFeatureDeriver().fit_transform, trips)

    if plausibility is None:
        plausibility = PlausibilityConfig(log_dir=artifact_dir if (persist and cfg.WRITE_OUTLIER_REPORT) else None)
    clean, filter_report = run_stage("outlier_filter", remove_outliers, enriched, config=plausibility)
    tracker.track_many("outlier_filter", filter_report.violations)

    encoder, encoded = run_stage("encoding", _encode, clean)
    split = run_stage("split", time_ordered_split, encoded, train_frac=train_frac)
    if persist:
        run_stage("persist_split", save_time_split, split, train_split_path, test_split_path, encoder=encoder)

    result = run_stage("training", train_model, split, config=training)
    if persist:
        run_stage(
            "persist_model",
            save_model_bundle,
            model_path,
            result.model,
            feature_names=split.feature_names,
            encoder=encoder,
            config=result.config.to_dict(),
            metrics=result.metrics,
        )
        tracker.flush()

    return PipelineResult(
        rows_read=norm_report.rows_read,
        rows_normalized=norm_report.rows_kept,
        filter_report=filter_report,
        encoder=encoder,
        split=split,
        training=result,
        removed=tracker,
    )


def format_report(res: PipelineResult, top_n: int = cfg.IMPORTANCE_TOP_N) -> str:
    fr = res.filter_report
    lines = [
        "Tip model report",
        "================",
        f"Rows read:                 {res.rows_read:,}",
        f"Rows after normalization:  {res.rows_normalized:,}",
        f"Rows before outlier filter: {fr.rows_in:,}",
        f"Rows after outlier filter:  {fr.rows_out:,} (removed {fr.removed:,}, {fr.removed_pct:.2f}%)",
    ]
    if res.removed.counts:
        lines += ["", "Dropped rows by reason (a row may violate several clauses):"]
        lines.append(res.removed.summary().to_string(index=False))
    lines += [
        "",
        f"Train rows: {res.split.n_train:,} | Test rows: {res.split.n_test:,} | "
        f"test starts at {pd.Timestamp(res.split.boundary_timestamp, unit='s')}",
        f"Naive baseline prediction (train mean tip): {res.training.baseline_value:.4f}",
        "",
        format_metrics_table(res.training),
        "",
        f"Model {'beats' if res.training.model_beats_naive else 'does NOT beat'} the naive baseline on RMSE.",
        "",
        f"Top {top_n} features by importance:",
        format_importance_table(res.training.importance, top_n),
    ]
    return "\n".join(lines)


def main(argv: List[str] | None = None) -> int:
    cli_parser = argparse.ArgumentParser(description="Taxi tip end‑to‑end pipeline")
    cli_parser.add_argument("csv_paths", nargs="*", help="Header-less monthly trip CSVs (default: data/raw/*.csv)")
    cli_parser.add_argument("--log-level", default="INFO", help="DEBUG | INFO | WARNING | ERROR")
    cli_parser.add_argument("--timestamp-policy", choices=["drop", "raise"], default=cfg.MALFORMED_TIMESTAMP_POLICY,
                            help="Drop-and-count or abort on malformed timestamps")
    cli_parser.add_argument("--train-frac", type=float, default=cfg.TRAIN_FRAC, help="Training fraction (default 0.8)")
    cli_parser.add_argument("--artifact-dir", default=cfg.ARTIFACT_DIR)
    cli_parser.add_argument("--model-path", default=cfg.MODEL_PATH)
    cli_parser.add_argument("--no-persist", action="store_true", help="Do not write split/model artifacts")
    cli_parser.add_argument("--top-n", type=int, default=cfg.IMPORTANCE_TOP_N)
    args = cli_parser.parse_args(argv)

    console_handler = logging.StreamHandler(stream=sys.stdout)
    handlers: list[logging.Handler] = [console_handler]
    if not args.no_persist:
        os.makedirs(args.artifact_dir, exist_ok=True)
        handlers.append(logging.FileHandler(Path(args.artifact_dir) / "pipeline.log", encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(message)s",
        handlers=handlers,
        force=True,
    )

    paths = args.csv_paths or sorted(glob.glob(os.path.join(cfg.RAW_DATA_DIR, "*.csv")))
    logging.info("🚚 Loading %d trip file(s)", len(paths))
    try:
        res = run_pipeline(
            paths,
            timestamp_policy=args.timestamp_policy,
            train_frac=args.train_frac,
            persist=not args.no_persist,
            artifact_dir=args.artifact_dir,
            model_path=args.model_path,
        )
    except StageFailure as failure:
        logging.error("Pipeline aborted: stage '%s' failed (%d records affected): %s",
                      failure.stage, failure.affected, failure.cause)
        return 1

    print(format_report(res, args.top_n))
    logging.info("🏁 Pipeline finished.")
    return 0


# ────────────────────────── CLI ────────────────────────── #
if __name__ == "__main__":
    sys.exit(main())
