#!/usr/bin/env python3
"""outlier_removal.py

Plausibility filter for enriched taxi trips.

Every record must satisfy all of

    0 <  passenger_count <  10
    0 <  trip_distance   <= max_trip_distance (1000 miles)
    0 <  fare_amount     <= 1000
    0 <  total_amount    <= 1000
    0 <= tip_amount      <= total_amount
    0 <  trip_duration   <= 10800 s

Violating rows are removed whole (no repair, no NaN substitution). Missing
values fail every clause they take part in. The filter reports how many rows
each clause rejected so the exclusion rate stays observable.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from pathlib import Path

import numpy as np
import pandas as pd

from config import (
    MAX_FARE_AMOUNT,
    MAX_PASSENGERS_EXCLUSIVE,
    MAX_TOTAL_AMOUNT,
    MAX_TRIP_DISTANCE,
    MAX_TRIP_DURATION_SEC,
)

__all__ = [
    "PlausibilityConfig",
    "FilterReport",
    "clause_violations",
    "get_outlier_mask",
    "save_outlier_report",
    "remove_outliers",
]

log = logging.getLogger(__name__)


@dataclass(slots=True)
class PlausibilityConfig:
    """Bounds for the plausibility filter."""

    max_passengers_exclusive: int = MAX_PASSENGERS_EXCLUSIVE
    # None disables the upper distance bound, leaving only distance > 0
    max_trip_distance: float | None = MAX_TRIP_DISTANCE
    max_fare_amount: float = MAX_FARE_AMOUNT
    max_total_amount: float = MAX_TOTAL_AMOUNT
    max_trip_duration: float = MAX_TRIP_DURATION_SEC

    # runtime options
    log_dir: str | Path | None = None
    artefact_name: str = "removed_outliers.csv"

    def to_dict(self):
        return asdict(self)


@dataclass
class FilterReport:
    rows_in: int
    rows_out: int
    # rows failing each clause; a row can count towards several clauses
    violations: Counter = field(default_factory=Counter)

    @property
    def removed(self) -> int:
        return self.rows_in - self.rows_out

    @property
    def removed_pct(self) -> float:
        return 100.0 * self.removed / self.rows_in if self.rows_in else 0.0


# ───────────────────────── helpers ────────────────────────── #

def _ok(cond: pd.Series) -> pd.Series:
    # nullable comparisons yield <NA>; a missing value never passes
    return cond.fillna(False).astype(bool)


def _num(df: pd.DataFrame, col: str) -> pd.Series:
    if col not in df.columns:
        raise KeyError(f"Column '{col}' missing in input data")
    return df[col]


def clause_violations(df: pd.DataFrame, cfg: PlausibilityConfig) -> pd.DataFrame:
    """Boolean frame, one column per clause, True where the clause is violated."""
    pax = _num(df, "passenger_count")
    dist = _num(df, "trip_distance")
    fare = _num(df, "fare_amount")
    total = _num(df, "total_amount")
    tip = _num(df, "tip_amount")
    dur = _num(df, "trip_duration")

    dist_ok = dist > 0
    if cfg.max_trip_distance is not None:
        dist_ok = dist_ok & (dist <= cfg.max_trip_distance)

    passing = {
        "passenger_count": (pax > 0) & (pax < cfg.max_passengers_exclusive),
        "trip_distance": dist_ok,
        "fare_amount": (fare > 0) & (fare <= cfg.max_fare_amount),
        "total_amount": (total > 0) & (total <= cfg.max_total_amount),
        "tip_amount": (tip >= 0) & (tip <= total),
        "trip_duration": (dur > 0) & (dur <= cfg.max_trip_duration),
    }
    return pd.DataFrame({name: ~_ok(ok) for name, ok in passing.items()}, index=df.index)


# ─────────────────────── main routine ─────────────────────── #

def get_outlier_mask(df: pd.DataFrame, cfg: PlausibilityConfig | None = None) -> pd.Series:
    """Return boolean mask (True ⇢ outlier) the same length as *df*."""
    return clause_violations(df, cfg or PlausibilityConfig()).any(axis=1)


def save_outlier_report(df: pd.DataFrame, violations: pd.DataFrame, cfg: PlausibilityConfig) -> Path | None:
    """Write removed rows with the first violated clause to ``cfg.log_dir``."""
    if cfg.log_dir is None:
        return None
    out_dir = Path(cfg.log_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    mask = violations.any(axis=1)
    reason = np.select(
        [violations[c].to_numpy() for c in violations.columns],
        list(violations.columns),
        default="",
    )
    artefacts = df[mask].assign(reason=pd.Series(reason, index=df.index)[mask])
    path = out_dir / cfg.artefact_name
    artefacts.to_csv(path, index=False)
    log.info("Removed %d outliers • artefact → %s", len(artefacts), path)
    return path


def remove_outliers(
    data: pd.DataFrame,
    *,
    config: PlausibilityConfig | None = None,
) -> tuple[pd.DataFrame, FilterReport]:
    """Drop implausible trips; return the surviving copy and a count report."""
    cfg = config or PlausibilityConfig()
    violations = clause_violations(data, cfg)
    remove_mask = violations.any(axis=1)

    report = FilterReport(
        rows_in=len(data),
        rows_out=int((~remove_mask).sum()),
        violations=Counter({c: int(violations[c].sum()) for c in violations.columns if violations[c].any()}),
    )
    log.info(
        "Outlier filter kept %d of %d rows (removed %d, %.2f%%); violations per clause: %s",
        report.rows_out,
        report.rows_in,
        report.removed,
        report.removed_pct,
        dict(report.violations),
    )
    if report.removed:
        save_outlier_report(data, violations, cfg)

    return data.loc[~remove_mask].reset_index(drop=True), report


# ───────────── CLI smoke-test ───────────── #
if __name__ == "__main__":  # pragma: no cover
    import argparse, json

    from data_loading import load_trip_files
    from time_features import derive_temporal_features

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    ap = argparse.ArgumentParser(description="Outlier filter quick-test")
    ap.add_argument("csv", nargs="+")
    ap.add_argument("--out", default="output")
    ns = ap.parse_args()

    trips, _ = load_trip_files(ns.csv)
    clean_df, rep = remove_outliers(derive_temporal_features(trips), config=PlausibilityConfig(log_dir=ns.out))
    print(json.dumps({"kept_rows": rep.rows_out, "removed": rep.removed, **rep.violations}, indent=2))
