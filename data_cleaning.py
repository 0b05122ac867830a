# data_cleaning.py
"""Schema normalization: positional column names and typed fields."""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from config import (
    FLAG_COLUMNS,
    INTEGER_CATEGORY_COLUMNS,
    MALFORMED_TIMESTAMP_POLICY,
    NUMERIC_COLUMNS,
    RAW_COLUMNS,
    TIMESTAMP_COLUMNS,
    TIMESTAMP_FORMAT,
    TRIP_TIMEZONE,
)
from exceptions import MalformedTimestamp, SchemaMismatch

__all__ = ["NormalizationReport", "normalize_schema", "parse_timestamps"]

_POLICIES = {"drop", "raise"}
_MAX_EXAMPLES = 5


@dataclass
class NormalizationReport:
    rows_read: int = 0
    rows_kept: int = 0
    dropped: Counter = field(default_factory=Counter)
    # column -> number of non-empty values that failed numeric parsing
    coerced_missing: Counter = field(default_factory=Counter)
    examples: dict[str, list[str]] = field(default_factory=dict)

    @property
    def rows_dropped(self) -> int:
        return int(sum(self.dropped.values()))

    def merge(self, other: "NormalizationReport") -> "NormalizationReport":
        examples = {k: list(v) for k, v in self.examples.items()}
        for reason, vals in other.examples.items():
            examples[reason] = (examples.get(reason, []) + list(vals))[:_MAX_EXAMPLES]
        return NormalizationReport(
            rows_read=self.rows_read + other.rows_read,
            rows_kept=self.rows_kept + other.rows_kept,
            dropped=self.dropped + other.dropped,
            coerced_missing=self.coerced_missing + other.coerced_missing,
            examples=examples,
        )


def _check_width(raw: pd.DataFrame, source: str | None) -> None:
    expected = len(RAW_COLUMNS)
    where = f"{source}: " if source else ""
    if raw.shape[1] != expected:
        raise SchemaMismatch(
            f"{where}expected {expected} fields per row, got {raw.shape[1]}",
            source=source,
            affected=len(raw),
        )
    # read_raw_file pads short rows with NaN; empty fields stay ""
    short = raw.isna().any(axis=1)
    if short.any():
        first = int(np.flatnonzero(short.to_numpy())[0])
        raise SchemaMismatch(
            f"{where}{int(short.sum())} row(s) have fewer than {expected} fields (first at row {first})",
            source=source,
            affected=int(short.sum()),
        )


def parse_timestamps(text: pd.Series, tz: str = TRIP_TIMEZONE) -> pd.Series:
    """Parse ``YYYY-MM-DD HH:MM:SS`` strings into tz-aware datetimes.

    Anything that does not match the pattern, or names a wall-clock time that
    does not exist (or is ambiguous) in ``tz``, becomes NaT.
    """
    parsed = pd.to_datetime(text.astype(str).str.strip(), format=TIMESTAMP_FORMAT, errors="coerce")
    return parsed.dt.tz_localize(tz, ambiguous="NaT", nonexistent="NaT")


def _parse_int(text: pd.Series) -> tuple[pd.Series, int]:
    stripped = text.astype(str).str.strip()
    num = pd.to_numeric(stripped, errors="coerce")
    # integral floats such as "1.0" are accepted, "1.5" is not
    num = num.where(num == np.round(num))
    failed = int((num.isna() & (stripped != "")).sum())
    return num.astype("Int64"), failed


def _parse_float(text: pd.Series) -> tuple[pd.Series, int]:
    stripped = text.astype(str).str.strip()
    num = pd.to_numeric(stripped, errors="coerce").astype("float64")
    failed = int((num.isna() & (stripped != "")).sum())
    return num, failed


def normalize_schema(
    raw: pd.DataFrame,
    *,
    timestamp_policy: str = MALFORMED_TIMESTAMP_POLICY,
    source: str | None = None,
    tz: str = TRIP_TIMEZONE,
) -> tuple[pd.DataFrame, NormalizationReport]:
    """Assign the fixed column names and return typed trip records.

    Raises ``SchemaMismatch`` on any width problem. Rows with a malformed
    timestamp either abort with ``MalformedTimestamp`` (policy ``raise``) or
    are dropped and counted (policy ``drop``); they are never filled.
    """
    if timestamp_policy not in _POLICIES:
        raise ValueError(f"timestamp_policy must be one of {sorted(_POLICIES)} (got {timestamp_policy})")

    _check_width(raw, source)
    report = NormalizationReport(rows_read=len(raw))

    df = raw.copy()
    df.columns = list(RAW_COLUMNS)
    df = df.reset_index(drop=True)

    bad = pd.Series(False, index=df.index)
    for col in TIMESTAMP_COLUMNS:
        parsed = parse_timestamps(df[col], tz)
        bad_col = parsed.isna()
        if bad_col.any():
            report.examples.setdefault("malformed_timestamp", [])
            report.examples["malformed_timestamp"] += df.loc[bad_col, col].astype(str).head(_MAX_EXAMPLES).tolist()
            report.examples["malformed_timestamp"] = report.examples["malformed_timestamp"][:_MAX_EXAMPLES]
        bad |= bad_col
        df[col] = parsed

    n_bad = int(bad.sum())
    if n_bad:
        if timestamp_policy == "raise":
            raise MalformedTimestamp(
                f"{source or 'input'}: {n_bad} row(s) with malformed timestamps",
                examples=report.examples.get("malformed_timestamp"),
                affected=n_bad,
            )
        report.dropped["malformed_timestamp"] += n_bad
        logging.warning("Dropping %d row(s) with malformed timestamps from %s", n_bad, source or "input")
        df = df.loc[~bad].reset_index(drop=True)

    for col in INTEGER_CATEGORY_COLUMNS + ("passenger_count",):
        df[col], failed = _parse_int(df[col])
        if failed:
            report.coerced_missing[col] += failed
    for col in NUMERIC_COLUMNS:
        if col == "passenger_count":
            continue
        df[col], failed = _parse_float(df[col])
        if failed:
            report.coerced_missing[col] += failed
    for col in FLAG_COLUMNS:
        flag = df[col].astype(str).str.strip().str.upper()
        df[col] = flag.mask(flag == "").astype("string")

    if report.coerced_missing:
        logging.info("Unparseable values left missing: %s", dict(report.coerced_missing))

    report.rows_kept = len(df)
    return df, report
