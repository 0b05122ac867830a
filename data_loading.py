# data_loading.py

import logging
from pathlib import Path

import pandas as pd

from config import MALFORMED_TIMESTAMP_POLICY, RAW_COLUMNS
from data_cleaning import NormalizationReport, normalize_schema
from exceptions import SchemaMismatch


def read_raw_file(file_path):
    """Read one header-less trip CSV as untyped text columns.

    Short rows come back padded with NaN while genuinely empty fields stay
    ``""`` (no string is treated as a missing marker), which lets the
    normalizer tell them apart.
    """
    try:
        data = pd.read_csv(
            file_path,
            header=None,
            dtype=str,
            keep_default_na=False,
            na_values=[],
            skip_blank_lines=True,
            encoding="utf-8-sig",
        )
    except pd.errors.EmptyDataError:
        logging.warning(f"Empty trip file: {file_path}")
        return pd.DataFrame(columns=range(len(RAW_COLUMNS)), dtype=str)
    except pd.errors.ParserError as e:
        raise SchemaMismatch(
            f"{file_path}: rows do not have a uniform width of {len(RAW_COLUMNS)} ({e})",
            source=str(file_path),
        ) from e
    logging.info(f"Read {len(data):,} raw rows x {data.shape[1]} fields from {file_path}")
    return data


def load_trip_files(paths, *, timestamp_policy=MALFORMED_TIMESTAMP_POLICY):
    """Read, normalize and concatenate several monthly files.

    A schema problem in any file aborts the whole ingestion. Order across files
    is irrelevant downstream since the splitter sorts by timestamp.
    """
    paths = [Path(p) for p in paths]
    if not paths:
        raise FileNotFoundError("No trip files given")

    frames = []
    report = NormalizationReport()
    for path in paths:
        if not path.exists():
            raise FileNotFoundError(f"File not found at path: {path}")
        raw = read_raw_file(path)
        typed, file_report = normalize_schema(raw, timestamp_policy=timestamp_policy, source=str(path))
        frames.append(typed)
        report = report.merge(file_report)

    data = pd.concat(frames, ignore_index=True) if len(frames) > 1 else frames[0]
    logging.info(
        f"Loaded {len(data):,} trips from {len(paths)} file(s); "
        f"{report.rows_dropped:,} dropped during normalization"
    )
    return data, report
