# time_features.py
# Temporal feature derivation. Derived columns are appended to a copy; the
# parsed timestamp columns themselves are never modified.
import logging
import traceback

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin

from config import DERIVED_COLUMNS, ORDER_COL

__all__ = [
    "TemporalFeatureDeriver",
    "derive_temporal_features",
]

_EPOCH = pd.Timestamp(0, tz="UTC")


def derive_temporal_features(df, pickup_col="pickup_datetime", dropoff_col="dropoff_datetime"):
    """Return a copy of *df* with duration and calendar features added.

    * ``trip_duration``: dropoff minus pickup in seconds; negative values are
      kept for the outlier filter to reject.
    * ``pickup_hour`` / ``dropoff_hour``: 0-23 in the timestamps' own zone.
    * ``weekday``: pickup day of week, Monday == 0 ... Sunday == 6.
    * ``timestamp``: pickup as seconds since the Unix epoch (float64).

    Day-of-month and day-of-year are deliberately not derived.
    """
    for col in (pickup_col, dropoff_col):
        if col not in df.columns:
            raise ValueError(f"Timestamp column '{col}' not found in input data.")
        if not pd.api.types.is_datetime64_any_dtype(df[col]):
            raise TypeError(f"Column '{col}' must be parsed to datetimes before deriving features.")

    out = df.copy()
    pickup = out[pickup_col]
    dropoff = out[dropoff_col]

    out["trip_duration"] = (dropoff - pickup).dt.total_seconds().astype(np.float64)
    out["pickup_hour"] = pickup.dt.hour.astype(np.int64)
    out["dropoff_hour"] = dropoff.dt.hour.astype(np.int64)
    out["weekday"] = pickup.dt.dayofweek.astype(np.int64)
    if pickup.dt.tz is None:
        out[ORDER_COL] = (pickup - _EPOCH.tz_localize(None)).dt.total_seconds().astype(np.float64)
    else:
        out[ORDER_COL] = (pickup - _EPOCH).dt.total_seconds().astype(np.float64)
    return out


class TemporalFeatureDeriver(BaseEstimator, TransformerMixin):
    """
    Stateless transformer wrapper around :func:`derive_temporal_features`.
    """
    def __init__(self, pickup_col="pickup_datetime", dropoff_col="dropoff_datetime"):
        self.pickup_col = pickup_col
        self.dropoff_col = dropoff_col

    def fit(self, X, y=None):
        missing = [c for c in (self.pickup_col, self.dropoff_col) if c not in X.columns]
        if missing:
            raise ValueError(f"Timestamp columns {missing} not found in input data during fit.")
        self.n_features_in_ = X.shape[1]
        return self

    def transform(self, X):
        try:
            return derive_temporal_features(X, self.pickup_col, self.dropoff_col)
        except Exception as e:
            logging.error(f"Error in TemporalFeatureDeriver.transform: {str(e)}")
            logging.error(traceback.format_exc())
            raise

    def get_feature_names_out(self, input_features=None):
        return np.array(list(DERIVED_COLUMNS), dtype=object)
