#!/usr/bin/env python3
"""
feature_engineering.py

Sparse-first trip encoder
  • Numeric pass-through (label and ordering column included, addressable by name)
  • One indicator column per observed category value, no ordinal stand-ins
  • Category → column tables are frozen at fit time and never mutated
  • Unseen categories after fit raise UnknownCategory instead of zero-filling
  • Returns CSR wrapped in EncodedMatrix together with its column names
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import List, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd
import scipy.sparse as sp
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.utils.validation import check_is_fitted

from config import CATEGORICAL_FEATURES, MATRIX_NUMERIC_FEATURES
from exceptions import UnknownCategory

__all__ = ["CategoryTable", "EncodedMatrix", "TripFeatureEncoder", "category_keys"]
log = logging.getLogger(__name__)

MISSING_KEY = "missing"
SEP = "__"


def category_keys(values: pd.Series) -> np.ndarray:
    """Canonical string key per value ("132", "Y", ...); NA becomes 'missing'."""
    return values.astype("string").fillna(MISSING_KEY).to_numpy(dtype=object)


def _level_sort_key(level: str) -> tuple:
    # finite numeric ids in numeric order, then free text ("NAN", "INF" included)
    try:
        num = float(level)
    except ValueError:
        return (1, 0.0, level)
    if not math.isfinite(num):
        return (1, 0.0, level)
    return (0, num, level)


@dataclass(frozen=True)
class CategoryTable:
    """Enumerated values of one categorical field and their column offsets."""

    name: str
    levels: Tuple[str, ...]
    _index: dict = field(init=False, repr=False, compare=False, hash=False)

    def __post_init__(self):
        if len(set(self.levels)) != len(self.levels):
            raise ValueError(f"Duplicate levels for field '{self.name}'")
        object.__setattr__(self, "_index", {lvl: i for i, lvl in enumerate(self.levels)})

    @classmethod
    def from_values(cls, name: str, values: pd.Series) -> "CategoryTable":
        uniq = pd.unique(category_keys(values))
        return cls(name, tuple(sorted((str(u) for u in uniq), key=_level_sort_key)))

    @property
    def index(self) -> Mapping[str, int]:
        return MappingProxyType(self._index)

    def __len__(self) -> int:
        return len(self.levels)

    def __contains__(self, level: object) -> bool:
        return level in self._index

    def codes(self, values: pd.Series) -> np.ndarray:
        """Position of each value in ``levels``; -1 marks an unseen value."""
        keys = category_keys(values)
        return pd.Index(self.levels, dtype=object).get_indexer(keys).astype(np.int64)


@dataclass
class EncodedMatrix:
    X: sp.csr_matrix
    feature_names: List[str]
    feature_index: dict = field(init=False, repr=False)

    def __post_init__(self):
        if self.X.shape[1] != len(self.feature_names):
            raise ValueError(
                f"Matrix has {self.X.shape[1]} columns but {len(self.feature_names)} names were given"
            )
        self.feature_index = {n: i for i, n in enumerate(self.feature_names)}

    @property
    def n_rows(self) -> int:
        return int(self.X.shape[0])

    def column(self, name: str) -> np.ndarray:
        """Dense copy of one column, looked up by name."""
        if name not in self.feature_index:
            raise KeyError(f"Column '{name}' not in encoded matrix")
        return self.X[:, self.feature_index[name]].toarray().ravel()


class TripFeatureEncoder(BaseEstimator, TransformerMixin):
    # ───────────────────────── INIT ────────────────────────── #
    def __init__(
        self,
        numeric: Sequence[str] | None = None,
        categorical: Sequence[str] | None = None,
        *,
        dtype=np.float64,
    ) -> None:
        self.numeric = list(MATRIX_NUMERIC_FEATURES if numeric is None else numeric)
        self.categorical = list(CATEGORICAL_FEATURES if categorical is None else categorical)
        # float64 keeps epoch-second timestamps exact
        self.dtype = dtype

    # ───────────────────────── FIT ────────────────────────── #
    def fit(self, X: pd.DataFrame, y=None):  # noqa: D401
        if not isinstance(X, pd.DataFrame):
            raise TypeError("TripFeatureEncoder expects a pandas DataFrame")
        missing = [c for c in self.numeric + self.categorical if c not in X.columns]
        if missing:
            raise KeyError(f"Columns missing during fit: {missing}")

        self.tables_: dict[str, CategoryTable] = {
            col: CategoryTable.from_values(col, X[col]) for col in self.categorical
        }

        self._sources: list[tuple[str, str | None]] = [(c, None) for c in self.numeric]
        for col, table in self.tables_.items():
            self._sources += [(col, lvl) for lvl in table.levels]

        self.feature_names_out_: List[str] = list(self.numeric) + [
            f"{col}{SEP}{lvl}" for col, lvl in self._sources[len(self.numeric):]
        ]
        self.feature_index_ = {n: i for i, n in enumerate(self.feature_names_out_)}
        log.info(
            "Encoder fitted on %d rows: %d numeric + %d indicator columns",
            len(X),
            len(self.numeric),
            len(self.feature_names_out_) - len(self.numeric),
        )
        return self

    # ─────────────────────── UNSEEN VALUES ─────────────────────── #
    def unknown_mask(self, X: pd.DataFrame) -> pd.Series:
        """True for rows holding at least one value outside the frozen tables."""
        check_is_fitted(self, "tables_")
        mask = np.zeros(len(X), dtype=bool)
        for col, table in self.tables_.items():
            mask |= table.codes(X[col]) == -1
        return pd.Series(mask, index=X.index)

    def unknown_values(self, X: pd.DataFrame) -> dict[str, list[str]]:
        check_is_fitted(self, "tables_")
        found: dict[str, list[str]] = {}
        for col, table in self.tables_.items():
            keys = category_keys(X[col])
            unseen = sorted({k for k in keys if k not in table}, key=_level_sort_key)
            if unseen:
                found[col] = unseen
        return found

    # ──────────────────────── TRANSFORM ──────────────────────── #
    def transform(self, X: pd.DataFrame) -> EncodedMatrix:
        check_is_fitted(self, "feature_names_out_")
        if not isinstance(X, pd.DataFrame):
            raise TypeError("transform expects a pandas DataFrame")

        unknown = self.unknown_mask(X)
        if unknown.any():
            raise UnknownCategory(self.unknown_values(X), affected=int(unknown.sum()))

        n = len(X)
        rows = np.arange(n, dtype=np.int64)
        row_parts: list[np.ndarray] = []
        col_parts: list[np.ndarray] = []
        data_parts: list[np.ndarray] = []

        # ---------- numeric block (explicit entries, zeros included) ----------
        for j, col_name in enumerate(self.numeric):
            vals = pd.to_numeric(X[col_name], errors="coerce").to_numpy(dtype=np.float64, na_value=np.nan)
            row_parts.append(rows)
            col_parts.append(np.full(n, j, dtype=np.int64))
            data_parts.append(vals.astype(self.dtype))

        # ---------- categorical one-hot ----------
        offset = len(self.numeric)
        ones = np.ones(n, dtype=self.dtype)
        for col, table in self.tables_.items():
            codes = table.codes(X[col])
            row_parts.append(rows)
            col_parts.append(offset + codes)
            data_parts.append(ones)
            offset += len(table)

        shape = (n, len(self.feature_names_out_))
        if row_parts:
            mat = sp.coo_matrix(
                (np.concatenate(data_parts), (np.concatenate(row_parts), np.concatenate(col_parts))),
                shape=shape,
                dtype=self.dtype,
            ).tocsr()
        else:
            mat = sp.csr_matrix(shape, dtype=self.dtype)
        mat.sort_indices()
        return EncodedMatrix(mat, list(self.feature_names_out_))

    # ──────────────────────── LOOKUPS ──────────────────────── #
    def column_index(self, name: str) -> int:
        check_is_fitted(self, "feature_index_")
        return self.feature_index_[name]

    def decode_column(self, index: int) -> tuple[str, str | None]:
        """(field, category) behind an output column; category is None for numeric columns."""
        check_is_fitted(self, "feature_names_out_")
        return self._sources[index]

    def decode_categories(self, encoded: EncodedMatrix) -> pd.DataFrame:
        """Recover each row's category keys from the indicator columns."""
        check_is_fitted(self, "tables_")
        if encoded.n_rows == 0:
            return pd.DataFrame({col: pd.Series(dtype=object) for col in self.tables_})
        X = encoded.X.tocsc()
        out = {}
        offset = len(self.numeric)
        for col, table in self.tables_.items():
            block = X[:, offset:offset + len(table)].tocsr()
            hits = np.asarray(block.sum(axis=1)).ravel()
            if np.any(hits != 1):
                raise ValueError(f"Indicator block for '{col}' is not one-hot")
            pos = np.asarray(block.argmax(axis=1)).ravel()
            out[col] = [table.levels[p] for p in pos]
            offset += len(table)
        return pd.DataFrame(out)

    # ------------------------------------------------------------------ #
    def get_feature_names_out(self, input_features=None):
        """Return output feature names, sklearn-compatible.

        Parameters
        ----------
        input_features : Ignored, kept for sklearn API compatibility.
        """
        check_is_fitted(self, "feature_names_out_")
        return np.array(self.feature_names_out_, dtype=object)
