# model_interpretation.py

import logging
from typing import Mapping, Sequence

import pandas as pd


def importance_report(scores: Mapping[int, float], feature_names: Sequence[str]) -> pd.DataFrame:
    """Map index-keyed importance scores back to feature names.

    Features the booster never split on get a score of 0. Ranking is by score
    (descending), ties keep matrix column order.
    """
    n = len(feature_names)
    bad = [i for i in scores if not 0 <= int(i) < n]
    if bad:
        raise IndexError(f"Importance indices {bad[:5]} outside the {n} model features")

    feature_importance_df = pd.DataFrame({
        'Index': range(n),
        'Feature': list(feature_names),
        'Importance': [float(scores.get(i, 0.0)) for i in range(n)],
    })
    feature_importance_df = feature_importance_df.sort_values(
        by='Importance', ascending=False, kind='mergesort'
    ).reset_index(drop=True)
    feature_importance_df['Rank'] = range(1, n + 1)
    logging.info(f"Importance report built for {n} features ({len(scores)} with non-zero score)")
    return feature_importance_df[['Rank', 'Feature', 'Importance', 'Index']]


def format_importance_table(report: pd.DataFrame, top_n: int = 20) -> str:
    """Plain-text ranked table of the top features."""
    if report.empty:
        return "No features."
    top = report.head(top_n)[['Rank', 'Feature', 'Importance']]
    return top.to_string(index=False, float_format=lambda v: f"{v:.4f}")
