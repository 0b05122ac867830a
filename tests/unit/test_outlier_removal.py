import numpy as np
import pandas as pd

from data_cleaning import normalize_schema
from outlier_removal import PlausibilityConfig, clause_violations, get_outlier_mask, remove_outliers
from time_features import derive_temporal_features
from trip_factory import raw_frame, raw_row, synthetic_rows


def _enriched(rows):
    df, _ = normalize_schema(raw_frame(rows))
    return derive_temporal_features(df)


def test_scenario_passenger_count_bounds():
    counts = ["0", "1", "2", "9", "10", "1", "2", "9", "0", "10"]
    df = _enriched([raw_row(passengers=c) for c in counts])
    clean, report = remove_outliers(df)
    assert sorted(clean["passenger_count"].astype(int).tolist()) == [1, 1, 2, 2, 9, 9]
    assert report.rows_in == 10
    assert report.removed == 4
    assert report.violations == {"passenger_count": 4}


def test_each_clause_rejects_its_violation():
    rows = [
        raw_row(),                                                    # ok
        raw_row(distance="0"),                                        # distance
        raw_row(distance="1000.5"),                                   # distance upper bound
        raw_row(fare="0"),                                            # fare
        raw_row(fare="1000.01", total="1001"),                        # fare + total
        raw_row(tip="-0.5"),                                          # tip
        raw_row(tip="20", total="15.3"),                              # tip > total
        raw_row("2023-01-02 08:00:00", "2023-01-02 08:00:00"),        # duration 0
        raw_row("2023-01-02 08:00:00", "2023-01-02 11:00:01"),        # duration > 3h
        raw_row("2023-01-02 08:00:00", "2023-01-02 07:59:00"),        # negative duration
        raw_row("2023-01-02 08:00:00", "2023-01-02 11:00:00", fare="1000", total="1000", tip="0"),  # boundary ok
    ]
    clean, report = remove_outliers(_enriched(rows))
    assert len(clean) == 2
    assert report.violations["trip_distance"] == 2
    assert report.violations["fare_amount"] == 2
    assert report.violations["total_amount"] == 1
    assert report.violations["tip_amount"] == 2
    assert report.violations["trip_duration"] == 3


def test_missing_values_never_pass():
    df = _enriched([raw_row(passengers=""), raw_row(fare="x"), raw_row()])
    mask = get_outlier_mask(df)
    assert mask.tolist() == [True, True, False]


def test_distance_upper_bound_can_be_disabled():
    df = _enriched([raw_row(distance="5000")])
    assert get_outlier_mask(df).iloc[0]
    assert not get_outlier_mask(df, PlausibilityConfig(max_trip_distance=None)).iloc[0]


def test_output_is_subset_and_filter_is_idempotent():
    rows = synthetic_rows(40, seed=3)
    rows[5] = raw_row(passengers="12")
    rows[17] = raw_row(tip="-1")
    df = _enriched(rows)
    once, r1 = remove_outliers(df)
    twice, r2 = remove_outliers(once)
    assert r1.removed == 2
    assert r2.removed == 0
    pd.testing.assert_frame_equal(once, twice)
    # every surviving row exists in the input
    merged = once.merge(df, how="left", indicator=True)
    assert (merged["_merge"] == "both").all()


def test_survivors_respect_bounds():
    rng = np.random.RandomState(7)
    rows = []
    for _ in range(60):
        dur = int(rng.randint(-600, 14000))
        pickup = pd.Timestamp("2023-01-10 09:00:00")
        tip = float(rng.uniform(-2, 30))
        total = float(rng.uniform(-5, 40))
        rows.append(raw_row(
            pickup.strftime("%Y-%m-%d %H:%M:%S"),
            (pickup + pd.Timedelta(seconds=dur)).strftime("%Y-%m-%d %H:%M:%S"),
            tip=f"{tip:.2f}",
            total=f"{total:.2f}",
        ))
    clean, report = remove_outliers(_enriched(rows))
    assert len(clean) + report.removed == 60
    assert ((clean["trip_duration"] > 0) & (clean["trip_duration"] <= 10800)).all()
    assert ((clean["tip_amount"] >= 0) & (clean["tip_amount"] <= clean["total_amount"])).all()


def test_input_untouched_and_report_written(tmp_path):
    df = _enriched([raw_row(), raw_row(passengers="0")])
    before = df.copy()
    clean, _ = remove_outliers(df, config=PlausibilityConfig(log_dir=tmp_path))
    pd.testing.assert_frame_equal(df, before)
    report = pd.read_csv(tmp_path / "removed_outliers.csv")
    assert len(report) == 1
    assert report.loc[0, "reason"] == "passenger_count"


def test_clause_frame_has_one_column_per_rule():
    df = _enriched([raw_row()])
    v = clause_violations(df, PlausibilityConfig())
    assert list(v.columns) == [
        "passenger_count", "trip_distance", "fare_amount", "total_amount", "tip_amount", "trip_duration",
    ]
    assert not v.to_numpy().any()
