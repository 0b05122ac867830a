import pandas as pd
import pytest

from trip_factory import raw_frame, raw_row, write_csv
from data_cleaning import normalize_schema
from data_loading import load_trip_files, read_raw_file
from exceptions import MalformedTimestamp, SchemaMismatch


def test_columns_assigned_positionally_and_typed():
    df, report = normalize_schema(raw_frame([raw_row(flag=" y "), raw_row(pu="1", passengers="2.0")]))
    assert list(df.columns)[:3] == ["vendor_id", "pickup_datetime", "dropoff_datetime"]
    assert str(df["passenger_count"].dtype) == "Int64"
    assert df.loc[1, "passenger_count"] == 2
    assert df.loc[0, "store_and_fwd_flag"] == "Y"
    assert df.loc[1, "pickup_location_id"] == 1
    assert df["fare_amount"].dtype == "float64"
    assert pd.api.types.is_datetime64_any_dtype(df["pickup_datetime"])
    assert report.rows_read == 2 and report.rows_kept == 2


def test_wrong_width_is_schema_mismatch():
    raw = raw_frame([raw_row()]).iloc[:, :16]
    with pytest.raises(SchemaMismatch) as exc:
        normalize_schema(raw)
    assert exc.value.affected == 1


def test_short_row_in_file_is_schema_mismatch(tmp_path):
    rows = [raw_row(), raw_row()[:15], raw_row()]
    path = write_csv(tmp_path / "short.csv", rows)
    with pytest.raises(SchemaMismatch) as exc:
        load_trip_files([path])
    assert exc.value.affected == 1
    assert exc.value.source == str(path)


def test_trailing_empty_field_is_not_a_short_row(tmp_path):
    path = write_csv(tmp_path / "trailing.csv", [raw_row(), raw_row(surcharge="", total="")])
    raw = read_raw_file(path)
    assert raw.shape == (2, 17)
    assert raw.iloc[1, 16] == ""
    df, _ = load_trip_files([path])
    assert len(df) == 2
    assert pd.isna(df.loc[1, "total_amount"])


def test_long_row_in_file_is_schema_mismatch(tmp_path):
    rows = [raw_row(), raw_row() + ["extra"], raw_row()]
    path = write_csv(tmp_path / "long.csv", rows)
    with pytest.raises(SchemaMismatch):
        load_trip_files([path])


def test_empty_field_is_not_a_short_row(tmp_path):
    path = write_csv(tmp_path / "gaps.csv", [raw_row(tolls="", flag="")])
    df, report = load_trip_files([path])
    assert len(df) == 1
    assert pd.isna(df.loc[0, "tolls_amount"])
    assert pd.isna(df.loc[0, "store_and_fwd_flag"])
    assert report.coerced_missing == {}


def test_malformed_timestamp_raises_under_raise_policy():
    rows = [raw_row(), raw_row(pickup="2023/01/02 08:00"), raw_row(dropoff="not a date")]
    with pytest.raises(MalformedTimestamp) as exc:
        normalize_schema(raw_frame(rows), timestamp_policy="raise")
    assert exc.value.affected == 2
    assert "2023/01/02 08:00" in exc.value.examples


def test_malformed_timestamp_dropped_and_counted():
    rows = [raw_row(), raw_row(pickup="2023-13-01 00:00:00"), raw_row(pickup="")]
    df, report = normalize_schema(raw_frame(rows), timestamp_policy="drop")
    assert len(df) == 1
    assert report.dropped["malformed_timestamp"] == 2
    assert report.rows_dropped == 2
    assert df["pickup_datetime"].notna().all()


def test_nonexistent_local_time_is_malformed():
    # 02:30 does not exist in New York on the spring-forward date
    rows = [raw_row(pickup="2023-03-12 02:30:00", dropoff="2023-03-12 03:10:00")]
    df, report = normalize_schema(raw_frame(rows), timestamp_policy="drop", tz="America/New_York")
    assert df.empty
    assert report.dropped["malformed_timestamp"] == 1


def test_unknown_policy_rejected():
    with pytest.raises(ValueError):
        normalize_schema(raw_frame([raw_row()]), timestamp_policy="zero-fill")


def test_unparseable_numbers_are_counted_not_dropped():
    df, report = normalize_schema(raw_frame([raw_row(fare="abc"), raw_row(passengers="1.5")]))
    assert len(df) == 2
    assert pd.isna(df.loc[0, "fare_amount"])
    assert pd.isna(df.loc[1, "passenger_count"])
    assert report.coerced_missing["fare_amount"] == 1
    assert report.coerced_missing["passenger_count"] == 1


def test_load_concatenates_files_and_merges_reports(tmp_path):
    a = write_csv(tmp_path / "a.csv", [raw_row(), raw_row(pickup="bad")])
    b = write_csv(tmp_path / "b.csv", [raw_row(), raw_row()])
    df, report = load_trip_files([a, b], timestamp_policy="drop")
    assert len(df) == 3
    assert report.rows_read == 4
    assert report.dropped["malformed_timestamp"] == 1


def test_read_raw_file_keeps_text(tmp_path):
    path = write_csv(tmp_path / "one.csv", [raw_row(pu="007")])
    raw = read_raw_file(path)
    assert raw.shape == (1, 17)
    assert raw.iloc[0, 7] == "007"


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_trip_files([tmp_path / "nope.csv"])
