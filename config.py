"""Project configuration (single source of truth).

This file defines default paths, the raw trip schema and the knobs used across
ingestion, training and prediction. Most knobs can be overridden through
environment variables so the pipeline runs without CLI flags.
"""

import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

DATA_DIR = os.getenv("TRIP_DATA_DIR", os.path.join(BASE_DIR, "data"))
RAW_DATA_DIR = os.path.join(DATA_DIR, "raw")
PROCESSED_DATA_DIR = os.path.join(DATA_DIR, "processed")

MODEL_DIR = os.path.join(BASE_DIR, "models")
MODEL_PATH = os.path.join(MODEL_DIR, "tip_model.joblib")

# Artifacts directory (split bundles, removed rows, outlier report, ...)
ARTIFACT_DIR = os.getenv("TRIP_ARTIFACT_DIR", os.path.join(BASE_DIR, "artifacts"))
TRAIN_SPLIT_PATH = os.path.join(PROCESSED_DATA_DIR, "train_split.joblib")
TEST_SPLIT_PATH = os.path.join(PROCESSED_DATA_DIR, "test_split.joblib")
REMOVED_ROWS_PATH = os.path.join(ARTIFACT_DIR, "removed_rows.csv")

# -------------------------- Raw trip schema -------------------------- #
# Source files carry no header; names are assigned positionally.
RAW_COLUMNS = (
    "vendor_id",
    "pickup_datetime",
    "dropoff_datetime",
    "passenger_count",
    "trip_distance",
    "rate_code_id",
    "store_and_fwd_flag",
    "pickup_location_id",
    "dropoff_location_id",
    "payment_type",
    "fare_amount",
    "extra",
    "mta_tax",
    "tip_amount",
    "tolls_amount",
    "improvement_surcharge",
    "total_amount",
)

TIMESTAMP_COLUMNS = ("pickup_datetime", "dropoff_datetime")
INTEGER_CATEGORY_COLUMNS = (
    "vendor_id",
    "rate_code_id",
    "pickup_location_id",
    "dropoff_location_id",
    "payment_type",
)
FLAG_COLUMNS = ("store_and_fwd_flag",)
NUMERIC_COLUMNS = (
    "passenger_count",
    "trip_distance",
    "fare_amount",
    "extra",
    "mta_tax",
    "tip_amount",
    "tolls_amount",
    "improvement_surcharge",
    "total_amount",
)

LABEL_COL = "tip_amount"
ORDER_COL = "timestamp"

# Derived temporal fields (day-of-month / day-of-year intentionally absent)
DERIVED_COLUMNS = ("trip_duration", "pickup_hour", "dropoff_hour", "weekday", ORDER_COL)

CATEGORICAL_FEATURES = (
    "dropoff_hour",
    "pickup_hour",
    "weekday",
    "pickup_location_id",
    "dropoff_location_id",
    "vendor_id",
    "rate_code_id",
    "payment_type",
    "store_and_fwd_flag",
)

# Numeric block of the feature matrix; label and ordering column included so
# the splitter can address them by name before they leave the model view.
MATRIX_NUMERIC_FEATURES = NUMERIC_COLUMNS + ("trip_duration", ORDER_COL)

# -------------------------- Parsing knobs -------------------------- #
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
TRIP_TIMEZONE = os.getenv("TRIP_TIMEZONE", "UTC")
# Monday == 0 ... Sunday == 6
WEEKDAY_CONVENTION = "monday=0"

MALFORMED_TIMESTAMP_POLICY = os.getenv("MALFORMED_TIMESTAMP_POLICY", "drop").lower()
UNKNOWN_CATEGORY_POLICY = os.getenv("UNKNOWN_CATEGORY_POLICY", "raise").lower()

# -------------------------- Plausibility bounds -------------------------- #
MAX_PASSENGERS_EXCLUSIVE = 10
MAX_TRIP_DISTANCE = float(os.getenv("MAX_TRIP_DISTANCE", "1000"))
MAX_FARE_AMOUNT = 1000.0
MAX_TOTAL_AMOUNT = 1000.0
MAX_TRIP_DURATION_SEC = 3 * 60 * 60
WRITE_OUTLIER_REPORT = os.getenv("WRITE_OUTLIER_REPORT", "1").lower() in {"1", "true", "yes"}

# -------------------------- Split & model -------------------------- #
TRAIN_FRAC = float(os.getenv("TRAIN_FRAC", "0.8"))
RANDOM_STATE = 42
XGB_NTHREAD = int(os.getenv("XGB_NTHREAD", "4"))
IMPORTANCE_TYPE = os.getenv("IMPORTANCE_TYPE", "gain")
IMPORTANCE_TOP_N = int(os.getenv("IMPORTANCE_TOP_N", "20"))

EXTRA_DIRS = [
    MODEL_DIR,
    DATA_DIR,
    RAW_DATA_DIR,
    PROCESSED_DATA_DIR,
    ARTIFACT_DIR,
]
