import pytest

from trip_factory import synthetic_rows, write_csv


@pytest.fixture
def trip_file(tmp_path):
    return write_csv(tmp_path / "yellow_2023_01.csv", synthetic_rows())
