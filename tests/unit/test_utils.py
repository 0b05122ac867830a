import numpy as np
import pytest
import scipy.sparse as sp

from model_interpretation import format_importance_table, importance_report
from utils import load_matrix_bundle, load_model_bundle, save_matrix_bundle, save_model_bundle


def test_matrix_bundle_round_trip_is_bit_identical(tmp_path):
    rng = np.random.RandomState(0)
    X = sp.random(50, 12, density=0.3, format="csr", random_state=rng)
    y = rng.normal(size=50)
    names = [f"f{i}" for i in range(12)]
    path = save_matrix_bundle(tmp_path / "m.joblib", X, y, names, timestamps=np.arange(50.0))

    bundle = load_matrix_bundle(path)
    assert bundle["feature_names"] == names
    np.testing.assert_array_equal(bundle["X"].indptr, X.indptr)
    np.testing.assert_array_equal(bundle["X"].indices, X.indices)
    assert bundle["X"].data.tobytes() == X.data.tobytes()
    assert bundle["y"].tobytes() == y.tobytes()
    np.testing.assert_array_equal(bundle["timestamps"], np.arange(50.0))
    assert not (tmp_path / "m.joblib.tmp").exists()


def test_matrix_bundle_shape_checks(tmp_path):
    X = sp.csr_matrix(np.ones((3, 2)))
    with pytest.raises(ValueError):
        save_matrix_bundle(tmp_path / "bad.joblib", X, np.ones(4), ["a", "b"])
    with pytest.raises(ValueError):
        save_matrix_bundle(tmp_path / "bad.joblib", X, np.ones(3), ["a"])
    assert not (tmp_path / "bad.joblib").exists()


def test_model_bundle_round_trip(tmp_path):
    path = save_model_bundle(
        tmp_path / "models" / "tip.joblib",
        {"weights": [1, 2]},
        feature_names=["a", "b"],
        config={"eta": 0.3},
        metrics={"model": {"rmse": 1.0}},
    )
    bundle = load_model_bundle(path)
    assert bundle["model"] == {"weights": [1, 2]}
    assert bundle["feature_names"] == ["a", "b"]
    assert bundle["encoder"] is None
    assert bundle["config"] == {"eta": 0.3}


def test_load_model_bundle_rejects_matrix_bundle(tmp_path):
    path = save_matrix_bundle(tmp_path / "m.joblib", sp.csr_matrix((1, 1)), np.zeros(1), ["a"])
    with pytest.raises(KeyError):
        load_model_bundle(path)


def test_importance_report_ranks_and_fills_zeros():
    report = importance_report({2: 5.0, 0: 1.0, 3: 5.0}, ["a", "b", "c", "d"])
    assert report["Feature"].tolist() == ["c", "d", "a", "b"]
    assert report["Rank"].tolist() == [1, 2, 3, 4]
    assert report.loc[3, "Importance"] == 0.0
    assert report["Index"].tolist() == [2, 3, 0, 1]
    text = format_importance_table(report, top_n=2)
    assert "c" in text and "b" not in text


def test_importance_report_rejects_out_of_range_index():
    with pytest.raises(IndexError):
        importance_report({7: 1.0}, ["a", "b"])
