# tests/unit/test_selectors.py

import pandas as pd
import pytest

from housing_prep.preprocessing.errors import ConfigurationError
from housing_prep.preprocessing.selectors import (
    ByName,
    ByPattern,
    ByRole,
    ByType,
    all_categorical_predictors,
    all_numeric_predictors,
    role_of,
)


@pytest.fixture
def mixed_frame() -> pd.DataFrame:
    """One column per dtype family plus an outcome."""
    return pd.DataFrame({
        "num": [1.0, 2.0],
        "count": [1, 2],
        "flag": [True, False],
        "cat": ["a", "b"],
        "grade": pd.Categorical(["x", "y"]),
        "y": [0.1, 0.2],
    })


ROLES = {"y": "outcome"}


def test_role_defaults_to_predictor():
    assert role_of("anything", None) == "predictor"
    assert role_of("anything", ROLES) == "predictor"
    assert role_of("y", ROLES) == "outcome"


# --- ByName ---

def test_by_name_keeps_requested_order(mixed_frame: pd.DataFrame):
    assert ByName(["cat", "num"]).resolve(mixed_frame) == ("cat", "num")


def test_by_name_accepts_single_string(mixed_frame: pd.DataFrame):
    assert ByName("num").resolve(mixed_frame) == ("num",)


def test_by_name_unknown_column(mixed_frame: pd.DataFrame):
    with pytest.raises(ConfigurationError, match="missing_col"):
        ByName(("num", "missing_col")).resolve(mixed_frame)


def test_by_name_empty():
    with pytest.raises(ConfigurationError):
        ByName(())


# --- ByRole ---

def test_by_role(mixed_frame: pd.DataFrame):
    assert ByRole("outcome").resolve(mixed_frame, ROLES) == ("y",)
    assert "y" not in ByRole("predictor").resolve(mixed_frame, ROLES)
    assert len(ByRole("predictor").resolve(mixed_frame)) == 6


# --- ByType ---

def test_by_type_numeric_excludes_booleans(mixed_frame: pd.DataFrame):
    assert ByType("numeric").resolve(mixed_frame) == ("num", "count", "y")


def test_by_type_categorical(mixed_frame: pd.DataFrame):
    assert ByType("categorical").resolve(mixed_frame) == ("flag", "cat", "grade")


def test_by_type_restricted_to_role(mixed_frame: pd.DataFrame):
    assert all_numeric_predictors().resolve(mixed_frame, ROLES) == ("num", "count")
    assert all_categorical_predictors().resolve(mixed_frame, ROLES) == ("flag", "cat", "grade")


def test_by_type_unknown_tag():
    with pytest.raises(ConfigurationError):
        ByType("text")


# --- ByPattern ---

def test_by_pattern(mixed_frame: pd.DataFrame):
    assert ByPattern("^c").resolve(mixed_frame) == ("count", "cat")
    assert ByPattern("^zzz").resolve(mixed_frame) == ()


def test_by_pattern_invalid_regex():
    with pytest.raises(ConfigurationError):
        ByPattern("[unclosed")


def test_describe():
    assert ByName(("a", "b")).describe() == "ByName(a, b)"
    assert ByType("numeric", role="predictor").describe() == "ByType(numeric, role=predictor)"
