# tests/unit/test_pipeline.py

from typing import Dict

import pandas as pd
import pytest

from housing_prep.preprocessing.errors import (
    ConfigurationError,
    DegenerateColumnError,
    IllegalStateError,
    SchemaMismatchError,
)
from housing_prep.preprocessing.pipeline import (
    FittedPipeline,
    Pipeline,
    apply,
    create_ames_pipeline,
    create_numeric_pipeline,
    load_pipeline,
    save_pipeline,
)
from housing_prep.preprocessing.selectors import ByPattern, ByType
from housing_prep.preprocessing.steps import (
    Encode,
    FittedRescale,
    Interact,
    LogTransform,
    RarePool,
    Rescale,
)


@pytest.fixture
def zone_pipeline() -> Pipeline:
    return (
        Pipeline()
        .add_step(RarePool("Zone", threshold=0.1), name="pool")
        .add_step(Encode("Zone"), name="dummies")
        .add_step(Rescale("Area"), name="normalize")
    )


# --- Construction Tests ---

def test_add_step_returns_new_pipeline():
    """add_step never modifies the pipeline it is called on."""
    empty = Pipeline()
    one = empty.add_step(Rescale())
    two = one.add_step(Encode())

    assert len(empty) == 0
    assert len(one) == 1
    assert [name for name, _ in two.steps] == ["rescale_1", "encode_2"]


def test_duplicate_step_name_raises():
    with pytest.raises(ConfigurationError):
        Pipeline().add_step(Rescale(), name="a").add_step(Encode(), name="a")


def test_add_step_rejects_non_spec():
    with pytest.raises(ConfigurationError):
        Pipeline().add_step("rescale")


def test_with_roles_merges():
    pipeline = Pipeline(roles={"y": "outcome"}).with_roles(id="id")
    assert pipeline.roles == {"y": "outcome", "id": "id"}


# --- Fit / Apply Tests ---

def test_steps_fit_on_previous_output(categorical_frame: pd.DataFrame, zone_pipeline: Pipeline):
    """Encode sees the pooled levels produced by RarePool."""
    fitted = zone_pipeline.fit(categorical_frame)

    assert "Zone_other" in fitted.output_columns
    assert "Zone_D" not in fitted.output_columns
    assert fitted.get_step("dummies").levels["Zone"] == ("A", "B", "C", "other")


def test_generated_columns_are_selectable(categorical_frame: pd.DataFrame):
    """Later steps can select columns created by earlier ones."""
    pipeline = (
        Pipeline()
        .add_step(Encode("Zone"))
        .add_step(Interact("Area", with_selector=ByPattern("^Zone_")))
    )
    fitted = pipeline.fit(categorical_frame)

    assert {"Area_x_Zone_B", "Area_x_Zone_C", "Area_x_Zone_D"} <= set(fitted.output_columns)


def test_step_order_changes_result():
    df = pd.DataFrame({"x": [1.0, 10.0, 100.0, 1000.0]})
    log_first = Pipeline().add_step(LogTransform("x", base=10)).add_step(Rescale("x"))
    scale_first = Pipeline().add_step(Rescale("x", center=False)).add_step(LogTransform("x", base=10))

    a = log_first.fit(df).apply(df)["x"]
    b = scale_first.fit(df).apply(df)["x"]

    assert not a.equals(b)


def test_pool_encode_order_changes_columns(categorical_frame: pd.DataFrame):
    """Pooling before encoding yields an 'other' indicator; encoding first keeps 'D'."""
    df = categorical_frame.assign(Kind=["x", "y"] * 10)
    pool_first = (
        Pipeline()
        .add_step(RarePool(ByType("categorical"), threshold=0.1))
        .add_step(Encode(ByType("categorical")))
    )
    encode_first = (
        Pipeline()
        .add_step(Encode("Zone"))
        .add_step(RarePool(ByType("categorical"), threshold=0.1))
    )

    a = set(pool_first.fit(df).output_columns)
    b = set(encode_first.fit(df).output_columns)

    assert "Zone_other" in a and "Zone_D" not in a
    assert "Zone_D" in b and "Zone_other" not in b
    assert a != b


def test_parameters_come_from_reference_only(ames_split: Dict[str, pd.DataFrame]):
    train, test = ames_split["train"], ames_split["test"]
    fitted = Pipeline().add_step(Rescale("Gr_Liv_Area"), name="normalize").fit(train)

    assert fitted.get_step("normalize").means["Gr_Liv_Area"] == pytest.approx(train["Gr_Liv_Area"].mean())

    out = fitted.apply(test)
    expected = (test["Gr_Liv_Area"] - train["Gr_Liv_Area"].mean()) / train["Gr_Liv_Area"].std(ddof=1)
    assert out["Gr_Liv_Area"].tolist() == pytest.approx(expected.tolist())


def test_apply_is_deterministic(ames_split: Dict[str, pd.DataFrame]):
    fitted = create_ames_pipeline().fit(ames_split["train"])

    first = fitted.apply(ames_split["test"])
    second = fitted.apply(ames_split["test"])

    pd.testing.assert_frame_equal(first, second)


def test_apply_preserves_rows_and_index(ames_split: Dict[str, pd.DataFrame]):
    test = ames_split["test"]
    out = create_ames_pipeline().fit(ames_split["train"]).apply(test)

    assert len(out) == len(test)
    assert out.index.equals(test.index)


def test_fit_failure_aborts_pipeline():
    df = pd.DataFrame({"x": [1.0, 1.0, 1.0]})
    with pytest.raises(DegenerateColumnError):
        Pipeline().add_step(Rescale("x")).fit(df)


def test_empty_pipeline_returns_copy(price_frame: pd.DataFrame):
    fitted = Pipeline().fit(price_frame)
    out = fitted.apply(price_frame.copy())

    pd.testing.assert_frame_equal(out, price_frame)
    assert fitted.cached_reference_output is not price_frame


def test_apply_missing_column(categorical_frame: pd.DataFrame, zone_pipeline: Pipeline):
    fitted = zone_pipeline.fit(categorical_frame)
    with pytest.raises(SchemaMismatchError):
        fitted.apply(categorical_frame.drop(columns=["Area"]))


def test_apply_unfit_pipeline_raises(zone_pipeline: Pipeline, categorical_frame: pd.DataFrame):
    with pytest.raises(IllegalStateError):
        apply(zone_pipeline, categorical_frame)


def test_apply_function_matches_method(categorical_frame: pd.DataFrame, zone_pipeline: Pipeline):
    fitted = zone_pipeline.fit(categorical_frame)
    pd.testing.assert_frame_equal(apply(fitted, categorical_frame), fitted.apply(categorical_frame))


# --- Reference Cache Tests ---

def test_reference_output_is_cached(categorical_frame: pd.DataFrame, zone_pipeline: Pipeline, monkeypatch):
    """Applying to the reference object reuses the cached output."""
    fitted = zone_pipeline.fit(categorical_frame)

    def recomputed(self, data):
        raise RuntimeError("recomputed")

    monkeypatch.setattr(FittedRescale, "_apply", recomputed)

    out = fitted.apply(categorical_frame)
    pd.testing.assert_frame_equal(out, fitted.cached_reference_output)
    assert out is not fitted.cached_reference_output

    # equal content but a different object goes through the steps
    with pytest.raises(RuntimeError, match="recomputed"):
        fitted.apply(categorical_frame.copy())


def test_cache_matches_fresh_apply(categorical_frame: pd.DataFrame, zone_pipeline: Pipeline):
    fitted = zone_pipeline.fit(categorical_frame)
    pd.testing.assert_frame_equal(fitted.apply(categorical_frame.copy()), fitted.cached_reference_output)


def test_reference_changed_in_place_is_recomputed(categorical_frame: pd.DataFrame, zone_pipeline: Pipeline):
    """The cache is only used while the reference content is unchanged."""
    fitted = zone_pipeline.fit(categorical_frame)
    cached = fitted.cached_reference_output

    categorical_frame.loc[0, "Area"] = 100.0
    out = fitted.apply(categorical_frame)

    assert not fitted.is_reference(categorical_frame)
    pd.testing.assert_frame_equal(out, fitted.apply(categorical_frame.copy()))
    assert out.loc[0, "Area"] != cached.loc[0, "Area"]


def test_cached_output_cannot_be_changed_from_outside(categorical_frame: pd.DataFrame, zone_pipeline: Pipeline):
    fitted = zone_pipeline.fit(categorical_frame)

    leaked = fitted.cached_reference_output
    leaked["Area"] = 0.0
    leaked.drop(columns=["Zone_B"], inplace=True)

    out = fitted.apply(categorical_frame)
    assert "Zone_B" in out.columns
    pd.testing.assert_frame_equal(out, fitted.apply(categorical_frame.copy()))


# --- Recipe Tests ---

def test_ames_pipeline_output(ames_split: Dict[str, pd.DataFrame]):
    train = ames_split["train"]
    fitted = create_ames_pipeline().fit(train)
    out = fitted.apply(train)
    columns = fitted.output_columns

    assert "Neighborhood" not in columns and "Bldg_Type" not in columns
    assert "Latitude" not in columns and "Latitude_bs_1" in columns
    assert "Gr_Liv_Area_x_Bldg_Type_OneFam" in columns
    assert "Gr_Liv_Area_x_Bldg_Type_TwnhsE" in columns

    # outcome is neither logged nor rescaled
    pd.testing.assert_series_equal(out["Sale_Price"], train["Sale_Price"])

    assert out["Year_Built"].mean() == pytest.approx(0.0, abs=1e-9)
    assert out["Year_Built"].std(ddof=1) == pytest.approx(1.0)


def test_ames_pipeline_test_columns_match(ames_split: Dict[str, pd.DataFrame]):
    fitted = create_ames_pipeline().fit(ames_split["train"])
    assert list(fitted.apply(ames_split["test"]).columns) == fitted.output_columns


def test_numeric_pipeline(ames_like: pd.DataFrame):
    fitted = create_numeric_pipeline().fit(ames_like)
    assert all(pd.api.types.is_float_dtype(fitted.cached_reference_output[c]) for c in fitted.output_columns)


# --- Persistence Tests ---

def test_save_and_load_fitted_pipeline(ames_split: Dict[str, pd.DataFrame], tmp_path):
    train, test = ames_split["train"], ames_split["test"]
    fitted = create_ames_pipeline().fit(train)
    path = tmp_path / "pipeline.joblib"

    save_pipeline(fitted, str(path))
    loaded = load_pipeline(str(path))

    assert isinstance(loaded, FittedPipeline)
    assert not loaded.is_reference(train)
    pd.testing.assert_frame_equal(loaded.apply(test), fitted.apply(test))
    pd.testing.assert_frame_equal(loaded.cached_reference_output, fitted.cached_reference_output)


def test_loaded_pipeline_parameters_are_read_only(categorical_frame: pd.DataFrame, zone_pipeline: Pipeline, tmp_path):
    path = tmp_path / "zone.joblib"
    save_pipeline(zone_pipeline.fit(categorical_frame), str(path))
    loaded = load_pipeline(str(path))

    with pytest.raises(TypeError):
        loaded.get_step("normalize").means["Area"] = 0.0
    assert loaded.get_step("dummies").levels["Zone"] == ("A", "B", "C", "other")
