# tests/conftest.py

from typing import Dict

import numpy as np
import pandas as pd
import pytest
from loguru import logger

from housing_prep.config import ModelConfig, ResamplingConfig, SplitConfig, TrainConfig
from housing_prep.data.data_loader import DataLoader


# --- Data fixtures ---

@pytest.fixture
def price_frame() -> pd.DataFrame:
    """Tiny frame used for exact numeric checks."""
    return pd.DataFrame({"Price": [100.0, 200.0, 300.0]})


@pytest.fixture
def categorical_frame() -> pd.DataFrame:
    """Categorical frame with one rare level ('D', 1 of 20 rows = 5%)."""
    return pd.DataFrame({
        "Zone": ["A"] * 10 + ["B"] * 6 + ["C"] * 3 + ["D"],
        "Area": np.arange(1.0, 21.0),
    })


@pytest.fixture
def ames_like() -> pd.DataFrame:
    """
    Synthetic stand-in for the Ames housing data (120 rows).

    Neighborhood has one level that appears exactly once ("Greens").
    """
    rng = np.random.default_rng(42)
    n = 120

    neighborhood = rng.choice(
        ["North_Ames", "College_Creek", "Old_Town", "Edwards"],
        size=n,
        p=[0.4, 0.25, 0.2, 0.15]
    ).astype(object)
    neighborhood[0] = "Greens"

    bldg_type = np.array(["OneFam", "TwnhsE", "Duplex"] * (n // 3), dtype=object)
    rng.shuffle(bldg_type)

    area = rng.uniform(600, 3500, size=n).round(0)
    year = rng.integers(1900, 2010, size=n)
    latitude = rng.uniform(41.98, 42.06, size=n)
    longitude = rng.uniform(-93.69, -93.58, size=n)

    price = (
        20_000
        + 80 * area
        + 400 * (year - 1900)
        + np.where(bldg_type == "Duplex", -15_000, 0)
        + rng.normal(0, 10_000, size=n)
    ).round(0)

    return pd.DataFrame({
        "Sale_Price": np.abs(price) + 10_000,
        "Gr_Liv_Area": area,
        "Year_Built": year,
        "Latitude": latitude,
        "Longitude": longitude,
        "Neighborhood": neighborhood,
        "Bldg_Type": bldg_type,
    })


@pytest.fixture
def ames_split(ames_like: pd.DataFrame) -> Dict[str, pd.DataFrame]:
    """Train/test split of the synthetic data (no stratification)."""
    train, test = DataLoader.split_train_test(
        ames_like, outcome="Sale_Price", test_size=0.25, random_state=7, stratify_bins=None
    )
    return {"train": train, "test": test}


# --- Config fixtures ---

@pytest.fixture
def linear_train_config() -> TrainConfig:
    return TrainConfig(
        model=ModelConfig(name="linear", library="linear", params={}),
        split=SplitConfig(test_size=0.25, random_state=7, stratify_bins=None),
        resampling=ResamplingConfig(n_splits=5, shuffle=True, random_state=1001, n_jobs=1),
        track=False,
    )


@pytest.fixture
def knn_train_config() -> TrainConfig:
    return TrainConfig(
        model=ModelConfig(name="knn", library="knn", params={"n_neighbors": 5}),
        split=SplitConfig(test_size=0.25, random_state=7, stratify_bins=None),
        resampling=ResamplingConfig(n_splits=4, shuffle=True, random_state=1001, n_jobs=1),
        track=False,
    )


# --- MLflow mock ---

class MockMLflow:
    """Records calls instead of talking to a tracking server."""

    def __init__(self):
        self.calls = []

    def start_run(self, *args, **kwargs):
        self.calls.append(("start_run", kwargs.get("run_name")))

        class MockRunInfo:
            run_id = "mock_run_id_123"

        class MockRun:
            info = MockRunInfo()
            def __enter__(self): return self
            def __exit__(self, exc_type, exc_val, exc_tb): return False

        return MockRun()

    def set_tag(self, *args, **kwargs): self.calls.append(("set_tag", args))
    def log_params(self, params): self.calls.append(("log_params", params))
    def log_metrics(self, metrics): self.calls.append(("log_metrics", metrics))
    def log_artifact(self, *args, **kwargs): self.calls.append(("log_artifact", args))
    def log_text(self, *args, **kwargs): self.calls.append(("log_text", args))


@pytest.fixture
def mock_mlflow(monkeypatch) -> MockMLflow:
    """Replace mlflow in the trainer module and skip tracking setup."""
    mock = MockMLflow()
    monkeypatch.setattr("housing_prep.modeling.trainer.mlflow", mock)
    monkeypatch.setattr("housing_prep.modeling.trainer.setup_mlflow", lambda *a, **k: None)
    return mock


# Silence loguru during tests
@pytest.fixture(autouse=True)
def disable_loguru():
    """Disable loguru output from the package during tests."""
    logger.disable("housing_prep")
    yield
    logger.enable("housing_prep")
