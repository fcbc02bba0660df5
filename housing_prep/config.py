import os
from dataclasses import dataclass, field
from pathlib import Path
from time import strftime
from typing import Dict, Literal, Optional

from dotenv import load_dotenv
from loguru import logger

from housing_prep.preprocessing.errors import ConfigurationError

# Load environment variables from .env file if it exists
load_dotenv()

# Paths
PROJ_ROOT = Path(__file__).resolve().parents[1]
logger.debug(f"PROJ_ROOT path is: {PROJ_ROOT}")

DATA_DIR = PROJ_ROOT / "data"
RAW_DATA_DIR = DATA_DIR / "raw"
PROCESSED_DATA_DIR = DATA_DIR / "processed"

MODELS_DIR = PROJ_ROOT / "models"
CONFIGS_DIR = PROJ_ROOT / "configs"
REPORTS_DIR = PROJ_ROOT / "reports"

MLFLOW_TRACKING_URI = os.getenv("MLFLOW_TRACKING_URI", f"file://{PROJ_ROOT / 'mlruns'}")
MLFLOW_EXPERIMENT = os.getenv("MLFLOW_EXPERIMENT", "AmesHousingPrep")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


@dataclass(frozen=True)
class DataConfig:
    csv_path: str = str(RAW_DATA_DIR / "ames.csv")
    outcome: str = "Sale_Price"
    log_outcome: bool = True


@dataclass(frozen=True)
class ModelConfig:
    name: str = "linear"
    library: Literal["linear", "knn"] = "linear"
    params: Dict = field(default_factory=dict)


@dataclass(frozen=True)
class SplitConfig:
    test_size: float = 0.2
    random_state: int = 502
    stratify_bins: Optional[int] = 4


@dataclass(frozen=True)
class ResamplingConfig:
    n_splits: int = 10
    shuffle: bool = True
    random_state: int = 1001
    n_jobs: int = 1


@dataclass(frozen=True)
class TrainConfig:
    model: ModelConfig
    data: DataConfig = field(default_factory=DataConfig)
    split: SplitConfig = field(default_factory=SplitConfig)
    resampling: ResamplingConfig = field(default_factory=ResamplingConfig)
    track: bool = True


def nowstamp() -> str:
    return strftime("%Y-%m-%d_%H-%M-%S")


def load_yaml(path: str) -> dict:
    import yaml
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def train_config_from_yaml(path: str) -> TrainConfig:
    raw = load_yaml(path)
    m = raw.get("model")
    if not isinstance(m, dict) or "library" not in m:
        raise ConfigurationError(f"Training config {path} needs a 'model' section with a 'library'")
    d = raw.get("data", {})
    s = raw.get("split", {})
    r = raw.get("resampling", {})
    bins = s.get("stratify_bins", 4)
    return TrainConfig(
        model = ModelConfig(
            name = m.get("name", m["library"]),
            library = m["library"],
            params = dict(m.get("params") or {})
        ),
        data = DataConfig(
            csv_path = d.get("csv_path", DataConfig.csv_path),
            outcome = d.get("outcome", "Sale_Price"),
            log_outcome = bool(d.get("log_outcome", True))
        ),
        split = SplitConfig(
            test_size = float(s.get("test_size", 0.2)),
            random_state = int(s.get("random_state", 502)),
            stratify_bins = int(bins) if bins else None
        ),
        resampling = ResamplingConfig(
            n_splits = int(r.get("n_splits", 10)),
            shuffle = bool(r.get("shuffle", True)),
            random_state = int(r.get("random_state", 1001)),
            n_jobs = int(r.get("n_jobs", 1))
        ),
        track = bool(raw.get("track", True)),
    )


def setup_mlflow(experiment: Optional[str] = None) -> None:
    """
    Configure MLflow, using a remote server if one is configured.
    """
    import mlflow

    tracking_uri = MLFLOW_TRACKING_URI.strip()

    if tracking_uri.startswith("http"):
        mlflow.set_tracking_uri(tracking_uri)
        logger.info(f"[MLflow] Using remote server: {tracking_uri}")
    else:
        tracking_path = Path(tracking_uri.replace("file://", ""))
        tracking_path.mkdir(parents=True, exist_ok=True)
        resolved_uri = f"file:{tracking_path.resolve()}"
        mlflow.set_tracking_uri(resolved_uri)
        logger.info(f"[MLflow] Using local tracking: {resolved_uri}")

    experiment = experiment or MLFLOW_EXPERIMENT
    mlflow.set_experiment(experiment)
    logger.info(f"[MLflow] Active experiment: {experiment}")


# If tqdm is installed, configure loguru with tqdm.write
# https://github.com/Delgan/loguru/issues/135
try:
    from tqdm import tqdm

    logger.remove()
    logger.add(lambda msg: tqdm.write(msg, end=""), colorize=True, level=LOG_LEVEL)
except ModuleNotFoundError:
    pass
