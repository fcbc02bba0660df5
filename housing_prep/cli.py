"""Command line interface for the housing preprocessing workflow.

Commands:
  preprocess : fit a recipe on training data, apply it to training and test
               data, save the transformed CSVs and the fitted pipeline.
  cv         : K-fold cross-validation of recipe + model.
  train      : cross-validate, then fit on the training split, score the
               test split and save model/pipeline artifacts.

Usage examples:
  python -m housing_prep preprocess --recipe configs/ames_recipe.yaml --train data/raw/ames.csv
  python -m housing_prep cv --recipe configs/ames_recipe.yaml --config configs/linear.yaml
  python -m housing_prep train --recipe configs/ames_recipe.yaml --config configs/knn.yaml
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from loguru import logger

from housing_prep.config import CONFIGS_DIR, MODELS_DIR, PROCESSED_DATA_DIR, train_config_from_yaml
from housing_prep.data.data_loader import DataLoader
from housing_prep.data.schemas import pipeline_from_yaml
from housing_prep.modeling.trainer import CrossValidationTrainer
from housing_prep.preprocessing.pipeline import save_pipeline

app = typer.Typer(help="Leakage-free preprocessing and resampled modeling for housing data.")

DEFAULT_RECIPE = CONFIGS_DIR / "ames_recipe.yaml"
DEFAULT_TRAIN_CONFIG = CONFIGS_DIR / "linear.yaml"


@app.callback()
def main():  # pragma: no cover
    """Root command. Use one of the subcommands."""
    pass


def _load_split(config_path: Path, data_path: Optional[Path]):
    cfg = train_config_from_yaml(str(config_path))
    df = DataLoader.load_csv(data_path or Path(cfg.data.csv_path))
    if cfg.data.log_outcome:
        df = DataLoader.log_outcome(df, cfg.data.outcome)
    train, test = DataLoader.split_train_test(
        df,
        outcome=cfg.data.outcome,
        test_size=cfg.split.test_size,
        random_state=cfg.split.random_state,
        stratify_bins=cfg.split.stratify_bins,
    )
    return cfg, train, test


@app.command()
def preprocess(
    recipe: Path = typer.Option(DEFAULT_RECIPE, help="Recipe YAML."),
    train: Path = typer.Option(..., help="Training (reference) CSV."),
    test: Optional[Path] = typer.Option(None, help="Optional CSV to transform with the fitted pipeline."),
    output_dir: Path = typer.Option(PROCESSED_DATA_DIR, help="Where transformed data and the pipeline go."),
):
    """Fit a recipe on training data and apply it to training/test data."""
    pipeline = pipeline_from_yaml(str(recipe))
    train_df = DataLoader.load_csv(train)

    fitted = pipeline.fit(train_df)
    DataLoader.save_csv(fitted.apply(train_df), output_dir / f"{train.stem}_prepared.csv")

    if test is not None:
        test_df = DataLoader.load_csv(test)
        DataLoader.save_csv(fitted.apply(test_df), output_dir / f"{test.stem}_prepared.csv")

    save_pipeline(fitted, str(output_dir / f"{recipe.stem}_fitted.joblib"))
    typer.echo(f"Output columns ({len(fitted.output_columns)}): {', '.join(fitted.output_columns)}")


@app.command()
def cv(
    recipe: Path = typer.Option(DEFAULT_RECIPE, help="Recipe YAML."),
    config: Path = typer.Option(DEFAULT_TRAIN_CONFIG, help="Train config YAML."),
    data: Optional[Path] = typer.Option(None, help="Dataset CSV (overrides config)."),
):
    """Cross-validate recipe + model on the training split."""
    cfg, train_df, _ = _load_split(config, data)
    trainer = CrossValidationTrainer(cfg)
    results = trainer.cross_validate(train_df, pipeline_from_yaml(str(recipe)))

    typer.echo(results["folds"].round(4).to_string())
    typer.echo("mean: " + ", ".join(f"{k}={v:.4f}" for k, v in results["mean"].items()))


@app.command()
def train(
    recipe: Path = typer.Option(DEFAULT_RECIPE, help="Recipe YAML."),
    config: Path = typer.Option(DEFAULT_TRAIN_CONFIG, help="Train config YAML."),
    data: Optional[Path] = typer.Option(None, help="Dataset CSV (overrides config)."),
    models_dir: Path = typer.Option(MODELS_DIR, help="Artifact directory."),
    skip_cv: bool = typer.Option(False, help="Skip cross-validation."),
):
    """Cross-validate, train on the full training split and score the test split."""
    cfg, train_df, test_df = _load_split(config, data)
    pipeline = pipeline_from_yaml(str(recipe))
    trainer = CrossValidationTrainer(cfg, models_dir=models_dir)

    if not skip_cv:
        trainer.cross_validate(train_df, pipeline)

    out = trainer.train_final(train_df, test_df, pipeline)
    logger.info(f"Artifacts: {out['model_path']}, {out['pipeline_path']}")
    typer.echo("test: " + ", ".join(f"{k}={v:.4f}" for k, v in out["metrics"].items()))


if __name__ == "__main__":  # pragma: no cover
    app()
