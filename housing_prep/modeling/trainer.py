"""
Resampling and training orchestrator with MLflow integration.

This module provides the CrossValidationTrainer class that evaluates a
preprocessing pipeline plus a linear or K-nearest-neighbor regressor with
K-fold cross-validation, trains the final model on the full training set
and tracks everything in MLflow.

Leakage prevention: every fold builds its own workflow, so the pipeline is
fit on the analysis rows of that fold only and merely applied to the
assessment rows.
"""

import traceback
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import joblib
import mlflow
import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from loguru import logger
from sklearn.linear_model import LinearRegression
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score
from sklearn.model_selection import KFold
from sklearn.neighbors import KNeighborsRegressor
from sklearn.pipeline import Pipeline as SkPipeline

from housing_prep.config import MODELS_DIR, TrainConfig, setup_mlflow
from housing_prep.preprocessing.pipeline import Pipeline, save_pipeline
from housing_prep.preprocessing.transformers import RecipeTransformer


class CrossValidationTrainer:
    """
    Orchestrates resampled evaluation and final training.

    This class handles the complete modelling workflow including:
    - Estimator instantiation (linear regression or KNN)
    - K-fold splitting and per-fold pipeline fitting
    - Evaluation metrics computation
    - MLflow experiment tracking
    - Model and pipeline artifact saving

    Attributes:
        config: Training configuration
        experiment_name: MLflow experiment name
        models_dir: Directory for saving artifacts
    """

    def __init__(
        self,
        config: TrainConfig,
        experiment_name: Optional[str] = None,
        models_dir: Optional[Path] = None
    ):
        """
        Initialize CrossValidationTrainer.

        Args:
            config: Training configuration with model, data, split and resampling settings
            experiment_name: Name for MLflow experiment (default from environment)
            models_dir: Directory path for saving artifacts (default: MODELS_DIR)
        """
        self.config = config
        self.experiment_name = experiment_name
        self.models_dir = Path(models_dir) if models_dir else MODELS_DIR

        if self.config.track:
            setup_mlflow(self.experiment_name)
        logger.info(f"[Trainer] Initialized for model: {self.config.model.name}")

    @property
    def outcome(self) -> str:
        return self.config.data.outcome

    def _create_estimator(self) -> Any:
        """
        Create sklearn estimator based on configuration.

        Returns:
            Configured sklearn estimator

        Raises:
            ValueError: If library is not supported
        """
        library = self.config.model.library
        params = self.config.model.params

        if library == "linear":
            return LinearRegression(**params)
        elif library == "knn":
            return KNeighborsRegressor(**params)
        else:
            raise ValueError(f"Unsupported library: {library}")

    def build_workflow(self, pipeline: Pipeline) -> SkPipeline:
        """Chain the preprocessing recipe and a fresh estimator."""
        return SkPipeline(steps=[
            ("recipe", RecipeTransformer(pipeline)),
            ("model", self._create_estimator())
        ])

    def _compute_metrics(
        self,
        y_true: pd.Series,
        y_pred: np.ndarray
    ) -> Dict[str, float]:
        """
        Compute regression metrics.

        Args:
            y_true: True target values
            y_pred: Predicted values

        Returns:
            Dictionary with MAE, RMSE, and R² metrics
        """
        mae = float(mean_absolute_error(y_true, y_pred))
        rmse = float(np.sqrt(mean_squared_error(y_true, y_pred)))
        r2 = float(r2_score(y_true, y_pred))

        return {
            "mae": mae,
            "rmse": rmse,
            "r2": r2
        }

    def _split_xy(self, data: pd.DataFrame) -> Tuple[pd.DataFrame, pd.Series]:
        if self.outcome not in data.columns:
            raise ValueError(f"Outcome column '{self.outcome}' not found in data")
        return data.drop(columns=[self.outcome]), data[self.outcome]

    def split_folds(self, data: pd.DataFrame) -> List[Tuple[np.ndarray, np.ndarray]]:
        """
        Create (analysis, assessment) positional index pairs.

        Args:
            data: Training data

        Returns:
            List of (analysis_idx, assessment_idx) arrays
        """
        r = self.config.resampling
        kfold = KFold(
            n_splits=r.n_splits,
            shuffle=r.shuffle,
            random_state=r.random_state if r.shuffle else None
        )
        return list(kfold.split(data))

    def evaluate_fold(
        self,
        fold: int,
        data: pd.DataFrame,
        pipeline: Pipeline,
        analysis_idx: np.ndarray,
        assessment_idx: np.ndarray
    ) -> Dict[str, float]:
        """
        Fit the workflow on one analysis set and score its assessment set.

        Args:
            fold: Fold number (for reporting)
            data: Full training data
            pipeline: Unfit preprocessing pipeline
            analysis_idx: Positional indices of the analysis rows
            assessment_idx: Positional indices of the assessment rows

        Returns:
            Dictionary with the fold number and its metrics
        """
        X_analysis, y_analysis = self._split_xy(data.iloc[analysis_idx])
        X_assessment, y_assessment = self._split_xy(data.iloc[assessment_idx])

        try:
            workflow = self.build_workflow(pipeline)
            workflow.fit(X_analysis, y_analysis)
            y_pred = workflow.predict(X_assessment)
            metrics = self._compute_metrics(y_assessment, y_pred)
        except Exception as e:
            logger.error(f"[CV] Fold {fold} failed: {e}")
            raise

        logger.info(f"[CV] Fold {fold}: RMSE={metrics['rmse']:.4f}, R²={metrics['r2']:.4f}")
        return {"fold": fold, **metrics}

    def cross_validate(self, data: pd.DataFrame, pipeline: Pipeline) -> Dict[str, Any]:
        """
        Evaluate pipeline + model with K-fold cross-validation.

        Folds are independent and run through joblib with
        `config.resampling.n_jobs` workers.

        Args:
            data: Training data including the outcome column
            pipeline: Unfit preprocessing pipeline

        Returns:
            Dictionary with per-fold metrics ("folds") and their mean/std

        Example:
            >>> results = trainer.cross_validate(train_df, create_ames_pipeline())
            >>> results["mean"]["rmse"]
        """
        logger.info("=" * 70)
        logger.info(f"CROSS-VALIDATION: {self.config.model.name}")
        logger.info("=" * 70)

        folds = self.split_folds(data)
        fold_results = Parallel(n_jobs=self.config.resampling.n_jobs)(
            delayed(self.evaluate_fold)(i, data, pipeline, analysis_idx, assessment_idx)
            for i, (analysis_idx, assessment_idx) in enumerate(folds, start=1)
        )

        fold_df = pd.DataFrame(fold_results).set_index("fold")
        mean = {k: float(v) for k, v in fold_df.mean().items()}
        std = {k: float(v) for k, v in fold_df.std(ddof=1).items()}

        logger.info(f"[CV] Mean RMSE: {mean['rmse']:.4f} (±{std['rmse']:.4f})")
        logger.info(f"[CV] Mean R²: {mean['r2']:.4f}")

        results = {"folds": fold_df, "mean": mean, "std": std}

        if self.config.track:
            self._log_cv_run(results, pipeline)

        return results

    def _log_params(self, pipeline: Pipeline) -> None:
        flat_params = {
            f"model__{k}": v
            for k, v in self.config.model.params.items()
            if isinstance(v, (int, float, str, bool, type(None)))
        }
        mlflow.log_params({
            **flat_params,
            "model_library": self.config.model.library,
            "n_splits": self.config.resampling.n_splits,
            "random_state": self.config.resampling.random_state,
            "pipeline_steps": ",".join(name for name, _ in pipeline.steps)
        })

    def _log_cv_run(self, results: Dict[str, Any], pipeline: Pipeline) -> None:
        with mlflow.start_run(run_name=f"{self.config.model.name}-cv"):
            mlflow.set_tag("stage", "cross_validation")
            self._log_params(pipeline)
            mlflow.log_metrics({f"cv_{k}": v for k, v in results["mean"].items()})
            mlflow.log_metrics({f"cv_{k}_std": v for k, v in results["std"].items()})

    def train_final(
        self,
        train: pd.DataFrame,
        test: pd.DataFrame,
        pipeline: Pipeline,
        run_name: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Fit the workflow on the full training set and score the test set.

        This method orchestrates:
        1. Pipeline fit on training data
        2. Model training
        3. Test-set evaluation
        4. MLflow logging
        5. Saving the fitted pipeline and model

        Args:
            train: Training data including the outcome
            test: Held-out test data including the outcome
            pipeline: Unfit preprocessing pipeline
            run_name: Optional custom run name

        Returns:
            Dictionary with metrics and artifact paths
        """
        logger.info("=" * 70)
        logger.info(f"TRAINING FINAL MODEL: {self.config.model.name}")
        logger.info("=" * 70)

        X_train, y_train = self._split_xy(train)
        X_test, y_test = self._split_xy(test)

        workflow = self.build_workflow(pipeline)
        workflow.fit(X_train, y_train)
        y_pred = workflow.predict(X_test)
        metrics = self._compute_metrics(y_test, y_pred)

        logger.info(f"[Metrics] MAE: {metrics['mae']:.4f}")
        logger.info(f"[Metrics] RMSE: {metrics['rmse']:.4f}")
        logger.info(f"[Metrics] R²: {metrics['r2']:.4f}")

        self.models_dir.mkdir(parents=True, exist_ok=True)
        model_path = self.models_dir / f"{self.config.model.name}_model.joblib"
        pipeline_path = self.models_dir / f"{self.config.model.name}_pipeline.joblib"

        fitted_pipeline = workflow.named_steps["recipe"].fitted_pipeline_
        joblib.dump(workflow.named_steps["model"], model_path)
        logger.info(f"[Save] Model saved to: {model_path}")
        save_pipeline(fitted_pipeline, str(pipeline_path))

        run_id = None
        if self.config.track:
            run_name = run_name or f"{self.config.model.name}-final"
            with mlflow.start_run(run_name=run_name) as run:
                try:
                    mlflow.set_tag("stage", "final")
                    self._log_params(pipeline)
                    mlflow.log_metrics({f"test_{k}": v for k, v in metrics.items()})
                    mlflow.log_artifact(str(pipeline_path), artifact_path="pipeline")
                    mlflow.log_artifact(str(model_path), artifact_path="model")
                    run_id = run.info.run_id
                    logger.info(f"[MLflow] Run ID: {run_id}")
                except Exception as e:
                    mlflow.set_tag("train_status", "error")
                    mlflow.log_text(traceback.format_exc(), f"failures/{self.config.model.name}_trace.txt")
                    logger.error(f"[MLflow] Logging failed: {e}")
                    raise

        return {
            "metrics": metrics,
            "run_id": run_id,
            "model_path": str(model_path),
            "pipeline_path": str(pipeline_path),
            "n_features": len(fitted_pipeline.output_columns)
        }
