"""
Model prediction with a persisted preprocessing pipeline.

This module provides the Predictor class for making predictions on new data
using a trained model and the FittedPipeline it was trained with.
"""

from pathlib import Path
from typing import Dict, List, Union

import joblib
import numpy as np
import pandas as pd
from loguru import logger

from housing_prep.preprocessing.errors import IllegalStateError
from housing_prep.preprocessing.pipeline import FittedPipeline, apply, load_pipeline


class Predictor:
    """
    Handles predictions using a trained model and its fitted pipeline.

    The pipeline is applied exactly as fit on the training data; new data
    never changes its parameters.

    Attributes:
        model_path: Path to saved model file
        pipeline_path: Path to saved FittedPipeline
        back_transform: Whether predictions are converted back from log10 units
        model: Loaded sklearn model
        pipeline: Loaded FittedPipeline
    """

    def __init__(
        self,
        model_path: Path,
        pipeline_path: Path,
        back_transform: bool = False
    ):
        """
        Initialize Predictor with model and pipeline artifacts.

        Args:
            model_path: Path to trained model (.joblib)
            pipeline_path: Path to fitted preprocessing pipeline (.joblib)
            back_transform: Return 10 ** prediction (outcome was log10-transformed)

        Example:
            >>> predictor = Predictor(
            ...     model_path=Path("models/linear_model.joblib"),
            ...     pipeline_path=Path("models/linear_pipeline.joblib"),
            ...     back_transform=True
            ... )
        """
        self.model_path = model_path
        self.pipeline_path = pipeline_path
        self.back_transform = back_transform

        logger.info(f"[Predictor] Loading model from: {model_path}")
        self.model = joblib.load(model_path)

        self.pipeline = load_pipeline(str(pipeline_path))
        if not isinstance(self.pipeline, FittedPipeline):
            raise IllegalStateError(f"[Predictor] {pipeline_path} does not hold a fitted pipeline")

        logger.info("[Predictor] All artifacts loaded successfully")

    def preprocess(self, X: pd.DataFrame) -> pd.DataFrame:
        """
        Apply the fitted pipeline and select the model's input columns.

        Args:
            X: Raw input DataFrame

        Returns:
            Preprocessed DataFrame ready for prediction
        """
        logger.info(f"[Preprocess] Input shape: {X.shape}")
        X_transformed = apply(self.pipeline, X)

        feature_names = getattr(self.model, "feature_names_in_", None)
        if feature_names is not None:
            X_transformed = X_transformed[list(feature_names)]

        logger.info(f"[Preprocess] After pipeline: {X_transformed.shape}")
        return X_transformed

    def predict(self, X: Union[pd.DataFrame, List[Dict]]) -> pd.Series:
        """
        Make predictions on new data.

        Args:
            X: Input data (DataFrame or list of dicts)

        Returns:
            Predictions as pandas Series named "prediction"
        """
        if isinstance(X, list):
            X = pd.DataFrame(X)

        logger.info(f"[Predict] Making predictions for {len(X)} samples")

        X_processed = self.preprocess(X)
        predictions = np.asarray(self.model.predict(X_processed), dtype=float)
        if self.back_transform:
            predictions = np.power(10.0, predictions)

        return pd.Series(predictions, index=X.index, name="prediction")

    def predict_dict(self, X: Union[pd.DataFrame, List[Dict]]) -> List[Dict]:
        """
        Make predictions and return as list of dictionaries.

        Example:
            >>> predictor.predict_dict(X_new)
            [{"prediction": 215000.0}, {"prediction": 180500.0}, ...]
        """
        predictions = self.predict(X)
        return [{"prediction": float(p)} for p in predictions]
