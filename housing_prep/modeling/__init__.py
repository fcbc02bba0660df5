"""
Modeling module for resampling, training and prediction.

This module provides classes and utilities for:
- K-fold cross-validation of preprocessing pipeline + model
- Final model training with MLflow tracking
- Making predictions with persisted fitted pipelines

Classes:
    CrossValidationTrainer: Orchestrates resampling and training with MLflow
    Predictor: Prediction on new data
"""

from housing_prep.modeling.trainer import CrossValidationTrainer
from housing_prep.modeling.predictor import Predictor

__all__ = [
    "CrossValidationTrainer",
    "Predictor"
]
