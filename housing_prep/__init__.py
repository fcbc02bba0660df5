"""
Housing price preprocessing: leakage-free fit/apply pipelines.

This package provides a reproducible preprocessing pipeline for tabular
regression data (centering/scaling, log and power transforms, rare-level
pooling, dummy encoding, spline expansion, interaction terms) and a
cross-validated linear / K-nearest-neighbor modeling workflow around it.

Key Features:
    - Immutable pipeline specifications with explicit fit/apply separation
    - Parameters learned only from the reference (training) data
    - sklearn adapter for use inside sklearn Pipelines
    - K-fold resampling with MLflow tracking
    - YAML recipe configuration validated with Pydantic

Modules:
    config: Central configuration management
    data: Data loading, splitting and configuration schemas
    preprocessing: Pipeline, steps, selectors and errors
    modeling: Cross-validation, training and prediction
    cli: Command line interface

Example:
    >>> from housing_prep.preprocessing import create_ames_pipeline
    >>> fitted = create_ames_pipeline().fit(train_df)
    >>> test_prepared = fitted.apply(test_df)

Version: 1.0.0
License: MIT
"""

from housing_prep import config  # noqa: F401

__version__ = "1.0.0"
__license__ = "MIT"

__all__ = [
    "config",
    "__version__",
    "__license__"
]
