"""
Preprocessing module for the housing data.

This module contains the fit/apply preprocessing pipeline, its step kinds,
column selectors and the sklearn adapter.

Steps:
    Rescale: Center/scale numeric columns
    RarePool: Pool infrequent categorical levels
    Encode: Dummy-encode categorical columns
    BasisExpand: Spline or polynomial basis expansion
    Interact: Products of numeric columns
    LogTransform: Logarithm with a configurable base
    PowerTransform: Box-Cox / Yeo-Johnson
    DropZeroVariance: Drop constant columns

Pipeline:
    Pipeline: Immutable ordered sequence of step specifications
    FittedPipeline: Fitted steps plus cached reference output
    apply: Apply a FittedPipeline to any dataset
    create_ames_pipeline: Housing recipe factory
    save_pipeline / load_pipeline: joblib persistence

Example:
    >>> from housing_prep.preprocessing import create_ames_pipeline
    >>> fitted = create_ames_pipeline().fit(train_df)
    >>> test_prepared = fitted.apply(test_df)
"""

from housing_prep.preprocessing.errors import (
    PreprocessingError,
    ConfigurationError,
    FitError,
    DegenerateColumnError,
    DomainError,
    SchemaMismatchError,
    IllegalStateError,
    RangeWarning
)
from housing_prep.preprocessing.selectors import (
    ByName,
    ByRole,
    ByType,
    ByPattern,
    all_numeric_predictors,
    all_categorical_predictors
)
from housing_prep.preprocessing.steps import (
    StepSpec,
    FittedStep,
    Rescale,
    RarePool,
    Encode,
    BasisExpand,
    Interact,
    LogTransform,
    PowerTransform,
    DropZeroVariance,
    STEP_KINDS
)
from housing_prep.preprocessing.pipeline import (
    Pipeline,
    FittedPipeline,
    apply,
    create_ames_pipeline,
    create_numeric_pipeline,
    save_pipeline,
    load_pipeline
)
from housing_prep.preprocessing.transformers import RecipeTransformer

__all__ = [
    # Errors
    "PreprocessingError",
    "ConfigurationError",
    "FitError",
    "DegenerateColumnError",
    "DomainError",
    "SchemaMismatchError",
    "IllegalStateError",
    "RangeWarning",
    # Selectors
    "ByName",
    "ByRole",
    "ByType",
    "ByPattern",
    "all_numeric_predictors",
    "all_categorical_predictors",
    # Steps
    "StepSpec",
    "FittedStep",
    "Rescale",
    "RarePool",
    "Encode",
    "BasisExpand",
    "Interact",
    "LogTransform",
    "PowerTransform",
    "DropZeroVariance",
    "STEP_KINDS",
    # Pipeline
    "Pipeline",
    "FittedPipeline",
    "apply",
    "create_ames_pipeline",
    "create_numeric_pipeline",
    "save_pipeline",
    "load_pipeline",
    "RecipeTransformer"
]
