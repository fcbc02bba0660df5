"""
Data module for loading, splitting and configuration schemas.

This module provides utilities for:
- Loading and saving data files (CSV, Parquet)
- Outcome log-transform and stratified train-test split
- Recipe configuration validation with Pydantic

Classes:
    DataLoader: Static methods for I/O and splitting
    PipelineConfig: Pydantic schema for a preprocessing recipe
    StepConfig: Pydantic schema for a single step
    SelectorConfig: Pydantic schema for a column selector
"""

from housing_prep.data.data_loader import DataLoader
from housing_prep.data.schemas import (
    PipelineConfig,
    StepConfig,
    SelectorConfig,
    pipeline_from_yaml
)

__all__ = [
    "DataLoader",
    "PipelineConfig",
    "StepConfig",
    "SelectorConfig",
    "pipeline_from_yaml"
]
