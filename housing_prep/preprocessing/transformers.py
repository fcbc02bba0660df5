"""
sklearn adapter for the preprocessing pipeline.

RecipeTransformer follows sklearn's BaseEstimator and TransformerMixin
interfaces so a Pipeline can sit in front of a model inside an
sklearn.pipeline.Pipeline. Because sklearn clones estimators for every
resampling fold, the recipe is re-fit on each analysis set only and the
assessment set never contributes to the learned parameters.
"""

from typing import List, Optional

import numpy as np
import pandas as pd
from loguru import logger
from sklearn.base import BaseEstimator, TransformerMixin

from housing_prep.preprocessing.errors import IllegalStateError
from housing_prep.preprocessing.pipeline import FittedPipeline, Pipeline


class RecipeTransformer(BaseEstimator, TransformerMixin):
    """
    Wrap a Pipeline as an sklearn transformer.

    Columns whose role is not "predictor" (e.g. the outcome) are dropped
    from the transformed output so the result can be passed straight to a
    model.

    Attributes:
        pipeline: Unfit Pipeline specification
        fitted_pipeline_: FittedPipeline learned in fit()
        feature_names_out_: Predictor columns produced by the pipeline
    """

    def __init__(self, pipeline: Optional[Pipeline] = None):
        """
        Initialize RecipeTransformer.

        Args:
            pipeline: Pipeline specification (default: empty pipeline)
        """
        self.pipeline = pipeline

    def fit(self, X: pd.DataFrame, y: Optional[pd.Series] = None):
        """
        Fit the wrapped pipeline on training data.

        Args:
            X: Training DataFrame
            y: Target variable (unused)

        Returns:
            self: Fitted transformer
        """
        pipeline = self.pipeline if self.pipeline is not None else Pipeline()
        self.fitted_pipeline_ = pipeline.fit(X)

        roles = self.fitted_pipeline_.roles
        self.feature_names_out_ = [
            c for c in self.fitted_pipeline_.output_columns
            if roles.get(c, "predictor") == "predictor"
        ]
        logger.info(f"[RecipeTransformer] {len(self.feature_names_out_)} output features")
        return self

    def _check_fitted(self) -> FittedPipeline:
        fitted = getattr(self, "fitted_pipeline_", None)
        if fitted is None:
            raise IllegalStateError("RecipeTransformer must be fit before transform")
        return fitted

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """
        Apply the fitted pipeline.

        Args:
            X: Input DataFrame

        Returns:
            Transformed DataFrame restricted to predictor columns
        """
        fitted = self._check_fitted()
        X_out = fitted.apply(X)
        return X_out[self.feature_names_out_]

    def get_feature_names_out(self, input_features=None) -> np.ndarray:
        self._check_fitted()
        return np.asarray(self.feature_names_out_, dtype=object)

    @property
    def output_columns(self) -> List[str]:
        return list(self._check_fitted().output_columns)
