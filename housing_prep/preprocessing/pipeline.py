"""
Preprocessing pipeline with a strict fit/apply separation.

A Pipeline is an immutable, ordered sequence of named step specifications.
Fitting it on a reference (training) dataset produces a FittedPipeline whose
steps were each fit on the output of the previously fitted steps, so later
steps see the cumulative effect of earlier ones. The fitted pipeline can then
be applied, unchanged, to any number of other datasets without leaking
information from them into the learned parameters.

This module also provides the housing recipe factory and joblib
persistence helpers.
"""

import weakref
from typing import Dict, List, Mapping, Optional, Tuple, Union

import joblib
import pandas as pd
from loguru import logger

from housing_prep.preprocessing.errors import ConfigurationError, IllegalStateError
from housing_prep.preprocessing.selectors import (
    ByName,
    ByPattern,
    ByRole,
    ByType,
    DEFAULT_ROLE,
    all_categorical_predictors,
    all_numeric_predictors,
)
from housing_prep.preprocessing.steps import (
    BasisExpand,
    DropZeroVariance,
    Encode,
    FittedStep,
    Interact,
    LogTransform,
    RarePool,
    Rescale,
    StepSpec,
)


class Pipeline:
    """
    Ordered, immutable sequence of named preprocessing steps.

    add_step returns a new Pipeline; an existing pipeline is never modified.

    Attributes:
        steps: Tuple of (name, StepSpec) pairs in execution order
        roles: Column -> role mapping (unlisted columns are predictors)

    Example:
        >>> pipeline = (
        ...     Pipeline(roles={"Sale_Price": "outcome"})
        ...     .add_step(LogTransform("Gr_Liv_Area", base=10))
        ...     .add_step(Encode())
        ...     .add_step(Rescale())
        ... )
        >>> fitted = pipeline.fit(train_df)
        >>> test_prepared = fitted.apply(test_df)
    """

    def __init__(
        self,
        steps: Tuple[Tuple[str, StepSpec], ...] = (),
        roles: Optional[Mapping[str, str]] = None
    ):
        self._steps = tuple(steps)
        self._roles = dict(roles or {})
        names = [name for name, _ in self._steps]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(f"[Pipeline] Duplicate step names: {duplicates}")
        for name, spec in self._steps:
            if not isinstance(spec, StepSpec):
                raise ConfigurationError(f"[Pipeline] Step '{name}' is not a StepSpec: {spec!r}")

    @property
    def steps(self) -> Tuple[Tuple[str, StepSpec], ...]:
        return self._steps

    @property
    def roles(self) -> Dict[str, str]:
        return dict(self._roles)

    def __len__(self) -> int:
        return len(self._steps)

    def __repr__(self) -> str:
        names = ", ".join(name for name, _ in self._steps)
        return f"Pipeline(steps=[{names}])"

    def add_step(self, spec: StepSpec, name: Optional[str] = None) -> "Pipeline":
        """
        Return a new pipeline with `spec` appended.

        Args:
            spec: Step specification to append
            name: Optional step name (default: "<kind>_<position>")

        Raises:
            ConfigurationError: If spec is not a StepSpec or the name is taken
        """
        if not isinstance(spec, StepSpec):
            raise ConfigurationError(f"[Pipeline] Expected a StepSpec, got {spec!r}")
        name = name or f"{spec.kind}_{len(self._steps) + 1}"
        return Pipeline(steps=self._steps + ((name, spec),), roles=self._roles)

    def with_roles(self, **roles: str) -> "Pipeline":
        """Return a new pipeline with additional column roles."""
        return Pipeline(steps=self._steps, roles={**self._roles, **roles})

    def fit(self, reference: pd.DataFrame) -> "FittedPipeline":
        """
        Fit every step, in order, on the reference dataset.

        Each step is fit on the output of the already-fitted steps applied to
        the reference data. The final transformed reference output is cached
        on the returned FittedPipeline.

        Args:
            reference: Reference (training) dataset

        Returns:
            FittedPipeline

        Raises:
            ConfigurationError, FitError, DegenerateColumnError, DomainError:
                Propagated from the failing step; the whole fit is aborted
        """
        logger.info(f"[Pipeline] Fitting {len(self._steps)} steps on {reference.shape[0]} rows")

        current = reference
        fitted: List[Tuple[str, FittedStep]] = []
        for name, spec in self._steps:
            try:
                step = spec.fit(current, self._roles)
            except Exception as e:
                logger.error(f"[Pipeline] Step '{name}' failed to fit: {e}")
                raise
            current = step.apply(current)
            fitted.append((name, step))

        if current is reference:
            current = reference.copy()

        logger.info(f"[Pipeline] Fitted pipeline output shape: {current.shape}")
        return FittedPipeline(tuple(fitted), self._roles, reference, current)


def _fingerprint(data: pd.DataFrame) -> tuple:
    """Shape, schema and content hash of a frame."""
    return (
        data.shape,
        tuple(data.columns),
        tuple(str(t) for t in data.dtypes),
        int(pd.util.hash_pandas_object(data, index=True).sum()),
    )


class FittedPipeline:
    """
    Ordered fitted steps plus the cached transformed reference output.

    Instances are created by Pipeline.fit and are not modified afterwards.
    Only a weak reference to the reference dataset is held, so the cache
    does not keep training data alive. The cache is used only for the same
    object with the same content fingerprint as at fit time; a reference
    changed in place after fit goes through the steps again. The weak
    reference is dropped when pickling.

    Attributes:
        steps: Tuple of (name, FittedStep) pairs
        roles: Column -> role mapping used at fit time
        cached_reference_output: Transformed reference dataset
    """

    def __init__(
        self,
        steps: Tuple[Tuple[str, FittedStep], ...],
        roles: Mapping[str, str],
        reference: Optional[pd.DataFrame],
        reference_output: pd.DataFrame
    ):
        self._steps = tuple(steps)
        self._roles = dict(roles)
        self._reference = weakref.ref(reference) if reference is not None else None
        self._reference_fingerprint = _fingerprint(reference) if reference is not None else None
        self._reference_output = reference_output

    @property
    def steps(self) -> Tuple[Tuple[str, FittedStep], ...]:
        return self._steps

    @property
    def roles(self) -> Dict[str, str]:
        return dict(self._roles)

    @property
    def cached_reference_output(self) -> pd.DataFrame:
        return self._reference_output.copy()

    @property
    def output_columns(self) -> List[str]:
        return list(self._reference_output.columns)

    def get_step(self, name: str) -> FittedStep:
        for step_name, step in self._steps:
            if step_name == name:
                return step
        raise KeyError(f"No fitted step named '{name}'")

    def is_reference(self, data: pd.DataFrame) -> bool:
        if self._reference is None or self._reference() is not data:
            return False
        return _fingerprint(data) == self._reference_fingerprint

    def apply(self, data: pd.DataFrame) -> pd.DataFrame:
        """
        Apply every fitted step, in order, to a dataset.

        Args:
            data: Any dataset with the columns the fitted steps expect

        Returns:
            Transformed dataset with the same row count and index as `data`

        Raises:
            SchemaMismatchError: If `data` lacks a column a step expects
            DomainError: If values fall outside a transform's domain
        """
        if self.is_reference(data):
            logger.debug("[Pipeline] Returning cached reference output")
            return self._reference_output.copy()

        current = data
        for _, step in self._steps:
            current = step.apply(current)
        if current is data:
            current = data.copy()
        return current

    def __getstate__(self):
        state = self.__dict__.copy()
        state["_reference"] = None
        state["_reference_fingerprint"] = None
        return state

    def __repr__(self) -> str:
        names = ", ".join(name for name, _ in self._steps)
        return f"FittedPipeline(steps=[{names}], n_output_columns={len(self.output_columns)})"


def apply(fitted: FittedPipeline, data: pd.DataFrame) -> pd.DataFrame:
    """
    Apply a fitted pipeline to a dataset.

    Raises:
        IllegalStateError: If `fitted` is an unfit Pipeline
    """
    if not isinstance(fitted, FittedPipeline):
        raise IllegalStateError(
            f"apply() needs a FittedPipeline; call fit() on {type(fitted).__name__} first"
        )
    return fitted.apply(data)


def create_ames_pipeline(
    outcome: str = "Sale_Price",
    neighborhood_threshold: float = 0.01,
    spline_knots: int = 5,
    spline_columns: Tuple[str, ...] = ("Latitude", "Longitude"),
    log_columns: Tuple[str, ...] = ("Gr_Liv_Area",),
    interaction_column: str = "Gr_Liv_Area",
    interaction_prefix: str = "Bldg_Type_"
) -> Pipeline:
    """
    Create the housing-price preprocessing recipe.

    Steps, in order:
    1. log10 of living area
    2. Pool rare neighborhoods
    3. Dummy-encode categorical predictors
    4. Interact living area with building-type dummies
    5. Spline expansion of latitude/longitude
    6. Drop zero-variance columns
    7. Center/scale numeric predictors

    Args:
        outcome: Outcome column, excluded from predictor selectors
        neighborhood_threshold: Minimum frequency to keep a neighborhood level
        spline_knots: Number of knots for the spline expansion
        spline_columns: Columns to spline-expand
        log_columns: Columns to log10-transform
        interaction_column: Numeric column interacted with the dummies
        interaction_prefix: Prefix of the dummy columns to interact with

    Returns:
        Configured Pipeline
    """
    logger.info("[Pipeline] Creating housing preprocessing recipe")

    pipeline = (
        Pipeline(roles={outcome: "outcome"})
        .add_step(LogTransform(ByName(log_columns), base=10), name="log_area")
        .add_step(RarePool(ByName(("Neighborhood",)), threshold=neighborhood_threshold), name="pool_neighborhood")
        .add_step(Encode(all_categorical_predictors()), name="dummies")
        .add_step(
            Interact(ByName((interaction_column,)), with_selector=ByPattern(f"^{interaction_prefix}")),
            name="area_x_building"
        )
        .add_step(BasisExpand(ByName(spline_columns), basis="spline", n_knots=spline_knots), name="splines")
        .add_step(DropZeroVariance(ByRole(DEFAULT_ROLE)), name="zero_variance")
        .add_step(Rescale(all_numeric_predictors()), name="normalize")
    )

    logger.info(f"[Pipeline] Created recipe with {len(pipeline)} steps")

    return pipeline


def create_numeric_pipeline(outcome: str = "Sale_Price") -> Pipeline:
    """Minimal recipe: dummy-encode categoricals and rescale numerics (KNN baseline)."""
    return (
        Pipeline(roles={outcome: "outcome"})
        .add_step(Encode(ByType("categorical", role=DEFAULT_ROLE)), name="dummies")
        .add_step(Rescale(all_numeric_predictors()), name="normalize")
    )


def save_pipeline(pipeline: Union[Pipeline, FittedPipeline], path: str) -> None:
    """
    Save a pipeline (fitted or not) to disk using joblib.

    Example:
        >>> save_pipeline(fitted, "models/ames_pipeline.joblib")
    """
    joblib.dump(pipeline, path)
    logger.info(f"[Pipeline] Saved pipeline to: {path}")


def load_pipeline(path: str) -> Union[Pipeline, FittedPipeline]:
    """
    Load a pipeline from disk.

    Example:
        >>> fitted = load_pipeline("models/ames_pipeline.joblib")
    """
    pipeline = joblib.load(path)
    logger.info(f"[Pipeline] Loaded pipeline from: {path}")
    return pipeline


__all__ = [
    "Pipeline",
    "FittedPipeline",
    "apply",
    "create_ames_pipeline",
    "create_numeric_pipeline",
    "save_pipeline",
    "load_pipeline",
]
