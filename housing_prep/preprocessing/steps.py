"""
Preprocessing steps with an explicit fit/apply split.

Every step comes as a pair of frozen dataclasses:

    StepSpec   -- what to do (selector + configuration), Unfit
    FittedStep -- the spec plus parameters learned from one reference
                  dataset, Fitted and immutable

StepSpec.fit(reference) returns a new FittedStep and never mutates the spec;
FittedStep.apply(data) is a pure function of its input. Applying a spec
directly is a programming error and raises IllegalStateError.

Step kinds:
    Rescale: center/scale with the reference mean and sample std (ddof=1)
    RarePool: collapse infrequent categorical levels into an "other" level
    Encode: dummy/one-hot indicators, first sorted level is the baseline
    BasisExpand: B-spline or raw polynomial basis columns
    Interact: products of already-materialized numeric columns
    LogTransform: log_base(x + offset)
    PowerTransform: Box-Cox / Yeo-Johnson with a learned lambda
    DropZeroVariance: drop columns that are constant in the reference data
"""

import math
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from itertools import combinations
from types import MappingProxyType
from typing import ClassVar, Dict, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
from loguru import logger
from sklearn.preprocessing import PowerTransformer, SplineTransformer

from housing_prep.preprocessing.errors import (
    ConfigurationError,
    DegenerateColumnError,
    DomainError,
    FitError,
    IllegalStateError,
    RangeWarning,
    SchemaMismatchError,
)
from housing_prep.preprocessing.selectors import (
    DEFAULT_ROLE,
    ByName,
    ByRole,
    Selector,
    all_categorical_predictors,
    all_numeric_predictors,
    is_numeric_column,
)


def _as_selector(value) -> Selector:
    """Accept a Selector, a column name or a list of column names."""
    if isinstance(value, Selector):
        return value
    if isinstance(value, str):
        return ByName((value,))
    if isinstance(value, (list, tuple)):
        return ByName(tuple(value))
    raise ConfigurationError(f"Cannot build a column selector from {value!r}")


def _require_numeric(step: str, data: pd.DataFrame, columns: Tuple[str, ...]) -> None:
    bad = [c for c in columns if not is_numeric_column(data[c])]
    if bad:
        raise FitError(f"[{step}] Numeric input required, got non-numeric columns: {bad}")


def _check_new_names(step: str, data: pd.DataFrame, names: List[str], dropped=()) -> None:
    """Generated column names must be unique and must not shadow kept columns."""
    existing = set(data.columns) - set(dropped)
    clashes = sorted({n for n in names if n in existing or names.count(n) > 1})
    if clashes:
        raise ConfigurationError(f"[{step}] Generated column names collide: {clashes}")


def _sorted_levels(values: pd.Series) -> list:
    levels = list(values.dropna().unique())
    try:
        return sorted(levels)
    except TypeError:
        return sorted(levels, key=str)


class StepSpec(ABC):
    """
    Base class for step specifications.

    Subclasses are frozen dataclasses declaring at least a `selector` field.
    A plain column name or list of names is accepted in place of a Selector.
    """

    kind: ClassVar[str] = "step"

    def __post_init__(self):
        object.__setattr__(self, "selector", _as_selector(self.selector))

    def resolve_columns(
        self,
        data: pd.DataFrame,
        roles: Optional[Mapping[str, str]] = None
    ) -> Tuple[str, ...]:
        """
        Resolve the step's selector against the reference schema.

        Raises:
            ConfigurationError: If the selector matches no column
        """
        columns = self.selector.resolve(data, roles)
        if not columns:
            raise ConfigurationError(
                f"[{type(self).__name__}] Selector {self.selector.describe()} matched no columns"
            )
        return tuple(columns)

    def fit(
        self,
        data: pd.DataFrame,
        roles: Optional[Mapping[str, str]] = None
    ) -> "FittedStep":
        """
        Learn parameters from reference data.

        Args:
            data: Reference dataset (output of the preceding fitted steps)
            roles: Optional column -> role mapping used by role selectors

        Returns:
            A new, immutable fitted step
        """
        columns = self.resolve_columns(data, roles)
        fitted = self._fit(data, columns, roles)
        logger.info(f"[{type(self).__name__}] Fitted on {len(data)} rows, columns: {list(fitted.columns)}")
        return fitted

    @abstractmethod
    def _fit(
        self,
        data: pd.DataFrame,
        columns: Tuple[str, ...],
        roles: Optional[Mapping[str, str]] = None
    ) -> "FittedStep":
        ...

    def apply(self, data: pd.DataFrame) -> pd.DataFrame:
        raise IllegalStateError(
            f"{type(self).__name__} step must be fit before it can be applied"
        )


@dataclass(frozen=True)
class FittedStep(ABC):
    """
    Base class for fitted steps.

    Learned parameters passed in as dicts are stored as read-only mappings,
    so a fitted step cannot be changed after fit.

    Attributes:
        spec: The specification this step was fit from
        columns: Concrete columns resolved at fit time
    """

    spec: StepSpec
    columns: Tuple[str, ...]

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, dict):
                object.__setattr__(self, f.name, MappingProxyType(dict(value)))

    def __getstate__(self):
        # mappingproxy cannot be pickled
        return {
            k: dict(v) if isinstance(v, MappingProxyType) else v
            for k, v in self.__dict__.items()
        }

    def __setstate__(self, state):
        for k, v in state.items():
            object.__setattr__(self, k, MappingProxyType(v) if isinstance(v, dict) else v)

    @property
    def required_columns(self) -> Tuple[str, ...]:
        return self.columns

    def apply(self, data: pd.DataFrame) -> pd.DataFrame:
        """
        Transform a dataset with the learned parameters.

        The input frame is never modified; a transformed copy is returned
        with the same row count and index.

        Raises:
            SchemaMismatchError: If the input lacks a column this step expects
        """
        missing = [c for c in self.required_columns if c not in data.columns]
        if missing:
            raise SchemaMismatchError(
                f"[{type(self.spec).__name__}] Input is missing columns expected by the fitted step: {missing}"
            )
        return self._apply(data.copy())

    @abstractmethod
    def _apply(self, data: pd.DataFrame) -> pd.DataFrame:
        ...


# --- Rescale -----------------------------------------------------------------


@dataclass(frozen=True)
class Rescale(StepSpec):
    """
    Center and scale numeric columns.

    Learns the per-column mean and sample standard deviation (ddof=1) and
    applies (x - mean) / sd. With center=False the mean is taken as 0, with
    scale=False the sd is taken as 1.
    """

    kind: ClassVar[str] = "rescale"

    selector: Selector = field(default_factory=all_numeric_predictors)
    center: bool = True
    scale: bool = True

    def _fit(self, data, columns, roles=None):
        _require_numeric("Rescale", data, columns)
        means: Dict[str, float] = {}
        sds: Dict[str, float] = {}
        for col in columns:
            values = data[col].astype(float)
            means[col] = float(values.mean()) if self.center else 0.0
            if self.scale:
                sd = float(values.std(ddof=1))
                if not np.isfinite(sd) or sd == 0.0:
                    raise DegenerateColumnError(
                        f"[Rescale] Column '{col}' has zero or undefined standard deviation"
                    )
                sds[col] = sd
            else:
                sds[col] = 1.0
        return FittedRescale(self, columns, means, sds)


@dataclass(frozen=True)
class FittedRescale(FittedStep):
    means: Mapping[str, float]
    sds: Mapping[str, float]

    def _apply(self, data):
        for col in self.columns:
            data[col] = (data[col].astype(float) - self.means[col]) / self.sds[col]
        return data


# --- RarePool ----------------------------------------------------------------


@dataclass(frozen=True)
class RarePool(StepSpec):
    """
    Pool infrequent categorical levels into a single catch-all level.

    A level is retained when its relative frequency among the non-missing
    reference values is >= threshold. At apply time every other level,
    including levels never seen during fit, becomes `other`. Missing values
    stay missing.
    """

    kind: ClassVar[str] = "rare_pool"

    selector: Selector = field(default_factory=all_categorical_predictors)
    threshold: float = 0.05
    other: str = "other"

    def __post_init__(self):
        super().__post_init__()
        if not 0 < self.threshold <= 1:
            raise ConfigurationError(
                f"[RarePool] threshold must be in (0, 1], got {self.threshold}"
            )

    def _fit(self, data, columns, roles=None):
        retained: Dict[str, Tuple] = {}
        for col in columns:
            values = data[col].dropna()
            if values.empty:
                raise FitError(f"[RarePool] Column '{col}' has no non-missing values")
            freq = values.value_counts(normalize=True)
            keep = _sorted_levels(pd.Series(freq[freq >= self.threshold].index))
            if self.other in keep:
                raise FitError(
                    f"[RarePool] Pool level '{self.other}' is already a frequent level of '{col}'"
                )
            pooled = len(freq) - len(keep)
            if pooled:
                logger.info(f"[RarePool] {col}: pooling {pooled} rare levels into '{self.other}'")
            retained[col] = tuple(keep)
        return FittedRarePool(self, columns, retained)


@dataclass(frozen=True)
class FittedRarePool(FittedStep):
    retained: Mapping[str, Tuple]

    def _apply(self, data):
        for col in self.columns:
            series = data[col].astype(object)
            mask = series.notna() & ~series.isin(self.retained[col])
            n_replaced = int(mask.sum())
            if n_replaced:
                series[mask] = self.spec.other
                logger.debug(f"[RarePool] {col}: replaced {n_replaced} values with '{self.spec.other}'")
            data[col] = series
        return data


# --- Encode ------------------------------------------------------------------


@dataclass(frozen=True)
class Encode(StepSpec):
    """
    Dummy-encode categorical columns.

    The reference level set is sorted and its first level is the baseline.
    One float indicator column `<column>_<level>` is emitted per
    non-baseline level and the source column is dropped. Levels unseen at
    fit time encode as all zeros; missing values encode as missing.
    """

    kind: ClassVar[str] = "encode"

    selector: Selector = field(default_factory=all_categorical_predictors)

    def _fit(self, data, columns, roles=None):
        levels: Dict[str, Tuple] = {}
        names: Dict[str, Tuple[str, ...]] = {}
        for col in columns:
            col_levels = _sorted_levels(data[col])
            if not col_levels:
                raise FitError(f"[Encode] Column '{col}' has no non-missing values")
            if len(col_levels) == 1:
                logger.warning(f"[Encode] Column '{col}' has a single level; no indicators emitted")
            levels[col] = tuple(col_levels)
            names[col] = tuple(f"{col}_{level}" for level in col_levels[1:])

        generated = [n for col in columns for n in names[col]]
        _check_new_names("Encode", data, generated, dropped=columns)
        return FittedEncode(self, columns, levels, names)


@dataclass(frozen=True)
class FittedEncode(FittedStep):
    levels: Mapping[str, Tuple]
    names: Mapping[str, Tuple[str, ...]]

    @property
    def baselines(self) -> Dict[str, object]:
        return {col: levels[0] for col, levels in self.levels.items()}

    def _apply(self, data):
        blocks = []
        for col in self.columns:
            series = data[col].astype(object)
            levels = self.levels[col]

            unseen = series.notna() & ~series.isin(levels)
            if unseen.any():
                logger.warning(
                    f"[Encode] {col}: {int(unseen.sum())} values with levels unseen at fit time "
                    f"encoded as baseline (all zeros): {sorted(map(str, series[unseen].unique()))}"
                )

            block = pd.DataFrame(
                {name: (series == level).astype(float) for name, level in zip(self.names[col], levels[1:])},
                index=data.index,
                columns=list(self.names[col]),
            )
            if len(block.columns):
                block.loc[series.isna(), :] = np.nan
            blocks.append(block)

        data = data.drop(columns=list(self.columns))
        return pd.concat([data] + blocks, axis=1)


# --- BasisExpand -------------------------------------------------------------


@dataclass(frozen=True)
class BasisExpand(StepSpec):
    """
    Replace numeric columns with basis-function columns.

    basis="spline" fits sklearn's SplineTransformer with uniform knots over
    the reference range (degree, n_knots) and linear extrapolation;
    basis="poly" emits raw powers 1..degree. Output columns are named
    `<column>_bs_<i>` or `<column>_poly_<i>`.

    Values outside the reference range are extrapolated and trigger a
    RangeWarning; they never fail.
    """

    kind: ClassVar[str] = "basis_expand"

    selector: Selector = field(default_factory=all_numeric_predictors)
    basis: str = "spline"
    degree: int = 3
    n_knots: int = 5

    def __post_init__(self):
        super().__post_init__()
        if self.basis not in ("spline", "poly"):
            raise ConfigurationError(f"[BasisExpand] basis must be 'spline' or 'poly', got '{self.basis}'")
        if self.degree < 1:
            raise ConfigurationError(f"[BasisExpand] degree must be >= 1, got {self.degree}")
        if self.basis == "spline" and self.n_knots < 2:
            raise ConfigurationError(f"[BasisExpand] n_knots must be >= 2, got {self.n_knots}")

    def _fit(self, data, columns, roles=None):
        _require_numeric("BasisExpand", data, columns)
        ranges: Dict[str, Tuple[float, float]] = {}
        transformers: Dict[str, SplineTransformer] = {}
        names: Dict[str, Tuple[str, ...]] = {}

        for col in columns:
            values = data[col].astype(float)
            if values.isna().any():
                raise FitError(f"[BasisExpand] Column '{col}' contains missing values")
            ranges[col] = (float(values.min()), float(values.max()))

            if self.basis == "spline":
                if ranges[col][0] == ranges[col][1]:
                    raise FitError(f"[BasisExpand] Column '{col}' is constant; cannot place spline knots")
                transformer = SplineTransformer(
                    n_knots=self.n_knots,
                    degree=self.degree,
                    knots="uniform",
                    extrapolation="linear",
                    include_bias=False,
                )
                try:
                    transformer.fit(values.to_numpy().reshape(-1, 1))
                except ValueError as e:
                    raise FitError(f"[BasisExpand] Could not place spline knots for '{col}': {e}") from e
                transformers[col] = transformer
                n_out = transformer.n_features_out_
                names[col] = tuple(f"{col}_bs_{i}" for i in range(1, n_out + 1))
            else:
                names[col] = tuple(f"{col}_poly_{i}" for i in range(1, self.degree + 1))

        _check_new_names("BasisExpand", data, [n for col in columns for n in names[col]], dropped=columns)
        return FittedBasisExpand(self, columns, ranges, transformers, names)


@dataclass(frozen=True)
class FittedBasisExpand(FittedStep):
    ranges: Mapping[str, Tuple[float, float]]
    transformers: Mapping[str, SplineTransformer]
    names: Mapping[str, Tuple[str, ...]]

    @property
    def knots(self) -> Dict[str, Tuple[float, ...]]:
        """Interior and boundary knot positions learned per column."""
        return {
            col: tuple(float(k) for k in transformer.bsplines_[0].t)
            for col, transformer in self.transformers.items()
        }

    def _basis(self, col: str, values: np.ndarray) -> np.ndarray:
        out = np.full((len(values), len(self.names[col])), np.nan)
        finite = ~np.isnan(values)
        if not finite.any():
            return out
        if self.spec.basis == "spline":
            out[finite] = self.transformers[col].transform(values[finite].reshape(-1, 1))
        else:
            for power in range(1, self.spec.degree + 1):
                out[finite, power - 1] = values[finite] ** power
        return out

    def _apply(self, data):
        blocks = []
        for col in self.columns:
            values = pd.to_numeric(data[col]).to_numpy(dtype=float)
            lower, upper = self.ranges[col]
            outside = int(((values < lower) | (values > upper)).sum())
            if outside:
                message = (
                    f"[BasisExpand] {col}: {outside} values outside fitted range "
                    f"[{lower:g}, {upper:g}] will be extrapolated"
                )
                logger.warning(message)
                warnings.warn(message, RangeWarning, stacklevel=4)
            blocks.append(pd.DataFrame(self._basis(col, values), index=data.index, columns=list(self.names[col])))

        data = data.drop(columns=list(self.columns))
        return pd.concat([data] + blocks, axis=1)


# --- Interact ----------------------------------------------------------------


@dataclass(frozen=True)
class Interact(StepSpec):
    """
    Append products of already-materialized numeric columns.

    With a single selector every pair of resolved columns is multiplied.
    With `with_selector` every column of the first group is multiplied with
    every column of the second (e.g. a numeric column times a set of dummy
    indicators). New columns are named `<a><separator><b>`.
    """

    kind: ClassVar[str] = "interact"

    selector: Selector = field(default_factory=all_numeric_predictors)
    with_selector: Optional[Selector] = None
    separator: str = "_x_"

    def __post_init__(self):
        super().__post_init__()
        if self.with_selector is not None:
            object.__setattr__(self, "with_selector", _as_selector(self.with_selector))

    def _fit(self, data, columns, roles=None):
        first = columns
        if self.with_selector is None:
            if len(first) < 2:
                raise ConfigurationError(
                    f"[Interact] Need at least two columns to interact, got {list(first)}"
                )
            pairs = list(combinations(first, 2))
        else:
            second = self.with_selector.resolve(data, roles)
            if not second:
                raise ConfigurationError(
                    f"[Interact] Selector {self.with_selector.describe()} matched no columns"
                )
            pairs = [(a, b) for a in first for b in second if a != b]
            columns = tuple(dict.fromkeys(first + tuple(second)))
            if not pairs:
                raise ConfigurationError("[Interact] Selectors produce no distinct column pairs")

        _require_numeric("Interact", data, columns)
        names = [f"{a}{self.separator}{b}" for a, b in pairs]
        _check_new_names("Interact", data, names)
        logger.info(f"[Interact] Fitted {len(pairs)} interaction terms")
        return FittedInteract(self, columns, tuple(pairs), tuple(names))


@dataclass(frozen=True)
class FittedInteract(FittedStep):
    pairs: Tuple[Tuple[str, str], ...]
    names: Tuple[str, ...]

    def _apply(self, data):
        for (a, b), name in zip(self.pairs, self.names):
            data[name] = data[a].astype(float) * data[b].astype(float)
        return data


# --- LogTransform ------------------------------------------------------------


@dataclass(frozen=True)
class LogTransform(StepSpec):
    """Replace numeric columns with log_base(x + offset)."""

    kind: ClassVar[str] = "log"

    selector: Selector = field(default_factory=all_numeric_predictors)
    base: float = math.e
    offset: float = 0.0

    def __post_init__(self):
        super().__post_init__()
        if self.base <= 0 or self.base == 1:
            raise ConfigurationError(f"[LogTransform] Invalid log base {self.base}")

    def _fit(self, data, columns, roles=None):
        _require_numeric("LogTransform", data, columns)
        return FittedLogTransform(self, columns)


@dataclass(frozen=True)
class FittedLogTransform(FittedStep):

    def _log(self, values: pd.Series) -> pd.Series:
        base = self.spec.base
        if base == 10:
            return np.log10(values)
        if base == 2:
            return np.log2(values)
        if base == math.e:
            return np.log(values)
        return np.log(values) / np.log(base)

    def _apply(self, data):
        for col in self.columns:
            values = data[col].astype(float) + self.spec.offset
            bad = values.notna() & (values <= 0)
            if bad.any():
                raise DomainError(
                    f"[LogTransform] Column '{col}' has {int(bad.sum())} non-positive values "
                    f"(offset={self.spec.offset})"
                )
            data[col] = self._log(values)
        return data


# --- PowerTransform ----------------------------------------------------------


@dataclass(frozen=True)
class PowerTransform(StepSpec):
    """
    Box-Cox or Yeo-Johnson transform with a per-column lambda learned from
    the reference data (sklearn PowerTransformer, standardize=False).
    """

    kind: ClassVar[str] = "power"

    selector: Selector = field(default_factory=all_numeric_predictors)
    method: str = "yeo-johnson"

    def __post_init__(self):
        super().__post_init__()
        if self.method not in ("yeo-johnson", "box-cox"):
            raise ConfigurationError(
                f"[PowerTransform] method must be 'yeo-johnson' or 'box-cox', got '{self.method}'"
            )

    def _fit(self, data, columns, roles=None):
        _require_numeric("PowerTransform", data, columns)
        values = data[list(columns)].astype(float)
        if self.method == "box-cox":
            _check_positive(values)

        transformer = PowerTransformer(method=self.method, standardize=False)
        try:
            transformer.fit(values.to_numpy())
        except ValueError as e:
            raise FitError(f"[PowerTransform] Could not estimate lambda: {e}") from e
        return FittedPowerTransform(self, columns, transformer)


def _check_positive(values: pd.DataFrame) -> None:
    bad = [c for c in values.columns if (values[c].dropna() <= 0).any()]
    if bad:
        raise DomainError(f"[PowerTransform] Box-Cox requires strictly positive values: {bad}")


@dataclass(frozen=True)
class FittedPowerTransform(FittedStep):
    transformer: PowerTransformer

    @property
    def lambdas(self) -> Dict[str, float]:
        return {col: float(lam) for col, lam in zip(self.columns, self.transformer.lambdas_)}

    def _apply(self, data):
        values = data[list(self.columns)].astype(float)
        if self.spec.method == "box-cox":
            _check_positive(values)
        data[list(self.columns)] = self.transformer.transform(values.to_numpy())
        return data


# --- DropZeroVariance --------------------------------------------------------


@dataclass(frozen=True)
class DropZeroVariance(StepSpec):
    """Drop selected columns that hold a single distinct value in the reference data."""

    kind: ClassVar[str] = "drop_zero_variance"

    selector: Selector = field(default_factory=lambda: ByRole(DEFAULT_ROLE))

    def _fit(self, data, columns, roles=None):
        removed = tuple(c for c in columns if data[c].nunique(dropna=True) <= 1)
        if removed:
            logger.info(f"[DropZeroVariance] Dropping constant columns: {list(removed)}")
        return FittedDropZeroVariance(self, columns, removed)


@dataclass(frozen=True)
class FittedDropZeroVariance(FittedStep):
    removed: Tuple[str, ...]

    @property
    def required_columns(self):
        return self.removed

    def _apply(self, data):
        return data.drop(columns=list(self.removed))


STEP_KINDS: Dict[str, type] = {
    cls.kind: cls
    for cls in (Rescale, RarePool, Encode, BasisExpand, Interact, LogTransform, PowerTransform, DropZeroVariance)
}


__all__ = [
    "StepSpec",
    "FittedStep",
    "Rescale",
    "FittedRescale",
    "RarePool",
    "FittedRarePool",
    "Encode",
    "FittedEncode",
    "BasisExpand",
    "FittedBasisExpand",
    "Interact",
    "FittedInteract",
    "LogTransform",
    "FittedLogTransform",
    "PowerTransform",
    "FittedPowerTransform",
    "DropZeroVariance",
    "FittedDropZeroVariance",
    "STEP_KINDS",
]
