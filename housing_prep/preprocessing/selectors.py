"""
Column selectors for pipeline steps.

A selector describes which columns a step operates on. It is resolved once,
at fit time, against the schema of the data the step is fit on; the fitted
step keeps the resulting concrete column list and uses it at apply time.

Selectors:
    ByName: explicit list of column names
    ByRole: all columns carrying a role tag ("predictor", "outcome", ...)
    ByType: all columns of a dtype family, optionally restricted to a role
    ByPattern: all columns whose name matches a regular expression

Columns without an explicit role are treated as predictors, which includes
every column created by a step (dummies, spline terms, interactions).
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

import pandas as pd
from pandas.api import types as ptypes

from housing_prep.preprocessing.errors import ConfigurationError

DEFAULT_ROLE = "predictor"
DTYPE_TAGS = ("numeric", "categorical")


def role_of(column: str, roles: Optional[Mapping[str, str]]) -> str:
    """Return the role of a column, defaulting to 'predictor'."""
    if not roles:
        return DEFAULT_ROLE
    return roles.get(column, DEFAULT_ROLE)


def is_numeric_column(series: pd.Series) -> bool:
    """Numeric dtypes, excluding booleans."""
    return ptypes.is_numeric_dtype(series) and not ptypes.is_bool_dtype(series)


def is_categorical_column(series: pd.Series) -> bool:
    """Object, string, category and boolean dtypes."""
    return (
        ptypes.is_object_dtype(series)
        or ptypes.is_string_dtype(series)
        or isinstance(series.dtype, pd.CategoricalDtype)
        or ptypes.is_bool_dtype(series)
    )


class Selector(ABC):
    """Base class for column selectors."""

    @abstractmethod
    def resolve(
        self,
        data: pd.DataFrame,
        roles: Optional[Mapping[str, str]] = None
    ) -> Tuple[str, ...]:
        """
        Resolve the selector against a dataset's columns.

        Args:
            data: Dataset whose schema is used for resolution
            roles: Optional column -> role mapping

        Returns:
            Ordered tuple of matching column names (may be empty)
        """

    @abstractmethod
    def describe(self) -> str:
        """Short human-readable form used in log and error messages."""


@dataclass(frozen=True)
class ByName(Selector):
    names: Tuple[str, ...]

    def __post_init__(self):
        if isinstance(self.names, str):
            object.__setattr__(self, "names", (self.names,))
        else:
            object.__setattr__(self, "names", tuple(self.names))
        if not self.names:
            raise ConfigurationError("ByName selector needs at least one column name")

    def resolve(self, data, roles=None):
        missing = [name for name in self.names if name not in data.columns]
        if missing:
            raise ConfigurationError(
                f"Selector {self.describe()} references unknown columns: {missing}"
            )
        return self.names

    def describe(self):
        return f"ByName({', '.join(self.names)})"


@dataclass(frozen=True)
class ByRole(Selector):
    role: str

    def resolve(self, data, roles=None):
        return tuple(c for c in data.columns if role_of(c, roles) == self.role)

    def describe(self):
        return f"ByRole({self.role})"


@dataclass(frozen=True)
class ByType(Selector):
    dtype: str
    role: Optional[str] = None

    def __post_init__(self):
        if self.dtype not in DTYPE_TAGS:
            raise ConfigurationError(
                f"Unknown dtype tag '{self.dtype}'. Must be one of {DTYPE_TAGS}."
            )

    def resolve(self, data, roles=None):
        check = is_numeric_column if self.dtype == "numeric" else is_categorical_column
        return tuple(
            c for c in data.columns
            if check(data[c]) and (self.role is None or role_of(c, roles) == self.role)
        )

    def describe(self):
        if self.role:
            return f"ByType({self.dtype}, role={self.role})"
        return f"ByType({self.dtype})"


@dataclass(frozen=True)
class ByPattern(Selector):
    pattern: str

    def __post_init__(self):
        try:
            re.compile(self.pattern)
        except re.error as e:
            raise ConfigurationError(f"Invalid column pattern '{self.pattern}': {e}") from e

    def resolve(self, data, roles=None):
        regex = re.compile(self.pattern)
        return tuple(c for c in data.columns if regex.search(str(c)))

    def describe(self):
        return f"ByPattern({self.pattern})"


def all_numeric_predictors() -> ByType:
    return ByType("numeric", role=DEFAULT_ROLE)


def all_categorical_predictors() -> ByType:
    return ByType("categorical", role=DEFAULT_ROLE)


__all__ = [
    "Selector",
    "ByName",
    "ByRole",
    "ByType",
    "ByPattern",
    "DEFAULT_ROLE",
    "role_of",
    "is_numeric_column",
    "is_categorical_column",
    "all_numeric_predictors",
    "all_categorical_predictors",
]
