from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from housing_prep.config import load_yaml
from housing_prep.preprocessing.errors import ConfigurationError
from housing_prep.preprocessing.pipeline import Pipeline
from housing_prep.preprocessing.selectors import ByName, ByPattern, ByRole, ByType, Selector
from housing_prep.preprocessing.steps import STEP_KINDS


class SelectorConfig(BaseModel):
    """Exactly one of names / role / dtype / pattern must be given."""

    names: Optional[List[str]] = None
    role: Optional[str] = None
    dtype: Optional[Literal["numeric", "categorical"]] = None
    pattern: Optional[str] = None

    @model_validator(mode="after")
    def check_single_choice(self):
        chosen = [k for k in ("names", "dtype", "pattern") if getattr(self, k)]
        if self.role and not self.dtype:
            chosen.append("role")
        if len(chosen) != 1:
            raise ValueError("Selector must set exactly one of: names, role, dtype, pattern")
        return self

    def to_selector(self) -> Selector:
        if self.names:
            return ByName(tuple(self.names))
        if self.dtype:
            return ByType(self.dtype, role=self.role)
        if self.pattern:
            return ByPattern(self.pattern)
        return ByRole(self.role)


class StepConfig(BaseModel):
    kind: Literal[tuple(STEP_KINDS)]  # type: ignore[valid-type]
    name: Optional[str] = None
    columns: Optional[SelectorConfig] = None
    with_columns: Optional[SelectorConfig] = None
    params: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_with_columns(self):
        if self.with_columns is not None and self.kind != "interact":
            raise ValueError("with_columns is only valid for 'interact' steps")
        return self

    def to_spec(self):
        kwargs = dict(self.params)
        if self.columns is not None:
            kwargs["selector"] = self.columns.to_selector()
        if self.with_columns is not None:
            kwargs["with_selector"] = self.with_columns.to_selector()
        try:
            return STEP_KINDS[self.kind](**kwargs)
        except TypeError as e:
            raise ConfigurationError(f"Invalid parameters for '{self.kind}' step: {e}") from e


class PipelineConfig(BaseModel):
    roles: Dict[str, str] = Field(default_factory=dict)
    steps: List[StepConfig]

    @field_validator("steps")
    @classmethod
    def check_non_empty(cls, v):  # type: ignore[no-untyped-def]
        if not v:
            raise ValueError("Step list must not be empty")
        return v

    def build(self) -> Pipeline:
        pipeline = Pipeline(roles=self.roles)
        for step in self.steps:
            pipeline = pipeline.add_step(step.to_spec(), name=step.name)
        return pipeline

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PipelineConfig":
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid pipeline configuration:\n{e}") from e

    @classmethod
    def from_yaml(cls, path: str) -> "PipelineConfig":
        return cls.from_dict(load_yaml(path))


def pipeline_from_yaml(path: str) -> Pipeline:
    """Load and build a Pipeline from a recipe YAML file."""
    return PipelineConfig.from_yaml(path).build()
