"""Plugin definition models (declarative YAML and interpreted sources).

Schema::

    id: api-review
    version: 1.0.0
    name: API review
    skill:
      slug: lattice-review         # or path: skills/review/SKILL.md
      prompt: "Read {skill_path} and write {outputs}"
      window_name: api-review
      env: {REVIEW_DEPTH: "2"}
      variables: {focus: api}
    inputs:
      - artifact: modules-doc
    outputs:
      - artifact: review-skeptic
    concurrency: {slots: 1, exclusive: false}
    config: {}
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from lattice.models.modules import Concurrency


class SkillSpec(BaseModel):
    """Which skill to run and how to prompt it."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    slug: str = ""
    path: str = ""
    prompt: str = ""
    window_name: str = ""
    env: dict[str, str] = Field(default_factory=dict)
    variables: dict[str, str] = Field(default_factory=dict)


class ArtifactBinding(BaseModel):
    """Reference from a definition to a catalog artifact."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    artifact: str
    optional: bool | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"artifact": data}
        return data


class ModuleDefinition(BaseModel):
    """External module declaration wrapped as a skill module."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = ""
    version: str = ""
    name: str = ""
    description: str = ""
    skill: SkillSpec = Field(default_factory=SkillSpec)
    inputs: list[ArtifactBinding] = Field(default_factory=list)
    outputs: list[ArtifactBinding] = Field(default_factory=list)
    concurrency: Concurrency = Field(default_factory=Concurrency)
    config: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _none_to_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {key: value for key, value in data.items() if value is not None}


class LoadedDefinition(BaseModel):
    """A validated definition plus where it came from."""

    model_config = ConfigDict(frozen=True)

    definition: ModuleDefinition
    source: str
