"""Workflow definition models.

A workflow is an ordered list of module instances plus dependency edges
between instance ids.  Both the ``instance_id``/``module_id`` spelling and
the shorter ``id``/``module`` spelling are accepted in YAML.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class ModuleRef(BaseModel):
    """One node of the workflow graph."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    instance_id: str = Field(
        default="", validation_alias=AliasChoices("instance_id", "id")
    )
    module_id: str = Field(
        default="", validation_alias=AliasChoices("module_id", "module")
    )
    name: str = ""
    description: str = ""
    depends_on: list[str] = Field(default_factory=list)
    config: dict[str, Any] = Field(default_factory=dict)
    optional: bool = False

    @model_validator(mode="before")
    @classmethod
    def _default_instance_id(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        instance = str(data.get("instance_id") or data.get("id") or "").strip()
        module = str(data.get("module_id") or data.get("module") or "").strip()
        data.pop("id", None)
        data.pop("module", None)
        data["instance_id"] = instance or module
        data["module_id"] = module
        data["depends_on"] = data.get("depends_on") or []
        data["config"] = data.get("config") or {}
        return data


class WorkflowRuntime(BaseModel):
    """Capacity settings carried by a workflow; ``None`` defers to settings."""

    model_config = ConfigDict(frozen=True)

    max_parallel: int | None = None
    max_attempts: int | None = None


class WorkflowDefinition(BaseModel):
    """Parsed workflow file."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    description: str = ""
    modules: list[ModuleRef] = Field(default_factory=list)
    graph: dict[str, list[str]] = Field(default_factory=dict)
    metadata: dict[str, str] = Field(default_factory=dict)
    runtime: WorkflowRuntime = Field(default_factory=WorkflowRuntime)

    def instance_ids(self) -> list[str]:
        return [ref.instance_id for ref in self.modules]

    def module_ref(self, instance_id: str) -> ModuleRef | None:
        for ref in self.modules:
            if ref.instance_id == instance_id:
                return ref
        return None
