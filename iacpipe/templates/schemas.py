"""
Pipeline Template Schemas.

A template is a named, versioned document listing components in execution
order plus stack-level settings.

Example (JSON):
    {
        "name": "demo",
        "version": "1.0.0",
        "engine": "local",
        "stack": {
            "orchestrator": "Node",
            "components": [
                {"name": "DemoFirst",
                 "setup": [{"name": "prefix", "value": "demo"}],
                 "input": [{"name": "region", "type": "environment", "value": "AWS_REGION"}]},
                {"name": "DemoSecond",
                 "input": [{"name": "target", "type": "reference", "value": "ip"}],
                 "output": [{"name": "endpoint", "type": "reference", "value": "url"}]}
            ]
        }
    }

A document with top-level ``components`` is accepted and moved into
``stack.components``.
"""

from __future__ import annotations

import os
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from iacpipe.variables.schemas import VariableDescriptor, as_variable_list

TEMPLATE_PATH_ENV = "IACPIPE_TEMPLATE_PATH"


class ComponentSpec(BaseModel):
    """
    One component entry of a template.

    Attributes:
        name: Registry key of the component
        input: Variables resolved before the main action
        setup: Variables resolved before the setup phase
        output: Variables exported from the final scope after deploy

    Any other field is free-form configuration passed to the component.
    """

    name: str
    description: str | None = None
    version: str | None = None
    engine: str | None = None
    input: list[VariableDescriptor] = Field(default_factory=list)
    setup: list[VariableDescriptor] = Field(default_factory=list)
    output: list[VariableDescriptor] = Field(default_factory=list)

    class Config:
        populate_by_name = True
        extra = "allow"

    @field_validator("input", "setup", "output", mode="before")
    @classmethod
    def _normalise_variables(cls, value: Any) -> list[VariableDescriptor]:
        return as_variable_list(value)

    def variables(self, key: str) -> list[VariableDescriptor]:
        """Variable list by phase key (input, setup or output)."""
        if key not in ("input", "setup", "output"):
            raise ValueError(f"Unknown variable list '{key}'")
        return getattr(self, key)

    @property
    def settings(self) -> dict[str, Any]:
        """Free-form configuration fields."""
        return dict(self.model_extra or {})


class StackSettings(BaseModel):
    """Stack-level provisioning settings."""

    orchestrator: str | None = None
    components: list[ComponentSpec] = Field(default_factory=list)

    class Config:
        populate_by_name = True
        extra = "allow"


class PipelineTemplate(BaseModel):
    """Named, versioned pipeline document."""

    name: str
    description: str | None = None
    version: str = "1.0.0"
    engine: str | None = None
    release: str | None = None
    deployment_mode: Literal["sync", "async"] | None = Field(default=None, alias="deploymentMode")
    stack: StackSettings = Field(default_factory=StackSettings)

    class Config:
        populate_by_name = True
        extra = "allow"

    @model_validator(mode="before")
    @classmethod
    def _move_components(cls, data: Any) -> Any:
        if isinstance(data, dict) and "components" in data:
            data = dict(data)
            components = data.pop("components")
            stack = dict(data.get("stack") or {})
            stack.setdefault("components", components)
            data["stack"] = stack
        return data

    @property
    def components(self) -> list[ComponentSpec]:
        return self.stack.components

    def to_document(self) -> dict[str, Any]:
        """JSON-ready representation."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Store options
# =============================================================================


class FileStoreSettings(BaseModel):
    path: str | None = None

    @property
    def directory(self) -> str:
        return self.path or os.environ.get(TEMPLATE_PATH_ENV, "") or "templates"


class MongoStoreSettings(BaseModel):
    enabled: bool = True
    database: str = "iacpipe"
    collection: str = "templates"
    uri: str = "MDB_URI"


class TemplateOptions(BaseModel):
    """
    Template manager configuration.

    Attributes:
        type: Store discriminator (file, memory, mdb or a registered name)
        file: File store settings
        mdb: Document store settings
        flow: Run identifier used in logs
    """

    type: str = "file"
    file: FileStoreSettings = Field(default_factory=FileStoreSettings)
    mdb: MongoStoreSettings | None = None
    flow: str | None = None

    class Config:
        populate_by_name = True
        extra = "allow"

    @property
    def store_type(self) -> str:
        return self.type.strip().lower()
