"""
Variable Descriptor Schema.

A variable descriptor names one input of a component and says where its
value comes from.

Example (JSON):
    [
        {"name": "region", "value": "eu-west-1"},
        {"name": "home", "type": "environment", "value": "HOME"},
        {"name": "target", "type": "reference", "value": "ip"},
        {"name": "token", "type": "secret", "value": "deploy/token", "default": "none"}
    ]

The same list may be written as a map keyed by name:
    {"region": {"value": "eu-west-1"}, "target": {"type": "reference", "value": "ip"}}
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel


class VariableType(str, Enum):
    """Where a variable's value comes from."""

    VALUE = "value"
    ENVIRONMENT = "environment"
    REFERENCE = "reference"
    SECRET = "secret"
    PROTECTED = "protected"


class VariableDescriptor(BaseModel):
    """
    One component input.

    Attributes:
        name: Destination key in the resolved mapping
        type: Source kind (absent means value)
        value: Literal, environment variable name, scope key or secret key
        default: Fallback when resolution yields nothing
        description: Human readable note
    """

    name: str
    type: VariableType | None = None
    value: Any = None
    default: Any = None
    description: str | None = None

    class Config:
        populate_by_name = True
        extra = "allow"

    @property
    def kind(self) -> VariableType:
        return self.type or VariableType.VALUE

    @property
    def source_key(self) -> str:
        """Lookup key for environment, reference and secret variables."""
        return str(self.value) if self.value is not None else self.name


def as_variable_list(
    items: list[Any] | dict[str, Any] | None,
) -> list[VariableDescriptor]:
    """Normalise a list or {name: descriptor} map into descriptors, input order kept."""
    if not items:
        return []

    if isinstance(items, dict):
        records = []
        for name, item in items.items():
            if isinstance(item, VariableDescriptor):
                records.append(item.model_copy(update={"name": name}))
            elif isinstance(item, dict):
                records.append(VariableDescriptor.model_validate({**item, "name": name}))
            else:
                records.append(VariableDescriptor(name=name, value=item))
        return records

    return [
        item if isinstance(item, VariableDescriptor) else VariableDescriptor.model_validate(item)
        for item in items
    ]
