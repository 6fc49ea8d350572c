"""
Variable resolution for component inputs.

Exports:
    - VariableResolver: resolves descriptor lists against a scope
    - VariableDescriptor, VariableType: input records
"""

from .resolver import SECRET_MANAGER_KEY, VariableResolver
from .schemas import VariableDescriptor, VariableType, as_variable_list

__all__ = [
    "VariableResolver",
    "VariableDescriptor",
    "VariableType",
    "as_variable_list",
    "SECRET_MANAGER_KEY",
]
