"""
Error taxonomy for iacpipe.

Fatal errors abort a pipeline run before (configuration) or while
(resolution) components execute. Variable-resolution problems are not
represented here: they degrade to the descriptor default and are logged.

Hierarchy:
    IacPipeError
    ├── ConfigurationError      - invalid descriptor, template or config document
    │   ├── TemplateNotFoundError - no template under the requested name
    │   └── RegistrationError   - a descriptor cannot be enrolled
    └── ResolutionError         - a registry key cannot be turned into an object
        └── ModuleLoadError     - a dynamic import failed
"""

from __future__ import annotations


class IacPipeError(Exception):
    """Base exception for iacpipe errors."""


class ConfigurationError(IacPipeError):
    """Raised when a configuration document or template is unusable."""


class TemplateNotFoundError(ConfigurationError):
    """Raised when a template store has no template with the requested name."""

    def __init__(self, name: str, store: str = ""):
        super().__init__(f"Template not found: {name}" + (f" ({store})" if store else ""))
        self.name = name


class RegistrationError(ConfigurationError):
    """Raised when a dependency descriptor cannot be registered."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class ResolutionError(IacPipeError):
    """Raised when a registry key cannot be resolved to an instance."""

    def __init__(self, message: str, key: str):
        super().__init__(message)
        self.key = key

    def __str__(self) -> str:
        return f"[{self.key}] {self.args[0]}"


class ModuleLoadError(ResolutionError):
    """Raised when a module referenced by a descriptor cannot be imported."""

    def __init__(self, message: str, location: str, key: str = ""):
        super().__init__(message, key)
        self.location = location

    def __str__(self) -> str:
        text = f"{self.args[0]} (location={self.location})"
        return f"[{self.key}] {text}" if self.key else text
