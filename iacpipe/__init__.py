"""
iacpipe - An infrastructure-as-code pipeline orchestration engine.

iacpipe runs named templates of pluggable components through their lifecycle
actions, with features like:

- **Dependency Registry**: Descriptor-driven construction with lifetimes,
  dynamic module loading and pattern-based auto-registration
- **Pipeline Orchestration**: Components run in template order, later ones
  reading earlier outputs through reference variables
- **Variable Resolution**: Literal, environment, scope and secret inputs
- **Secret Abstraction**: Environment, Vault and encrypted MongoDB backends
- **Template Stores**: File, in-memory and MongoDB template storage

Quick Start:
    >>> from iacpipe import create_pipeline_manager
    >>>
    >>> manager = create_pipeline_manager("cfg/config.json")
    >>> result = await manager.deploy({"template": "demo", "stack": "dev"})
    >>> result.output
"""

__version__ = "0.1.0"
__license__ = "MIT"

from iacpipe.errors import (
    ConfigurationError,
    IacPipeError,
    ModuleLoadError,
    RegistrationError,
    ResolutionError,
    TemplateNotFoundError,
)
from iacpipe.ioc import DependencyDescriptor, Registry
from iacpipe.pipeline import (
    BaseComponent,
    ComponentResult,
    PipelineContext,
    PipelineManager,
    PipelineRunResult,
    create_pipeline_manager,
)
from iacpipe.secrets import SecretManager
from iacpipe.templates import PipelineTemplate, TemplateManager
from iacpipe.variables import VariableResolver

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Registry
    "Registry",
    "DependencyDescriptor",
    # Pipeline
    "PipelineManager",
    "PipelineContext",
    "PipelineRunResult",
    "BaseComponent",
    "ComponentResult",
    "create_pipeline_manager",
    # Services
    "VariableResolver",
    "SecretManager",
    "TemplateManager",
    "PipelineTemplate",
    # Errors
    "IacPipeError",
    "ConfigurationError",
    "RegistrationError",
    "TemplateNotFoundError",
    "ResolutionError",
    "ModuleLoadError",
]
