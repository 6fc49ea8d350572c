"""
Configuration schemas for iacpipe.

AppSettings holds process-wide settings read from ``IACPIPE_*`` environment
variables. PipelineConfig is the configuration document handed to
PipelineManager.configure().

Example (JSON):
    {
        "id": "demo-dev",
        "project": "demo",
        "stack": "dev",
        "name": "demo",
        "template": {"type": "file", "file": {"path": "templates"}},
        "secret": {"type": "env"},
        "dependencies": [
            {"type": "auto", "regex": "^Demo", "path": "./components", "lifetime": "transient"}
        ]
    }
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from iacpipe.secrets.schemas import SecretOptions
from iacpipe.templates.schemas import TemplateOptions


class AppSettings(BaseModel):
    """
    Application settings model.

    Supplies the secret and template options used when a configuration
    document does not declare its own.
    """

    debug: bool = False
    log_level: str = "INFO"

    # Configuration document
    config_path: str = "cfg/config.json"

    # Template storage
    template_store: str = "file"
    template_path: str | None = None

    # Secrets
    secret_backend: str = "env"
    mongodb_uri_key: str = "MDB_URI"
    mongodb_database: str = "iacpipe"

    def secret_options(self) -> SecretOptions:
        options: dict[str, Any] = {"type": self.secret_backend}
        if self.secret_backend.lower() == "mdb":
            options["mdb"] = {"uri": self.mongodb_uri_key, "database": self.mongodb_database}
        return SecretOptions.model_validate(options)

    def template_options(self) -> TemplateOptions:
        options: dict[str, Any] = {"type": self.template_store, "file": {"path": self.template_path}}
        if self.template_store.lower() == "mdb":
            options["mdb"] = {"uri": self.mongodb_uri_key, "database": self.mongodb_database}
        return TemplateOptions.model_validate(options)


class PipelineConfig(BaseModel):
    """
    Pipeline configuration document.

    Attributes:
        id: Run identifier; defaults to ``<project>-<stack>``
        project: Default project name for actions
        stack: Default stack name for actions
        name: Default template name for actions
        dependencies: Descriptors registered by configure()
        template: Template manager options
        secret: Secret manager options
    """

    id: str | None = None
    project: str | None = None
    stack: str | None = None
    name: str | None = None
    dependencies: list[dict[str, Any]] | dict[str, dict[str, Any]] | None = None
    template: TemplateOptions = Field(default_factory=TemplateOptions)
    secret: SecretOptions = Field(default_factory=SecretOptions)

    class Config:
        populate_by_name = True
        extra = "allow"
        arbitrary_types_allowed = True
