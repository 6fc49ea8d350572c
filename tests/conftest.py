"""
Pytest configuration and fixtures for iacpipe tests.
"""

import json
import sys
import textwrap
from pathlib import Path

import pytest

# Add the repository root to path for imports
# This allows `from iacpipe.ioc import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from iacpipe.config import get_settings  # noqa: E402
from iacpipe.ioc import Registry  # noqa: E402


@pytest.fixture
def registry():
    """Fresh registry per test."""
    return Registry()


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """get_settings() is cached per process; reset it around each test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def component_dir(tmp_path):
    """Directory of component modules loaded from source files."""
    directory = tmp_path / "components"
    directory.mkdir()

    (directory / "Foo.py").write_text(
        textwrap.dedent(
            """
            class Foo:
                def __init__(self, *args):
                    self.args = args
            """
        )
    )
    (directory / "DemoFirst.py").write_text(
        textwrap.dedent(
            """
            from iacpipe.pipeline import BaseComponent, ComponentResult


            class DemoFirst(BaseComponent):
                async def deploy(self, input, context):
                    return ComponentResult.ok("deploy", {"ip": "10.0.0.1", "zone": input.get("zone")})
            """
        )
    )
    (directory / "DemoSecond.py").write_text(
        textwrap.dedent(
            """
            from iacpipe.pipeline import BaseComponent, ComponentResult


            class DemoSecond(BaseComponent):
                async def deploy(self, input, context):
                    return ComponentResult.ok("deploy", {"url": f"http://{input['target']}"})
            """
        )
    )
    return directory


@pytest.fixture
def template_dir(tmp_path):
    """Directory for file-stored templates."""
    directory = tmp_path / "templates"
    directory.mkdir()
    return directory


@pytest.fixture
def write_template(template_dir):
    """Write a template document into template_dir."""

    def _write(document, name=None):
        name = name or document["name"]
        (template_dir / f"{name}.json").write_text(json.dumps(document))
        return name

    return _write


@pytest.fixture
def demo_template():
    """Two components where the second reads the first one's output."""
    return {
        "name": "demo",
        "version": "1.0.0",
        "engine": "local",
        "stack": {
            "orchestrator": "Node",
            "components": [
                {
                    "name": "DemoFirst",
                    "input": [{"name": "zone", "value": "eu-west-1a"}],
                },
                {
                    "name": "DemoSecond",
                    "input": [{"name": "target", "type": "reference", "value": "ip"}],
                    "output": [{"name": "endpoint", "type": "reference", "value": "url"}],
                },
            ],
        },
    }
