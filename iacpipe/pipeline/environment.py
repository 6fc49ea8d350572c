"""
Environment exposure of deploy outputs.

After a successful deploy the final output, tagged with the flow id, can be
published as environment variables of the current process so that tools
started afterwards (shell steps, CI jobs, child processes) can read it.

Controlled by environment variables:
    - IACPIPE_ENV_ACTION: ``EXPOSE`` turns exposure on; unset or anything else
      leaves the environment untouched
    - IACPIPE_ENV_PREFIX: key prefix (default ``IACPIPE_PL``); an empty prefix
      keeps keys as they are
    - IACPIPE_ENV_LIMIT: maximum value length (default 1024)
    - IACPIPE_ENV_QUOTE: replacement for double quotes (default ``§``)

Key format: ``<PREFIX>_<NAME>``, upper-cased.
Value format: strings as-is, booleans as ``true``/``false``, other values
JSON-encoded; line breaks and tabs collapse to single spaces.
Empty values (None, "", 0, False, empty containers) are skipped.
"""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Mapping

logger = logging.getLogger(__name__)

ACTION_ENV = "IACPIPE_ENV_ACTION"
PREFIX_ENV = "IACPIPE_ENV_PREFIX"
LIMIT_ENV = "IACPIPE_ENV_LIMIT"
QUOTE_ENV = "IACPIPE_ENV_QUOTE"

DEFAULT_PREFIX = "IACPIPE_PL"
DEFAULT_LIMIT = 1024
DEFAULT_QUOTE = "§"

_BREAKS = re.compile(r"(\r\n|\\r\\n|\r|\n|\\r|\\n|\t|\\t)")
_SPACES = re.compile(r"\s+")


def exposure_enabled() -> bool:
    return os.environ.get(ACTION_ENV, "").strip().upper() == "EXPOSE"


def env_key(name: str, prefix: str | None = None) -> str:
    if prefix is None:
        prefix = os.environ.get(PREFIX_ENV, DEFAULT_PREFIX)
    prefix = prefix.strip().upper()
    if not prefix:
        return name
    return f"{prefix}_{name.strip().upper()}"


def _limit() -> int:
    try:
        return int(os.environ.get(LIMIT_ENV, "")) or DEFAULT_LIMIT
    except ValueError:
        return DEFAULT_LIMIT


def env_value(value: Any) -> str:
    if isinstance(value, str):
        text = value
    elif isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, (int, float)):
        text = str(value)
    else:
        text = json.dumps(value, default=str)

    text = _SPACES.sub(" ", _BREAKS.sub(" ", text))
    text = text.replace('"', os.environ.get(QUOTE_ENV, DEFAULT_QUOTE)).strip()
    return text[: _limit()]


def expose(content: Mapping[str, Any], flow: str | None = None, prefix: str | None = None) -> dict[str, str]:
    """
    Set one environment variable per non-empty entry of content.

    Returns:
        The variables set, by key

    Raises:
        TypeError: If content is not a mapping
    """
    if not isinstance(content, Mapping):
        raise TypeError(f"Expected a mapping to expose, got {type(content).__name__}")

    exposed: dict[str, str] = {}
    for name, value in content.items():
        if not value:
            continue
        key = env_key(str(name), prefix)
        exposed[key] = os.environ[key] = env_value(value)

    logger.info(f"[env] Exposed {len(exposed)} variables (flow={flow}): {sorted(exposed)}")
    return exposed
