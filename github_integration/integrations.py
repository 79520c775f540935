"""Enable integrations listed in a workspace's integrations config.

The config lives at ``<workspace>/extensions/integrations/config.yaml``::

    integrations:
      - github

A workspace without the file simply has no integrations enabled.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .plugins.base import OutputCallback
from .plugins.github.env import load_env_file
from .plugins.registry import PluginRegistry
from .trace import trace as _trace_write

logger = logging.getLogger(__name__)

CONFIG_RELATIVE_PATH = os.path.join("extensions", "integrations", "config.yaml")

# Integration name -> message shown once it is enabled
KNOWN_INTEGRATIONS: Dict[str, str] = {
    "github": "GitHub integration enabled.",
}


class IntegrationsConfigError(Exception):
    """The integrations config exists but could not be read or parsed."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load integrations config {path}: {reason}")


def _trace(msg: str) -> None:
    _trace_write("Integrations", msg)


def config_path(workspace: str) -> Path:
    return Path(workspace) / CONFIG_RELATIVE_PATH


def load_integrations_config(workspace: str) -> List[str]:
    """Return the integration names enabled for a workspace.

    Returns:
        The ``integrations`` list, or an empty list if the config file does
        not exist or does not list any.

    Raises:
        IntegrationsConfigError: If the file exists but cannot be read, is
            not valid YAML, or has the wrong shape.
    """
    path = config_path(workspace)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    except OSError as exc:
        raise IntegrationsConfigError(path, str(exc)) from exc

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise IntegrationsConfigError(path, f"invalid YAML: {exc}") from exc

    if data is None:
        return []
    if not isinstance(data, dict):
        raise IntegrationsConfigError(path, "expected a mapping at the top level")

    integrations = data.get("integrations") or []
    if not isinstance(integrations, list):
        raise IntegrationsConfigError(path, "'integrations' must be a list")

    return [str(name).strip() for name in integrations if str(name).strip()]


def setup_integrations(
    registry: PluginRegistry,
    workspace: str,
    output_callback: Optional[OutputCallback] = None,
    plugin_configs: Optional[Dict[str, Dict[str, Any]]] = None,
) -> List[str]:
    """Expose the plugins for every integration the workspace enables.

    Args:
        registry: Registry to expose plugins on. Plugins are discovered if
            the registry does not know them yet.
        workspace: Project directory whose config is read.
        output_callback: Receives one message per enabled integration and
            any config error.
        plugin_configs: Extra per-integration config merged into the
            ``workspace_path`` passed to initialize().

    Returns:
        Names of the integrations that were enabled.
    """
    def notify(text: str) -> None:
        if output_callback:
            output_callback("system", text + "\n", "write")

    try:
        requested = load_integrations_config(workspace)
    except IntegrationsConfigError as exc:
        logger.warning("%s", exc)
        notify(str(exc))
        return []

    if not requested:
        _trace(f"no integrations configured in {workspace}")
        return []

    load_env_file(workspace)
    if output_callback:
        registry.set_output_callback(output_callback)

    enabled: List[str] = []
    for name in requested:
        if name not in KNOWN_INTEGRATIONS:
            logger.warning("Unknown integration '%s' in %s", name, config_path(workspace))
            continue

        if registry.get_plugin(name) is None:
            registry.discover()

        config: Dict[str, Any] = {"workspace_path": workspace}
        config.update((plugin_configs or {}).get(name, {}))
        try:
            registry.expose_tool(name, config)
        except ValueError as exc:
            logger.error("Cannot enable integration '%s': %s", name, exc)
            notify(f"Failed to enable {name} integration: {exc}")
            continue

        enabled.append(name)
        notify(KNOWN_INTEGRATIONS[name])

    registry.set_workspace_path(workspace)
    _trace(f"enabled integrations: {enabled}")
    return enabled
