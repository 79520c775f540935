"""Tool plugins and the registry that exposes them to a host.

Each subpackage declaring ``PLUGIN_KIND = "tool"`` is found by
PluginRegistry.discover(); see ``registry`` for the host-side flow.
"""

from .base import ToolPlugin, UserCommand
from .registry import PluginRegistry

__all__ = ["PluginRegistry", "ToolPlugin", "UserCommand"]
