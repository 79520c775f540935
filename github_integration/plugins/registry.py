"""Finds plugins, tracks which ones are exposed, and fans host context out to them."""

import importlib
import importlib.metadata
import logging
import pkgutil
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from .base import OutputCallback, ToolPlugin, UserCommand, parse_command_args
from .types import ToolSchema
from ..trace import trace as _trace_write

logger = logging.getLogger(__name__)

# Other distributions register plugin factories under this group
PLUGIN_ENTRY_POINT_GROUP = "github_integration.plugins"

# Modules in this package that are not plugins
_NON_PLUGIN_MODULES = frozenset({"base", "registry", "types", "tests"})


def _trace(msg: str, include_traceback: bool = False) -> None:
    _trace_write("PluginRegistry", msg, include_traceback=include_traceback)
    if include_traceback:
        logger.error(msg, exc_info=True)
    else:
        logger.debug(msg)


class PluginRegistry:
    """Holds every known plugin and the subset whose tools the model can use.

    Typical host flow::

        registry = PluginRegistry()
        registry.discover()
        registry.set_output_callback(show)
        registry.expose_tool("github", {"workspace_path": root})

        schemas = registry.get_exposed_tool_schemas()
        executors = registry.get_exposed_executors()
        ...
        registry.unexpose_all()

    Plugins that define ``set_output_callback`` or ``set_workspace_path``
    receive the registry's current values when exposed and on every later
    change.
    """

    def __init__(self):
        self._known: Dict[str, ToolPlugin] = {}
        self._active: Dict[str, Optional[Dict[str, Any]]] = {}
        self._workspace_path: Optional[str] = None
        self._output_callback: Optional[OutputCallback] = None

    # ==================== Discovery ====================

    def discover(self, include_directory: bool = True) -> List[str]:
        """Load plugins from entry points and, optionally, this package.

        Plugins already known by name are skipped.

        Returns:
            Names of the newly found plugins.
        """
        found = self._discover_via_entry_points()
        if include_directory:
            found += self._discover_via_directory()
        return found

    def _adopt(self, source: str, plugin: Any) -> Optional[str]:
        if not isinstance(plugin, ToolPlugin):
            _trace(f"{source}: plugin does not implement ToolPlugin")
            return None
        if plugin.name in self._known:
            return None
        self._known[plugin.name] = plugin
        return plugin.name

    def _discover_via_entry_points(self) -> List[str]:
        found = []
        for ep in importlib.metadata.entry_points(group=PLUGIN_ENTRY_POINT_GROUP):
            if ep.name in self._known:
                continue
            try:
                plugin = ep.load()()
            except Exception as exc:
                _trace(f"entry point '{ep.name}' failed to load: {exc}", include_traceback=True)
                continue
            name = self._adopt(f"entry point '{ep.name}'", plugin)
            if name:
                found.append(name)
        return found

    def _discover_via_directory(self, plugin_dir: Optional[Path] = None) -> List[str]:
        """Import subpackages declaring ``PLUGIN_KIND = "tool"`` and call their create_plugin()."""
        search_path = str(plugin_dir or Path(__file__).parent)
        found = []

        for _finder, module_name, _ispkg in pkgutil.iter_modules([search_path]):
            if module_name.startswith("_") or module_name in _NON_PLUGIN_MODULES:
                continue
            try:
                module = importlib.import_module(f".{module_name}", package=__package__)
            except Exception as exc:
                _trace(f"plugin module '{module_name}' failed to import: {exc}",
                       include_traceback=True)
                continue

            if getattr(module, "PLUGIN_KIND", None) != "tool":
                continue
            factory = getattr(module, "create_plugin", None)
            if factory is None:
                _trace(f"{module_name}: no create_plugin()")
                continue

            name = self._adopt(module_name, factory())
            if name:
                found.append(name)

        return found

    # ==================== Lookup ====================

    def list_available(self) -> List[str]:
        return list(self._known)

    def list_exposed(self) -> List[str]:
        return list(self._active)

    def is_exposed(self, name: str) -> bool:
        return name in self._active

    def get_plugin(self, name: str) -> Optional[ToolPlugin]:
        return self._known.get(name)

    def _exposed_plugins(self) -> Iterator[Tuple[str, ToolPlugin]]:
        for name in list(self._active):
            yield name, self._known[name]

    # ==================== Exposure ====================

    def register_plugin(
        self,
        plugin: ToolPlugin,
        expose: bool = False,
        config: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Add a plugin built by the caller, optionally exposing it right away."""
        self._known[plugin.name] = plugin
        if expose:
            self.expose_tool(plugin.name, config)

    def expose_tool(self, name: str, config: Optional[Dict[str, Any]] = None) -> None:
        """Make a plugin's tools available, initializing it with ``config``.

        Exposing an exposed plugin again is a no-op unless a different,
        non-empty config is given; then the plugin is shut down and
        re-initialized with it.

        Raises:
            ValueError: If no plugin of that name is known.
        """
        plugin = self._known.get(name)
        if plugin is None:
            raise ValueError(f"Plugin '{name}' not found. Available: {self.list_available()}")

        if name in self._active:
            if not config or config == self._active[name]:
                return
            plugin.shutdown()
            _trace(f"re-initializing '{name}' with new config")

        plugin.initialize(config)
        self._active[name] = config
        self._hand_context(name, plugin)
        _trace(f"exposed '{name}'")

    def _hand_context(self, name: str, plugin: ToolPlugin) -> None:
        if self._output_callback and hasattr(plugin, "set_output_callback"):
            plugin.set_output_callback(self._output_callback)
        if self._workspace_path and hasattr(plugin, "set_workspace_path"):
            plugin.set_workspace_path(self._workspace_path)
            _trace(f"workspace -> {name}")

    def unexpose_tool(self, name: str) -> None:
        """Shut a plugin down and withdraw its tools. Unknown names are ignored."""
        if name in self._active:
            del self._active[name]
            self._known[name].shutdown()

    def unexpose_all(self) -> None:
        for name in list(self._active):
            self.unexpose_tool(name)

    # ==================== Host context ====================

    def set_output_callback(self, callback: Optional[OutputCallback]) -> None:
        self._output_callback = callback
        for _name, plugin in self._exposed_plugins():
            if hasattr(plugin, "set_output_callback"):
                plugin.set_output_callback(callback)

    def set_workspace_path(self, path: str) -> None:
        """Remember the workspace root and pass it to every exposed plugin.

        A plugin failing to accept it is traced and skipped.
        """
        self._workspace_path = path
        _trace(f"workspace path: {path}")

        for name, plugin in self._exposed_plugins():
            if not hasattr(plugin, "set_workspace_path"):
                continue
            try:
                plugin.set_workspace_path(path)
            except Exception as exc:
                _trace(f"workspace -> {name} failed: {exc}", include_traceback=True)
            else:
                _trace(f"workspace -> {name}")

    def get_workspace_path(self) -> Optional[str]:
        return self._workspace_path

    # ==================== Aggregation ====================

    def get_exposed_tool_schemas(self) -> List[ToolSchema]:
        return [
            schema
            for _name, plugin in self._exposed_plugins()
            for schema in plugin.get_tool_schemas()
        ]

    def get_exposed_executors(self) -> Dict[str, Callable[[Dict[str, Any]], Any]]:
        merged: Dict[str, Callable[[Dict[str, Any]], Any]] = {}
        for _name, plugin in self._exposed_plugins():
            merged.update(plugin.get_executors())
        return merged

    def get_auto_approved_tools(self) -> List[str]:
        return [
            tool
            for _name, plugin in self._exposed_plugins()
            for tool in plugin.get_auto_approved_tools() or []
        ]

    def get_exposed_user_commands(self) -> List[UserCommand]:
        return [
            command
            for _name, plugin in self._exposed_plugins()
            for command in plugin.get_user_commands() or []
        ]

    def execute_user_command(self, command: str, raw_args: str = "") -> Any:
        """Run a user command typed as ``command raw_args``.

        The arguments are parsed against the command's declared parameters
        before the owning plugin's execute_user_command() is called.

        Raises:
            ValueError: If no exposed plugin declares the command.
        """
        for _name, plugin in self._exposed_plugins():
            for declared in plugin.get_user_commands() or []:
                if declared.name == command:
                    return plugin.execute_user_command(
                        command, parse_command_args(declared, raw_args)
                    )
        raise ValueError(f"Unknown command: {command}")


