# GitHub integration package
#
# Provides a GitHub plugin for the host agent runtime: per-project token
# storage, token/device-flow login, and issue/pull request tools.
#
#   from github_integration import PluginRegistry, setup_integrations
#
# Imports are deferred via __getattr__ so that importing the package does not
# pull in requests/yaml until something is actually used.

__version__ = "0.3.0"

# Mapping from public name -> (module_path, attribute_name)
_LAZY_IMPORTS = {
    # Plugin system
    "PluginRegistry": (".plugins.registry", "PluginRegistry"),
    "ToolPlugin": (".plugins.base", "ToolPlugin"),
    "ToolSchema": (".plugins.types", "ToolSchema"),
    "CancelToken": (".plugins.types", "CancelToken"),
    # GitHub plugin
    "GitHubPlugin": (".plugins.github.plugin", "GitHubPlugin"),
    "SessionManager": (".plugins.github.session", "SessionManager"),
    "TokenStore": (".plugins.github.token_store", "TokenStore"),
    # Integration loading
    "setup_integrations": (".integrations", "setup_integrations"),
    "load_integrations_config": (".integrations", "load_integrations_config"),
}


def __getattr__(name):
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        import importlib
        module = importlib.import_module(module_path, __name__)
        value = getattr(module, attr_name)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "__version__",
    "PluginRegistry",
    "ToolPlugin",
    "ToolSchema",
    "CancelToken",
    "GitHubPlugin",
    "SessionManager",
    "TokenStore",
    "setup_integrations",
    "load_integrations_config",
]
