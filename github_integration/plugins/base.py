"""Plugin protocol and the command types plugins declare to the host."""

from typing import Any, Callable, Dict, List, NamedTuple, Optional, Protocol, runtime_checkable

from .types import ToolSchema


# Receives plugin output as (source, text, mode).
#
# source is the plugin name or "system". mode is "write" to open a new block
# or "append" to continue the last block from the same source. Rendering is
# up to the host.
OutputCallback = Callable[[str, str, str], None]


class CommandCompletion(NamedTuple):
    """One suggestion offered while the user types a command argument."""
    value: str
    description: str = ""


class CommandParameter(NamedTuple):
    """A named positional argument of a user command.

    Attributes:
        name: Key the parsed value is stored under.
        description: Help text.
        required: Whether the host should insist on a value.
        capture_rest: Take every remaining word as one string. Only
            meaningful on the last parameter.
    """
    name: str
    description: str = ""
    required: bool = False
    capture_rest: bool = False


class UserCommand(NamedTuple):
    """A command the user runs directly, bypassing the model.

    Attributes:
        name: What the user types, e.g. ``github-status``.
        description: One line for help and completion menus.
        share_with_model: Add the command's returned text to the conversation.
            Output sent through the output callback is shown to the user only.
        parameters: Argument layout for parse_command_args(). Without it the
            command receives ``{"args": [...]}``.
    """
    name: str
    description: str
    share_with_model: bool = False
    parameters: Optional[List[CommandParameter]] = None


def parse_command_args(command: UserCommand, raw_args: str) -> Dict[str, Any]:
    """Split the text after a command name into the command's parameters.

    Words are assigned to parameters in order; missing trailing parameters
    are left out of the result, and extra words are dropped unless the last
    parameter captures the rest.
    """
    words = raw_args.split()

    if not command.parameters:
        return {"args": words}

    parsed: Dict[str, Any] = {}
    for index, param in enumerate(command.parameters):
        if index >= len(words):
            break
        if param.capture_rest:
            parsed[param.name] = " ".join(words[index:])
            break
        parsed[param.name] = words[index]

    return parsed


@runtime_checkable
class ToolPlugin(Protocol):
    """What the registry requires of a plugin.

    A plugin contributes model tools (schemas plus executors) and, optionally,
    user commands. Hosts dispatch user commands through
    ``execute_user_command(command, args)``. ``set_workspace_path`` and
    ``set_output_callback`` are optional hooks the registry calls when present.
    """

    @property
    def name(self) -> str:
        ...

    def get_tool_schemas(self) -> List[ToolSchema]:
        ...

    def get_executors(self) -> Dict[str, Callable[[Dict[str, Any]], Any]]:
        """Map tool names to callables taking an argument dict.

        Results must be JSON-serializable.
        """
        ...

    def initialize(self, config: Optional[Dict[str, Any]] = None) -> None:
        ...

    def shutdown(self) -> None:
        ...

    def get_system_instructions(self) -> Optional[str]:
        ...

    def get_auto_approved_tools(self) -> List[str]:
        """Tool and command names that run without a permission prompt."""
        ...

    def get_user_commands(self) -> List[UserCommand]:
        ...
