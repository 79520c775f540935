"""Types plugins hand to the host, and cancellation for blocking calls."""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class ToolSchema:
    """A model-callable tool, independent of any provider's wire format.

    Attributes:
        name: Tool name the model calls, e.g. ``github_list_issues``.
        description: What the tool does, written for the model.
        parameters: JSON Schema of the argument object.
        category: Grouping used by hosts to filter tools
            (``communication`` for everything in this package).
        discoverability: ``core`` tools are always in context;
            ``discoverable`` ones are loaded when the model asks for them.
    """
    name: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    category: Optional[str] = None
    discoverability: str = "discoverable"


class CancelledException(Exception):
    """A blocking operation stopped because its CancelToken was cancelled."""

    def __init__(self, message: str = "Operation was cancelled"):
        self.message = message
        super().__init__(message)


class CancelToken:
    """One-shot cancellation flag shared between threads.

    The thread doing the work polls ``is_cancelled`` or sleeps with
    ``wait()``; any other thread calls ``cancel()`` to stop it early.
    """

    def __init__(self):
        self._event = threading.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Set the flag. Later calls do nothing."""
        self._event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Sleep up to ``timeout`` seconds. Returns True if cancelled meanwhile."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledException()
