"""Per-project GitHub token storage.

Each project directory owns at most one token, stored as plain text at
``<project>/.github_integration/token``. The directory is created on demand
with owner-only permissions and carries its own ``.gitignore`` so the
credential is never committed. The token file itself is written with mode
0600.

Reads never raise: a missing, empty, or unreadable file all mean "no token",
but ``read()`` reports which of those it was.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from .errors import TokenStorageError
from ...trace import mask_token, trace as _trace_write

logger = logging.getLogger(__name__)

TOKEN_DIR_NAME = ".github_integration"
TOKEN_FILE_NAME = "token"

ProjectPath = Union[str, os.PathLike]


class LoadStatus(Enum):
    """Outcome of reading the token file."""
    FOUND = "found"
    ABSENT = "absent"
    ERROR = "error"


@dataclass
class TokenLoadResult:
    """Result of TokenStore.read().

    Attributes:
        status: FOUND, ABSENT (never stored, or empty), or ERROR (unreadable).
        token: The stripped token when status is FOUND.
        error: Description of the failure when status is ERROR.
    """
    status: LoadStatus
    token: Optional[str] = None
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.status is LoadStatus.FOUND


class TokenStore:
    """Stores one bearer token per project directory."""

    def __init__(self, dir_name: str = TOKEN_DIR_NAME, file_name: str = TOKEN_FILE_NAME):
        self._dir_name = dir_name
        self._file_name = file_name

    def _trace(self, msg: str) -> None:
        _trace_write("GitHubTokenStore", msg)

    def token_path(self, project: ProjectPath) -> Path:
        """Return the token file path for a project directory."""
        return Path(project).expanduser().resolve() / self._dir_name / self._file_name

    def read(self, project: ProjectPath) -> TokenLoadResult:
        """Read the stored token, reporting why none was returned.

        Args:
            project: Project directory.

        Returns:
            TokenLoadResult with status FOUND, ABSENT or ERROR.
        """
        path = self.token_path(project)
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return TokenLoadResult(LoadStatus.ABSENT)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read GitHub token file %s: %s", path, exc)
            self._trace(f"read: error {path}: {exc}")
            return TokenLoadResult(LoadStatus.ERROR, error=str(exc))

        token = content.strip()
        if not token:
            return TokenLoadResult(LoadStatus.ABSENT)
        return TokenLoadResult(LoadStatus.FOUND, token=token)

    def load(self, project: ProjectPath) -> Optional[str]:
        """Return the stored token for a project, or None.

        Never raises; unreadable files are treated as absent.
        """
        return self.read(project).token

    def save(self, project: ProjectPath, token: str) -> None:
        """Store a token for a project, replacing any previous one.

        Args:
            project: Project directory.
            token: Bearer token to persist.

        Raises:
            TokenStorageError: If the directory or file cannot be written.
        """
        path = self.token_path(project)
        try:
            self._ensure_dir(path.parent)
            self._write_atomic(path, token)
        except OSError as exc:
            raise TokenStorageError(path, str(exc)) from exc

        self._trace(f"save: {path} ({mask_token(token)})")

    def _write_atomic(self, path: Path, token: str) -> None:
        """Write to a sibling temp file, then rename it over ``path``.

        The previous token stays in place until the new one is fully written.
        """
        # mkstemp creates the file with mode 0600
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                fd = None
                f.write(token)
            os.replace(tmp_name, path)
        except BaseException:
            if fd is not None:
                os.close(fd)
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

    def delete(self, project: ProjectPath) -> bool:
        """Remove the stored token for a project.

        Absence is not an error.

        Returns:
            True if a token file was removed, False if there was none.

        Raises:
            TokenStorageError: If an existing file cannot be removed.
        """
        path = self.token_path(project)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise TokenStorageError(path, str(exc)) from exc

        self._trace(f"delete: {path}")
        return True

    def _ensure_dir(self, directory: Path) -> None:
        """Create the token directory with owner-only access."""
        if directory.is_dir():
            return
        directory.mkdir(mode=0o700, parents=True, exist_ok=True)
        (directory / ".gitignore").write_text("*\n", encoding="utf-8")
