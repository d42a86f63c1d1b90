"""
Errors - Exception taxonomy shared by backends, the controller and storage
==========================================================================
"""

from typing import Optional


class VividError(Exception):
    """Base class for all vivid errors."""
    pass


class ApplyError(VividError):
    """A backend could not apply or reset a vibrance value."""
    pass


class BackendUnavailableError(ApplyError):
    """The backend method is not usable (tool missing, probe no longer true)."""
    pass


class DisplayNotFoundError(ApplyError):
    """The display id is unknown to the inventory or to the backend."""

    def __init__(self, display_id: str, message: Optional[str] = None):
        self.display_id = display_id
        super().__init__(message or f"Display not found: {display_id}")


class ExternalToolFailedError(ApplyError):
    """An external tool ran but reported failure.

    ``exit_code`` is None when the tool timed out.
    """

    def __init__(self, command: str, exit_code: Optional[int], stderr: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        if exit_code is None:
            detail = "timed out"
        else:
            detail = f"exited with status {exit_code}"
        if stderr:
            detail = f"{detail}: {stderr}"
        super().__init__(f"'{command}' {detail}")


class PersistenceError(VividError):
    """The settings file could not be read or written."""
    pass
