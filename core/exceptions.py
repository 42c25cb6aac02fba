"""
Habit Mindmap exception hierarchy.

- MindMapError: base class for every known error
- ConfigError: runtime configuration is missing or inconsistent
- StateError: a persisted/imported state payload cannot be loaded

The goal store never raises; these are used by the layers around it.
"""
from typing import Optional


class MindMapError(Exception):
    """Base class for Habit Mindmap errors.

    Catching this handles every expected failure in the project.
    """

    def __init__(self, message: str, hint: Optional[str] = None):
        """
        Args:
            message: error description
            hint: what the user can do about it
        """
        super().__init__(message)
        self.message = message
        self.hint = hint

    def get_user_message(self) -> str:
        """Return a user-facing message."""
        if self.hint:
            return f"{self.message}\nHint: {self.hint}"
        return self.message


class ConfigError(MindMapError):
    """Configuration error.

    Raised when runtime.yaml holds values the layout or gesture code cannot use.
    """

    def __init__(self, message: str, config_path: Optional[str] = None):
        hint = f"Check the configuration file: {config_path}" if config_path else "Check the configuration values"
        super().__init__(message, hint)
        self.config_path = config_path


class StateError(MindMapError):
    """State payload error.

    Raised when a saved or imported state does not have the expected shape.
    """

    def __init__(self, message: str, corrupted_data: Optional[str] = None):
        hint = "The saved state may be corrupted, check mindmap_state.json"
        super().__init__(message, hint)
        self.corrupted_data = corrupted_data
