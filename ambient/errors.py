"""Exception types raised by the ambient trigger."""


class AmbientError(Exception):
    """Base class for all ambient trigger errors."""


class EmptyGroupError(AmbientError):
    """Raised when a sound group has no members to choose from."""

    def __init__(self, group_name: str = ""):
        self.group_name = group_name
        label = f"'{group_name}'" if group_name else "selected"
        super().__init__(f"The {label} group has no sound files registered")


class ConfigError(AmbientError, ValueError):
    """Raised when a schedule setting is outside its allowed range."""


class LibraryError(AmbientError):
    """Raised when a sound library edit or import is rejected."""
