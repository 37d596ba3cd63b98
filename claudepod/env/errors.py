"""Exception types raised by claudepod.

Every failure that can reach the command line derives from `ClaudepodError`, so the
entry point can report it as a single line and exit with a non-zero status.  Library
code never prints or exits on its own.
"""
from __future__ import annotations


class ClaudepodError(Exception):
    """Base class for all errors that are reported to the user."""


class ProfileValidationError(ClaudepodError, ValueError):
    """A profile contains a value outside of its allowed set, or is otherwise
    malformed.
    """


class NotFoundError(ClaudepodError, LookupError):
    """A named resource does not exist.  The message always names the command that
    corrects the situation.
    """


class ProfileNotFoundError(NotFoundError):
    """No profile with the requested name exists in the profile directory."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"profile '{name}' not found.  Run 'claudepod profile init {name}' to "
            "create it, or 'claudepod profile list' to see available profiles."
        )
        self.name = name


class ProjectNotFoundError(NotFoundError):
    """No tracked project contains the requested path."""

    def __init__(self, path: object) -> None:
        super().__init__(
            f"no claudepod project found at or above '{path}'.  Run "
            "'claudepod create [profile]' from the project root first."
        )
        self.path = path


class CommandNotFoundError(NotFoundError):
    """A command name (or an alias target) is missing from the command table."""

    def __init__(self, name: str, available: list[str]) -> None:
        choices = ", ".join(available) if available else "none"
        super().__init__(
            f"command '{name}' not found in profile (available: {choices}).  Add it "
            "under [cmd] in the profile, then run 'claudepod profile show <name>' to "
            "check the result."
        )
        self.name = name


class ContainerNotFoundError(NotFoundError):
    """The runtime has no container with the recorded name."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"container '{name}' does not exist.  Run 'claudepod reset' and then "
            "'claudepod create' to recreate it."
        )
        self.name = name


class CommandCycleError(ClaudepodError):
    """An alias chain revisits a name or exceeds the maximum number of hops."""

    def __init__(self, chain: list[str], message: str) -> None:
        super().__init__(f"{message}: {' -> '.join(chain)}")
        self.chain = chain


class StateError(ClaudepodError, OSError):
    """A persisted file (registry or profile) could not be parsed or written."""
