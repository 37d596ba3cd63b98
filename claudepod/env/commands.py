"""Resolve a requested command name through the profile's alias graph."""
from __future__ import annotations

import shlex
from dataclasses import dataclass
from typing import Sequence

from .errors import CommandCycleError, CommandNotFoundError
from .profile import Command, CommandTable


MAX_ALIAS_HOPS: int = 10


@dataclass(frozen=True)
class ResolvedCommand:
    """The result of resolving a command name.

    Attributes
    ----------
    requested : str
        The name the user asked for.
    executable : str
        The terminal command name, which is also the executable run in the container.
    definition : Command
        The terminal command's definition, carrying its argument string and optional
        install step.
    chain : tuple[str, ...]
        Every name visited, from `requested` to `executable` inclusive.
    """
    requested: str
    executable: str
    definition: Command
    chain: tuple[str, ...]

    def argv(self, extra: Sequence[str] = ()) -> list[str]:
        """Build the argument vector to execute inside the container.

        Parameters
        ----------
        extra : Sequence[str], optional
            Additional arguments appended after the definition's own arguments.

        Returns
        -------
        list[str]
            The executable, its configured arguments, then `extra`.
        """
        return [self.executable, *shlex.split(self.definition.args), *extra]


def resolve(table: CommandTable, name: str | None = None) -> ResolvedCommand:
    """Follow alias references from `name` until a command that names an executable
    is reached.

    Parameters
    ----------
    table : CommandTable
        The command table to search.  It may have been edited by hand, so no prior
        checks are assumed.
    name : str | None, optional
        The command to resolve.  Defaults to the table's default command.

    Returns
    -------
    ResolvedCommand
        The terminal command and the chain of names that led to it.

    Raises
    ------
    CommandNotFoundError
        If `name`, or any name it refers to, is missing from the table.
    CommandCycleError
        If the chain revisits a name, or more than `MAX_ALIAS_HOPS` names would
        have to be visited.
    """
    requested = table.default if name is None else name
    current = requested
    chain: list[str] = []
    visited: set[str] = set()
    for _ in range(MAX_ALIAS_HOPS):
        if current in visited:
            raise CommandCycleError(
                [*chain, current],
                f"circular command reference detected for '{requested}'",
            )
        visited.add(current)
        chain.append(current)
        definition = table.commands.get(current)
        if definition is None:
            raise CommandNotFoundError(current, table.names())
        if definition.alias is None:
            return ResolvedCommand(
                requested=requested,
                executable=current,
                definition=definition,
                chain=tuple(chain),
            )
        current = definition.alias

    raise CommandCycleError(
        [*chain, current],
        f"command reference depth exceeded {MAX_ALIAS_HOPS} (possible cycle)",
    )
