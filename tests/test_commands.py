from __future__ import annotations

import pytest

from claudepod.env import CommandCycleError, CommandNotFoundError, resolve
from claudepod.env.commands import MAX_ALIAS_HOPS
from claudepod.env.profile import Command, CommandTable


def _table(default: str = "bash", **commands: Command) -> CommandTable:
    return CommandTable(default=default, commands=commands)


def _chain(length: int) -> CommandTable:
    """Build `c0 -> c1 -> ... -> c{length-1}`, where the last entry is terminal."""
    commands = {f"c{i}": Command(command=f"c{i + 1}") for i in range(length - 1)}
    commands[f"c{length - 1}"] = Command(args="--end")
    return CommandTable(default="c0", commands=commands)


class TestResolve:

    def test_terminal_command_resolves_to_itself(self) -> None:
        result = resolve(_table(bash=Command(args="-l")), "bash")
        assert result.executable == "bash"
        assert result.definition.args == "-l"
        assert result.chain == ("bash",)

    def test_one_hop_alias(self) -> None:
        result = resolve(_table(bash=Command(), shell=Command(command="bash")), "shell")
        assert result.requested == "shell"
        assert result.executable == "bash"
        assert result.chain == ("shell", "bash")

    def test_default_command(self) -> None:
        result = resolve(_table(default="shell", bash=Command(), shell=Command(command="bash")))
        assert result.requested == "shell"
        assert result.executable == "bash"

    def test_unknown_name(self) -> None:
        with pytest.raises(CommandNotFoundError, match="'vim'"):
            resolve(_table(bash=Command()), "vim")

    def test_dangling_alias(self) -> None:
        with pytest.raises(CommandNotFoundError) as err:
            resolve(_table(shell=Command(command="fish")), "shell")
        assert err.value.name == "fish"

    def test_self_reference(self) -> None:
        with pytest.raises(CommandCycleError) as err:
            resolve(_table(loop=Command(command="loop")), "loop")
        assert err.value.chain == ["loop", "loop"]

    def test_two_node_cycle(self) -> None:
        with pytest.raises(CommandCycleError, match="a -> b -> a"):
            resolve(_table(a=Command(command="b"), b=Command(command="a")), "a")

    def test_longest_chain_within_bound(self) -> None:
        result = resolve(_chain(MAX_ALIAS_HOPS))
        assert result.executable == f"c{MAX_ALIAS_HOPS - 1}"
        assert len(result.chain) == MAX_ALIAS_HOPS

    def test_chain_exceeding_bound(self) -> None:
        with pytest.raises(CommandCycleError, match="depth exceeded"):
            resolve(_chain(MAX_ALIAS_HOPS + 1))

    def test_default_profile_commands(self) -> None:
        table = CommandTable()
        assert resolve(table).executable == "claude"
        assert resolve(table, "shell").executable == "bash"


class TestArgv:

    def test_configured_then_extra_arguments(self) -> None:
        table = _table(claude=Command(args="--max-turns 5 --flag 'two words'"))
        argv = resolve(table, "claude").argv(["-p", "hi"])
        assert argv == ["claude", "--max-turns", "5", "--flag", "two words", "-p", "hi"]

    def test_alias_uses_terminal_arguments(self) -> None:
        table = _table(bash=Command(args="-l"), shell=Command(command="bash", args="-x"))
        assert resolve(table, "shell").argv() == ["bash", "-l"]
