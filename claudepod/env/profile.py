"""Profile schema, validation, canonical hashing and on-disk storage.

A profile is a named TOML document under `<config>/profiles/<name>.toml` that
describes everything needed to render, build and run a sandbox container: the base
image and user, runtime flags and mounts, dependency lists and the command table.
Profiles are parsed into immutable pydantic models, checked against the supported
runtimes and Node.js sources, and hashed over a canonical JSON encoding so that
configuration drift can be detected without comparing files byte-for-byte.
"""
from __future__ import annotations

import hashlib
import json
import tomllib
from pathlib import Path
from typing import Any

import tomlkit
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import ClaudepodError, ProfileNotFoundError, ProfileValidationError, StateError
from .layout import PROFILE_SUFFIX, Layout
from .run import atomic_write_text


# pylint: disable=missing-function-docstring


RUNTIMES: tuple[str, ...] = ("docker", "podman")
NODEJS_SOURCES: tuple[str, ...] = ("nodesource", "apt", "nvm")
DEFAULT_PROFILE: str = "default"
DEFAULT_RUNTIME: str = "podman"
DEFAULT_NODEJS_SOURCE: str = "nodesource"
DEFAULT_COMMAND: str = "claude"
if DEFAULT_RUNTIME not in RUNTIMES:
    raise RuntimeError(f"default container runtime is unsupported: {DEFAULT_RUNTIME}")
if DEFAULT_NODEJS_SOURCE not in NODEJS_SOURCES:
    raise RuntimeError(f"default nodejs source is unsupported: {DEFAULT_NODEJS_SOURCE}")


DEFAULT_APT_PACKAGES: tuple[str, ...] = (
    "python3",
    "python3-pip",
    "python3-dev",
    "python3-dbg",
    "python3-pytest",
    "python3-numpy",
    "build-essential",
    "cmake",
    "ninja-build",
    "make",
    "clang-18",
    "libc++abi-18-dev",
    "libc++-18-dev",
    "lldb-18",
    "gdb",
    "bsdmainutils",
    "procps",
    "jq",
    "curl",
    "vim",
    "git",
    "gosu",
    "ripgrep",
    "sudo",
    "fd-find",
)


def _frozen() -> ConfigDict:
    return ConfigDict(extra="forbid", frozen=True)


class ContainerConfig(BaseModel):
    """Identity of the container image: what it is built from and who runs in it."""
    model_config = _frozen()
    base_image: str = Field(
        default="ubuntu:25.04",
        description="The image that the generated Dockerfile builds FROM.",
    )
    user: str = Field(
        default="code",
        description="The unprivileged user created inside the image.",
    )
    home_dir: str = Field(default="/home/code", description="The user's home directory.")
    work_dir: str = Field(
        default="$PWD",
        description="Working directory inside the image.  `$PWD` means the project root.",
    )


class VolumeMount(BaseModel):
    """A bind mount from the host into the container.  `$PWD` and `$HOME` are
    expanded on the host side when the container is created.
    """
    model_config = _frozen()
    host: str
    container: str
    readonly: bool = False


class TmpfsMount(BaseModel):
    """An in-memory filesystem mounted into the container."""
    model_config = _frozen()
    path: str
    readonly: bool = False
    size: str = "1m"


def _default_volumes() -> list[VolumeMount]:
    return [
        VolumeMount(host="$PWD", container="$PWD"),
        VolumeMount(host="$HOME/.claude", container="/home/code/.claude"),
        VolumeMount(host="$HOME/.claude.json", container="/home/code/.claude.json"),
    ]


class DockerConfig(BaseModel):
    """Runtime options that are passed to the container engine at creation time."""
    model_config = _frozen()
    container_runtime: str = Field(
        default=DEFAULT_RUNTIME,
        description="The container engine executable, either 'docker' or 'podman'.",
    )
    enable_gpu: bool = True
    gpu_driver: str = "all"
    interactive: bool = True
    remove_on_exit: bool = True
    volumes: list[VolumeMount] = Field(default_factory=_default_volumes)
    tmpfs: list[TmpfsMount] = Field(
        default_factory=lambda: [TmpfsMount(path="/workspace/build", readonly=True)]
    )
    extra_args: list[str] = Field(default_factory=list)


class GitConfig(BaseModel):
    """Identity written to the container user's global git configuration."""
    model_config = _frozen()
    user_name: str = ""
    user_email: str = ""


class Command(BaseModel):
    """A single entry in a profile's command table.

    A command either names an executable of the same name inside the container
    (optionally with a Dockerfile `RUN` step that installs it) or refers to another
    entry through `command`, forming an alias.
    """
    model_config = _frozen()
    install: str | None = Field(
        default=None,
        description="Shell text run as a Dockerfile step to install this command.",
    )
    args: str = Field(
        default="",
        description="Arguments always passed to the executable, split like a shell.",
    )
    command: str | None = Field(
        default=None,
        description="Name of another command in the table that this one aliases.",
    )

    @property
    def alias(self) -> str | None:
        """
        Returns
        -------
        str | None
            The name of the command this entry refers to, or None if it names an
            executable directly.
        """
        return self.command


def _default_commands() -> dict[str, Command]:
    return {
        "claude": Command(
            install=(
                "npm install -g @anthropic-ai/claude-code && "
                "npm cache clean --force"
            ),
            args="--dangerously-skip-permissions --max-turns 99999999",
        ),
        "shell": Command(command="bash"),
        "bash": Command(),
        "zsh": Command(),
    }


class CommandTable(BaseModel):
    """The `[cmd]` section of a profile.

    On disk the table is flat: `default` names the command run when none is given,
    and every other key is a command name mapping to its definition.  In memory the
    definitions are held separately under `commands`.
    """
    model_config = _frozen()
    default: str = DEFAULT_COMMAND
    commands: dict[str, Command] = Field(default_factory=_default_commands)

    @model_validator(mode="before")
    @classmethod
    def _unflatten(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        names = set(data) - {"default"}
        if not names:
            return data  # no commands given, keep the built-in table

        # already nested: a non-empty mapping of names to definitions.  A command
        # literally named 'commands' holds scalar fields instead.
        commands = data.get("commands")
        if (
            names == {"commands"} and
            isinstance(commands, dict) and
            commands and
            all(isinstance(v, (dict, Command)) for v in commands.values())
        ):
            return data
        out: dict[str, Any] = {"commands": {}}
        for key, value in data.items():
            if key == "default":
                out["default"] = value
            else:
                out["commands"][key] = value
        return out

    @field_validator("commands")
    @classmethod
    def _validate_names(cls, value: dict[str, Command]) -> dict[str, Command]:
        for name in value:
            if not name.strip():
                raise ValueError("command names must be non-empty")
            if name == "default":
                raise ValueError("'default' is reserved and cannot name a command")
        return value

    def names(self) -> list[str]:
        """
        Returns
        -------
        list[str]
            The sorted names of all commands in the table.
        """
        return sorted(self.commands)

    def to_toml(self) -> dict[str, Any]:
        """Flatten the table into its on-disk form.

        Returns
        -------
        dict[str, Any]
            A mapping with the `default` key followed by one table per command.
        """
        out: dict[str, Any] = {"default": self.default}
        for name, command in self.commands.items():
            out[name] = command.model_dump(exclude_none=True)
        return out


class NodeJsConfig(BaseModel):
    """Node.js installation settings."""
    model_config = _frozen()
    enabled: bool = True
    version: str = "18"
    source: str = DEFAULT_NODEJS_SOURCE


class GithubCliConfig(BaseModel):
    """GitHub CLI installation settings."""
    model_config = _frozen()
    enabled: bool = True


class CustomDependency(BaseModel):
    """A named group of shell commands run while building the image."""
    model_config = _frozen()
    name: str
    commands: list[str] = Field(default_factory=list)


class DependenciesConfig(BaseModel):
    """Packages and install steps baked into the image."""
    model_config = _frozen()
    apt: list[str] = Field(default_factory=lambda: list(DEFAULT_APT_PACKAGES))
    nodejs: NodeJsConfig = Field(default_factory=NodeJsConfig)
    github_cli: GithubCliConfig = Field(default_factory=GithubCliConfig)
    pip: list[str] = Field(default_factory=list)
    npm: list[str] = Field(default_factory=list)
    custom: list[CustomDependency] = Field(default_factory=list)


class ShellConfig(BaseModel):
    """Interactive shell conveniences written into the user's shell rc file."""
    model_config = _frozen()
    aliases: dict[str, str] = Field(default_factory=lambda: {"n": "ninja"})
    history_search: bool = True


class Profile(BaseModel):
    """A complete, immutable sandbox configuration.

    Constructing a `Profile` only checks types.  Call `check()` (or load through
    `Profile.loads()`/`load_profile()`, which do so automatically) to enforce the
    value constraints before acting on a profile.
    """
    model_config = _frozen()
    container: ContainerConfig = Field(default_factory=ContainerConfig)
    docker: DockerConfig = Field(default_factory=DockerConfig)
    environment: dict[str, str] = Field(
        default_factory=lambda: {
            "CC": "clang-18",
            "CXX": "clang++-18",
            "TERM": "xterm-256color",
        }
    )
    git: GitConfig = Field(default_factory=GitConfig)
    cmd: CommandTable = Field(default_factory=CommandTable)
    dependencies: DependenciesConfig = Field(default_factory=DependenciesConfig)
    shell: ShellConfig = Field(default_factory=ShellConfig)

    def check(self) -> Profile:
        """Enforce the value constraints that types alone cannot express.

        Returns
        -------
        Profile
            This profile, for chaining.

        Raises
        ------
        ProfileValidationError
            If the container runtime or Node.js source is not in its allowed set, if
            the base image or user is empty, if any volume mount has an empty host or
            container path, or if the command table lacks its default command.
        """
        _require_supported(
            self.docker.container_runtime,
            where="docker.container_runtime",
            supported=RUNTIMES,
            description="container runtime",
        )
        if not self.container.base_image.strip():
            raise ProfileValidationError("base image at 'container.base_image' cannot be empty")
        if not self.container.user.strip():
            raise ProfileValidationError("user at 'container.user' cannot be empty")
        for idx, volume in enumerate(self.docker.volumes):
            if not volume.host.strip() or not volume.container.strip():
                raise ProfileValidationError(
                    f"volume mount paths at 'docker.volumes[{idx}]' cannot be empty "
                    f"(host: '{volume.host}', container: '{volume.container}')"
                )
        if self.dependencies.nodejs.enabled:
            _require_supported(
                self.dependencies.nodejs.source,
                where="dependencies.nodejs.source",
                supported=NODEJS_SOURCES,
                description="nodejs source",
            )
        if self.cmd.default not in self.cmd.commands:
            choices = ", ".join(self.cmd.names()) or "none"
            raise ProfileValidationError(
                f"default command at 'cmd.default': '{self.cmd.default}' is not defined "
                f"in the command table (defined: {choices})"
            )
        return self

    def canonical(self) -> str:
        """Serialize the profile into its canonical text form.

        Keys are sorted at every level and whitespace is fixed, so two profiles that
        compare equal always produce the same text regardless of the order in which
        their mappings were populated.

        Returns
        -------
        str
            A compact JSON encoding of the profile.
        """
        return json.dumps(
            self.model_dump(mode="json"),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )

    def digest(self) -> str:
        """Compute the SHA-256 hash of the canonical form.

        Returns
        -------
        str
            A 64-character lowercase hex digest.
        """
        return hashlib.sha256(self.canonical().encode("utf-8")).hexdigest()

    @classmethod
    def loads(cls, text: str, *, where: str = "<profile>") -> Profile:
        """Parse and check a profile from TOML text.

        Parameters
        ----------
        text : str
            The TOML document.
        where : str, optional
            A description of the source, used in error messages.

        Returns
        -------
        Profile
            The parsed and checked profile.

        Raises
        ------
        StateError
            If the text is not valid TOML.
        ProfileValidationError
            If the document does not match the profile schema or fails `check()`.
        """
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as err:
            raise StateError(f"failed to parse profile TOML at {where}: {err}") from err
        try:
            profile = cls.model_validate(data)
        except ValidationError as err:
            raise ProfileValidationError(f"invalid profile at {where}:\n{err}") from err
        return profile.check()

    def dumps(self, *, name: str | None = None) -> str:
        """Render the profile as a TOML document.

        Parameters
        ----------
        name : str | None, optional
            The profile name, recorded in a header comment.

        Returns
        -------
        str
            TOML text that `Profile.loads()` reads back into an equal profile.
        """
        doc = tomlkit.document()
        header = f"claudepod profile '{name}'" if name else "claudepod profile"
        doc.add(tomlkit.comment(header))
        doc.add(tomlkit.nl())
        payload = self.model_dump(mode="json", exclude={"cmd"})
        payload["cmd"] = self.cmd.to_toml()
        for key in ("container", "docker", "environment", "git", "cmd", "dependencies", "shell"):
            doc.add(key, payload[key])
        return tomlkit.dumps(doc)


def _require_supported(
    value: str,
    *,
    where: str,
    supported: tuple[str, ...],
    description: str,
) -> str:
    if value not in supported:
        choices = ", ".join(supported)
        raise ProfileValidationError(
            f"unsupported {description} at '{where}': '{value}' (supported: {choices})"
        )
    return value


def _require_name(name: str) -> str:
    text = name.strip()
    if not text:
        raise ProfileValidationError("profile name must be non-empty")
    if "/" in text or "\\" in text or text in {".", ".."}:
        raise ProfileValidationError(f"invalid profile name: '{name}'")
    return text


def load_profile(name: str, layout: Layout) -> Profile:
    """Load and check a named profile.

    Parameters
    ----------
    name : str
        The profile name, without its `.toml` suffix.
    layout : Layout
        The directory layout to search.

    Returns
    -------
    Profile
        The loaded profile.

    Raises
    ------
    ProfileNotFoundError
        If no such profile exists.
    StateError
        If the file cannot be read or is not valid TOML.
    ProfileValidationError
        If the profile is malformed.
    """
    name = _require_name(name)
    path = layout.profile_file(name)
    if not path.is_file():
        raise ProfileNotFoundError(name)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as err:
        raise StateError(f"failed to read profile at {path}: {err}") from err
    return Profile.loads(text, where=str(path))


def save_profile(name: str, profile: Profile, layout: Layout, *, force: bool = False) -> Path:
    """Check and write a profile to the profile directory.

    Parameters
    ----------
    name : str
        The profile name, without its `.toml` suffix.
    profile : Profile
        The profile to write.
    layout : Layout
        The directory layout to write into.
    force : bool, optional
        Overwrite an existing profile of the same name.  Defaults to False.

    Returns
    -------
    Path
        The path that was written.

    Raises
    ------
    ClaudepodError
        If the profile already exists and `force` is False.
    ProfileValidationError
        If the name or profile is invalid.
    """
    name = _require_name(name)
    profile.check()
    path = layout.profile_file(name)
    if path.exists() and not force:
        raise ClaudepodError(
            f"profile '{name}' already exists at {path} (use --force to overwrite)"
        )
    atomic_write_text(path, profile.dumps(name=name))
    return path


def list_profiles(layout: Layout) -> list[str]:
    """List the names of all available profiles.

    Parameters
    ----------
    layout : Layout
        The directory layout to search.

    Returns
    -------
    list[str]
        Profile names in sorted order.
    """
    if not layout.profiles_dir.is_dir():
        return []
    return sorted(
        p.name[:-len(PROFILE_SUFFIX)]
        for p in layout.profiles_dir.iterdir()
        if p.is_file() and p.name.endswith(PROFILE_SUFFIX)
    )


def ensure_default(layout: Layout) -> Path:
    """Write the built-in default profile if it does not already exist.

    Parameters
    ----------
    layout : Layout
        The directory layout to write into.

    Returns
    -------
    Path
        The path to the default profile.
    """
    path = layout.profile_file(DEFAULT_PROFILE)
    if not path.exists():
        save_profile(DEFAULT_PROFILE, Profile(), layout)
    return path
