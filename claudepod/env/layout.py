"""Filesystem locations used by claudepod.

Profiles live under the configuration directory, while the project registry and
rendered build contexts live under the data directory.  Both follow the XDG base
directory conventions and can be overridden with `CLAUDEPOD_CONFIG_DIR` and
`CLAUDEPOD_DATA_DIR`.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping


APP_NAME: str = "claudepod"
PROFILE_SUFFIX: str = ".toml"
STATE_FILE_NAME: str = "state.json"


def _base_dir(env: Mapping[str, str], override: str, xdg: str, fallback: str) -> Path:
    value = env.get(override, "").strip()
    if value:
        return Path(value).expanduser().resolve()
    value = env.get(xdg, "").strip()
    if value:
        return (Path(value).expanduser() / APP_NAME).resolve()
    return (Path(fallback).expanduser() / APP_NAME).resolve()


@dataclass(frozen=True)
class Layout:
    """Resolved directory layout for a single invocation of the tool."""
    config_dir: Path
    data_dir: Path

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Layout:
        """Resolve the layout from environment variables.

        Parameters
        ----------
        env : Mapping[str, str] | None, optional
            The environment to read from.  Defaults to `os.environ`.

        Returns
        -------
        Layout
            The resolved layout.
        """
        if env is None:
            env = os.environ
        return cls(
            config_dir=_base_dir(env, "CLAUDEPOD_CONFIG_DIR", "XDG_CONFIG_HOME", "~/.config"),
            data_dir=_base_dir(env, "CLAUDEPOD_DATA_DIR", "XDG_DATA_HOME", "~/.local/share"),
        )

    @property
    def profiles_dir(self) -> Path:
        """
        Returns
        -------
        Path
            The directory holding `<name>.toml` profile definitions.
        """
        return self.config_dir / "profiles"

    @property
    def build_dir(self) -> Path:
        """
        Returns
        -------
        Path
            The root directory for rendered build contexts.
        """
        return self.data_dir / "build"

    @property
    def state_file(self) -> Path:
        """
        Returns
        -------
        Path
            The path to the persisted project registry.
        """
        return self.data_dir / STATE_FILE_NAME

    def profile_file(self, name: str) -> Path:
        """Get the path to a named profile, whether or not it exists.

        Parameters
        ----------
        name : str
            The profile name, without its `.toml` suffix.

        Returns
        -------
        Path
            The path to the profile file.
        """
        return self.profiles_dir / f"{name}{PROFILE_SUFFIX}"

    def build_context(self, profile_name: str) -> Path:
        """Get the build context directory for a named profile.

        Parameters
        ----------
        profile_name : str
            The profile whose Dockerfile and entrypoint will be rendered there.

        Returns
        -------
        Path
            The build context directory.
        """
        return self.build_dir / profile_name
