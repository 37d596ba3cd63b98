"""Render a profile into a container build context.

The build context is a directory holding a `Dockerfile` and an `entrypoint.sh`,
rendered from jinja templates packaged under `claudepod/env/templates`.
"""
from __future__ import annotations

import json
import shlex
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

from jinja2 import Environment, StrictUndefined, TemplateError

from .errors import ClaudepodError
from .profile import Profile
from .run import atomic_write_text


DOCKERFILE: str = "Dockerfile"
ENTRYPOINT: str = "entrypoint.sh"
HISTORY_BINDINGS: tuple[str, ...] = (
    "bind '\"\\e[A\": history-search-backward'",
    "bind '\"\\e[B\": history-search-forward'",
)

# apt packages that install their binary under a different name
SYMLINKED_PACKAGES: dict[str, str] = {
    "fd-find": "fd_find_symlink",
}


@dataclass(frozen=True)
class BuildContext:
    """A rendered build context on disk."""
    directory: Path
    dockerfile: Path
    entrypoint: Path


def _environment() -> Environment:
    jinja = Environment(
        autoescape=False,
        undefined=StrictUndefined,
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    jinja.filters["shquote"] = shlex.quote
    jinja.filters["dquote"] = lambda value: json.dumps(str(value), ensure_ascii=False)
    return jinja


def _template(name: str) -> str:
    return resources.files("claudepod.env").joinpath("templates", f"{name}.j2").read_text(
        encoding="utf-8"
    )


def template_context(profile: Profile) -> dict[str, Any]:
    """Collect the values the templates are rendered with.

    Package lists are de-duplicated and sorted, and packages whose binaries need a
    post-install symlink are flagged.

    Parameters
    ----------
    profile : Profile
        The profile to render.

    Returns
    -------
    dict[str, Any]
        Template variables.
    """
    deps = profile.dependencies
    apt = sorted(set(deps.apt))
    bashrc = [f"alias {k}={shlex.quote(v)}" for k, v in sorted(profile.shell.aliases.items())]
    if profile.shell.history_search:
        bashrc.extend(HISTORY_BINDINGS)

    context: dict[str, Any] = {
        "base_image": profile.container.base_image,
        "user": profile.container.user,
        "home_dir": profile.container.home_dir,
        "work_dir": profile.container.work_dir,
        "apt_packages": apt,
        "nodejs_enabled": deps.nodejs.enabled,
        "nodejs_version": deps.nodejs.version,
        "nodejs_source": deps.nodejs.source,
        "github_cli_enabled": deps.github_cli.enabled,
        "pip_packages": sorted(set(deps.pip)),
        "npm_packages": sorted(set(deps.npm)),
        "custom_dependencies": [c.model_dump() for c in deps.custom],
        "environment": sorted(profile.environment.items()),
        "git_user_name": profile.git.user_name,
        "git_user_email": profile.git.user_email,
        "aliases": sorted(profile.shell.aliases.items()),
        "history_search": profile.shell.history_search,
        "bashrc_lines": bashrc,
        "commands": sorted(
            (name, command.install)
            for name, command in profile.cmd.commands.items()
            if command.install
        ),
    }
    for package, flag in SYMLINKED_PACKAGES.items():
        context[flag] = package in apt
    return context


def render(profile: Profile, output_dir: Path) -> BuildContext:
    """Render a profile's Dockerfile and entrypoint script into a directory.

    Parameters
    ----------
    profile : Profile
        A checked profile.
    output_dir : Path
        The build context directory.  Created if missing; existing files are
        overwritten.

    Returns
    -------
    BuildContext
        Paths to the rendered files.

    Raises
    ------
    ClaudepodError
        If a template fails to render.
    """
    jinja = _environment()
    context = template_context(profile)
    try:
        dockerfile = jinja.from_string(_template(DOCKERFILE)).render(**context)
        entrypoint = jinja.from_string(_template(ENTRYPOINT)).render(**context)
    except TemplateError as err:
        raise ClaudepodError(f"failed to render build context: {err}") from err

    output_dir.mkdir(parents=True, exist_ok=True)
    result = BuildContext(
        directory=output_dir,
        dockerfile=output_dir / DOCKERFILE,
        entrypoint=output_dir / ENTRYPOINT,
    )
    atomic_write_text(result.dockerfile, dockerfile)
    atomic_write_text(result.entrypoint, entrypoint)
    result.entrypoint.chmod(0o755)
    return result
