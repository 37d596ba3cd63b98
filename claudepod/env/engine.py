"""Thin wrapper around the `docker` or `podman` command line.

Every call is a blocking subprocess with no timeout.  Failures surface as
`CommandError`, carrying the runtime's exit status and error text.
"""
from __future__ import annotations

import os
import string
from pathlib import Path
from typing import Sequence

from .errors import ProfileValidationError
from .profile import RUNTIMES, DockerConfig
from .run import CompletedProcess, UserInfo, run

#pylint: disable=redefined-builtin


KEEPALIVE: tuple[str, ...] = ("sleep", "infinity")


def expand(value: str, *, project_dir: Path, home: Path) -> str:
    """Expand `$VAR`/`${VAR}` references and a leading `~` in a mount path.

    Parameters
    ----------
    value : str
        The path text from the profile.
    project_dir : Path
        Substituted for `$PWD`.
    home : Path
        Substituted for `$HOME` and `~`.

    Returns
    -------
    str
        The expanded path.

    Raises
    ------
    ProfileValidationError
        If the text references an undefined variable or is malformed.
    """
    mapping = {**os.environ, "PWD": str(project_dir), "HOME": str(home)}
    try:
        text = string.Template(value).substitute(mapping)
    except KeyError as err:
        raise ProfileValidationError(
            f"undefined variable ${err.args[0]} in mount path '{value}'"
        ) from err
    except ValueError as err:
        raise ProfileValidationError(f"malformed mount path '{value}': {err}") from err
    if text == "~" or text.startswith("~/"):
        text = str(home) + text[1:]
    return text


class Engine:
    """A container runtime, invoked through its command-line client.

    Parameters
    ----------
    runtime : str
        The executable name, either 'docker' or 'podman'.
    user : UserInfo | None, optional
        The invoking user, whose IDs are passed to builds and containers.  Detected
        from the current process if not given.
    """

    def __init__(self, runtime: str, user: UserInfo | None = None) -> None:
        if runtime not in RUNTIMES:
            raise ProfileValidationError(
                f"unsupported container runtime: '{runtime}' "
                f"(supported: {', '.join(RUNTIMES)})"
            )
        self.runtime = runtime
        self.user = user or UserInfo()

    def __repr__(self) -> str:
        return f"Engine(runtime={self.runtime!r})"

    def cmd(
        self,
        args: list[str],
        *,
        check: bool = True,
        capture_output: bool | None = True,
        cwd: Path | None = None,
    ) -> CompletedProcess:
        """Run a runtime command.

        Parameters
        ----------
        args : list[str]
            The command arguments (excluding the runtime executable).
        check : bool, optional
            If True, raise CommandError on non-zero exit code.  Default is True.
        capture_output : bool | None, optional
            If True (the default), capture stdout/stderr in the returned
            `CompletedProcess` or `CommandError`.  If False, inherit the console.  If
            None, tee output to both.
        cwd : Path | None, optional
            An optional working directory to run the command in.

        Returns
        -------
        CompletedProcess
            The completed process result.

        Raises
        ------
        CommandError
            If the command fails and `check` is True.
        """
        return run(
            [self.runtime, *args],
            check=check,
            capture_output=capture_output,
            cwd=cwd,
        )

    def build(self, context: Path, tag: str) -> str | None:
        """Build an image from a rendered build context.

        Parameters
        ----------
        context : Path
            A directory containing a `Dockerfile`.
        tag : str
            The tag to apply to the built image.

        Returns
        -------
        str | None
            The built image's identifier, if the runtime reports one.
        """
        self.cmd(
            [
                "build",
                "--build-arg", f"USER_UID={self.user.uid}",
                "--build-arg", f"USER_GID={self.user.gid}",
                "-t", tag,
                ".",
            ],
            capture_output=None,
            cwd=context,
        )
        return self.image_id(tag)

    def image_id(self, tag: str) -> str | None:
        """
        Parameters
        ----------
        tag : str
            An image tag.

        Returns
        -------
        str | None
            The identifier of the image with this tag, or None if there is none.
        """
        result = self.cmd(["images", "-q", "--no-trunc", tag], check=False)
        if result.returncode != 0:
            return None
        lines = result.stdout.split()
        return lines[0] if lines else None

    def image_exists(self, tag: str) -> bool:
        """
        Parameters
        ----------
        tag : str
            An image tag.

        Returns
        -------
        bool
            True if an image with this tag exists.
        """
        return self.image_id(tag) is not None

    def _names(self, name: str, *, all: bool) -> list[str]:
        args = ["ps"]
        if all:
            args.append("-a")
        args.extend(["--filter", f"name=^{name}$", "--format", "{{.Names}}"])
        result = self.cmd(args)
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def container_exists(self, name: str) -> bool:
        """
        Parameters
        ----------
        name : str
            An exact container name.

        Returns
        -------
        bool
            True if a container with this name exists, running or not.
        """
        return name in self._names(name, all=True)

    def container_running(self, name: str) -> bool:
        """
        Parameters
        ----------
        name : str
            An exact container name.

        Returns
        -------
        bool
            True if a container with this name is currently running.
        """
        return name in self._names(name, all=False)

    def container_image(self, name: str) -> str | None:
        """
        Parameters
        ----------
        name : str
            An exact container name.

        Returns
        -------
        str | None
            The identifier of the image the container was created from, or None if
            it cannot be inspected.
        """
        result = self.cmd(["inspect", "--format", "{{.Image}}", name], check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def create_args(
        self,
        name: str,
        image_tag: str,
        docker: DockerConfig,
        project_dir: Path,
    ) -> list[str]:
        """Build the argument list for `create`.

        Parameters
        ----------
        name : str
            The container name.
        image_tag : str
            The image to create the container from.
        docker : DockerConfig
            Runtime flags and mounts.
        project_dir : Path
            The project root, always mounted at the same path inside the container.

        Returns
        -------
        list[str]
            Arguments to pass to the runtime, excluding the executable.
        """
        args = ["create", "--name", name]
        if docker.interactive:
            args.append("-it")
        if self.runtime == "podman":
            args.append("--userns=keep-id")
        args.extend(["-e", f"UID={self.user.uid}", "-e", f"GID={self.user.gid}"])

        project_mount = f"{project_dir}:{project_dir}"
        args.extend(["-v", project_mount])
        for volume in docker.volumes:
            host = expand(volume.host, project_dir=project_dir, home=self.user.home)
            target = expand(volume.container, project_dir=project_dir, home=self.user.home)
            mount = f"{host}:{target}"
            if mount == project_mount and not volume.readonly:
                continue  # already mounted
            if volume.readonly:
                mount += ":ro"
            args.extend(["-v", mount])

        for tmpfs in docker.tmpfs:
            spec = f"{tmpfs.path}:size={tmpfs.size}"
            if tmpfs.readonly:
                spec += ",ro"
            args.extend(["--tmpfs", spec])

        if docker.enable_gpu:
            args.extend(["--gpus", docker.gpu_driver])
        args.extend(docker.extra_args)
        args.append(image_tag)
        args.extend(KEEPALIVE)
        return args

    def create(
        self,
        name: str,
        image_tag: str,
        docker: DockerConfig,
        project_dir: Path,
    ) -> None:
        """Create a persistent container that idles until commands are executed in
        it.  See `create_args()` for the parameters.
        """
        self.cmd(self.create_args(name, image_tag, docker, project_dir))

    def start(self, name: str) -> None:
        """Start a stopped container."""
        self.cmd(["start", name])

    def exec(
        self,
        name: str,
        argv: Sequence[str],
        *,
        workdir: Path,
        interactive: bool = True,
    ) -> None:
        """Execute a command inside a running container, attached to the console.

        Parameters
        ----------
        name : str
            The container name.
        argv : Sequence[str]
            The command and its arguments.
        workdir : Path
            The working directory inside the container.
        interactive : bool, optional
            Allocate a TTY and keep stdin open.  Defaults to True.

        Raises
        ------
        CommandError
            If the command exits with a non-zero status.  The command's own output has
            already been written to the console.
        """
        args = ["exec"]
        if interactive:
            args.append("-it")
        args.extend(["-w", str(workdir), name, *argv])
        self.cmd(args, capture_output=False)

    def remove(self, name: str) -> None:
        """Forcibly remove a container, whether or not it is running.  Removing a
        container that does not exist is not an error.
        """
        result = self.cmd(["rm", "-f", name], check=False)
        if result.returncode != 0 and self.container_exists(name):
            self.cmd(["rm", "-f", name])

    def export(self, name: str, archive: Path) -> None:
        """Export a container's filesystem to a tar archive."""
        self.cmd(["export", "-o", str(archive), name])

    def import_archive(self, archive: Path, tag: str) -> str | None:
        """Import a tar archive as a new image.

        Parameters
        ----------
        archive : Path
            The archive produced by `export()`.
        tag : str
            The tag to apply to the new image.

        Returns
        -------
        str | None
            The identifier of the imported image.
        """
        self.cmd(["import", str(archive), tag])
        return self.image_id(tag)
