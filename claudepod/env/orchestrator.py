"""Container lifecycle for tracked projects.

Each project directory owns at most one container, which moves through three
states: absent (no record), created (record and container exist, container stopped)
and running.  The orchestrator composes the profile store, the registry, drift
detection and command resolution, and is the only component that talks to the
container runtime.  Registry changes are persisted only after the runtime call they
describe has succeeded.
"""
from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Sequence

from .commands import ResolvedCommand, resolve
from .drift import Drift, needs_rebuild
from .engine import Engine
from .errors import (
    ClaudepodError,
    ContainerNotFoundError,
    NotFoundError,
    ProfileValidationError,
    ProjectNotFoundError,
)
from .generator import render
from .layout import Layout
from .messages import INFO, OK, WARN
from .profile import DEFAULT_PROFILE, DEFAULT_RUNTIME, Profile, load_profile
from .registry import ProjectRecord, Registry, Snapshot, canonicalize
from .run import confirm


CONTAINER_PREFIX: str = "claudepod"


class ContainerState(Enum):
    """Lifecycle state of a project's container."""
    ABSENT = "absent"
    CREATED = "created"
    RUNNING = "running"


@dataclass(frozen=True)
class Status:
    """A snapshot of a tracked project, as reported by `Orchestrator.status()`."""
    root: Path
    record: ProjectRecord
    state: ContainerState
    drift: Drift | None
    problem: str | None = None


def container_name(root: Path) -> str:
    """
    Parameters
    ----------
    root : Path
        A canonical project root.

    Returns
    -------
    str
        The container name for the project, derived from a hash of its path.
    """
    digest = hashlib.sha256(str(root).encode("utf-8", "surrogateescape")).hexdigest()
    return f"{CONTAINER_PREFIX}-{digest[:12]}"


def image_tag(profile_name: str, profile: Profile) -> str:
    """
    Parameters
    ----------
    profile_name : str
        The profile's name.
    profile : Profile
        The profile's contents.

    Returns
    -------
    str
        The image tag for this version of the profile.  Runtimes require tags to be
        lowercase.
    """
    repo = re.sub(r"[^a-z0-9._-]+", "-", profile_name.lower()).strip("-._") or "profile"
    return f"{CONTAINER_PREFIX}-{repo}:{profile.digest()[:12]}"


def _same_image(a: str, b: str) -> bool:
    return a.removeprefix("sha256:") == b.removeprefix("sha256:")


class Orchestrator:
    """Drives projects through their container lifecycle.

    Parameters
    ----------
    layout : Layout
        Where profiles, build contexts and the registry live.
    registry : Registry | None, optional
        The loaded registry.  Read from `layout.state_file` if not given.
    engine : Callable[[str], Engine], optional
        Produces a runtime client for a runtime name.  Defaults to `Engine`.
    clock : Callable[[], datetime], optional
        Returns the current time for record timestamps.
    """

    def __init__(
        self,
        layout: Layout,
        registry: Registry | None = None,
        *,
        engine: Callable[[str], Engine] = Engine,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.layout = layout
        self.registry = Registry.load(layout.state_file) if registry is None else registry
        self._engine_factory = engine
        self._clock = clock
        self._engines: dict[str, Engine] = {}

    def engine(self, runtime: str) -> Engine:
        """Get the (cached) runtime client for a runtime name."""
        engine = self._engines.get(runtime)
        if engine is None:
            engine = self._engine_factory(runtime)
            self._engines[runtime] = engine
        return engine

    def profile(self, name: str) -> Profile:
        """Load a named profile from this orchestrator's layout."""
        return load_profile(name, self.layout)

    def _save(self) -> None:
        self.registry.save(self.layout.state_file)

    def _find(self, path: str | Path) -> tuple[Path, ProjectRecord]:
        found = self.registry.find_project(path)
        if found is None:
            raise ProjectNotFoundError(path)
        return found

    def _runtime(self, record: ProjectRecord) -> str:
        # records without a snapshot only know their runtime through the profile
        return record.effective_snapshot(self.profile).docker.container_runtime

    def _ensure_image(
        self,
        engine: Engine,
        profile_name: str,
        profile: Profile,
        *,
        force: bool,
    ) -> tuple[str, str | None]:
        tag = image_tag(profile_name, profile)
        if not force:
            image_id = engine.image_id(tag)
            if image_id is not None:
                INFO(f"reusing image {tag}")
                return tag, image_id

        context = render(profile, self.layout.build_context(profile_name))
        INFO(f"building image {tag} from {context.dockerfile}")
        image_id = engine.build(context.directory, tag)
        OK(f"built image {tag}")
        return tag, image_id

    def build(self, profile_name: str = DEFAULT_PROFILE, *, force: bool = False) -> tuple[str, str | None]:
        """Build (or reuse) the image for a profile without creating a container.

        Parameters
        ----------
        profile_name : str, optional
            The profile to build.  Defaults to 'default'.
        force : bool, optional
            Rebuild even if an image with the profile's tag already exists.

        Returns
        -------
        tuple[str, str | None]
            The image tag and identifier.

        Raises
        ------
        ProfileNotFoundError
            If the profile does not exist.
        CommandError
            If the build fails.
        """
        profile = self.profile(profile_name)
        engine = self.engine(profile.docker.container_runtime)
        return self._ensure_image(engine, profile_name, profile, force=force)

    def _provision(self, root: Path, profile_name: str, *, rebuild: bool) -> ProjectRecord:
        profile = self.profile(profile_name)
        engine = self.engine(profile.docker.container_runtime)
        name = container_name(root)
        if engine.container_exists(name):
            raise ClaudepodError(
                f"container '{name}' already exists but is not tracked for {root}.  "
                f"Remove it with '{engine.runtime} rm -f {name}' and try again."
            )
        tag, image_id = self._ensure_image(engine, profile_name, profile, force=rebuild)
        engine.create(name, tag, profile.docker, root)
        OK(f"created container {name} for {root}")
        return ProjectRecord(
            profile_name=profile_name,
            container_name=name,
            image_tag=tag,
            image_id=image_id,
            config_hash=profile.digest(),
            created_at=self._clock(),
            snapshot=Snapshot.of(profile),
        )

    def create(
        self,
        path: str | Path,
        profile_name: str = DEFAULT_PROFILE,
        *,
        rebuild: bool = False,
    ) -> tuple[Path, ProjectRecord]:
        """Start tracking a project directory and create its container.

        Parameters
        ----------
        path : str | Path
            The project root.
        profile_name : str, optional
            The profile to create the container from.  Defaults to 'default'.
        rebuild : bool, optional
            Rebuild the image even if one with the profile's tag already exists.

        Returns
        -------
        tuple[Path, ProjectRecord]
            The canonical project root and its new record.

        Raises
        ------
        ClaudepodError
            If the directory is already tracked, or an untracked container with the
            same name exists.
        ProfileNotFoundError
            If the profile does not exist.
        CommandError
            If building the image or creating the container fails.  Nothing is
            recorded in that case.
        """
        root = canonicalize(path)
        if str(root) in self.registry.projects:
            raise ClaudepodError(
                f"{root} already has a container.  Run 'claudepod reset' first to "
                "recreate it."
            )
        record = self._provision(root, profile_name, rebuild=rebuild)
        self.registry.set_project(root, record)
        self._save()
        return root, record

    def _check_drift(self, record: ProjectRecord) -> Drift | None:
        try:
            drift = needs_rebuild(self.profile(record.profile_name), record)
        except (NotFoundError, ProfileValidationError) as err:
            WARN(f"could not check profile '{record.profile_name}' for changes: {err}")
            return None
        if drift.stale:
            WARN(
                f"container is {drift} for profile '{record.profile_name}'.  Run "
                "'claudepod reset' and 'claudepod create' to pick up the changes."
            )
        return drift

    def _revive(self, root: Path, record: ProjectRecord, snapshot: Snapshot) -> ProjectRecord:
        engine = self.engine(snapshot.docker.container_runtime)
        if engine.container_exists(record.container_name):
            if record.image_id is not None:
                current = engine.container_image(record.container_name)
                if current is not None and not _same_image(current, record.image_id):
                    WARN(
                        f"container {record.container_name} was created from image "
                        f"{current}, but {record.image_id} was recorded"
                    )
            return record

        WARN(f"container {record.container_name} no longer exists; recreating it")
        if engine.image_exists(record.image_tag):
            engine.create(record.container_name, record.image_tag, snapshot.docker, root)
            return record
        fresh = self._provision(root, record.profile_name, rebuild=False)
        return fresh.model_copy(update={"created_at": record.created_at})

    def run(
        self,
        cwd: str | Path,
        command: str | None = None,
        args: Sequence[str] = (),
        *,
        profile_name: str | None = None,
    ) -> ResolvedCommand:
        """Run a named command in the container of the project containing `cwd`.

        If `cwd` is not inside a tracked project, it becomes a new project created
        from `profile_name` (or the default profile).  A changed profile only
        produces a warning, since running never replaces a live container.

        Parameters
        ----------
        cwd : str | Path
            The caller's working directory.
        command : str | None, optional
            The command to run.  Defaults to the command table's default.  The
            default command runs in the project root, whether it is named or not.
            Other commands run in `cwd`.
        args : Sequence[str], optional
            Extra arguments appended to the command.
        profile_name : str | None, optional
            The profile for a newly created project.  Ignored for tracked projects.

        Returns
        -------
        ResolvedCommand
            The command that was executed.

        Raises
        ------
        CommandNotFoundError, CommandCycleError
            If the command cannot be resolved.
        CommandError
            If any runtime call fails, including a non-zero exit from the command.
        """
        cwd = canonicalize(cwd)
        found = self.registry.find_project(cwd)
        if found is None:
            name = profile_name or DEFAULT_PROFILE
            INFO(f"no project found at {cwd}; creating one with profile '{name}'")
            root, record = self.create(cwd, name)
        else:
            root, record = found
            if profile_name is not None and profile_name != record.profile_name:
                WARN(
                    f"{root} uses profile '{record.profile_name}'; ignoring "
                    f"'{profile_name}'"
                )
            self._check_drift(record)

        snapshot = record.effective_snapshot(self.profile)
        resolved = resolve(snapshot.cmd, command)
        revived = self._revive(root, record, snapshot)
        if revived != record:
            # a rebuilt container carries the current profile's commands
            record = revived
            self.registry.set_project(root, record)
            self._save()
            if record.snapshot is not None:
                snapshot = record.snapshot
                resolved = resolve(snapshot.cmd, command)

        engine = self.engine(snapshot.docker.container_runtime)
        if not engine.container_running(record.container_name):
            engine.start(record.container_name)

        self.registry.set_project(root, record.touched(self._clock()))
        self._save()

        workdir = root if resolved.requested == snapshot.cmd.default else cwd
        engine.exec(
            record.container_name,
            resolved.argv(args),
            workdir=workdir,
            interactive=snapshot.docker.interactive,
        )
        return resolved

    def reset(self, path: str | Path, *, assume_yes: bool = False) -> tuple[Path, ProjectRecord]:
        """Forcibly remove a project's container and stop tracking it.

        Parameters
        ----------
        path : str | Path
            Any path inside the project.
        assume_yes : bool, optional
            Skip the confirmation prompt.

        Returns
        -------
        tuple[Path, ProjectRecord]
            The project root and the record that was removed.

        Raises
        ------
        ProjectNotFoundError
            If no tracked project contains `path`.
        ProfileNotFoundError, ProfileValidationError
            If the project's record predates snapshots and its profile cannot be
            loaded, since the profile is then the only record of the runtime.
        ClaudepodError
            If the user declines the confirmation prompt.
        CommandError
            If the runtime fails to remove the container.  The record is kept.
        """
        root, record = self._find(path)
        prompt = (
            f"This will remove container {record.container_name} for:\n  {root}\n"
            "Anything stored outside of mounted volumes will be lost.\n"
            "Proceed? [y/N] "
        )
        if not confirm(prompt, assume_yes=assume_yes):
            raise ClaudepodError("reset declined by user")

        self.engine(self._runtime(record)).remove(record.container_name)
        self.registry.remove_project(root)
        self._save()
        OK(f"removed container {record.container_name}")
        return root, record

    def status(self, path: str | Path) -> Status:
        """Report the state of the project containing `path`.

        Raises
        ------
        ProjectNotFoundError
            If no tracked project contains `path`.
        ProfileNotFoundError, ProfileValidationError
            If the project's record predates snapshots and its profile cannot be
            loaded, since the profile is then the only record of the runtime.
        """
        root, record = self._find(path)
        engine = self.engine(self._runtime(record))
        if engine.container_running(record.container_name):
            state = ContainerState.RUNNING
        elif engine.container_exists(record.container_name):
            state = ContainerState.CREATED
        else:
            state = ContainerState.ABSENT

        try:
            drift: Drift | None = needs_rebuild(self.profile(record.profile_name), record)
            problem = None
        except (NotFoundError, ProfileValidationError) as err:
            drift = None
            problem = str(err)
        return Status(root=root, record=record, state=state, drift=drift, problem=problem)

    def projects(self) -> list[tuple[Path, ProjectRecord]]:
        """
        Returns
        -------
        list[tuple[Path, ProjectRecord]]
            Every tracked project, sorted by path.
        """
        return self.registry.list_projects()

    def export(self, path: str | Path, archive: Path) -> Path:
        """Export the filesystem of a project's container to a tar archive.

        Raises
        ------
        ProjectNotFoundError
            If no tracked project contains `path`.
        ProfileNotFoundError, ProfileValidationError
            If the project's record predates snapshots and its profile cannot be
            loaded, since the profile is then the only record of the runtime.
        ContainerNotFoundError
            If the project's container no longer exists.
        CommandError
            If the export fails.
        """
        _, record = self._find(path)
        archive = archive.expanduser().absolute()
        engine = self.engine(self._runtime(record))
        if not engine.container_exists(record.container_name):
            raise ContainerNotFoundError(record.container_name)
        engine.export(record.container_name, archive)
        OK(f"exported {record.container_name} to {archive}")
        return archive

    def import_image(self, archive: Path, tag: str, *, runtime: str = DEFAULT_RUNTIME) -> str | None:
        """Import a tar archive produced by `export()` as a new image.

        Returns
        -------
        str | None
            The new image's identifier.

        Raises
        ------
        CommandError
            If the import fails.
        """
        archive = archive.expanduser().absolute()
        if not archive.is_file():
            raise ClaudepodError(f"archive not found: {archive}")
        image_id = self.engine(runtime).import_archive(archive, tag)
        OK(f"imported {archive} as {tag}")
        return image_id
