"""Persistent registry mapping project directories to their containers.

The registry is a single JSON file under the data directory.  Each entry is keyed by
the canonical (symlink-resolved) project root and records which profile, image and
container belong to that project, together with the configuration hash in effect when
the container was created.  Lookups walk upward from any path, so commands work from
every subdirectory of a tracked project.

The registry file is shared between separate invocations without any locking.  Writes
replace the file atomically, but two concurrent invocations may still lose each
other's updates.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, ValidationError

from .errors import StateError
from .profile import CommandTable, DockerConfig, Profile
from .run import atomic_write_text


REGISTRY_VERSION: int = 1


def canonicalize(path: str | Path) -> Path:
    """Resolve a path to its canonical form, falling back to the literal path.

    Parameters
    ----------
    path : str | Path
        The path to canonicalize.

    Returns
    -------
    Path
        The absolute, symlink-resolved path if it exists, otherwise the path as given
        (made absolute against the current directory without touching the
        filesystem).
    """
    literal = Path(path).expanduser()
    try:
        return literal.resolve(strict=True)
    except (OSError, RuntimeError):
        return literal.absolute()


class Snapshot(BaseModel):
    """The runtime and command configuration frozen at container creation time.

    A container cannot change its mounts or flags after it is created, so running
    it uses the snapshot rather than whatever the profile says today.  Records
    written before snapshots existed carry none, in which case the named profile is
    reloaded instead (see `ProjectRecord.effective_snapshot()`).
    """
    model_config = ConfigDict(extra="forbid", frozen=True)
    docker: DockerConfig
    cmd: CommandTable

    @classmethod
    def of(cls, profile: Profile) -> Snapshot:
        """Take a snapshot of a profile.

        Parameters
        ----------
        profile : Profile
            The profile to snapshot.

        Returns
        -------
        Snapshot
            The profile's docker and command sections.
        """
        return cls(docker=profile.docker, cmd=profile.cmd)


class ProjectRecord(BaseModel):
    """Everything the registry knows about one tracked project."""
    model_config = ConfigDict(extra="forbid", frozen=True)
    profile_name: str = Field(description="The profile the container was created from.")
    container_name: str = Field(description="The container's name in the runtime.")
    image_tag: str = Field(description="The image tag the container was created from.")
    image_id: str | None = Field(
        default=None,
        description="The full image identifier, if the runtime reported one.",
    )
    config_hash: str = Field(description="Profile digest at creation time.")
    created_at: AwareDatetime
    last_used: AwareDatetime | None = None
    snapshot: Snapshot | None = None

    def touched(self, now: datetime | None = None) -> ProjectRecord:
        """Return a copy of this record with its last-used time refreshed.

        Parameters
        ----------
        now : datetime | None, optional
            The timestamp to record.  Defaults to the current UTC time.

        Returns
        -------
        ProjectRecord
            The updated copy.
        """
        return self.model_copy(update={"last_used": now or datetime.now(timezone.utc)})

    def effective_snapshot(self, reload: Callable[[str], Profile]) -> Snapshot:
        """Get the configuration to run this project's container with.

        Parameters
        ----------
        reload : Callable[[str], Profile]
            Loads a profile by name.  Only called if this record has no snapshot.

        Returns
        -------
        Snapshot
            The frozen snapshot if present, otherwise a snapshot of the reloaded
            profile.
        """
        if self.snapshot is not None:
            return self.snapshot
        return Snapshot.of(reload(self.profile_name))


class Registry(BaseModel):
    """Serialized registry of every project tracked on this system.

    Attributes
    ----------
    version : int
        Schema version of the persisted file.  Files with other versions are
        currently accepted as-is.
    projects : dict[str, ProjectRecord]
        Records keyed by canonical project root.  Use the methods below rather than
        mutating this mapping directly.
    """
    model_config = ConfigDict(extra="forbid")
    version: int = REGISTRY_VERSION
    projects: dict[str, ProjectRecord] = Field(default_factory=dict)

    def find_project(self, path: str | Path) -> tuple[Path, ProjectRecord] | None:
        """Find the project containing a path.

        Parameters
        ----------
        path : str | Path
            Any path inside a project, or the project root itself.

        Returns
        -------
        tuple[Path, ProjectRecord] | None
            The deepest tracked ancestor of `path` (inclusive) and its record, or None
            if no ancestor is tracked.
        """
        current = canonicalize(path)
        for candidate in (current, *current.parents):
            record = self.projects.get(str(candidate))
            if record is not None:
                return candidate, record
        return None

    def set_project(self, path: str | Path, record: ProjectRecord) -> Path:
        """Insert or replace the record for exactly this path.

        Parameters
        ----------
        path : str | Path
            The project root.  It is canonicalized, but not searched upward.
        record : ProjectRecord
            The record to store.

        Returns
        -------
        Path
            The key the record was stored under.
        """
        key = canonicalize(path)
        self.projects[str(key)] = record
        return key

    def remove_project(self, path: str | Path) -> ProjectRecord | None:
        """Remove the record for a project root, if any.

        Parameters
        ----------
        path : str | Path
            The project root.  The canonical path is tried first, then the literal
            path.

        Returns
        -------
        ProjectRecord | None
            The removed record, or None if nothing was tracked at this path.
        """
        literal = Path(path).expanduser()
        try:
            canonical: Path | None = literal.resolve(strict=True)
        except (OSError, RuntimeError):
            canonical = None
        if canonical is not None:
            record = self.projects.pop(str(canonical), None)
            if record is not None:
                return record
        return self.projects.pop(str(literal.absolute()), None)

    def list_projects(self) -> list[tuple[Path, ProjectRecord]]:
        """
        Returns
        -------
        list[tuple[Path, ProjectRecord]]
            All tracked projects, sorted by path.
        """
        return sorted(
            ((Path(k), v) for k, v in self.projects.items()),
            key=lambda item: item[0],
        )

    @classmethod
    def load(cls, path: Path) -> Registry:
        """Load the registry from disk.

        Parameters
        ----------
        path : Path
            The registry file.

        Returns
        -------
        Registry
            The persisted registry, or an empty one at the current version if the
            file does not exist yet.

        Raises
        ------
        StateError
            If the file exists but cannot be read or parsed.
        """
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as err:
            raise StateError(f"failed to read registry at {path}: {err}") from err
        if not isinstance(data, dict):
            raise StateError(f"registry at {path} must be a JSON object")
        try:
            return cls.model_validate(data)
        except ValidationError as err:
            raise StateError(f"invalid registry at {path}:\n{err}") from err

    def save(self, path: Path) -> None:
        """Overwrite the registry file with the current contents.

        Parameters
        ----------
        path : Path
            The registry file.

        Raises
        ------
        StateError
            If the file cannot be written.
        """
        try:
            atomic_write_text(
                path,
                json.dumps(self.model_dump(mode="json"), indent=2, sort_keys=True) + "\n",
            )
        except OSError as err:
            raise StateError(f"failed to write registry at {path}: {err}") from err
