"""Decide whether a project's container is stale with respect to its profile.

This module performs no I/O: the caller loads the profile and the registry record
and passes both in.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from .profile import Profile


class BuildRecord(Protocol):
    """The subset of a project record that drift detection reads."""
    config_hash: str
    image_id: str | None


class DriftReason(Enum):
    """Why a project's container no longer matches its profile.  Members are listed
    in the order they are checked.
    """
    NEVER_BUILT = "never built"
    CONFIG_CHANGED = "configuration changed"
    IMAGE_NOT_BUILT = "image not built"


@dataclass(frozen=True)
class Drift:
    """The verdict of `needs_rebuild()`.

    Attributes
    ----------
    reason : DriftReason | None
        The first rule that matched, or None if the container is up to date.
    current_hash : str
        The hash of the profile that was checked.
    recorded_hash : str | None
        The hash stored when the container was created, if any.
    """
    reason: DriftReason | None
    current_hash: str
    recorded_hash: str | None = None

    @property
    def stale(self) -> bool:
        """
        Returns
        -------
        bool
            True if any rule matched.
        """
        return self.reason is not None

    def __str__(self) -> str:
        if self.reason is None:
            return "up to date"
        return f"stale: {self.reason.value}"


def needs_rebuild(profile: Profile, record: BuildRecord | str | None) -> Drift:
    """Check a profile against what was recorded when its container was created.

    Rules are evaluated in order and the first match wins:

    1.  Nothing recorded: "never built".
    2.  The profile's hash differs from the recorded one: "configuration changed".
    3.  No image identifier was recorded: "image not built".

    Parameters
    ----------
    profile : Profile
        The current profile.
    record : BuildRecord | str | None
        The project's registry record, a bare recorded hash (which carries no image
        identifier), or None if nothing was ever recorded.

    Returns
    -------
    Drift
        The verdict, with `reason` set to None when up to date.
    """
    current = profile.digest()
    if record is None:
        return Drift(DriftReason.NEVER_BUILT, current)

    if isinstance(record, str):
        recorded: str = record
        image_id = None
    else:
        recorded = record.config_hash
        image_id = record.image_id

    if current != recorded:
        return Drift(DriftReason.CONFIG_CHANGED, current, recorded)
    if not image_id:
        return Drift(DriftReason.IMAGE_NOT_BUILT, current, recorded)
    return Drift(None, current, recorded)
