"""Profile, registry, and container lifecycle management for claudepod."""
from .commands import ResolvedCommand, resolve
from .drift import Drift, DriftReason, needs_rebuild
from .engine import Engine
from .errors import (
    ClaudepodError,
    CommandCycleError,
    CommandNotFoundError,
    ContainerNotFoundError,
    NotFoundError,
    ProfileNotFoundError,
    ProfileValidationError,
    ProjectNotFoundError,
    StateError,
)
from .layout import Layout
from .orchestrator import ContainerState, Orchestrator, Status
from .profile import Profile, ensure_default, list_profiles, load_profile, save_profile
from .registry import ProjectRecord, Registry, Snapshot, canonicalize
from .run import CommandError
