"""Containerized development sandboxes keyed by project directory."""
from .env import Orchestrator, Profile, Registry
from .env.version import __version__
