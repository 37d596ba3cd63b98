"""Version metadata for claudepod."""
from __future__ import annotations

from importlib import metadata as importlib_metadata


def _load_version() -> str:
    try:
        version = importlib_metadata.version("claudepod").strip()
    except importlib_metadata.PackageNotFoundError:
        # running from a source checkout
        return "0.0.0+unknown"
    if not version:
        raise OSError("installed distribution version for 'claudepod' is empty")
    return version


__version__: str = _load_version()
