"""Shared fixtures: an isolated directory layout and an in-memory container runtime."""
from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Sequence

import pytest

from claudepod.env import Layout, Orchestrator, ensure_default
from claudepod.env.profile import DockerConfig
from claudepod.env.run import CommandError


class FakeEngine:
    """Records runtime calls and keeps images and containers in memory.

    Operations named in `fail` raise `CommandError` as the real runtime would.
    """

    def __init__(self, runtime: str = "podman") -> None:
        self.runtime = runtime
        self.images: dict[str, str] = {}
        self.containers: dict[str, dict[str, object]] = {}
        self.calls: list[tuple[object, ...]] = []
        self.fail: set[str] = set()
        self.on_exec: Callable[[str, list[str], Path], None] | None = None

    def _call(self, op: str, *args: object) -> None:
        self.calls.append((op, *args))
        if op in self.fail:
            raise CommandError(125, [self.runtime, op], "", f"Error: {op} failed")

    def ops(self) -> list[str]:
        return [str(call[0]) for call in self.calls]

    def image_id(self, tag: str) -> str | None:
        return self.images.get(tag)

    def image_exists(self, tag: str) -> bool:
        return tag in self.images

    def build(self, context: Path, tag: str) -> str | None:
        self._call("build", context, tag)
        assert (context / "Dockerfile").is_file()
        image_id = "sha256:" + hashlib.sha256(tag.encode()).hexdigest()
        self.images[tag] = image_id
        return image_id

    def container_exists(self, name: str) -> bool:
        return name in self.containers

    def container_running(self, name: str) -> bool:
        return bool(self.containers.get(name, {}).get("running"))

    def container_image(self, name: str) -> str | None:
        container = self.containers.get(name)
        return None if container is None else str(container["image"])

    def create(self, name: str, image_tag: str, docker: DockerConfig, project_dir: Path) -> None:
        self._call("create", name, image_tag, project_dir)
        self.containers[name] = {"image": self.images.get(image_tag), "running": False}

    def start(self, name: str) -> None:
        self._call("start", name)
        self.containers[name]["running"] = True

    def exec(self, name: str, argv: Sequence[str], *, workdir: Path, interactive: bool = True) -> None:
        if self.on_exec is not None:
            self.on_exec(name, list(argv), workdir)
        self._call("exec", name, list(argv), workdir)

    def remove(self, name: str) -> None:
        self._call("remove", name)
        self.containers.pop(name, None)

    def export(self, name: str, archive: Path) -> None:
        self._call("export", name, archive)
        archive.write_text("archive", encoding="utf-8")

    def import_archive(self, archive: Path, tag: str) -> str | None:
        self._call("import", archive, tag)
        self.images[tag] = "sha256:imported"
        return self.images[tag]


class Clock:
    """A clock that advances one minute per reading."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


@pytest.fixture
def layout(tmp_path: Path) -> Layout:
    result = Layout(config_dir=tmp_path / "config", data_dir=tmp_path / "data")
    ensure_default(result)
    return result


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def orchestrator(layout: Layout, engine: FakeEngine, clock: Clock) -> Orchestrator:
    return Orchestrator(layout, engine=lambda runtime: engine, clock=clock)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    (root / "src" / "lib").mkdir(parents=True)
    return root.resolve()
