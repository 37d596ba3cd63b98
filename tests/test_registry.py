from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from claudepod.env import Profile, ProjectRecord, Registry, Snapshot, StateError, canonicalize
from claudepod.env.registry import REGISTRY_VERSION


def _record(name: str = "default", **kwargs: object) -> ProjectRecord:
    fields: dict[str, object] = {
        "profile_name": name,
        "container_name": f"claudepod-{name}",
        "image_tag": f"claudepod-{name}:abc",
        "image_id": "sha256:abc",
        "config_hash": Profile().digest(),
        "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
    }
    fields.update(kwargs)
    return ProjectRecord(**fields)


class TestCanonicalize:

    def test_existing_path_is_resolved(self, tmp_path: Path) -> None:
        target = tmp_path / "real"
        target.mkdir()
        link = tmp_path / "link"
        link.symlink_to(target)
        assert canonicalize(link) == target.resolve()

    def test_missing_path_is_literal(self) -> None:
        assert canonicalize("/a/b/../c/d") == Path("/a/b/../c/d")


class TestFind:

    def test_upward_search(self) -> None:
        registry = Registry()
        registry.set_project("/a/b", _record())
        found = registry.find_project("/a/b/c/d")
        assert found is not None
        assert found[0] == Path("/a/b")
        assert found[1].profile_name == "default"

    def test_exact_match(self) -> None:
        registry = Registry()
        registry.set_project("/a/b", _record())
        assert registry.find_project("/a/b") is not None

    def test_no_matching_ancestor(self) -> None:
        registry = Registry()
        registry.set_project("/a/b", _record())
        assert registry.find_project("/x/y") is None
        assert registry.find_project("/a") is None
        assert Registry().find_project("/") is None

    def test_deepest_match_wins(self) -> None:
        registry = Registry()
        registry.set_project("/a", _record("outer"))
        registry.set_project("/a/b", _record("inner"))
        found = registry.find_project("/a/b/c")
        assert found is not None and found[1].profile_name == "inner"
        found = registry.find_project("/a/x")
        assert found is not None and found[1].profile_name == "outer"

    def test_symlinked_subdirectory(self, tmp_path: Path) -> None:
        root = tmp_path / "project"
        (root / "sub").mkdir(parents=True)
        link = tmp_path / "alias"
        link.symlink_to(root)

        registry = Registry()
        registry.set_project(root, _record())
        found = registry.find_project(link / "sub")
        assert found is not None
        assert found[0] == root.resolve()


class TestSetRemove:

    def test_set_replaces(self) -> None:
        registry = Registry()
        registry.set_project("/p", _record("one"))
        registry.set_project("/p", _record("two"))
        assert len(registry.projects) == 1
        assert registry.projects["/p"].profile_name == "two"

    def test_set_does_not_search_upward(self) -> None:
        registry = Registry()
        registry.set_project("/p", _record("outer"))
        registry.set_project("/p/sub", _record("inner"))
        assert sorted(registry.projects) == ["/p", "/p/sub"]

    def test_remove_then_find(self) -> None:
        registry = Registry()
        registry.set_project("/a/b", _record())
        removed = registry.remove_project("/a/b")
        assert removed is not None and removed.profile_name == "default"
        assert registry.find_project("/a/b") is None

    def test_remove_untracked(self) -> None:
        registry = Registry()
        assert registry.remove_project("/never/tracked") is None
        assert registry.remove_project("/never/tracked") is None

    def test_remove_prefers_canonical_path(self, tmp_path: Path) -> None:
        root = tmp_path / "project"
        root.mkdir()
        link = tmp_path / "alias"
        link.symlink_to(root)

        registry = Registry()
        registry.set_project(root, _record())
        assert registry.remove_project(link) is not None
        assert registry.projects == {}

    def test_remove_falls_back_to_literal_path(self, tmp_path: Path) -> None:
        gone = tmp_path / "deleted"
        registry = Registry()
        registry.projects[str(gone)] = _record()
        assert registry.remove_project(gone) is not None


class TestList:

    def test_sorted_by_path(self) -> None:
        registry = Registry()
        for path in ("/z", "/a/b", "/m", "/a"):
            registry.set_project(path, _record())
        assert [p for p, _ in registry.list_projects()] == [
            Path("/a"), Path("/a/b"), Path("/m"), Path("/z")
        ]


class TestPersistence:

    def test_missing_file_gives_empty_registry(self, tmp_path: Path) -> None:
        registry = Registry.load(tmp_path / "state.json")
        assert registry.version == REGISTRY_VERSION
        assert registry.projects == {}

    def test_save_then_load(self, tmp_path: Path) -> None:
        path = tmp_path / "data" / "state.json"
        registry = Registry()
        registry.set_project("/p", _record(snapshot=Snapshot.of(Profile())))
        registry.set_project("/q", _record(image_id=None))
        registry.save(path)

        loaded = Registry.load(path)
        assert loaded == registry
        assert loaded.projects["/p"].snapshot == Snapshot.of(Profile())

    def test_save_overwrites(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        registry = Registry()
        registry.set_project("/p", _record())
        registry.save(path)
        registry.remove_project("/p")
        registry.save(path)
        assert json.loads(path.read_text())["projects"] == {}

    def test_unknown_version_is_accepted(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"version": 99, "projects": {}}))
        assert Registry.load(path).version == 99

    @pytest.mark.parametrize("text", ["{not json", "[]", '{"projects": {"/p": {}}}'])
    def test_malformed_file(self, tmp_path: Path, text: str) -> None:
        path = tmp_path / "state.json"
        path.write_text(text)
        with pytest.raises(StateError):
            Registry.load(path)


class TestRecord:

    def test_touched_returns_copy(self) -> None:
        record = _record()
        now = datetime(2026, 2, 1, tzinfo=timezone.utc)
        touched = record.touched(now)
        assert touched.last_used == now
        assert record.last_used is None

    def test_snapshot_is_used_when_present(self) -> None:
        snapshot = Snapshot.of(Profile())

        def reload(name: str) -> Profile:
            raise AssertionError("profile should not be reloaded")

        assert _record(snapshot=snapshot).effective_snapshot(reload) == snapshot

    def test_missing_snapshot_reloads_profile(self) -> None:
        names: list[str] = []

        def reload(name: str) -> Profile:
            names.append(name)
            return Profile()

        assert _record("web").effective_snapshot(reload) == Snapshot.of(Profile())
        assert names == ["web"]
