from __future__ import annotations

import os
from pathlib import Path

from claudepod.env import Profile
from claudepod.env.generator import render, template_context
from claudepod.env.profile import (
    Command,
    CommandTable,
    CustomDependency,
    DependenciesConfig,
    GitConfig,
    NodeJsConfig,
)


class TestContext:

    def test_packages_are_sorted_and_unique(self) -> None:
        deps = DependenciesConfig(apt=["vim", "git", "vim", "curl"], pip=["b", "a", "b"])
        context = template_context(Profile().model_copy(update={"dependencies": deps}))
        assert context["apt_packages"] == ["curl", "git", "vim"]
        assert context["pip_packages"] == ["a", "b"]
        assert context["fd_find_symlink"] is False

    def test_fd_find_is_flagged(self) -> None:
        assert template_context(Profile())["fd_find_symlink"] is True

    def test_only_commands_with_install_steps(self) -> None:
        context = template_context(Profile())
        assert [name for name, _ in context["commands"]] == ["claude"]


class TestRender:

    def test_default_profile(self, tmp_path: Path) -> None:
        result = render(Profile(), tmp_path / "ctx")
        dockerfile = result.dockerfile.read_text()
        assert dockerfile.startswith("# Generated by claudepod")
        assert "FROM ubuntu:25.04" in dockerfile
        assert "    fd-find \\\n" in dockerfile
        assert 'ln -sf "$(command -v fdfind)" /usr/local/bin/fd' in dockerfile
        assert "deb.nodesource.com/setup_18.x" in dockerfile
        assert "githubcli-archive-keyring" in dockerfile
        assert "npm install -g @anthropic-ai/claude-code" in dockerfile
        assert 'ENV CC="clang-18"' in dockerfile
        assert "alias n=ninja" in dockerfile
        assert "history-search-backward" in dockerfile
        assert "USER code" in dockerfile
        assert os.access(result.entrypoint, os.X_OK)
        assert result.entrypoint.read_text().rstrip().endswith('exec "$@"')

    def test_optional_sections(self, tmp_path: Path) -> None:
        profile = Profile().model_copy(update={
            "dependencies": DependenciesConfig(
                apt=["git"],
                nodejs=NodeJsConfig(source="nvm", version="20"),
                npm=["typescript"],
                custom=[CustomDependency(name="rust", commands=["curl -sSf https://sh.rustup.rs | sh -s -- -y"])],
            ),
            "git": GitConfig(user_name="Ada Lovelace", user_email="ada@example.com"),
            "cmd": CommandTable(default="bash", commands={"bash": Command()}),
        })
        result = render(profile, tmp_path)
        dockerfile = result.dockerfile.read_text()
        assert "nvm install 20" in dockerfile
        assert "nodesource" not in dockerfile
        assert "npm install -g typescript" in dockerfile
        assert "# rust\nRUN curl -sSf https://sh.rustup.rs" in dockerfile
        assert "fdfind" not in dockerfile
        assert "claude-code" not in dockerfile
        entrypoint = result.entrypoint.read_text()
        assert "git config --global user.name 'Ada Lovelace'" in entrypoint
        assert "git config --global user.email ada@example.com" in entrypoint

    def test_rerender_overwrites(self, tmp_path: Path) -> None:
        render(Profile(), tmp_path)
        profile = Profile().model_copy(update={"dependencies": DependenciesConfig(apt=[])})
        render(profile, tmp_path)
        assert "fd-find" not in (tmp_path / "Dockerfile").read_text()
