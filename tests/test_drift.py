from __future__ import annotations

from datetime import datetime, timezone

import pytest

from claudepod.env import DriftReason, Profile, ProjectRecord, needs_rebuild
from claudepod.env.profile import ContainerConfig


def _record(profile: Profile, image_id: str | None = "sha256:abc") -> ProjectRecord:
    return ProjectRecord(
        profile_name="default",
        container_name="claudepod-000000000000",
        image_tag="claudepod-default:000000000000",
        image_id=image_id,
        config_hash=profile.digest(),
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


class TestNeedsRebuild:

    def test_never_built(self) -> None:
        drift = needs_rebuild(Profile(), None)
        assert drift.stale
        assert drift.reason is DriftReason.NEVER_BUILT
        assert str(drift) == "stale: never built"

    def test_up_to_date(self) -> None:
        drift = needs_rebuild(Profile(), _record(Profile()))
        assert not drift.stale
        assert str(drift) == "up to date"

    def test_configuration_changed(self) -> None:
        edited = Profile().model_copy(update={"container": ContainerConfig(base_image="debian:12")})
        drift = needs_rebuild(edited, _record(Profile()))
        assert drift.reason is DriftReason.CONFIG_CHANGED
        assert drift.recorded_hash == Profile().digest()
        assert drift.current_hash == edited.digest()

    def test_image_not_built(self) -> None:
        drift = needs_rebuild(Profile(), _record(Profile(), image_id=None))
        assert drift.reason is DriftReason.IMAGE_NOT_BUILT

    def test_changed_configuration_wins_over_missing_image(self) -> None:
        edited = Profile().model_copy(update={"environment": {}})
        drift = needs_rebuild(edited, _record(Profile(), image_id=None))
        assert drift.reason is DriftReason.CONFIG_CHANGED

    @pytest.mark.parametrize("recorded, reason", [
        ("0" * 64, DriftReason.CONFIG_CHANGED),
        (None, DriftReason.IMAGE_NOT_BUILT),
    ])
    def test_bare_hash(self, recorded: str | None, reason: DriftReason) -> None:
        drift = needs_rebuild(Profile(), recorded or Profile().digest())
        assert drift.reason is reason
