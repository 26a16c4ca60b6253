"""Tests for secret materialization: private files and no leakage."""

from __future__ import annotations

import stat

import pytest
from pydantic import SecretStr

from imageforge.config import ForgeConfig
from imageforge.core.secrets import (
    REMOTE_SECRET_PATH,
    SecretBundle,
    SecretMaterializer,
)
from imageforge.models import RemoteTarget


class TestSecretBundle:
    def test_serialize_sorted_and_quoted(self):
        bundle = SecretBundle({"B_TOKEN": "two words", "A_KEY": SecretStr("plain")})
        assert bundle.serialize() == "A_KEY=plain\nB_TOKEN='two words'\n"

    def test_repr_hides_values(self):
        bundle = SecretBundle({"API_KEY": "hunter2"})
        assert "hunter2" not in repr(bundle)
        assert bundle.names == ["API_KEY"]

    def test_truthiness(self):
        assert not SecretBundle({})
        assert SecretBundle({"A": "b"})


class TestLocalMaterialization:
    def test_private_file_and_cleanup(self):
        mount = SecretMaterializer().materialize_local(SecretBundle({"API_KEY": "hunter2"}))
        try:
            assert mount.path.read_text() == "API_KEY=hunter2\n"
            assert stat.S_IMODE(mount.path.stat().st_mode) == 0o600
            assert mount.build_args == ["--secret", f"id=secrets,src={mount.path}"]
            assert mount.env == {"DOCKER_BUILDKIT": "1"}
            assert "hunter2" not in " ".join(mount.build_args)
        finally:
            mount.cleanup()
        assert not mount.directory.exists()


class TestRemoteMaterialization:
    @pytest.mark.asyncio
    async def test_ephemeral_secret(self, secret_manager):
        target = RemoteTarget(project="p", service_account_email="sa@p", bucket="b")
        materializer = SecretMaterializer(ForgeConfig(secret_ttl_seconds=600))
        binding = await materializer.materialize_remote(
            SecretBundle({"API_KEY": "hunter2"}), target, secret_manager
        )

        assert binding.secret_id.startswith("imageforge-delete-me-")
        created = secret_manager.created[binding.secret_id]
        assert created["payload"] == b"API_KEY=hunter2\n"
        assert created["accessor"] == "serviceAccount:sa@p"
        assert created["ttl_seconds"] == 600
        assert binding.available_secret.version_name.endswith("/versions/1")

        step = binding.materialize_step("gcr.io/cloud-builders/docker")
        assert step.secret_env == (binding.env,)
        assert any(f"$${binding.env}" in arg for arg in step.args)
        assert all("hunter2" not in arg for arg in step.args)
        assert binding.build_args == ["--secret", f"id=secrets,src={REMOTE_SECRET_PATH}"]

        await materializer.release_remote(binding, secret_manager)
        assert secret_manager.deleted == [binding.secret_id]
