"""Unit tests for the CLI: command registration and basic behavior via CliRunner."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from imageforge.cli.app import app
from imageforge.core.hasher import hash_tree

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated_cache(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    cache_dir = tmp_path / "cache"
    monkeypatch.setenv("IMAGEFORGE_CACHE_DIR", str(cache_dir))
    return cache_dir


def _write_spec(tmp_path: Path, build_dir: Path, **overrides) -> Path:
    spec = {
        "registry_url": "gcr.io/acme",
        "image_name": "svc",
        "versioning": {"type": "PLAIN", "value": "1.2.3"},
        "build_source": str(build_dir),
    }
    spec.update(overrides)
    path = tmp_path / "spec.json"
    path.write_text(json.dumps(spec))
    return path


class TestCliApp:
    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("build", "resolve", "hash", "cache"):
            assert command in result.output

    def test_cache_help(self):
        result = runner.invoke(app, ["cache", "--help"])
        assert result.exit_code == 0
        assert "prune" in result.output


class TestHashCommand:
    def test_hash_directory(self, build_dir: Path):
        result = runner.invoke(app, ["hash", str(build_dir)])
        assert result.exit_code == 0
        assert result.output.strip() == hash_tree(build_dir)

    def test_hash_truncated(self, build_dir: Path):
        result = runner.invoke(app, ["hash", str(build_dir / "app.txt"), "-n", "9"])
        assert result.exit_code == 0
        assert result.output.strip() == hash_tree(build_dir / "app.txt", 9)

    def test_missing_path(self, tmp_path: Path):
        result = runner.invoke(app, ["hash", str(tmp_path / "nope")])
        assert result.exit_code != 0


class TestResolveCommand:
    def test_plain_version(self, tmp_path: Path, build_dir: Path):
        result = runner.invoke(app, ["resolve", str(_write_spec(tmp_path, build_dir))])
        assert result.exit_code == 0
        assert result.output.strip() == "gcr.io/acme/svc:1.2.3"

    def test_file_version(self, tmp_path: Path, build_dir: Path):
        spec = _write_spec(
            tmp_path,
            build_dir,
            versioning={"type": "FILE", "from_file": str(build_dir)},
        )
        result = runner.invoke(app, ["resolve", str(spec)])
        assert result.exit_code == 0
        assert result.output.strip() == f"gcr.io/acme/svc:hash_{hash_tree(build_dir, 9)}"

    def test_invalid_spec_exits_2(self, tmp_path: Path):
        path = tmp_path / "spec.json"
        path.write_text(json.dumps({"registry_url": "gcr.io/acme"}))
        result = runner.invoke(app, ["resolve", str(path)])
        assert result.exit_code == 2


class TestBuildCommand:
    def test_remote_spec_rejected(self, tmp_path: Path, build_dir: Path):
        spec = _write_spec(
            tmp_path,
            build_dir,
            target={
                "kind": "remote",
                "project": "acme",
                "service_account_email": "builder@acme.iam.gserviceaccount.com",
                "bucket": "acme-src",
            },
        )
        result = runner.invoke(app, ["build", str(spec)])
        assert result.exit_code == 2


class TestCacheCommands:
    def test_list_empty(self):
        result = runner.invoke(app, ["cache", "list"])
        assert result.exit_code == 0
        assert "No cached archives" in result.output

    def test_list_and_prune(self, _isolated_cache: Path):
        _isolated_cache.mkdir(parents=True)
        (_isolated_cache / "abc-def.tar.gz").write_bytes(b"archive")

        listed = runner.invoke(app, ["cache", "list"])
        assert listed.exit_code == 0
        assert "abc-def" in listed.output

        kept = runner.invoke(app, ["cache", "prune", "--older-than-days", "1"])
        assert kept.exit_code == 0
        assert "Removed 0 archive(s)." in kept.output

        pruned = runner.invoke(app, ["cache", "prune", "-d", "0"])
        assert pruned.exit_code == 0
        assert "Removed 1 archive(s)." in pruned.output
        assert not (_isolated_cache / "abc-def.tar.gz").exists()
