"""Shared test fixtures for Imageforge."""

from __future__ import annotations

import json
import shutil
from collections.abc import Mapping, Sequence
from pathlib import Path

import pytest

from imageforge.config import ForgeConfig
from imageforge.core.commands import CommandResult
from imageforge.core.errors import CommandError
from imageforge.models.remote import BuiltImage, RemoteBuildJob, RemoteBuildOutcome
from imageforge.remote.services import StoredObject

DIGEST = "sha256:" + "ab" * 32


# ---------------------------------------------------------------------------
# Container-tool fake
# ---------------------------------------------------------------------------


class FakeRunner:
    """Records container-tool invocations and answers them like docker would.

    ``failures`` maps a subcommand prefix (e.g. ``("pull",)``) to the
    exit status it should fail with.
    """

    def __init__(self, digest: str = DIGEST, tool: str = "docker") -> None:
        self.digest = digest
        self.tool = tool
        self.calls: list[list[str]] = []
        self.envs: list[dict[str, str] | None] = []
        self.failures: dict[tuple[str, ...], int] = {}
        self.secret_files: list[str] = []
        self.inspect_output: str | None = None

    def commands(self) -> list[list[str]]:
        """Recorded argv lists without the tool name."""
        return [call[1:] for call in self.calls]

    async def __call__(
        self,
        argv: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> CommandResult:
        argv = list(argv)
        self.calls.append(argv)
        self.envs.append(dict(env) if env else None)
        sub = tuple(argv[1:])

        # Capture the secrets file while it still exists.
        if "--secret" in argv:
            spec = argv[argv.index("--secret") + 1]
            src = spec.split("src=", 1)[1]
            self.secret_files.append(Path(src).read_text(encoding="utf-8"))

        for prefix, code in self.failures.items():
            if sub[: len(prefix)] == prefix:
                raise CommandError(argv, code, stderr="simulated failure")

        stdout = ""
        if sub[:2] == ("image", "inspect"):
            ref = sub[2]
            base = ref.rsplit(":", 1)[0]
            stdout = self.inspect_output or json.dumps(
                [{"RepoDigests": [f"{base}@{self.digest}"]}]
            )
        return CommandResult(argv=tuple(argv), returncode=0, stdout=stdout, stderr="")


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def config(tmp_path: Path) -> ForgeConfig:
    """Provide a ForgeConfig with the archive cache in a temp directory."""
    return ForgeConfig(cache_dir=tmp_path / "cache")


# ---------------------------------------------------------------------------
# Remote-service fakes
# ---------------------------------------------------------------------------


class FakeBuildService:
    def __init__(self, outcome: RemoteBuildOutcome | None = None) -> None:
        self.jobs: list[tuple[str, RemoteBuildJob]] = []
        self.outcome = outcome

    async def run_build(self, project: str, job: RemoteBuildJob) -> RemoteBuildOutcome:
        self.jobs.append((project, job))
        if self.outcome is not None:
            return self.outcome
        return RemoteBuildOutcome(
            status="SUCCESS",
            images=(BuiltImage(name=job.images[0], digest=DIGEST),),
            log_url="https://logs.example/build/1",
        )


class FakeStorage:
    def __init__(self) -> None:
        self.uploads: list[tuple[str, str, Path, bool]] = []

    async def upload(self, bucket: str, name: str, source: Path) -> StoredObject:
        self.uploads.append((bucket, name, source, source.exists()))
        return StoredObject(bucket=bucket, name=name)


class FakeSecretManager:
    def __init__(self) -> None:
        self.created: dict[str, dict] = {}
        self.deleted: list[str] = []

    async def create_secret(
        self,
        project: str,
        secret_id: str,
        payload: bytes,
        *,
        accessor: str,
        ttl_seconds: int,
    ) -> str:
        self.created[secret_id] = {
            "project": project,
            "payload": payload,
            "accessor": accessor,
            "ttl_seconds": ttl_seconds,
        }
        return f"projects/{project}/secrets/{secret_id}/versions/1"

    async def delete_secret(self, project: str, secret_id: str) -> None:
        self.deleted.append(secret_id)


class FakeIam:
    def __init__(self) -> None:
        self.bucket_grants: list[tuple[str, str, str]] = []
        self.project_grants: list[tuple[str, str, str]] = []

    async def grant_bucket_role(self, bucket: str, role: str, member: str) -> None:
        self.bucket_grants.append((bucket, role, member))

    async def grant_project_role(self, project: str, role: str, member: str) -> None:
        self.project_grants.append((project, role, member))


@pytest.fixture
def build_service() -> FakeBuildService:
    return FakeBuildService()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def secret_manager() -> FakeSecretManager:
    return FakeSecretManager()


@pytest.fixture
def iam() -> FakeIam:
    return FakeIam()


@pytest.fixture
def build_dir(tmp_path: Path) -> Path:
    """A small build context with a Dockerfile."""
    directory = tmp_path / "src"
    directory.mkdir()
    (directory / "Dockerfile").write_text("FROM scratch\nCOPY app.txt /app.txt\n")
    (directory / "app.txt").write_text("hello\n")
    return directory


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """A git repository with a ``service/`` subdirectory and two commits."""
    git = pytest.importorskip("git")
    if shutil.which("git") is None:
        pytest.skip("git not installed")

    root = tmp_path / "repo"
    root.mkdir()
    repo = git.Repo.init(root)
    with repo.config_writer() as writer:
        writer.set_value("user", "name", "Test User")
        writer.set_value("user", "email", "test@example.com")

    service = root / "service"
    service.mkdir()
    (service / "Dockerfile").write_text("FROM scratch\n")
    (service / "main.txt").write_text("v1\n")
    repo.index.add(["service/Dockerfile", "service/main.txt"])
    repo.index.commit("add service")

    (root / "README.md").write_text("unrelated\n")
    repo.index.add(["README.md"])
    repo.index.commit("unrelated change")
    return root


@pytest.fixture
def digest() -> str:
    return DIGEST
