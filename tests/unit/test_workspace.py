"""
Unit tests for the workspace layout, the execution environment and the
artifact store.
"""

import os
import time

import pytest

from gip_builder.artifacts import ArtifactStore, artifact_name
from gip_builder.environment import Deadline, build_environment
from gip_builder.workspace import WorkspaceLayout, validate_workspace_dir
from gip_common.errors import ArtifactWriteFailed, EntryPointMissing
from gip_common.models import Project


class TestValidateWorkspaceDir:
    """Test suite for startup workspace validation."""

    def test_creates_missing_directory(self, tmp_path):
        path = validate_workspace_dir(tmp_path / "a" / "workspace")

        assert path.is_dir()
        assert path.is_absolute()

    def test_accepts_existing_directory(self, tmp_path):
        assert validate_workspace_dir(tmp_path) == tmp_path.resolve()
        # The write probe is cleaned up
        assert not (tmp_path / ".gip_test_write").exists()

    def test_rejects_file(self, tmp_path):
        not_a_dir = tmp_path / "file"
        not_a_dir.write_text("x")

        with pytest.raises(NotADirectoryError):
            validate_workspace_dir(not_a_dir)

    @pytest.mark.skipif(
        hasattr(os, "geteuid") and os.geteuid() == 0,
        reason="root ignores directory permissions",
    )
    def test_rejects_read_only_directory(self, tmp_path):
        read_only = tmp_path / "ro"
        read_only.mkdir()
        read_only.chmod(0o500)
        try:
            with pytest.raises(OSError):
                validate_workspace_dir(read_only)
        finally:
            read_only.chmod(0o700)


class TestWorkspaceLayout:
    """Test suite for per-project and per-build paths."""

    def test_paths(self, tmp_path):
        layout = WorkspaceLayout(tmp_path)

        assert layout.project_dir(3) == tmp_path.resolve() / "project-3"
        assert layout.checkout_dir(3, 17) == tmp_path.resolve() / "project-3" / "src-17"
        assert layout.output_dir(3) == tmp_path.resolve() / "project-3" / "out"
        assert layout.cache_dir(3) == tmp_path.resolve() / "project-3" / ".cache"

    def test_builds_never_share_a_checkout(self, tmp_path):
        layout = WorkspaceLayout(tmp_path)
        assert layout.checkout_dir(1, 1) != layout.checkout_dir(1, 2)

    def test_source_dir_without_subdir(self, tmp_path):
        layout = WorkspaceLayout(tmp_path)
        assert layout.source_dir(tmp_path / "src-1", None) == (tmp_path / "src-1").resolve()

    def test_source_dir_with_subdir(self, tmp_path):
        (tmp_path / "src-1" / "services" / "api").mkdir(parents=True)
        layout = WorkspaceLayout(tmp_path)

        source = layout.source_dir(tmp_path / "src-1", "services/api")

        assert source == (tmp_path / "src-1" / "services" / "api").resolve()

    def test_missing_subdir(self, tmp_path):
        (tmp_path / "src-1").mkdir()
        layout = WorkspaceLayout(tmp_path)

        with pytest.raises(EntryPointMissing):
            layout.source_dir(tmp_path / "src-1", "nope")

    def test_subdir_cannot_escape_checkout(self, tmp_path):
        (tmp_path / "src-1").mkdir()
        layout = WorkspaceLayout(tmp_path)

        with pytest.raises(EntryPointMissing):
            layout.source_dir(tmp_path / "src-1", "../")


class TestEnvironment:
    """Test suite for the hermetic build environment and the deadline."""

    def test_only_expected_variables(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "secret")

        env = build_environment(home=tmp_path / "home", cache_root=tmp_path / ".cache")

        assert set(env) == {"PATH", "HOME", "GOMODCACHE", "GOCACHE"}
        assert env["HOME"] == str((tmp_path / "home").resolve())
        assert env["GOCACHE"] == str((tmp_path / ".cache" / "gocache").resolve())

    def test_path_is_inherited(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PATH", "/opt/go/bin:/usr/bin")
        env = build_environment(home=tmp_path, cache_root=tmp_path)
        assert env["PATH"] == "/opt/go/bin:/usr/bin"

    def test_deadline(self):
        deadline = Deadline(60)
        assert not deadline.expired
        assert 0 < deadline.remaining() <= 60

    def test_expired_deadline(self):
        deadline = Deadline(0.01)
        time.sleep(0.05)
        assert deadline.expired
        assert deadline.remaining() == 0.0


class TestArtifactStore:
    """Test suite for artifact placement."""

    @pytest.fixture
    def project(self):
        return Project(id=4, name="hello", repo_url="https://example.com/hello.git")

    def test_artifact_name(self):
        assert artifact_name("hello", 12) == "hello-12"

    def test_artifact_path(self, tmp_path, project):
        store = ArtifactStore(WorkspaceLayout(tmp_path))
        assert store.artifact_path(project, 12) == (
            tmp_path.resolve() / "project-4" / "out" / "hello-12"
        )

    def test_prepare_creates_output_dir(self, tmp_path, project):
        store = ArtifactStore(WorkspaceLayout(tmp_path))

        path = store.prepare(project, 12)

        assert path.parent.is_dir()
        assert not path.exists()

    def test_prepare_fails_when_output_dir_is_blocked(self, tmp_path, project):
        (tmp_path / "project-4").mkdir()
        (tmp_path / "project-4" / "out").write_text("not a directory")
        store = ArtifactStore(WorkspaceLayout(tmp_path))

        with pytest.raises(ArtifactWriteFailed):
            store.prepare(project, 12)

    def test_verify_missing_artifact(self, tmp_path, project):
        store = ArtifactStore(WorkspaceLayout(tmp_path))

        with pytest.raises(ArtifactWriteFailed):
            store.verify(store.artifact_path(project, 12))

    def test_verify_existing_artifact(self, tmp_path, project):
        store = ArtifactStore(WorkspaceLayout(tmp_path))
        path = store.prepare(project, 12)
        path.write_bytes(b"\x7fELF")

        store.verify(path)
