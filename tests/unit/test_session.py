"""Unit tests for the session file registry."""

from __future__ import annotations

import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from video_enhancer.core.session import SessionRegistry
from video_enhancer.core.types import SessionFileType


@pytest.fixture
def registry() -> SessionRegistry:
    """Provide an empty registry."""
    return SessionRegistry()


def _make_file(directory: Path, name: str) -> Path:
    path = directory / name
    path.write_bytes(b"\0" * 64)
    return path


class TestRegister:
    """Tests for SessionRegistry.register."""

    def test_register(self, registry: SessionRegistry, tmp_path: Path) -> None:
        """Test a registered file is tracked under its session."""
        path = _make_file(tmp_path, "clip.mov")
        record = registry.register("s1", path)

        assert record.file_type is SessionFileType.INPUT
        assert "s1" in registry
        assert len(registry) == 1
        assert [r.path for r in registry.files("s1")] == [path]

    def test_duplicate_path(self, registry: SessionRegistry, tmp_path: Path) -> None:
        """Test registering the same path twice keeps one record."""
        path = _make_file(tmp_path, "clip.mov")
        first = registry.register("s1", path)
        second = registry.register("s1", path, SessionFileType.OUTPUT)

        assert second is first
        assert len(registry.files("s1")) == 1

    def test_paths_stored_absolute(
        self,
        registry: SessionRegistry,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test relative paths are stored absolute."""
        monkeypatch.chdir(tmp_path)
        record = registry.register("s1", Path("clip.mov"), "output")

        assert record.path == tmp_path / "clip.mov"
        assert record.file_type is SessionFileType.OUTPUT

    def test_files_unknown_session(self, registry: SessionRegistry) -> None:
        """Test an unknown session has no files."""
        assert registry.files("unknown") == []
        assert "unknown" not in registry

    def test_concurrent_registration(self, registry: SessionRegistry, tmp_path: Path) -> None:
        """Test registrations from many threads are all kept."""

        def register_many(session_id: str) -> None:
            for i in range(50):
                registry.register(session_id, tmp_path / f"{session_id}_{i}.mov")

        threads = [threading.Thread(target=register_many, args=(f"s{n}",)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(registry.sessions()) == ["s0", "s1", "s2", "s3"]
        assert all(len(registry.files(s)) == 50 for s in registry.sessions())


class TestCleanup:
    """Tests for session cleanup."""

    def test_cleanup_session(self, registry: SessionRegistry, tmp_path: Path) -> None:
        """Test a session's files are deleted and the session forgotten."""
        upload = _make_file(tmp_path, "clip.mov")
        output = _make_file(tmp_path, "clip_enhanced.mp4")
        other = _make_file(tmp_path, "other.mov")
        registry.register("s1", upload)
        registry.register("s1", output, SessionFileType.OUTPUT)
        registry.register("s2", other)

        deleted = registry.cleanup_session("s1")

        assert sorted(deleted) == sorted([upload, output])
        assert not upload.exists()
        assert not output.exists()
        assert other.exists()
        assert "s1" not in registry
        assert "s2" in registry

    def test_cleanup_missing_files(self, registry: SessionRegistry, tmp_path: Path) -> None:
        """Test files already gone are skipped."""
        registry.register("s1", tmp_path / "gone.mov")
        assert registry.cleanup_session("s1") == []
        assert "s1" not in registry

    def test_cleanup_unknown_session(self, registry: SessionRegistry) -> None:
        """Test cleaning up an unknown session is a no-op."""
        assert registry.cleanup_session("unknown") == []

    def test_cleanup_errors_logged(
        self,
        registry: SessionRegistry,
        tmp_path: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test deletion errors are logged and not raised."""
        registry.register("s1", _make_file(tmp_path, "locked.mov"))

        with patch.object(Path, "unlink", side_effect=PermissionError("denied")):
            deleted = registry.cleanup_session("s1")

        assert deleted == []
        assert "Failed to delete" in caplog.text

    def test_cleanup_all(self, registry: SessionRegistry, tmp_path: Path) -> None:
        """Test every session is cleaned up."""
        registry.register("s1", _make_file(tmp_path, "a.mov"))
        registry.register("s2", _make_file(tmp_path, "b.mov"))

        deleted = registry.cleanup_all()

        assert len(deleted) == 2
        assert len(registry) == 0

    def test_clear_keeps_files(self, registry: SessionRegistry, tmp_path: Path) -> None:
        """Test clearing forgets sessions without deleting files."""
        path = _make_file(tmp_path, "a.mov")
        registry.register("s1", path)

        registry.clear()

        assert len(registry) == 0
        assert path.exists()
