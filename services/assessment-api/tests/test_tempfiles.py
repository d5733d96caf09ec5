from __future__ import annotations

from pathlib import Path

import pytest

from assessgen.tempfiles import TempWorkspace


def test_workspace_allocates_unique_paths_and_cleans_up(tmp_path: Path) -> None:
    with TempWorkspace(tmp_path, prefix="media") as workspace:
        first = workspace.write_bytes(b"one", suffix="mp3")
        second = workspace.allocate(".mp4")
        second.write_bytes(b"two")
        assert first != second
        assert first.name.startswith("media-")
        assert first.suffix == ".mp3"

    assert list(tmp_path.iterdir()) == []


def test_workspace_cleans_up_on_error(tmp_path: Path) -> None:
    with pytest.raises(RuntimeError):
        with TempWorkspace(tmp_path) as workspace:
            workspace.write_bytes(b"payload")
            raise RuntimeError("boom")

    assert list(tmp_path.iterdir()) == []


def test_cleanup_tolerates_missing_files(tmp_path: Path) -> None:
    workspace = TempWorkspace(tmp_path)
    never_written = workspace.allocate(".bin")
    workspace.cleanup()
    workspace.cleanup()
    assert not never_written.exists()
    assert list(tmp_path.iterdir()) == []
