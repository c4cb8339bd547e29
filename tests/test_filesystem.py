from __future__ import annotations

from pathlib import Path

import pytest

from filecat.filesystem import DirectoryLister, FileMover, MoveError


def _touch(path: Path, content: str = "data") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


class TestDirectoryLister:
    def test_lists_regular_files_only(self, tmp_path: Path) -> None:
        _touch(tmp_path / "movie.mkv")
        _touch(tmp_path / ".hidden.mkv")
        _touch(tmp_path / "nested" / "deep.mkv")

        result = DirectoryLister(tmp_path).scan()

        assert [f.path.name for f in result.files] == ["movie.mkv"]
        assert result.failures == []
        assert result.files[0].size == 4

    def test_include_hidden(self, tmp_path: Path) -> None:
        _touch(tmp_path / ".hidden.mkv")

        result = DirectoryLister(tmp_path, include_hidden=True).scan()

        assert [f.path.name for f in result.files] == [".hidden.mkv"]

    def test_configured_extension_filter(self, tmp_path: Path) -> None:
        _touch(tmp_path / "movie.MKV")
        _touch(tmp_path / "notes.txt")

        result = DirectoryLister(tmp_path, extensions=[".mkv"]).scan()

        assert [f.path.name for f in result.files] == ["movie.MKV"]

    def test_scan_extensions_override_configured_filter(self, tmp_path: Path) -> None:
        _touch(tmp_path / "movie.mkv")
        _touch(tmp_path / "song.mp3")

        result = DirectoryLister(tmp_path, extensions=[".mkv"]).scan([".mp3"])

        assert [f.path.name for f in result.files] == ["song.mp3"]

    def test_missing_root_yields_empty_result(self, tmp_path: Path) -> None:
        result = DirectoryLister(tmp_path / "absent").scan()

        assert result.files == []
        assert result.failures == []


class TestFileMover:
    def test_moves_and_creates_directories(self, tmp_path: Path) -> None:
        source = _touch(tmp_path / "in" / "movie.mkv")
        destination = tmp_path / "out" / "Video" / "movie.mkv"

        result = FileMover().move(source, destination)

        assert result == destination
        assert destination.read_text(encoding="utf-8") == "data"
        assert not source.exists()

    def test_missing_parent_without_create_directories(self, tmp_path: Path) -> None:
        source = _touch(tmp_path / "in" / "movie.mkv")

        with pytest.raises(MoveError, match="does not exist"):
            FileMover().move(source, tmp_path / "out" / "movie.mkv", create_directories=False)
        assert source.exists()

    def test_never_overwrites_destination(self, tmp_path: Path) -> None:
        source = _touch(tmp_path / "in" / "movie.mkv", "new")
        destination = _touch(tmp_path / "out" / "movie.mkv", "old")

        with pytest.raises(MoveError, match="already exists"):
            FileMover().move(source, destination)
        assert destination.read_text(encoding="utf-8") == "old"

    def test_missing_source(self, tmp_path: Path) -> None:
        with pytest.raises(MoveError, match="not found"):
            FileMover().move(tmp_path / "ghost.mkv", tmp_path / "out" / "ghost.mkv")

    def test_directory_creation_failure_is_a_move_error(self, tmp_path: Path) -> None:
        source = _touch(tmp_path / "in" / "movie.mkv")
        _touch(tmp_path / "out", "not a directory")

        with pytest.raises(MoveError, match="Unable to create"):
            FileMover().move(source, tmp_path / "out" / "Video" / "movie.mkv")
        assert source.exists()
