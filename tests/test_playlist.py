import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from seqtunes.playlist import (
    ResolveFailure,
    Resolved,
    Unresolved,
    read_list_file,
    resolve_playlist,
    scan_audio_files,
)


class TestResolvePlaylist:
    """Tests for turning an input descriptor into a playlist."""

    def test_single_file(self, temp_music_dir):
        """Test that a single audio file is a one-track playlist."""
        path = temp_music_dir / "test1.mp3"

        result = resolve_playlist(str(path))

        assert result == Resolved((path,))

    def test_missing_path(self, temp_music_dir):
        result = resolve_playlist(str(temp_music_dir / "nope.mp3"))

        assert isinstance(result, Unresolved)
        assert result.kind is ResolveFailure.NOT_FOUND

    def test_directory_sorted_audio_only(self, temp_music_dir):
        """Test directory scans skip non-audio files and sub-directories."""
        result = resolve_playlist(str(temp_music_dir))

        assert isinstance(result, Resolved)
        assert [p.name for p in result.paths] == ["test1.mp3", "test2.flac", "test3.ogg"]

    def test_directory_recursive(self, temp_music_dir):
        result = resolve_playlist(str(temp_music_dir), recursive=True)

        assert [p.name for p in result.paths] == ["test1.mp3", "test2.flac", "test3.ogg", "nested.mp3"]

    def test_empty_directory(self, temp_music_dir):
        empty = temp_music_dir / "empty"
        empty.mkdir()

        result = resolve_playlist(str(empty))

        assert result.kind is ResolveFailure.EMPTY

    def test_glob_pattern(self, temp_music_dir):
        """Test that glob patterns match files in sorted order."""
        result = resolve_playlist(str(temp_music_dir / "test*.*"))

        assert [p.name for p in result.paths] == ["test1.mp3", "test2.flac", "test3.ogg", "test4.txt"]

    def test_glob_recursive(self, temp_music_dir):
        result = resolve_playlist(str(temp_music_dir / "**" / "*.mp3"))

        assert sorted(p.name for p in result.paths) == ["nested.mp3", "test1.mp3"]

    def test_glob_without_matches(self, temp_music_dir):
        result = resolve_playlist(str(temp_music_dir / "*.wav"))

        assert isinstance(result, Unresolved)
        assert result.kind is ResolveFailure.EMPTY

    def test_text_list_file(self, temp_music_dir):
        """Test a .txt list with relative and absolute entries."""
        list_file = temp_music_dir / "list.txt"
        list_file.write_text(
            "test2.flac\n\n"
            f"{temp_music_dir / 'test1.mp3'}\n"
            "subdir/nested.mp3\n"
        )

        result = resolve_playlist(str(list_file))

        assert result.paths == (
            temp_music_dir / "test2.flac",
            temp_music_dir / "test1.mp3",
            temp_music_dir / "subdir" / "nested.mp3",
        )

    def test_m3u_list_skips_directives(self, temp_music_dir):
        list_file = temp_music_dir / "list.m3u"
        list_file.write_text(
            "#EXTM3U\n"
            "#EXTINF:180,Test Song\n"
            "test1.mp3\n"
            "#EXTINF:240,Another Song\n"
            "test3.ogg\n"
        )

        result = resolve_playlist(str(list_file))

        assert [p.name for p in result.paths] == ["test1.mp3", "test3.ogg"]

    def test_list_entries_kept_even_if_missing(self, temp_music_dir):
        """Test that unreadable entries are left for the player to report."""
        list_file = temp_music_dir / "list.txt"
        list_file.write_text("gone.mp3\n")

        result = resolve_playlist(str(list_file))

        assert result.paths == (temp_music_dir / "gone.mp3",)

    def test_empty_list_file(self, temp_music_dir):
        list_file = temp_music_dir / "empty.m3u"
        list_file.write_text("#EXTM3U\n\n")

        result = resolve_playlist(str(list_file))

        assert result.kind is ResolveFailure.EMPTY

    def test_describe(self):
        failure = Unresolved(ResolveFailure.UNREADABLE, "list.txt", "permission denied")

        assert failure.describe() == "list.txt: unreadable (permission denied)"
        assert Unresolved(ResolveFailure.NOT_FOUND, "x").describe() == "x: not found"


class TestScanAudioFiles:
    """Tests for directory scanning."""

    def test_extensions_case_insensitive(self, temp_music_dir):
        (temp_music_dir / "LOUD.MP3").touch()

        names = [p.name for p in scan_audio_files(temp_music_dir)]

        assert "LOUD.MP3" in names

    def test_missing_directory_raises(self, temp_music_dir):
        with pytest.raises(OSError):
            scan_audio_files(temp_music_dir / "missing")

    def test_read_list_file_utf8_bom(self, temp_music_dir):
        list_file = temp_music_dir / "bom.txt"
        list_file.write_bytes("\ufefftest1.mp3\n".encode("utf-8"))

        assert read_list_file(list_file) == [temp_music_dir / "test1.mp3"]
