"""Tests for file utility functions."""

from __future__ import annotations

from pathlib import Path

from noteindex.utils.files import compute_content_hash, iter_note_paths


class TestIterNotePaths:
    """Test iter_note_paths function."""

    def test_single_note_file(self, tmp_path: Path) -> None:
        note = tmp_path / "note.md"
        note.write_text("# Note")

        assert list(iter_note_paths([note])) == [note]

    def test_directory_filters_suffixes(self, tmp_path: Path) -> None:
        """Should keep Markdown and text files only."""
        (tmp_path / "a.md").write_text("a")
        (tmp_path / "b.txt").write_text("b")
        (tmp_path / "c.markdown").write_text("c")
        (tmp_path / "image.png").write_bytes(b"\x89PNG")

        names = {p.name for p in iter_note_paths([tmp_path])}

        assert names == {"a.md", "b.txt", "c.markdown"}

    def test_nested_directories(self, tmp_path: Path) -> None:
        subdir = tmp_path / "journal" / "2024"
        subdir.mkdir(parents=True)
        (tmp_path / "root.md").write_text("root")
        (subdir / "nested.md").write_text("nested")

        names = {p.name for p in iter_note_paths([tmp_path])}

        assert names == {"root.md", "nested.md"}

    def test_case_insensitive_extension(self, tmp_path: Path) -> None:
        (tmp_path / "upper.MD").write_text("x")

        assert [p.name for p in iter_note_paths([tmp_path])] == ["upper.MD"]

    def test_missing_path_yields_nothing(self, tmp_path: Path) -> None:
        assert list(iter_note_paths([tmp_path / "missing.md"])) == []


class TestComputeContentHash:
    """Test compute_content_hash function."""

    def test_known_digest(self) -> None:
        assert compute_content_hash("hello") == "5d41402abc4b2a76b9719d911017c592"

    def test_deterministic(self) -> None:
        assert compute_content_hash("same text") == compute_content_hash("same text")

    def test_detects_changes(self) -> None:
        assert compute_content_hash("hello") != compute_content_hash("hello!")

    def test_fixed_length_hex(self) -> None:
        digest = compute_content_hash("日本語のノート\n\n" * 100)

        assert len(digest) == 32
        int(digest, 16)
