"""Tests for doctree.indexer.markdown."""

from __future__ import annotations

from doctree.indexer.markdown import MAX_CHUNK_SIZE, Section, chunk_markdown


class TestChunkMarkdown:
    def test_empty(self) -> None:
        assert chunk_markdown("") == []
        assert chunk_markdown("  \n\n") == []

    def test_splits_on_h2(self) -> None:
        text = "# Title\n\nIntro text.\n\n## First\n\nOne.\n\n## Second\n\nTwo.\n"
        assert chunk_markdown(text) == [
            Section(0, "", "Intro text."),
            Section(1, "First", "One."),
            Section(2, "Second", "Two."),
        ]

    def test_title_only_intro_dropped(self) -> None:
        chunks = chunk_markdown("# Title\n\n## Only\n\nBody.\n")
        assert [c.heading for c in chunks] == ["Only"]

    def test_heading_without_body_kept(self) -> None:
        assert chunk_markdown("## Empty\n## Full\n\nText.\n") == [
            Section(0, "Empty", ""),
            Section(1, "Full", "Text."),
        ]

    def test_h3_stays_in_section(self) -> None:
        chunks = chunk_markdown("## Top\n\nText.\n\n### Detail\n\nMore.\n")
        assert len(chunks) == 1
        assert "### Detail" in chunks[0].content

    def test_oversized_section_split_by_paragraph(self) -> None:
        para = ("word " * 300).strip()
        text = "## Big\n\n" + "\n\n".join([para] * 4)
        chunks = chunk_markdown(text)
        assert [c.index for c in chunks] == [0, 1, 2, 3]
        assert all(c.heading == "Big" for c in chunks)
        assert all(len(c.content) <= MAX_CHUNK_SIZE for c in chunks)

    def test_small_paragraphs_packed_together(self) -> None:
        para = "x" * 600
        text = "## Packed\n\n" + "\n\n".join([para] * 4)
        chunks = chunk_markdown(text)
        assert [len(c.content) for c in chunks] == [600 * 3 + 4, 600]
