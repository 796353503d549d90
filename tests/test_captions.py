"""Tests for diagram_extract.captions."""

from __future__ import annotations

import unittest

from diagram_extract.captions import (
    caption_from_paragraphs,
    figure_title,
    image_title,
    section_path_for_page,
    title_from_caption,
    vision_title,
)
from diagram_extract.schema import AnalyzedParagraph


class TestCaptionFromParagraphs(unittest.TestCase):
    def test_finds_same_page_caption(self) -> None:
        paragraphs = [
            AnalyzedParagraph(content="Fig. 2: Wiring", page_number=1),
            AnalyzedParagraph(content="Body text", page_number=2),
            AnalyzedParagraph(content="Figure 3.1 Hydraulic circuit", page_number=2),
        ]
        self.assertEqual(caption_from_paragraphs(paragraphs, 2), "Figure 3.1 Hydraulic circuit")

    def test_none_when_no_caption(self) -> None:
        paragraphs = [AnalyzedParagraph(content="The figure below shows", page_number=1)]
        self.assertIsNone(caption_from_paragraphs(paragraphs, 1))


class TestTitles(unittest.TestCase):
    def test_title_from_caption(self) -> None:
        self.assertEqual(title_from_caption("Fig. 3.2: Roll cage"), "Fig. 3.2")
        self.assertIsNone(title_from_caption("no prefix here"))
        self.assertIsNone(title_from_caption(None))

    def test_figure_title_prefers_id(self) -> None:
        self.assertEqual(figure_title("1.2", "Diagram 4: x", 1), "Figure 1.2")
        self.assertEqual(figure_title(None, "Diagram 4: x", 1), "Diagram 4")
        self.assertEqual(figure_title(None, None, 5), "Figure on page 5")

    def test_image_and_vision_titles(self) -> None:
        self.assertEqual(image_title(3), "Image on page 3")
        self.assertEqual(vision_title("  Circuit  ", 3), "Circuit")
        self.assertEqual(vision_title(None, 3), "Diagram on page 3")

    def test_section_path(self) -> None:
        self.assertEqual(section_path_for_page(4), ["Page 4"])


if __name__ == "__main__":
    unittest.main()
