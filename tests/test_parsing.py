"""Tests for parsing.py — sections, sentences and code fences."""
from __future__ import annotations

from grounded_qa.parsing import (
    DEFAULT_SECTION_TITLE,
    parse_markdown,
    segment_sentences,
    split_code_lines,
    split_into_sentences,
)


# ---------------------------------------------------------------------------
# segment_sentences / split_into_sentences
# ---------------------------------------------------------------------------

class TestSegmentSentences:
    def test_splits_on_terminal_punctuation(self):
        assert segment_sentences("First one here. Second one here! Third?") == [
            "First one here.",
            "Second one here!",
            "Third?",
        ]

    def test_abbreviations_are_not_boundaries(self):
        text = "Bring ID, e.g. A passport. Dr. Smith signs it."
        assert segment_sentences(text) == ["Bring ID, e.g. A passport.", "Dr. Smith signs it."]

    def test_single_initials_are_not_boundaries(self):
        assert segment_sentences("Ask J. Smith for access. Then wait.") == [
            "Ask J. Smith for access.",
            "Then wait.",
        ]

    def test_decimals_are_not_boundaries(self):
        assert segment_sentences("Version 2.5 is current. It ships today.") == [
            "Version 2.5 is current.",
            "It ships today.",
        ]

    def test_non_latin_capitals_start_sentences(self):
        assert segment_sentences("Первое предложение. Второе предложение.") == [
            "Первое предложение.",
            "Второе предложение.",
        ]
        assert segment_sentences("Πρώτη πρόταση. Δεύτερη πρόταση!") == ["Πρώτη πρόταση.", "Δεύτερη πρόταση!"]

    def test_uncased_script_starts_sentences(self):
        assert segment_sentences("Order shipped. 注文は発送済みです。") == ["Order shipped.", "注文は発送済みです。"]

    def test_lowercase_continuation_is_not_a_boundary(self):
        assert segment_sentences("See sec. three for details. Next one.") == [
            "See sec. three for details.",
            "Next one.",
        ]

    def test_collapses_whitespace(self):
        assert segment_sentences("Line one\n   continues here.") == ["Line one continues here."]

    def test_empty_text(self):
        assert segment_sentences("   ") == []


class TestSplitIntoSentences:
    def test_drops_short_fragments(self):
        assert split_into_sentences("Ok. This sentence is long enough.") == ["This sentence is long enough."]

    def test_long_sentence_split_on_conjunction_comma(self):
        first = "The warehouse accepts returns on weekdays between nine and five " * 2
        second = "but weekend returns must be booked in advance through the portal " * 2
        sentence = f"{first.strip()}, {second.strip()}."
        parts = split_into_sentences(sentence, long_chars=200)
        assert len(parts) == 2
        assert parts[0].startswith("The warehouse")
        assert parts[1].startswith("but weekend")

    def test_long_sentence_without_conjunction_kept_whole(self):
        sentence = ("word " * 60).strip() + "."
        assert split_into_sentences(sentence) == [sentence]


# ---------------------------------------------------------------------------
# parse_markdown
# ---------------------------------------------------------------------------

class TestParseMarkdown:
    def test_empty_input_yields_no_sections(self):
        assert parse_markdown("") == []
        assert parse_markdown("   \n\n  ") == []

    def test_heading_only_input_yields_no_sections(self):
        assert parse_markdown("# Title\n\n## Another") == []

    def test_content_before_heading_goes_to_default_section(self):
        sections = parse_markdown("Plain text that has no heading at all.")
        assert len(sections) == 1
        assert sections[0].title == DEFAULT_SECTION_TITLE
        assert sections[0].level == 1

    def test_headings_open_sections_with_levels(self, sample_markdown):
        sections = parse_markdown(sample_markdown)
        assert [(s.title, s.level) for s in sections] == [
            ("Refund Policy", 1),
            ("Shipping", 2),
            ("File API", 2),
        ]

    def test_trailing_hashes_stripped_from_title(self):
        sections = parse_markdown("## Setup ##\n\nInstall the package before anything else.")
        assert sections[0].title == "Setup"

    def test_wrapped_paragraph_lines_join(self, sample_markdown):
        refund = parse_markdown(sample_markdown)[0]
        assert refund.paragraphs[0] == (
            "Refunds are issued within 14 business days. Customers must keep the original "
            "receipt for every purchase they want refunded."
        )

    def test_list_items_join_into_one_block(self, sample_markdown):
        shipping = parse_markdown(sample_markdown)[1]
        assert shipping.paragraphs[-1] == (
            "Standard orders are packed within one day. "
            "Fragile items are wrapped twice before they leave the warehouse."
        )

    def test_sentences_collected_per_section(self, sample_markdown):
        refund = parse_markdown(sample_markdown)[0]
        assert "Refunds are issued within 14 business days." in refund.sentences
        assert len(refund.sentences) == 4

    def test_code_fence_kept_verbatim(self, sample_markdown):
        api = parse_markdown(sample_markdown)[2]
        assert len(api.code_blocks) == 1
        block = api.code_blocks[0]
        assert block.language == "python"
        assert block.content.startswith('fd = os.open("audit.txt"')
        assert block.raw.startswith("```python")
        assert block.raw.endswith("```")

    def test_code_is_not_prose(self, sample_markdown):
        api = parse_markdown(sample_markdown)[2]
        assert not any("os.write" in sentence for sentence in api.sentences)

    def test_fence_without_language_defaults_to_text(self):
        sections = parse_markdown("```\nmake build\n```")
        assert sections[0].code_blocks[0].language == "text"

    def test_unterminated_fence_runs_to_end(self):
        sections = parse_markdown("# Code\n\n~~~bash\nls -la\necho done\n")
        block = sections[0].code_blocks[0]
        assert block.content == "ls -la\necho done"

    def test_block_quote_becomes_paragraph(self):
        sections = parse_markdown("> Quoted guidance stays searchable too.")
        assert sections[0].paragraphs == ["Quoted guidance stays searchable too."]


class TestSplitCodeLines:
    def test_drops_blank_lines_and_collapses_spaces(self):
        assert split_code_lines("a  =  1\n\n   b = 2\n") == ["a = 1", "b = 2"]
