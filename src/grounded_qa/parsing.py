"""Markdown structure parsing: headings, paragraphs, lists and code fences.

The parser is line-based. It keeps only what the chunking engine needs: an
ordered list of sections, each with prose paragraphs, the sentences inside
them, and verbatim code blocks.
"""
from __future__ import annotations

import re

from .schema import CodeBlock, Section

DEFAULT_SECTION_TITLE = "Document Content"

_HEADING = re.compile(r"^\s{0,3}(#{1,6})\s+(.*?)\s*#*\s*$")
_FENCE = re.compile(r"^\s{0,3}(`{3,}|~{3,})\s*([\w+#.-]*)")
_LIST_ITEM = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(.*)$")
_QUOTE = re.compile(r"^\s*>\s?(.*)$")

# Words that end in a period without ending a sentence.
_ABBREVIATIONS = {
    "e.g", "i.e", "etc", "vs", "mr", "mrs", "ms", "dr", "prof", "sr", "jr",
    "st", "no", "fig", "approx", "inc", "ltd", "co", "dept", "est", "cf",
}
_BOUNDARY = re.compile(r"([.!?]+)([\"')\]]*)\s+(?=[\"'(\[`]*(\w))")
_CONJUNCTION_COMMA = re.compile(r",\s*(?=(?:and|but|or|so|yet|for|nor)\b)", re.IGNORECASE)


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _is_abbreviation(text: str, dot_index: int) -> bool:
    head = text[:dot_index]
    match = re.search(r"([^\W\d_](?:[^\W\d_]|\.)*)$", head)
    if not match:
        return False
    word = match.group(1).lower()
    if word in _ABBREVIATIONS:
        return True
    # single initials such as "J. Smith"
    return len(word) == 1 and word.isalpha()


def segment_sentences(text: str) -> list[str]:
    """Split prose into sentences without breaking on common abbreviations."""
    text = _collapse(text)
    if not text:
        return []

    sentences: list[str] = []
    start = 0
    for match in _BOUNDARY.finditer(text):
        # a sentence opens with a capital in any script, a digit or an uncased letter
        if match.group(3).islower():
            continue
        if match.group(1) == "." and _is_abbreviation(text, match.start(1)):
            continue
        end = match.end(2)
        sentences.append(text[start:end].strip())
        start = match.end()
    tail = text[start:].strip()
    if tail:
        sentences.append(tail)
    return [sentence for sentence in sentences if sentence]


def split_into_sentences(text: str, min_chars: int = 10, long_chars: int = 200) -> list[str]:
    """Segment text, drop short fragments, and break up overlong sentences.

    Sentences longer than ``long_chars`` are split on commas that introduce a
    coordinating conjunction; pieces of ``min_chars`` or fewer are dropped.
    """
    result: list[str] = []
    for sentence in segment_sentences(text):
        if len(sentence) <= min_chars:
            continue
        if len(sentence) <= long_chars:
            result.append(sentence)
            continue
        parts = [part.strip() for part in _CONJUNCTION_COMMA.split(sentence)]
        if len(parts) == 1:
            result.append(sentence)
            continue
        result.extend(part for part in parts if len(part) > min_chars)
    return result


def split_code_lines(code: str) -> list[str]:
    """Return the non-empty lines of a code block with whitespace collapsed."""
    return [_collapse(line) for line in code.split("\n") if line.strip()]


def parse_markdown(text: str, min_sentence_chars: int = 10, long_sentence_chars: int = 200) -> list[Section]:
    """Parse markdown into ordered sections.

    Args:
        text: Raw markdown (plain text is treated as one default section).
        min_sentence_chars: Sentences of this length or shorter are dropped.
        long_sentence_chars: Sentences longer than this are split further.

    Returns:
        Sections in document order; empty when the input has no content.
    """
    sections: list[Section] = []
    current: Section | None = None
    block_lines: list[str] = []
    block_kind = ""

    def _section() -> Section:
        nonlocal current
        if current is None:
            current = Section(title=DEFAULT_SECTION_TITLE, level=1)
            sections.append(current)
        return current

    def _commit_block() -> None:
        nonlocal block_lines, block_kind
        if block_lines:
            # list items and wrapped paragraph lines both join with a space
            body = _collapse(" ".join(block_lines))
            if body:
                section = _section()
                section.paragraphs.append(body)
                section.sentences.extend(
                    split_into_sentences(body, min_sentence_chars, long_sentence_chars)
                )
        block_lines = []
        block_kind = ""

    lines = (text or "").replace("\r\n", "\n").replace("\r", "\n").split("\n")
    index = 0
    while index < len(lines):
        line = lines[index]

        fence = _FENCE.match(line)
        if fence:
            _commit_block()
            marker = fence.group(1)
            language = fence.group(2) or "text"
            body: list[str] = []
            index += 1
            while index < len(lines) and not lines[index].strip().startswith(marker):
                body.append(lines[index])
                index += 1
            closing = lines[index] if index < len(lines) else ""
            code = "\n".join(body).strip("\n")
            if code.strip():
                raw = "\n".join([line, *body, closing]).rstrip("\n")
                _section().code_blocks.append(CodeBlock(language=language, content=code, raw=raw))
            index += 1
            continue

        heading = _HEADING.match(line)
        if heading:
            _commit_block()
            title = _collapse(heading.group(2))
            current = Section(title=title, level=len(heading.group(1)))
            sections.append(current)
            index += 1
            continue

        if not line.strip():
            _commit_block()
            index += 1
            continue

        item = _LIST_ITEM.match(line)
        quote = _QUOTE.match(line)
        if item:
            if block_kind != "list":
                _commit_block()
                block_kind = "list"
            block_lines.append(item.group(1))
        elif quote:
            if block_kind != "quote":
                _commit_block()
                block_kind = "quote"
            block_lines.append(quote.group(1))
        else:
            if not block_kind:
                block_kind = "paragraph"
            block_lines.append(line)
        index += 1

    _commit_block()
    return [section for section in sections if section.paragraphs or section.code_blocks or section.sentences]
