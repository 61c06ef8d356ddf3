from __future__ import annotations

import logging
from collections import Counter
from typing import Iterator

from .parsing import split_code_lines
from .schema import CHUNK_ID_PREFIXES, Chunk, ChunkType, Section
from .settings import RetrievalConfig

logger = logging.getLogger(__name__)


class _ChunkIds:
    """Document-wide monotonic counter; ids are ``<type prefix>_<n>``."""

    def __init__(self) -> None:
        self._next = 0

    def __call__(self, chunk_type: ChunkType) -> str:
        chunk_id = f"{CHUNK_ID_PREFIXES[chunk_type]}_{self._next}"
        self._next += 1
        return chunk_id


def cap_chars(text: str, max_chars: int = 350, keep_ratio: float = 0.8) -> str:
    """Trim text to ``max_chars``, backing off to a word boundary when cheap.

    The cut moves back to the last space only if that space sits beyond
    ``keep_ratio`` of the cap.
    """
    if len(text) <= max_chars:
        return text
    text = text[:max_chars].strip()
    last_space = text.rfind(" ")
    if last_space > max_chars * keep_ratio:
        text = text[:last_space]
    return text


def word_windows(text: str, window: int = 280, stride: int = 180, min_words: int = 20) -> Iterator[tuple[int, list[str]]]:
    """Yield ``(start_word, words)`` for overlapping windows over ``text``.

    Windows shorter than ``min_words`` are skipped; sliding stops once a
    window reaches the end of the text.
    """
    words = text.split()
    for start in range(0, len(words), stride):
        chunk_words = words[start : start + window]
        if len(chunk_words) >= min_words:
            yield start, chunk_words
        if start + window >= len(words):
            break


def sentence_context_prefix(section: Section, index: int) -> str:
    parts: list[str] = []
    if section.title:
        parts.append(f"[{section.title}]")
    if index > 0:
        previous = section.sentences[index - 1]
        if len(previous) > 20:
            parts.append(f"[Previous: {previous[:50]}...]")
    return " ".join(parts) + " " if parts else ""


def _make(ids: _ChunkIds, chunk_type: ChunkType, content: str, section: Section, position: int, **meta) -> Chunk:
    return Chunk(
        chunk_id=ids(chunk_type),
        type=chunk_type,
        content=content,
        title=section.title,
        section=section.title,
        level=section.level,
        position=position,
        meta=meta,
    )


def _section_chunks(section: Section, ids: _ChunkIds, config: RetrievalConfig) -> list[Chunk]:
    chunks: list[Chunk] = []

    paragraph_text = " ".join(section.paragraphs).strip()
    if paragraph_text:
        for start, words in word_windows(
            paragraph_text,
            window=config.window_words,
            stride=config.window_stride,
            min_words=config.min_window_words,
        ):
            chunks.append(_make(ids, "window", " ".join(words), section, start, window_words=len(words)))

    for position, paragraph in enumerate(section.paragraphs):
        if len(paragraph.strip()) > config.min_paragraph_chars:
            chunks.append(_make(ids, "paragraph", paragraph.strip(), section, position))

    for position, block in enumerate(section.code_blocks):
        chunks.append(_make(ids, "code_block", block.content, section, position, language=block.language, raw=block.raw))
        if len(block.content.split("\n")) <= config.max_code_lines_for_split:
            for line in split_code_lines(block.content):
                chunks.append(_make(ids, "code_line", line, section, position, language=block.language, raw=line))

    sentences = section.sentences
    for start in range(len(sentences)):
        window = sentences[start : start + config.sentence_window_size]
        if len(window) < config.min_sentence_window:
            continue
        content = cap_chars(" ".join(window), config.max_chunk_chars)
        chunks.append(_make(ids, "sentence_window", content, section, start, sentence_count=len(window)))

    for position, sentence in enumerate(sentences):
        if len(sentence.strip()) <= config.min_sentence_chars:
            continue
        content = cap_chars(sentence_context_prefix(section, position) + sentence, config.max_chunk_chars)
        chunks.append(_make(ids, "sentence_context", content, section, position, original_sentence=sentence))

    for position, sentence in enumerate(sentences):
        if len(sentence.strip()) <= config.min_sentence_chars:
            continue
        chunks.append(_make(ids, "sentence", sentence, section, position, original_sentence=sentence))

    return chunks


def create_chunks(sections: list[Section], config: RetrievalConfig | None = None) -> list[Chunk]:
    """Cut every section into chunks at several granularities.

    Per section the order is: word windows, paragraphs, code blocks and code
    lines, sentence windows, sentences with context, individual sentences.

    Args:
        sections: Parsed sections in document order.
        config: Chunking knobs; defaults to ``RetrievalConfig()``.

    Returns:
        Chunks with ids unique across the whole document.
    """
    config = config or RetrievalConfig()
    ids = _ChunkIds()
    chunks: list[Chunk] = []
    for section in sections:
        chunks.extend(_section_chunks(section, ids, config))

    counts = Counter(chunk.type for chunk in chunks)
    logger.info("Created %d chunks from %d sections: %s", len(chunks), len(sections), dict(counts))
    return chunks
