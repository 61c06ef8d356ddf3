from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

ChunkType = Literal[
    "window",
    "paragraph",
    "code_block",
    "code_line",
    "sentence_window",
    "sentence_context",
    "sentence",
]

CHUNK_ID_PREFIXES: dict[str, str] = {
    "window": "w",
    "paragraph": "p",
    "code_block": "code",
    "code_line": "code_line",
    "sentence_window": "sw",
    "sentence_context": "sc",
    "sentence": "s",
}


@dataclass(frozen=True, slots=True)
class Document:
    """Uploaded document; replaced wholesale by the next upload."""

    doc_id: str
    filename: str
    raw_text: str


@dataclass(frozen=True, slots=True)
class CodeBlock:
    """Fenced code kept verbatim with its declared language."""

    language: str
    content: str
    raw: str


@dataclass(slots=True)
class Section:
    """Heading-delimited slice of a document, input to the chunking engine."""

    title: str
    level: int
    paragraphs: list[str] = field(default_factory=list)
    sentences: list[str] = field(default_factory=list)
    code_blocks: list[CodeBlock] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class Chunk:
    """Bounded span of document text indexed as one retrieval unit."""

    chunk_id: str
    type: ChunkType
    content: str
    title: str
    section: str
    level: int
    position: int
    meta: dict = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ChannelHit:
    """One ranked hit produced by a retrieval channel."""

    chunk_id: str
    score: float


@dataclass(slots=True)
class ScoredCandidate:
    """Fused, per-query candidate; never persisted."""

    chunk_id: str
    content: str
    type: str
    section: str
    score: float
    sources: dict[str, dict[str, float]] = field(default_factory=dict)


CandidatePool = list[ScoredCandidate]


@dataclass(frozen=True, slots=True)
class EvidenceVerdict:
    """Gate decision on whether the top evidence supports answering."""

    passed: bool
    reason: str
    matched_terms: tuple[str, ...] = ()
    key_terms: tuple[str, ...] = ()
    spec_style: bool = False


@dataclass(slots=True)
class RerankResult:
    """Evidence chosen after dedup and diversity, with its gate verdict."""

    evidence: list[ScoredCandidate]
    verdict: EvidenceVerdict
    literal_hits: int
    total_candidates: int
    confidence: float


@dataclass(slots=True)
class IngestResult:
    """Summary returned after a document is indexed and published."""

    doc_id: str
    filename: str
    chunk_count: int
    chunk_counts_by_type: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class QueryResult:
    """Answer (or refusal) plus the candidates and verdict behind it."""

    question: str
    answer: str
    refused: bool
    confidence: float
    verdict: EvidenceVerdict
    candidates: list[dict] = field(default_factory=list)
    citations: list[dict] = field(default_factory=list)
