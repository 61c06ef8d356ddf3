"""Exceptions raised while turning an uploaded document into indexes.

Query-time problems are not exceptions: a failing retrieval channel degrades
fusion, and an unsupported answer is a negative ``EvidenceVerdict``.
"""
from __future__ import annotations


class DocumentProcessingError(Exception):
    """Base class for every ingest failure surfaced to callers."""


class ParseFailure(DocumentProcessingError):
    """The document is empty or produced no sections or chunks."""


class EmbeddingProviderFailure(DocumentProcessingError):
    """An embedding batch failed; no embeddings from this ingest are kept."""

    def __init__(self, message: str, batch_index: int | None = None):
        super().__init__(message)
        self.batch_index = batch_index


class LexicalIndexFailure(DocumentProcessingError):
    """The lexical index could not be built from the chunk set."""


class IndexPersistenceError(DocumentProcessingError):
    """Index artifacts could not be written to disk."""
