"""Grounded question answering over a single uploaded document."""

from .errors import (
    DocumentProcessingError,
    EmbeddingProviderFailure,
    IndexPersistenceError,
    LexicalIndexFailure,
    ParseFailure,
)
from .pipeline import DocumentQAService
from .qa import REFUSAL_MESSAGE
from .schema import Chunk, Document, EvidenceVerdict, IngestResult, QueryResult, ScoredCandidate
from .settings import RetrievalConfig

__all__ = [
    "Chunk",
    "Document",
    "DocumentProcessingError",
    "DocumentQAService",
    "EmbeddingProviderFailure",
    "EvidenceVerdict",
    "IndexPersistenceError",
    "IngestResult",
    "LexicalIndexFailure",
    "ParseFailure",
    "QueryResult",
    "REFUSAL_MESSAGE",
    "RetrievalConfig",
    "ScoredCandidate",
]
