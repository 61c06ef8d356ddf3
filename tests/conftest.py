"""Shared pytest fixtures for grounded_qa unit tests."""
from __future__ import annotations

import re
import zlib
from dataclasses import replace

import numpy as np
import pytest

from grounded_qa.pipeline import build_snapshot
from grounded_qa.schema import Chunk, Document, ScoredCandidate
from grounded_qa.settings import RetrievalConfig

SAMPLE_MARKDOWN = """\
# Refund Policy

Refunds are issued within 14 business days. Customers must keep the original
receipt for every purchase they want refunded.

Store credit is offered when the receipt is missing. Gift cards cannot be
exchanged for cash under any circumstances.

## Shipping

Orders ship from the central warehouse each weekday. Express delivery arrives
in two days for an extra fee.

- Standard orders are packed within one day.
- Fragile items are wrapped twice before they leave the warehouse.

## File API

Open files with the `O_APPEND` flag to add data at the end of the file. Every
write then goes to the current end of the file, even with several writers.

```python
fd = os.open("audit.txt", os.O_WRONLY | os.O_APPEND)
os.write(fd, b"entry")
```

The `read_timeout` setting controls how many seconds a read waits before it
gives up.
"""


class HashingEmbeddingProvider:
    """Deterministic bag-of-words embedder: each token hashes to one dimension."""

    def __init__(self, dim: int = 64):
        self.dim = dim
        self.calls: list[tuple[list[str], str]] = []

    def embed(self, texts: list[str], input_type: str = "document") -> np.ndarray:
        self.calls.append((list(texts), input_type))
        matrix = np.zeros((len(texts), self.dim), dtype=np.float32)
        for row, text in enumerate(texts):
            for token in re.findall(r"\w+", text.lower()):
                matrix[row, zlib.crc32(token.encode("utf-8")) % self.dim] += 1.0
        return matrix


class RecordingSynthesizer:
    """Answer synthesizer double that remembers every call."""

    def __init__(self, answer: str = "Refunds take 14 business days."):
        self.answer = answer
        self.calls: list[tuple[str, list[ScoredCandidate]]] = []

    def __call__(self, question: str, evidence: list[ScoredCandidate]) -> str:
        self.calls.append((question, list(evidence)))
        return self.answer


def make_chunk(chunk_id: str, content: str, chunk_type: str = "sentence", section: str = "S") -> Chunk:
    return Chunk(
        chunk_id=chunk_id,
        type=chunk_type,
        content=content,
        title=section,
        section=section,
        level=1,
        position=0,
    )


def make_candidate(chunk_id: str, content: str, score: float, chunk_type: str = "sentence", section: str = "S"):
    return ScoredCandidate(chunk_id=chunk_id, content=content, type=chunk_type, section=section, score=score)


@pytest.fixture()
def config() -> RetrievalConfig:
    return replace(RetrievalConfig(), embedding_batch_delay=0.0)


@pytest.fixture()
def sample_markdown() -> str:
    return SAMPLE_MARKDOWN


@pytest.fixture()
def sample_document(sample_markdown) -> Document:
    return Document(doc_id="doc-1", filename="policy.md", raw_text=sample_markdown)


@pytest.fixture()
def embedding_provider() -> HashingEmbeddingProvider:
    return HashingEmbeddingProvider()


@pytest.fixture()
def synthesizer() -> RecordingSynthesizer:
    return RecordingSynthesizer()


@pytest.fixture()
def sample_chunks() -> list[Chunk]:
    return [
        make_chunk("s_0", "Refunds are issued within 14 business days."),
        make_chunk("s_1", "Store credit is offered when the receipt is missing."),
        make_chunk("s_2", "Orders ship from the central warehouse each weekday.", section="Shipping"),
        make_chunk("s_3", "Express delivery arrives in two days for an extra fee.", section="Shipping"),
        make_chunk("s_4", "Open files with the O_APPEND flag to add data at the end.", section="File API"),
    ]


@pytest.fixture()
def snapshot(sample_document, embedding_provider, config):
    return build_snapshot(sample_document, embedding_provider, config, sleep=lambda _: None)
