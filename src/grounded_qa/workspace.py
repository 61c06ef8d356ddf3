"""Per-document index state and its atomic publication.

An ``IndexSnapshot`` bundles everything a query reads: the chunks, their
embedding matrix and the lexical index. Ingest builds a complete snapshot off
to the side and publishes it with one reference swap, so a reader holds either
the previous snapshot or the new one and never a mix of both.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field

import numpy as np

from .lexical import LexicalIndex
from .schema import Chunk


@dataclass(frozen=True, eq=False)
class IndexSnapshot:
    """Immutable, query-ready view of one ingested document."""

    doc_id: str
    filename: str
    chunks: tuple[Chunk, ...]
    embeddings: np.ndarray
    lexical_index: LexicalIndex
    chunks_by_id: dict[str, Chunk] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.embeddings.shape[0] != len(self.chunks):
            raise ValueError(
                f"embedding rows ({self.embeddings.shape[0]}) do not match chunk count ({len(self.chunks)})"
            )
        object.__setattr__(self, "chunks_by_id", {chunk.chunk_id: chunk for chunk in self.chunks})

    @property
    def chunk_ids(self) -> list[str]:
        return [chunk.chunk_id for chunk in self.chunks]


class Workspace:
    """Holds the current snapshot; readers and the ingest writer never block long."""

    def __init__(self, snapshot: IndexSnapshot | None = None) -> None:
        self._lock = threading.Lock()
        self._snapshot = snapshot

    def current(self) -> IndexSnapshot | None:
        with self._lock:
            return self._snapshot

    def publish(self, snapshot: IndexSnapshot) -> IndexSnapshot | None:
        """Swap in ``snapshot`` and return the one it replaced."""
        with self._lock:
            previous, self._snapshot = self._snapshot, snapshot
        return previous

    def clear(self) -> None:
        with self._lock:
            self._snapshot = None
