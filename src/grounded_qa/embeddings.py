from __future__ import annotations

import logging
import time
from typing import Callable, Protocol

import numpy as np
from openai import OpenAI

from .errors import EmbeddingProviderFailure

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    """Anything that turns texts into a ``(len(texts), dim)`` float matrix."""

    def embed(self, texts: list[str], input_type: str = "document") -> np.ndarray: ...


def embed_texts(texts: list[str], model: str = "text-embedding-3-small") -> np.ndarray:
    """Generate embedding vectors for input texts using OpenAI embeddings API.

    Args:
        texts: Input strings to embed.
        model: Embedding model name.

    Returns:
        A `float32` NumPy matrix shaped `(len(texts), embedding_dim)`.
    """
    client = OpenAI()
    response = client.embeddings.create(model=model, input=texts)
    vectors = [row.embedding for row in response.data]
    return np.array(vectors, dtype=np.float32)


class OpenAIEmbeddingProvider:
    """Embedding provider backed by the OpenAI embeddings endpoint."""

    def __init__(self, model: str = "text-embedding-3-small"):
        self.model = model

    def embed(self, texts: list[str], input_type: str = "document") -> np.ndarray:
        # OpenAI models embed queries and documents the same way
        del input_type
        return embed_texts(texts, model=self.model)


def embed_in_batches(
    provider: EmbeddingProvider,
    texts: list[str],
    batch_size: int = 900,
    delay_seconds: float = 0.1,
    sleep: Callable[[float], None] = time.sleep,
) -> np.ndarray:
    """Embed ``texts`` sequentially in fixed-size batches.

    A short pause separates batches to stay under provider rate limits. Any
    failure aborts the remaining batches and nothing from earlier batches is
    returned.

    Args:
        provider: Embedding backend.
        texts: Chunk contents in chunk order.
        batch_size: Texts per provider call.
        delay_seconds: Pause between consecutive batches.
        sleep: Injected sleep function (tests pass a no-op).

    Returns:
        Matrix aligned row-for-row with ``texts``.

    Raises:
        EmbeddingProviderFailure: A batch raised or returned the wrong shape.
    """
    if not texts:
        raise EmbeddingProviderFailure("no texts to embed")

    total = (len(texts) + batch_size - 1) // batch_size
    blocks: list[np.ndarray] = []
    for batch_index, start in enumerate(range(0, len(texts), batch_size)):
        batch = texts[start : start + batch_size]
        logger.info("Embedding batch %d/%d (%d chunks)", batch_index + 1, total, len(batch))
        try:
            vectors = np.asarray(provider.embed(batch, input_type="document"), dtype=np.float32)
        except Exception as exc:
            raise EmbeddingProviderFailure(
                f"embedding batch {batch_index + 1}/{total} failed: {exc}", batch_index=batch_index
            ) from exc
        if vectors.ndim != 2 or vectors.shape[0] != len(batch):
            raise EmbeddingProviderFailure(
                f"embedding batch {batch_index + 1}/{total} returned shape {vectors.shape} for {len(batch)} texts",
                batch_index=batch_index,
            )
        blocks.append(vectors)
        if start + batch_size < len(texts):
            sleep(delay_seconds)

    return np.vstack(blocks)


def cosine_similarity(query_vector: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Compute cosine similarity between one query vector and many vectors.

    Zero-norm vectors (query or row) score 0.0 rather than dividing by zero.

    Args:
        query_vector: Query embedding vector.
        matrix: Candidate embedding matrix where each row is one vector.

    Returns:
        A 1D array of cosine similarity scores aligned to matrix rows.
    """
    query_vector = np.asarray(query_vector, dtype=np.float64)
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.size == 0:
        return np.zeros(matrix.shape[0] if matrix.ndim else 0, dtype=np.float64)
    query_norm = np.linalg.norm(query_vector)
    matrix_norm = np.linalg.norm(matrix, axis=1)
    denominator = query_norm * matrix_norm
    dots = matrix @ query_vector
    safe = np.where(denominator > 0.0, denominator, 1.0)
    return np.where(denominator > 0.0, dots / safe, 0.0)
