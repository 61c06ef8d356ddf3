from __future__ import annotations

from pathlib import Path

import chromadb
import numpy as np

EMBEDDINGS_COLLECTION = "document_embeddings"
_ADD_BATCH = 1000


def save_embeddings(
    chunk_ids: list[str],
    embeddings: np.ndarray,
    persist_dir: str | Path,
    metadata: dict[str, str] | None = None,
    collection_name: str = EMBEDDINGS_COLLECTION,
):
    """Create (or replace) a persistent Chroma collection of chunk embeddings.

    Args:
        chunk_ids: Chunk ids aligned with ``embeddings`` rows.
        embeddings: Embedding matrix, one row per chunk.
        persist_dir: Local path for Chroma persistence.
        metadata: Collection-level metadata (document id, filename).
        collection_name: Chroma collection name.

    Returns:
        The created Chroma collection instance.
    """
    Path(persist_dir).mkdir(parents=True, exist_ok=True)
    client = chromadb.PersistentClient(path=str(persist_dir))
    existing = {getattr(collection, "name", collection) for collection in client.list_collections()}
    if collection_name in existing:
        client.delete_collection(collection_name)

    collection = client.create_collection(name=collection_name, metadata=metadata or None)
    rows = np.asarray(embeddings, dtype=np.float32).tolist()
    for start in range(0, len(chunk_ids), _ADD_BATCH):
        collection.add(
            ids=chunk_ids[start : start + _ADD_BATCH],
            embeddings=rows[start : start + _ADD_BATCH],
        )
    return collection


def load_embeddings(
    chunk_ids: list[str],
    persist_dir: str | Path,
    collection_name: str = EMBEDDINGS_COLLECTION,
) -> tuple[np.ndarray, dict[str, str]]:
    """Read the embedding mirror back into a matrix aligned with ``chunk_ids``.

    Args:
        chunk_ids: Chunk ids in snapshot order.
        persist_dir: Local path for Chroma persistence.
        collection_name: Chroma collection name.

    Returns:
        Tuple of ``(matrix, collection_metadata)``.

    Raises:
        FileNotFoundError: No Chroma store exists at ``persist_dir``.
        KeyError: A chunk id has no stored embedding.
    """
    if not Path(persist_dir).exists():
        raise FileNotFoundError(f"no embedding store at {persist_dir}")
    client = chromadb.PersistentClient(path=str(persist_dir))
    collection = client.get_collection(collection_name)
    response = collection.get(ids=list(chunk_ids), include=["embeddings"])

    by_id = {
        chunk_id: np.asarray(vector, dtype=np.float32)
        for chunk_id, vector in zip(response["ids"], response["embeddings"], strict=True)
    }
    missing = [chunk_id for chunk_id in chunk_ids if chunk_id not in by_id]
    if missing:
        raise KeyError(f"{len(missing)} chunk embeddings missing, first: {missing[0]}")

    matrix = np.vstack([by_id[chunk_id] for chunk_id in chunk_ids]) if chunk_ids else np.zeros((0, 0), dtype=np.float32)
    return matrix, dict(collection.metadata or {})
