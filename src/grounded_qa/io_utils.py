from __future__ import annotations

from dataclasses import asdict
import json
import logging
import os
import pickle
import shutil
import uuid
from pathlib import Path

from .errors import IndexPersistenceError
from .lexical import LexicalIndex
from .schema import Chunk
from .vector_store import load_embeddings, save_embeddings
from .workspace import IndexSnapshot

logger = logging.getLogger(__name__)

CHUNKS_FILE = "chunks.jsonl"
LEXICAL_INDEX_FILE = "lexical_index.pkl"
CHROMA_DIR = "chroma"
CURRENT_FILE = "CURRENT"
GENERATION_PREFIX = "gen-"


def _load_jsonl(path: str | Path) -> list[dict]:
    records: list[dict] = []
    with Path(path).open("r", encoding="utf-8") as file_handle:
        for line in file_handle:
            if line.strip():
                records.append(json.loads(line))
    return records


def _replace_atomically(destination: Path, write) -> None:
    tmp = destination.with_name(destination.name + ".tmp")
    write(tmp)
    os.replace(tmp, destination)


def save_chunks(chunks: list[Chunk] | tuple[Chunk, ...], path: str | Path) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)

    def _write(target: Path) -> None:
        with target.open("w", encoding="utf-8") as file_handle:
            for chunk in chunks:
                file_handle.write(json.dumps(asdict(chunk), ensure_ascii=False) + "\n")

    _replace_atomically(destination, _write)


def load_chunks(path: str | Path) -> list[Chunk]:
    return [Chunk(**record) for record in _load_jsonl(path)]


def save_lexical_index(index: LexicalIndex, path: str | Path) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)

    def _write(target: Path) -> None:
        with target.open("wb") as file_handle:
            pickle.dump(index, file_handle)

    _replace_atomically(destination, _write)


def load_lexical_index(path: str | Path) -> LexicalIndex:
    with Path(path).open("rb") as file_handle:
        index = pickle.load(file_handle)
    if not isinstance(index, LexicalIndex):
        raise TypeError(f"{path} does not hold a LexicalIndex")
    return index


class IndexStore:
    """Persistence for the three index artifacts of a snapshot.

    Every save writes a fresh generation directory under ``index_dir`` and
    then swaps the ``CURRENT`` pointer file to name it, so a reader finds
    either the previous complete set or the new one. Superseded generations
    are removed after the swap.
    """

    def __init__(self, index_dir: str | Path = "data/indexes") -> None:
        self.index_dir = Path(index_dir)

    @property
    def pointer_path(self) -> Path:
        return self.index_dir / CURRENT_FILE

    def current_generation(self) -> Path | None:
        try:
            name = self.pointer_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        return self.index_dir / name if name else None

    @property
    def generation_dir(self) -> Path:
        return self.current_generation() or self.index_dir

    @property
    def chunks_path(self) -> Path:
        return self.generation_dir / CHUNKS_FILE

    @property
    def lexical_path(self) -> Path:
        return self.generation_dir / LEXICAL_INDEX_FILE

    @property
    def chroma_dir(self) -> Path:
        return self.generation_dir / CHROMA_DIR

    def save(self, snapshot: IndexSnapshot) -> None:
        """Write chunks, the embedding mirror and the lexical index.

        Raises:
            IndexPersistenceError: Any artifact could not be written. The
                previously saved generation stays current.
        """
        generation = f"{GENERATION_PREFIX}{snapshot.doc_id}-{uuid.uuid4().hex[:8]}"
        staging = self.index_dir / generation
        try:
            staging.mkdir(parents=True)
            save_embeddings(
                snapshot.chunk_ids,
                snapshot.embeddings,
                staging / CHROMA_DIR,
                metadata={"doc_id": snapshot.doc_id, "filename": snapshot.filename},
            )
            save_lexical_index(snapshot.lexical_index, staging / LEXICAL_INDEX_FILE)
            save_chunks(snapshot.chunks, staging / CHUNKS_FILE)
            _replace_atomically(self.pointer_path, lambda target: target.write_text(generation, encoding="utf-8"))
        except Exception as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise IndexPersistenceError(f"could not persist indexes to {self.index_dir}: {exc}") from exc
        self._remove_stale_generations(keep=generation)
        logger.info("Persisted %d chunks to %s", len(snapshot.chunks), staging)

    def _remove_stale_generations(self, keep: str) -> None:
        for path in self.index_dir.iterdir():
            if path.is_dir() and path.name.startswith(GENERATION_PREFIX) and path.name != keep:
                shutil.rmtree(path, ignore_errors=True)
                logger.debug("Removed superseded index generation %s", path.name)

    def load(self) -> IndexSnapshot | None:
        """Best-effort reload; returns None (cold start) on missing or corrupt artifacts."""
        try:
            generation = self.current_generation()
            if generation is None:
                raise FileNotFoundError(f"no {CURRENT_FILE} pointer in {self.index_dir}")
            chunks = load_chunks(generation / CHUNKS_FILE)
            if not chunks:
                raise ValueError("chunk file is empty")
            lexical_index = load_lexical_index(generation / LEXICAL_INDEX_FILE)
            if lexical_index.chunk_ids != [chunk.chunk_id for chunk in chunks]:
                raise ValueError("lexical index does not match persisted chunks")
            embeddings, metadata = load_embeddings([chunk.chunk_id for chunk in chunks], generation / CHROMA_DIR)
            doc_id = str(metadata.get("doc_id", ""))
            if not generation.name.startswith(f"{GENERATION_PREFIX}{doc_id}-"):
                raise ValueError(f"embeddings belong to document {doc_id!r}, not {generation.name}")
            snapshot = IndexSnapshot(
                doc_id=doc_id,
                filename=str(metadata.get("filename", "")),
                chunks=tuple(chunks),
                embeddings=embeddings,
                lexical_index=lexical_index,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not load indexes from %s, starting cold: %s", self.index_dir, exc)
            return None
        logger.info("Loaded %d chunks for %s from %s", len(snapshot.chunks), snapshot.filename, generation)
        return snapshot
