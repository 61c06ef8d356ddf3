from __future__ import annotations

import os
from dataclasses import dataclass, replace

from dotenv import load_dotenv


@dataclass(slots=True)
class OpenAISettings:
    """Runtime model configuration for embedding and generation calls."""

    embedding_model: str = "text-embedding-3-small"
    chat_model: str = "gpt-4.1-mini"


@dataclass(slots=True)
class Paths:
    """Filesystem locations for uploaded documents and persisted indexes."""

    data_dir: str = "data"
    index_dir: str = "data/indexes"


@dataclass(frozen=True, slots=True)
class RetrievalConfig:
    """Static per-deployment knobs for chunking, retrieval, fusion and gating.

    Instances are immutable and injected into every component, so tests can
    parametrize any property by building a config with ``dataclasses.replace``.
    """

    # fusion
    rrf_k: int = 60
    exact_bonus: float = 0.02
    exact_bonus_scale: float = 0.25
    pool_size: int = 100
    channel_limit: int = 200

    # chunking
    window_words: int = 280
    window_overlap_words: int = 100
    min_window_words: int = 20
    sentence_window_size: int = 3
    min_sentence_window: int = 2
    max_chunk_chars: int = 350
    min_sentence_chars: int = 10
    min_paragraph_chars: int = 20
    long_sentence_chars: int = 200
    max_code_lines_for_split: int = 5

    # diversity and evidence gate
    max_window_share: float = 0.5
    min_literal_hits: int = 10
    evidence_top_k: int = 5
    confidence_scale: float = 2.0

    # ingest
    embedding_batch_size: int = 900
    embedding_batch_delay: float = 0.1

    @property
    def window_stride(self) -> int:
        return max(1, self.window_words - self.window_overlap_words)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def load_settings() -> tuple[OpenAISettings, Paths, RetrievalConfig]:
    """Load environment-backed settings and return typed config objects.

    Returns:
        Tuple containing OpenAI model settings, filesystem paths, and the
        retrieval configuration.
    """
    load_dotenv()
    defaults = RetrievalConfig()
    pool_size = _env_int("GROUNDED_QA_POOL_SIZE", defaults.pool_size)
    config = replace(
        defaults,
        rrf_k=_env_int("GROUNDED_QA_RRF_K", defaults.rrf_k),
        pool_size=pool_size,
        channel_limit=pool_size * 2,
        embedding_batch_size=_env_int("GROUNDED_QA_EMBEDDING_BATCH_SIZE", defaults.embedding_batch_size),
    )
    return (
        OpenAISettings(
            embedding_model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
            chat_model=os.getenv("OPENAI_CHAT_MODEL", "gpt-4.1-mini"),
        ),
        Paths(index_dir=os.getenv("GROUNDED_QA_INDEX_DIR", "data/indexes")),
        config,
    )
