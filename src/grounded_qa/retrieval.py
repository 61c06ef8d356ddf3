from __future__ import annotations

import contextvars
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable

import numpy as np

from .embeddings import EmbeddingProvider, cosine_similarity
from .fusion import ExactBonusSignal, LexicalSignal, SemanticSignal, Signal
from .schema import ChannelHit, Chunk
from .settings import RetrievalConfig
from .tracing import ATTR_CHANNEL_DEGRADED, ATTR_INPUT_VALUE, get_tracer, traced_channel
from .workspace import IndexSnapshot

logger = logging.getLogger(__name__)

CHANNELS = ("lexical", "semantic", "exact")

_QUOTES = str.maketrans({"\u2018": "'", "\u2019": "'", "\u201c": '"', "\u201d": '"'})
_DASHES = re.compile("[\u2012-\u2015]")
_UNICODE_SPACES = re.compile("[\u00a0\u2000-\u200b\u202f\u205f\u3000]")
_DISALLOWED = re.compile(r"[^\w\s.-]")
_TRAILING_DOTS = re.compile(r"\.+(?=\s|$)")
_SPACES = re.compile(r"\s+")


def normalize_for_exact(text: str) -> str:
    """Case-fold and flatten typography so phrase matching ignores it.

    Curly quotes, figure/en/em dashes and unicode spaces become their ASCII
    forms; punctuation other than ``.``, ``_`` and ``-`` is dropped, and
    periods survive only inside tokens such as ``os.open``.
    """
    text = text.lower().translate(_QUOTES)
    text = _DASHES.sub("-", text)
    text = _UNICODE_SPACES.sub(" ", text)
    text = _DISALLOWED.sub(" ", text)
    text = _TRAILING_DOTS.sub(" ", text)
    return _SPACES.sub(" ", text).strip()


def make_ngrams(tokens: list[str], n: int) -> list[str]:
    return [" ".join(tokens[i : i + n]) for i in range(len(tokens) - n + 1)]


def exact_bonus_map(chunks: Iterable[Chunk], query: str, bonus: float = 0.02) -> dict[str, float]:
    """Award ``bonus`` to chunks holding a query trigram, half for a bigram only.

    N-grams match on whole-word boundaries of the normalized chunk text.
    Chunks without a match get no entry.
    """
    tokens = normalize_for_exact(query).split()
    trigrams = make_ngrams(tokens, 3)
    bigrams = make_ngrams(tokens, 2)
    if not bigrams:
        return {}

    bonuses: dict[str, float] = {}
    for chunk in chunks:
        padded = f" {normalize_for_exact(chunk.content)} "
        if any(f" {gram} " in padded for gram in trigrams):
            bonuses[chunk.chunk_id] = bonus
        elif any(f" {gram} " in padded for gram in bigrams):
            bonuses[chunk.chunk_id] = bonus / 2
    return bonuses


def semantic_search(
    snapshot: IndexSnapshot,
    provider: EmbeddingProvider,
    query: str,
    limit: int = 200,
) -> list[ChannelHit]:
    """Rank every chunk by cosine similarity to the embedded query.

    Args:
        snapshot: Published index state.
        provider: Embedding backend; the query is embedded exactly once.
        query: Free-text query.
        limit: Maximum number of hits.

    Returns:
        Hits sorted by descending similarity; ties keep chunk order.
    """
    query_vector = np.asarray(provider.embed([query], input_type="query"), dtype=np.float32)[0]
    scores = cosine_similarity(query_vector, snapshot.embeddings)
    order = np.argsort(-scores, kind="stable")[:limit]
    return [ChannelHit(chunk_id=snapshot.chunks[idx].chunk_id, score=float(scores[idx])) for idx in order]


def lexical_search(snapshot: IndexSnapshot, query: str, limit: int = 200) -> list[ChannelHit]:
    return snapshot.lexical_index.search(query, limit=limit)


@dataclass(slots=True)
class ChannelResults:
    """Raw output of the three retrieval channels for one query."""

    lexical: list[ChannelHit] = field(default_factory=list)
    semantic: list[ChannelHit] = field(default_factory=list)
    exact: dict[str, float] = field(default_factory=dict)
    degraded: list[str] = field(default_factory=list)

    def signals(self) -> list[Signal]:
        return [
            LexicalSignal(hits=self.lexical),
            SemanticSignal(hits=self.semantic),
            ExactBonusSignal(bonuses=self.exact),
        ]


class RetrievalOrchestrator:
    """Runs the lexical, semantic and exact-phrase channels concurrently.

    A channel that raises is logged and contributes nothing; the query goes
    on with whatever the other channels found.
    """

    def __init__(self, provider: EmbeddingProvider, config: RetrievalConfig | None = None, tracer=None):
        self.provider = provider
        self.config = config or RetrievalConfig()
        self.tracer = tracer or get_tracer(__name__)

    def retrieve(self, snapshot: IndexSnapshot, query: str) -> ChannelResults:
        limit = self.config.channel_limit
        channels = {
            "lexical": lambda: lexical_search(snapshot, query, limit=limit),
            "semantic": lambda: semantic_search(snapshot, self.provider, query, limit=limit),
            "exact": lambda: exact_bonus_map(snapshot.chunks, query, bonus=self.config.exact_bonus),
        }
        results = ChannelResults()

        with self.tracer.start_as_current_span("retrieve") as span:
            span.set_attribute(ATTR_INPUT_VALUE, query)
            with ThreadPoolExecutor(max_workers=len(channels), thread_name_prefix="retrieval") as executor:
                # each worker runs in a copy of the caller's context so channel
                # spans nest under "retrieve"
                futures = {
                    name: executor.submit(contextvars.copy_context().run, traced_channel(name, channel, self.tracer))
                    for name, channel in channels.items()
                }
                for name in CHANNELS:
                    try:
                        setattr(results, name, futures[name].result())
                    except Exception as exc:  # noqa: BLE001
                        logger.warning("Retrieval channel %s failed, continuing without it: %s", name, exc)
                        results.degraded.append(name)
            span.set_attribute(ATTR_CHANNEL_DEGRADED, list(results.degraded))

        logger.info(
            "Channels returned lexical=%d semantic=%d exact=%d",
            len(results.lexical),
            len(results.semantic),
            len(results.exact),
        )
        return results
