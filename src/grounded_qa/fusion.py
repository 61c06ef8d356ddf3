"""Reciprocal Rank Fusion over heterogeneous retrieval signals.

Ranked signals contribute by rank only, so BM25 scores and cosine
similarities never have to share a scale. The exact-phrase signal is not a
ranking; its bonus is added after fusion to entries that some ranked signal
already produced.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Union

from .schema import CandidatePool, ChannelHit, Chunk, ScoredCandidate


@dataclass(frozen=True, slots=True)
class LexicalSignal:
    hits: list[ChannelHit] = field(default_factory=list)
    name: str = "lexical"


@dataclass(frozen=True, slots=True)
class SemanticSignal:
    hits: list[ChannelHit] = field(default_factory=list)
    name: str = "semantic"


@dataclass(frozen=True, slots=True)
class ExactBonusSignal:
    bonuses: dict[str, float] = field(default_factory=dict)
    name: str = "exact"


Signal = Union[LexicalSignal, SemanticSignal, ExactBonusSignal]


def rrf_contribution(rank: int, k: int = 60) -> float:
    """Score for a 0-based ``rank``."""
    return 1.0 / (k + rank + 1)


def fuse(
    signals: list[Signal],
    chunks_by_id: Mapping[str, Chunk],
    pool_size: int = 100,
    rrf_k: int = 60,
    bonus_scale: float = 0.25,
) -> CandidatePool:
    """Combine ranked signals into one candidate pool.

    Args:
        signals: Channel outputs in encounter order; ties keep this order.
        chunks_by_id: Snapshot lookup used to hydrate candidates.
        pool_size: Maximum pool length.
        rrf_k: RRF smoothing constant.
        bonus_scale: Multiplier applied to exact-phrase bonuses.

    Returns:
        Candidates sorted by non-increasing fused score, unique by chunk id.
    """
    fused: dict[str, ScoredCandidate] = {}
    bonuses: list[ExactBonusSignal] = []

    for signal in signals:
        if isinstance(signal, ExactBonusSignal):
            bonuses.append(signal)
            continue
        for rank, hit in enumerate(signal.hits):
            chunk = chunks_by_id.get(hit.chunk_id)
            if chunk is None:
                continue
            candidate = fused.get(hit.chunk_id)
            if candidate is None:
                candidate = ScoredCandidate(
                    chunk_id=chunk.chunk_id,
                    content=chunk.content,
                    type=chunk.type,
                    section=chunk.section,
                    score=0.0,
                )
                fused[hit.chunk_id] = candidate
            candidate.score += rrf_contribution(rank, rrf_k)
            candidate.sources[signal.name] = {"rank": rank, "score": hit.score}

    for signal in bonuses:
        for chunk_id, bonus in signal.bonuses.items():
            candidate = fused.get(chunk_id)
            if candidate is None:
                continue
            candidate.score += bonus * bonus_scale
            candidate.sources[signal.name] = {"bonus": bonus}

    # sorted() is stable, so equal scores keep first-encounter order
    ranked = sorted(fused.values(), key=lambda candidate: candidate.score, reverse=True)
    return ranked[:pool_size]
