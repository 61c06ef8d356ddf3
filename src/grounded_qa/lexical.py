from __future__ import annotations

import re

import numpy as np
from rank_bm25 import BM25Okapi

from .errors import LexicalIndexFailure
from .schema import ChannelHit, Chunk

CONTENT_BOOST = 2.0
TITLE_BOOST = 1.0
PREFIX_WEIGHT = 0.375
FUZZY_WEIGHT = 0.45
FUZZY_RATIO = 0.2
MAX_EXPANSIONS = 8

_TOKEN = re.compile(r"\w+")


def tokenize(text: str) -> list[str]:
    """Lowercase Unicode word tokens; underscores stay inside identifiers."""
    return _TOKEN.findall(text.lower())


def edit_distance(left: str, right: str, limit: int) -> int:
    """Levenshtein distance, giving up early once it exceeds ``limit``."""
    if abs(len(left) - len(right)) > limit:
        return limit + 1
    previous = list(range(len(right) + 1))
    for i, left_char in enumerate(left, start=1):
        current = [i]
        for j, right_char in enumerate(right, start=1):
            cost = 0 if left_char == right_char else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        if min(current) > limit:
            return limit + 1
        previous = current
    return previous[-1]


class LexicalIndex:
    """Two-field BM25 index over chunk content and title.

    Query terms are expanded against the indexed vocabulary so that prefixes
    (``refund`` -> ``refunds``) and small typos still match, each expansion
    contributing at a reduced weight.
    """

    def __init__(self) -> None:
        self.chunk_ids: list[str] = []
        self._content: BM25Okapi | None = None
        self._title: BM25Okapi | None = None
        self._vocabulary: list[str] = []

    def __len__(self) -> int:
        return len(self.chunk_ids)

    def build(self, chunks: list[Chunk]) -> "LexicalIndex":
        """Index ``chunks``, replacing whatever was indexed before."""
        if not chunks:
            raise LexicalIndexFailure("cannot build a lexical index from zero chunks")
        content_tokens = [tokenize(chunk.content) for chunk in chunks]
        title_tokens = [tokenize(chunk.title) or ["_"] for chunk in chunks]
        if not any(content_tokens):
            raise LexicalIndexFailure("no indexable tokens in chunk content")
        try:
            self._content = BM25Okapi(content_tokens)
            self._title = BM25Okapi(title_tokens)
        except (ValueError, ZeroDivisionError) as exc:
            raise LexicalIndexFailure(f"BM25 build failed: {exc}") from exc
        self.chunk_ids = [chunk.chunk_id for chunk in chunks]
        vocabulary = {token for tokens in content_tokens + title_tokens for token in tokens}
        self._vocabulary = sorted(vocabulary)
        return self

    def expand_term(self, term: str) -> list[tuple[str, float]]:
        """Return ``(vocabulary_term, weight)`` pairs matched by one query term."""
        expansions: list[tuple[str, float]] = [(term, 1.0)]
        limit = round(FUZZY_RATIO * len(term))
        extra: list[tuple[str, float]] = []
        for candidate in self._vocabulary:
            if candidate == term:
                continue
            if candidate.startswith(term):
                extra.append((candidate, PREFIX_WEIGHT))
            elif limit and edit_distance(term, candidate, limit) <= limit:
                extra.append((candidate, FUZZY_WEIGHT))
        # closest expansions first: higher weight, then shorter, then alphabetical
        extra.sort(key=lambda pair: (-pair[1], len(pair[0]), pair[0]))
        return expansions + extra[:MAX_EXPANSIONS]

    def scores(self, query: str) -> np.ndarray:
        if self._content is None or self._title is None:
            raise LexicalIndexFailure("lexical index has not been built")
        total = np.zeros(len(self.chunk_ids), dtype=np.float64)
        for term in dict.fromkeys(tokenize(query)):
            for expanded, weight in self.expand_term(term):
                # BM25Okapi floors common-term idf at a fraction of the mean idf,
                # which is negative when every title shares the term
                content = np.maximum(self._content.get_scores([expanded]), 0.0)
                title = np.maximum(self._title.get_scores([expanded]), 0.0)
                total += weight * (CONTENT_BOOST * content + TITLE_BOOST * title)
        return total

    def search(self, query: str, limit: int = 200) -> list[ChannelHit]:
        """Rank chunks for ``query``; only positive scores are returned.

        Args:
            query: Free-text query.
            limit: Maximum number of hits.

        Returns:
            Hits sorted by descending score; ties keep chunk order.
        """
        scores = self.scores(query)
        order = np.argsort(-scores, kind="stable")
        hits: list[ChannelHit] = []
        for idx in order[:limit]:
            score = float(scores[idx])
            if score <= 0.0:
                break
            hits.append(ChannelHit(chunk_id=self.chunk_ids[idx], score=score))
        return hits
