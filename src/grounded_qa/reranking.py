from __future__ import annotations

import logging
import math
import re

from .schema import CandidatePool, EvidenceVerdict, RerankResult, ScoredCandidate
from .settings import RetrievalConfig

logger = logging.getLogger(__name__)

STOPWORDS = frozenset(
    """
    the and but for with from what when where which who whom whose how why does are was were will would could
    should may might can must have has had been being did done get got give gave make made take took come came
    went see saw know knew think thought say said tell told want wanted need needed use used work worked call
    called try tried ask asked turn turned move moved play played run ran walk walked live lived look looked help
    helped show showed hear heard feel felt seem seemed leave left put bring brought begin began keep kept let
    start started write wrote provide provided find found become became this that these those there their them
    they then than into onto about also just only some such very your yours ours mine
    """.split()
)

_BACKTICK = re.compile(r"`([^`]+)`")
_DOUBLE_QUOTED = re.compile(r'"([^"]+)"')
_DOTTED = re.compile(r"\b[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)+(?:\(\))?")
_CAMEL = re.compile(r"\b(?:[a-z]+|[A-Z][a-z0-9]+)[A-Z][A-Za-z0-9]*\b")
_SNAKE = re.compile(r"\b_*[A-Za-z][A-Za-z0-9]*(?:_[A-Za-z0-9]+)+\b")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_EDGE_PUNCTUATION = "`\"'.,;:!?()[]{}<>"
_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def _identifiers(query: str) -> list[str]:
    found: list[tuple[int, str]] = []
    for pattern in (_DOTTED, _CAMEL, _SNAKE):
        found.extend((match.start(), match.group(0)) for match in pattern.finditer(query))
    return [term for _, term in sorted(found, key=lambda item: item[0])]


def extract_key_terms(query: str) -> list[str]:
    """Terms the top evidence must contain for the query to be answerable.

    Backtick spans, double-quoted spans and code-like identifiers come first,
    then content words (alphabetic, longer than three letters, not stop
    words). Duplicates are dropped case-insensitively, keeping the first.
    """
    terms: list[str] = []
    terms.extend(_BACKTICK.findall(query))
    terms.extend(_DOUBLE_QUOTED.findall(query))
    terms.extend(_identifiers(query))
    for raw in query.split():
        word = raw.strip(_EDGE_PUNCTUATION).lower()
        if len(word) > 3 and word.isalpha() and word not in STOPWORDS:
            terms.append(word)

    return _dedupe_terms(terms)


def _dedupe_terms(terms: list[str]) -> list[str]:
    unique: dict[str, str] = {}
    for term in terms:
        term = term.strip()
        if term and term.lower() not in unique:
            unique[term.lower()] = term
    return list(unique.values())


def extract_literal_terms(query: str) -> list[str]:
    """Backtick spans and code-like identifiers only, in key-term order."""
    return _dedupe_terms(_BACKTICK.findall(query) + _identifiers(query))


def gate_terms(query: str) -> tuple[list[str], bool]:
    """Terms the evidence is checked against, and whether the query is code-like.

    Code-like queries are held to their literal terms; a matching plain word
    is not enough.
    """
    literals = extract_literal_terms(query)
    if literals:
        return literals, True
    return extract_key_terms(query), False


def is_spec_query(query: str) -> bool:
    """True for queries naming code: a backtick span or an identifier."""
    return bool(_BACKTICK.search(query)) or bool(_identifiers(query))


def literal_variants(term: str) -> tuple[str, str, list[str]]:
    """Split ``term`` into its exact, punctuation-free and spaced-out forms."""
    cleaned = term.replace("`", "").replace('"', "").strip()
    lowered = cleaned.lower()
    spaced: list[str] = []
    de_camel = _CAMEL_BOUNDARY.sub(" ", cleaned).lower()
    if de_camel != lowered:
        spaced.append(de_camel)
    if "_" in lowered:
        spaced.append(lowered.replace("_", " ").strip())
    return lowered, _strip_punctuation(lowered), spaced


def _strip_punctuation(text: str) -> str:
    return _WHITESPACE.sub(" ", _PUNCTUATION.sub("", text)).strip()


def _starts_word_in(needle: str, haystack: str) -> bool:
    return re.search(r"(?<!\w)" + re.escape(needle), haystack) is not None


def term_in_text(text: str, term: str) -> bool:
    exact, unpunctuated, spaced = literal_variants(term)
    if not exact:
        return False
    lowered = text.lower()
    if _starts_word_in(exact, lowered):
        return True
    if unpunctuated and _starts_word_in(unpunctuated, _strip_punctuation(lowered)):
        return True
    return any(variant and _starts_word_in(variant, lowered) for variant in spaced)


def contains_literal(text: str, terms: list[str]) -> bool:
    """Whether ``text`` contains any term, allowing punctuation and case drift.

    A term matches case-insensitively wherever it starts a word, so
    ``refund`` matches ``refunds`` but ``exist`` never matches inside
    ``coexist``. Punctuation-stripped (``os.path.join`` -> ``ospathjoin``),
    de-camelCased (``readFile`` -> ``read file``) and de-snake_cased
    (``max_retries`` -> ``max retries``) forms also count.
    """
    return any(term_in_text(text, term) for term in terms)


def matching_terms(candidates: list[ScoredCandidate], terms: list[str]) -> list[str]:
    return [term for term in terms if any(term_in_text(candidate.content, term) for candidate in candidates)]


def deduplicate(candidates: CandidatePool) -> CandidatePool:
    """Drop repeats of (normalized content, type, section); first occurrence wins."""
    seen: set[tuple[str, str, str]] = set()
    unique: CandidatePool = []
    for candidate in candidates:
        key = (_WHITESPACE.sub(" ", candidate.content.lower()).strip(), candidate.type, candidate.section)
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique


def apply_diversity(
    candidates: CandidatePool,
    literal_ids: set[str],
    config: RetrievalConfig | None = None,
) -> CandidatePool:
    """Guarantee literal hits a place and keep window chunks from crowding the pool.

    The first ``min_literal_hits`` literal hits lead; the remaining candidates
    follow in their existing order. Window chunks without a literal hit are
    capped at ``max_window_share`` of the input.
    """
    config = config or RetrievalConfig()
    max_windows = math.floor(len(candidates) * config.max_window_share)

    leading = [candidate for candidate in candidates if candidate.chunk_id in literal_ids][: config.min_literal_hits]
    placed = {candidate.chunk_id for candidate in leading}
    result = list(leading)

    windows = 0
    for candidate in candidates:
        if candidate.chunk_id in placed:
            continue
        if candidate.type == "window":
            if windows >= max_windows and candidate.chunk_id not in literal_ids:
                continue
            windows += 1
        result.append(candidate)
        placed.add(candidate.chunk_id)
    return result[: config.pool_size]


def check_evidence(evidence: list[ScoredCandidate], query: str) -> EvidenceVerdict:
    """Decide whether ``evidence`` literally supports an answer to ``query``.

    Returns:
        A verdict whose ``reason`` is ``no_terms``, ``key_terms_found``,
        ``missing_key_terms``, ``literal_match`` or ``missing_literal``.
        Empty evidence never passes.
    """
    key_terms, spec_style = gate_terms(query)
    failure = "missing_literal" if spec_style else "missing_key_terms"

    if not evidence:
        return EvidenceVerdict(False, failure, key_terms=tuple(key_terms), spec_style=spec_style)
    if not key_terms:
        return EvidenceVerdict(True, "no_terms", spec_style=spec_style)

    matched = matching_terms(evidence, key_terms)
    if matched:
        reason = "literal_match" if spec_style else "key_terms_found"
        return EvidenceVerdict(True, reason, tuple(matched), tuple(key_terms), spec_style)
    return EvidenceVerdict(False, failure, (), tuple(key_terms), spec_style)


def confidence_score(evidence: list[ScoredCandidate], scale: float = 2.0) -> float:
    if not evidence:
        return 0.0
    average = sum(candidate.score for candidate in evidence) / len(evidence)
    return min(average * scale, 1.0)


def rerank(query: str, pool: CandidatePool, config: RetrievalConfig | None = None) -> RerankResult:
    """Dedup, diversify and gate the fused pool.

    Args:
        query: User question.
        pool: Fused candidates in score order.
        config: Diversity, top-K and confidence settings.

    Returns:
        The top evidence chunks with the gate verdict and its confidence.
    """
    config = config or RetrievalConfig()
    key_terms, _ = gate_terms(query)

    unique = deduplicate(pool)
    literal_ids = {candidate.chunk_id for candidate in unique if contains_literal(candidate.content, key_terms)}
    diverse = apply_diversity(unique, literal_ids, config)
    evidence = diverse[: config.evidence_top_k]
    verdict = check_evidence(evidence, query)

    logger.info(
        "Rerank: %d -> %d unique, %d literal hits, %d candidates; gate %s (%s)",
        len(pool),
        len(unique),
        len(literal_ids),
        len(diverse),
        "passed" if verdict.passed else "failed",
        verdict.reason,
    )
    return RerankResult(
        evidence=evidence,
        verdict=verdict,
        literal_hits=len(literal_ids),
        total_candidates=len(diverse),
        confidence=confidence_score(evidence, config.confidence_scale),
    )
