from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections import Counter
from typing import Callable

from .chunking import create_chunks
from .embeddings import EmbeddingProvider, OpenAIEmbeddingProvider, embed_in_batches
from .errors import ParseFailure
from .fusion import fuse
from .io_utils import IndexStore
from .lexical import LexicalIndex
from .parsing import parse_markdown
from .qa import REFUSAL_MESSAGE, AnswerSynthesizer, OpenAIAnswerSynthesizer
from .reranking import rerank
from .retrieval import RetrievalOrchestrator
from .schema import CandidatePool, Document, IngestResult, QueryResult
from .settings import RetrievalConfig, load_settings
from .tracing import (
    ATTR_CHUNK_COUNT,
    ATTR_DOCUMENT_NAME,
    ATTR_GATE_PASSED,
    ATTR_GATE_REASON,
    ATTR_INPUT_VALUE,
    ATTR_OUTPUT_VALUE,
    ATTR_POOL_SIZE,
    get_tracer,
)
from .workspace import IndexSnapshot, Workspace

logger = logging.getLogger(__name__)


def document_id(raw_text: str) -> str:
    return hashlib.sha256(raw_text.encode("utf-8")).hexdigest()[:16]


def build_snapshot(
    document: Document,
    provider: EmbeddingProvider,
    config: RetrievalConfig | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> IndexSnapshot:
    """Parse, chunk and index one document into a query-ready snapshot.

    Nothing is published here; a failure at any step leaves no trace.

    Raises:
        ParseFailure: The document yields no sections or no chunks.
        LexicalIndexFailure: BM25 indexing failed.
        EmbeddingProviderFailure: Any embedding batch failed.
    """
    config = config or RetrievalConfig()
    if not document.raw_text.strip():
        raise ParseFailure(f"{document.filename} is empty")

    sections = parse_markdown(
        document.raw_text,
        min_sentence_chars=config.min_sentence_chars,
        long_sentence_chars=config.long_sentence_chars,
    )
    if not sections:
        raise ParseFailure(f"{document.filename} has no parseable content")
    chunks = create_chunks(sections, config)
    if not chunks:
        raise ParseFailure(f"{document.filename} produced no chunks")

    lexical_index = LexicalIndex().build(chunks)
    embeddings = embed_in_batches(
        provider,
        [chunk.content for chunk in chunks],
        batch_size=config.embedding_batch_size,
        delay_seconds=config.embedding_batch_delay,
        sleep=sleep,
    )
    return IndexSnapshot(
        doc_id=document.doc_id,
        filename=document.filename,
        chunks=tuple(chunks),
        embeddings=embeddings,
        lexical_index=lexical_index,
    )


def candidate_pool(
    snapshot: IndexSnapshot | None,
    question: str,
    orchestrator: RetrievalOrchestrator,
    config: RetrievalConfig | None = None,
) -> CandidatePool:
    """Retrieve from all channels and fuse; no snapshot means an empty pool."""
    config = config or RetrievalConfig()
    if snapshot is None:
        logger.info("No document indexed; returning an empty candidate pool")
        return []
    results = orchestrator.retrieve(snapshot, question)
    return fuse(
        results.signals(),
        snapshot.chunks_by_id,
        pool_size=config.pool_size,
        rrf_k=config.rrf_k,
        bonus_scale=config.exact_bonus_scale,
    )


def answer_query(
    question: str,
    pool: CandidatePool,
    synthesizer: AnswerSynthesizer,
    config: RetrievalConfig | None = None,
) -> QueryResult:
    """Gate the pool and either synthesize an answer or refuse.

    The synthesizer is only called when the evidence gate passes.
    """
    config = config or RetrievalConfig()
    reranked = rerank(question, pool, config)
    candidates = [
        {"id": candidate.chunk_id, "content": candidate.content, "score": candidate.score} for candidate in pool
    ]

    if not reranked.verdict.passed:
        logger.info("Refusing %r: %s", question, reranked.verdict.reason)
        return QueryResult(
            question=question,
            answer=REFUSAL_MESSAGE,
            refused=True,
            confidence=0.0,
            verdict=reranked.verdict,
            candidates=candidates,
        )

    answer = synthesizer(question, reranked.evidence)
    if answer.strip() == REFUSAL_MESSAGE:
        logger.info("Synthesizer declined %r despite passing evidence", question)
        return QueryResult(
            question=question,
            answer=REFUSAL_MESSAGE,
            refused=True,
            confidence=0.0,
            verdict=reranked.verdict,
            candidates=candidates,
        )

    citations = [
        {"id": candidate.chunk_id, "section": candidate.section, "chunk_index": idx + 1}
        for idx, candidate in enumerate(reranked.evidence)
    ]
    return QueryResult(
        question=question,
        answer=answer,
        refused=False,
        confidence=reranked.confidence,
        verdict=reranked.verdict,
        candidates=candidates,
        citations=citations,
    )


class DocumentQAService:
    """Single-document question answering: upload, then ask.

    Uploads are serialized; each one builds a new snapshot and swaps it into
    the workspace only after every artifact exists. Queries read whichever
    snapshot is current when they start.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        synthesizer: AnswerSynthesizer,
        config: RetrievalConfig | None = None,
        store: IndexStore | None = None,
        workspace: Workspace | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.synthesizer = synthesizer
        self.config = config or RetrievalConfig()
        self.store = store
        self.workspace = workspace or Workspace()
        self.sleep = sleep
        self.tracer = get_tracer(__name__)
        self.orchestrator = RetrievalOrchestrator(provider, self.config, tracer=self.tracer)
        self._ingest_lock = threading.Lock()

    @classmethod
    def from_settings(cls) -> "DocumentQAService":
        openai_settings, paths, config = load_settings()
        return cls(
            provider=OpenAIEmbeddingProvider(model=openai_settings.embedding_model),
            synthesizer=OpenAIAnswerSynthesizer(model=openai_settings.chat_model),
            config=config,
            store=IndexStore(paths.index_dir),
        )

    def load(self) -> bool:
        """Warm start from persisted artifacts; False means a cold start."""
        if self.store is None:
            return False
        snapshot = self.store.load()
        if snapshot is None:
            return False
        self.workspace.publish(snapshot)
        return True

    def ingest(self, raw_text: str, filename: str) -> IngestResult:
        """Index ``raw_text`` and make it the current document.

        Raises:
            DocumentProcessingError: Parsing, indexing, embedding or
                persistence failed; the previous document stays current.
        """
        document = Document(doc_id=document_id(raw_text), filename=filename, raw_text=raw_text)
        with self._ingest_lock, self.tracer.start_as_current_span("ingest") as span:
            span.set_attribute(ATTR_DOCUMENT_NAME, filename)
            started = time.perf_counter()
            snapshot = build_snapshot(document, self.provider, self.config, sleep=self.sleep)
            if self.store is not None:
                self.store.save(snapshot)
            self.workspace.publish(snapshot)
            span.set_attribute(ATTR_CHUNK_COUNT, len(snapshot.chunks))

        counts = Counter(chunk.type for chunk in snapshot.chunks)
        logger.info(
            "Indexed %s (%s): %d chunks in %.2fs",
            filename,
            document.doc_id,
            len(snapshot.chunks),
            time.perf_counter() - started,
        )
        return IngestResult(
            doc_id=document.doc_id,
            filename=filename,
            chunk_count=len(snapshot.chunks),
            chunk_counts_by_type=dict(counts),
        )

    def query(self, question: str) -> QueryResult:
        with self.tracer.start_as_current_span("query") as span:
            span.set_attribute(ATTR_INPUT_VALUE, question)
            pool = candidate_pool(self.workspace.current(), question, self.orchestrator, self.config)
            span.set_attribute(ATTR_POOL_SIZE, len(pool))
            result = answer_query(question, pool, self.synthesizer, self.config)
            span.set_attribute(ATTR_GATE_PASSED, result.verdict.passed)
            span.set_attribute(ATTR_GATE_REASON, result.verdict.reason)
            span.set_attribute(ATTR_OUTPUT_VALUE, result.answer)
        return result
