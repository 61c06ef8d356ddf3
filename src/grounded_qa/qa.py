from __future__ import annotations

import re
from typing import Protocol

from openai import OpenAI

from .schema import ScoredCandidate

REFUSAL_MESSAGE = "I could not find this in the document."

_SPACE_BEFORE_PUNCTUATION = re.compile(r"\s+([.,;:!?])")
_WHITESPACE = re.compile(r"\s+")


class AnswerSynthesizer(Protocol):
    def __call__(self, question: str, evidence: list[ScoredCandidate]) -> str: ...


def build_context(chunks: list[str]) -> str:
    return "\n\n".join([f"[Chunk {idx + 1}] {chunk}" for idx, chunk in enumerate(chunks)])


def build_prompt(question: str, context_chunks: list[str]) -> str:
    context_block = build_context(context_chunks)
    return (
        "Answer the user's question using ONLY the information in the provided excerpts.\n"
        "Rules:\n"
        "1. Use only what the excerpts state explicitly; no outside knowledge or inference.\n"
        f'2. If the excerpts do not contain the answer, reply exactly: "{REFUSAL_MESSAGE}"\n'
        "3. Answer in your own words, directly and concisely.\n"
        "4. Do not open with phrases like \"According to the document\".\n"
        "5. Do not include chunk references in the answer.\n\n"
        f"Question: {question}\n\n"
        f"Excerpts:\n{context_block}\n\n"
        "Answer:"
    )


def clean_answer(text: str) -> str:
    """Collapse whitespace and drop spaces before punctuation."""
    text = _SPACE_BEFORE_PUNCTUATION.sub(r"\1", text.strip())
    return _WHITESPACE.sub(" ", text).strip()


def answer_with_context(question: str, context_chunks: list[str], model: str = "gpt-4.1-mini", client=None) -> str:
    prompt = build_prompt(question, context_chunks)
    client = client or OpenAI()
    response = client.responses.create(model=model, input=prompt, temperature=0)
    return clean_answer(response.output_text)


class OpenAIAnswerSynthesizer:
    """Grounded answer generation with the OpenAI Responses API."""

    def __init__(self, model: str = "gpt-4.1-mini", client=None):
        self.model = model
        self.client = client

    def __call__(self, question: str, evidence: list[ScoredCandidate]) -> str:
        return answer_with_context(
            question,
            [candidate.content for candidate in evidence],
            model=self.model,
            client=self.client,
        )
