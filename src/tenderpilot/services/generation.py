"""Completion backends, prompt assembly and reply sanitising for TenderPilot."""

from __future__ import annotations

import asyncio
import json
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol

from tenderpilot.errors import (
    EmptyResponse,
    MalformedResponse,
    MissingCredential,
    UpstreamError,
)
from tenderpilot.metrics.observability import PipelineMetrics
from tenderpilot.models import QAPair

LOGGER = logging.getLogger(__name__)

MAX_TENDER_CHARS = 400_000
TRUNCATION_MARKER = "...[TRUNCATED]"
BESPOKE_FALLBACK = "Requires bespoke input"

SYSTEM_INSTRUCTION = f"""You are a Bid Writing Engine. Your job is to extract questions from the Tender Text and answer them using the provided Context.

Rules:
1. Use POLICY_CONTEXT for factual compliance (e.g., certifications, security standards).
2. Use PAST_BID_CONTEXT to match tone/style and find similar past answers.
3. Output ONLY a raw JSON array. No markdown, no conversation, no 'thinking'.
4. Structure: [{{ "question": "...", "answer": "..." }}]
5. If a specific answer isn't found in the context, state '{BESPOKE_FALLBACK}' but try to infer from policies first.
6. You MUST cite which document you used for the answer in brackets at the end, e.g., [Source: GDPR_Policy.pdf].
7. LANGUAGE: You must use BRITISH ENGLISH spelling (e.g., 'optimise', 'colour', 'programme', 'organisation').
"""

PROMPT_TEMPLATE = """
POLICY_CONTEXT:
{policy_context}

PAST_BID_CONTEXT:
{past_bid_context}

TENDER_TEXT:
{tender_text}

Task: Extract every question and provide a compliant answer. Return strict JSON.
"""


@dataclass(frozen=True)
class CompletionConfig:
    """Configuration for tender completions."""

    model: str = "gemini-2.5-pro"
    temperature: float = 0.2
    max_tender_chars: int = MAX_TENDER_CHARS
    max_retries: int = 0
    retry_base_seconds: float = 1.0


class CompletionBackend(Protocol):
    """Protocol describing one request/response exchange with a generation service."""

    async def generate(self, *, system_instruction: str, prompt: str) -> str | None:
        """Return the raw reply text, or ``None`` when the service produced none."""


class GeminiBackend:
    """Backend calling Google Gemini through the ``google-genai`` async client."""

    def __init__(self, api_key: str | None, config: CompletionConfig | None = None) -> None:
        self._api_key = api_key
        self._config = config or CompletionConfig()
        self._client = None

    async def generate(self, *, system_instruction: str, prompt: str) -> str | None:
        if not self._api_key:
            raise MissingCredential(
                "API key is missing. Set TENDERPILOT_GEMINI_API_KEY in the environment or .env file."
            )
        from google import genai
        from google.genai import types

        if self._client is None:
            self._client = genai.Client(api_key=self._api_key)
        try:
            response = await self._client.aio.models.generate_content(
                model=self._config.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    system_instruction=system_instruction,
                    response_mime_type="application/json",
                    temperature=self._config.temperature,
                ),
            )
        except Exception as exc:
            raise UpstreamError(f"Generation request to {self._config.model} failed: {exc}") from exc
        return response.text


def truncate_tender_text(text: str, limit: int = MAX_TENDER_CHARS) -> str:
    """Cap ``text`` at ``limit`` characters, marking the cut when one is made."""

    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def build_prompt(*, tender_text: str, policy_context: str, past_bid_context: str) -> str:
    return PROMPT_TEMPLATE.format(
        policy_context=policy_context,
        past_bid_context=past_bid_context,
        tender_text=tender_text,
    )


def parse_qa_pairs(raw_text: str | None) -> list[QAPair]:
    """Recover the question/answer array from a generation reply.

    The slice from the first ``[`` to the last ``]`` is parsed; when either
    bracket is missing the whole reply is parsed instead. Anything that is not
    a list of ``{"question": str, "answer": str}`` objects raises
    ``MalformedResponse``; nothing partial is ever returned.
    """

    if raw_text is None or not raw_text.strip():
        raise EmptyResponse("Empty response from AI")

    first_bracket = raw_text.find("[")
    last_bracket = raw_text.rfind("]")
    if first_bracket == -1 or last_bracket == -1 or last_bracket < first_bracket:
        LOGGER.warning("JSON brackets not found, attempting raw parse")
        candidate = raw_text
    else:
        candidate = raw_text[first_bracket : last_bracket + 1]

    try:
        parsed: Any = json.loads(candidate)
    except json.JSONDecodeError as exc:
        LOGGER.error("JSON parse failed on reply of %d characters", len(raw_text))
        raise MalformedResponse("Failed to parse AI response as JSON.") from exc

    if not isinstance(parsed, list):
        raise MalformedResponse("AI did not return an array.")

    pairs: list[QAPair] = []
    for index, item in enumerate(parsed):
        if not isinstance(item, dict):
            raise MalformedResponse(f"AI response item {index} is not an object.")
        question = item.get("question")
        answer = item.get("answer")
        if not isinstance(question, str) or not isinstance(answer, str):
            raise MalformedResponse(f"AI response item {index} needs string 'question' and 'answer' fields.")
        pairs.append(QAPair(question=question, answer=answer))
    return pairs


class CompletionClient:
    """Turns tender text plus knowledge context into an ordered list of QA pairs."""

    def __init__(
        self,
        backend: CompletionBackend,
        config: CompletionConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._backend = backend
        self._config = config or CompletionConfig()
        self._sleep = sleep

    async def complete(self, tender_text: str, policy_context: str, past_bid_context: str) -> list[QAPair]:
        safe_tender_text = truncate_tender_text(tender_text, self._config.max_tender_chars)
        if len(tender_text) > self._config.max_tender_chars:
            LOGGER.warning(
                "Tender text truncated from %d to %d characters", len(tender_text), self._config.max_tender_chars
            )
        prompt = build_prompt(
            tender_text=safe_tender_text,
            policy_context=policy_context,
            past_bid_context=past_bid_context,
        )

        start = time.perf_counter()
        raw_text = await self._generate_with_retry(prompt)
        pairs = parse_qa_pairs(raw_text)
        duration = time.perf_counter() - start
        PipelineMetrics.observe_completion(duration, len(pairs))
        LOGGER.info("Completion returned %d QA pairs in %.2fs", len(pairs), duration)
        return pairs

    async def _generate_with_retry(self, prompt: str) -> str | None:
        attempt = 0
        while True:
            try:
                return await self._backend.generate(system_instruction=SYSTEM_INSTRUCTION, prompt=prompt)
            except UpstreamError as exc:
                if attempt >= self._config.max_retries:
                    raise
                delay = self._config.retry_base_seconds * (2**attempt) * random.uniform(0.8, 1.3)
                attempt += 1
                LOGGER.warning(
                    "Upstream error (attempt %d/%d), retrying in %.2fs: %s",
                    attempt,
                    self._config.max_retries + 1,
                    delay,
                    exc,
                )
                await self._sleep(delay)
