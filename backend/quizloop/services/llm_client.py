import asyncio
import hashlib
import logging
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from quizloop.core.config import settings
from quizloop.core.errors import UpstreamError
from quizloop.services.prompting import QUESTION_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------

class LLMClient(ABC):
    """Provider-agnostic interface for the question-generating oracle."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
    ) -> str:
        """Generate a response for *prompt*.

        Args:
            prompt:        The instruction text built by ``prompting``.
            system_prompt: Optional system-level instruction. If None the
                           concrete implementation uses its own default.

        Returns:
            The model's response as a plain string.
        """

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Human-readable identifier of the underlying model."""


# ---------------------------------------------------------------------------
# DummyLLMClient: deterministic, no network, safe for tests and CI
# ---------------------------------------------------------------------------

_TOPIC_LINE_RE = re.compile(r"^TOPIC:\s*(.+)$", re.MULTILINE)


class DummyLLMClient(LLMClient):
    """Template-shaped oracle stub for unit tests and offline development.

    Replies are derived from the SHA-256 of the prompt, so identical prompts
    always produce identical questions and different prompts (e.g. a longer
    avoid-list) produce different ones.  The reply always follows the
    ``Pregunta / A)-D) / Respuesta correcta`` template.
    """

    _MODEL = "dummy-template-v1"

    @property
    def model_name(self) -> str:
        return self._MODEL

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
    ) -> str:
        digest = hashlib.sha256(prompt.encode()).hexdigest()
        match = _TOPIC_LINE_RE.search(prompt)
        topic = match.group(1).strip() if match else "the topic"
        tag = digest[:6]
        answer = "ABCD"[int(digest[6], 16) % 4]

        response = (
            f"Pregunta: Which statement about {topic} is correct (ref {tag})?\n\n"
            f"A) First statement about {topic} {tag}\n"
            f"B) Second statement about {topic} {tag}\n"
            f"C) Third statement about {topic} {tag}\n"
            f"D) Fourth statement about {topic} {tag}\n\n"
            f"Respuesta correcta: {answer}"
        )
        logger.debug("DummyLLMClient.generate → %r", response[:120])
        return response


# ---------------------------------------------------------------------------
# Hosted providers (SDKs imported lazily, installed as extras)
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class OracleSettings:
    """Model parameters shared by the hosted providers, read from ``LLM_*`` env vars."""

    model: str
    max_tokens: int = 600
    temperature: float = 0.7
    base_url: str | None = None

    @classmethod
    def from_env(cls, default_model: str) -> "OracleSettings":
        return cls(
            model=os.environ.get("LLM_MODEL") or default_model,
            max_tokens=int(os.environ.get("LLM_MAX_TOKENS", "600")),
            temperature=float(os.environ.get("LLM_TEMPERATURE", "0.7")),
            base_url=os.environ.get("LLM_BASE_URL") or None,
        )


class HostedLLMClient(LLMClient):
    """Common plumbing: settings, SDK construction and the default system prompt.

    Subclasses name their extra and default model, build the SDK client and
    make the single completion call.  Passing *sdk_client* skips the SDK import.
    """

    EXTRA: str
    DEFAULT_MODEL: str

    def __init__(
        self,
        sdk_client: Any | None = None,
        oracle: OracleSettings | None = None,
    ) -> None:
        self.oracle = oracle or OracleSettings.from_env(self.DEFAULT_MODEL)
        if sdk_client is None:
            try:
                sdk_client = self._build_sdk_client()
            except ImportError as exc:
                raise ImportError(
                    f"{type(self).__name__} needs the {self.EXTRA} package: "
                    f"pip install 'quizloop[{self.EXTRA}]'"
                ) from exc
        self._sdk = sdk_client

    @property
    def model_name(self) -> str:
        return self.oracle.model

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
    ) -> str:
        text = await self._complete(system_prompt or QUESTION_SYSTEM_PROMPT, prompt)
        logger.debug(
            "%s.generate model=%s reply_chars=%d",
            type(self).__name__, self.oracle.model, len(text),
        )
        return text

    @abstractmethod
    def _build_sdk_client(self) -> Any: ...

    @abstractmethod
    async def _complete(self, system: str, prompt: str) -> str: ...


class OpenAILLMClient(HostedLLMClient):
    """Chat completions via OpenAI or any compatible endpoint (``LLM_BASE_URL``)."""

    EXTRA = "openai"
    DEFAULT_MODEL = "gpt-4o-mini"

    def _build_sdk_client(self) -> Any:
        from openai import AsyncOpenAI

        return AsyncOpenAI(
            api_key=os.environ.get("OPENAI_API_KEY", ""),
            base_url=self.oracle.base_url,
        )

    async def _complete(self, system: str, prompt: str) -> str:
        response = await self._sdk.chat.completions.create(
            model=self.oracle.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user",   "content": prompt},
            ],
            max_tokens=self.oracle.max_tokens,
            temperature=self.oracle.temperature,
        )
        return response.choices[0].message.content or ""


class AnthropicLLMClient(HostedLLMClient):
    EXTRA = "anthropic"
    DEFAULT_MODEL = "claude-haiku-4-5"

    def _build_sdk_client(self) -> Any:
        import anthropic

        return anthropic.AsyncAnthropic(api_key=os.environ.get("ANTHROPIC_API_KEY", ""))

    async def _complete(self, system: str, prompt: str) -> str:
        response = await self._sdk.messages.create(
            model=self.oracle.model,
            max_tokens=self.oracle.max_tokens,
            temperature=self.oracle.temperature,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        # Text blocks only; an empty content list is an empty reply.
        return "".join(
            getattr(block, "text", "") for block in (response.content or [])
        )


# ---------------------------------------------------------------------------
# Retry budget
# ---------------------------------------------------------------------------

async def generate_with_retries(
    client: LLMClient,
    prompt: str,
    *,
    system_prompt: str | None = None,
    max_retries: int | None = None,
    backoff_seconds: float | None = None,
) -> str:
    """Call *client* with a bounded retry budget.

    Empty replies count as failures.  Raises ``UpstreamError`` once
    ``max_retries + 1`` attempts have failed.
    """
    retries = settings.llm_max_retries if max_retries is None else max_retries
    backoff = (
        settings.llm_retry_backoff_seconds if backoff_seconds is None else backoff_seconds
    )
    last_exc: Exception | None = None

    for attempt in range(1, retries + 2):
        try:
            text = await client.generate(prompt, system_prompt=system_prompt)
            if text and text.strip():
                return text
            logger.warning(
                "Oracle %s returned an empty reply (attempt %d/%d)",
                client.model_name, attempt, retries + 1,
            )
        except Exception as exc:
            last_exc = exc
            logger.warning(
                "Oracle %s call failed (attempt %d/%d): %s",
                client.model_name, attempt, retries + 1, exc,
            )
        if attempt <= retries and backoff > 0:
            await asyncio.sleep(backoff * attempt)

    raise UpstreamError(
        f"Oracle {client.model_name} failed after {retries + 1} attempts"
    ) from last_exc


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def get_llm_client() -> LLMClient:
    """Pick the oracle from ``LLM_PROVIDER``, else from whichever API key is set.

    An OpenAI key wins when both keys are present.  With no provider and no
    key (or an unknown provider) the deterministic DummyLLMClient is returned.
    """
    provider = os.environ.get("LLM_PROVIDER", "").strip().lower()
    has_openai = bool(os.environ.get("OPENAI_API_KEY"))
    has_anthropic = bool(os.environ.get("ANTHROPIC_API_KEY"))

    client: LLMClient
    if provider == "dummy":
        client = DummyLLMClient()
    elif provider == "anthropic" or (not provider and has_anthropic and not has_openai):
        client = AnthropicLLMClient()
    elif provider == "openai" or (not provider and has_openai):
        client = OpenAILLMClient()
    else:
        logger.warning("No LLM_PROVIDER or API key configured, using DummyLLMClient")
        return DummyLLMClient()

    logger.info("Using %s (model=%s)", type(client).__name__, client.model_name)
    return client
