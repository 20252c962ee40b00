"""LangChain-backed reasoning client used for AI package enhancement."""

from __future__ import annotations

import json
import re
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage
from langchain_core.prompts import ChatPromptTemplate

from shared.config.settings import LLMSettings
from shared.llm import LLMProvider
from shared.observability.logger import get_logger

from .config import AISettings
from .errors import DependencyError
from .models import ReasoningRequest, ReasoningResponse
from .prompts import HUMAN_PROMPT, SYSTEM_PROMPT

logger = get_logger(__name__)

DEPENDENCY_NAME = "ai_reasoning"

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.IGNORECASE | re.DOTALL)
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def _strip_code_fence(text: str) -> str:
    match = _CODE_FENCE_RE.match(text.strip())
    if match:
        return match.group(1).strip()
    return text.strip()


def _message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    # Anthropic returns a list of content blocks.
    parts: list[str] = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text", "")))
    return "".join(parts)


def parse_reasoning_payload(text: str) -> dict[str, Any]:
    """Extract the JSON object from a model reply.

    Accepts bare JSON, fenced JSON, or JSON surrounded by prose.
    """

    stripped = _strip_code_fence(text)
    candidates = [stripped]
    match = _JSON_OBJECT_RE.search(stripped)
    if match and match.group(0) != stripped:
        candidates.append(match.group(0))
    for candidate in candidates:
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict):
            return payload
    raise DependencyError(DEPENDENCY_NAME, "Reasoning model returned no JSON object.")


class LLMReasoningClient:
    """Ask a chat model to confirm or improve the algorithmic package choice."""

    def __init__(self, model: BaseChatModel, *, model_name: str | None = None) -> None:
        self._model = model
        self._model_name = model_name
        self._prompt = ChatPromptTemplate.from_messages(
            [("system", SYSTEM_PROMPT), ("human", HUMAN_PROMPT)]
        )

    @classmethod
    def from_settings(
        cls, ai_settings: AISettings, llm_settings: LLMSettings
    ) -> "LLMReasoningClient":
        """Build a client for the configured provider.

        Raises :class:`~shared.http.errors.ProviderUnavailableError` when the
        provider has no credentials.
        """

        provider = LLMProvider.resolve(ai_settings.provider)
        model = provider.create_client(llm_settings, temperature=ai_settings.temperature)
        return cls(model, model_name=provider.value)

    @property
    def model_name(self) -> str | None:
        return self._model_name

    async def recommend(self, request: ReasoningRequest) -> ReasoningResponse:
        request_json = json.dumps(request.model_dump(mode="json", by_alias=True))
        chain = self._prompt | self._model
        try:
            message = await chain.ainvoke({"request_json": request_json})
        except Exception as exc:
            raise DependencyError(
                DEPENDENCY_NAME, f"Reasoning model call failed: {type(exc).__name__}"
            ) from exc

        payload = parse_reasoning_payload(_message_text(message))
        usage = getattr(message, "usage_metadata", None) or {}
        prompt_tokens = int(usage.get("input_tokens", 0) or 0)
        completion_tokens = int(usage.get("output_tokens", 0) or 0)
        logger.debug(
            "reasoning_model_replied",
            model=self._model_name,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )
        return ReasoningResponse(
            payload=payload,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            model=self._model_name,
        )


__all__ = ["DEPENDENCY_NAME", "LLMReasoningClient", "parse_reasoning_payload"]
