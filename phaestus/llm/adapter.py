"""LLM adapter used by every generating and reviewing node.

Wraps a LangChain chat model behind a small ``chat(request) -> response``
contract with a per-call timeout and bounded retry on transient transport
errors. The provider is chosen by the model string
(``"anthropic:claude-sonnet-4-5-20250929"``, ``"openai:gpt-4o"``, ...).

Nodes obtain the adapter from the LangGraph run config with
``get_llm(config)`` so a run (or a test) can inject its own.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from langchain_core.messages import HumanMessage, SystemMessage
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from phaestus.errors import LLMError, LLMTimeoutError
from phaestus.llm.parsing import extract_code_block, extract_code_blocks, parse_json

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = (429, 500, 502, 503, 529)


@dataclass
class ChatRequest:
    system_prompt: str
    user_prompt: str
    temperature: float = 0.7
    max_tokens: int | None = None
    project_id: str = ""


@dataclass
class ChatResponse:
    content: str
    model: str = ""


def _content_text(content: Any) -> str:
    """Flatten LangChain message content (str or list of content parts)."""
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


def _is_transient(exc: BaseException) -> bool:
    """Return True for timeouts, connection errors and retryable HTTP statuses."""
    if isinstance(exc, LLMTimeoutError):
        return True
    if isinstance(exc, (httpx.TimeoutException, httpx.ConnectError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in TRANSIENT_STATUS_CODES
    # Provider SDK errors (anthropic, openai) expose status_code directly
    status = getattr(exc, "status_code", None)
    return status in TRANSIENT_STATUS_CODES


class LLMAdapter:
    """Provider-agnostic chat adapter.

    Args:
        model: LangChain model string passed to ``init_chat_model``.
        timeout: Per-call timeout in seconds.
        max_retries: Retries after the first attempt on transient errors.
    """

    def __init__(
        self,
        model: str,
        timeout: float = 120.0,
        max_retries: int = 3,
    ):
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None) -> "LLMAdapter":
        from phaestus.config import get_config

        cfg = config if config is not None else get_config()
        return cls(
            model=cfg["model"],
            timeout=float(cfg.get("llm_timeout_seconds", 120)),
            max_retries=int(cfg.get("llm_max_retries", 3)),
        )

    def _build_model(self, request: ChatRequest) -> Any:
        from langchain.chat_models import init_chat_model

        kwargs: dict[str, Any] = {"temperature": request.temperature}
        if request.max_tokens:
            kwargs["max_tokens"] = request.max_tokens
        return init_chat_model(self.model, **kwargs)

    async def _invoke_once(self, llm: Any, messages: list) -> Any:
        try:
            return await asyncio.wait_for(llm.ainvoke(messages), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise LLMTimeoutError(f"LLM call timed out after {self.timeout:.0f}s") from e

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Send one system + user prompt pair and return the text reply.

        Raises:
            LLMError: On any failure left after retries (timeouts included).
        """
        llm = self._build_model(request)
        messages = [
            SystemMessage(content=request.system_prompt),
            HumanMessage(content=request.user_prompt),
        ]

        def _log_retry(retry_state: Any) -> None:
            logger.warning(
                f"Transient LLM error: {retry_state.outcome.exception()!r}. "
                f"Retrying in {retry_state.next_action.sleep:.0f}s "
                f"(attempt {retry_state.attempt_number}/{self.max_retries})"
            )

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries + 1),
                wait=wait_exponential(multiplier=1, min=2, max=16),
                retry=retry_if_exception(_is_transient),
                reraise=True,
                before_sleep=_log_retry,
            ):
                with attempt:
                    response = await self._invoke_once(llm, messages)
        except LLMError:
            raise
        except Exception as e:
            raise LLMError(f"{type(e).__name__}: {e}", retryable=_is_transient(e)) from e

        content = _content_text(response.content)
        logger.info(
            f"LLM [{request.project_id or '-'}] {self.model}: "
            f"{len(request.user_prompt)} chars in, {len(content)} chars out"
        )
        return ChatResponse(content=content, model=self.model)

    # Parsing helpers are exposed on the adapter so nodes depend on one object.
    parse_json = staticmethod(parse_json)
    extract_code_block = staticmethod(extract_code_block)
    extract_code_blocks = staticmethod(extract_code_blocks)


def get_llm(config: dict[str, Any] | None) -> LLMAdapter:
    """Return the adapter injected in the run config, or a default one."""
    configurable = (config or {}).get("configurable", {})
    llm = configurable.get("llm")
    if llm is not None:
        return llm
    return LLMAdapter.from_config()
