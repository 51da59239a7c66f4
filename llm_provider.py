"""LLM Provider Interface and Implementations - Strategy pattern for the upstream completion API."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp

from config import Settings, TEMPERATURE, TOP_P
from exceptions import UpstreamError
from models import ChatRequest, UpstreamReply

logger = logging.getLogger(__name__)

EMPTY_REPLY = "No response"


class LLMProvider(ABC):
    """Abstract upstream dispatch. Returns an UpstreamReply or raises UpstreamError."""

    async def connect(self) -> None:
        """Open any pooled resources. No-op by default."""

    async def disconnect(self) -> None:
        """Release pooled resources. No-op by default."""

    @abstractmethod
    async def complete(self, chat_request: ChatRequest) -> UpstreamReply:
        """Send the normalized conversation upstream and return the first choice."""


def build_payload(chat_request: ChatRequest) -> Dict[str, Any]:
    """Chat-completions request body. Sampling parameters are fixed."""
    return {
        "model": chat_request.model,
        "messages": chat_request.upstream_messages(),
        "temperature": TEMPERATURE,
        "top_p": TOP_P,
        "max_tokens": chat_request.max_tokens,
    }


def parse_completion(data: Any, requested_model: str) -> UpstreamReply:
    """
    Extract the reply from a 2xx chat-completions body.

    A body without choices[0].message is malformed (UpstreamError); a
    well-formed choice with null/empty content maps to EMPTY_REPLY.
    """
    if not isinstance(data, dict):
        raise UpstreamError("Invalid response: body is not a JSON object")

    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise UpstreamError("Invalid response: missing choices")

    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        raise UpstreamError("Invalid response: missing message")

    content = message.get("content")
    reply = content if isinstance(content, str) and content else EMPTY_REPLY
    echoed = data.get("model")
    model = echoed if isinstance(echoed, str) and echoed else requested_model
    return UpstreamReply(reply=reply, model=model)


def _error_message(data: Any) -> str:
    """Provider's error.message, if the error body carries one."""
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return "Unknown error"


class OpenAIProvider(LLMProvider):
    """OpenAI chat-completions provider over a pooled aiohttp session. No retries."""

    def __init__(self, settings: Settings):
        """Read credentials and endpoint from settings."""
        self.api_key = settings.openai_api_key
        self.api_url = settings.openai_api_url
        self.timeout_sec = settings.upstream_timeout
        if not self.api_key:
            logger.warning("OPENAI_API_KEY not set - every chat request will fail upstream")

        self.session: Optional[aiohttp.ClientSession] = None
        logger.info("OpenAIProvider initialized")

    async def connect(self) -> None:
        """Create aiohttp session for connection pooling."""
        if self.session is None:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout_sec))
            logger.info("OpenAI connection pool created")

    async def disconnect(self) -> None:
        """Close aiohttp session."""
        if self.session:
            await self.session.close()
            self.session = None
            logger.info("OpenAI connection pool closed")

    async def complete(self, chat_request: ChatRequest) -> UpstreamReply:
        """Call the chat-completions API once. Any failure surfaces as UpstreamError."""
        if not self.api_key:
            raise UpstreamError("OPENAI_API_KEY not set", details="Upstream credential is not configured")

        if self.session is None:
            await self.connect()

        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        payload = build_payload(chat_request)

        try:
            async with self.session.post(self.api_url, json=payload, headers=headers) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = None

                if response.status >= 400:
                    message = _error_message(data)
                    logger.error(f"OpenAI API error | status={response.status} | {message}")
                    raise UpstreamError(f"HTTP {response.status}: {message}", details=message)

                if data is None:
                    raise UpstreamError("Invalid response: body is not JSON")
        except asyncio.TimeoutError as e:
            logger.error(f"OpenAI request timeout after {self.timeout_sec}s")
            raise UpstreamError(f"Upstream timeout after {self.timeout_sec}s") from e
        except aiohttp.ClientError as e:
            logger.error(f"OpenAI transport error: {type(e).__name__}: {e}")
            raise UpstreamError(f"Upstream unreachable: {e}") from e

        reply = parse_completion(data, chat_request.model)
        logger.info(f"OpenAI API call | model={reply.model} | reply_chars={len(reply.reply)}")
        return reply
