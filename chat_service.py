"""
Chat Service - Orchestrates normalization, cache lookup and upstream fallback.

FLOW:
    raw body -> normalize_request -> fingerprint -> cache lookup
        hit:  rebuild the response from the stored entry
        miss: provider.complete -> cache insert -> response

The service raises domain exceptions only (see exceptions.py);
main.py maps them to HTTP status codes.

CONCURRENCY:
    Lookup and insert are never split across an await, so on a single event
    loop they interleave safely. Two identical requests arriving together may
    both miss and both call upstream; the second insert just replaces the first.
"""

import logging
import time
from typing import Any

from pydantic import ValidationError

from cache import BoundedResponseCache
from config import Settings
from exceptions import InternalError, UpstreamError
from llm_provider import LLMProvider
from models import CacheEntry, ChatResponse
from normalizer import fingerprint, normalize_request
import metrics

logger = logging.getLogger(__name__)


class ChatService:
    """
    Service layer for POST /api/chat.

    Dependencies are passed in, so tests can build an isolated cache and a
    stub provider per case.
    """

    def __init__(
        self,
        settings: Settings,
        cache: BoundedResponseCache,
        llm_provider: LLMProvider
    ):
        self.settings = settings
        self.cache = cache
        self.llm_provider = llm_provider

    async def handle_chat(self, body: Any) -> ChatResponse:
        """
        Answer one chat request, from cache when possible.

        Raises:
            InvalidRequestError: malformed body (no cache or upstream access)
            UpstreamError: provider failed (nothing cached)
            InternalError: the key or the response could not be built
        """
        start_time = time.perf_counter()

        chat_request = normalize_request(body, self.settings)

        try:
            key = fingerprint(chat_request)
        except (TypeError, ValueError) as e:
            raise InternalError(f"Could not fingerprint request: {e}") from e

        cached = self.cache.lookup(key)
        if cached is not None:
            latency_ms = (time.perf_counter() - start_time) * 1000
            logger.info(f"Cache HIT: key={key[:12]}... | latency={latency_ms:.1f}ms")
            metrics.record_cache_lookup("hit")
            return self._build_response(cached.reply, cached.model)

        logger.info(f"Cache MISS: key={key[:12]}... | turns={len(chat_request.turns)}, calling upstream")
        metrics.record_cache_lookup("miss")

        try:
            upstream = await self.llm_provider.complete(chat_request)
        except UpstreamError as e:
            metrics.record_upstream_error()
            logger.error(f"Upstream call failed: {e}")
            raise

        # Respond with the configured model id, not the provider's echoed snapshot name
        response = self._build_response(upstream.reply, chat_request.model)

        evicted = self.cache.insert(key, CacheEntry(key=key, reply=response.reply, model=response.model))
        if evicted is not None:
            metrics.record_cache_eviction()
        metrics.set_cache_size(len(self.cache))

        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.info(f"Upstream call: model={upstream.model} | latency={latency_ms:.1f}ms")
        return response

    def _build_response(self, reply: str, model: str) -> ChatResponse:
        try:
            return ChatResponse(reply=reply, model=model)
        except ValidationError as e:
            raise InternalError(f"Could not build chat response: {e}") from e
