"""
Request Normalizer - validate and shape an inbound conversation.

Turns a raw JSON body into a ChatRequest that is safe to fingerprint and
send upstream:
1. `messages` must be a non-empty list of {role, content} objects
2. Only the most recent `max_history` turns are kept (oldest dropped first)
3. `model` and `max_tokens` are resolved from Settings

Pure transformation: the caller's body is never mutated.
"""

import hashlib
import json
import logging
from typing import Any

from pydantic import ValidationError

from config import Settings
from exceptions import InvalidRequestError
from models import ChatRequest, ConversationTurn

logger = logging.getLogger(__name__)

INVALID_MESSAGES = "Invalid request format. 'messages' must be a non-empty array."


def _parse_turn(index: int, raw: Any) -> ConversationTurn:
    try:
        return ConversationTurn.model_validate(raw)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'turn'}: {err['msg']}" for err in e.errors()
        )
        raise InvalidRequestError(f"Invalid message at index {index}: {problems}") from e


def normalize_request(body: Any, settings: Settings) -> ChatRequest:
    """
    Validate `body` and build a ChatRequest bounded by `settings.max_history`.

    Raises:
        InvalidRequestError: body is not an object, `messages` is missing, empty
            or not a list, or any turn has a bad role/content.
    """
    messages = body.get("messages") if isinstance(body, dict) else None
    if not isinstance(messages, list) or not messages:
        raise InvalidRequestError(INVALID_MESSAGES)

    # Prefix drop: discarded turns never reach the upstream call
    kept = messages[-settings.max_history:]
    dropped = len(messages) - len(kept)
    if dropped:
        logger.info(f"History trimmed: dropped {dropped} oldest turn(s), kept {len(kept)}")

    turns = tuple(_parse_turn(dropped + i, raw) for i, raw in enumerate(kept))

    return ChatRequest(
        turns=turns,
        model=settings.model,
        max_tokens=settings.max_tokens,
        max_history=settings.max_history,
    )


def fingerprint(chat_request: ChatRequest) -> str:
    """
    Deterministic cache key for a normalized request.

    Key = SHA256(canonical JSON of model, max_tokens and the ordered turns).
    JSON encoding keeps field boundaries unambiguous, so no two distinct
    requests share a pre-image. ASCII escaping keeps lone surrogates encodable.
    """
    canonical = json.dumps(
        {
            "model": chat_request.model,
            "max_tokens": chat_request.max_tokens,
            "turns": [[turn.role, turn.content] for turn in chat_request.turns],
        },
        separators=(",", ":"),
        sort_keys=True,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
