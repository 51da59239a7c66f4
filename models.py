"""
GPAI Relay Models
Conversation, cache and response schemas using Pydantic.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

DISCLAIMER = (
    "This output is generated for academic demonstrative purposes "
    "and does not constitute legal advice."
)


class ConversationTurn(BaseModel):
    """One role-tagged message in a conversation."""

    role: Literal["system", "user", "assistant"]
    content: str

    model_config = ConfigDict(frozen=True, extra="ignore")


class ChatRequest(BaseModel):
    """Normalized conversation plus the resolved upstream configuration."""

    turns: tuple[ConversationTurn, ...] = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    max_tokens: int = Field(..., gt=0)
    max_history: int = Field(..., gt=0)

    model_config = ConfigDict(frozen=True)

    def upstream_messages(self) -> list[dict]:
        """Turns as the list of {role, content} dicts the completion API expects."""
        return [{"role": turn.role, "content": turn.content} for turn in self.turns]


class CacheEntry(BaseModel):
    """A stored reply, keyed by the request fingerprint."""

    key: str
    reply: str
    model: str

    model_config = ConfigDict(frozen=True)


class UpstreamReply(BaseModel):
    """Successful completion: the reply text and the model id the provider echoed."""

    reply: str
    model: str


class ChatResponse(BaseModel):
    """Schema for POST /api/chat success responses."""

    reply: str
    model: str
    disclaimer: str = DISCLAIMER

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "reply": "Hello! How can I help you today?",
                "model": "gpt-4o-mini",
                "disclaimer": DISCLAIMER,
            }
        }
    )


class ErrorResponse(BaseModel):
    """Schema for 4xx/5xx responses."""

    error: str
    details: Optional[str] = None


class HealthResponse(BaseModel):
    """Schema for GET /health responses."""

    status: str
    version: str


class CacheStats(BaseModel):
    """Snapshot of the response cache."""

    stored_items: int
    capacity: int
    evictions: int
