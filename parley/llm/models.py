"""
Data models and error taxonomy for the conversation engine.

The engine's request/response contract is expressed with Pydantic models so
gateways and the playground depend on plain data, never on ORM rows or
provider SDK objects.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# In-band sentinel the model emits when a group message needs no answer
NO_REPLY = "[NO_REPLY]"

PLAYGROUND = "playground"

# Callers on these platforms are the tenant itself, never an outside sender
INTERNAL_PLATFORMS = frozenset({PLAYGROUND, "web", "system"})

ChatType = Literal["private", "group"]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class EngineError(Exception):
    """Base class for conversation engine errors."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class ProviderError(EngineError):
    """A single (credential, model) attempt failed."""


class QuotaExceeded(ProviderError):
    """The provider rejected an attempt for rate-limit or quota reasons."""


class CredentialExhausted(EngineError):
    """Every credential/model candidate failed for this turn."""

    def __init__(self, message: str, last_error: str | None = None, cause: Exception | None = None):
        super().__init__(message, cause=cause)
        self.last_error = last_error


class TurnTimeout(CredentialExhausted):
    """The turn deadline passed before any candidate succeeded."""


class ToolExecutionError(EngineError):
    """A tool invocation failed; reported to the model as text."""

    def __init__(self, tool_name: str, message: str, cause: Exception | None = None):
        super().__init__(f"Tool '{tool_name}' failed: {message}", cause=cause)
        self.tool_name = tool_name


class SuppressedReply(EngineError):
    """The model chose not to answer; deliver nothing downstream."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Reply suppressed for conversation {conversation_id}")
        self.conversation_id = conversation_id


class PersistenceError(EngineError):
    """A log, audit or memory row could not be written."""


# ---------------------------------------------------------------------------
# Turn contract
# ---------------------------------------------------------------------------


class MediaAttachment(BaseModel):
    """Binary media already normalized by the calling layer."""

    data: bytes = Field(description="Raw media bytes")
    mime_type: str = Field(min_length=1, description="MIME type, e.g. image/png")


class TurnMetadata(BaseModel):
    """Where a turn came from and who sent it."""

    platform: str = Field(default=PLAYGROUND, description="Messaging surface name")
    chat_type: ChatType = Field(default="private")
    group_id: str | None = Field(default=None)
    sender_id: str | None = Field(default=None)
    sender_name: str | None = Field(default=None)
    model_override: str | None = Field(
        default=None, description="Explicit model for this turn, overriding the tenant default"
    )

    @property
    def is_playground(self) -> bool:
        return self.platform == PLAYGROUND

    @property
    def is_internal(self) -> bool:
        return self.platform in INTERNAL_PLATFORMS

    @property
    def is_group(self) -> bool:
        return self.chat_type == "group"


class TurnRequest(BaseModel):
    """One inbound message to run through the engine."""

    tenant_id: str = Field(min_length=1)
    conversation_id: str = Field(min_length=1)
    prompt: str = Field(default="")
    media: list[MediaAttachment] = Field(default_factory=list)
    metadata: TurnMetadata = Field(default_factory=TurnMetadata)


class TokenUsage(BaseModel):
    """Token counts summed over the provider calls of the answering candidate."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def add(self, usage: Any) -> None:
        """Accumulate a provider usage object (attributes may be missing or None)."""
        if usage is None:
            return
        self.prompt_tokens += getattr(usage, "prompt_tokens", 0) or 0
        self.completion_tokens += getattr(usage, "completion_tokens", 0) or 0

    def snapshot(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


class ToolCall(BaseModel):
    """Record of one tool invocation made during a turn."""

    id: str = Field(default="", description="Provider tool-call id")
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    result: str = Field(default="")
    error: bool = Field(default=False, description="True when the result is an error payload")


class TurnResult(BaseModel):
    """A delivered reply and how it was produced."""

    text: str
    credential_id: str
    model: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    tool_calls: list[ToolCall] = Field(default_factory=list)


class DiscoveredModel(BaseModel):
    """A model a credential can reach, as reported by the provider."""

    name: str
    input_token_limit: int | None = None
    output_token_limit: int | None = None


class CredentialInfo(BaseModel):
    """Read model of a stored provider credential."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    secret: str = Field(repr=False)
    status: Literal["active", "disabled"] = "active"
    last_used_at: Any = None
    best_model: str | None = None
    available_models: list[DiscoveredModel] = Field(default_factory=list)

    @property
    def model_names(self) -> list[str]:
        return [m.name for m in self.available_models]


class TenantSettingsInfo(BaseModel):
    """Per-tenant tool toggles, model preference and sharing flags."""

    model_config = ConfigDict(from_attributes=True)

    tenant_id: str
    enable_web_search: bool = True
    enable_weather: bool = True
    enable_calculator: bool = True
    enable_scraper: bool = True
    enable_github: bool = True
    enable_currency: bool = True
    preferred_model: str | None = None
    temperature: float | None = None
    max_output_tokens: int | None = None
    shared_memory_platforms: list[str] = Field(default_factory=list)

    def shares_memory(self, platform: str | None) -> bool:
        return platform is not None and platform in self.shared_memory_platforms
