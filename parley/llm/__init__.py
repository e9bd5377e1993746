"""
LLM Orchestration Layer.

Turns an inbound message into a reply:

    TurnRequest
        ↓
    ConversationEngine.run_turn()
        ↓
    TurnResult  |  SuppressedReply  |  CredentialExhausted

Key responsibilities:
- Rank models and plan the credential/model cascade for each turn
- Assemble the system instruction (persona, memories, knowledge, protocols)
  and the conversation history
- Call the provider via LiteLLM with at most one round of tool calls
- Persist log entries and audit records for delivered and suppressed turns
"""

from parley.llm.models import (
    NO_REPLY,
    CredentialExhausted,
    EngineError,
    MediaAttachment,
    PersistenceError,
    ProviderError,
    QuotaExceeded,
    SuppressedReply,
    TokenUsage,
    ToolCall,
    ToolExecutionError,
    TurnMetadata,
    TurnRequest,
    TurnResult,
    TurnTimeout,
)

__all__ = [
    "NO_REPLY",
    "CredentialExhausted",
    "EngineError",
    "MediaAttachment",
    "PersistenceError",
    "ProviderError",
    "QuotaExceeded",
    "SuppressedReply",
    "TokenUsage",
    "ToolCall",
    "ToolExecutionError",
    "TurnMetadata",
    "TurnRequest",
    "TurnResult",
    "TurnTimeout",
]
