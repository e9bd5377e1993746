"""
Context assembly: the system instruction and prior history for one turn.

The system instruction is built from labelled blocks, always in this order:

    persona prompt
    [IDENTITY]                       who owns the assistant
    [CORE MEMORIES]                  tenant-wide facts and rules
    [LEARNED EXPERIENCES]            active-learning memories visible here
    [KNOWLEDGE BANK]                 free-form reference text
    [ACTIVE LEARNING PROTOCOL]       when to call save_memory
    [RESPONSE PROTOCOL]              the [NO_REPLY] contract (off-playground)
    [GROUP CHAT PRIVACY PROTOCOL]    group chats (off-playground)

Empty blocks are omitted rather than rendered with empty bodies.

History is looked up by the most specific key available (group, then private
sender, then conversation id), so a person keeps one thread per platform
even when the gateway's conversation ids differ between messages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from parley.config.logging import get_logger
from parley.config.settings import LLMSettings
from parley.llm.models import NO_REPLY, TenantSettingsInfo, TurnRequest
from parley.storage.base import (
    ConversationLogRepository,
    HistoryKey,
    MemoryRepository,
    MemoryScope,
    PersonalityRepository,
)
from parley.storage.knowledge import KnowledgeBank
from parley.storage.models import ConversationLogEntry

logger = get_logger(__name__)

DEFAULT_PERSONA = (
    "You are a helpful, friendly assistant. Respond naturally and in character. "
    "Do not sound robotic or generic."
)

ACTIVE_LEARNING_PROTOCOL = """[ACTIVE LEARNING PROTOCOL]
You have a long-term memory.
1. CORE MEMORIES are fixed facts and rules from the owner. Follow them strictly.
2. Save new, lasting observations with the 'save_memory' tool:
   - recurring patterns and stated preferences;
   - corrections the user gives you, saved as rules.
   Do not save trivial details of the conversation."""

RESPONSE_PROTOCOL = f"""[RESPONSE PROTOCOL]
- In a GROUP chat, if the message is not addressed to you and you have nothing useful to add, reply with exactly "{NO_REPLY}".
- If you are addressed or mentioned directly, you MUST reply.
- In private chats, ALWAYS reply. Never output "{NO_REPLY}" in a private chat."""

GROUP_PRIVACY_PROTOCOL = """[GROUP CHAT PRIVACY PROTOCOL]
- You may hold private memories about the current speaker ({sender}).
- Do NOT reveal private information (memories, preferences, past private chats) in this group unless the speaker explicitly asks for it, or it is clearly relevant to the group topic and not personal.
- When unsure, protect the speaker's privacy."""


@dataclass
class AssembledContext:
    """System instruction plus chat history in provider message format."""

    system_instruction: str
    history: list[dict[str, Any]] = field(default_factory=list)


def history_key(request: TurnRequest) -> HistoryKey:
    meta = request.metadata
    if meta.is_group and meta.group_id:
        return HistoryKey.for_group(meta.group_id, meta.platform)
    if not meta.is_group and not meta.is_playground and meta.sender_id:
        return HistoryKey.for_sender(meta.platform, meta.sender_id)
    return HistoryKey.for_conversation(request.conversation_id)


def render_history(entries: list[ConversationLogEntry]) -> list[dict[str, Any]]:
    """Convert log entries (oldest first) to messages; a leading model turn is dropped."""
    messages: list[dict[str, Any]] = []
    for entry in entries:
        if entry.role == "model":
            if not messages:
                continue
            messages.append({"role": "assistant", "content": entry.content})
            continue
        content = entry.content
        if entry.chat_type == "group" and entry.sender_name:
            content = f"[{entry.sender_name}]: {content}"
        messages.append({"role": "user", "content": content})
    return messages


class ContextAssembler:
    def __init__(
        self,
        personalities: PersonalityRepository,
        memories: MemoryRepository,
        logs: ConversationLogRepository,
        knowledge: KnowledgeBank,
        settings: LLMSettings,
        owner_name: str,
    ):
        self._personalities = personalities
        self._memories = memories
        self._logs = logs
        self._knowledge = knowledge
        self._settings = settings
        self._owner_name = owner_name

    async def _persona(self, tenant_id: str) -> str:
        personality = await self._personalities.get_active(tenant_id)
        if personality is None or not personality.system_prompt.strip():
            return DEFAULT_PERSONA
        return personality.system_prompt.strip()

    def _identity(self) -> str:
        return (
            "[IDENTITY]\n"
            f"- Your owner and creator is {self._owner_name}.\n"
            "- Treat this as certain in every conversation.\n"
            "- Do not bring it up unless asked."
        )

    async def build_system_instruction(
        self, request: TurnRequest, tenant_settings: TenantSettingsInfo
    ) -> str:
        meta = request.metadata
        blocks = [await self._persona(request.tenant_id), self._identity()]

        core = await self._memories.list_core(request.tenant_id, self._settings.memory_limit)
        if core:
            lines = "\n".join(f"- {m.content}" for m in core)
            blocks.append(f"[CORE MEMORIES]\n(Immutable Facts & Rules)\n{lines}")

        scope = MemoryScope(
            tenant_id=request.tenant_id,
            platform=meta.platform,
            external_id=meta.sender_id,
            shared=tenant_settings.shares_memory(meta.platform),
        )
        learned = await self._memories.list_active_learning(scope, self._settings.memory_limit)
        if learned:
            lines = "\n".join(f"- {m.content}" for m in learned)
            blocks.append(f"[LEARNED EXPERIENCES]\n(Dynamic Observations)\n{lines}")

        knowledge = (await self._knowledge.get()).strip()
        if knowledge:
            blocks.append(f"[KNOWLEDGE BANK]\n(Extracted Knowledge from Files)\n{knowledge}")

        blocks.append(ACTIVE_LEARNING_PROTOCOL)

        if not meta.is_playground:
            blocks.append(RESPONSE_PROTOCOL)
            if meta.is_group:
                blocks.append(GROUP_PRIVACY_PROTOCOL.format(sender=meta.sender_name or "User"))

        return "\n\n".join(blocks)

    async def history(self, request: TurnRequest) -> list[dict[str, Any]]:
        entries = await self._logs.recent(
            request.tenant_id, history_key(request), self._settings.history_limit
        )
        return render_history(entries)

    async def assemble(
        self, request: TurnRequest, tenant_settings: TenantSettingsInfo | None = None
    ) -> AssembledContext:
        tenant_settings = tenant_settings or TenantSettingsInfo(tenant_id=request.tenant_id)
        system_instruction = await self.build_system_instruction(request, tenant_settings)
        history = await self.history(request)
        logger.debug(
            f"Assembled context for {request.conversation_id}: "
            f"{len(system_instruction)} chars, {len(history)} history messages"
        )
        return AssembledContext(system_instruction=system_instruction, history=history)
