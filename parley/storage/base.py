"""
Abstract repository interfaces.

The engine components depend on these ABCs rather than on SQLAlchemy, so
each can be exercised against in-memory fakes or the real store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from parley.llm.models import CredentialInfo, DiscoveredModel, TenantSettingsInfo
from parley.storage.models import AuditRecord, ConversationLogEntry, Memory, Personality, Tool


@dataclass(frozen=True)
class MemoryScope:
    """Which active-learning memories a caller may see."""

    tenant_id: str
    platform: str | None
    external_id: str | None
    shared: bool = False


@dataclass(frozen=True)
class HistoryKey:
    """
    Lookup key for conversation history.

    Exactly one shape is populated: a group (``group_id`` + ``platform``), a
    private sender (``platform`` + ``sender_id``), or a bare conversation id.
    """

    conversation_id: str | None = None
    platform: str | None = None
    group_id: str | None = None
    sender_id: str | None = None

    @classmethod
    def for_group(cls, group_id: str, platform: str) -> HistoryKey:
        return cls(group_id=group_id, platform=platform)

    @classmethod
    def for_sender(cls, platform: str, sender_id: str) -> HistoryKey:
        return cls(platform=platform, sender_id=sender_id)

    @classmethod
    def for_conversation(cls, conversation_id: str) -> HistoryKey:
        return cls(conversation_id=conversation_id)


class CredentialRepository(ABC):
    @abstractmethod
    async def list_active(self, tenant_id: str) -> list[CredentialInfo]:
        """Active credentials, least recently used first (never-used first of all)."""

    @abstractmethod
    async def list_all_active(self) -> list[CredentialInfo]:
        """Active credentials across every tenant."""

    @abstractmethod
    async def mark_used(self, credential_id: str, when: datetime) -> None: ...

    @abstractmethod
    async def update_discovery(
        self, credential_id: str, models: list[DiscoveredModel], best_model: str | None
    ) -> None: ...

    @abstractmethod
    async def add(self, tenant_id: str, secret: str) -> CredentialInfo: ...


class PersonalityRepository(ABC):
    @abstractmethod
    async def get_active(self, tenant_id: str) -> Personality | None: ...

    @abstractmethod
    async def list(self, tenant_id: str) -> list[Personality]: ...

    @abstractmethod
    async def create(
        self, tenant_id: str, name: str, system_prompt: str, activate: bool = False
    ) -> Personality: ...

    @abstractmethod
    async def update(
        self, tenant_id: str, personality_id: str, *, name: str | None = None,
        system_prompt: str | None = None,
    ) -> Personality | None: ...

    @abstractmethod
    async def delete(self, tenant_id: str, personality_id: str) -> bool: ...

    @abstractmethod
    async def set_active(self, tenant_id: str, personality_id: str) -> bool:
        """Activate one personality and deactivate every other for the tenant."""


class MemoryRepository(ABC):
    @abstractmethod
    async def list_core(self, tenant_id: str, limit: int) -> list[Memory]: ...

    @abstractmethod
    async def list_active_learning(self, scope: MemoryScope, limit: int) -> list[Memory]: ...

    @abstractmethod
    async def add(
        self, tenant_id: str, content: str, kind: str,
        platform: str | None = None, external_id: str | None = None,
    ) -> Memory: ...

    @abstractmethod
    async def delete(self, tenant_id: str, memory_id: str) -> bool: ...

    @abstractmethod
    async def list(self, tenant_id: str, limit: int = 100) -> list[Memory]:
        """Every memory for the tenant regardless of kind or scope, newest first."""


class ToolRepository(ABC):
    @abstractmethod
    async def list_active(self, tenant_id: str) -> list[Tool]: ...

    @abstractmethod
    async def list(self, tenant_id: str) -> list[Tool]: ...

    @abstractmethod
    async def add(self, tenant_id: str, spec: Any) -> Tool:
        """Store a validated ``WebhookToolSpec``."""

    @abstractmethod
    async def remove(self, tenant_id: str, id_or_name: str) -> bool: ...


class ConversationLogRepository(ABC):
    @abstractmethod
    async def append(self, entry: ConversationLogEntry) -> None: ...

    @abstractmethod
    async def recent(self, tenant_id: str, key: HistoryKey, limit: int) -> list[ConversationLogEntry]:
        """Newest ``limit`` entries for the key, returned oldest-first."""

    @abstractmethod
    async def list(
        self, tenant_id: str, conversation_id: str, limit: int = 50, offset: int = 0
    ) -> list[ConversationLogEntry]: ...

    @abstractmethod
    async def search(self, tenant_id: str, text: str, limit: int = 50) -> list[ConversationLogEntry]: ...


class AuditRepository(ABC):
    @abstractmethod
    async def record(self, record: AuditRecord) -> None: ...

    @abstractmethod
    async def list(self, tenant_id: str, limit: int = 50) -> list[AuditRecord]: ...


class TenantSettingsRepository(ABC):
    @abstractmethod
    async def get(self, tenant_id: str) -> TenantSettingsInfo:
        """Stored settings, or all defaults when the tenant has no row."""

    @abstractmethod
    async def save(self, settings: TenantSettingsInfo) -> None: ...


class AdminRepository(ABC):
    @abstractmethod
    async def is_admin(self, tenant_id: str, platform: str, external_id: str) -> bool: ...

    @abstractmethod
    async def grant(self, tenant_id: str, platform: str, external_id: str) -> None: ...
