"""
Component factory.

Centralises the construction of the engine and its collaborators from
settings, so the CLI, the Discord gateway and tests wire things the same way.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from parley.config.settings import Settings
from parley.llm.audit import AuditLogger
from parley.llm.context import ContextAssembler
from parley.llm.credentials import CredentialPool
from parley.llm.discovery import ModelDiscovery
from parley.llm.engine import ConversationEngine
from parley.storage.database import Database
from parley.storage.knowledge import KnowledgeBank
from parley.storage.repositories import (
    SqlAdminRepository,
    SqlAuditRepository,
    SqlConversationLogRepository,
    SqlCredentialRepository,
    SqlMemoryRepository,
    SqlPersonalityRepository,
    SqlTenantSettingsRepository,
    SqlToolRepository,
)
from parley.tools.builtin import build_handlers
from parley.tools.builtin.webhook import WebhookInvoker
from parley.tools.executor import ToolExecutor
from parley.tools.registry import ToolRegistry


@dataclass
class Repositories:
    credentials: SqlCredentialRepository
    personalities: SqlPersonalityRepository
    memories: SqlMemoryRepository
    tools: SqlToolRepository
    logs: SqlConversationLogRepository
    audits: SqlAuditRepository
    tenant_settings: SqlTenantSettingsRepository
    admins: SqlAdminRepository


class ParleyComponents:
    """
    Factory for building the engine stack from settings.

    Example::

        factory = ParleyComponents(settings)
        async with factory.create_database() as db, \\
                   factory.create_http_client() as client:
            engine = factory.create_engine(db, client)
            result = await engine.run_turn(request)
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def create_database(self) -> Database:
        return Database(self.settings.database)

    def create_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.tools.http_timeout)

    def create_repositories(self, db: Database) -> Repositories:
        return Repositories(
            credentials=SqlCredentialRepository(db),
            personalities=SqlPersonalityRepository(db),
            memories=SqlMemoryRepository(db),
            tools=SqlToolRepository(db),
            logs=SqlConversationLogRepository(db),
            audits=SqlAuditRepository(db),
            tenant_settings=SqlTenantSettingsRepository(db),
            admins=SqlAdminRepository(db),
        )

    def create_knowledge_bank(self) -> KnowledgeBank:
        return KnowledgeBank(self.settings.knowledge.path)

    def create_engine(self, db: Database, client: httpx.AsyncClient) -> ConversationEngine:
        repos = self.create_repositories(db)
        handlers = build_handlers(client, self.settings.tools, repos.memories, repos.tools)

        return ConversationEngine(
            settings=self.settings.llm,
            pool=CredentialPool(repos.credentials, self.settings.llm.fallback_models),
            assembler=ContextAssembler(
                personalities=repos.personalities,
                memories=repos.memories,
                logs=repos.logs,
                knowledge=self.create_knowledge_bank(),
                settings=self.settings.llm,
                owner_name=self.settings.owner_name,
            ),
            registry=ToolRegistry(handlers, repos.tools),
            executor=ToolExecutor(handlers, WebhookInvoker(client, self.settings.tools), self.settings.tools),
            audit=AuditLogger(repos.logs, repos.audits),
            tenant_settings=repos.tenant_settings,
            admins=repos.admins,
        )

    def create_discovery(self, db: Database, client: httpx.AsyncClient) -> ModelDiscovery:
        return ModelDiscovery(SqlCredentialRepository(db), client, self.settings.llm)
