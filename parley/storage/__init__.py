"""
Persistence layer.

SQLAlchemy models and repositories for credentials, personalities, memories,
tools, the conversation log, audit records, tenant settings and the admin
allow-list, plus the file-backed knowledge bank.
"""

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

__all__ = [
    "Database",
    "KnowledgeBank",
    "SqlAdminRepository",
    "SqlAuditRepository",
    "SqlConversationLogRepository",
    "SqlCredentialRepository",
    "SqlMemoryRepository",
    "SqlPersonalityRepository",
    "SqlTenantSettingsRepository",
    "SqlToolRepository",
]
