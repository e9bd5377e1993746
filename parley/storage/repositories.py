"""
SQLAlchemy implementations of the repository interfaces.

Each repository opens a short-lived session per call through ``Database``.
Writes convert ``SQLAlchemyError`` into ``PersistenceError`` so callers deal
with one failure type regardless of backend.
"""

from __future__ import annotations

import functools
from datetime import datetime

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from parley.config.logging import get_logger
from parley.llm.models import CredentialInfo, DiscoveredModel, PersistenceError, TenantSettingsInfo
from parley.storage import base
from parley.storage.base import HistoryKey, MemoryScope
from parley.storage.database import Database
from parley.storage.models import (
    AuditRecord,
    ConversationLogEntry,
    Credential,
    Memory,
    Personality,
    PlatformAdmin,
    TenantSettings,
    Tool,
)

logger = get_logger(__name__)


def _writes(action: str):
    """Wrap a repository write so backend errors surface as PersistenceError."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except SQLAlchemyError as e:
                raise PersistenceError(f"Failed to {action}: {e}", cause=e) from e

        return wrapper

    return decorator


def _credential_info(row: Credential) -> CredentialInfo:
    return CredentialInfo(
        id=row.id,
        tenant_id=row.tenant_id,
        secret=row.secret,
        status=row.status,
        last_used_at=row.last_used_at,
        best_model=row.best_model,
        available_models=[DiscoveredModel.model_validate(m) for m in (row.available_models or [])],
    )


class SqlCredentialRepository(base.CredentialRepository):
    def __init__(self, db: Database):
        self._db = db

    async def list_active(self, tenant_id: str) -> list[CredentialInfo]:
        async with self._db.session() as session:
            result = await session.execute(
                select(Credential)
                .where(Credential.tenant_id == tenant_id, Credential.status == "active")
                .order_by(Credential.last_used_at.asc().nulls_first(), Credential.created_at.asc())
            )
            return [_credential_info(row) for row in result.scalars()]

    async def list_all_active(self) -> list[CredentialInfo]:
        async with self._db.session() as session:
            result = await session.execute(
                select(Credential).where(Credential.status == "active").order_by(Credential.created_at)
            )
            return [_credential_info(row) for row in result.scalars()]

    @_writes("mark credential used")
    async def mark_used(self, credential_id: str, when: datetime) -> None:
        async with self._db.session() as session:
            await session.execute(
                update(Credential).where(Credential.id == credential_id).values(last_used_at=when)
            )

    @_writes("store discovered models")
    async def update_discovery(
        self, credential_id: str, models: list[DiscoveredModel], best_model: str | None
    ) -> None:
        async with self._db.session() as session:
            await session.execute(
                update(Credential)
                .where(Credential.id == credential_id)
                .values(
                    available_models=[m.model_dump() for m in models],
                    best_model=best_model,
                )
            )

    @_writes("add credential")
    async def add(self, tenant_id: str, secret: str) -> CredentialInfo:
        async with self._db.session() as session:
            row = Credential(tenant_id=tenant_id, secret=secret, status="active", available_models=[])
            session.add(row)
            await session.flush()
            return _credential_info(row)


class SqlPersonalityRepository(base.PersonalityRepository):
    def __init__(self, db: Database):
        self._db = db

    async def get_active(self, tenant_id: str) -> Personality | None:
        async with self._db.session() as session:
            result = await session.execute(
                select(Personality)
                .where(Personality.tenant_id == tenant_id, Personality.is_active.is_(True))
                .order_by(Personality.created_at.desc())
                .limit(1)
            )
            return result.scalars().first()

    async def list(self, tenant_id: str) -> list[Personality]:
        async with self._db.session() as session:
            result = await session.execute(
                select(Personality).where(Personality.tenant_id == tenant_id).order_by(Personality.created_at)
            )
            return list(result.scalars())

    @_writes("create personality")
    async def create(
        self, tenant_id: str, name: str, system_prompt: str, activate: bool = False
    ) -> Personality:
        async with self._db.session() as session:
            if activate:
                await session.execute(
                    update(Personality).where(Personality.tenant_id == tenant_id).values(is_active=False)
                )
            row = Personality(tenant_id=tenant_id, name=name, system_prompt=system_prompt, is_active=activate)
            session.add(row)
            await session.flush()
            return row

    @_writes("update personality")
    async def update(
        self, tenant_id: str, personality_id: str, *, name: str | None = None,
        system_prompt: str | None = None,
    ) -> Personality | None:
        async with self._db.session() as session:
            row = await session.get(Personality, personality_id)
            if row is None or row.tenant_id != tenant_id:
                return None
            if name is not None:
                row.name = name
            if system_prompt is not None:
                row.system_prompt = system_prompt
            await session.flush()
            return row

    @_writes("delete personality")
    async def delete(self, tenant_id: str, personality_id: str) -> bool:
        async with self._db.session() as session:
            result = await session.execute(
                delete(Personality).where(
                    Personality.tenant_id == tenant_id, Personality.id == personality_id
                )
            )
            return result.rowcount > 0

    @_writes("activate personality")
    async def set_active(self, tenant_id: str, personality_id: str) -> bool:
        async with self._db.session() as session:
            row = await session.get(Personality, personality_id)
            if row is None or row.tenant_id != tenant_id:
                return False
            await session.execute(
                update(Personality).where(Personality.tenant_id == tenant_id).values(is_active=False)
            )
            await session.execute(
                update(Personality).where(Personality.id == personality_id).values(is_active=True)
            )
            return True


class SqlMemoryRepository(base.MemoryRepository):
    def __init__(self, db: Database):
        self._db = db

    async def list_core(self, tenant_id: str, limit: int) -> list[Memory]:
        async with self._db.session() as session:
            result = await session.execute(
                select(Memory)
                .where(Memory.tenant_id == tenant_id, Memory.kind == "core")
                .order_by(Memory.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars())

    async def list_active_learning(self, scope: MemoryScope, limit: int) -> list[Memory]:
        visible = []
        if scope.platform is not None:
            if scope.external_id is not None:
                sender_match = or_(Memory.external_id == scope.external_id, Memory.external_id.is_(None))
            else:
                sender_match = Memory.external_id.is_(None)
            visible.append(and_(Memory.platform == scope.platform, sender_match))
        if scope.shared:
            visible.append(Memory.platform.is_(None))
        if not visible:
            return []

        async with self._db.session() as session:
            result = await session.execute(
                select(Memory)
                .where(
                    Memory.tenant_id == scope.tenant_id,
                    Memory.kind == "active_learning",
                    or_(*visible),
                )
                .order_by(Memory.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars())

    @_writes("save memory")
    async def add(
        self, tenant_id: str, content: str, kind: str,
        platform: str | None = None, external_id: str | None = None,
    ) -> Memory:
        async with self._db.session() as session:
            row = Memory(
                tenant_id=tenant_id, content=content, kind=kind,
                platform=platform, external_id=external_id,
            )
            session.add(row)
            await session.flush()
            return row

    @_writes("delete memory")
    async def delete(self, tenant_id: str, memory_id: str) -> bool:
        async with self._db.session() as session:
            result = await session.execute(
                delete(Memory).where(Memory.tenant_id == tenant_id, Memory.id == memory_id)
            )
            return result.rowcount > 0

    async def list(self, tenant_id: str, limit: int = 100) -> list[Memory]:
        async with self._db.session() as session:
            result = await session.execute(
                select(Memory)
                .where(Memory.tenant_id == tenant_id)
                .order_by(Memory.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars())


class SqlToolRepository(base.ToolRepository):
    def __init__(self, db: Database):
        self._db = db

    async def list_active(self, tenant_id: str) -> list[Tool]:
        async with self._db.session() as session:
            result = await session.execute(
                select(Tool)
                .where(Tool.tenant_id == tenant_id, Tool.is_active.is_(True))
                .order_by(Tool.created_at)
            )
            return list(result.scalars())

    async def list(self, tenant_id: str) -> list[Tool]:
        async with self._db.session() as session:
            result = await session.execute(
                select(Tool).where(Tool.tenant_id == tenant_id).order_by(Tool.created_at)
            )
            return list(result.scalars())

    @_writes("store tool")
    async def add(self, tenant_id: str, spec) -> Tool:
        async with self._db.session() as session:
            row = Tool(
                tenant_id=tenant_id,
                name=spec.name,
                description=spec.description,
                endpoint=spec.endpoint,
                method=spec.method,
                headers=dict(spec.headers),
                parameter_schema=dict(spec.parameter_schema),
                auth_type=spec.auth_type,
                auth_param_name=spec.auth_param_name,
                api_key=spec.api_key,
                is_active=True,
                is_admin_only=spec.is_admin_only,
            )
            session.add(row)
            await session.flush()
            return row

    @_writes("remove tool")
    async def remove(self, tenant_id: str, id_or_name: str) -> bool:
        async with self._db.session() as session:
            result = await session.execute(
                delete(Tool).where(
                    Tool.tenant_id == tenant_id,
                    or_(Tool.id == id_or_name, Tool.name == id_or_name),
                )
            )
            return result.rowcount > 0


class SqlConversationLogRepository(base.ConversationLogRepository):
    def __init__(self, db: Database):
        self._db = db

    @_writes("append conversation log entry")
    async def append(self, entry: ConversationLogEntry) -> None:
        async with self._db.session() as session:
            session.add(entry)

    async def recent(self, tenant_id: str, key: HistoryKey, limit: int) -> list[ConversationLogEntry]:
        if limit <= 0:
            return []

        if key.group_id is not None:
            where = [
                ConversationLogEntry.group_id == key.group_id,
                ConversationLogEntry.platform == key.platform,
            ]
        elif key.sender_id is not None:
            where = [
                ConversationLogEntry.platform == key.platform,
                ConversationLogEntry.sender_id == key.sender_id,
            ]
        elif key.conversation_id is not None:
            where = [ConversationLogEntry.conversation_id == key.conversation_id]
        else:
            raise ValueError("History key must name a group, a sender or a conversation")

        async with self._db.session() as session:
            result = await session.execute(
                select(ConversationLogEntry)
                .where(ConversationLogEntry.tenant_id == tenant_id, *where)
                .order_by(ConversationLogEntry.created_at.desc())
                .limit(limit)
            )
            rows = list(result.scalars())
        rows.reverse()
        return rows

    async def list(
        self, tenant_id: str, conversation_id: str, limit: int = 50, offset: int = 0
    ) -> list[ConversationLogEntry]:
        async with self._db.session() as session:
            result = await session.execute(
                select(ConversationLogEntry)
                .where(
                    ConversationLogEntry.tenant_id == tenant_id,
                    ConversationLogEntry.conversation_id == conversation_id,
                )
                .order_by(ConversationLogEntry.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            return list(result.scalars())

    async def search(self, tenant_id: str, text: str, limit: int = 50) -> list[ConversationLogEntry]:
        async with self._db.session() as session:
            result = await session.execute(
                select(ConversationLogEntry)
                .where(
                    ConversationLogEntry.tenant_id == tenant_id,
                    ConversationLogEntry.content.ilike(f"%{text}%"),
                )
                .order_by(ConversationLogEntry.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars())


class SqlAuditRepository(base.AuditRepository):
    def __init__(self, db: Database):
        self._db = db

    @_writes("write audit record")
    async def record(self, record: AuditRecord) -> None:
        async with self._db.session() as session:
            session.add(record)

    async def list(self, tenant_id: str, limit: int = 50) -> list[AuditRecord]:
        async with self._db.session() as session:
            result = await session.execute(
                select(AuditRecord)
                .where(AuditRecord.tenant_id == tenant_id)
                .order_by(AuditRecord.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars())


class SqlTenantSettingsRepository(base.TenantSettingsRepository):
    def __init__(self, db: Database):
        self._db = db

    async def get(self, tenant_id: str) -> TenantSettingsInfo:
        async with self._db.session() as session:
            row = await session.get(TenantSettings, tenant_id)
            if row is None:
                return TenantSettingsInfo(tenant_id=tenant_id)
            return TenantSettingsInfo.model_validate(row)

    @_writes("save tenant settings")
    async def save(self, settings: TenantSettingsInfo) -> None:
        async with self._db.session() as session:
            await session.merge(TenantSettings(**settings.model_dump()))


class SqlAdminRepository(base.AdminRepository):
    def __init__(self, db: Database):
        self._db = db

    async def is_admin(self, tenant_id: str, platform: str, external_id: str) -> bool:
        async with self._db.session() as session:
            result = await session.execute(
                select(PlatformAdmin.id).where(
                    PlatformAdmin.tenant_id == tenant_id,
                    PlatformAdmin.platform == platform,
                    PlatformAdmin.external_id == external_id,
                )
            )
            return result.first() is not None

    @_writes("grant admin")
    async def grant(self, tenant_id: str, platform: str, external_id: str) -> None:
        if await self.is_admin(tenant_id, platform, external_id):
            return
        async with self._db.session() as session:
            session.add(PlatformAdmin(tenant_id=tenant_id, platform=platform, external_id=external_id))
