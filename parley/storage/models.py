"""
ORM models for everything the engine reads or writes.

One declarative ``Base`` backs the whole schema. Identifiers are UUID4
strings and timestamps are timezone-aware UTC.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Credential(Base):
    __tablename__ = "credentials"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(64), nullable=False, index=True)
    secret = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default="active")  # "active" | "disabled"
    last_used_at = Column(DateTime(timezone=True), nullable=True)

    # Discovery cache
    best_model = Column(String(128), nullable=True)
    available_models = Column(JSON, nullable=False, default=list)  # [{name, input_token_limit, output_token_limit}]

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Personality(Base):
    __tablename__ = "personalities"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(64), nullable=False, index=True)
    name = Column(String(128), nullable=False)
    system_prompt = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Memory(Base):
    __tablename__ = "memories"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(64), nullable=False)
    content = Column(Text, nullable=False)
    kind = Column(String(32), nullable=False)  # "core" | "active_learning"

    # NULL platform means tenant-wide (shared); NULL external_id means platform-wide
    platform = Column(String(32), nullable=True)
    external_id = Column(String(128), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_memories_scope", "tenant_id", "kind", "platform", "external_id"),
    )


class Tool(Base):
    __tablename__ = "tools"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(64), nullable=False)
    name = Column(String(64), nullable=False)
    description = Column(Text, nullable=False, default="")
    endpoint = Column(Text, nullable=False)
    method = Column(String(8), nullable=False, default="POST")
    headers = Column(JSON, nullable=False, default=dict)
    parameter_schema = Column(JSON, nullable=False, default=dict)

    # Auth injection
    auth_type = Column(String(16), nullable=True)  # "bearer" | "header" | "query"
    auth_param_name = Column(String(128), nullable=True)
    api_key = Column(Text, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    is_admin_only = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_tools_tenant_name"),
    )


class ConversationLogEntry(Base):
    __tablename__ = "conversation_log"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(64), nullable=False)
    conversation_id = Column(String(128), nullable=False)
    platform = Column(String(32), nullable=False)
    role = Column(String(8), nullable=False)  # "user" | "model"
    content = Column(Text, nullable=False, default="")
    raw_response = Column(Text, nullable=True)

    chat_type = Column(String(8), nullable=False, default="private")  # "private" | "group"
    group_id = Column(String(128), nullable=True)
    sender_id = Column(String(128), nullable=True)
    sender_name = Column(String(128), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_conversation_log_conversation", "tenant_id", "conversation_id", "created_at"),
        Index("ix_conversation_log_group", "tenant_id", "group_id", "platform", "created_at"),
        Index("ix_conversation_log_sender", "tenant_id", "platform", "sender_id", "created_at"),
    )


class AuditRecord(Base):
    __tablename__ = "audit_records"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(64), nullable=False, index=True)
    conversation_id = Column(String(128), nullable=False)
    request_payload = Column(JSON, nullable=False, default=dict)
    response_text = Column(Text, nullable=False, default="")
    raw_response = Column(Text, nullable=True)
    credential_id = Column(String(36), nullable=True)
    model = Column(String(128), nullable=True)
    token_usage = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class TenantSettings(Base):
    __tablename__ = "tenant_settings"

    tenant_id = Column(String(64), primary_key=True)

    # Built-in tool toggles
    enable_web_search = Column(Boolean, nullable=False, default=True)
    enable_weather = Column(Boolean, nullable=False, default=True)
    enable_calculator = Column(Boolean, nullable=False, default=True)
    enable_scraper = Column(Boolean, nullable=False, default=True)
    enable_github = Column(Boolean, nullable=False, default=True)
    enable_currency = Column(Boolean, nullable=False, default=True)

    # NULL means automatic selection / engine defaults
    preferred_model = Column(String(128), nullable=True)
    temperature = Column(Float, nullable=True)
    max_output_tokens = Column(Integer, nullable=True)

    shared_memory_platforms = Column(JSON, nullable=False, default=list)


class PlatformAdmin(Base):
    __tablename__ = "platform_admins"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(64), nullable=False)
    platform = Column(String(32), nullable=False)
    external_id = Column(String(128), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "platform", "external_id", name="uq_platform_admins"),
    )
