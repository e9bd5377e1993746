"""
Turn persistence: conversation log entries and the audit trail.

Writes happen in a fixed order (user entry, model entry, audit record) and
each write is independent: a failed write is logged and the rest still run,
because the reply has already been produced and must still be delivered.
"""

from __future__ import annotations

from datetime import datetime, timezone

from parley.config.logging import get_logger
from parley.llm.models import PersistenceError, TokenUsage, TurnRequest
from parley.storage.base import AuditRepository, ConversationLogRepository
from parley.storage.models import AuditRecord, ConversationLogEntry

logger = get_logger(__name__)

TOOL_RESPONSE_SEPARATOR = "\n---TOOL RESPONSE---\n"


class AuditLogger:
    def __init__(self, logs: ConversationLogRepository, audits: AuditRepository):
        self._logs = logs
        self._audits = audits

    def _entry(
        self,
        request: TurnRequest,
        role: str,
        content: str,
        created_at: datetime,
        raw_response: str | None = None,
    ) -> ConversationLogEntry:
        meta = request.metadata
        return ConversationLogEntry(
            tenant_id=request.tenant_id,
            conversation_id=request.conversation_id,
            platform=meta.platform,
            role=role,
            content=content,
            raw_response=raw_response,
            chat_type=meta.chat_type,
            group_id=meta.group_id,
            sender_id=meta.sender_id,
            sender_name=meta.sender_name,
            created_at=created_at,
        )

    async def _append(self, entry: ConversationLogEntry) -> bool:
        try:
            await self._logs.append(entry)
            return True
        except PersistenceError as e:
            logger.error(f"Failed to write {entry.role} log entry for {entry.conversation_id}: {e}")
            return False

    async def _audit(
        self,
        request: TurnRequest,
        response_text: str,
        raw_response: str,
        credential_id: str | None,
        model: str | None,
        usage: TokenUsage,
    ) -> bool:
        record = AuditRecord(
            tenant_id=request.tenant_id,
            conversation_id=request.conversation_id,
            request_payload={"prompt": request.prompt, "conversation_id": request.conversation_id},
            response_text=response_text,
            raw_response=raw_response,
            credential_id=credential_id,
            model=model,
            token_usage=usage.snapshot(),
            created_at=datetime.now(timezone.utc),
        )
        try:
            await self._audits.record(record)
            return True
        except PersistenceError as e:
            logger.error(f"Failed to write audit record for {request.conversation_id}: {e}")
            return False

    async def record_turn(
        self,
        request: TurnRequest,
        started_at: datetime,
        text: str,
        raw_response: str,
        credential_id: str,
        model: str,
        usage: TokenUsage,
    ) -> None:
        """Persist a delivered turn: user entry, model entry, audit record."""
        await self._append(self._entry(request, "user", request.prompt, started_at))
        await self._append(
            self._entry(request, "model", text, datetime.now(timezone.utc), raw_response=raw_response)
        )
        await self._audit(request, text, raw_response, credential_id, model, usage)

    async def record_suppressed(
        self,
        request: TurnRequest,
        started_at: datetime,
        text: str,
        raw_response: str,
        credential_id: str,
        model: str,
        usage: TokenUsage,
    ) -> None:
        """Persist a suppressed turn: user entry and audit record, no model entry."""
        await self._append(self._entry(request, "user", request.prompt, started_at))
        await self._audit(request, text, raw_response, credential_id, model, usage)
