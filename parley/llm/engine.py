"""
Conversation Engine: runs one chat turn end to end.

This is the single entry point every surface calls (gateways, the CLI
playground). It gathers context, walks the credential/model cascade, runs at
most one round of tools, and persists the outcome.

Data flow:
    TurnRequest
        ↓
    ContextAssembler.assemble()  →  system instruction + history
    ToolRegistry.declarations()  →  tools offered this turn
    CredentialPool.plan()        →  [(credential, [models...]), ...]
        ↓
    for each candidate:  acompletion(tools)  →  tool calls?
                              ↓ yes                    ↓ no
                         ToolExecutor.execute_all()   final text
                              ↓
                         acompletion(tool_choice="none")  →  final text
        ↓
    "[NO_REPLY]"  →  record_suppressed()  →  SuppressedReply
    otherwise     →  record_turn()        →  TurnResult

Design decisions:
- Exactly one tool round. The follow-up call still declares the same tools
  (providers reject tool messages without matching declarations) but sets
  tool_choice="none"; any tool calls it returns anyway are ignored.
- A candidate fails on any provider error, timeout, or empty final text,
  and the cascade moves on. Only when every candidate has failed does the
  caller see CredentialExhausted, carrying the last error message.
- Nothing is persisted for a failed turn. A suppressed turn keeps the user
  entry and an audit record, but no model entry, so history never shows a
  reply that was not delivered.
- Tools executed by a candidate whose follow-up call then fails are run
  again by the next candidate; tool side effects are not deduplicated.
"""

from __future__ import annotations

import asyncio
import base64
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from litellm import acompletion

from parley.config.logging import get_logger
from parley.config.settings import LLMSettings
from parley.llm.audit import TOOL_RESPONSE_SEPARATOR, AuditLogger
from parley.llm.context import ContextAssembler
from parley.llm.credentials import CandidatePlan, CredentialPool, classify_failure
from parley.llm.models import (
    NO_REPLY,
    CredentialExhausted,
    CredentialInfo,
    ProviderError,
    QuotaExceeded,
    SuppressedReply,
    TenantSettingsInfo,
    TokenUsage,
    ToolCall,
    TurnRequest,
    TurnResult,
    TurnTimeout,
)
from parley.storage.base import AdminRepository, TenantSettingsRepository
from parley.tools.base import ToolContext, to_provider_schema
from parley.tools.executor import ToolExecutor
from parley.tools.registry import ToolRegistry, resolve_admin

logger = get_logger(__name__)


@dataclass
class _Attempt:
    """Outcome of one successful (credential, model) attempt."""

    text: str
    raw_response: str
    usage: TokenUsage
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass
class _TurnState:
    """Per-turn inputs shared by every candidate attempt."""

    messages: list[dict[str, Any]]
    tools: list[dict[str, Any]]
    tool_context: ToolContext
    temperature: float
    max_tokens: int
    last_error: str | None = None


def _user_content(request: TurnRequest) -> str | list[dict[str, Any]]:
    """Plain text, or OpenAI-style content parts when media is attached."""
    if not request.media:
        return request.prompt

    parts: list[dict[str, Any]] = []
    if request.prompt:
        parts.append({"type": "text", "text": request.prompt})
    for item in request.media:
        encoded = base64.b64encode(item.data).decode("ascii")
        parts.append({
            "type": "image_url",
            "image_url": {"url": f"data:{item.mime_type};base64,{encoded}"},
        })
    return parts


def _raw_message(message: Any) -> str:
    """Serialize an assistant message for the audit trail."""
    calls = [
        {"name": c.function.name, "arguments": c.function.arguments}
        for c in (getattr(message, "tool_calls", None) or [])
    ]
    payload: dict[str, Any] = {"content": getattr(message, "content", None)}
    if calls:
        payload["tool_calls"] = calls
    return json.dumps(payload, default=str)


class ConversationEngine:
    """
    Runs conversation turns against a tenant's credentials, context and tools.

    Args:
        settings: LLM configuration (provider prefix, defaults, timeouts)
        pool: Candidate planner over the tenant's credentials
        assembler: Builds the system instruction and history
        registry: Decides which tools are declared
        executor: Runs tool calls
        audit: Persists log entries and audit records
        tenant_settings: Per-tenant toggles and model preference
        admins: Admin allow-list for external platforms
    """

    def __init__(
        self,
        settings: LLMSettings,
        pool: CredentialPool,
        assembler: ContextAssembler,
        registry: ToolRegistry,
        executor: ToolExecutor,
        audit: AuditLogger,
        tenant_settings: TenantSettingsRepository,
        admins: AdminRepository,
    ):
        self._settings = settings
        self._pool = pool
        self._assembler = assembler
        self._registry = registry
        self._executor = executor
        self._audit = audit
        self._tenant_settings = tenant_settings
        self._admins = admins

    async def _complete(
        self, credential: CredentialInfo, model: str, state: _TurnState, **extra: Any
    ) -> Any:
        call_kwargs: dict[str, Any] = {
            "model": f"{self._settings.provider}/{model}",
            "messages": state.messages,
            "temperature": state.temperature,
            "max_tokens": state.max_tokens,
            "api_key": credential.secret,
            **extra,
        }
        if state.tools:
            call_kwargs["tools"] = state.tools

        try:
            return await asyncio.wait_for(acompletion(**call_kwargs), timeout=self._settings.call_timeout)
        except asyncio.TimeoutError as e:
            raise ProviderError(f"Call to {model} timed out after {self._settings.call_timeout}s", cause=e)
        except Exception as e:
            raise classify_failure(e)

    async def _attempt(self, credential: CredentialInfo, model: str, state: _TurnState) -> _Attempt:
        """
        Run the two-call state machine on one candidate.

        Raises:
            ProviderError: The candidate failed and the cascade should move on
        """
        usage = TokenUsage()
        response = await self._complete(credential, model, state)
        usage.add(getattr(response, "usage", None))
        message = response.choices[0].message
        raw_response = _raw_message(message)

        if not message.tool_calls:
            text = message.content or ""
            if not text.strip():
                raise ProviderError(f"Empty response from {model}")
            return _Attempt(text=text, raw_response=raw_response, usage=usage)

        results = await self._executor.execute_all(message.tool_calls, state.tool_context)

        # Candidate-local copy so a failed follow-up leaves the shared messages untouched
        messages = list(state.messages)
        messages.append({
            "role": "assistant",
            "content": message.content,
            "tool_calls": [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.function.name, "arguments": call.function.arguments},
                }
                for call in message.tool_calls
            ],
        })
        for result in results:
            messages.append({"role": "tool", "tool_call_id": result.id, "name": result.name, "content": result.result})

        followup_state = _TurnState(
            messages=messages,
            tools=state.tools,
            tool_context=state.tool_context,
            temperature=state.temperature,
            max_tokens=state.max_tokens,
        )
        followup = await self._complete(credential, model, followup_state, tool_choice="none")
        usage.add(getattr(followup, "usage", None))
        followup_message = followup.choices[0].message
        raw_response += TOOL_RESPONSE_SEPARATOR + _raw_message(followup_message)

        if followup_message.tool_calls:
            logger.warning(
                f"{model} requested {len(followup_message.tool_calls)} more tool call(s) "
                "after the tool round; ignoring them"
            )

        text = followup_message.content or ""
        if not text.strip():
            raise ProviderError(f"Empty response from {model} after tool round")
        return _Attempt(text=text, raw_response=raw_response, usage=usage, tool_calls=results)

    async def _cascade(
        self, plan: list[CandidatePlan], state: _TurnState
    ) -> tuple[CredentialInfo, str, _Attempt]:
        for candidate in plan:
            credential = candidate.credential
            for model in candidate.models:
                try:
                    attempt = await self._attempt(credential, model, state)
                except QuotaExceeded as e:
                    state.last_error = str(e)
                    logger.warning(f"Quota exceeded on credential {credential.id} with {model}, trying next")
                    continue
                except ProviderError as e:
                    state.last_error = str(e)
                    logger.warning(f"Credential {credential.id} with {model} failed: {e}")
                    continue
                logger.info(f"Turn answered by credential {credential.id} with {model}")
                return credential, model, attempt

        raise CredentialExhausted(
            f"All credentials failed. Last error: {state.last_error}", last_error=state.last_error
        )

    async def run_turn(self, request: TurnRequest) -> TurnResult:
        """
        Run one conversation turn.

        Args:
            request: The inbound message and where it came from

        Returns:
            TurnResult with the reply text, the credential and model that produced
            it, summed token usage, and the tool calls made

        Raises:
            ValueError: If the request has neither text nor media
            SuppressedReply: The model chose not to answer; deliver nothing
            CredentialExhausted: Every candidate failed (TurnTimeout if the
                turn deadline passed first)
        """
        if not request.prompt.strip() and not request.media:
            raise ValueError("Turn needs a prompt or media")

        started_at = datetime.now(timezone.utc)
        meta = request.metadata

        tenant_settings: TenantSettingsInfo = await self._tenant_settings.get(request.tenant_id)
        is_admin = await resolve_admin(self._admins, request.tenant_id, meta.platform, meta.sender_id)
        context = await self._assembler.assemble(request, tenant_settings)
        declarations = await self._registry.declarations(request.tenant_id, tenant_settings, is_admin)

        preferred = meta.model_override or tenant_settings.preferred_model
        plan = await self._pool.plan(request.tenant_id, preferred)

        state = _TurnState(
            messages=[
                {"role": "system", "content": context.system_instruction},
                *context.history,
                {"role": "user", "content": _user_content(request)},
            ],
            tools=to_provider_schema(declarations),
            tool_context=ToolContext(
                tenant_id=request.tenant_id,
                platform=meta.platform,
                sender_id=meta.sender_id,
                chat_type=meta.chat_type,
                is_admin=is_admin,
                shares_memory=tenant_settings.shares_memory(meta.platform),
                declarations=declarations,
            ),
            temperature=tenant_settings.temperature
            if tenant_settings.temperature is not None
            else self._settings.temperature,
            max_tokens=tenant_settings.max_output_tokens or self._settings.max_output_tokens,
        )

        try:
            credential, model, attempt = await asyncio.wait_for(
                self._cascade(plan, state), timeout=self._settings.turn_timeout
            )
        except asyncio.TimeoutError as e:
            raise TurnTimeout(
                f"Turn timed out after {self._settings.turn_timeout}s", last_error=state.last_error, cause=e
            )

        await self._pool.record_success(credential)

        if attempt.text.strip() == NO_REPLY:
            logger.info(f"Reply suppressed for conversation {request.conversation_id}")
            await self._audit.record_suppressed(
                request, started_at, attempt.text, attempt.raw_response, credential.id, model, attempt.usage
            )
            raise SuppressedReply(request.conversation_id)

        await self._audit.record_turn(
            request, started_at, attempt.text, attempt.raw_response, credential.id, model, attempt.usage
        )
        return TurnResult(
            text=attempt.text,
            credential_id=credential.id,
            model=model,
            usage=attempt.usage,
            tool_calls=attempt.tool_calls,
        )
