"""
Tool executor.

Runs every tool call from one model response concurrently. Each call is
isolated: a failure (bad arguments, HTTP error, timeout, anything a handler
raises) becomes an ``Error: ...`` string for that call only, so the model can
still answer with whatever the other tools returned.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from parley.config.logging import get_logger
from parley.config.settings import ToolSettings
from parley.llm.models import ToolCall, ToolExecutionError
from parley.tools.base import BuiltinDeclaration, BuiltinTool, ToolContext, ToolHandler, WebhookDeclaration
from parley.tools.builtin.webhook import WebhookInvoker

logger = get_logger(__name__)

UNKNOWN_TOOL = "Unknown tool."


def decode_arguments(raw: Any) -> dict[str, Any]:
    """Decode provider tool-call arguments (a JSON string or an already-decoded mapping)."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        decoded = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise ValueError(f"Arguments are not valid JSON: {e}") from None
    if not isinstance(decoded, dict):
        raise ValueError("Arguments must be a JSON object")
    return decoded


class ToolExecutor:
    def __init__(
        self,
        handlers: dict[BuiltinTool, ToolHandler],
        webhooks: WebhookInvoker,
        settings: ToolSettings,
    ):
        self._handlers = handlers
        self._webhooks = webhooks
        self._settings = settings

    async def _dispatch(self, name: str, arguments: dict[str, Any], context: ToolContext) -> str:
        declaration = context.find(name)
        if declaration is None:
            return UNKNOWN_TOOL
        if isinstance(declaration, BuiltinDeclaration):
            return await self._handlers[declaration.builtin].call(arguments, context)
        if isinstance(declaration, WebhookDeclaration):
            return await self._webhooks.call(declaration.tool, arguments)
        return UNKNOWN_TOOL

    async def execute(self, tool_call: Any, context: ToolContext) -> ToolCall:
        """Execute one provider tool call; never raises."""
        call_id = getattr(tool_call, "id", "") or ""
        name = tool_call.function.name
        arguments: dict[str, Any] = {}
        try:
            arguments = decode_arguments(tool_call.function.arguments)
            result = await asyncio.wait_for(
                self._dispatch(name, arguments, context), timeout=self._settings.call_timeout
            )
        except Exception as e:
            if isinstance(e, asyncio.TimeoutError):
                message = f"timed out after {self._settings.call_timeout}s"
            else:
                message = str(e) or type(e).__name__
            error = ToolExecutionError(name, message, cause=e)
            # Pass error back to the model rather than failing the turn
            logger.warning(str(error))
            return ToolCall(id=call_id, name=name, arguments=arguments, result=f"Error: {error}", error=True)

        return ToolCall(id=call_id, name=name, arguments=arguments, result=result)

    async def execute_all(self, tool_calls: list[Any], context: ToolContext) -> list[ToolCall]:
        """Execute every call concurrently; results keep the input order."""
        if not tool_calls:
            return []
        logger.info(f"Executing {len(tool_calls)} tool call(s): {[c.function.name for c in tool_calls]}")
        return list(await asyncio.gather(*(self.execute(c, context) for c in tool_calls)))
