"""
Tool management from inside a conversation.

``manage_tools`` lets any caller list the tools they were offered and add or
remove simple webhook tools. ``install_tool`` is the admin variant that
accepts the full webhook descriptor (method, headers, schema, auth).
"""

import json
from typing import Any

from pydantic import ValidationError

from parley.config.logging import get_logger
from parley.storage.base import ToolRepository
from parley.tools.base import BuiltinTool, ToolContext, ToolHandler, WebhookToolSpec, require_str

logger = get_logger(__name__)


def _json_object(value: Any, field: str) -> dict[str, Any]:
    """Accept a mapping or a JSON-encoded mapping."""
    if value is None or value == "":
        return {}
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            raise ValueError(f"'{field}' must be a JSON object") from None
    if not isinstance(value, dict):
        raise ValueError(f"'{field}' must be a JSON object")
    return value


def _validation_message(error: ValidationError) -> str:
    return "; ".join(err["msg"] for err in error.errors())


async def _store(tools: ToolRepository, tenant_id: str, spec: WebhookToolSpec) -> str:
    await tools.add(tenant_id, spec)
    logger.info(f"Registered webhook tool '{spec.name}' for tenant {tenant_id}")
    return f"Tool '{spec.name}' added. It will be available from the next message."


class ManageToolsTool(ToolHandler):
    tool = BuiltinTool.MANAGE_TOOLS
    description = "List, add or remove custom webhook tools."
    parameters = {
        "type": "object",
        "properties": {
            "action": {"type": "string", "enum": ["list", "add", "remove"]},
            "name": {"type": "string", "description": "Tool name (add/remove)"},
            "description": {"type": "string", "description": "What the tool does (add)"},
            "endpoint": {"type": "string", "description": "Webhook URL (add)"},
            "tool_id": {"type": "string", "description": "Tool id (remove; name also accepted)"},
        },
        "required": ["action"],
    }

    def __init__(self, tools: ToolRepository):
        self._tools = tools

    async def call(self, arguments: dict[str, Any], context: ToolContext) -> str:
        action = require_str(arguments, "action").lower()

        if action == "list":
            if not context.declarations:
                return "No tools available."
            return "\n".join(f"{d.name}: {d.description}" for d in context.declarations)

        if action == "add":
            try:
                spec = WebhookToolSpec(
                    name=require_str(arguments, "name"),
                    description=str(arguments.get("description") or ""),
                    endpoint=require_str(arguments, "endpoint"),
                )
            except ValidationError as e:
                raise ValueError(_validation_message(e)) from None
            return await _store(self._tools, context.tenant_id, spec)

        if action == "remove":
            target = arguments.get("tool_id") or arguments.get("name")
            if not target:
                raise ValueError("Missing required argument 'tool_id' or 'name'")
            if await self._tools.remove(context.tenant_id, str(target)):
                return f"Tool '{target}' removed."
            return f"Tool '{target}' not found."

        raise ValueError(f"Unknown action '{action}'. Use list, add or remove.")


class InstallToolTool(ToolHandler):
    tool = BuiltinTool.INSTALL_TOOL
    description = "Install a custom webhook tool with full configuration (admin only)."
    parameters = {
        "type": "object",
        "properties": {
            "name": {"type": "string"},
            "description": {"type": "string"},
            "endpoint": {"type": "string"},
            "method": {"type": "string", "enum": ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"]},
            "headers": {"type": "string", "description": "JSON object of extra headers"},
            "payload_schema": {"type": "string", "description": "JSON schema of the tool parameters"},
            "api_key": {"type": "string"},
            "auth_type": {"type": "string", "enum": ["bearer", "header", "query"]},
            "auth_param_name": {"type": "string"},
        },
        "required": ["name", "description", "endpoint"],
    }

    def __init__(self, tools: ToolRepository):
        self._tools = tools

    async def call(self, arguments: dict[str, Any], context: ToolContext) -> str:
        if not context.is_admin:
            raise PermissionError("Only administrators can install tools")

        try:
            spec = WebhookToolSpec(
                name=require_str(arguments, "name"),
                description=str(arguments.get("description") or ""),
                endpoint=require_str(arguments, "endpoint"),
                method=arguments.get("method") or "POST",
                headers={k: str(v) for k, v in _json_object(arguments.get("headers"), "headers").items()},
                parameter_schema=_json_object(arguments.get("payload_schema"), "payload_schema"),
                api_key=arguments.get("api_key") or None,
                auth_type=arguments.get("auth_type") or None,
                auth_param_name=arguments.get("auth_param_name") or None,
            )
        except ValidationError as e:
            raise ValueError(_validation_message(e)) from None
        return await _store(self._tools, context.tenant_id, spec)
