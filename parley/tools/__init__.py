"""
Tool Integration Layer.

Declarations the model is offered each turn, the built-in handlers behind
them, tenant-registered webhook tools, and the executor that runs a batch of
tool calls concurrently.
"""

from parley.tools.base import (
    BuiltinDeclaration,
    BuiltinTool,
    ToolContext,
    ToolDeclaration,
    ToolHandler,
    WebhookDeclaration,
    WebhookToolSpec,
    to_provider_schema,
)

__all__ = [
    "BuiltinDeclaration",
    "BuiltinTool",
    "ToolContext",
    "ToolDeclaration",
    "ToolHandler",
    "WebhookDeclaration",
    "WebhookToolSpec",
    "to_provider_schema",
]
