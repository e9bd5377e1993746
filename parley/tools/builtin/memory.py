"""Active-learning memory capture."""

from typing import Any

from parley.config.logging import get_logger
from parley.storage.base import MemoryRepository
from parley.tools.base import BuiltinTool, ToolContext, ToolHandler, require_str

logger = get_logger(__name__)


class SaveMemoryTool(ToolHandler):
    tool = BuiltinTool.SAVE_MEMORY
    description = (
        "Save a durable fact, preference or correction about the user or the "
        "conversation so it is remembered in future chats."
    )
    parameters = {
        "type": "object",
        "properties": {"content": {"type": "string", "description": "The fact to remember"}},
        "required": ["content"],
    }

    def __init__(self, memories: MemoryRepository):
        self._memories = memories

    async def call(self, arguments: dict[str, Any], context: ToolContext) -> str:
        content = require_str(arguments, "content")

        # Shared platforms write tenant-wide rows; others stay with the sender
        if context.shares_memory:
            platform, external_id = None, None
        else:
            platform, external_id = context.platform, context.sender_id

        await self._memories.add(
            context.tenant_id, content, "active_learning", platform=platform, external_id=external_id
        )
        logger.info(
            f"Saved active learning memory for tenant {context.tenant_id} "
            f"(platform={platform}, external_id={external_id})"
        )
        return "Memory saved."
