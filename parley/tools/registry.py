"""
Tool registry: decides which tools the model is offered for a turn.

Declaration order is fixed so the model sees a stable tool list:

    toggled built-ins → install_tool (admins) → send_media
        → tenant webhook tools → save_memory → manage_tools
"""

from __future__ import annotations

from pydantic import ValidationError

from parley.config.logging import get_logger
from parley.llm.models import INTERNAL_PLATFORMS, TenantSettingsInfo
from parley.storage.base import AdminRepository, ToolRepository
from parley.tools.base import (
    BuiltinDeclaration,
    BuiltinTool,
    ToolHandler,
    WebhookDeclaration,
    WebhookToolSpec,
)

logger = get_logger(__name__)

# Built-in tools a tenant can switch off, with the settings flag for each
TOGGLED_BUILTINS: list[tuple[BuiltinTool, str]] = [
    (BuiltinTool.WEB_SEARCH, "enable_web_search"),
    (BuiltinTool.GET_WEATHER, "enable_weather"),
    (BuiltinTool.CALCULATOR, "enable_calculator"),
    (BuiltinTool.SCRAPE_URL, "enable_scraper"),
    (BuiltinTool.GITHUB_REPO, "enable_github"),
    (BuiltinTool.CURRENCY_CONVERTER, "enable_currency"),
]


async def resolve_admin(
    admins: AdminRepository, tenant_id: str, platform: str, external_id: str | None
) -> bool:
    """Internal callers are always admins; external senders need an allow-list entry."""
    if platform in INTERNAL_PLATFORMS:
        return True
    if not external_id:
        return False
    return await admins.is_admin(tenant_id, platform, external_id)


class ToolRegistry:
    """Builds the per-turn declaration list from settings, admin status and stored tools."""

    def __init__(self, handlers: dict[BuiltinTool, ToolHandler], tools: ToolRepository):
        self._handlers = handlers
        self._tools = tools

    def _builtin(self, tool: BuiltinTool) -> BuiltinDeclaration:
        return self._handlers[tool].declaration()

    async def webhook_tools(self, tenant_id: str, is_admin: bool) -> list[WebhookToolSpec]:
        specs: list[WebhookToolSpec] = []
        for row in await self._tools.list_active(tenant_id):
            try:
                spec = WebhookToolSpec.from_row(row)
            except ValidationError as e:
                logger.warning(f"Skipping invalid stored tool '{row.name}' ({row.id}): {e}")
                continue
            if spec.is_admin_only and not is_admin:
                continue
            specs.append(spec)
        return specs

    async def declarations(
        self, tenant_id: str, settings: TenantSettingsInfo, is_admin: bool
    ) -> list[BuiltinDeclaration | WebhookDeclaration]:
        declared: list[BuiltinDeclaration | WebhookDeclaration] = [
            self._builtin(tool) for tool, flag in TOGGLED_BUILTINS if getattr(settings, flag)
        ]
        if is_admin:
            declared.append(self._builtin(BuiltinTool.INSTALL_TOOL))
        declared.append(self._builtin(BuiltinTool.SEND_MEDIA))

        # A webhook can't take a name already declared
        taken = {d.name for d in declared}
        for spec in await self.webhook_tools(tenant_id, is_admin):
            if spec.name in taken:
                logger.warning(f"Skipping duplicate tool name '{spec.name}' for tenant {tenant_id}")
                continue
            taken.add(spec.name)
            declared.append(WebhookDeclaration(tool=spec))

        declared.append(self._builtin(BuiltinTool.SAVE_MEMORY))
        declared.append(self._builtin(BuiltinTool.MANAGE_TOOLS))
        return declared
