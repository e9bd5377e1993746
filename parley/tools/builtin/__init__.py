"""Built-in tool handlers."""

import httpx

from parley.config.settings import ToolSettings
from parley.storage.base import MemoryRepository, ToolRepository
from parley.tools.base import BuiltinTool, ToolHandler
from parley.tools.builtin.calculator import CalculatorTool
from parley.tools.builtin.currency import CurrencyConverterTool
from parley.tools.builtin.github import GitHubRepoTool
from parley.tools.builtin.management import InstallToolTool, ManageToolsTool
from parley.tools.builtin.media import SendMediaTool
from parley.tools.builtin.memory import SaveMemoryTool
from parley.tools.builtin.weather import WeatherTool
from parley.tools.builtin.web import ScrapeUrlTool, WebSearchTool


def build_handlers(
    client: httpx.AsyncClient,
    settings: ToolSettings,
    memories: MemoryRepository,
    tools: ToolRepository,
) -> dict[BuiltinTool, ToolHandler]:
    """Instantiate every built-in handler, keyed by the tool it implements."""
    handlers: list[ToolHandler] = [
        WebSearchTool(client, settings),
        WeatherTool(client),
        CalculatorTool(),
        ScrapeUrlTool(client, settings),
        GitHubRepoTool(client, settings),
        CurrencyConverterTool(client),
        InstallToolTool(tools),
        SendMediaTool(client, settings),
        SaveMemoryTool(memories),
        ManageToolsTool(tools),
    ]
    return {h.tool: h for h in handlers}


__all__ = [
    "CalculatorTool",
    "CurrencyConverterTool",
    "GitHubRepoTool",
    "InstallToolTool",
    "ManageToolsTool",
    "SaveMemoryTool",
    "ScrapeUrlTool",
    "SendMediaTool",
    "WeatherTool",
    "WebSearchTool",
    "build_handlers",
]
