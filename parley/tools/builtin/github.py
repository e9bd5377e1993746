"""GitHub repository lookup: metadata plus a truncated README."""

import base64
import binascii
import json
from typing import Any

import httpx

from parley.config.logging import get_logger
from parley.config.settings import ToolSettings
from parley.tools.base import BuiltinTool, ToolContext, ToolHandler, require_str

logger = get_logger(__name__)

API_URL = "https://api.github.com/repos/{owner}/{repo}"


class GitHubRepoTool(ToolHandler):
    tool = BuiltinTool.GITHUB_REPO
    description = "Get information and the README of a public GitHub repository."
    parameters = {
        "type": "object",
        "properties": {
            "owner": {"type": "string", "description": "Repository owner or organization"},
            "repo": {"type": "string", "description": "Repository name"},
        },
        "required": ["owner", "repo"],
    }

    def __init__(self, client: httpx.AsyncClient, settings: ToolSettings):
        self._client = client
        self._settings = settings

    async def _readme(self, base_url: str) -> str:
        response = await self._client.get(f"{base_url}/readme")
        if response.status_code != 200:
            return ""
        content = response.json().get("content") or ""
        try:
            text = base64.b64decode(content).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError) as e:
            logger.warning(f"Could not decode README from {base_url}: {e}")
            return ""
        return text[: self._settings.readme_max_chars]

    async def call(self, arguments: dict[str, Any], context: ToolContext) -> str:
        owner = require_str(arguments, "owner")
        repo = require_str(arguments, "repo")
        base_url = API_URL.format(owner=owner, repo=repo)

        response = await self._client.get(base_url, headers={"Accept": "application/vnd.github+json"})
        if response.status_code == 404:
            return "Repository not found."
        response.raise_for_status()
        data = response.json()

        return json.dumps({
            "name": data.get("full_name") or data.get("name"),
            "description": data.get("description"),
            "stars": data.get("stargazers_count"),
            "language": data.get("language"),
            "open_issues": data.get("open_issues_count"),
            "last_update": data.get("updated_at"),
            "readme": await self._readme(base_url),
        })
