"""
Invocation of tenant-registered webhook tools.

Headers start from ``Content-Type: application/json`` with the stored headers
layered on top, then auth is injected according to the tool's auth type.
GET and HEAD send the arguments as query parameters; every other method sends
them as a JSON body.
"""

import json
from typing import Any

import httpx

from parley.config.logging import get_logger
from parley.config.settings import ToolSettings
from parley.tools.base import WebhookToolSpec

logger = get_logger(__name__)


def build_request(spec: WebhookToolSpec, arguments: dict[str, Any]) -> dict[str, Any]:
    """Return keyword arguments for ``httpx.AsyncClient.request``."""
    headers = {"Content-Type": "application/json", **spec.headers}
    params: dict[str, Any] = {}

    if spec.api_key and spec.auth_type == "bearer":
        headers["Authorization"] = f"Bearer {spec.api_key}"
    elif spec.api_key and spec.auth_type == "header":
        headers[spec.auth_param_name or "Authorization"] = spec.api_key
    elif spec.api_key and spec.auth_type == "query":
        params[spec.auth_param_name] = spec.api_key

    body: Any = arguments
    # Tools registered without a schema receive a single JSON-encoded string
    if set(arguments) == {"payload"} and isinstance(arguments["payload"], str):
        try:
            body = json.loads(arguments["payload"])
        except json.JSONDecodeError:
            body = arguments

    request: dict[str, Any] = {"method": spec.method, "url": spec.endpoint, "headers": headers}
    if spec.method in ("GET", "HEAD"):
        if isinstance(body, dict):
            params.update({k: v if isinstance(v, str) else json.dumps(v) for k, v in body.items()})
    else:
        request["json"] = body
    if params:
        request["params"] = params
    return request


class WebhookInvoker:
    """Calls webhook tools and returns their response text within a budget."""

    def __init__(self, client: httpx.AsyncClient, settings: ToolSettings):
        self._client = client
        self._settings = settings

    async def call(self, spec: WebhookToolSpec, arguments: dict[str, Any]) -> str:
        response = await self._client.request(**build_request(spec, arguments))
        text = response.text[: self._settings.webhook_max_chars]
        if response.is_error:
            logger.warning(f"Webhook tool '{spec.name}' returned HTTP {response.status_code}")
            return f"Error: HTTP {response.status_code}: {text}"
        return text or f"HTTP {response.status_code} (empty response)"
