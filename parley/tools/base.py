"""
Tool declarations and the handler interface.

A declaration is what the model sees (name, description, JSON parameter
schema). Declarations are a tagged union so the executor can dispatch on the
variant instead of on name strings:

    BuiltinDeclaration(kind="builtin")  →  a ToolHandler implemented in-process
    WebhookDeclaration(kind="webhook")  →  a tenant-registered HTTP endpoint

Custom webhook tools are validated when they are registered (``WebhookToolSpec``),
so anything the registry declares is already safe to render and call.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Literal, Union
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator

TOOL_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]{0,63}$")

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD")

AuthType = Literal["bearer", "header", "query"]

# Schema advertised for webhook tools registered without one
PAYLOAD_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "payload": {
            "type": "string",
            "description": "JSON string payload to send to the tool",
        }
    },
}


class BuiltinTool(str, Enum):
    """Every tool implemented in-process. Values are the names the model sees."""

    WEB_SEARCH = "web_search"
    GET_WEATHER = "get_weather"
    CALCULATOR = "calculator"
    SCRAPE_URL = "scrape_url"
    GITHUB_REPO = "github_repo"
    CURRENCY_CONVERTER = "currency_converter"
    INSTALL_TOOL = "install_tool"
    SEND_MEDIA = "send_media"
    SAVE_MEMORY = "save_memory"
    MANAGE_TOOLS = "manage_tools"


BUILTIN_NAMES = frozenset(t.value for t in BuiltinTool)


class WebhookToolSpec(BaseModel):
    """A tenant-registered HTTP tool, validated at registration time."""

    id: str | None = Field(default=None, description="Stored row id, None before registration")
    name: str = Field(description="Function name exposed to the model")
    description: str = Field(default="")
    endpoint: str = Field(description="Absolute http(s) URL")
    method: str = Field(default="POST")
    headers: dict[str, str] = Field(default_factory=dict)
    parameter_schema: dict[str, Any] = Field(default_factory=dict)
    auth_type: AuthType | None = Field(default=None)
    auth_param_name: str | None = Field(default=None)
    api_key: str | None = Field(default=None, repr=False)
    is_admin_only: bool = Field(default=False)

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        v = v.strip()
        if not TOOL_NAME_PATTERN.match(v):
            raise ValueError(
                "Tool name must start with a letter or underscore and contain only "
                "letters, digits, '_' or '-' (max 64 characters)"
            )
        if v in BUILTIN_NAMES:
            raise ValueError(f"Tool name '{v}' is reserved by a built-in tool")
        return v

    @field_validator("endpoint")
    @classmethod
    def _check_endpoint(cls, v: str) -> str:
        v = v.strip()
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("Endpoint must be an absolute http:// or https:// URL")
        return v

    @field_validator("method", mode="before")
    @classmethod
    def _check_method(cls, v: Any) -> str:
        method = str(v or "POST").strip().upper()
        if method not in HTTP_METHODS:
            raise ValueError(f"Method must be one of {', '.join(HTTP_METHODS)}")
        return method

    @field_validator("parameter_schema", mode="before")
    @classmethod
    def _check_schema(cls, v: Any) -> dict[str, Any]:
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("Parameter schema must be a JSON object")
        if not v:
            return v
        if v.get("type") != "object":
            raise ValueError("Parameter schema must have type 'object'")
        if not isinstance(v.get("properties", {}), dict):
            raise ValueError("Parameter schema 'properties' must be a mapping")
        return v

    @model_validator(mode="after")
    def _check_auth(self) -> WebhookToolSpec:
        if self.auth_type == "header" and not self.auth_param_name:
            self.auth_param_name = "Authorization"
        if self.auth_type == "query" and not self.auth_param_name:
            raise ValueError("Query auth requires auth_param_name")
        return self

    @property
    def effective_schema(self) -> dict[str, Any]:
        return self.parameter_schema or PAYLOAD_SCHEMA

    @classmethod
    def from_row(cls, row: Any) -> WebhookToolSpec:
        """Build a spec from a stored tool row (raises ValidationError if the row is invalid)."""
        return cls(
            id=row.id,
            name=row.name,
            description=row.description or "",
            endpoint=row.endpoint,
            method=row.method,
            headers=row.headers or {},
            parameter_schema=row.parameter_schema or {},
            auth_type=row.auth_type or None,
            auth_param_name=row.auth_param_name,
            api_key=row.api_key,
            is_admin_only=bool(row.is_admin_only),
        )


class BuiltinDeclaration(BaseModel):
    kind: Literal["builtin"] = "builtin"
    builtin: BuiltinTool
    description: str
    parameters: dict[str, Any]

    @property
    def name(self) -> str:
        return self.builtin.value


class WebhookDeclaration(BaseModel):
    kind: Literal["webhook"] = "webhook"
    tool: WebhookToolSpec

    @property
    def name(self) -> str:
        return self.tool.name

    @property
    def description(self) -> str:
        return self.tool.description

    @property
    def parameters(self) -> dict[str, Any]:
        return self.tool.effective_schema


ToolDeclaration = Annotated[
    Union[BuiltinDeclaration, WebhookDeclaration],
    Field(discriminator="kind"),
]


def to_provider_schema(declarations: list[BuiltinDeclaration | WebhookDeclaration]) -> list[dict[str, Any]]:
    """Render declarations in the OpenAI function format LiteLLM expects."""
    return [
        {
            "type": "function",
            "function": {
                "name": d.name,
                "description": d.description,
                "parameters": d.parameters,
            },
        }
        for d in declarations
    ]


@dataclass
class ToolContext:
    """Who is calling a tool and what they were offered."""

    tenant_id: str
    platform: str
    sender_id: str | None = None
    chat_type: str = "private"
    is_admin: bool = False
    shares_memory: bool = False
    declarations: list[BuiltinDeclaration | WebhookDeclaration] = field(default_factory=list)

    def find(self, name: str) -> BuiltinDeclaration | WebhookDeclaration | None:
        for declaration in self.declarations:
            if declaration.name == name:
                return declaration
        return None


class ToolHandler(ABC):
    """
    Abstract base class for built-in tools.

    Handlers return text for the model. Anything they raise is caught by the
    executor and reported to the model as an error string, so handlers only
    need to return text for outcomes the model should phrase itself
    (e.g. "Location not found.").
    """

    tool: BuiltinTool
    description: str
    parameters: dict[str, Any]

    def declaration(self) -> BuiltinDeclaration:
        return BuiltinDeclaration(builtin=self.tool, description=self.description, parameters=self.parameters)

    @abstractmethod
    async def call(self, arguments: dict[str, Any], context: ToolContext) -> str:
        """
        Run the tool.

        Args:
            arguments: Arguments decoded from the model's tool call
            context: Caller identity and the declarations offered this turn

        Returns:
            Result text handed back to the model
        """


def require_str(arguments: dict[str, Any], key: str) -> str:
    """Fetch a required non-empty string argument or raise ValueError."""
    value = arguments.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError(f"Missing required argument '{key}'")
    return str(value).strip()
