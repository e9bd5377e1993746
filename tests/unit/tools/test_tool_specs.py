"""Unit tests for webhook tool validation and declaration rendering."""

import pytest
from pydantic import TypeAdapter, ValidationError

from parley.tools.base import (
    PAYLOAD_SCHEMA,
    BuiltinDeclaration,
    BuiltinTool,
    ToolContext,
    ToolDeclaration,
    WebhookDeclaration,
    WebhookToolSpec,
    require_str,
    to_provider_schema,
)


def _spec(**overrides) -> WebhookToolSpec:
    values = {"name": "lookup_order", "endpoint": "https://shop.example.com/orders"}
    values.update(overrides)
    return WebhookToolSpec(**values)


class TestWebhookToolSpec:
    def test_defaults(self):
        spec = _spec()
        assert spec.method == "POST"
        assert spec.headers == {}
        assert spec.effective_schema == PAYLOAD_SCHEMA

    def test_method_normalized(self):
        assert _spec(method=" get ").method == "GET"

    @pytest.mark.parametrize("name", ["1tool", "has space", "x" * 65, "", "bad!"])
    def test_invalid_names(self, name):
        with pytest.raises(ValidationError, match="Tool name"):
            _spec(name=name)

    @pytest.mark.parametrize("name", ["calculator", "save_memory", "install_tool"])
    def test_builtin_names_reserved(self, name):
        with pytest.raises(ValidationError, match="reserved"):
            _spec(name=name)

    @pytest.mark.parametrize("endpoint", ["ftp://example.com", "/relative/path", "example.com/x", "https://"])
    def test_endpoint_must_be_absolute_http(self, endpoint):
        with pytest.raises(ValidationError, match="Endpoint"):
            _spec(endpoint=endpoint)

    def test_unknown_method_rejected(self):
        with pytest.raises(ValidationError, match="Method"):
            _spec(method="TRACE")

    def test_schema_must_be_object_type(self):
        with pytest.raises(ValidationError, match="type 'object'"):
            _spec(parameter_schema={"type": "array"})

    def test_schema_properties_must_be_mapping(self):
        with pytest.raises(ValidationError, match="properties"):
            _spec(parameter_schema={"type": "object", "properties": ["a"]})

    def test_explicit_schema_used(self):
        schema = {"type": "object", "properties": {"order_id": {"type": "string"}}}
        assert _spec(parameter_schema=schema).effective_schema == schema

    def test_header_auth_defaults_to_authorization(self):
        spec = _spec(auth_type="header", api_key="k")
        assert spec.auth_param_name == "Authorization"

    def test_query_auth_requires_param_name(self):
        with pytest.raises(ValidationError, match="auth_param_name"):
            _spec(auth_type="query", api_key="k")

    def test_api_key_hidden_from_repr(self):
        assert "s3cret" not in repr(_spec(auth_type="bearer", api_key="s3cret"))


class TestDeclarations:
    def test_discriminated_union(self):
        adapter = TypeAdapter(ToolDeclaration)
        builtin = adapter.validate_python(
            {"kind": "builtin", "builtin": "calculator", "description": "d", "parameters": {}}
        )
        webhook = adapter.validate_python(
            {"kind": "webhook", "tool": {"name": "hook", "endpoint": "https://example.com"}}
        )
        assert isinstance(builtin, BuiltinDeclaration)
        assert builtin.builtin is BuiltinTool.CALCULATOR
        assert isinstance(webhook, WebhookDeclaration)
        assert webhook.name == "hook"

    def test_provider_schema(self):
        declarations = [
            BuiltinDeclaration(builtin=BuiltinTool.CALCULATOR, description="Math", parameters={"type": "object"}),
            WebhookDeclaration(tool=_spec(description="Orders")),
        ]
        rendered = to_provider_schema(declarations)
        assert rendered[0] == {
            "type": "function",
            "function": {"name": "calculator", "description": "Math", "parameters": {"type": "object"}},
        }
        assert rendered[1]["function"]["name"] == "lookup_order"
        assert rendered[1]["function"]["parameters"] == PAYLOAD_SCHEMA

    def test_context_find(self):
        hook = WebhookDeclaration(tool=_spec())
        context = ToolContext(tenant_id="t", platform="playground", declarations=[hook])
        assert context.find("lookup_order") is hook
        assert context.find("calculator") is None


class TestRequireStr:
    def test_present(self):
        assert require_str({"q": "  cats "}, "q") == "cats"

    @pytest.mark.parametrize("arguments", [{}, {"q": None}, {"q": "   "}])
    def test_missing(self, arguments):
        with pytest.raises(ValueError, match="Missing required argument 'q'"):
            require_str(arguments, "q")
