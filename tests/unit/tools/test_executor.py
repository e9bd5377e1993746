"""
Unit tests for the tool executor.

Tests cover:
- Dispatch to built-in handlers and webhook tools by declaration
- Error isolation (one failing call never affects the others)
- Concurrency and result ordering
- Argument decoding
"""

import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from parley.tools.base import (
    BuiltinTool,
    ToolContext,
    ToolHandler,
    WebhookDeclaration,
    WebhookToolSpec,
)
from parley.tools.builtin.calculator import CalculatorTool
from parley.tools.executor import UNKNOWN_TOOL, ToolExecutor, decode_arguments


def _tool_call(name: str, arguments: Any, call_id: str = "call_1") -> MagicMock:
    call = MagicMock()
    call.id = call_id
    call.function.name = name
    call.function.arguments = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return call


class _SlowTool(ToolHandler):
    """Sleeps, then reports when it finished."""

    tool = BuiltinTool.WEB_SEARCH
    description = "slow"
    parameters = {"type": "object", "properties": {}}

    def __init__(self, delay: float):
        self.delay = delay
        self.finished: list[str] = []

    async def call(self, arguments, context):
        await asyncio.sleep(self.delay)
        self.finished.append(arguments.get("tag", ""))
        return f"done {arguments.get('tag', '')}"


class _BrokenTool(ToolHandler):
    tool = BuiltinTool.SCRAPE_URL
    description = "broken"
    parameters = {"type": "object", "properties": {}}

    async def call(self, arguments, context):
        raise RuntimeError("connection reset")


@pytest.fixture
def webhooks():
    invoker = MagicMock()
    invoker.call = AsyncMock(return_value='{"status": "shipped"}')
    return invoker


def _executor(settings, handlers, webhooks) -> ToolExecutor:
    return ToolExecutor({h.tool: h for h in handlers}, webhooks, settings.tools)


def _context(*handlers, webhook_specs=()) -> ToolContext:
    declarations = [h.declaration() for h in handlers]
    declarations += [WebhookDeclaration(tool=spec) for spec in webhook_specs]
    return ToolContext(tenant_id="tenant-1", platform="playground", declarations=declarations)


class TestDispatch:
    @pytest.mark.asyncio
    async def test_builtin(self, settings, webhooks):
        calculator = CalculatorTool()
        executor = _executor(settings, [calculator], webhooks)

        result = await executor.execute(_tool_call("calculator", {"expression": "6*7"}), _context(calculator))

        assert result.id == "call_1"
        assert result.name == "calculator"
        assert result.arguments == {"expression": "6*7"}
        assert result.result == "42"
        assert result.error is False

    @pytest.mark.asyncio
    async def test_webhook(self, settings, webhooks):
        spec = WebhookToolSpec(name="order_status", endpoint="https://shop.example.com/status")
        executor = _executor(settings, [], webhooks)

        result = await executor.execute(
            _tool_call("order_status", {"order_id": "A1"}), _context(webhook_specs=[spec])
        )

        assert result.result == '{"status": "shipped"}'
        webhooks.call.assert_awaited_once_with(spec, {"order_id": "A1"})

    @pytest.mark.asyncio
    async def test_undeclared_tool_is_unknown(self, settings, webhooks):
        """A registered handler that was not offered this turn must not run."""
        calculator = CalculatorTool()
        executor = _executor(settings, [calculator], webhooks)

        result = await executor.execute(_tool_call("calculator", {"expression": "1+1"}), _context())

        assert result.result == UNKNOWN_TOOL


class TestErrors:
    @pytest.mark.asyncio
    async def test_handler_exception_becomes_error_text(self, settings, webhooks):
        broken = _BrokenTool()
        executor = _executor(settings, [broken], webhooks)

        result = await executor.execute(_tool_call("scrape_url", {}), _context(broken))

        assert result.error is True
        assert result.result == "Error: Tool 'scrape_url' failed: connection reset"

    @pytest.mark.asyncio
    async def test_invalid_json_arguments(self, settings, webhooks):
        calculator = CalculatorTool()
        executor = _executor(settings, [calculator], webhooks)

        result = await executor.execute(_tool_call("calculator", "{not json"), _context(calculator))

        assert result.error is True
        assert "not valid JSON" in result.result
        assert result.arguments == {}

    @pytest.mark.asyncio
    async def test_timeout(self, settings, webhooks):
        settings.tools.call_timeout = 0.05
        slow = _SlowTool(delay=1)
        executor = _executor(settings, [slow], webhooks)

        result = await executor.execute(_tool_call("web_search", {}), _context(slow))

        assert result.error is True
        assert "timed out after 0.05s" in result.result


class TestExecuteAll:
    @pytest.mark.asyncio
    async def test_results_keep_call_order(self, settings, webhooks):
        slow = _SlowTool(delay=0.05)
        calculator = CalculatorTool()
        executor = _executor(settings, [slow, calculator], webhooks)
        calls = [
            _tool_call("web_search", {"tag": "a"}, "call_1"),
            _tool_call("calculator", {"expression": "2+2"}, "call_2"),
        ]

        results = await executor.execute_all(calls, _context(slow, calculator))

        assert [r.id for r in results] == ["call_1", "call_2"]
        assert [r.result for r in results] == ["done a", "4"]

    @pytest.mark.asyncio
    async def test_calls_run_concurrently(self, settings, webhooks):
        slow = _SlowTool(delay=0.2)
        executor = _executor(settings, [slow], webhooks)
        calls = [_tool_call("web_search", {"tag": str(i)}, f"call_{i}") for i in range(5)]

        loop = asyncio.get_running_loop()
        started = loop.time()
        await executor.execute_all(calls, _context(slow))

        assert loop.time() - started < 0.2 * 5
        assert sorted(slow.finished) == ["0", "1", "2", "3", "4"]

    @pytest.mark.asyncio
    async def test_one_failure_does_not_affect_others(self, settings, webhooks):
        broken = _BrokenTool()
        calculator = CalculatorTool()
        executor = _executor(settings, [broken, calculator], webhooks)
        calls = [
            _tool_call("scrape_url", {}, "call_1"),
            _tool_call("calculator", {"expression": "3*3"}, "call_2"),
        ]

        first, second = await executor.execute_all(calls, _context(broken, calculator))

        assert first.error is True
        assert second.result == "9"

    @pytest.mark.asyncio
    async def test_empty(self, settings, webhooks):
        assert await _executor(settings, [], webhooks).execute_all([], _context()) == []


class TestDecodeArguments:
    def test_json_string(self):
        assert decode_arguments('{"a": 1}') == {"a": 1}

    def test_mapping_passthrough(self):
        assert decode_arguments({"a": 1}) == {"a": 1}

    @pytest.mark.parametrize("raw", [None, ""])
    def test_missing(self, raw):
        assert decode_arguments(raw) == {}

    def test_non_object_rejected(self):
        with pytest.raises(ValueError, match="JSON object"):
            decode_arguments("[1, 2]")
