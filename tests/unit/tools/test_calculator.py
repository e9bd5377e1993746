"""Unit tests for the calculator tool and its expression parser."""

import pytest

from parley.tools.base import ToolContext
from parley.tools.builtin.calculator import CalculationError, CalculatorTool, evaluate, format_number


class TestEvaluate:
    @pytest.mark.parametrize(
        "expression, expected",
        [
            ("2+2", 4),
            ("2 + 2 * (3 - 1)", 6),
            ("10 / 4", 2.5),
            ("-3 * -3", 9),
            ("+(1.5 + .5)", 2),
            ("((7))", 7),
            ("8 - 2 - 1", 5),
            ("16 / 4 / 2", 2),
        ],
    )
    def test_valid_expressions(self, expression, expected):
        assert evaluate(expression) == expected

    @pytest.mark.parametrize(
        "expression, message",
        [
            ("__import__('os')", "Invalid characters"),
            ("2 ** 3 x", "Invalid characters"),
            ("", "Empty expression"),
            ("1 / 0", "Division by zero"),
            ("(1 + 2", "Unexpected end"),
            ("1 + 2)", "Unexpected token"),
            ("1..2", "Unexpected token"),
        ],
    )
    def test_invalid_expressions(self, expression, message):
        with pytest.raises(CalculationError, match=message):
            evaluate(expression)


class TestFormatNumber:
    def test_integers_have_no_decimal_point(self):
        assert format_number(4.0) == "4"

    def test_float_noise_rounded(self):
        assert format_number(0.1 + 0.2) == "0.3"


class TestCalculatorTool:
    @pytest.mark.asyncio
    async def test_returns_result_text(self):
        """Should return the bare number for the model to phrase."""
        tool = CalculatorTool()
        result = await tool.call({"expression": "2+2"}, ToolContext(tenant_id="t", platform="playground"))
        assert result == "4"

    @pytest.mark.asyncio
    async def test_bad_expression_returns_error_text(self):
        """Should report parse errors as text rather than raising."""
        tool = CalculatorTool()
        result = await tool.call({"expression": "2 +"}, ToolContext(tenant_id="t", platform="playground"))
        assert result.startswith("Error: ")

    def test_declaration(self):
        declaration = CalculatorTool().declaration()
        assert declaration.name == "calculator"
        assert declaration.parameters["required"] == ["expression"]
