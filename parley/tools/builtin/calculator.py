"""
Arithmetic calculator.

Expressions are checked against a character allow-list and then evaluated by
a small recursive-descent parser. Nothing is ever passed to ``eval``.

Grammar:
    expr   := term (("+" | "-") term)*
    term   := factor (("*" | "/") factor)*
    factor := ("+" | "-") factor | NUMBER | "(" expr ")"
"""

import re
from typing import Any

from parley.tools.base import BuiltinTool, ToolContext, ToolHandler

_ALLOWED_RE = re.compile(r"^[0-9+\-*/().\s]*$")
_TOKEN_RE = re.compile(r"\s*(?:(\d+\.?\d*|\.\d+)|(.))")


class CalculationError(ValueError):
    pass


def _tokenize(expression: str) -> list[str]:
    tokens: list[str] = []
    for number, op in _TOKEN_RE.findall(expression):
        if number:
            tokens.append(number)
        elif op and not op.isspace():
            tokens.append(op)
    return tokens


class _Parser:
    def __init__(self, tokens: list[str]):
        self._tokens = tokens
        self._pos = 0

    def _peek(self) -> str | None:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _next(self) -> str:
        token = self._peek()
        if token is None:
            raise CalculationError("Unexpected end of expression")
        self._pos += 1
        return token

    def parse(self) -> float:
        value = self._expr()
        if self._peek() is not None:
            raise CalculationError(f"Unexpected token '{self._peek()}'")
        return value

    def _expr(self) -> float:
        value = self._term()
        while self._peek() in ("+", "-"):
            if self._next() == "+":
                value += self._term()
            else:
                value -= self._term()
        return value

    def _term(self) -> float:
        value = self._factor()
        while self._peek() in ("*", "/"):
            op = self._next()
            rhs = self._factor()
            if op == "*":
                value *= rhs
            else:
                if rhs == 0:
                    raise CalculationError("Division by zero")
                value /= rhs
        return value

    def _factor(self) -> float:
        token = self._next()
        if token == "+":
            return self._factor()
        if token == "-":
            return -self._factor()
        if token == "(":
            value = self._expr()
            if self._next() != ")":
                raise CalculationError("Missing closing parenthesis")
            return value
        try:
            return float(token)
        except ValueError:
            raise CalculationError(f"Unexpected token '{token}'") from None


def evaluate(expression: str) -> float:
    """Evaluate an arithmetic expression, raising CalculationError on bad input."""
    if not _ALLOWED_RE.match(expression):
        raise CalculationError("Invalid characters in expression")
    tokens = _tokenize(expression)
    if not tokens:
        raise CalculationError("Empty expression")
    return _Parser(tokens).parse()


def format_number(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return repr(round(value, 12))


class CalculatorTool(ToolHandler):
    tool = BuiltinTool.CALCULATOR
    description = "Evaluate a mathematical expression."
    parameters = {
        "type": "object",
        "properties": {"expression": {"type": "string", "description": "e.g. '2 + 2 * (3 - 1)'"}},
        "required": ["expression"],
    }

    async def call(self, arguments: dict[str, Any], context: ToolContext) -> str:
        expression = str(arguments.get("expression", ""))
        try:
            return format_number(evaluate(expression))
        except CalculationError as e:
            return f"Error: {e}"
