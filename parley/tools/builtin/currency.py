"""Currency conversion against the public exchangerate-api rate table."""

import json
from typing import Any

import httpx

from parley.tools.base import BuiltinTool, ToolContext, ToolHandler, require_str

RATES_URL = "https://api.exchangerate-api.com/v4/latest/{base}"


class CurrencyConverterTool(ToolHandler):
    tool = BuiltinTool.CURRENCY_CONVERTER
    description = "Convert an amount from one currency to another using live rates."
    parameters = {
        "type": "object",
        "properties": {
            "amount": {"type": "number", "description": "Amount to convert"},
            "from": {"type": "string", "description": "Source currency code, e.g. USD"},
            "to": {"type": "string", "description": "Target currency code, e.g. EUR"},
        },
        "required": ["amount", "from", "to"],
    }

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def call(self, arguments: dict[str, Any], context: ToolContext) -> str:
        try:
            amount = float(arguments.get("amount"))
        except (TypeError, ValueError):
            raise ValueError("Argument 'amount' must be a number") from None
        source = require_str(arguments, "from").upper()
        target = require_str(arguments, "to").upper()

        response = await self._client.get(RATES_URL.format(base=source))
        if response.status_code == 404:
            return "Currency code not found."
        response.raise_for_status()

        rate = response.json().get("rates", {}).get(target)
        if rate is None:
            return "Currency code not found."

        return json.dumps({
            "amount": amount,
            "from": source,
            "to": target,
            "rate": rate,
            "result": round(amount * rate, 4),
        })
