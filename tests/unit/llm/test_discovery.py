"""Unit tests for model discovery."""

import httpx
import pytest
import pytest_asyncio

from parley.llm.discovery import ModelDiscovery, parse_model_list

MODEL_LIST = {
    "models": [
        {
            "name": "models/gemini-1.5-flash",
            "supportedGenerationMethods": ["generateContent", "countTokens"],
            "inputTokenLimit": 1000000,
            "outputTokenLimit": 8192,
        },
        {"name": "models/text-embedding-004", "supportedGenerationMethods": ["embedContent"]},
        {"name": "models/gemini-2.5-pro", "supportedGenerationMethods": ["generateContent"]},
    ]
}


def _handler(request: httpx.Request) -> httpx.Response:
    if request.url.params.get("key") == "bad-key":
        return httpx.Response(400, json={"error": {"message": "API key not valid"}})
    return httpx.Response(200, json=MODEL_LIST)


@pytest_asyncio.fixture
async def client():
    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as http:
        yield http


@pytest.fixture
def discovery(settings, repos, client):
    return ModelDiscovery(repos.credentials, client, settings.llm)


class TestParseModelList:
    def test_keeps_generate_content_models(self):
        models = parse_model_list(MODEL_LIST)
        assert [m.name for m in models] == ["gemini-1.5-flash", "gemini-2.5-pro"]
        assert models[0].input_token_limit == 1000000
        assert models[0].output_token_limit == 8192
        assert models[1].input_token_limit is None

    def test_empty_payload(self):
        assert parse_model_list({}) == []


class TestModelDiscovery:
    @pytest.mark.asyncio
    async def test_refresh_stores_models_and_best(self, discovery, repos):
        credential = await repos.credentials.add("tenant-1", "good-key")

        models = await discovery.refresh(credential)

        assert [m.name for m in models] == ["gemini-1.5-flash", "gemini-2.5-pro"]
        [stored] = await repos.credentials.list_active("tenant-1")
        assert stored.best_model == "gemini-2.5-pro"
        assert stored.model_names == ["gemini-1.5-flash", "gemini-2.5-pro"]

    @pytest.mark.asyncio
    async def test_failure_leaves_credential_untouched(self, discovery, repos, caplog):
        credential = await repos.credentials.add("tenant-1", "bad-key")

        assert await discovery.refresh(credential) is None

        [stored] = await repos.credentials.list_active("tenant-1")
        assert stored.best_model is None
        assert stored.available_models == []
        assert "bad-key" not in caplog.text

    @pytest.mark.asyncio
    async def test_refresh_all_counts_successes(self, discovery, repos):
        await repos.credentials.add("tenant-1", "good-key")
        await repos.credentials.add("tenant-2", "bad-key")
        await repos.credentials.add("tenant-2", "other-good-key")

        assert await discovery.refresh_all() == 2
