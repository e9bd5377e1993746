"""
Model discovery.

Asks the provider which models each credential can reach and caches the
result on the credential (available models plus the top-scored one), which
is what the candidate cascade ranks on. Runs once at startup and then on an
interval; a failing credential is logged and skipped, never raised.
"""

from __future__ import annotations

import asyncio

import httpx

from parley.config.logging import get_logger
from parley.config.settings import LLMSettings
from parley.llm.models import CredentialInfo, DiscoveredModel, PersistenceError
from parley.llm.scoring import rank_models
from parley.storage.base import CredentialRepository

logger = get_logger(__name__)

GENERATE_METHOD = "generateContent"


def parse_model_list(payload: dict) -> list[DiscoveredModel]:
    """Keep models that support content generation, with the ``models/`` prefix stripped."""
    models = []
    for entry in payload.get("models") or []:
        if GENERATE_METHOD not in (entry.get("supportedGenerationMethods") or []):
            continue
        name = str(entry.get("name", "")).removeprefix("models/")
        if not name:
            continue
        models.append(
            DiscoveredModel(
                name=name,
                input_token_limit=entry.get("inputTokenLimit"),
                output_token_limit=entry.get("outputTokenLimit"),
            )
        )
    return models


class ModelDiscovery:
    def __init__(
        self,
        credentials: CredentialRepository,
        client: httpx.AsyncClient,
        settings: LLMSettings,
    ):
        self._credentials = credentials
        self._client = client
        self._settings = settings

    async def refresh(self, credential: CredentialInfo) -> list[DiscoveredModel] | None:
        """Refresh one credential. Returns the discovered models, or None on failure."""
        try:
            response = await self._client.get(
                self._settings.discovery_url, params={"key": credential.secret, "pageSize": 1000}
            )
            response.raise_for_status()
            models = parse_model_list(response.json())
        except (httpx.HTTPError, ValueError) as e:
            # Never log the URL, it carries the key
            logger.warning(f"Model discovery failed for credential {credential.id}: {type(e).__name__}")
            return None

        ranked = rank_models([m.name for m in models])
        best = ranked[0] if ranked else None
        try:
            await self._credentials.update_discovery(credential.id, models, best)
        except PersistenceError as e:
            logger.error(f"Could not store discovered models for credential {credential.id}: {e}")
            return None

        logger.info(f"Credential {credential.id}: {len(models)} models, best={best}")
        return models

    async def refresh_all(self) -> int:
        """Refresh every active credential. Returns how many succeeded."""
        credentials = await self._credentials.list_all_active()
        results = await asyncio.gather(*(self.refresh(c) for c in credentials))
        succeeded = sum(1 for r in results if r is not None)
        logger.info(f"Model discovery refreshed {succeeded}/{len(credentials)} credentials")
        return succeeded

    async def run_forever(self, interval: float | None = None) -> None:
        """Refresh now and then every ``interval`` seconds until cancelled."""
        interval = interval or self._settings.discovery_interval
        while True:
            try:
                await self.refresh_all()
            except Exception:
                # Keep the background loop alive; the next pass retries
                logger.exception("Model discovery pass failed")
            await asyncio.sleep(interval)
