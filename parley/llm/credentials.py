"""
Credential pool and candidate cascade.

For every turn the pool produces an ordered plan of (credential, models)
pairs. The engine walks the plan until one attempt succeeds:

    credentials (least recently used first)
        → preferred mode: only credentials that can reach the preferred model
        → automatic mode: strongest cached best model first
    models per credential
        → preferred / best model, then the discovered list ranked by score
        → configured fallback list when the credential has no discovery data

Least-recently-used ordering spreads load across keys; the stable sort in
automatic mode keeps that order among credentials of equal strength.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

import litellm

from parley.config.logging import get_logger
from parley.llm.models import (
    CredentialExhausted,
    CredentialInfo,
    PersistenceError,
    ProviderError,
    QuotaExceeded,
)
from parley.llm.scoring import rank_models, score_model
from parley.storage.base import CredentialRepository

logger = get_logger(__name__)

_QUOTA_MARKERS = ("429", "resource_exhausted", "quota", "rate limit", "ratelimit")


@dataclass
class CandidatePlan:
    """One credential and the models to try on it, in order."""

    credential: CredentialInfo
    models: list[str] = field(default_factory=list)


def classify_failure(exc: Exception) -> ProviderError:
    """Map a provider exception to QuotaExceeded or a generic ProviderError."""
    if isinstance(exc, ProviderError):
        return exc
    message = str(exc) or type(exc).__name__
    if isinstance(exc, litellm.RateLimitError) or getattr(exc, "status_code", None) == 429:
        return QuotaExceeded(message, cause=exc)
    lowered = message.lower()
    if any(marker in lowered for marker in _QUOTA_MARKERS):
        return QuotaExceeded(message, cause=exc)
    return ProviderError(message, cause=exc)


def _dedupe(names: list[str]) -> list[str]:
    seen: set[str] = set()
    ordered = []
    for name in names:
        if name and name not in seen:
            seen.add(name)
            ordered.append(name)
    return ordered


class CredentialPool:
    """
    Plans which credentials and models to try for a turn.

    Args:
        credentials: Credential store
        fallback_models: Models tried on credentials that have no discovery data
    """

    def __init__(self, credentials: CredentialRepository, fallback_models: list[str]):
        self._credentials = credentials
        self._fallback_models = list(fallback_models)

    def _models_for(self, credential: CredentialInfo, preferred: str | None) -> list[str]:
        discovered = credential.model_names
        if not discovered and not credential.best_model:
            return _dedupe(([preferred] if preferred else []) + self._fallback_models)

        head = [preferred, credential.best_model]
        return _dedupe([m for m in head if m] + rank_models(discovered))

    async def plan(self, tenant_id: str, preferred_model: str | None = None) -> list[CandidatePlan]:
        """
        Build the ordered candidate plan for a tenant.

        Raises:
            CredentialExhausted: If the tenant has no active credentials
        """
        credentials = await self._credentials.list_active(tenant_id)
        if not credentials:
            raise CredentialExhausted("No active credentials", last_error="No active credentials")

        if preferred_model:
            capable = [c for c in credentials if preferred_model in c.model_names]
            if capable:
                return [CandidatePlan(c, self._models_for(c, preferred_model)) for c in capable]
            logger.warning(
                f"No credential for tenant {tenant_id} supports preferred model "
                f"'{preferred_model}', falling back to automatic selection"
            )

        ordered = sorted(credentials, key=lambda c: score_model(c.best_model), reverse=True)
        return [CandidatePlan(c, self._models_for(c, None)) for c in ordered]

    async def record_success(self, credential: CredentialInfo) -> None:
        """Mark a credential as just used. Failures are logged, never raised."""
        try:
            await self._credentials.mark_used(credential.id, datetime.now(timezone.utc))
        except PersistenceError as e:
            logger.error(f"Failed to update last-used time for credential {credential.id}: {e}")
