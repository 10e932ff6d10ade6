"""
Ordered provider fallback.

Providers are tried one at a time, in the caller's order, never in
parallel, so a request spends rate budget on one upstream at a time.
The first non-empty payload wins. Each provider goes through
    TieredCache -> RateGate -> retry.execute -> source.fetch

Outcomes:
- Resolution with served_by set: some provider had it.
- Resolution.not_found(): every provider answered and none had it
  (at least one answered empty, the rest may have failed).
- UpstreamError: every provider failed.
"""

import asyncio

import config
import retry
from cache_key import lookup_key
from errors import UpstreamError
from models import ProviderResult, Resolution, is_empty
from rate_gate import RateGate
from retry import RetryPolicy
from sources.base import ContentSource
from tiered_cache import TieredCache


class ProviderChain:
    def __init__(
        self,
        cache: TieredCache,
        gate: RateGate,
        policy: RetryPolicy | None = None,
        call_timeout: float = config.ORIGIN_CALL_TIMEOUT,
        sleep=asyncio.sleep,
    ):
        self.cache = cache
        self.gate = gate
        self.policy = policy or RetryPolicy()
        self.call_timeout = call_timeout
        self._sleep = sleep

    def _origin_loader(self, source: ContentSource, resource_id: str, variant: str):
        scope = source.rate_scope or source.name

        async def attempt():
            await self.gate.acquire(scope)
            return await asyncio.wait_for(source.fetch(resource_id, variant), self.call_timeout)

        async def load():
            return await retry.execute(
                attempt, self.policy, label=f"{source.name}:{resource_id}", sleep=self._sleep
            )

        return load

    async def resolve(
        self,
        resource_type: str,
        resource_id: str,
        providers: list[ContentSource],
        variant: str | None = None,
        refresh: bool = False,
    ) -> Resolution:
        """
        `variant` is the language category for streams. When None, each
        provider's own name is used (chapters).
        """
        # every key is validated before the first network call
        keys = [
            lookup_key(resource_type, resource_id, source.name, variant or source.name)
            for source in providers
        ]

        attempts: list[ProviderResult] = []
        last_error = None
        for source, key in zip(providers, keys):
            try:
                payload = await self.cache.get(
                    key,
                    self._origin_loader(source, key.resource_id, key.variant),
                    refresh=refresh,
                    persist=source.persistent,
                    ttl=source.volatile_ttl,
                )
            except Exception as e:
                last_error = e
                attempts.append(ProviderResult(source.name, error=e))
                print(f"[chain] {source.name} failed for '{resource_id}', trying next: {e!r}")
                continue

            if is_empty(payload):
                attempts.append(ProviderResult(source.name, succeeded=True))
                print(f"[chain] {source.name} has nothing for '{resource_id}', trying next")
                continue

            attempts.append(ProviderResult(source.name, payload=payload, succeeded=True))
            print(f"[chain] '{resource_id}' served by {source.name}")
            return Resolution(payload=payload, served_by=source.name, attempts=attempts)

        if attempts and not any(a.succeeded for a in attempts):
            print(f"[chain] All providers failed for '{resource_id}'")
            raise UpstreamError(resource_id, attempts, last_error)

        print(f"[chain] '{resource_id}' not found on {len(attempts)} providers")
        return Resolution.not_found(attempts)
