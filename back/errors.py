"""
Error taxonomy for content resolution.

Only NotFound, UpstreamError and InvalidLookupKey ever reach the HTTP
layer. RateLimitExceeded and StoreUnavailable are absorbed internally.
"""


class ResolverError(Exception):
    """Base class for every resolution error."""


class InvalidLookupKey(ResolverError, ValueError):
    """Malformed or incomplete lookup key, rejected before any network call."""


class NotFound(ResolverError):
    """Every provider answered, none had the resource."""

    def __init__(self, resource_id: str, attempts: list | None = None):
        self.resource_id = resource_id
        self.attempts = attempts or []
        tried = ", ".join(a.provider_name for a in self.attempts) or "no providers"
        super().__init__(f"'{resource_id}' not found ({tried})")


class UpstreamError(ResolverError):
    """Every provider failed after exhausting its retries."""

    def __init__(self, resource_id: str, attempts: list, last_error: BaseException | None = None):
        self.resource_id = resource_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"All {len(attempts)} providers failed for '{resource_id}': {last_error}"
        )


class RateLimitExceeded(ResolverError):
    """A rate window is full. Raised by RateGate.try_acquire, never by acquire."""

    def __init__(self, scope: str, retry_after: float):
        self.scope = scope
        self.retry_after = retry_after
        super().__init__(f"Rate limit reached for '{scope}', retry in {retry_after:.2f}s")


class StoreUnavailable(ResolverError):
    """Persistent tier is unreachable or not configured."""
