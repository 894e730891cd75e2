"""
Screening provider adapter interface

Every external registry is wrapped in a ScreeningProvider that answers
one question: which records does the registry hold for this name? The
adapter converts the registry's own scores and categories into
Candidate objects (confidence in [0, 1], FlagKind tags) so nothing
downstream knows about provider payload formats.

Failures surface as ProviderUnavailable (network, timeout, HTTP error)
or MalformedProviderResponse (payload that cannot be interpreted).
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, FrozenSet, List, Optional

import requests
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from risk_models import Candidate, Entity, EntityKind
from rule_tables import country_to_code

logger = logging.getLogger(__name__)


# ============================================
# ERRORS
# ============================================

class ProviderError(Exception):
    """Base class for recoverable provider failures"""
    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class ProviderUnavailable(ProviderError):
    """Network failure, timeout or non-success HTTP status"""
    pass


class MalformedProviderResponse(ProviderError):
    """Provider answered but the payload could not be interpreted"""
    pass


# ============================================
# RETRY LOGIC
# ============================================

TRANSIENT_ERRORS = (requests.ConnectionError, requests.Timeout)


def create_retry_decorator(
    max_attempts: int = 2,
    min_wait: float = 0.5,
    max_wait: float = 4
) -> Callable:
    """
    Create a retry decorator for provider HTTP calls.

    Only connection errors and timeouts are retried; HTTP error statuses
    and undecodable payloads fail immediately.

    Args:
        max_attempts: Maximum number of attempts (1 disables retrying)
        min_wait: Minimum wait time between retries (seconds)
        max_wait: Maximum wait time between retries (seconds)
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )


# ============================================
# INTERFACE
# ============================================

class ScreeningProvider(ABC):
    """A registry that can be queried by name

    Class attributes:
        name: Stable identifier used in config and findings
        label: Human-readable source name reported in databasesChecked
        entity_kinds: Kinds of entity the registry holds
        countries: ISO codes the registry covers, or None for global
        supports_surname_fallback: Retry multi-word persons by surname
        max_edit_distance: Edit-distance limit for unscored hits
            (None uses the matcher default)
        requires_api_key: Provider is skipped when no key is configured
        requests_per_query: Most HTTP requests one query() may send
    """
    name: str = ""
    label: str = ""
    entity_kinds: FrozenSet[EntityKind] = frozenset({EntityKind.COMPANY, EntityKind.PERSON})
    countries: Optional[FrozenSet[str]] = None
    supports_surname_fallback: bool = False
    max_edit_distance: Optional[int] = None
    requires_api_key: bool = False
    requests_per_query: int = 1

    def applies_to(self, entity: Entity) -> bool:
        if entity.kind not in self.entity_kinds:
            return False
        if self.countries is None:
            return True
        return country_to_code(entity.country) in self.countries

    def is_configured(self) -> bool:
        return True

    @abstractmethod
    def query(self, name: str) -> List[Candidate]:
        """Return raw candidates for a name

        Raises:
            ProviderUnavailable: registry could not be reached
            MalformedProviderResponse: registry payload was not understood
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class JsonHttpClient:
    """JSON-over-HTTP plumbing shared by registry adapters and lookups"""
    name: str = ""

    # Statuses that mean "no records" rather than failure
    empty_statuses: FrozenSet[int] = frozenset()

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        retry_attempts: int = 2,
        api_key: str = "",
        user_agent: str = "TradeDiligence/1.0",
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.api_key = api_key
        self.user_agent = user_agent
        self._send = create_retry_decorator(max_attempts=retry_attempts)(self._send_once)

    def _send_once(self, method: str, url: str, **kwargs) -> requests.Response:
        headers = {'Accept': 'application/json', 'User-Agent': self.user_agent}
        headers.update(kwargs.pop('headers', {}) or {})
        return self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)

    def request_json(self, method: str, url: str, **kwargs) -> Optional[Any]:
        """Send a request and decode the JSON body

        Returns:
            Decoded payload, or None for a status listed in empty_statuses
        """
        try:
            response = self._send(method, url, **kwargs)
        except requests.Timeout as e:
            raise ProviderUnavailable(self.name, f"timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise ProviderUnavailable(self.name, f"request failed: {type(e).__name__}") from e

        if response.status_code in self.empty_statuses:
            return None
        if not 200 <= response.status_code < 300:
            raise ProviderUnavailable(self.name, f"HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise MalformedProviderResponse(self.name, "response body is not valid JSON") from e

    def malformed(self, message: str) -> MalformedProviderResponse:
        return MalformedProviderResponse(self.name, message)


class HttpScreeningProvider(JsonHttpClient, ScreeningProvider):
    """Base for JSON-over-HTTP registries using a shared requests session"""

    def is_configured(self) -> bool:
        return bool(self.api_key) or not self.requires_api_key
