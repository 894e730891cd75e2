"""
Email domain age lookup via RDAP

A corporate email on a domain registered a few weeks ago is a classic
fraud indicator. RDAP is the JSON successor of WHOIS; Verisign answers
directly for .com/.net, everything else goes through the rdap.org
bootstrap redirector.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from providers.base import JsonHttpClient

logger = logging.getLogger(__name__)


class RdapDomainAgeLookup(JsonHttpClient):
    name = "rdap"
    label = "RDAP Domain Registry"

    VERISIGN_URL = "https://rdap.verisign.com/{tld}/v1/domain/{domain}"
    BOOTSTRAP_URL = "https://rdap.org/domain/{domain}"

    empty_statuses = frozenset({404})

    def url_for(self, domain: str) -> str:
        tld = domain.rsplit('.', 1)[-1]
        if tld in ('com', 'net'):
            return self.VERISIGN_URL.format(tld=tld, domain=domain)
        return self.BOOTSTRAP_URL.format(domain=domain)

    def registration_date(self, domain: str) -> Optional[datetime]:
        """Registration timestamp of a domain, or None when the registry has no record

        Raises:
            ProviderUnavailable: RDAP server unreachable
            MalformedProviderResponse: payload without a parseable events list
        """
        domain = domain.strip().lower()
        payload = self.request_json('GET', self.url_for(domain))
        if payload is None:
            return None
        if not isinstance(payload, dict) or not isinstance(payload.get('events', []), list):
            raise self.malformed("expected an object with an 'events' list")

        for event in payload.get('events', []):
            if isinstance(event, dict) and event.get('eventAction') == 'registration':
                return self._parse_date(event.get('eventDate'))
        return None

    def age_days(self, domain: str, now: Optional[datetime] = None) -> Optional[int]:
        registered = self.registration_date(domain)
        if registered is None:
            return None
        now = now or datetime.now(timezone.utc)
        return max((now - registered).days, 0)

    def _parse_date(self, value: Optional[str]) -> datetime:
        if not value:
            raise self.malformed("registration event without eventDate")
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError as e:
            raise self.malformed(f"unparseable eventDate {value!r}") from e
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
