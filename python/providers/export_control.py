"""
US Consolidated Screening List adapter (trade.gov)

The CSL merges eleven export-control and sanctions lists. Each hit names
its source list; the list decides how severe the finding is.
"""

import logging
import re
from typing import List, Optional

from providers.base import HttpScreeningProvider
from risk_models import Candidate, FlagKind

logger = logging.getLogger(__name__)

# CSL source abbreviation -> tag
CSL_SOURCE_TAGS = {
    'DPL': FlagKind.DENIED_PARTY,       # Denied Persons List
    'SDN': FlagKind.DENIED_PARTY,       # Specially Designated Nationals
    'EL': FlagKind.ENTITY_LIST,         # Entity List
    'MEU': FlagKind.ENTITY_LIST,        # Military End User List
    'UVL': FlagKind.UNVERIFIED_LIST,    # Unverified List
    'FSE': FlagKind.EXPORT_CONTROL,
    'SSI': FlagKind.EXPORT_CONTROL,
    'ISN': FlagKind.EXPORT_CONTROL,
    'DTC': FlagKind.EXPORT_CONTROL,
    'CAP': FlagKind.EXPORT_CONTROL,
    'CMIC': FlagKind.EXPORT_CONTROL,
    '561': FlagKind.EXPORT_CONTROL,
    'NS-MBS': FlagKind.EXPORT_CONTROL,
    'NS-ISA': FlagKind.EXPORT_CONTROL,
    'CCMC': FlagKind.EXPORT_CONTROL,
}

_SOURCE_NAME_HINTS = (
    ('denied persons', FlagKind.DENIED_PARTY),
    ('specially designated', FlagKind.DENIED_PARTY),
    ('military end user', FlagKind.ENTITY_LIST),
    ('entity list', FlagKind.ENTITY_LIST),
    ('unverified', FlagKind.UNVERIFIED_LIST),
)


def tag_for_source(source: Optional[str]) -> FlagKind:
    """Grade a CSL source string such as 'Entity List (EL) - Bureau of Industry and Security'"""
    source = source or ''
    code = re.search(r'\(([A-Z0-9\-]+)\)', source)
    if code and code.group(1) in CSL_SOURCE_TAGS:
        return CSL_SOURCE_TAGS[code.group(1)]
    if source.strip().upper() in CSL_SOURCE_TAGS:
        return CSL_SOURCE_TAGS[source.strip().upper()]
    lowered = source.lower()
    for hint, tag in _SOURCE_NAME_HINTS:
        if hint in lowered:
            return tag
    return FlagKind.EXPORT_CONTROL


class TradeGovCslProvider(HttpScreeningProvider):
    name = "trade_csl"
    label = "US Consolidated Screening List"
    requires_api_key = True

    BASE_URL = "https://api.trade.gov/gateway/v1/consolidated_screening_list/search"

    def query(self, name: str) -> List[Candidate]:
        payload = self.request_json(
            'GET', self.BASE_URL,
            params={'name': name, 'fuzzy_name': 'true'},
            headers={'subscription-key': self.api_key},
        )
        if not isinstance(payload, dict) or not isinstance(payload.get('results', []), list):
            raise self.malformed("expected an object with a 'results' list")

        candidates = []
        for result in payload.get('results', []):
            if not isinstance(result, dict) or not result.get('name'):
                continue
            score = result.get('score')
            confidence = None
            if score is not None:
                try:
                    confidence = max(0.0, min(float(score) / 100.0, 1.0))
                except (TypeError, ValueError):
                    raise self.malformed(f"non-numeric score {score!r}")
            source = result.get('source', '')
            candidates.append(Candidate(
                label=result['name'],
                confidence=confidence,
                tags=frozenset({tag_for_source(source)}),
                datasets=(f"csl:{source}",) if source else ('csl',),
                source_meta={
                    'source': source,
                    'programs': result.get('programs') or [],
                    'country': (result.get('addresses') or [{}])[0].get('country')
                    if result.get('addresses') else None,
                    'source_list_url': result.get('source_list_url'),
                },
            ))
        return candidates
