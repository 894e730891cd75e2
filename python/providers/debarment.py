"""
Debarment list adapters: World Bank debarred firms and SAM.gov exclusions
"""

import logging
from typing import Any, List

from providers.base import HttpScreeningProvider
from risk_models import Candidate, FlagKind

logger = logging.getLogger(__name__)


class WorldBankDebarmentProvider(HttpScreeningProvider):
    """World Bank ineligible firms and individuals (Socrata open data)

    The dataset has no relevance score; firm names there often carry
    extra legal-form words, so the edit-distance limit is wider.
    """
    name = "worldbank_debarment"
    label = "World Bank Debarred Firms"
    max_edit_distance = 5

    BASE_URL = "https://finances.worldbank.org/resource/kvtn-9wxx.json"

    def query(self, name: str) -> List[Candidate]:
        rows = self.request_json('GET', self.BASE_URL, params={'$q': name, '$limit': 10})
        if not isinstance(rows, list):
            raise self.malformed("expected a list of rows")
        candidates = []
        for row in rows:
            if not isinstance(row, dict):
                raise self.malformed("row is not an object")
            firm = row.get('firm_name') or row.get('supp_name')
            if not firm:
                continue
            candidates.append(Candidate(
                label=firm,
                confidence=None,
                tags=frozenset({FlagKind.DEBARMENT}),
                datasets=('worldbank_debarred',),
                source_meta={
                    'country': row.get('country_name'),
                    'from_date': row.get('debar_from_date') or row.get('from_date'),
                    'to_date': row.get('debar_to_date') or row.get('to_date'),
                    'grounds': row.get('grounds'),
                },
            ))
        return candidates


class SamGovExclusionsProvider(HttpScreeningProvider):
    """US federal procurement exclusions published by SAM.gov"""
    name = "sam_exclusions"
    label = "SAM.gov Exclusions"
    requires_api_key = True

    BASE_URL = "https://api.sam.gov/entity-information/v2/exclusions"

    def query(self, name: str) -> List[Candidate]:
        payload = self.request_json('GET', self.BASE_URL, params={'api_key': self.api_key, 'q': name})
        records = self._records(payload)
        candidates = []
        for record in records:
            label = self._name_of(record)
            if not label:
                continue
            candidates.append(Candidate(
                label=label,
                confidence=None,
                tags=frozenset({FlagKind.DEBARMENT}),
                datasets=('sam_exclusions',),
                source_meta={
                    'exclusion_type': record.get('exclusionType') or record.get('classification'),
                    'agency': record.get('excludingAgency'),
                    'activation_date': record.get('activationDate'),
                    'termination_date': record.get('terminationDate'),
                },
            ))
        return candidates

    def _records(self, payload: Any) -> List[dict]:
        if not isinstance(payload, dict):
            raise self.malformed("expected a JSON object")
        for key in ('excludedEntity', 'results'):
            if key in payload:
                records = payload[key] or []
                if not isinstance(records, list):
                    raise self.malformed(f"'{key}' is not a list")
                return records
        return []

    @staticmethod
    def _name_of(record: dict) -> str:
        ident = record.get('exclusionIdentification') or {}
        if ident.get('entityName'):
            return ident['entityName']
        person = ' '.join(p for p in (ident.get('firstName'), ident.get('lastName')) if p)
        return person or record.get('name') or record.get('firm') or ''
