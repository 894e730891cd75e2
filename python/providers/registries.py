"""
Corporate registry adapters

Registries do not score their search results, so confidence is the
rapidfuzz token-set similarity between the queried name and the
registered name. Every hit carries a positive tag; a confirmed registry
record lowers the penalty total.
"""

import logging
import re
from typing import Any, Iterable, List, Optional, Tuple

from rapidfuzz import fuzz

from providers.base import HttpScreeningProvider
from risk_models import Candidate, EntityKind, FlagKind

logger = logging.getLogger(__name__)

COMPANIES_ONLY = frozenset({EntityKind.COMPANY})


class RegistryProvider(HttpScreeningProvider):
    """Common conversion of (registered name, metadata) pairs into candidates"""
    entity_kinds = COMPANIES_ONLY
    flag = FlagKind.REGISTRY_VERIFIED
    dataset = ""

    def _candidates(self, query: str, records: Iterable[Tuple[str, dict]]) -> List[Candidate]:
        candidates = []
        for registered_name, meta in records:
            if not registered_name:
                continue
            confidence = fuzz.token_set_ratio(query.lower(), registered_name.lower()) / 100.0
            candidates.append(Candidate(
                label=registered_name,
                confidence=confidence,
                tags=frozenset({self.flag}),
                datasets=(self.dataset,),
                source_meta=meta,
            ))
        return candidates

    def _require(self, payload: Any, *path: str) -> Any:
        """Walk nested keys of a JSON object, raising on a missing level"""
        node = payload
        for key in path:
            if not isinstance(node, dict) or key not in node:
                raise self.malformed(f"missing '{'.'.join(path)}'")
            node = node[key]
        return node


class UkCompaniesHouseProvider(RegistryProvider):
    """UK Companies House search. Only active companies count."""
    name = "uk_companies_house"
    label = "UK Companies House"
    countries = frozenset({'GB'})
    requires_api_key = True
    dataset = "gb_companies_house"

    BASE_URL = "https://api.company-information.service.gov.uk/search/companies"

    def query(self, name: str) -> List[Candidate]:
        payload = self.request_json(
            'GET', self.BASE_URL,
            params={'q': name, 'items_per_page': 5},
            auth=(self.api_key, ''),
        )
        items = self._require(payload, 'items')
        if not isinstance(items, list):
            raise self.malformed("'items' is not a list")
        records = [
            (item.get('title'), {
                'company_number': item.get('company_number'),
                'status': item.get('company_status'),
                'incorporated': item.get('date_of_creation'),
            })
            for item in items
            if isinstance(item, dict) and item.get('company_status') == 'active'
        ]
        return self._candidates(name, records)


class SingaporeAcraProvider(RegistryProvider):
    """Singapore ACRA registered entities via data.gov.sg"""
    name = "singapore_acra"
    label = "Singapore ACRA"
    countries = frozenset({'SG'})
    dataset = "sg_acra"

    BASE_URL = "https://data.gov.sg/api/action/datastore_search"
    RESOURCE_ID = "d_3f960c10fed6145404ca7b821f263b87"

    def query(self, name: str) -> List[Candidate]:
        payload = self.request_json(
            'GET', self.BASE_URL,
            params={'resource_id': self.RESOURCE_ID, 'q': name, 'limit': 5},
        )
        rows = self._require(payload, 'result', 'records')
        if not isinstance(rows, list):
            raise self.malformed("'result.records' is not a list")
        records = [
            (row.get('entity_name'), {
                'uen': row.get('uen'),
                'status': row.get('entity_status_description') or row.get('uen_status'),
            })
            for row in rows if isinstance(row, dict)
        ]
        return self._candidates(name, records)


class OpenCorporatesProvider(RegistryProvider):
    """OpenCorporates global company index. A listing is weaker than verification."""
    name = "opencorporates"
    label = "OpenCorporates"
    flag = FlagKind.REGISTRY_LISTED
    dataset = "opencorporates"

    BASE_URL = "https://api.opencorporates.com/v0.4/companies/search"

    def query(self, name: str) -> List[Candidate]:
        params = {'q': name, 'per_page': 5}
        if self.api_key:
            params['api_token'] = self.api_key
        payload = self.request_json('GET', self.BASE_URL, params=params)
        companies = self._require(payload, 'results', 'companies')
        if not isinstance(companies, list):
            raise self.malformed("'results.companies' is not a list")
        records = []
        for wrapper in companies:
            company = wrapper.get('company', {}) if isinstance(wrapper, dict) else {}
            records.append((company.get('name'), {
                'jurisdiction': company.get('jurisdiction_code'),
                'company_number': company.get('company_number'),
                'status': company.get('current_status'),
                'url': company.get('opencorporates_url'),
            }))
        return self._candidates(name, records)


class GleifProvider(RegistryProvider):
    """GLEIF Legal Entity Identifier records"""
    name = "gleif"
    label = "GLEIF LEI"
    flag = FlagKind.LEI_VERIFIED
    dataset = "gleif_lei"

    BASE_URL = "https://api.gleif.org/api/v1/lei-records"

    def query(self, name: str) -> List[Candidate]:
        payload = self.request_json(
            'GET', self.BASE_URL,
            params={'filter[entity.legalName]': name, 'page[size]': 5},
            headers={'Accept': 'application/vnd.api+json'},
        )
        data = self._require(payload, 'data')
        if not isinstance(data, list):
            raise self.malformed("'data' is not a list")
        records = []
        for record in data:
            attributes = record.get('attributes', {}) if isinstance(record, dict) else {}
            entity = attributes.get('entity', {})
            records.append((self._legal_name(entity), {
                'lei': attributes.get('lei'),
                'status': entity.get('status'),
                'jurisdiction': entity.get('jurisdiction'),
            }))
        return self._candidates(name, records)

    @staticmethod
    def _legal_name(entity: dict) -> Optional[str]:
        legal_name = entity.get('legalName')
        if isinstance(legal_name, dict):
            return legal_name.get('name')
        return legal_name


class SecEdgarProvider(RegistryProvider):
    """SEC EDGAR full-text search over periodic filings (10-K, 10-Q, 8-K)"""
    name = "sec_edgar"
    label = "SEC EDGAR"
    countries = frozenset({'US'})
    flag = FlagKind.PUBLIC_FILING
    dataset = "sec_edgar"

    BASE_URL = "https://efts.sec.gov/LATEST/search-index"

    # "ACME CORP  (ACME)  (CIK 0000123456)" -> "ACME CORP"
    _PARENTHETICAL = re.compile(r'\s*\([^)]*\)')

    def query(self, name: str) -> List[Candidate]:
        payload = self.request_json(
            'GET', self.BASE_URL,
            params={'q': f'"{name}"', 'forms': '10-K,10-Q,8-K', 'from': 0, 'size': 5},
        )
        hits = self._require(payload, 'hits', 'hits')
        if not isinstance(hits, list):
            raise self.malformed("'hits.hits' is not a list")
        records = []
        for hit in hits:
            source = hit.get('_source', {}) if isinstance(hit, dict) else {}
            display_names = source.get('display_names') or []
            if not display_names:
                continue
            records.append((self._PARENTHETICAL.sub('', display_names[0]).strip(), {
                'form': source.get('form') or source.get('file_type'),
                'filed': source.get('file_date'),
                'ciks': source.get('ciks') or [],
            }))
        return self._candidates(name, records)
