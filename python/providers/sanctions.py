"""
OpenSanctions adapter

Searches the OpenSanctions default collection, which aggregates
sanctions lists, PEP registers, wanted lists and debarment lists from
several hundred sources. Dataset names and topics are mapped to FlagKind
tags here, once.
"""

import logging
from typing import Any, Dict, FrozenSet, Iterable, List, Set

from providers.base import HttpScreeningProvider
from risk_models import Candidate, EntityKind, FlagKind
from text_utils import normalize_name

logger = logging.getLogger(__name__)

WANTED_DATASET_KEYWORDS = ('interpol', 'fbi', 'europol', 'most_wanted', 'wanted')


def name_variations(name: str) -> List[str]:
    """Search strings for one name: as given, surname first, first and last only

    Lists record many people surname first, and a middle name missing
    from the query hides a listed "first last" record. Variations that
    normalize to the same string as an earlier one are skipped.
    """
    variations = [name]
    seen = {normalize_name(name)}
    parts = normalize_name(name).split()
    if len(parts) >= 2:
        extra = [' '.join([parts[-1]] + parts[:-1])]
        if len(parts) > 2:
            extra.append(f"{parts[0]} {parts[-1]}")
        for variation in extra:
            if variation not in seen:
                seen.add(variation)
                variations.append(variation)
    return variations


def tags_for(datasets: Iterable[str], topics: Iterable[str]) -> FrozenSet[FlagKind]:
    """Map OpenSanctions datasets and topics onto FlagKind tags

    Records that carry none of the recognised adverse or PEP topics are
    still published in a screening collection and count as sanctions.
    """
    datasets = [d.lower() for d in datasets]
    topics = [t.lower() for t in topics]
    tags: Set[FlagKind] = set()

    if any(t.startswith('sanction') for t in topics):
        tags.add(FlagKind.SANCTIONS)
    if 'wanted' in topics or any(k in d for d in datasets for k in WANTED_DATASET_KEYWORDS):
        tags.add(FlagKind.WANTED)
    if 'debarment' in topics:
        tags.add(FlagKind.DEBARMENT)
    if 'export.control' in topics:
        tags.add(FlagKind.EXPORT_CONTROL)
    if any(t in ('role.pep', 'role.rca') for t in topics) or any('pep' in d for d in datasets):
        tags.add(FlagKind.PEP)

    if not tags:
        tags.add(FlagKind.SANCTIONS)
    return frozenset(tags)


class OpenSanctionsProvider(HttpScreeningProvider):
    name = "opensanctions"
    label = "OpenSanctions"
    entity_kinds = frozenset({EntityKind.COMPANY, EntityKind.PERSON, EntityKind.VESSEL})
    supports_surname_fallback = True
    requests_per_query = 3

    BASE_URL = "https://api.opensanctions.org/search/default"
    RESULT_LIMIT = 15

    def search(self, text: str) -> List[Dict[str, Any]]:
        headers = {'Authorization': f"ApiKey {self.api_key}"} if self.api_key else {}
        payload = self.request_json(
            'GET', self.BASE_URL,
            params={'q': text, 'limit': self.RESULT_LIMIT},
            headers=headers,
        )
        if not isinstance(payload, dict) or not isinstance(payload.get('results'), list):
            raise self.malformed("expected an object with a 'results' list")
        return payload['results']

    def query(self, name: str) -> List[Candidate]:
        """Search every name variation; one candidate per record id, best score kept"""
        best: Dict[str, Candidate] = {}
        for text in name_variations(name):
            for record in self.search(text):
                candidate = self._to_candidate(record)
                key = candidate.source_meta.get('id') or candidate.label
                current = best.get(key)
                if current is None or candidate.confidence > current.confidence:
                    best[key] = candidate
        logger.debug("OpenSanctions returned %d records", len(best))
        return list(best.values())

    def _to_candidate(self, record: Dict[str, Any]) -> Candidate:
        if not isinstance(record, dict) or not record.get('caption'):
            raise self.malformed("result record without caption")
        try:
            score = float(record.get('score', 0.0))
        except (TypeError, ValueError):
            raise self.malformed(f"non-numeric score {record.get('score')!r}")

        datasets = [str(d) for d in record.get('datasets') or []]
        properties = record.get('properties') or {}
        topics = record.get('topics') or properties.get('topics') or []

        return Candidate(
            label=record['caption'],
            confidence=max(0.0, min(score, 1.0)),
            tags=tags_for(datasets, topics),
            datasets=tuple(datasets),
            source_meta={
                'id': record.get('id'),
                'schema': record.get('schema'),
                'topics': list(topics),
                'countries': properties.get('country') or properties.get('nationality') or [],
            },
        )
