"""
ICIJ Offshore Leaks adapter (Panama, Paradise and Pandora Papers)

Uses the reconciliation API. Companies are looked up as offshore
entities first and then as officers; people only as officers. ICIJ
scores are 0-100 and are scaled to [0, 1].
"""

import logging
from typing import List

from providers.base import HttpScreeningProvider
from risk_models import Candidate, EntityKind, FlagKind

logger = logging.getLogger(__name__)


class OffshoreLeaksProvider(HttpScreeningProvider):
    name = "icij_offshore"
    label = "ICIJ Offshore Leaks"

    BASE_URL = "https://offshoreleaks.icij.org/api/v1/reconcile"
    RECORD_TYPES = ('Entity', 'Officer')
    MAX_RESULTS = 5

    def query(self, name: str) -> List[Candidate]:
        for record_type in self.RECORD_TYPES:
            candidates = self._reconcile(name, record_type)
            if candidates:
                return candidates
        return []

    def _reconcile(self, name: str, record_type: str) -> List[Candidate]:
        payload = self.request_json(
            'POST', self.BASE_URL,
            json={'query': name, 'type': record_type},
        )
        if not isinstance(payload, dict) or not isinstance(payload.get('result', []), list):
            raise self.malformed("expected an object with a 'result' list")

        candidates = []
        for hit in payload.get('result', [])[:self.MAX_RESULTS]:
            try:
                score = float(hit.get('score', 0)) / 100.0
            except (TypeError, ValueError, AttributeError):
                raise self.malformed("reconciliation hit without numeric score")
            if not hit.get('name'):
                continue
            types = hit.get('type') or []
            candidates.append(Candidate(
                label=hit['name'],
                confidence=max(0.0, min(score, 1.0)),
                tags=frozenset({FlagKind.OFFSHORE_LEAK}),
                datasets=('icij_offshore_leaks',),
                source_meta={
                    'id': hit.get('id'),
                    'record_type': types[0].get('name', record_type) if types and isinstance(types[0], dict) else record_type,
                },
            ))
        return candidates
